from typing import Any, Literal, TypedDict, Union


class SnapshotMessage(TypedDict):
    type: Literal["snapshot"]
    event: dict[str, Any]
    results: dict[str, Any]


class NotFoundMessage(TypedDict):
    type: Literal["not_found"]
    event_id: str


class PingMessage(TypedDict):
    type: Literal["ping"]


class ErrorMessage(TypedDict):
    type: Literal["error"]
    error: str
    detail: str


# Discriminated union of all messages a websocket client may receive
EventMessage = Union[SnapshotMessage, NotFoundMessage, PingMessage, ErrorMessage]
