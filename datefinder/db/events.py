import json
from datetime import UTC, date, datetime
from typing import Any

from psycopg import errors as pg_errors

from datefinder.db.core import _get_connection


async def df_insert_event(
    event_id: str,
    name: str,
    window_start: date,
    window_end: date,
    created_at: datetime,
    creator_id: str,
    creator_name: str,
) -> None:
    """Insert an event together with its creator.

    Raises ``psycopg.errors.UniqueViolation`` when ``event_id`` is taken.
    """
    async with _get_connection(autocommit=False) as conn:
        async with conn.transaction():
            await conn.execute(
                """INSERT INTO df_events (id, name, window_start, window_end, created_at)
                   VALUES (%s, %s, %s, %s, %s)""",
                (event_id, name, window_start, window_end, created_at),
            )
            await conn.execute(
                """INSERT INTO df_participants (event_id, participant_id, name, dates, updated_at)
                   VALUES (%s, %s, %s, %s, %s)""",
                (event_id, creator_id, creator_name, json.dumps([]), created_at),
            )


async def df_fetch_event(event_id: str) -> dict[str, Any] | None:
    async with _get_connection() as conn:
        row = await (
            await conn.execute(
                "SELECT id, name, window_start, window_end, created_at FROM df_events WHERE id = %s",
                (event_id,),
            )
        ).fetchone()
        if not row:
            return None
        participants: dict[str, Any] = {}
        rows = await conn.execute(
            "SELECT participant_id, name, dates FROM df_participants WHERE event_id = %s",
            (event_id,),
        )
        async for pid, pname, dates in rows:
            participants[pid] = {"name": pname, "dates": dates}
        return {
            "id": row[0],
            "name": row[1],
            "window": {"start": row[2].isoformat(), "end": row[3].isoformat()},
            "participants": participants,
            "created_at": int(row[4].astimezone(UTC).timestamp() * 1000),
        }


async def df_upsert_participant(
    event_id: str,
    participant_id: str,
    name: str,
    dates: list[str],
) -> bool:
    """Replace one participant entry. Returns False when the event does not exist."""
    now = datetime.now(UTC)
    async with _get_connection() as conn:
        try:
            await conn.execute(
                """INSERT INTO df_participants (event_id, participant_id, name, dates, updated_at)
                   VALUES (%s, %s, %s, %s, %s)
                   ON CONFLICT (event_id, participant_id)
                   DO UPDATE SET name = EXCLUDED.name, dates = EXCLUDED.dates, updated_at = EXCLUDED.updated_at""",
                (event_id, participant_id, name, json.dumps(dates), now),
            )
        except pg_errors.ForeignKeyViolation:
            return False
    return True
