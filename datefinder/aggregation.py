"""Vote counts, heat levels and the ranked list of best dates.

Everything here is derived from a snapshot of ``participant id ->
Participant`` and recomputed on every call. Participants are always walked
in a canonical order so results never depend on how the mapping happened
to be built.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum

from datefinder.models.event import Participant, ParticipantSummary

DEFAULT_RANKING_LIMIT = 10


class HeatLevel(IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    PEAK = 4


@dataclass(frozen=True)
class AggregationResult:
    date: str
    count: int
    voter_names: tuple[str, ...]
    absent_names: tuple[str, ...]


def _canonical_order(participants: Mapping[str, Participant]) -> list[Participant]:
    return sorted(participants.values(), key=lambda p: (p.name.casefold(), p.name, p.id))


def heat_level(count: int, participant_count: int) -> HeatLevel:
    """Bucket ``count / max(participant_count, 1)``; upper bounds are closed."""
    if count <= 0:
        return HeatLevel.NONE
    intensity = count / max(participant_count, 1)
    if intensity <= 0.25:
        return HeatLevel.LOW
    if intensity <= 0.5:
        return HeatLevel.MEDIUM
    if intensity <= 0.75:
        return HeatLevel.HIGH
    return HeatLevel.PEAK


class AggregationEngine:
    def __init__(self, participants: Mapping[str, Participant]) -> None:
        self._participants = participants

    @property
    def participant_count(self) -> int:
        return len(self._participants)

    def vote_counts(self) -> dict[str, int]:
        counts: Counter[str] = Counter()
        for participant in self._participants.values():
            counts.update(participant.dates)
        return dict(counts)

    def count_for(self, date: str) -> int:
        return sum(1 for p in self._participants.values() if date in p.dates)

    def heatmap_intensity(self, date: str) -> HeatLevel:
        return heat_level(self.count_for(date), self.participant_count)

    def ranked_dates(self, limit: int = DEFAULT_RANKING_LIMIT) -> list[AggregationResult]:
        ordered = _canonical_order(self._participants)
        all_names = [p.name for p in ordered]
        voters: dict[str, list[str]] = {}
        for participant in ordered:
            for date in participant.dates:
                voters.setdefault(date, []).append(participant.name)

        ranking = sorted(voters.items(), key=lambda item: (-len(item[1]), item[0]))
        results = []
        for date, names in ranking[: max(limit, 0)]:
            present = set(names)
            results.append(
                AggregationResult(
                    date=date,
                    count=len(names),
                    voter_names=tuple(names),
                    absent_names=tuple(n for n in all_names if n not in present),
                )
            )
        return results

    def max_count(self) -> int:
        return max(self.vote_counts().values(), default=0)

    def participant_summaries(self) -> list[ParticipantSummary]:
        return [
            ParticipantSummary(
                id=p.id,
                name=p.name,
                initial=(p.name or "?")[0].upper(),
                date_count=len(p.dates),
                dates=sorted(p.dates),
            )
            for p in _canonical_order(self._participants)
        ]
