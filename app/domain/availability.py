# app/domain/availability.py
from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo

from app.core.config import get_settings
from app.domain import recurrence
from app.domain.timeslot import Timeslot


@dataclass(frozen=True, init=False)
class Availability:
    """
    Union of a person's free timeslots.

    Order is kept as given (it only matters for display); use `sorted()`
    for a start-ordered copy. Overlap between members is not enforced here,
    `resolve_overlaps()` merges it away and `contains()` accounts for
    recurrence expansion over the queried window.
    """

    timeslots: tuple[Timeslot, ...]

    def __init__(self, timeslots: Iterable[Timeslot] = ()) -> None:
        object.__setattr__(self, "timeslots", tuple(timeslots))

    def __iter__(self) -> Iterator[Timeslot]:
        return iter(self.timeslots)

    def __len__(self) -> int:
        return len(self.timeslots)

    def sorted(self) -> "Availability":
        return Availability(sorted(self.timeslots, key=lambda t: (t.start, t.end)))

    def occurrences(
        self,
        window_start: datetime,
        window_end: datetime,
        *,
        zone: tzinfo | None = None,
    ) -> list[Timeslot]:
        """
        Every member occurrence overlapping the window, ordered by start.
        """
        expanded: list[Timeslot] = []
        for member in self.timeslots:
            expanded.extend(
                recurrence.occurrences(member, window_start, window_end, zone=zone)
            )
        return sorted(expanded, key=lambda t: (t.start, t.end))

    def contains(
        self,
        candidate: Timeslot,
        *,
        zone: tzinfo | None = None,
        horizon_days: int | None = None,
    ) -> bool:
        """
        True iff every occurrence of `candidate` is covered by some member
        occurrence.

        A non-recurring candidate needs one member occurrence covering its
        interval. A recurring candidate is checked occurrence by occurrence
        up to its final occurrence, or over `horizon_days` when unbounded.
        """
        window_start = candidate.start
        if candidate.is_recurring:
            if horizon_days is None:
                horizon_days = get_settings().AVAILABILITY_HORIZON_DAYS
            window_end = window_start + timedelta(days=horizon_days)
            bound = recurrence.last_occurrence_end(candidate, zone=zone)
            if bound is not None:
                window_end = min(window_end, bound)
        else:
            window_end = candidate.end

        wanted = recurrence.occurrences(candidate, window_start, window_end, zone=zone)
        if not wanted:
            return False

        free = self.occurrences(window_start, window_end, zone=zone)
        return all(any(slot.covers(occ) for slot in free) for occ in wanted)

    def intersection(self, other: "Availability") -> "Availability":
        """
        Members of this availability that also appear (per timeslot
        equality) in `other`.
        """
        return Availability(t for t in self.timeslots if t in other.timeslots)

    def resolve_overlaps(self, *, zone: tzinfo | None = None) -> "Availability":
        """
        Merge overlapping (or touching) members.

        Non-recurring members are merged by plain interval union. Recurring
        members are merged only with members sharing the same rule and
        exclusions whose base intervals overlap.

        Every resulting member gets its `last` recomputed from its rule, so a
        client-supplied value is never kept.
        """
        singles = sorted(
            (t for t in self.timeslots if not t.is_recurring),
            key=lambda t: (t.start, t.end),
        )
        series = sorted(
            (t for t in self.timeslots if t.is_recurring),
            key=lambda t: (t.recur, t.exdates, t.start, t.end),
        )

        merged: list[Timeslot] = []
        for slot in singles:
            if merged and slot.start <= merged[-1].end:
                previous = merged[-1]
                merged[-1] = previous.replace(end=max(previous.end, slot.end))
            else:
                merged.append(slot)

        merged_series: list[Timeslot] = []
        for slot in series:
            previous = merged_series[-1] if merged_series else None
            if (
                previous is not None
                and previous.recur == slot.recur
                and previous.exdates == slot.exdates
                and slot.start <= previous.end
            ):
                merged_series[-1] = previous.replace(end=max(previous.end, slot.end))
            else:
                merged_series.append(slot)

        return Availability(
            recurrence.with_last(t, zone=zone) for t in merged + merged_series
        ).sorted()
