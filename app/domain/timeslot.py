# app/domain/timeslot.py
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from uuid import uuid4

from app.core.errors import ValidationError
from app.domain.rules import normalize_rule, parse_rule


def new_id() -> str:
    return uuid4().hex


def as_utc(value: datetime, name: str = "instant") -> datetime:
    """
    Coerce an instant to an aware UTC datetime.

    Naive values are taken to already be in UTC.
    """
    if not isinstance(value, datetime):
        raise ValidationError(f"Timeslot {name} must be a datetime, got {value!r}.")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Timeslot:
    """
    Half-open interval `[start, end)` with optional recurrence metadata.

    Immutable: every "mutation" returns a new Timeslot. Two timeslots are
    equal iff `start`, `end` and the normalized `recur` are equal; `id`,
    `exdates` and `last` do not take part in equality.

    Attributes
    ----------
    start, end:
        The wire format's `from` / `to`. Stored as aware UTC datetimes.
    recur:
        Optional RFC-5545 RRULE, stored normalized.
    exdates:
        Sorted, de-duplicated occurrence starts excluded from the series.
        Always empty for non-recurring slots.
    last:
        Cached end of the final included occurrence. Unset for
        non-recurring slots and unbounded series.
    """

    start: datetime
    end: datetime
    id: str = field(default_factory=new_id, compare=False)
    recur: str | None = None
    exdates: tuple[datetime, ...] = field(default=(), compare=False)
    last: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        start = as_utc(self.start, "from")
        end = as_utc(self.end, "to")
        if end <= start:
            raise ValidationError(
                f"Timeslot end ({end.isoformat()}) must be after its start "
                f"({start.isoformat()})."
            )

        recur = normalize_rule(self.recur) if self.recur else None
        exdates: tuple[datetime, ...] = ()
        last = None
        if recur is not None:
            exdates = tuple(sorted({as_utc(d, "exdate") for d in self.exdates}))
            last = as_utc(self.last, "last") if self.last is not None else None

        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)
        object.__setattr__(self, "id", self.id or new_id())
        object.__setattr__(self, "recur", recur)
        object.__setattr__(self, "exdates", exdates)
        object.__setattr__(self, "last", last)

    @property
    def is_recurring(self) -> bool:
        return self.recur is not None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def replace(self, **changes) -> "Timeslot":
        return dataclasses.replace(self, **changes)

    def shift(self, delta: timedelta) -> "Timeslot":
        """
        Move the base interval by `delta`.

        Exclusion dates are kept as recorded (see `recurrence.exclude_date`).
        """
        return self.replace(start=self.start + delta, end=self.end + delta)

    def contains(self, instant: datetime, *, zone: tzinfo | None = None) -> bool:
        """
        True if `instant` falls inside this slot or, for a recurring slot,
        inside one of its included occurrences.
        """
        instant = as_utc(instant)
        if not self.is_recurring:
            return self.start <= instant < self.end

        from app.domain import recurrence

        window = recurrence.occurrences(
            self, instant, instant + timedelta(microseconds=1), zone=zone
        )
        return any(occ.start <= instant < occ.end for occ in window)

    def covers(self, other: "Timeslot") -> bool:
        """
        Plain interval containment of `other`'s base interval.
        """
        return self.start <= other.start and other.end <= self.end

    def overlaps(
        self,
        other: "Timeslot",
        *,
        zone: tzinfo | None = None,
        horizon: timedelta = timedelta(days=366),
    ) -> bool:
        """
        True if any occurrence of this slot overlaps any occurrence of `other`.

        Unbounded series are compared over `horizon` from the later start.
        """
        if not self.is_recurring and not other.is_recurring:
            return self.start < other.end and other.start < self.end

        from app.domain import recurrence

        window_start = max(self.start, other.start)
        bounds = [
            bound
            for bound in (
                recurrence.last_occurrence_end(self, zone=zone),
                recurrence.last_occurrence_end(other, zone=zone),
            )
            if bound is not None
        ]
        window_end = min(bounds) if bounds else window_start + horizon
        if window_end <= window_start:
            return False

        mine = recurrence.occurrences(self, window_start, window_end, zone=zone)
        theirs = recurrence.occurrences(other, window_start, window_end, zone=zone)
        i = j = 0
        while i < len(mine) and j < len(theirs):
            if mine[i].start < theirs[j].end and theirs[j].start < mine[i].end:
                return True
            if mine[i].end <= theirs[j].end:
                i += 1
            else:
                j += 1
        return False

    def describe(self, zone: tzinfo | None = None) -> str:
        """
        Human-readable form with clock times in `zone` (default: the series
        time zone), e.g. `Tue Jan 2, 2024 3:00 PM - 4:00 PM EST (weekly)`.
        """
        if zone is None:
            from app.domain import recurrence

            zone = recurrence.series_zone()
        start = self.start.astimezone(zone)
        end = self.end.astimezone(zone)
        day = start.strftime("%a %b %-d, %Y")
        span = f"{_clock(start)} - {_clock(end)} {start.tzname()}"
        if not self.is_recurring:
            return f"{day} {span}"
        freq = parse_rule(self.recur)["FREQ"].lower()
        return f"{day} {span} ({freq})"

    def __str__(self) -> str:
        return self.describe()


def _clock(value: datetime) -> str:
    return value.strftime("%-I:%M %p")
