# app/domain/recurrence.py
"""
Recurrence engine: the only place that interprets recurrence rules.

Rules are expanded as wall-clock recurrences in the series time zone
("every Tuesday 3-4pm" stays 3-4pm local across DST changes), then
converted back to UTC instants. Every expansion is capped at
`MAX_OCCURRENCES` generated starts.

Exclusions (`exdates`) are matched on the exact UTC start instant that the
*current* rule generates. If a series' time of day is later changed, dates
excluded under the old time no longer match anything and the excluded
occurrences reappear. This is a known limitation and is preserved as-is.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from dateutil import tz
from dateutil.rrule import rrulestr

from app.core.config import get_settings
from app.core.errors import ValidationError
from app.domain.rules import format_rule, format_until, is_bounded, parse_rule, parse_until
from app.domain.timeslot import Timeslot, as_utc

logger = logging.getLogger(__name__)


def resolve_zone(name: str) -> tzinfo:
    """
    Look up an IANA time zone, raising ValidationError for unknown names.
    """
    if name.strip().upper() in ("UTC", "Z", "ETC/UTC"):
        return tz.UTC
    zone = tz.gettz(name)
    if zone is None:
        raise ValidationError(f"Unknown time zone {name!r}.")
    return zone


def series_zone() -> tzinfo:
    return resolve_zone(get_settings().SERIES_TIMEZONE)


def _limit(limit: int | None) -> int:
    return limit if limit is not None else get_settings().MAX_OCCURRENCES


def _wall_clock(instant: datetime, zone: tzinfo) -> datetime:
    return instant.astimezone(zone).replace(tzinfo=None)


def _instant(wall: datetime, zone: tzinfo) -> datetime:
    # Wall times skipped by a DST gap are moved forward past the gap.
    return tz.resolve_imaginary(wall.replace(tzinfo=zone)).astimezone(timezone.utc)


def _generated_starts(
    rule: str,
    start: datetime,
    zone: tzinfo,
    limit: int,
) -> Iterator[datetime]:
    """
    Yield every start the rule generates from `start`, exdates NOT applied.
    """
    parts = parse_rule(rule)
    until = parts.pop("UNTIL", None)
    expansion = rrulestr(format_rule(parts), dtstart=_wall_clock(start, zone))
    if until is not None:
        bound = parse_until(until)
        if bound.tzinfo is not None:
            bound = _wall_clock(bound, zone)
        expansion = expansion.replace(until=bound)

    for index, wall in enumerate(expansion):
        if index >= limit:
            raise ValidationError(
                f"Recurrence rule {rule} expands beyond {limit} occurrences."
            )
        yield _instant(wall, zone)


def occurrence_starts(
    timeslot: Timeslot,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> Iterator[datetime]:
    """
    Yield the start of every included occurrence, ascending.

    A non-recurring slot has exactly one occurrence: itself.
    """
    if not timeslot.is_recurring:
        yield timeslot.start
        return

    excluded = set(timeslot.exdates)
    for start in _generated_starts(
        timeslot.recur, timeslot.start, zone or series_zone(), _limit(limit)
    ):
        if start not in excluded:
            yield start


def occurrence_at(timeslot: Timeslot, start: datetime) -> Timeslot:
    """
    The concrete (non-recurring) occurrence of `timeslot` starting at `start`.
    """
    start = as_utc(start)
    return Timeslot(
        start=start,
        end=start + timeslot.duration,
        id=f"{timeslot.id}-{int(start.timestamp())}",
    )


def occurrences(
    timeslot: Timeslot,
    window_start: datetime,
    window_end: datetime,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> list[Timeslot]:
    """
    Concrete occurrences overlapping `[window_start, window_end)`.
    """
    window_start = as_utc(window_start)
    window_end = as_utc(window_end)
    if window_end <= window_start:
        raise ValidationError("Occurrence window end must be after its start.")

    duration = timeslot.duration
    result: list[Timeslot] = []
    for start in occurrence_starts(timeslot, zone=zone, limit=limit):
        if start >= window_end:
            break
        if start + duration > window_start:
            result.append(occurrence_at(timeslot, start))

    logger.debug(
        "Expanded %s into %d occurrence(s) within [%s, %s)",
        timeslot.recur or "single slot",
        len(result),
        window_start.isoformat(),
        window_end.isoformat(),
    )
    return result


def first_occurrence(
    timeslot: Timeslot,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> datetime | None:
    """
    Start of the first included occurrence, or None if every occurrence is
    excluded.
    """
    return next(iter(occurrence_starts(timeslot, zone=zone, limit=limit)), None)


def is_occurrence(
    timeslot: Timeslot,
    start: datetime,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> bool:
    """
    True if `start` is exactly the start of an included occurrence.
    """
    start = as_utc(start)
    for candidate in occurrence_starts(timeslot, zone=zone, limit=limit):
        if candidate == start:
            return True
        if candidate > start:
            return False
    return False


def count_occurrences(
    timeslot: Timeslot,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> int:
    """
    Number of included occurrences of a bounded (or non-recurring) slot.
    """
    if timeslot.is_recurring and not is_bounded(timeslot.recur):
        raise ValidationError(f"Rule {timeslot.recur} repeats forever.")
    return sum(1 for _ in occurrence_starts(timeslot, zone=zone, limit=limit))


def last_occurrence_end(
    timeslot: Timeslot,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> datetime | None:
    """
    End instant of the final included occurrence.

    - Non-recurring slot: its own `end`.
    - Unbounded rule (neither COUNT nor UNTIL): None, i.e. repeats forever.
    - Bounded rule: COUNT/UNTIL bound the generated set first, then
      `exdates` are removed, so excluding the final occurrence makes the
      previous one final. None if every occurrence is excluded.
    """
    if not timeslot.is_recurring:
        return timeslot.end
    if not is_bounded(timeslot.recur):
        return None

    final: datetime | None = None
    for start in occurrence_starts(timeslot, zone=zone, limit=limit):
        final = start
    if final is None:
        return None
    return final + timeslot.duration


def with_last(
    timeslot: Timeslot,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> Timeslot:
    """
    Return `timeslot` with its cached `last` recomputed.
    """
    if not timeslot.is_recurring:
        return timeslot.replace(last=None)
    return timeslot.replace(last=last_occurrence_end(timeslot, zone=zone, limit=limit))


def exclude_date(
    timeslot: Timeslot,
    occurrence_start: datetime,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> Timeslot:
    """
    Add `occurrence_start` to the series' exdates and recompute `last`.

    The exclusion is keyed on the exact start instant generated by the
    current rule.
    """
    if not timeslot.is_recurring:
        raise ValidationError("Only recurring timeslots can exclude occurrences.")
    excluded = timeslot.replace(
        exdates=timeslot.exdates + (as_utc(occurrence_start),)
    )
    return with_last(excluded, zone=zone, limit=limit)


def local_midnight(day: date, zone: tzinfo) -> datetime:
    return _instant(datetime.combine(day, time.min), zone)


def truncate_at(
    rule: str,
    boundary: date,
    *,
    start: datetime | None = None,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> str:
    """
    Return `rule` with its UNTIL set to series-local midnight of `boundary`.

    Every occurrence on or after `boundary` is dropped and every occurrence
    strictly before it is kept.

    UNTIL is inclusive. Without the series `start` there is no way to tell
    whether the rule lands exactly on midnight, so UNTIL is written one
    second before it.

    When the series `start` is given:
    - UNTIL is moved one second earlier only if the rule itself generates
      an occurrence exactly at that midnight;
    - a COUNT rule whose generated occurrences all fall before `boundary`
      is returned unchanged, otherwise COUNT is replaced by UNTIL.

    An existing UNTIL earlier than the new one is kept.
    """
    zone = zone or series_zone()
    limit = _limit(limit)
    parts = parse_rule(rule)
    until = local_midnight(boundary, zone)

    if start is None:
        until -= timedelta(seconds=1)
    else:
        start = as_utc(start)
        hits_midnight = False
        reaches_boundary = False
        for generated in _generated_starts(rule, start, zone, limit):
            if generated >= until:
                hits_midnight = generated == until
                reaches_boundary = True
                break
        if not reaches_boundary:
            return format_rule(parts)
        if hits_midnight:
            until -= timedelta(seconds=1)

    if "UNTIL" in parts:
        current = parse_until(parts["UNTIL"])
        if current.tzinfo is None:
            current = _instant(current, zone)
        until = min(until, current)

    parts.pop("COUNT", None)
    parts["UNTIL"] = format_until(until)
    return format_rule(parts)


def remaining_rule(
    timeslot: Timeslot,
    boundary_start: datetime,
    *,
    zone: tzinfo | None = None,
    limit: int | None = None,
) -> str:
    """
    Rule that continues `timeslot`'s series from `boundary_start` onwards.

    A COUNT is reduced by the number of occurrences generated before the
    boundary so the combined series keeps its original length; UNTIL and
    unbounded rules carry over unchanged.
    """
    if not timeslot.is_recurring:
        raise ValidationError("Only recurring timeslots have a remaining rule.")
    parts = parse_rule(timeslot.recur)
    if "COUNT" not in parts:
        return format_rule(parts)

    boundary_start = as_utc(boundary_start)
    before = 0
    for generated in _generated_starts(
        timeslot.recur, timeslot.start, zone or series_zone(), _limit(limit)
    ):
        if generated >= boundary_start:
            break
        before += 1
    parts["COUNT"] = str(max(int(parts["COUNT"]) - before, 1))
    return format_rule(parts)
