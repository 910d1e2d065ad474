# app/domain/rules.py
from __future__ import annotations

from datetime import datetime, timezone

from dateutil.rrule import rrulestr

from app.core.errors import ValidationError

RULE_PREFIX = "RRULE:"

FREQUENCIES = frozenset(
    {"YEARLY", "MONTHLY", "WEEKLY", "DAILY", "HOURLY", "MINUTELY", "SECONDLY"}
)

# Canonical part order used when a rule is written back out.
_PART_ORDER = (
    "FREQ",
    "INTERVAL",
    "COUNT",
    "UNTIL",
    "BYSETPOS",
    "BYMONTH",
    "BYWEEKNO",
    "BYYEARDAY",
    "BYMONTHDAY",
    "BYDAY",
    "BYHOUR",
    "BYMINUTE",
    "BYSECOND",
    "WKST",
)

_UNTIL_FORMATS = ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d")

# Arbitrary fixed anchor used only to let dateutil validate the grammar.
_SAMPLE_START = datetime(2000, 1, 3, 12, 0)


def parse_rule(text: str) -> dict[str, str]:
    """
    Parse an RFC-5545 RRULE string into its `KEY -> VALUE` parts.

    Accepts an optional `RRULE:` prefix and ignores a `DTSTART` line (the
    start of a series is always its timeslot's `from`). Keys and values are
    upper-cased.

    Raises
    ------
    ValidationError
        If the rule is empty, malformed, lacks a valid FREQ, carries both
        COUNT and UNTIL, or is rejected by dateutil.
    """
    if not text or not text.strip():
        raise ValidationError("Recurrence rule is empty.")

    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    rule_lines = [line for line in lines if not line.upper().startswith("DTSTART")]
    if len(rule_lines) != 1:
        raise ValidationError(f"Expected exactly one RRULE line in {text!r}.")

    body = rule_lines[0]
    if body.upper().startswith(RULE_PREFIX):
        body = body[len(RULE_PREFIX):]

    parts: dict[str, str] = {}
    for chunk in body.split(";"):
        if not chunk.strip():
            continue
        key, sep, value = chunk.partition("=")
        key = key.strip().upper()
        value = value.strip().upper()
        if not sep or not key or not value:
            raise ValidationError(f"Malformed recurrence rule part {chunk!r}.")
        if key in parts:
            raise ValidationError(f"Duplicate recurrence rule part {key!r}.")
        parts[key] = value

    if parts.get("FREQ") not in FREQUENCIES:
        raise ValidationError(f"Recurrence rule {text!r} has no valid FREQ.")
    if "COUNT" in parts and "UNTIL" in parts:
        raise ValidationError("A recurrence rule cannot specify both COUNT and UNTIL.")
    for key in ("COUNT", "INTERVAL"):
        if key in parts and (not parts[key].isdigit() or int(parts[key]) < 1):
            raise ValidationError(f"{key} must be a positive integer, got {parts[key]!r}.")
    if "UNTIL" in parts:
        parse_until(parts["UNTIL"])

    candidate = {key: value for key, value in parts.items() if key != "UNTIL"}
    try:
        rrulestr(format_rule(candidate), dtstart=_SAMPLE_START)
    except (ValueError, TypeError, KeyError) as exc:
        raise ValidationError(f"Unparseable recurrence rule {text!r}: {exc}") from exc

    return parts


def format_rule(parts: dict[str, str]) -> str:
    """
    Serialize rule parts back into a canonical `RRULE:` string.
    """
    known = [key for key in _PART_ORDER if key in parts]
    extra = sorted(key for key in parts if key not in _PART_ORDER)
    return RULE_PREFIX + ";".join(f"{key}={parts[key]}" for key in known + extra)


def normalize_rule(text: str) -> str:
    """
    Canonical form of a rule, used for equality and persistence.
    """
    return format_rule(parse_rule(text))


def is_bounded(text: str) -> bool:
    parts = parse_rule(text)
    return "COUNT" in parts or "UNTIL" in parts


def parse_until(value: str) -> datetime:
    """
    Parse an UNTIL value.

    A trailing `Z` yields an aware UTC datetime; floating (local) values
    yield a naive datetime that is interpreted in the series time zone.
    """
    for fmt in _UNTIL_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if fmt.endswith("Z"):
            return parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ValidationError(f"Invalid UNTIL value {value!r}.")


def format_until(instant: datetime) -> str:
    """
    Format an aware instant as a UTC UNTIL value (e.g. `20240116T000000Z`).
    """
    if instant.tzinfo is None:
        raise ValidationError("UNTIL instants must be timezone-aware.")
    return instant.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
