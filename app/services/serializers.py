# app/services/serializers.py
"""
Explicit mappings between the in-memory value types and their three
external shapes:

- wire:       API JSON, instants as ISO-8601 strings (`...Z`)
- document:   persisted form, instants as native aware datetimes
- search hit: search index record, instants as epoch milliseconds and the
              meeting id as `objectID`

The shapes differ only in how instants are encoded, so each public
function is a thin wrapper choosing the encoder/decoder.
"""
from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote, unquote

from dateutil.parser import isoparse

from app.core.errors import ValidationError
from app.domain.availability import Availability
from app.domain.meeting import Match, Meeting, MeetingStatus, Person, Venue
from app.domain.timeslot import Timeslot, as_utc, new_id

Encode = Callable[[datetime], Any]
Decode = Callable[[Any], datetime]


# ---------------------------------------------------------------------------
# Instant encodings
# ---------------------------------------------------------------------------

def _iso(value: datetime) -> str:
    return as_utc(value).isoformat().replace("+00:00", "Z")


def _from_iso(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValidationError(f"Expected an ISO-8601 string, got {value!r}.")
    try:
        return as_utc(isoparse(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid ISO-8601 instant {value!r}.") from exc


def _native(value: datetime) -> datetime:
    return as_utc(value)


def _from_native(value: Any) -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError(f"Expected a datetime, got {value!r}.")
    return as_utc(value)


def _millis(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)


def _from_millis(value: Any) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Expected epoch milliseconds, got {value!r}.")
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValidationError(f"Missing required field {key!r}.") from None


# ---------------------------------------------------------------------------
# Timeslot
# ---------------------------------------------------------------------------

def _timeslot_out(timeslot: Timeslot, encode: Encode) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": timeslot.id,
        "from": encode(timeslot.start),
        "to": encode(timeslot.end),
    }
    if timeslot.recur:
        data["recur"] = timeslot.recur
    if timeslot.exdates:
        data["exdates"] = [encode(d) for d in timeslot.exdates]
    if timeslot.last is not None:
        data["last"] = encode(timeslot.last)
    return data


def _timeslot_in(data: Mapping[str, Any], decode: Decode) -> Timeslot:
    last = data.get("last")
    return Timeslot(
        start=decode(_require(data, "from")),
        end=decode(_require(data, "to")),
        id=data.get("id") or "",
        recur=data.get("recur") or None,
        exdates=tuple(decode(d) for d in data.get("exdates") or ()),
        last=decode(last) if last is not None else None,
    )


def timeslot_to_wire(timeslot: Timeslot) -> dict[str, Any]:
    return _timeslot_out(timeslot, _iso)


def timeslot_from_wire(data: Mapping[str, Any]) -> Timeslot:
    return _timeslot_in(data, _from_iso)


def timeslot_to_document(timeslot: Timeslot) -> dict[str, Any]:
    return _timeslot_out(timeslot, _native)


def timeslot_from_document(data: Mapping[str, Any]) -> Timeslot:
    return _timeslot_in(data, _from_native)


def timeslot_to_search_hit(timeslot: Timeslot) -> dict[str, Any]:
    return _timeslot_out(timeslot, _millis)


def timeslot_from_search_hit(data: Mapping[str, Any]) -> Timeslot:
    return _timeslot_in(data, _from_millis)


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------

def availability_to_wire(availability: Availability) -> list[dict[str, Any]]:
    return [timeslot_to_wire(t) for t in availability]


def availability_from_wire(data: list[Mapping[str, Any]]) -> Availability:
    return Availability(timeslot_from_wire(item) for item in data)


def availability_to_url_param(availability: Availability) -> str:
    return quote(json.dumps(availability_to_wire(availability), separators=(",", ":")))


def availability_from_url_param(param: str) -> Availability:
    try:
        data = json.loads(unquote(param))
    except ValueError as exc:
        raise ValidationError(f"Invalid availability parameter: {exc}") from exc
    if not isinstance(data, list):
        raise ValidationError("Availability parameter must encode a list of timeslots.")
    return availability_from_wire(data)


# ---------------------------------------------------------------------------
# Person / Match / Venue
# ---------------------------------------------------------------------------

def person_to_dict(person: Person) -> dict[str, Any]:
    return {
        "id": person.id,
        "name": person.name,
        "email": person.email,
        "roles": list(person.roles),
    }


def person_from_dict(data: Mapping[str, Any]) -> Person:
    return Person(
        id=str(_require(data, "id")),
        name=data.get("name") or "",
        email=data.get("email") or "",
        roles=tuple(data.get("roles") or ()),
    )


def _match_out(match: Match, encode: Encode) -> dict[str, Any]:
    return {
        "id": match.id,
        "org": match.org,
        "subjects": list(match.subjects),
        "people": [person_to_dict(p) for p in match.people],
        "creator": person_to_dict(match.creator),
        "message": match.message,
        "created": encode(match.created),
        "updated": encode(match.updated),
    }


def _match_in(data: Mapping[str, Any], decode: Decode) -> Match:
    return Match(
        id=data.get("id") or new_id(),
        org=str(_require(data, "org")),
        subjects=tuple(data.get("subjects") or ()),
        people=tuple(person_from_dict(p) for p in data.get("people") or ()),
        creator=person_from_dict(data.get("creator") or {"id": ""}),
        message=data.get("message") or "",
        created=decode(_require(data, "created")),
        updated=decode(_require(data, "updated")),
    )


def _venue_out(venue: Venue, encode: Encode) -> dict[str, Any]:
    return {
        "id": venue.id,
        "url": venue.url,
        "created": encode(venue.created),
        "updated": encode(venue.updated),
    }


def _venue_in(data: Mapping[str, Any], decode: Decode) -> Venue:
    return Venue(
        id=data.get("id") or new_id(),
        url=data.get("url") or "",
        created=decode(_require(data, "created")),
        updated=decode(_require(data, "updated")),
    )


# ---------------------------------------------------------------------------
# Meeting
# ---------------------------------------------------------------------------

def meeting_tags(meeting: Meeting) -> list[str]:
    return ["recurring" if meeting.time.is_recurring else "not-recurring"]


def _meeting_out(meeting: Meeting, encode: Encode) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": meeting.id,
        "status": meeting.status.value,
        "creator": person_to_dict(meeting.creator),
        "match": _match_out(meeting.match, encode),
        "venue": _venue_out(meeting.venue, encode),
        "time": _timeslot_out(meeting.time, encode),
        "notes": meeting.notes,
        "created": encode(meeting.created),
        "updated": encode(meeting.updated),
    }
    if meeting.parent_id:
        data["parentId"] = meeting.parent_id
    return data


def _meeting_in(data: Mapping[str, Any], decode: Decode) -> Meeting:
    try:
        status = MeetingStatus(data.get("status") or MeetingStatus.PENDING)
    except ValueError as exc:
        raise ValidationError(f"Invalid meeting status {data.get('status')!r}.") from exc
    return Meeting(
        id=data.get("id") or new_id(),
        status=status,
        creator=person_from_dict(data.get("creator") or {"id": ""}),
        match=_match_in(_require(data, "match"), decode),
        venue=_venue_in(_require(data, "venue"), decode),
        time=_timeslot_in(_require(data, "time"), decode),
        notes=data.get("notes") or "",
        parent_id=data.get("parentId") or None,
        created=decode(_require(data, "created")),
        updated=decode(_require(data, "updated")),
        version=int(data.get("version") or 0),
    )


def meeting_to_wire(meeting: Meeting) -> dict[str, Any]:
    return _meeting_out(meeting, _iso)


def meeting_from_wire(data: Mapping[str, Any]) -> Meeting:
    return _meeting_in(data, _from_iso)


def meeting_to_document(meeting: Meeting) -> dict[str, Any]:
    data = _meeting_out(meeting, _native)
    data["version"] = meeting.version
    return data


def meeting_from_document(data: Mapping[str, Any]) -> Meeting:
    return _meeting_in(data, _from_native)


def meeting_to_search_hit(meeting: Meeting) -> dict[str, Any]:
    data = _meeting_out(meeting, _millis)
    data["objectID"] = data.pop("id")
    data["_tags"] = meeting_tags(meeting)
    return data


def meeting_from_search_hit(data: Mapping[str, Any]) -> Meeting:
    fields = dict(data)
    fields["id"] = _require(data, "objectID")
    return _meeting_in(fields, _from_millis)


def meeting_to_csv_row(meeting: Meeting) -> dict[str, str]:
    """
    Flat row used by meeting exports.
    """
    return {
        "Meeting ID": meeting.id,
        "Meeting Notes": meeting.notes,
        "Meeting Start": _iso(meeting.time.start),
        "Meeting End": _iso(meeting.time.end),
        "Meeting Recurrence": meeting.time.recur or "",
        "Meeting Created": _iso(meeting.created),
        "Meeting Last Updated": _iso(meeting.updated),
        "Match ID": meeting.match.id,
        "Match Subjects": ", ".join(meeting.match.subjects),
        "Match People": ", ".join(p.name or p.id for p in meeting.match.people),
        "Match Message": meeting.match.message,
    }
