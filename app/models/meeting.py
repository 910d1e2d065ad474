# app/models/meeting.py
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from app.db.base import Base
from app.domain.meeting import Meeting
from app.services.serializers import (
    meeting_from_document,
    meeting_to_document,
    timeslot_from_document,
    timeslot_to_document,
)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class MeetingRecord(Base):
    """
    Persisted meeting document.

    The meeting's own schedule is stored in native columns so it can be
    queried; the embedded match, venue and creator are stored as JSON in
    their wire shape. `version` backs optimistic concurrency in the store.
    """

    __tablename__ = "meetings"

    id = Column(String(64), primary_key=True)
    parent_id = Column(String(64), nullable=True, index=True)
    status = Column(String(16), nullable=False, default="pending")

    time_id = Column(String(64), nullable=False)
    time_from = Column(DateTime(timezone=True), nullable=False, index=True)
    time_to = Column(DateTime(timezone=True), nullable=False)
    time_last = Column(DateTime(timezone=True), nullable=True)
    time_recur = Column(Text, nullable=True)
    time_exdates = Column(JSON, nullable=False, default=list)

    payload = Column(JSON, nullable=False)
    notes = Column(Text, nullable=False, default="")

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    @staticmethod
    def columns_for(meeting: Meeting) -> dict:
        """
        Column values (except `version`) for the given meeting.
        """
        document = meeting_to_document(meeting)
        time = timeslot_to_document(meeting.time)
        return {
            "id": meeting.id,
            "parent_id": meeting.parent_id,
            "status": document["status"],
            "time_id": time["id"],
            "time_from": _naive_utc(time["from"]),
            "time_to": _naive_utc(time["to"]),
            "time_last": _naive_utc(time.get("last")),
            "time_recur": time.get("recur"),
            "time_exdates": [d.isoformat() for d in time.get("exdates", [])],
            "payload": {
                "creator": document["creator"],
                "match": _jsonable(document["match"]),
                "venue": _jsonable(document["venue"]),
            },
            "notes": meeting.notes,
            "created_at": _naive_utc(meeting.created),
            "updated_at": _naive_utc(meeting.updated),
        }

    def to_meeting(self) -> Meeting:
        time = timeslot_from_document(
            {
                "id": self.time_id,
                "from": _aware(self.time_from),
                "to": _aware(self.time_to),
                "last": _aware(self.time_last),
                "recur": self.time_recur,
                "exdates": [
                    datetime.fromisoformat(d) for d in (self.time_exdates or [])
                ],
            }
        )
        payload = self.payload or {}
        return meeting_from_document(
            {
                "id": self.id,
                "status": self.status,
                "creator": payload.get("creator"),
                "match": _from_jsonable(payload["match"]),
                "venue": _from_jsonable(payload["venue"]),
                "time": timeslot_to_document(time),
                "notes": self.notes,
                "parentId": self.parent_id,
                "created": _aware(self.created_at),
                "updated": _aware(self.updated_at),
                "version": self.version,
            }
        )

    def __repr__(self) -> str:
        return (
            f"<MeetingRecord id={self.id} parent_id={self.parent_id} "
            f"from={self.time_from} recur={self.time_recur} version={self.version}>"
        )


def _jsonable(document: dict) -> dict:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in document.items()
    }


def _from_jsonable(data: dict) -> dict:
    converted = dict(data)
    for key in ("created", "updated"):
        if isinstance(converted.get(key), str):
            converted[key] = datetime.fromisoformat(converted[key])
    return converted
