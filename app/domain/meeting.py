# app/domain/meeting.py
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from app.core.errors import ValidationError
from app.domain.timeslot import Timeslot, new_id


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class MeetingStatus(str, Enum):
    """
    A meeting starts as `created`/`pending`, becomes `logged` once a
    participant confirms it took place, and `approved` once an org admin
    approves the logged hours.
    """

    CREATED = "created"
    PENDING = "pending"
    LOGGED = "logged"
    APPROVED = "approved"


class MeetingAction(str, Enum):
    """
    Which occurrences of a recurring meeting an edit or delete applies to.
    """

    ALL = "all"
    FUTURE = "future"
    THIS = "this"


@dataclass(frozen=True)
class Person:
    id: str
    name: str = ""
    email: str = ""
    roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class Match:
    """
    A tutoring or mentoring pairing: who meets, about what, for which org.
    """

    org: str
    id: str = field(default_factory=new_id)
    subjects: tuple[str, ...] = ()
    people: tuple[Person, ...] = ()
    creator: Person = field(default_factory=lambda: Person(id=""))
    message: str = ""
    created: datetime = field(default_factory=utcnow)
    updated: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Venue:
    """
    Link to where a meeting happens (e.g. a video call URL).
    """

    url: str = ""
    id: str = field(default_factory=new_id)
    created: datetime = field(default_factory=utcnow)
    updated: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Meeting:
    """
    A scheduled appointment for a match.

    A meeting is exactly one of:
    - a recurring parent (its `time` has a rule),
    - a standalone non-recurring meeting,
    - a detached single-occurrence override (`parent_id` set, no rule).

    `version` is the store's optimistic-concurrency counter of the snapshot
    this value was read from (0 for never-persisted meetings).
    """

    match: Match
    time: Timeslot
    id: str = field(default_factory=new_id)
    status: MeetingStatus = MeetingStatus.PENDING
    creator: Person = field(default_factory=lambda: Person(id=""))
    venue: Venue = field(default_factory=Venue)
    notes: str = ""
    parent_id: str | None = None
    created: datetime = field(default_factory=utcnow)
    updated: datetime = field(default_factory=utcnow)
    version: int = 0

    def __post_init__(self) -> None:
        if self.parent_id and self.time.is_recurring:
            raise ValidationError(
                f"Meeting {self.id} cannot both recur and override an occurrence "
                f"of meeting {self.parent_id}."
            )
        object.__setattr__(self, "status", MeetingStatus(self.status))

    @property
    def is_parent(self) -> bool:
        return self.time.is_recurring

    @property
    def is_override(self) -> bool:
        return self.parent_id is not None

    @property
    def is_standalone(self) -> bool:
        return not self.is_parent and not self.is_override

    @property
    def people(self) -> tuple[Person, ...]:
        return self.match.people

    def replace(self, **changes) -> "Meeting":
        return dataclasses.replace(self, **changes)

    def __str__(self) -> str:
        return f"Meeting on {self.time}"
