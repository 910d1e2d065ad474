# app/domain/plan.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from app.domain.meeting import Meeting, MeetingAction, Person, Venue
from app.domain.timeslot import Timeslot


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class MeetingWrite:
    """
    Put `meeting` into the store.

    `expected_version` is the snapshot version an update was computed from;
    None for creates.
    """

    meeting: Meeting
    create: bool = False
    expected_version: int | None = None


@dataclass(frozen=True)
class MeetingDelete:
    meeting_id: str
    expected_version: int | None = None


@dataclass(frozen=True)
class Notification:
    """
    Tell `people` that `timeslot` changed.

    `scope` says whether only one occurrence, this-and-future, or the whole
    series is affected; `previous` is the occurrence as it was before a
    reschedule.
    """

    meeting_id: str
    people: tuple[Person, ...]
    kind: ChangeKind
    scope: MeetingAction
    timeslot: Timeslot
    previous: Timeslot | None = None


@dataclass(frozen=True)
class MeetingPlan:
    """
    Side-effect free description of everything an edit/delete/create needs.

    The calling route executes it: store writes first, then search index
    resync, then notifications.

    `venue_updates` and `venue_removals` summarise venue changes for logging.
    A venue lives inside its meeting document, so every updated venue is
    carried by one of `writes` and every removed one belongs to a deleted
    or rewritten meeting.
    """

    action: MeetingAction
    requested_action: MeetingAction
    writes: tuple[MeetingWrite, ...] = ()
    deletes: tuple[MeetingDelete, ...] = ()
    venue_updates: tuple[Venue, ...] = ()
    venue_removals: tuple[str, ...] = ()
    notifications: tuple[Notification, ...] = ()
    search_resync: tuple[str, ...] = ()
    search_removals: tuple[str, ...] = ()

    def written(self, meeting_id: str) -> Meeting | None:
        for write in self.writes:
            if write.meeting.id == meeting_id:
                return write.meeting
        return None

    @property
    def created(self) -> tuple[Meeting, ...]:
        return tuple(w.meeting for w in self.writes if w.create)

    @property
    def updated(self) -> tuple[Meeting, ...]:
        return tuple(w.meeting for w in self.writes if not w.create)

    @property
    def deleted_ids(self) -> tuple[str, ...]:
        return tuple(d.meeting_id for d in self.deletes)
