# app/services/meeting_series_editor.py
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from datetime import datetime, tzinfo

from app.core.errors import ValidationError
from app.domain import recurrence
from app.domain.meeting import Meeting, MeetingAction, Venue, utcnow
from app.domain.plan import (
    ChangeKind,
    MeetingDelete,
    MeetingPlan,
    MeetingWrite,
    Notification,
)
from app.domain.timeslot import Timeslot, as_utc, new_id

logger = logging.getLogger(__name__)


class MeetingSeriesEditor:
    """
    Turns an edit or delete of one occurrence of a (possibly recurring)
    meeting into a MeetingPlan. Performs no I/O.

    Actions
    -------
    - `all`: replace or remove the meeting document in place.
    - `this`: exclude the occurrence from the parent series; an edit also
      creates a detached override meeting carrying `parent_id`.
    - `future`: truncate the parent's rule at the occurrence's series-local
      date; an edit also creates a new series for the remainder.

    Collapsing rules
    ----------------
    - A non-recurring meeting (standalone or detached override) is always
      handled as `all`.
    - `future` on the first included occurrence becomes `all`: nothing
      before it would survive.
    - `this` on the only remaining occurrence becomes `all`: a delete
      removes the document, an edit turns it into a single meeting.
    - `future` that leaves no included occurrence before the boundary
      removes the parent document instead of keeping an empty series.

    The occurrence start given by the client must be one the parent's rule
    currently generates (and does not exclude), otherwise ValidationError is
    raised and no plan is produced.
    """

    def __init__(
        self,
        *,
        zone: tzinfo | None = None,
        limit: int | None = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self.zone = zone if zone is not None else recurrence.series_zone()
        self.limit = limit
        self._clock = clock
        self._new_id = id_factory

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def plan_create(self, meeting: Meeting) -> MeetingPlan:
        created = meeting.replace(time=self._with_last(meeting.time), version=0)
        return MeetingPlan(
            action=MeetingAction.ALL,
            requested_action=MeetingAction.ALL,
            writes=(MeetingWrite(created, create=True),),
            venue_updates=(created.venue,),
            notifications=(
                Notification(
                    meeting_id=created.id,
                    people=created.people,
                    kind=ChangeKind.CREATED,
                    scope=MeetingAction.ALL,
                    timeslot=created.time,
                ),
            ),
            search_resync=(created.id,),
        )

    def plan_edit(
        self,
        parent: Meeting,
        original_start: datetime,
        updated: Meeting,
        action: MeetingAction,
    ) -> MeetingPlan:
        """
        Plan applying `updated` to the occurrence of `parent` that starts at
        `original_start`.
        """
        original_start = as_utc(original_start)
        action = MeetingAction(action)
        effective = self.resolve_action(parent, original_start, action)
        logger.debug(
            "Planning %s edit (requested %s) of meeting %s at %s",
            effective.value,
            action.value,
            parent.id,
            original_start.isoformat(),
        )

        if effective is MeetingAction.THIS:
            return self._edit_this(parent, original_start, updated, action)
        if effective is MeetingAction.FUTURE:
            return self._future(parent, original_start, updated, action)
        return self._edit_all(parent, original_start, updated, action)

    def plan_delete(
        self,
        parent: Meeting,
        occurrence_start: datetime,
        action: MeetingAction,
    ) -> MeetingPlan:
        """
        Plan deleting the occurrence of `parent` that starts at
        `occurrence_start` (and, depending on `action`, others).
        """
        occurrence_start = as_utc(occurrence_start)
        action = MeetingAction(action)
        effective = self.resolve_action(parent, occurrence_start, action)
        logger.debug(
            "Planning %s delete (requested %s) of meeting %s at %s",
            effective.value,
            action.value,
            parent.id,
            occurrence_start.isoformat(),
        )

        if effective is MeetingAction.THIS:
            return self._delete_this(parent, occurrence_start, action)
        if effective is MeetingAction.FUTURE:
            return self._future(parent, occurrence_start, None, action)
        return self._delete_all(parent, action)

    def resolve_action(
        self,
        parent: Meeting,
        occurrence_start: datetime,
        action: MeetingAction,
    ) -> MeetingAction:
        """
        Validate the occurrence and apply the collapsing rules that depend
        only on the snapshot (the ones that depend on the outcome of an
        exclusion/truncation are applied while planning).
        """
        occurrence_start = as_utc(occurrence_start)
        if not recurrence.is_occurrence(
            parent.time, occurrence_start, zone=self.zone, limit=self.limit
        ):
            raise ValidationError(
                f"{occurrence_start.isoformat()} is not an occurrence of meeting "
                f"{parent.id}."
            )
        if not parent.time.is_recurring:
            return MeetingAction.ALL
        if action is MeetingAction.FUTURE and occurrence_start == self._first(parent.time):
            return MeetingAction.ALL
        return MeetingAction(action)

    # ------------------------------------------------------------------
    # "all"
    # ------------------------------------------------------------------

    def _edit_all(
        self,
        parent: Meeting,
        original_start: datetime,
        updated: Meeting,
        requested: MeetingAction,
    ) -> MeetingPlan:
        now = self._clock()
        if parent.time.is_recurring and updated.time.is_recurring:
            # Move the whole series by the same amount the occurrence moved.
            start_delta = updated.time.start - original_start
            end_delta = updated.time.end - (original_start + parent.time.duration)
            time = Timeslot(
                start=parent.time.start + start_delta,
                end=parent.time.end + end_delta,
                id=parent.time.id,
                recur=updated.time.recur,
                exdates=parent.time.exdates,
            )
        else:
            time = updated.time.replace(id=parent.time.id)
        time = self._with_last(time)

        meeting = parent.replace(
            status=updated.status,
            match=dataclasses.replace(
                updated.match,
                id=parent.match.id,
                created=parent.match.created,
                updated=now,
            ),
            venue=dataclasses.replace(parent.venue, url=updated.venue.url, updated=now),
            time=time,
            notes=updated.notes,
            updated=now,
        )
        kind = ChangeKind.RESCHEDULED if time != parent.time else ChangeKind.UPDATED
        return MeetingPlan(
            action=MeetingAction.ALL,
            requested_action=requested,
            writes=(MeetingWrite(meeting, expected_version=parent.version),),
            venue_updates=(meeting.venue,),
            notifications=(
                Notification(
                    meeting_id=meeting.id,
                    people=meeting.people,
                    kind=kind,
                    scope=MeetingAction.ALL,
                    timeslot=meeting.time,
                    previous=parent.time,
                ),
            ),
            search_resync=(meeting.id,),
        )

    def _delete_all(self, parent: Meeting, requested: MeetingAction) -> MeetingPlan:
        return MeetingPlan(
            action=MeetingAction.ALL,
            requested_action=requested,
            deletes=(MeetingDelete(parent.id, expected_version=parent.version),),
            venue_removals=(parent.venue.id,),
            notifications=(
                Notification(
                    meeting_id=parent.id,
                    people=parent.people,
                    kind=ChangeKind.CANCELLED,
                    scope=MeetingAction.ALL,
                    timeslot=parent.time,
                ),
            ),
            search_removals=(parent.id,),
        )

    # ------------------------------------------------------------------
    # "this"
    # ------------------------------------------------------------------

    def _edit_this(
        self,
        parent: Meeting,
        original_start: datetime,
        updated: Meeting,
        requested: MeetingAction,
    ) -> MeetingPlan:
        remaining = recurrence.exclude_date(
            parent.time, original_start, zone=self.zone, limit=self.limit
        )
        if self._first(remaining) is None:
            single = updated.replace(time=Timeslot(start=updated.time.start, end=updated.time.end))
            return self._edit_all(parent, original_start, single, requested)

        now = self._clock()
        new_parent = parent.replace(
            time=remaining,
            venue=dataclasses.replace(parent.venue, updated=now),
            updated=now,
        )
        child = Meeting(
            id=self._new_id(),
            status=updated.status,
            creator=parent.creator,
            match=dataclasses.replace(updated.match, updated=now),
            venue=Venue(url=updated.venue.url, id=self._new_id(), created=now, updated=now),
            time=Timeslot(start=updated.time.start, end=updated.time.end),
            notes=updated.notes,
            parent_id=parent.id,
            created=now,
            updated=now,
        )
        return MeetingPlan(
            action=MeetingAction.THIS,
            requested_action=requested,
            writes=(
                MeetingWrite(new_parent, expected_version=parent.version),
                MeetingWrite(child, create=True),
            ),
            venue_updates=(new_parent.venue, child.venue),
            notifications=(
                Notification(
                    meeting_id=child.id,
                    people=child.people,
                    kind=ChangeKind.RESCHEDULED,
                    scope=MeetingAction.THIS,
                    timeslot=child.time,
                    previous=recurrence.occurrence_at(parent.time, original_start),
                ),
            ),
            search_resync=(new_parent.id, child.id),
        )

    def _delete_this(
        self,
        parent: Meeting,
        occurrence_start: datetime,
        requested: MeetingAction,
    ) -> MeetingPlan:
        remaining = recurrence.exclude_date(
            parent.time, occurrence_start, zone=self.zone, limit=self.limit
        )
        if self._first(remaining) is None:
            return self._delete_all(parent, requested)

        now = self._clock()
        new_parent = parent.replace(
            time=remaining,
            venue=dataclasses.replace(parent.venue, updated=now),
            updated=now,
        )
        return MeetingPlan(
            action=MeetingAction.THIS,
            requested_action=requested,
            writes=(MeetingWrite(new_parent, expected_version=parent.version),),
            venue_updates=(new_parent.venue,),
            notifications=(
                Notification(
                    meeting_id=parent.id,
                    people=parent.people,
                    kind=ChangeKind.CANCELLED,
                    scope=MeetingAction.THIS,
                    timeslot=recurrence.occurrence_at(parent.time, occurrence_start),
                ),
            ),
            search_resync=(new_parent.id,),
        )

    # ------------------------------------------------------------------
    # "future"
    # ------------------------------------------------------------------

    def _future(
        self,
        parent: Meeting,
        occurrence_start: datetime,
        updated: Meeting | None,
        requested: MeetingAction,
    ) -> MeetingPlan:
        now = self._clock()
        boundary = occurrence_start.astimezone(self.zone).date()
        midnight = recurrence.local_midnight(boundary, self.zone)
        truncated = self._with_last(
            parent.time.replace(
                recur=recurrence.truncate_at(
                    parent.time.recur,
                    boundary,
                    start=parent.time.start,
                    zone=self.zone,
                    limit=self.limit,
                ),
                exdates=tuple(d for d in parent.time.exdates if d < midnight),
            )
        )
        occurrence = recurrence.occurrence_at(parent.time, occurrence_start)

        writes: list[MeetingWrite] = []
        deletes: list[MeetingDelete] = []
        venue_updates: list[Venue] = []
        venue_removals: list[str] = []
        search_resync: list[str] = []
        search_removals: list[str] = []

        if self._first(truncated) is None:
            deletes.append(MeetingDelete(parent.id, expected_version=parent.version))
            venue_removals.append(parent.venue.id)
            search_removals.append(parent.id)
        else:
            head = parent.replace(
                time=truncated,
                venue=dataclasses.replace(parent.venue, updated=now),
                updated=now,
            )
            writes.append(MeetingWrite(head, expected_version=parent.version))
            venue_updates.append(head.venue)
            search_resync.append(head.id)

        if updated is None:
            notification = Notification(
                meeting_id=parent.id,
                people=parent.people,
                kind=ChangeKind.CANCELLED,
                scope=MeetingAction.FUTURE,
                timeslot=occurrence,
            )
        else:
            successor = self._successor(parent, occurrence_start, updated, now)
            writes.append(MeetingWrite(successor, create=True))
            venue_updates.append(successor.venue)
            search_resync.append(successor.id)
            notification = Notification(
                meeting_id=successor.id,
                people=successor.people,
                kind=ChangeKind.RESCHEDULED,
                scope=MeetingAction.FUTURE,
                timeslot=successor.time,
                previous=occurrence,
            )

        return MeetingPlan(
            action=MeetingAction.FUTURE,
            requested_action=requested,
            writes=tuple(writes),
            deletes=tuple(deletes),
            venue_updates=tuple(venue_updates),
            venue_removals=tuple(venue_removals),
            notifications=(notification,),
            search_resync=tuple(search_resync),
            search_removals=tuple(search_removals),
        )

    def _successor(
        self,
        parent: Meeting,
        occurrence_start: datetime,
        updated: Meeting,
        now: datetime,
    ) -> Meeting:
        """
        New series carrying the remainder of `parent` under the new terms,
        starting at the edited occurrence with no exclusions.
        """
        recur = None
        if updated.time.is_recurring:
            recur = updated.time.recur
            if recur == parent.time.recur:
                recur = recurrence.remaining_rule(
                    parent.time, occurrence_start, zone=self.zone, limit=self.limit
                )
        time = self._with_last(
            Timeslot(start=updated.time.start, end=updated.time.end, recur=recur)
        )
        return Meeting(
            id=self._new_id(),
            status=updated.status,
            creator=parent.creator,
            match=dataclasses.replace(updated.match, updated=now),
            venue=Venue(url=updated.venue.url, id=self._new_id(), created=now, updated=now),
            time=time,
            notes=updated.notes,
            created=now,
            updated=now,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _first(self, timeslot: Timeslot) -> datetime | None:
        return recurrence.first_occurrence(timeslot, zone=self.zone, limit=self.limit)

    def _with_last(self, timeslot: Timeslot) -> Timeslot:
        return recurrence.with_last(timeslot, zone=self.zone, limit=self.limit)
