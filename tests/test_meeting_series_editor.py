# tests/test_meeting_series_editor.py
import itertools
from datetime import datetime, timezone

import pytest

from app.core.errors import ValidationError
from app.domain.meeting import Match, Meeting, MeetingAction, Person, Venue
from app.domain.plan import ChangeKind
from app.domain.timeslot import Timeslot
from app.services.meeting_series_editor import MeetingSeriesEditor

UTC = timezone.utc
NOW = datetime(2024, 1, 1, 12, tzinfo=UTC)


def _dt(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def _editor() -> MeetingSeriesEditor:
    ids = (f"new-{n}" for n in itertools.count(1))
    return MeetingSeriesEditor(zone=UTC, clock=lambda: NOW, id_factory=lambda: next(ids))


def _parent(recur: str | None = "FREQ=WEEKLY", **time_fields) -> Meeting:
    alice = Person(id="alice", name="Alice", email="alice@example.com")
    bob = Person(id="bob", name="Bob", email="bob@example.com")
    time = Timeslot(
        start=_dt(2024, 1, 2, 15),
        end=_dt(2024, 1, 2, 16),
        recur=recur,
        id="parent-time",
        **time_fields,
    )
    return Meeting(
        id="parent",
        match=Match(org="default", id="match-1", people=(alice, bob), creator=alice),
        time=time,
        creator=alice,
        venue=Venue(url="https://meet.example.com/parent", id="venue-parent"),
        notes="Weekly",
        version=4,
    )


def _edited(meeting: Meeting, start: datetime, end: datetime, recur: str | None = None, **kw) -> Meeting:
    return meeting.replace(time=Timeslot(start=start, end=end, recur=recur), **kw)


# ---------------------------------------------------------------------------
# this
# ---------------------------------------------------------------------------


def test_edit_this_creates_override_and_excludes_original_start():
    parent = _parent()
    updated = _edited(parent, _dt(2024, 1, 16, 16), _dt(2024, 1, 16, 17), notes="Moved")

    plan = _editor().plan_edit(parent, _dt(2024, 1, 16, 15), updated, MeetingAction.THIS)

    assert plan.action is MeetingAction.THIS
    assert len(plan.writes) == 2
    new_parent, child = (w.meeting for w in plan.writes)

    assert plan.writes[0].expected_version == 4
    assert plan.writes[0].create is False
    assert new_parent.id == "parent"
    assert new_parent.time.exdates == (_dt(2024, 1, 16, 15),)
    assert new_parent.time.recur == "RRULE:FREQ=WEEKLY"

    assert plan.writes[1].create is True
    assert child.parent_id == "parent"
    assert child.time.start == _dt(2024, 1, 16, 16)
    assert child.time.end == _dt(2024, 1, 16, 17)
    assert child.time.is_recurring is False
    assert child.notes == "Moved"
    assert child.venue.id != parent.venue.id
    assert child.venue.url == parent.venue.url

    assert plan.search_resync == ("parent", child.id)
    (notification,) = plan.notifications
    assert notification.kind is ChangeKind.RESCHEDULED
    assert notification.scope is MeetingAction.THIS
    assert notification.previous.start == _dt(2024, 1, 16, 15)
    assert {p.id for p in notification.people} == {"alice", "bob"}


def test_delete_this_only_excludes_the_occurrence():
    parent = _parent()
    plan = _editor().plan_delete(parent, _dt(2024, 1, 9, 15), MeetingAction.THIS)

    assert plan.action is MeetingAction.THIS
    assert plan.deletes == ()
    (write,) = plan.writes
    assert write.meeting.time.exdates == (_dt(2024, 1, 9, 15),)
    assert plan.notifications[0].kind is ChangeKind.CANCELLED
    assert plan.notifications[0].timeslot.start == _dt(2024, 1, 9, 15)


def test_delete_this_on_only_remaining_occurrence_removes_document():
    parent = _parent("FREQ=WEEKLY;COUNT=2", exdates=(_dt(2024, 1, 2, 15),))
    plan = _editor().plan_delete(parent, _dt(2024, 1, 9, 15), MeetingAction.THIS)

    assert plan.action is MeetingAction.ALL
    assert plan.requested_action is MeetingAction.THIS
    assert plan.writes == ()
    assert plan.deleted_ids == ("parent",)
    assert plan.search_removals == ("parent",)
    assert plan.venue_removals == ("venue-parent",)


def test_edit_this_on_only_remaining_occurrence_becomes_single_meeting():
    parent = _parent("FREQ=WEEKLY;COUNT=2", exdates=(_dt(2024, 1, 2, 15),))
    updated = _edited(parent, _dt(2024, 1, 9, 16), _dt(2024, 1, 9, 17))

    plan = _editor().plan_edit(parent, _dt(2024, 1, 9, 15), updated, MeetingAction.THIS)

    assert plan.action is MeetingAction.ALL
    (write,) = plan.writes
    assert write.meeting.id == "parent"
    assert write.meeting.time.is_recurring is False
    assert write.meeting.time.start == _dt(2024, 1, 9, 16)
    assert write.meeting.parent_id is None


# ---------------------------------------------------------------------------
# future
# ---------------------------------------------------------------------------


def test_delete_future_truncates_parent_rule_without_successor():
    parent = _parent()
    plan = _editor().plan_delete(parent, _dt(2024, 1, 16, 15), MeetingAction.FUTURE)

    assert plan.action is MeetingAction.FUTURE
    (write,) = plan.writes
    assert write.create is False
    assert write.meeting.time.recur == "RRULE:FREQ=WEEKLY;UNTIL=20240116T000000Z"
    assert write.meeting.time.last == _dt(2024, 1, 9, 16)
    assert plan.created == ()
    assert plan.notifications[0].kind is ChangeKind.CANCELLED
    assert plan.notifications[0].scope is MeetingAction.FUTURE


def test_delete_future_drops_exdates_after_boundary():
    parent = _parent(exdates=(_dt(2024, 1, 9, 15), _dt(2024, 1, 23, 15)))
    plan = _editor().plan_delete(parent, _dt(2024, 1, 16, 15), MeetingAction.FUTURE)

    assert plan.writes[0].meeting.time.exdates == (_dt(2024, 1, 9, 15),)


def test_edit_future_starts_successor_series():
    parent = _parent("FREQ=WEEKLY;COUNT=6")
    updated = _edited(parent, _dt(2024, 1, 16, 16), _dt(2024, 1, 16, 17), recur="FREQ=WEEKLY;COUNT=6")

    plan = _editor().plan_edit(parent, _dt(2024, 1, 16, 15), updated, MeetingAction.FUTURE)

    assert plan.action is MeetingAction.FUTURE
    head, successor = (w.meeting for w in plan.writes)
    assert head.time.recur == "RRULE:FREQ=WEEKLY;UNTIL=20240116T000000Z"
    assert successor.id != parent.id
    assert successor.parent_id is None
    assert successor.time.start == _dt(2024, 1, 16, 16)
    # Two occurrences happened before the boundary, so four remain.
    assert successor.time.recur == "RRULE:FREQ=WEEKLY;COUNT=4"
    assert successor.time.last == _dt(2024, 2, 6, 17)
    assert successor.time.exdates == ()
    assert plan.notifications[0].meeting_id == successor.id


def test_future_that_leaves_nothing_before_boundary_deletes_parent():
    # Every earlier occurrence falls on the boundary day itself.
    parent = _parent("FREQ=HOURLY;COUNT=4")
    updated = _edited(parent, _dt(2024, 1, 2, 16), _dt(2024, 1, 2, 17), recur="FREQ=HOURLY")

    plan = _editor().plan_edit(parent, _dt(2024, 1, 2, 16), updated, MeetingAction.FUTURE)

    assert plan.action is MeetingAction.FUTURE
    assert plan.deleted_ids == ("parent",)
    assert plan.deletes[0].expected_version == 4
    assert [m.id for m in plan.created] == ["new-1"]
    assert plan.created[0].time.recur == "RRULE:FREQ=HOURLY"
    assert plan.search_removals == ("parent",)


@pytest.mark.parametrize("edit", [True, False])
def test_future_on_first_occurrence_collapses_to_all(edit):
    parent = _parent("FREQ=WEEKLY;COUNT=4")
    editor = _editor()
    if edit:
        updated = _edited(parent, _dt(2024, 1, 2, 16), _dt(2024, 1, 2, 17), recur="FREQ=WEEKLY;COUNT=4")
        plan = editor.plan_edit(parent, _dt(2024, 1, 2, 15), updated, MeetingAction.FUTURE)
        (write,) = plan.writes
        assert write.meeting.id == "parent"
        assert write.meeting.time.start == _dt(2024, 1, 2, 16)
    else:
        plan = editor.plan_delete(parent, _dt(2024, 1, 2, 15), MeetingAction.FUTURE)
        assert plan.deleted_ids == ("parent",)

    assert plan.action is MeetingAction.ALL
    assert plan.requested_action is MeetingAction.FUTURE


# ---------------------------------------------------------------------------
# all
# ---------------------------------------------------------------------------


def test_edit_all_shifts_series_by_occurrence_delta():
    parent = _parent(exdates=(_dt(2024, 1, 9, 15),))
    updated = _edited(
        parent, _dt(2024, 1, 16, 17), _dt(2024, 1, 16, 18), recur="FREQ=WEEKLY", notes="Later"
    )

    plan = _editor().plan_edit(parent, _dt(2024, 1, 16, 15), updated, MeetingAction.ALL)

    (write,) = plan.writes
    meeting = write.meeting
    assert write.expected_version == 4
    assert meeting.id == "parent"
    assert meeting.time.id == "parent-time"
    assert meeting.time.start == _dt(2024, 1, 2, 17)
    assert meeting.time.end == _dt(2024, 1, 2, 18)
    # Exclusions stay keyed on the old instants.
    assert meeting.time.exdates == (_dt(2024, 1, 9, 15),)
    assert meeting.notes == "Later"
    assert meeting.venue.id == "venue-parent"
    assert plan.notifications[0].kind is ChangeKind.RESCHEDULED


def test_edit_all_without_time_change_is_an_update():
    parent = _parent()
    updated = parent.replace(notes="New notes")
    plan = _editor().plan_edit(parent, _dt(2024, 1, 2, 15), updated, MeetingAction.ALL)

    assert plan.notifications[0].kind is ChangeKind.UPDATED
    assert plan.writes[0].meeting.notes == "New notes"
    assert plan.writes[0].meeting.updated == NOW


@pytest.mark.parametrize("action", list(MeetingAction))
def test_non_recurring_meeting_is_always_all(action):
    parent = _parent(recur=None)
    plan = _editor().plan_delete(parent, _dt(2024, 1, 2, 15), action)
    assert plan.action is MeetingAction.ALL
    assert plan.deleted_ids == ("parent",)


def test_delete_all_removes_document():
    parent = _parent()
    plan = _editor().plan_delete(parent, _dt(2024, 1, 9, 15), MeetingAction.ALL)
    assert plan.deleted_ids == ("parent",)
    assert plan.deletes[0].expected_version == 4
    assert plan.notifications[0].scope is MeetingAction.ALL


# ---------------------------------------------------------------------------
# validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("action", list(MeetingAction))
def test_occurrence_not_generated_by_rule_is_rejected(action):
    parent = _parent()
    updated = _edited(parent, _dt(2024, 1, 17, 16), _dt(2024, 1, 17, 17))
    editor = _editor()

    with pytest.raises(ValidationError):
        editor.plan_edit(parent, _dt(2024, 1, 17, 15), updated, action)
    with pytest.raises(ValidationError):
        editor.plan_delete(parent, _dt(2024, 1, 17, 15), action)


def test_excluded_occurrence_is_rejected():
    parent = _parent(exdates=(_dt(2024, 1, 16, 15),))
    with pytest.raises(ValidationError):
        _editor().plan_delete(parent, _dt(2024, 1, 16, 15), MeetingAction.THIS)


def test_plan_create_computes_last():
    parent = _parent("FREQ=DAILY;COUNT=3")
    plan = _editor().plan_create(parent)

    (write,) = plan.writes
    assert write.create is True
    assert write.meeting.time.last == _dt(2024, 1, 4, 16)
    assert plan.notifications[0].kind is ChangeKind.CREATED


@pytest.mark.parametrize("action", list(MeetingAction))
@pytest.mark.parametrize("editing", [True, False])
def test_venue_changes_are_carried_by_the_plan_documents(action, editing):
    parent = _parent()
    occurrence = _dt(2024, 1, 16, 15)
    editor = _editor()
    if editing:
        updated = _edited(
            parent,
            _dt(2024, 1, 16, 16),
            _dt(2024, 1, 16, 17),
            venue=Venue(url="https://meet.example.com/moved"),
        )
        plan = editor.plan_edit(parent, occurrence, updated, action)
    else:
        plan = editor.plan_delete(parent, occurrence, action)

    written = {w.meeting.venue.id: w.meeting.venue for w in plan.writes}
    for venue in plan.venue_updates:
        assert written[venue.id] == venue
    for venue_id in plan.venue_removals:
        assert venue_id not in written
