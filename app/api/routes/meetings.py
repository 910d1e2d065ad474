# app/api/routes/meetings.py
import csv
import io
import logging
from datetime import datetime
from http import HTTPStatus

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.scheduling import get_series_editor
from app.api.errors import to_http_exception
from app.core.errors import NotFoundError, SchedulingError, ValidationError
from app.db.session import get_db
from app.domain import recurrence
from app.domain.meeting import Meeting
from app.schemas.meeting import (
    MeetingDeleteRequest,
    MeetingSchema,
    MeetingUpdateRequest,
    PlanResultSchema,
)
from app.schemas.timeslot import TimeslotSchema
from app.services.availability_source import SqlAvailabilitySource
from app.services.email_notifier import send_meeting_change_email
from app.services.meeting_series_editor import MeetingSeriesEditor
from app.services.meeting_store import SqlMeetingStore
from app.services.plan_executor import PlanResult, execute_plan
from app.services.search_index import get_search_index
from app.services.serializers import (
    meeting_from_wire,
    meeting_to_csv_row,
    meeting_to_wire,
    timeslot_to_wire,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetings", tags=["Meetings"])


def _meeting_schema(meeting: Meeting) -> MeetingSchema:
    return MeetingSchema.model_validate({**meeting_to_wire(meeting), "version": meeting.version})


def _plan_result_schema(result: PlanResult) -> PlanResultSchema:
    return PlanResultSchema(
        action=result.action,
        requested_action=result.requested_action,
        created=[_meeting_schema(m) for m in result.created],
        updated=[_meeting_schema(m) for m in result.updated],
        deleted=result.deleted,
        search_synced=result.search_synced,
        notified=result.notified,
    )


def _to_meeting(payload: MeetingSchema) -> Meeting:
    return meeting_from_wire(payload.model_dump(mode="json", by_alias=True))


async def _check_availability(
    meeting: Meeting,
    source: SqlAvailabilitySource,
    editor: MeetingSeriesEditor,
) -> None:
    """
    Every participant must be available for every occurrence of the
    meeting; the creator being unavailable is only logged.
    """
    for person in meeting.people:
        try:
            availability = await source.get_availability(person.id)
        except NotFoundError as exc:
            raise ValidationError(str(exc)) from exc

        if availability.contains(meeting.time, zone=editor.zone):
            continue
        if person.id == meeting.creator.id:
            logger.warning(
                "Creator %s is not available %s; scheduling anyway",
                person.id,
                meeting.time,
            )
            continue
        raise ValidationError(f"{person.name or person.id} is not available {meeting.time}.")


@router.post(
    "",
    response_model=MeetingSchema,
    status_code=HTTPStatus.CREATED,
    summary="Schedule a new (possibly recurring) meeting",
    description=(
        "Create a meeting for a match.\n\n"
        "Every participant's availability must contain every occurrence of the "
        "meeting's timeslot (unbounded series are checked over the configured "
        "horizon). The server computes `time.last`, stores the document, resyncs "
        "the search index and notifies participants."
    ),
    responses={
        400: {"description": "Malformed timeslot/rule or a participant is unavailable."},
    },
)
async def create_meeting(
    payload: MeetingSchema,
    db: AsyncSession = Depends(get_db),
    editor: MeetingSeriesEditor = Depends(get_series_editor),
) -> MeetingSchema:
    try:
        meeting = _to_meeting(payload)
        await _check_availability(meeting, SqlAvailabilitySource(db), editor)
        plan = editor.plan_create(meeting)
        result = await execute_plan(
            plan,
            SqlMeetingStore(db),
            search_index=get_search_index(),
            notify=send_meeting_change_email,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _meeting_schema(result.created[0])


@router.get(
    "/{meeting_id}",
    response_model=MeetingSchema,
    summary="Get a meeting",
    responses={404: {"description": "Meeting not found."}},
)
async def get_meeting(
    meeting_id: str = Path(..., description="Meeting ID."),
    db: AsyncSession = Depends(get_db),
) -> MeetingSchema:
    try:
        meeting = await SqlMeetingStore(db).get(meeting_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return _meeting_schema(meeting)


@router.get(
    "/{meeting_id}/occurrences",
    response_model=list[TimeslotSchema],
    summary="Expand a meeting into concrete occurrences",
    description=(
        "Return the concrete (non-recurring) occurrences of the meeting that "
        "overlap `[start, end)`, exclusions applied."
    ),
    responses={
        400: {"description": "Invalid window or the expansion exceeds the safety cap."},
        404: {"description": "Meeting not found."},
    },
)
async def list_occurrences(
    meeting_id: str = Path(..., description="Meeting ID."),
    start: datetime = Query(..., description="Window start (inclusive)."),
    end: datetime = Query(..., description="Window end (exclusive)."),
    db: AsyncSession = Depends(get_db),
    editor: MeetingSeriesEditor = Depends(get_series_editor),
) -> list[TimeslotSchema]:
    try:
        meeting = await SqlMeetingStore(db).get(meeting_id)
        expanded = recurrence.occurrences(
            meeting.time, start, end, zone=editor.zone, limit=editor.limit
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return [TimeslotSchema.model_validate(timeslot_to_wire(t)) for t in expanded]


@router.get(
    "/{meeting_id}/export",
    summary="Export a meeting and its detached occurrences as CSV",
    response_class=Response,
    responses={
        200: {"content": {"text/csv": {}}},
        404: {"description": "Meeting not found."},
    },
)
async def export_meeting(
    meeting_id: str = Path(..., description="Meeting ID."),
    db: AsyncSession = Depends(get_db),
) -> Response:
    store = SqlMeetingStore(db)
    try:
        meeting = await store.get(meeting_id)
        children = await store.list_children(meeting_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    rows = [meeting_to_csv_row(m) for m in [meeting, *children]]
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()))
    writer.writeheader()
    writer.writerows(rows)
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="meeting-{meeting_id}.csv"'},
    )


@router.put(
    "/{meeting_id}",
    response_model=PlanResultSchema,
    summary="Edit one, future or all occurrences of a meeting",
    description=(
        "Apply `updating` to the occurrence of the stored meeting that starts at "
        "`original_start`.\n\n"
        "- `this`: exclude that occurrence from the series and create a detached "
        "override meeting.\n"
        "- `future`: end the series before that occurrence's day and start a new "
        "series from the edited occurrence.\n"
        "- `all`: replace the meeting in place.\n\n"
        "Non-recurring meetings and `future` edits of the first occurrence are "
        "always applied as `all`; the response reports the action actually used."
    ),
    responses={
        400: {"description": "`original_start` is not an occurrence, or the edit is invalid."},
        404: {"description": "Meeting not found."},
        409: {"description": "The meeting changed concurrently; retry."},
    },
)
async def update_meeting(
    payload: MeetingUpdateRequest,
    meeting_id: str = Path(..., description="Meeting ID."),
    db: AsyncSession = Depends(get_db),
    editor: MeetingSeriesEditor = Depends(get_series_editor),
) -> PlanResultSchema:
    store = SqlMeetingStore(db)
    try:
        parent = await store.get(meeting_id)
        updated = _to_meeting(payload.updating)
        plan = editor.plan_edit(parent, payload.original_start, updated, payload.action)
        result = await execute_plan(
            plan,
            store,
            search_index=get_search_index(),
            notify=send_meeting_change_email,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _plan_result_schema(result)


@router.delete(
    "/{meeting_id}",
    response_model=PlanResultSchema,
    summary="Delete one, future or all occurrences of a meeting",
    description=(
        "Delete the occurrence of the stored meeting given by `deleting.time.from` "
        "(defaults to its first occurrence) and, depending on `action` "
        "(default `future`), the following ones or the whole series."
    ),
    responses={
        400: {"description": "The occurrence is not generated by the meeting."},
        404: {"description": "Meeting not found."},
        409: {"description": "The meeting changed concurrently; retry."},
    },
)
async def delete_meeting(
    meeting_id: str = Path(..., description="Meeting ID."),
    payload: MeetingDeleteRequest | None = Body(default=None),
    db: AsyncSession = Depends(get_db),
    editor: MeetingSeriesEditor = Depends(get_series_editor),
) -> PlanResultSchema:
    payload = payload or MeetingDeleteRequest()
    store = SqlMeetingStore(db)
    try:
        parent = await store.get(meeting_id)
        if payload.deleting is not None:
            occurrence_start = payload.deleting.time.from_
        else:
            occurrence_start = (
                recurrence.first_occurrence(parent.time, zone=editor.zone, limit=editor.limit)
                or parent.time.start
            )
        plan = editor.plan_delete(parent, occurrence_start, payload.action)
        result = await execute_plan(
            plan,
            store,
            search_index=get_search_index(),
            notify=send_meeting_change_email,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _plan_result_schema(result)
