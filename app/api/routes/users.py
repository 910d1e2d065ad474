# app/api/routes/users.py
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.scheduling import get_series_editor
from app.api.errors import to_http_exception
from app.core.errors import SchedulingError
from app.db.session import get_db
from app.models.user import UserRecord
from app.schemas.timeslot import AvailabilityCheckRequest, AvailabilityCheckResponse, TimeslotSchema
from app.schemas.user import UserAvailabilityRead, UserAvailabilityUpdate
from app.services.availability_source import SqlAvailabilitySource
from app.services.meeting_series_editor import MeetingSeriesEditor
from app.services.serializers import (
    availability_from_wire,
    availability_to_url_param,
    timeslot_from_wire,
)

router = APIRouter(prefix="/users", tags=["Users"])


def _availability_read(record: UserRecord) -> UserAvailabilityRead:
    availability = availability_from_wire(record.availability or [])
    return UserAvailabilityRead(
        id=record.id,
        name=record.name or "",
        email=record.email or "",
        availability=[TimeslotSchema.model_validate(t) for t in record.availability or []],
        url_param=availability_to_url_param(availability),
    )


@router.get(
    "/{user_id}/availability",
    response_model=UserAvailabilityRead,
    summary="Get a person's availability",
    responses={404: {"description": "User not found."}},
)
async def get_user_availability(
    user_id: str = Path(..., description="User ID."),
    db: AsyncSession = Depends(get_db),
) -> UserAvailabilityRead:
    try:
        record = await SqlAvailabilitySource(db).get_user(user_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return _availability_read(record)


@router.put(
    "/{user_id}/availability",
    response_model=UserAvailabilityRead,
    summary="Replace a person's availability",
    description=(
        "Create the user if needed and replace their availability wholesale. "
        "Overlapping slots are merged before storing."
    ),
    responses={400: {"description": "A timeslot is malformed."}},
)
async def put_user_availability(
    payload: UserAvailabilityUpdate,
    user_id: str = Path(..., description="User ID."),
    db: AsyncSession = Depends(get_db),
    editor: MeetingSeriesEditor = Depends(get_series_editor),
) -> UserAvailabilityRead:
    try:
        availability = availability_from_wire(
            [t.model_dump(mode="json", by_alias=True) for t in payload.availability]
        )
        record = await SqlAvailabilitySource(db).save_user(
            user_id,
            name=payload.name,
            email=payload.email,
            availability=availability,
            zone=editor.zone,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return _availability_read(record)


@router.post(
    "/{user_id}/availability/check",
    response_model=AvailabilityCheckResponse,
    summary="Check whether a timeslot fits a person's availability",
    responses={
        400: {"description": "The timeslot is malformed."},
        404: {"description": "User not found."},
    },
)
async def check_user_availability(
    payload: AvailabilityCheckRequest,
    user_id: str = Path(..., description="User ID."),
    db: AsyncSession = Depends(get_db),
    editor: MeetingSeriesEditor = Depends(get_series_editor),
) -> AvailabilityCheckResponse:
    try:
        candidate = timeslot_from_wire(payload.timeslot.model_dump(mode="json", by_alias=True))
        availability = await SqlAvailabilitySource(db).get_availability(user_id)
        available = availability.contains(candidate, zone=editor.zone)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return AvailabilityCheckResponse(available=available)
