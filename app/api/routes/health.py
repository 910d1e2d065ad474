# app/api/routes/health.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import ValidationError
from app.db.session import get_db
from app.domain import recurrence

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class RecurrenceSettings(BaseModel):
    series_timezone: str = Field(..., examples=["America/New_York"])
    series_timezone_valid: bool = Field(
        ...,
        description="Whether SERIES_TIMEZONE names a known IANA time zone.",
    )
    max_occurrences: int = Field(..., examples=[10000])
    availability_horizon_days: int = Field(..., examples=[56])


class HealthResponse(BaseModel):
    """
    Response schema for the health check endpoint.

    `status` is "degraded" when the database cannot be queried or the series
    time zone is unusable; optional hooks (search index, e-mail) being
    unconfigured is reported but does not degrade the service.
    """

    status: str = Field(..., examples=["ok"])
    app_name: str = Field(..., examples=["Tutorbook Scheduling"])
    environment: str = Field(..., examples=["local"])
    database: str = Field(
        ...,
        description="'ok' if a trivial query succeeded, otherwise 'unavailable'.",
        examples=["ok"],
    )
    recurrence: RecurrenceSettings
    search_index_configured: bool
    email_configured: bool
    timestamp_utc: datetime = Field(..., examples=["2025-01-01T10:30:00Z"])


async def _database_status(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check could not query the database", exc_info=True)
        return "unavailable"
    return "ok"


def _zone_is_valid(name: str) -> bool:
    try:
        recurrence.resolve_zone(name)
    except ValidationError:
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check for the scheduling service",
    description=(
        "Verify that the scheduling backend can reach its database and that "
        "the recurrence engine is configured with a usable series time zone.\n\n"
        "Returns 200 when healthy and 503 with `status: degraded` otherwise."
    ),
    responses={503: {"description": "Database unreachable or series time zone invalid."}},
)
async def health_check(
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    settings = get_settings()

    database = await _database_status(db)
    zone_valid = _zone_is_valid(settings.SERIES_TIMEZONE)
    healthy = database == "ok" and zone_valid
    if not healthy:
        response.status_code = 503

    return HealthResponse(
        status="ok" if healthy else "degraded",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        database=database,
        recurrence=RecurrenceSettings(
            series_timezone=settings.SERIES_TIMEZONE,
            series_timezone_valid=zone_valid,
            max_occurrences=settings.MAX_OCCURRENCES,
            availability_horizon_days=settings.AVAILABILITY_HORIZON_DAYS,
        ),
        search_index_configured=bool(settings.SEARCH_APP_ID and settings.SEARCH_API_KEY),
        email_configured=bool(settings.SMTP_HOST and settings.SMTP_FROM_ADDRESS),
        timestamp_utc=datetime.now(tz=timezone.utc),
    )
