# app/main.py
import logging

from fastapi import FastAPI

from app.api.routes import health, meetings, users
from app.core.config import get_settings
from app.db.session import IS_TEST, init_db, init_db_for_startup

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Application factory for the Tutorbook scheduling service.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Backend service that schedules tutoring meetings: stores one-off and\n"
            "recurring meetings, expands recurrence rules into occurrences, applies\n"
            "edits and deletes to one, future or all occurrences of a series, and\n"
            "validates meetings against participants' availability."
        ),
        version="0.1.0",
    )

    # Routers
    app.include_router(health.router)
    app.include_router(meetings.router)
    app.include_router(users.router)

    @app.on_event("startup")
    async def on_startup() -> None:  # pragma: no cover
        if IS_TEST:
            await init_db()
        else:
            await init_db_for_startup()
        logger.info(
            "%s started (env=%s, series time zone=%s)",
            settings.APP_NAME,
            settings.APP_ENV,
            settings.SERIES_TIMEZONE,
        )

    return app


app = create_app()
