# app/services/meeting_store.py
from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.domain.meeting import Meeting
from app.models.meeting import MeetingRecord

logger = logging.getLogger(__name__)


class MeetingStore(Protocol):
    """
    The narrow persistence interface plans are executed against.
    """

    async def get(self, meeting_id: str) -> Meeting: ...

    async def put(
        self,
        meeting: Meeting,
        *,
        create: bool = False,
        expected_version: int | None = None,
    ) -> Meeting: ...

    async def delete(self, meeting_id: str, *, expected_version: int | None = None) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class SqlMeetingStore:
    """
    MeetingStore backed by the `meetings` table.

    Writes are flushed but not committed; the plan executor commits once all
    writes of a plan succeeded so a plan is applied all-or-nothing.

    Optimistic concurrency
    ----------------------
    Updates and deletes carrying an `expected_version` only match the row if
    its version is unchanged since the snapshot was read; otherwise
    ConflictError is raised. Every successful update bumps the version.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, meeting_id: str) -> Meeting:
        result = await self.db.execute(
            select(MeetingRecord)
            .where(MeetingRecord.id == meeting_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(f"Meeting with id {meeting_id} not found.")
        return record.to_meeting()

    async def list_children(self, parent_id: str) -> list[Meeting]:
        """
        Detached overrides of a recurring parent, ordered by start.
        """
        result = await self.db.execute(
            select(MeetingRecord)
            .where(MeetingRecord.parent_id == parent_id)
            .order_by(MeetingRecord.time_from.asc())
        )
        return [record.to_meeting() for record in result.scalars().all()]

    async def put(
        self,
        meeting: Meeting,
        *,
        create: bool = False,
        expected_version: int | None = None,
    ) -> Meeting:
        columns = MeetingRecord.columns_for(meeting)

        if create:
            existing = await self.db.execute(
                select(MeetingRecord.id).where(MeetingRecord.id == meeting.id)
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(f"Meeting with id {meeting.id} already exists.")
            self.db.add(MeetingRecord(**columns, version=1))
            await self.db.flush()
            logger.info("Created meeting %s", meeting.id)
            return meeting.replace(version=1)

        stmt = update(MeetingRecord).where(MeetingRecord.id == meeting.id)
        if expected_version is not None:
            stmt = stmt.where(MeetingRecord.version == expected_version)
        values = {k: v for k, v in columns.items() if k not in ("id", "created_at")}
        stmt = stmt.values(**values, version=MeetingRecord.version + 1).execution_options(
            synchronize_session=False
        )

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            await self._raise_missing_or_conflict(meeting.id, expected_version)

        version = await self._version(meeting.id)
        logger.info("Updated meeting %s (version %s)", meeting.id, version)
        return meeting.replace(version=version)

    async def delete(self, meeting_id: str, *, expected_version: int | None = None) -> None:
        stmt = delete(MeetingRecord).where(MeetingRecord.id == meeting_id)
        if expected_version is not None:
            stmt = stmt.where(MeetingRecord.version == expected_version)

        result = await self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            await self._raise_missing_or_conflict(meeting_id, expected_version)
        logger.info("Deleted meeting %s", meeting_id)

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    async def _version(self, meeting_id: str) -> int | None:
        result = await self.db.execute(
            select(MeetingRecord.version).where(MeetingRecord.id == meeting_id)
        )
        return result.scalar_one_or_none()

    async def _raise_missing_or_conflict(
        self, meeting_id: str, expected_version: int | None
    ) -> None:
        current = await self._version(meeting_id)
        if current is None:
            raise NotFoundError(f"Meeting with id {meeting_id} not found.")
        raise ConflictError(
            f"Meeting {meeting_id} changed concurrently "
            f"(expected version {expected_version}, found {current})."
        )
