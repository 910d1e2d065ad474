# app/services/availability_source.py
from __future__ import annotations

import logging
from datetime import tzinfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.domain.availability import Availability
from app.models.user import UserRecord
from app.services.serializers import availability_from_wire, availability_to_wire

logger = logging.getLogger(__name__)


class SqlAvailabilitySource:
    """
    Reads (and replaces) a person's availability from the `users` table.

    Lookups are cached on the instance, which lives for a single request;
    there is no process-wide cache.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._cache: dict[str, Availability] = {}

    async def get_user(self, person_id: str) -> UserRecord:
        record = await self.db.get(UserRecord, person_id)
        if record is None:
            raise NotFoundError(f"Person ({person_id}) does not exist.")
        return record

    async def get_availability(self, person_id: str) -> Availability:
        if person_id not in self._cache:
            record = await self.get_user(person_id)
            self._cache[person_id] = availability_from_wire(record.availability or [])
        return self._cache[person_id]

    async def save_user(
        self,
        person_id: str,
        *,
        name: str,
        email: str,
        availability: Availability,
        zone: tzinfo | None = None,
    ) -> UserRecord:
        """
        Create or replace a user profile; availability is replaced wholesale
        after merging overlapping slots.
        """
        resolved = availability.resolve_overlaps(zone=zone)
        record = await self.db.get(UserRecord, person_id)
        if record is None:
            record = UserRecord(id=person_id)
            self.db.add(record)

        record.name = name
        record.email = email
        record.availability = availability_to_wire(resolved)

        await self.db.commit()
        await self.db.refresh(record)
        self._cache[person_id] = resolved
        logger.info("Saved availability for %s (%d slot(s))", person_id, len(resolved))
        return record
