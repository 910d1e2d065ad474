# app/services/plan_executor.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from app.core.errors import SchedulingError
from app.domain.meeting import Meeting, MeetingAction
from app.domain.plan import MeetingPlan, Notification
from app.services.email_notifier import send_meeting_change_email
from app.services.meeting_store import MeetingStore
from app.services.search_index import SearchIndexClient, SearchIndexError
from app.services.serializers import meeting_to_search_hit

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    """
    What executing a MeetingPlan actually did.
    """

    action: MeetingAction
    requested_action: MeetingAction
    created: list[Meeting] = field(default_factory=list)
    updated: list[Meeting] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    search_synced: bool = False
    notified: int = 0


async def execute_plan(
    plan: MeetingPlan,
    store: MeetingStore,
    *,
    search_index: SearchIndexClient | None = None,
    notify: Callable[[Notification], bool] = send_meeting_change_email,
) -> PlanResult:
    """
    Apply a MeetingPlan.

    Order
    -----
    1. Document writes and deletes, in plan order, committed together. A
       store error rolls everything back and propagates (e.g. ConflictError
       when the parent changed since the snapshot the plan was built from).
    2. Search index resync of written documents and removal of deleted ones.
       Failures are logged; the committed writes stand.
    3. Notifications, sent off the event loop. Failures are logged.

    Venues are embedded in the meeting documents, so `venue_updates` and
    `venue_removals` are persisted by the writes and deletes of step 1 and
    are only logged here.
    """
    result = PlanResult(action=plan.action, requested_action=plan.requested_action)
    stored: dict[str, Meeting] = {}

    try:
        for write in plan.writes:
            meeting = await store.put(
                write.meeting,
                create=write.create,
                expected_version=write.expected_version,
            )
            stored[meeting.id] = meeting
            (result.created if write.create else result.updated).append(meeting)
        for delete in plan.deletes:
            await store.delete(delete.meeting_id, expected_version=delete.expected_version)
            result.deleted.append(delete.meeting_id)
        await store.commit()
    except SchedulingError:
        await store.rollback()
        raise

    logger.info(
        "Executed %s plan (requested %s): %d created, %d updated, %d deleted",
        plan.action.value,
        plan.requested_action.value,
        len(result.created),
        len(result.updated),
        len(result.deleted),
    )
    for venue in plan.venue_updates:
        logger.debug("Venue %s now at %s", venue.id, venue.url)
    for venue_id in plan.venue_removals:
        logger.debug("Venue %s released", venue_id)

    result.search_synced = await _sync_search(plan, stored, search_index)
    result.notified = await _notify(plan, notify)
    return result


async def _sync_search(
    plan: MeetingPlan,
    stored: dict[str, Meeting],
    search_index: SearchIndexClient | None,
) -> bool:
    if search_index is None:
        if plan.search_resync or plan.search_removals:
            logger.info("Search index not configured; skipping resync")
        return False

    try:
        for meeting_id in plan.search_resync:
            meeting = stored.get(meeting_id) or plan.written(meeting_id)
            if meeting is None:
                continue
            await search_index.save_object(meeting_to_search_hit(meeting))
        for meeting_id in plan.search_removals:
            await search_index.delete_object(meeting_id)
    except SearchIndexError:
        logger.warning("Search index resync failed", exc_info=True)
        return False
    return True


async def _notify(plan: MeetingPlan, notify: Callable[[Notification], bool]) -> int:
    sent = 0
    for notification in plan.notifications:
        if await asyncio.to_thread(notify, notification):
            sent += 1
        else:
            logger.info(
                "Notification for meeting %s (%s) not delivered",
                notification.meeting_id,
                notification.kind.value,
            )
    return sent
