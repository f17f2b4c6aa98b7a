"""APScheduler setup for periodic background refresh."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from chatmail.agent.ingestion import IngestionCoordinator
    from chatmail.agent.session import MailSession

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "chatmail-auto-refresh"


async def _auto_refresh(coordinator: IngestionCoordinator, session: MailSession) -> None:
    """One scheduled tick.  Does nothing while auto-refresh is off or signed out."""
    if not session.auto_refresh or not session.authenticated:
        logger.debug("Auto-refresh tick skipped")
        return
    refreshed = await coordinator.refresh()
    if not refreshed:
        logger.debug("Auto-refresh tick did not refresh (busy or failed)")


def create_refresh_scheduler(
    coordinator: IngestionCoordinator,
    session: MailSession,
    interval_seconds: int = 60,
) -> AsyncIOScheduler:
    """Return an AsyncIOScheduler that calls coordinator.refresh() every interval.

    The job checks session.auto_refresh on each tick, so toggling it takes
    effect without rescheduling.  The caller is responsible for calling
    scheduler.start() and scheduler.shutdown().
    """
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _auto_refresh,
        "interval",
        seconds=interval_seconds,
        args=(coordinator, session),
        id=REFRESH_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    logger.info("Auto-refresh scheduled every %ds", interval_seconds)
    return scheduler
