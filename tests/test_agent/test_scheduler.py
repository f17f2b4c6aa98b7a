"""Tests for create_refresh_scheduler and the auto-refresh tick."""

from unittest.mock import AsyncMock, MagicMock

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chatmail.agent.scheduler import REFRESH_JOB_ID, _auto_refresh, create_refresh_scheduler
from chatmail.agent.session import MailSession
from chatmail.mail.types import UserProfile


def make_coordinator() -> MagicMock:
    coordinator = MagicMock()
    coordinator.refresh = AsyncMock(return_value=True)
    return coordinator


class TestCreateRefreshScheduler:
    def test_returns_async_io_scheduler(self) -> None:
        scheduler = create_refresh_scheduler(make_coordinator(), MailSession())
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_interval_job_registered(self) -> None:
        scheduler = create_refresh_scheduler(make_coordinator(), MailSession(), 45)
        jobs = scheduler.get_jobs()
        assert len(jobs) == 1
        job = jobs[0]
        assert job.id == REFRESH_JOB_ID
        assert job.trigger.interval.total_seconds() == 45
        assert job.max_instances == 1
        assert job.coalesce is True

    def test_default_interval_is_sixty_seconds(self) -> None:
        scheduler = create_refresh_scheduler(make_coordinator(), MailSession())
        assert scheduler.get_jobs()[0].trigger.interval.total_seconds() == 60


class TestAutoRefreshTick:
    async def test_refreshes_when_enabled(self) -> None:
        coordinator = make_coordinator()
        session = MailSession.start(UserProfile(email="me@example.com"), auto_refresh=True)
        await _auto_refresh(coordinator, session)
        coordinator.refresh.assert_awaited_once()

    async def test_skips_when_disabled(self) -> None:
        coordinator = make_coordinator()
        session = MailSession.start(UserProfile(email="me@example.com"), auto_refresh=False)
        await _auto_refresh(coordinator, session)
        coordinator.refresh.assert_not_awaited()

    async def test_skips_when_signed_out(self) -> None:
        coordinator = make_coordinator()
        session = MailSession(auto_refresh=True)
        await _auto_refresh(coordinator, session)
        coordinator.refresh.assert_not_awaited()

    async def test_toggle_takes_effect_without_rescheduling(self) -> None:
        coordinator = make_coordinator()
        session = MailSession.start(UserProfile(email="me@example.com"))
        await _auto_refresh(coordinator, session)
        session.toggle_auto_refresh()
        await _auto_refresh(coordinator, session)
        assert coordinator.refresh.await_count == 1
