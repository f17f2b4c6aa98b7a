"""Long-running mailbox watcher — hydrates, refreshes, then keeps refreshing on a timer."""

import asyncio
import logging
import signal

import httpx
from dotenv import load_dotenv

from chatmail.agent.ingestion import IngestionCoordinator
from chatmail.agent.scheduler import create_refresh_scheduler
from chatmail.agent.session import MailSession
from chatmail.config import PipelineConfig
from chatmail.mail.gmail_client import AuthExpiredError, GmailAPIError, GmailClient, gmail_client
from chatmail.mail.types import UserProfile
from chatmail.processing.analyzer import MessageClassifier
from chatmail.processing.batch import BatchClassifier
from chatmail.storage.db import MailDatabase, StorageError

logger = logging.getLogger(__name__)

# Backoff: 2^attempt seconds, capped at 5 minutes
_MAX_BACKOFF_SECONDS = 300


class MailboxWatcher:
    """Keeps a signed-in session's conversations current until stopped.

    On each (re)connection it loads the profile, hydrates live state from the
    local cache, runs one refresh, and hands further refreshes to the
    APScheduler job.  Transient Gmail failures reconnect with exponential
    backoff; an expired credential ends the run because retrying cannot help.

    Usage::

        watcher = MailboxWatcher(PipelineConfig.from_env(), MailDatabase())
        await watcher.run()
    """

    def __init__(
        self,
        config: PipelineConfig,
        db: MailDatabase,
        inference: MessageClassifier | None = None,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._db = db
        self._inference = inference or MessageClassifier()
        self._access_token = access_token
        self._transport = transport
        self._session = MailSession()
        self._stop_event = asyncio.Event()

    @property
    def session(self) -> MailSession:
        return self._session

    def stop(self) -> None:
        """Signal the watcher to finish the current refresh and shut down cleanly."""
        logger.info("Shutdown requested — finishing current refresh then stopping")
        self._stop_event.set()

    async def run(self) -> None:
        """Run until stop() is called or the credential is rejected."""
        attempt = 0
        while not self._stop_event.is_set():
            try:
                async with gmail_client(
                    access_token=self._access_token, transport=self._transport
                ) as gmail:
                    profile = await gmail.get_profile()
                    logger.info("Connected to Gmail as %s", profile.email)
                    attempt = 0  # reset backoff counter on successful connect
                    await self._loop(gmail, profile)
            except AuthExpiredError as exc:
                logger.error("Authentication expired: %s — sign in again to resume", exc)
                self._session.expire()
                break
            except GmailAPIError as exc:
                if self._stop_event.is_set():
                    break
                attempt += 1
                delay = min(2**attempt, _MAX_BACKOFF_SECONDS)
                logger.error(
                    "Gmail error (attempt %d): %s — reconnecting in %ds",
                    attempt,
                    exc,
                    delay,
                )
                await self._interruptible_sleep(delay)
            except Exception as exc:  # noqa: BLE001
                if self._stop_event.is_set():
                    break
                attempt += 1
                delay = min(2**attempt, _MAX_BACKOFF_SECONDS)
                logger.error(
                    "Unexpected error (attempt %d): %s — reconnecting in %ds",
                    attempt,
                    exc,
                    delay,
                    exc_info=True,
                )
                await self._interruptible_sleep(delay)

        logger.info("Watcher stopped")

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _loop(self, gmail: GmailClient, profile: UserProfile) -> None:
        """Wire up a fresh coordinator for this connection and watch until stopped."""
        try:
            self._db.set_profile(profile)
        except StorageError as exc:
            logger.warning("Could not persist profile: %s", exc)

        # Timed refresh is the watcher's job, so config.auto_refresh is not consulted
        self._session = MailSession.start(profile, auto_refresh=True)
        classifier = BatchClassifier(
            self._inference, self._db.classifications, batch_size=self._config.batch_size
        )
        coordinator = IngestionCoordinator(
            gmail, self._session, self._db, classifier, self._config
        )
        coordinator.hydrate()
        await coordinator.refresh()
        self._check_session()

        scheduler = create_refresh_scheduler(
            coordinator, self._session, self._config.refresh_interval_seconds
        )
        scheduler.start()
        try:
            while not self._stop_event.is_set():
                await self._interruptible_sleep(self._config.refresh_interval_seconds)
                self._check_session()
        finally:
            scheduler.shutdown(wait=False)

    def _check_session(self) -> None:
        """Surface an expiry recorded by a refresh as an AuthExpiredError."""
        if not self._session.authenticated:
            raise AuthExpiredError(self._session.last_error or "session expired")

    async def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep for `seconds` but wake immediately if stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


# ── Entry point ────────────────────────────────────────────────────────────────


def main() -> None:
    """Start the watcher.  Called by `chatmail watch`."""
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        asyncio.run(_amain())
    except KeyboardInterrupt:
        # Ctrl+C on Windows (no add_signal_handler) arrives here
        logger.info("Interrupted — goodbye")


async def _amain() -> None:
    config = PipelineConfig.from_env()
    db = MailDatabase(db_path=config.db_path)
    try:
        await run_watcher(config, db)
    finally:
        db.close()


async def run_watcher(config: PipelineConfig, db: MailDatabase) -> None:
    """Wire up signal handlers and run a watcher until it stops."""
    watcher = MailboxWatcher(config, db)

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, watcher.stop)
    except (NotImplementedError, AttributeError):
        pass

    await watcher.run()
