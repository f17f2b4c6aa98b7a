"""Ingestion coordinator — fetch → persist → classify → group → merge into live state."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from chatmail.config import PipelineConfig
from chatmail.mail.gmail_client import AuthExpiredError, GmailAPIError
from chatmail.mail.types import Message, MessagePage
from chatmail.processing.grouping import group_messages
from chatmail.processing.promotional import is_promotional
from chatmail.processing.types import (
    OTHERS_FOLDER,
    REPLY_NEEDED_FOLDER,
    BatchResult,
    SpecialFolder,
)
from chatmail.storage.db import StorageError

if TYPE_CHECKING:
    from chatmail.agent.session import MailSession
    from chatmail.mail.gmail_client import GmailClient
    from chatmail.processing.batch import BatchClassifier
    from chatmail.storage.db import MailDatabase

logger = logging.getLogger(__name__)


class IngestionState(str, Enum):
    """Refresh lifecycle.  ERROR lasts until the failed attempt returns."""

    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    ERROR = "error"


class IngestionCoordinator:
    """Runs one refresh at a time against a session's live state.

    ``refresh()`` and ``load_more()`` are single-flight: a call made while
    another is in progress returns False immediately instead of queueing or
    cancelling.  The scheduler relies on this too.

    Usage::

        coordinator = IngestionCoordinator(gmail, session, db, classifier)
        coordinator.hydrate()          # show cached data instantly
        ok = await coordinator.refresh()
    """

    def __init__(
        self,
        gmail: GmailClient,
        session: MailSession,
        db: MailDatabase,
        classifier: BatchClassifier,
        config: PipelineConfig | None = None,
    ) -> None:
        self._gmail = gmail
        self._session = session
        self._db = db
        self._classifier = classifier
        self._config = config or PipelineConfig()
        self._state = IngestionState.IDLE

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is not IngestionState.IDLE

    # ── Public API ─────────────────────────────────────────────────────────────

    async def refresh(self) -> bool:
        """Fetch the newest page and merge it into live state.  True on success."""
        return await self._run(page_token=None)

    async def load_more(self) -> bool:
        """Fetch the page after the last one seen.  False when there is none."""
        token = self._session.next_page_token
        if not token:
            logger.debug("load_more: no further pages")
            return False
        return await self._run(page_token=token)

    def hydrate(self) -> int:
        """Rebuild live state from the local stores without touching the network."""
        return hydrate_session(self._session, self._db, self._config)

    # ── Pipeline ───────────────────────────────────────────────────────────────

    async def _run(self, page_token: str | None) -> bool:
        if self.busy:
            logger.info("Refresh already in progress (%s); ignoring request", self._state.value)
            return False
        if not self._session.authenticated:
            logger.info("Not authenticated; skipping refresh")
            return False

        # No await between the check above and this assignment
        self._state = IngestionState.FETCHING
        try:
            page = await self._list_page(page_token)
            messages = await self._fetch_messages(page.ids)

            self._state = IngestionState.RECONCILING
            self._persist(messages)
            result = await self._classifier.classify(messages)
            self._apply(result)

            self._session.next_page_token = page.next_page_token
            self._mark_refreshed()
            logger.info(
                "Refresh complete: %d message(s), %d conversation(s)",
                len(messages),
                len(self._session.conversations),
            )
            return True
        except AuthExpiredError as exc:
            self._state = IngestionState.ERROR
            logger.error("Refresh aborted, authentication expired: %s", exc)
            self._session.expire()
            return False
        except GmailAPIError as exc:
            self._state = IngestionState.ERROR
            logger.error("Refresh failed: %s", exc)
            self._session.last_error = f"Failed to refresh messages: {exc}"
            return False
        finally:
            self._state = IngestionState.IDLE

    async def _list_page(self, page_token: str | None) -> MessagePage:
        """List one page; on a transient failure retry once without the query."""
        query = self._config.list_query or None
        try:
            return await self._gmail.list_messages(
                page_token=page_token, query=query, max_results=self._config.page_size
            )
        except AuthExpiredError:
            raise
        except GmailAPIError as exc:
            if not query:
                raise
            logger.warning("Listing with query %r failed (%s); retrying without it", query, exc)
            return await self._gmail.list_messages(
                page_token=page_token, query=None, max_results=self._config.page_size
            )

    async def _fetch_messages(self, ids: list[str]) -> list[Message]:
        """Fetch full messages concurrently, dropping any that fail individually."""
        semaphore = asyncio.Semaphore(self._config.fetch_concurrency)

        async def fetch(message_id: str) -> Message:
            async with semaphore:
                return await self._gmail.get_message(message_id)

        results = await asyncio.gather(*(fetch(i) for i in ids), return_exceptions=True)

        messages: list[Message] = []
        for message_id, outcome in zip(ids, results):
            if isinstance(outcome, AuthExpiredError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning("Skipping message %s: %s", message_id, outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            messages.append(outcome)
        return messages

    def _persist(self, messages: list[Message]) -> None:
        for message in messages:
            try:
                self._db.messages.put(message.id, message)
            except StorageError as exc:
                logger.error("Failed to store message %s: %s", message.id, exc)

    def _apply(self, result: BatchResult) -> None:
        apply_batch(self._session, result, self._config.others_display_cap)

    def _mark_refreshed(self) -> None:
        now = datetime.now(timezone.utc)
        self._session.last_refresh = now
        self._session.last_error = None
        try:
            self._db.set_last_sync(int(now.timestamp() * 1000))
        except StorageError as exc:
            logger.error("Failed to record last sync time: %s", exc)


# ── Live-state helpers ─────────────────────────────────────────────────────────


def hydrate_session(session: MailSession, db: MailDatabase, config: PipelineConfig) -> int:
    """Load cached messages and classifications into session.

    Messages whose classification is missing from the cache stay
    unclassified (and therefore visible) until the next refresh.
    Returns the number of messages loaded, 0 if the cache is unreadable.
    """
    try:
        messages = db.messages.get_all()
        records = {r.message_id: r for r in db.classifications.get_all()}
    except StorageError as exc:
        logger.error("Could not hydrate from local cache: %s", exc)
        return 0

    for message in messages:
        record = records.get(message.id)
        if record is not None:
            message.is_real_human = record.is_real_human
            message.action_needed = record.action_needed

    automated = [m for m in messages if m.is_real_human is False or is_promotional(m)]
    needs_action = [m for m in messages if m.action_needed]
    apply_batch(
        session,
        BatchResult(messages=messages, automated=automated, action_needed=needs_action),
        config.others_display_cap,
    )
    logger.info("Hydrated %d cached message(s)", len(messages))
    return len(messages)


def apply_batch(session: MailSession, result: BatchResult, cap: int) -> None:
    """Regroup into live state and rebuild the special-folder summaries."""
    session.conversations = group_messages(
        result.messages, session.owner_email, existing=session.conversations
    )
    _summarize(session.special_folders[OTHERS_FOLDER], result.automated, cap)
    _summarize(session.special_folders[REPLY_NEEDED_FOLDER], result.action_needed, cap)


def _summarize(folder: SpecialFolder, messages: list[Message], cap: int) -> None:
    """Count, newest snippet/date, and the `cap` newest messages for display."""
    newest_first = sorted(messages, key=lambda m: m.internal_date, reverse=True)
    folder.count = len(newest_first)
    folder.messages = newest_first[:cap]
    if newest_first:
        latest = newest_first[0]
        folder.last_message_snippet = latest.snippet
        if latest.date:
            folder.last_message_date = latest.date
