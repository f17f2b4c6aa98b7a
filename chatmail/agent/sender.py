"""Optimistic send — show a sent message immediately, confirm or roll back later."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import TYPE_CHECKING

from chatmail.mail.gmail_client import AuthExpiredError, GmailAPIError
from chatmail.mail.mime import build_raw_message, encode_body
from chatmail.mail.types import PROVISIONAL_PREFIX, SENT, Message, MessagePart
from chatmail.processing.grouping import refresh_summary
from chatmail.processing.headers import parse_address
from chatmail.processing.types import Conversation, Person

if TYPE_CHECKING:
    from chatmail.agent.ingestion import IngestionCoordinator
    from chatmail.agent.session import MailSession
    from chatmail.mail.gmail_client import GmailClient

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "New message"
_SNIPPET_LENGTH = 100


@dataclass(frozen=True)
class SendResult:
    """Outcome reported to the caller of send_message()."""

    ok: bool
    message_id: str | None = None  # provisional ID shown in the conversation
    error: str | None = None


class OptimisticSender:
    """Sends mail while keeping the live conversation state ahead of the provider.

    The provisional message is merged into the session before the send call
    is made.  On success a background re-ingestion replaces it with Gmail's
    own copy; on failure it is removed again and the conversation is left as
    it was before the call.

    Usage::

        sender = OptimisticSender(gmail, session, coordinator)
        result = await sender.send_message("bob@example.com", "Lunch tomorrow?")
    """

    def __init__(
        self,
        gmail: GmailClient,
        session: MailSession,
        ingestion: IngestionCoordinator,
        reconcile_delay: float = 2.0,
    ) -> None:
        self._gmail = gmail
        self._session = session
        self._ingestion = ingestion
        self._reconcile_delay = reconcile_delay
        self._pending: set[asyncio.Task[bool]] = set()

    async def send_message(
        self,
        to: str,
        body: str,
        subject: str = DEFAULT_SUBJECT,
    ) -> SendResult:
        """Send body to `to`.  Returns once the provider has accepted or rejected it."""
        profile = self._session.profile
        if profile is None or not profile.email:
            return self._fail("Cannot send message: user profile is missing")

        recipient = parse_address(to)
        if not recipient.usable or "@" not in recipient.email:
            return self._fail(f"Cannot send message: invalid recipient {to!r}")
        key = recipient.email.lower()

        sender = f"{profile.name} <{profile.email}>" if profile.name else profile.email
        provisional = _provisional_message(sender, to, subject, body)
        self._insert(key, recipient.name, provisional)

        raw = build_raw_message(sender, to, subject, body)
        try:
            await self._gmail.send_raw(raw)
        except AuthExpiredError as exc:
            self._rollback(key, provisional.id)
            self._session.expire()
            return SendResult(ok=False, message_id=provisional.id, error=str(exc))
        except GmailAPIError as exc:
            self._rollback(key, provisional.id)
            logger.error("Failed to send message to %s: %s", key, exc)
            self._session.last_error = f"Failed to send message: {exc}"
            return SendResult(ok=False, message_id=provisional.id, error=str(exc))

        logger.info("Sent message to %s (provisional id=%s)", key, provisional.id)
        self._schedule_reconcile()
        return SendResult(ok=True, message_id=provisional.id)

    async def wait_for_reconciliation(self) -> None:
        """Wait for every scheduled post-send refresh to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _fail(self, error: str) -> SendResult:
        logger.error(error)
        self._session.last_error = error
        return SendResult(ok=False, error=error)

    def _insert(self, key: str, name: str | None, message: Message) -> None:
        conversations = self._session.conversations
        conv = conversations.get(key)
        if conv is None:
            conv = Conversation(person=Person(email=key, name=name or key.split("@")[0]))
            conversations[key] = conv
        conv.messages.append(message)
        # Stable sort: same-millisecond sends keep call order
        conv.messages.sort(key=lambda m: m.internal_date)
        refresh_summary(conv)

    def _rollback(self, key: str, message_id: str) -> None:
        """Remove the provisional message, and the conversation if it is now empty."""
        conversations = self._session.conversations
        conv = conversations.get(key)
        if conv is None:
            return
        conv.messages = [m for m in conv.messages if m.id != message_id]
        if not conv.messages:
            del conversations[key]
            return
        refresh_summary(conv)

    def _schedule_reconcile(self) -> None:
        task = asyncio.create_task(self._reconcile())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reconcile(self) -> bool:
        await asyncio.sleep(self._reconcile_delay)
        logger.debug("Refreshing to pick up the sent message from Gmail")
        if await self._ingestion.refresh():
            return True
        if not self._ingestion.busy:
            return False
        # An in-flight refresh may have listed before Gmail stored the sent copy
        logger.debug("Refresh already running; retrying reconciliation once")
        await asyncio.sleep(self._reconcile_delay)
        return await self._ingestion.refresh()


def _provisional_message(sender: str, to: str, subject: str, body: str) -> Message:
    now = datetime.now(timezone.utc)
    snippet = body[:_SNIPPET_LENGTH] + ("..." if len(body) > _SNIPPET_LENGTH else "")
    return Message(
        id=f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}",
        thread_id=f"thread-{uuid.uuid4().hex}",
        snippet=snippet,
        internal_date=int(time.time() * 1000),
        labels=[SENT],
        headers=[
            ("From", sender),
            ("To", to),
            ("Subject", subject),
            ("Date", format_datetime(now)),
        ],
        payload=MessagePart(mime_type="text/plain", data=encode_body(body)),
        size_estimate=len(body),
        is_real_human=True,
    )
