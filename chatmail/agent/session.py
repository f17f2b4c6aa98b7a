"""Per-authentication session state shared by the ingestion and send coordinators."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from chatmail.mail.types import UserProfile
from chatmail.processing.types import Conversation, SpecialFolder, default_special_folders
from chatmail.storage.db import MailDatabase, StorageError

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired. Please sign in again."


@dataclass
class MailSession:
    """Everything the pipeline knows about one signed-in mailbox.

    Created on authentication and passed explicitly to each coordinator;
    ``expire()`` / ``sign_out()`` tear it down.  ``conversations`` is replaced
    wholesale by each refresh, so readers always see a consistent snapshot.
    """

    profile: UserProfile | None = None
    authenticated: bool = False
    auto_refresh: bool = False
    conversations: dict[str, Conversation] = field(default_factory=dict)
    special_folders: dict[str, SpecialFolder] = field(default_factory=default_special_folders)
    next_page_token: str | None = None
    last_refresh: datetime | None = None
    last_error: str | None = None

    @classmethod
    def start(cls, profile: UserProfile, *, auto_refresh: bool = False) -> MailSession:
        """New authenticated session for profile."""
        return cls(profile=profile, authenticated=True, auto_refresh=auto_refresh)

    @property
    def owner_email(self) -> str:
        return self.profile.email if self.profile else ""

    # ── User overlays ───────────────────────────────────────────────────────────

    def update_person_status(self, email: str, status: str | None) -> bool:
        """Set a user-authored status on a conversation.  False if it doesn't exist."""
        conv = self.conversations.get(email.lower())
        if conv is None:
            return False
        conv.person.status = status
        return True

    def link_contact(self, email: str, contact_id: str | None) -> bool:
        """Attach (or with None, detach) an address-book contact to a conversation."""
        conv = self.conversations.get(email.lower())
        if conv is None:
            return False
        conv.person.contact_id = contact_id
        return True

    def toggle_auto_refresh(self) -> bool:
        self.auto_refresh = not self.auto_refresh
        logger.info("Auto-refresh %s", "enabled" if self.auto_refresh else "disabled")
        return self.auto_refresh

    # ── Teardown ────────────────────────────────────────────────────────────────

    def expire(self) -> None:
        """Credential rejected: drop mailbox state and require re-authentication."""
        logger.warning("Gmail credential rejected — clearing session for %s", self.owner_email)
        self._reset()
        self.last_error = SESSION_EXPIRED_MESSAGE

    def sign_out(self, db: MailDatabase | None = None) -> None:
        """User-initiated sign-out.  With db, the local cache is wiped as well."""
        if db is not None:
            try:
                db.clear_all()
            except StorageError as exc:
                logger.error("Could not clear local cache on sign-out: %s", exc)
        self._reset()
        self.last_error = None

    def _reset(self) -> None:
        self.profile = None
        self.authenticated = False
        self.conversations = {}
        self.special_folders = default_special_folders()
        self.next_page_token = None
