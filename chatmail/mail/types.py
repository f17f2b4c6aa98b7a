"""Data types shared across the mail client and pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Gmail system label IDs
SENT = "SENT"
UNREAD = "UNREAD"
CATEGORY_PROMOTIONS = "CATEGORY_PROMOTIONS"

#: Prefix for locally synthesized (not yet provider-confirmed) message IDs.
PROVISIONAL_PREFIX = "temp-"


@dataclass(frozen=True)
class MessagePart:
    """One node of a message's MIME tree.

    ``data`` is the base64url-encoded body as delivered by Gmail; multipart
    containers carry no data of their own, only ``parts``.
    """

    mime_type: str
    data: str | None = None
    filename: str | None = None
    parts: tuple[MessagePart, ...] = ()

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> MessagePart:
        body = raw.get("body") or {}
        return cls(
            mime_type=str(raw.get("mimeType", "")),
            data=body.get("data") or None,
            filename=raw.get("filename") or None,
            parts=tuple(cls.from_api(p) for p in raw.get("parts") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mime_type": self.mime_type,
            "data": self.data,
            "filename": self.filename,
            "parts": [p.to_dict() for p in self.parts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessagePart:
        return cls(
            mime_type=data["mime_type"],
            data=data.get("data"),
            filename=data.get("filename"),
            parts=tuple(cls.from_dict(p) for p in data.get("parts", [])),
        )


@dataclass
class Message:
    """A mailbox message as returned by ``users.messages.get?format=full``.

    The provider fields never change after receipt.  ``is_real_human`` and
    ``action_needed`` start as None and are filled in by the BatchClassifier
    (or copied from the classification cache).
    """

    id: str
    thread_id: str
    snippet: str
    internal_date: int  # epoch milliseconds
    labels: list[str] = field(default_factory=list)
    headers: list[tuple[str, str]] = field(default_factory=list)
    payload: MessagePart | None = None
    size_estimate: int = 0
    is_real_human: bool | None = None
    action_needed: str | None = None

    # ── Header helpers ─────────────────────────────────────────────────────────

    def header(self, name: str) -> str | None:
        """Return the first header value matching name (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    @property
    def subject(self) -> str:
        return self.header("Subject") or ""

    @property
    def date(self) -> str:
        return self.header("Date") or ""

    @property
    def is_unread(self) -> bool:
        return UNREAD in self.labels

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith(PROVISIONAL_PREFIX)

    # ── (De)serialisation ──────────────────────────────────────────────────────

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Message:
        """Map a Gmail API message resource to a Message."""
        payload_raw = raw.get("payload") or {}
        headers = [
            (str(h.get("name", "")), str(h.get("value", "")))
            for h in payload_raw.get("headers", [])
        ]
        return cls(
            id=str(raw["id"]),
            thread_id=str(raw.get("threadId", "")),
            snippet=str(raw.get("snippet", "")),
            internal_date=int(raw.get("internalDate") or 0),
            labels=[str(lbl) for lbl in raw.get("labelIds", [])],
            headers=headers,
            payload=MessagePart.from_api(payload_raw) if payload_raw else None,
            size_estimate=int(raw.get("sizeEstimate") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Provider fields only; classification lives in its own store."""
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "snippet": self.snippet,
            "internal_date": self.internal_date,
            "labels": list(self.labels),
            "headers": [list(h) for h in self.headers],
            "payload": self.payload.to_dict() if self.payload else None,
            "size_estimate": self.size_estimate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        payload = data.get("payload")
        return cls(
            id=data["id"],
            thread_id=data.get("thread_id", ""),
            snippet=data.get("snippet", ""),
            internal_date=int(data.get("internal_date", 0)),
            labels=list(data.get("labels", [])),
            headers=[(str(k), str(v)) for k, v in data.get("headers", [])],
            payload=MessagePart.from_dict(payload) if payload else None,
            size_estimate=int(data.get("size_estimate", 0)),
        )


@dataclass(frozen=True)
class MessagePage:
    """One page of a message listing.  next_page_token is None at end of list."""

    ids: list[str]
    next_page_token: str | None = None


@dataclass(frozen=True)
class UserProfile:
    """The authenticated mailbox owner."""

    email: str
    name: str = ""
