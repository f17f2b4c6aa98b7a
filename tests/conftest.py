"""Shared pytest fixtures."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from chatmail.storage.db import MailDatabase


@pytest.fixture
def gmail_resource() -> dict[str, Any]:
    """A users.messages.get?format=full resource with a multipart body."""
    return {
        "id": "msg_001",
        "threadId": "thread_001",
        "snippet": "Can we move the review to Friday?",
        "internalDate": "1767261600000",
        "labelIds": ["INBOX", "UNREAD"],
        "sizeEstimate": 2048,
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": "Alice Smith <alice@example.com>"},
                {"name": "To", "value": "me@example.com"},
                {"name": "Subject", "value": "Review timing"},
                {"name": "Date", "value": "Thu, 01 Jan 2026 10:00:00 +0000"},
            ],
            "body": {"size": 0},
            "parts": [
                {
                    "mimeType": "text/plain",
                    "body": {"data": "Q2FuIHdlIG1vdmUgdGhlIHJldmlldyB0byBGcmlkYXk_"},
                },
                {
                    "mimeType": "text/html",
                    "body": {"data": "PHA-Q2FuIHdlIG1vdmUgaXQ_PC9wPg"},
                },
            ],
        },
    }


@pytest.fixture
def db(tmp_path: Path) -> Iterator[MailDatabase]:
    database = MailDatabase(db_path=tmp_path / "test.db")
    yield database
    database.close()
