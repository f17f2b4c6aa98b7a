"""SQLite-backed key-value stores for raw messages and classification results."""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Generic, Protocol, TypeVar, runtime_checkable

from chatmail.mail.types import Message, UserProfile
from chatmail.processing.types import ClassificationRecord
from chatmail.storage.models import (
    ALL_TABLES,
    DATA_TABLES,
    LAST_SYNC_KEY,
    PROFILE_EMAIL_KEY,
    PROFILE_NAME_KEY,
)

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("data/chatmail.db")

R = TypeVar("R")


class StorageError(Exception):
    """Raised when a local store read or write fails."""


# ── Store interface ────────────────────────────────────────────────────────────


@runtime_checkable
class KeyValueStore(Protocol[R]):
    """Interface shared by the durable stores and their in-memory test doubles."""

    def put(self, key: str, record: R) -> None:
        """Insert or atomically overwrite the record stored under key."""
        ...

    def get(self, key: str) -> R | None:
        ...

    def get_all(self) -> list[R]:
        ...

    def clear(self) -> None:
        ...


class InMemoryStore(Generic[R]):
    """Dict-backed KeyValueStore for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._data: dict[str, R] = {}

    def put(self, key: str, record: R) -> None:
        self._data[key] = record

    def get(self, key: str) -> R | None:
        return self._data.get(key)

    def get_all(self) -> list[R]:
        return list(self._data.values())

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


# ── SQLite stores ──────────────────────────────────────────────────────────────


class _SqliteStore:
    """Shared connection handling; every statement runs in its own transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _write(self, sql: str, params: tuple[object, ...] = ()) -> None:
        try:
            with self._conn:
                self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StorageError(f"write failed: {exc}") from exc

    def _read(self, sql: str, params: tuple[object, ...] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"read failed: {exc}") from exc


class MessageStore(_SqliteStore):
    """Raw provider messages keyed by message ID, indexed by thread and date."""

    def put(self, key: str, record: Message) -> None:
        self._write(
            """
            INSERT INTO messages (id, thread_id, internal_date, data)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                thread_id     = excluded.thread_id,
                internal_date = excluded.internal_date,
                data          = excluded.data
            """,
            (key, record.thread_id, record.internal_date, json.dumps(record.to_dict())),
        )

    def get(self, key: str) -> Message | None:
        rows = self._read("SELECT data FROM messages WHERE id = ?", (key,))
        return _decode_message(rows[0]) if rows else None

    def get_all(self) -> list[Message]:
        """All stored messages, oldest first."""
        rows = self._read("SELECT data FROM messages ORDER BY internal_date, id")
        return [_decode_message(r) for r in rows]

    def get_by_thread(self, thread_id: str) -> list[Message]:
        rows = self._read(
            "SELECT data FROM messages WHERE thread_id = ? ORDER BY internal_date, id",
            (thread_id,),
        )
        return [_decode_message(r) for r in rows]

    def get_recent(self, limit: int) -> list[Message]:
        """The newest `limit` messages, newest first."""
        rows = self._read(
            "SELECT data FROM messages ORDER BY internal_date DESC, id LIMIT ?",
            (limit,),
        )
        return [_decode_message(r) for r in rows]

    def clear(self) -> None:
        self._write("DELETE FROM messages")


class ClassificationCache(_SqliteStore):
    """Inference results keyed by message ID — at most one row per message."""

    def put(self, key: str, record: ClassificationRecord) -> None:
        self._write(
            """
            INSERT INTO classifications (message_id, is_real_human, action_needed, computed_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(message_id) DO UPDATE SET
                is_real_human = excluded.is_real_human,
                action_needed = excluded.action_needed,
                computed_at   = excluded.computed_at
            """,
            (key, int(record.is_real_human), record.action_needed, record.computed_at),
        )

    def get(self, key: str) -> ClassificationRecord | None:
        rows = self._read(
            "SELECT message_id, is_real_human, action_needed, computed_at "
            "FROM classifications WHERE message_id = ?",
            (key,),
        )
        return _decode_record(rows[0]) if rows else None

    def get_all(self) -> list[ClassificationRecord]:
        rows = self._read(
            "SELECT message_id, is_real_human, action_needed, computed_at "
            "FROM classifications ORDER BY message_id"
        )
        return [_decode_record(r) for r in rows]

    def clear(self) -> None:
        self._write("DELETE FROM classifications")


# ── Database ───────────────────────────────────────────────────────────────────


class MailDatabase:
    """Owns the SQLite connection and exposes the two keyed stores.

    Designed for single-threaded use from an async event loop — all calls are
    synchronous/blocking but fast enough for personal email volume.

    Usage::

        db = MailDatabase()
        db.messages.put(message.id, message)
        record = db.classifications.get(message.id)
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        self.messages = MessageStore(self._conn)
        self.classifications = ClassificationCache(self._conn)

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    def clear_all(self) -> None:
        """Drop every cached message, classification, and sync marker."""
        try:
            with self._conn:
                for table in DATA_TABLES:
                    self._conn.execute(f"DELETE FROM {table}")
        except sqlite3.Error as exc:
            raise StorageError(f"clear failed: {exc}") from exc
        logger.info("Cleared local mail cache at %s", self._path)

    # ── Sync info ───────────────────────────────────────────────────────────────

    def get_last_sync(self) -> int | None:
        """Epoch-ms timestamp of the last successful refresh, or None."""
        value = self._get_sync(LAST_SYNC_KEY)
        return int(value) if value is not None else None

    def set_last_sync(self, timestamp_ms: int) -> None:
        self._set_sync(LAST_SYNC_KEY, str(timestamp_ms))

    def get_profile(self) -> UserProfile | None:
        email = self._get_sync(PROFILE_EMAIL_KEY)
        if not email:
            return None
        return UserProfile(email=email, name=self._get_sync(PROFILE_NAME_KEY) or "")

    def set_profile(self, profile: UserProfile) -> None:
        try:
            with self._conn:
                self._conn.executemany(
                    "INSERT INTO sync_info (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    [(PROFILE_EMAIL_KEY, profile.email), (PROFILE_NAME_KEY, profile.name)],
                )
        except sqlite3.Error as exc:
            raise StorageError(f"write failed: {exc}") from exc

    # ── Private ─────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)

    def _get_sync(self, key: str) -> str | None:
        try:
            row = self._conn.execute(
                "SELECT value FROM sync_info WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"read failed: {exc}") from exc
        return str(row["value"]) if row else None

    def _set_sync(self, key: str, value: str) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO sync_info (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"write failed: {exc}") from exc


# ── Row decoding ───────────────────────────────────────────────────────────────


def _decode_message(row: sqlite3.Row) -> Message:
    return Message.from_dict(json.loads(row["data"]))


def _decode_record(row: sqlite3.Row) -> ClassificationRecord:
    return ClassificationRecord(
        message_id=row["message_id"],
        is_real_human=bool(row["is_real_human"]),
        action_needed=row["action_needed"],
        computed_at=int(row["computed_at"]),
    )
