"""SQLite table schemas for the local message and classification caches."""

# ── DDL ────────────────────────────────────────────────────────────────────────

_CREATE_MESSAGES = """
CREATE TABLE IF NOT EXISTS messages (
    id             TEXT PRIMARY KEY,
    thread_id      TEXT NOT NULL,
    internal_date  INTEGER NOT NULL,
    data           TEXT NOT NULL,
    stored_at      TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

_CREATE_MESSAGES_THREAD_INDEX = """
CREATE INDEX IF NOT EXISTS idx_messages_thread_id ON messages (thread_id)
"""

_CREATE_MESSAGES_DATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_messages_internal_date ON messages (internal_date)
"""

_CREATE_CLASSIFICATIONS = """
CREATE TABLE IF NOT EXISTS classifications (
    message_id     TEXT PRIMARY KEY,
    is_real_human  INTEGER NOT NULL,
    action_needed  TEXT,
    computed_at    INTEGER NOT NULL
)
"""

_CREATE_SYNC_INFO = """
CREATE TABLE IF NOT EXISTS sync_info (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
)
"""

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_MESSAGES,
    _CREATE_MESSAGES_THREAD_INDEX,
    _CREATE_MESSAGES_DATE_INDEX,
    _CREATE_CLASSIFICATIONS,
    _CREATE_SYNC_INFO,
]

#: Tables emptied by MailDatabase.clear_all().
DATA_TABLES: tuple[str, ...] = ("messages", "classifications", "sync_info")

# sync_info keys
LAST_SYNC_KEY = "last_sync_ms"
PROFILE_EMAIL_KEY = "profile_email"
PROFILE_NAME_KEY = "profile_name"
