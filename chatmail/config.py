"""Pipeline configuration, read from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    """Parse a positive integer env var.  Falls back to default on parse error."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %d", name, raw, default)
        return default
    if value < 1:
        logger.warning("%s must be positive, got %d; defaulting to %d", name, value, default)
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PipelineConfig:
    """Tunables for ingestion, classification, and auto-refresh."""

    page_size: int = 50
    batch_size: int = 5
    refresh_interval_seconds: int = 60
    auto_refresh: bool = False
    others_display_cap: int = 20
    list_query: str = "in:inbox OR in:sent"
    fetch_concurrency: int = 10
    reconcile_delay_seconds: float = 2.0
    db_path: Path = field(default_factory=lambda: Path("data/chatmail.db"))

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Build PipelineConfig from CHATMAIL_* environment variables."""
        defaults = cls()
        return cls(
            page_size=_env_int("CHATMAIL_PAGE_SIZE", defaults.page_size),
            batch_size=_env_int("CHATMAIL_BATCH_SIZE", defaults.batch_size),
            refresh_interval_seconds=_env_int(
                "CHATMAIL_REFRESH_INTERVAL_SECONDS", defaults.refresh_interval_seconds
            ),
            auto_refresh=_env_bool("CHATMAIL_AUTO_REFRESH", defaults.auto_refresh),
            others_display_cap=_env_int("CHATMAIL_OTHERS_CAP", defaults.others_display_cap),
            list_query=os.environ.get("CHATMAIL_LIST_QUERY", defaults.list_query),
            fetch_concurrency=_env_int(
                "CHATMAIL_FETCH_CONCURRENCY", defaults.fetch_concurrency
            ),
            reconcile_delay_seconds=_env_float(
                "CHATMAIL_RECONCILE_DELAY_SECONDS", defaults.reconcile_delay_seconds
            ),
            db_path=Path(os.environ.get("CHATMAIL_DB_PATH", str(defaults.db_path))),
        )
