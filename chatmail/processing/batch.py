"""Batch classifier — cache-first, fixed-width concurrent inference over a message set."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from chatmail.mail.types import Message
from chatmail.processing.promotional import (
    DEFAULT_PROMOTIONAL_POLICY,
    PromotionalPolicy,
    is_promotional,
)
from chatmail.processing.types import BatchResult, ClassificationRecord
from chatmail.storage.db import KeyValueStore, StorageError

if TYPE_CHECKING:
    from chatmail.processing.analyzer import MessageClassifier

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5


class BatchClassifier:
    """Fills in is_real_human / action_needed for a list of messages.

    Promotional messages never reach inference.  The rest are processed in
    groups of ``batch_size``: groups run one after another, messages within a
    group run concurrently, which caps simultaneous inference calls at
    ``batch_size`` while still overlapping network latency.

    The cache is always consulted first, so a message is sent to inference
    at most once for as long as its cache row exists.
    """

    def __init__(
        self,
        inference: MessageClassifier,
        cache: KeyValueStore[ClassificationRecord],
        batch_size: int = DEFAULT_BATCH_SIZE,
        policy: PromotionalPolicy = DEFAULT_PROMOTIONAL_POLICY,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._inference = inference
        self._cache = cache
        self._batch_size = batch_size
        self._policy = policy

    async def classify(self, messages: list[Message]) -> BatchResult:
        """Classify messages in place and return them with the side lists."""
        result = BatchResult(messages=messages)
        candidates: list[Message] = []
        for message in messages:
            if is_promotional(message, self._policy):
                result.automated.append(message)
            else:
                candidates.append(message)

        for start in range(0, len(candidates), self._batch_size):
            group = candidates[start : start + self._batch_size]
            await asyncio.gather(*(self._classify_one(m) for m in group))

        for message in candidates:
            if message.is_real_human is False:
                result.automated.append(message)
            if message.action_needed:
                result.action_needed.append(message)

        logger.info(
            "Classified %d message(s): %d automated, %d need action",
            len(messages),
            len(result.automated),
            len(result.action_needed),
        )
        return result

    async def _classify_one(self, message: Message) -> None:
        """Classify one message; an unexpected failure leaves it visible and uncached."""
        try:
            await self._classify(message)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Classification failed for message %s: %s — keeping it visible",
                message.id,
                exc,
                exc_info=True,
            )
            if message.is_real_human is None:
                message.is_real_human = True

    async def _classify(self, message: Message) -> None:
        cached = self._lookup(message.id)
        if cached is not None:
            message.is_real_human = cached.is_real_human
            message.action_needed = cached.action_needed
            return

        is_human = await self._inference.is_real_human(message)
        message.is_real_human = is_human
        self._store(ClassificationRecord(message.id, is_human, None, _now_ms()))

        # Action detection only for human mail, to bound inference cost
        if not is_human:
            return
        action = await self._inference.detect_action_needed(message)
        if action:
            message.action_needed = action
            self._store(ClassificationRecord(message.id, True, action, _now_ms()))

    def _lookup(self, message_id: str) -> ClassificationRecord | None:
        try:
            return self._cache.get(message_id)
        except StorageError as exc:
            logger.warning("Cache lookup failed for message %s: %s", message_id, exc)
            return None

    def _store(self, record: ClassificationRecord) -> None:
        """Persist a record; a failed write only costs a repeat inference call later."""
        try:
            self._cache.put(record.message_id, record)
        except StorageError as exc:
            logger.error(
                "Failed to cache classification for message %s: %s",
                record.message_id,
                exc,
            )


def _now_ms() -> int:
    return int(time.time() * 1000)
