"""Inference client — Haiku-powered sender and action classification."""

from __future__ import annotations

import logging
import os
from typing import Any

import anthropic
from anthropic import AsyncAnthropic
from anthropic.types import ToolUseBlock

from chatmail.mail.types import Message
from chatmail.processing.prompts import (
    ACTION_TOOL,
    ACTION_TOOL_NAME,
    SENDER_TOOL,
    SENDER_TOOL_NAME,
    build_action_messages,
    build_sender_messages,
)

logger = logging.getLogger(__name__)

# Haiku: fast and cheap enough to run on every incoming message.
_DEFAULT_MODEL = "claude-haiku-4-5-20251001"
_MAX_TOKENS = 256
_TIMEOUT_SECONDS = 30.0

# Model answers that mean "no action"
_NO_ACTION = {"", "null", "none", "no action", "n/a"}


class InferenceError(Exception):
    """Raised when the model fails to return the expected tool call."""


class MessageClassifier:
    """Sends one message at a time to Claude Haiku for two independent judgments.

    Uses Anthropic's tool_use with a forced tool_choice so every response is
    machine-readable.  Both public methods fail open and never raise: a
    missing verdict must not abort a refresh.

    Usage::

        classifier = MessageClassifier()
        if await classifier.is_real_human(message):
            action = await classifier.detect_action_needed(message)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: AsyncAnthropic | None = None,
    ) -> None:
        self._client = client or AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", ""),
            timeout=_TIMEOUT_SECONDS,
        )
        self._model = model or os.environ.get("CHATMAIL_MODEL", _DEFAULT_MODEL)

    async def is_real_human(self, message: Message) -> bool:
        """Return True if a real person wrote the message.

        Degrades to True on any failure: surfacing an automated message as a
        conversation is cheaper than silently hiding a person.
        """
        try:
            data = await self._call_tool(
                SENDER_TOOL, SENDER_TOOL_NAME, build_sender_messages(message), message.id
            )
            verdict = data["is_real_human"]
            if not isinstance(verdict, bool):
                raise InferenceError(f"is_real_human is {type(verdict).__name__}, not bool")
            return verdict
        except (anthropic.APIError, InferenceError, KeyError) as exc:
            logger.warning(
                "Sender classification failed for message %s, assuming human: %s",
                message.id,
                exc,
            )
            return True

    async def detect_action_needed(self, message: Message) -> str | None:
        """Return a short action description, or None if nothing is needed."""
        try:
            data = await self._call_tool(
                ACTION_TOOL, ACTION_TOOL_NAME, build_action_messages(message), message.id
            )
        except (anthropic.APIError, InferenceError) as exc:
            logger.warning("Action detection failed for message %s: %s", message.id, exc)
            return None
        return normalize_action(data.get("action"))

    async def _call_tool(
        self,
        tool: dict[str, Any],
        tool_name: str,
        messages: list[dict[str, str]],
        message_id: str,
    ) -> dict[str, Any]:
        """Force a single tool call and return its input dict."""
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=_MAX_TOKENS,
            tools=[tool],  # type: ignore[list-item]
            tool_choice={"type": "tool", "name": tool_name},
            messages=messages,  # type: ignore[arg-type]
        )

        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == tool_name:
                if not isinstance(block.input, dict):
                    raise InferenceError(f"{tool_name} input is not an object")
                return block.input  # type: ignore[return-value]

        raise InferenceError(
            f"Model did not return a {tool_name} tool call for message "
            f"{message_id!r} (stop_reason={response.stop_reason!r})"
        )


def normalize_action(raw: object) -> str | None:
    """Map the model's action field to a trimmed string or None."""
    if raw is None:
        return None
    action = str(raw).strip()
    if action.lower() in _NO_ACTION:
        return None
    return action
