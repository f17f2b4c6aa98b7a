"""Tests for the inference client (Haiku integration) and its prompt builders."""

from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
from anthropic.types import ToolUseBlock

from chatmail.mail.mime import encode_body
from chatmail.mail.types import Message, MessagePart
from chatmail.processing.analyzer import MessageClassifier, normalize_action
from chatmail.processing.prompts import (
    ACTION_TOOL_NAME,
    BODY_CHAR_LIMIT,
    SENDER_TOOL_NAME,
    build_action_messages,
    build_sender_messages,
)


# ── Helpers ────────────────────────────────────────────────────────────────────


def make_message(body: str | None = "Email body text.", **kwargs: object) -> Message:
    defaults: dict[str, object] = dict(
        id="msg_1",
        thread_id="thread_1",
        snippet="snippet...",
        internal_date=0,
        headers=[("From", "Alice <alice@example.com>"), ("Subject", "Test subject")],
        payload=(
            MessagePart(mime_type="text/plain", data=encode_body(body))
            if body is not None
            else None
        ),
    )
    return Message(**{**defaults, **kwargs})  # type: ignore[arg-type]


def make_tool_block(name: str, data: dict[str, object]) -> ToolUseBlock:
    return ToolUseBlock(type="tool_use", id="toolu_test_123", name=name, input=data)


def mock_response(*blocks: object) -> MagicMock:
    r = MagicMock()
    r.content = list(blocks)
    r.stop_reason = "tool_use"
    return r


def make_classifier(create: AsyncMock) -> MessageClassifier:
    client = MagicMock()
    client.messages.create = create
    return MessageClassifier(client=client)


def connection_error() -> anthropic.APIConnectionError:
    return anthropic.APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )


# ── Prompt builders ────────────────────────────────────────────────────────────


class TestBuildSenderMessages:
    def test_returns_single_user_message(self) -> None:
        msgs = build_sender_messages(make_message())
        assert len(msgs) == 1
        assert msgs[0]["role"] == "user"

    def test_contains_sender_subject_and_body(self) -> None:
        content = build_sender_messages(make_message(body="The quick brown fox."))[0]["content"]
        assert "alice@example.com" in content
        assert "Test subject" in content
        assert "The quick brown fox." in content

    def test_instruction_names_tool(self) -> None:
        content = build_sender_messages(make_message())[0]["content"]
        assert SENDER_TOOL_NAME in content

    def test_body_truncated_at_limit(self) -> None:
        content = build_sender_messages(make_message(body="x" * (BODY_CHAR_LIMIT + 100)))[0][
            "content"
        ]
        assert "x" * BODY_CHAR_LIMIT in content
        assert "x" * (BODY_CHAR_LIMIT + 1) not in content
        assert "truncated" in content

    def test_no_truncation_marker_under_limit(self) -> None:
        content = build_sender_messages(make_message(body="x" * (BODY_CHAR_LIMIT - 1)))[0][
            "content"
        ]
        assert "truncated" not in content

    def test_falls_back_to_snippet_when_no_body(self) -> None:
        content = build_sender_messages(make_message(body=None, snippet="Just the snippet."))[
            0
        ]["content"]
        assert "Just the snippet." in content


class TestBuildActionMessages:
    def test_omits_sender_line(self) -> None:
        content = build_action_messages(make_message())[0]["content"]
        assert "From:" not in content
        assert "Test subject" in content
        assert ACTION_TOOL_NAME in content


# ── normalize_action ───────────────────────────────────────────────────────────


class TestNormalizeAction:
    @pytest.mark.parametrize("raw", [None, "", "  ", "null", "None", "No action", "N/A"])
    def test_no_action_values(self, raw: object) -> None:
        assert normalize_action(raw) is None

    def test_trims_real_action(self) -> None:
        assert normalize_action("  Confirm meeting time ") == "Confirm meeting time"


# ── MessageClassifier.is_real_human ────────────────────────────────────────────


class TestIsRealHuman:
    async def test_returns_model_verdict(self) -> None:
        create = AsyncMock(
            return_value=mock_response(make_tool_block(SENDER_TOOL_NAME, {"is_real_human": False}))
        )
        assert await make_classifier(create).is_real_human(make_message()) is False

    async def test_forces_sender_tool(self) -> None:
        create = AsyncMock(
            return_value=mock_response(make_tool_block(SENDER_TOOL_NAME, {"is_real_human": True}))
        )
        await make_classifier(create).is_real_human(make_message())
        kwargs = create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": SENDER_TOOL_NAME}
        assert kwargs["tools"][0]["name"] == SENDER_TOOL_NAME

    async def test_model_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATMAIL_MODEL", "claude-test-model")
        create = AsyncMock(
            return_value=mock_response(make_tool_block(SENDER_TOOL_NAME, {"is_real_human": True}))
        )
        await make_classifier(create).is_real_human(make_message())
        assert create.call_args.kwargs["model"] == "claude-test-model"

    async def test_api_error_fails_open(self) -> None:
        create = AsyncMock(side_effect=connection_error())
        assert await make_classifier(create).is_real_human(make_message()) is True

    async def test_missing_tool_call_fails_open(self) -> None:
        r = MagicMock()
        r.content = []
        r.stop_reason = "end_turn"
        create = AsyncMock(return_value=r)
        assert await make_classifier(create).is_real_human(make_message()) is True

    async def test_wrong_tool_name_fails_open(self) -> None:
        create = AsyncMock(
            return_value=mock_response(make_tool_block("some_other_tool", {"is_real_human": False}))
        )
        assert await make_classifier(create).is_real_human(make_message()) is True

    async def test_non_bool_verdict_fails_open(self) -> None:
        create = AsyncMock(
            return_value=mock_response(make_tool_block(SENDER_TOOL_NAME, {"is_real_human": "no"}))
        )
        assert await make_classifier(create).is_real_human(make_message()) is True

    async def test_missing_field_fails_open(self) -> None:
        create = AsyncMock(return_value=mock_response(make_tool_block(SENDER_TOOL_NAME, {})))
        assert await make_classifier(create).is_real_human(make_message()) is True

    async def test_skips_non_tool_blocks(self) -> None:
        text_block = MagicMock()
        text_block.__class__ = object  # not a ToolUseBlock
        good = make_tool_block(SENDER_TOOL_NAME, {"is_real_human": False})
        create = AsyncMock(return_value=mock_response(text_block, good))
        assert await make_classifier(create).is_real_human(make_message()) is False


# ── MessageClassifier.detect_action_needed ─────────────────────────────────────


class TestDetectActionNeeded:
    async def test_returns_action(self) -> None:
        create = AsyncMock(
            return_value=mock_response(
                make_tool_block(ACTION_TOOL_NAME, {"action": "Confirm meeting time"})
            )
        )
        action = await make_classifier(create).detect_action_needed(make_message())
        assert action == "Confirm meeting time"

    async def test_null_action_is_none(self) -> None:
        create = AsyncMock(
            return_value=mock_response(make_tool_block(ACTION_TOOL_NAME, {"action": None}))
        )
        assert await make_classifier(create).detect_action_needed(make_message()) is None

    async def test_api_error_returns_none(self) -> None:
        create = AsyncMock(side_effect=connection_error())
        assert await make_classifier(create).detect_action_needed(make_message()) is None

    async def test_missing_tool_call_returns_none(self) -> None:
        create = AsyncMock(return_value=mock_response())
        assert await make_classifier(create).detect_action_needed(make_message()) is None
