"""Anthropic tool definitions and prompt builders for message classification."""

from typing import Any

from chatmail.mail.mime import body_text
from chatmail.mail.types import Message

# Maximum characters of body text sent per call — applied after HTML
# stripping, so this counts actual text content rather than raw markup.
BODY_CHAR_LIMIT = 4_000

SENDER_TOOL_NAME = "record_sender_type"
ACTION_TOOL_NAME = "record_action_needed"


# ── Tool definitions ───────────────────────────────────────────────────────────

#: Descriptions are intentionally terse to minimise input tokens per call.
SENDER_TOOL: dict[str, Any] = {
    "name": SENDER_TOOL_NAME,
    "description": "Record whether an email was written by a real person.",
    "input_schema": {
        "type": "object",
        "properties": {
            "is_real_human": {
                "type": "boolean",
                "description": (
                    "True if a real person wrote this as part of a conversation; "
                    "false for promotions, newsletters, notifications, receipts, "
                    "or any other automated mail."
                ),
            },
        },
        "required": ["is_real_human"],
    },
}

ACTION_TOOL: dict[str, Any] = {
    "name": ACTION_TOOL_NAME,
    "description": "Record the action the recipient needs to take, if any.",
    "input_schema": {
        "type": "object",
        "properties": {
            "action": {
                "type": ["string", "null"],
                "description": (
                    "Brief, specific action description of at most 5 words "
                    "(e.g. 'Confirm meeting time'); null if no action is needed."
                ),
            },
        },
        "required": ["action"],
    },
}


# ── Prompt builders ────────────────────────────────────────────────────────────


def _message_text(message: Message, *, include_sender: bool) -> str:
    """Header lines plus truncated body text (falls back to the snippet)."""
    plain_body = body_text(message.payload) or message.snippet
    body_preview = plain_body[:BODY_CHAR_LIMIT]

    lines = []
    if include_sender:
        lines.append(f"From: {message.header('From') or '(unknown)'}")
    lines.append(f"Subject: {message.subject or '(no subject)'}")
    lines.append("")
    lines.append(body_preview)
    if len(plain_body) > BODY_CHAR_LIMIT:
        lines.append("\n[… email truncated …]")
    return "\n".join(lines)


def build_sender_messages(message: Message) -> list[dict[str, str]]:
    """Messages list asking whether the email comes from a real human."""
    return [
        {
            "role": "user",
            "content": (
                "Decide whether the following email was written by a real person "
                f"and call {SENDER_TOOL_NAME} with your answer.\n\n"
                + _message_text(message, include_sender=True)
            ),
        }
    ]


def build_action_messages(message: Message) -> list[dict[str, str]]:
    """Messages list asking what action, if any, the email requires."""
    return [
        {
            "role": "user",
            "content": (
                "Decide whether the following email requires an action or reply "
                f"from the recipient and call {ACTION_TOOL_NAME}. Be specific "
                "about what needs to be done.\n\n"
                + _message_text(message, include_sender=False)
            ),
        }
    ]
