"""Tests for MIME helpers — body decoding, content extraction, raw message building."""

import base64
from datetime import datetime, timezone
from email import message_from_bytes

from chatmail.mail.mime import (
    body_text,
    build_raw_message,
    decode_body,
    encode_body,
    extract_email_content,
    strip_html,
)
from chatmail.mail.types import MessagePart


# ── Helpers ────────────────────────────────────────────────────────────────────


def leaf(mime_type: str, text: str) -> MessagePart:
    return MessagePart(mime_type=mime_type, data=encode_body(text))


def container(mime_type: str, *parts: MessagePart) -> MessagePart:
    return MessagePart(mime_type=mime_type, parts=parts)


def decode_raw(raw: str) -> bytes:
    return base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4))


# ── decode_body / encode_body ──────────────────────────────────────────────────


class TestDecodeBody:
    def test_decodes_unpadded_base64url(self) -> None:
        assert decode_body("SGVsbG8gQm9i") == "Hello Bob"

    def test_decodes_url_safe_alphabet(self) -> None:
        assert decode_body("Q2FuIHdlIG1vdmUgdGhlIHJldmlldyB0byBGcmlkYXk_") == (
            "Can we move the review to Friday?"
        )

    def test_none_and_empty_return_empty(self) -> None:
        assert decode_body(None) == ""
        assert decode_body("") == ""

    def test_corrupt_data_returns_empty(self) -> None:
        assert decode_body("abcde") == ""


class TestEncodeBody:
    def test_has_no_padding(self) -> None:
        assert "=" not in encode_body("a")

    def test_non_ascii_survives(self) -> None:
        assert decode_body(encode_body("café ☕")) == "café ☕"


# ── extract_email_content ──────────────────────────────────────────────────────


class TestExtractEmailContent:
    def test_single_plain_part(self) -> None:
        html, text = extract_email_content(leaf("text/plain", "hi"))
        assert html == ""
        assert text == "hi"

    def test_alternative_returns_both(self) -> None:
        payload = container(
            "multipart/alternative",
            leaf("text/plain", "plain body"),
            leaf("text/html", "<b>html body</b>"),
        )
        assert extract_email_content(payload) == ("<b>html body</b>", "plain body")

    def test_nested_multipart_is_searched(self) -> None:
        payload = container(
            "multipart/mixed",
            container(
                "multipart/alternative",
                leaf("text/plain", "nested plain"),
                leaf("text/html", "<p>nested</p>"),
            ),
            MessagePart(mime_type="application/pdf", data="JVBERi0", filename="a.pdf"),
        )
        html, text = extract_email_content(payload)
        assert text == "nested plain"
        assert html == "<p>nested</p>"

    def test_first_leaf_of_each_type_wins(self) -> None:
        payload = container(
            "multipart/mixed",
            leaf("text/plain", "first"),
            leaf("text/plain", "second"),
        )
        _, text = extract_email_content(payload)
        assert text == "first"

    def test_none_payload(self) -> None:
        assert extract_email_content(None) == ("", "")


class TestBodyText:
    def test_prefers_plain(self) -> None:
        payload = container(
            "multipart/alternative",
            leaf("text/plain", "plain"),
            leaf("text/html", "<p>html</p>"),
        )
        assert body_text(payload) == "plain"

    def test_falls_back_to_stripped_html(self) -> None:
        payload = container("multipart/alternative", leaf("text/html", "<p>Hi <b>Bob</b></p>"))
        assert body_text(payload) == "Hi Bob"


class TestStripHtml:
    def test_plain_text_unchanged(self) -> None:
        assert strip_html("no markup here") == "no markup here"

    def test_tags_removed(self) -> None:
        assert strip_html("<div><p>Hello</p><p>world</p></div>") == "Hello world"


# ── build_raw_message ──────────────────────────────────────────────────────────


class TestBuildRawMessage:
    def test_unpadded_base64url(self) -> None:
        raw = build_raw_message("me@example.com", "bob@example.com", "Hi", "Hello")
        assert "=" not in raw
        assert "+" not in raw and "/" not in raw

    def test_headers_and_body_round_trip(self) -> None:
        date = datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
        raw = build_raw_message(
            "Me <me@example.com>", "bob@example.com", "Lunch", "Tomorrow?", date=date
        )
        parsed = message_from_bytes(decode_raw(raw))
        assert parsed["From"] == "Me <me@example.com>"
        assert parsed["To"] == "bob@example.com"
        assert parsed["Subject"] == "Lunch"
        assert "2026" in parsed["Date"]
        assert parsed.get_payload().strip() == "Tomorrow?"
