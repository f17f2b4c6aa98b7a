"""MIME helpers — base64url body decoding, content extraction, raw message building."""

import base64
import binascii
import logging
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import format_datetime
from html.parser import HTMLParser

from chatmail.mail.types import MessagePart

logger = logging.getLogger(__name__)


def decode_body(data: str | None) -> str:
    """Decode a Gmail base64url body.  Returns "" on missing or corrupt data."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as exc:
        logger.warning("Could not decode message body: %s", exc)
        return ""


def encode_body(text: str) -> str:
    """Encode text as base64url without padding (Gmail transport form)."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).rstrip(b"=").decode("ascii")


def extract_email_content(payload: MessagePart | None) -> tuple[str, str]:
    """Return (html, text) from the first text/html and first text/plain leaves.

    Walks the MIME tree depth-first, so a multipart/alternative nested inside
    multipart/mixed is found the same as a flat one.
    """
    html = ""
    text = ""
    if payload is None:
        return html, text

    stack = [payload]
    while stack and not (html and text):
        part = stack.pop()
        if part.data:
            if part.mime_type == "text/html" and not html:
                html = decode_body(part.data)
            elif part.mime_type == "text/plain" and not text:
                text = decode_body(part.data)
        # Reverse so children are visited in document order
        stack.extend(reversed(part.parts))
    return html, text


# ── HTML stripper ───────────────────────────────────────────────────────────────


class _HTMLStripper(HTMLParser):
    """Minimal HTMLParser subclass that collects visible text nodes."""

    def __init__(self) -> None:
        super().__init__()
        self._parts: list[str] = []

    def handle_data(self, data: str) -> None:
        text = data.strip()
        if text:
            self._parts.append(text)

    def get_text(self) -> str:
        return " ".join(self._parts)


def strip_html(text: str) -> str:
    """Return plain text from an HTML string; non-HTML input comes back unchanged."""
    if "<" not in text:
        return text
    stripper = _HTMLStripper()
    stripper.feed(text)
    stripper.close()
    result = stripper.get_text()
    return result or text


def body_text(payload: MessagePart | None) -> str:
    """Best plain-text rendering of a message body (plain part, else stripped HTML)."""
    html, text = extract_email_content(payload)
    return text or strip_html(html)


def build_raw_message(
    sender: str,
    to: str,
    subject: str,
    body: str,
    *,
    date: datetime | None = None,
) -> str:
    """Build an RFC 2822 message and return it base64url-encoded without padding."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg["Date"] = format_datetime(date or datetime.now(timezone.utc))
    msg.set_content(body)
    return base64.urlsafe_b64encode(msg.as_bytes()).rstrip(b"=").decode("ascii")
