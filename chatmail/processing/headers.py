"""Address header parsing — turns free-form From/To values into a Person."""

import re
from dataclasses import dataclass
from enum import Enum

from chatmail.processing.types import Person

# Name <email>  — name may be quoted or absent
_ANGLE_RE = re.compile(r'^\s*"?(?P<name>[^"<]*?)"?\s*<(?P<email>[^<>]+)>\s*$')
# email (Name)
_PAREN_RE = re.compile(r"^\s*(?P<email>[^\s()<>]+@[^\s()<>]+)\s*\((?P<name>[^)]*)\)\s*$")
_BARE_RE = re.compile(r"[A-Za-z0-9._%+'\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")
# Commas outside double quotes separate recipients
_RECIPIENT_SPLIT_RE = re.compile(r',(?=(?:[^"]*"[^"]*")*[^"]*$)')
_SUBJECT_KEY_RE = re.compile(r"[^a-z0-9]+")


class AddressForm(str, Enum):
    """Which pattern matched a header value."""

    ANGLE = "angle"
    PARENTHETICAL = "parenthetical"
    BARE = "bare"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ParsedAddress:
    """Result of parse_address.

    For UNPARSEABLE the whole trimmed value is carried as ``email`` so callers
    can still group on it; an empty value yields an empty email.
    """

    form: AddressForm
    email: str
    name: str | None = None

    @property
    def usable(self) -> bool:
        return bool(self.email)


def parse_address(value: str) -> ParsedAddress:
    """Parse a single address, trying angle, parenthetical, then bare forms."""
    text = value.strip()

    match = _ANGLE_RE.match(text)
    if match and match.group("email").strip():
        name = match.group("name").strip() or None
        return ParsedAddress(AddressForm.ANGLE, match.group("email").strip(), name)

    match = _PAREN_RE.match(text)
    if match:
        name = match.group("name").strip() or None
        return ParsedAddress(AddressForm.PARENTHETICAL, match.group("email"), name)

    match = _BARE_RE.search(text)
    if match:
        return ParsedAddress(AddressForm.BARE, match.group(0))

    return ParsedAddress(AddressForm.UNPARSEABLE, text)


def split_addresses(value: str) -> list[str]:
    """Split a multi-recipient header on commas that are not inside quotes."""
    return [part.strip() for part in _RECIPIENT_SPLIT_RE.split(value) if part.strip()]


def _person(parsed: ParsedAddress) -> Person:
    return Person(email=parsed.email, name=parsed.name)


def extract_person(headers: list[tuple[str, str]], owner_email: str) -> Person | None:
    """Return the counterparty of a message, or None if no address is usable.

    Inbound mail (From is someone else) yields the sender.  Outbound mail
    (From is the owner) yields the first To recipient that isn't the owner.
    """
    owner = owner_email.strip().lower()
    from_value = _first_header(headers, "from")
    to_value = _first_header(headers, "to")

    if from_value is not None:
        parsed = parse_address(from_value)
        if parsed.usable and parsed.email.lower() != owner:
            return _person(parsed)

    if to_value is not None:
        for recipient in split_addresses(to_value):
            parsed = parse_address(recipient)
            if parsed.usable and parsed.email.lower() != owner:
                return _person(parsed)

    return None


def placeholder_key(subject: str) -> str:
    """Deterministic grouping key for messages whose counterparty can't be parsed."""
    slug = _SUBJECT_KEY_RE.sub("-", subject.lower()).strip("-")
    return f"unknown:{slug or 'no-subject'}"


def _first_header(headers: list[tuple[str, str]], name: str) -> str | None:
    for key, value in headers:
        if key.lower() == name:
            return value
    return None
