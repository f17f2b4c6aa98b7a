"""Types for the classification and grouping pipeline."""

from dataclasses import dataclass, field

from chatmail.mail.types import Message


@dataclass(frozen=True)
class ClassificationRecord:
    """Cached inference outcome for one message.

    Keyed by message_id in the ClassificationCache; a second put for the same
    id overwrites the first.
    """

    message_id: str
    is_real_human: bool
    action_needed: str | None = None
    computed_at: int = 0  # epoch milliseconds


@dataclass
class Person:
    """The counterparty of a conversation.

    Everything except ``status`` and ``contact_id`` is recomputed by the
    grouper on each pass; those two are user-authored and carried over.
    """

    email: str
    name: str | None = None
    last_message_date: str = ""
    last_message_snippet: str = ""
    unread_count: int = 0
    status: str | None = None
    action: str | None = None
    contact_id: str | None = None


@dataclass
class Conversation:
    """All non-automated messages exchanged with one person, oldest first."""

    person: Person
    messages: list[Message] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.person.email.lower()

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def message_ids(self) -> set[str]:
        return {m.id for m in self.messages}


# ── Special folders ────────────────────────────────────────────────────────────

OTHERS_FOLDER = "others"
REPLY_NEEDED_FOLDER = "reply_needed"


@dataclass
class SpecialFolder:
    """Synthetic folder summarising messages that live outside conversations."""

    id: str
    name: str
    last_message_snippet: str
    last_message_date: str = ""
    count: int = 0
    messages: list[Message] = field(default_factory=list)  # newest first, capped


def default_special_folders() -> dict[str, SpecialFolder]:
    """Empty folders as shown before the first refresh."""
    return {
        OTHERS_FOLDER: SpecialFolder(
            id=OTHERS_FOLDER,
            name="Others",
            last_message_snippet=(
                "Promotional emails, newsletters, and other non-personal messages"
            ),
        ),
        REPLY_NEEDED_FOLDER: SpecialFolder(
            id=REPLY_NEEDED_FOLDER,
            name="Reply Needed",
            last_message_snippet="Emails that need your response",
        ),
    }


# ── Batch output ───────────────────────────────────────────────────────────────


@dataclass
class BatchResult:
    """Output of BatchClassifier.classify().

    ``messages`` is the input list with classification fields populated in
    place; the side lists reference the same Message objects.
    """

    messages: list[Message]
    automated: list[Message] = field(default_factory=list)
    action_needed: list[Message] = field(default_factory=list)
