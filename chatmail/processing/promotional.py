"""Local promotional-mail heuristic — gates which messages reach paid inference."""

from dataclasses import dataclass

from chatmail.mail.types import CATEGORY_PROMOTIONS, Message
from chatmail.processing.headers import parse_address


@dataclass(frozen=True)
class PromotionalPolicy:
    """Keyword tables for is_promotional().

    Ad hoc by nature ("update" is both a promo word and a normal one), so
    they are data rather than control flow; pass a replacement policy to
    tune them.
    """

    category_labels: frozenset[str] = frozenset({CATEGORY_PROMOTIONS})
    subject_keywords: tuple[str, ...] = (
        "newsletter", "offer", "deal", "discount", "sale", "promo",
        "unsubscribe", "subscription", "marketing", "update", "news",
        "weekly", "monthly",
    )
    sender_keywords: tuple[str, ...] = (
        "noreply", "no-reply", "donotreply", "newsletter", "marketing",
        "notifications", "updates",
    )
    unsubscribe_header: str = "List-Unsubscribe"


DEFAULT_PROMOTIONAL_POLICY = PromotionalPolicy()


def is_promotional(
    message: Message,
    policy: PromotionalPolicy = DEFAULT_PROMOTIONAL_POLICY,
) -> bool:
    """Return True if the message looks like bulk or marketing mail.

    Pure and deterministic: no I/O, no dependence on classification fields.
    """
    if policy.category_labels.intersection(message.labels):
        return True

    subject = message.subject.lower()
    if any(keyword in subject for keyword in policy.subject_keywords):
        return True

    sender = parse_address(message.header("From") or "").email.lower()
    if sender and any(keyword in sender for keyword in policy.sender_keywords):
        return True

    return message.has_header(policy.unsubscribe_header)
