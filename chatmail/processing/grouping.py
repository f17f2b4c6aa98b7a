"""Conversation grouper — folds classified messages into per-person threads."""

import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from chatmail.mail.types import SENT, Message
from chatmail.processing.headers import extract_person, placeholder_key
from chatmail.processing.promotional import (
    DEFAULT_PROMOTIONAL_POLICY,
    PromotionalPolicy,
    is_promotional,
)
from chatmail.processing.types import Conversation, Person

# A provider SENT copy this much older than a provisional message still
# counts as its confirmation (client and server clocks disagree).
PROVISIONAL_SKEW_MS = 60 * 1000

_WEEK_MS = 7 * 24 * 60 * 60 * 1000


# ── Action ladder ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ActionRule:
    """One rung of the fallback action ladder used when no AI action exists.

    ``applies`` receives the finalised conversation and the current time in
    epoch milliseconds.
    """

    name: str
    action: str
    applies: Callable[[Conversation, int], bool]


def _urgent_address(conv: Conversation, _now: int) -> bool:
    email = conv.person.email.lower()
    return "urgent" in email or "important" in email


def _many_unread(conv: Conversation, _now: int) -> bool:
    return conv.person.unread_count > 2


def _question_in_last(conv: Conversation, _now: int) -> bool:
    last = conv.last_message
    return last is not None and "?" in last.snippet


def _document_in_last(conv: Conversation, _now: int) -> bool:
    last = conv.last_message
    if last is None:
        return False
    snippet = last.snippet.lower()
    return "document" in snippet or "review" in snippet


def _stale(conv: Conversation, now: int) -> bool:
    last = conv.last_message
    return last is not None and now - last.internal_date > _WEEK_MS


DEFAULT_ACTION_RULES: tuple[ActionRule, ...] = (
    ActionRule("urgent-address", "Urgent: Respond ASAP", _urgent_address),
    ActionRule("many-unread", "Reply: Multiple unread messages", _many_unread),
    ActionRule("question", "Reply: Question asked", _question_in_last),
    ActionRule("document", "Review: Document sent", _document_in_last),
    ActionRule("stale", "Waiting: No response in a week", _stale),
)


# ── Grouping ───────────────────────────────────────────────────────────────────


def is_conversational(
    message: Message,
    policy: PromotionalPolicy = DEFAULT_PROMOTIONAL_POLICY,
) -> bool:
    """True if the message may join a conversation.

    Unclassified messages (is_real_human None) are kept: hiding a person is
    worse than showing a stray notification.
    """
    return message.is_real_human is not False and not is_promotional(message, policy)


def group_messages(
    messages: list[Message],
    owner_email: str,
    existing: dict[str, Conversation] | None = None,
    *,
    now_ms: int | None = None,
    policy: PromotionalPolicy = DEFAULT_PROMOTIONAL_POLICY,
    action_rules: tuple[ActionRule, ...] = DEFAULT_ACTION_RULES,
) -> dict[str, Conversation]:
    """Group messages by counterparty and merge the result into `existing`.

    Never mutates `existing` or the Conversation objects in it; the caller
    swaps the returned dict in as the new live state.  Conversations only
    present in `existing` are kept, and user-set status / contact_id on
    shared keys survive.  A message rejected in this batch is also removed
    from `existing`'s copies, so a late non-human verdict hides it.
    """
    now = now_ms if now_ms is not None else int(time.time() * 1000)
    fresh: dict[str, Conversation] = {}
    rejected: set[str] = set()

    for message in messages:
        if not is_conversational(message, policy):
            rejected.add(message.id)
            continue
        person = extract_person(message.headers, owner_email)
        if person is None:
            key = placeholder_key(message.subject)
            person = Person(email=key, name=message.subject or None)
        else:
            key = person.email.lower()

        conv = fresh.get(key)
        if conv is None:
            conv = fresh[key] = Conversation(person=person)
        if message.id not in conv.message_ids():
            conv.messages.append(message)

    merged = _merge(fresh, existing or {}, rejected)
    for conv in merged.values():
        _finalize(conv)
        conv.person.action = suggest_action(conv, now, action_rules)
    return merged


def _merge(
    fresh: dict[str, Conversation],
    existing: dict[str, Conversation],
    rejected: set[str],
) -> dict[str, Conversation]:
    merged: dict[str, Conversation] = {}

    for key, old in existing.items():
        if key in fresh:
            continue
        kept = [m for m in old.messages if m.id not in rejected]
        if kept:
            merged[key] = Conversation(person=replace(old.person), messages=kept)

    for key, new in fresh.items():
        old = existing.get(key)
        if old is None:
            merged[key] = new
            continue

        new_ids = new.message_ids()
        carried = [m for m in old.messages if m.id not in new_ids and m.id not in rejected]
        messages = new.messages + carried
        messages = [m for m in messages if not _is_confirmed_provisional(m, messages)]

        person = replace(
            new.person,
            name=new.person.name or old.person.name,
            status=old.person.status,
            contact_id=old.person.contact_id,
        )
        merged[key] = Conversation(person=person, messages=messages)

    return merged


def _is_confirmed_provisional(message: Message, messages: list[Message]) -> bool:
    """True if a provider-sourced SENT copy has arrived for a provisional message."""
    if not message.is_provisional:
        return False
    threshold = message.internal_date - PROVISIONAL_SKEW_MS
    return any(
        not other.is_provisional
        and SENT in other.labels
        and other.internal_date >= threshold
        for other in messages
    )


def _finalize(conv: Conversation) -> None:
    """Sort oldest-first and recompute the person's summary fields."""
    conv.messages.sort(key=lambda m: m.internal_date)
    refresh_summary(conv)


def refresh_summary(conv: Conversation) -> None:
    """Set last date/snippet and unread count from the current message list."""
    conv.person.unread_count = sum(1 for m in conv.messages if m.is_unread)
    last = conv.last_message
    if last is None:
        return
    conv.person.last_message_date = last.date
    conv.person.last_message_snippet = last.snippet


def suggest_action(
    conv: Conversation,
    now_ms: int,
    action_rules: tuple[ActionRule, ...] = DEFAULT_ACTION_RULES,
) -> str | None:
    """AI action from the newest message that has one, else the first matching rule."""
    for message in reversed(conv.messages):
        if message.action_needed:
            return message.action_needed
    for rule in action_rules:
        if rule.applies(conv, now_ms):
            return rule.action
    return None
