"""Tests for address parsing and counterparty extraction."""

import pytest

from chatmail.processing.headers import (
    AddressForm,
    extract_person,
    parse_address,
    placeholder_key,
    split_addresses,
)

OWNER = "me@example.com"


# ── parse_address ──────────────────────────────────────────────────────────────


class TestParseAddress:
    def test_angle_form(self) -> None:
        parsed = parse_address("Alice Smith <alice@example.com>")
        assert parsed.form is AddressForm.ANGLE
        assert parsed.email == "alice@example.com"
        assert parsed.name == "Alice Smith"

    def test_angle_form_with_quoted_name(self) -> None:
        parsed = parse_address('"Smith, Alice" <alice@example.com>')
        assert parsed.email == "alice@example.com"
        assert parsed.name == "Smith, Alice"

    def test_angle_form_without_name(self) -> None:
        parsed = parse_address("<alice@example.com>")
        assert parsed.form is AddressForm.ANGLE
        assert parsed.name is None

    def test_parenthetical_form(self) -> None:
        parsed = parse_address("bob@example.com (Bob Jones)")
        assert parsed.form is AddressForm.PARENTHETICAL
        assert parsed.email == "bob@example.com"
        assert parsed.name == "Bob Jones"

    def test_bare_form(self) -> None:
        parsed = parse_address("  carol@example.com ")
        assert parsed.form is AddressForm.BARE
        assert parsed.email == "carol@example.com"
        assert parsed.name is None

    def test_unparseable_keeps_raw_value(self) -> None:
        parsed = parse_address("Undisclosed recipients")
        assert parsed.form is AddressForm.UNPARSEABLE
        assert parsed.email == "Undisclosed recipients"
        assert parsed.usable

    def test_empty_value_is_not_usable(self) -> None:
        parsed = parse_address("   ")
        assert parsed.form is AddressForm.UNPARSEABLE
        assert not parsed.usable


class TestSplitAddresses:
    def test_splits_on_commas(self) -> None:
        assert split_addresses("a@x.com, b@x.com") == ["a@x.com", "b@x.com"]

    def test_ignores_commas_inside_quotes(self) -> None:
        value = '"Smith, Alice" <alice@x.com>, bob@x.com'
        assert split_addresses(value) == ['"Smith, Alice" <alice@x.com>', "bob@x.com"]

    def test_drops_empty_entries(self) -> None:
        assert split_addresses("a@x.com,, ") == ["a@x.com"]


# ── extract_person ─────────────────────────────────────────────────────────────


class TestExtractPerson:
    def test_inbound_uses_sender(self) -> None:
        person = extract_person(
            [("From", "Alice <alice@example.com>"), ("To", OWNER)], OWNER
        )
        assert person is not None
        assert person.email == "alice@example.com"
        assert person.name == "Alice"

    def test_outbound_uses_first_other_recipient(self) -> None:
        person = extract_person(
            [("From", f"Me <{OWNER}>"), ("To", f"{OWNER}, Bob <bob@example.com>")], OWNER
        )
        assert person is not None
        assert person.email == "bob@example.com"

    def test_owner_comparison_is_case_insensitive(self) -> None:
        person = extract_person(
            [("From", "ME@Example.com"), ("To", "dave@example.com")], OWNER
        )
        assert person is not None
        assert person.email == "dave@example.com"

    @pytest.mark.parametrize(
        "headers",
        [
            [],
            [("From", OWNER), ("To", OWNER)],
            [("From", ""), ("To", "")],
        ],
    )
    def test_returns_none_without_counterparty(self, headers: list[tuple[str, str]]) -> None:
        assert extract_person(headers, OWNER) is None


class TestPlaceholderKey:
    def test_slugifies_subject(self) -> None:
        assert placeholder_key("Re: Q3 Plans!") == "unknown:re-q3-plans"

    def test_same_subject_same_key(self) -> None:
        assert placeholder_key("Hello World") == placeholder_key("hello   world")

    def test_empty_subject(self) -> None:
        assert placeholder_key("") == "unknown:no-subject"
