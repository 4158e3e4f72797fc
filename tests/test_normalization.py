import pytest

from graph_er.normalize import (
    create_natural_key,
    normalize_address,
    normalize_email,
    normalize_name,
    normalize_organization_id,
    normalize_phone,
)


def test_normalize_name_title_cases_and_collapses_whitespace() -> None:
    assert normalize_name("john doe") == "John Doe"
    assert normalize_name("MARY SMITH") == "Mary Smith"
    assert normalize_name("  john   doe  ") == "John Doe"


def test_normalize_name_keeps_particles_lowercase_after_first_token() -> None:
    assert normalize_name("jose da silva") == "Jose da Silva"
    assert normalize_name("van der berg") == "Van der Berg"
    assert normalize_name("ludwig VON beethoven") == "Ludwig von Beethoven"
    assert normalize_name("de la cruz") == "De La Cruz"


def test_normalize_name_truncates_to_255_characters() -> None:
    normalized = normalize_name("a" * 300)
    assert len(normalized) == 255


@pytest.mark.parametrize("value", [None, "", "   "])
def test_normalizers_return_empty_for_missing_input(value) -> None:
    assert normalize_name(value) == ""
    assert normalize_email(value) == ""
    assert normalize_phone(value) == ""
    assert normalize_address(value) == ""
    assert normalize_organization_id(value) == ""


def test_normalize_email_lowercases_and_trims() -> None:
    assert normalize_email("  John.Doe@Example.COM ") == "john.doe@example.com"


@pytest.mark.parametrize(
    "value",
    [
        "<script>alert(1)</script>@x.com",
        "no-at-sign.example.com",
        "two@@example.com",
        "a@b@example.com",
        "@example.com",
        "user@",
        "user@localhost",
        "user@-bad-.com",
        "first..last@example.com",
    ],
)
def test_normalize_email_rejects_malformed_addresses(value: str) -> None:
    assert normalize_email(value) == ""


def test_normalize_phone_handles_north_american_formats() -> None:
    assert normalize_phone("(555) 123-4567") == "5551234567"
    assert normalize_phone("1-555-123-4567") == "5551234567"
    assert normalize_phone("+1 555 123 4567") == "+15551234567"


def test_normalize_phone_rejects_short_numbers() -> None:
    assert normalize_phone("12") == ""
    assert normalize_phone("555-12") == ""


def test_normalize_address_uppercases_abbreviations_and_directionals() -> None:
    assert normalize_address("123 main st") == "123 Main ST"
    assert normalize_address("456 oak ave n") == "456 Oak AVE N"
    assert normalize_address("100 first st apt 5") == "100 First ST APT 5"
    assert normalize_address("9  north   river blvd") == "9 NORTH River BLVD"


@pytest.mark.parametrize(
    "normalizer, value",
    [
        (normalize_name, "  maria DOS santos van HALEN "),
        (normalize_name, "x" * 254 + " de"),
        (normalize_name, "\u00dfmith"),
        (normalize_name, "\u0130stanbul stra\u00dfe \u0130lhan"),
        (normalize_address, "12 stra\u00dfe ave"),
        (normalize_email, " Someone+Tag@Mail.Example.ORG "),
        (normalize_phone, "+44 (0)20 7946 0958"),
        (normalize_phone, "1 (011) 555-0199"),
        (normalize_phone, "001-555-0199-00"),
        (normalize_address, "1600 pennsylvania ave nw, washington dc"),
        (normalize_organization_id, "  ORG-  42 "),
    ],
)
def test_normalizers_are_idempotent(normalizer, value: str) -> None:
    once = normalizer(value)
    assert normalizer(once) == once


def test_natural_key_prefers_organization_id() -> None:
    assert create_natural_key("Acme Inc", "info@acme.com", "5551234567", " ORG-42 ") == "org:org-42"


def test_natural_key_joins_present_tags() -> None:
    assert create_natural_key("John Doe", "John@Example.com") == "john doe|email:john@example.com"
    assert create_natural_key("John Doe", phone="(555) 123-4567") == "john doe|phone:5551234567"
    assert create_natural_key("John Doe") == "john doe"


def test_natural_key_ignores_case_and_whitespace_differences() -> None:
    left = create_natural_key("John   DOE", " JOHN@example.com", "555 123 4567")
    right = create_natural_key("john doe", "john@EXAMPLE.com ", "(555) 123-4567")
    assert left == right


def test_casing_never_changes_length() -> None:
    assert normalize_name("\u00dfmith") == "\u00dfmith"
    assert normalize_name("aNNA \u0130LHAN") == "Anna \u0130lhan"
    assert len(normalize_name("\u00df" * 300)) == 255
    assert len(normalize_address("\u0130" * 600)) == 500
