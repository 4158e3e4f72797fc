"""Pure, deterministic canonicalization of entity fields.

Every function accepts ``None`` or any string and returns either the
canonical form or ``""``. Nothing here raises on bad input, and every
normalizer is idempotent: feeding a canonical value back in returns it
unchanged.
"""

from __future__ import annotations

import re

MAX_NAME_LENGTH = 255
MAX_ADDRESS_LENGTH = 500
MIN_PHONE_DIGITS = 7
MAX_EMAIL_LENGTH = 320
MAX_PHONE_LENGTH = 32
MAX_IDENTIFIER_LENGTH = 255

NAME_PARTICLES = frozenset({"de", "da", "do", "dos", "das", "del", "von", "der", "den"})
ADDRESS_ABBREVIATIONS = frozenset(
    {"st", "rd", "th", "ave", "blvd", "dr", "ln", "ct", "pl", "apt", "ste", "fl", "rm"}
)
ADDRESS_DIRECTIONALS = frozenset(
    {"n", "s", "e", "w", "ne", "nw", "se", "sw", "north", "south", "east", "west"}
)

# RFC 5322 dot-atom local part and a hostname-shaped domain with at least one dot.
_ATEXT = r"[a-z0-9!#$%&'*+/=?^_`{|}~-]"
_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
_EMAIL_RE = re.compile(rf"^{_ATEXT}+(?:\.{_ATEXT}+)*@{_LABEL}(?:\.{_LABEL})+$")


def collapse_whitespace(value: str | None) -> str:
    if not value or not isinstance(value, str):
        return ""
    return " ".join(value.split())


def _case_char(char: str, upper: bool) -> str:
    # Characters whose case mapping changes length (e.g. "ß" -> "SS") keep their form.
    mapped = char.upper() if upper else char.lower()
    return mapped if len(mapped) == 1 else char


def _capitalize(token: str) -> str:
    return "".join(_case_char(char, upper=index == 0) for index, char in enumerate(token))


def _truncate(value: str, limit: int) -> str:
    return value[:limit].rstrip()


def normalize_name(name: str | None) -> str:
    collapsed = _truncate(collapse_whitespace(name), MAX_NAME_LENGTH)
    if not collapsed:
        return ""

    tokens: list[str] = []
    for index, token in enumerate(collapsed.split(" ")):
        lowered = token.lower()
        if index > 0 and lowered in NAME_PARTICLES:
            tokens.append(lowered)
        elif lowered == "van":
            tokens.append("Van")
        else:
            tokens.append(_capitalize(token))
    return " ".join(tokens)


def normalize_email(email: str | None) -> str:
    if not email or not isinstance(email, str):
        return ""
    candidate = email.strip().lower()
    if candidate.count("@") != 1:
        return ""
    local, domain = candidate.split("@")
    if not local or not domain or "." not in domain:
        return ""
    if not _EMAIL_RE.match(candidate):
        return ""
    return candidate


def normalize_phone(phone: str | None) -> str:
    if not phone or not isinstance(phone, str):
        return ""
    stripped = phone.strip()
    international = stripped.startswith("+")
    digits = re.sub(r"\D", "", stripped).strip("0")

    if not international and len(digits) == 11 and digits.startswith("1"):
        # North American number written with its country digit.
        digits = digits[1:].lstrip("0")

    if len(digits) < MIN_PHONE_DIGITS:
        return ""
    return f"+{digits}" if international else digits


def normalize_address(address: str | None) -> str:
    collapsed = _truncate(collapse_whitespace(address), MAX_ADDRESS_LENGTH)
    if not collapsed:
        return ""

    tokens: list[str] = []
    for token in collapsed.split(" "):
        lowered = token.lower()
        if lowered in ADDRESS_ABBREVIATIONS or lowered in ADDRESS_DIRECTIONALS:
            tokens.append(lowered.upper())
        else:
            tokens.append(_capitalize(token))
    return " ".join(tokens)


def normalize_organization_id(organization_id: str | None) -> str:
    return collapse_whitespace(organization_id).lower()


def create_natural_key(
    name: str | None,
    email: str | None = None,
    phone: str | None = None,
    organization_id: str | None = None,
) -> str:
    org_id = normalize_organization_id(organization_id)
    if org_id:
        return f"org:{org_id}"

    parts = [normalize_name(name)]
    normalized_email = normalize_email(email)
    if normalized_email:
        parts.append(f"email:{normalized_email}")
    normalized_phone = normalize_phone(phone)
    if normalized_phone:
        parts.append(f"phone:{normalized_phone}")
    return "|".join(parts).lower()
