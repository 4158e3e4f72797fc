from __future__ import annotations

import csv
import random
from collections.abc import Sequence
from pathlib import Path

CSV_COLUMNS = ["id", "name", "email", "phone", "address", "organization", "organizationId", "source", "segment"]

_FIRST_NAMES = [
    "Maria",
    "Luke",
    "Alex",
    "Sofia",
    "Maya",
    "Daniel",
    "Emma",
    "Chris",
    "Olivia",
    "Noah",
    "Jon",
    "Martha",
]
_LAST_NAMES = [
    "Smith",
    "Johnson",
    "Brown",
    "de Souza",
    "van Dijk",
    "Wilson",
    "Davies",
    "Martin",
    "da Silva",
]
_STREETS = [
    "Main Street",
    "Maple Road",
    "King Avenue",
    "River Lane",
    "Elm Street",
    "Station Boulevard",
]
_DIRECTIONS = ["North", "South", "East", "West", ""]
_TOWNS = ["Springfield", "Riverton", "Lakeside", "Fairview", "Georgetown"]
_DOMAINS = ["gmail.com", "outlook.com", "example.com", "mail.example.org"]
_COMPANY_WORDS = ["Acme", "Globex", "Initech", "Umbrella", "Hooli", "Vandelay", "Stark", "Wayne"]
_COMPANY_SUFFIXES = ["Inc", "LLC", "Ltd", "Group", "Holdings"]
_SOURCES = ["crm", "billing", "web_signup", "partner_feed"]


class ReferenceDatasetGenerator:
    """Generate synthetic person/organization rows (with intentional dupes) for tests and benchmarks."""

    def __init__(self, seed: int = 7) -> None:
        self._rng = random.Random(seed)

    def generate(
        self,
        size: int,
        duplicate_rate: float = 0.15,
        organization_rate: float = 0.2,
    ) -> list[dict[str, str]]:
        if size <= 0:
            return []

        unique_count = int(size * (1.0 - duplicate_rate))
        unique_count = max(1, min(unique_count, size))

        rows: list[dict[str, str]] = []
        for i in range(unique_count):
            if self._rng.random() < organization_rate:
                rows.append(self._organization(i))
            else:
                rows.append(self._person(i))

        while len(rows) < size:
            original = self._rng.choice(rows[:unique_count])
            duplicate = dict(original)
            duplicate["id"] = f"rec_{len(rows):07d}"
            duplicate["source"] = self._rng.choice(_SOURCES)
            duplicate["segment"] = "duplicate"
            self._perturb(duplicate)
            rows.append(duplicate)

        self._rng.shuffle(rows)
        return rows

    def _person(self, idx: int) -> dict[str, str]:
        first_name = self._rng.choice(_FIRST_NAMES)
        last_name = self._rng.choice(_LAST_NAMES)
        email_local = f"{first_name}.{last_name.replace(' ', '')}{idx % 97}".lower()
        return {
            "id": f"rec_{idx:07d}",
            "name": f"{first_name} {last_name}",
            "email": f"{email_local}@{self._rng.choice(_DOMAINS)}",
            "phone": self._phone(idx),
            "address": self._address(idx),
            "organization": "",
            "organizationId": "",
            "source": self._rng.choice(_SOURCES),
            "segment": "person",
        }

    def _organization(self, idx: int) -> dict[str, str]:
        word = self._rng.choice(_COMPANY_WORDS)
        suffix = self._rng.choice(_COMPANY_SUFFIXES)
        name = f"{word} {self._rng.choice(_TOWNS)} {suffix}"
        return {
            "id": f"rec_{idx:07d}",
            "name": name,
            "email": f"info{idx % 89}@{word.lower()}.example.com",
            "phone": self._phone(idx),
            "address": self._address(idx),
            "organization": name,
            "organizationId": f"ORG-{10000 + idx:06d}",
            "source": self._rng.choice(_SOURCES),
            "segment": "organization",
        }

    def _phone(self, idx: int) -> str:
        return f"({200 + idx % 700:03d}) 555-{idx % 10000:04d}"

    def _address(self, idx: int) -> str:
        direction = self._rng.choice(_DIRECTIONS)
        street = self._rng.choice(_STREETS)
        parts = [str(1 + idx % 980), direction, street, self._rng.choice(_TOWNS)]
        return " ".join(part for part in parts if part)

    def _perturb(self, row: dict[str, str]) -> None:
        mutation = self._rng.choice(["email", "name", "address", "phone", "mixed"])

        if mutation in {"email", "mixed"} and row["email"]:
            row["email"] = self._email_variant(row["email"])
        if mutation in {"name", "mixed"}:
            row["name"] = self._name_variant(row["name"])
        if mutation in {"address", "mixed"} and row["address"]:
            row["address"] = self._address_variant(row["address"])
        if mutation == "phone" and row["phone"]:
            digits = "".join(ch for ch in row["phone"] if ch.isdigit())
            row["phone"] = self._rng.choice([f"+1 {digits}", f"1-{digits}", digits])

    def _email_variant(self, email: str) -> str:
        variant = self._rng.choice(["case", "padding", "drop"])
        if variant == "case":
            local, domain = email.split("@", maxsplit=1)
            return f"{local.capitalize()}@{domain.upper()}"
        if variant == "padding":
            return f"  {email} "
        return ""

    def _name_variant(self, name: str) -> str:
        variant = self._rng.choice(["case", "typo", "spacing"])
        if variant == "case":
            return self._rng.choice([name.upper(), name.lower()])
        if variant == "typo" and len(name) > 5:
            # Swap two adjacent letters away from the prefix.
            pos = self._rng.randrange(3, len(name) - 1)
            if name[pos] != " " and name[pos + 1] != " ":
                return f"{name[:pos]}{name[pos + 1]}{name[pos]}{name[pos + 2:]}"
            return name
        return "  ".join(name.split())

    def _address_variant(self, address: str) -> str:
        replacements = {"Street": "St", "Road": "Rd", "Avenue": "Ave", "Lane": "Ln", "Boulevard": "Blvd"}
        for long_form, short_form in replacements.items():
            if long_form in address:
                return address.replace(long_form, short_form).lower()
        return address.upper()


def write_csv(path: Path, rows: Sequence[dict[str, str]], columns: Sequence[str] = CSV_COLUMNS) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=list(columns))
        writer.writeheader()
        for row in rows:
            writer.writerow({column: row.get(column, "") for column in columns})
