from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Mapping, Sequence

from graph_er.models import RawRecord
from graph_er.normalize import (
    MAX_ADDRESS_LENGTH,
    MAX_EMAIL_LENGTH,
    MAX_IDENTIFIER_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PHONE_LENGTH,
    normalize_email,
    normalize_phone,
)


class FieldTag(StrEnum):
    ID = "ID"
    SOURCE_ID = "SOURCE_ID"
    NAME = "NAME"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    ADDRESS = "ADDRESS"
    ORGANIZATION_NAME = "ORGANIZATION_NAME"
    ORGANIZATION_ID = "ORGANIZATION_ID"
    SOURCE = "SOURCE"
    BATCH_ID = "BATCH_ID"


@dataclass(frozen=True)
class RecordSchema:
    """Maps (lower-cased) CSV header names to stable semantic tags.

    Columns listed for a tag are synonyms in priority order: the first
    non-empty one wins.
    """

    tag_to_columns: Mapping[FieldTag, tuple[str, ...]]

    @classmethod
    def from_mapping(cls, mapping: Mapping[FieldTag, Sequence[str]]) -> "RecordSchema":
        frozen = {tag: tuple(column.lower() for column in columns) for tag, columns in mapping.items()}
        return cls(tag_to_columns=frozen)

    def columns_for(self, tag: FieldTag) -> tuple[str, ...]:
        return self.tag_to_columns.get(tag, ())

    def recognized_columns(self) -> frozenset[str]:
        return frozenset(column for columns in self.tag_to_columns.values() for column in columns)

    def value_for(self, row: Mapping[str, object], tag: FieldTag) -> str:
        for column in self.columns_for(tag):
            value = row.get(column)
            if value is None:
                continue
            text = str(value).strip()
            if text:
                return text
        return ""


CSV_SCHEMA = RecordSchema.from_mapping(
    {
        FieldTag.ID: ["id"],
        FieldTag.SOURCE_ID: ["sourceid", "source_id"],
        FieldTag.NAME: ["name", "fullname", "full_name"],
        FieldTag.EMAIL: ["email", "email_address"],
        FieldTag.PHONE: ["phone", "phonenumber", "phone_number"],
        FieldTag.ADDRESS: ["address"],
        FieldTag.ORGANIZATION_NAME: ["organizationname", "organization_name", "organization"],
        FieldTag.ORGANIZATION_ID: ["organizationid", "organization_id"],
        FieldTag.SOURCE: ["source"],
        FieldTag.BATCH_ID: ["batchid", "batch_id"],
    }
)


def validate_record(record: RawRecord) -> list[str]:
    """Returns a list of validation problems. Empty list means valid."""
    problems: list[str] = []

    if not record.name.strip():
        problems.append("Name is required")
    elif len(record.name) > MAX_NAME_LENGTH:
        problems.append(f"Name exceeds {MAX_NAME_LENGTH} characters")

    if not record.source.strip():
        problems.append("Source is required")
    if not record.batch_id.strip():
        problems.append("Batch ID is required")

    if record.email and not normalize_email(record.email):
        problems.append(f"Invalid email address: {record.email!r}")
    elif len(record.email.strip()) > MAX_EMAIL_LENGTH:
        problems.append(f"Email exceeds {MAX_EMAIL_LENGTH} characters")
    if len(normalize_phone(record.phone)) > MAX_PHONE_LENGTH:
        problems.append(f"Phone exceeds {MAX_PHONE_LENGTH} characters")

    for label, value in (
        ("Id", record.external_id),
        ("Source ID", record.source_id),
        ("Source", record.source),
        ("Batch ID", record.batch_id),
        ("Organization ID", record.organization_id),
    ):
        if value and len(value) > MAX_IDENTIFIER_LENGTH:
            problems.append(f"{label} exceeds {MAX_IDENTIFIER_LENGTH} characters")

    if len(record.organization_name) > MAX_NAME_LENGTH:
        problems.append(f"Organization name exceeds {MAX_NAME_LENGTH} characters")
    if len(record.address) > MAX_ADDRESS_LENGTH:
        problems.append(f"Address exceeds {MAX_ADDRESS_LENGTH} characters")

    return problems
