from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from graph_er.errors import RecordValidationError
from graph_er.ids import row_record_id
from graph_er.models import NormalizedRecord, RawRecord
from graph_er.normalize import (
    create_natural_key,
    normalize_address,
    normalize_email,
    normalize_name,
    normalize_organization_id,
    normalize_phone,
)
from graph_er.schema import validate_record

DEFAULT_TRANSFORMS: dict[str, Callable[[str], str]] = {
    "name": normalize_name,
    "email": normalize_email,
    "phone": normalize_phone,
    "address": normalize_address,
    "organization_name": normalize_name,
    "organization_id": normalize_organization_id,
}


@dataclass(slots=True)
class ValidationOutcome:
    valid: list[RawRecord] = field(default_factory=list)
    invalid: list[RecordValidationError] = field(default_factory=list)


class RecordValidator:
    """Splits rows into valid records and per-row validation errors."""

    def validate(self, records: Sequence[RawRecord]) -> ValidationOutcome:
        outcome = ValidationOutcome()
        seen_ids: set[str] = set()
        generated_ids = {
            row_record_id(record.batch_id, record.row_number) for record in records if not record.external_id
        }
        for record in records:
            problems = validate_record(record)
            if record.external_id:
                if record.external_id in generated_ids:
                    problems.append(f"Id {record.external_id!r} collides with a generated row id")
                elif record.external_id in seen_ids:
                    problems.append(f"Duplicate id {record.external_id!r} within batch")
                else:
                    seen_ids.add(record.external_id)
            if problems:
                outcome.invalid.append(RecordValidationError(record.row_number, problems))
            else:
                outcome.valid.append(record)
        return outcome


class FunctionalCleaner:
    """Composable cleaner mapping each entity field through a canonicalizing transform."""

    def __init__(self, transforms: dict[str, Callable[[str], str]] | None = None) -> None:
        self._transforms = {**DEFAULT_TRANSFORMS, **(transforms or {})}

    def clean(self, records: Sequence[RawRecord]) -> list[NormalizedRecord]:
        cleaned: list[NormalizedRecord] = []
        for record in records:
            values = {
                name: transform(getattr(record, name)) for name, transform in self._transforms.items()
            }
            cleaned.append(
                NormalizedRecord(
                    record_id=record.external_id or row_record_id(record.batch_id, record.row_number),
                    name=values["name"],
                    email=values["email"],
                    phone=values["phone"],
                    address=values["address"],
                    organization_name=values["organization_name"],
                    organization_id=values["organization_id"],
                    source=record.source,
                    source_id=record.source_id,
                    batch_id=record.batch_id,
                    natural_key=create_natural_key(
                        values["name"], values["email"], values["phone"], values["organization_id"]
                    ),
                    metadata=dict(record.metadata),
                )
            )
        return cleaned
