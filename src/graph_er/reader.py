from __future__ import annotations

import csv
import io
from pathlib import Path

from graph_er.errors import BatchInputError
from graph_er.models import MetadataValue, RawRecord
from graph_er.schema import CSV_SCHEMA, FieldTag, RecordSchema

DEFAULT_SOURCE = "csv_upload"


def read_input_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise BatchInputError(f"Cannot read input file {path}: {exc}") from exc


def parse_csv(content: bytes, batch_id: str, schema: RecordSchema = CSV_SCHEMA) -> list[RawRecord]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise BatchInputError(f"Input is not valid UTF-8: {exc}") from exc

    reader = csv.DictReader(io.StringIO(text, newline=""))
    try:
        header = reader.fieldnames
        if not header:
            raise BatchInputError("CSV header row is missing")
        # Header names are matched case-insensitively.
        reader.fieldnames = [(column or "").strip().lower() for column in header]

        recognized = schema.recognized_columns()
        records: list[RawRecord] = []
        for row_number, row in enumerate(reader, start=1):
            records.append(_to_raw_record(row, row_number, batch_id, schema, recognized))
    except csv.Error as exc:
        raise BatchInputError(f"Malformed CSV: {exc}") from exc
    return records


def _to_raw_record(
    row: dict,
    row_number: int,
    batch_id: str,
    schema: RecordSchema,
    recognized: frozenset[str],
) -> RawRecord:
    metadata: dict[str, MetadataValue] = {}
    for column, value in row.items():
        # DictReader files surplus cells under a None key.
        if column is None or not column or column in recognized:
            continue
        metadata[column] = value

    return RawRecord(
        row_number=row_number,
        external_id=schema.value_for(row, FieldTag.ID) or None,
        source_id=schema.value_for(row, FieldTag.SOURCE_ID) or None,
        name=schema.value_for(row, FieldTag.NAME),
        email=schema.value_for(row, FieldTag.EMAIL),
        phone=schema.value_for(row, FieldTag.PHONE),
        address=schema.value_for(row, FieldTag.ADDRESS),
        organization_name=schema.value_for(row, FieldTag.ORGANIZATION_NAME),
        organization_id=schema.value_for(row, FieldTag.ORGANIZATION_ID),
        source=schema.value_for(row, FieldTag.SOURCE) or DEFAULT_SOURCE,
        batch_id=batch_id,
        metadata=metadata,
    )
