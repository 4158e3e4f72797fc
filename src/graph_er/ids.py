"""Identifier helpers."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

# Fixed namespace so derived ids are stable across processes and releases.
GRAPH_ER_NAMESPACE = uuid.UUID("6f1c3f52-9a0e-5d4b-8c57-3b2f0f7d1e90")


def generate_batch_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("batch-%Y%m%dT%H%M%S%fZ")


def row_record_id(batch_id: str, row_number: int) -> str:
    """Id for a row that arrived without one. CSV ids containing `#row` are rejected by validation."""
    return f"{batch_id}#row{row_number}"


def link_id(batch_id: str, source_record_id: str, target_record_id: str, method: str) -> str:
    return str(uuid.uuid5(GRAPH_ER_NAMESPACE, f"link|{batch_id}|{source_record_id}|{target_record_id}|{method}"))


def cluster_id(batch_id: str, record_ids: Iterable[str]) -> str:
    members = "|".join(sorted(record_ids))
    return str(uuid.uuid5(GRAPH_ER_NAMESPACE, f"cluster|{batch_id}|{members}"))


def golden_id(natural_key: str) -> str:
    return str(uuid.uuid5(GRAPH_ER_NAMESPACE, f"golden|{natural_key}"))


def audit_entry_id() -> str:
    return str(uuid.uuid4())
