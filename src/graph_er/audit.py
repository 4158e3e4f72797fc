"""Append-only audit trail of pipeline stages, plus reports derived from it."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from graph_er.ids import audit_entry_id
from graph_er.interfaces import AuditStore, GraphStore
from graph_er.logging import log_event
from graph_er.models import AuditEntry, AuditOperation, utc_now

logger = logging.getLogger(__name__)

QUALITY_SCORE_CEILING = 0.9
QUALITY_LIMIT = 50
HIGH_RISK_BELOW = 0.7
MEDIUM_RISK_BELOW = 0.8


@dataclass(frozen=True, slots=True)
class FalsePositiveCandidate:
    source_record_id: str
    target_record_id: str
    score: float
    reason: str
    risk: str


@dataclass(frozen=True, slots=True)
class FalseNegativeCandidate:
    source_record_id: str
    target_record_id: str
    similarity: float
    reason: str


@dataclass(slots=True)
class MatchQualityReport:
    potential_false_positives: list[FalsePositiveCandidate] = field(default_factory=list)
    # Detecting missed matches needs a second pass over unlinked pairs; not implemented.
    potential_false_negatives: list[FalseNegativeCandidate] = field(default_factory=list)


@dataclass(slots=True)
class BatchAuditSummary:
    batch_id: str
    input_hash: str
    start_time: datetime | None
    end_time: datetime | None = None
    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    duplicates_found: int = 0
    clusters_created: int = 0
    golden_records_created: int = 0
    processing_time_ms: int = 0
    errors: list[str] = field(default_factory=list)
    false_positives: int = 0
    false_negatives: int | None = None
    manual_reviews: int = 0


def calculate_input_hash(content: bytes | str) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def risk_for_score(score: float) -> str:
    if score < HIGH_RISK_BELOW:
        return "high"
    if score < MEDIUM_RISK_BELOW:
        return "medium"
    return "low"


def audit_entry_to_dict(entry: AuditEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "batchId": entry.batch_id,
        "operation": entry.operation.value,
        "inputHash": entry.input_hash,
        "timestamp": entry.timestamp.isoformat(),
        "duration": entry.duration_ms,
        "metadata": dict(entry.metadata),
        "errorMessage": entry.error_message,
    }


class AuditTrail:
    """Records stage outcomes and answers questions about them.

    Writing is best effort: a failing audit store is logged and never
    interrupts the batch being audited. Reads go straight to the stores and
    propagate their errors.
    """

    def __init__(self, audit_store: AuditStore, graph_store: GraphStore) -> None:
        self._audit_store = audit_store
        self._graph_store = graph_store

    calculate_input_hash = staticmethod(calculate_input_hash)

    def log_stage(
        self,
        batch_id: str,
        operation: AuditOperation,
        input_hash: str,
        metadata: dict[str, Any] | None = None,
        duration_ms: int | None = None,
        error: str | None = None,
    ) -> AuditEntry | None:
        entry = AuditEntry(
            id=audit_entry_id(),
            batch_id=batch_id,
            operation=operation,
            input_hash=input_hash,
            timestamp=utc_now(),
            metadata=dict(metadata or {}),
            duration_ms=duration_ms,
            error_message=error,
        )
        try:
            self._audit_store.append(entry)
        except Exception:
            logger.exception(
                "Failed to append audit entry",
                extra={"batch_id": batch_id, "operation": operation.value, "status": "audit_failed"},
            )
            return None

        log_event(
            logger,
            "Audit entry appended",
            batch_id=batch_id,
            operation=operation.value,
            duration_ms=duration_ms,
            status="failed" if error else "ok",
        )
        return entry

    def get_trail(self, batch_id: str) -> list[AuditEntry]:
        return self._audit_store.entries_for_batch(batch_id)

    def analyze_match_quality(self, batch_id: str) -> MatchQualityReport:
        weak_links = sorted(
            (link for link in self._graph_store.links_for_batch(batch_id) if link.score < QUALITY_SCORE_CEILING),
            key=lambda link: link.score,
        )[:QUALITY_LIMIT]
        return MatchQualityReport(
            potential_false_positives=[
                FalsePositiveCandidate(
                    source_record_id=link.source_record_id,
                    target_record_id=link.target_record_id,
                    score=link.score,
                    reason=str(link.metadata.get("reason") or "Low confidence match"),
                    risk=risk_for_score(link.score),
                )
                for link in weak_links
            ]
        )

    def generate_report(self, batch_id: str) -> BatchAuditSummary | None:
        trail = self.get_trail(batch_id)
        if not trail:
            return None
        quality = self.analyze_match_quality(batch_id)

        start = next((entry for entry in trail if entry.operation == AuditOperation.START), None)
        end = next((entry for entry in trail if entry.operation == AuditOperation.COMPLETE), None)
        summary = BatchAuditSummary(
            batch_id=batch_id,
            input_hash=start.input_hash if start else "",
            start_time=start.timestamp if start else None,
            end_time=end.timestamp if end else None,
            false_positives=len(quality.potential_false_positives),
        )

        for entry in trail:
            meta = entry.metadata
            if entry.operation == AuditOperation.VALIDATION_COMPLETE:
                summary.valid_records = int(meta.get("validRecords") or 0)
                summary.invalid_records = int(meta.get("invalidRecords") or 0)
                summary.total_records = summary.valid_records + summary.invalid_records
            elif entry.operation == AuditOperation.DEDUPLICATION_COMPLETE:
                summary.duplicates_found = int(meta.get("duplicatesFound") or 0)
            elif entry.operation == AuditOperation.CLUSTERING_COMPLETE:
                summary.clusters_created = int(meta.get("clustersCreated") or 0)
                summary.manual_reviews = int(meta.get("pendingClusters") or 0)
            elif entry.operation == AuditOperation.WRITING_COMPLETE:
                summary.golden_records_created = int(meta.get("goldenRecordsCreated") or 0)
            elif entry.operation == AuditOperation.COMPLETE:
                summary.processing_time_ms = entry.duration_ms or 0
            elif entry.operation == AuditOperation.FAILED and entry.error_message:
                summary.errors.append(entry.error_message)
        return summary

    def export_range(self, start: datetime, end: datetime) -> list[AuditEntry]:
        return self._audit_store.entries_between(start, end)
