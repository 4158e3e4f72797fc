from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Union

# Scalar JSON values only; record metadata bags never nest.
MetadataValue = Union[str, int, float, bool, None]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class MatchMethod(StrEnum):
    EXACT = "exact"
    FUZZY_NAME = "fuzzy_name"
    FUZZY_EMAIL = "fuzzy_email"
    FUZZY_PHONE = "fuzzy_phone"
    FUZZY_ORGANIZATION = "fuzzy_organization"
    SIMILARITY_CLUSTER = "similarity_cluster"


class ClusterStatus(StrEnum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


class BatchStatus(StrEnum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditOperation(StrEnum):
    START = "START"
    VALIDATION_COMPLETE = "VALIDATION_COMPLETE"
    NORMALIZATION_COMPLETE = "NORMALIZATION_COMPLETE"
    DEDUPLICATION_COMPLETE = "DEDUPLICATION_COMPLETE"
    CLUSTERING_COMPLETE = "CLUSTERING_COMPLETE"
    WRITING_COMPLETE = "WRITING_COMPLETE"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class PipelineStage(StrEnum):
    READING = "reading"
    VALIDATING = "validating"
    NORMALIZING = "normalizing"
    DEDUPLICATING = "deduplicating"
    CLUSTERING = "clustering"
    WRITING = "writing"


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One input row exactly as read, before validation."""

    row_number: int
    name: str
    source: str
    batch_id: str
    external_id: str | None = None
    source_id: str | None = None
    email: str = ""
    phone: str = ""
    address: str = ""
    organization_name: str = ""
    organization_id: str = ""
    metadata: dict[str, MetadataValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NormalizedRecord:
    """A validated record with canonical field values and its natural key."""

    record_id: str
    name: str
    source: str
    batch_id: str
    natural_key: str
    source_id: str | None = None
    email: str = ""
    phone: str = ""
    address: str = ""
    organization_name: str = ""
    organization_id: str = ""
    metadata: dict[str, MetadataValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MatchLink:
    """Scored edge asserting two source records likely describe the same entity."""

    id: str
    source_record_id: str
    target_record_id: str
    method: MatchMethod
    score: float
    batch_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class MergeSuggestion:
    record_ids: tuple[str, ...]
    confidence: float
    reason: str


@dataclass(slots=True)
class MatchCluster:
    """A connected component of source records joined by match links."""

    id: str
    batch_id: str
    record_ids: list[str]
    links: list[MatchLink]
    status: ClusterStatus
    suggested_merges: list[MergeSuggestion] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class GoldenRecord:
    """Canonical merged entity with full provenance back to its source records."""

    id: str
    natural_key: str
    name: str
    emails: list[str]
    phones: list[str]
    addresses: list[str]
    organization_name: str
    organization_id: str
    source_record_ids: list[str]
    batch_ids: list[str]
    cluster_id: str
    confidence: float
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class ProcessingStats:
    duplicates_found: int = 0
    clusters_created: int = 0
    golden_records_created: int = 0
    processing_time_ms: int = 0


@dataclass(slots=True)
class BatchMeta:
    id: str
    filename: str
    uploaded_by: str
    status: BatchStatus
    uploaded_at: datetime = field(default_factory=utc_now)
    record_count: int = 0
    processed_count: int = 0
    input_hash: str = ""
    error_message: str | None = None
    stats: ProcessingStats = field(default_factory=ProcessingStats)


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """Immutable record of one pipeline-stage outcome."""

    id: str
    batch_id: str
    operation: AuditOperation
    input_hash: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    duration_ms: int | None = None
    error_message: str | None = None


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    stage: PipelineStage
    processed: int
    total: int
    message: str


@dataclass(slots=True)
class BatchResult:
    batch_id: str
    status: BatchStatus = BatchStatus.PROCESSING
    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    duplicates_found: int = 0
    clusters_created: int = 0
    golden_records_created: int = 0
    processing_time_ms: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "status": self.status.value,
            "totalRecords": self.total_records,
            "validRecords": self.valid_records,
            "invalidRecords": self.invalid_records,
            "duplicatesFound": self.duplicates_found,
            "clustersCreated": self.clusters_created,
            "goldenRecordsCreated": self.golden_records_created,
            "processingTimeMs": self.processing_time_ms,
            "errors": list(self.errors),
        }
