from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Protocol

from graph_er.models import (
    AuditEntry,
    BatchMeta,
    BatchResult,
    ClusterStatus,
    GoldenRecord,
    MatchCluster,
    MatchLink,
    NormalizedRecord,
    ProgressUpdate,
    RawRecord,
)


class ComparableEntity(Protocol):
    """Anything exposing the fields the similarity engine compares."""

    name: str
    email: str
    phone: str
    address: str
    organization_name: str
    organization_id: str


class RecordCleaner(Protocol):
    """Step 1: normalize validated rows into canonical records."""

    def clean(self, records: Sequence[RawRecord]) -> list[NormalizedRecord]:
        ...


class DeterministicMatcher(Protocol):
    """Step 2a: exact, key-based duplicate links."""

    def match(self, records: Sequence[NormalizedRecord]) -> list[MatchLink]:
        ...


class EmbeddingModel(Protocol):
    """Map records into embedding vectors."""

    def embed(self, records: Sequence[NormalizedRecord]) -> list[list[float]]:
        ...


class VectorIndex(Protocol):
    """Similarity search over embeddings."""

    def build(self, record_ids: Sequence[str], vectors: Sequence[Sequence[float]]) -> None:
        ...

    def query_similar_pairs(self, min_similarity: float) -> list[tuple[str, str, float]]:
        ...


class SimilarityMatcher(Protocol):
    """Step 2c: optional embedding-based candidate links."""

    def match(
        self,
        records: Sequence[NormalizedRecord],
        exclude_pairs: set[frozenset[str]],
    ) -> list[MatchLink]:
        ...


class Clusterer(Protocol):
    """Step 3: group records into connected components."""

    def cluster(self, records: Sequence[NormalizedRecord], links: Sequence[MatchLink]) -> list[MatchCluster]:
        ...


class CancellationSignal(Protocol):
    def is_set(self) -> bool:
        ...


ProgressCallback = Callable[[ProgressUpdate], None]


class BatchPipeline(Protocol):
    """Unified pipeline interface for local or distributed execution engines."""

    def process_batch(
        self,
        file_path: Path,
        batch_id: str,
        on_progress: ProgressCallback | None = None,
        cancel_event: CancellationSignal | None = None,
        uploaded_by: str = "system",
    ) -> BatchResult:
        ...


class GraphStore(Protocol):
    """Persistence collaborator holding source records, links, clusters and golden records.

    ``create_*`` operations are idempotent: they return ``False`` when a
    uniqueness constraint says the row already exists and raise
    ``PersistenceError`` for anything else.
    """

    def ensure_schema(self) -> None:
        ...

    def save_batch_meta(self, meta: BatchMeta) -> None:
        ...

    def create_source_record(self, record: NormalizedRecord) -> bool:
        ...

    def create_cluster(self, cluster: MatchCluster) -> bool:
        ...

    def create_match_link(self, link: MatchLink, cluster_id: str | None = None) -> bool:
        ...

    def create_golden_record(self, golden: GoldenRecord) -> bool:
        ...

    def create_membership(self, golden_id: str, source_record_id: str, batch_id: str) -> bool:
        ...

    def get_batch_meta(self, batch_id: str) -> BatchMeta | None:
        ...

    def get_golden_record(self, golden_id: str) -> GoldenRecord | None:
        ...

    def list_golden_records(
        self,
        *,
        offset: int,
        limit: int,
        name: str | None = None,
        email: str | None = None,
        batch_id: str | None = None,
        min_confidence: float | None = None,
        max_confidence: float | None = None,
    ) -> tuple[list[GoldenRecord], int]:
        ...

    def list_clusters(
        self, *, offset: int, limit: int, status: ClusterStatus | None = None
    ) -> tuple[list[MatchCluster], int]:
        ...

    def list_batches(self, *, offset: int, limit: int, status: str | None = None) -> tuple[list[BatchMeta], int]:
        ...

    def links_for_batch(self, batch_id: str) -> list[MatchLink]:
        ...

    def link_method_stats(self, start: datetime, end: datetime) -> list[tuple[str, int, float]]:
        ...

    def batches_between(self, start: datetime, end: datetime) -> list[BatchMeta]:
        ...

    def count_source_records(self, start: datetime, end: datetime) -> int:
        ...

    def count_golden_records(self, start: datetime, end: datetime) -> int:
        ...


class AuditStore(Protocol):
    """Append-only storage for audit entries."""

    def append(self, entry: AuditEntry) -> None:
        ...

    def entries_for_batch(self, batch_id: str) -> list[AuditEntry]:
        ...

    def entries_between(self, start: datetime, end: datetime) -> list[AuditEntry]:
        ...
