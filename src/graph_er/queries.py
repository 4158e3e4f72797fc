"""Read-side operations over the stores: paginated listings, audit lookups, aggregate metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from graph_er.audit import AuditTrail, BatchAuditSummary, MatchQualityReport
from graph_er.interfaces import GraphStore
from graph_er.models import AuditEntry, BatchMeta, BatchStatus, ClusterStatus, GoldenRecord, MatchCluster, utc_now

MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 50
DEFAULT_METRICS_WINDOW = timedelta(days=30)

T = TypeVar("T")


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


@dataclass(frozen=True, slots=True)
class MethodStats:
    method: str
    links: int
    average_score: float


@dataclass(slots=True)
class AggregateMetrics:
    start: datetime
    end: datetime
    total_batches: int = 0
    completed_batches: int = 0
    failed_batches: int = 0
    total_source_records: int = 0
    total_golden_records: int = 0
    average_duplicates_per_batch: float = 0.0
    average_processing_time_ms: float = 0.0
    match_methods: list[MethodStats] = field(default_factory=list)


class ResolutionQueries:
    def __init__(self, store: GraphStore, audit: AuditTrail) -> None:
        self._store = store
        self._audit = audit

    def golden_records(
        self,
        *,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        name: str | None = None,
        email: str | None = None,
        batch_id: str | None = None,
        min_confidence: float | None = None,
        max_confidence: float | None = None,
    ) -> Page[GoldenRecord]:
        page, limit = _page_window(page, limit)
        items, total = self._store.list_golden_records(
            offset=(page - 1) * limit,
            limit=limit,
            name=name,
            email=email,
            batch_id=batch_id,
            min_confidence=min_confidence,
            max_confidence=max_confidence,
        )
        return Page(items=items, total=total, page=page, limit=limit)

    def golden_record(self, golden_id: str) -> GoldenRecord | None:
        return self._store.get_golden_record(golden_id)

    def clusters(
        self, *, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, status: ClusterStatus | None = None
    ) -> Page[MatchCluster]:
        page, limit = _page_window(page, limit)
        items, total = self._store.list_clusters(offset=(page - 1) * limit, limit=limit, status=status)
        return Page(items=items, total=total, page=page, limit=limit)

    def batches(
        self, *, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, status: BatchStatus | None = None
    ) -> Page[BatchMeta]:
        page, limit = _page_window(page, limit)
        items, total = self._store.list_batches(offset=(page - 1) * limit, limit=limit, status=status)
        return Page(items=items, total=total, page=page, limit=limit)

    def batch(self, batch_id: str) -> BatchMeta | None:
        return self._store.get_batch_meta(batch_id)

    def audit_summary(self, batch_id: str) -> BatchAuditSummary | None:
        return self._audit.generate_report(batch_id)

    def audit_trail(self, batch_id: str) -> list[AuditEntry]:
        return self._audit.get_trail(batch_id)

    def match_quality(self, batch_id: str) -> MatchQualityReport:
        return self._audit.analyze_match_quality(batch_id)

    def aggregate_metrics(self, start: datetime | None = None, end: datetime | None = None) -> AggregateMetrics:
        """Totals over ``[start, end]``, defaulting to the last 30 days."""
        end = end or utc_now()
        start = start or end - DEFAULT_METRICS_WINDOW

        batches = self._store.batches_between(start, end)
        metrics = AggregateMetrics(
            start=start,
            end=end,
            total_batches=len(batches),
            completed_batches=sum(1 for batch in batches if batch.status == BatchStatus.COMPLETED),
            failed_batches=sum(1 for batch in batches if batch.status == BatchStatus.FAILED),
            total_source_records=self._store.count_source_records(start, end),
            total_golden_records=self._store.count_golden_records(start, end),
            match_methods=[
                MethodStats(method=method, links=count, average_score=average)
                for method, count, average in self._store.link_method_stats(start, end)
            ],
        )
        if batches:
            metrics.average_duplicates_per_batch = sum(b.stats.duplicates_found for b in batches) / len(batches)
            metrics.average_processing_time_ms = sum(b.stats.processing_time_ms for b in batches) / len(batches)
        return metrics


def _page_window(page: int, limit: int) -> tuple[int, int]:
    return max(1, page), max(1, min(limit, MAX_PAGE_SIZE))
