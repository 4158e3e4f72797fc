from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from graph_er.audit import AuditTrail, calculate_input_hash
from graph_er.config import ResolutionConfig
from graph_er.errors import BatchCancelledError, ResolutionError
from graph_er.interfaces import CancellationSignal, Clusterer, GraphStore, ProgressCallback, RecordCleaner
from graph_er.logging import log_event
from graph_er.models import (
    AuditOperation,
    BatchMeta,
    BatchResult,
    BatchStatus,
    ClusterStatus,
    GoldenRecord,
    MatchCluster,
    MatchLink,
    NormalizedRecord,
    PipelineStage,
    ProgressUpdate,
)
from graph_er.reader import parse_csv, read_input_bytes
from graph_er.steps.cleanup import FunctionalCleaner, RecordValidator
from graph_er.steps.clustering import ConnectedComponentClusterer
from graph_er.steps.embedding import build_embedding_matcher
from graph_er.steps.golden import GoldenRecordSynthesizer
from graph_er.steps.matching import CandidateMatcher

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _RunState:
    stage: PipelineStage = PipelineStage.READING
    input_hash: str = ""
    stage_started: float = 0.0


@dataclass(slots=True)
class WriteSummary:
    source_records: int = 0
    clusters: int = 0
    links: int = 0
    golden_records: int = 0
    memberships: int = 0
    conflicts: int = 0


class LocalBatchPipeline:
    """Single-process batch runner: reading -> validating -> normalizing ->
    deduplicating -> clustering -> writing.

    This is the only component that writes batch metadata or calls store
    write operations. Cancellation is honoured between stages, never inside
    one. Any failure ends the batch as ``failed`` and is reported through the
    returned ``BatchResult`` rather than raised.
    """

    def __init__(
        self,
        store: GraphStore,
        audit: AuditTrail,
        config: ResolutionConfig | None = None,
        *,
        validator: RecordValidator | None = None,
        cleaner: RecordCleaner | None = None,
        matcher: CandidateMatcher | None = None,
        clusterer: Clusterer | None = None,
        synthesizer: GoldenRecordSynthesizer | None = None,
    ) -> None:
        self._store = store
        self._audit = audit
        self._config = config or ResolutionConfig()
        self._validator = validator or RecordValidator()
        self._cleaner = cleaner or FunctionalCleaner()
        if matcher is None:
            similarity_matcher = (
                build_embedding_matcher(self._config) if self._config.rules.similarity_cluster else None
            )
            matcher = CandidateMatcher(self._config, similarity_matcher=similarity_matcher)
        self._matcher = matcher
        self._clusterer = clusterer or ConnectedComponentClusterer(self._config)
        self._synthesizer = synthesizer or GoldenRecordSynthesizer(self._config)

    def process_batch(
        self,
        file_path: Path,
        batch_id: str,
        on_progress: ProgressCallback | None = None,
        cancel_event: CancellationSignal | None = None,
        uploaded_by: str = "system",
    ) -> BatchResult:
        file_path = Path(file_path)
        started = time.perf_counter()
        result = BatchResult(batch_id=batch_id)
        meta = BatchMeta(
            id=batch_id,
            filename=file_path.name,
            uploaded_by=uploaded_by,
            status=BatchStatus.PROCESSING,
        )
        state = _RunState(stage_started=started)
        log_event(logger, "Batch started", batch_id=batch_id, status="started")

        try:
            self._run(file_path, result, meta, state, on_progress, cancel_event, started)
        except Exception as exc:
            self._fail(exc, result, meta, state, started)
        return result

    def _run(
        self,
        file_path: Path,
        result: BatchResult,
        meta: BatchMeta,
        state: _RunState,
        on_progress: ProgressCallback | None,
        cancel_event: CancellationSignal | None,
        started: float,
    ) -> None:
        batch_id = result.batch_id

        content = read_input_bytes(file_path)
        state.input_hash = calculate_input_hash(content)
        meta.input_hash = state.input_hash
        self._store.save_batch_meta(meta)
        self._audit.log_stage(batch_id, AuditOperation.START, state.input_hash, {"filePath": str(file_path)})

        self._begin(state, PipelineStage.READING, 0, 1, "Reading CSV file", batch_id, on_progress)
        raw_records = parse_csv(content, batch_id)
        result.total_records = len(raw_records)
        meta.record_count = len(raw_records)
        self._check_cancelled(cancel_event)

        self._begin(state, PipelineStage.VALIDATING, 0, len(raw_records), "Validating records", batch_id, on_progress)
        outcome = self._validator.validate(raw_records)
        result.valid_records = len(outcome.valid)
        result.invalid_records = len(outcome.invalid)
        result.errors.extend(str(error) for error in outcome.invalid)
        self._complete(
            state,
            AuditOperation.VALIDATION_COMPLETE,
            batch_id,
            {
                "totalRecords": result.total_records,
                "validRecords": result.valid_records,
                "invalidRecords": result.invalid_records,
            },
            rows_in=result.total_records,
            rows_out=result.valid_records,
        )
        self._check_cancelled(cancel_event)

        self._begin(state, PipelineStage.NORMALIZING, 0, len(outcome.valid), "Normalizing data", batch_id, on_progress)
        records = self._cleaner.clean(outcome.valid)
        self._complete(
            state,
            AuditOperation.NORMALIZATION_COMPLETE,
            batch_id,
            {"normalizedRecords": len(records)},
            rows_in=len(outcome.valid),
            rows_out=len(records),
        )
        self._check_cancelled(cancel_event)

        self._begin(state, PipelineStage.DEDUPLICATING, 0, len(records), "Finding duplicates", batch_id, on_progress)
        match = self._matcher.match(records)
        result.duplicates_found = len(match.links)
        self._complete(
            state,
            AuditOperation.DEDUPLICATION_COMPLETE,
            batch_id,
            {
                "duplicatesFound": result.duplicates_found,
                "matchLinks": len(match.links),
                "linksByMethod": match.counts_by_method(),
                "comparisons": match.comparisons,
                "maxComparisons": self._config.max_comparisons,
                "comparisonCapReached": match.cap_reached,
                "pairsNotCompared": match.pairs_not_compared,
            },
            rows_in=len(records),
            rows_out=len(match.links),
        )
        self._check_cancelled(cancel_event)

        self._begin(state, PipelineStage.CLUSTERING, 0, len(records), "Building clusters", batch_id, on_progress)
        clusters = self._clusterer.cluster(records, match.links)
        golden_records = self._synthesizer.synthesize(clusters, records)
        result.clusters_created = len(clusters)
        self._complete(
            state,
            AuditOperation.CLUSTERING_COMPLETE,
            batch_id,
            {
                "clustersCreated": len(clusters),
                "pendingClusters": sum(1 for cluster in clusters if cluster.status == ClusterStatus.PENDING),
                "largestCluster": max((len(cluster.record_ids) for cluster in clusters), default=0),
            },
            rows_in=len(records),
            rows_out=len(clusters),
        )
        self._check_cancelled(cancel_event)

        self._begin(
            state,
            PipelineStage.WRITING,
            0,
            len(records) + len(clusters),
            "Writing to store",
            batch_id,
            on_progress,
        )
        written = self._write(records, match.links, clusters, golden_records)
        result.golden_records_created = len(golden_records)
        self._complete(
            state,
            AuditOperation.WRITING_COMPLETE,
            batch_id,
            {
                "goldenRecordsCreated": result.golden_records_created,
                "sourceRecordsWritten": written.source_records,
                "linksWritten": written.links,
                "clustersWritten": written.clusters,
                "goldenRecordsWritten": written.golden_records,
                "membershipsWritten": written.memberships,
                "conflictsSkipped": written.conflicts,
            },
            rows_in=len(records),
            rows_out=written.golden_records,
        )

        result.status = BatchStatus.COMPLETED
        result.processing_time_ms = _elapsed_ms(started)
        meta.status = BatchStatus.COMPLETED
        meta.processed_count = result.valid_records
        meta.stats.duplicates_found = result.duplicates_found
        meta.stats.clusters_created = result.clusters_created
        meta.stats.golden_records_created = result.golden_records_created
        meta.stats.processing_time_ms = result.processing_time_ms
        self._store.save_batch_meta(meta)

        self._audit.log_stage(
            batch_id,
            AuditOperation.COMPLETE,
            state.input_hash,
            {
                "totalRecords": result.total_records,
                "validRecords": result.valid_records,
                "duplicatesFound": result.duplicates_found,
                "clustersCreated": result.clusters_created,
                "goldenRecordsCreated": result.golden_records_created,
            },
            duration_ms=result.processing_time_ms,
        )
        log_event(
            logger,
            "Batch completed",
            batch_id=batch_id,
            status=BatchStatus.COMPLETED.value,
            duration_ms=result.processing_time_ms,
            rows_in=result.total_records,
            rows_out=result.golden_records_created,
        )

    def _write(
        self,
        records: Sequence[NormalizedRecord],
        links: Sequence[MatchLink],
        clusters: Sequence[MatchCluster],
        golden_records: Sequence[GoldenRecord],
    ) -> WriteSummary:
        summary = WriteSummary()

        def tally(created: bool) -> int:
            if not created:
                summary.conflicts += 1
            return int(created)

        for record in records:
            summary.source_records += tally(self._store.create_source_record(record))

        for cluster in clusters:
            summary.clusters += tally(self._store.create_cluster(cluster))
            for link in cluster.links:
                summary.links += tally(self._store.create_match_link(link, cluster_id=cluster.id))

        by_record = {record.record_id: record for record in records}
        for golden in golden_records:
            summary.golden_records += tally(self._store.create_golden_record(golden))
            for record_id in golden.source_record_ids:
                record = by_record[record_id]
                summary.memberships += tally(self._store.create_membership(golden.id, record_id, record.batch_id))
        return summary

    def _begin(
        self,
        state: _RunState,
        stage: PipelineStage,
        processed: int,
        total: int,
        message: str,
        batch_id: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        state.stage = stage
        state.stage_started = time.perf_counter()
        log_event(logger, message, level=logging.DEBUG, batch_id=batch_id, stage=stage.value, status="started")
        if on_progress is None:
            return
        try:
            on_progress(ProgressUpdate(stage=stage, processed=processed, total=total, message=message))
        except Exception:
            logger.exception("Progress callback failed", extra={"batch_id": batch_id, "stage": stage.value})

    def _complete(
        self,
        state: _RunState,
        operation: AuditOperation,
        batch_id: str,
        metadata: dict,
        *,
        rows_in: int,
        rows_out: int,
    ) -> None:
        duration_ms = _elapsed_ms(state.stage_started)
        self._audit.log_stage(batch_id, operation, state.input_hash, metadata, duration_ms=duration_ms)
        log_event(
            logger,
            "Stage complete",
            batch_id=batch_id,
            stage=state.stage.value,
            operation=operation.value,
            status="ok",
            duration_ms=duration_ms,
            rows_in=rows_in,
            rows_out=rows_out,
        )

    @staticmethod
    def _check_cancelled(cancel_event: CancellationSignal | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise BatchCancelledError()

    def _fail(
        self,
        exc: Exception,
        result: BatchResult,
        meta: BatchMeta,
        state: _RunState,
        started: float,
    ) -> None:
        batch_id = result.batch_id
        error_code = exc.error_code if isinstance(exc, ResolutionError) else "UNEXPECTED_ERROR"
        message = str(exc) or type(exc).__name__

        result.status = BatchStatus.FAILED
        result.processing_time_ms = _elapsed_ms(started)
        result.errors.append(message)

        log_event(
            logger,
            f"Batch failed during {state.stage.value}: {message}",
            level=logging.WARNING if isinstance(exc, BatchCancelledError) else logging.ERROR,
            batch_id=batch_id,
            stage=state.stage.value,
            status=BatchStatus.FAILED.value,
            duration_ms=result.processing_time_ms,
            error_code=error_code,
        )
        if not isinstance(exc, ResolutionError):
            logger.error("Unexpected batch failure", exc_info=exc, extra={"batch_id": batch_id})

        self._audit.log_stage(
            batch_id,
            AuditOperation.FAILED,
            state.input_hash,
            {"stage": state.stage.value, "errorCode": error_code},
            duration_ms=result.processing_time_ms,
            error=message,
        )

        meta.status = BatchStatus.FAILED
        meta.error_message = message
        meta.processed_count = result.valid_records
        meta.stats.processing_time_ms = result.processing_time_ms
        try:
            self._store.save_batch_meta(meta)
        except ResolutionError:
            logger.exception("Could not record failed status for batch", extra={"batch_id": batch_id})


def _elapsed_ms(since: float) -> int:
    return int((time.perf_counter() - since) * 1000)
