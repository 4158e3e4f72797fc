from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import Select, String, cast, func, select
from sqlalchemy.exc import IntegrityError

from graph_er.errors import PersistenceError
from graph_er.models import (
    AuditEntry,
    AuditOperation,
    BatchMeta,
    BatchStatus,
    ClusterStatus,
    GoldenRecord,
    MatchCluster,
    MatchLink,
    MatchMethod,
    MergeSuggestion,
    NormalizedRecord,
    ProcessingStats,
    utc_now,
)
from graph_er.storage.database import Database, from_db_time, to_db_time
from graph_er.storage.models import (
    AuditEntryRow,
    BatchMetaRow,
    GoldenRecordRow,
    MatchClusterRow,
    MatchLinkRow,
    MembershipRow,
    SourceRecordRow,
)

logger = logging.getLogger(__name__)


class SqlGraphStore:
    """Graph store on relational tables. Each write is its own transaction."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def ensure_schema(self) -> None:
        self._db.ensure_schema()

    def save_batch_meta(self, meta: BatchMeta) -> None:
        with self._db.transaction() as session:
            session.merge(_batch_meta_to_row(meta))

    def create_source_record(self, record: NormalizedRecord) -> bool:
        return self._insert(
            SourceRecordRow(
                batch_id=record.batch_id,
                id=record.record_id,
                name=record.name,
                email=record.email,
                phone=record.phone,
                address=record.address,
                organization_name=record.organization_name,
                organization_id=record.organization_id,
                source=record.source,
                source_id=record.source_id,
                natural_key=record.natural_key,
                metadata_=dict(record.metadata),
                created_at=to_db_time(utc_now()),
            )
        )

    def create_cluster(self, cluster: MatchCluster) -> bool:
        return self._insert(
            MatchClusterRow(
                id=cluster.id,
                batch_id=cluster.batch_id,
                record_ids=list(cluster.record_ids),
                status=cluster.status.value,
                suggested_merges=[
                    {
                        "recordIds": list(suggestion.record_ids),
                        "confidence": suggestion.confidence,
                        "reason": suggestion.reason,
                    }
                    for suggestion in cluster.suggested_merges
                ],
                created_at=to_db_time(cluster.created_at),
            )
        )

    def create_match_link(self, link: MatchLink, cluster_id: str | None = None) -> bool:
        return self._insert(
            MatchLinkRow(
                id=link.id,
                batch_id=link.batch_id,
                source_record_id=link.source_record_id,
                target_record_id=link.target_record_id,
                method=link.method.value,
                score=link.score,
                cluster_id=cluster_id,
                metadata_=dict(link.metadata),
                created_at=to_db_time(link.created_at),
            )
        )

    def create_golden_record(self, golden: GoldenRecord) -> bool:
        """Insert a golden record, or fold provenance into the existing one.

        Returns ``True`` only when a new row was created. An existing record
        keeps its identity fields and gains the new source records, batches
        and contact values.
        """
        try:
            with self._db.transaction() as session:
                existing = session.get(GoldenRecordRow, golden.id)
                if existing is None:
                    session.add(_golden_to_row(golden))
                    return True
                existing.emails = _union(existing.emails, golden.emails)
                existing.phones = _union(existing.phones, golden.phones)
                existing.addresses = _union(existing.addresses, golden.addresses)
                existing.source_record_ids = _union(existing.source_record_ids, golden.source_record_ids)
                existing.batch_ids = _union(existing.batch_ids, golden.batch_ids)
                existing.updated_at = to_db_time(utc_now())
                return False
        except IntegrityError:
            return False

    def create_membership(self, golden_id: str, source_record_id: str, batch_id: str) -> bool:
        return self._insert(
            MembershipRow(
                golden_id=golden_id,
                source_record_id=source_record_id,
                batch_id=batch_id,
                created_at=to_db_time(utc_now()),
            )
        )

    def get_batch_meta(self, batch_id: str) -> BatchMeta | None:
        with self._db.transaction() as session:
            row = session.get(BatchMetaRow, batch_id)
            return _batch_meta_from_row(row) if row is not None else None

    def get_golden_record(self, golden_id: str) -> GoldenRecord | None:
        with self._db.transaction() as session:
            row = session.get(GoldenRecordRow, golden_id)
            return _golden_from_row(row) if row is not None else None

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
        stmt = select(GoldenRecordRow)
        if name:
            stmt = stmt.where(GoldenRecordRow.name.ilike(f"%{name.strip()}%"))
        if email:
            # JSON arrays serialize each element quoted, so a quoted needle matches whole values only.
            stmt = stmt.where(cast(GoldenRecordRow.emails, String).contains(f'"{email.strip().lower()}"', autoescape=True))
        if batch_id:
            members = select(MembershipRow.golden_id).where(MembershipRow.batch_id == batch_id)
            stmt = stmt.where(GoldenRecordRow.id.in_(members))
        if min_confidence is not None:
            stmt = stmt.where(GoldenRecordRow.confidence >= min_confidence)
        if max_confidence is not None:
            stmt = stmt.where(GoldenRecordRow.confidence <= max_confidence)

        with self._db.transaction() as session:
            total = _count(session, stmt)
            rows = session.scalars(
                stmt.order_by(GoldenRecordRow.created_at.desc(), GoldenRecordRow.id).offset(offset).limit(limit)
            ).all()
            return [_golden_from_row(row) for row in rows], total

    def list_clusters(
        self, *, offset: int, limit: int, status: ClusterStatus | None = None
    ) -> tuple[list[MatchCluster], int]:
        stmt = select(MatchClusterRow)
        if status is not None:
            stmt = stmt.where(MatchClusterRow.status == ClusterStatus(status).value)

        with self._db.transaction() as session:
            total = _count(session, stmt)
            rows = session.scalars(
                stmt.order_by(MatchClusterRow.created_at.desc(), MatchClusterRow.id).offset(offset).limit(limit)
            ).all()
            links_by_cluster: dict[str, list[MatchLink]] = {row.id: [] for row in rows}
            if rows:
                link_rows = session.scalars(
                    select(MatchLinkRow)
                    .where(MatchLinkRow.cluster_id.in_(list(links_by_cluster)))
                    .order_by(MatchLinkRow.created_at, MatchLinkRow.id)
                ).all()
                for link_row in link_rows:
                    links_by_cluster[link_row.cluster_id].append(_link_from_row(link_row))
            return [_cluster_from_row(row, links_by_cluster[row.id]) for row in rows], total

    def list_batches(
        self, *, offset: int, limit: int, status: str | None = None
    ) -> tuple[list[BatchMeta], int]:
        stmt = select(BatchMetaRow)
        if status is not None:
            stmt = stmt.where(BatchMetaRow.status == BatchStatus(status).value)

        with self._db.transaction() as session:
            total = _count(session, stmt)
            rows = session.scalars(
                stmt.order_by(BatchMetaRow.uploaded_at.desc(), BatchMetaRow.id).offset(offset).limit(limit)
            ).all()
            return [_batch_meta_from_row(row) for row in rows], total

    def links_for_batch(self, batch_id: str) -> list[MatchLink]:
        with self._db.transaction() as session:
            rows = session.scalars(
                select(MatchLinkRow)
                .where(MatchLinkRow.batch_id == batch_id)
                .order_by(MatchLinkRow.created_at, MatchLinkRow.id)
            ).all()
            return [_link_from_row(row) for row in rows]

    def link_method_stats(self, start: datetime, end: datetime) -> list[tuple[str, int, float]]:
        stmt = (
            select(MatchLinkRow.method, func.count(MatchLinkRow.id), func.avg(MatchLinkRow.score))
            .where(MatchLinkRow.created_at >= to_db_time(start), MatchLinkRow.created_at <= to_db_time(end))
            .group_by(MatchLinkRow.method)
            .order_by(MatchLinkRow.method)
        )
        with self._db.transaction() as session:
            return [(method, int(count), float(avg or 0.0)) for method, count, avg in session.execute(stmt)]

    def batches_between(self, start: datetime, end: datetime) -> list[BatchMeta]:
        stmt = (
            select(BatchMetaRow)
            .where(BatchMetaRow.uploaded_at >= to_db_time(start), BatchMetaRow.uploaded_at <= to_db_time(end))
            .order_by(BatchMetaRow.uploaded_at, BatchMetaRow.id)
        )
        with self._db.transaction() as session:
            return [_batch_meta_from_row(row) for row in session.scalars(stmt).all()]

    def count_source_records(self, start: datetime, end: datetime) -> int:
        stmt = select(SourceRecordRow).where(
            SourceRecordRow.created_at >= to_db_time(start), SourceRecordRow.created_at <= to_db_time(end)
        )
        with self._db.transaction() as session:
            return _count(session, stmt)

    def count_golden_records(self, start: datetime, end: datetime) -> int:
        stmt = select(GoldenRecordRow).where(
            GoldenRecordRow.created_at >= to_db_time(start), GoldenRecordRow.created_at <= to_db_time(end)
        )
        with self._db.transaction() as session:
            return _count(session, stmt)

    def _insert(self, row: Any) -> bool:
        try:
            with self._db.transaction() as session:
                session.add(row)
        except IntegrityError:
            logger.debug("%s already exists; skipping", type(row).__name__)
            return False
        return True


class SqlAuditStore:
    """Append-only audit table; entries come back in append order within a timestamp."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def append(self, entry: AuditEntry) -> None:
        try:
            with self._db.transaction() as session:
                session.add(
                    AuditEntryRow(
                        id=entry.id,
                        batch_id=entry.batch_id,
                        operation=entry.operation.value,
                        input_hash=entry.input_hash,
                        timestamp=to_db_time(entry.timestamp),
                        metadata_=dict(entry.metadata),
                        duration_ms=entry.duration_ms,
                        error_message=entry.error_message,
                    )
                )
        except IntegrityError as exc:
            raise PersistenceError(f"Audit entry {entry.id} already recorded") from exc

    def entries_for_batch(self, batch_id: str) -> list[AuditEntry]:
        stmt = (
            select(AuditEntryRow)
            .where(AuditEntryRow.batch_id == batch_id)
            .order_by(AuditEntryRow.timestamp, AuditEntryRow.seq)
        )
        with self._db.transaction() as session:
            return [_audit_from_row(row) for row in session.scalars(stmt).all()]

    def entries_between(self, start: datetime, end: datetime) -> list[AuditEntry]:
        stmt = (
            select(AuditEntryRow)
            .where(AuditEntryRow.timestamp >= to_db_time(start), AuditEntryRow.timestamp <= to_db_time(end))
            .order_by(AuditEntryRow.timestamp, AuditEntryRow.seq)
        )
        with self._db.transaction() as session:
            return [_audit_from_row(row) for row in session.scalars(stmt).all()]


def _count(session: Any, stmt: Select) -> int:
    return int(session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)


def _union(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
    merged = list(existing)
    seen = {value.lower() for value in merged}
    for value in incoming:
        if value.lower() not in seen:
            seen.add(value.lower())
            merged.append(value)
    return merged


def _golden_to_row(golden: GoldenRecord) -> GoldenRecordRow:
    return GoldenRecordRow(
        id=golden.id,
        natural_key=golden.natural_key,
        name=golden.name,
        emails=list(golden.emails),
        phones=list(golden.phones),
        addresses=list(golden.addresses),
        organization_name=golden.organization_name,
        organization_id=golden.organization_id,
        source_record_ids=list(golden.source_record_ids),
        batch_ids=list(golden.batch_ids),
        cluster_id=golden.cluster_id,
        confidence=golden.confidence,
        created_at=to_db_time(golden.created_at),
        updated_at=to_db_time(golden.updated_at),
    )


def _golden_from_row(row: GoldenRecordRow) -> GoldenRecord:
    return GoldenRecord(
        id=row.id,
        natural_key=row.natural_key,
        name=row.name,
        emails=list(row.emails or []),
        phones=list(row.phones or []),
        addresses=list(row.addresses or []),
        organization_name=row.organization_name,
        organization_id=row.organization_id,
        source_record_ids=list(row.source_record_ids or []),
        batch_ids=list(row.batch_ids or []),
        cluster_id=row.cluster_id,
        confidence=row.confidence,
        created_at=from_db_time(row.created_at),
        updated_at=from_db_time(row.updated_at),
    )


def _link_from_row(row: MatchLinkRow) -> MatchLink:
    return MatchLink(
        id=row.id,
        source_record_id=row.source_record_id,
        target_record_id=row.target_record_id,
        method=MatchMethod(row.method),
        score=row.score,
        batch_id=row.batch_id,
        metadata=dict(row.metadata_ or {}),
        created_at=from_db_time(row.created_at),
    )


def _cluster_from_row(row: MatchClusterRow, links: list[MatchLink]) -> MatchCluster:
    return MatchCluster(
        id=row.id,
        batch_id=row.batch_id,
        record_ids=list(row.record_ids or []),
        links=links,
        status=ClusterStatus(row.status),
        suggested_merges=[
            MergeSuggestion(
                record_ids=tuple(item.get("recordIds", [])),
                confidence=float(item.get("confidence", 0.0)),
                reason=str(item.get("reason", "")),
            )
            for item in row.suggested_merges or []
        ],
        created_at=from_db_time(row.created_at),
    )


def _batch_meta_to_row(meta: BatchMeta) -> BatchMetaRow:
    return BatchMetaRow(
        id=meta.id,
        filename=meta.filename,
        uploaded_by=meta.uploaded_by,
        uploaded_at=to_db_time(meta.uploaded_at),
        status=meta.status.value,
        record_count=meta.record_count,
        processed_count=meta.processed_count,
        input_hash=meta.input_hash,
        error_message=meta.error_message,
        duplicates_found=meta.stats.duplicates_found,
        clusters_created=meta.stats.clusters_created,
        golden_records_created=meta.stats.golden_records_created,
        processing_time_ms=meta.stats.processing_time_ms,
    )


def _batch_meta_from_row(row: BatchMetaRow) -> BatchMeta:
    return BatchMeta(
        id=row.id,
        filename=row.filename,
        uploaded_by=row.uploaded_by,
        status=BatchStatus(row.status),
        uploaded_at=from_db_time(row.uploaded_at),
        record_count=row.record_count,
        processed_count=row.processed_count,
        input_hash=row.input_hash,
        error_message=row.error_message,
        stats=ProcessingStats(
            duplicates_found=row.duplicates_found,
            clusters_created=row.clusters_created,
            golden_records_created=row.golden_records_created,
            processing_time_ms=row.processing_time_ms,
        ),
    )


def _audit_from_row(row: AuditEntryRow) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        batch_id=row.batch_id,
        operation=AuditOperation(row.operation),
        input_hash=row.input_hash,
        timestamp=from_db_time(row.timestamp),
        metadata=dict(row.metadata_ or {}),
        duration_ms=row.duration_ms,
        error_message=row.error_message,
    )
