"""
Database schema for the resolution graph.

Nodes (source records, golden records, clusters, batches, audit entries) and
edges (match links, golden-record memberships) are plain tables; uniqueness
constraints make every create idempotent.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from graph_er.normalize import (
    MAX_ADDRESS_LENGTH,
    MAX_EMAIL_LENGTH,
    MAX_IDENTIFIER_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PHONE_LENGTH,
)

# Generated record ids append "#row<n>" to a batch id.
RECORD_ID_LENGTH = MAX_IDENTIFIER_LENGTH + 32


class Base(DeclarativeBase):
    """Base class for all models."""


class SourceRecordRow(Base):
    """A normalized input record, scoped to the batch that delivered it."""

    __tablename__ = "source_records"

    batch_id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), primary_key=True)
    id: Mapped[str] = mapped_column(String(RECORD_ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    email: Mapped[str] = mapped_column(String(MAX_EMAIL_LENGTH), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(MAX_PHONE_LENGTH), nullable=False, default="")
    address: Mapped[str] = mapped_column(String(MAX_ADDRESS_LENGTH), nullable=False, default="")
    organization_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, default="")
    organization_id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=False, default="")
    source: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=True)
    natural_key: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


class GoldenRecordRow(Base):
    __tablename__ = "golden_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    natural_key: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, index=True)
    emails: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    phones: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    addresses: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    organization_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, default="")
    organization_id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=False, default="")
    source_record_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    batch_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    cluster_id: Mapped[str] = mapped_column(String(36), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class MatchLinkRow(Base):
    __tablename__ = "match_links"
    __table_args__ = (
        UniqueConstraint("batch_id", "source_record_id", "target_record_id", "method", name="uq_match_link"),
        Index("ix_match_links_method_created", "method", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=False, index=True)
    source_record_id: Mapped[str] = mapped_column(String(RECORD_ID_LENGTH), nullable=False)
    target_record_id: Mapped[str] = mapped_column(String(RECORD_ID_LENGTH), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    cluster_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class MatchClusterRow(Base):
    __tablename__ = "match_clusters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=False, index=True)
    record_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    suggested_merges: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


class MembershipRow(Base):
    """MERGED_FROM edge: golden record <- source record of a given batch."""

    __tablename__ = "memberships"

    golden_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_record_id: Mapped[str] = mapped_column(String(RECORD_ID_LENGTH), primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), primary_key=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class BatchMetaRow(Base):
    __tablename__ = "batch_meta"

    id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), primary_key=True)
    filename: Mapped[str] = mapped_column(String(1024), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    input_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duplicates_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clusters_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    golden_records_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AuditEntryRow(Base):
    __tablename__ = "audit_entries"

    # Append sequence breaks timestamp ties.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    batch_id: Mapped[str] = mapped_column(String(MAX_IDENTIFIER_LENGTH), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(32), nullable=False)
    input_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
