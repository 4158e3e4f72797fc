from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from graph_er.audit import AuditTrail
from graph_er.config import ResolutionConfig
from graph_er.models import NormalizedRecord
from graph_er.normalize import create_natural_key
from graph_er.runners import LocalBatchPipeline
from graph_er.storage import SqlAuditStore, SqlGraphStore, open_stores


@pytest.fixture
def stores(tmp_path: Path) -> Iterator[tuple[SqlGraphStore, SqlAuditStore]]:
    graph_store, audit_store = open_stores(f"sqlite:///{tmp_path / 'graph_er.db'}")
    yield graph_store, audit_store
    graph_store._db.dispose()


@pytest.fixture
def graph_store(stores: tuple[SqlGraphStore, SqlAuditStore]) -> SqlGraphStore:
    return stores[0]


@pytest.fixture
def audit_trail(stores: tuple[SqlGraphStore, SqlAuditStore]) -> AuditTrail:
    graph_store, audit_store = stores
    return AuditTrail(audit_store, graph_store)


@pytest.fixture
def pipeline(graph_store: SqlGraphStore, audit_trail: AuditTrail) -> LocalBatchPipeline:
    return LocalBatchPipeline(graph_store, audit_trail, ResolutionConfig())


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write raw CSV lines to a file under tmp_path and return its path."""

    def _write(lines: list[str], name: str = "batch.csv") -> Path:
        path = tmp_path / name
        path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
        return path

    return _write


def make_record(
    record_id: str,
    name: str,
    *,
    email: str = "",
    phone: str = "",
    address: str = "",
    organization_name: str = "",
    organization_id: str = "",
    batch_id: str = "batch-1",
) -> NormalizedRecord:
    return NormalizedRecord(
        record_id=record_id,
        name=name,
        source="test",
        batch_id=batch_id,
        natural_key=create_natural_key(name, email, phone, organization_id),
        email=email,
        phone=phone,
        address=address,
        organization_name=organization_name,
        organization_id=organization_id,
    )
