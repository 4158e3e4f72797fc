from datetime import datetime, timezone

import pytest

from graph_er.models import BatchStatus, ClusterStatus
from graph_er.queries import MAX_PAGE_SIZE, ResolutionQueries


@pytest.fixture
def queries(pipeline, graph_store, audit_trail, write_csv) -> ResolutionQueries:
    pipeline.process_batch(
        write_csv(
            [
                "id,name,email,source",
                "r1,John Smith,john@example.com,crm",
                "r2,Johnny Smith,JOHN@example.com,web",
                "r3,Alice Jones,alice@example.com,crm",
            ]
        ),
        "batch-1",
    )
    return ResolutionQueries(graph_store, audit_trail)


def test_golden_search_by_name_is_case_insensitive_substring(queries) -> None:
    page = queries.golden_records(name="ALICE")

    assert page.total == 1
    assert page.items[0].name == "Alice Jones"


def test_golden_search_by_email_matches_whole_values(queries) -> None:
    assert queries.golden_records(email="john@example.com").total == 1
    assert queries.golden_records(email="ohn@example.com").total == 0


def test_golden_search_by_batch_and_confidence(queries) -> None:
    assert queries.golden_records(batch_id="batch-1").total == 2
    assert queries.golden_records(batch_id="batch-2").total == 0

    confident = queries.golden_records(min_confidence=0.9)
    assert [record.name for record in confident.items] == ["Alice Jones"]
    merged = queries.golden_records(max_confidence=0.9)
    assert [record.name for record in merged.items] == ["John Smith"]


def test_golden_record_lookup_by_id(queries) -> None:
    record = queries.golden_records(name="alice").items[0]

    assert queries.golden_record(record.id) == record
    assert queries.golden_record("nope") is None


def test_paging_clamps_limit_and_page(queries) -> None:
    page = queries.golden_records(page=0, limit=5000)
    assert page.page == 1
    assert page.limit == MAX_PAGE_SIZE
    assert not page.has_prev
    assert not page.has_next

    first = queries.golden_records(page=1, limit=1)
    assert len(first.items) == 1
    assert first.has_next
    second = queries.golden_records(page=2, limit=1)
    assert second.has_prev
    assert not second.has_next
    assert first.items[0].id != second.items[0].id


def test_cluster_and_batch_listings(queries) -> None:
    pending = queries.clusters(status=ClusterStatus.PENDING)
    assert pending.total == 1
    (cluster,) = pending.items
    assert sorted(cluster.record_ids) == ["r1", "r2"]
    assert len(cluster.links) == 1
    assert queries.clusters(status=ClusterStatus.RESOLVED).total == 1

    batches = queries.batches(status=BatchStatus.COMPLETED)
    assert [batch.id for batch in batches.items] == ["batch-1"]
    assert queries.batch("batch-1").stats.duplicates_found == 1
    assert queries.batch("missing") is None


def test_aggregate_metrics_over_default_window(queries) -> None:
    metrics = queries.aggregate_metrics()

    assert metrics.total_batches == 1
    assert metrics.completed_batches == 1
    assert metrics.failed_batches == 0
    assert metrics.total_source_records == 3
    assert metrics.total_golden_records == 2
    assert metrics.average_duplicates_per_batch == 1.0
    assert [(m.method, m.links, m.average_score) for m in metrics.match_methods] == [("fuzzy_email", 1, 1.0)]


def test_aggregate_metrics_for_empty_window(queries) -> None:
    empty = queries.aggregate_metrics(
        start=datetime(2000, 1, 1, tzinfo=timezone.utc), end=datetime(2001, 1, 1, tzinfo=timezone.utc)
    )

    assert empty.total_batches == 0
    assert empty.average_processing_time_ms == 0.0
    assert empty.match_methods == []


def test_audit_lookups_pass_through(queries) -> None:
    assert queries.audit_summary("batch-1").golden_records_created == 2
    assert queries.audit_trail("batch-1")[0].operation == "START"
    assert queries.match_quality("batch-1").potential_false_positives == []
