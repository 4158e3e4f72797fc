from conftest import make_record
from graph_er.config import ResolutionConfig
from graph_er.ids import cluster_id, golden_id
from graph_er.models import ClusterStatus, MatchLink, MatchMethod
from graph_er.steps import ConnectedComponentClusterer, GoldenRecordSynthesizer


def _link(source: str, target: str, score: float = 1.0) -> MatchLink:
    return MatchLink(
        id=f"{source}-{target}",
        source_record_id=source,
        target_record_id=target,
        method=MatchMethod.FUZZY_EMAIL,
        score=score,
        batch_id="batch-1",
    )


def test_clusters_partition_records_in_encounter_order() -> None:
    records = [make_record(record_id, f"Person {record_id}") for record_id in ["r1", "r2", "r3", "r4", "r5", "r6"]]
    links = [_link("r1", "r2"), _link("r5", "r4"), _link("r2", "r3")]

    clusters = ConnectedComponentClusterer(ResolutionConfig()).cluster(records, links)

    assert [cluster.record_ids for cluster in clusters] == [["r1", "r2", "r3"], ["r4", "r5"], ["r6"]]
    assert [cluster.status for cluster in clusters] == [
        ClusterStatus.PENDING,
        ClusterStatus.PENDING,
        ClusterStatus.RESOLVED,
    ]
    seen = [record_id for cluster in clusters for record_id in cluster.record_ids]
    assert sorted(seen) == sorted(record.record_id for record in records)


def test_every_link_stays_inside_one_cluster() -> None:
    records = [make_record(record_id, f"Person {record_id}") for record_id in ["a", "b", "c", "d"]]
    links = [_link("a", "b"), _link("c", "d"), _link("b", "a", 0.9)]

    clusters = ConnectedComponentClusterer(ResolutionConfig()).cluster(records, links)

    assert sum(len(cluster.links) for cluster in clusters) == len(links)
    for cluster in clusters:
        members = set(cluster.record_ids)
        assert all({link.source_record_id, link.target_record_id} <= members for link in cluster.links)


def test_links_to_unknown_records_are_ignored() -> None:
    records = [make_record("a", "Person A"), make_record("b", "Person B")]
    clusters = ConnectedComponentClusterer(ResolutionConfig()).cluster(records, [_link("a", "ghost")])

    assert [cluster.record_ids for cluster in clusters] == [["a"], ["b"]]
    assert all(cluster.links == [] for cluster in clusters)


def test_cluster_ids_are_deterministic() -> None:
    records = [make_record("a", "Person A"), make_record("b", "Person B")]
    clusters = ConnectedComponentClusterer(ResolutionConfig()).cluster(records, [_link("a", "b")])

    assert clusters[0].id == cluster_id("batch-1", ["b", "a"])


def test_deep_chain_does_not_recurse() -> None:
    records = [make_record(f"r{i}", f"Person {i}") for i in range(5000)]
    links = [_link(f"r{i}", f"r{i + 1}") for i in range(4999)]

    clusters = ConnectedComponentClusterer(ResolutionConfig(max_suggestion_cluster_size=2)).cluster(records, links)

    assert len(clusters) == 1
    assert len(clusters[0].record_ids) == 5000
    assert clusters[0].suggested_merges == []


def test_small_pending_clusters_get_merge_suggestions() -> None:
    records = [
        make_record("a", "John Smith", email="john@example.com"),
        make_record("b", "Johnny Smith", email="john@example.com"),
    ]
    clusters = ConnectedComponentClusterer(ResolutionConfig()).cluster(records, [_link("a", "b")])

    assert len(clusters[0].suggested_merges) == 1
    suggestion = clusters[0].suggested_merges[0]
    assert suggestion.record_ids == ("a", "b")
    assert suggestion.reason == "Exact email match"


def test_golden_record_unions_contact_values_and_keeps_provenance() -> None:
    records = [
        make_record("a", "John Smith", email="john@example.com", address="12 Main ST"),
        make_record("b", "Johnny Smith", email="john@example.com", phone="5551234567", address="12 MAIN ST"),
        make_record("c", "Alice Jones", email="alice@example.com"),
    ]
    config = ResolutionConfig()
    clusters = ConnectedComponentClusterer(config).cluster(records, [_link("a", "b")])
    golden = GoldenRecordSynthesizer(config).synthesize(clusters, records)

    merged, single = golden
    assert merged.name == "John Smith"
    assert merged.emails == ["john@example.com"]
    assert merged.phones == ["5551234567"]
    assert merged.addresses == ["12 Main ST"]
    assert merged.source_record_ids == ["a", "b"]
    assert merged.batch_ids == ["batch-1"]
    assert merged.confidence == 0.8
    assert merged.cluster_id == clusters[0].id
    assert merged.id == golden_id(records[0].natural_key)

    assert single.confidence == 1.0
    assert single.source_record_ids == ["c"]


def test_merged_confidence_is_configurable() -> None:
    records = [make_record("a", "John Smith"), make_record("b", "John Smith")]
    config = ResolutionConfig(merged_record_confidence=0.65)
    clusters = ConnectedComponentClusterer(config).cluster(records, [_link("a", "b")])

    assert GoldenRecordSynthesizer(config).synthesize(clusters, records)[0].confidence == 0.65
