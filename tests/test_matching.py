from conftest import make_record
from graph_er.config import MatchRules, ResolutionConfig
from graph_er.models import MatchLink, MatchMethod
from graph_er.steps import CandidateMatcher, NaturalKeyMatcher


def test_natural_key_matcher_links_every_pair_in_a_group() -> None:
    records = [
        make_record("1", "John Doe", email="john@example.com"),
        make_record("2", "John Doe", email="john@example.com"),
        make_record("3", "John Doe", email="john@example.com"),
        make_record("4", "Jane Doe", email="jane@example.com"),
    ]
    links = NaturalKeyMatcher().match(records)

    assert {(link.source_record_id, link.target_record_id) for link in links} == {("1", "2"), ("1", "3"), ("2", "3")}
    assert all(link.method == MatchMethod.EXACT and link.score == 1.0 for link in links)
    assert links[0].metadata == {"naturalKey": "john doe|email:john@example.com", "reason": "Exact natural key match"}


def test_exact_links_are_not_recompared() -> None:
    records = [make_record(str(i), "John Doe", email="john@example.com") for i in range(3)]
    result = CandidateMatcher(ResolutionConfig(max_comparisons=0)).match(records)

    assert len(result.links) == 3
    assert result.comparisons == 0
    assert result.cap_reached is False


def test_fuzzy_link_uses_most_specific_method() -> None:
    records = [
        make_record("a", "John Smith", email="john@example.com"),
        make_record("b", "Johnny Smith", email="john@example.com"),
        make_record("c", "Jon Smyth", phone="5551234567"),
        make_record("d", "Jon Smith", phone="5551234567"),
        make_record("e", "Acme Holdings", organization_id="org-1"),
        make_record("f", "Acme Holding", organization_id="org-1 "),
    ]
    result = CandidateMatcher(ResolutionConfig()).match(records)
    methods = {(link.source_record_id, link.target_record_id): link.method for link in result.links}

    assert methods[("a", "b")] == MatchMethod.FUZZY_EMAIL
    assert methods[("c", "d")] == MatchMethod.FUZZY_PHONE
    # Same organization id means same natural key.
    assert methods[("e", "f")] == MatchMethod.EXACT


def test_name_only_match_gets_fuzzy_name_method() -> None:
    records = [make_record("a", "Maria da Silva"), make_record("b", "Maria Da Silva", phone="5551234567")]
    result = CandidateMatcher(ResolutionConfig()).match(records)

    assert len(result.links) == 1
    link = result.links[0]
    assert link.method == MatchMethod.FUZZY_NAME
    assert link.metadata["matchedFields"] == ["name"]
    assert link.metadata["reason"].startswith("Matched on: name")


def test_comparison_cap_stops_fuzzy_pass_and_reports_skipped_pairs() -> None:
    names = ["Alice Jones", "Robert Brown", "Chen Wei", "Olga Petrova", "Kwame Mensah"]
    records = [make_record(str(i), name) for i, name in enumerate(names)]
    result = CandidateMatcher(ResolutionConfig(max_comparisons=3)).match(records)

    assert result.comparisons == 3
    assert result.cap_reached is True
    assert result.pairs_not_compared == 7
    assert result.links == []


def test_comparison_cap_not_reached_when_all_pairs_fit() -> None:
    records = [make_record("1", "Alice Jones"), make_record("2", "Robert Brown")]
    result = CandidateMatcher(ResolutionConfig(max_comparisons=1)).match(records)

    assert result.comparisons == 1
    assert result.cap_reached is False
    assert result.pairs_not_compared == 0


def test_link_ids_are_stable_across_runs() -> None:
    records = [make_record("a", "John Smith", email="john@example.com"), make_record("b", "J Smith", email="john@example.com")]
    first = CandidateMatcher(ResolutionConfig()).match(records)
    second = CandidateMatcher(ResolutionConfig()).match(records)

    assert [link.id for link in first.links] == [link.id for link in second.links]


class _RecordingSimilarityMatcher:
    def __init__(self) -> None:
        self.excluded: set[frozenset[str]] = set()

    def match(self, records, exclude_pairs):
        self.excluded = set(exclude_pairs)
        return [
            MatchLink(
                id="sim-1",
                source_record_id="b",
                target_record_id="c",
                method=MatchMethod.SIMILARITY_CLUSTER,
                score=0.97,
                batch_id="batch-1",
            )
        ]


def test_similarity_pass_runs_only_when_enabled() -> None:
    records = [
        make_record("a", "John Smith", email="john@example.com"),
        make_record("b", "J Smith", email="john@example.com"),
        make_record("c", "Robert Brown"),
    ]
    disabled = _RecordingSimilarityMatcher()
    result = CandidateMatcher(ResolutionConfig(), similarity_matcher=disabled).match(records)
    assert MatchMethod.SIMILARITY_CLUSTER not in {link.method for link in result.links}

    enabled = _RecordingSimilarityMatcher()
    config = ResolutionConfig(rules=MatchRules(similarity_cluster=True))
    result = CandidateMatcher(config, similarity_matcher=enabled).match(records)

    assert enabled.excluded == {frozenset({"a", "b"})}
    assert result.counts_by_method() == {"fuzzy_email": 1, "similarity_cluster": 1}
