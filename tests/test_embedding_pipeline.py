import pytest
from conftest import make_record

from graph_er.config import MatchRules, ResolutionConfig
from graph_er.models import MatchMethod
from graph_er.steps import (
    BruteForceVectorIndex,
    CandidateMatcher,
    EmbeddingMatcher,
    SimpleTextEmbeddingModel,
    build_embedding_matcher,
)


def _near_duplicates():
    return [
        make_record("1", "Jane Smith", email="jane@example.com", address="12 Market ST"),
        make_record("2", "Jane Smit", email="jane@example.com", address="12 Market ST"),
        make_record("3", "Alex Doe", email="alex@example.com", address="44 Pine Road"),
    ]


def _matcher(threshold: float) -> EmbeddingMatcher:
    return EmbeddingMatcher(
        embedding_model=SimpleTextEmbeddingModel(dimensions=256),
        vector_index=BruteForceVectorIndex(),
        similarity_threshold=threshold,
    )


def test_embedding_matcher_links_near_duplicates_only() -> None:
    links = _matcher(0.6).match(_near_duplicates(), exclude_pairs=set())

    pairs = {frozenset((link.source_record_id, link.target_record_id)) for link in links}
    assert frozenset(("1", "2")) in pairs
    assert all("3" not in pair for pair in pairs)
    assert all(link.method == MatchMethod.SIMILARITY_CLUSTER for link in links)
    assert links[0].metadata == {"source": "embedding", "threshold": 0.6}


def test_embedding_matcher_skips_pairs_already_linked() -> None:
    links = _matcher(0.6).match(_near_duplicates(), exclude_pairs={frozenset(("1", "2"))})

    pairs = {frozenset((link.source_record_id, link.target_record_id)) for link in links}
    assert frozenset(("1", "2")) not in pairs


def test_hashing_embeddings_are_deterministic_and_normalized() -> None:
    model = SimpleTextEmbeddingModel(dimensions=32)
    records = _near_duplicates()

    first = model.embed(records)
    second = model.embed(records)

    assert first == second
    for vector in first:
        assert len(vector) == 32
        assert abs(sum(v * v for v in vector) - 1.0) < 1e-9


def test_record_without_text_embeds_to_zero_vector() -> None:
    (vector,) = SimpleTextEmbeddingModel(dimensions=8).embed([make_record("x", "")])
    assert vector == [0.0] * 8


def test_vector_index_rejects_mismatched_lengths() -> None:
    with pytest.raises(ValueError, match="same length"):
        BruteForceVectorIndex().build(["a", "b"], [[1.0, 0.0]])


def test_candidate_matcher_adds_similarity_links_after_fuzzy_pass() -> None:
    # Reordered name tokens defeat Jaro-Winkler but not a bag-of-tokens embedding.
    records = [
        make_record("a", "Smith Jane", address="12 Market ST"),
        make_record("b", "Jane Smith", address="12 Market ST"),
    ]
    config = ResolutionConfig(rules=MatchRules(similarity_cluster=True))
    matcher = CandidateMatcher(config, similarity_matcher=build_embedding_matcher(config))

    result = matcher.match(records)

    assert result.comparisons == 1
    (link,) = result.links
    assert link.method == MatchMethod.SIMILARITY_CLUSTER
    assert link.score > 0.99
    assert result.counts_by_method() == {"similarity_cluster": 1}


def test_similarity_pass_is_off_unless_enabled() -> None:
    records = [
        make_record("a", "Smith Jane", address="12 Market ST"),
        make_record("b", "Jane Smith", address="12 Market ST"),
    ]
    config = ResolutionConfig()
    matcher = CandidateMatcher(config, similarity_matcher=_matcher(0.5))

    assert matcher.match(records).links == []
