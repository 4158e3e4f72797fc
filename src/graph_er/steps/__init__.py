from graph_er.steps.cleanup import FunctionalCleaner, RecordValidator, ValidationOutcome
from graph_er.steps.clustering import ConnectedComponentClusterer
from graph_er.steps.deterministic import NaturalKeyMatcher
from graph_er.steps.embedding import (
    BruteForceVectorIndex,
    EmbeddingMatcher,
    SbertEmbeddingModel,
    SimpleTextEmbeddingModel,
    build_embedding_matcher,
)
from graph_er.steps.golden import GoldenRecordSynthesizer
from graph_er.steps.matching import CandidateMatcher, MatchResult

__all__ = [
    "FunctionalCleaner",
    "RecordValidator",
    "ValidationOutcome",
    "NaturalKeyMatcher",
    "CandidateMatcher",
    "MatchResult",
    "BruteForceVectorIndex",
    "EmbeddingMatcher",
    "SbertEmbeddingModel",
    "SimpleTextEmbeddingModel",
    "build_embedding_matcher",
    "ConnectedComponentClusterer",
    "GoldenRecordSynthesizer",
]
