"""Batch entity resolution: normalize, match, cluster and merge records into golden records."""

from graph_er.audit import AuditTrail
from graph_er.config import EngineSettings, ResolutionConfig, load_settings
from graph_er.models import BatchResult, BatchStatus, GoldenRecord, MatchCluster, MatchLink, MatchMethod
from graph_er.queries import ResolutionQueries
from graph_er.runners import LocalBatchPipeline
from graph_er.similarity import calculate_entity_similarity, generate_merge_suggestions, should_merge

__all__ = [
    "AuditTrail",
    "BatchResult",
    "BatchStatus",
    "EngineSettings",
    "GoldenRecord",
    "LocalBatchPipeline",
    "MatchCluster",
    "MatchLink",
    "MatchMethod",
    "ResolutionConfig",
    "ResolutionQueries",
    "calculate_entity_similarity",
    "generate_merge_suggestions",
    "load_settings",
    "should_merge",
]
