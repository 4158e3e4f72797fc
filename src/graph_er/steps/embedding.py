from __future__ import annotations

import zlib
from collections.abc import Sequence
from math import sqrt

from graph_er.config import ResolutionConfig
from graph_er.ids import link_id
from graph_er.interfaces import EmbeddingModel, VectorIndex
from graph_er.models import MatchLink, MatchMethod, NormalizedRecord

DEFAULT_EMBEDDING_FIELDS = ("name", "email", "organization_name", "address")


def record_text(record: NormalizedRecord, fields: Sequence[str] = DEFAULT_EMBEDDING_FIELDS) -> str:
    parts = [getattr(record, name) for name in fields]
    return " ".join(part.lower() for part in parts if part).strip()


class SimpleTextEmbeddingModel:
    """Hashing-based baseline embedding model.

    Tokens are bucketed with CRC32 so vectors are identical across processes.
    """

    def __init__(self, fields: Sequence[str] = DEFAULT_EMBEDDING_FIELDS, dimensions: int = 64) -> None:
        self._fields = tuple(fields)
        self._dimensions = dimensions

    def embed(self, records: Sequence[NormalizedRecord]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for record in records:
            vector = [0.0] * self._dimensions
            for token in record_text(record, self._fields).split():
                idx = zlib.crc32(token.encode("utf-8")) % self._dimensions
                vector[idx] += 1.0
            vectors.append(_l2_normalize(vector))
        return vectors


class SbertEmbeddingModel:
    """Sentence-Transformers embedding adapter (SBERT)."""

    def __init__(
        self,
        fields: Sequence[str] = DEFAULT_EMBEDDING_FIELDS,
        model_name: str = "all-MiniLM-L6-v2",
        batch_size: int = 64,
    ) -> None:
        self._fields = tuple(fields)
        self._batch_size = batch_size
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise ImportError(
                "SBERT backend requires sentence-transformers. "
                "Install with: pip install 'graph-er[sbert]'"
            ) from exc
        self._model = SentenceTransformer(model_name)

    def embed(self, records: Sequence[NormalizedRecord]) -> list[list[float]]:
        texts = [record_text(record, self._fields) for record in records]
        vectors = self._model.encode(
            texts,
            batch_size=self._batch_size,
            normalize_embeddings=True,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        return [vector.tolist() for vector in vectors]


class BruteForceVectorIndex:
    """Exact all-pairs cosine index over L2-normalized vectors."""

    def __init__(self) -> None:
        self._record_ids: list[str] = []
        self._vectors: list[list[float]] = []

    def build(self, record_ids: Sequence[str], vectors: Sequence[Sequence[float]]) -> None:
        if len(record_ids) != len(vectors):
            raise ValueError("record_ids and vectors must have the same length")
        self._record_ids = list(record_ids)
        self._vectors = [list(v) for v in vectors]

    def query_similar_pairs(self, min_similarity: float) -> list[tuple[str, str, float]]:
        pairs: list[tuple[str, str, float]] = []
        for i, left in enumerate(self._vectors):
            for j in range(i + 1, len(self._vectors)):
                score = _dot(left, self._vectors[j])
                if score >= min_similarity:
                    pairs.append((self._record_ids[i], self._record_ids[j], min(score, 1.0)))
        return pairs


class EmbeddingMatcher:
    """Emits ``similarity_cluster`` links for embedding-close pairs not already linked."""

    def __init__(
        self,
        embedding_model: EmbeddingModel,
        vector_index: VectorIndex,
        similarity_threshold: float = 0.95,
    ) -> None:
        self._embedding_model = embedding_model
        self._vector_index = vector_index
        self._similarity_threshold = similarity_threshold

    def match(
        self,
        records: Sequence[NormalizedRecord],
        exclude_pairs: set[frozenset[str]],
    ) -> list[MatchLink]:
        if len(records) < 2:
            return []
        by_id = {record.record_id: record for record in records}
        self._vector_index.build(list(by_id), self._embedding_model.embed(list(by_id.values())))

        links: list[MatchLink] = []
        for left_id, right_id, score in self._vector_index.query_similar_pairs(self._similarity_threshold):
            if frozenset((left_id, right_id)) in exclude_pairs:
                continue
            batch_id = by_id[left_id].batch_id
            links.append(
                MatchLink(
                    id=link_id(batch_id, left_id, right_id, MatchMethod.SIMILARITY_CLUSTER),
                    source_record_id=left_id,
                    target_record_id=right_id,
                    method=MatchMethod.SIMILARITY_CLUSTER,
                    score=score,
                    batch_id=batch_id,
                    metadata={"source": "embedding", "threshold": self._similarity_threshold},
                )
            )
        return links


def build_embedding_matcher(config: ResolutionConfig) -> EmbeddingMatcher:
    if config.embedding_backend == "sbert":
        model: EmbeddingModel = SbertEmbeddingModel(model_name=config.sbert_model)
    else:
        model = SimpleTextEmbeddingModel()
    return EmbeddingMatcher(
        embedding_model=model,
        vector_index=BruteForceVectorIndex(),
        similarity_threshold=config.similarity_cluster_threshold,
    )


def _dot(left: Sequence[float], right: Sequence[float]) -> float:
    return sum(a * b for a, b in zip(left, right))


def _l2_normalize(vector: Sequence[float]) -> list[float]:
    norm = sqrt(sum(v * v for v in vector))
    if norm == 0:
        return [0.0] * len(vector)
    return [v / norm for v in vector]
