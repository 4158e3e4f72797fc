from __future__ import annotations

from collections.abc import Iterable, Sequence

from graph_er.config import ResolutionConfig
from graph_er.ids import golden_id
from graph_er.models import GoldenRecord, MatchCluster, NormalizedRecord, utc_now


class GoldenRecordSynthesizer:
    """Builds one golden record per cluster; the first member seeds the identity fields."""

    def __init__(self, config: ResolutionConfig) -> None:
        self._config = config

    def synthesize(self, clusters: Sequence[MatchCluster], records: Sequence[NormalizedRecord]) -> list[GoldenRecord]:
        by_id = {record.record_id: record for record in records}
        golden_records: list[GoldenRecord] = []
        for cluster in clusters:
            members = [by_id[record_id] for record_id in cluster.record_ids if record_id in by_id]
            if not members:
                continue
            golden_records.append(self._merge(cluster, members))
        return golden_records

    def _merge(self, cluster: MatchCluster, members: list[NormalizedRecord]) -> GoldenRecord:
        representative = members[0]
        now = utc_now()
        return GoldenRecord(
            id=golden_id(representative.natural_key),
            natural_key=representative.natural_key,
            name=representative.name,
            emails=_distinct(record.email for record in members),
            phones=_distinct(record.phone for record in members),
            addresses=_distinct(record.address for record in members),
            organization_name=representative.organization_name,
            organization_id=representative.organization_id,
            source_record_ids=[record.record_id for record in members],
            batch_ids=list(dict.fromkeys(record.batch_id for record in members)),
            cluster_id=cluster.id,
            confidence=1.0 if len(members) == 1 else self._config.merged_record_confidence,
            created_at=now,
            updated_at=now,
        )


def _distinct(values: Iterable[str]) -> list[str]:
    """Case-insensitive union in first-seen order, skipping blanks."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not value:
            continue
        key = value.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result
