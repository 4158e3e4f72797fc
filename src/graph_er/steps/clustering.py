from __future__ import annotations

import logging
from collections.abc import Sequence

from graph_er.config import ResolutionConfig
from graph_er.ids import cluster_id
from graph_er.models import ClusterStatus, MatchCluster, MatchLink, NormalizedRecord
from graph_er.similarity import generate_merge_suggestions

logger = logging.getLogger(__name__)


class ConnectedComponentClusterer:
    """Partitions a batch into connected components of the match graph.

    Components come out in record encounter order with members in the order
    the depth-first walk reaches them. Every record lands in exactly one
    cluster and every link lands in the cluster holding both endpoints.
    """

    def __init__(self, config: ResolutionConfig) -> None:
        self._config = config

    def cluster(self, records: Sequence[NormalizedRecord], links: Sequence[MatchLink]) -> list[MatchCluster]:
        adjacency: dict[str, list[str]] = {record.record_id: [] for record in records}
        for link in links:
            if link.source_record_id not in adjacency or link.target_record_id not in adjacency:
                logger.warning(
                    "Ignoring link %s with an endpoint outside the batch (%s -> %s)",
                    link.id,
                    link.source_record_id,
                    link.target_record_id,
                )
                continue
            adjacency[link.source_record_id].append(link.target_record_id)
            adjacency[link.target_record_id].append(link.source_record_id)

        component_of: dict[str, int] = {}
        components: list[list[str]] = []
        for record in records:
            start = record.record_id
            if start in component_of:
                continue
            index = len(components)
            members: list[str] = []
            stack = [start]
            component_of[start] = index
            while stack:
                current = stack.pop()
                members.append(current)
                for neighbour in adjacency[current]:
                    if neighbour not in component_of:
                        component_of[neighbour] = index
                        stack.append(neighbour)
            components.append(members)

        links_by_component: list[list[MatchLink]] = [[] for _ in components]
        for link in links:
            source = component_of.get(link.source_record_id)
            if source is not None and source == component_of.get(link.target_record_id):
                links_by_component[source].append(link)

        by_id = {record.record_id: record for record in records}
        batch_id = records[0].batch_id if records else ""
        clusters: list[MatchCluster] = []
        for members, member_links in zip(components, links_by_component):
            singleton = len(members) == 1
            cluster = MatchCluster(
                id=cluster_id(batch_id, members),
                batch_id=batch_id,
                record_ids=members,
                links=member_links,
                status=ClusterStatus.RESOLVED if singleton else ClusterStatus.PENDING,
            )
            if not singleton and len(members) <= self._config.max_suggestion_cluster_size:
                cluster.suggested_merges = generate_merge_suggestions(
                    [by_id[record_id] for record_id in members], self._config
                )
            clusters.append(cluster)
        return clusters
