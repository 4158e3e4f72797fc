from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from graph_er.config import ResolutionConfig
from graph_er.ids import link_id
from graph_er.interfaces import DeterministicMatcher, SimilarityMatcher
from graph_er.models import MatchLink, MatchMethod, NormalizedRecord
from graph_er.similarity import MergeDecision, should_merge
from graph_er.steps.deterministic import NaturalKeyMatcher

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MatchResult:
    """Candidate match graph for one batch plus the bookkeeping of the capped fuzzy pass."""

    links: list[MatchLink] = field(default_factory=list)
    comparisons: int = 0
    cap_reached: bool = False
    pairs_not_compared: int = 0

    def counts_by_method(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for link in self.links:
            counts[link.method.value] = counts.get(link.method.value, 0) + 1
        return counts


class CandidateMatcher:
    """Builds match links: exact natural-key links, then a capped pairwise fuzzy pass.

    Pairs already joined by an earlier link are skipped and do not count
    toward ``max_comparisons``. Once the cap is hit the fuzzy pass stops for
    the rest of the batch and the result says how many pairs were left out.
    """

    def __init__(
        self,
        config: ResolutionConfig,
        deterministic_matcher: DeterministicMatcher | None = None,
        similarity_matcher: SimilarityMatcher | None = None,
    ) -> None:
        self._config = config
        self._deterministic_matcher = deterministic_matcher or NaturalKeyMatcher()
        self._similarity_matcher = similarity_matcher

    def match(self, records: Sequence[NormalizedRecord]) -> MatchResult:
        result = MatchResult(links=list(self._deterministic_matcher.match(records)))
        linked = {frozenset((link.source_record_id, link.target_record_id)) for link in result.links}

        total_pairs = len(records) * (len(records) - 1) // 2
        candidate_pairs = total_pairs - len(linked)
        cap = self._config.max_comparisons

        for i, left in enumerate(records):
            if result.cap_reached:
                break
            for right in records[i + 1 :]:
                pair = frozenset((left.record_id, right.record_id))
                if pair in linked:
                    continue
                if result.comparisons >= cap:
                    result.cap_reached = True
                    break
                result.comparisons += 1
                decision = should_merge(left, right, self._config)
                if not decision.should_merge:
                    continue
                result.links.append(self._fuzzy_link(left, right, decision))
                linked.add(pair)

        if result.cap_reached:
            result.pairs_not_compared = candidate_pairs - result.comparisons
            logger.warning(
                "Comparison cap of %d reached; %d pairs not compared",
                cap,
                result.pairs_not_compared,
            )

        if self._config.rules.similarity_cluster and self._similarity_matcher is not None:
            result.links.extend(self._similarity_matcher.match(records, linked))

        return result

    def _fuzzy_link(self, left: NormalizedRecord, right: NormalizedRecord, decision: MergeDecision) -> MatchLink:
        method = self._method_for(decision.matched_fields)
        return MatchLink(
            id=link_id(left.batch_id, left.record_id, right.record_id, method),
            source_record_id=left.record_id,
            target_record_id=right.record_id,
            method=method,
            score=decision.confidence,
            batch_id=left.batch_id,
            metadata={"reason": decision.reason, "matchedFields": list(decision.matched_fields)},
        )

    def _method_for(self, matched_fields: Sequence[str]) -> MatchMethod:
        if "email" in matched_fields:
            return MatchMethod.FUZZY_EMAIL
        if "phone" in matched_fields and self._config.rules.fuzzy_phone_match:
            return MatchMethod.FUZZY_PHONE
        if "organization_id" in matched_fields or "organization_name" in matched_fields:
            return MatchMethod.FUZZY_ORGANIZATION
        return MatchMethod.FUZZY_NAME
