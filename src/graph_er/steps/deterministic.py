from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

from graph_er.ids import link_id
from graph_er.models import MatchLink, MatchMethod, NormalizedRecord


class NaturalKeyMatcher:
    """Deterministic matcher: every pair of records sharing a natural key is an exact link."""

    def __init__(self, score: float = 1.0) -> None:
        self._score = score

    def match(self, records: Sequence[NormalizedRecord]) -> list[MatchLink]:
        groups: dict[str, list[NormalizedRecord]] = defaultdict(list)
        for record in records:
            if record.natural_key:
                groups[record.natural_key].append(record)

        links: list[MatchLink] = []
        for natural_key, members in groups.items():
            if len(members) < 2:
                continue
            for i, left in enumerate(members):
                for right in members[i + 1 :]:
                    links.append(
                        MatchLink(
                            id=link_id(left.batch_id, left.record_id, right.record_id, MatchMethod.EXACT),
                            source_record_id=left.record_id,
                            target_record_id=right.record_id,
                            method=MatchMethod.EXACT,
                            score=self._score,
                            batch_id=left.batch_id,
                            metadata={"naturalKey": natural_key, "reason": "Exact natural key match"},
                        )
                    )
        return links
