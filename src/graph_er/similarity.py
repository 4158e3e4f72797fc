from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from graph_er.config import ResolutionConfig
from graph_er.interfaces import ComparableEntity
from graph_er.models import MergeSuggestion

_DEFAULT_CONFIG = ResolutionConfig()

# Fields that can back up a fuzzy name match, in method precedence order.
SUPPORTING_FIELDS = ("email", "phone", "organization_id", "organization_name")


def jaro(left: str, right: str) -> float:
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0

    len_left = len(left)
    len_right = len(right)
    window = max(0, max(len_left, len_right) // 2 - 1)

    left_flags = [False] * len_left
    right_flags = [False] * len_right
    matches = 0
    for i, char in enumerate(left):
        start = max(0, i - window)
        end = min(len_right, i + window + 1)
        for j in range(start, end):
            if not right_flags[j] and right[j] == char:
                left_flags[i] = True
                right_flags[j] = True
                matches += 1
                break

    if matches == 0:
        return 0.0

    half_transpositions = 0
    point = 0
    for i, char in enumerate(left):
        if not left_flags[i]:
            continue
        while not right_flags[point]:
            point += 1
        if char != right[point]:
            half_transpositions += 1
        point += 1
    transpositions = half_transpositions / 2

    return (matches / len_left + matches / len_right + (matches - transpositions) / matches) / 3


def jaro_winkler(left: str, right: str, scale: float = 0.1) -> float:
    similarity = jaro(left, right)
    if similarity in (0.0, 1.0):
        return similarity

    prefix = 0
    for a, b in zip(left[:4], right[:4]):
        if a != b:
            break
        prefix += 1
    return similarity + prefix * scale * (1 - similarity)


@dataclass(slots=True)
class EntitySimilarity:
    name: float = 0.0
    email: float = 0.0
    phone: float = 0.0
    organization_name: float = 0.0
    organization_id: float = 0.0
    address: float = 0.0
    overall: float = 0.0
    matched_fields: list[str] = field(default_factory=list)
    reason: str = ""


@dataclass(frozen=True, slots=True)
class MergeDecision:
    should_merge: bool
    confidence: float
    reason: str
    matched_fields: tuple[str, ...] = ()


def field_value(entity: ComparableEntity | Mapping[str, object], name: str) -> str:
    if isinstance(entity, Mapping):
        value = entity.get(name)
    else:
        value = getattr(entity, name, None)
    if value is None:
        return ""
    return str(value).strip()


def _exact(left: str, right: str) -> float:
    return 1.0 if left.lower() == right.lower() else 0.0


def calculate_entity_similarity(
    left: ComparableEntity | Mapping[str, object],
    right: ComparableEntity | Mapping[str, object],
    config: ResolutionConfig = _DEFAULT_CONFIG,
) -> EntitySimilarity:
    scale = config.jaro_winkler_scaling_factor
    comparators = {
        "name": lambda a, b: jaro_winkler(a.lower(), b.lower(), scale),
        "email": _exact,
        "phone": _exact,
        "organization_name": lambda a, b: jaro_winkler(a.lower(), b.lower(), scale),
        "organization_id": _exact,
        "address": lambda a, b: jaro_winkler(a.lower(), b.lower(), scale),
    }

    result = EntitySimilarity()
    weighted_sum = 0.0
    total_weight = 0.0
    for name, compare in comparators.items():
        left_value = field_value(left, name)
        right_value = field_value(right, name)
        if not left_value or not right_value:
            continue
        score = compare(left_value, right_value)
        setattr(result, name, score)
        if score >= getattr(config.thresholds, name):
            result.matched_fields.append(name)
        weight = getattr(config.weights, name)
        weighted_sum += score * weight
        total_weight += weight

    result.overall = weighted_sum / total_weight if total_weight > 0 else 0.0

    reasons: list[str] = []
    if result.matched_fields:
        reasons.append(f"Matched on: {', '.join(result.matched_fields)}")
    if result.overall >= config.min_auto_merge_confidence:
        reasons.append(f"High confidence ({result.overall * 100:.1f}%)")
    result.reason = "; ".join(reasons) or "Low similarity"
    return result


def should_merge(
    left: ComparableEntity | Mapping[str, object],
    right: ComparableEntity | Mapping[str, object],
    config: ResolutionConfig = _DEFAULT_CONFIG,
) -> MergeDecision:
    """Decide whether two entities describe the same real-world party.

    Exact email beats exact organization id, which beats the fuzzy policy.
    The fuzzy policy merges when the weighted similarity clears
    ``min_auto_merge_confidence`` and at least one supporting field matched,
    or when the names alone clear ``name_only_threshold``.
    """
    rules = config.rules

    left_email = field_value(left, "email")
    right_email = field_value(right, "email")
    if rules.exact_email_match and left_email and right_email and _exact(left_email, right_email):
        return MergeDecision(True, 1.0, "Exact email match", ("email",))

    left_org = field_value(left, "organization_id")
    right_org = field_value(right, "organization_id")
    if rules.exact_org_id_match and left_org and right_org and _exact(left_org, right_org):
        return MergeDecision(True, 1.0, "Exact organization ID match", ("organization_id",))

    similarity = calculate_entity_similarity(left, right, config)
    supporting = [
        name
        for name in SUPPORTING_FIELDS
        if name in similarity.matched_fields and (name != "phone" or rules.fuzzy_phone_match)
    ]
    supported = similarity.overall >= config.min_auto_merge_confidence and bool(supporting)
    name_only = rules.fuzzy_name_match and similarity.name >= config.name_only_threshold

    return MergeDecision(
        should_merge=supported or name_only,
        confidence=similarity.overall,
        reason=similarity.reason,
        matched_fields=tuple(similarity.matched_fields),
    )


def generate_merge_suggestions(
    entities: Sequence[ComparableEntity | Mapping[str, object]],
    config: ResolutionConfig = _DEFAULT_CONFIG,
) -> list[MergeSuggestion]:
    suggestions: list[MergeSuggestion] = []
    for i, left in enumerate(entities):
        for right in entities[i + 1 :]:
            decision = should_merge(left, right, config)
            if decision.should_merge:
                suggestions.append(
                    MergeSuggestion(
                        record_ids=(_entity_id(left), _entity_id(right)),
                        confidence=decision.confidence,
                        reason=decision.reason,
                    )
                )
    # sorted() is stable, so equal confidences keep insertion order.
    return sorted(suggestions, key=lambda suggestion: -suggestion.confidence)


def _entity_id(entity: ComparableEntity | Mapping[str, object]) -> str:
    return field_value(entity, "record_id") or field_value(entity, "id")
