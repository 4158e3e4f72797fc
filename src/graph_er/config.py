"""Configuration loading and validation."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from graph_er.errors import ConfigError

DATABASE_URL_ENV = "GRAPH_ER_DATABASE_URL"
LOG_LEVEL_ENV = "GRAPH_ER_LOG_LEVEL"


@dataclass(frozen=True)
class FieldThresholds:
    """Per-field similarity a pair must reach for the field to count as matched."""

    name: float = 0.85
    email: float = 0.95
    phone: float = 0.90
    organization_name: float = 0.80
    organization_id: float = 0.95
    address: float = 0.75


@dataclass(frozen=True)
class FieldWeights:
    """Weights of the overall similarity; only fields present on both sides contribute."""

    name: float = 0.4
    email: float = 0.3
    phone: float = 0.2
    organization_name: float = 0.05
    organization_id: float = 0.05
    address: float = 0.0


@dataclass(frozen=True)
class MatchRules:
    exact_email_match: bool = True
    exact_org_id_match: bool = True
    fuzzy_name_match: bool = True
    fuzzy_phone_match: bool = True
    similarity_cluster: bool = False


@dataclass(frozen=True)
class ResolutionConfig:
    """Every knob of the matching policy; nothing in the matching code is hard-wired."""

    thresholds: FieldThresholds = field(default_factory=FieldThresholds)
    weights: FieldWeights = field(default_factory=FieldWeights)
    rules: MatchRules = field(default_factory=MatchRules)
    min_auto_merge_confidence: float = 0.85
    name_only_threshold: float = 0.98
    jaro_winkler_scaling_factor: float = 0.1
    max_comparisons: int = 10_000
    max_suggestion_cluster_size: int = 10
    merged_record_confidence: float = 0.8
    similarity_cluster_threshold: float = 0.95
    embedding_backend: str = "hashing"
    sbert_model: str = "all-MiniLM-L6-v2"

    def __post_init__(self) -> None:
        for group_name in ("thresholds", "weights"):
            group = getattr(self, group_name)
            for item in fields(group):
                _check_unit_interval(f"{group_name}.{item.name}", getattr(group, item.name))
        for name in (
            "min_auto_merge_confidence",
            "name_only_threshold",
            "merged_record_confidence",
            "similarity_cluster_threshold",
        ):
            _check_unit_interval(name, getattr(self, name))
        if not 0.0 <= self.jaro_winkler_scaling_factor <= 0.25:
            raise ConfigError("jaro_winkler_scaling_factor must be within [0, 0.25]")
        if self.max_comparisons < 0:
            raise ConfigError("max_comparisons must be >= 0")
        if self.max_suggestion_cluster_size < 2:
            raise ConfigError("max_suggestion_cluster_size must be >= 2")
        if self.embedding_backend not in {"hashing", "sbert"}:
            raise ConfigError(f"Unknown embedding_backend: {self.embedding_backend!r}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "ResolutionConfig":
        mapping = dict(mapping or {})
        try:
            thresholds = FieldThresholds(**(mapping.pop("thresholds", None) or {}))
            weights = FieldWeights(**(mapping.pop("weights", None) or {}))
            rules = MatchRules(**(mapping.pop("rules", None) or {}))
            return cls(thresholds=thresholds, weights=weights, rules=rules, **mapping)
        except TypeError as exc:
            raise ConfigError(f"Invalid resolution config: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EngineSettings:
    database_url: str
    log_level: str = "INFO"
    log_dir: Path | None = None
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)


def _check_unit_interval(name: str, value: object) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be a number within [0, 1], got {value!r}")


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def read_yaml(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed YAML in {path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return payload


def load_settings(
    config_path: Path | None = None,
    *,
    overlay_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    database_url: str | None = None,
) -> EngineSettings:
    env = os.environ if env is None else env
    raw: dict = read_yaml(config_path) if config_path is not None else {}
    if overlay_path is not None and overlay_path.exists():
        raw = _deep_merge(raw, read_yaml(overlay_path))

    url = database_url or env.get(DATABASE_URL_ENV) or raw.get("database_url")
    if not url:
        raise ConfigError(
            f"No database URL configured; set {DATABASE_URL_ENV}, pass --database-url, "
            "or add database_url to the config file"
        )

    log_dir = raw.get("log_dir")
    return EngineSettings(
        database_url=str(url),
        log_level=str(env.get(LOG_LEVEL_ENV) or raw.get("log_level") or "INFO").upper(),
        log_dir=Path(log_dir) if log_dir else None,
        resolution=ResolutionConfig.from_mapping(raw.get("resolution")),
    )
