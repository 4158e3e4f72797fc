from pathlib import Path

import pytest

from graph_er.config import ResolutionConfig, load_settings
from graph_er.errors import ConfigError

CONFIG_FILE = Path(__file__).resolve().parent.parent / "config" / "graph_er.yaml"


def _yaml(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_shipped_config_matches_defaults() -> None:
    settings = load_settings(CONFIG_FILE, env={})

    assert settings.database_url == "sqlite:///data/graph_er.db"
    assert settings.log_level == "INFO"
    assert settings.resolution == ResolutionConfig()


def test_environment_overrides_file(tmp_path: Path) -> None:
    path = _yaml(tmp_path, "settings.yaml", "database_url: sqlite:///file.db\nlog_level: info\n")

    settings = load_settings(
        path, env={"GRAPH_ER_DATABASE_URL": "sqlite:///env.db", "GRAPH_ER_LOG_LEVEL": "debug"}
    )

    assert settings.database_url == "sqlite:///env.db"
    assert settings.log_level == "DEBUG"


def test_explicit_database_url_wins(tmp_path: Path) -> None:
    settings = load_settings(None, env={"GRAPH_ER_DATABASE_URL": "sqlite:///env.db"}, database_url="sqlite://")
    assert settings.database_url == "sqlite://"


def test_overlay_is_deep_merged(tmp_path: Path) -> None:
    base = _yaml(
        tmp_path,
        "base.yaml",
        "database_url: sqlite:///base.db\nresolution:\n  max_comparisons: 50\n  thresholds:\n    name: 0.9\n",
    )
    overlay = _yaml(tmp_path, "overlay.yaml", "resolution:\n  thresholds:\n    email: 0.99\n")

    resolution = load_settings(base, overlay_path=overlay, env={}).resolution

    assert resolution.max_comparisons == 50
    assert resolution.thresholds.name == 0.9
    assert resolution.thresholds.email == 0.99


def test_missing_overlay_file_is_ignored(tmp_path: Path) -> None:
    base = _yaml(tmp_path, "base.yaml", "database_url: sqlite:///base.db\n")
    settings = load_settings(base, overlay_path=tmp_path / "absent.yaml", env={})
    assert settings.database_url == "sqlite:///base.db"


def test_missing_database_url_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="No database URL"):
        load_settings(None, env={})


@pytest.mark.parametrize(
    "text",
    [
        "database_url: x\nresolution:\n  min_auto_merge_confidence: 1.5\n",
        "database_url: x\nresolution:\n  thresholds:\n    name: yes\n",
        "database_url: x\nresolution:\n  not_a_knob: 1\n",
        "database_url: x\nresolution:\n  rules:\n    guess_everything: true\n",
        "database_url: x\nresolution:\n  max_comparisons: -1\n",
        "database_url: x\nresolution:\n  embedding_backend: word2vec\n",
        "- just\n- a list\n",
        "database_url: [unclosed\n",
    ],
)
def test_invalid_config_is_rejected(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_settings(_yaml(tmp_path, "bad.yaml", text), env={})


def test_unreadable_config_file_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Cannot read config file"):
        load_settings(tmp_path / "missing.yaml", env={})
