"""Unit tests for core config parsing."""

from __future__ import annotations

import json

import pytest

from core.config import DepotConfig
from core.errors import DepotConfigError


def test_from_env_reads_workspace_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve workspace root and name from environment."""
    monkeypatch.setenv("DEPOT_WORKSPACE_ROOT", "./.tmp-depot")
    monkeypatch.setenv("DEPOT_WORKSPACE_NAME", "research")

    config = DepotConfig.from_env()

    assert config.workspace_root.name == ".tmp-depot" and config.workspace_name == "research"


def test_from_env_normalizes_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    """Log level names should be accepted case-insensitively."""
    monkeypatch.setenv("DEPOT_LOG_LEVEL", "debug")

    config = DepotConfig.from_env()

    assert config.log_level == "DEBUG"


def test_from_env_raises_for_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for unknown log level names."""
    monkeypatch.setenv("DEPOT_LOG_LEVEL", "chatty")

    with pytest.raises(DepotConfigError):
        DepotConfig.from_env()


def test_from_file_resolves_relative_root_against_file(tmp_path) -> None:
    """Relative workspace roots in config files should resolve next to the file."""
    config_path = tmp_path / "depot.json"
    config_path.write_text(
        json.dumps({"workspace_root": "ws", "workspace_name": "team"}),
        encoding="utf-8",
    )

    config = DepotConfig.from_file(config_path)

    assert config.workspace_root == (tmp_path / "ws").resolve() and config.workspace_name == "team"


def test_from_file_raises_without_workspace_root(tmp_path) -> None:
    """Config files must name a workspace root."""
    config_path = tmp_path / "depot.json"
    config_path.write_text(json.dumps({"workspace_name": "team"}), encoding="utf-8")

    with pytest.raises(DepotConfigError):
        DepotConfig.from_file(config_path)


def test_from_file_raises_for_missing_file(tmp_path) -> None:
    """A missing config file should raise a config error."""
    with pytest.raises(DepotConfigError):
        DepotConfig.from_file(tmp_path / "absent.json")
