"""Pytest configuration for repository test runs."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(_SRC_PATH) not in sys.path:
    sys.path.insert(0, str(_SRC_PATH))

from core.config import DepotConfig  # noqa: E402
from fixture_paths import fixture_path  # noqa: E402
from store.dataset_sdk import DepotClient  # noqa: E402


@pytest.fixture
def workspace_config(tmp_path) -> DepotConfig:
    """Workspace config rooted in a per-test temporary directory."""
    return DepotConfig(workspace_root=tmp_path / "workspace")


@pytest.fixture
def sample_client(workspace_config) -> DepotClient:
    """Client whose default ``samples`` datastore points at fixture data."""
    client = DepotClient(workspace_config)
    client.register_datastore("samples", "local", str(fixture_path("datastore")))
    return client
