"""Unit tests for the in-script run context."""

from __future__ import annotations

import pandas as pd
import pytest

from core.errors import DepotRunError
from fixture_paths import samples_uri
from runs.run_context import RunContext
from runs.run_registry import RunRegistry


def _live_run(monkeypatch: pytest.MonkeyPatch, client, inputs=()) -> str:
    registry = RunRegistry(client.config.workspace_root)
    record = registry.start_run(
        experiment_name="context",
        source_directory=".",
        script="train.py",
        arguments=[],
        inputs=list(inputs),
    )
    monkeypatch.setenv("DEPOT_RUN_ID", record.run_id)
    monkeypatch.setenv("DEPOT_WORKSPACE_ROOT", str(client.config.workspace_root))
    return record.run_id


def test_get_context_is_offline_outside_runs(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without run environment variables the context should be offline."""
    monkeypatch.delenv("DEPOT_RUN_ID", raising=False)

    context = RunContext.get_context()
    context.log("loss", 0.1)

    assert (
        context.is_offline
        and context.id is None
        and context.input_datasets == {}
        and context.get_metrics() == {}
    )


def test_offline_context_has_no_workspace(monkeypatch: pytest.MonkeyPatch) -> None:
    """Offline contexts should refuse to hand out a workspace client."""
    monkeypatch.delenv("DEPOT_RUN_ID", raising=False)

    with pytest.raises(DepotRunError):
        RunContext.get_context().workspace


def test_get_context_requires_workspace_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """A run id without a workspace root should be reported as misconfigured."""
    monkeypatch.setenv("DEPOT_RUN_ID", "run-orphan")
    monkeypatch.delenv("DEPOT_WORKSPACE_ROOT", raising=False)

    with pytest.raises(DepotRunError):
        RunContext.get_context()


def test_live_context_logs_metrics_to_run(monkeypatch: pytest.MonkeyPatch, sample_client) -> None:
    """Live contexts should append metrics to the current run."""
    run_id = _live_run(monkeypatch, sample_client)

    context = RunContext.get_context()
    context.log("loss", 0.5)
    context.log("loss", 0.25)

    assert (
        not context.is_offline
        and context.id == run_id
        and context.experiment_name == "context"
        and sample_client.get_run(run_id).get_metrics() == {"loss": [0.5, 0.25]}
    )


def test_live_context_resolves_direct_inputs(
    monkeypatch: pytest.MonkeyPatch,
    sample_client,
) -> None:
    """Direct inputs should come back as registered dataset handles."""
    weather = sample_client.tabular.from_delimited_files(samples_uri("weather/2018")).register(
        "weather"
    )
    _live_run(monkeypatch, sample_client, [weather.as_named_input("weather").to_payload()])

    dataset = RunContext.get_context().input_datasets["weather"]

    assert dataset.id == weather.id and dataset.version == 1


def test_live_context_logs_pandas_aggregates(
    monkeypatch: pytest.MonkeyPatch,
    sample_client,
) -> None:
    """Numpy scalars from dataframe aggregations should be stored as plain numbers."""
    run_id = _live_run(monkeypatch, sample_client)
    frame = pd.DataFrame({"rows": [2, 3], "score": [0.5, 0.25]})

    context = RunContext.get_context()
    context.log("total", frame["rows"].sum())
    context.log("mean_score", frame["score"].mean())
    context.log("per_row", frame["rows"].to_numpy())

    assert sample_client.get_run(run_id).get_metrics() == {
        "total": 5,
        "mean_score": 0.375,
        "per_row": [2, 3],
    }


def test_live_context_rejects_unserializable_metrics(
    monkeypatch: pytest.MonkeyPatch,
    sample_client,
) -> None:
    """Values that cannot be stored as JSON should raise a run error."""
    _live_run(monkeypatch, sample_client)

    with pytest.raises(DepotRunError, match="unsupported value type"):
        RunContext.get_context().log("model", object())
