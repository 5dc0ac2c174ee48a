"""Integration tests for the datastore to run workflow."""

from __future__ import annotations

from dataclasses import replace

from depot import DepotClient, DepotConfig, RunContext, ScriptRunConfig
from fixture_paths import fixture_path


def test_versioned_datasets_flow_into_runs(tmp_path) -> None:
    """Datasets registered in one client should resolve in runs and in fresh clients."""
    config = replace(DepotConfig.from_env(), workspace_root=tmp_path / "workspace")
    client = DepotClient(config)
    samples = client.register_datastore("samples", "local", str(fixture_path("datastore")))
    first = client.tabular.from_delimited_files(samples.path("weather/2018/11.csv")).register(
        "weather"
    )
    second = client.tabular.from_delimited_files(samples.path("weather/2018")).register(
        "weather",
        description="Full year",
        create_new_version=True,
    )
    images = client.file.from_files(samples.path("images")).register("images")

    run = client.experiment("integration").submit(
        ScriptRunConfig(
            source_directory=str(fixture_path("scripts")),
            script="inspect_inputs.py",
            arguments=("--path", images.as_mount()),
            inputs=(second.as_named_input("weather"),),
        )
    )
    reopened = DepotClient.from_config(_write_workspace_config(tmp_path))

    assert (
        run.wait_for_completion(raise_on_error=True).state == "completed"
        and run.get_metrics()
        == {
            "argument_count": 2,
            "images_file_count": 3,
            "path_argument_exists": True,
            "weather_row_count": 5,
        }
        and len(reopened.get_dataset_by_id(first.id).to_pandas_dataframe()) == 3
        and reopened.get_dataset_by_name("weather").description == "Full year"
        and reopened.list_runs("integration") == (run.id,)
        and RunContext.get_context().is_offline
    )


def _write_workspace_config(tmp_path):
    config_path = tmp_path / "depot.json"
    config_path.write_text('{"workspace_root": "workspace"}\n', encoding="utf-8")
    return config_path
