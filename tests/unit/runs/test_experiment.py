"""Unit tests for experiment submission and script runs."""

from __future__ import annotations

import json

import pytest

from core.errors import DepotRunError
from fixture_paths import fixture_path, samples_uri
from runs.experiment import ScriptRunConfig

_SCRIPTS_DIR = str(fixture_path("scripts"))


def test_submit_runs_script_and_records_completion(sample_client) -> None:
    """A successful script should finish completed with its metrics logged."""
    run = sample_client.experiment("smoke").submit(
        ScriptRunConfig(_SCRIPTS_DIR, "inspect_inputs.py", arguments=("--epochs", 2))
    )
    record = run.wait_for_completion(raise_on_error=True)

    assert (
        record.state == "completed"
        and record.exit_code == 0
        and [event.state for event in record.events]
        == ["queued", "preparing", "running", "completed"]
        and run.get_metrics() == {"argument_count": 2}
    )


def test_failing_script_marks_run_failed(sample_client) -> None:
    """A non-zero exit code should fail the run and keep the script output."""
    run = sample_client.experiment("smoke").submit(
        ScriptRunConfig(_SCRIPTS_DIR, "inspect_inputs.py", arguments=("--fail",))
    )

    with pytest.raises(DepotRunError):
        run.wait_for_completion(raise_on_error=True)

    assert (
        run.state == "failed"
        and run.get_details()["exit_code"] == 3
        and "failing on request" in run.log_path.read_text()
    )


def test_download_argument_is_replaced_by_local_path(sample_client) -> None:
    """Download references should become a populated local directory argument."""
    images = sample_client.file.from_files(samples_uri("images")).register("images")
    run = sample_client.experiment("images").submit(
        ScriptRunConfig(
            _SCRIPTS_DIR,
            "inspect_inputs.py",
            arguments=("--path", images.as_download()),
        )
    )
    details = run.get_details()
    input_dir = run.log_path.parent / "inputs" / "images"

    assert (
        run.state == "completed"
        and details["arguments"] == ("--path", "DatasetConsumptionConfig:images")
        and details["resolved_arguments"] == ("--path", str(input_dir))
        and run.get_metrics()["images_file_count"] == 3
        and run.get_metrics()["path_argument_exists"] is True
    )


def test_mount_input_is_visible_during_run_and_removed_after(sample_client) -> None:
    """Mounted inputs should be linked for the script and cleaned up afterwards."""
    images = sample_client.file.from_files(samples_uri("images")).register("images")
    run = sample_client.experiment("images").submit(
        ScriptRunConfig(
            _SCRIPTS_DIR,
            "inspect_inputs.py",
            inputs=(images.as_named_input("pictures").as_mount(),),
        )
    )
    mount_dir = run.log_path.parent / "mounts" / "pictures"

    assert run.get_metrics()["pictures_file_count"] == 3 and not mount_dir.exists()


def test_direct_tabular_input_resolves_inside_script(sample_client) -> None:
    """Direct inputs should reach the script as dataset handles."""
    weather = sample_client.tabular.from_delimited_files(samples_uri("weather/2018")).register(
        "weather"
    )
    run = sample_client.experiment("weather").submit(
        ScriptRunConfig(_SCRIPTS_DIR, "inspect_inputs.py", arguments=(weather,))
    )
    resolved_inputs = json.loads(
        (run.log_path.parent / "resolved_inputs.json").read_text(encoding="utf-8")
    )

    assert (
        run.get_details()["resolved_arguments"] == (weather.id,)
        and resolved_inputs == {"weather": weather.id}
        and run.get_metrics()["weather_row_count"] == 5
    )


def test_missing_script_raises_with_hint(sample_client) -> None:
    """Submitting a script that does not exist should explain what can be run."""
    with pytest.raises(DepotRunError, match="standalone script"):
        sample_client.experiment("smoke").submit(ScriptRunConfig(_SCRIPTS_DIR, "notebook.py"))


def test_conflicting_aliases_raise(sample_client) -> None:
    """Two different datasets cannot share one input alias."""
    images = sample_client.file.from_files(samples_uri("images"))
    weather = sample_client.file.from_files(samples_uri("weather"))

    with pytest.raises(DepotRunError):
        sample_client.experiment("smoke").submit(
            ScriptRunConfig(
                _SCRIPTS_DIR,
                "inspect_inputs.py",
                arguments=(images.as_named_input("data"),),
                inputs=(weather.as_named_input("data"),),
            )
        )


def test_missing_input_files_fail_the_run(sample_client, tmp_path) -> None:
    """Inputs that cannot be materialized should fail the run during preparation."""
    scratch = tmp_path / "scratch"
    (scratch / "batch").mkdir(parents=True)
    (scratch / "batch" / "a.txt").write_text("a", encoding="utf-8")
    sample_client.register_datastore("scratch", "local", str(scratch))
    dataset = sample_client.file.from_files(("scratch", "batch")).register("batch")
    (scratch / "batch" / "a.txt").unlink()

    run = sample_client.experiment("smoke").submit(
        ScriptRunConfig(_SCRIPTS_DIR, "inspect_inputs.py", arguments=(dataset.as_download(),))
    )

    assert run.state == "failed" and [
        event.state for event in run.wait_for_completion().events
    ] == ["queued", "preparing", "failed"]


def test_download_target_under_a_file_fails_the_run(sample_client, tmp_path) -> None:
    """A path_on_compute that cannot be created should fail the run, not leave it preparing."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    images = sample_client.file.from_files(samples_uri("images")).register("images")

    run = sample_client.experiment("images").submit(
        ScriptRunConfig(
            _SCRIPTS_DIR,
            "inspect_inputs.py",
            arguments=(images.as_download(path_on_compute=str(blocker / "images")),),
        )
    )
    record = run.wait_for_completion()

    assert (
        record.state == "failed"
        and [event.state for event in record.events] == ["queued", "preparing", "failed"]
        and "Failed to copy" in str(record.error_message)
    )


def test_unexpected_error_during_preparation_fails_run_and_propagates(
    sample_client, monkeypatch
) -> None:
    """Errors outside the Depot hierarchy should still end the run as failed."""
    images = sample_client.file.from_files(samples_uri("images")).register("images")

    def _broken_resolve(definition, resolver):
        raise RuntimeError("resolver exploded")

    monkeypatch.setattr("runs.experiment.resolve_files", _broken_resolve)

    with pytest.raises(RuntimeError, match="resolver exploded"):
        sample_client.experiment("images").submit(
            ScriptRunConfig(_SCRIPTS_DIR, "inspect_inputs.py", arguments=(images.as_download(),))
        )
    (run_id,) = sample_client.list_runs("images")
    record = sample_client.get_run(run_id).wait_for_completion()

    assert record.state == "failed" and "RuntimeError: resolver exploded" in str(
        record.error_message
    )
