"""Unit tests for CLI command handling."""

from __future__ import annotations

import json

from cli.main import main
from fixture_paths import fixture_path, samples_uri


def _register_samples(workspace_root: str) -> None:
    main(
        [
            "--workspace-root",
            workspace_root,
            "datastore",
            "register",
            "samples",
            "--kind",
            "local",
            "--location",
            str(fixture_path("datastore")),
        ]
    )


def test_cli_datastore_list_marks_default(tmp_path, capsys) -> None:
    """datastore list should print every datastore and mark the default."""
    workspace_root = str(tmp_path / "ws")
    _register_samples(workspace_root)
    main(
        [
            "--workspace-root",
            workspace_root,
            "datastore",
            "register",
            "lake",
            "--kind",
            "s3",
            "--location",
            "s3://lake/raw",
            "--credential",
            "profile=research",
        ]
    )
    capsys.readouterr()

    exit_code = main(["--workspace-root", workspace_root, "datastore", "list"])
    rows = capsys.readouterr().out.strip().splitlines()

    assert exit_code == 0 and rows == [
        "lake\ts3\ts3://lake/raw\t-",
        f"samples\tlocal\t{fixture_path('datastore')}\t*",
    ]


def test_cli_dataset_register_prints_id_name_version(tmp_path, capsys) -> None:
    """dataset register should print the id, name, and version of the new version."""
    workspace_root = str(tmp_path / "ws")
    _register_samples(workspace_root)
    capsys.readouterr()

    exit_code = main(
        [
            "--workspace-root",
            workspace_root,
            "dataset",
            "register",
            "weather",
            "--path",
            samples_uri("weather/2018/*.csv"),
            "--tag",
            "year=2018",
        ]
    )
    dataset_id, name, version = capsys.readouterr().out.strip().split("\t")

    assert exit_code == 0 and len(dataset_id) == 32 and (name, version) == ("weather", "1")


def test_cli_dataset_head_prints_csv(tmp_path, capsys) -> None:
    """dataset head should print the first rows as CSV."""
    workspace_root = str(tmp_path / "ws")
    _register_samples(workspace_root)
    main(
        [
            "--workspace-root",
            workspace_root,
            "dataset",
            "register",
            "weather",
            "--path",
            samples_uri("weather/2018"),
        ]
    )
    capsys.readouterr()

    exit_code = main(
        ["--workspace-root", workspace_root, "dataset", "head", "weather", "--rows", "2"]
    )
    lines = capsys.readouterr().out.strip().splitlines()

    assert exit_code == 0 and lines == [
        "date,station,temperature",
        "2018-11-01,north,4.5",
        "2018-11-02,north,3.0",
    ]


def test_cli_dataset_show_by_id_prints_definition(tmp_path, capsys) -> None:
    """dataset show --id should print the version and its definition as JSON."""
    workspace_root = str(tmp_path / "ws")
    _register_samples(workspace_root)
    capsys.readouterr()
    main(
        [
            "--workspace-root",
            workspace_root,
            "dataset",
            "register",
            "images",
            "--format",
            "files",
            "--path",
            samples_uri("images"),
        ]
    )
    dataset_id = capsys.readouterr().out.strip().split("\t")[0]

    exit_code = main(["--workspace-root", workspace_root, "dataset", "show", "--id", dataset_id])
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0 and payload["definition"]["kind"] == "file" and payload["version"] == 1


def test_cli_dataset_download_copies_files(tmp_path, capsys) -> None:
    """dataset download should copy file datasets and print local paths."""
    workspace_root = str(tmp_path / "ws")
    _register_samples(workspace_root)
    main(
        [
            "--workspace-root",
            workspace_root,
            "dataset",
            "register",
            "images",
            "--format",
            "files",
            "--path",
            samples_uri("images/*.txt"),
        ]
    )
    capsys.readouterr()

    exit_code = main(
        [
            "--workspace-root",
            workspace_root,
            "dataset",
            "download",
            "images",
            "--target",
            str(tmp_path / "out"),
        ]
    )
    printed = capsys.readouterr().out.strip().splitlines()

    assert (
        exit_code == 0
        and len(printed) == 2
        and (tmp_path / "out" / "images" / "dog.txt").exists()
    )


def test_cli_run_submit_reports_completed_run(tmp_path, capsys) -> None:
    """run submit should execute the run file and report the final state."""
    workspace_root = str(tmp_path / "ws")
    run_file = tmp_path / "run.yaml"
    run_file.write_text(
        f"experiment: smoke\nsource_directory: {fixture_path('scripts')}\n"
        "script: inspect_inputs.py\narguments: [--epochs, 1]\n",
        encoding="utf-8",
    )

    exit_code = main(["--workspace-root", workspace_root, "run", "submit", str(run_file)])
    output = capsys.readouterr().out

    assert exit_code == 0 and "state=completed" in output


def test_cli_run_submit_exits_one_for_failed_run(tmp_path, capsys) -> None:
    """run submit should exit 1 when the script fails."""
    workspace_root = str(tmp_path / "ws")
    run_file = tmp_path / "run.yaml"
    run_file.write_text(
        f"experiment: smoke\nsource_directory: {fixture_path('scripts')}\n"
        "script: inspect_inputs.py\narguments: [--fail]\n",
        encoding="utf-8",
    )

    exit_code = main(["--workspace-root", workspace_root, "run", "submit", str(run_file)])
    run_id = capsys.readouterr().out.splitlines()[0].removeprefix("run_id=")
    main(["--workspace-root", workspace_root, "run", "show", run_id])
    details = json.loads(capsys.readouterr().out)

    assert exit_code == 1 and details["state"] == "failed" and details["exit_code"] == 3


def test_cli_domain_errors_exit_two(tmp_path, capsys) -> None:
    """Domain errors should print an error line to stderr and exit with 2."""
    exit_code = main(
        ["--workspace-root", str(tmp_path / "ws"), "dataset", "versions", "absent"]
    )
    captured = capsys.readouterr()

    assert exit_code == 2 and "error: Dataset 'absent'" in captured.err


def test_cli_rejects_malformed_tags(tmp_path, capsys) -> None:
    """Tags without '=' should be rejected as domain errors."""
    workspace_root = str(tmp_path / "ws")
    _register_samples(workspace_root)

    exit_code = main(
        [
            "--workspace-root",
            workspace_root,
            "dataset",
            "register",
            "weather",
            "--path",
            samples_uri("weather/2018"),
            "--tag",
            "year",
        ]
    )

    assert exit_code == 2 and "Invalid tag" in capsys.readouterr().err
