"""Run command wiring for Depot CLI."""

from __future__ import annotations

import argparse
import json
from typing import Any

from runs.run_file import build_script_run_config, load_run_file
from store.dataset_sdk import DepotClient


def add_run_command(subparsers: Any) -> None:
    """Register run command group."""
    parser = subparsers.add_parser("run", help="Submit and inspect script runs")
    commands = parser.add_subparsers(dest="run_command", required=True)

    submit = commands.add_parser("submit", help="Submit a YAML run file")
    submit.add_argument("run_file", help="Path to run file")

    list_parser = commands.add_parser("list", help="List run ids")
    list_parser.add_argument("--experiment", help="Only runs of this experiment")

    show = commands.add_parser("show", help="Show run details and metrics")
    show.add_argument("run_id", help="Run id")


def run_run_command(client: DepotClient, args: argparse.Namespace) -> int:
    """Dispatch one run subcommand."""
    if args.run_command == "submit":
        run_file = load_run_file(args.run_file)
        config = build_script_run_config(run_file, client)
        run = client.experiment(run_file.experiment).submit(config)
        record = run.wait_for_completion()
        print(f"run_id={run.id}")
        print(f"state={record.state}")
        print(f"log_path={run.log_path}")
        return 0 if record.state == "completed" else 1
    if args.run_command == "list":
        for run_id in client.list_runs(args.experiment):
            run = client.get_run(run_id)
            print(f"{run_id}\t{run.experiment_name}\t{run.state}")
        return 0
    run = client.get_run(args.run_id)
    details = run.get_details()
    details["metrics"] = run.get_metrics()
    print(json.dumps(details, indent=2, sort_keys=True, default=str))
    return 0
