"""Depot CLI entry points.
This module exposes datastore, dataset, and run command groups.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from cli.dataset_command import add_dataset_command, run_dataset_command
from cli.datastore_command import add_datastore_command, run_datastore_command
from cli.run_command import add_run_command, run_run_command
from core.config import DepotConfig
from core.errors import DepotError
from core.logging_config import configure_logging
from store.dataset_sdk import DepotClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="depot", description="Depot dataset and run CLI")
    parser.add_argument(
        "--workspace-root",
        help="Override DEPOT_WORKSPACE_ROOT for this command",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    add_datastore_command(subparsers)
    add_dataset_command(subparsers)
    add_run_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Depot CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        client = _build_client(args.workspace_root)
        if args.command == "datastore":
            return run_datastore_command(client, args)
        if args.command == "dataset":
            return run_dataset_command(client, args)
        if args.command == "run":
            return run_run_command(client, args)
    except DepotError as error:
        print(f"error: {error}", file=sys.stderr)
        return 2
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(workspace_root: str | None) -> DepotClient:
    """Build SDK client with optional workspace-root override.

    Args:
        workspace_root: Optional override path.

    Returns:
        Configured SDK client.
    """
    config = DepotConfig.from_env()
    if workspace_root:
        config = replace(config, workspace_root=Path(workspace_root).expanduser().resolve())
    configure_logging(config.log_level)
    return DepotClient(config)
