"""Dataset command wiring for Depot CLI.

Commands register definitions over datastore paths and inspect the
version catalog. ``head`` prints rows as CSV on stdout.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from cli.datastore_command import parse_key_values
from core.constants import DEFAULT_CSV_SEPARATOR, DEFAULT_HEAD_ROWS, LATEST_VERSION
from core.errors import DepotDatasetError
from core.types import DatasetVersionRecord
from store.dataset_definition import definition_to_payload
from store.dataset_sdk import AnyDataset, DepotClient, FileDataset, TabularDataset

_FORMATS = ("delimited", "json_lines", "parquet", "files")


def add_dataset_command(subparsers: Any) -> None:
    """Register dataset command group."""
    parser = subparsers.add_parser("dataset", help="Register and inspect datasets")
    commands = parser.add_subparsers(dest="dataset_command", required=True)

    register = commands.add_parser("register", help="Register a dataset version")
    register.add_argument("name", help="Dataset name")
    register.add_argument(
        "--path",
        action="append",
        required=True,
        help="depot://datastores/<name>/paths/<pattern>; repeatable",
    )
    register.add_argument("--format", choices=_FORMATS, default="delimited")
    register.add_argument("--separator", default=DEFAULT_CSV_SEPARATOR)
    register.add_argument("--no-header", action="store_true", help="Files have no header row")
    register.add_argument(
        "--include-path",
        action="store_true",
        help="Add a Path column with each row's source file",
    )
    register.add_argument("--description", help="Version description")
    register.add_argument("--tag", action="append", default=[], help="Tag as key=value")
    register.add_argument(
        "--new-version",
        action="store_true",
        help="Add a version when the name is already registered",
    )

    commands.add_parser("list", help="List dataset names")

    versions = commands.add_parser("versions", help="List versions of a dataset")
    versions.add_argument("name", help="Dataset name")

    show = commands.add_parser("show", help="Show one dataset version")
    target = show.add_mutually_exclusive_group(required=True)
    target.add_argument("--name", help="Dataset name")
    target.add_argument("--id", dest="dataset_id", help="Dataset version id")
    show.add_argument("--version", default=LATEST_VERSION, help="Version number or 'latest'")

    head = commands.add_parser("head", help="Print the first rows of a tabular dataset")
    head.add_argument("name", help="Dataset name")
    head.add_argument("--version", default=LATEST_VERSION)
    head.add_argument("--rows", type=int, default=DEFAULT_HEAD_ROWS)

    download = commands.add_parser("download", help="Copy file dataset files locally")
    download.add_argument("name", help="Dataset name")
    download.add_argument("--target", required=True, help="Destination directory")
    download.add_argument("--version", default=LATEST_VERSION)
    download.add_argument("--overwrite", action="store_true")


def run_dataset_command(client: DepotClient, args: argparse.Namespace) -> int:
    """Dispatch one dataset subcommand."""
    if args.dataset_command == "register":
        return _run_register(client, args)
    if args.dataset_command == "list":
        for name in client.list_datasets():
            print(name)
        return 0
    if args.dataset_command == "versions":
        for record in client.list_dataset_versions(args.name):
            print(_version_row(record))
        return 0
    if args.dataset_command == "show":
        if args.dataset_id:
            dataset = client.get_dataset_by_id(args.dataset_id)
        else:
            dataset = client.get_dataset_by_name(args.name, args.version)
        print(json.dumps(_show_payload(dataset), indent=2, sort_keys=True))
        return 0
    if args.dataset_command == "head":
        return _run_head(client, args)
    return _run_download(client, args)


def _run_register(client: DepotClient, args: argparse.Namespace) -> int:
    dataset: AnyDataset
    if args.format == "files":
        dataset = client.file.from_files(args.path)
    elif args.format == "json_lines":
        dataset = client.tabular.from_json_lines_files(args.path, include_path=args.include_path)
    elif args.format == "parquet":
        dataset = client.tabular.from_parquet_files(args.path, include_path=args.include_path)
    else:
        dataset = client.tabular.from_delimited_files(
            args.path,
            separator=args.separator,
            header=not args.no_header,
            include_path=args.include_path,
        )
    registered = dataset.register(
        args.name,
        description=args.description,
        tags=parse_key_values(args.tag, "tag"),
        create_new_version=args.new_version,
    )
    print(f"{registered.id}\t{registered.name}\t{registered.version}")
    return 0


def _run_head(client: DepotClient, args: argparse.Namespace) -> int:
    if args.rows < 0:
        raise DepotDatasetError(f"--rows must be non-negative, got {args.rows}.")
    dataset = client.get_dataset_by_name(args.name, args.version)
    if not isinstance(dataset, TabularDataset):
        raise DepotDatasetError(
            f"Dataset '{args.name}' is a file dataset. Use 'dataset download' instead."
        )
    dataset.take(args.rows).to_pandas_dataframe().to_csv(sys.stdout, index=False)
    return 0


def _run_download(client: DepotClient, args: argparse.Namespace) -> int:
    dataset = client.get_dataset_by_name(args.name, args.version)
    if not isinstance(dataset, FileDataset):
        raise DepotDatasetError(
            f"Dataset '{args.name}' is tabular. Use 'dataset head' or the SDK to read it."
        )
    for path in dataset.download(args.target, overwrite=args.overwrite):
        print(path)
    return 0


def _version_row(record: DatasetVersionRecord) -> str:
    return (
        f"{record.version}\t"
        f"{record.dataset_id}\t"
        f"{record.created_at.isoformat()}\t"
        f"{record.description or '-'}"
    )


def _show_payload(dataset: AnyDataset) -> dict[str, object]:
    return {
        "id": dataset.id,
        "name": dataset.name,
        "version": dataset.version,
        "description": dataset.description,
        "tags": dataset.tags,
        "definition": definition_to_payload(dataset.definition),
    }
