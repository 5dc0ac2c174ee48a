"""Datastore command wiring for Depot CLI."""

from __future__ import annotations

import argparse
from typing import Any, Sequence

from core.errors import DepotConfigError
from core.types import SUPPORTED_DATASTORE_KINDS
from store.dataset_sdk import DepotClient


def add_datastore_command(subparsers: Any) -> None:
    """Register datastore command group."""
    parser = subparsers.add_parser("datastore", help="Manage datastores")
    commands = parser.add_subparsers(dest="datastore_command", required=True)

    register = commands.add_parser("register", help="Register a datastore")
    register.add_argument("name", help="Datastore name")
    register.add_argument("--kind", required=True, choices=SUPPORTED_DATASTORE_KINDS)
    register.add_argument(
        "--location",
        required=True,
        help="Local directory, s3://bucket/prefix, or backend-specific location",
    )
    register.add_argument(
        "--credential",
        action="append",
        default=[],
        help="Credential field as key=value; repeatable",
    )
    register.add_argument("--default", action="store_true", help="Make this the default")
    register.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace an existing datastore with the same name",
    )

    commands.add_parser("list", help="List datastores")

    set_default = commands.add_parser("set-default", help="Set the default datastore")
    set_default.add_argument("name", help="Datastore name")

    unregister = commands.add_parser("unregister", help="Remove a datastore")
    unregister.add_argument("name", help="Datastore name")


def run_datastore_command(client: DepotClient, args: argparse.Namespace) -> int:
    """Dispatch one datastore subcommand."""
    if args.datastore_command == "register":
        datastore = client.register_datastore(
            args.name,
            args.kind,
            args.location,
            credentials=parse_key_values(args.credential, "credential"),
            overwrite=args.overwrite,
            set_default=args.default,
        )
        print(f"{datastore.name}\t{datastore.kind}\t{datastore.location}")
        return 0
    if args.datastore_command == "list":
        default_name = client.default_datastore_name()
        for datastore in client.datastores():
            marker = "*" if datastore.name == default_name else "-"
            print(f"{datastore.name}\t{datastore.kind}\t{datastore.location}\t{marker}")
        return 0
    if args.datastore_command == "set-default":
        client.set_default_datastore(args.name)
        print(args.name)
        return 0
    client.unregister_datastore(args.name)
    print(args.name)
    return 0


def parse_key_values(values: Sequence[str], label: str) -> dict[str, str]:
    """Parse repeated ``key=value`` options into a dictionary.

    Raises:
        DepotConfigError: If an entry has no ``=`` or an empty key.
    """
    parsed: dict[str, str] = {}
    for value in values:
        key, separator, raw_value = value.partition("=")
        if not separator or not key.strip():
            raise DepotConfigError(f"Invalid {label} '{value}'. Use key=value.")
        parsed[key.strip()] = raw_value.strip()
    return parsed
