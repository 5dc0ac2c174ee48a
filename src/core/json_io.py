"""JSON I/O helpers for workspace registry and run metadata."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Type

from core.errors import DepotError


def read_json_file(
    payload_path: Path,
    error_type: Type[DepotError],
    default_value: object | None = None,
) -> object:
    """Read JSON payload from disk with optional default when missing."""
    if default_value is not None and not payload_path.exists():
        return default_value
    try:
        return json.loads(payload_path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise error_type(
            f"Missing required metadata file at {payload_path}. "
            "The workspace may be incomplete."
        ) from error
    except json.JSONDecodeError as error:
        raise error_type(f"Failed to parse JSON at {payload_path}: {error.msg}.") from error
    except OSError as error:
        raise error_type(f"Failed to read metadata file {payload_path}: {error}.") from error


def write_json_file(
    payload_path: Path,
    payload: object,
    error_type: Type[DepotError],
) -> None:
    """Write one JSON payload to disk with traceable errors."""
    try:
        payload_path.parent.mkdir(parents=True, exist_ok=True)
        payload_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as error:
        raise error_type(f"Failed to write metadata file {payload_path}: {error}.") from error


def append_json_line(
    payload_path: Path,
    payload: object,
    error_type: Type[DepotError],
) -> None:
    """Append one JSON object as a line to a JSONL file."""
    try:
        with payload_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, sort_keys=True) + "\n")
    except OSError as error:
        raise error_type(f"Failed to append to {payload_path}: {error}.") from error
    except (TypeError, ValueError) as error:
        raise error_type(f"Cannot serialize JSON line for {payload_path}: {error}.") from error


def read_json_lines(payload_path: Path, error_type: Type[DepotError]) -> list[dict[str, object]]:
    """Read JSONL objects, returning an empty list when the file is absent."""
    if not payload_path.exists():
        return []
    rows: list[dict[str, object]] = []
    lines = payload_path.read_text(encoding="utf-8").splitlines()
    for line_number, line in enumerate(lines, 1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as error:
            raise error_type(
                f"Failed to parse {payload_path} line {line_number}: {error.msg}."
            ) from error
        if not isinstance(payload, dict):
            raise error_type(
                f"Invalid row in {payload_path} line {line_number}: expected JSON object."
            )
        rows.append(payload)
    return rows
