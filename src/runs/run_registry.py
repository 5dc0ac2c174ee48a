"""Run lifecycle persistence.

This module stores run records, lifecycle transitions, and logged metrics
under the workspace root so runs remain inspectable after they finish.
"""

from __future__ import annotations

import json
from dataclasses import asdict, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence
from uuid import uuid4

from core.constants import (
    RUN_INDEX_FILE_NAME,
    RUN_METRICS_FILE_NAME,
    RUN_STATE_FILE_NAME,
    RUNS_DIR_NAME,
)
from core.errors import DepotRunError
from core.json_io import append_json_line, read_json_file, read_json_lines, write_json_file
from core.logging_config import get_logger
from runs.run_types import (
    RunEvent,
    RunRecord,
    RunState,
    run_record_from_payload,
    validate_transition,
)

_LOGGER = get_logger(__name__)


class RunRegistry:
    """Persistent lifecycle registry for script runs."""

    def __init__(self, workspace_root: Path) -> None:
        self._workspace_root = workspace_root.expanduser().resolve()
        self._runs_root = self._workspace_root / RUNS_DIR_NAME
        self._runs_root.mkdir(parents=True, exist_ok=True)

    def start_run(
        self,
        experiment_name: str,
        source_directory: str,
        script: str,
        arguments: Sequence[str],
        inputs: Sequence[Mapping[str, Any]],
        environment_variables: Mapping[str, str] | None = None,
    ) -> RunRecord:
        """Create a new queued run record."""
        run_id = _build_run_id()
        timestamp = _utc_now_iso()
        record = RunRecord(
            run_id=run_id,
            experiment_name=experiment_name,
            source_directory=source_directory,
            script=script,
            arguments=tuple(arguments),
            inputs=tuple(inputs),
            state="queued",
            created_at=timestamp,
            updated_at=timestamp,
            events=(RunEvent(state="queued", timestamp=timestamp, message=None),),
            environment_variables=dict(environment_variables or {}),
        )
        self._write_run_record(record)
        self._append_index_row(run_id)
        _LOGGER.info("run_queued", run_id=run_id, experiment=experiment_name, script=script)
        return record

    def transition(
        self,
        run_id: str,
        next_state: RunState,
        message: str | None = None,
        exit_code: int | None = None,
        resolved_arguments: Sequence[str] | None = None,
    ) -> RunRecord:
        """Persist one lifecycle transition and optional execution details."""
        record = self._load_run_record(run_id)
        validate_transition(record.state, next_state)
        timestamp = _utc_now_iso()
        next_record = replace(
            record,
            state=next_state,
            updated_at=timestamp,
            events=record.events
            + (RunEvent(state=next_state, timestamp=timestamp, message=message),),
            resolved_arguments=tuple(resolved_arguments)
            if resolved_arguments is not None
            else record.resolved_arguments,
            exit_code=exit_code if exit_code is not None else record.exit_code,
            error_message=message if next_state == "failed" else record.error_message,
        )
        self._write_run_record(next_record)
        _LOGGER.info(
            "run_transitioned",
            run_id=run_id,
            from_state=record.state,
            to_state=next_state,
            exit_code=next_record.exit_code,
        )
        return next_record

    def load_run(self, run_id: str) -> RunRecord:
        """Load one run lifecycle record by ID."""
        return self._load_run_record(run_id)

    def list_runs(self, experiment_name: str | None = None) -> tuple[str, ...]:
        """List run IDs in submission order, optionally for one experiment."""
        index_path = self._runs_root / RUN_INDEX_FILE_NAME
        payload = read_json_file(index_path, DepotRunError, default_value={"runs": []})
        if not isinstance(payload, dict) or not isinstance(payload.get("runs"), list):
            raise DepotRunError(f"Invalid run index format at {index_path}: expected runs list.")
        run_ids = tuple(str(item) for item in payload["runs"])
        if experiment_name is None:
            return run_ids
        return tuple(
            run_id
            for run_id in run_ids
            if self._load_run_record(run_id).experiment_name == experiment_name
        )

    def run_dir(self, run_id: str) -> Path:
        return self._runs_root / run_id

    def append_metric(self, run_id: str, name: str, value: object) -> None:
        """Append one logged metric value to a run."""
        run_dir = self.run_dir(run_id)
        if not run_dir.exists():
            raise DepotRunError(f"Cannot log metric for unknown run '{run_id}'.")
        append_json_line(
            run_dir / RUN_METRICS_FILE_NAME,
            {"name": name, "value": _metric_value(name, value), "timestamp": _utc_now_iso()},
            DepotRunError,
        )

    def load_metrics(self, run_id: str) -> dict[str, object]:
        """Return logged metrics; names logged more than once map to a list."""
        rows = read_json_lines(self.run_dir(run_id) / RUN_METRICS_FILE_NAME, DepotRunError)
        grouped: dict[str, list[object]] = {}
        for row in rows:
            grouped.setdefault(str(row["name"]), []).append(row["value"])
        return {name: values[0] if len(values) == 1 else values for name, values in grouped.items()}

    def _write_run_record(self, record: RunRecord) -> None:
        run_dir = self.run_dir(record.run_id)
        run_dir.mkdir(parents=True, exist_ok=True)
        payload = asdict(record)
        payload["events"] = [asdict(event) for event in record.events]
        payload["inputs"] = [dict(item) for item in record.inputs]
        payload["environment_variables"] = dict(record.environment_variables)
        write_json_file(run_dir / RUN_STATE_FILE_NAME, payload, DepotRunError)

    def _load_run_record(self, run_id: str) -> RunRecord:
        state_path = self.run_dir(run_id) / RUN_STATE_FILE_NAME
        if not state_path.exists():
            raise DepotRunError(f"Run '{run_id}' not found in {self._runs_root}.")
        payload = read_json_file(state_path, DepotRunError)
        if not isinstance(payload, dict):
            raise DepotRunError(f"Invalid run state payload at {state_path}: expected object.")
        return run_record_from_payload(payload, state_path)

    def _append_index_row(self, run_id: str) -> None:
        index_path = self._runs_root / RUN_INDEX_FILE_NAME
        payload = read_json_file(index_path, DepotRunError, default_value={"runs": []})
        if not isinstance(payload, dict) or not isinstance(payload.get("runs"), list):
            raise DepotRunError(f"Invalid run index format at {index_path}: expected runs list.")
        run_ids = payload["runs"]
        if run_id not in run_ids:
            run_ids.append(run_id)
            write_json_file(index_path, payload, DepotRunError)


def _build_run_id() -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"run-{timestamp}-{uuid4().hex[:8]}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _metric_value(name: str, value: object) -> object:
    """Convert numpy and pandas values to plain JSON values."""
    tolist = getattr(value, "tolist", None)
    if callable(tolist):
        value = tolist()
    try:
        json.dumps(value)
    except (TypeError, ValueError) as error:
        raise DepotRunError(
            f"Metric '{name}' has unsupported value type {type(value).__name__}. "
            "Log numbers, strings, booleans, or lists of them."
        ) from error
    return value
