"""Typed run lifecycle models and validation helpers.

This module defines lifecycle states and payload parsing used by the run
registry, experiments, and the in-script run context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping, cast

from core.errors import DepotRunError

RunState = Literal[
    "queued",
    "preparing",
    "running",
    "completed",
    "failed",
]
TERMINAL_RUN_STATES: tuple[RunState, ...] = ("completed", "failed")
ALLOWED_STATE_TRANSITIONS: dict[RunState, tuple[RunState, ...]] = {
    "queued": ("preparing", "failed"),
    "preparing": ("running", "failed"),
    "running": ("completed", "failed"),
    "completed": (),
    "failed": (),
}


@dataclass(frozen=True)
class RunEvent:
    """One lifecycle state transition event."""

    state: RunState
    timestamp: str
    message: str | None


@dataclass(frozen=True)
class RunRecord:
    """Persisted run lifecycle metadata.

    Attributes:
        run_id: Unique run identifier.
        experiment_name: Experiment the run was submitted to.
        source_directory: Working directory of the script.
        script: Script path relative to the source directory.
        arguments: Arguments as submitted, with dataset references shown by alias.
        inputs: Persisted dataset reference payloads.
        state: Current lifecycle state.
        created_at: ISO timestamp of submission.
        updated_at: ISO timestamp of the last transition.
        events: Ordered transition history.
        resolved_arguments: Arguments passed to the script process.
        exit_code: Script exit code once finished.
        error_message: Failure message for failed runs.
    """

    run_id: str
    experiment_name: str
    source_directory: str
    script: str
    arguments: tuple[str, ...]
    inputs: tuple[Mapping[str, Any], ...]
    state: RunState
    created_at: str
    updated_at: str
    events: tuple[RunEvent, ...]
    resolved_arguments: tuple[str, ...] = ()
    exit_code: int | None = None
    error_message: str | None = None
    environment_variables: Mapping[str, str] = field(default_factory=dict)


def validate_transition(current_state: RunState, next_state: RunState) -> None:
    """Validate one lifecycle transition.

    Raises:
        DepotRunError: If the transition is not allowed.
    """
    allowed_states = ALLOWED_STATE_TRANSITIONS[current_state]
    if next_state not in allowed_states:
        raise DepotRunError(
            f"Invalid run state transition {current_state} -> {next_state}. "
            f"Allowed: {', '.join(allowed_states) or 'none'}."
        )


def run_record_from_payload(payload: dict[str, object], source_path: Path) -> RunRecord:
    """Parse a persisted run record payload.

    Raises:
        DepotRunError: If the payload is malformed.
    """
    try:
        events_payload = cast(list[dict[str, object]], payload["events"])
        events = tuple(
            RunEvent(
                state=_parse_state(event["state"], source_path),
                timestamp=str(event["timestamp"]),
                message=str(event["message"]) if event.get("message") is not None else None,
            )
            for event in events_payload
        )
        exit_code = payload.get("exit_code")
        error_message = payload.get("error_message")
        return RunRecord(
            run_id=str(payload["run_id"]),
            experiment_name=str(payload["experiment_name"]),
            source_directory=str(payload["source_directory"]),
            script=str(payload["script"]),
            arguments=tuple(str(item) for item in cast(list[object], payload["arguments"])),
            inputs=tuple(cast(list[Mapping[str, Any]], payload["inputs"])),
            state=_parse_state(payload["state"], source_path),
            created_at=str(payload["created_at"]),
            updated_at=str(payload["updated_at"]),
            events=events,
            resolved_arguments=tuple(
                str(item) for item in cast(list[object], payload.get("resolved_arguments", []))
            ),
            exit_code=int(cast(int, exit_code)) if exit_code is not None else None,
            error_message=str(error_message) if error_message is not None else None,
            environment_variables={
                str(key): str(value)
                for key, value in cast(
                    dict[str, object], payload.get("environment_variables", {})
                ).items()
            },
        )
    except (KeyError, TypeError, ValueError) as error:
        raise DepotRunError(f"Invalid run record at {source_path}: {error}.") from error


def _parse_state(value: object, source_path: Path) -> RunState:
    if value not in ALLOWED_STATE_TRANSITIONS:
        raise DepotRunError(f"Invalid run state '{value}' in {source_path}.")
    return cast(RunState, value)
