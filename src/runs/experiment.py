"""Experiments and local script runs.

An experiment submits a script with dataset references as arguments or
named inputs. References are materialized before the script starts and
replaced by local paths or dataset ids on the command line.
"""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from core.config import DepotConfig
from core.constants import (
    ENV_RUN_DIR,
    ENV_RUN_ID,
    ENV_WORKSPACE_NAME,
    ENV_WORKSPACE_ROOT,
    RUN_DRIVER_LOG_FILE_NAME,
    RUN_INPUTS_DIR_NAME,
    RUN_MOUNTS_DIR_NAME,
    RUN_RESOLVED_INPUTS_FILE_NAME,
)
from core.errors import DepotError, DepotRunError
from core.json_io import read_json_file, write_json_file
from core.logging_config import get_logger
from runs.run_registry import RunRegistry
from runs.run_types import TERMINAL_RUN_STATES, RunRecord, RunState
from store.dataset_consumption import DatasetConsumptionConfig
from store.materialize import BackendResolver, MountContext, download_files, resolve_files

_LOGGER = get_logger(__name__)
_SDK_SOURCE_ROOT = Path(__file__).resolve().parents[1]


class ExperimentClient(Protocol):
    """Client API needed to prepare and record runs."""

    @property
    def config(self) -> DepotConfig: ...

    def backend_resolver(self) -> BackendResolver: ...


@dataclass(frozen=True)
class ScriptRunConfig:
    """What to run and with which inputs.

    Attributes:
        source_directory: Directory the script runs in.
        script: Script path relative to ``source_directory``.
        arguments: Command-line arguments; dataset references are resolved.
        inputs: Extra named inputs not passed on the command line.
        environment_variables: Extra environment for the script process.
    """

    source_directory: str
    script: str
    arguments: Sequence[object] = ()
    inputs: Sequence[DatasetConsumptionConfig] = ()
    environment_variables: Mapping[str, str] = field(default_factory=dict)


class Run:
    """Handle to one submitted run."""

    def __init__(self, registry: RunRegistry, run_id: str) -> None:
        self._registry = registry
        self._run_id = run_id

    @property
    def id(self) -> str:
        return self._run_id

    @property
    def experiment_name(self) -> str:
        return self._registry.load_run(self._run_id).experiment_name

    @property
    def state(self) -> RunState:
        return self._registry.load_run(self._run_id).state

    @property
    def log_path(self) -> Path:
        return self._registry.run_dir(self._run_id) / RUN_DRIVER_LOG_FILE_NAME

    def get_details(self) -> dict[str, Any]:
        """Return the persisted run record as a dictionary."""
        return asdict(self._registry.load_run(self._run_id))

    def get_metrics(self) -> dict[str, object]:
        return self._registry.load_metrics(self._run_id)

    def wait_for_completion(self, raise_on_error: bool = False) -> RunRecord:
        """Return the finished run record.

        Runs execute synchronously, so the record is already terminal.

        Raises:
            DepotRunError: If the run failed and ``raise_on_error`` is set.
        """
        record = self._registry.load_run(self._run_id)
        if record.state not in TERMINAL_RUN_STATES:
            raise DepotRunError(
                f"Run '{self._run_id}' is in state '{record.state}' and was never finished."
            )
        if raise_on_error and record.state == "failed":
            raise DepotRunError(
                f"Run '{self._run_id}' failed: {record.error_message}. See {self.log_path}."
            )
        return record

    def __repr__(self) -> str:
        return f"Run(id={self._run_id!r})"


class Experiment:
    """Named group of runs within a workspace."""

    def __init__(self, client: ExperimentClient, name: str) -> None:
        if not name.strip():
            raise DepotRunError("Experiment name must be non-empty.")
        self._client = client
        self._name = name
        self._registry = RunRegistry(client.config.workspace_root)

    @property
    def name(self) -> str:
        return self._name

    def list_runs(self) -> list[Run]:
        return [Run(self._registry, run_id) for run_id in self._registry.list_runs(self._name)]

    def submit(self, config: ScriptRunConfig) -> Run:
        """Submit and execute a script run.

        Args:
            config: Script, arguments, and inputs to run.

        Returns:
            Handle to the finished run.

        Raises:
            DepotRunError: If the script cannot be located or inputs conflict.
            Exception: Unexpected errors are re-raised after the run is marked failed.
        """
        source_directory, script_path = _validate_script(config)
        arguments = [_as_consumption(argument) for argument in config.arguments]
        consumptions = _collect_inputs(arguments, config.inputs)
        record = self._registry.start_run(
            experiment_name=self._name,
            source_directory=str(source_directory),
            script=config.script,
            arguments=[_display_argument(argument) for argument in arguments],
            inputs=[consumption.to_payload() for consumption in consumptions],
            environment_variables=config.environment_variables,
        )
        run = Run(self._registry, record.run_id)
        run_dir = self._registry.run_dir(record.run_id)
        mounts: list[MountContext] = []
        try:
            self._registry.transition(record.run_id, "preparing")
            input_values = self._prepare_inputs(consumptions, run_dir, mounts)
            write_json_file(
                run_dir / RUN_RESOLVED_INPUTS_FILE_NAME,
                input_values,
                DepotRunError,
            )
            resolved_arguments = [
                _resolve_argument(argument, input_values) for argument in arguments
            ]
            self._registry.transition(
                record.run_id, "running", resolved_arguments=resolved_arguments
            )
            exit_code = self._execute(
                script_path,
                source_directory,
                resolved_arguments,
                record.run_id,
                run_dir,
                config.environment_variables,
            )
        except DepotError as error:
            self._fail(record.run_id, str(error))
            return run
        except Exception as error:
            self._fail(record.run_id, f"{type(error).__name__}: {error}")
            raise
        finally:
            for mount in mounts:
                mount.stop()
        if exit_code == 0:
            self._registry.transition(record.run_id, "completed", exit_code=exit_code)
        else:
            self._registry.transition(
                record.run_id,
                "failed",
                message=f"Script exited with code {exit_code}",
                exit_code=exit_code,
            )
        return run

    def _prepare_inputs(
        self,
        consumptions: list[DatasetConsumptionConfig],
        run_dir: Path,
        mounts: list[MountContext],
    ) -> dict[str, str]:
        resolver = self._client.backend_resolver()
        input_values: dict[str, str] = {}
        for consumption in consumptions:
            dataset = consumption.dataset
            if consumption.mode == "direct":
                input_values[consumption.name] = dataset.id or consumption.name
                continue
            files = resolve_files(dataset.definition, resolver)
            if consumption.mode == "download":
                target = _input_path(consumption, run_dir / RUN_INPUTS_DIR_NAME)
                download_files(files, resolver, target, overwrite=True)
                input_values[consumption.name] = str(target)
            else:
                target = _input_path(consumption, run_dir / RUN_MOUNTS_DIR_NAME)
                mount = MountContext(files, resolver, target)
                mounts.append(mount)
                input_values[consumption.name] = str(mount.start())
            _LOGGER.info(
                "run_input_prepared",
                alias=consumption.name,
                mode=consumption.mode,
                path=input_values[consumption.name],
                file_count=len(files),
            )
        return input_values

    def _execute(
        self,
        script_path: Path,
        source_directory: Path,
        arguments: list[str],
        run_id: str,
        run_dir: Path,
        environment_variables: Mapping[str, str],
    ) -> int:
        environment = dict(os.environ)
        environment.update({str(key): str(value) for key, value in environment_variables.items()})
        environment[ENV_RUN_ID] = run_id
        environment[ENV_RUN_DIR] = str(run_dir)
        environment[ENV_WORKSPACE_ROOT] = str(self._client.config.workspace_root)
        environment[ENV_WORKSPACE_NAME] = self._client.config.workspace_name
        existing_path = environment.get("PYTHONPATH")
        python_path = [str(_SDK_SOURCE_ROOT)] + ([existing_path] if existing_path else [])
        environment["PYTHONPATH"] = os.pathsep.join(python_path)
        command = [sys.executable, str(script_path), *arguments]
        log_path = run_dir / RUN_DRIVER_LOG_FILE_NAME
        try:
            with log_path.open("w", encoding="utf-8") as log_handle:
                completed = subprocess.run(
                    command,
                    cwd=source_directory,
                    env=environment,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    check=False,
                )
        except OSError as error:
            raise DepotRunError(f"Failed to launch script {script_path}: {error}.") from error
        _LOGGER.info("run_script_finished", run_id=run_id, exit_code=completed.returncode)
        return completed.returncode

    def _fail(self, run_id: str, message: str) -> None:
        self._registry.transition(run_id, "failed", message=message)
        _LOGGER.error("run_failed", run_id=run_id, error=message)


def _validate_script(config: ScriptRunConfig) -> tuple[Path, Path]:
    source_directory = Path(config.source_directory).expanduser().resolve()
    if not source_directory.is_dir():
        raise DepotRunError(
            f"Run source directory {source_directory} does not exist."
        )
    script_path = (source_directory / config.script).resolve()
    if (
        script_path.suffix != ".py"
        or not script_path.is_file()
        or not script_path.is_relative_to(source_directory)
    ):
        raise DepotRunError(
            f"Run script '{config.script}' was not found as a .py file under {source_directory}. "
            "Runs execute standalone script files; code in interactive notebook cells cannot "
            "be submitted. Save it to a .py file and submit that."
        )
    return source_directory, script_path


def _as_consumption(argument: object) -> object:
    if isinstance(argument, DatasetConsumptionConfig):
        return argument
    as_named_input = getattr(argument, "as_named_input", None)
    default_alias = getattr(argument, "default_alias", None)
    if callable(as_named_input) and callable(default_alias):
        return as_named_input(default_alias())
    return argument


def _collect_inputs(
    arguments: list[object],
    extra_inputs: Sequence[DatasetConsumptionConfig],
) -> list[DatasetConsumptionConfig]:
    collected: dict[str, DatasetConsumptionConfig] = {}
    candidates = [item for item in arguments if isinstance(item, DatasetConsumptionConfig)]
    for consumption in [*candidates, *extra_inputs]:
        existing = collected.get(consumption.name)
        if existing is None:
            collected[consumption.name] = consumption
        elif existing.to_payload() != consumption.to_payload():
            raise DepotRunError(
                f"Input alias '{consumption.name}' is used for two different dataset inputs."
            )
    return list(collected.values())


def _display_argument(argument: object) -> str:
    if isinstance(argument, DatasetConsumptionConfig):
        return f"DatasetConsumptionConfig:{argument.name}"
    return str(argument)


def _resolve_argument(argument: object, input_values: Mapping[str, str]) -> str:
    if isinstance(argument, DatasetConsumptionConfig):
        return input_values[argument.name]
    return str(argument)


def _input_path(consumption: DatasetConsumptionConfig, default_root: Path) -> Path:
    if consumption.path_on_compute:
        return Path(consumption.path_on_compute).expanduser().resolve()
    return default_root / consumption.name


def load_resolved_inputs(run_dir: Path) -> dict[str, str]:
    """Read the alias to value map written when inputs were prepared."""
    resolved_path = run_dir / RUN_RESOLVED_INPUTS_FILE_NAME
    payload = read_json_file(resolved_path, DepotRunError, default_value={})
    if not isinstance(payload, dict):
        raise DepotRunError(f"Invalid resolved run inputs at {resolved_path}: expected object.")
    return {str(key): str(value) for key, value in payload.items()}
