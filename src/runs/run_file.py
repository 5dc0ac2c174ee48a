"""YAML run files.

A run file declares one script submission: experiment, script, arguments,
and dataset inputs. This module parses it strictly and turns it into a
``ScriptRunConfig`` against a workspace client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, cast

from core.errors import DepotDependencyError, DepotRunFileError
from core.types import SUPPORTED_ACCESS_MODES, AccessMode
from runs.experiment import ScriptRunConfig
from store.dataset_consumption import DatasetConsumptionConfig

_ROOT_KEYS = frozenset(
    {"experiment", "source_directory", "script", "arguments", "inputs", "environment_variables"}
)
_DATASET_KEYS = frozenset({"dataset", "id", "version", "mode", "alias"})


class RunFileClient(Protocol):
    """Dataset lookups needed to build run inputs."""

    def get_dataset_by_name(self, name: str, version: int | str | None = ...) -> Any: ...

    def get_dataset_by_id(self, dataset_id: str) -> Any: ...


@dataclass(frozen=True)
class DatasetInputSpec:
    """Dataset reference declared in a run file."""

    name: str | None
    dataset_id: str | None
    version: int | str | None
    mode: AccessMode
    alias: str | None


@dataclass(frozen=True)
class RunFile:
    """Validated run file contents."""

    experiment: str
    source_directory: Path
    script: str
    arguments: tuple[str | DatasetInputSpec, ...] = ()
    inputs: tuple[DatasetInputSpec, ...] = ()
    environment_variables: Mapping[str, str] = field(default_factory=dict)


def load_run_file(run_file_path: str) -> RunFile:
    """Load and validate a YAML run file.

    Args:
        run_file_path: Path to the YAML file.

    Returns:
        Validated run file. ``source_directory`` is resolved against the
        file's own directory.

    Raises:
        DepotDependencyError: If PyYAML is unavailable.
        DepotRunFileError: If the file is missing or invalid.
    """
    run_file = Path(run_file_path).expanduser().resolve()
    payload = _expect_mapping(_load_yaml_payload(run_file), "run file root")
    unknown_keys = sorted(set(payload) - _ROOT_KEYS)
    if unknown_keys:
        raise DepotRunFileError(
            f"Unsupported run file keys {unknown_keys}. Allowed keys: {sorted(_ROOT_KEYS)}."
        )
    source_directory = Path(_optional_string(payload, "source_directory") or ".").expanduser()
    if not source_directory.is_absolute():
        source_directory = run_file.parent / source_directory
    return RunFile(
        experiment=_required_string(payload, "experiment"),
        source_directory=source_directory.resolve(),
        script=_required_string(payload, "script"),
        arguments=tuple(_parse_argument(item) for item in _list_value(payload, "arguments")),
        inputs=tuple(
            _parse_dataset_spec(_expect_mapping(item, "input entry"))
            for item in _list_value(payload, "inputs")
        ),
        environment_variables=_parse_environment(payload.get("environment_variables")),
    )


def build_script_run_config(run_file: RunFile, client: RunFileClient) -> ScriptRunConfig:
    """Resolve dataset references in a run file against a workspace.

    Raises:
        DepotDatasetError: If a referenced dataset does not exist.
    """
    arguments: list[object] = []
    for argument in run_file.arguments:
        if isinstance(argument, DatasetInputSpec):
            arguments.append(_consumption_for(argument, client))
        else:
            arguments.append(argument)
    return ScriptRunConfig(
        source_directory=str(run_file.source_directory),
        script=run_file.script,
        arguments=tuple(arguments),
        inputs=tuple(_consumption_for(spec, client) for spec in run_file.inputs),
        environment_variables=dict(run_file.environment_variables),
    )


def _consumption_for(spec: DatasetInputSpec, client: RunFileClient) -> DatasetConsumptionConfig:
    if spec.dataset_id:
        dataset = client.get_dataset_by_id(spec.dataset_id)
    else:
        dataset = client.get_dataset_by_name(cast(str, spec.name), spec.version)
    consumption = dataset.as_named_input(spec.alias or dataset.default_alias())
    if spec.mode == "download":
        return consumption.as_download()
    if spec.mode == "mount":
        return consumption.as_mount()
    return consumption


def _load_yaml_payload(run_file: Path) -> object:
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as error:  # pragma: no cover - dependency failure
        raise DepotDependencyError(
            "Run files require PyYAML. Install with 'pip install pyyaml'."
        ) from error
    if not run_file.exists():
        raise DepotRunFileError(f"Run file does not exist at {run_file}.")
    try:
        payload = cast(object, yaml.safe_load(run_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise DepotRunFileError(f"Failed to read run file at {run_file}: {error}.") from error
    except yaml.YAMLError as error:
        raise DepotRunFileError(
            f"Failed to parse YAML run file at {run_file}: {error}. Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise DepotRunFileError(f"Run file at {run_file} is empty. Define experiment and script.")
    return payload


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise DepotRunFileError(f"Invalid {context}: expected mapping, got {type(value).__name__}.")
    for key in value:
        if not isinstance(key, str):
            raise DepotRunFileError(f"Invalid {context}: expected string keys, got {key!r}.")
    return cast(Mapping[str, object], value)


def _required_string(payload: Mapping[str, object], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise DepotRunFileError(f"Run file field '{key}' is required and must be a string.")
    return value


def _optional_string(payload: Mapping[str, object], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DepotRunFileError(f"Run file field '{key}' must be a string.")
    return value


def _list_value(payload: Mapping[str, object], key: str) -> list[object]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DepotRunFileError(f"Run file field '{key}' must be a list.")
    return value


def _parse_argument(item: object) -> str | DatasetInputSpec:
    if isinstance(item, Mapping):
        return _parse_dataset_spec(_expect_mapping(item, "argument entry"))
    if isinstance(item, (str, int, float, bool)):
        return str(item)
    raise DepotRunFileError(f"Unsupported argument value {item!r}: expected scalar or dataset.")


def _parse_dataset_spec(entry: Mapping[str, object]) -> DatasetInputSpec:
    unknown_keys = sorted(set(entry) - _DATASET_KEYS)
    if unknown_keys:
        raise DepotRunFileError(
            f"Unsupported dataset entry keys {unknown_keys}. Allowed: {sorted(_DATASET_KEYS)}."
        )
    name = _optional_string(entry, "dataset")
    dataset_id = _optional_string(entry, "id")
    if bool(name) == bool(dataset_id):
        raise DepotRunFileError("Each dataset entry needs exactly one of 'dataset' or 'id'.")
    version = entry.get("version")
    if version is not None and (isinstance(version, bool) or not isinstance(version, (int, str))):
        raise DepotRunFileError(f"Invalid dataset version {version!r} in run file.")
    mode = entry.get("mode", "direct")
    if mode not in SUPPORTED_ACCESS_MODES:
        raise DepotRunFileError(
            f"Invalid dataset mode {mode!r}. Allowed: {', '.join(SUPPORTED_ACCESS_MODES)}."
        )
    return DatasetInputSpec(
        name=name,
        dataset_id=dataset_id,
        version=cast(int | str | None, version),
        mode=cast(AccessMode, mode),
        alias=_optional_string(entry, "alias"),
    )


def _parse_environment(value: object) -> dict[str, str]:
    if value is None:
        return {}
    mapping = _expect_mapping(value, "environment_variables")
    return {key: str(item) for key, item in mapping.items()}
