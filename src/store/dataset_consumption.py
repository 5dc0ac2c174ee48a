"""Dataset references handed to script runs.

A consumption config binds a dataset to an alias and an access mode.
Its payload is what a run persists and later resolves inside the script.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Mapping, Protocol, cast

from core.errors import DepotDatasetError
from core.types import SUPPORTED_ACCESS_MODES, AccessMode, DatasetDefinition
from store.dataset_definition import definition_from_payload, definition_to_payload

_ALIAS_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"


class ConsumableDataset(Protocol):
    """Dataset handle attributes needed to build a reference payload."""

    @property
    def id(self) -> str | None: ...

    @property
    def name(self) -> str | None: ...

    @property
    def version(self) -> int | None: ...

    @property
    def definition(self) -> DatasetDefinition: ...


@dataclass(frozen=True)
class DatasetConsumptionConfig:
    """Named dataset input for a run.

    Attributes:
        name: Alias under which the run sees the input.
        dataset: Tabular or file dataset handle.
        mode: ``direct``, ``download``, or ``mount``.
        path_on_compute: Optional local path for download and mount modes.
    """

    name: str
    dataset: Any
    mode: AccessMode = "direct"
    path_on_compute: str | None = None

    def __post_init__(self) -> None:
        validate_alias(self.name)
        if self.mode not in SUPPORTED_ACCESS_MODES:
            raise DepotDatasetError(
                f"Unsupported access mode '{self.mode}'. "
                f"Supported modes: {', '.join(SUPPORTED_ACCESS_MODES)}."
            )
        if self.mode != "direct" and self.dataset.definition.kind != "file":
            raise DepotDatasetError(
                f"Input '{self.name}' uses mode '{self.mode}', but only file datasets "
                "can be downloaded or mounted. Use direct mode for tabular datasets."
            )

    def as_download(self, path_on_compute: str | None = None) -> "DatasetConsumptionConfig":
        return replace(self, mode="download", path_on_compute=path_on_compute)

    def as_mount(self, path_on_compute: str | None = None) -> "DatasetConsumptionConfig":
        return replace(self, mode="mount", path_on_compute=path_on_compute)

    def to_payload(self) -> dict[str, Any]:
        """Serialize the reference for persistence with a run."""
        dataset = cast(ConsumableDataset, self.dataset)
        return {
            "name": self.name,
            "mode": self.mode,
            "path_on_compute": self.path_on_compute,
            "dataset": {
                "id": dataset.id,
                "name": dataset.name,
                "version": dataset.version,
                "definition": definition_to_payload(dataset.definition),
            },
        }


@dataclass(frozen=True)
class DatasetInputPayload:
    """Persisted reference as read back inside a run."""

    name: str
    mode: AccessMode
    path_on_compute: str | None
    dataset_id: str | None
    dataset_name: str | None
    dataset_version: int | None
    definition: DatasetDefinition


def input_payload_from_dict(payload: Mapping[str, Any]) -> DatasetInputPayload:
    """Parse one persisted consumption payload.

    Raises:
        DepotDatasetError: If the payload is malformed.
    """
    try:
        dataset_payload = payload["dataset"]
        mode = str(payload["mode"])
        if mode not in SUPPORTED_ACCESS_MODES:
            raise DepotDatasetError(f"Unsupported access mode '{mode}' in run input.")
        version = dataset_payload.get("version")
        return DatasetInputPayload(
            name=str(payload["name"]),
            mode=cast(AccessMode, mode),
            path_on_compute=payload.get("path_on_compute"),
            dataset_id=dataset_payload.get("id"),
            dataset_name=dataset_payload.get("name"),
            dataset_version=int(version) if version is not None else None,
            definition=definition_from_payload(dataset_payload["definition"]),
        )
    except (KeyError, TypeError, AttributeError) as error:
        raise DepotDatasetError(f"Invalid run input payload: {error}.") from error


def validate_alias(alias: str) -> None:
    if not re.fullmatch(_ALIAS_PATTERN, alias):
        raise DepotDatasetError(
            f"Invalid input alias '{alias}': use a Python identifier such as 'training_data'."
        )
