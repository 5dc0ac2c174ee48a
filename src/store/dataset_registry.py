"""Dataset registry and version catalog.

Each dataset name owns a catalog of sequential versions. A workspace-wide
index maps immutable dataset ids to the exact (name, version) they were
issued for, so id lookups never drift when new versions are registered.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, cast
from uuid import uuid4

from core.config import DepotConfig
from core.constants import (
    CATALOG_FILE_NAME,
    DATASET_INDEX_FILE_NAME,
    DATASETS_DIR_NAME,
    LATEST_VERSION,
)
from core.errors import DepotDatasetError
from core.json_io import read_json_file, write_json_file
from core.logging_config import get_logger
from core.types import DatasetDefinition, DatasetVersionRecord
from store.dataset_definition import definition_from_payload, definition_to_payload
from store.datastore_registry import validate_name

_LOGGER = get_logger(__name__)


class DatasetRegistry:
    """Versioned dataset registry.

    This class owns per-name catalogs and the id index under
    ``<workspace_root>/datasets``.
    """

    def __init__(self, config: DepotConfig) -> None:
        """Initialize registry from config.

        Args:
            config: Workspace configuration.
        """
        self._config = config
        self._datasets_root = config.workspace_root / DATASETS_DIR_NAME
        self._datasets_root.mkdir(parents=True, exist_ok=True)

    def register(
        self,
        definition: DatasetDefinition,
        name: str,
        description: str | None = None,
        tags: Mapping[str, str] | None = None,
        create_new_version: bool = False,
    ) -> DatasetVersionRecord:
        """Register a definition under a dataset name.

        Args:
            definition: Data definition to register.
            name: Dataset name.
            description: Optional description.
            tags: Optional user tags.
            create_new_version: Append a new version when the name exists.

        Returns:
            The created version, or the latest version when an identical
            definition is registered again without ``create_new_version``.

        Raises:
            DepotDatasetError: If the name exists with a different definition
                and ``create_new_version`` is False.
        """
        validate_name(name, "dataset")
        versions = self._read_versions(name) if self._catalog_path(name).exists() else []
        if versions and not create_new_version:
            latest = versions[-1]
            if latest.definition == definition:
                _LOGGER.info(
                    "dataset_already_registered",
                    name=name,
                    version=latest.version,
                    dataset_id=latest.dataset_id,
                )
                return latest
            raise DepotDatasetError(
                f"Dataset '{name}' already exists with a different definition "
                f"(latest version {latest.version}). "
                "Pass create_new_version=True to register a new version."
            )
        record = DatasetVersionRecord(
            dataset_id=uuid4().hex,
            name=name,
            version=versions[-1].version + 1 if versions else 1,
            definition=definition,
            created_at=datetime.now(timezone.utc),
            description=description,
            tags={str(key): str(value) for key, value in (tags or {}).items()},
        )
        self._write_versions(name, versions + [record])
        self._index_record(record)
        _LOGGER.info(
            "dataset_registered",
            name=name,
            version=record.version,
            dataset_id=record.dataset_id,
            kind=definition.kind,
        )
        return record

    def get_by_name(
        self,
        name: str,
        version: int | str | None = LATEST_VERSION,
    ) -> DatasetVersionRecord:
        """Resolve a dataset version by name.

        Args:
            name: Dataset name.
            version: ``"latest"``, ``None``, an int, or a numeric string.

        Returns:
            Matching version record.

        Raises:
            DepotDatasetError: If the name or version does not exist.
        """
        versions = self.list_versions(name)
        target = _parse_version(version)
        if target is None:
            return versions[-1]
        for record in versions:
            if record.version == target:
                return record
        raise DepotDatasetError(
            f"Version {target} not found for dataset '{name}'. "
            f"Available versions: {[record.version for record in versions]}."
        )

    def get_by_id(self, dataset_id: str) -> DatasetVersionRecord:
        """Resolve the exact version an id was issued for.

        Raises:
            DepotDatasetError: If the id is unknown.
        """
        index = self._read_index()
        entry = index.get(dataset_id)
        if not isinstance(entry, dict):
            raise DepotDatasetError(
                f"Dataset id '{dataset_id}' is not registered in workspace "
                f"'{self._config.workspace_name}'."
            )
        return self.get_by_name(str(entry["name"]), int(entry["version"]))

    def list_names(self) -> list[str]:
        """Return registered dataset names sorted alphabetically."""
        return sorted(
            path.parent.name for path in self._datasets_root.glob(f"*/{CATALOG_FILE_NAME}")
        )

    def list_versions(self, name: str) -> list[DatasetVersionRecord]:
        """List versions of a dataset ordered by version number.

        Raises:
            DepotDatasetError: If the dataset is not registered.
        """
        if not self._catalog_path(name).exists():
            raise DepotDatasetError(
                f"Dataset '{name}' is not registered. Use list_names() to see datasets."
            )
        return self._read_versions(name)

    def _catalog_path(self, name: str) -> Path:
        return self._datasets_root / name / CATALOG_FILE_NAME

    def _read_versions(self, name: str) -> list[DatasetVersionRecord]:
        catalog_path = self._catalog_path(name)
        payload = read_json_file(catalog_path, DepotDatasetError)
        if not isinstance(payload, dict) or not isinstance(payload.get("versions"), list):
            raise DepotDatasetError(
                f"Invalid dataset catalog at {catalog_path}: expected a versions list."
            )
        version_payloads = cast(list[dict[str, Any]], payload["versions"])
        versions = [_record_from_payload(item) for item in version_payloads]
        return sorted(versions, key=lambda record: record.version)

    def _write_versions(self, name: str, versions: list[DatasetVersionRecord]) -> None:
        payload = {
            "name": name,
            "latest_version": versions[-1].version,
            "versions": [_payload_from_record(record) for record in versions],
        }
        write_json_file(self._catalog_path(name), payload, DepotDatasetError)

    def _read_index(self) -> dict[str, Any]:
        index_path = self._datasets_root / DATASET_INDEX_FILE_NAME
        payload = read_json_file(index_path, DepotDatasetError, default_value={"ids": {}})
        if not isinstance(payload, dict) or not isinstance(payload.get("ids"), dict):
            raise DepotDatasetError(f"Invalid dataset id index at {index_path}: expected ids map.")
        return cast(dict[str, Any], payload["ids"])

    def _index_record(self, record: DatasetVersionRecord) -> None:
        index = self._read_index()
        index[record.dataset_id] = {"name": record.name, "version": record.version}
        write_json_file(
            self._datasets_root / DATASET_INDEX_FILE_NAME,
            {"ids": index},
            DepotDatasetError,
        )


def _parse_version(version: int | str | None) -> int | None:
    if version is None or version == LATEST_VERSION:
        return None
    if isinstance(version, bool):
        raise DepotDatasetError(f"Invalid dataset version {version!r}.")
    if isinstance(version, int):
        parsed = version
    else:
        try:
            parsed = int(str(version))
        except ValueError as error:
            raise DepotDatasetError(
                f"Invalid dataset version '{version}': expected 'latest' or a positive integer."
            ) from error
    if parsed < 1:
        raise DepotDatasetError(f"Invalid dataset version {parsed}: versions start at 1.")
    return parsed


def _payload_from_record(record: DatasetVersionRecord) -> dict[str, Any]:
    return {
        "id": record.dataset_id,
        "name": record.name,
        "version": record.version,
        "created_at": record.created_at.isoformat(),
        "description": record.description,
        "tags": dict(record.tags),
        "definition": definition_to_payload(record.definition),
    }


def _record_from_payload(payload: dict[str, Any]) -> DatasetVersionRecord:
    try:
        return DatasetVersionRecord(
            dataset_id=str(payload["id"]),
            name=str(payload["name"]),
            version=int(payload["version"]),
            definition=definition_from_payload(payload["definition"]),
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            description=str(payload["description"]) if payload.get("description") else None,
            tags={str(key): str(value) for key, value in dict(payload.get("tags", {})).items()},
        )
    except (KeyError, TypeError, ValueError) as error:
        raise DepotDatasetError(f"Invalid dataset version entry: {error}.") from error
