"""Datastore registry.

Datastores are named, unversioned pointers to storage locations. The
registry persists them in one JSON file together with the workspace
default datastore.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, cast

from core.config import DepotConfig
from core.constants import DATASTORES_FILE_NAME, NAME_PATTERN
from core.errors import DepotDatasetError, DepotDatastoreError
from core.json_io import read_json_file, write_json_file
from core.logging_config import get_logger
from core.s3_uri import parse_s3_uri
from core.types import SUPPORTED_DATASTORE_KINDS, DatastoreKind, DatastoreRecord

_LOGGER = get_logger(__name__)


class DatastoreRegistry:
    """Persistent datastore registry for one workspace."""

    def __init__(self, config: DepotConfig) -> None:
        self._config = config
        self._registry_path = config.workspace_root / DATASTORES_FILE_NAME
        config.workspace_root.mkdir(parents=True, exist_ok=True)

    def register(
        self,
        name: str,
        kind: str,
        location: str,
        credentials: Mapping[str, str] | None = None,
        overwrite: bool = False,
        set_default: bool = False,
    ) -> DatastoreRecord:
        """Register a datastore under a unique name.

        Args:
            name: Datastore name.
            kind: Storage kind, one of SUPPORTED_DATASTORE_KINDS.
            location: Kind-specific location.
            credentials: Optional credential fields.
            overwrite: Replace an existing datastore with the same name.
            set_default: Make this the workspace default datastore.

        Returns:
            Persisted datastore record.

        Raises:
            DepotDatastoreError: If validation fails or the name is taken.
        """
        validate_name(name, "datastore")
        datastore_kind = _validate_kind(kind)
        normalized_location = _validate_location(datastore_kind, location)
        credential_fields = {str(key): str(value) for key, value in (credentials or {}).items()}
        payload = self._read_registry()
        datastores = cast(dict[str, dict[str, Any]], payload["datastores"])
        existing = datastores.get(name)
        if existing is not None:
            existing_record = _record_from_payload(existing)
            if (
                existing_record.kind == datastore_kind
                and existing_record.location == normalized_location
                and dict(existing_record.credentials) == credential_fields
            ):
                if set_default:
                    self.set_default(name)
                return existing_record
            if not overwrite:
                raise DepotDatastoreError(
                    f"Datastore '{name}' is already registered with a different definition. "
                    "Pass overwrite=True to replace it."
                )
        record = DatastoreRecord(
            name=name,
            kind=datastore_kind,
            location=normalized_location,
            created_at=datetime.now(timezone.utc),
            credentials=credential_fields,
        )
        datastores[name] = _payload_from_record(record)
        if set_default or payload["default"] is None:
            payload["default"] = name
        self._write_registry(payload)
        _LOGGER.info(
            "datastore_registered",
            name=name,
            kind=datastore_kind,
            location=normalized_location,
            is_default=payload["default"] == name,
        )
        return record

    def get(self, name: str) -> DatastoreRecord:
        """Load one datastore by name.

        Raises:
            DepotDatastoreError: If the datastore is not registered.
        """
        datastores = cast(dict[str, dict[str, Any]], self._read_registry()["datastores"])
        if name not in datastores:
            raise DepotDatastoreError(
                f"Datastore '{name}' is not registered in workspace "
                f"'{self._config.workspace_name}'. Use list() to see registered datastores."
            )
        return _record_from_payload(datastores[name])

    def list(self) -> list[DatastoreRecord]:
        """Return all datastores sorted by name."""
        datastores = cast(dict[str, dict[str, Any]], self._read_registry()["datastores"])
        return [_record_from_payload(datastores[name]) for name in sorted(datastores)]

    def set_default(self, name: str) -> None:
        """Mark a registered datastore as the workspace default."""
        payload = self._read_registry()
        if name not in cast(dict[str, object], payload["datastores"]):
            raise DepotDatastoreError(
                f"Cannot set default datastore: '{name}' is not registered."
            )
        payload["default"] = name
        self._write_registry(payload)
        _LOGGER.info("default_datastore_set", name=name)

    def get_default(self) -> DatastoreRecord:
        """Return the workspace default datastore.

        Raises:
            DepotDatastoreError: If no default datastore is set.
        """
        default_name = self._read_registry()["default"]
        if not default_name:
            raise DepotDatastoreError(
                "Workspace has no default datastore. Register a datastore or call set_default()."
            )
        return self.get(str(default_name))

    def default_name(self) -> str | None:
        """Return the default datastore name, or None when unset."""
        default_name = self._read_registry()["default"]
        return str(default_name) if default_name else None

    def unregister(self, name: str) -> None:
        """Remove a datastore from the registry.

        Datasets referencing it are left untouched and fail on access.
        """
        payload = self._read_registry()
        datastores = cast(dict[str, object], payload["datastores"])
        if name not in datastores:
            raise DepotDatastoreError(f"Cannot unregister datastore '{name}': not registered.")
        del datastores[name]
        if payload["default"] == name:
            payload["default"] = None
        self._write_registry(payload)
        _LOGGER.info("datastore_unregistered", name=name)

    def _read_registry(self) -> dict[str, Any]:
        payload = read_json_file(
            self._registry_path,
            DepotDatastoreError,
            default_value={"default": None, "datastores": {}},
        )
        if (
            not isinstance(payload, dict)
            or not isinstance(payload.get("datastores"), dict)
            or "default" not in payload
        ):
            raise DepotDatastoreError(
                f"Invalid datastore registry at {self._registry_path}: "
                "expected 'default' and 'datastores' keys."
            )
        return payload

    def _write_registry(self, payload: dict[str, Any]) -> None:
        write_json_file(self._registry_path, payload, DepotDatastoreError)


def validate_name(name: str, entity: str) -> None:
    """Validate a datastore or dataset name.

    Raises:
        DepotDatastoreError: For invalid datastore names.
        DepotDatasetError: For invalid dataset names.
    """
    if re.fullmatch(NAME_PATTERN, name):
        return
    message = (
        f"Invalid {entity} name '{name}': use letters, digits, '_', '.', or '-', "
        "starting with a letter or digit."
    )
    if entity == "dataset":
        raise DepotDatasetError(message)
    raise DepotDatastoreError(message)


def _validate_kind(kind: str) -> DatastoreKind:
    if kind not in SUPPORTED_DATASTORE_KINDS:
        raise DepotDatastoreError(
            f"Unsupported datastore kind '{kind}'. "
            f"Supported kinds: {', '.join(SUPPORTED_DATASTORE_KINDS)}."
        )
    return cast(DatastoreKind, kind)


def _validate_location(kind: DatastoreKind, location: str) -> str:
    stripped = location.strip()
    if not stripped:
        raise DepotDatastoreError(f"Datastore location must be non-empty for kind '{kind}'.")
    if kind == "local":
        root = Path(stripped).expanduser().resolve()
        if not root.is_dir():
            raise DepotDatastoreError(
                f"Local datastore location {root} is not an existing directory."
            )
        return str(root)
    if kind == "s3":
        parsed = parse_s3_uri(stripped)
        return f"s3://{parsed.bucket}/{parsed.prefix}" if parsed.prefix else f"s3://{parsed.bucket}"
    return stripped


def _payload_from_record(record: DatastoreRecord) -> dict[str, Any]:
    return {
        "name": record.name,
        "kind": record.kind,
        "location": record.location,
        "created_at": record.created_at.isoformat(),
        "credentials": dict(record.credentials),
    }


def _record_from_payload(payload: dict[str, Any]) -> DatastoreRecord:
    try:
        return DatastoreRecord(
            name=str(payload["name"]),
            kind=_validate_kind(str(payload["kind"])),
            location=str(payload["location"]),
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            credentials={
                str(key): str(value) for key, value in dict(payload["credentials"]).items()
            },
        )
    except (KeyError, TypeError, ValueError) as error:
        raise DepotDatastoreError(f"Invalid datastore registry entry: {error}.") from error
