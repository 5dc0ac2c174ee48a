"""Dataset definition payloads and path coercion.

Definitions are persisted inside dataset catalogs and run input files,
so this module owns their JSON representation.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence, cast

from core.constants import DATASTORE_URI_SCHEME
from core.datastore_uri import DataPath, parse_datastore_uri
from core.errors import DepotDatasetError
from core.types import (
    DatasetDefinition,
    DatasetKind,
    SourceFormat,
    Transformation,
    TransformationOp,
)

_DATASET_KINDS: tuple[DatasetKind, ...] = ("tabular", "file")
_SOURCE_FORMATS: tuple[SourceFormat, ...] = ("delimited", "json_lines", "parquet", "files")
_TRANSFORMATION_OPS: tuple[TransformationOp, ...] = (
    "take",
    "skip",
    "keep_columns",
    "drop_columns",
)


def coerce_data_paths(paths: object) -> tuple[DataPath, ...]:
    """Normalize user-supplied paths into data paths.

    Accepts a single item or a sequence of items. Each item may be a
    ``DataPath``, a ``depot://`` URI string, or a ``(datastore, pattern)``
    tuple where the datastore is a name or any object with a ``name``.
    A tuple made only of URIs is read as several paths.

    Raises:
        DepotDatasetError: If no paths are given or an item is malformed.
    """
    items: Sequence[object]
    if isinstance(paths, tuple) and all(_is_datastore_uri(item) for item in paths):
        items = list(paths)
    elif isinstance(paths, (DataPath, str, tuple)):
        items = [paths]
    elif isinstance(paths, Iterable):
        items = list(paths)
    else:
        raise DepotDatasetError(
            f"Unsupported dataset path value {paths!r}: expected URI, DataPath, "
            "or (datastore, pattern) tuple."
        )
    data_paths = tuple(_coerce_one(item) for item in items)
    if not data_paths:
        raise DepotDatasetError("A dataset needs at least one datastore path.")
    return data_paths


def _coerce_one(item: object) -> DataPath:
    if isinstance(item, DataPath):
        return item
    if isinstance(item, str):
        return parse_datastore_uri(item)
    if isinstance(item, tuple) and len(item) == 2:
        datastore, pattern = item
        datastore_name = (
            datastore if isinstance(datastore, str) else getattr(datastore, "name", None)
        )
        if (
            isinstance(datastore_name, str)
            and _is_datastore_name(datastore_name)
            and isinstance(pattern, str)
            and pattern.strip("/")
        ):
            return DataPath(datastore_name=datastore_name, pattern=pattern.strip("/"))
    raise DepotDatasetError(
        f"Invalid dataset path {item!r}: expected URI, DataPath, or (datastore, pattern) tuple."
    )


def _is_datastore_uri(item: object) -> bool:
    return isinstance(item, str) and item.startswith(DATASTORE_URI_SCHEME)


def _is_datastore_name(name: str) -> bool:
    return bool(name) and "/" not in name and not name.startswith(DATASTORE_URI_SCHEME)


def definition_to_payload(definition: DatasetDefinition) -> dict[str, Any]:
    """Serialize a definition to a JSON-safe dictionary."""
    return {
        "kind": definition.kind,
        "source_format": definition.source_format,
        "paths": [path.to_uri() for path in definition.paths],
        "separator": definition.separator,
        "header": definition.header,
        "include_path": definition.include_path,
        "transformations": [
            _transformation_to_payload(step) for step in definition.transformations
        ],
    }


def definition_from_payload(payload: Mapping[str, Any]) -> DatasetDefinition:
    """Deserialize a definition payload.

    Raises:
        DepotDatasetError: If the payload is malformed.
    """
    try:
        kind = str(payload["kind"])
        source_format = str(payload["source_format"])
        if kind not in _DATASET_KINDS or source_format not in _SOURCE_FORMATS:
            raise DepotDatasetError(
                f"Invalid dataset definition: kind '{kind}', format '{source_format}'."
            )
        return DatasetDefinition(
            kind=cast(DatasetKind, kind),
            source_format=cast(SourceFormat, source_format),
            paths=tuple(parse_datastore_uri(str(uri)) for uri in payload["paths"]),
            separator=str(payload.get("separator", ",")),
            header=bool(payload.get("header", True)),
            include_path=bool(payload.get("include_path", False)),
            transformations=tuple(
                _transformation_from_payload(step) for step in payload.get("transformations", [])
            ),
        )
    except (KeyError, TypeError) as error:
        raise DepotDatasetError(f"Invalid dataset definition payload: {error}.") from error


def _transformation_to_payload(step: Transformation) -> dict[str, Any]:
    payload: dict[str, Any] = {"operation": step.operation}
    if step.count is not None:
        payload["count"] = step.count
    if step.columns:
        payload["columns"] = list(step.columns)
    return payload


def _transformation_from_payload(payload: Mapping[str, Any]) -> Transformation:
    operation = str(payload["operation"])
    if operation not in _TRANSFORMATION_OPS:
        raise DepotDatasetError(f"Unknown dataset transformation '{operation}'.")
    count = payload.get("count")
    return Transformation(
        operation=cast(TransformationOp, operation),
        count=int(count) if count is not None else None,
        columns=tuple(str(column) for column in payload.get("columns", [])),
    )
