"""Shared typed models.

This module defines immutable models used by the datastore registry,
dataset registry, SDK handles, and run layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Mapping

from core.constants import MASKED_CREDENTIAL
from core.datastore_uri import DataPath

DatastoreKind = Literal["local", "s3", "blob", "file", "sql", "dbfs"]
SUPPORTED_DATASTORE_KINDS: tuple[DatastoreKind, ...] = (
    "local",
    "s3",
    "blob",
    "file",
    "sql",
    "dbfs",
)
MATERIALIZABLE_DATASTORE_KINDS: tuple[DatastoreKind, ...] = ("local", "s3")

DatasetKind = Literal["tabular", "file"]
SourceFormat = Literal["delimited", "json_lines", "parquet", "files"]
TABULAR_SOURCE_FORMATS: tuple[SourceFormat, ...] = ("delimited", "json_lines", "parquet")
TransformationOp = Literal["take", "skip", "keep_columns", "drop_columns"]
AccessMode = Literal["direct", "download", "mount"]
SUPPORTED_ACCESS_MODES: tuple[AccessMode, ...] = ("direct", "download", "mount")


@dataclass(frozen=True)
class DatastoreRecord:
    """Registered datastore.

    Attributes:
        name: Unique datastore name within the workspace.
        kind: Storage backend kind.
        location: Backend-specific location (directory, s3:// URI, account/container).
        credentials: Backend credential fields, never logged.
        created_at: UTC registration timestamp.
    """

    name: str
    kind: DatastoreKind
    location: str
    created_at: datetime
    credentials: Mapping[str, str] = field(default_factory=dict)

    def describe(self) -> dict[str, object]:
        """Return a JSON-safe summary with masked credentials."""
        return {
            "name": self.name,
            "kind": self.kind,
            "location": self.location,
            "created_at": self.created_at.isoformat(),
            "credentials": {key: MASKED_CREDENTIAL for key in sorted(self.credentials)},
        }


@dataclass(frozen=True)
class Transformation:
    """One lazy tabular transformation step."""

    operation: TransformationOp
    count: int | None = None
    columns: tuple[str, ...] = ()


@dataclass(frozen=True)
class DatasetDefinition:
    """Immutable description of where dataset data lives and how to read it.

    Attributes:
        kind: Tabular or file dataset.
        source_format: File format used when reading tabular data.
        paths: Datastore file patterns, in declaration order.
        separator: Column separator for delimited files.
        header: Whether delimited files carry a header row.
        include_path: Add a column with each row's source path.
        transformations: Ordered tabular transformation steps.
    """

    kind: DatasetKind
    source_format: SourceFormat
    paths: tuple[DataPath, ...]
    separator: str = ","
    header: bool = True
    include_path: bool = False
    transformations: tuple[Transformation, ...] = ()


@dataclass(frozen=True)
class DatasetVersionRecord:
    """One registered dataset version.

    Attributes:
        dataset_id: Immutable id for exactly this version.
        name: Dataset name, unique within the workspace.
        version: Sequential version number starting at 1.
        definition: Data definition captured at registration.
        description: Optional free-text description.
        tags: User tags.
        created_at: UTC registration timestamp.
    """

    dataset_id: str
    name: str
    version: int
    definition: DatasetDefinition
    created_at: datetime
    description: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict)
