"""Python SDK for datastore and dataset operations.

This module exposes the workspace client, datastore handles, dataset
factories, and tabular/file dataset handles backed by the registries.
"""

from __future__ import annotations

import re
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Mapping, Sequence, Union

import pandas as pd

from core.config import DepotConfig
from core.constants import DEFAULT_CSV_SEPARATOR, DEFAULT_INPUT_ALIAS, LATEST_VERSION
from core.datastore_uri import DataPath
from core.errors import DepotDatasetError
from core.types import (
    DatasetDefinition,
    DatasetVersionRecord,
    DatastoreRecord,
    SourceFormat,
    Transformation,
)
from runs.experiment import Experiment, Run
from runs.run_registry import RunRegistry
from store.dataset_consumption import DatasetConsumptionConfig, DatasetInputPayload
from store.dataset_definition import coerce_data_paths
from store.dataset_registry import DatasetRegistry
from store.datastore_registry import DatastoreRegistry
from store.materialize import (
    BackendFactory,
    BackendResolver,
    MountContext,
    download_files,
    load_dataframe,
    resolve_files,
    validate_definition_paths,
)


class DepotClient:
    """Primary SDK entry point bound to one workspace."""

    def __init__(
        self,
        config: DepotConfig | None = None,
        backend_factory: BackendFactory | None = None,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional workspace configuration; read from env when omitted.
            backend_factory: Optional storage backend factory override.
        """
        self._config = config or DepotConfig.from_env()
        self._backend_factory = backend_factory
        self._datastores = DatastoreRegistry(self._config)
        self._datasets = DatasetRegistry(self._config)
        self.tabular = TabularDatasetFactory(self)
        self.file = FileDatasetFactory(self)

    @classmethod
    def from_config(cls, config_path: str | Path) -> "DepotClient":
        """Create a client from a JSON workspace config file."""
        return cls(DepotConfig.from_file(config_path))

    @property
    def config(self) -> DepotConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.workspace_name

    def with_workspace_root(self, workspace_root: str) -> "DepotClient":
        """Clone the client onto a different workspace directory.

        Args:
            workspace_root: New workspace root path.

        Returns:
            New SDK client instance.
        """
        resolved_root = Path(workspace_root).expanduser().resolve()
        updated_config = replace(self._config, workspace_root=resolved_root)
        return DepotClient(updated_config, self._backend_factory)

    def backend_resolver(self) -> BackendResolver:
        """Return a fresh backend resolver for one materialization pass."""
        return BackendResolver(self._datastores, self._backend_factory)

    def register_datastore(
        self,
        name: str,
        kind: str,
        location: str,
        credentials: Mapping[str, str] | None = None,
        overwrite: bool = False,
        set_default: bool = False,
    ) -> "Datastore":
        """Register a datastore and return its handle.

        Raises:
            DepotDatastoreError: If validation fails or the name is taken.
        """
        record = self._datastores.register(
            name,
            kind,
            location,
            credentials=credentials,
            overwrite=overwrite,
            set_default=set_default,
        )
        return Datastore(record)

    def datastore(self, name: str) -> "Datastore":
        """Return the handle of a registered datastore."""
        return Datastore(self._datastores.get(name))

    def datastores(self) -> list["Datastore"]:
        """Return handles for every registered datastore, sorted by name."""
        return [Datastore(record) for record in self._datastores.list()]

    def get_default_datastore(self) -> "Datastore":
        """Return the workspace default datastore."""
        return Datastore(self._datastores.get_default())

    def default_datastore_name(self) -> str | None:
        """Return the default datastore name without raising when unset."""
        return self._datastores.default_name()

    def set_default_datastore(self, name: str) -> None:
        """Make a registered datastore the workspace default."""
        self._datastores.set_default(name)

    def unregister_datastore(self, name: str) -> None:
        """Remove a datastore; datasets that reference it fail on access."""
        self._datastores.unregister(name)

    def get_dataset_by_name(
        self,
        name: str,
        version: int | str | None = LATEST_VERSION,
    ) -> "AnyDataset":
        """Load a registered dataset by name and version.

        Args:
            name: Dataset name.
            version: ``"latest"`` or a version number.

        Returns:
            Tabular or file dataset handle.
        """
        return self._handle_for(self._datasets.get_by_name(name, version))

    def get_dataset_by_id(self, dataset_id: str) -> "AnyDataset":
        """Load the exact dataset version an id was issued for."""
        return self._handle_for(self._datasets.get_by_id(dataset_id))

    def list_datasets(self) -> list[str]:
        return self._datasets.list_names()

    def list_dataset_versions(self, name: str) -> list[DatasetVersionRecord]:
        return self._datasets.list_versions(name)

    def dataset_from_input(self, payload: DatasetInputPayload) -> "AnyDataset":
        """Rebuild a dataset handle from a persisted run input."""
        if payload.dataset_id:
            return self.get_dataset_by_id(payload.dataset_id)
        return self._handle_for_definition(payload.definition)

    def experiment(self, name: str) -> Experiment:
        return Experiment(self, name)

    def list_runs(self, experiment_name: str | None = None) -> tuple[str, ...]:
        return RunRegistry(self._config.workspace_root).list_runs(experiment_name)

    def get_run(self, run_id: str) -> Run:
        registry = RunRegistry(self._config.workspace_root)
        registry.load_run(run_id)
        return Run(registry, run_id)

    def _register_definition(
        self,
        definition: DatasetDefinition,
        name: str,
        description: str | None,
        tags: Mapping[str, str] | None,
        create_new_version: bool,
    ) -> "AnyDataset":
        record = self._datasets.register(
            definition,
            name,
            description=description,
            tags=tags,
            create_new_version=create_new_version,
        )
        return self._handle_for(record)

    def _handle_for(self, record: DatasetVersionRecord) -> "AnyDataset":
        if record.definition.kind == "tabular":
            return TabularDataset(self, record.definition, record)
        return FileDataset(self, record.definition, record)

    def _handle_for_definition(self, definition: DatasetDefinition) -> "AnyDataset":
        if definition.kind == "tabular":
            return TabularDataset(self, definition)
        return FileDataset(self, definition)


class Datastore:
    """Handle to a registered datastore."""

    def __init__(self, record: DatastoreRecord) -> None:
        self._record = record

    @property
    def name(self) -> str:
        return self._record.name

    @property
    def kind(self) -> str:
        return self._record.kind

    @property
    def location(self) -> str:
        return self._record.location

    @property
    def record(self) -> DatastoreRecord:
        return self._record

    def path(self, pattern: str) -> DataPath:
        """Return a data path for a pattern inside this datastore."""
        return DataPath(datastore_name=self.name, pattern=pattern.strip("/"))

    def describe(self) -> dict[str, object]:
        return self._record.describe()

    def __repr__(self) -> str:
        return f"Datastore(name={self.name!r}, kind={self.kind!r})"


class _DatasetHandle:
    """Behavior shared by tabular and file dataset handles."""

    def __init__(
        self,
        client: DepotClient,
        definition: DatasetDefinition,
        record: DatasetVersionRecord | None = None,
    ) -> None:
        self._client = client
        self._definition = definition
        self._record = record

    @property
    def id(self) -> str | None:
        return self._record.dataset_id if self._record else None

    @property
    def name(self) -> str | None:
        return self._record.name if self._record else None

    @property
    def version(self) -> int | None:
        return self._record.version if self._record else None

    @property
    def description(self) -> str | None:
        return self._record.description if self._record else None

    @property
    def tags(self) -> dict[str, str]:
        return dict(self._record.tags) if self._record else {}

    @property
    def definition(self) -> DatasetDefinition:
        return self._definition

    @property
    def is_registered(self) -> bool:
        return self._record is not None

    def register(
        self,
        name: str,
        description: str | None = None,
        tags: Mapping[str, str] | None = None,
        create_new_version: bool = False,
    ) -> "AnyDataset":
        """Register this definition in the workspace.

        Args:
            name: Dataset name.
            description: Optional description.
            tags: Optional user tags.
            create_new_version: Add a version when the name already exists.

        Returns:
            Registered dataset handle.
        """
        return self._client._register_definition(
            self._definition, name, description, tags, create_new_version
        )

    def as_named_input(self, name: str) -> DatasetConsumptionConfig:
        """Reference this dataset as a named run input in direct mode."""
        return DatasetConsumptionConfig(name=name, dataset=self)

    def default_alias(self) -> str:
        """Alias used when the dataset is passed to a run without a name."""
        if self.name is None:
            return DEFAULT_INPUT_ALIAS
        alias = re.sub(r"\W", "_", self.name)
        return alias if not alias[0].isdigit() else f"_{alias}"

    def _resolve_files(self) -> tuple[BackendResolver, list]:
        resolver = self._client.backend_resolver()
        return resolver, resolve_files(self._definition, resolver)

    def __repr__(self) -> str:
        label = f"{self.name}:{self.version}" if self.is_registered else "unregistered"
        return f"{type(self).__name__}({label})"


class TabularDataset(_DatasetHandle):
    """Dataset of rows and columns read from delimited, JSON lines, or parquet files."""

    def to_pandas_dataframe(self) -> pd.DataFrame:
        """Load the dataset into a pandas dataframe.

        Raises:
            DepotDatasetError: If files are missing or cannot be parsed.
        """
        return load_dataframe(self._definition, self._client.backend_resolver())

    def take(self, count: int) -> "TabularDataset":
        """Return an unregistered dataset with the first ``count`` rows."""
        return self._with_step(Transformation("take", count=_non_negative(count, "take")))

    def skip(self, count: int) -> "TabularDataset":
        """Return an unregistered dataset without the first ``count`` rows."""
        return self._with_step(Transformation("skip", count=_non_negative(count, "skip")))

    def keep_columns(self, columns: str | Sequence[str]) -> "TabularDataset":
        return self._with_step(Transformation("keep_columns", columns=_column_tuple(columns)))

    def drop_columns(self, columns: str | Sequence[str]) -> "TabularDataset":
        return self._with_step(Transformation("drop_columns", columns=_column_tuple(columns)))

    def _with_step(self, step: Transformation) -> "TabularDataset":
        definition = replace(
            self._definition,
            transformations=self._definition.transformations + (step,),
        )
        return TabularDataset(self._client, definition)


class FileDataset(_DatasetHandle):
    """Dataset of opaque files."""

    def to_path(self) -> list[str]:
        """Return dataset file paths relative to their datastore, with a leading slash."""
        _, files = self._resolve_files()
        return [resolved_file.display_path for resolved_file in files]

    def download(self, target_path: str | None = None, overwrite: bool = False) -> list[str]:
        """Copy dataset files to local disk.

        Args:
            target_path: Destination directory; a new temporary directory when omitted.
            overwrite: Replace existing files.

        Returns:
            Local file paths.

        Raises:
            DepotDatasetError: If a file exists and ``overwrite`` is False.
        """
        resolver, files = self._resolve_files()
        if target_path:
            target_dir = Path(target_path)
        else:
            target_dir = Path(tempfile.mkdtemp(prefix="depot-download-"))
        return [str(path) for path in download_files(files, resolver, target_dir, overwrite)]

    def mount(self, mount_point: str | None = None) -> MountContext:
        """Prepare a symlink mount; call start() or use it as a context manager."""
        resolver, files = self._resolve_files()
        return MountContext(files, resolver, Path(mount_point) if mount_point else None)

    def as_download(self, path_on_compute: str | None = None) -> DatasetConsumptionConfig:
        return self.as_named_input(self.default_alias()).as_download(path_on_compute)

    def as_mount(self, path_on_compute: str | None = None) -> DatasetConsumptionConfig:
        return self.as_named_input(self.default_alias()).as_mount(path_on_compute)


AnyDataset = Union[TabularDataset, FileDataset]
PathArgument = Union[str, DataPath, tuple, Sequence[object]]


class TabularDatasetFactory:
    """Creates unregistered tabular datasets from datastore paths."""

    def __init__(self, client: DepotClient) -> None:
        self._client = client

    def from_delimited_files(
        self,
        paths: PathArgument,
        separator: str = DEFAULT_CSV_SEPARATOR,
        header: bool = True,
        include_path: bool = False,
        validate: bool = True,
    ) -> TabularDataset:
        """Define a tabular dataset over CSV-like files.

        Args:
            paths: URI, DataPath, ``(datastore, pattern)`` tuple, or a list of them.
            separator: Column separator.
            header: Whether the first row holds column names.
            include_path: Add a ``Path`` column with each row's source file.
            validate: Check that every path matches files now.

        Returns:
            Unregistered tabular dataset.
        """
        if not separator:
            raise DepotDatasetError("Delimited datasets need a non-empty separator.")
        return self._create(
            "delimited",
            paths,
            validate,
            separator=separator,
            header=header,
            include_path=include_path,
        )

    def from_json_lines_files(
        self,
        paths: PathArgument,
        include_path: bool = False,
        validate: bool = True,
    ) -> TabularDataset:
        return self._create("json_lines", paths, validate, include_path=include_path)

    def from_parquet_files(
        self,
        paths: PathArgument,
        include_path: bool = False,
        validate: bool = True,
    ) -> TabularDataset:
        return self._create("parquet", paths, validate, include_path=include_path)

    def _create(
        self,
        source_format: SourceFormat,
        paths: PathArgument,
        validate: bool,
        separator: str = DEFAULT_CSV_SEPARATOR,
        header: bool = True,
        include_path: bool = False,
    ) -> TabularDataset:
        definition = DatasetDefinition(
            kind="tabular",
            source_format=source_format,
            paths=coerce_data_paths(paths),
            separator=separator,
            header=header,
            include_path=include_path,
        )
        if validate:
            validate_definition_paths(definition, self._client.backend_resolver())
        return TabularDataset(self._client, definition)


class FileDatasetFactory:
    """Creates unregistered file datasets from datastore paths."""

    def __init__(self, client: DepotClient) -> None:
        self._client = client

    def from_files(self, paths: PathArgument, validate: bool = True) -> FileDataset:
        """Define a file dataset over files, directories, or glob patterns."""
        definition = DatasetDefinition(
            kind="file",
            source_format="files",
            paths=coerce_data_paths(paths),
        )
        if validate:
            validate_definition_paths(definition, self._client.backend_resolver())
        return FileDataset(self._client, definition)


def _non_negative(count: int, operation: str) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise DepotDatasetError(f"{operation}() expects a non-negative integer, got {count!r}.")
    return count


def _column_tuple(columns: str | Sequence[str]) -> tuple[str, ...]:
    selected = (columns,) if isinstance(columns, str) else tuple(str(column) for column in columns)
    if not selected:
        raise DepotDatasetError("Column selection must name at least one column.")
    return selected
