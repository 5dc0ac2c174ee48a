"""Dataset materialization.

This module resolves dataset definitions into concrete datastore files
and turns them into local copies, symlink mounts, or pandas dataframes.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Callable

import pandas as pd

from core.constants import PATH_COLUMN_NAME
from core.errors import DepotDatasetError, DepotDatastoreError
from core.logging_config import get_logger
from core.types import (
    MATERIALIZABLE_DATASTORE_KINDS,
    DatasetDefinition,
    DatastoreRecord,
    Transformation,
)
from store.datastore_registry import DatastoreRegistry
from store.storage_backends import StorageBackend, build_backend

_LOGGER = get_logger(__name__)

BackendFactory = Callable[[DatastoreRecord], StorageBackend]


@dataclass(frozen=True)
class ResolvedFile:
    """One concrete file selected by a dataset definition."""

    datastore_name: str
    relative_path: str

    @property
    def display_path(self) -> str:
        return "/" + self.relative_path


class BackendResolver:
    """Caches one storage backend per datastore name."""

    def __init__(
        self,
        datastores: DatastoreRegistry,
        backend_factory: BackendFactory | None = None,
    ) -> None:
        self._datastores = datastores
        self._backend_factory = backend_factory or build_backend
        self._backends: dict[str, StorageBackend] = {}

    def record(self, datastore_name: str) -> DatastoreRecord:
        return self._datastores.get(datastore_name)

    def backend(self, datastore_name: str) -> StorageBackend:
        if datastore_name not in self._backends:
            record = self._datastores.get(datastore_name)
            self._backends[datastore_name] = self._backend_factory(record)
        return self._backends[datastore_name]


def validate_definition_paths(definition: DatasetDefinition, resolver: BackendResolver) -> None:
    """Check that each path's datastore exists and matches at least one file.

    Paths on registration-only datastore kinds are checked for datastore
    existence only.

    Raises:
        DepotDatasetError: If a path matches nothing or its datastore is unknown.
    """
    for data_path in definition.paths:
        try:
            record = resolver.record(data_path.datastore_name)
        except DepotDatastoreError as error:
            raise DepotDatasetError(
                f"Dataset path {data_path.to_uri()} references an unknown datastore: {error}"
            ) from error
        if record.kind not in MATERIALIZABLE_DATASTORE_KINDS:
            continue
        if not resolver.backend(data_path.datastore_name).list_files(data_path.pattern):
            raise DepotDatasetError(
                f"Dataset path {data_path.to_uri()} did not match any files. "
                "Check the pattern or pass validate=False."
            )


def resolve_files(definition: DatasetDefinition, resolver: BackendResolver) -> list[ResolvedFile]:
    """Expand definition paths into files.

    Files keep path declaration order; within one path they are sorted.
    A file matched by several paths appears once.

    Raises:
        DepotDatasetError: If any path matches no files.
        DepotDatastoreError: If a datastore cannot be read locally.
    """
    resolved: list[ResolvedFile] = []
    seen: set[tuple[str, str]] = set()
    for data_path in definition.paths:
        matches = resolver.backend(data_path.datastore_name).list_files(data_path.pattern)
        if not matches:
            raise DepotDatasetError(
                f"Dataset path {data_path.to_uri()} did not match any files."
            )
        for relative_path in matches:
            key = (data_path.datastore_name, relative_path)
            if key in seen:
                continue
            seen.add(key)
            resolved.append(ResolvedFile(data_path.datastore_name, relative_path))
    return resolved


def download_files(
    files: list[ResolvedFile],
    resolver: BackendResolver,
    target_dir: Path,
    overwrite: bool = False,
) -> list[Path]:
    """Copy resolved files under a target directory.

    Args:
        files: Files to copy.
        resolver: Backend resolver.
        target_dir: Destination root; files land at ``target_dir/<relative path>``.
        overwrite: Replace files that already exist.

    Returns:
        Local paths of copied files.

    Raises:
        DepotDatasetError: If a destination exists and overwrite is False.
    """
    target_root = target_dir.expanduser().resolve()
    local_paths: list[Path] = []
    for resolved_file in files:
        destination = target_root / resolved_file.relative_path
        if destination.exists() and not overwrite:
            raise DepotDatasetError(
                f"Download target {destination} already exists. Pass overwrite=True to replace it."
            )
        resolver.backend(resolved_file.datastore_name).fetch(
            resolved_file.relative_path, destination
        )
        local_paths.append(destination)
    _LOGGER.info("dataset_downloaded", target_dir=str(target_root), file_count=len(local_paths))
    return local_paths


def load_dataframe(definition: DatasetDefinition, resolver: BackendResolver) -> pd.DataFrame:
    """Read a tabular definition into one pandas dataframe.

    Raises:
        DepotDatasetError: If the definition is not tabular or files cannot be parsed.
    """
    if definition.kind != "tabular":
        raise DepotDatasetError("Only tabular datasets can be loaded into a dataframe.")
    files = resolve_files(definition, resolver)
    frames: list[pd.DataFrame] = []
    with tempfile.TemporaryDirectory(prefix="depot-stage-") as staging_dir:
        for index, resolved_file in enumerate(files):
            backend = resolver.backend(resolved_file.datastore_name)
            source = backend.local_path(resolved_file.relative_path)
            if source is None:
                source = Path(staging_dir) / str(index) / Path(resolved_file.relative_path).name
                backend.fetch(resolved_file.relative_path, source)
            frame = _read_frame(definition, source)
            if definition.include_path:
                frame[PATH_COLUMN_NAME] = resolved_file.display_path
            frames.append(frame)
    dataframe = pd.concat(frames, ignore_index=True)
    return apply_transformations(dataframe, definition.transformations)


def apply_transformations(
    dataframe: pd.DataFrame,
    transformations: tuple[Transformation, ...],
) -> pd.DataFrame:
    """Apply tabular transformation steps in order."""
    for step in transformations:
        if step.operation == "take":
            dataframe = dataframe.head(step.count or 0).reset_index(drop=True)
        elif step.operation == "skip":
            dataframe = dataframe.iloc[step.count or 0 :].reset_index(drop=True)
        elif step.operation == "keep_columns":
            _require_columns(dataframe, step.columns)
            dataframe = dataframe[list(step.columns)]
        elif step.operation == "drop_columns":
            _require_columns(dataframe, step.columns)
            dataframe = dataframe.drop(columns=list(step.columns))
    return dataframe


def _require_columns(dataframe: pd.DataFrame, columns: tuple[str, ...]) -> None:
    missing = [column for column in columns if column not in dataframe.columns]
    if missing:
        raise DepotDatasetError(
            f"Unknown dataset columns {missing}. Available columns: {list(dataframe.columns)}."
        )


def _read_frame(definition: DatasetDefinition, source: Path) -> pd.DataFrame:
    try:
        if definition.source_format == "delimited":
            frame = pd.read_csv(
                source,
                sep=definition.separator,
                header=0 if definition.header else None,
            )
            if not definition.header:
                frame.columns = [f"Column{index + 1}" for index in range(len(frame.columns))]
            return frame
        if definition.source_format == "json_lines":
            return pd.read_json(source, lines=True)
        if definition.source_format == "parquet":
            return pd.read_parquet(source)
    except (OSError, ValueError, ImportError) as error:
        raise DepotDatasetError(
            f"Failed to read {definition.source_format} file {source}: {error}."
        ) from error
    raise DepotDatasetError(
        f"Source format '{definition.source_format}' cannot be read as a table."
    )


class MountContext:
    """Symlink mount of a file dataset.

    Files appear under the mount point without being copied. Only local
    datastores can be mounted.
    """

    def __init__(
        self,
        files: list[ResolvedFile],
        resolver: BackendResolver,
        mount_point: Path | None = None,
    ) -> None:
        self._files = files
        self._resolver = resolver
        self._requested_mount_point = mount_point
        self._mount_point: Path | None = None
        self._owns_mount_point = False
        self._created_links: list[Path] = []
        self._created_dirs: list[Path] = []

    @property
    def mount_point(self) -> Path:
        if self._mount_point is None:
            raise DepotDatasetError("Mount has not been started. Call start() first.")
        return self._mount_point

    @property
    def is_mounted(self) -> bool:
        return self._mount_point is not None

    def start(self) -> Path:
        """Create symlinks for every dataset file.

        Returns:
            The mount point directory.

        Raises:
            DepotDatasetError: If a file lives on a non-local datastore or a link collides.
        """
        if self._mount_point is not None:
            return self._mount_point
        sources = [self._local_source(resolved_file) for resolved_file in self._files]
        mount_point = self._prepare_mount_point()
        try:
            for resolved_file, source in zip(self._files, sources):
                link_path = mount_point / resolved_file.relative_path
                if link_path.exists() or link_path.is_symlink():
                    raise DepotDatasetError(
                        f"Cannot mount {resolved_file.display_path}: {link_path} already exists."
                    )
                self._make_parents(link_path.parent, mount_point)
                link_path.symlink_to(source)
                self._created_links.append(link_path)
        except (DepotDatasetError, OSError) as error:
            self._mount_point = mount_point
            self.stop()
            if isinstance(error, DepotDatasetError):
                raise
            raise DepotDatasetError(
                f"Failed to mount dataset at {mount_point}: {error}."
            ) from error
        self._mount_point = mount_point
        _LOGGER.info("dataset_mounted", mount_point=str(mount_point), file_count=len(self._files))
        return mount_point

    def stop(self) -> None:
        """Remove everything created by start()."""
        if self._mount_point is None:
            return
        for link_path in reversed(self._created_links):
            link_path.unlink(missing_ok=True)
        for directory in reversed(self._created_dirs):
            if directory.exists() and not any(directory.iterdir()):
                directory.rmdir()
        if self._owns_mount_point:
            shutil.rmtree(self._mount_point, ignore_errors=True)
        _LOGGER.info("dataset_unmounted", mount_point=str(self._mount_point))
        self._created_links = []
        self._created_dirs = []
        self._mount_point = None

    def __enter__(self) -> "MountContext":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()

    def _local_source(self, resolved_file: ResolvedFile) -> Path:
        backend = self._resolver.backend(resolved_file.datastore_name)
        source = backend.local_path(resolved_file.relative_path)
        if source is None:
            raise DepotDatasetError(
                f"Cannot mount {resolved_file.display_path} from datastore "
                f"'{resolved_file.datastore_name}': only local datastores support mounting. "
                "Use download instead."
            )
        return source

    def _prepare_mount_point(self) -> Path:
        if self._requested_mount_point is None:
            self._owns_mount_point = True
            return Path(tempfile.mkdtemp(prefix="depot-mount-"))
        mount_point = self._requested_mount_point.expanduser().resolve()
        if not mount_point.exists():
            self._make_parents(mount_point, None)
        return mount_point

    def _make_parents(self, directory: Path, stop_at: Path | None) -> None:
        missing: list[Path] = []
        current = directory
        while not current.exists() and current != stop_at:
            missing.append(current)
            current = current.parent
        for path in reversed(missing):
            path.mkdir()
            self._created_dirs.append(path)
