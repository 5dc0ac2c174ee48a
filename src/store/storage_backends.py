"""Storage backends behind registered datastores.

Each backend lists files matching a datastore-relative pattern and copies
single files to local disk. Local directories and S3 prefixes are
supported; other datastore kinds are registration-only.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path, PurePosixPath
from typing import Any, Protocol

from core.errors import DepotDatastoreError, DepotDependencyError
from core.s3_uri import parse_s3_uri
from core.types import MATERIALIZABLE_DATASTORE_KINDS, DatastoreRecord

_GLOB_CHARS = ("*", "?", "[")


class StorageBackend(Protocol):
    """File access contract used by dataset materialization."""

    def list_files(self, pattern: str) -> list[str]: ...

    def fetch(self, relative_path: str, destination: Path) -> None: ...

    def local_path(self, relative_path: str) -> Path | None: ...


class LocalBackend:
    """Datastore backed by a local directory."""

    def __init__(self, root: Path) -> None:
        self._root = root.expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def list_files(self, pattern: str) -> list[str]:
        """List files under the root matching a relative pattern.

        Args:
            pattern: File path, directory path, or glob pattern.

        Returns:
            Sorted relative POSIX paths.
        """
        normalized = normalize_pattern(pattern)
        if not has_glob(normalized):
            target = self._root / normalized
            if target.is_file():
                return [normalized]
            if target.is_dir():
                return self._relative_files(target.rglob("*"))
            return []
        base = self._root / _static_prefix(normalized)
        if not base.is_dir():
            return []
        matcher = glob_to_regex(normalized)
        return [
            relative
            for relative in self._relative_files(base.rglob("*"))
            if matcher.fullmatch(relative)
        ]

    def fetch(self, relative_path: str, destination: Path) -> None:
        source = self._root / relative_path
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
        except OSError as error:
            raise DepotDatastoreError(
                f"Failed to copy {source} to {destination}: {error}."
            ) from error

    def local_path(self, relative_path: str) -> Path | None:
        return self._root / relative_path

    def _relative_files(self, candidates: Any) -> list[str]:
        return sorted(
            candidate.relative_to(self._root).as_posix()
            for candidate in candidates
            if candidate.is_file()
        )


class S3Backend:
    """Datastore backed by an S3 bucket prefix."""

    def __init__(self, location: str, s3_client: Any) -> None:
        parsed = parse_s3_uri(location)
        self._bucket = parsed.bucket
        self._prefix = parsed.prefix
        self._client = s3_client

    def list_files(self, pattern: str) -> list[str]:
        """List object keys under the prefix matching a relative pattern.

        Args:
            pattern: Object path, directory prefix, or glob pattern.

        Returns:
            Sorted relative POSIX paths.

        Raises:
            DepotDatastoreError: If listing objects fails.
        """
        normalized = normalize_pattern(pattern)
        static_prefix = _static_prefix(normalized)
        matcher = None if not has_glob(normalized) else glob_to_regex(normalized)
        matches: list[str] = []
        for relative_key in self._list_relative_keys(static_prefix):
            if matcher is not None:
                if matcher.fullmatch(relative_key):
                    matches.append(relative_key)
            elif relative_key == normalized or relative_key.startswith(normalized + "/"):
                matches.append(relative_key)
        return sorted(matches)

    def fetch(self, relative_path: str, destination: Path) -> None:
        object_key = self._object_key(relative_path)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            self._client.download_file(self._bucket, object_key, str(destination))
        except Exception as error:
            raise DepotDatastoreError(
                f"Failed to download s3://{self._bucket}/{object_key}: {error}. "
                "Check AWS credentials and retry."
            ) from error

    def local_path(self, relative_path: str) -> Path | None:
        return None

    def _list_relative_keys(self, static_prefix: str) -> list[str]:
        list_prefix = self._object_key(static_prefix)
        paginator = self._client.get_paginator("list_objects_v2")
        relative_keys: list[str] = []
        try:
            for page in paginator.paginate(Bucket=self._bucket, Prefix=list_prefix):
                for item in page.get("Contents", []):
                    key = str(item["Key"])
                    if key.endswith("/"):
                        continue
                    relative_keys.append(self._relative_key(key))
        except Exception as error:
            raise DepotDatastoreError(
                f"Failed to list s3://{self._bucket}/{list_prefix}: {error}. "
                "Check AWS credentials and bucket permissions."
            ) from error
        return relative_keys

    def _object_key(self, relative_path: str) -> str:
        if not self._prefix:
            return relative_path
        if not relative_path:
            return self._prefix + "/"
        return f"{self._prefix}/{relative_path}"

    def _relative_key(self, key: str) -> str:
        if not self._prefix:
            return key
        return key.removeprefix(self._prefix + "/")


def build_backend(record: DatastoreRecord, s3_client: Any | None = None) -> StorageBackend:
    """Create the storage backend for a datastore record.

    Args:
        record: Registered datastore.
        s3_client: Optional pre-built boto3 S3 client.

    Returns:
        Backend instance for file listing and fetching.

    Raises:
        DepotDatastoreError: If the datastore kind cannot be materialized.
    """
    if record.kind == "local":
        return LocalBackend(Path(record.location))
    if record.kind == "s3":
        client = s3_client if s3_client is not None else create_s3_client(record.credentials)
        return S3Backend(record.location, client)
    raise DepotDatastoreError(
        f"Datastore '{record.name}' of kind '{record.kind}' cannot be read locally. "
        f"Supported kinds for data access: {', '.join(MATERIALIZABLE_DATASTORE_KINDS)}."
    )


def create_s3_client(credentials: Any) -> Any:
    """Create boto3 S3 client from datastore credentials.

    Args:
        credentials: Mapping with optional ``profile`` and ``region`` keys.

    Returns:
        Boto3 S3 client.

    Raises:
        DepotDependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise DepotDependencyError(
            "S3 datastores require boto3, but it is not installed. "
            "Install with 'pip install boto3'."
        ) from error
    session_kwargs: dict[str, str] = {}
    if credentials.get("profile"):
        session_kwargs["profile_name"] = credentials["profile"]
    if credentials.get("region"):
        session_kwargs["region_name"] = credentials["region"]
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


def normalize_pattern(pattern: str) -> str:
    """Validate a datastore-relative pattern and strip redundant slashes.

    Raises:
        DepotDatastoreError: If the pattern is empty, absolute, or escapes the root.
    """
    stripped = pattern.strip()
    if not stripped or stripped.startswith("/"):
        raise DepotDatastoreError(
            f"Invalid datastore path '{pattern}': expected a non-empty relative path."
        )
    parts = [part for part in PurePosixPath(stripped).parts if part != "."]
    if ".." in parts or not parts:
        raise DepotDatastoreError(
            f"Invalid datastore path '{pattern}': paths may not leave the datastore root."
        )
    return "/".join(parts)


def has_glob(pattern: str) -> bool:
    return any(char in pattern for char in _GLOB_CHARS)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a path glob into a regex where ``*`` stops at ``/``."""
    regex_parts: list[str] = []
    index = 0
    while index < len(pattern):
        if pattern.startswith("**/", index):
            regex_parts.append("(?:.*/)?")
            index += 3
        elif pattern.startswith("**", index):
            regex_parts.append(".*")
            index += 2
        elif pattern[index] == "*":
            regex_parts.append("[^/]*")
            index += 1
        elif pattern[index] == "?":
            regex_parts.append("[^/]")
            index += 1
        elif pattern[index] == "[":
            closing = pattern.find("]", index + 1)
            if closing == -1:
                regex_parts.append(re.escape("["))
                index += 1
            else:
                body = pattern[index + 1 : closing].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                regex_parts.append(f"[{body}]")
                index = closing + 1
        else:
            regex_parts.append(re.escape(pattern[index]))
            index += 1
    return re.compile("".join(regex_parts))


def _static_prefix(pattern: str) -> str:
    static_parts: list[str] = []
    for part in pattern.split("/"):
        if has_glob(part):
            break
        static_parts.append(part)
    if len(static_parts) == len(pattern.split("/")):
        return pattern
    return "/".join(static_parts)
