"""In-memory S3 client double for storage backend tests."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator


class FakePaginator:
    """Pages through sorted object keys two at a time."""

    def __init__(self, keys: list[str]) -> None:
        self._keys = keys
        self.prefixes: list[str] = []

    def paginate(self, Bucket: str, Prefix: str) -> Iterator[dict[str, object]]:
        self.prefixes.append(Prefix)
        matching = [{"Key": key} for key in self._keys if key.startswith(Prefix)]
        for start in range(0, max(len(matching), 1), 2):
            yield {"Contents": matching[start : start + 2]}


class FakeS3Client:
    """Implements the boto3 S3 client calls used by S3Backend."""

    def __init__(self, objects: dict[str, bytes]) -> None:
        self.objects = objects
        self.paginator = FakePaginator(sorted(objects))

    def get_paginator(self, operation_name: str) -> FakePaginator:
        if operation_name != "list_objects_v2":
            raise ValueError(f"Unexpected paginator {operation_name}")
        return self.paginator

    def download_file(self, bucket: str, key: str, filename: str) -> None:
        Path(filename).write_bytes(self.objects[key])
