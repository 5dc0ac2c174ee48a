"""Unit tests for local and S3 storage backends."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.errors import DepotDatastoreError
from core.types import DatastoreRecord
from fake_s3 import FakeS3Client
from fixture_paths import fixture_path
from store.storage_backends import (
    LocalBackend,
    S3Backend,
    build_backend,
    glob_to_regex,
    normalize_pattern,
)


def _lake_client() -> FakeS3Client:
    return FakeS3Client(
        {
            "data/2018/": b"",
            "data/2018/11.csv": b"a\n1\n",
            "data/2018/12.csv": b"a\n2\n",
            "data/2018/extra/13.csv": b"a\n3\n",
            "data/2019/01.csv": b"a\n4\n",
        }
    )


def test_local_backend_lists_directory_recursively() -> None:
    """Directory patterns should list every nested file in sorted order."""
    backend = LocalBackend(fixture_path("datastore"))

    assert backend.list_files("images") == [
        "images/cat.txt",
        "images/dog.txt",
        "images/nested/bird.txt",
    ]


def test_local_backend_matches_globs_and_single_files() -> None:
    """Glob patterns should match files only and exact paths should match one file."""
    backend = LocalBackend(fixture_path("datastore"))

    assert backend.list_files("weather/*/1*.csv") == [
        "weather/2018/11.csv",
        "weather/2018/12.csv",
    ] and backend.list_files("./weather/2019/01.csv") == ["weather/2019/01.csv"]


def test_local_backend_returns_empty_for_missing_paths() -> None:
    """Unmatched patterns should produce no files."""
    backend = LocalBackend(fixture_path("datastore"))

    assert backend.list_files("weather/2030") == []


def test_local_backend_fetch_copies_file(tmp_path) -> None:
    """fetch() should copy the file and create parent directories."""
    backend = LocalBackend(fixture_path("datastore"))
    destination = tmp_path / "copy" / "cat.txt"

    backend.fetch("images/cat.txt", destination)

    assert destination.read_text() == "cat\n"


@pytest.mark.parametrize("pattern", ["", "/etc/passwd", "../outside", "a/../../b", "."])
def test_normalize_pattern_rejects_escaping_paths(pattern: str) -> None:
    """Patterns must stay relative to the datastore root."""
    with pytest.raises(DepotDatastoreError):
        normalize_pattern(pattern)


def test_glob_to_regex_keeps_single_star_within_segment() -> None:
    """A single star should not cross directory separators while ** should."""
    single = glob_to_regex("2018/*.csv")
    double = glob_to_regex("**/*.csv")

    assert (
        single.fullmatch("2018/11.csv")
        and not single.fullmatch("2018/extra/13.csv")
        and double.fullmatch("2018/extra/13.csv")
        and double.fullmatch("top.csv")
    )


def test_s3_backend_lists_glob_matches_relative_to_prefix() -> None:
    """S3 listing should strip the datastore prefix and skip directory markers."""
    client = _lake_client()
    backend = S3Backend("s3://lake/data", client)

    matches = backend.list_files("2018/*.csv")

    assert matches == ["2018/11.csv", "2018/12.csv"] and client.paginator.prefixes == [
        "data/2018"
    ]


def test_s3_backend_lists_directory_prefix() -> None:
    """Non-glob patterns should match the object or everything below it."""
    backend = S3Backend("s3://lake/data", _lake_client())

    assert backend.list_files("2018") == ["2018/11.csv", "2018/12.csv", "2018/extra/13.csv"]


def test_s3_backend_fetch_downloads_object(tmp_path) -> None:
    """fetch() should download the object key under the prefix."""
    backend = S3Backend("s3://lake/data", _lake_client())
    destination = tmp_path / "11.csv"

    backend.fetch("2018/11.csv", destination)

    assert destination.read_bytes() == b"a\n1\n" and backend.local_path("2018/11.csv") is None


def test_build_backend_rejects_registration_only_kinds() -> None:
    """Datastore kinds without a backend should raise on access."""
    record = DatastoreRecord(
        name="warehouse",
        kind="sql",
        location="server/database",
        created_at=datetime.now(timezone.utc),
    )

    with pytest.raises(DepotDatastoreError):
        build_backend(record)


@pytest.mark.parametrize("pattern", ["weather/**", "**/*.csv", "images/**/*.txt", "*/2018/*"])
def test_local_and_s3_backends_agree_on_globs(pattern: str) -> None:
    """Both backends should select the same files for recursive patterns."""
    root = fixture_path("datastore")
    objects = {
        f"root/{path.relative_to(root).as_posix()}": path.read_bytes()
        for path in root.rglob("*")
        if path.is_file()
    }
    local_matches = LocalBackend(root).list_files(pattern)

    assert local_matches and local_matches == S3Backend(
        "s3://lake/root", FakeS3Client(objects)
    ).list_files(pattern)


def test_local_backend_trailing_double_star_lists_nested_files() -> None:
    """A pattern ending in ** should select every file below the directory."""
    backend = LocalBackend(fixture_path("datastore"))

    assert backend.list_files("weather/**") == [
        "weather/2018/11.csv",
        "weather/2018/12.csv",
        "weather/2019/01.csv",
    ]


def test_local_backend_fetch_wraps_directory_errors(tmp_path) -> None:
    """A destination below an existing file should raise a datastore error."""
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    backend = LocalBackend(fixture_path("datastore"))

    with pytest.raises(DepotDatastoreError, match="Failed to copy"):
        backend.fetch("images/cat.txt", blocker / "images" / "cat.txt")
