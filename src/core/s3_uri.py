"""S3 URI parsing helpers.

S3 datastores store their location as ``s3://bucket/prefix``.
This module keeps that validation in one place.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.errors import DepotDatastoreError


@dataclass(frozen=True)
class S3Location:
    """Parsed S3 location model."""

    bucket: str
    prefix: str


def parse_s3_uri(uri: str) -> S3Location:
    """Parse and validate an S3 datastore location.

    Args:
        uri: URI in format ``s3://bucket`` or ``s3://bucket/prefix``.

    Returns:
        Parsed bucket and prefix pair. Prefix has no surrounding slashes.

    Raises:
        DepotDatastoreError: If the URI is not an s3:// location.
    """
    if not uri.startswith("s3://"):
        _raise_uri_error(uri)
    stripped_uri = uri.removeprefix("s3://")
    bucket, _, prefix = stripped_uri.partition("/")
    if not bucket:
        _raise_uri_error(uri)
    return S3Location(bucket=bucket, prefix=prefix.strip("/"))


def _raise_uri_error(uri: str) -> None:
    raise DepotDatastoreError(
        f"Invalid S3 location '{uri}': expected s3://bucket[/prefix]. "
        "Provide at least a bucket name."
    )
