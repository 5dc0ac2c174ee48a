"""Datastore path URIs.

A data path names a datastore and a file pattern inside it. Its text form
is ``depot://datastores/<name>/paths/<pattern>``.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.constants import DATASTORE_URI_SCHEME
from core.errors import DepotDatasetError

_DATASTORES_SEGMENT = "datastores/"
_PATHS_SEGMENT = "/paths/"


@dataclass(frozen=True)
class DataPath:
    """One file pattern within a registered datastore."""

    datastore_name: str
    pattern: str

    def to_uri(self) -> str:
        """Render the path as a depot:// URI."""
        return (
            f"{DATASTORE_URI_SCHEME}{_DATASTORES_SEGMENT}{self.datastore_name}"
            f"{_PATHS_SEGMENT}{self.pattern}"
        )


def parse_datastore_uri(uri: str) -> DataPath:
    """Parse a depot:// datastore path URI.

    Args:
        uri: URI like ``depot://datastores/weather/paths/2018/*.csv``.

    Returns:
        Parsed data path.

    Raises:
        DepotDatasetError: If the URI does not follow the datastore layout.
    """
    if not uri.startswith(DATASTORE_URI_SCHEME + _DATASTORES_SEGMENT):
        _raise_uri_error(uri)
    remainder = uri.removeprefix(DATASTORE_URI_SCHEME + _DATASTORES_SEGMENT)
    datastore_name, separator, pattern = remainder.partition(_PATHS_SEGMENT)
    if not separator or not datastore_name or "/" in datastore_name:
        _raise_uri_error(uri)
    pattern = pattern.strip("/")
    if not pattern:
        _raise_uri_error(uri)
    return DataPath(datastore_name=datastore_name, pattern=pattern)


def _raise_uri_error(uri: str) -> None:
    raise DepotDatasetError(
        f"Invalid datastore URI '{uri}': expected "
        f"{DATASTORE_URI_SCHEME}datastores/<name>/paths/<pattern>."
    )
