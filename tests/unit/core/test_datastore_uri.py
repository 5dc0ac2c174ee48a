"""Unit tests for datastore path URIs."""

from __future__ import annotations

import pytest

from core.datastore_uri import DataPath, parse_datastore_uri
from core.errors import DepotDatasetError


def test_parse_datastore_uri_splits_name_and_pattern() -> None:
    """Parsing should keep nested glob patterns intact."""
    data_path = parse_datastore_uri("depot://datastores/weather/paths/2018/*.csv")

    assert data_path == DataPath(datastore_name="weather", pattern="2018/*.csv")


def test_data_path_renders_uri() -> None:
    """Data paths should render the canonical URI form."""
    data_path = DataPath(datastore_name="images", pattern="train")

    assert data_path.to_uri() == "depot://datastores/images/paths/train"


@pytest.mark.parametrize(
    "uri",
    [
        "s3://bucket/key",
        "depot://datastores/weather",
        "depot://datastores//paths/a.csv",
        "depot://datastores/weather/paths/",
    ],
)
def test_parse_datastore_uri_rejects_malformed_values(uri: str) -> None:
    """Malformed URIs should raise dataset errors."""
    with pytest.raises(DepotDatasetError):
        parse_datastore_uri(uri)
