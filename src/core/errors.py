"""Depot exception hierarchy.

Each subsystem raises its own error type so callers can tell
registry problems apart from run and configuration failures.
"""

from __future__ import annotations


class DepotError(Exception):
    """Base exception for all Depot failures."""


class DepotConfigError(DepotError):
    """Raised for invalid workspace configuration."""


class DepotDatastoreError(DepotError):
    """Raised for datastore registration and storage access failures."""


class DepotDatasetError(DepotError):
    """Raised for dataset definition, versioning, and materialization failures."""


class DepotRunError(DepotError):
    """Raised for run submission and lifecycle failures."""


class DepotRunFileError(DepotError):
    """Raised for invalid YAML run files."""


class DepotDependencyError(DepotError):
    """Raised when an optional runtime dependency is missing."""
