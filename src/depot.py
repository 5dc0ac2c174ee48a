"""Public SDK surface for Depot.

This module provides a stable import path for scripts and notebooks.
It re-exports the client, dataset handles, and run types.
"""

from __future__ import annotations

from core.config import DepotConfig
from core.datastore_uri import DataPath
from runs.experiment import Experiment, Run, ScriptRunConfig
from runs.run_context import RunContext
from store.dataset_consumption import DatasetConsumptionConfig
from store.dataset_sdk import Datastore, DepotClient, FileDataset, TabularDataset

__all__ = [
    "DataPath",
    "DatasetConsumptionConfig",
    "Datastore",
    "DepotClient",
    "DepotConfig",
    "Experiment",
    "FileDataset",
    "Run",
    "RunContext",
    "ScriptRunConfig",
    "TabularDataset",
]
