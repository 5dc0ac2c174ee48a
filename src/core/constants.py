"""Core constants used across Depot modules.

This module centralizes workspace layout names and shared defaults.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_WORKSPACE_ROOT = Path(".depot")
DEFAULT_WORKSPACE_NAME = "default"
DEFAULT_LOG_LEVEL = "INFO"
SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DATASTORES_FILE_NAME = "datastores.json"
DATASETS_DIR_NAME = "datasets"
DATASET_INDEX_FILE_NAME = "index.json"
CATALOG_FILE_NAME = "catalog.json"
RUNS_DIR_NAME = "runs"
RUN_INDEX_FILE_NAME = "index.json"
RUN_STATE_FILE_NAME = "run.json"
RUN_METRICS_FILE_NAME = "metrics.jsonl"
RUN_DRIVER_LOG_FILE_NAME = "driver.log"
RUN_INPUTS_DIR_NAME = "inputs"
RUN_MOUNTS_DIR_NAME = "mounts"
RUN_RESOLVED_INPUTS_FILE_NAME = "resolved_inputs.json"
DATASTORE_URI_SCHEME = "depot://"
LATEST_VERSION = "latest"
DEFAULT_INPUT_ALIAS = "input"
PATH_COLUMN_NAME = "Path"
DEFAULT_CSV_SEPARATOR = ","
DEFAULT_HEAD_ROWS = 5
MASKED_CREDENTIAL = "***"
NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"
ENV_RUN_ID = "DEPOT_RUN_ID"
ENV_RUN_DIR = "DEPOT_RUN_DIR"
ENV_WORKSPACE_ROOT = "DEPOT_WORKSPACE_ROOT"
ENV_WORKSPACE_NAME = "DEPOT_WORKSPACE_NAME"
ENV_LOG_LEVEL = "DEPOT_LOG_LEVEL"
