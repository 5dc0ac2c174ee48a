"""Run context available inside a submitted script.

Scripts call ``RunContext.get_context()`` to reach their named dataset
inputs and to log metrics. Outside a run the context is offline: it has no
inputs and metrics only go to the logger.
"""

from __future__ import annotations

import os
from typing import Any

from core.config import DepotConfig
from core.constants import ENV_RUN_ID, ENV_WORKSPACE_ROOT
from core.errors import DepotRunError
from core.logging_config import get_logger
from runs.experiment import load_resolved_inputs
from runs.run_registry import RunRegistry
from store.dataset_consumption import input_payload_from_dict
from store.dataset_sdk import DepotClient

_LOGGER = get_logger(__name__)


class RunContext:
    """Live or offline context of the current script."""

    def __init__(self, client: DepotClient | None = None, run_id: str | None = None) -> None:
        self._client = client
        self._run_id = run_id
        self._registry = RunRegistry(client.config.workspace_root) if client and run_id else None
        self._input_datasets: dict[str, Any] | None = None

    @classmethod
    def get_context(cls) -> "RunContext":
        """Return the context for the current process.

        Raises:
            DepotRunError: If run environment variables are inconsistent.
        """
        run_id = os.getenv(ENV_RUN_ID)
        if not run_id:
            return cls()
        if not os.getenv(ENV_WORKSPACE_ROOT):
            raise DepotRunError(
                f"{ENV_RUN_ID} is set but {ENV_WORKSPACE_ROOT} is missing. "
                "Run scripts through Experiment.submit()."
            )
        return cls(DepotClient(DepotConfig.from_env()), run_id)

    @property
    def is_offline(self) -> bool:
        return self._registry is None

    @property
    def id(self) -> str | None:
        return self._run_id

    @property
    def experiment_name(self) -> str | None:
        if self._registry is None or self._run_id is None:
            return None
        return self._registry.load_run(self._run_id).experiment_name

    @property
    def workspace(self) -> DepotClient:
        if self._client is None:
            raise DepotRunError(
                "Offline run context has no workspace. Create a DepotClient directly."
            )
        return self._client

    @property
    def input_datasets(self) -> dict[str, Any]:
        """Map input alias to a dataset handle (direct) or local path (download/mount)."""
        if self._registry is None or self._run_id is None or self._client is None:
            return {}
        if self._input_datasets is None:
            record = self._registry.load_run(self._run_id)
            resolved = load_resolved_inputs(self._registry.run_dir(self._run_id))
            inputs: dict[str, Any] = {}
            for payload in record.inputs:
                parsed = input_payload_from_dict(payload)
                if parsed.mode == "direct":
                    inputs[parsed.name] = self._client.dataset_from_input(parsed)
                else:
                    inputs[parsed.name] = resolved[parsed.name]
            self._input_datasets = inputs
        return self._input_datasets

    def log(self, name: str, value: object) -> None:
        """Record a metric for this run."""
        if self._registry is None or self._run_id is None:
            _LOGGER.info("offline_metric", name=name, value=value)
            return
        self._registry.append_metric(self._run_id, name, value)

    def get_metrics(self) -> dict[str, object]:
        if self._registry is None or self._run_id is None:
            return {}
        return self._registry.load_metrics(self._run_id)
