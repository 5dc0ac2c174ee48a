"""Runtime configuration model for Depot.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path

from core.constants import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_WORKSPACE_NAME,
    DEFAULT_WORKSPACE_ROOT,
    ENV_LOG_LEVEL,
    ENV_WORKSPACE_NAME,
    ENV_WORKSPACE_ROOT,
    SUPPORTED_LOG_LEVELS,
)
from core.errors import DepotConfigError


@dataclass(frozen=True)
class DepotConfig:
    """Validated workspace configuration.

    Attributes:
        workspace_root: Local directory holding registries and runs.
        workspace_name: Display name of the workspace.
        log_level: Standard logging level name.
    """

    workspace_root: Path
    workspace_name: str = DEFAULT_WORKSPACE_NAME
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "DepotConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            DepotConfigError: If environment values are invalid.
        """
        root_value = os.getenv(ENV_WORKSPACE_ROOT, str(DEFAULT_WORKSPACE_ROOT))
        workspace_name = os.getenv(ENV_WORKSPACE_NAME, DEFAULT_WORKSPACE_NAME)
        log_level = _parse_log_level(os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL))
        return cls(
            workspace_root=Path(root_value).expanduser().resolve(),
            workspace_name=workspace_name,
            log_level=log_level,
        )

    @classmethod
    def from_file(cls, config_path: str | Path) -> "DepotConfig":
        """Build config from a JSON workspace config file.

        Relative ``workspace_root`` values resolve against the file's
        directory. The log level still comes from the environment.

        Args:
            config_path: Path to a JSON file with ``workspace_root`` and
                optional ``workspace_name``.

        Returns:
            A validated config object.

        Raises:
            DepotConfigError: If the file is missing or malformed.
        """
        config_file = Path(config_path).expanduser().resolve()
        payload = _read_config_payload(config_file)
        root_value = payload.get("workspace_root")
        if not isinstance(root_value, str) or not root_value:
            raise DepotConfigError(
                f"Workspace config at {config_file} is missing 'workspace_root'. "
                "Add a workspace_root string pointing at the workspace directory."
            )
        workspace_root = Path(root_value).expanduser()
        if not workspace_root.is_absolute():
            workspace_root = config_file.parent / workspace_root
        workspace_name = payload.get("workspace_name", DEFAULT_WORKSPACE_NAME)
        if not isinstance(workspace_name, str) or not workspace_name:
            raise DepotConfigError(
                f"Invalid workspace_name in {config_file}: expected non-empty string."
            )
        return cls(
            workspace_root=workspace_root.resolve(),
            workspace_name=workspace_name,
            log_level=_parse_log_level(os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)),
        )


def _parse_log_level(raw_value: str) -> str:
    """Normalize and validate a log level name.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Upper-case log level name.

    Raises:
        DepotConfigError: If value is not a standard level name.
    """
    level = raw_value.strip().upper()
    if level not in SUPPORTED_LOG_LEVELS:
        raise DepotConfigError(
            f"Invalid {ENV_LOG_LEVEL} value '{raw_value}': "
            f"expected one of {', '.join(SUPPORTED_LOG_LEVELS)}."
        )
    return level


def _read_config_payload(config_file: Path) -> dict[str, object]:
    if not config_file.exists():
        raise DepotConfigError(
            f"Workspace config file not found at {config_file}. "
            "Create it or set DEPOT_WORKSPACE_ROOT instead."
        )
    try:
        payload = json.loads(config_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise DepotConfigError(
            f"Failed to parse workspace config at {config_file}: {error.msg}."
        ) from error
    except OSError as error:
        raise DepotConfigError(
            f"Failed to read workspace config at {config_file}: {error}."
        ) from error
    if not isinstance(payload, dict):
        raise DepotConfigError(
            f"Workspace config at {config_file} must be a JSON object."
        )
    return payload
