"""
Configuration loader for Switchboard.

Loads the deployment YAML, resolves API keys from the environment,
validates everything against the Pydantic schema, and caches the result
for the lifetime of the process.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from switchboard.config.schema import SwitchboardConfig
from switchboard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "switchboard.yaml"

# Module-level cache: resolved path -> SwitchboardConfig
_loaded_configs: dict[str, SwitchboardConfig] = {}


def default_config_path() -> Path:
    """Config path from SWITCHBOARD_CONFIG, falling back to ./switchboard.yaml."""
    return Path(os.environ.get("SWITCHBOARD_CONFIG", DEFAULT_CONFIG_PATH))


def _resolve_api_keys(raw: dict[str, Any]) -> None:
    """Fill each backend's api_key from its api_key_env when not given inline."""
    backends = raw.get("backends") or {}
    if not isinstance(backends, dict):
        return
    for settings in backends.values():
        if not isinstance(settings, dict):
            continue
        env_name = settings.get("api_key_env")
        if env_name and not settings.get("api_key"):
            settings["api_key"] = os.environ.get(env_name, "")


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        lines.append(f"  {location}: {item['msg']}")
    return "\n".join(lines)


def parse_config(
    raw: dict[str, Any],
    *,
    source: Optional[str] = None,
) -> SwitchboardConfig:
    """
    Validate an already-parsed mapping into a SwitchboardConfig.

    Raises:
        ConfigurationError: If any backend or orchestration setting is invalid.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(
            "Config root must be a mapping", config_path=source
        )

    _resolve_api_keys(raw)

    try:
        return SwitchboardConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration{f' in {source}' if source else ''}:\n"
            f"{_format_validation_error(e)}",
            config_path=source,
            details={"errors": e.errors(include_url=False)},
        ) from e


def load_config(config_path: Optional[str | Path] = None) -> SwitchboardConfig:
    """
    Load and validate the Switchboard configuration.

    Args:
        config_path: Optional explicit path to the YAML file. Defaults to
                     $SWITCHBOARD_CONFIG or ./switchboard.yaml.

    Returns:
        Validated SwitchboardConfig instance.

    Raises:
        ConfigurationError: If the file is missing, empty, or invalid.
    """
    path = Path(config_path) if config_path else default_config_path()
    cache_key = str(path.resolve())

    if cache_key in _loaded_configs:
        return _loaded_configs[cache_key]

    if not path.exists():
        raise ConfigurationError(
            f"Config not found: {path}\n"
            f"Copy switchboard.example.yaml to {path} and fill in your backends.",
            config_path=str(path),
        )

    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Config is not valid YAML: {path}\n{e}", config_path=str(path)
            ) from e

    if raw is None:
        raise ConfigurationError(f"Config file is empty: {path}", config_path=str(path))

    config = parse_config(raw, source=str(path))
    _loaded_configs[cache_key] = config

    logger.info(
        "config_loaded",
        extra={
            "config_path": str(path),
            "backends": sorted(config.backends),
            "default_provider": config.orchestration.default_provider,
        },
    )
    return config


def clear_cache() -> None:
    """Clear the config cache. Useful for testing."""
    _loaded_configs.clear()
