"""Configuration loading from an optional YAML file and environment variables.

Precedence: dataclass defaults < YAML `analysis:` section < environment.
"""

import logging
import os
from dataclasses import dataclass, fields, replace

import yaml

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "DIAG_CONFIG_PATH"
_ENV_PREFIX = "DIAG_"


class ConfigError(ValueError):
    """Raised when a configuration value is not a non-negative integer."""


@dataclass(frozen=True)
class AnalyzerConfig:
    latency_threshold_ms: int = 600
    group_entry_limit: int = 50
    percentile_entry_limit: int = 50
    high_latency_interaction_limit: int = 100
    top_endpoint_limit: int = 10
    system_snapshot_limit: int = 100
    client_config_snapshot_limit: int = 500


def _to_int(name: str, value) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if number < 0:
        raise ConfigError(f"{name} must not be negative, got {number}")
    return number


def load_yaml_config(path: str | None) -> dict:
    """Return the `analysis` mapping from a YAML file, or {} if there is none."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    logger.info("Loaded YAML config from %s", path)
    section = data.get("analysis", {}) if isinstance(data, dict) else {}
    if not isinstance(section, dict):
        raise ConfigError(f"'analysis' in {path} must be a mapping")
    return section


def load_config(path: str | None = None) -> AnalyzerConfig:
    """Build AnalyzerConfig from defaults, YAML, then DIAG_* env vars."""
    yaml_data = load_yaml_config(path or os.environ.get(CONFIG_PATH_ENV))
    known = {f.name for f in fields(AnalyzerConfig)}

    overrides = {}
    for key, value in yaml_data.items():
        if key not in known:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        overrides[key] = _to_int(key, value)

    for name in known:
        env_name = _ENV_PREFIX + name.upper()
        if env_name in os.environ:
            overrides[name] = _to_int(env_name, os.environ[env_name])

    return replace(AnalyzerConfig(), **overrides)
