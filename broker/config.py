"""
Review Broker: Config Loader

Three-tier configuration loading:
  1. Base file (review_config.yaml)
  2. Per-environment overlay file (config/{RB_ENV}.yaml merged over base)
  3. Environment variable overrides (RB_ prefixed)

Usage:
    from broker.config import load_config, BrokerSettings

    cfg = load_config(base_path="review_config.yaml", env="dev")
    settings = BrokerSettings.from_config(cfg)

Environment variables:
    RB_ENV                      active profile (dev, staging, prod)
    RB_CONFIG_DIR               directory for overlay files (default: config/)
    RB_CONFIG                   base config path
    RB_<SECTION>__<KEY>         nested override, double underscore separates
                                levels (RB_SESSION__TIMEOUT_SECONDS=120)
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("review_broker.config")

ENV_PREFIX = "RB_"
_META_VARS = {"RB_ENV", "RB_CONFIG_DIR", "RB_CONFIG", "RB_VERSION"}


# ═══════════════════════════════════════════════════════════════════
# Deep Merge
# ═══════════════════════════════════════════════════════════════════

def deep_merge(base: dict, overlay: dict) -> dict:
    """
    Deep-merge overlay into base. Overlay values win.
    Lists are replaced (not appended). Dicts are recursed.
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _set_nested(d: dict, keys: list[str], value: Any):
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def _parse_scalar(value: str) -> Any:
    """Parse an env var value as YAML (numbers, booleans, lists)."""
    try:
        return yaml.safe_load(value)
    except yaml.YAMLError:
        return value


# ═══════════════════════════════════════════════════════════════════
# Overlay Files
# ═══════════════════════════════════════════════════════════════════

def _load_overlay_file(
    base_path: str,
    env: str = "",
    config_dir: str = "",
) -> dict[str, Any]:
    """
    Load per-environment overlay file.
    Looks for {config_dir}/{env}.yaml, then config/{env}.yaml beside the base file.
    Returns empty dict if not found.
    """
    env = env or os.environ.get("RB_ENV", "")
    if not env:
        return {}

    config_dir = config_dir or os.environ.get("RB_CONFIG_DIR", "config")

    candidates = [
        Path(config_dir) / f"{env}.yaml",
        Path(config_dir) / f"{env}.yml",
        Path(os.path.dirname(base_path)) / "config" / f"{env}.yaml",
    ]

    for path in candidates:
        if path.exists():
            with open(path) as f:
                overlay = yaml.safe_load(f) or {}
            logger.info("Loaded config overlay: %s (%d keys)", path, len(overlay))
            return overlay

    logger.debug("No config overlay found for env=%s", env)
    return {}


# ═══════════════════════════════════════════════════════════════════
# Environment Variable Overrides
# ═══════════════════════════════════════════════════════════════════

def _load_env_overrides(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Load RB_ prefixed environment variables as config overrides.

      RB_SERVER__PORT=3100            → {"server": {"port": 3100}}
      RB_REVIEW__OPEN_BROWSER=false   → {"review": {"open_browser": False}}
    """
    overrides: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key in _META_VARS:
            continue
        path = [p for p in key[len(prefix):].lower().split("__") if p]
        if not path:
            continue
        _set_nested(overrides, path, _parse_scalar(value))

    if overrides:
        logger.debug("Loaded %d env var overrides", len(overrides))
    return overrides


# ═══════════════════════════════════════════════════════════════════
# Main Loader
# ═══════════════════════════════════════════════════════════════════

def load_config(
    base_path: str = "",
    env: str = "",
    config_dir: str = "",
    include_env_vars: bool = True,
) -> dict[str, Any]:
    """
    Load configuration with three-tier merging.

    Priority (highest wins):
      1. Environment variable overrides (RB_*)
      2. Per-environment overlay file (config/{env}.yaml)
      3. Base config file (review_config.yaml)
    """
    base_path = base_path or os.environ.get("RB_CONFIG", "review_config.yaml")

    config: dict[str, Any] = {}
    if os.path.exists(base_path):
        with open(base_path) as f:
            config = yaml.safe_load(f) or {}
        logger.debug("Loaded base config: %s", base_path)

    overlay = _load_overlay_file(base_path, env=env, config_dir=config_dir)
    if overlay:
        config = deep_merge(config, overlay)

    if include_env_vars:
        env_overrides = _load_env_overrides()
        if env_overrides:
            config = deep_merge(config, env_overrides)

    config["_active_env"] = env or os.environ.get("RB_ENV", "default")
    config["_config_source"] = base_path
    return config


def get_config_value(
    path: str,
    config: dict[str, Any] | None = None,
    default: Any = None,
) -> Any:
    """
    Get a nested config value by dotted path.

    Example:
        get_config_value("session.timeout_seconds", cfg, 480)
    """
    if config is None:
        config = load_config()

    current = config
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default
    return current


# ═══════════════════════════════════════════════════════════════════
# Typed Settings
# ═══════════════════════════════════════════════════════════════════

@dataclass
class BrokerSettings:
    """Typed view over the merged config, with the documented defaults."""
    timeout_seconds: float = 8 * 60
    result_retention_seconds: float = 60.0
    history_limit: int = 1000
    host: str = "127.0.0.1"
    port: int = 3000
    port_attempts: int = 20
    open_browser: bool = True
    enhancer_factory: str = ""
    enhancer_base_url: str = ""
    enhancer_token: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> BrokerSettings:
        def get(path, default):
            return get_config_value(path, config, default)

        settings = cls(
            timeout_seconds=float(get("session.timeout_seconds", cls.timeout_seconds)),
            result_retention_seconds=float(get("session.result_retention_seconds", cls.result_retention_seconds)),
            history_limit=int(get("session.history_limit", cls.history_limit)),
            host=str(get("server.host", cls.host)),
            port=int(get("server.port", cls.port)),
            port_attempts=int(get("server.port_attempts", cls.port_attempts)),
            open_browser=bool(get("review.open_browser", cls.open_browser)),
            enhancer_factory=str(get("enhancer.factory", "") or ""),
            enhancer_base_url=str(get("enhancer.base_url", "") or ""),
            enhancer_token=str(get("enhancer.token", "") or ""),
            log_level=str(get("logging.level", cls.log_level)),
        )
        errors = settings.validate()
        if errors:
            raise ValueError("Invalid review broker config: " + "; ".join(errors))
        return settings

    def validate(self) -> list[str]:
        """Return list of validation errors (empty = valid)."""
        errors = []
        if self.timeout_seconds <= 0:
            errors.append("session.timeout_seconds must be positive")
        if self.result_retention_seconds < 0:
            errors.append("session.result_retention_seconds must not be negative")
        if self.history_limit < 1:
            errors.append("session.history_limit must be at least 1")
        if not 0 < self.port < 65536:
            errors.append("server.port must be between 1 and 65535")
        if self.port_attempts < 1:
            errors.append("server.port_attempts must be at least 1")
        return errors
