"""Configuration loader with layered priority.

Priority order (highest to lowest):
1. Environment variables (UILOC_DEVICE, UILOC_VERBOSE, UILOC_DUMP_*, ...)
2. Project config (.uilocator.yaml in current directory)
3. Global config (~/.uilocator.yaml)
4. Default values
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Config file paths
GLOBAL_CONFIG = Path.home() / ".uilocator.yaml"
PROJECT_CONFIG = Path.cwd() / ".uilocator.yaml"


def _safe_float(value: Any, default: float) -> float:
    """Convert value to float, returning default if None or invalid."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _safe_int(value: Any, default: int) -> int:
    """Convert value to int, returning default if None or invalid."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_bool(value: Any, default: bool = False) -> bool:
    """Parse boolean value from various formats.

    Handles:
    - None -> default
    - bool -> as-is
    - str -> "true", "1", "yes", "on" are True
    - other -> bool(value)
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on")
    return bool(value)


def _parse_duration_ms(value: Any, default: int) -> int:
    """Parse duration value from string (e.g., '30s', '600ms') or number.

    Plain numbers are milliseconds, matching the UILOC_DUMP_* variables.

    Args:
        value: Duration as string ('30s', '600ms', '1.5s') or number (ms)
        default: Default value if parsing fails

    Returns:
        Duration in milliseconds as int
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        value = value.strip().lower()
        if value.endswith("ms"):
            try:
                return int(float(value[:-2]))
            except ValueError:
                return default
        if value.endswith("s"):
            try:
                return int(float(value[:-1]) * 1000)
            except ValueError:
                return default
        try:
            return int(float(value))
        except ValueError:
            return default
    return default


@dataclass
class HierarchySettings:
    """Runtime tuning for hierarchy acquisition."""

    cache_ttl_ms: int = 0  # 0 disables the short-lived cache
    fail_backoff_ms: int = 600
    disable_window_ms: int = 30_000
    verbose: bool = False  # Per-strategy diagnostics at INFO


@dataclass
class ResolverConfig:
    """Point resolution settings used by the inspector."""

    tolerance: int = 8
    radius: int = 28


@dataclass
class SessionConfig:
    """Companion Appium server used as last-resort page source."""

    host: str = "127.0.0.1"
    port: int = 4723


@dataclass
class HealingConfig:
    """Self-healing match settings."""

    enabled: bool = True
    threshold: int = 60


@dataclass
class DynamicTextConfig:
    """Thresholds for the "text looks dynamic" heuristic."""

    digit_ratio: float = 0.25
    digit_run: int = 4


@dataclass
class LocatorConfig:
    """Main configuration for uilocator."""

    # Optional fields
    device: str | None = None
    verbose: bool = False
    adb_path: str = "adb"

    # Nested configs with defaults
    hierarchy: HierarchySettings = field(default_factory=HierarchySettings)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    healing: HealingConfig = field(default_factory=HealingConfig)
    dynamic_text: DynamicTextConfig = field(default_factory=DynamicTextConfig)


def hierarchy_settings_from_env(base: HierarchySettings | None = None) -> HierarchySettings:
    """Read hierarchy tuning from the environment.

    Called on every acquisition so changes take effect without a restart.

    Args:
        base: Values used when a variable is unset (defaults if None)

    Returns:
        Fresh HierarchySettings instance.
    """
    base = base or HierarchySettings()
    env = os.environ
    return HierarchySettings(
        cache_ttl_ms=max(0, _safe_int(env.get("UILOC_DUMP_CACHE_TTL_MS"), base.cache_ttl_ms)),
        fail_backoff_ms=max(0, _safe_int(env.get("UILOC_DUMP_FAIL_BACKOFF_MS"), base.fail_backoff_ms)),
        disable_window_ms=base.disable_window_ms,
        verbose=_parse_bool(env.get("UILOC_DUMP_LOG"), base.verbose),
    )


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    @classmethod
    def load(cls) -> LocatorConfig:
        """Load configuration with layered priority.

        Returns:
            Merged LocatorConfig instance.
        """
        # Start with defaults
        config_dict: dict[str, Any] = {}

        # Layer 1: Global config (~/.uilocator.yaml)
        if GLOBAL_CONFIG.exists():
            global_data = cls._load_yaml(GLOBAL_CONFIG)
            config_dict = cls._deep_merge(config_dict, global_data)

        # Layer 2: Project config (.uilocator.yaml)
        if PROJECT_CONFIG.exists():
            project_data = cls._load_yaml(PROJECT_CONFIG)
            config_dict = cls._deep_merge(config_dict, project_data)

        # Layer 3: Environment variables (highest priority)
        env_overrides = cls._get_env_overrides()
        config_dict = cls._deep_merge(config_dict, env_overrides)

        return cls._build_config(config_dict)

    @classmethod
    def _load_yaml(cls, path: Path) -> dict[str, Any]:
        """Load YAML file safely."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except (yaml.YAMLError, OSError):
            return {}

    @classmethod
    def _get_env_overrides(cls) -> dict[str, Any]:
        """Get configuration overrides from environment variables."""
        overrides: dict[str, Any] = {}

        # Direct mappings
        if "UILOC_DEVICE" in os.environ:
            overrides["device"] = os.environ["UILOC_DEVICE"]

        if "UILOC_ADB" in os.environ:
            overrides["adb_path"] = os.environ["UILOC_ADB"]

        # Boolean parsing for verbose
        if "UILOC_VERBOSE" in os.environ:
            overrides["verbose"] = _parse_bool(os.environ["UILOC_VERBOSE"])

        hierarchy_overrides: dict[str, Any] = {}
        if "UILOC_DUMP_CACHE_TTL_MS" in os.environ:
            hierarchy_overrides["cache_ttl"] = os.environ["UILOC_DUMP_CACHE_TTL_MS"]
        if "UILOC_DUMP_FAIL_BACKOFF_MS" in os.environ:
            hierarchy_overrides["fail_backoff"] = os.environ["UILOC_DUMP_FAIL_BACKOFF_MS"]
        if "UILOC_DUMP_LOG" in os.environ:
            hierarchy_overrides["dump_log"] = os.environ["UILOC_DUMP_LOG"]
        if hierarchy_overrides:
            overrides["hierarchy"] = hierarchy_overrides

        session_overrides: dict[str, Any] = {}
        if "UILOC_APPIUM_HOST" in os.environ:
            session_overrides["host"] = os.environ["UILOC_APPIUM_HOST"]
        if "UILOC_APPIUM_PORT" in os.environ:
            session_overrides["port"] = os.environ["UILOC_APPIUM_PORT"]
        if session_overrides:
            overrides["session"] = session_overrides

        healing_overrides: dict[str, Any] = {}
        if "UILOC_HEALING_ENABLED" in os.environ:
            healing_overrides["enabled"] = os.environ["UILOC_HEALING_ENABLED"]
        if "UILOC_HEALING_THRESHOLD" in os.environ:
            healing_overrides["threshold"] = os.environ["UILOC_HEALING_THRESHOLD"]
        if healing_overrides:
            overrides["healing"] = healing_overrides

        return overrides

    @classmethod
    def _deep_merge(cls, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @classmethod
    def _build_config(cls, config_dict: dict[str, Any]) -> LocatorConfig:
        """Build LocatorConfig from dictionary."""
        # Extract nested configs
        hierarchy_dict = config_dict.get("hierarchy") or {}
        resolver_dict = config_dict.get("resolver") or {}
        session_dict = config_dict.get("session") or {}
        healing_dict = config_dict.get("healing") or {}
        dynamic_dict = config_dict.get("dynamic_text") or {}

        hierarchy = HierarchySettings(
            cache_ttl_ms=max(0, _parse_duration_ms(hierarchy_dict.get("cache_ttl"), 0)),
            fail_backoff_ms=max(0, _parse_duration_ms(hierarchy_dict.get("fail_backoff"), 600)),
            disable_window_ms=max(
                0, _parse_duration_ms(hierarchy_dict.get("disable_window"), 30_000)
            ),
            verbose=_parse_bool(hierarchy_dict.get("dump_log"), False),
        )

        resolver = ResolverConfig(
            tolerance=_safe_int(resolver_dict.get("tolerance"), 8),
            radius=_safe_int(resolver_dict.get("radius"), 28),
        )

        session = SessionConfig(
            host=str(session_dict.get("host") or "127.0.0.1"),
            port=_safe_int(session_dict.get("port"), 4723),
        )

        healing = HealingConfig(
            enabled=_parse_bool(healing_dict.get("enabled"), True),
            threshold=_safe_int(healing_dict.get("threshold"), 60),
        )

        dynamic_text = DynamicTextConfig(
            digit_ratio=_safe_float(dynamic_dict.get("digit_ratio"), 0.25),
            digit_run=_safe_int(dynamic_dict.get("digit_run"), 4),
        )

        # Build main config
        return LocatorConfig(
            device=config_dict.get("device"),
            verbose=_parse_bool(config_dict.get("verbose"), False),
            adb_path=str(config_dict.get("adb_path") or "adb"),
            hierarchy=hierarchy,
            resolver=resolver,
            session=session,
            healing=healing,
            dynamic_text=dynamic_text,
        )


def setup_logging(verbose: bool, log_dir: Path | None) -> Path | None:
    """Configure file-based DEBUG logging.

    Args:
        verbose: Enable logging when True
        log_dir: Directory to write debug.log

    Returns:
        Path to log file if created, None otherwise
    """
    if not verbose or log_dir is None:
        return None

    log_file = log_dir / "debug.log"
    log_dir.mkdir(parents=True, exist_ok=True)

    # Create file handler
    handler = logging.FileHandler(log_file, mode="w")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s.%(msecs)03d [%(levelname)-5s] %(name)-20s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    # Configure package logger (clear existing handlers to prevent duplicates)
    pkg_logger = logging.getLogger("uilocator")
    for old in list(pkg_logger.handlers):
        old.close()
    pkg_logger.handlers.clear()
    pkg_logger.setLevel(logging.DEBUG)
    pkg_logger.addHandler(handler)

    return log_file


DIAGNOSTICS_LOGGER = "uilocator.core.hierarchy_controller"


def setup_diagnostics_logging(enabled: bool, stream: Any = None) -> logging.Handler | None:
    """Echo hierarchy acquisition diagnostics to stderr.

    Args:
        enabled: Attach the handler when True
        stream: Target stream (sys.stderr if None)

    Returns:
        The attached handler, or None when disabled
    """
    diag_logger = logging.getLogger(DIAGNOSTICS_LOGGER)
    for old in list(diag_logger.handlers):
        diag_logger.removeHandler(old)

    if not enabled:
        return None

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    diag_logger.addHandler(handler)
    if diag_logger.getEffectiveLevel() > logging.INFO:
        diag_logger.setLevel(logging.INFO)
    return handler
