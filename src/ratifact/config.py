"""Configuration management for the ratifact dashboard."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DATABASE_ENV_VAR = "RATIFACT_DATABASE"

_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})


def parse_bool(value: Any, default: bool) -> bool:
    """Parse a YAML-ish boolean value.

    Args:
        value: Raw value from the config file.
        default: Value to use when ``value`` is None.

    Returns:
        Parsed boolean.

    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def _expand(path: str | Path) -> Path:
    return Path(os.path.expanduser(str(path)))


@dataclass
class AppConfig:
    """Settings for the ratifact dashboard."""

    # Roots walked by a scan; an empty list means the current directory
    scan_roots: list[Path] = field(default_factory=lambda: [Path(".")])

    # Catalog rows older than this are purged
    retention_days: int = 30

    # Subtrees never walked by a scan
    excluded_paths: list[Path] = field(default_factory=list)

    # Log watcher change events into the dashboard log buffer
    debug_logs_enabled: bool = False

    # Purge expired catalog rows at startup
    automatic_removal: bool = True

    database_path: Path = field(
        default_factory=lambda: Path.home() / ".local/share/ratifact/builds.db"
    )

    # Logging
    log_file: Path = field(
        default_factory=lambda: Path.home() / ".local/state/ratifact/ratifact.log"
    )
    log_level: str = "INFO"

    # Lines kept by the in-memory log buffer
    log_buffer_size: int = 1000

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the default configuration file path."""
        return Path.home() / ".config/ratifact/config.yaml"

    @classmethod
    def load(cls, config_path: Path | None = None) -> AppConfig:
        """Load configuration from YAML file.

        Args:
            config_path: Path to config file. Uses default if None.

        Returns:
            Loaded configuration.

        """
        if config_path is None:
            config_path = cls.get_config_path()

        if config_path.exists():
            with config_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            config = cls._from_dict(data)
        else:
            config = cls()

        if env_database := os.environ.get(DATABASE_ENV_VAR):
            config.database_path = _expand(env_database)

        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> AppConfig:
        """Create config from dictionary."""
        config = cls()

        if "scan_roots" in data:
            config.scan_roots = [_expand(p) for p in data["scan_roots"] or []]
        if "excluded_paths" in data:
            config.excluded_paths = [_expand(p) for p in data["excluded_paths"] or []]

        # Simple fields
        if "retention_days" in data:
            config.retention_days = int(data["retention_days"])
        if "debug_logs_enabled" in data:
            config.debug_logs_enabled = parse_bool(data["debug_logs_enabled"], False)
        if "automatic_removal" in data:
            config.automatic_removal = parse_bool(data["automatic_removal"], True)
        if "database" in data:
            config.database_path = _expand(data["database"])
        if "log_buffer_size" in data:
            config.log_buffer_size = int(data["log_buffer_size"])

        # Logging
        if "logging" in data:
            logging_cfg = data["logging"] or {}
            if "file" in logging_cfg:
                config.log_file = _expand(logging_cfg["file"])
            if "level" in logging_cfg:
                config.log_level = str(logging_cfg["level"]).upper()

        return config

    @property
    def effective_scan_roots(self) -> list[Path]:
        """Scan roots with the current-directory fallback applied."""
        return list(self.scan_roots) or [Path(".")]

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to YAML file.

        Args:
            config_path: Path to save config. Uses default if None.

        """
        if config_path is None:
            config_path = self.get_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "scan_roots": [str(p) for p in self.scan_roots],
            "retention_days": self.retention_days,
            "excluded_paths": [str(p) for p in self.excluded_paths],
            "debug_logs_enabled": self.debug_logs_enabled,
            "automatic_removal": self.automatic_removal,
            "database": str(self.database_path),
            "log_buffer_size": self.log_buffer_size,
            "logging": {
                "file": str(self.log_file),
                "level": self.log_level,
            },
        }

        with config_path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
