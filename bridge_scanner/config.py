"""Configuration utilities for bridge scanning runs.

This module reads environment variables (optionally from an `.env` file) and
produces an application configuration object consumed across the project.

Supported keys: `LOG_DIR`, `LOG_LEVEL`, `APP_NAME`, `BRIDGES_FILE`,
`ONIONOO_URLS` (comma-separated preferred mirrors) and `ONIONOO_PROXY`.

Usage example:

    from bridge_scanner.api import OnionooClient
    from bridge_scanner.config import load_config

    config = load_config()
    client = OnionooClient(proxy=config.proxy)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, MutableMapping, Optional, Tuple

DEFAULT_ENV_FILE = Path(".env")
DEFAULT_BRIDGES_FILE = "_bridges.txt"
VALID_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _load_env_file(path: Path) -> Dict[str, str]:
    """Parse a dotenv-style file into a dictionary."""
    if not path.exists():
        return {}

    data: Dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip("\"'")
    return data


def _merge_envs(dotenv_values: Mapping[str, str], env: MutableMapping[str, str]) -> Dict[str, str]:
    """Merge dotenv values with the current environment, preferring os.environ."""
    merged = dict(dotenv_values)
    merged.update(env)  # os.environ wins
    return merged


def _resolve_path(value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def _split_urls(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def load_environment(env_file: Optional[Path] = None) -> Dict[str, str]:
    """Return the dotenv file merged with ``os.environ``."""
    target_file = env_file or DEFAULT_ENV_FILE
    return _merge_envs(_load_env_file(target_file), os.environ)


@dataclass(frozen=True)
class AppConfig:
    """Application-level configuration values."""

    log_directory: Path
    log_level: str
    bridges_file: Path
    directory_urls: Tuple[str, ...] = ()
    proxy: Optional[str] = None
    app_name: str = "bridge-scanner"

    @property
    def numeric_log_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)


def load_config(env_file: Optional[Path] = None) -> AppConfig:
    """Load configuration values using environment defaults.

    Raises:
        ValueError: If ``LOG_LEVEL`` is not a standard logging level name.
    """
    merged = load_environment(env_file)

    log_level = merged.get("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ValueError(
            f"LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}; got {log_level!r}."
        )

    return AppConfig(
        log_directory=_resolve_path(merged.get("LOG_DIR") or "logs"),
        log_level=log_level,
        bridges_file=_resolve_path(merged.get("BRIDGES_FILE") or DEFAULT_BRIDGES_FILE),
        directory_urls=_split_urls(merged.get("ONIONOO_URLS", "")),
        proxy=merged.get("ONIONOO_PROXY") or None,
        app_name=merged.get("APP_NAME") or "bridge-scanner",
    )


__all__ = [
    "AppConfig",
    "DEFAULT_BRIDGES_FILE",
    "load_config",
    "load_environment",
]
