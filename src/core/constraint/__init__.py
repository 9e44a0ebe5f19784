from __future__ import annotations

from pathlib import Path

DEFAULT_CONFIG_PATH = Path("config.toml")
DEFAULT_STORAGE_DIR = Path("jobs")
ENV_PREFIX = "NC_"
API_PREFIX = "/api/v1"

__all__ = ["API_PREFIX", "DEFAULT_CONFIG_PATH", "DEFAULT_STORAGE_DIR", "ENV_PREFIX"]
