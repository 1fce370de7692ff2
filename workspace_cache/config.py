"""Load resolver configuration from defaults, a TOML file and the environment.

Later sources win:
  1. Built-in defaults (ResolverConfig field defaults)
  2. The ``[workspace_cache]`` table of a TOML file: the path in
     NOTION_CLI_CONFIG if set, otherwise ``config.toml`` in the cache directory
  3. Environment variables (NOTION_CLI_CACHE_DIR, NOTION_CLI_CACHE_TTL, ...)
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field

from .identifiers import DEFAULT_HOST_MARKERS
from .models import DEFAULT_MAX_SYNC_ERRORS

CACHE_DIR_NAME = ".notion-cli"
CACHE_FILE_NAME = "workspace-cache.json"
LOCK_FILE_NAME = "sync.lock"
CONFIG_FILE_NAME = "config.toml"
CONFIG_TABLE = "workspace_cache"

DEFAULT_CACHE_TTL_MS = 24 * 60 * 60 * 1000
DEFAULT_LOCK_STALE_MS = 5 * 60 * 1000
DEFAULT_SYNC_RETRY_MS = 5 * 60 * 1000
CACHE_DIR_MODE = 0o700

# env var -> config field
ENV_KEYS: dict[str, str] = {
    "NOTION_CLI_CACHE_DIR": "cache_dir",
    "NOTION_CLI_CACHE_TTL": "cache_ttl_ms",
    "NOTION_CLI_FUZZY_THRESHOLD": "fuzzy_threshold",
    "NOTION_CLI_SYNC_CONCURRENCY": "sync_concurrency",
    "NOTION_CLI_AUTO_SYNC": "auto_sync",
    "NOTION_CLI_LOCK_STALE_MS": "lock_stale_ms",
    "NOTION_CLI_SYNC_RETRY_MS": "sync_retry_ms",
}


def default_cache_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """Per-user cache directory: NOTION_CLI_CACHE_DIR, else ~/.notion-cli."""
    env = os.environ if env is None else env
    if env_dir := env.get("NOTION_CLI_CACHE_DIR"):
        return Path(env_dir).expanduser()
    return Path.home() / CACHE_DIR_NAME


def ensure_private_dir(directory: Path) -> None:
    """Create ``directory`` (and missing parents) readable only by the owner.

    An existing directory is left as it is.
    """
    if directory.exists():
        return
    directory.mkdir(parents=True, mode=CACHE_DIR_MODE, exist_ok=True)
    os.chmod(directory, CACHE_DIR_MODE)


class ResolverConfig(BaseModel):
    """Settings shared by the cache store, sync orchestrator and resolver.

    Attributes:
        cache_dir: Directory holding the cache file and the sync lock
        cache_ttl_ms: Cache age after which resolution triggers a refresh
        fuzzy_threshold: Minimum similarity for a fuzzy match
        sync_concurrency: Concurrent detail requests during a sync
        auto_sync: Sync on a cache miss or a stale cache
        lock_stale_ms: Age after which a sync lock is treated as abandoned
        sync_retry_ms: Minimum wait after a sync attempt before a stale cache triggers another
        max_sync_errors: Number of sync error records kept in the cache file
        host_markers: Hostname fragments that identify remote-system URLs
    """

    model_config = {"frozen": True}

    cache_dir: Path = Field(default_factory=default_cache_dir)
    cache_ttl_ms: int = Field(DEFAULT_CACHE_TTL_MS, ge=0)
    fuzzy_threshold: float = Field(0.7, ge=0.0, le=1.0)
    sync_concurrency: int = Field(3, ge=1)
    auto_sync: bool = True
    lock_stale_ms: int = Field(DEFAULT_LOCK_STALE_MS, gt=0)
    sync_retry_ms: int = Field(DEFAULT_SYNC_RETRY_MS, ge=0)
    max_sync_errors: int = Field(DEFAULT_MAX_SYNC_ERRORS, ge=1)
    host_markers: tuple[str, ...] = DEFAULT_HOST_MARKERS

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / CACHE_FILE_NAME

    @property
    def lock_path(self) -> Path:
        return self.cache_dir / LOCK_FILE_NAME


def _read_toml_table(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    table = data.get(CONFIG_TABLE, {})
    return dict(table) if isinstance(table, dict) else {}


def load_config(
    config_file: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ResolverConfig:
    """Build a ResolverConfig from file, environment and explicit overrides.

    Args:
        config_file: TOML file to read. Defaults to NOTION_CLI_CONFIG or
            ``<cache_dir>/config.toml`` when that file exists.
        env: Environment mapping (defaults to os.environ)
        **overrides: Field values that take precedence over everything else

    Raises:
        pydantic.ValidationError: If a value is out of range or of the wrong type
        tomllib.TOMLDecodeError: If an explicitly named config file is malformed
    """
    env = os.environ if env is None else env
    values: dict[str, Any] = {}

    path = config_file
    if path is None and env.get("NOTION_CLI_CONFIG"):
        path = Path(env["NOTION_CLI_CONFIG"]).expanduser()
    if path is None:
        candidate = default_cache_dir(env) / CONFIG_FILE_NAME
        path = candidate if candidate.is_file() else None
    if path is not None and path.is_file():
        values.update(_read_toml_table(path))

    for env_key, field_name in ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is not None and raw != "":
            values[field_name] = raw

    values.update(overrides)
    if "cache_dir" not in values:
        values["cache_dir"] = default_cache_dir(env)
    return ResolverConfig.model_validate(values)
