"""Configuration helpers for the Mermaid Live preview tool."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

ENV_PREFIX = "MERMAID_LIVE_"


@dataclass(slots=True)
class AppConfig:
    """Centralized application configuration."""

    storage_dir: Path = Path("data")
    log_dir: Path = Path("logs")
    poll_interval: float = 1.0
    history_limit: int = 100
    render_base_url: str = "https://mermaid.ink"
    editor_base_url: str = "https://mermaid.live"
    theme: str = "default"
    preview_timeout: float = 15.0
    preview_cache_ttl: float = 600.0
    metadata: dict[str, Any] = field(default_factory=dict)


def _load_env_file(path: Path) -> None:
    """Populate environment variables from a simple KEY=VALUE .env file."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ[key.strip()] = value.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Return an AppConfig instance with environment-aware settings."""
    env_path = Path(config_path) if config_path else Path(".env")
    _load_env_file(env_path)

    defaults = AppConfig()
    storage_dir = Path(os.getenv(ENV_PREFIX + "STORAGE_DIR", str(defaults.storage_dir)))
    log_dir = Path(os.getenv(ENV_PREFIX + "LOG_DIR", str(defaults.log_dir)))

    metadata: dict[str, Any] = {}
    server_port = os.getenv(ENV_PREFIX + "SERVER_PORT")
    if server_port:
        metadata["server_port"] = int(server_port)
    server_name = os.getenv(ENV_PREFIX + "SERVER_NAME")
    if server_name:
        metadata["server_name"] = server_name

    return AppConfig(
        storage_dir=storage_dir.expanduser().resolve(),
        log_dir=log_dir.expanduser(),
        poll_interval=max(0.1, _env_float("POLL_INTERVAL", defaults.poll_interval)),
        history_limit=max(1, _env_int("HISTORY_LIMIT", defaults.history_limit)),
        render_base_url=os.getenv(ENV_PREFIX + "RENDER_URL", defaults.render_base_url).rstrip("/"),
        editor_base_url=os.getenv(ENV_PREFIX + "EDITOR_URL", defaults.editor_base_url).rstrip("/"),
        theme=os.getenv(ENV_PREFIX + "THEME", defaults.theme),
        preview_timeout=_env_float("PREVIEW_TIMEOUT", defaults.preview_timeout),
        preview_cache_ttl=_env_float("PREVIEW_CACHE_TTL", defaults.preview_cache_ttl),
        metadata=metadata,
    )
