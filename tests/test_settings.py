"""Configuration and small utility tests."""

from __future__ import annotations

from config.settings import AppConfig, load_config
from mermaid_live.utils.cache import TTLCache

ENV_KEYS = (
    "MERMAID_LIVE_STORAGE_DIR",
    "MERMAID_LIVE_POLL_INTERVAL",
    "MERMAID_LIVE_HISTORY_LIMIT",
    "MERMAID_LIVE_RENDER_URL",
    "MERMAID_LIVE_THEME",
    "MERMAID_LIVE_SERVER_PORT",
)


def test_defaults():
    config = AppConfig()

    assert config.poll_interval == 1.0
    assert config.history_limit == 100
    assert config.render_base_url == "https://mermaid.ink"
    assert config.editor_base_url == "https://mermaid.live"


def test_load_config_reads_env_file(tmp_path, monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
    env_file = tmp_path / "test.env"
    env_file.write_text(
        "\n".join(
            [
                "# local overrides",
                f"MERMAID_LIVE_STORAGE_DIR={tmp_path / 'data'}",
                "MERMAID_LIVE_POLL_INTERVAL=2.5",
                "MERMAID_LIVE_HISTORY_LIMIT=25",
                "MERMAID_LIVE_RENDER_URL=http://localhost:3000/",
                "MERMAID_LIVE_THEME=dark",
                "MERMAID_LIVE_SERVER_PORT=7861",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(str(env_file))

    assert config.storage_dir == (tmp_path / "data").resolve()
    assert config.poll_interval == 2.5
    assert config.history_limit == 25
    assert config.render_base_url == "http://localhost:3000"
    assert config.theme == "dark"
    assert config.metadata["server_port"] == 7861


def test_load_config_ignores_bad_numbers(tmp_path, monkeypatch):
    monkeypatch.setenv("MERMAID_LIVE_POLL_INTERVAL", "soon")
    monkeypatch.setenv("MERMAID_LIVE_HISTORY_LIMIT", "many")

    config = load_config(str(tmp_path / "missing.env"))

    assert config.poll_interval == 1.0
    assert config.history_limit == 100


def test_ttl_cache_expires_and_bounds_entries():
    now = [0.0]
    cache: TTLCache[str, str] = TTLCache(ttl_seconds=10.0, max_entries=2, clock=lambda: now[0])

    cache.set("a", "A")
    cache.set("b", "B")
    cache.set("c", "C")
    assert cache.get("a") is None
    assert cache.get("b") == "B"

    now[0] = 11.0
    assert cache.get("c") is None
