"""One-off script for watching the clipboard without the Gradio UI."""

from __future__ import annotations

import argparse
import asyncio
import logging

from config.settings import load_config
from mermaid_live.render.codec import editor_url, image_url
from mermaid_live.ui.layout import build_services
from mermaid_live.utils.logging import setup_logging
from mermaid_live.watch.active_diagram import ActiveState, DiagramStatus


def _print_state(state: ActiveState) -> None:
    if state.status is DiagramStatus.READY and state.token:
        name = state.record.display_name if state.record else "(not saved)"
        print(f"[ready] {name}")
        print("  image: ", image_url(state.token))
        print("  editor:", editor_url(state.token))
    elif state.status is DiagramStatus.FAILED:
        print(f"[failed] {state.reason}")
    else:
        print(f"[{state.status.value}]")


async def watch(seconds: float) -> None:
    config = load_config()
    services = build_services(config)
    active = services["active"]
    watcher = services["watcher"]

    # 1. Show whatever the last session left behind
    active.subscribe(_print_state)
    await active.restore()

    # 2. Poll until the time budget runs out
    task = asyncio.create_task(watcher.run())
    try:
        await asyncio.sleep(seconds)
    finally:
        watcher.stop()
        await task

    # 3. Dump the history in display order
    for record in await services["history"].list():
        marker = "*" if record.pinned else " "
        print(f"{marker} {record.display_name}  ({record.last_accessed_at:%Y-%m-%d %H:%M})")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch the clipboard for Mermaid diagrams.")
    parser.add_argument("--seconds", type=float, default=30.0)
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    setup_logging(load_config(), level=logging.DEBUG if args.verbose else logging.INFO)
    asyncio.run(watch(args.seconds))
