"""ClipboardWatcher tests."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from mermaid_live.render.codec import encode
from mermaid_live.services.clipboard_service import ClipboardUnavailable
from mermaid_live.services.history_service import HistoryService
from mermaid_live.services.storage_service import (
    LAST_DESCRIPTION_KEY,
    LAST_UPDATED_KEY,
    StoreError,
)
from mermaid_live.watch.active_diagram import ActiveDiagram, DiagramStatus
from mermaid_live.watch.watcher import ClipboardWatcher

DIAGRAM = "graph TD\nA-->B"


class DummyStorage:
    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.writes: List[str] = []
        self.fail_writes = False

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StoreError("disk full")
        self.writes.append(key)
        self.data[key] = value


class DummyClipboard:
    """Clipboard stub; ``gate`` lets a test hold a read in flight."""

    def __init__(self, text: str = "") -> None:
        self.text = text
        self.unavailable = False
        self.reads = 0
        self.gate: Optional[asyncio.Event] = None

    async def read(self) -> str:
        self.reads += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.unavailable:
            raise ClipboardUnavailable("no display")
        return self.text


def build_watcher(clipboard: Optional[DummyClipboard] = None, interval: float = 1.0):
    storage = DummyStorage()
    history = HistoryService(storage)
    active = ActiveDiagram(history, storage)
    watcher = ClipboardWatcher(clipboard or DummyClipboard(), history, storage, active, interval=interval)
    return watcher, active, storage, history


def test_empty_clipboard_marks_empty():
    watcher, active, _, _ = build_watcher()

    assert asyncio.run(watcher.tick()) is True
    assert active.state.status is DiagramStatus.EMPTY


def test_unrecognized_text_marks_invalid():
    watcher, active, _, _ = build_watcher(DummyClipboard("hello world"))

    asyncio.run(watcher.tick())

    assert active.state.status is DiagramStatus.INVALID
    assert watcher.last_seen == "hello world"


def test_candidate_renders_and_saves():
    clipboard = DummyClipboard(DIAGRAM)
    watcher, active, storage, history = build_watcher(clipboard)
    seen: List[DiagramStatus] = []
    active.subscribe(lambda state: seen.append(state.status))

    async def scenario():
        await watcher.tick()
        return await history.list()

    records = asyncio.run(scenario())

    state = active.state
    assert seen == [DiagramStatus.RENDERING, DiagramStatus.READY]
    assert state.token == encode(DIAGRAM)
    assert state.record is not None and state.record.id == records[0].id
    assert state.record.display_name.startswith("Flowchart - ")
    assert storage.data[LAST_DESCRIPTION_KEY] == DIAGRAM
    assert storage.data[LAST_UPDATED_KEY]


def test_invalid_text_preserves_ready_diagram():
    clipboard = DummyClipboard(DIAGRAM)
    watcher, active, _, _ = build_watcher(clipboard)

    async def scenario():
        await watcher.tick()
        ready = active.state
        clipboard.text = "just some notes"
        await watcher.tick()
        return ready

    ready = asyncio.run(scenario())

    assert active.state is ready
    assert active.state.status is DiagramStatus.READY


def test_unchanged_sample_is_ignored():
    clipboard = DummyClipboard(DIAGRAM)
    watcher, active, storage, _ = build_watcher(clipboard)

    async def scenario():
        await watcher.tick()
        writes = len(storage.writes)
        state = active.state
        await watcher.tick()
        return writes, state

    writes, state = asyncio.run(scenario())

    assert len(storage.writes) == writes
    assert active.state is state
    assert clipboard.reads == 2


def test_empty_after_ready_clears_diagram():
    clipboard = DummyClipboard(DIAGRAM)
    watcher, active, _, _ = build_watcher(clipboard)

    async def scenario():
        await watcher.tick()
        clipboard.text = ""
        await watcher.tick()

    asyncio.run(scenario())

    assert active.state.status is DiagramStatus.EMPTY


def test_unavailable_clipboard_counts_as_empty():
    clipboard = DummyClipboard(DIAGRAM)
    clipboard.unavailable = True
    watcher, active, _, _ = build_watcher(clipboard)

    asyncio.run(watcher.tick())

    assert active.state.status is DiagramStatus.EMPTY


def test_failure_marks_failed_and_polling_continues():
    clipboard = DummyClipboard(DIAGRAM)
    watcher, active, storage, _ = build_watcher(clipboard)
    storage.fail_writes = True

    async def scenario():
        await watcher.tick()
        failed = active.state
        storage.fail_writes = False
        clipboard.text = "sequenceDiagram\n  A->>B: hi"
        await watcher.tick()
        return failed

    failed = asyncio.run(scenario())

    assert failed.status is DiagramStatus.FAILED
    assert "disk full" in (failed.reason or "")
    assert active.state.status is DiagramStatus.READY


def test_overlapping_tick_is_dropped():
    clipboard = DummyClipboard(DIAGRAM)
    watcher, _, _, _ = build_watcher(clipboard)

    async def scenario():
        clipboard.gate = asyncio.Event()
        first = asyncio.create_task(watcher.tick())
        await asyncio.sleep(0)
        busy = watcher.busy
        second = await watcher.tick()
        clipboard.gate.set()
        return busy, second, await first

    busy, second, first = asyncio.run(scenario())

    assert busy is True
    assert second is False
    assert first is True
    assert clipboard.reads == 1


def test_run_stops_cleanly():
    clipboard = DummyClipboard(DIAGRAM)
    watcher, active, _, _ = build_watcher(clipboard, interval=0.01)

    async def scenario():
        task = asyncio.create_task(watcher.run())
        await asyncio.sleep(0.05)
        watcher.stop()
        await asyncio.wait_for(task, timeout=1.0)
        reads = clipboard.reads
        ticked = await watcher.tick()
        return reads, ticked

    reads, ticked = asyncio.run(scenario())

    assert reads >= 2
    assert ticked is False
    assert clipboard.reads == reads
    assert active.state.status is DiagramStatus.READY


def test_watchers_track_samples_independently():
    first, _, _, _ = build_watcher(DummyClipboard(DIAGRAM))
    second, _, _, _ = build_watcher(DummyClipboard("hello"))

    async def scenario():
        await first.tick()
        await second.tick()

    asyncio.run(scenario())

    assert first.last_seen == DIAGRAM
    assert second.last_seen == "hello"
