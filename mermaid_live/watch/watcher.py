"""Clipboard polling loop."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from mermaid_live.classification.diagram_types import is_candidate
from mermaid_live.render.codec import encode
from mermaid_live.services.clipboard_service import ClipboardUnavailable
from mermaid_live.services.history_service import HistoryService
from mermaid_live.services.storage_service import (
    LAST_DESCRIPTION_KEY,
    LAST_UPDATED_KEY,
    KeyValueStorage,
)
from mermaid_live.watch.active_diagram import ActiveDiagram

logger = logging.getLogger(__name__)

_UNSET = object()


class ClipboardReader(Protocol):
    async def read(self) -> str:
        ...


class ClipboardWatcher:
    """Sample the clipboard and feed changes into the active diagram.

    Ticks never overlap: a tick that fires while the previous one is still
    waiting on I/O is dropped. The last observed sample belongs to the
    instance, so independent watchers can run side by side.
    """

    def __init__(
        self,
        clipboard: ClipboardReader,
        history: HistoryService,
        storage: KeyValueStorage,
        active: ActiveDiagram,
        interval: float = 1.0,
        theme: str = "default",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.clipboard = clipboard
        self.history = history
        self.storage = storage
        self.active = active
        self.interval = interval
        self.theme = theme
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_seen: object = _UNSET
        self._tick_lock = asyncio.Lock()
        self._stopped = asyncio.Event()

    @property
    def last_seen(self) -> Optional[str]:
        return None if self._last_seen is _UNSET else self._last_seen  # type: ignore[return-value]

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def busy(self) -> bool:
        return self._tick_lock.locked()

    async def tick(self) -> bool:
        """Process one clipboard sample.

        Returns False when the tick was skipped because another tick is in
        flight or the watcher has been stopped.
        """
        if self.stopped or self._tick_lock.locked():
            return False
        async with self._tick_lock:
            await self._process()
        return True

    async def run(self) -> None:
        """Tick every ``interval`` seconds until :meth:`stop` is called."""
        logger.info("Watching clipboard every %.1fs", self.interval)
        while not self.stopped:
            await self.tick()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Clipboard watcher stopped")

    def stop(self) -> None:
        """Prevent further ticks; an in-flight tick is allowed to finish."""
        self._stopped.set()

    # Internal helpers ---------------------------------------------------------
    async def _read_sample(self) -> str:
        try:
            return await self.clipboard.read()
        except ClipboardUnavailable as exc:
            logger.debug("Clipboard unavailable, treating as empty: %s", exc)
            return ""

    async def _process(self) -> None:
        sample = await self._read_sample()
        if sample == self._last_seen:
            return
        self._last_seen = sample

        if not sample:
            self.active.mark_empty()
            return
        if not is_candidate(sample):
            self.active.mark_invalid()
            return

        self.active.mark_rendering(sample)
        try:
            token = encode(sample, self.theme)
            now = self._clock()
            await self.storage.set(LAST_DESCRIPTION_KEY, sample)
            await self.storage.set(LAST_UPDATED_KEY, now.isoformat())
            record = await self.history.upsert_by_description(sample)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to render clipboard diagram: %s", exc)
            self.active.mark_failed(str(exc) or exc.__class__.__name__)
            return
        self.active.mark_ready(sample, token, record, now)
