"""State of the diagram currently shown to the user."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from mermaid_live.render.codec import encode
from mermaid_live.services.history_service import DiagramRecord, HistoryService
from mermaid_live.services.storage_service import (
    LAST_DESCRIPTION_KEY,
    LAST_UPDATED_KEY,
    KeyValueStorage,
)

logger = logging.getLogger(__name__)


class DiagramStatus(str, Enum):
    """Phases of the active diagram."""

    LOADING = "loading"
    EMPTY = "empty"
    INVALID = "invalid"
    RENDERING = "rendering"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ActiveState:
    """Snapshot of what is on screen.

    ``record`` is only meaningful when ``status`` is READY and may still be
    None there: a diagram restored from the last session that is no longer in
    the history is shown as "not saved".
    """

    status: DiagramStatus
    description: Optional[str] = None
    token: Optional[str] = None
    record: Optional[DiagramRecord] = None
    reason: Optional[str] = None
    rendered_at: Optional[datetime] = None

    @property
    def is_ready(self) -> bool:
        return self.status is DiagramStatus.READY


Listener = Callable[[ActiveState], None]


class ActiveDiagram:
    """In-memory state machine driven by the watcher and by user commands."""

    def __init__(
        self,
        history: HistoryService,
        storage: KeyValueStorage,
        theme: str = "default",
    ) -> None:
        self.history = history
        self.storage = storage
        self.theme = theme
        self._state = ActiveState(status=DiagramStatus.LOADING)
        self._listeners: List[Listener] = []
        self._restored = False

    @property
    def state(self) -> ActiveState:
        return self._state

    @property
    def restored(self) -> bool:
        return self._restored

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener`` with every new state."""
        self._listeners.append(listener)

    # Transitions --------------------------------------------------------------
    def mark_loading(self) -> None:
        self._set(ActiveState(status=DiagramStatus.LOADING))

    def mark_empty(self) -> None:
        self._set(ActiveState(status=DiagramStatus.EMPTY))

    def mark_invalid(self) -> None:
        # Unrelated clipboard text never hides a diagram that rendered fine.
        if self._state.is_ready:
            return
        self._set(ActiveState(status=DiagramStatus.INVALID))

    def mark_rendering(self, description: str) -> None:
        self._set(ActiveState(status=DiagramStatus.RENDERING, description=description))

    def mark_ready(
        self,
        description: str,
        token: str,
        record: Optional[DiagramRecord],
        rendered_at: Optional[datetime] = None,
    ) -> None:
        self._set(
            ActiveState(
                status=DiagramStatus.READY,
                description=description,
                token=token,
                record=record,
                rendered_at=rendered_at,
            )
        )

    def mark_failed(self, reason: str) -> None:
        self._set(ActiveState(status=DiagramStatus.FAILED, reason=reason))

    # Startup ------------------------------------------------------------------
    async def ensure_restored(self) -> ActiveState:
        """Run :meth:`restore` once per instance; later calls return the current state."""
        if self._restored:
            return self._state
        return await self.restore()

    async def restore(self) -> ActiveState:
        """Show the diagram from the previous session, if any."""
        self._restored = True
        self.mark_loading()
        try:
            await self.history.migrate()
            description = await self.storage.get(LAST_DESCRIPTION_KEY)
            if not description:
                self.mark_empty()
                return self._state
            stamp = await self.storage.get(LAST_UPDATED_KEY)
            token = encode(description, self.theme)
            record = await self.history.find_by_description(description)
        except Exception:  # noqa: BLE001
            logger.exception("Could not restore the last diagram")
            self.mark_empty()
            return self._state

        self.mark_ready(description, token, record, _parse_stamp(stamp))
        return self._state

    # Commands -----------------------------------------------------------------
    async def save_now(self) -> Optional[DiagramRecord]:
        """Store the active diagram in the history."""
        current = self._state
        if not current.is_ready or current.description is None:
            logger.debug("Ignoring save while %s", current.status.value)
            return None
        record = await self.history.upsert_by_description(current.description)
        self._apply_record(current, record)
        return record

    async def rename(self, new_name: str) -> Optional[DiagramRecord]:
        current = self._state
        name = (new_name or "").strip()
        if not current.is_ready or current.record is None or not name:
            return None
        record = await self.history.rename(current.record.id, name)
        if record is not None:
            self._apply_record(current, record)
        return record

    async def toggle_pin(self) -> Optional[DiagramRecord]:
        current = self._state
        if not current.is_ready or current.record is None:
            return None
        record = await self.history.toggle_pin(current.record.id)
        if record is not None:
            self._apply_record(current, record)
        return record

    # Internal helpers ---------------------------------------------------------
    def _apply_record(self, before: ActiveState, record: DiagramRecord) -> None:
        # The store call may have been suspended while a new clipboard sample
        # replaced the diagram; only update the state it was issued against.
        current = self._state
        if not current.is_ready or current.description != before.description:
            return
        if record.description != current.description:
            return
        self._set(replace(current, record=record))

    def _set(self, state: ActiveState) -> None:
        previous = self._state.status
        self._state = state
        if previous is not state.status:
            logger.debug("Active diagram %s -> %s", previous.value, state.status.value)
        for listener in list(self._listeners):
            listener(state)


def _parse_stamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
