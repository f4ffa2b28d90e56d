"""Diagram history tracking."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from mermaid_live.classification.diagram_types import auto_name
from mermaid_live.services.storage_service import HISTORY_KEY, KeyValueStorage, StoreError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 100

AutoNameFn = Callable[[str], str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(slots=True)
class DiagramRecord:
    """A diagram kept in the history collection."""

    id: str
    description: str
    display_name: str
    created_at: datetime
    last_accessed_at: datetime
    pinned: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "display_name": self.display_name,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "pinned": self.pinned,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagramRecord":
        """Build a record from its persisted form."""
        if not isinstance(data, dict):
            raise StoreError(f"Corrupt history entry: {data!r}")
        record_id = data.get("id")
        description = data.get("description")
        if not isinstance(record_id, str) or not isinstance(description, str):
            raise StoreError(f"History entry is missing id or description: {data!r}")

        created_at = _parse_timestamp(data.get("created_at"))
        last_accessed_at = _parse_timestamp(data.get("last_accessed_at"))
        created_at = created_at or last_accessed_at
        last_accessed_at = last_accessed_at or created_at
        if created_at is None or last_accessed_at is None:
            raise StoreError(f"History entry {record_id} has no usable timestamps")

        return cls(
            id=record_id,
            description=description,
            display_name=str(data.get("display_name") or ""),
            created_at=created_at,
            last_accessed_at=last_accessed_at,
            pinned=bool(data.get("pinned", False)),
        )


def sort_for_display(records: List[DiagramRecord]) -> List[DiagramRecord]:
    """Pinned records first, each group by most recent access."""
    ordered = sorted(records, key=lambda record: record.last_accessed_at, reverse=True)
    ordered.sort(key=lambda record: not record.pinned)
    return ordered


class HistoryService:
    """JSON-backed history of rendered diagrams.

    The collection is stored as a single JSON array under the ``history`` key,
    newest insertion first. Every read-modify-write holds ``_lock`` for its
    whole duration, including the suspended persistence write, so two
    mutations triggered concurrently (a clipboard save and a pin toggle, say)
    cannot overwrite each other's changes. Plain reads do not wait for the
    lock.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        max_items: int = DEFAULT_MAX_ITEMS,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.storage = storage
        self.max_items = max_items
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_id
        self._lock = asyncio.Lock()
        self._migrated = False

    # Migration ---------------------------------------------------------------
    async def migrate(self) -> bool:
        """Back-fill ``last_accessed_at`` on legacy records.

        Returns True when the stored collection had to be rewritten.
        """
        async with self._lock:
            return await self._migrate_locked()

    async def _migrate_locked(self) -> bool:
        raw = await self._load_raw()
        changed = False
        for entry in raw:
            if isinstance(entry, dict) and not entry.get("last_accessed_at"):
                entry["last_accessed_at"] = entry.get("created_at") or self._now().isoformat()
                changed = True
        if changed:
            await self.storage.set(HISTORY_KEY, json.dumps(raw, ensure_ascii=False))
            logger.info("Migrated %d history records", len(raw))
        self._migrated = True
        return changed

    async def _ensure_migrated(self) -> None:
        if not self._migrated:
            await self.migrate()

    # Reads --------------------------------------------------------------------
    async def list(self) -> List[DiagramRecord]:
        """Return the history in display order."""
        await self._ensure_migrated()
        return sort_for_display(await self._load())

    async def search(self, query: str) -> List[DiagramRecord]:
        """Filter the display list by a case-insensitive name match."""
        records = await self.list()
        needle = (query or "").strip().lower()
        if not needle:
            return records
        return [record for record in records if needle in record.display_name.lower()]

    async def get(self, record_id: str) -> Optional[DiagramRecord]:
        await self._ensure_migrated()
        return next((r for r in await self._load() if r.id == record_id), None)

    async def find_by_description(self, description: str) -> Optional[DiagramRecord]:
        """Read-only lookup by exact description."""
        await self._ensure_migrated()
        return next((r for r in await self._load() if r.description == description), None)

    # Mutations ----------------------------------------------------------------
    async def upsert_by_description(
        self, description: str, auto_name_fn: Optional[AutoNameFn] = None
    ) -> DiagramRecord:
        """Touch the record holding ``description`` or insert a new one."""
        async with self._lock:
            if not self._migrated:
                await self._migrate_locked()
            records = await self._load()
            now = self._now()

            current = next((r for r in records if r.description == description), None)
            if current is not None:
                current.last_accessed_at = now
            else:
                if auto_name_fn is not None:
                    name = auto_name_fn(description)
                else:
                    name = auto_name(description, now.astimezone())
                current = DiagramRecord(
                    id=self._id_factory(),
                    description=description,
                    display_name=name,
                    created_at=now,
                    last_accessed_at=now,
                )
                records.insert(0, current)
                logger.debug("Added history record %s (%s)", current.id, name)

            # Count-based eviction from the tail; pinned records are not exempt.
            del records[self.max_items:]
            await self._save(records)
            return current

    async def touch(self, record_id: str) -> Optional[DiagramRecord]:
        """Mark a record as just opened."""
        now = self._now()

        def _touch(record: DiagramRecord) -> None:
            record.last_accessed_at = now

        return await self._update(record_id, _touch)

    async def rename(self, record_id: str, new_name: str) -> Optional[DiagramRecord]:
        def _rename(record: DiagramRecord) -> None:
            record.display_name = new_name

        return await self._update(record_id, _rename)

    async def toggle_pin(self, record_id: str) -> Optional[DiagramRecord]:
        def _toggle(record: DiagramRecord) -> None:
            record.pinned = not record.pinned

        return await self._update(record_id, _toggle)

    async def delete(self, record_id: str) -> None:
        async with self._lock:
            if not self._migrated:
                await self._migrate_locked()
            records = await self._load()
            remaining = [record for record in records if record.id != record_id]
            await self._save(remaining)
            if len(remaining) != len(records):
                logger.debug("Deleted history record %s", record_id)

    # Internal helpers ---------------------------------------------------------
    def _now(self) -> datetime:
        return self._clock()

    async def _update(
        self, record_id: str, change: Callable[[DiagramRecord], None]
    ) -> Optional[DiagramRecord]:
        async with self._lock:
            if not self._migrated:
                await self._migrate_locked()
            records = await self._load()
            target = next((r for r in records if r.id == record_id), None)
            if target is None:
                return None
            change(target)
            await self._save(records)
            return target

    async def _load_raw(self) -> List[Any]:
        text = await self.storage.get(HISTORY_KEY)
        if not text:
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreError(f"History data is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise StoreError("History data must be a JSON array")
        return data

    async def _load(self) -> List[DiagramRecord]:
        return [DiagramRecord.from_dict(entry) for entry in await self._load_raw()]

    async def _save(self, records: List[DiagramRecord]) -> None:
        payload = json.dumps([record.to_dict() for record in records], ensure_ascii=False)
        await self.storage.set(HISTORY_KEY, payload)
