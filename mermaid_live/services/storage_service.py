"""Key-value persistence backed by small text files."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

HISTORY_KEY = "history"
LAST_DESCRIPTION_KEY = "last-description"
LAST_UPDATED_KEY = "last-updated-at"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


class StoreError(RuntimeError):
    """Raised when persisted state cannot be read or written."""


class KeyValueStorage(Protocol):
    """Capability consumed by the history service and the watcher."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


class StorageService:
    """Persist each key as one UTF-8 file under ``storage_dir``.

    Writes go to a temporary file in the same directory which then replaces the
    target, so a reader never observes a half written value.
    """

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = Path(storage_dir)

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StoreError(f"Invalid storage key: {key!r}")
        return self.storage_dir / f"{key}.txt"

    async def get(self, key: str) -> Optional[str]:
        """Return the stored text or None when the key was never written."""
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def set(self, key: str, value: str) -> None:
        """Atomically replace the value stored under ``key``."""
        await asyncio.to_thread(self._write, self.path_for(key), value)
        logger.debug("Stored %s (%d chars)", key, len(value))

    # Internal helpers ---------------------------------------------------------
    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreError(f"Failed to read {path.name}: {exc}") from exc

    def _write(self, path: Path, value: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fp:
                    fp.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreError(f"Failed to write {path.name}: {exc}") from exc
