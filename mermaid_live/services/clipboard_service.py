"""Access to the operating system clipboard."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import pyperclip


class ClipboardUnavailable(RuntimeError):
    """Raised when the clipboard cannot be read or written."""


class ClipboardService:
    """Thin async wrapper around pyperclip.

    pyperclip shells out to xclip/pbpaste on some platforms, so calls run in a
    worker thread to keep the event loop responsive.
    """

    def __init__(
        self,
        paste: Optional[Callable[[], Optional[str]]] = None,
        copy: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._paste = paste or pyperclip.paste
        self._copy = copy or pyperclip.copy

    async def read(self) -> str:
        """Return the clipboard text, or an empty string when it holds none."""
        try:
            text = await asyncio.to_thread(self._paste)
        except (pyperclip.PyperclipException, OSError) as exc:
            raise ClipboardUnavailable(str(exc)) from exc
        return text or ""

    async def write(self, text: str) -> None:
        try:
            await asyncio.to_thread(self._copy, text)
        except (pyperclip.PyperclipException, OSError) as exc:
            raise ClipboardUnavailable(str(exc)) from exc
