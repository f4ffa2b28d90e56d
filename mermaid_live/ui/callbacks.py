"""Callback implementations for the Gradio interface."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from config.settings import AppConfig
from mermaid_live.classification.diagram_types import DIAGRAM_KEYWORDS, classify, describe
from mermaid_live.render.codec import editor_url, encode, image_url
from mermaid_live.render.preview import PreviewClient, PreviewError
from mermaid_live.services.clipboard_service import ClipboardService, ClipboardUnavailable
from mermaid_live.services.history_service import DiagramRecord, HistoryService
from mermaid_live.utils.cache import TTLCache
from mermaid_live.watch.active_diagram import ActiveDiagram, ActiveState, DiagramStatus
from mermaid_live.watch.watcher import ClipboardWatcher

logger = logging.getLogger(__name__)

HISTORY_HEADERS = ["Name", "Type", "Pinned", "Created", "Last opened", "ID"]

EXAMPLE_DIAGRAM = "graph TD\n    A[Start] --> B[Process]\n    B --> C[End]"

EMPTY_MARKDOWN = (
    "# 📋 Watching Clipboard...\n\n"
    "Copy some Mermaid code and it will be rendered here automatically.\n\n"
    "### Example to try:\n"
    f"```\n{EXAMPLE_DIAGRAM}\n```"
)

INVALID_MARKDOWN = (
    "# 🤔 That doesn't look like Mermaid...\n\n"
    "Your clipboard contains text, but it doesn't match any known Mermaid diagram type. "
    "Still watching: copy valid Mermaid code and it will render automatically.\n\n"
    "### Supported diagram types:\n"
    + "\n".join(f"- `{keyword}`" for keyword in DIAGRAM_KEYWORDS)
)

LOADING_MARKDOWN = "# ⏳ Loading..."
RENDERING_MARKDOWN = "# ⏳ Rendering your diagram...\n\nThis will only take a moment!"

PreviewOutput = Tuple[str, Optional[Any], str]


def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.astimezone().strftime("%b %d, %Y %H:%M")


def _history_rows(records: List[DiagramRecord]) -> List[List[str]]:
    return [
        [
            record.display_name,
            classify(record.description),
            "📌" if record.pinned else "",
            _format_time(record.created_at),
            _format_time(record.last_accessed_at),
            record.id,
        ]
        for record in records
    ]


def build_callbacks(
    config: AppConfig,
    history: HistoryService,
    active: ActiveDiagram,
    watcher: ClipboardWatcher,
    preview: Optional[PreviewClient] = None,
    clipboard: Optional[ClipboardService] = None,
) -> dict[str, Any]:
    """Return a dictionary of Gradio callback functions."""

    images: TTLCache[str, Any] = TTLCache(ttl_seconds=config.preview_cache_ttl)
    failures: TTLCache[str, str] = TTLCache(ttl_seconds=30.0)

    async def _load_image(token: str) -> Tuple[Optional[Any], Optional[str]]:
        if preview is None:
            return None, None
        cached = images.get(token)
        if cached is not None:
            return cached, None
        failed = failures.get(token)
        if failed is not None:
            return None, failed
        try:
            image = await asyncio.to_thread(preview.fetch, token)
        except PreviewError as exc:
            logger.warning("Preview download failed: %s", exc)
            failures.set(token, str(exc))
            return None, str(exc)
        images.set(token, image)
        return image, None

    def _details_markdown(
        description: str,
        token: str,
        record: Optional[DiagramRecord],
        rendered_at: Optional[datetime],
    ) -> str:
        info = describe(description)
        lines = []
        if record is not None:
            lines.append(f"**Name:** {record.display_name}")
            lines.append("**Status:** ✅ Saved in history" + (" · 📌 Pinned" if record.pinned else ""))
        else:
            lines.append("**Status:** ❌ Not saved")
        lines.append(f"**Type:** {info['type']}")
        lines.append(f"**Lines:** {info['lines']} · **Characters:** {info['characters']}")
        if rendered_at is not None:
            lines.append(f"**Rendered:** {_format_time(rendered_at)}")
        lines.append(
            f"[Edit in Mermaid Live]({editor_url(token, config.editor_base_url)})"
            f" · [Open image]({image_url(token, config.render_base_url)})"
        )
        return "\n\n".join(lines)

    async def _render(state: ActiveState) -> PreviewOutput:
        if state.status is DiagramStatus.LOADING:
            return LOADING_MARKDOWN, None, ""
        if state.status is DiagramStatus.EMPTY:
            return EMPTY_MARKDOWN, None, ""
        if state.status is DiagramStatus.INVALID:
            return INVALID_MARKDOWN, None, ""
        if state.status is DiagramStatus.RENDERING:
            return RENDERING_MARKDOWN, None, ""
        if state.status is DiagramStatus.FAILED:
            return f"# ⚠️ Error\n\n{state.reason}", None, ""

        if state.description is None or state.token is None:
            logger.warning("Ready state without a diagram; showing the empty view")
            return EMPTY_MARKDOWN, None, ""
        title = state.record.display_name if state.record is not None else "Mermaid Diagram"
        image, error = await _load_image(state.token)
        heading = f"# {title}"
        if error:
            heading += f"\n\nPreview unavailable: {error}"
        details = _details_markdown(state.description, state.token, state.record, state.rendered_at)
        return heading, image, details

    async def on_load() -> PreviewOutput:
        # Page loads share one state machine; only the first restores.
        await active.ensure_restored()
        return await _render(active.state)

    async def on_tick() -> PreviewOutput:
        await watcher.tick()
        return await _render(active.state)

    async def on_save() -> Tuple[str, str]:
        try:
            record = await active.save_now()
        except Exception as exc:  # noqa: BLE001
            return f"Save failed: {exc}", ""
        if record is None:
            return "Nothing to save yet.", ""
        _, _, details = await _render(active.state)
        return f"Saved to history as “{record.display_name}”.", details

    async def on_rename_current(name: str) -> Tuple[str, str]:
        if not (name or "").strip():
            return "Enter a name first.", ""
        try:
            record = await active.rename(name)
        except Exception as exc:  # noqa: BLE001
            return f"Rename failed: {exc}", ""
        if record is None:
            return "Save the diagram before renaming it.", ""
        _, _, details = await _render(active.state)
        return "Renamed successfully.", details

    async def on_toggle_pin_current() -> Tuple[str, str]:
        try:
            record = await active.toggle_pin()
        except Exception as exc:  # noqa: BLE001
            return f"Pin failed: {exc}", ""
        if record is None:
            return "Save the diagram before pinning it.", ""
        _, _, details = await _render(active.state)
        return ("Pinned." if record.pinned else "Unpinned."), details

    async def on_copy_code() -> str:
        state = active.state
        if not state.is_ready or state.description is None:
            return "No diagram to copy."
        if clipboard is None:
            return "Clipboard access is not configured."
        try:
            await clipboard.write(state.description)
        except ClipboardUnavailable as exc:
            return f"Copy failed: {exc}"
        return "Mermaid code copied."

    async def on_refresh_history(query: str = "") -> Tuple[List[List[str]], List[Tuple[str, str]]]:
        records = await history.search(query)
        choices = [(record.display_name, record.id) for record in records]
        return _history_rows(records), choices

    async def on_view_history(record_id: str) -> PreviewOutput:
        if not record_id:
            return "Select a diagram first.", None, ""
        record = await history.touch(record_id)
        if record is None:
            return "That diagram is no longer in the history.", None, ""
        try:
            token = encode(record.description, config.theme)
        except Exception as exc:  # noqa: BLE001
            return f"# ⚠️ Error\n\n{exc}", None, ""
        image, error = await _load_image(token)
        heading = f"# {record.display_name}"
        if error:
            heading += f"\n\nPreview unavailable: {error}"
        details = _details_markdown(record.description, token, record, None)
        details += f"\n\n```\n{record.description}\n```"
        return heading, image, details

    async def on_toggle_pin(record_id: str, query: str = "") -> Tuple[str, List[List[str]]]:
        if not record_id:
            return "Select a diagram first.", (await on_refresh_history(query))[0]
        record = await history.toggle_pin(record_id)
        rows, _ = await on_refresh_history(query)
        if record is None:
            return "That diagram is no longer in the history.", rows
        return ("Pinned." if record.pinned else "Unpinned."), rows

    async def on_rename(record_id: str, name: str, query: str = "") -> Tuple[str, List[List[str]]]:
        cleaned = (name or "").strip()
        if not record_id or not cleaned:
            return "Select a diagram and enter a name.", (await on_refresh_history(query))[0]
        record = await history.rename(record_id, cleaned)
        rows, _ = await on_refresh_history(query)
        if record is None:
            return "That diagram is no longer in the history.", rows
        return "Renamed successfully.", rows

    async def on_delete(record_id: str, query: str = "") -> Tuple[str, List[List[str]]]:
        if not record_id:
            return "Select a diagram first.", (await on_refresh_history(query))[0]
        await history.delete(record_id)
        rows, _ = await on_refresh_history(query)
        return "Deleted from history.", rows

    return {
        "on_load": on_load,
        "on_tick": on_tick,
        "on_save": on_save,
        "on_rename_current": on_rename_current,
        "on_toggle_pin_current": on_toggle_pin_current,
        "on_copy_code": on_copy_code,
        "on_refresh_history": on_refresh_history,
        "on_view_history": on_view_history,
        "on_toggle_pin": on_toggle_pin,
        "on_rename": on_rename,
        "on_delete": on_delete,
    }
