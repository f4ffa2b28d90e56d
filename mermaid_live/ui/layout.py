"""Gradio layout composition for the clipboard preview and the history browser."""

from __future__ import annotations

from typing import Any, Dict, Optional

try:
    import gradio as gr
except ImportError:  # pragma: no cover
    gr = None  # type: ignore

from config.settings import AppConfig
from mermaid_live.render.preview import PreviewClient
from mermaid_live.services.clipboard_service import ClipboardService
from mermaid_live.services.history_service import HistoryService
from mermaid_live.services.storage_service import StorageService
from mermaid_live.ui.callbacks import HISTORY_HEADERS, build_callbacks
from mermaid_live.watch.active_diagram import ActiveDiagram
from mermaid_live.watch.watcher import ClipboardWatcher


def build_services(config: AppConfig) -> Dict[str, Any]:
    """Wire the storage, history, state machine and watcher together."""
    storage = StorageService(config.storage_dir)
    history = HistoryService(storage, max_items=config.history_limit)
    active = ActiveDiagram(history, storage, theme=config.theme)
    clipboard = ClipboardService()
    watcher = ClipboardWatcher(
        clipboard,
        history,
        storage,
        active,
        interval=config.poll_interval,
        theme=config.theme,
    )
    preview = PreviewClient(config.render_base_url, timeout=config.preview_timeout)
    return {
        "storage": storage,
        "history": history,
        "active": active,
        "clipboard": clipboard,
        "watcher": watcher,
        "preview": preview,
    }


def build_app(config: AppConfig, services: Optional[Dict[str, Any]] = None) -> Any:
    """Compose and return the Gradio application."""
    if gr is None:
        raise RuntimeError("Gradio is not installed; install the project dependencies first.")

    services = services or build_services(config)
    callbacks_map = build_callbacks(
        config,
        history=services["history"],
        active=services["active"],
        watcher=services["watcher"],
        preview=services.get("preview"),
        clipboard=services.get("clipboard"),
    )

    async def refresh_history(query: str):
        rows, choices = await callbacks_map["on_refresh_history"](query)
        return rows, gr.update(choices=choices, value=None)

    with gr.Blocks(title="Mermaid Live Preview") as demo:
        gr.Markdown("## Mermaid Live Preview")

        with gr.Tab("Preview"):
            with gr.Row():
                with gr.Column(scale=3):
                    status = gr.Markdown("# ⏳ Loading...")
                    diagram = gr.Image(label="Diagram", type="pil", interactive=False)
                with gr.Column(scale=2):
                    details = gr.Markdown()
                    current_name = gr.Textbox(label="Name", placeholder="Enter new name")
                    with gr.Row():
                        rename_btn = gr.Button("Rename")
                        pin_btn = gr.Button("Pin / Unpin")
                    with gr.Row():
                        save_btn = gr.Button("Save to History", variant="primary")
                        copy_btn = gr.Button("Copy Mermaid Code")
                    action_status = gr.Markdown()

            timer = gr.Timer(value=config.poll_interval)

        with gr.Tab("History") as history_tab:
            with gr.Row():
                search = gr.Textbox(label="Search", placeholder="Search diagrams by name...")
                refresh_btn = gr.Button("Refresh")
            table = gr.Dataframe(headers=HISTORY_HEADERS, interactive=False, wrap=True)
            with gr.Row():
                selected = gr.Dropdown(label="Diagram", choices=[], interactive=True)
                new_name = gr.Textbox(label="New name")
            with gr.Row():
                view_btn = gr.Button("View Diagram", variant="primary")
                history_pin_btn = gr.Button("Pin / Unpin")
                history_rename_btn = gr.Button("Rename")
                delete_btn = gr.Button("Delete", variant="stop")
            history_status = gr.Markdown()
            with gr.Row():
                with gr.Column(scale=3):
                    history_heading = gr.Markdown()
                    history_image = gr.Image(label="Diagram", type="pil", interactive=False)
                with gr.Column(scale=2):
                    history_details = gr.Markdown()

        preview_outputs = [status, diagram, details]
        demo.load(fn=callbacks_map["on_load"], inputs=None, outputs=preview_outputs)
        timer.tick(fn=callbacks_map["on_tick"], inputs=None, outputs=preview_outputs)

        save_btn.click(fn=callbacks_map["on_save"], outputs=[action_status, details])
        rename_btn.click(
            fn=callbacks_map["on_rename_current"],
            inputs=[current_name],
            outputs=[action_status, details],
        )
        pin_btn.click(fn=callbacks_map["on_toggle_pin_current"], outputs=[action_status, details])
        copy_btn.click(fn=callbacks_map["on_copy_code"], outputs=[action_status])

        history_tab.select(fn=refresh_history, inputs=[search], outputs=[table, selected])
        refresh_btn.click(fn=refresh_history, inputs=[search], outputs=[table, selected])
        search.submit(fn=refresh_history, inputs=[search], outputs=[table, selected])

        view_btn.click(
            fn=callbacks_map["on_view_history"],
            inputs=[selected],
            outputs=[history_heading, history_image, history_details],
        )
        history_pin_btn.click(
            fn=callbacks_map["on_toggle_pin"],
            inputs=[selected, search],
            outputs=[history_status, table],
        )
        history_rename_btn.click(
            fn=callbacks_map["on_rename"],
            inputs=[selected, new_name, search],
            outputs=[history_status, table],
        )
        delete_btn.click(
            fn=callbacks_map["on_delete"],
            inputs=[selected, search],
            outputs=[history_status, table],
        ).then(fn=refresh_history, inputs=[search], outputs=[table, selected])

    return demo
