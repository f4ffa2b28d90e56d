"""Application entry point for the Mermaid Live preview tool."""

from __future__ import annotations

from typing import Optional

from config.settings import load_config
from mermaid_live.ui.layout import build_app
from mermaid_live.utils.logging import setup_logging


def main(config_path: Optional[str] = None) -> None:
    """Load configuration and launch the Gradio interface."""
    config = load_config(config_path)
    logger = setup_logging(config)
    logger.info("History stored in %s", config.storage_dir)
    app = build_app(config)
    app.queue()
    app.launch(
        share=False,
        inbrowser=False,
        server_name=config.metadata.get("server_name"),
        server_port=config.metadata.get("server_port"),
    )


if __name__ == "__main__":
    main()
