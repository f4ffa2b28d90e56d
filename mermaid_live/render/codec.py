"""Encoding of Mermaid descriptions into mermaid.ink / mermaid.live tokens."""

from __future__ import annotations

import base64
import json
import zlib

TOKEN_PREFIX = "pako"
DEFAULT_RENDER_URL = "https://mermaid.ink"
DEFAULT_EDITOR_URL = "https://mermaid.live"


class CodecError(ValueError):
    """Raised when a description cannot be turned into a token."""


def encode(description: str, theme: str = "default") -> str:
    """Return the deflated, URL-safe base64 token for ``description``.

    The payload is the editor state object understood by both mermaid.ink and
    mermaid.live: the diagram code plus a JSON-encoded mermaid config.
    """
    if not isinstance(description, str):
        raise CodecError(f"Expected diagram text, got {type(description).__name__}")

    state = {
        "code": description,
        "mermaid": json.dumps({"theme": theme}, separators=(",", ":")),
    }
    serialized = json.dumps(state, separators=(",", ":"), ensure_ascii=False)
    try:
        raw = serialized.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise CodecError(f"Diagram text is not valid Unicode: {exc.reason}") from exc

    compressed = zlib.compress(raw, 9)
    return base64.urlsafe_b64encode(compressed).decode("ascii").rstrip("=")


def image_url(token: str, base_url: str = DEFAULT_RENDER_URL) -> str:
    """URL of the rendered PNG for ``token``."""
    return f"{base_url.rstrip('/')}/img/{TOKEN_PREFIX}:{token}"


def editor_url(token: str, base_url: str = DEFAULT_EDITOR_URL) -> str:
    """URL opening ``token`` in the live editor."""
    return f"{base_url.rstrip('/')}/edit#{TOKEN_PREFIX}:{token}"
