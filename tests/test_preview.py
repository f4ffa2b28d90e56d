"""PreviewClient tests."""

from __future__ import annotations

from io import BytesIO
from typing import List, Optional

import pytest
import requests
from PIL import Image

from mermaid_live.render.codec import encode
from mermaid_live.render.preview import PreviewClient, PreviewError


def _png_bytes() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 3), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


class DummyResponse:
    def __init__(self, content: bytes, status_code: int = 200) -> None:
        self.content = content
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class DummySession:
    def __init__(self, response: Optional[DummyResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.calls: List[tuple] = []

    def get(self, url: str, timeout: float):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def test_fetch_returns_image_from_render_url():
    session = DummySession(DummyResponse(_png_bytes()))
    client = PreviewClient("https://render.example", timeout=5.0, session=session)

    image = client.fetch("abc")

    assert image.size == (4, 3)
    assert session.calls == [("https://render.example/img/pako:abc", 5.0)]


def test_http_error_raises_preview_error():
    client = PreviewClient(session=DummySession(DummyResponse(b"", status_code=400)))

    with pytest.raises(PreviewError):
        client.fetch("abc")


def test_connection_error_raises_preview_error():
    client = PreviewClient(session=DummySession(error=requests.ConnectionError("offline")))

    with pytest.raises(PreviewError):
        client.fetch("abc")


def test_unreadable_body_raises_preview_error():
    client = PreviewClient(session=DummySession(DummyResponse(b"<html>syntax error</html>")))

    with pytest.raises(PreviewError):
        client.fetch("abc")


@pytest.mark.integration
def test_real_mermaid_ink_render():
    """Render a tiny diagram through the public mermaid.ink service."""
    client = PreviewClient(timeout=20.0)
    try:
        image = client.fetch(encode("graph TD\n  A --> B"))
    except PreviewError as exc:
        pytest.skip(f"mermaid.ink unreachable: {exc}")

    assert image.size[0] > 0 and image.size[1] > 0
