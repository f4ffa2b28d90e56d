"""Download rendered diagrams from mermaid.ink."""

from __future__ import annotations

from io import BytesIO
from typing import Any, Optional

import requests
from PIL import Image, UnidentifiedImageError

from mermaid_live.render.codec import DEFAULT_RENDER_URL, image_url


class PreviewError(RuntimeError):
    """Raised when the rendering service does not return a usable image."""


class PreviewClient:
    """Fetch PNG renders for encoded diagram tokens."""

    def __init__(
        self,
        base_url: str = DEFAULT_RENDER_URL,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._session = session or requests.Session()

    def url_for(self, token: str) -> str:
        return image_url(token, self.base_url)

    def fetch(self, token: str) -> Any:
        """Return the rendered diagram as a PIL image."""
        url = self.url_for(token)
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PreviewError(f"Rendering service request failed: {exc}") from exc

        try:
            image = Image.open(BytesIO(response.content))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise PreviewError("Rendering service returned an unreadable image") from exc
        return image
