"""Cover image fetch + play-button overlay."""

from __future__ import annotations

import io
import logging
from typing import Protocol

import requests
from PIL import Image, ImageDraw

from vid2post.http import get_session

logger = logging.getLogger(__name__)

# Marker geometry in a 150x100 box: rounded rect (radius 25) + triangle.
MARKER_BOX = (150, 100)
MARKER_RADIUS = 25
MARKER_TRIANGLE = ((55, 25), (95, 50), (55, 75))
MARKER_FILL = (255, 0, 0, 204)  # rgba(255,0,0,0.8)
MARKER_GLYPH = (255, 255, 255, 255)
# Width the marker is drawn at on a 1280px wide image; scales linearly.
REFERENCE_WIDTH = 1280


class ImageFetcher(Protocol):
    def fetch(self, url: str) -> bytes: ...


class ImageCompositor(Protocol):
    def composite(self, base_image: bytes) -> bytes: ...


def thumbnail_url(source_id: str, template: str = "https://img.youtube.com/vi/{source_id}/maxresdefault.jpg") -> str:
    return template.format(source_id=source_id)


class HttpImageFetcher:
    def __init__(self, session: requests.Session | None = None, *, timeout: float = 30.0) -> None:
        self.session = session or get_session()
        self.timeout = timeout

    def fetch(self, url: str) -> bytes:
        logger.info(f"Fetching image: {url}")
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        if not response.content:
            raise RuntimeError(f"Empty image body from {url}")
        return response.content


class PlayButtonCompositor:
    """Draws a centred play button over an image and re-encodes it as JPEG."""

    def __init__(self, *, quality: int = 90) -> None:
        self.quality = quality

    def marker(self, image_width: int) -> Image.Image:
        scale = max(image_width, 1) / REFERENCE_WIDTH
        width = max(1, round(MARKER_BOX[0] * scale))
        height = max(1, round(MARKER_BOX[1] * scale))
        layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        draw.rounded_rectangle(
            (0, 0, width - 1, height - 1),
            radius=max(1, round(MARKER_RADIUS * scale)),
            fill=MARKER_FILL,
        )
        draw.polygon([(x * scale, y * scale) for x, y in MARKER_TRIANGLE], fill=MARKER_GLYPH)
        return layer

    def composite(self, base_image: bytes) -> bytes:
        with Image.open(io.BytesIO(base_image)) as img:
            base = img.convert("RGBA")

        marker = self.marker(base.width)
        offset = ((base.width - marker.width) // 2, (base.height - marker.height) // 2)
        base.alpha_composite(marker, dest=(max(0, offset[0]), max(0, offset[1])))

        out = io.BytesIO()
        base.convert("RGB").save(out, format="JPEG", quality=self.quality)
        logger.info("Play button overlay added successfully")
        return out.getvalue()
