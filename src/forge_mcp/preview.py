"""Raster preview of a rendered board."""

from __future__ import annotations

import base64
import io
import logging
import re

from .render import RenderResult

logger = logging.getLogger(__name__)

DEFAULT_ACCENT = "#2563EB"
LINE_HEIGHT = 18
MARGIN = 12
MIN_WIDTH = 480
CHAR_WIDTH = 7

REF_PATTERN = re.compile(r"^(\s*)(@e\d+) ")


def render_preview(result: RenderResult, accent: str | None = None) -> str:
    """Draw the board's lines onto a PNG and return it base64-encoded.

    Refs at the start of a line (``@e3``) get a filled label in the accent
    color so the picture can be matched against the text snapshot.
    """
    from PIL import Image, ImageColor, ImageDraw, ImageFont

    try:
        color = ImageColor.getrgb(accent or DEFAULT_ACCENT)
    except ValueError:
        logger.debug("Unusable accent color %r, using default", accent)
        color = ImageColor.getrgb(DEFAULT_ACCENT)

    font: ImageFont.FreeTypeFont | ImageFont.ImageFont
    try:
        font = ImageFont.truetype("DejaVuSansMono.ttf", 12)
    except OSError:
        font = ImageFont.load_default()

    lines = result.lines or [""]
    width = max(MIN_WIDTH, max(len(line) for line in lines) * CHAR_WIDTH + 2 * MARGIN)
    height = len(lines) * LINE_HEIGHT + 2 * MARGIN + 6
    img = Image.new("RGB", (width, height), "white")
    draw = ImageDraw.Draw(img)
    draw.rectangle((0, 0, width, 4), fill=color)

    y = MARGIN
    for index, line in enumerate(lines):
        x = MARGIN
        match = REF_PATTERN.match(line)
        if match:
            indent, ref = match.groups()
            x += len(indent) * CHAR_WIDTH
            text_bbox = draw.textbbox((0, 0), ref, font=font)
            tw = text_bbox[2] - text_bbox[0]
            th = text_bbox[3] - text_bbox[1]
            draw.rectangle((x, y, x + tw + 4, y + th + 4), fill=color)
            draw.text((x + 2, y), ref, fill="white", font=font)
            x += tw + 10
            line = line[match.end():]
        fill = color if index == 0 else "black"
        draw.text((x, y), line, fill=fill, font=font)
        y += LINE_HEIGHT

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode()
