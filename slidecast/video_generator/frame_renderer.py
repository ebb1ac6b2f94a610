import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from ..models import Slide

logger = logging.getLogger(__name__)

BACKGROUND = (15, 23, 42)  # #0f172a
GRADIENT_TOP = (30, 41, 59)  # #1e293b
ACCENT = (56, 189, 248)  # #38bdf8
RULE = (51, 65, 85)  # #334155
BODY = (241, 245, 249)  # #f1f5f9
NOTES = (148, 163, 184)  # #94a3b8
MARKER = (71, 85, 105)  # #475569
ELLIPSIS = "\u2026"

REGULAR_FONTS = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
)
BOLD_FONTS = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
)

# Layout constants for a 720 px tall canvas; scaled with the canvas height
MARGIN_X = 80
TITLE_BASELINE = 120
RULE_Y = 150
RULE_HEIGHT = 4
BODY_TOP = 240
BULLET_STEP = 60
BULLET_TEXT_X = 120
NOTES_STEP = 45
MARKER_INSET_Y = 60
ACCENT_RADIUS = 400


def text_width(font: ImageFont.FreeTypeFont, text: str) -> float:
    return font.getlength(text)


def fit_text(text: str, font: ImageFont.FreeTypeFont, max_width: float) -> str:
    """Truncate ``text`` with an ellipsis so it is no wider than ``max_width``"""
    if text_width(font, text) <= max_width:
        return text
    trimmed = text
    while trimmed and text_width(font, trimmed + ELLIPSIS) > max_width:
        trimmed = trimmed[:-1]
    trimmed = trimmed.rstrip()
    return trimmed + ELLIPSIS if trimmed else ""


def wrap_text(text: str, font: ImageFont.FreeTypeFont, max_width: float) -> List[str]:
    """
    Greedily wrap text into lines no wider than ``max_width``

    Lines break at whitespace. A word wider than a full line (including
    runs of CJK text without spaces) is broken between characters. Only a
    single glyph wider than ``max_width`` can exceed it.
    """
    lines: List[str] = []
    line = ""
    for word in text.split():
        candidate = f"{line} {word}" if line else word
        if text_width(font, candidate) <= max_width:
            line = candidate
            continue
        if line:
            lines.append(line)
            line = ""
        if text_width(font, word) <= max_width:
            line = word
            continue
        for char in word:
            if not line or text_width(font, line + char) <= max_width:
                line += char
            else:
                lines.append(line)
                line = char
    if line:
        lines.append(line)
    return lines


class FrameRenderer:
    """Render one video frame per slide"""

    def __init__(
        self,
        max_lines: int = 5,
        font_paths: Sequence[str] = REGULAR_FONTS,
        bold_font_paths: Sequence[str] = BOLD_FONTS,
    ):
        """
        Args:
            max_lines: Wrapped narration lines drawn on the synthesized layout
            font_paths: TrueType fonts tried in order for body text
            bold_font_paths: TrueType fonts tried in order for titles and markers
        """
        self.max_lines = max_lines
        self.font_paths = tuple(font_paths)
        self.bold_font_paths = tuple(bold_font_paths)
        self._fonts: Dict[Tuple[int, bool], ImageFont.FreeTypeFont] = {}

    def font(self, size: int, bold: bool = False) -> ImageFont.FreeTypeFont:
        size = max(1, size)
        key = (size, bold)
        if key not in self._fonts:
            self._fonts[key] = self._load_font(size, bold)
        return self._fonts[key]

    def _load_font(self, size: int, bold: bool) -> ImageFont.FreeTypeFont:
        for path in self.bold_font_paths if bold else self.font_paths:
            try:
                return ImageFont.truetype(path, size=size)
            except OSError:
                continue
        logger.debug(f"No TrueType font found for size {size}, using Pillow default")
        return ImageFont.load_default(size=size)

    def render(self, slide: Slide, canvas_size: Tuple[int, int]) -> Image.Image:
        """
        Render a slide into an RGB frame of ``canvas_size``

        Slides with a source image are letterboxed; all others get the
        generated title/bullets/narration layout.
        """
        width, height = canvas_size
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid canvas size: {canvas_size}")
        if slide.source_image is not None:
            return self._render_passthrough(slide.source_image, canvas_size)
        return self._render_layout(slide, canvas_size)

    def _render_passthrough(self, image: Image.Image, canvas_size: Tuple[int, int]) -> Image.Image:
        width, height = canvas_size
        frame = Image.new("RGB", canvas_size, BACKGROUND)

        if image.mode != "RGB":
            image = image.convert("RGB")
        img_w, img_h = image.size
        scale = min(width / img_w, height / img_h)
        new_w = max(1, min(width, round(img_w * scale)))
        new_h = max(1, min(height, round(img_h * scale)))

        resized = image.resize((new_w, new_h), Image.Resampling.LANCZOS)
        frame.paste(resized, ((width - new_w) // 2, (height - new_h) // 2))
        return frame

    def _gradient(self, canvas_size: Tuple[int, int]) -> Image.Image:
        width, height = canvas_size
        ramp = np.linspace(0.0, 1.0, height, dtype=np.float64)[:, None]
        top = np.array(GRADIENT_TOP, dtype=np.float64)
        bottom = np.array(BACKGROUND, dtype=np.float64)
        rows = np.rint(top + (bottom - top) * ramp).astype(np.uint8)
        pixels = np.broadcast_to(rows[:, None, :], (height, width, 3))
        return Image.fromarray(np.ascontiguousarray(pixels), "RGB")

    def _render_layout(self, slide: Slide, canvas_size: Tuple[int, int]) -> Image.Image:
        width, height = canvas_size
        scale = height / 720.0

        def px(value: float) -> int:
            return int(round(value * scale))

        frame = self._gradient(canvas_size).convert("RGBA")

        # Faint accent disc centred on the top-right corner
        overlay = Image.new("RGBA", canvas_size, (0, 0, 0, 0))
        radius = px(ACCENT_RADIUS)
        ImageDraw.Draw(overlay).ellipse(
            (width - radius, -radius, width + radius, radius), fill=ACCENT + (13,)
        )
        frame = Image.alpha_composite(frame, overlay).convert("RGB")
        draw = ImageDraw.Draw(frame)

        margin = px(MARGIN_X)
        text_area = width - 2 * margin

        title_font = self.font(px(48), bold=True)
        draw.text(
            (margin, px(TITLE_BASELINE)),
            fit_text(slide.title, title_font, text_area),
            font=title_font,
            fill=ACCENT,
            anchor="ls",
        )
        draw.rectangle(
            (margin, px(RULE_Y), margin + text_area - 1, px(RULE_Y) + max(1, px(RULE_HEIGHT)) - 1),
            fill=RULE,
        )

        marker_y = height - px(MARKER_INSET_Y)
        if slide.content:
            body_font = self.font(px(28))
            bullet_x = px(BULLET_TEXT_X)
            for i, entry in enumerate(slide.content):
                y = px(BODY_TOP + i * BULLET_STEP)
                if y > marker_y - px(BULLET_STEP) / 2:
                    break
                draw.text((margin, y), "\u2022", font=body_font, fill=ACCENT, anchor="ls")
                draw.text(
                    (bullet_x, y),
                    fit_text(entry, body_font, width - bullet_x - margin),
                    font=body_font,
                    fill=BODY,
                    anchor="ls",
                )
        else:
            notes_font = self.font(px(24))
            lines = wrap_text(slide.notes or "", notes_font, text_area)
            for i, line in enumerate(lines[: self.max_lines]):
                draw.text(
                    (margin, px(BODY_TOP + i * NOTES_STEP)),
                    line,
                    font=notes_font,
                    fill=NOTES,
                    anchor="ls",
                )

        marker_font = self.font(px(20), bold=True)
        draw.text(
            (width - margin, marker_y),
            f"PAGE {slide.page_index + 1}",
            font=marker_font,
            fill=MARKER,
            anchor="rs",
        )
        return frame

    def wrapped_lines(self, slide: Slide, canvas_size: Tuple[int, int]) -> List[str]:
        """Narration lines the synthesized layout would draw for ``slide``"""
        width, height = canvas_size
        scale = height / 720.0
        margin = int(round(MARGIN_X * scale))
        font = self.font(int(round(24 * scale)))
        return wrap_text(slide.notes or "", font, width - 2 * margin)[: self.max_lines]
