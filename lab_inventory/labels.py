"""
Printable labels: QR code of the item payload, the item name, its id in
small print and an optional stock badge, composed into a single fixed-size image.

SVG is the primary output. PNG is the same layout drawn with Pillow at
twice the resolution.
"""
import io
from dataclasses import dataclass
from typing import Callable, List, Optional

import qrcode
from markupsafe import escape
from PIL import Image, ImageDraw, ImageFont
from qrcode.exceptions import DataOverflowError

from .errors import EncodingFailure
from .logger import get_logger
from .status import StockStatus

logger = get_logger(__name__)

# ---------- Layout ----------
LABEL_W = 340
LABEL_H = 360
QR_SIZE = 220
QR_X = (LABEL_W - QR_SIZE) / 2
QR_Y = 20
TEXT_MARGIN = 20
TEXT_WIDTH = LABEL_W - 2 * TEXT_MARGIN
NAME_FONT = 16
NAME_LINE_H = 20
CAPTION_FONT = 11
CAPTION_LINE_H = 16
BADGE_FONT = 12
BADGE_PAD_X = 10
BADGE_PAD_Y = 4
TAG_FONT = 12
RASTER_SCALE = 2
TAGLINE = "Low in Stock? Scan to notify manager"
FONT_FAMILY = "Inter,system-ui,Segoe UI,Roboto,Arial"
ELLIPSIS = "…"

# Rough advance widths of a bold proportional sans, as fractions of the font size.
NARROW_GLYPHS = frozenset("fijlrtI!|.,:;'()[] ")
WIDE_GLYPHS = frozenset("MWmw@%")

PALETTE = {
    StockStatus.LOW: ("#fee2e2", "#b91c1c"),
    StockStatus.OK: ("#dcfce7", "#15803d"),
}

SVG_MIMETYPE = "image/svg+xml"
PNG_MIMETYPE = "image/png"
FORMATS = ("svg", "png")


@dataclass
class LabelArtifact:
    content: bytes
    mimetype: str
    fmt: str
    encoded: bool = True


def _glyph_ratio(ch: str) -> float:
    if ch in NARROW_GLYPHS:
        return 0.34
    if ch in WIDE_GLYPHS:
        return 0.92
    if ch.isupper() or ch.isdigit():
        return 0.68
    return 0.58


def text_width(text: str, font_size: float) -> float:
    return sum(_glyph_ratio(ch) for ch in text) * font_size


def _name_width(text: str) -> float:
    return text_width(text, NAME_FONT)


def _chunks(word: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    parts, current = [], ""
    for ch in word:
        if current and measure(current + ch) > max_width:
            parts.append(current)
            current = ch
        else:
            current += ch
    parts.append(current)
    return parts


def _ellipsize(words: List[str], max_width: float, measure: Callable[[str], float]) -> str:
    # Drop trailing words until the ellipsis fits; a single oversized word is cut.
    while words:
        candidate = " ".join(words) + ELLIPSIS
        if measure(candidate) <= max_width:
            return candidate
        if len(words) == 1:
            word = words[0]
            while word and measure(word + ELLIPSIS) > max_width:
                word = word[:-1]
            return word + ELLIPSIS
        words = words[:-1]
    return ELLIPSIS


def wrap_name(name: str, max_width: float = TEXT_WIDTH,
              measure: Optional[Callable[[str], float]] = None,
              max_lines: int = 2) -> List[str]:
    """
    Greedy word wrap into at most ``max_lines`` lines no wider than
    ``max_width`` as reported by ``measure`` (the SVG estimate by default;
    the PNG path passes the real font metrics). If the text does not fit,
    the last line is shortened at a word boundary and ends with an ellipsis.
    """
    measure = measure or _name_width
    words = []
    for word in (name or "").split():
        if measure(word) > max_width:
            words.extend(_chunks(word, max_width, measure))
        else:
            words.append(word)

    lines: List[List[str]] = []
    for word in words:
        if lines and measure(" ".join(lines[-1] + [word])) <= max_width:
            lines[-1].append(word)
        else:
            lines.append([word])

    if len(lines) <= max_lines:
        return [" ".join(line) for line in lines]

    kept = [" ".join(line) for line in lines[:max_lines - 1]]
    kept.append(_ellipsize(lines[max_lines - 1], max_width, measure))
    return kept


class QrRenderer:
    """Turns a payload into a QR module matrix (quiet zone included)."""

    def __init__(self, error_correction=qrcode.constants.ERROR_CORRECT_M,
                 max_version: int = 10, border: int = 4):
        # Version 10 keeps modules around 3px in the 220px box, still
        # readable by phone cameras at label size.
        self.error_correction = error_correction
        self.max_version = max_version
        self.border = border

    def matrix(self, payload: str) -> List[List[bool]]:
        if not payload:
            raise EncodingFailure("Empty payload")
        qr = qrcode.QRCode(
            version=None,
            error_correction=self.error_correction,
            border=self.border,
        )
        qr.add_data(payload)
        try:
            qr.make(fit=True)
        except (DataOverflowError, ValueError) as e:
            raise EncodingFailure(str(e)) from e
        if qr.version > self.max_version:
            raise EncodingFailure(
                f"Payload of {len(payload)} chars needs QR version {qr.version}"
            )
        return qr.get_matrix()


def matrix_path(matrix: List[List[bool]]) -> str:
    """SVG path in module units, one rectangle per horizontal run."""
    parts = []
    for y, row in enumerate(matrix):
        x = 0
        n = len(row)
        while x < n:
            if not row[x]:
                x += 1
                continue
            start = x
            while x < n and row[x]:
                x += 1
            parts.append(f"M{start} {y}h{x - start}v1h{start - x}z")
    return "".join(parts)


class LabelSynthesizer:
    def __init__(self, renderer: Optional[QrRenderer] = None):
        self.renderer = renderer or QrRenderer()

    def synthesize(self, payload: str, display_name: str,
                   status: Optional[StockStatus] = None,
                   fmt: str = "svg", caption: Optional[str] = None) -> LabelArtifact:
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported label format: {fmt}")
        try:
            matrix = self.renderer.matrix(payload)
        except EncodingFailure as e:
            logger.warning("Label barcode encoding failed (%s); rendering placeholder", e)
            matrix = None

        if fmt == "png":
            content = self._png(matrix, display_name, status, caption)
            return LabelArtifact(content, PNG_MIMETYPE, fmt, matrix is not None)
        lines = wrap_name(display_name)
        caption_line = self._caption(caption, lambda s: text_width(s, CAPTION_FONT), TEXT_WIDTH)
        content = self._svg(matrix, lines, status, caption_line).encode("utf-8")
        return LabelArtifact(content, SVG_MIMETYPE, fmt, matrix is not None)

    @staticmethod
    def _caption(caption, measure, max_width) -> Optional[str]:
        lines = wrap_name(caption, max_width, measure, max_lines=1)
        return lines[0] if lines else None

    def barcode(self, payload: str, fmt: str = "svg", size: int = 512) -> LabelArtifact:
        """Just the QR code, no text. Falls back to a marked placeholder."""
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported barcode format: {fmt}")
        try:
            matrix = self.renderer.matrix(payload)
        except EncodingFailure as e:
            logger.warning("Barcode encoding failed (%s); rendering placeholder", e)
            return self._barcode_placeholder(fmt, size)
        n = len(matrix)
        if fmt == "png":
            scale = max(1, size // n)
            img = Image.new("L", (n, n), 255)
            img.putdata([0 if cell else 255 for row in matrix for cell in row])
            img = img.resize((n * scale, n * scale), Image.NEAREST)
            buf = io.BytesIO()
            img.save(buf, format="PNG")
            return LabelArtifact(buf.getvalue(), PNG_MIMETYPE, "png")
        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" '
            f'viewBox="0 0 {n} {n}" shape-rendering="crispEdges">'
            f'<rect width="100%" height="100%" fill="#ffffff"/>'
            f'<path fill="#000000" d="{matrix_path(matrix)}"/></svg>'
        )
        return LabelArtifact(svg.encode("utf-8"), SVG_MIMETYPE, "svg")

    def _barcode_placeholder(self, fmt: str, size: int) -> LabelArtifact:
        if fmt == "png":
            img = Image.new("RGB", (size, size), "#fff7ed")
            draw = ImageDraw.Draw(img)
            draw.rectangle((0, 0, size - 1, size - 1), outline="#b91c1c", width=4)
            font = ImageFont.load_default(size=max(12, size // 12))
            width = draw.textlength("encoding failed", font=font)
            draw.text(((size - width) / 2, size / 2 - size // 24), "encoding failed",
                      font=font, fill="#b91c1c")
            buf = io.BytesIO()
            img.save(buf, format="PNG")
            return LabelArtifact(buf.getvalue(), PNG_MIMETYPE, "png", encoded=False)
        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" '
            f'viewBox="0 0 {size} {size}">'
            f'<rect width="100%" height="100%" fill="#fff7ed" stroke="#b91c1c" stroke-width="4"/>'
            f'<text class="encoding-failed" x="{size / 2:g}" y="{size / 2:g}" '
            f'font-family="{FONT_FAMILY}" font-size="{max(12, size // 12)}" fill="#b91c1c" '
            f'text-anchor="middle">encoding failed</text></svg>'
        )
        return LabelArtifact(svg.encode("utf-8"), SVG_MIMETYPE, "svg", encoded=False)

    # ---------- SVG ----------
    def _svg(self, matrix, lines: List[str], status: Optional[StockStatus],
             caption: Optional[str] = None) -> str:
        out = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{LABEL_W}" height="{LABEL_H}" '
            f'viewBox="0 0 {LABEL_W} {LABEL_H}">',
            '<rect width="100%" height="100%" fill="#ffffff"/>',
        ]
        if matrix is not None:
            scale = QR_SIZE / len(matrix)
            out.append(
                f'<path transform="translate({QR_X:g},{QR_Y}) scale({scale:.4f})" '
                f'shape-rendering="crispEdges" fill="#000000" d="{matrix_path(matrix)}"/>'
            )
        else:
            out.append(
                f'<rect x="{QR_X:g}" y="{QR_Y}" width="{QR_SIZE}" height="{QR_SIZE}" '
                f'fill="#fff7ed" stroke="#b91c1c" stroke-width="2" stroke-dasharray="6 4"/>'
            )
            out.append(
                f'<text class="encoding-failed" x="{LABEL_W / 2:g}" y="{QR_Y + QR_SIZE / 2:g}" '
                f'font-family="{FONT_FAMILY}" font-size="14" font-weight="600" fill="#b91c1c" '
                f'text-anchor="middle">encoding failed</text>'
            )

        y = QR_Y + QR_SIZE + 26
        for line in lines:
            out.append(
                f'<text class="name" x="{LABEL_W / 2:g}" y="{y}" font-family="{FONT_FAMILY}" '
                f'font-size="{NAME_FONT}" font-weight="600" fill="#111" '
                f'text-anchor="middle">{escape(line)}</text>'
            )
            y += NAME_LINE_H

        if caption:
            out.append(
                f'<text class="item-id" x="{LABEL_W / 2:g}" y="{y - 2}" font-family="{FONT_FAMILY}" '
                f'font-size="{CAPTION_FONT}" fill="#777" text-anchor="middle">{escape(caption)}</text>'
            )
            y += CAPTION_LINE_H

        if status is not None:
            fill, ink = PALETTE[status]
            label = status.value
            bw = text_width(label, BADGE_FONT) + 2 * BADGE_PAD_X
            bh = BADGE_FONT + 2 * BADGE_PAD_Y
            top = y - NAME_LINE_H + 12
            out.append(
                f'<g class="badge"><rect x="{(LABEL_W - bw) / 2:.1f}" y="{top}" '
                f'width="{bw:.1f}" height="{bh}" rx="6" ry="6" fill="{fill}"/>'
                f'<text x="{LABEL_W / 2:g}" y="{top + BADGE_PAD_Y + BADGE_FONT - 2}" '
                f'font-family="{FONT_FAMILY}" font-size="{BADGE_FONT}" font-weight="600" '
                f'fill="{ink}" text-anchor="middle">{escape(label)}</text></g>'
            )
            y = top + bh + 18

        out.append(
            f'<text class="tagline" x="{LABEL_W / 2:g}" y="{y}" font-family="{FONT_FAMILY}" '
            f'font-size="{TAG_FONT}" fill="#444" text-anchor="middle">{escape(TAGLINE)}</text>'
        )
        out.append("</svg>")
        return "\n".join(out)

    # ---------- PNG ----------
    def _png(self, matrix, display_name: str, status: Optional[StockStatus],
             caption: Optional[str] = None) -> bytes:
        k = RASTER_SCALE
        img = Image.new("RGB", (LABEL_W * k, LABEL_H * k), "#ffffff")
        draw = ImageDraw.Draw(img)
        name_font = ImageFont.load_default(size=NAME_FONT * k)
        small_font = ImageFont.load_default(size=TAG_FONT * k)
        caption_font = ImageFont.load_default(size=CAPTION_FONT * k)
        # Wrap against the font actually drawn, not the SVG estimate
        lines = wrap_name(display_name, TEXT_WIDTH * k, name_font.getlength)
        caption = self._caption(caption, caption_font.getlength, TEXT_WIDTH * k)
        box = (QR_X * k, QR_Y * k, (QR_X + QR_SIZE) * k, (QR_Y + QR_SIZE) * k)

        if matrix is not None:
            cell = QR_SIZE * k / len(matrix)
            for my, row in enumerate(matrix):
                for mx, dark in enumerate(row):
                    if dark:
                        x0 = box[0] + mx * cell
                        y0 = box[1] + my * cell
                        draw.rectangle((x0, y0, x0 + cell - 1, y0 + cell - 1), fill="#000000")
        else:
            draw.rectangle(box, fill="#fff7ed", outline="#b91c1c", width=2 * k)
            self._centered(draw, "encoding failed", (QR_Y + QR_SIZE / 2) * k, name_font, "#b91c1c")

        y = (QR_Y + QR_SIZE + 10) * k
        for line in lines:
            self._centered(draw, line, y, name_font, "#111111")
            y += NAME_LINE_H * k

        if caption:
            self._centered(draw, caption, y, caption_font, "#777777")
            y += CAPTION_LINE_H * k

        if status is not None:
            fill, ink = PALETTE[status]
            tw = draw.textlength(status.value, font=small_font)
            bw = tw + 2 * BADGE_PAD_X * k
            bh = (BADGE_FONT + 2 * BADGE_PAD_Y) * k
            top = y - 4 * k
            left = (LABEL_W * k - bw) / 2
            draw.rounded_rectangle((left, top, left + bw, top + bh), radius=6 * k, fill=fill)
            self._centered(draw, status.value, top + BADGE_PAD_Y * k, small_font, ink)
            y = top + bh + 8 * k

        self._centered(draw, TAGLINE, y, small_font, "#444444")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    @staticmethod
    def _centered(draw, text, top, font, fill):
        width = draw.textlength(text, font=font)
        x = (LABEL_W * RASTER_SCALE - width) / 2
        draw.text((x, top), text, font=font, fill=fill)
