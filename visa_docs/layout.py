"""Cursor-driven page composer.

Sections are written into a display list (``Document.pages[i].ops``) in
millimetres from the top-left corner. Every primitive takes the current
``LayoutCursor`` and returns the advanced one, so page breaks happen in
exactly one place and can be checked without rendering a PDF.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Union

from PIL import Image
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics

logger = logging.getLogger("visa_docs")

IMAGE_UNAVAILABLE_TEXT = "(Image could not be loaded)"
FOOTER_ROLE = "footer"


@dataclass(frozen=True)
class LayoutConfig:
    page_width: float = 210.0
    page_height: float = 297.0
    margin: float = 20.0
    line_reserve: float = 10.0
    line_factor: float = 0.6
    label_column: float = 50.0
    font_regular: str = "Helvetica"
    font_bold: str = "Helvetica-Bold"
    font_italic: str = "Helvetica-Oblique"
    title_size: float = 20.0
    subtitle_size: float = 12.0
    section_size: float = 14.0
    field_size: float = 11.0
    body_size: float = 10.0
    footer_size: float = 8.0
    text_color: str = "#000000"
    rule_color: str = "#000000"
    footer_color: str = "#444444"

    @property
    def content_bottom(self) -> float:
        return self.page_height - self.margin

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin


@dataclass(frozen=True)
class LayoutCursor:
    page: int
    y: float

    def down(self, amount: float) -> "LayoutCursor":
        return replace(self, y=self.y + amount)


@dataclass(frozen=True)
class TextOp:
    x: float
    y: float  # baseline
    text: str
    font: str
    size: float
    align: str = "left"
    role: str = "body"

    @property
    def bottom(self) -> float:
        return self.y


@dataclass(frozen=True)
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    width: float = 0.5
    role: str = "body"

    @property
    def bottom(self) -> float:
        return max(self.y1, self.y2)


@dataclass(frozen=True)
class ImageOp:
    x: float
    y: float  # top edge
    width: float
    height: float
    data: bytes = field(repr=False)
    role: str = "body"

    @property
    def bottom(self) -> float:
        return self.y + self.height


DrawOp = Union[TextOp, LineOp, ImageOp]


@dataclass
class Page:
    number: int
    ops: list[DrawOp] = field(default_factory=list)

    def texts(self) -> list[str]:
        return [op.text for op in self.ops if isinstance(op, TextOp)]


@dataclass
class Document:
    config: LayoutConfig
    title: str = ""
    pages: list[Page] = field(default_factory=list)

    def start(self) -> LayoutCursor:
        if not self.pages:
            self.pages.append(Page(number=1))
        return LayoutCursor(page=0, y=self.config.margin)

    def add(self, cursor: LayoutCursor, op: DrawOp) -> None:
        self.pages[cursor.page].ops.append(op)

    def texts(self) -> list[str]:
        return [text for page in self.pages for text in page.texts()]


def text_width(text: str, font: str, size: float) -> float:
    """Rendered width of ``text`` in millimetres."""
    return pdfmetrics.stringWidth(text, font, size) / mm


def line_height(config: LayoutConfig, size: float) -> float:
    return size * config.line_factor


def next_page(document: Document, cursor: LayoutCursor) -> LayoutCursor:
    target = cursor.page + 1
    while len(document.pages) <= target:
        document.pages.append(Page(number=len(document.pages) + 1))
    return LayoutCursor(page=target, y=document.config.margin)


def ensure_space(document: Document, cursor: LayoutCursor, height: float) -> LayoutCursor:
    """Start a new page unless ``height`` mm still fit above the bottom margin."""
    if cursor.y + height > document.config.content_bottom:
        return next_page(document, cursor)
    return cursor


def _line_slot(document: Document, cursor: LayoutCursor) -> LayoutCursor:
    config = document.config
    if cursor.y > config.content_bottom - config.line_reserve:
        return next_page(document, cursor)
    return cursor


def split_lines(text: str, font: str, size: float, width: float) -> list[str]:
    """Wrap ``text`` to ``width`` mm; blank source lines are kept as ``""``."""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        if not paragraph.strip():
            lines.append("")
            continue
        lines.extend(simpleSplit(paragraph, font, size, width * mm) or [""])
    return lines


def heading(
    document: Document,
    cursor: LayoutCursor,
    text: str,
    *,
    size: Optional[float] = None,
    gap: float = 12.0,
) -> LayoutCursor:
    config = document.config
    cursor = _line_slot(document, cursor)
    document.add(
        cursor,
        TextOp(config.margin, cursor.y, text, config.font_bold, size or config.section_size),
    )
    return cursor.down(gap)


def centered_text(
    document: Document,
    cursor: LayoutCursor,
    text: str,
    *,
    size: Optional[float] = None,
    bold: bool = False,
    gap: float = 8.0,
) -> LayoutCursor:
    config = document.config
    cursor = _line_slot(document, cursor)
    font = config.font_bold if bold else config.font_regular
    document.add(
        cursor,
        TextOp(config.page_width / 2, cursor.y, text, font, size or config.body_size, align="center"),
    )
    return cursor.down(gap)


def text_line(
    document: Document,
    cursor: LayoutCursor,
    text: str,
    *,
    size: Optional[float] = None,
    bold: bool = False,
    gap: float = 8.0,
) -> LayoutCursor:
    config = document.config
    cursor = _line_slot(document, cursor)
    font = config.font_bold if bold else config.font_regular
    document.add(cursor, TextOp(config.margin, cursor.y, text, font, size or config.body_size))
    return cursor.down(gap)


def wrapped_paragraph(
    document: Document,
    cursor: LayoutCursor,
    text: str,
    *,
    size: Optional[float] = None,
    font: Optional[str] = None,
    x: Optional[float] = None,
    width: Optional[float] = None,
) -> LayoutCursor:
    """Write ``text`` line by line, breaking the page before any line that would overflow."""
    config = document.config
    size = size or config.body_size
    font = font or config.font_regular
    x = config.margin if x is None else x
    width = config.content_width if width is None else width
    step = line_height(config, size)

    for line in split_lines(text, font, size, width):
        cursor = _line_slot(document, cursor)
        if line:
            document.add(cursor, TextOp(x, cursor.y, line, font, size))
        cursor = cursor.down(step)
    return cursor


def labeled_field(
    document: Document,
    cursor: LayoutCursor,
    label: str,
    value: str,
    *,
    size: Optional[float] = None,
    value_offset: Optional[float] = None,
    gap: float = 8.0,
) -> LayoutCursor:
    """Bold label in the left column, value wrapped in the right column."""
    config = document.config
    size = size or config.field_size
    offset = config.label_column if value_offset is None else value_offset
    value_x = config.margin + offset
    value_width = max(config.content_width - offset, 10.0)
    lines = split_lines(value or "", config.font_regular, size, value_width) or [""]

    cursor = _line_slot(document, cursor)
    document.add(cursor, TextOp(config.margin, cursor.y, label, config.font_bold, size))
    for index, line in enumerate(lines):
        if index:
            cursor = _line_slot(document, cursor.down(line_height(config, size)))
        if line:
            document.add(cursor, TextOp(value_x, cursor.y, line, config.font_regular, size))
    return cursor.down(gap)


def placeholder(
    document: Document,
    cursor: LayoutCursor,
    text: str,
    *,
    size: Optional[float] = None,
    gap: float = 10.0,
) -> LayoutCursor:
    config = document.config
    cursor = _line_slot(document, cursor)
    document.add(
        cursor,
        TextOp(config.margin, cursor.y, text, config.font_italic, size or config.body_size),
    )
    return cursor.down(gap)


def rule(
    document: Document,
    cursor: LayoutCursor,
    *,
    x1: Optional[float] = None,
    x2: Optional[float] = None,
    width: float = 0.5,
    gap: float = 10.0,
) -> LayoutCursor:
    config = document.config
    cursor = _line_slot(document, cursor)
    start = config.margin if x1 is None else x1
    end = config.page_width - config.margin if x2 is None else x2
    document.add(cursor, LineOp(start, cursor.y, end, cursor.y, width=width))
    return cursor.down(gap)


def image_size(data: bytes) -> tuple[int, int]:
    """Pixel size of an embeddable raster; raises if the bytes do not fully decode.

    The pixel data is loaded here, not only the header, so a truncated upload
    turns into a placeholder instead of failing later in the renderer.
    """
    with Image.open(io.BytesIO(data)) as raster:
        raster.load()
        width, height = raster.size
    if not width or not height:
        raise ValueError("image has no size")
    return int(width), int(height)


def fit_box(pixel_width: int, pixel_height: int, max_width: float, max_height: float) -> tuple[float, float]:
    scale = min(max_width / pixel_width, max_height / pixel_height)
    return pixel_width * scale, pixel_height * scale


def image(
    document: Document,
    cursor: LayoutCursor,
    data: bytes,
    *,
    max_width: float,
    max_height: float,
    align: str = "left",
    gap: float = 10.0,
    failure_text: str = IMAGE_UNAVAILABLE_TEXT,
) -> LayoutCursor:
    """Aspect-fit ``data`` into the max box; the whole box moves to the next page if it does not fit."""
    try:
        pixel_width, pixel_height = image_size(data)
    except Exception as exc:
        logger.warning("Image could not be decoded for embedding: %s", exc)
        return placeholder(document, cursor, failure_text)

    config = document.config
    cursor = ensure_space(document, cursor, max_height)
    width, height = fit_box(pixel_width, pixel_height, max_width, max_height)
    if align == "center":
        x = (config.page_width - width) / 2
    else:
        x = config.margin
    document.add(cursor, ImageOp(x, cursor.y, width, height, data))
    return cursor.down(height + gap)


def stamp_footer(document: Document, lines: Sequence[str]) -> None:
    """Centered footer lines in the bottom margin of every page, last line lowest."""
    config = document.config
    step = 5.0
    for page in document.pages:
        for index, text in enumerate(lines):
            y = config.page_height - step * (len(lines) - index)
            page.ops.append(
                TextOp(
                    config.page_width / 2,
                    y,
                    text,
                    config.font_italic,
                    config.footer_size,
                    align="center",
                    role=FOOTER_ROLE,
                )
            )
