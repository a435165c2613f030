from __future__ import annotations

import unittest
from io import BytesIO

from PIL import Image

from visa_docs import layout
from visa_docs.layout import (
    FOOTER_ROLE,
    IMAGE_UNAVAILABLE_TEXT,
    Document,
    ImageOp,
    LayoutConfig,
    LayoutCursor,
    TextOp,
)


def _png_bytes(size) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, (10, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


def _content_ops(document: Document):
    return [op for page in document.pages for op in page.ops if op.role != FOOTER_ROLE]


class TestLayoutCursor(unittest.TestCase):
    def test_cursor_is_immutable(self) -> None:
        cursor = LayoutCursor(page=0, y=20.0)
        moved = cursor.down(5)
        self.assertEqual(cursor.y, 20.0)
        self.assertEqual(moved, LayoutCursor(page=0, y=25.0))

    def test_ensure_space_breaks_only_when_needed(self) -> None:
        document = Document(config=LayoutConfig())
        cursor = document.start()
        self.assertEqual(layout.ensure_space(document, cursor, 100), cursor)

        low = LayoutCursor(page=0, y=250.0)
        moved = layout.ensure_space(document, low, 50)
        self.assertEqual(moved, LayoutCursor(page=1, y=20.0))
        self.assertEqual(len(document.pages), 2)


class TestWrappedParagraph(unittest.TestCase):
    def test_long_text_spans_pages_without_crossing_bottom_margin(self) -> None:
        config = LayoutConfig()
        document = Document(config=config)
        text = "\n".join(f"{i}. The client agrees to clause number {i} of this agreement." for i in range(120))

        layout.wrapped_paragraph(document, document.start(), text)
        layout.stamp_footer(document, ["Generated on 01/02/2024, 03:04:05 PM", "notice"])

        self.assertGreaterEqual(len(document.pages), 2)
        for op in _content_ops(document):
            self.assertLessEqual(op.bottom, config.content_bottom)
        for page in document.pages:
            footer = [op.text for op in page.ops if op.role == FOOTER_ROLE]
            self.assertEqual(footer, ["Generated on 01/02/2024, 03:04:05 PM", "notice"])

    def test_lines_wrap_within_content_width(self) -> None:
        config = LayoutConfig()
        document = Document(config=config)
        layout.wrapped_paragraph(document, document.start(), "word " * 200)
        for op in _content_ops(document):
            width = layout.text_width(op.text, op.font, op.size)
            self.assertLessEqual(op.x + width, config.page_width - config.margin + 0.01)

    def test_blank_lines_advance_without_ops(self) -> None:
        document = Document(config=LayoutConfig())
        end = layout.wrapped_paragraph(document, document.start(), "a\n\nb")
        self.assertEqual(document.texts(), ["a", "b"])
        self.assertAlmostEqual(end.y, 20.0 + 3 * 6.0)


class TestImagePrimitive(unittest.TestCase):
    def test_image_is_aspect_fit_into_box(self) -> None:
        document = Document(config=LayoutConfig())
        layout.image(document, document.start(), _png_bytes((400, 100)), max_width=80, max_height=50)
        (op,) = document.pages[0].ops
        self.assertIsInstance(op, ImageOp)
        self.assertAlmostEqual(op.width, 80.0)
        self.assertAlmostEqual(op.height, 20.0)

    def test_image_block_moves_to_next_page_whole(self) -> None:
        config = LayoutConfig()
        document = Document(config=config)
        document.start()
        cursor = LayoutCursor(page=0, y=config.content_bottom - 30)
        layout.image(document, cursor, _png_bytes((60, 60)), max_width=60, max_height=60, align="center")
        self.assertEqual(document.pages[0].ops, [])
        (op,) = document.pages[1].ops
        self.assertEqual(op.y, config.margin)
        self.assertAlmostEqual(op.x, (config.page_width - 60) / 2)

    def test_undecodable_bytes_print_placeholder(self) -> None:
        document = Document(config=LayoutConfig())
        layout.image(document, document.start(), b"not an image", max_width=80, max_height=50)
        (op,) = document.pages[0].ops
        self.assertIsInstance(op, TextOp)
        self.assertEqual(op.text, IMAGE_UNAVAILABLE_TEXT)
        self.assertEqual(op.font, document.config.font_italic)

    def test_truncated_image_prints_placeholder(self) -> None:
        data = _png_bytes((400, 300))
        truncated = data[: len(data) // 2]
        document = Document(config=LayoutConfig())

        layout.image(document, document.start(), truncated, max_width=80, max_height=50)

        (op,) = document.pages[0].ops
        self.assertIsInstance(op, TextOp)
        self.assertEqual(op.text, IMAGE_UNAVAILABLE_TEXT)


class TestLabeledField(unittest.TestCase):
    def test_label_and_value_columns(self) -> None:
        config = LayoutConfig()
        document = Document(config=config)
        end = layout.labeled_field(document, document.start(), "Order Number:", "ORD-2024-0001")
        label, value = document.pages[0].ops
        self.assertEqual((label.text, label.font, label.x), ("Order Number:", config.font_bold, config.margin))
        self.assertEqual((value.text, value.x), ("ORD-2024-0001", config.margin + config.label_column))
        self.assertEqual(end.y, config.margin + 8)


if __name__ == "__main__":
    unittest.main()
