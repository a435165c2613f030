import json
import subprocess
from io import BytesIO
from pathlib import Path
from typing import Any, Optional

from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from visa_docs.layout import Document, ImageOp, LayoutConfig, LineOp, TextOp
from visa_docs.settings import load_settings

import logging
logger = logging.getLogger("visa_docs")

MODULE_DIR = Path(__file__).resolve().parent
REPO_ROOT = MODULE_DIR.parent

# ------------------------------------------------------------------------------
# Unicode font setup (client names and template text are not always Latin-1)
# ------------------------------------------------------------------------------
FONT_REGULAR_CANDIDATES = [
    MODULE_DIR / "fonts" / "DejaVuSans.ttf",
    REPO_ROOT / "assets" / "fonts" / "DejaVuSans.ttf",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans.ttf"),
]
FONT_BOLD_CANDIDATES = [
    MODULE_DIR / "fonts" / "DejaVuSans-Bold.ttf",
    REPO_ROOT / "assets" / "fonts" / "DejaVuSans-Bold.ttf",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans-Bold.ttf"),
]
FONT_ITALIC_CANDIDATES = [
    MODULE_DIR / "fonts" / "DejaVuSans-Oblique.ttf",
    REPO_ROOT / "assets" / "fonts" / "DejaVuSans-Oblique.ttf",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Oblique.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans-Oblique.ttf"),
]

UNICODE_FONT_AVAILABLE = False
PDF_FONT_REG = 'Helvetica'
PDF_FONT_BOLD = 'Helvetica-Bold'
PDF_FONT_ITALIC = 'Helvetica-Oblique'
PDF_FONT_SOURCE: Optional[str] = None
PDF_FONT_ERROR: Optional[str] = None


def _first_existing_path(candidates: list[Path]) -> Optional[Path]:
    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate
    return None


def _fontconfig_match(family: str) -> Optional[Path]:
    try:
        result = subprocess.run(
            ["fc-match", "-f", "%{file}\n", family],
            check=False,
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None

    if result.returncode != 0:
        return None

    raw = result.stdout.strip()
    if not raw or not raw.lower().endswith(".ttf"):
        return None

    candidate = Path(raw)
    if candidate.exists() and candidate.is_file():
        return candidate
    return None


def _discover_regular_font(font_path: str = "") -> Optional[Path]:
    if font_path:
        configured = Path(font_path).expanduser()
        if configured.is_file():
            return configured
        logger.warning('PDF_FONT_PATH=%s does not exist; trying bundled/system fonts.', font_path)

    direct = _first_existing_path(FONT_REGULAR_CANDIDATES)
    if direct:
        return direct
    return _fontconfig_match("DejaVu Sans")


def init_fonts(font_path: Optional[str] = None) -> None:
    """Initialize PDF fonts with a safe fallback chain ending at built-in Helvetica."""
    global UNICODE_FONT_AVAILABLE, PDF_FONT_REG, PDF_FONT_BOLD, PDF_FONT_ITALIC
    global PDF_FONT_SOURCE, PDF_FONT_ERROR

    UNICODE_FONT_AVAILABLE = False
    PDF_FONT_REG = 'Helvetica'
    PDF_FONT_BOLD = 'Helvetica-Bold'
    PDF_FONT_ITALIC = 'Helvetica-Oblique'
    PDF_FONT_SOURCE = None
    PDF_FONT_ERROR = None

    if font_path is None:
        font_path = load_settings().pdf_font_path

    try:
        regular = _discover_regular_font(font_path)
        if regular is None:
            logger.info('No Unicode TTF found; using built-in Helvetica.')
            return

        pdfmetrics.registerFont(TTFont('DocSans', str(regular)))
        PDF_FONT_REG = 'DocSans'
        PDF_FONT_BOLD = 'DocSans'
        PDF_FONT_ITALIC = 'DocSans'

        # siblings next to a configured font take precedence over the candidate lists
        bold = _first_existing_path(
            [regular.with_name(regular.stem + "-Bold.ttf"), *FONT_BOLD_CANDIDATES]
        )
        if bold:
            pdfmetrics.registerFont(TTFont('DocSans-Bold', str(bold)))
            PDF_FONT_BOLD = 'DocSans-Bold'
        else:
            logger.warning('Bold variant not found; using regular face for bold style.')

        italic = _first_existing_path(
            [regular.with_name(regular.stem + "-Oblique.ttf"), *FONT_ITALIC_CANDIDATES]
        )
        if italic:
            pdfmetrics.registerFont(TTFont('DocSans-Oblique', str(italic)))
            PDF_FONT_ITALIC = 'DocSans-Oblique'

        UNICODE_FONT_AVAILABLE = True
        PDF_FONT_SOURCE = str(regular)
        logger.info('Unicode PDF font loaded: %s', regular)
    except Exception as e:
        UNICODE_FONT_AVAILABLE = False
        PDF_FONT_REG = 'Helvetica'
        PDF_FONT_BOLD = 'Helvetica-Bold'
        PDF_FONT_ITALIC = 'Helvetica-Oblique'
        PDF_FONT_ERROR = str(e)
        logger.error('Font initialization failed; falling back to Helvetica: %s', e)


def font_diagnostics() -> dict[str, Any]:
    return {
        "unicode_font": UNICODE_FONT_AVAILABLE,
        "regular": PDF_FONT_REG,
        "bold": PDF_FONT_BOLD,
        "italic": PDF_FONT_ITALIC,
        "source": PDF_FONT_SOURCE,
        "error": PDF_FONT_ERROR,
    }


def load_pdf_layout_config() -> dict[str, Any]:
    """Layout settings from pdf_layout_config.json merged over safe defaults."""
    config_path = Path(__file__).resolve().parent / "pdf_layout_config.json"
    default_config = {
        "page": {
            "width_mm": 210,
            "height_mm": 297,
            "margin_mm": 20,
            "line_reserve_mm": 10,
            "line_factor": 0.6,
            "label_column_mm": 50,
        },
        "fonts": {"title": 20, "subtitle": 12, "section": 14, "field": 11, "body": 10, "footer": 8},
        "colors": {
            "text": "#000000",
            "rule": "#000000",
            "footer": "#444444",
        },
    }

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if isinstance(loaded, dict):
            for key, value in loaded.items():
                if key in default_config and isinstance(value, dict):
                    default_config[key].update(value)
    except Exception as e:
        logger.warning(f"PDF layout config load failed. Using defaults: {e}")

    return default_config


def _positive(section: dict[str, Any], key: str, fallback: float) -> float:
    try:
        value = float(section.get(key, fallback))
    except (TypeError, ValueError):
        return fallback
    return value if value > 0 else fallback


def _hex_color(section: dict[str, Any], key: str, fallback: str) -> str:
    value = str(section.get(key, fallback))
    try:
        colors.HexColor(value)
    except (TypeError, ValueError):
        logger.warning("Invalid PDF color %s=%s; using %s", key, value, fallback)
        return fallback
    return value


def build_layout_config(config: Optional[dict[str, Any]] = None) -> LayoutConfig:
    """LayoutConfig for the currently registered fonts."""
    config = config or load_pdf_layout_config()
    defaults = LayoutConfig()
    page = config.get("page", {}) if isinstance(config.get("page"), dict) else {}
    fonts = config.get("fonts", {}) if isinstance(config.get("fonts"), dict) else {}
    color_cfg = config.get("colors", {}) if isinstance(config.get("colors"), dict) else {}

    return LayoutConfig(
        page_width=_positive(page, "width_mm", defaults.page_width),
        page_height=_positive(page, "height_mm", defaults.page_height),
        margin=_positive(page, "margin_mm", defaults.margin),
        line_reserve=_positive(page, "line_reserve_mm", defaults.line_reserve),
        line_factor=_positive(page, "line_factor", defaults.line_factor),
        label_column=_positive(page, "label_column_mm", defaults.label_column),
        font_regular=PDF_FONT_REG,
        font_bold=PDF_FONT_BOLD,
        font_italic=PDF_FONT_ITALIC,
        title_size=_positive(fonts, "title", defaults.title_size),
        subtitle_size=_positive(fonts, "subtitle", defaults.subtitle_size),
        section_size=_positive(fonts, "section", defaults.section_size),
        field_size=_positive(fonts, "field", defaults.field_size),
        body_size=_positive(fonts, "body", defaults.body_size),
        footer_size=_positive(fonts, "footer", defaults.footer_size),
        text_color=_hex_color(color_cfg, "text", defaults.text_color),
        rule_color=_hex_color(color_cfg, "rule", defaults.rule_color),
        footer_color=_hex_color(color_cfg, "footer", defaults.footer_color),
    )


def _draw_text(pdf: canvas.Canvas, op: TextOp, page_height: float, color) -> None:
    pdf.setFillColor(color)
    pdf.setFont(op.font, op.size)
    x, y = op.x * mm, (page_height - op.y) * mm
    if op.align == "center":
        pdf.drawCentredString(x, y, op.text)
    elif op.align == "right":
        pdf.drawRightString(x, y, op.text)
    else:
        pdf.drawString(x, y, op.text)


def render_document_to_pdf(document: Document) -> bytes:
    """Replay the composed display list onto a ReportLab canvas."""
    cfg = document.config
    page_height = cfg.page_height
    text_color = colors.HexColor(cfg.text_color)
    rule_color = colors.HexColor(cfg.rule_color)
    footer_color = colors.HexColor(cfg.footer_color)

    with BytesIO() as buffer:
        pdf = canvas.Canvas(buffer, pagesize=(cfg.page_width * mm, page_height * mm))
        pdf.setTitle(document.title)
        pdf.setAuthor(load_settings().company_name)

        for page in document.pages:
            for op in page.ops:
                if isinstance(op, TextOp):
                    color = footer_color if op.role == "footer" else text_color
                    _draw_text(pdf, op, page_height, color)
                elif isinstance(op, LineOp):
                    pdf.setStrokeColor(rule_color)
                    pdf.setLineWidth(op.width)
                    pdf.line(
                        op.x1 * mm,
                        (page_height - op.y1) * mm,
                        op.x2 * mm,
                        (page_height - op.y2) * mm,
                    )
                elif isinstance(op, ImageOp):
                    pdf.drawImage(
                        ImageReader(BytesIO(op.data)),
                        op.x * mm,
                        (page_height - op.y - op.height) * mm,
                        width=op.width * mm,
                        height=op.height * mm,
                        mask="auto",
                    )
            pdf.showPage()

        pdf.save()
        return buffer.getvalue()
