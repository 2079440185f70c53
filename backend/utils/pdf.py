# backend/utils/pdf.py
import logging
from io import BytesIO
from pathlib import Path
from typing import List, Optional

from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

# Font configuration
FONT_DIR = Path("assets/fonts")
FONT_REGULAR_PATH = FONT_DIR / "DejaVuSans.ttf"
FONT_BOLD_PATH = FONT_DIR / "DejaVuSans-Bold.ttf"

# Built-in fonts until the TTF files are registered
FONT_REGULAR_NAME = "Helvetica"
FONT_BOLD_NAME = "Helvetica-Bold"

_fonts_inited = False
def _init_fonts():
    """Registers DejaVu fonts (accented characters) when they are shipped with the app."""
    global _fonts_inited, FONT_REGULAR_NAME, FONT_BOLD_NAME
    if _fonts_inited:
        return
    _fonts_inited = True

    if not FONT_REGULAR_PATH.exists():
        logger.info("Font file not found at %s, using Helvetica", FONT_REGULAR_PATH)
        return

    pdfmetrics.registerFont(TTFont("DejaVuSans", str(FONT_REGULAR_PATH)))
    FONT_REGULAR_NAME = "DejaVuSans"
    if FONT_BOLD_PATH.exists():
        pdfmetrics.registerFont(TTFont("DejaVuSans-Bold", str(FONT_BOLD_PATH)))
        FONT_BOLD_NAME = "DejaVuSans-Bold"
    else:
        FONT_BOLD_NAME = FONT_REGULAR_NAME


# Columns of the movement table: (title, x position in mm, alignment)
COLUMNS = [
    ("Date", 15, "left"),
    ("Type", 50, "left"),
    ("Product", 70, "left"),
    ("Qty", 155, "right"),
    ("Unit price", 185, "right"),
    ("Total", 215, "right"),
    ("Counterparty", 222, "left"),
    ("User", 255, "left"),
]


def generate_movements_pdf(
    rows: List[dict],
    summary: dict,
    company_name: Optional[str] = None,
    period: Optional[str] = None,
    truncated: bool = False,
) -> bytes:
    """
    Render a movement report and return the PDF bytes.

    `rows` are flattened movements (see routes.stock.movement_to_dict),
    `summary` holds the entry/exit totals computed over every matching row.
    """
    _init_fonts()

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=landscape(A4))
    width, height = landscape(A4)

    # Helper for drawing text
    def draw_text(x, y, text, font=None, size=10, align="left", color=(0, 0, 0)):
        c.setFillColorRGB(*color)
        c.setFont(font or FONT_REGULAR_NAME, size)
        text_str = str(text) if text is not None else ""
        if align == "right":
            c.drawRightString(x, y, text_str)
        elif align == "center":
            c.drawCentredString(x, y, text_str)
        else:
            c.drawString(x, y, text_str)
        c.setFillColorRGB(0, 0, 0)

    def draw_header(y):
        c.setFillColorRGB(0.95, 0.95, 0.95)
        c.rect(12 * mm, y - 2 * mm, width - 24 * mm, 8 * mm, fill=1, stroke=0)
        c.setFillColorRGB(0, 0, 0)
        for title, x, align in COLUMNS:
            draw_text(x * mm, y, title, font=FONT_BOLD_NAME, size=9, align=align)
        return y - 8 * mm

    # --- 1. TITLE ---
    y = height - 15 * mm
    draw_text(15 * mm, y, "Stock movements report", font=FONT_BOLD_NAME, size=16)
    if company_name:
        draw_text(width - 15 * mm, y, company_name, font=FONT_BOLD_NAME, size=11, align="right")
    y -= 7 * mm
    draw_text(15 * mm, y, f"Period: {period or 'all'}", size=10)
    y -= 5 * mm
    c.setLineWidth(0.5)
    c.line(12 * mm, y, width - 12 * mm, y)
    y -= 10 * mm

    # --- 2. TABLE ---
    y = draw_header(y)
    for row in rows:
        counterparty = row.get("supplier_name") or row.get("client_name") or "-"
        moved_at = row.get("movement_date")
        values = [
            moved_at.strftime("%Y-%m-%d %H:%M") if moved_at else "",
            "Entry" if row["type"] == "IN" else "Exit",
            str(row["product_name"])[:48],
            row["qty"],
            f"{row['unit_price']:.2f}" if row.get("unit_price") is not None else "-",
            f"{row['total_value']:.2f}" if row.get("total_value") is not None else "-",
            str(counterparty)[:18],
            str(row.get("user_name") or "")[:20],
        ]
        for (title, x, align), value in zip(COLUMNS, values):
            draw_text(x * mm, y, value, size=8, align=align)

        c.setLineWidth(0.1)
        c.line(12 * mm, y - 2 * mm, width - 12 * mm, y - 2 * mm)
        y -= 6 * mm

        # New page
        if y < 30 * mm:
            c.showPage()
            y = draw_header(height - 20 * mm)

    if truncated:
        y -= 2 * mm
        draw_text(15 * mm, y, f"Only the first {len(rows)} movements are listed.", size=8, color=(0.5, 0.5, 0.5))
        y -= 6 * mm

    # --- 3. SUMMARY ---
    if y < 40 * mm:
        c.showPage()
        y = height - 30 * mm
    y -= 5 * mm
    draw_text(150 * mm, y, "Entries:", font=FONT_BOLD_NAME, align="right")
    draw_text(215 * mm, y, f"{summary['entries_qty']} units / {summary['entries_value']:.2f}", align="right")
    y -= 5 * mm
    draw_text(150 * mm, y, "Exits:", font=FONT_BOLD_NAME, align="right")
    draw_text(215 * mm, y, f"{summary['exits_qty']} units / {summary['exits_value']:.2f}", align="right")
    y -= 6 * mm
    draw_text(150 * mm, y, "Movements:", font=FONT_BOLD_NAME, size=11, align="right")
    draw_text(215 * mm, y, summary["count"], font=FONT_BOLD_NAME, size=11, align="right")

    c.showPage()
    c.save()
    return buffer.getvalue()
