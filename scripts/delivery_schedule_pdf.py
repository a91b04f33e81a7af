"""
Delivery Schedule PDF Builder

Presentation-only layer.
This module MUST NOT compute or adjust delivery dates.

Rows arrive fully prepared from delivery_schedule_report.py.
"""

from reportlab.lib.pagesizes import LETTER
from reportlab.platypus import (
    SimpleDocTemplate,
    Table,
    TableStyle,
    Paragraph,
    Spacer,
)
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.lib.enums import TA_CENTER

# ---------------------------------------------------------------------
# Styling Constants
# ---------------------------------------------------------------------

HEADER_BG = colors.HexColor("#E0E0E0")
EMPHASIS_BG = colors.HexColor("#F2F2F2")

FONT_NORMAL = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

PAGE_MARGIN = 0.5 * inch

# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def generate_delivery_schedule_pdf(rows, output_path, report_title, subtitle):
    """
    Generate the delivery schedule PDF.

    Parameters
    ----------
    rows : list[dict]
        One dict per delivery with keys:
        - sequence_index
        - date            (YYYY-MM-DD)
        - weekday
        - scheduled_at    (display string)
        - sunday_shifted  (bool)
    output_path : str | Path
        Destination PDF path.
    report_title : str
        Main title shown at top of report.
    subtitle : str | None
        Optional subtitle (reference time, frequency, totals).
    """

    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=LETTER,
        leftMargin=PAGE_MARGIN,
        rightMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN,
        bottomMargin=PAGE_MARGIN,
    )

    styles = _build_styles()
    elements = []

    elements.append(Paragraph(report_title, styles["schedule_title"]))
    if subtitle:
        elements.append(Paragraph(subtitle, styles["schedule_subtitle"]))
    elements.append(Spacer(1, 0.25 * inch))

    if rows:
        elements.append(Paragraph("DELIVERIES", styles["section_header"]))
        elements.append(Spacer(1, 0.15 * inch))
        elements.append(_build_schedule_table(rows, styles))
    else:
        elements.append(Paragraph("No deliveries scheduled.", styles["cell"]))

    doc.build(elements)

# ---------------------------------------------------------------------
# Table Builders
# ---------------------------------------------------------------------

def _build_schedule_table(rows: list[dict], styles):
    header = [
        "#",
        "Date",
        "Day",
        "Delivery Window Start",
        "Note",
    ]

    data = [header]
    shifted_rows = []

    for idx, row in enumerate(rows, start=1):
        note = "Moved from Sunday" if row.get("sunday_shifted") else ""

        data.append([
            Paragraph(str(row["sequence_index"]), styles["cell_center"]),
            Paragraph(row["date"], styles["cell"]),
            Paragraph(row["weekday"], styles["cell"]),
            Paragraph(row["scheduled_at"], styles["cell"]),
            Paragraph(note, styles["cell"]),
        ])

        if row.get("sunday_shifted"):
            shifted_rows.append(idx)

    table = Table(
        data,
        repeatRows=1,
        hAlign="LEFT",
        colWidths=[
            0.5 * inch,   # #
            1.2 * inch,   # Date
            1.2 * inch,   # Day
            2.4 * inch,   # Window start
            1.8 * inch,   # Note
        ],
    )
    table.setStyle(_base_table_style())

    for r in shifted_rows:
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, r), (-1, r), EMPHASIS_BG),
        ]))

    return table

# ---------------------------------------------------------------------
# Styles
# ---------------------------------------------------------------------

def _build_styles():
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        name="schedule_title",
        fontName=FONT_BOLD,
        fontSize=16,
        leading=20,
        spaceAfter=4,
    ))

    styles.add(ParagraphStyle(
        name="schedule_subtitle",
        fontName=FONT_NORMAL,
        fontSize=10,
        leading=12,
        textColor=colors.grey,
    ))

    styles.add(ParagraphStyle(
        name="section_header",
        fontName=FONT_BOLD,
        fontSize=12,
        spaceBefore=6,
        spaceAfter=6,
    ))

    styles.add(ParagraphStyle(
        name="cell",
        fontName=FONT_NORMAL,
        fontSize=9,
        leading=11,
        wordWrap="LTR",
    ))

    styles.add(ParagraphStyle(
        name="cell_center",
        fontName=FONT_NORMAL,
        fontSize=9,
        leading=11,
        alignment=TA_CENTER,
    ))

    return styles


def _base_table_style():
    return TableStyle([
        ("FONTNAME", (0, 0), (-1, 0), FONT_BOLD),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("ALIGN", (0, 0), (0, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("BOX", (0, 0), (-1, -1), 0.75, colors.grey),
        ("LEFTPADDING", (0, 0), (-1, -1), 6),
        ("RIGHTPADDING", (0, 0), (-1, -1), 6),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ])
