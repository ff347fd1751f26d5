"""PDF and XLSX rendering for report tables."""

from __future__ import annotations

from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict, Iterable, List, Sequence, Tuple
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

ReportRow = Dict[str, Any]
Summary = Sequence[Tuple[str, Any]]

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
GENERATOR = "Timefund"


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(value)


def render_pdf(title: str, summary: Summary, rows: Iterable[ReportRow]) -> bytes:
    rows = list(rows)
    styles = getSampleStyleSheet()
    body_style = ParagraphStyle("report_body", parent=styles["Normal"], fontSize=9)

    story: List[Any] = [Paragraph(escape(title), styles["Title"])]
    summary_table = Table(
        [[label, _stringify(value)] for label, value in summary],
        colWidths=[2.0 * inch, 5.0 * inch],
        hAlign="LEFT",
    )
    summary_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9.5),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ]
        )
    )
    story.append(summary_table)
    story.append(Spacer(1, 8))
    story.append(HRFlowable(width="100%"))
    story.append(Spacer(1, 8))

    if rows:
        headers = list(rows[0].keys())
        data = [headers] + [
            [Paragraph(escape(_stringify(row.get(header))), body_style) for header in headers] for row in rows
        ]
        table = Table(data, repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
                    ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("LEFTPADDING", (0, 0), (-1, -1), 4),
                    ("RIGHTPADDING", (0, 0), (-1, -1), 4),
                ]
            )
        )
        story.append(table)
    else:
        story.append(Paragraph("No time entries in this period.", body_style))

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
        title=title,
        author=GENERATOR,
    )
    doc.build(story)
    return buffer.getvalue()


def render_xlsx(title: str, summary: Summary, rows: Iterable[ReportRow]) -> bytes:
    rows = list(rows)
    wb = Workbook()
    wb.properties.creator = GENERATOR
    wb.properties.title = title

    ws = wb.active
    ws.title = "Summary"
    ws.append(["Property", "Value"])
    for label, value in summary:
        ws.append([label, _stringify(value)])
    _style_header(ws, 2)

    entries = wb.create_sheet("Time entries")
    if rows:
        headers = list(rows[0].keys())
        entries.append(headers)
        for row in rows:
            entries.append([_cell(row.get(header)) for header in headers])
        _style_header(entries, len(headers))
    else:
        entries.append(["No time entries in this period."])

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    return value


def _style_header(ws, columns: int) -> None:
    header_font = Font(bold=True)
    header_fill = PatternFill(fill_type="solid", fgColor="FFD3D3D3")
    for col in range(1, columns + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    ws.freeze_panes = "A2"

    for col_idx in range(1, columns + 1):
        col_letter = get_column_letter(col_idx)
        longest = max((len(_stringify(cell.value)) for cell in ws[col_letter]), default=0)
        ws.column_dimensions[col_letter].width = min(max(10, longest + 2), 55)
