"""Tabular byte builders for exports: CSV, XLSX (openpyxl) and PDF (fpdf2)."""
from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from typing import Any

from fpdf import FPDF, XPos, YPos
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

Row = Sequence[Any]

_MARGIN = 40
_LINE_HEIGHT = 14
_FONT_SIZE = 9


def build_csv(headers: Sequence[str], rows: Sequence[Row]) -> bytes:
    buf = io.StringIO(newline="")
    w = csv.writer(buf, quoting=csv.QUOTE_MINIMAL)
    w.writerow(headers)
    for row in rows:
        w.writerow(["" if v is None else v for v in row])
    return buf.getvalue().encode("utf-8")


def build_xlsx(headers: Sequence[str], rows: Sequence[Row], *, sheet_title: str) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    ws.append(list(headers))
    fill = PatternFill(fill_type="solid", fgColor="FFE0E0E0")
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = fill
    for row in rows:
        ws.append(["" if v is None else v for v in row])
    for idx, header in enumerate(headers, start=1):
        longest = max([len(str(header))] + [len(str(r[idx - 1])) for r in rows if r[idx - 1] is not None])
        ws.column_dimensions[ws.cell(row=1, column=idx).column_letter].width = min(longest + 2, 50)
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def _pdf_text(value: Any) -> str:
    # core fonts only cover latin-1
    text = "" if value is None else str(value)
    return text.encode("latin-1", "replace").decode("latin-1")


def _pdf_lines(title: str, headers: Sequence[str], rows: Sequence[Row]) -> list[str]:
    widths = [max([len(str(h))] + [len(str(r[i] if r[i] is not None else "")) for r in rows]) for i, h in enumerate(headers)]
    widths = [min(w, 28) for w in widths]

    def fmt(values: Sequence[Any]) -> str:
        return "  ".join(str("" if v is None else v)[:w].ljust(w) for v, w in zip(values, widths))

    return [title, "", fmt(headers), "-" * min(sum(widths) + 2 * (len(widths) - 1), 150)] + [fmt(r) for r in rows]


def build_pdf(headers: Sequence[str], rows: Sequence[Row], *, title: str) -> bytes:
    """Landscape A4 pages of monospaced text (fpdf2), a fixed number of lines per page."""
    lines = _pdf_lines(title, headers, rows)
    pdf = FPDF(orientation="L", unit="pt", format="A4")
    pdf.set_compression(False)
    pdf.set_auto_page_break(False)
    pdf.set_margins(_MARGIN, _MARGIN)
    pdf.set_font("Courier", size=_FONT_SIZE)
    per_page = max(1, int(pdf.h - 2 * _MARGIN) // _LINE_HEIGHT)
    for start in range(0, len(lines), per_page):
        pdf.add_page()
        for line in lines[start : start + per_page]:
            pdf.cell(0, _LINE_HEIGHT, _pdf_text(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    return bytes(pdf.output())


__all__ = ["build_csv", "build_xlsx", "build_pdf"]
