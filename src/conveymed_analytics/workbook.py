"""
Styled ``.xlsx`` workbooks built with openpyxl.

A workbook is assembled fully in memory and only serialised by
:func:`workbook_bytes`; nothing touches the filesystem here.
"""

from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Any, Optional, Sequence

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE, Cell
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .models import ExportSection, UserReport
from .user_report import build_report_columns, build_report_groups

PRIMARY = "FF1A2A35"
ACCENT = "FF3B82F6"
SUCCESS = "FF22C55E"
GRAY = "FF64748B"
LIGHT_GRAY = "FFF1F5F9"
WHITE = "FFFFFFFF"
BLACK = "FF000000"

SHEET_TITLE_LIMIT = 31
SECTION_WIDTH = (12, 40)
REPORT_WIDTH = (10, 30)


def _fill(color: str) -> PatternFill:
    return PatternFill(fill_type="solid", start_color=color, end_color=color)


def _style_header_row(ws: Worksheet, row: int, columns: int, color: str = PRIMARY) -> None:
    for col in range(1, columns + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = Font(bold=True, size=11, color=WHITE)
        cell.fill = _fill(color)
        cell.alignment = Alignment(vertical="center", horizontal="left")
        cell.border = Border(bottom=Side(style="thin", color=GRAY))
    ws.row_dimensions[row].height = 28


def _style_data_row(ws: Worksheet, row: int, columns: int, banded: bool) -> None:
    for col in range(1, columns + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = Font(size=10, color=BLACK)
        cell.alignment = Alignment(vertical="center")
        if banded:
            cell.fill = _fill(LIGHT_GRAY)
    ws.row_dimensions[row].height = 22


def autofit_columns(ws: Worksheet, minimum: int, maximum: int) -> None:
    """Width = longest non-empty value + 2, clamped to ``[minimum, maximum]``."""

    for index, column in enumerate(ws.iter_cols(), start=1):
        width = minimum
        for cell in column:
            if cell.value in (None, ""):
                continue
            width = max(width, len(str(cell.value)) + 2)
        ws.column_dimensions[get_column_letter(index)].width = min(width, maximum)


def sheet_title(title: str) -> str:
    return title[:SHEET_TITLE_LIMIT]


def _put(ws: Worksheet, row: int, column: int, value: Any) -> Cell:
    """
    Write ``value`` as data, never as a formula.

    Characters the xlsx format cannot hold are dropped and strings starting
    with ``=`` stay text.
    """

    if isinstance(value, str):
        value = ILLEGAL_CHARACTERS_RE.sub("", value)
    cell = ws.cell(row=row, column=column, value=value)
    if isinstance(value, str) and value.startswith("="):
        cell.data_type = "s"
    return cell


def _display(value: Any) -> Any:
    return "-" if value is None else value


def add_section_sheet(workbook: Workbook, section: ExportSection) -> Worksheet:
    ws = workbook.create_sheet(sheet_title(section.title))
    title = _put(ws, 1, 1, section.title)
    title.font = Font(bold=True, size=14, color=PRIMARY)
    ws.row_dimensions[1].height = 30
    row = 3

    if section.stats:
        _put(ws, row, 1, "Metric")
        _put(ws, row, 2, "Value")
        _style_header_row(ws, row, 2, ACCENT)
        row += 1
        for index, stat in enumerate(section.stats):
            _put(ws, row, 1, stat.title)
            _put(ws, row, 2, stat.value)
            _style_data_row(ws, row, 2, index % 2 == 1)
            ws.cell(row=row, column=1).font = Font(size=10, color=GRAY)
            ws.cell(row=row, column=2).font = Font(bold=True, size=11, color=PRIMARY)
            row += 1
        row += 1

    if section.table_data and section.columns:
        for col, column in enumerate(section.columns, start=1):
            _put(ws, row, col, column.label)
        _style_header_row(ws, row, len(section.columns))
        row += 1
        for index, data in enumerate(section.table_data):
            for col, column in enumerate(section.columns, start=1):
                _put(ws, row, col, _display(data.get(column.key)))
            _style_data_row(ws, row, len(section.columns), index % 2 == 1)
            row += 1

    autofit_columns(ws, *SECTION_WIDTH)
    return ws


def add_user_report_sheet(workbook: Workbook, report: UserReport, title: str = "User Report") -> Worksheet:
    """
    Row 1 holds the merged group headers, row 2 the column labels and data
    starts on row 3. Missing cells are written as ``0``.
    """

    columns = build_report_columns(report.screen_names, report.categories, report.asset_names)
    groups = build_report_groups(report.screen_names, report.categories, report.asset_names)
    ws = workbook.create_sheet(sheet_title(title))
    ws.sheet_properties.tabColor = SUCCESS

    start = 1
    for group in groups:
        end = start + group.span - 1
        if group.span > 1:
            ws.merge_cells(start_row=1, start_column=start, end_row=1, end_column=end)
        cell = _put(ws, 1, start, group.label)
        cell.font = Font(bold=True, size=11, color=WHITE)
        cell.alignment = Alignment(horizontal="center", vertical="center")
        for col in range(start, end + 1):
            ws.cell(row=1, column=col).fill = _fill(PRIMARY)
        start = end + 1
    ws.row_dimensions[1].height = 26

    for col, column in enumerate(columns, start=1):
        cell = _put(ws, 2, col, column.label)
        cell.font = Font(bold=True, size=10, color=WHITE)
        cell.fill = _fill(ACCENT)
        cell.alignment = Alignment(vertical="center")
    ws.row_dimensions[2].height = 24

    for index, data in enumerate(report.rows):
        row = 3 + index
        for col, column in enumerate(columns, start=1):
            cell = _put(ws, row, col, data.get(column.key, 0))
            cell.font = Font(size=10)
            if index % 2 == 1:
                cell.fill = _fill(LIGHT_GRAY)
        ws.row_dimensions[row].height = 22

    autofit_columns(ws, *REPORT_WIDTH)
    return ws


def _add_summary_sheet(
    workbook: Workbook,
    sections: Sequence[ExportSection],
    company_name: str,
    date_range: Optional[str],
    generated_at: datetime,
) -> Worksheet:
    ws = workbook.active
    ws.title = "Summary"
    ws.sheet_properties.tabColor = ACCENT

    title = _put(ws, 1, 1, f"{company_name} Analytics Report")
    title.font = Font(bold=True, size=18, color=PRIMARY)
    ws.row_dimensions[1].height = 36
    row = 2

    meta = [("Generated", f"{generated_at:%Y-%m-%d %H:%M:%S}")]
    if date_range:
        meta.append(("Date Range", date_range))
    for label, value in meta:
        _put(ws, row, 1, label).font = Font(size=10, color=GRAY)
        _put(ws, row, 2, value).font = Font(size=10)
        row += 1
    row += 1

    heading = _put(ws, row, 1, "Key Metrics")
    heading.font = Font(bold=True, size=13, color=PRIMARY)
    ws.row_dimensions[row].height = 28
    row += 1

    for col, label in enumerate(("Section", "Metric", "Value"), start=1):
        _put(ws, row, col, label)
    _style_header_row(ws, row, 3, ACCENT)
    row += 1

    for section in sections:
        for stat in section.stats:
            _put(ws, row, 1, section.title)
            _put(ws, row, 2, stat.title)
            _put(ws, row, 3, stat.value)
            _style_data_row(ws, row, 3, row % 2 == 0)
            row += 1

    autofit_columns(ws, *SECTION_WIDTH)
    return ws


def build_workbook(
    sections: Sequence[ExportSection],
    company_name: str = "ConveyMed",
    date_range: Optional[str] = None,
    user_report: Optional[UserReport] = None,
    generated_at: Optional[datetime] = None,
) -> Workbook:
    """Summary sheet, one sheet per section, then the user report when it has rows."""

    generated_at = generated_at or datetime.now()
    workbook = Workbook()
    workbook.properties.creator = company_name
    workbook.properties.created = generated_at
    _add_summary_sheet(workbook, sections, company_name, date_range, generated_at)
    for section in sections:
        add_section_sheet(workbook, section)
    if user_report is not None and user_report.rows:
        add_user_report_sheet(workbook, user_report)
    return workbook


def build_user_report_workbook(report: UserReport, company_name: str = "ConveyMed") -> Workbook:
    workbook = Workbook()
    workbook.properties.creator = company_name
    workbook.remove(workbook.active)
    add_user_report_sheet(workbook, report)
    return workbook


def workbook_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
