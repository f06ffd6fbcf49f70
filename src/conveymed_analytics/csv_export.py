"""
CSV rendering for dashboard exports.

All functions return text; callers prepend :data:`UTF8_BOM` when writing a
payload so spreadsheet tools pick up the encoding. Lines end with ``\\n``.
"""

from __future__ import annotations

import csv
import io
import re
from datetime import datetime
from typing import Any, Iterable, List, Optional, Sequence

from .models import Column, ColumnGroup, ExportSection, Row, StatItem, UserReport
from .user_report import build_report_columns, build_report_groups

UTF8_BOM = "\ufeff"
_NEEDS_QUOTES = (",", '"', "\n", "\r")


def _cell(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def escape_csv(value: Any) -> str:
    """Quote a field only when it holds a comma, quote, CR or LF; ``None`` is empty."""

    if value is None:
        return ""
    text = str(_cell(value))
    if any(marker in text for marker in _NEEDS_QUOTES):
        return '"' + text.replace('"', '""') + '"'
    return text


def _write_rows(rows: Iterable[Iterable[Any]], quoting: int = csv.QUOTE_MINIMAL) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=quoting, lineterminator="\n")
    writer.writerows([_cell(value) for value in row] for row in rows)
    return output.getvalue()


def _quoted(*cells: str) -> str:
    return _write_rows([cells], quoting=csv.QUOTE_ALL)


def _line(cells: Iterable[Any]) -> str:
    return _write_rows([cells])


def to_csv(rows: Sequence[Row], columns: Sequence[Column]) -> str:
    """Header plus one line per row; an empty row set renders as an empty string."""

    if not rows:
        return ""
    table = [[column.label for column in columns]]
    table.extend([row.get(column.key) for column in columns] for row in rows)
    return _write_rows(table)[:-1]


def _stat_lines(stats: Sequence[StatItem]) -> str:
    return "".join(_line((stat.title, stat.value)) for stat in stats)


def section_to_csv(section: ExportSection) -> str:
    text = _quoted(section.title) + "\n"
    if section.stats:
        text += _quoted("Metric", "Value")
        text += _stat_lines(section.stats)
        text += "\n"
    if section.table_data and section.columns:
        text += _line(column.label for column in section.columns)
        for row in section.table_data:
            text += _line(row.get(column.key) for column in section.columns)
    return text


def _group_cells(groups: Sequence[ColumnGroup]) -> List[str]:
    cells: List[str] = []
    for group in groups:
        cells.append(group.label)
        cells.extend([""] * (group.span - 1))
    return cells


def user_report_csv(report: UserReport, title: Optional[str] = None) -> str:
    """
    Group row, label row, then one line per user.

    With ``title`` the block starts with the quoted title and a blank line.
    """

    columns = build_report_columns(report.screen_names, report.categories, report.asset_names)
    groups = build_report_groups(report.screen_names, report.categories, report.asset_names)
    text = _quoted(title) + "\n" if title else ""
    text += _line(_group_cells(groups))
    text += _line(column.label for column in columns)
    for row in report.rows:
        text += _line(row.get(column.key) for column in columns)
    return text


def _find(sections: Sequence[ExportSection], section_id: str) -> Optional[ExportSection]:
    return next((section for section in sections if section.id == section_id), None)


def generate_full_csv(
    sections: Sequence[ExportSection],
    date_range: Optional[str] = None,
    user_report: Optional[UserReport] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    """
    Combined export: metadata header, executive summary, every section behind a
    ``---`` divider, then the user report when it has rows.

    The executive summary reads the user activity and feed activity sections
    and skips whichever is missing.
    """

    generated_at = generated_at or datetime.now()
    text = _quoted("ConveyMed Analytics Export")
    text += _quoted("Generated", f"{generated_at:%Y-%m-%d %H:%M:%S}")
    if date_range:
        text += _quoted("Date Range", date_range)
    text += "\n"

    text += _quoted("EXECUTIVE SUMMARY")
    text += _quoted("Metric", "Value")
    for section_id in ("userActivity", "feedActivity"):
        section = _find(sections, section_id)
        if section is not None:
            text += _stat_lines(section.stats)
    text += "\n"

    for section in sections:
        text += "---\n"
        text += section_to_csv(section)
        text += "\n"

    if user_report is not None and user_report.rows:
        text += "---\n"
        text += user_report_csv(user_report, title="INDIVIDUAL USER REPORT")
    return text


def with_bom(text: str) -> bytes:
    return (UTF8_BOM + text).encode("utf-8")


def safe_name(title: str) -> str:
    """Lowercase slug used in per-section filenames: ``"AI Usage"`` -> ``"ai-usage"``."""

    return re.sub(r"[^a-z0-9]+", "-", title.lower())
