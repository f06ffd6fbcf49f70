from __future__ import annotations

import csv
import io
from datetime import datetime

from conveymed_analytics.csv_export import (
    UTF8_BOM,
    escape_csv,
    generate_full_csv,
    safe_name,
    section_to_csv,
    to_csv,
    user_report_csv,
    with_bom,
)
from conveymed_analytics.models import Column, ExportSection, StatItem, UserReport

GENERATED = datetime(2025, 3, 31, 9, 30, 5)


def _parse(text: str):
    return list(csv.reader(io.StringIO(text)))


def _activity() -> ExportSection:
    return ExportSection(
        id="userActivity",
        title="User Activity",
        stats=(StatItem("Total Users", "1,204"), StatItem("Engagement Rate", "40.0%")),
    )


def _screens() -> ExportSection:
    return ExportSection(
        id="screenEngagement",
        title="Screen Engagement",
        stats=(StatItem("Total Views", "12"),),
        columns=(Column("screen_name", "Screen"), Column("views", "Views")),
        table_data=({"screen_name": "Home", "views": 9}, {"screen_name": "Library, PDFs", "views": 3}),
    )


def test_escape_csv_only_quotes_when_needed():
    assert escape_csv(None) == ""
    assert escape_csv(12) == "12"
    assert escape_csv("plain") == "plain"
    assert escape_csv("Smith, John") == '"Smith, John"'
    assert escape_csv('say "hi"') == '"say ""hi"""'
    assert escape_csv("two\nlines") == '"two\nlines"'


def test_to_csv_round_trips_through_a_csv_reader():
    rows = [{"name": "Smith, John", "note": 'a "quote"', "count": 3}, {"name": "Jane", "note": None, "count": 0}]
    columns = [Column("name", "Name"), Column("note", "Note"), Column("count", "Count")]

    text = to_csv(rows, columns)

    assert '"Smith, John"' in text
    assert _parse(text) == [["Name", "Note", "Count"], ["Smith, John", 'a "quote"', "3"], ["Jane", "", "0"]]


def test_to_csv_empty():
    assert to_csv([], [Column("name", "Name")]) == ""


def test_section_layout():
    text = section_to_csv(_screens())

    assert text.startswith('"Screen Engagement"\n\n"Metric","Value"\nTotal Views,12\n\n')
    assert _parse(text) == [
        ["Screen Engagement"],
        [],
        ["Metric", "Value"],
        ["Total Views", "12"],
        [],
        ["Screen", "Views"],
        ["Home", "9"],
        ["Library, PDFs", "3"],
    ]


def test_section_without_stats_or_table():
    assert section_to_csv(ExportSection(id="x", title="Empty")) == '"Empty"\n\n'


def test_full_csv_header_and_summary():
    text = generate_full_csv([_activity(), _screens()], date_range="2025-03-01 - 2025-03-31", generated_at=GENERATED)
    lines = text.split("\n")

    assert lines[:4] == [
        '"ConveyMed Analytics Export"',
        '"Generated","2025-03-31 09:30:05"',
        '"Date Range","2025-03-01 - 2025-03-31"',
        "",
    ]
    assert lines[4:8] == ['"EXECUTIVE SUMMARY"', '"Metric","Value"', 'Total Users,"1,204"', "Engagement Rate,40.0%"]
    assert text.count("---\n") == 2


def test_full_csv_tolerates_missing_summary_sections():
    text = generate_full_csv([_screens()], generated_at=GENERATED)

    assert "Date Range" not in text
    assert '"EXECUTIVE SUMMARY"\n"Metric","Value"\n\n---\n' in text


def test_full_csv_appends_user_report_with_rows():
    report = UserReport(
        rows=[{"name": "Smith, John", "total_sessions": 2, "screen_Home": 1}],
        categories=["Cardiology"],
        screen_names=["Home"],
    )

    text = generate_full_csv([], user_report=report, generated_at=GENERATED)
    assert '"INDIVIDUAL USER REPORT"' in text

    empty = generate_full_csv([], user_report=UserReport(), generated_at=GENERATED)
    assert "INDIVIDUAL USER REPORT" not in empty


def test_user_report_csv_groups_and_labels():
    report = UserReport(
        rows=[{"name": "Alice", "total_sessions": 2, "screen_Home": 1, "asset_Cardiology": 4}],
        categories=["Cardiology"],
        screen_names=["Home"],
    )

    rows = _parse(user_report_csv(report))

    assert rows[0] == [
        "Individual User Activity Report", "", "", "",
        "Screens Visited", "",
        "Categories", "",
    ]
    assert rows[1] == [
        "Name", "Total Sessions", "Duration (min)", "Avg Session (min)",
        "Home", "Screen Views Total",
        "Total Assets", "Cardiology",
    ]
    assert rows[2] == ["Alice", "2", "", "", "1", "", "", "4"]


def test_bom_and_safe_name():
    payload = with_bom("a,b")
    assert payload.startswith(UTF8_BOM.encode("utf-8"))
    assert payload.decode("utf-8-sig") == "a,b"
    assert safe_name("AI Usage") == "ai-usage"
    assert safe_name("Growth & Retention") == "growth-retention"


def test_booleans_render_lowercase():
    columns = [Column("asset_name", "Asset"), Column("in_app", "In App")]
    rows = [{"asset_name": "Stent Guide", "in_app": True}, {"asset_name": "Old Brochure", "in_app": False}]

    assert to_csv(rows, columns) == "Asset,In App\nStent Guide,true\nOld Brochure,false"
    assert escape_csv(False) == "false"

    section = ExportSection(id="libraryAssets", title="Library Assets", columns=columns, table_data=rows)
    assert "Old Brochure,false\n" in section_to_csv(section)
