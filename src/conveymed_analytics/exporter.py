"""
Export orchestration: turn section summaries into export blocks, write the
CSV/XLSX/ZIP payloads and guard the whole run with a two-state controller.

Every ``download_*`` function builds its complete payload in memory first and
only then writes one file into the export directory, returning its path.
"""

from __future__ import annotations

import asyncio
import logging
import os
import zipfile
from datetime import date
from enum import Enum
from io import BytesIO
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import ExportConfig
from .csv_export import generate_full_csv, safe_name, section_to_csv, to_csv, user_report_csv, with_bom
from .formatting import format_duration, format_number
from .models import (
    AIUsageSummary,
    AssetSummary,
    ChatActivitySummary,
    Column,
    DirectoryUsageSummary,
    DownloadsSummary,
    ExportSection,
    FeedActivitySummary,
    GrowthSummary,
    NotificationsSummary,
    Row,
    ScreenEngagementSummary,
    StatItem,
    UserActivitySummary,
    UserReport,
    as_rows,
)
from .workbook import build_user_report_workbook, build_workbook, workbook_bytes

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Raised when an export is triggered while another one is running."""


class ExportFormat(str, Enum):
    EXCEL = "excel"
    CSV = "csv"
    ZIP = "zip"


def _percent(value: Any) -> str:
    return f"{value}%"


def _ranked_rows(users, count_key: str) -> List[Row]:
    return [{"name": user.name, count_key: user.count} for user in users]


def _user_activity(data: UserActivitySummary) -> ExportSection:
    return ExportSection(
        id="userActivity",
        title="User Activity",
        stats=(
            StatItem("Total Users", format_number(data.total_users)),
            StatItem("Active Users", format_number(data.active_users)),
            StatItem("Inactive Users", format_number(data.inactive_users)),
            StatItem("Engagement Rate", _percent(data.engagement_ratio)),
            StatItem("Total Sessions", format_number(data.total_sessions)),
            StatItem("Avg Session Duration", format_duration(data.avg_duration)),
        ),
    )


def _screen_engagement(data: ScreenEngagementSummary) -> ExportSection:
    return ExportSection(
        id="screenEngagement",
        title="Screen Engagement",
        stats=(StatItem("Total Views", format_number(data.total_views)),),
        columns=(Column("screen_name", "Screen"), Column("views", "Views"), Column("unique_users", "Unique Users")),
        table_data=as_rows(data.top_screens),
    )


def _feed_activity(data: FeedActivitySummary) -> ExportSection:
    return ExportSection(
        id="feedActivity",
        title="Feed Activity",
        stats=(
            StatItem("Total Posts", format_number(data.total_posts)),
            StatItem("Posts with Engagement", format_number(data.posts_with_engagement)),
            StatItem("Engagement Rate", _percent(data.engagement_rate)),
            StatItem("No Response Posts", format_number(data.posts_no_engagement)),
        ),
        columns=(
            Column("title", "Post"),
            Column("likes", "Likes"),
            Column("comments", "Comments"),
            Column("points", "Points"),
        ),
        table_data=as_rows(data.top_posts),
    )


def _assets(section_id: str, title: str, data: AssetSummary) -> ExportSection:
    return ExportSection(
        id=section_id,
        title=title,
        stats=(
            StatItem("Total Interactions", format_number(data.total_interactions)),
            StatItem("Unique Users", format_number(data.unique_users)),
        ),
        columns=(
            Column("asset_name", "Asset"),
            Column("category", "Category"),
            Column("interactions", "Interactions"),
            Column("unique_users", "Unique Users"),
            Column("in_app", "In App"),
        ),
        table_data=as_rows(data.top_assets),
    )


def _downloads(data: DownloadsSummary) -> ExportSection:
    return ExportSection(
        id="downloads",
        title="Downloads",
        stats=(
            StatItem("Total Users", format_number(data.total_users)),
            StatItem("Users Who Downloaded", format_number(data.users_who_downloaded)),
            StatItem("Download Rate", _percent(data.download_rate)),
            StatItem("Total Downloads", format_number(data.total_downloads)),
        ),
        columns=(Column("name", "User"), Column("downloads", "Downloads")),
        table_data=_ranked_rows(data.top_downloaders, "downloads"),
    )


def _ai_usage(data: AIUsageSummary) -> ExportSection:
    return ExportSection(
        id="aiUsage",
        title="AI Usage",
        stats=(
            StatItem("Total Queries", format_number(data.total_queries)),
            StatItem("Users Who Used AI", format_number(data.users_who_used_ai)),
            StatItem("Avg Queries per User", data.avg_queries_per_user),
        ),
        columns=(Column("name", "User"), Column("queries", "Queries")),
        table_data=_ranked_rows(data.top_users, "queries"),
    )


def _chat_activity(data: ChatActivitySummary) -> ExportSection:
    return ExportSection(
        id="chatActivity",
        title="Chat Activity",
        stats=(
            StatItem("Total Messages", format_number(data.total_messages)),
            StatItem("Active Chatters", format_number(data.active_chatters)),
            StatItem("Avg Messages per User", data.avg_messages_per_chatter),
        ),
        columns=(Column("name", "User"), Column("messages", "Messages")),
        table_data=_ranked_rows(data.top_chatters, "messages"),
    )


def _directory_usage(data: DirectoryUsageSummary) -> ExportSection:
    return ExportSection(
        id="directoryUsage",
        title="Directory Usage",
        stats=(
            StatItem("Profile Views", format_number(data.total_profile_views)),
            StatItem("Directory Searches", format_number(data.total_searches)),
            StatItem("Users Who Searched", format_number(data.users_who_searched)),
        ),
        columns=(Column("name", "User"), Column("views", "Profile Views")),
        table_data=_ranked_rows(data.most_viewed_profiles, "views"),
    )


def _notifications(data: NotificationsSummary) -> ExportSection:
    return ExportSection(
        id="notifications",
        title="Notifications",
        stats=(
            StatItem("Total Sent", format_number(data.total_sent)),
            StatItem("Post Notifications", format_number(data.post_push_count)),
            StatItem("Updates", format_number(data.update_count)),
            StatItem("Events", format_number(data.event_count)),
            StatItem("Total Reads", format_number(data.total_reads)),
            StatItem("Push Clicks", format_number(data.total_clicks)),
        ),
        columns=(Column("type", "Type"), Column("count", "Count")),
        table_data=as_rows(data.breakdown),
    )


def _growth_retention(data: GrowthSummary) -> ExportSection:
    return ExportSection(
        id="growthRetention",
        title="Growth & Retention",
        stats=(
            StatItem("Total Users", format_number(data.total_users)),
            StatItem("New Signups", format_number(data.new_signups)),
            StatItem("Active Users", format_number(data.active_users)),
            StatItem("Inactive Users", format_number(data.inactive_users)),
        ),
    )


SECTION_BUILDERS: Dict[str, Callable[[Any], ExportSection]] = {
    "userActivity": _user_activity,
    "screenEngagement": _screen_engagement,
    "feedActivity": _feed_activity,
    "libraryAssets": lambda data: _assets("libraryAssets", "Library Assets", data),
    "trainingAssets": lambda data: _assets("trainingAssets", "Training Assets", data),
    "downloads": _downloads,
    "aiUsage": _ai_usage,
    "chatActivity": _chat_activity,
    "directoryUsage": _directory_usage,
    "notifications": _notifications,
    "growthRetention": _growth_retention,
}


def build_export_sections(dashboard, selected_ids: Iterable[str]) -> List[ExportSection]:
    """
    Export blocks for the selected sections, in dashboard order.

    A section with no data yet (never fetched, or failed on its first fetch)
    is left out rather than exported empty.
    """

    selected = set(selected_ids)
    unknown = selected - set(SECTION_BUILDERS)
    if unknown:
        raise KeyError(f"Unknown section(s): {', '.join(sorted(unknown))}")

    sections: List[ExportSection] = []
    for section_id, builder in SECTION_BUILDERS.items():
        if section_id not in selected:
            continue
        data = dashboard.data(section_id)
        if data is None:
            logger.debug("Skipping %s in export: no data", section_id)
            continue
        sections.append(builder(data))
    return sections


def timestamp(today: Optional[date] = None) -> str:
    return (today or date.today()).isoformat()


def _write(config: ExportConfig, filename: str, payload: bytes) -> str:
    os.makedirs(config.output_dir, exist_ok=True)
    path = os.path.join(config.output_dir, filename)
    with open(path, "wb") as handle:
        handle.write(payload)
    logger.info("Export written: %s (%s bytes)", path, len(payload))
    return path


def download_csv(rows: Sequence[Row], columns: Sequence[Column], filename: str, config: ExportConfig) -> str:
    return _write(config, f"{filename}_{timestamp()}.csv", with_bom(to_csv(rows, columns)))


def download_section_csv(section: ExportSection, config: ExportConfig, base_filename: Optional[str] = None) -> str:
    base = base_filename or config.filename_prefix
    filename = f"{base}_{safe_name(section.title)}_{timestamp()}.csv"
    return _write(config, filename, with_bom(section_to_csv(section)))


def download_full_csv(
    sections: Sequence[ExportSection],
    filename: str,
    config: ExportConfig,
    date_range: Optional[str] = None,
    user_report: Optional[UserReport] = None,
) -> str:
    return _write(
        config, *render_export(ExportFormat.CSV, sections, filename, config.company_name, date_range, user_report)
    )


def build_csv_zip(
    sections: Sequence[ExportSection],
    date_range: Optional[str] = None,
    user_report: Optional[UserReport] = None,
) -> bytes:
    """Summary CSV, one CSV per section and the user report CSV in one archive."""

    stamp = timestamp()
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(
            f"summary_{stamp}.csv",
            with_bom(generate_full_csv(sections, date_range=date_range, user_report=user_report)),
        )
        for section in sections:
            archive.writestr(f"{safe_name(section.title)}_{stamp}.csv", with_bom(section_to_csv(section)))
        if user_report is not None and user_report.rows:
            archive.writestr(
                f"user-report_{stamp}.csv",
                with_bom(user_report_csv(user_report, title="Individual User Report")),
            )
    return buffer.getvalue()


def download_csv_zip(
    sections: Sequence[ExportSection],
    filename: str,
    config: ExportConfig,
    date_range: Optional[str] = None,
    user_report: Optional[UserReport] = None,
) -> str:
    return _write(
        config, *render_export(ExportFormat.ZIP, sections, filename, config.company_name, date_range, user_report)
    )


def download_excel(
    sections: Sequence[ExportSection],
    filename: str,
    config: ExportConfig,
    date_range: Optional[str] = None,
    user_report: Optional[UserReport] = None,
) -> str:
    return _write(
        config, *render_export(ExportFormat.EXCEL, sections, filename, config.company_name, date_range, user_report)
    )


def download_user_report_excel(report: UserReport, filename: str, config: ExportConfig) -> str:
    workbook = build_user_report_workbook(report, company_name=config.company_name)
    return _write(config, f"{filename}_{timestamp()}.xlsx", workbook_bytes(workbook))


def download_user_report_csv(report: UserReport, filename: str, config: ExportConfig) -> str:
    return _write(config, f"{filename}_{timestamp()}.csv", with_bom(user_report_csv(report)))


class ExportState(str, Enum):
    IDLE = "idle"
    EXPORTING = "exporting"


WRITERS = {
    ExportFormat.EXCEL: download_excel,
    ExportFormat.CSV: download_full_csv,
    ExportFormat.ZIP: download_csv_zip,
}

MEDIA_TYPES = {
    ExportFormat.EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.CSV: "text/csv; charset=utf-8",
    ExportFormat.ZIP: "application/zip",
}


def render_export(
    export_format: ExportFormat | str,
    sections: Sequence[ExportSection],
    filename: str,
    company_name: str = "ConveyMed",
    date_range: Optional[str] = None,
    user_report: Optional[UserReport] = None,
) -> Tuple[str, bytes]:
    """Build one export payload in memory and return ``(filename, payload)``."""

    export_format = ExportFormat(export_format)
    stamp = timestamp()
    if export_format is ExportFormat.EXCEL:
        workbook = build_workbook(sections, company_name=company_name, date_range=date_range, user_report=user_report)
        return f"{filename}_{stamp}.xlsx", workbook_bytes(workbook)
    if export_format is ExportFormat.ZIP:
        payload = build_csv_zip(sections, date_range=date_range, user_report=user_report)
        return f"{filename}_export_{stamp}.zip", payload
    csv = generate_full_csv(sections, date_range=date_range, user_report=user_report)
    return f"{filename}_full_{stamp}.csv", with_bom(csv)


class ExportController:
    """
    Runs one export at a time.

    ``idle -> exporting -> idle``. A second trigger while exporting raises
    :class:`ExportError`. Failures inside the run are logged and return
    ``None``; the state always ends back at ``idle`` and no file is written.
    """

    def __init__(self, config: Optional[ExportConfig] = None) -> None:
        self.config = config or ExportConfig()
        self.state = ExportState.IDLE
        self.last_path: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.state is ExportState.EXPORTING

    async def export(
        self,
        dashboard,
        section_ids: Iterable[str],
        export_format: ExportFormat | str = ExportFormat.EXCEL,
        include_user_report: bool = True,
        filename: Optional[str] = None,
    ) -> Optional[str]:
        """
        Export the selected sections of ``dashboard`` as they are now.

        Section summaries are taken from the dashboard's current state; only
        the user report is fetched fresh for the run.
        """

        if self.busy:
            raise ExportError("An export is already running")

        self.state = ExportState.EXPORTING
        try:
            writer = WRITERS[ExportFormat(export_format)]
            user_report = await dashboard.fetch_user_report() if include_user_report else None
            sections = build_export_sections(dashboard, section_ids)
            path = await asyncio.to_thread(
                writer,
                sections,
                filename or f"{self.config.filename_prefix}-analytics-report",
                self.config,
                date_range=dashboard.date_range.describe(),
                user_report=user_report,
            )
        except Exception as exc:
            logger.error("Export error: %s", exc)
            return None
        finally:
            self.state = ExportState.IDLE

        self.last_path = path
        return path
