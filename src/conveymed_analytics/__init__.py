"""
ConveyMed analytics dashboard core.

Reads raw event rows from the backend, folds them into per-section summaries
and renders those summaries as CSV, ZIP and styled workbook exports.
"""

from .backend import (  # noqa: F401
    AnalyticsBackend,
    BackendError,
    SQLAnalyticsBackend,
    TableQuery,
    build_backend_from_env,
)
from .config import (  # noqa: F401
    TIMEFRAMES,
    AnalyticsConfig,
    DashboardConfig,
    DatabaseConfig,
    ExportConfig,
    TimeframeKey,
    resolve_date_range,
)
from .exporter import (  # noqa: F401
    ExportController,
    ExportError,
    ExportFormat,
    ExportState,
    build_export_sections,
)
from .models import (  # noqa: F401
    Column,
    ColumnGroup,
    DateRange,
    ExportSection,
    StatItem,
    UserReport,
)
from .sections import SECTION_IDS, Dashboard, SectionContext, SectionController  # noqa: F401
