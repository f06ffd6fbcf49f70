from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from .backend import AnalyticsBackend, BackendError, build_backend_from_env
from .config import TIMEFRAMES, AnalyticsConfig, TimeframeKey, configure_logging, resolve_date_range
from .exporter import MEDIA_TYPES, ExportController, ExportError, ExportFormat
from .models import serialize
from .queries import fetch_org_user_ids, fetch_organizations
from .sections import SECTION_IDS, Dashboard
from .user_report import fetch_user_list, fetch_user_report

logger = logging.getLogger(__name__)

config = AnalyticsConfig.from_env()
configure_logging(config.log_level)

app = FastAPI(title="ConveyMed Analytics API", version="0.1.0")
backend: Optional[AnalyticsBackend] = build_backend_from_env(config.database)
exporter = ExportController(config.export)


class DashboardRequest(BaseModel):
    timeframe: TimeframeKey = config.dashboard.default_timeframe
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    organization_id: Optional[str] = None
    sections: Optional[List[str]] = None

    @field_validator("end")
    @classmethod
    def _validate_range(cls, end: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        start = info.data.get("start")
        if start and end and end < start:
            raise ValueError("end must not be before start")
        return end

    @field_validator("sections")
    @classmethod
    def _validate_sections(cls, sections: Optional[List[str]]) -> Optional[List[str]]:
        if sections is None:
            return None
        unknown = [section for section in sections if section not in SECTION_IDS]
        if unknown:
            raise ValueError(f"unknown sections: {', '.join(unknown)}")
        return sections


class ExportRequest(DashboardRequest):
    format: ExportFormat = ExportFormat.EXCEL
    include_user_report: bool = True
    filename: Optional[str] = None


class DashboardResponse(BaseModel):
    data: Dict[str, Any]
    source: str = "database"


class UserListResponse(BaseModel):
    users: List[Dict[str, Any]] = Field(default_factory=list)


def _require_backend() -> AnalyticsBackend:
    if backend is None:
        raise HTTPException(
            status_code=503,
            detail="CONVEYMED_DATABASE_URL is not configured; the analytics backend is unavailable.",
        )
    return backend


async def _build_dashboard(request: DashboardRequest) -> Dashboard:
    client = _require_backend()
    if request.timeframe is TimeframeKey.CUSTOM and request.start is None:
        raise HTTPException(status_code=400, detail="A custom timeframe needs a start date.")
    date_range = resolve_date_range(request.timeframe, request.start, request.end)
    scope = fetch_org_user_ids(client, request.organization_id)
    return Dashboard(client, config=config, date_range=date_range, scope=scope)


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    logger.warning("Backend error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok", "backend": "configured" if backend is not None else "missing"}


@app.get("/timeframes")
async def timeframes() -> List[Dict[str, Any]]:
    return [{"key": item.key.value, "label": item.label, "days": item.days} for item in TIMEFRAMES.values()]


@app.get("/organizations")
async def organizations() -> List[Dict[str, Any]]:
    return serialize(fetch_organizations(_require_backend()))


@app.post("/dashboard", response_model=DashboardResponse)
async def dashboard_endpoint(request: DashboardRequest) -> DashboardResponse:
    dashboard = await _build_dashboard(request)
    await dashboard.fetch_all(request.sections)
    payload = dashboard.as_dict()
    if request.sections is not None:
        payload["sections"] = [section for section in payload["sections"] if section["id"] in request.sections]
    return DashboardResponse(data=payload)


@app.post("/sections/{section_id}", response_model=DashboardResponse)
async def section_endpoint(section_id: str, request: DashboardRequest) -> DashboardResponse:
    if section_id not in SECTION_IDS:
        raise HTTPException(status_code=404, detail=f"Unknown section: {section_id}")
    dashboard = await _build_dashboard(request)
    controller = await dashboard.refresh(section_id)
    return DashboardResponse(data=controller.as_dict())


@app.get("/users", response_model=UserListResponse)
async def users_endpoint(organization_id: Optional[str] = None) -> UserListResponse:
    client = _require_backend()
    scope = fetch_org_user_ids(client, organization_id)
    return UserListResponse(users=serialize(fetch_user_list(client, scope)))


@app.post("/users/{user_id}/report", response_model=DashboardResponse)
async def user_report_endpoint(user_id: str, request: DashboardRequest) -> DashboardResponse:
    client = _require_backend()
    date_range = resolve_date_range(request.timeframe, request.start, request.end)
    report = fetch_user_report(client, user_id, date_range)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Unknown user: {user_id}")
    return DashboardResponse(data=serialize(report))


@app.post("/export")
async def export_endpoint(request: ExportRequest) -> FileResponse:
    dashboard = await _build_dashboard(request)
    selected = request.sections if request.sections is not None else list(SECTION_IDS)
    await dashboard.fetch_all(selected)

    try:
        path = await exporter.export(
            dashboard,
            selected,
            export_format=request.format,
            include_user_report=request.include_user_report,
            filename=request.filename,
        )
    except ExportError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if path is None:
        raise HTTPException(status_code=500, detail="Export failed; see server logs.")
    return FileResponse(path, media_type=MEDIA_TYPES[request.format], filename=os.path.basename(path))
