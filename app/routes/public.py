"""
Public verification routes.

Anyone holding a pass's QR code or link can view its public projection
without authenticating. Every successful view is recorded as a scan after
the response has been sent.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import RecordNotFoundError
from app.services.record_service import RecordService
from app.services.scan_service import ScanRequestMetadata, record_scan

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

router = APIRouter()
page_router = APIRouter()


@router.get("/public/records/{public_token}")
async def get_public_record(
    public_token: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    view = await RecordService(db).get_public(public_token)
    background_tasks.add_task(record_scan, view.id, ScanRequestMetadata.from_request(request))
    return {"success": True, "data": view.model_dump(mode="json")}


@page_router.get("/records/{identifier}", response_class=HTMLResponse)
async def public_record_page(
    identifier: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Verification page for a public token or a record id."""
    try:
        view = await RecordService(db).get_public(identifier)
    except RecordNotFoundError:
        logger.info(f"Public page requested for unknown identifier {identifier}")
        return templates.TemplateResponse(
            request,
            "public_record.html",
            {"record": None, "identifier": identifier, "app_name": settings.app_name},
            status_code=404,
        )

    background_tasks.add_task(record_scan, view.id, ScanRequestMetadata.from_request(request))
    return templates.TemplateResponse(
        request,
        "public_record.html",
        {"record": view, "identifier": identifier, "app_name": settings.app_name},
    )
