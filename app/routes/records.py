from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_db
from app.models.record import RecordStatus
from app.models.user import User
from app.schemas.record import RecordCreate, RecordFilters, ScanLogResponse, SortField, SortOrder
from app.services import scan_service
from app.services.record_service import RecordService, build_owner_view, finalize_record_artifacts
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/records", status_code=status.HTTP_201_CREATED)
async def create_record(
    payload: RecordCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Create a pass. The record is returned as soon as it is stored; the QR
    code and PDF are generated afterwards, so both URLs start out null.
    """
    service = RecordService(db)
    result = await service.create_record(current_user.id, payload.form_data, payload.validity_hours)

    background_tasks.add_task(finalize_record_artifacts, result.record.id)

    return {
        "success": True,
        "data": build_owner_view(result.record, service.now()).model_dump(mode="json"),
        "public_token": result.public_token,
        "artifacts": "pending",
    }


@router.get("/records")
async def list_records(
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    sort_by: SortField = Query(SortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = RecordFilters(
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    listing = await RecordService(db).list_records(current_user.id, filters)
    return {"success": True, "data": listing.model_dump(mode="json")}


@router.get("/records/{record_id}")
async def get_record(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service = RecordService(db)
    record = await service.get_for_owner(current_user.id, record_id)
    return {"success": True, "data": build_owner_view(record, service.now()).model_dump(mode="json")}


@router.post("/records/{record_id}/archive")
async def archive_record(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service = RecordService(db)
    record = await service.archive_record(current_user.id, record_id)
    return {"success": True, "data": build_owner_view(record, service.now()).model_dump(mode="json")}


@router.delete("/records/{record_id}")
async def delete_record(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await RecordService(db).delete_record(current_user.id, record_id)
    return {"success": True, "data": {"id": record_id, "deleted": True}}


@router.get("/records/{record_id}/scans")
async def get_scan_history(
    record_id: str,
    limit: int = Query(scan_service.DEFAULT_HISTORY_LIMIT, ge=1, le=scan_service.DEFAULT_HISTORY_LIMIT),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    scans = await scan_service.get_scan_history(db, current_user.id, record_id, limit=limit)
    return {
        "success": True,
        "data": [ScanLogResponse.model_validate(scan).model_dump(mode="json") for scan in scans],
    }
