from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_db
from app.models.user import User
from app.services.analytics_service import DEFAULT_SERIES_DAYS, AnalyticsService

router = APIRouter()


@router.get("/stats")
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    stats = await AnalyticsService.get_dashboard_stats(db, current_user.id)
    return {"success": True, "data": stats}


@router.get("/records-per-day")
async def records_per_day(
    days: int = Query(DEFAULT_SERIES_DAYS, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    series = await AnalyticsService.get_records_per_day(db, current_user.id, days=days)
    return {"success": True, "data": series}


@router.get("/scans-per-day")
async def scans_per_day(
    days: int = Query(DEFAULT_SERIES_DAYS, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    series = await AnalyticsService.get_scans_per_day(db, current_user.id, days=days)
    return {"success": True, "data": series}
