"""
Analytics Service

Per-owner dashboard figures: totals, recent activity and daily series of
records created and scans received. Days are calendar days on the display
timezone.
"""

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.record import Record, RecordStatus
from app.models.scan_log import ScanLog
from app.services.record_service import compute_effective_status
from app.utils.timestamps import as_utc, display_zone, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SERIES_DAYS = 30


def _local_date(value: datetime) -> date:
    return as_utc(value).astimezone(display_zone()).date()


def _start_of_local_day(day: date) -> datetime:
    return as_utc(datetime.combine(day, time(0, 0), tzinfo=display_zone()))


def _zero_filled(counts: Counter, today: date, days: int) -> list[dict[str, Any]]:
    """One entry per day from ``today - days`` through ``today``, oldest first."""
    series = []
    for offset in range(days, -1, -1):
        day = today - timedelta(days=offset)
        series.append({"date": day.isoformat(), "count": counts.get(day, 0)})
    return series


class AnalyticsService:
    """Service for generating dashboard analytics"""

    @staticmethod
    async def get_dashboard_stats(
        db: AsyncSession, owner_id: str, clock: Optional[Callable[[], datetime]] = None
    ) -> dict[str, Any]:
        """
        Get headline statistics for one owner.

        Active and expired counts use the effective status, so a record
        past its validity window counts as expired even though its stored
        status still says active.

        Args:
            db: Database session
            owner_id: Owner whose records are counted
            clock: Current time source

        Returns:
            Dict with dashboard statistics
        """
        now = as_utc((clock or utcnow)())
        today_start = _start_of_local_day(_local_date(now))
        week_start = today_start - timedelta(days=7)

        records_result = await db.execute(select(Record).where(Record.user_id == owner_id))
        records = records_result.scalars().all()

        # Total scans counted from the scan log, not the denormalized counter
        scans_result = await db.execute(
            select(func.count(ScanLog.id)).join(Record, Record.id == ScanLog.record_id).where(Record.user_id == owner_id)
        )
        total_scans = scans_result.scalar() or 0

        statuses = Counter(compute_effective_status(record, now) for record in records)
        total_records = len(records)

        return {
            "total_records": total_records,
            "total_scans": total_scans,
            "records_today": sum(1 for r in records if as_utc(r.created_at) >= today_start),
            "records_this_week": sum(1 for r in records if as_utc(r.created_at) >= week_start),
            "avg_scans_per_record": round(total_scans / total_records) if total_records else 0,
            "active_records": statuses.get(RecordStatus.ACTIVE, 0),
            "expired_records": statuses.get(RecordStatus.EXPIRED, 0),
            "archived_records": statuses.get(RecordStatus.ARCHIVED, 0),
        }

    @staticmethod
    async def get_records_per_day(
        db: AsyncSession,
        owner_id: str,
        days: int = DEFAULT_SERIES_DAYS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> list[dict[str, Any]]:
        """Records created per day over the last ``days`` days, zero-filled."""
        today = _local_date((clock or utcnow)())
        since = _start_of_local_day(today - timedelta(days=days))

        result = await db.execute(
            select(Record.created_at).where(Record.user_id == owner_id, Record.created_at >= since)
        )
        counts = Counter(_local_date(created_at) for created_at in result.scalars().all())

        return _zero_filled(counts, today, days)

    @staticmethod
    async def get_scans_per_day(
        db: AsyncSession,
        owner_id: str,
        days: int = DEFAULT_SERIES_DAYS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> list[dict[str, Any]]:
        """Scans received per day across the owner's records, zero-filled."""
        today = _local_date((clock or utcnow)())
        since = _start_of_local_day(today - timedelta(days=days))

        result = await db.execute(
            select(ScanLog.scanned_at)
            .join(Record, Record.id == ScanLog.record_id)
            .where(Record.user_id == owner_id, ScanLog.scanned_at >= since)
        )
        counts = Counter(_local_date(scanned_at) for scanned_at in result.scalars().all())

        logger.debug(f"Scans per day for user {owner_id}: {sum(counts.values())} scans since {since.isoformat()}")
        return _zero_filled(counts, today, days)
