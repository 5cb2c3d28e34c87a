"""
Tests for dashboard analytics
"""

from datetime import date

import pytest

from app.services.analytics_service import AnalyticsService
from app.services.record_service import RecordService
from app.services.scan_service import record_scan


@pytest.fixture
async def seeded(db, owner, other_owner, storage, clock):
    """Two live records, one expired and one archived for ``owner``; one record for ``other_owner``."""
    service = RecordService(db, storage=storage, clock=clock)

    # Three days earlier, already past its one-hour window
    clock.advance(days=-3)
    expired = (await service.create_record(owner.id, {"n": "expired"}, validity_hours=1)).record
    clock.advance(days=3)

    live = (await service.create_record(owner.id, {"n": "live"}, validity_hours=24)).record
    second = (await service.create_record(owner.id, {"n": "second"}, validity_hours=24)).record
    archived = (await service.create_record(owner.id, {"n": "archived"}, validity_hours=24)).record
    await service.archive_record(owner.id, archived.id)

    foreign = (await service.create_record(other_owner.id, {"n": "foreign"})).record

    for _ in range(3):
        await record_scan(live.id, clock=clock)
    await record_scan(second.id, clock=clock)
    await record_scan(foreign.id, clock=clock)

    return {"expired": expired, "live": live, "second": second, "archived": archived}


class TestDashboardStats:
    async def test_counts_by_effective_status(self, db, owner, seeded, clock):
        stats = await AnalyticsService.get_dashboard_stats(db, owner.id, clock=clock)

        assert stats["total_records"] == 4
        assert stats["active_records"] == 2
        assert stats["expired_records"] == 1
        assert stats["archived_records"] == 1

    async def test_scan_totals(self, db, owner, seeded, clock):
        stats = await AnalyticsService.get_dashboard_stats(db, owner.id, clock=clock)

        assert stats["total_scans"] == 4
        assert stats["avg_scans_per_record"] == 1

    async def test_recent_activity(self, db, owner, seeded, clock):
        stats = await AnalyticsService.get_dashboard_stats(db, owner.id, clock=clock)

        assert stats["records_today"] == 3
        assert stats["records_this_week"] == 4

    async def test_records_expire_as_time_passes(self, db, owner, seeded, clock):
        clock.advance(hours=25)

        stats = await AnalyticsService.get_dashboard_stats(db, owner.id, clock=clock)

        assert stats["active_records"] == 0
        assert stats["expired_records"] == 3
        assert stats["archived_records"] == 1

    async def test_no_records(self, db, owner, clock):
        stats = await AnalyticsService.get_dashboard_stats(db, owner.id, clock=clock)

        assert stats["total_records"] == 0
        assert stats["total_scans"] == 0
        assert stats["avg_scans_per_record"] == 0


class TestDailySeries:
    async def test_records_per_day(self, db, owner, seeded, clock):
        series = await AnalyticsService.get_records_per_day(db, owner.id, days=7, clock=clock)

        assert len(series) == 8
        # 06:30 UTC on 10 March is 12:00 IST the same day
        assert series[-1] == {"date": "2025-03-10", "count": 3}
        assert series[-4] == {"date": "2025-03-07", "count": 1}
        assert sum(day["count"] for day in series) == 4

    async def test_series_is_oldest_first_and_zero_filled(self, db, owner, clock):
        series = await AnalyticsService.get_records_per_day(db, owner.id, days=30, clock=clock)

        assert len(series) == 31
        assert all(day["count"] == 0 for day in series)
        dates = [date.fromisoformat(day["date"]) for day in series]
        assert dates == sorted(dates)
        assert dates[0] == date(2025, 2, 8)

    async def test_scans_per_day(self, db, owner, seeded, clock):
        series = await AnalyticsService.get_scans_per_day(db, owner.id, days=7, clock=clock)

        assert len(series) == 8
        assert series[-1]["count"] == 4

    async def test_old_records_fall_outside_window(self, db, owner, seeded, clock):
        series = await AnalyticsService.get_records_per_day(db, owner.id, days=1, clock=clock)

        assert [day["count"] for day in series] == [0, 3]
