"""
Scan Service

Records public views of a record. Every view appends a ``scan_logs`` row
and bumps the record's ``total_scans`` / ``last_scan_at``. The counter is
incremented in a single UPDATE statement so concurrent scans of the same
record never lose an increment.

Scan recording runs after the public response is sent and never raises.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app import database
from app.exceptions import OwnershipError, RecordNotFoundError
from app.middleware.logging import get_client_ip
from app.models.record import Record
from app.models.scan_log import ScanLog
from app.utils.timestamps import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

# Column limits on scan_logs
MAX_IP_LENGTH = 45
MAX_SESSION_ID_LENGTH = 128


@dataclass
class ScanRequestMetadata:
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "ScanRequestMetadata":
        """Collect best-effort visitor details from an incoming request."""
        ip_address = get_client_ip(request)
        session_id = request.query_params.get("session_id") or request.headers.get("x-session-id")

        return cls(
            user_agent=request.headers.get("user-agent"),
            ip_address=ip_address[:MAX_IP_LENGTH] if ip_address else None,
            referrer=request.headers.get("referer") or request.headers.get("referrer"),
            session_id=session_id[:MAX_SESSION_ID_LENGTH] if session_id else None,
        )


async def _append_scan_log(session: AsyncSession, record_id: str, metadata: ScanRequestMetadata, now: datetime) -> bool:
    try:
        session.add(
            ScanLog(
                record_id=record_id,
                scanned_at=now,
                user_agent=metadata.user_agent,
                ip_address=metadata.ip_address,
                referrer=metadata.referrer,
                session_id=metadata.session_id,
            )
        )
        await session.commit()
        return True
    except Exception as e:
        await session.rollback()
        logger.warning(f"Failed to write scan log for record {record_id}: {str(e)}")
        return False


async def _increment_counter(session: AsyncSession, record_id: str, now: datetime) -> bool:
    try:
        result = await session.execute(
            update(Record)
            .where(Record.id == record_id)
            .values(total_scans=Record.total_scans + 1, last_scan_at=now)
        )
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Failed to update scan counter for record {record_id}: {str(e)}")
        return False

    if result.rowcount == 0:
        logger.warning(f"Scan recorded for unknown record {record_id}")
        return False
    return True


async def record_scan(
    record_id: str,
    metadata: Optional[ScanRequestMetadata] = None,
    session_factory: Optional[async_sessionmaker] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> bool:
    """
    Log one public view of a record and bump its scan counter.

    Uses its own session so it can run as a background task after the
    response has been sent. Failures are logged, never raised.

    Returns:
        True when the counter was incremented
    """
    metadata = metadata or ScanRequestMetadata()
    factory = session_factory or database.AsyncSessionLocal
    now = as_utc((clock or utcnow)())

    try:
        async with factory() as session:
            await _append_scan_log(session, record_id, metadata, now)
            return await _increment_counter(session, record_id, now)
    except Exception as e:
        logger.error(f"Scan recording failed for record {record_id}: {str(e)}")
        return False


async def get_scan_history(
    db: AsyncSession, owner_id: str, record_id: str, limit: int = DEFAULT_HISTORY_LIMIT
) -> list[ScanLog]:
    """
    Scan events for a record, newest first.

    Raises:
        RecordNotFoundError: If the record does not exist
        OwnershipError: If ``owner_id`` does not own it
    """
    result = await db.execute(select(Record.user_id).where(Record.id == record_id))
    record_owner = result.scalar_one_or_none()
    if record_owner is None:
        raise RecordNotFoundError(record_id)
    if record_owner != owner_id:
        raise OwnershipError(record_id)

    result = await db.execute(
        select(ScanLog)
        .where(ScanLog.record_id == record_id)
        .order_by(ScanLog.scanned_at.desc(), ScanLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
