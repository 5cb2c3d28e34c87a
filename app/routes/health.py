"""
Health Route

Reports whether the service can reach its database. Used by load
balancers and uptime monitors.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Monitoring"])

# Application start time for uptime calculation
APP_START_TIME = time.time()


async def _check_database(db: AsyncSession) -> dict[str, Any]:
    try:
        start = time.perf_counter()
        await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
        return {"status": "healthy", "latency_ms": round(latency_ms, 2)}
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    database = await _check_database(db)
    if database["status"] != "healthy":
        return JSONResponse(status_code=503, content={"status": "error", "message": "Database connection failed"})

    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.time() - APP_START_TIME, 2),
        "version": settings.app_version,
        "database": database,
    }
