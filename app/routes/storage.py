"""
Stored artifact downloads.

QR images are public. PDFs are only served through a signed URL whose
``expires`` and ``signature`` query parameters are checked here.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import Response

from app.exceptions import StorageError, StoredObjectNotFoundError
from app.services.storage_service import get_storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Storage"])


@router.get("/storage/{key:path}")
async def download_object(
    key: str,
    expires: Optional[int] = Query(None),
    signature: Optional[str] = Query(None),
):
    storage = get_storage()
    try:
        storage.validate_key(key)
    except StorageError:
        raise StoredObjectNotFoundError(key)

    if not storage.is_public_key(key):
        storage.verify_signature(key, expires, signature)

    data = await storage.read(key)
    return Response(
        content=data,
        media_type=storage.content_type_for(key),
        headers={"Cache-Control": "public, max-age=86400" if storage.is_public_key(key) else "private, no-store"},
    )
