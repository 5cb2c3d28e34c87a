"""
QR Code Service

Encodes a record's public verification URL as a PNG and stores it under
``qr-codes/{owner_id}/{record_id}-{timestamp}.png``. The code is printed
small on the pass and re-photographed, so error correction defaults to
the highest level (H).
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from io import BytesIO

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q
from qrcode.image.pil import PilImage

from app.config import settings
from app.services.artifacts import ArtifactResult
from app.services.storage_service import QR_PREFIX, BlobStorage, get_storage

logger = logging.getLogger(__name__)

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

PUBLIC_RECORD_PATH = "/records"


@dataclass
class QROptions:
    width: int = 300
    margin: int = 2
    error_correction: str = "H"
    dark_color: str = "#000000"
    light_color: str = "#FFFFFF"

    @classmethod
    def from_settings(cls) -> "QROptions":
        return cls(
            width=settings.qr_width,
            margin=settings.qr_margin,
            error_correction=settings.qr_error_correction,
            dark_color=settings.qr_dark_color,
            light_color=settings.qr_light_color,
        )


def build_public_url(public_token: str, base_url: str | None = None) -> str:
    """URL embedded in the QR code: ``{base_url}/records/{public_token}``."""
    base = (base_url or settings.public_base_url).rstrip("/")
    return f"{base}{PUBLIC_RECORD_PATH}/{public_token}"


def encode_qr(data: str, options: QROptions | None = None) -> bytes:
    """
    Render ``data`` as a square PNG.

    Raises:
        ValueError: If the error correction level is unknown
    """
    options = options or QROptions.from_settings()

    level = ERROR_CORRECTION_LEVELS.get(options.error_correction.upper())
    if level is None:
        raise ValueError(f"Unknown error correction level: {options.error_correction}")

    qr = qrcode.QRCode(version=None, error_correction=level, box_size=10, border=options.margin)
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(
        image_factory=PilImage,
        fill_color=options.dark_color,
        back_color=options.light_color,
    ).convert("RGB")
    image = image.resize((options.width, options.width), Image.NEAREST)

    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


async def store_qr(
    record_id: str,
    owner_id: str,
    image_bytes: bytes,
    storage: BlobStorage | None = None,
) -> str:
    """Upload a QR image and return its public URL."""
    storage = storage or get_storage()
    key = f"{QR_PREFIX}/{owner_id}/{record_id}-{int(time.time() * 1000)}.png"
    await storage.put(key, image_bytes, content_type="image/png")
    return storage.public_url(key)


async def generate_and_store_qr(
    record_id: str,
    owner_id: str,
    public_token: str,
    storage: BlobStorage | None = None,
    options: QROptions | None = None,
) -> ArtifactResult:
    """
    Encode and upload the verification QR for a record.

    Never raises; failures come back in the result.
    """
    image_bytes = None
    try:
        url = build_public_url(public_token)
        image_bytes = await asyncio.to_thread(encode_qr, url, options)
        qr_code_url = await store_qr(record_id, owner_id, image_bytes, storage=storage)
    except Exception as e:
        logger.error(f"QR code generation failed for record {record_id}: {e}")
        return ArtifactResult.failed("qr_code", e, content=image_bytes)

    logger.info(f"QR code stored for record {record_id}")
    return ArtifactResult(artifact="qr_code", url=qr_code_url, content=image_bytes)
