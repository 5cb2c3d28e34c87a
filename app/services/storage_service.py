"""
Storage Service

Filesystem-backed object store for generated artifacts (QR images, PDFs).
Objects are addressed by slash-separated keys such as
``pdfs/{owner_id}/{record_id}.pdf`` and served back through the
``/storage`` route, either publicly or through an HMAC-signed,
time-limited URL.
"""

import hashlib
import hmac
import logging
import time
from pathlib import Path, PurePosixPath
from urllib.parse import urlencode

from app.config import settings
from app.exceptions import SignedUrlError, StorageError, StoredObjectNotFoundError

logger = logging.getLogger(__name__)

QR_PREFIX = "qr-codes"
PDF_PREFIX = "pdfs"

# Prefixes readable without a signature
PUBLIC_PREFIXES = (QR_PREFIX,)

CONTENT_TYPES = {
    ".png": "image/png",
    ".pdf": "application/pdf",
}


class BlobStorage:
    """Object store rooted at a local directory"""

    def __init__(self, root: str | Path | None = None, base_url: str | None = None, secret_key: str | None = None):
        self.root = Path(root or settings.storage_root)
        self.base_url = (base_url or settings.resolved_storage_base_url).rstrip("/")
        self._secret = (secret_key or settings.secret_key).encode("utf-8")
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def validate_key(key: str) -> str:
        """
        Reject keys that could escape the storage root.

        Raises:
            StorageError: If the key is empty, absolute or contains '..'
        """
        path = PurePosixPath(key)
        if not key or path.is_absolute() or any(part in ("..", "") for part in key.split("/")):
            raise StorageError("Invalid storage key", key=key)
        return str(path)

    def _path_for(self, key: str) -> Path:
        return self.root / self.validate_key(key)

    @staticmethod
    def content_type_for(key: str) -> str:
        return CONTENT_TYPES.get(PurePosixPath(key).suffix.lower(), "application/octet-stream")

    async def put(self, key: str, data: bytes, content_type: str | None = None, upsert: bool = False) -> str:
        """
        Store bytes under a key.

        Args:
            key: Object key
            data: Object contents
            content_type: Informational; the serving route derives it from the key suffix
            upsert: Overwrite an existing object instead of failing

        Returns:
            The stored key

        Raises:
            StorageError: If the object exists (and upsert is False) or the write fails
        """
        path = self._path_for(key)
        if path.exists() and not upsert:
            raise StorageError("Object already exists", key=key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to store object {key}: {e}")
            raise StorageError(f"Failed to store object: {e}", key=key) from e

        logger.info(f"Stored object {key} ({len(data)} bytes, {content_type or self.content_type_for(key)})")
        return key

    async def read(self, key: str) -> bytes:
        path = self._path_for(key)
        if not path.is_file():
            raise StoredObjectNotFoundError(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read object: {e}", key=key) from e

    async def delete(self, key: str) -> bool:
        """Delete an object. Missing objects are not an error; returns whether one was removed."""
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete object: {e}", key=key) from e
        return True

    async def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/{self.validate_key(key)}"

    def _signature(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def signed_url(self, key: str, expires_in: int, now: float | None = None) -> str:
        """Build a URL that stops working ``expires_in`` seconds from now."""
        key = self.validate_key(key)
        expires = int((now if now is not None else time.time()) + expires_in)
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self.public_url(key)}?{query}"

    def verify_signature(self, key: str, expires: int | None, signature: str | None, now: float | None = None) -> None:
        """
        Check a signed URL's parameters.

        Raises:
            SignedUrlError: If the signature is missing, wrong or expired
        """
        if expires is None or not signature:
            raise SignedUrlError("Missing signature")

        expected = self._signature(self.validate_key(key), int(expires))
        if not hmac.compare_digest(expected, signature):
            raise SignedUrlError("Invalid signature")

        if (now if now is not None else time.time()) > int(expires):
            raise SignedUrlError("Link has expired")

    @staticmethod
    def is_public_key(key: str) -> bool:
        return key.split("/", 1)[0] in PUBLIC_PREFIXES

    def key_from_url(self, url: str | None) -> str | None:
        """Recover the object key from a URL produced by this store."""
        if not url:
            return None
        prefix = f"{self.base_url}/storage/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):].split("?", 1)[0] or None


_storage: BlobStorage | None = None


def get_storage() -> BlobStorage:
    """Process-wide storage instance, created on first use."""
    global _storage
    if _storage is None:
        _storage = BlobStorage()
    return _storage


def set_storage(storage: BlobStorage | None) -> None:
    global _storage
    _storage = storage
