"""
Tests for the filesystem blob store and its signed URLs
"""

from urllib.parse import parse_qs, urlparse

import pytest

from app.exceptions import SignedUrlError, StorageError, StoredObjectNotFoundError
from app.services.storage_service import BlobStorage


@pytest.fixture
def store(tmp_path):
    return BlobStorage(root=tmp_path / "blobs", base_url="http://files.example/", secret_key="s3cret")


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


async def test_put_and_read(store):
    await store.put("qr-codes/u1/r1.png", b"png-bytes", content_type="image/png")

    assert await store.exists("qr-codes/u1/r1.png")
    assert await store.read("qr-codes/u1/r1.png") == b"png-bytes"


async def test_put_refuses_to_overwrite(store):
    await store.put("pdfs/u1/r1.pdf", b"first")

    with pytest.raises(StorageError):
        await store.put("pdfs/u1/r1.pdf", b"second")

    await store.put("pdfs/u1/r1.pdf", b"second", upsert=True)
    assert await store.read("pdfs/u1/r1.pdf") == b"second"


async def test_read_missing_object(store):
    with pytest.raises(StoredObjectNotFoundError):
        await store.read("pdfs/nobody/nothing.pdf")


async def test_delete_is_idempotent(store):
    await store.put("pdfs/u1/r1.pdf", b"data")

    assert await store.delete("pdfs/u1/r1.pdf") is True
    assert await store.delete("pdfs/u1/r1.pdf") is False
    assert not await store.exists("pdfs/u1/r1.pdf")


@pytest.mark.parametrize("key", ["", "../escape.pdf", "/etc/passwd", "pdfs//double.pdf", "pdfs/../../x"])
def test_rejects_unsafe_keys(store, key):
    with pytest.raises(StorageError):
        store.validate_key(key)


def test_public_url(store):
    assert store.public_url("qr-codes/u1/r1.png") == "http://files.example/storage/qr-codes/u1/r1.png"


def test_signed_url_verifies(store):
    url = store.signed_url("pdfs/u1/r1.pdf", expires_in=60, now=1_000_000)
    params = _query(url)

    assert url.startswith("http://files.example/storage/pdfs/u1/r1.pdf?")
    assert int(params["expires"]) == 1_000_060
    store.verify_signature("pdfs/u1/r1.pdf", int(params["expires"]), params["signature"], now=1_000_030)


def test_signed_url_expires(store):
    params = _query(store.signed_url("pdfs/u1/r1.pdf", expires_in=60, now=1_000_000))

    with pytest.raises(SignedUrlError):
        store.verify_signature("pdfs/u1/r1.pdf", int(params["expires"]), params["signature"], now=1_000_061)


def test_signature_is_bound_to_key(store):
    params = _query(store.signed_url("pdfs/u1/r1.pdf", expires_in=60, now=1_000_000))

    with pytest.raises(SignedUrlError):
        store.verify_signature("pdfs/u1/other.pdf", int(params["expires"]), params["signature"], now=1_000_000)


def test_missing_or_tampered_signature(store):
    params = _query(store.signed_url("pdfs/u1/r1.pdf", expires_in=60, now=1_000_000))

    with pytest.raises(SignedUrlError):
        store.verify_signature("pdfs/u1/r1.pdf", None, None, now=1_000_000)
    with pytest.raises(SignedUrlError):
        store.verify_signature("pdfs/u1/r1.pdf", int(params["expires"]) + 1, params["signature"], now=1_000_000)


def test_key_from_url(store):
    signed = store.signed_url("pdfs/u1/r1.pdf", expires_in=60)

    assert store.key_from_url(signed) == "pdfs/u1/r1.pdf"
    assert store.key_from_url(store.public_url("qr-codes/u1/r1.png")) == "qr-codes/u1/r1.png"
    assert store.key_from_url("https://elsewhere.example/storage/pdfs/x.pdf") is None
    assert store.key_from_url(None) is None


def test_only_qr_codes_are_public(store):
    assert store.is_public_key("qr-codes/u1/r1.png")
    assert not store.is_public_key("pdfs/u1/r1.pdf")
