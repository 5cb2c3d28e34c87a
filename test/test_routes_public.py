"""
Tests for public verification pages and stored artifact downloads
"""

import pytest


@pytest.fixture
async def record(client, owner_headers):
    response = await client.post(
        "/api/records",
        json={"form_data": {"name_of_mineral": "Limestone", "vehicle_number": "RJ14 GA 1234"}},
        headers=owner_headers,
    )
    created = response.json()["data"]
    # Artifact URLs are attached by the background task that ran after creation
    refreshed = await client.get(f"/api/records/{created['id']}", headers=owner_headers)
    return refreshed.json()["data"]


class TestPublicJson:
    async def test_view_without_authentication(self, client, record):
        response = await client.get(f"/api/public/records/{record['public_token']}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == record["id"]
        assert data["form_data"] == record["form_data"]
        assert data["status"] == "active"
        assert "user_id" not in data

    async def test_each_view_counts_as_a_scan(self, client, record):
        await client.get(f"/api/public/records/{record['public_token']}")
        response = await client.get(f"/api/public/records/{record['public_token']}")

        # The second response was built before its own scan was recorded
        assert response.json()["data"]["total_scans"] == 1
        third = await client.get(f"/api/public/records/{record['public_token']}")
        assert third.json()["data"]["total_scans"] == 2

    async def test_lookup_by_record_id(self, client, record):
        response = await client.get(f"/api/public/records/{record['id']}")
        assert response.json()["data"]["public_token"] == record["public_token"]

    async def test_unknown_token(self, client):
        response = await client.get("/api/public/records/NOSUCHTOKEN00000")

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"] == "Record not found"

    async def test_unknown_token_is_not_scanned(self, client, record, owner_headers):
        await client.get("/api/public/records/NOSUCHTOKEN00000")

        stats = (await client.get("/api/dashboard/stats", headers=owner_headers)).json()["data"]
        assert stats["total_scans"] == 0


class TestPublicPage:
    async def test_renders_record(self, client, record):
        response = await client.get(f"/records/{record['public_token']}")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Limestone" in response.text
        assert "Name Of Mineral" in response.text
        assert record["form_data"]["valid_upto"] in response.text
        assert record["qr_code_url"] in response.text

    async def test_page_view_counts_as_a_scan(self, client, record):
        await client.get(f"/records/{record['public_token']}")

        response = await client.get(f"/api/public/records/{record['public_token']}")
        assert response.json()["data"]["total_scans"] == 1

    async def test_unknown_identifier(self, client):
        response = await client.get("/records/NOSUCHTOKEN00000")

        assert response.status_code == 404
        assert "NOSUCHTOKEN00000" in response.text


class TestStorageDownloads:
    async def test_qr_code_is_public(self, client, record):
        response = await client.get(record["qr_code_url"])

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

    async def test_pdf_with_signature(self, client, record):
        response = await client.get(record["pdf_url"])

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    async def test_pdf_without_signature_is_forbidden(self, client, record):
        response = await client.get(record["pdf_url"].split("?", 1)[0])

        assert response.status_code == 403
        assert response.json()["success"] is False

    async def test_tampered_signature_is_forbidden(self, client, record):
        response = await client.get(record["pdf_url"][:-4] + "0000")
        assert response.status_code == 403

    async def test_missing_object(self, client):
        response = await client.get("/storage/qr-codes/nobody/nothing.png")
        assert response.status_code == 404

    async def test_path_traversal_is_not_found(self, client):
        response = await client.get("/storage/qr-codes/..%2F..%2Fsecret.txt")
        assert response.status_code == 404
