"""
Tests for the owner-facing record and dashboard routes
"""

from conftest import auth_headers

FORM = {"name_of_licensee": "Ram Prasad", "name_of_mineral": "Limestone", "quantity_transported": 12.5}


async def create(client, headers, form=None, validity_hours=None):
    payload = {"form_data": form or FORM}
    if validity_hours is not None:
        payload["validity_hours"] = validity_hours
    return await client.post("/api/records", json=payload, headers=headers)


class TestCreateRecord:
    async def test_created_with_pending_artifacts(self, client, owner, owner_headers):
        response = await create(client, owner_headers, validity_hours=6)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["artifacts"] == "pending"
        assert body["public_token"] == body["data"]["public_token"]
        assert len(body["public_token"]) == 16

        data = body["data"]
        assert data["user_id"] == owner.id
        assert data["status"] == "active"
        assert data["qr_code_url"] is None
        assert data["pdf_url"] is None
        assert data["form_data"]["name_of_mineral"] == "Limestone"
        assert data["form_data"]["generated_on"] == data["generated_on"]
        assert data["form_data"]["valid_upto"] == data["valid_upto"]
        assert data["public_url"].endswith(f"/records/{body['public_token']}")

    async def test_artifacts_are_attached_after_response(self, client, owner_headers):
        created = (await create(client, owner_headers)).json()

        response = await client.get(f"/api/records/{created['data']['id']}", headers=owner_headers)

        data = response.json()["data"]
        assert data["qr_code_url"].startswith("http://testserver/storage/qr-codes/")
        assert "signature=" in data["pdf_url"]

    async def test_requires_authentication(self, client):
        response = await client.post("/api/records", json={"form_data": FORM})

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["error"] == "Not authenticated"

    async def test_rejects_invalid_token(self, client):
        response = await create(client, {"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_rejects_inactive_user(self, client, inactive_user):
        response = await create(client, auth_headers(inactive_user))
        assert response.status_code == 401

    async def test_zero_validity_is_a_bad_request(self, client, owner_headers):
        response = await create(client, owner_headers, validity_hours=0)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error_code"] == "VALIDATION_FAILED"

    async def test_empty_form_is_a_bad_request(self, client, owner_headers):
        response = await client.post("/api/records", json={"form_data": {}}, headers=owner_headers)
        assert response.status_code == 400

    async def test_user_role_has_owner_routes(self, client, other_owner, other_headers):
        assert other_owner.role == "user"

        created = await create(client, other_headers)
        listed = await client.get("/api/records", headers=other_headers)
        stats = await client.get("/api/dashboard/stats", headers=other_headers)

        assert created.status_code == 201
        assert created.json()["data"]["user_id"] == other_owner.id
        assert listed.status_code == 200
        assert listed.json()["data"]["total"] == 1
        assert stats.json()["data"]["total_records"] == 1


class TestReadRecords:
    async def test_list_only_own_records(self, client, owner_headers, other_headers):
        mine = (await create(client, owner_headers)).json()["data"]
        await create(client, other_headers)

        response = await client.get("/api/records", headers=owner_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["data"]["total"] == 1
        assert [r["id"] for r in body["data"]["records"]] == [mine["id"]]

    async def test_list_filters_by_status(self, client, owner_headers):
        first = (await create(client, owner_headers)).json()["data"]
        await create(client, owner_headers)
        await client.post(f"/api/records/{first['id']}/archive", headers=owner_headers)

        response = await client.get("/api/records", params={"status": "archived"}, headers=owner_headers)

        records = response.json()["data"]["records"]
        assert [r["id"] for r in records] == [first["id"]]
        assert records[0]["status"] == "archived"

    async def test_list_rejects_bad_status(self, client, owner_headers):
        response = await client.get("/api/records", params={"status": "deleted"}, headers=owner_headers)
        assert response.status_code == 400

    async def test_other_users_record_is_not_found(self, client, owner_headers, other_headers):
        record = (await create(client, owner_headers)).json()["data"]

        response = await client.get(f"/api/records/{record['id']}", headers=other_headers)

        assert response.status_code == 404
        assert response.json()["success"] is False


class TestArchiveAndDelete:
    async def test_archive(self, client, owner_headers):
        record = (await create(client, owner_headers)).json()["data"]

        response = await client.post(f"/api/records/{record['id']}/archive", headers=owner_headers)
        again = await client.post(f"/api/records/{record['id']}/archive", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "archived"
        assert again.json()["data"]["archived_at"] == response.json()["data"]["archived_at"]

    async def test_delete_by_other_user_is_forbidden(self, client, owner_headers, other_headers):
        record = (await create(client, owner_headers)).json()["data"]

        response = await client.delete(f"/api/records/{record['id']}", headers=other_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized"
        still_there = await client.get(f"/api/records/{record['id']}", headers=owner_headers)
        assert still_there.status_code == 200

    async def test_delete(self, client, owner_headers):
        record = (await create(client, owner_headers)).json()["data"]

        response = await client.delete(f"/api/records/{record['id']}", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"id": record["id"], "deleted": True}
        gone = await client.get(f"/api/records/{record['id']}", headers=owner_headers)
        assert gone.status_code == 404
        public = await client.get(f"/api/public/records/{record['public_token']}")
        assert public.status_code == 404

    async def test_delete_missing(self, client, owner_headers):
        response = await client.delete("/api/records/00000000-0000-0000-0000-000000000000", headers=owner_headers)
        assert response.status_code == 404


class TestScanHistory:
    async def test_history_lists_public_views(self, client, owner_headers):
        record = (await create(client, owner_headers)).json()["data"]
        await client.get(f"/api/public/records/{record['public_token']}", headers={"User-Agent": "Scanner/1.0"})

        response = await client.get(f"/api/records/{record['id']}/scans", headers=owner_headers)

        scans = response.json()["data"]
        assert response.status_code == 200
        assert len(scans) == 1
        assert scans[0]["user_agent"] == "Scanner/1.0"
        assert scans[0]["record_id"] == record["id"]

    async def test_history_of_other_users_record(self, client, owner_headers, other_headers):
        record = (await create(client, owner_headers)).json()["data"]

        response = await client.get(f"/api/records/{record['id']}/scans", headers=other_headers)
        assert response.status_code == 403


class TestDashboardRoutes:
    async def test_stats(self, client, owner_headers):
        record = (await create(client, owner_headers)).json()["data"]
        await client.get(f"/api/public/records/{record['public_token']}")

        response = await client.get("/api/dashboard/stats", headers=owner_headers)

        stats = response.json()["data"]
        assert stats["total_records"] == 1
        assert stats["total_scans"] == 1
        assert stats["active_records"] == 1

    async def test_series_length(self, client, owner_headers):
        response = await client.get("/api/dashboard/records-per-day", params={"days": 7}, headers=owner_headers)

        series = response.json()["data"]
        assert len(series) == 8
        assert set(series[0]) == {"date", "count"}

    async def test_series_rejects_out_of_range_days(self, client, owner_headers):
        response = await client.get("/api/dashboard/scans-per-day", params={"days": 0}, headers=owner_headers)
        assert response.status_code == 400

    async def test_requires_authentication(self, client):
        assert (await client.get("/api/dashboard/stats")).status_code == 401
