"""Tests for the attendance endpoints."""

import pytest

pytestmark = pytest.mark.asyncio


class TestMarkAbsentEndpoint:
    """POST /api/attendance/mark-absent."""

    async def test_dry_run(self, client, seeded):
        response = await client.post(
            "/api/attendance/mark-absent",
            json={"date": "2024-01-15", "dryRun": True},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["stats"] == {
            "processed_users": 2,
            "marked_absent": 2,
            "date": "2024-01-15",
            "dry_run": True,
        }
        assert {r["action"] for r in body["results"]} == {"would_mark_absent"}
        assert "would be marked" in body["message"]

        # Nothing was written, so a live run still finds both users
        live = await client.post("/api/attendance/mark-absent", json={"date": "2024-01-15"})
        assert live.json()["stats"]["marked_absent"] == 2

    async def test_live_run_is_idempotent(self, client, seeded):
        first = await client.post("/api/attendance/mark-absent", json={"date": "2024-01-15"})
        second = await client.post("/api/attendance/mark-absent", json={"date": "2024-01-15"})

        assert first.json()["stats"]["marked_absent"] == 2
        assert second.json()["stats"]["marked_absent"] == 0
        assert {r["action"] for r in second.json()["results"]} == {"already_recorded"}

    async def test_weekend_date(self, client, seeded):
        response = await client.post("/api/attendance/mark-absent", json={"date": "2024-01-20"})

        assert response.json()["stats"]["processed_users"] == 0

    async def test_institution_filter(self, client, seeded):
        response = await client.post(
            "/api/attendance/mark-absent",
            json={"date": "2024-01-15", "institutionId": str(seeded.institution.id), "dryRun": True},
        )

        assert response.json()["stats"]["processed_users"] == 2

    async def test_malformed_date(self, client, seeded):
        response = await client.post("/api/attendance/mark-absent", json={"date": "15/01/2024"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestServiceToken:
    """Privileged endpoints with a configured service token."""

    async def test_missing_token(self, client, seeded, service_token):
        response = await client.post("/api/attendance/mark-absent", json={"date": "2024-01-15", "dryRun": True})

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    async def test_wrong_token(self, client, seeded, service_token):
        response = await client.post(
            "/api/attendance/mark-absent",
            json={"date": "2024-01-15", "dryRun": True},
            headers={"Authorization": "Bearer nope"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    async def test_valid_token(self, client, seeded, service_token):
        response = await client.post(
            "/api/attendance/mark-absent",
            json={"date": "2024-01-15", "dryRun": True},
            headers={"Authorization": f"Bearer {service_token}"},
        )

        assert response.status_code == 200

    async def test_leave_endpoints_not_guarded(self, client, seeded, service_token):
        response = await client.get("/api/leave/balance", params={"employeeId": "EMP001", "year": 2024})

        assert response.status_code == 200


class TestCardScanEndpoint:
    """POST /api/attendance/rfid-checkin."""

    async def test_check_in_then_out(self, client, seeded):
        payload = {"rfid_uid": "04A1B2C3D4", "device_id": "GATE-1", "location": "Main gate"}

        check_in = await client.post("/api/attendance/rfid-checkin", json=payload)

        assert check_in.status_code == 200
        body = check_in.json()
        assert body["success"] is True
        assert body["employee_id"] == "EMP001"
        assert body["status"] in {"present", "late"}
        assert body["check_out_time"] is None

        check_out = await client.post("/api/attendance/rfid-checkin", json=payload)

        assert check_out.json()["attendance_id"] == body["attendance_id"]
        assert check_out.json()["check_out_time"] is not None

        third = await client.post("/api/attendance/rfid-checkin", json=payload)
        assert third.status_code == 400
        assert third.json()["code"] == "INVALID_STATE"

    async def test_unknown_card(self, client, seeded):
        response = await client.post("/api/attendance/rfid-checkin", json={"rfid_uid": "DEADBEEF"})

        assert response.status_code == 404
        assert response.json()["error"] == "RFID card not found or not enrolled. Please enroll the card first."

    async def test_missing_uid(self, client, seeded):
        response = await client.post("/api/attendance/rfid-checkin", json={"device_id": "GATE-1"})

        assert response.status_code == 400


class TestRecordsEndpoint:
    """GET /api/attendance/records."""

    async def test_records_after_absence_sweep(self, client, seeded):
        await client.post("/api/attendance/mark-absent", json={"date": "2024-01-15"})

        response = await client.get(
            "/api/attendance/records",
            params={"institutionId": str(seeded.institution.id), "date": "2024-01-15"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert {(row["employeeId"], row["status"]) for row in data} == {
            ("EMP001", "absent"),
            ("EMP002", "absent"),
        }
        assert all(row["verificationMethod"] == "system_auto" for row in data)

    async def test_user_filter(self, client, seeded):
        await client.post("/api/attendance/mark-absent", json={"date": "2024-01-15"})

        response = await client.get(
            "/api/attendance/records",
            params={"institutionId": str(seeded.institution.id), "userId": str(seeded.colleague.id)},
        )

        assert [row["userName"] for row in response.json()["data"]] == ["Daniel Tan"]

    async def test_half_open_range(self, client, seeded):
        response = await client.get(
            "/api/attendance/records",
            params={"institutionId": str(seeded.institution.id), "startDate": "2024-01-01"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_malformed_date(self, client, seeded):
        response = await client.get(
            "/api/attendance/records",
            params={"institutionId": str(seeded.institution.id), "date": "2024-13-01"},
        )

        assert response.status_code == 400

    async def test_guarded_by_service_token(self, client, seeded, service_token):
        params = {"institutionId": str(seeded.institution.id)}

        denied = await client.get("/api/attendance/records", params=params)
        allowed = await client.get(
            "/api/attendance/records",
            params=params,
            headers={"Authorization": f"Bearer {service_token}"},
        )

        assert denied.status_code == 401
        assert allowed.status_code == 200
