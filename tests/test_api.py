"""Tests for the HTTP API using FastAPI's TestClient and the in-memory backend."""

import httpx
import pytest
from fastapi.testclient import TestClient

from gearflow.api.main import create_app, status_for
from gearflow.exceptions import (
    BackendError,
    ConfigurationError,
    ConflictError,
    GearFlowError,
    NotFoundError,
    RequestValidationError,
)

ALICE = {"Authorization": "Bearer alice-token"}
BOB = {"Authorization": "Bearer bob-token"}
ADMIN = {"Authorization": "Bearer admin-token"}


@pytest.fixture()
def client(fake_backend):
    app = create_app(backend_factory=lambda: fake_backend)
    with TestClient(app) as test_client:
        yield test_client


class TestEnvelope:
    """Every response is {data, error}."""

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["error"] is None
        assert body["data"]["status"] == "ok"
        assert "version" in body["data"]

    def test_missing_token(self, client):
        resp = client.get("/api/requests/user")
        assert resp.status_code == 401
        assert resp.json() == {"data": None, "error": "Unauthorized"}

    def test_malformed_header(self, client):
        resp = client.get("/api/requests/user", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_rejected_token(self, client):
        resp = client.get("/api/requests/user", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "Authentication failed"

    def test_status_mapping(self):
        assert status_for(RequestValidationError("x")) == 400
        assert status_for(NotFoundError("x")) == 404
        assert status_for(ConflictError("x")) == 409
        assert status_for(BackendError("x")) == 502
        assert status_for(GearFlowError("x")) == 500

    def test_backend_not_configured(self):
        def factory():
            raise ConfigurationError("Missing required environment variables: SUPABASE_URL")

        with TestClient(create_app(backend_factory=factory)) as test_client:
            resp = test_client.get("/api/notifications", headers=ALICE)
        assert resp.status_code == 500
        assert "SUPABASE_URL" in resp.json()["error"]

    def test_transport_error_is_502(self, fake_backend):
        async def unreachable(token):
            raise httpx.ConnectError("connection refused")

        fake_backend.get_user = unreachable
        with TestClient(create_app(backend_factory=lambda: fake_backend)) as test_client:
            resp = test_client.get("/api/notifications", headers=ALICE)
        assert resp.status_code == 502
        assert resp.json() == {"data": None, "error": "Backend unavailable"}

    def test_backend_closed_on_shutdown(self, fake_backend):
        with TestClient(create_app(backend_factory=lambda: fake_backend)) as test_client:
            test_client.get("/api/requests/user", headers=ALICE)
        assert fake_backend.closed


class TestRequestRoutes:

    def test_user_requests(self, client):
        resp = client.get("/api/requests/user", headers=ALICE)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()["data"]] == ["req-1", "req-3"]

    def test_cancel(self, client, fake_backend):
        resp = client.post("/api/requests/req-1/cancel", headers=ALICE)
        assert resp.status_code == 200
        assert resp.json()["data"] == {"id": "req-1", "status": "Cancelled"}
        assert fake_backend.find("gear_requests", "req-1")["status"] == "Cancelled"

    def test_cancel_not_pending(self, client):
        resp = client.post("/api/requests/req-3/cancel", headers=ALICE)
        assert resp.status_code == 400
        assert resp.json() == {"data": None, "error": "Only pending requests can be cancelled."}

    def test_cancel_other_users_request(self, client):
        resp = client.post("/api/requests/req-1/cancel", headers=BOB)
        assert resp.status_code == 403

    def test_cancel_unknown(self, client):
        resp = client.post("/api/requests/req-404/cancel", headers=ALICE)
        assert resp.status_code == 404
        assert resp.json()["error"] == "Request not found"

    def test_admin_listing_requires_admin(self, client):
        assert client.get("/api/requests", headers=ALICE).status_code == 403
        resp = client.get("/api/requests", headers=ADMIN, params={"status": "Pending"})
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()["data"]] == ["req-1"]

    def test_approve(self, client, fake_backend):
        resp = client.post("/api/requests/req-1/approve", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "Checked Out"
        assert fake_backend.find("gears", "gear-2")["status"] == "Checked Out"

    def test_reject_with_reason(self, client):
        resp = client.post("/api/requests/req-1/reject", headers=ADMIN, json={"reason": "Busy"})
        assert resp.status_code == 200
        assert resp.json()["data"]["rejection_reason"] == "Busy"

    def test_reject_without_body(self, client):
        resp = client.post("/api/requests/req-1/reject", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "Rejected"

    def test_approve_unavailable_gear_conflicts(self, client, fake_backend):
        fake_backend.rows("gear_request_gears").append(
            {"id": "line-4", "gear_request_id": "req-1", "gear_id": "gear-1", "quantity": 1}
        )
        resp = client.post("/api/requests/req-1/approve", headers=ADMIN)
        assert resp.status_code == 409
        assert resp.json()["error"].startswith("Not enough available units for Camera")
        assert fake_backend.find("gears", "gear-1")["checked_out_to"] == "user-2"

    def test_create_request(self, client, fake_backend):
        resp = client.post("/api/requests", headers=ALICE, json={
            "items": [{"gear_id": "gear-3", "quantity": 1}],
            "reason": "Interview",
            "expected_duration": "24hours",
        })
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user_id"] == "user-1"
        assert data["status"] == "Pending"
        assert fake_backend.find("gear_requests", data["id"]) is not None

    def test_create_request_needs_items(self, client):
        resp = client.post("/api/requests", headers=ALICE,
                           json={"items": [], "reason": "Interview"})
        assert resp.status_code == 400

    def test_create_request_for_checked_out_gear(self, client):
        resp = client.post("/api/requests", headers=ALICE,
                           json={"items": [{"gear_id": "gear-1"}], "reason": "Interview"})
        assert resp.status_code == 409


class TestGearRoutes:

    def test_requires_login(self, client):
        assert client.get("/api/gears").status_code == 401

    def test_list_with_filters(self, client):
        resp = client.get("/api/gears", headers=ALICE,
                          params={"status": "Available", "pageSize": 1})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["total"] == 2
        assert [g["name"] for g in data["items"]] == ["Microphone"]

    def test_get_one_and_unknown(self, client):
        assert client.get("/api/gears/gear-2", headers=ALICE).json()["data"]["name"] == "Tripod"
        assert client.get("/api/gears/gear-404", headers=ALICE).status_code == 404

    def test_categories(self, client):
        resp = client.get("/api/gears/categories", headers=ALICE)
        assert resp.json()["data"] == ["Audio", "Support", "Video"]

    def test_popular_requires_window(self, client):
        assert client.get("/api/gears/popular", headers=ALICE).status_code == 400

    def test_popular(self, client, fake_backend):
        fake_backend.rpc_results["get_popular_gears"] = [{"gear_id": "gear-2", "request_count": 3}]
        resp = client.get("/api/gears/popular", headers=ALICE,
                          params={"start_date": "2024-03-01", "end_date": "2024-03-07"})
        assert resp.json()["data"] == [{"gear_id": "gear-2", "request_count": 3}]


class TestNotificationRoutes:

    def test_list_and_unread_filter(self, client):
        all_rows = client.get("/api/notifications", headers=ALICE).json()["data"]
        unread = client.get("/api/notifications", headers=ALICE,
                            params={"unreadOnly": "true"}).json()["data"]
        assert len(all_rows) == 2
        assert [r["id"] for r in unread] == ["n-1"]

    def test_unread_count(self, client):
        resp = client.get("/api/notifications/unread-count", headers=ALICE)
        assert resp.json()["data"] == {"count": 1}

    def test_patch_and_put(self, client):
        resp = client.patch("/api/notifications/n-2", headers=ALICE, json={"is_read": False})
        assert resp.json()["data"]["is_read"] is False
        resp = client.put("/api/notifications/n-2", headers=ALICE)
        assert resp.json()["data"]["is_read"] is True

    def test_foreign_notification_forbidden(self, client):
        resp = client.get("/api/notifications/n-3", headers=ALICE)
        assert resp.status_code == 403
        assert resp.json()["error"] == "Forbidden"

    def test_delete(self, client, fake_backend):
        resp = client.delete("/api/notifications/n-1", headers=ALICE)
        assert resp.json()["data"] == {"id": "n-1", "deleted": True}
        assert fake_backend.find("notifications", "n-1") is None

    def test_mark_all_read(self, client):
        resp = client.post("/api/notifications/mark-all-read", headers=ALICE)
        assert resp.json()["data"] == {"updated": 1}

    def test_create_requires_admin(self, client):
        payload = {"user_id": "user-1", "title": "Hi", "message": "There"}
        assert client.post("/api/notifications", headers=ALICE, json=payload).status_code == 403
        resp = client.post("/api/notifications", headers=ADMIN, json=payload)
        assert resp.status_code == 200
        assert resp.json()["data"]["user_id"] == "user-1"

    def test_create_validation_error(self, client):
        resp = client.post("/api/notifications", headers=ADMIN,
                           json={"user_id": "user-1", "title": "", "message": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid request")

    def test_overdue_reminders(self, client):
        resp = client.post("/api/notifications/overdue-reminders", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["data"] == {"sent": 1}


class TestCheckinRoutes:

    def test_submit_and_approve(self, client, fake_backend):
        resp = client.post("/api/checkins", headers=BOB,
                           json={"gear_id": "gear-1", "request_id": "req-2"})
        assert resp.status_code == 200
        checkin_id = resp.json()["data"]["id"]

        pending = client.get("/api/checkins/pending", headers=ADMIN).json()["data"]
        assert [c["id"] for c in pending] == [checkin_id]

        resp = client.post("/api/checkins/" + checkin_id + "/approve", headers=ADMIN)
        assert resp.json()["data"]["status"] == "Completed"
        assert fake_backend.find("gear_requests", "req-2")["status"] == "Checked In"

    def test_bad_condition(self, client):
        resp = client.post("/api/checkins", headers=BOB,
                           json={"gear_id": "gear-1", "condition": "Broken"})
        assert resp.status_code == 400

    def test_damaged_without_notes(self, client):
        resp = client.post("/api/checkins", headers=BOB,
                           json={"gear_id": "gear-1", "condition": "Damaged"})
        assert resp.status_code == 400
        assert "description" in resp.json()["error"]

    def test_reject(self, client):
        checkin_id = client.post("/api/checkins", headers=BOB,
                                 json={"gear_id": "gear-1", "request_id": "req-2"}).json()["data"]["id"]
        resp = client.post("/api/checkins/" + checkin_id + "/reject", headers=ADMIN,
                           json={"reason": "Missing case"})
        assert resp.json()["data"]["status"] == "Rejected"

    def test_checkin_for_someone_elses_gear(self, client, fake_backend):
        resp = client.post("/api/checkins", headers=ALICE, json={"gear_id": "gear-1"})
        assert resp.status_code == 403
        assert fake_backend.find("gears", "gear-1")["status"] == "Checked Out"

    def test_checkin_for_available_gear(self, client):
        resp = client.post("/api/checkins", headers=ALICE, json={"gear_id": "gear-2"})
        assert resp.status_code == 400


class TestReportRoutes:

    def test_weekly(self, client, fake_backend):
        fake_backend.rpc_results["get_weekly_activity_report"] = [
            {"gear_id": "gear-1", "gear_name": "Camera", "checkout_count": 2},
        ]
        resp = client.get("/api/reports/weekly", headers=ALICE)
        assert resp.status_code == 200
        assert resp.json()["data"]["summary"]["checkouts"] == 2

    def test_usage_requires_admin(self, client):
        assert client.get("/api/reports/usage", headers=ALICE).status_code == 403

    def test_usage(self, client):
        resp = client.get("/api/reports/usage", headers=ADMIN,
                          params={"start": "2024-03-01", "end": "2024-03-07"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["report"]["total_requests"] == 3
        assert data["previous_report"]["start_date"] == "2024-02-23"

    @pytest.mark.parametrize("params", [
        {"start": "yesterday"},
        {"start": "2024-03-07", "end": "2024-03-01"},
    ])
    def test_usage_bad_window(self, client, params):
        resp = client.get("/api/reports/usage", headers=ADMIN, params=params)
        assert resp.status_code == 400

    def test_csv_export(self, client):
        resp = client.get("/api/reports/usage/export", headers=ADMIN,
                          params={"start": "2024-03-01", "end": "2024-03-07", "format": "csv"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "gear-activity-report-2024-03-01-to-2024-03-07.csv" in (
            resp.headers["content-disposition"]
        )
        assert resp.text.splitlines()[0] == "Gear Activity Report"

    def test_unknown_export_format(self, client):
        resp = client.get("/api/reports/usage/export", headers=ADMIN, params={"format": "xlsx"})
        assert resp.status_code == 400
