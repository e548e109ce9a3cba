"""Tests for the certification API endpoints."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.middleware.audit import AuditMiddleware
from app.modules.certification import service
from tests.conftest import SAMPLE_ADMIN_ID, SAMPLE_ORG_ID, SAMPLE_USER_ID, login_as

pytestmark = pytest.mark.anyio


async def _start(client: AsyncClient, cert_type_id: int) -> dict:
    response = await client.post("/v1/certifications/start", json={"certificationTypeId": cert_type_id})
    assert response.status_code == 201, response.text
    return response.json()


async def _check(client: AsyncClient, progress_id: str, stage: str, checked: bool = True, **extra):
    return await client.post(
        f"/v1/certification-progress/{progress_id}/update-stage",
        json={"stage": stage, "checked": checked, **extra},
    )


class TestCatalogEndpoints:
    async def test_list_certifications(self, client, cert_type):
        response = await client.get("/v1/certifications")
        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert body[0]["name"] == cert_type.name
        assert body[0]["validity_period"] == 36
        assert body[0]["requirements"] == ["Environmental policy", "Management review process"]

    async def test_get_certification(self, client, cert_type):
        response = await client.get(f"/v1/certifications/{cert_type.id}")
        assert response.status_code == 200
        assert response.json()["provider"] == "ISO"

    async def test_get_missing_certification_envelope(self, client):
        response = await client.get("/v1/certifications/999")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "http_404"
        assert "not found" in body["message"]
        assert body["request_id"] == "unknown"


class TestStartEndpoint:
    async def test_start_returns_started_record(self, client, cert_type):
        body = await _start(client, cert_type.id)

        assert body["current_stage"] == "started"
        assert body["display_status"] == "started"
        assert body["user_id"] == str(SAMPLE_USER_ID)
        assert body["certification_id"] == cert_type.id
        assert body["started_at"] is not None
        assert body["applied_at"] is None
        assert body["in_progress_at"] is None
        assert body["approved_at"] is None
        assert body["next_steps"] == cert_type.requirements
        assert body["certification"]["name"] == cert_type.name

    async def test_snake_case_body_accepted(self, client, cert_type):
        response = await client.post(
            "/v1/certifications/start", json={"certification_type_id": cert_type.id}
        )
        assert response.status_code == 201

    async def test_unknown_type_404(self, client, sample_user):
        response = await client.post("/v1/certifications/start", json={"certificationTypeId": 7})
        assert response.status_code == 404
        assert response.json()["message"] == "Certification not found"

    async def test_duplicate_start_409(self, client, cert_type):
        await _start(client, cert_type.id)
        response = await client.post(
            "/v1/certifications/start", json={"certificationTypeId": cert_type.id}
        )
        assert response.status_code == 409
        assert response.json()["error"] == "http_409"

    async def test_missing_body_field_422(self, client, sample_user):
        response = await client.post("/v1/certifications/start", json={})
        assert response.status_code == 422


class TestUpdateStageEndpoint:
    async def test_advance(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        response = await _check(client, progress["id"], "applied")
        assert response.status_code == 200
        body = response.json()
        assert body["current_stage"] == "applied"
        assert body["applied_at"] is not None
        assert body["started_at"] == progress["started_at"]

    async def test_skip_rejected_422(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        await _check(client, progress["id"], "applied")

        response = await _check(client, progress["id"], "approved")
        assert response.status_code == 422
        assert response.json()["message"] == "Stages must be completed in order"

        current = await client.get(f"/v1/certification-progress/{progress['id']}")
        assert current.json()["current_stage"] == "applied"

    async def test_revert_non_current_rejected(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        await _check(client, progress["id"], "applied")
        await _check(client, progress["id"], "in_progress")

        response = await _check(client, progress["id"], "applied", checked=False)
        assert response.status_code == 422
        assert response.json()["message"] == "Only the current stage can be unchecked"

    async def test_revert_current(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        await _check(client, progress["id"], "applied")
        await _check(client, progress["id"], "in_progress")

        response = await _check(client, progress["id"], "in_progress", checked=False)
        assert response.status_code == 200
        body = response.json()
        assert body["current_stage"] == "applied"
        assert body["in_progress_at"] is None

    async def test_new_status_mismatch_422(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        response = await _check(client, progress["id"], "applied", newStatus="in_progress")
        assert response.status_code == 422

    async def test_unknown_stage_value_422(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        response = await _check(client, progress["id"], "expired")
        assert response.status_code == 422

    async def test_lost_stage_race_409(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        stale = service.StaleStageError("Certification progress is no longer at stage 'started'")

        with patch.object(service, "_compare_and_advance", AsyncMock(side_effect=stale)):
            response = await _check(client, progress["id"], "applied")

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "http_409"
        assert "no longer at stage" in body["message"]
        assert "request_id" in body

        reread = await client.get(f"/v1/certification-progress/{progress['id']}")
        assert reread.json()["current_stage"] == "started"

    async def test_missing_progress_404(self, client, sample_user):
        response = await _check(client, str(uuid.uuid4()), "applied")
        assert response.status_code == 404

    async def test_other_org_gets_404(self, client, cert_type, other_current_user):
        progress = await _start(client, cert_type.id)
        login_as(other_current_user)
        response = await _check(client, progress["id"], "applied")
        assert response.status_code == 404


class TestReadEndpoints:
    async def test_list_progress(self, client, cert_type):
        await _start(client, cert_type.id)
        response = await client.get("/v1/certification-progress")
        assert response.status_code == 200
        assert [p["certification_id"] for p in response.json()] == [cert_type.id]

    async def test_history(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        await _check(client, progress["id"], "applied")
        await _check(client, progress["id"], "applied", checked=False)

        response = await client.get(f"/v1/certification-progress/{progress['id']}/history")
        assert response.status_code == 200
        steps = [(h["from_stage"], h["to_stage"], h["checked"]) for h in response.json()]
        assert steps == [
            (None, "started", None),
            ("started", "applied", True),
            ("applied", "started", False),
        ]

    async def test_user_certifications(self, client, cert_type):
        progress = await _start(client, cert_type.id)
        assert (await client.get("/v1/user-certifications")).json() == []

        for stage in ("applied", "in_progress", "approved"):
            await _check(client, progress["id"], stage)

        response = await client.get("/v1/user-certifications")
        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert body[0]["status"] == "approved"
        assert body[0]["certification_type"]["id"] == cert_type.id
        assert body[0]["expiry_date"] is not None


class TestAdminEndpoints:
    _NEW_TYPE = {
        "name": "Zero Waste to Landfill",
        "provider": "UL Solutions",
        "description": "Validates landfill diversion rates",
        "difficulty": "Medium",
        "validityPeriod": 12,
        "requirements": ["Diversion data"],
        "providerUrl": "https://www.ul.com",
    }

    async def test_non_admin_forbidden(self, client, sample_user):
        response = await client.post("/v1/admin/certifications", json=self._NEW_TYPE)
        assert response.status_code == 403
        assert response.json()["error"] == "http_403"

    async def test_admin_crud(self, client, admin_current_user):
        login_as(admin_current_user)

        created = await client.post("/v1/admin/certifications", json=self._NEW_TYPE)
        assert created.status_code == 201
        type_id = created.json()["id"]
        assert created.json()["provider_url"] == "https://www.ul.com"

        dup = await client.post("/v1/admin/certifications", json=self._NEW_TYPE)
        assert dup.status_code == 409

        updated = await client.put(
            f"/v1/admin/certifications/{type_id}", json={"relevance": 4}
        )
        assert updated.status_code == 200
        assert updated.json()["relevance"] == 4

        listed = await client.get("/v1/admin/certifications")
        assert [t["id"] for t in listed.json()] == [type_id]

        deleted = await client.delete(f"/v1/admin/certifications/{type_id}")
        assert deleted.status_code == 204
        assert (await client.get(f"/v1/certifications/{type_id}")).status_code == 404

    async def test_delete_in_use_409(self, client, cert_type, admin_current_user):
        await _start(client, cert_type.id)
        login_as(admin_current_user)
        response = await client.delete(f"/v1/admin/certifications/{cert_type.id}")
        assert response.status_code == 409

    async def test_empty_requirements_422(self, client, admin_current_user):
        login_as(admin_current_user)
        response = await client.post(
            "/v1/admin/certifications", json={**self._NEW_TYPE, "requirements": [" "]}
        )
        assert response.status_code == 422


class TestPlatformEndpoints:
    async def test_version_and_security_headers(self, client, cert_type):
        response = await client.get("/v1/certifications")
        assert response.headers["x-api-version"] == "v1"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["server"] == "wastetraq"


class TestAuditTrail:
    async def _audited(self, client, method: str, url: str, **kwargs):
        with (
            patch.object(settings, "AUDIT_LOG_ENABLED", True),
            patch.object(AuditMiddleware, "_write_audit_log", new_callable=AsyncMock) as writer,
        ):
            response = await client.request(method, url, **kwargs)
        return response, writer

    async def test_start_recorded_with_caller(self, client, cert_type):
        response, writer = await self._audited(
            client, "POST", "/v1/certifications/start", json={"certificationTypeId": cert_type.id}
        )
        assert response.status_code == 201
        scope, _request, method, path = writer.call_args.args
        assert (method, path) == ("POST", "/v1/certifications/start")
        assert scope["state"]["org_id"] == SAMPLE_ORG_ID
        assert scope["state"]["user_id"] == SAMPLE_USER_ID

    async def test_admin_catalog_edit_recorded_with_caller(self, client, cert_type, admin_current_user):
        login_as(admin_current_user)
        response, writer = await self._audited(
            client, "PUT", f"/v1/admin/certifications/{cert_type.id}", json={"relevance": 5}
        )
        assert response.status_code == 200
        writer.assert_called_once()
        scope, _request, method, path = writer.call_args.args
        assert (method, path) == ("PUT", f"/v1/admin/certifications/{cert_type.id}")
        assert scope["state"]["org_id"] == SAMPLE_ORG_ID
        assert scope["state"]["user_id"] == SAMPLE_ADMIN_ID

    async def test_rejected_request_not_recorded(self, client, sample_user):
        response, writer = await self._audited(
            client, "POST", "/v1/admin/certifications", json={"name": "Nope"}
        )
        assert response.status_code in (403, 422)
        writer.assert_not_called()
