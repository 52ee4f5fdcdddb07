"""
Module: test_routes.py
Purpose: HTTP surface over the access service

Coverage:
- Success envelope and status codes
- Error envelope mapping for each error kind
- Member identity header
"""

import pytest
from fastapi.testclient import TestClient

from famvault.app_factory import create_app


@pytest.fixture
def client(settings, service):
    app = create_app(settings=settings, service=service)
    return TestClient(app)


def _as(member):
    return {"X-Member-Id": member.id}


def _create_request(client, household):
    return client.post(
        "/api/v1/delegations/requests",
        json={
            "owner_id": household.owner.id,
            "scope_kind": "file",
            "target_id": household.file.id,
            "permission_kind": "write",
            "reason": "fix typo",
        },
        headers=_as(household.member),
    )


class TestDelegationRoutes:

    def test_create_request(self, client, household):
        response = _create_request(client, household)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["created"] is True
        assert body["data"]["request"]["status"] == "pending"

    def test_approve_flow(self, client, household):
        request_id = _create_request(client, household).json()["data"]["request"]["id"]

        pending = client.get("/api/v1/delegations/requests/pending", headers=_as(household.owner))
        assert [r["id"] for r in pending.json()["data"]] == [request_id]

        response = client.post(
            f"/api/v1/delegations/requests/{request_id}/approve",
            json={"comment": "go ahead"},
            headers=_as(household.owner),
        )

        assert response.status_code == 200
        permission = response.json()["data"]
        assert permission["permission_kind"] == "write"
        assert permission["active"] is True

        check = client.get(
            "/api/v1/permissions/authorize",
            params={"kind": "file", "id": household.file.id, "action": "write"},
            headers=_as(household.member),
        )
        assert check.json()["data"] == {"allowed": True, "reason": "delegation"}

    def test_second_decision_conflicts(self, client, household):
        request_id = _create_request(client, household).json()["data"]["request"]["id"]
        client.post(f"/api/v1/delegations/requests/{request_id}/reject", json={}, headers=_as(household.owner))

        response = client.post(
            f"/api/v1/delegations/requests/{request_id}/approve", json={}, headers=_as(household.owner)
        )

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "INVALID_TRANSITION"
        assert body["details"]["status"] == "rejected"

    def test_denied_decision(self, client, household):
        request_id = _create_request(client, household).json()["data"]["request"]["id"]

        response = client.post(
            f"/api/v1/delegations/requests/{request_id}/approve", json={}, headers=_as(household.member)
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "PERMISSION_DENIED"

    def test_validation_error(self, client, household):
        response = client.post(
            "/api/v1/delegations/requests",
            json={
                "owner_id": household.owner.id,
                "scope_kind": "folder",
                "permission_kind": "read",
            },
            headers=_as(household.member),
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION"

    def test_missing_identity_header(self, client, household):
        response = client.get("/api/v1/delegations/requests/pending")
        assert response.status_code == 422


class TestPermissionRoutes:

    def test_grant_and_revoke(self, client, household):
        granted = client.post(
            "/api/v1/permissions",
            json={
                "beneficiary_id": household.member.id,
                "scope_kind": "folder",
                "target_id": household.folder.id,
                "permission_kind": "read",
            },
            headers=_as(household.owner),
        )
        assert granted.status_code == 201
        permission_id = granted.json()["data"]["id"]

        held = client.get("/api/v1/permissions", headers=_as(household.member))
        assert [p["id"] for p in held.json()["data"]] == [permission_id]

        revoked = client.post(
            f"/api/v1/permissions/{permission_id}/revoke",
            json={"reason": "done"},
            headers=_as(household.owner),
        )
        assert revoked.json()["data"]["active"] is False

        trail = client.get(f"/api/v1/permissions/{permission_id}/audit", headers=_as(household.owner))
        assert [e["action"] for e in trail.json()["data"]] == ["granted", "revoked"]

    def test_unknown_permission(self, client, household):
        response = client.post("/api/v1/permissions/missing/revoke", json={}, headers=_as(household.owner))

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_authorize_denied(self, client, household):
        response = client.get(
            "/api/v1/permissions/authorize",
            params={"kind": "file", "id": household.file.id},
            headers=_as(household.member),
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"allowed": False, "reason": "no-grant"}

    def test_explain(self, client, household):
        response = client.get(
            "/api/v1/permissions/explain",
            params={"kind": "file", "id": household.file.id, "action": "read"},
            headers=_as(household.owner),
        )

        assert response.json()["data"]["reason"] == "owner"

    def test_statistics_and_sweep(self, client, household):
        _create_request(client, household)

        stats = client.get("/api/v1/permissions/statistics", headers=_as(household.member))
        assert stats.json()["data"]["pending_made"] == 1

        sweep = client.post("/api/v1/permissions/sweep", headers=_as(household.admin))
        assert sweep.json()["data"] == {"permissions_expired": 0, "requests_expired": 0}

    def test_sweep_requires_known_member(self, client, household):
        assert client.post("/api/v1/permissions/sweep").status_code == 422

        response = client.post("/api/v1/permissions/sweep", headers={"X-Member-Id": "nobody"})
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_family_audit_log(self, client, household):
        _create_request(client, household)

        admin_view = client.get("/api/v1/permissions/audit", headers=_as(household.admin))
        assert [e["action"] for e in admin_view.json()["data"]] == ["request_created"]

        denied = client.get(
            "/api/v1/permissions/audit",
            params={"member_id": household.admin.id},
            headers=_as(household.member),
        )
        assert denied.status_code == 403


class TestFamilyRoutes:

    def test_list_members(self, client, household):
        response = client.get("/api/v1/family/members", headers=_as(household.admin))
        assert len(response.json()["data"]) == 4

    def test_change_role(self, client, household):
        response = client.put(
            f"/api/v1/family/members/{household.member.id}/role",
            json={"role": "responsible"},
            headers=_as(household.admin),
        )

        assert response.status_code == 200
        assert response.json()["data"]["role"] == "responsible"

    def test_remove_member(self, client, household):
        response = client.delete(f"/api/v1/family/members/{household.member.id}", headers=_as(household.admin))

        assert response.status_code == 200
        assert response.json()["data"] == []


def test_health(client):
    response = client.get("/health")
    assert response.json()["status"] == "ok"
