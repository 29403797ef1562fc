"""End-to-end tests through the HTTP layer."""

import io
from datetime import timedelta

import pytest
from openpyxl import load_workbook

from models.audit_log import AuditLog
from models.user import User
from conftest import PASSWORD

PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", role="ADMIN")


@pytest.fixture
def admin_headers(admin, login):
    return login("admin@example.com")


def _audit_rows(db, **filters):
    db.expire_all()
    return db.query(AuditLog).filter_by(**filters).all()


class TestHealthAndErrors:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_missing_token_is_401(self, client):
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthorized"

    def test_validation_error_shape(self, client):
        resp = client.post("/auth/login", json={"email": "a@example.com"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "validation_error"
        assert {"field": "password", "message": "Field required"} in body["errors"]

    def test_non_admin_gets_403(self, client, make_user, login):
        make_user("plain@example.com")
        resp = client.get("/admin/audit-logs", headers=login("plain@example.com"))
        assert resp.status_code == 403
        assert resp.json() == {"code": "forbidden", "message": "Insufficient permissions"}


class TestRegistration:
    def _register(self, client, email="new@example.com"):
        resp = client.post(
            "/auth/register",
            json={"email": email, "password": PASSWORD, "first_name": "Nina", "last_name": "Berg"},
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["status"] == "PENDING"
        return resp.json()["id"]

    def test_register_approve_login(self, client, admin, admin_headers, email, db):
        user_id = self._register(client)
        assert email.subjects_to("admin@example.com")

        resp = client.post("/auth/login", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 403
        assert "awaiting" in resp.json()["message"]

        pending = client.get("/admin/users/pending", headers=admin_headers).json()
        assert [u["id"] for u in pending] == [user_id]

        resp = client.post(f"/admin/users/{user_id}/approve", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "ACTIVE"

        resp = client.post("/auth/login", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "new@example.com"

        rows = _audit_rows(db, entity_type="User", entity_id=str(user_id))
        assert [(r.action, r.new_value) for r in rows] == [("UPDATE", {"status": "ACTIVE"})]
        assert rows[0].user_id == admin.id

    def test_rejected_user_cannot_log_in(self, client, admin_headers):
        user_id = self._register(client)
        resp = client.post(f"/admin/users/{user_id}/reject", headers=admin_headers, json={"reason": "Unknown"})
        assert resp.json()["status"] == "REJECTED"

        resp = client.post("/auth/login", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 403
        assert "rejected" in resp.json()["message"]

        # decisions are final
        resp = client.post(f"/admin/users/{user_id}/approve", headers=admin_headers)
        assert resp.status_code == 409

    def test_duplicate_and_weak_password(self, client):
        self._register(client)
        resp = client.post(
            "/auth/register",
            json={"email": "NEW@example.com", "password": PASSWORD, "first_name": "N", "last_name": "B"},
        )
        assert resp.status_code == 409
        resp = client.post(
            "/auth/register",
            json={"email": "weak@example.com", "password": "short", "first_name": "W", "last_name": "K"},
        )
        assert resp.status_code == 400

    def test_admin_created_user_is_active(self, client, admin_headers, db, email):
        resp = client.post(
            "/admin/users",
            headers=admin_headers,
            json={"email": "made@example.com", "password": PASSWORD, "first_name": "Max", "last_name": "Roe",
                  "role": "MANAGER"},
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["status"] == "ACTIVE"
        assert email.subjects_to("made@example.com")

        row = _audit_rows(db, entity_type="User", action="CREATE")[0]
        assert "password" not in row.new_value
        assert row.new_value["email"] == "made@example.com"


class TestUserSuspension:
    def test_deactivate_and_reactivate(self, client, admin, admin_headers, make_user, db):
        target = make_user("leaver@example.com")
        tokens = client.post("/auth/login", json={"email": "leaver@example.com", "password": PASSWORD}).json()
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        resp = client.post(f"/admin/users/{target.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["is_active"] is False

        assert client.get("/auth/me", headers=headers).status_code == 401
        assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401
        resp = client.post("/auth/login", json={"email": "leaver@example.com", "password": PASSWORD})
        assert resp.status_code == 403
        assert "deactivated" in resp.json()["message"]

        resp = client.post(f"/admin/users/{target.id}/activate", headers=admin_headers)
        assert resp.json()["is_active"] is True
        resp = client.post("/auth/login", json={"email": "leaver@example.com", "password": PASSWORD})
        assert resp.status_code == 200

        rows = _audit_rows(db, entity_type="User", entity_id=str(target.id))
        assert sorted((r.old_value["is_active"], r.new_value["is_active"]) for r in rows) == [
            (False, True),
            (True, False),
        ]
        assert {r.user_id for r in rows} == {admin.id}

    def test_admin_cannot_deactivate_self(self, client, admin, admin_headers):
        resp = client.post(f"/admin/users/{admin.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_user(self, client, admin_headers):
        assert client.post("/admin/users/9999/deactivate", headers=admin_headers).status_code == 404


class TestContractEndpoints:
    def test_assign_and_delete(self, client, admin, admin_headers, make_user, partner, db):
        colleague = make_user("colleague@example.com")
        created = client.post(
            "/contracts",
            headers=admin_headers,
            json={"title": "Fleet lease", "type": "LEASE", "partner_id": partner.id},
        ).json()

        resp = client.post(
            f"/contracts/{created['id']}/assign",
            headers=admin_headers,
            json={"owner_id": colleague.id, "reason": "Handover"},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["owner_id"] == colleague.id

        resp = client.delete(f"/contracts/{created['id']}", headers=admin_headers)
        assert resp.status_code == 204
        assert client.get(f"/contracts/{created['id']}", headers=admin_headers).status_code == 404

        rows = _audit_rows(db, entity_type="Contract", entity_id=str(created["id"]))
        assert sorted(r.action for r in rows) == ["CREATE", "DELETE", "UPDATE"]

    def test_plain_user_cannot_assign(self, client, make_user, login, partner, make_contract):
        user = make_user("plain@example.com")
        contract = make_contract(user)
        resp = client.post(
            f"/contracts/{contract.id}/assign",
            headers=login("plain@example.com"),
            json={"owner_id": user.id},
        )
        assert resp.status_code == 403


class TestAuthEndpoints:
    def test_refresh_and_logout(self, client, make_user):
        make_user("flow@example.com")
        tokens = client.post("/auth/login", json={"email": "flow@example.com", "password": PASSWORD}).json()
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        rotated = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert rotated.status_code == 200
        assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401

        # the reuse above revoked every session
        assert client.get("/auth/sessions", headers=headers).json() == []
        assert client.post("/auth/logout-all", headers=headers).json() == {"revoked": 0}

    def test_me(self, client, make_user, login):
        make_user("me@example.com", first_name="Mia")
        resp = client.get("/auth/me", headers=login("me@example.com"))
        assert resp.json()["first_name"] == "Mia"
        assert resp.json()["two_factor_enabled"] is False


class TestAuditedRoutes:
    def _contract_body(self, partner, **extra):
        body = {"title": "Fleet lease", "type": "LEASE", "partner_id": partner.id}
        body.update(extra)
        return body

    def test_failed_create_writes_no_audit_row(self, client, admin_headers, db):
        resp = client.post(
            "/contracts", headers=admin_headers, json={"title": "x", "type": "LEASE", "partner_id": 999}
        )
        assert resp.status_code == 400
        assert _audit_rows(db) == []

    def test_successful_create_and_read_are_audited(self, client, admin, admin_headers, partner, db, clock):
        end = (clock() + timedelta(days=120)).isoformat()
        resp = client.post("/contracts", headers=admin_headers, json=self._contract_body(partner, end_date=end))
        assert resp.status_code == 201, resp.text
        contract = resp.json()
        assert contract["status"] == "DRAFT"

        created = _audit_rows(db, action="CREATE", entity_type="Contract")
        assert len(created) == 1
        assert created[0].entity_id == str(contract["id"])
        assert created[0].contract_id == contract["id"]
        assert created[0].user_id == admin.id
        assert created[0].new_value["title"] == "Fleet lease"

        client.get(f"/contracts/{contract['id']}", headers=admin_headers)
        assert len(_audit_rows(db, action="READ", entity_type="Contract")) == 1

        resp = client.patch(f"/contracts/{contract['id']}/status", headers=admin_headers, json={"status": "ACTIVE"})
        assert resp.json()["status"] == "ACTIVE"
        updates = _audit_rows(db, action="UPDATE", entity_type="Contract")
        assert [u.new_value for u in updates] == [{"status": "ACTIVE"}]

        reminders = client.get(f"/reminders/contract/{contract['id']}", headers=admin_headers).json()
        assert len(reminders) == 5

    def test_viewer_cannot_create(self, client, make_user, login, partner):
        make_user("viewer@example.com", role="VIEWER")
        resp = client.post("/contracts", headers=login("viewer@example.com"), json=self._contract_body(partner))
        assert resp.status_code == 403

    def test_document_upload_and_download(self, client, admin_headers, partner, db):
        contract = client.post("/contracts", headers=admin_headers, json=self._contract_body(partner)).json()
        resp = client.post(
            f"/documents/contract/{contract['id']}",
            headers=admin_headers,
            files={"file": ("Lease 2026.pdf", PDF, "application/pdf")},
            data={"is_main_document": "true"},
        )
        assert resp.status_code == 201, resp.text
        doc = resp.json()
        assert doc["is_main_document"] is True

        resp = client.get(f"/documents/{doc['id']}/download", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.content == PDF
        assert "filename*=UTF-8''Lease%202026.pdf" in resp.headers["content-disposition"]

        actions = sorted(r.action for r in _audit_rows(db, entity_type="Document"))
        assert actions == ["CREATE", "DOWNLOAD"]
        assert _audit_rows(db, action="CREATE", entity_type="Document")[0].contract_id == contract["id"]

    def test_rejected_upload_is_not_audited(self, client, admin_headers, partner, db):
        contract = client.post("/contracts", headers=admin_headers, json=self._contract_body(partner)).json()
        resp = client.post(
            f"/documents/contract/{contract['id']}",
            headers=admin_headers,
            files={"file": ("setup.pdf", b"MZ\x90\x00\x03\x00\x00\x00", "application/pdf")},
        )
        assert resp.status_code == 400
        assert _audit_rows(db, entity_type="Document") == []


class TestAdminAuditTrail:
    def test_list_and_export(self, client, admin, admin_headers, partner, db):
        client.post(
            "/contracts", headers=admin_headers, json={"title": "Lease", "type": "LEASE", "partner_id": partner.id}
        )

        logs = client.get("/admin/audit-logs", headers=admin_headers, params={"entity_type": "Contract"}).json()
        assert [log["action"] for log in logs["logs"]] == ["CREATE"]
        assert logs["logs"][0]["user_email"] == "admin@example.com"

        resp = client.get("/admin/audit-logs/export", headers=admin_headers)
        assert resp.status_code == 200
        ws = load_workbook(io.BytesIO(resp.content)).active
        assert ws.cell(row=1, column=1).value == "ID"
        assert ws.cell(row=2, column=4).value == "CREATE"

        exports = _audit_rows(db, action="EXPORT")
        assert len(exports) == 1
        assert exports[0].entity_type == "AuditLog"
        assert exports[0].user_id == admin.id

    def test_manual_jobs(self, client, admin_headers, db):
        assert client.post("/admin/jobs/reminders", headers=admin_headers).json() == {"processed": 0, "failed": 0}
        assert client.post("/admin/jobs/token-cleanup", headers=admin_headers).json()["failed"] == 0
        stats = client.get("/admin/jobs/document-cleanup", headers=admin_headers).json()
        assert stats["pending_purge"] == 0

        assert client.post("/admin/jobs/document-cleanup", headers=admin_headers).json() == {
            "processed": 0,
            "failed": 0,
        }
        system = db.query(User).filter(User.is_active.is_(False)).one()
        assert system.email.startswith("system@")
