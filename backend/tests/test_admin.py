"""
User administration tests.

Verifies:
- Super Admin creates staff accounts with any role
- Role changes and deactivation revoke the target's sessions
- The last active Super Admin cannot be demoted or deactivated
- Nobody deactivates their own account
- Administrative actions land in the security event log
"""

import pytest

from pharmapos.decorators import require_permission
from pharmapos.models import SecurityEvent
from pharmapos.permissions import ROLE_STOCK_MANAGER, ROLE_SUPER_ADMIN
from pharmapos.services import user_service
from pharmapos.validation import ConflictError

from conftest import PASSWORD


class TestCreateUser:

    def test_create_with_role(self, client, db_session, admin_headers, super_admin):
        resp = client.post("/api/admin/users", headers=admin_headers, json={
            "email": "New.Manager@PharmaPOS.test",
            "password": PASSWORD,
            "role": ROLE_STOCK_MANAGER,
            "full_name": "Nia Manager",
        })
        assert resp.status_code == 201
        user = resp.json["user"]
        assert user["email"] == "new.manager@pharmapos.test"
        assert user["profile"]["role"] == ROLE_STOCK_MANAGER
        assert user["profile"]["full_name"] == "Nia Manager"

        assert db_session.query(SecurityEvent).filter_by(
            user_id=super_admin.id, event_type="USER_CREATED", action=ROLE_STOCK_MANAGER
        ).count() == 1

    def test_default_role_is_cashier(self, client, db_session, admin_headers):
        resp = client.post("/api/admin/users", headers=admin_headers, json={
            "email": "till@pharmapos.test", "password": PASSWORD,
        })
        assert resp.json["user"]["profile"]["role"] == "Cashier"

    def test_unknown_role(self, client, db_session, admin_headers):
        resp = client.post("/api/admin/users", headers=admin_headers, json={
            "email": "x@pharmapos.test", "password": PASSWORD, "role": "Owner",
        })
        assert resp.status_code == 400

    def test_duplicate_email(self, client, db_session, admin_headers, cashier):
        resp = client.post("/api/admin/users", headers=admin_headers, json={
            "email": cashier.email, "password": PASSWORD,
        })
        assert resp.status_code == 409

    def test_list_filters_by_role(self, client, db_session, admin_headers, cashier, other_cashier, stock_manager):
        resp = client.get("/api/admin/users?role=Cashier", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 2
        assert client.get("/api/admin/users?role=Owner", headers=admin_headers).status_code == 400


class TestChangeRole:

    def test_promote_revokes_sessions(self, client, db_session, admin_headers, cashier, cashier_headers):
        assert client.get("/api/auth/session", headers=cashier_headers).status_code == 200

        resp = client.patch(f"/api/admin/users/{cashier.id}/role", headers=admin_headers, json={
            "role": ROLE_STOCK_MANAGER,
        })
        assert resp.status_code == 200
        assert resp.json["user"]["profile"]["role"] == ROLE_STOCK_MANAGER

        # Old token is dead; the next sign-in carries the new capability set
        assert client.get("/api/auth/session", headers=cashier_headers).status_code == 401
        signed_in = client.post("/api/auth/sign-in", json={"email": cashier.email, "password": PASSWORD})
        assert signed_in.json["role"] == ROLE_STOCK_MANAGER
        assert "MANAGE_PURCHASE_ORDERS" in signed_in.json["permissions"]

    def test_role_change_is_audited(self, client, db_session, admin_headers, super_admin, cashier):
        client.patch(f"/api/admin/users/{cashier.id}/role", headers=admin_headers, json={
            "role": ROLE_STOCK_MANAGER,
        })
        event = db_session.query(SecurityEvent).filter_by(event_type="ROLE_CHANGED").one()
        assert event.user_id == super_admin.id
        assert event.resource == f"user:{cashier.id}"
        assert event.reason == "Cashier -> Stock Manager"

    def test_last_super_admin_cannot_be_demoted(self, client, db_session, admin_headers, super_admin):
        resp = client.patch(f"/api/admin/users/{super_admin.id}/role", headers=admin_headers, json={
            "role": ROLE_STOCK_MANAGER,
        })
        assert resp.status_code == 409
        db_session.refresh(super_admin.profile)
        assert super_admin.profile.role == ROLE_SUPER_ADMIN

    def test_second_super_admin_may_be_demoted(self, client, db_session, admin_headers, super_admin, cashier):
        client.patch(f"/api/admin/users/{cashier.id}/role", headers=admin_headers, json={"role": ROLE_SUPER_ADMIN})
        resp = client.patch(f"/api/admin/users/{cashier.id}/role", headers=admin_headers, json={
            "role": ROLE_STOCK_MANAGER,
        })
        assert resp.status_code == 200

    def test_unknown_role_and_user(self, client, db_session, admin_headers, cashier):
        resp = client.patch(f"/api/admin/users/{cashier.id}/role", headers=admin_headers, json={"role": "Owner"})
        assert resp.status_code == 400
        resp = client.patch("/api/admin/users/9999/role", headers=admin_headers, json={"role": "Cashier"})
        assert resp.status_code == 404


class TestActivation:

    def test_deactivate_and_reactivate(self, client, db_session, admin_headers, cashier, cashier_headers):
        resp = client.post(f"/api/admin/users/{cashier.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["is_active"] is False
        assert client.get("/api/auth/session", headers=cashier_headers).status_code == 401

        signed_in = client.post("/api/auth/sign-in", json={"email": cashier.email, "password": PASSWORD})
        assert signed_in.status_code == 401

        resp = client.post(f"/api/admin/users/{cashier.id}/reactivate", headers=admin_headers)
        assert resp.json["user"]["is_active"] is True
        signed_in = client.post("/api/auth/sign-in", json={"email": cashier.email, "password": PASSWORD})
        assert signed_in.status_code == 200

        event_types = [
            e.event_type for e in db_session.query(SecurityEvent)
            .filter(SecurityEvent.event_type.in_(["USER_DEACTIVATED", "USER_REACTIVATED"]))
            .order_by(SecurityEvent.id)
        ]
        assert event_types == ["USER_DEACTIVATED", "USER_REACTIVATED"]

    def test_cannot_deactivate_self(self, client, db_session, admin_headers, super_admin):
        resp = client.post(f"/api/admin/users/{super_admin.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 409

    def test_cannot_deactivate_last_super_admin(self, db_session, super_admin):
        with pytest.raises(ConflictError):
            user_service.set_active(user_id=super_admin.id, active=False)
        db_session.refresh(super_admin)
        assert super_admin.is_active is True

    def test_other_super_admin_may_be_deactivated(self, client, db_session, admin_headers, cashier):
        client.patch(f"/api/admin/users/{cashier.id}/role", headers=admin_headers, json={"role": ROLE_SUPER_ADMIN})
        resp = client.post(f"/api/admin/users/{cashier.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 200


class TestSecurityEvents:

    def test_filter_by_event_type(self, client, db_session, admin_headers, cashier_headers):
        client.get("/api/admin/users", headers=cashier_headers)
        resp = client.get("/api/admin/security-events?event_type=PERMISSION_DENIED", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["total"] == 1
        assert resp.json["items"][0]["success"] is False

    def test_roles_catalog_lists_routes(self, client, db_session, admin_headers):
        roles = {r["name"]: r for r in client.get("/api/admin/roles", headers=admin_headers).json["roles"]}
        assert roles["Cashier"]["routes"] == ["/", "/pos", "/sales", "/inventory"]
        assert set(roles["Cashier"]["permissions"]) < set(roles["Stock Manager"]["permissions"])

    def test_permission_catalog(self, client, db_session, admin_headers, manager_headers):
        resp = client.get("/api/admin/permissions", headers=admin_headers)
        assert resp.status_code == 200
        catalog = resp.json["categories"]
        assert {p["code"] for p in catalog["SALES"]} >= {"CREATE_SALE", "OVERRIDE_PRICE"}
        assert all(p["category"] == "CATALOG" for p in catalog["CATALOG"])
        assert client.get("/api/admin/permissions", headers=manager_headers).status_code == 403


def test_unknown_permission_code_fails_at_decoration():
    with pytest.raises(ValueError):
        require_permission("SELL_EVERYTHING")
