"""
Authentication tests.

Verifies:
- Sign-up creates exactly one Cashier profile whatever the request says
- Password confirmation and strength are checked before any database work
- Sign-in returns the session context; sign-out revokes the token
- Password reset consumes the token and revokes every session
- Sign-in throttling locks an email after repeated failures
"""

import pytest

from pharmapos.extensions import db
from pharmapos.models import User, Profile, SecurityEvent, SessionToken
from pharmapos.services import login_throttle_service


def _sign_up(client, **overrides):
    body = {
        "email": "new.cashier@pharmapos.test",
        "password": "Password123!",
        "confirm_password": "Password123!",
        "full_name": "New Cashier",
    }
    body.update(overrides)
    return client.post("/api/auth/sign-up", json=body)


# =============================================================================
# SIGN-UP
# =============================================================================


class TestSignUp:
    """Self-registration always yields a Cashier."""

    def test_creates_user_with_cashier_profile(self, client, db_session):
        resp = _sign_up(client)
        assert resp.status_code == 201
        assert resp.json["profile"]["role"] == "Cashier"
        assert resp.json["profile"]["full_name"] == "New Cashier"

        user = db_session.query(User).filter_by(email="new.cashier@pharmapos.test").one()
        assert db_session.query(Profile).filter_by(user_id=user.id).count() == 1

    def test_requested_role_is_ignored(self, client, db_session):
        resp = _sign_up(client, role="Super Admin")
        assert resp.status_code == 201
        assert resp.json["profile"]["role"] == "Cashier"

    def test_email_is_normalized(self, client, db_session):
        resp = _sign_up(client, email="  Mixed.Case@PharmaPOS.test ")
        assert resp.status_code == 201
        assert resp.json["user"]["email"] == "mixed.case@pharmapos.test"

    def test_password_mismatch_rejected_without_creating_user(self, client, db_session):
        resp = _sign_up(client, confirm_password="Password123?")
        assert resp.status_code == 400
        assert resp.json["error"] == "Passwords do not match"
        assert db_session.query(User).count() == 0

    @pytest.mark.parametrize(
        "password",
        ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigitsHere!", "NoSpecial123"],
    )
    def test_weak_password_rejected(self, client, db_session, password):
        resp = _sign_up(client, password=password, confirm_password=password)
        assert resp.status_code == 400
        assert db_session.query(User).count() == 0

    def test_invalid_email_rejected(self, client, db_session):
        resp = _sign_up(client, email="not-an-email")
        assert resp.status_code == 400

    def test_duplicate_email_conflicts(self, client, db_session):
        assert _sign_up(client).status_code == 201
        resp = _sign_up(client, email="NEW.CASHIER@pharmapos.test")
        assert resp.status_code == 409
        assert db_session.query(User).count() == 1

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/sign-up", json={"email": "x@pharmapos.test"})
        assert resp.status_code == 400

    def test_non_string_email_rejected(self, client, db_session):
        resp = _sign_up(client, email=12345)
        assert resp.status_code == 400
        assert db_session.query(User).count() == 0


# =============================================================================
# SIGN-IN / SESSION / SIGN-OUT
# =============================================================================


class TestSignIn:

    def test_sign_in_returns_token_and_capabilities(self, client, cashier):
        resp = client.post("/api/auth/sign-in", json={
            "email": "cashier@pharmapos.test",
            "password": "Password123!",
        })
        assert resp.status_code == 200
        body = resp.json
        assert body["token"]
        assert body["role"] == "Cashier"
        assert body["user"]["id"] == cashier.id
        assert "CREATE_SALE" in body["permissions"]
        assert "MANAGE_USERS" not in body["permissions"]
        assert "/pos" in body["routes"]
        assert "/users" not in body["routes"]

    def test_wrong_password(self, client, cashier):
        resp = client.post("/api/auth/sign-in", json={
            "email": "cashier@pharmapos.test",
            "password": "WrongPassword1!",
        })
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "cashier@pharmapos.test", "password": 12345678},
            {"email": 42, "password": "Password123!"},
            {"email": ["cashier@pharmapos.test"], "password": "Password123!"},
        ],
    )
    def test_non_string_credentials(self, client, db_session, cashier, payload):
        resp = client.post("/api/auth/sign-in", json=payload)
        assert resp.status_code == 400
        # Rejected before authentication, so nothing counts toward lockout
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 0

    def test_deactivated_user_cannot_sign_in(self, client, db_session, cashier):
        cashier.is_active = False
        db_session.commit()
        resp = client.post("/api/auth/sign-in", json={
            "email": "cashier@pharmapos.test",
            "password": "Password123!",
        })
        assert resp.status_code == 401

    def test_session_endpoint_returns_context(self, client, cashier, cashier_headers):
        resp = client.get("/api/auth/session", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["email"] == "cashier@pharmapos.test"
        assert resp.json["profile"]["role"] == "Cashier"
        assert resp.json["routes"] == ["/", "/pos", "/sales", "/inventory"]

    def test_sign_out_revokes_token(self, client, cashier_headers):
        assert client.post("/api/auth/sign-out", headers=cashier_headers).status_code == 200
        assert client.get("/api/auth/session", headers=cashier_headers).status_code == 401
        assert client.post("/api/auth/sign-out", headers=cashier_headers).status_code == 401

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/auth/session", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_sign_in_logs_session_started(self, client, db_session, cashier):
        client.post("/api/auth/sign-in", json={
            "email": "cashier@pharmapos.test",
            "password": "Password123!",
        })
        events = db_session.query(SecurityEvent).filter_by(
            user_id=cashier.id, event_type="SIGNED_IN"
        ).all()
        assert len(events) == 1


# =============================================================================
# THROTTLING
# =============================================================================


class TestSignInThrottling:

    def test_locks_after_max_failures(self, client, cashier):
        for _ in range(login_throttle_service.MAX_FAILED_ATTEMPTS - 1):
            resp = client.post("/api/auth/sign-in", json={
                "email": "cashier@pharmapos.test",
                "password": "WrongPassword1!",
            })
            assert resp.status_code == 401

        resp = client.post("/api/auth/sign-in", json={
            "email": "cashier@pharmapos.test",
            "password": "WrongPassword1!",
        })
        assert resp.status_code == 429

        # Even the right password is refused while locked
        resp = client.post("/api/auth/sign-in", json={
            "email": "cashier@pharmapos.test",
            "password": "Password123!",
        })
        assert resp.status_code == 429
        assert resp.json["retry_after_seconds"] > 0


# =============================================================================
# PASSWORD RESET / CHANGE
# =============================================================================


class TestPasswordReset:

    def test_unknown_email_still_accepted(self, client, db_session):
        resp = client.post("/api/auth/password-reset/request", json={"email": "ghost@pharmapos.test"})
        assert resp.status_code == 202
        assert "reset_token" not in resp.json

    def test_non_string_email_or_token(self, client, db_session):
        assert client.post("/api/auth/password-reset/request", json={"email": 7}).status_code == 400
        resp = client.post("/api/auth/password-reset/confirm", json={
            "token": 12345, "password": "Password123!", "confirm_password": "Password123!",
        })
        assert resp.status_code == 400

    def test_reset_flow_revokes_sessions(self, client, db_session, cashier, cashier_headers):
        resp = client.post("/api/auth/password-reset/request", json={"email": "cashier@pharmapos.test"})
        assert resp.status_code == 202
        token = resp.json["reset_token"]

        resp = client.post("/api/auth/password-reset/confirm", json={
            "token": token,
            "password": "NewPassword456!",
            "confirm_password": "NewPassword456!",
        })
        assert resp.status_code == 200

        assert client.get("/api/auth/session", headers=cashier_headers).status_code == 401
        assert db_session.query(SessionToken).filter_by(
            user_id=cashier.id, is_revoked=False
        ).count() == 0

        resp = client.post("/api/auth/sign-in", json={
            "email": "cashier@pharmapos.test",
            "password": "NewPassword456!",
        })
        assert resp.status_code == 200

    def test_reset_token_is_single_use(self, client, db_session, cashier):
        token = client.post(
            "/api/auth/password-reset/request", json={"email": "cashier@pharmapos.test"}
        ).json["reset_token"]
        body = {"token": token, "password": "NewPassword456!", "confirm_password": "NewPassword456!"}
        assert client.post("/api/auth/password-reset/confirm", json=body).status_code == 200
        assert client.post("/api/auth/password-reset/confirm", json=body).status_code == 400

    def test_reset_confirmation_mismatch(self, client, db_session, cashier):
        token = client.post(
            "/api/auth/password-reset/request", json={"email": "cashier@pharmapos.test"}
        ).json["reset_token"]
        resp = client.post("/api/auth/password-reset/confirm", json={
            "token": token,
            "password": "NewPassword456!",
            "confirm_password": "Different456!",
        })
        assert resp.status_code == 400

    def test_change_password_requires_current(self, client, cashier_headers):
        resp = client.post("/api/auth/change-password", headers=cashier_headers, json={
            "current_password": "WrongPassword1!",
            "new_password": "NewPassword456!",
            "confirm_password": "NewPassword456!",
        })
        assert resp.status_code == 400

        resp = client.post("/api/auth/change-password", headers=cashier_headers, json={
            "current_password": "Password123!",
            "new_password": "NewPassword456!",
            "confirm_password": "NewPassword456!",
        })
        assert resp.status_code == 200


# =============================================================================
# OWN PROFILE
# =============================================================================


class TestOwnProfile:

    def test_update_display_fields(self, client, cashier_headers):
        resp = client.patch("/api/auth/profile", headers=cashier_headers, json={"full_name": "Casey T."})
        assert resp.status_code == 200
        assert resp.json["profile"]["full_name"] == "Casey T."

    def test_role_not_writable(self, client, db_session, cashier, cashier_headers):
        resp = client.patch("/api/auth/profile", headers=cashier_headers, json={"role": "Super Admin"})
        assert resp.status_code == 400
        db.session.refresh(cashier.profile)
        assert cashier.profile.role == "Cashier"

    def test_cashier_cannot_read_other_profile(self, client, super_admin, cashier_headers):
        resp = client.get(f"/api/auth/profiles/{super_admin.id}", headers=cashier_headers)
        assert resp.status_code == 403

    def test_manager_can_read_other_profile(self, client, cashier, manager_headers):
        resp = client.get(f"/api/auth/profiles/{cashier.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["profile"]["role"] == "Cashier"
