"""Tests for staff login, token refresh, logout and session revocation."""

from datetime import timedelta

import pytest

from cafe_api.core.config import settings
from cafe_api.core.errors import (
    AccountInactive,
    AccountLocked,
    InvalidCredentials,
    RefreshExpired,
    RefreshInvalid,
    TokenInvalid,
    TokenMissing,
    TooManyLoginAttempts,
)
from cafe_api.core.security import create_access_token, hash_token
from cafe_api.db.base import utcnow
from cafe_api.models import LoginFailure, StaffRole, StaffSession
from cafe_api.services.session_service import SessionManager

from conftest import TEST_CLIENT_IP, TEST_PASSWORD

LOGIN = "/api/v1/auth/login"
REFRESH = "/api/v1/auth/refresh"
LOGOUT = "/api/v1/auth/logout"
ME = "/api/v1/auth/me"


def _login(client, email, password=TEST_PASSWORD):
    return client.post(LOGIN, json={"email": email, "password": password})


# ============== Login ==============

class TestLogin:
    def test_success_returns_token_pair(self, client, chef, db_session):
        response = _login(client, chef.email)
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["expires_in"] == settings.access_token_expire_minutes * 60

        session = db_session.query(StaffSession).one()
        assert session.staff_id == chef.id
        assert session.refresh_token_hash == hash_token(data["refresh_token"])
        assert session.ip_address == TEST_CLIENT_IP

    def test_email_is_case_insensitive(self, client, chef):
        response = _login(client, chef.email.upper())
        assert response.status_code == 200

    def test_wrong_password(self, client, chef):
        response = _login(client, chef.email, "wrong-password")
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_unknown_email(self, client):
        response = _login(client, "nobody@example.com")
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"

    def test_inactive_account(self, client, make_staff):
        staff = make_staff(StaffRole.STAFF, is_active=False)
        response = _login(client, staff.email)
        assert response.status_code == 401
        assert response.json()["error"] == "account_inactive"

    def test_malformed_body(self, client):
        response = client.post(LOGIN, json={"email": "not-an-email", "password": "x"})
        assert response.status_code == 422

    def test_success_stamps_last_login(self, client, chef, db_session):
        _login(client, chef.email)
        db_session.refresh(chef)
        assert chef.last_login_at is not None

    def test_unverified_email_allowed_by_default(self, client, make_staff):
        staff = make_staff(StaffRole.STAFF, is_email_verified=False)
        assert _login(client, staff.email).status_code == 200

    def test_unverified_email_refused_when_required(self, client, make_staff, monkeypatch):
        monkeypatch.setattr(settings, "require_verified_email", True)
        staff = make_staff(StaffRole.STAFF, is_email_verified=False)
        response = _login(client, staff.email)
        assert response.status_code == 403
        assert response.json()["error"] == "email_unverified"


class TestAccountLock:
    def test_locks_after_consecutive_failures(self, db_session, chef):
        manager = SessionManager(db_session)
        for _ in range(settings.account_lock_threshold):
            with pytest.raises(InvalidCredentials):
                manager.login(chef.email, "wrong", ip_address="10.0.0.1")

        with pytest.raises(AccountLocked):
            manager.login(chef.email, TEST_PASSWORD, ip_address="10.0.0.2")

        db_session.refresh(chef)
        assert chef.locked_until is not None

    def test_locked_account_answers_423(self, client, chef, db_session):
        chef.locked_until = utcnow() + timedelta(minutes=30)
        db_session.commit()
        response = _login(client, chef.email)
        assert response.status_code == 423
        assert response.json()["error"] == "account_locked"

    def test_lock_expires(self, db_session, chef):
        chef.locked_until = utcnow() - timedelta(seconds=1)
        db_session.commit()
        assert SessionManager(db_session).login(chef.email, TEST_PASSWORD).access_token

    def test_success_resets_counter(self, db_session, chef):
        manager = SessionManager(db_session)
        for _ in range(settings.account_lock_threshold - 1):
            with pytest.raises(InvalidCredentials):
                manager.login(chef.email, "wrong", ip_address="10.0.0.1")
        manager.login(chef.email, TEST_PASSWORD, ip_address="10.0.0.1")
        db_session.refresh(chef)
        assert chef.failed_login_attempts == 0


class TestFailureBudget:
    def test_only_failures_count(self, db_session, chef):
        manager = SessionManager(db_session)
        ip = "192.0.2.10"
        for i in range(settings.login_max_failures - 1):
            with pytest.raises(InvalidCredentials):
                manager.login(f"ghost{i}@example.com", "x", ip_address=ip)
        # Successful logins never use up the budget
        for _ in range(3):
            manager.login(chef.email, TEST_PASSWORD, ip_address=ip)

        with pytest.raises(InvalidCredentials):
            manager.login("ghost-last@example.com", "x", ip_address=ip)
        with pytest.raises(TooManyLoginAttempts) as exc:
            manager.login(chef.email, TEST_PASSWORD, ip_address=ip)
        assert exc.value.retry_after_seconds > 0

    def test_budget_is_per_address(self, db_session, chef):
        manager = SessionManager(db_session)
        for i in range(settings.login_max_failures):
            with pytest.raises(InvalidCredentials):
                manager.login(f"ghost{i}@example.com", "x", ip_address="192.0.2.20")
        assert manager.login(chef.email, TEST_PASSWORD, ip_address="192.0.2.21").access_token

    def test_old_failures_fall_out_of_window(self, db_session, chef):
        old = utcnow() - timedelta(minutes=settings.login_failure_window_minutes + 1)
        db_session.add_all([
            LoginFailure(ip_address="192.0.2.30", email="x@example.com", created_at=old)
            for _ in range(settings.login_max_failures)
        ])
        db_session.commit()
        assert SessionManager(db_session).login(
            chef.email, TEST_PASSWORD, ip_address="192.0.2.30",
        ).access_token

    def test_exhausted_budget_answers_429(self, client, chef, db_session):
        db_session.add_all([
            LoginFailure(ip_address=TEST_CLIENT_IP, email="x@example.com")
            for _ in range(settings.login_max_failures)
        ])
        db_session.commit()
        response = _login(client, chef.email)
        assert response.status_code == 429
        assert response.json()["error"] == "too_many_attempts"
        assert int(response.headers["Retry-After"]) > 0


# ============== Authenticated requests ==============

class TestAuthenticate:
    def test_me(self, client, chef, chef_headers):
        response = client.get(ME, headers=chef_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["staff_id"] == chef.id
        assert data["email"] == chef.email
        assert data["role"] == "chef"

    def test_missing_token(self, client):
        response = client.get(ME)
        assert response.status_code == 401
        assert response.json()["error"] == "token_missing"

    def test_expired_token(self, client, chef, db_session):
        pair = SessionManager(db_session).login(chef.email, TEST_PASSWORD)
        session = db_session.query(StaffSession).one()
        expired = create_access_token(chef.id, "chef", session.id, expires_delta=timedelta(seconds=-1))
        response = client.get(ME, headers={"Authorization": f"Bearer {expired}"})
        assert response.status_code == 401
        assert response.json()["error"] == "token_expired"
        assert pair.refresh_token

    def test_garbage_token(self, client):
        response = client.get(ME, headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["error"] == "token_invalid"

    def test_role_is_read_from_database(self, client, chef, chef_headers, db_session):
        chef.role = StaffRole.ADMIN
        db_session.commit()
        response = client.get(ME, headers=chef_headers)
        assert response.json()["role"] == "admin"

    def test_demoted_admin_loses_rights_immediately(self, client, admin, admin_headers, db_session):
        assert client.put("/api/v1/venue", json={"radius_meters": 80}, headers=admin_headers).status_code == 200
        admin.role = StaffRole.CHEF
        db_session.commit()
        response = client.put("/api/v1/venue", json={"radius_meters": 90}, headers=admin_headers)
        assert response.status_code == 403

    def test_deleted_staff(self, db_session, chef):
        manager = SessionManager(db_session)
        pair = manager.login(chef.email, TEST_PASSWORD)
        db_session.query(StaffSession).delete()
        db_session.delete(chef)
        db_session.commit()
        with pytest.raises(TokenInvalid):
            manager.authenticate(pair.access_token)

    def test_none_token(self, db_session):
        with pytest.raises(TokenMissing):
            SessionManager(db_session).authenticate(None)


# ============== Refresh ==============

class TestRefresh:
    def test_refresh_issues_new_access_token(self, client, chef):
        pair = _login(client, chef.email).json()
        response = client.post(REFRESH, json={"refresh_token": pair["refresh_token"]})
        assert response.status_code == 200
        new_token = response.json()["access_token"]
        assert new_token != pair["access_token"]
        assert client.get(ME, headers={"Authorization": f"Bearer {new_token}"}).status_code == 200

    def test_refresh_token_is_reusable(self, client, chef):
        pair = _login(client, chef.email).json()
        for _ in range(3):
            response = client.post(REFRESH, json={"refresh_token": pair["refresh_token"]})
            assert response.status_code == 200

    def test_unknown_refresh_token(self, client):
        response = client.post(REFRESH, json={"refresh_token": "not-a-real-token"})
        assert response.status_code == 401
        assert response.json()["error"] == "refresh_invalid"

    def test_expired_refresh_token(self, db_session, chef):
        manager = SessionManager(db_session)
        pair = manager.login(chef.email, TEST_PASSWORD)
        session = db_session.query(StaffSession).one()
        session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        with pytest.raises(RefreshExpired):
            manager.refresh(pair.refresh_token)

    def test_refresh_records_time(self, db_session, chef):
        manager = SessionManager(db_session)
        pair = manager.login(chef.email, TEST_PASSWORD)
        manager.refresh(pair.refresh_token)
        assert db_session.query(StaffSession).one().last_refreshed_at is not None

    def test_inactive_staff_cannot_refresh(self, db_session, chef):
        manager = SessionManager(db_session)
        pair = manager.login(chef.email, TEST_PASSWORD)
        chef.is_active = False
        db_session.commit()
        with pytest.raises(RefreshInvalid):
            manager.refresh(pair.refresh_token)
        assert db_session.query(StaffSession).one().revoked_at is not None


# ============== Logout and revocation ==============

class TestLogout:
    def test_logout_revokes_both_tokens(self, client, chef):
        pair = _login(client, chef.email).json()
        headers = {"Authorization": f"Bearer {pair['access_token']}"}

        assert client.post(LOGOUT, headers=headers).status_code == 204

        response = client.get(ME, headers=headers)
        assert response.status_code == 401
        assert response.json()["error"] == "token_invalid"
        response = client.post(REFRESH, json={"refresh_token": pair["refresh_token"]})
        assert response.json()["error"] == "refresh_invalid"

    def test_logout_leaves_other_devices_alone(self, client, chef):
        phone = _login(client, chef.email).json()
        tablet = _login(client, chef.email).json()
        client.post(LOGOUT, headers={"Authorization": f"Bearer {phone['access_token']}"})
        response = client.get(ME, headers={"Authorization": f"Bearer {tablet['access_token']}"})
        assert response.status_code == 200

    def test_logout_twice_is_harmless(self, db_session, chef):
        manager = SessionManager(db_session)
        pair = manager.login(chef.email, TEST_PASSWORD)
        identity = manager.authenticate(pair.access_token)
        manager.logout(identity)
        manager.logout(identity)


class TestDeactivation:
    def test_admin_deactivates_staff(self, client, chef, admin_headers, db_session):
        chef_pair = _login(client, chef.email).json()
        chef_auth = {"Authorization": f"Bearer {chef_pair['access_token']}"}

        response = client.post(f"/api/v1/auth/staff/{chef.id}/deactivate", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = client.get(ME, headers=chef_auth)
        assert response.status_code == 401
        response = client.post(REFRESH, json={"refresh_token": chef_pair["refresh_token"]})
        assert response.json()["error"] == "refresh_invalid"
        assert _login(client, chef.email).json()["error"] == "account_inactive"

    def test_revoke_all_counts_sessions(self, db_session, chef):
        manager = SessionManager(db_session)
        manager.login(chef.email, TEST_PASSWORD)
        manager.login(chef.email, TEST_PASSWORD)
        assert manager.revoke_all(chef.id) == 2
        assert manager.revoke_all(chef.id) == 0

    def test_unknown_staff(self, client, admin_headers):
        response = client.post("/api/v1/auth/staff/9999/deactivate", headers=admin_headers)
        assert response.status_code == 404

    def test_cannot_deactivate_self(self, client, admin, admin_headers):
        response = client.post(f"/api/v1/auth/staff/{admin.id}/deactivate", headers=admin_headers)
        assert response.status_code == 400

    def test_inactive_login_via_service(self, db_session, make_staff):
        staff = make_staff(StaffRole.STAFF, is_active=False)
        with pytest.raises(AccountInactive):
            SessionManager(db_session).login(staff.email, TEST_PASSWORD)


class TestHousekeeping:
    def test_purge_expired(self, db_session, chef):
        manager = SessionManager(db_session)
        manager.login(chef.email, TEST_PASSWORD)
        db_session.query(StaffSession).update({"expires_at": utcnow() - timedelta(days=1)})
        db_session.add(LoginFailure(
            ip_address="198.51.100.1",
            created_at=utcnow() - timedelta(hours=1),
        ))
        db_session.commit()

        assert manager.purge_expired() == {"login_failures": 1, "sessions": 1}
        assert db_session.query(StaffSession).count() == 0
