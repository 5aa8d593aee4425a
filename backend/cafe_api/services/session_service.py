"""Staff session manager.

Staff log in with email and password and receive a short-lived access token
plus a long-lived refresh token. Every login creates a ``StaffSession`` row;
access tokens carry its id, so revoking the row (logout, deactivation) cuts
off both tokens at once. The staff member's role is read from the database on
every authenticated request, never trusted from the token.

Two independent brute-force guards apply to login:

- a per-address budget: only *failed* attempts are recorded, and once
  ``login_max_failures`` of them fall inside the sliding window further
  attempts from that address are refused before credentials are checked;
- a per-account lock: ``account_lock_threshold`` consecutive failures lock
  the account for ``account_lock_minutes``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from cafe_api.core.config import settings
from cafe_api.core.errors import (
    AccountInactive,
    AccountLocked,
    EmailUnverified,
    InvalidCredentials,
    RefreshExpired,
    RefreshInvalid,
    StaffNotFound,
    TokenInvalid,
    TokenMissing,
    TooManyLoginAttempts,
)
from cafe_api.core.security import (
    access_token_ttl,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_token,
    refresh_token_ttl,
    verify_password,
)
from cafe_api.db.base import as_utc, utcnow
from cafe_api.models.session import LoginFailure, StaffSession
from cafe_api.models.staff import StaffAccount, StaffRole

logger = logging.getLogger("auth")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    expires_in: int
    token_type: str = "bearer"


@dataclass(frozen=True)
class StaffIdentity:
    """Who is calling, resolved fresh from the database."""

    staff_id: int
    email: str
    name: str
    role: StaffRole
    session_id: int


class SessionManager:
    """Issues, validates, refreshes and revokes staff sessions."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        ip_address: str = "unknown",
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        now = self.clock()
        email = (email or "").strip().lower()

        self._check_failure_budget(ip_address, now)

        staff = self.db.query(StaffAccount).filter(StaffAccount.email == email).first()
        if staff is None:
            self._record_failure(ip_address, email, now)
            logger.warning(f"Failed login attempt for unknown email: {email} from IP: {ip_address}")
            raise InvalidCredentials()

        if staff.is_locked(now):
            self._record_failure(ip_address, email, now)
            logger.warning(f"Login attempt for locked account: {email} (ID: {staff.id}) from IP: {ip_address}")
            raise AccountLocked()

        if not verify_password(password, staff.password_hash):
            self._register_bad_password(staff, now)
            self._record_failure(ip_address, email, now)
            logger.warning(
                f"Failed login attempt for email: {email} from IP: {ip_address} "
                f"(consecutive failures: {staff.failed_login_attempts})"
            )
            raise InvalidCredentials()

        if not staff.is_active:
            self._record_failure(ip_address, email, now)
            logger.warning(f"Login attempt for inactive account: {email} (ID: {staff.id}) from IP: {ip_address}")
            raise AccountInactive()

        if settings.require_verified_email and not staff.is_email_verified:
            logger.info(f"Login refused for unverified email: {email} (ID: {staff.id})")
            raise EmailUnverified()

        staff.failed_login_attempts = 0
        staff.locked_until = None
        staff.last_login_at = now

        refresh_token = generate_refresh_token()
        session = StaffSession(
            staff_id=staff.id,
            refresh_token_hash=hash_token(refresh_token),
            issued_at=now,
            expires_at=now + refresh_token_ttl(),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)

        logger.info(
            f"Successful login: {staff.email} (ID: {staff.id}, role: {staff.role.value}, "
            f"session: {session.id}) from IP: {ip_address}"
        )
        return TokenPair(
            access_token=create_access_token(staff.id, staff.role.value, session.id, now=now),
            refresh_token=refresh_token,
            expires_in=int(access_token_ttl().total_seconds()),
        )

    def _check_failure_budget(self, ip_address: str, now: datetime) -> None:
        window_start = now - timedelta(minutes=settings.login_failure_window_minutes)
        count, oldest = (
            self.db.query(func.count(LoginFailure.id), func.min(LoginFailure.created_at))
            .filter(
                LoginFailure.ip_address == ip_address,
                LoginFailure.created_at > window_start,
            )
            .one()
        )
        if count >= settings.login_max_failures:
            retry_after = as_utc(oldest) + timedelta(minutes=settings.login_failure_window_minutes) - now
            logger.warning(f"Login budget exhausted for IP: {ip_address} ({count} failures)")
            raise TooManyLoginAttempts(retry_after_seconds=max(1, int(retry_after.total_seconds())))

    def _record_failure(self, ip_address: str, email: str, now: datetime) -> None:
        self.db.add(LoginFailure(ip_address=ip_address, email=email or None, created_at=now))
        # Entries older than the window no longer count
        window_start = now - timedelta(minutes=settings.login_failure_window_minutes)
        self.db.query(LoginFailure).filter(
            LoginFailure.ip_address == ip_address,
            LoginFailure.created_at <= window_start,
        ).delete(synchronize_session=False)
        self.db.commit()

    def _register_bad_password(self, staff: StaffAccount, now: datetime) -> None:
        staff.failed_login_attempts = (staff.failed_login_attempts or 0) + 1
        if staff.failed_login_attempts >= settings.account_lock_threshold:
            staff.locked_until = now + timedelta(minutes=settings.account_lock_minutes)
            staff.failed_login_attempts = 0
            logger.warning(f"Account locked: {staff.email} (ID: {staff.id}) until {staff.locked_until.isoformat()}")

    # ------------------------------------------------------------------
    # Access token validation
    # ------------------------------------------------------------------

    def authenticate(self, access_token: Optional[str]) -> StaffIdentity:
        """Resolve an access token to the calling staff member."""
        if not access_token:
            raise TokenMissing()

        payload = decode_access_token(access_token)
        try:
            staff_id = int(payload["sub"])
            session_id = int(payload["sid"])
        except (KeyError, TypeError, ValueError):
            raise TokenInvalid("Invalid token payload")

        session = self.db.get(StaffSession, session_id)
        if session is None or session.staff_id != staff_id or session.is_revoked:
            raise TokenInvalid("Session has ended")

        staff = self.db.get(StaffAccount, staff_id)
        if staff is None:
            raise StaffNotFound()
        if not staff.is_active:
            raise AccountInactive()

        return StaffIdentity(
            staff_id=staff.id,
            email=staff.email,
            name=staff.name,
            role=staff.role,
            session_id=session.id,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: Optional[str]) -> AccessToken:
        """Issue a new access token for a live session.

        The refresh token itself is not rotated.
        """
        if not refresh_token:
            raise RefreshInvalid()

        now = self.clock()
        session = (
            self.db.query(StaffSession)
            .filter(StaffSession.refresh_token_hash == hash_token(refresh_token))
            .first()
        )
        if session is None or session.is_revoked:
            raise RefreshInvalid()
        if session.is_expired(now):
            raise RefreshExpired()

        staff = self.db.get(StaffAccount, session.staff_id)
        if staff is None or not staff.is_active:
            session.revoked_at = now
            self.db.commit()
            logger.warning(f"Refresh refused for missing or inactive staff (session: {session.id})")
            raise RefreshInvalid()

        session.last_refreshed_at = now
        self.db.commit()

        logger.debug(f"Access token refreshed for staff ID: {staff.id} (session: {session.id})")
        return AccessToken(
            access_token=create_access_token(staff.id, staff.role.value, session.id, now=now),
            expires_in=int(access_token_ttl().total_seconds()),
        )

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def logout(self, identity: StaffIdentity) -> None:
        """End the caller's session. Safe to call twice."""
        now = self.clock()
        self.db.execute(
            update(StaffSession)
            .where(StaffSession.id == identity.session_id, StaffSession.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        self.db.commit()
        logger.info(f"Staff logged out: {identity.email} (ID: {identity.staff_id}, session: {identity.session_id})")

    def revoke_all(self, staff_id: int) -> int:
        """Revoke every live session of a staff member. Returns how many ended."""
        result = self.db.execute(
            update(StaffSession)
            .where(StaffSession.staff_id == staff_id, StaffSession.revoked_at.is_(None))
            .values(revoked_at=self.clock())
        )
        self.db.commit()
        return result.rowcount or 0

    def deactivate_staff(self, staff_id: int) -> Optional[StaffAccount]:
        """Deactivate an account and end all its sessions. None if no such staff."""
        staff = self.db.get(StaffAccount, staff_id)
        if staff is None:
            return None
        staff.is_active = False
        self.db.commit()
        revoked = self.revoke_all(staff_id)
        logger.info(f"Staff deactivated: {staff.email} (ID: {staff.id}), {revoked} session(s) revoked")
        return staff

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self) -> Dict[str, int]:
        """Drop login failures outside the window and sessions past their refresh expiry."""
        now = self.clock()
        window_start = now - timedelta(minutes=settings.login_failure_window_minutes)
        failures = (
            self.db.query(LoginFailure)
            .filter(LoginFailure.created_at <= window_start)
            .delete(synchronize_session=False)
        )
        sessions = (
            self.db.query(StaffSession)
            .filter(StaffSession.expires_at <= now)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return {"login_failures": failures, "sessions": sessions}
