"""Staff-side API client with silent token refresh.

Access tokens are short-lived. When a request comes back 401 the client
refreshes the access token once and retries the request once. If the refresh
fails, the session is torn down (tokens cleared, ``on_session_end`` called)
and ``SessionExpiredError`` is raised so the UI can return to the login
screen. Concurrent 401s share a single in-flight refresh.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from cafe_api.client.http import DEFAULT_TIMEOUT, ApiError, json_or_raise
from cafe_api.client.token_store import StoredTokens, TokenStore

logger = logging.getLogger(__name__)


class SessionExpiredError(Exception):
    """The staff session can no longer be refreshed; log in again."""


class SessionContext:
    """The current staff session on this device."""

    def __init__(
        self,
        store: TokenStore,
        on_session_end: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.store = store
        self.on_session_end = on_session_end

    @property
    def access_token(self) -> Optional[str]:
        tokens = self.store.load()
        return tokens.access_token if tokens else None

    @property
    def refresh_token(self) -> Optional[str]:
        tokens = self.store.load()
        return tokens.refresh_token if tokens else None

    @property
    def is_authenticated(self) -> bool:
        return self.store.load() is not None

    def establish(self, access_token: str, refresh_token: str) -> None:
        self.store.save(StoredTokens(access_token=access_token, refresh_token=refresh_token))

    def update_access_token(self, access_token: str) -> None:
        tokens = self.store.load()
        if tokens is None:
            raise SessionExpiredError("No session to refresh")
        self.store.save(StoredTokens(access_token=access_token, refresh_token=tokens.refresh_token))

    def end(self) -> None:
        """Forget the tokens and notify the owner. Does nothing without a session."""
        had_session = self.store.load() is not None
        self.store.clear()
        if had_session and self.on_session_end is not None:
            self.on_session_end()


def retry_on_unauthorized(func):
    """Refresh once and retry once when ``func`` returns a 401 response."""

    @functools.wraps(func)
    async def wrapper(self: "StaffApiClient", method: str, url: str, **kwargs) -> httpx.Response:
        sent_with = self.session.access_token
        response = await func(self, method, url, **kwargs)
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return response

        current = self.session.access_token
        if current is None:
            raise SessionExpiredError("Not logged in")
        if current == sent_with:
            await self.refresh_access_token()
        # else another request already refreshed while this one was in flight

        return await func(self, method, url, **kwargs)

    return wrapper


class StaffApiClient:
    """Authenticated client for the staff endpoints."""

    def __init__(
        self,
        base_url: str,
        session: SessionContext,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.session = session
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._refresh_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "StaffApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._client.post("/auth/login", json={"email": email, "password": password})
        data = json_or_raise(response)
        self.session.establish(data["access_token"], data["refresh_token"])
        logger.info(f"Logged in as {email}")
        return data

    async def logout(self) -> None:
        """Revoke the session server-side (best effort) and forget it locally."""
        try:
            if self.session.access_token:
                await self._client.post("/auth/logout", headers=self._auth_headers())
        except httpx.HTTPError as e:
            logger.warning(f"Logout request failed, clearing local session anyway: {e}")
        finally:
            self.session.end()

    async def refresh_access_token(self) -> str:
        """Get a new access token, joining any refresh already in flight."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> str:
        refresh_token = self.session.refresh_token
        if not refresh_token:
            self.session.end()
            raise SessionExpiredError("No refresh token")
        try:
            response = await self._client.post("/auth/refresh", json={"refresh_token": refresh_token})
            data = json_or_raise(response)
        except (ApiError, httpx.HTTPError) as e:
            logger.info(f"Token refresh failed, ending session: {e}")
            self.session.end()
            raise SessionExpiredError("Session expired, please log in again") from e
        self.session.update_access_token(data["access_token"])
        logger.debug("Access token refreshed")
        return data["access_token"]

    def _auth_headers(self) -> Dict[str, str]:
        token = self.session.access_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    @retry_on_unauthorized
    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers.update(self._auth_headers())
        return await self._client.request(method, url, headers=headers, **kwargs)

    async def _call(self, method: str, url: str, **kwargs) -> Any:
        return json_or_raise(await self.request(method, url, **kwargs))

    async def me(self) -> Dict[str, Any]:
        return await self._call("GET", "/auth/me")

    async def list_orders(self, **params) -> Dict[str, Any]:
        return await self._call("GET", "/orders", params={k: v for k, v in params.items() if v is not None})

    async def todays_orders(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else None
        return (await self._call("GET", "/orders/today", params=params))["items"]

    async def pending_queue(self) -> List[Dict[str, Any]]:
        return (await self._call("GET", "/orders/pending"))["items"]

    async def completed_unpaid(self) -> List[Dict[str, Any]]:
        return (await self._call("GET", "/orders/completed"))["items"]

    async def history(self, day: Optional[str] = None) -> Dict[str, Any]:
        return await self._call("GET", "/orders/history", params={"date": day} if day else None)

    async def todays_stats(self) -> Dict[str, Any]:
        return await self._call("GET", "/orders/stats")

    async def get_order(self, order_id: int) -> Dict[str, Any]:
        return await self._call("GET", f"/orders/{order_id}")

    async def transition(
        self,
        order_id: int,
        event: str,
        expected_status: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"event": event}
        if expected_status is not None:
            body["expected_status"] = expected_status
        if reason is not None:
            body["reason"] = reason
        return await self._call("POST", f"/orders/{order_id}/transition", json=body)

    async def start_preparing(self, order_id: int, expected_status: Optional[str] = None) -> Dict[str, Any]:
        return await self.transition(order_id, "start_preparing", expected_status)

    async def mark_complete(self, order_id: int, expected_status: Optional[str] = None) -> Dict[str, Any]:
        return await self.transition(order_id, "mark_complete", expected_status)

    async def mark_paid(self, order_id: int, expected_status: Optional[str] = None) -> Dict[str, Any]:
        return await self.transition(order_id, "mark_paid", expected_status)

    async def cancel(
        self,
        order_id: int,
        reason: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.transition(order_id, "cancel", expected_status, reason)
