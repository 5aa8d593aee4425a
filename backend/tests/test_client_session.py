"""Tests for the staff API client's silent refresh and the customer API client."""

import asyncio
import json
import os
import stat

import httpx
import pytest

from cafe_api.client import (
    ApiError,
    CafeApiClient,
    InMemoryTokenStore,
    JsonFileTokenStore,
    SessionContext,
    SessionExpiredError,
    StaffApiClient,
    StoredTokens,
)
from cafe_api.main import app

from conftest import TEST_PASSWORD

BASE_URL = "http://cafe.test/api/v1"


class FakeStaffServer:
    """Just enough of the staff API to exercise token handling."""

    def __init__(self, valid_token="access-1"):
        self.valid_token = valid_token
        self.refresh_ok = True
        self.refresh_calls = 0
        self.logout_calls = 0
        self.seen_tokens = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/auth/login"):
            body = json.loads(request.content)
            if body["password"] != "secret":
                return httpx.Response(401, json={"detail": "Invalid email or password", "error": "invalid_credentials"})
            return httpx.Response(200, json={
                "access_token": self.valid_token, "refresh_token": "refresh-1",
                "token_type": "bearer", "expires_in": 900,
            })
        if path.endswith("/auth/refresh"):
            self.refresh_calls += 1
            await asyncio.sleep(0.01)
            if not self.refresh_ok:
                return httpx.Response(401, json={"detail": "Invalid refresh token", "error": "refresh_invalid"})
            self.valid_token = f"access-{self.refresh_calls + 1}"
            return httpx.Response(200, json={
                "access_token": self.valid_token, "token_type": "bearer", "expires_in": 900,
            })

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        self.seen_tokens.append(token)
        if token != self.valid_token:
            return httpx.Response(401, json={"detail": "Token has expired", "error": "token_expired"})
        if path.endswith("/auth/logout"):
            self.logout_calls += 1
            return httpx.Response(204)
        if path.endswith("/transition"):
            return httpx.Response(409, json={"detail": "Order was modified concurrently", "error": "stale_state"})
        if path.endswith("/orders/pending"):
            return httpx.Response(200, json={"items": [{"id": 1}], "total": 1})
        return httpx.Response(200, json={"path": path})


def make_client(server, tokens=None, on_session_end=None):
    session = SessionContext(InMemoryTokenStore(tokens), on_session_end=on_session_end)
    return StaffApiClient(BASE_URL, session, transport=httpx.MockTransport(server))


# ============== Silent refresh ==============

class TestSilentRefresh:
    @pytest.mark.asyncio
    async def test_valid_token_needs_no_refresh(self):
        server = FakeStaffServer()
        async with make_client(server, StoredTokens("access-1", "refresh-1")) as client:
            assert (await client.me())["path"] == "/api/v1/auth/me"
        assert server.refresh_calls == 0

    @pytest.mark.asyncio
    async def test_expired_token_refreshes_and_retries_once(self):
        server = FakeStaffServer(valid_token="access-fresh")
        async with make_client(server, StoredTokens("access-old", "refresh-1")) as client:
            items = await client.pending_queue()
            assert items == [{"id": 1}]
            assert client.session.access_token == "access-2"
            assert client.session.refresh_token == "refresh-1"
        assert server.refresh_calls == 1
        assert server.seen_tokens == ["access-old", "access-2"]

    @pytest.mark.asyncio
    async def test_refresh_failure_ends_session(self):
        ended = []
        server = FakeStaffServer(valid_token="access-fresh")
        server.refresh_ok = False
        tokens = StoredTokens("access-old", "refresh-1")
        async with make_client(server, tokens, on_session_end=lambda: ended.append(True)) as client:
            with pytest.raises(SessionExpiredError):
                await client.pending_queue()
            assert not client.session.is_authenticated
        assert ended == [True]
        assert server.refresh_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_refresh(self):
        server = FakeStaffServer(valid_token="access-fresh")
        async with make_client(server, StoredTokens("access-old", "refresh-1")) as client:
            results = await asyncio.gather(*(client.me() for _ in range(5)))
        assert server.refresh_calls == 1
        assert len(results) == 5
        assert server.seen_tokens.count("access-2") == 5

    @pytest.mark.asyncio
    async def test_second_401_is_not_retried_again(self):
        server = FakeStaffServer(valid_token="access-fresh")

        async def always_unauthorized(request):
            if request.url.path.endswith("/auth/refresh"):
                return await server(request)
            return httpx.Response(401, json={"detail": "Token is invalid", "error": "token_invalid"})

        session = SessionContext(InMemoryTokenStore(StoredTokens("access-old", "refresh-1")))
        async with StaffApiClient(BASE_URL, session, transport=httpx.MockTransport(always_unauthorized)) as client:
            with pytest.raises(ApiError) as exc:
                await client.me()
        assert exc.value.status_code == 401
        assert server.refresh_calls == 1

    @pytest.mark.asyncio
    async def test_no_session(self):
        server = FakeStaffServer()
        async with make_client(server) as client:
            with pytest.raises(SessionExpiredError):
                await client.me()
        assert server.refresh_calls == 0


# ============== Session lifecycle ==============

class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_login_establishes_session(self):
        async with make_client(FakeStaffServer()) as client:
            await client.login("chef@example.com", "secret")
            assert client.session.access_token == "access-1"
            assert client.session.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_login_failure(self):
        async with make_client(FakeStaffServer()) as client:
            with pytest.raises(ApiError) as exc:
                await client.login("chef@example.com", "wrong")
            assert exc.value.kind == "invalid_credentials"
            assert not client.session.is_authenticated

    @pytest.mark.asyncio
    async def test_logout(self):
        ended = []
        server = FakeStaffServer()
        tokens = StoredTokens("access-1", "refresh-1")
        async with make_client(server, tokens, on_session_end=lambda: ended.append(True)) as client:
            await client.logout()
            assert not client.session.is_authenticated
        assert server.logout_calls == 1
        assert ended == [True]

    @pytest.mark.asyncio
    async def test_logout_survives_network_failure(self):
        def offline(request):
            raise httpx.ConnectError("offline", request=request)

        session = SessionContext(InMemoryTokenStore(StoredTokens("access-1", "refresh-1")))
        async with StaffApiClient(BASE_URL, session, transport=httpx.MockTransport(offline)) as client:
            await client.logout()
        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_stale_state_is_reported(self):
        async with make_client(FakeStaffServer(), StoredTokens("access-1", "refresh-1")) as client:
            with pytest.raises(ApiError) as exc:
                await client.cancel(1, reason="duplicate", expected_status="pending")
        assert exc.value.status_code == 409
        assert exc.value.is_stale_state

    def test_end_without_session_does_not_notify(self):
        ended = []
        session = SessionContext(InMemoryTokenStore(), on_session_end=lambda: ended.append(True))
        session.end()
        assert ended == []

    def test_update_without_session(self):
        with pytest.raises(SessionExpiredError):
            SessionContext(InMemoryTokenStore()).update_access_token("access-2")


# ============== Token stores ==============

class TestJsonFileTokenStore:
    def test_round_trip(self, tmp_path):
        store = JsonFileTokenStore(tmp_path / "session" / "tokens.json")
        assert store.load() is None
        store.save(StoredTokens("a", "r"))
        assert store.load() == StoredTokens("a", "r")
        store.clear()
        assert store.load() is None
        store.clear()

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_file_is_private(self, tmp_path):
        path = tmp_path / "tokens.json"
        JsonFileTokenStore(path).save(StoredTokens("a", "r"))
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    @pytest.mark.parametrize("content", ["not json", "[]", '{"access_token": "a"}'])
    def test_unusable_file(self, tmp_path, content):
        path = tmp_path / "tokens.json"
        path.write_text(content)
        assert JsonFileTokenStore(path).load() is None


# ============== Against the real app ==============

class TestAgainstApp:
    @pytest.mark.asyncio
    async def test_refresh_through_real_endpoints(self, client, chef):
        transport = httpx.ASGITransport(app=app)
        session = SessionContext(InMemoryTokenStore())
        async with StaffApiClient("http://testserver/api/v1", session, transport=transport) as staff:
            await staff.login(chef.email, TEST_PASSWORD)
            refresh_token = session.refresh_token
            session.store.save(StoredTokens("garbage", refresh_token))

            me = await staff.me()
            assert me["email"] == chef.email
            assert session.access_token != "garbage"

            await staff.logout()
            assert not session.is_authenticated


# ============== Customer client ==============

def customer_server(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/venue/public"):
        return httpx.Response(200, json={
            "name": "Test Cafe", "latitude": 0.0, "longitude": 0.0,
            "radius_meters": 50, "address": "", "configured": True,
        })
    if path.endswith("/verify-table/1"):
        return httpx.Response(200, json={"table_number": 1, "valid": True})
    if "/verify-table/" in path:
        return httpx.Response(404, json={"detail": "Table does not exist", "error": "table_not_found"})
    if path.endswith("/orders") and request.method == "POST":
        body = json.loads(request.content)
        if not body["items"]:
            return httpx.Response(422, json={"detail": "Order must contain at least one item", "error": "empty_order"})
        return httpx.Response(201, json={"id": 7, "order_number": "ORD-20260101-0001", "status": "pending"})
    if "/orders/table/" in path:
        return httpx.Response(200, json={"items": [{"id": 7}], "total": 1})
    return httpx.Response(404, json={"detail": "Not Found"})


class TestCafeApiClient:
    @pytest.mark.asyncio
    async def test_venue_geofence(self):
        async with CafeApiClient(BASE_URL, transport=httpx.MockTransport(customer_server)) as api:
            venue = await api.get_venue_geofence()
        assert venue.is_configured
        assert venue.radius_meters == 50

    @pytest.mark.asyncio
    async def test_verify_table(self):
        async with CafeApiClient(BASE_URL, transport=httpx.MockTransport(customer_server)) as api:
            assert await api.verify_table(1) is True
            assert await api.verify_table(99) is False

    @pytest.mark.asyncio
    async def test_place_order_and_lookup(self):
        async with CafeApiClient(BASE_URL, transport=httpx.MockTransport(customer_server)) as api:
            order = await api.place_order(1, "Asha", "9876543210", [{"menu_item_id": 1, "quantity": 1}])
            assert order["order_number"] == "ORD-20260101-0001"
            assert await api.table_orders(1, "9876543210") == [{"id": 7}]

    @pytest.mark.asyncio
    async def test_place_order_error(self):
        async with CafeApiClient(BASE_URL, transport=httpx.MockTransport(customer_server)) as api:
            with pytest.raises(ApiError) as exc:
                await api.place_order(1, "Asha", "9876543210", [])
        assert exc.value.kind == "empty_order"
        assert exc.value.status_code == 422
