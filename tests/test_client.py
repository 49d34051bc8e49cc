"""
Unit tests for the chatlink client.

Uses respx to mock HTTP requests to the API, so no actual server is
required. The push socket is the in-memory fake from conftest.
"""

from __future__ import annotations

import asyncio
import json

import pytest
import httpx
import respx

from chatlink import Client, ClientConfig, ConnectionState, EventType
from chatlink.client import LOGIN_FAILED
from chatlink.http import HttpGateway, merge_defaults
from chatlink.types import Session


API_URL = "http://chat.test:5500/api"


# ============================================================
#  HTTP Gateway
# ============================================================


@pytest.mark.asyncio
async def test_http_gateway_get() -> None:
    """Gateway sends GET with the session token header."""
    with respx.mock:
        route = respx.get(f"{API_URL}/users/U1").mock(
            return_value=httpx.Response(200, json={"id": "U1", "username": "alice"})
        )
        gateway = HttpGateway(API_URL, Session(token="T"))
        data = await gateway.request("GET", "/users/U1")
        await gateway.close()

        assert route.called
        assert route.calls.last.request.headers["x-auth-token"] == "T"
        assert data["username"] == "alice"


@pytest.mark.asyncio
async def test_http_gateway_post_without_token() -> None:
    """Gateway sends an empty token header before login."""
    with respx.mock:
        route = respx.post(f"{API_URL}/users/lookup").mock(return_value=httpx.Response(200, json=[]))
        gateway = HttpGateway(API_URL)
        data = await gateway.request("POST", "/users/lookup", {"username": "bob"})
        await gateway.close()

        request = route.calls.last.request
        assert request.headers["x-auth-token"] == ""
        assert json.loads(request.content) == {"username": "bob"}
        assert data == []


@pytest.mark.asyncio
async def test_http_gateway_options_override_defaults() -> None:
    with respx.mock:
        route = respx.get(url__startswith=f"{API_URL}/users/U1").mock(
            return_value=httpx.Response(200, json={"id": "U1"})
        )
        gateway = HttpGateway(API_URL, Session(token="T"))
        await gateway.request(
            "GET",
            "/users/U1",
            options={"headers": {"x-trace": "abc"}, "params": {"full": "1"}},
        )
        await gateway.close()

        request = route.calls.last.request
        assert request.headers["x-trace"] == "abc"
        assert request.headers["x-auth-token"] == "T"
        assert request.url.params["full"] == "1"


@pytest.mark.asyncio
async def test_http_gateway_error_status_raises() -> None:
    """Non-2xx responses raise with the server's reason but not the body."""
    with respx.mock:
        respx.get(f"{API_URL}/users/nope").mock(
            return_value=httpx.Response(404, json={"error": "Unknown user", "secret": "s3cr3t"})
        )
        gateway = HttpGateway(API_URL)
        with pytest.raises(httpx.HTTPStatusError) as excinfo:
            await gateway.request("GET", "/users/nope")
        await gateway.close()

        assert "404" in str(excinfo.value)
        assert "Unknown user" in str(excinfo.value)
        assert "s3cr3t" not in str(excinfo.value)


@pytest.mark.asyncio
async def test_http_gateway_no_content() -> None:
    with respx.mock:
        respx.post(f"{API_URL}/account/logout").mock(return_value=httpx.Response(204))
        gateway = HttpGateway(API_URL)
        assert await gateway.request("POST", "/account/logout") == {}
        await gateway.close()


def test_merge_defaults_explicit_values_win() -> None:
    defaults = {"method": "GET", "url": "/a", "headers": {"x-auth-token": "T", "accept": "json"}}
    options = {"url": "/b", "headers": {"accept": "text"}, "timeout": 5}

    merged = merge_defaults(options, defaults)

    assert merged == {
        "method": "GET",
        "url": "/b",
        "headers": {"accept": "text", "x-auth-token": "T"},
        "timeout": 5,
    }
    assert options["headers"] == {"accept": "text"}


# ============================================================
#  Login
# ============================================================


@pytest.mark.asyncio
async def test_login_connects_and_authenticates(make_client, sockets, wait_until) -> None:
    """Successful login stores the session, fetches our profile and opens the socket."""
    with respx.mock:
        login_route = respx.post(f"{API_URL}/account/login").mock(
            return_value=httpx.Response(200, json={"success": True, "access_token": "T", "id": "U1"})
        )
        profile_route = respx.get(f"{API_URL}/users/U1").mock(
            return_value=httpx.Response(200, json={"id": "U1", "username": "me"})
        )
        client, recorder = make_client()

        await client.login("a@b.com", "pw")

        assert login_route.calls.last.request.headers["x-auth-token"] == ""
        assert profile_route.calls.last.request.headers["x-auth-token"] == "T"
        assert client.token == "T"
        assert client.user_id == "U1"
        assert client.user is client.users["U1"]
        assert client.user.username == "me"
        assert sockets.last.sent == [{"type": "authenticate", "token": "T"}]

        sockets.last.push({"type": "authenticate", "success": True})
        await wait_until(lambda: "ready" in recorder.kinds())

        assert recorder.kinds() == ["connected", "ready"]
        assert client.state is ConnectionState.AUTHENTICATED

        await client.close()


@pytest.mark.asyncio
async def test_login_rejected_emits_reason(make_client, sockets) -> None:
    with respx.mock:
        respx.post(f"{API_URL}/account/login").mock(
            return_value=httpx.Response(200, json={"success": False, "error": "bad credentials"})
        )
        client, recorder = make_client()

        await client.login("a@b.com", "wrong")

        assert [e.error for e in recorder.of("error")] == ["bad credentials"]
        assert sockets.urls == []
        assert client.token is None

        await client.close()


@pytest.mark.asyncio
async def test_login_rejected_without_reason(make_client, sockets) -> None:
    with respx.mock:
        respx.post(f"{API_URL}/account/login").mock(
            return_value=httpx.Response(200, json={"success": False})
        )
        client, recorder = make_client()

        await client.login("a@b.com", "wrong")

        assert recorder.of("error")[0].error == LOGIN_FAILED
        assert sockets.urls == []

        await client.close()


@pytest.mark.asyncio
async def test_login_transport_failure_emits_error(make_client, sockets) -> None:
    with respx.mock:
        respx.post(f"{API_URL}/account/login").mock(side_effect=httpx.ConnectError("refused"))
        client, recorder = make_client()

        await client.login("a@b.com", "pw")

        assert isinstance(recorder.of("error")[0].error, httpx.ConnectError)
        assert sockets.urls == []

        await client.close()


@pytest.mark.asyncio
async def test_login_profile_failure_does_not_connect(make_client, sockets) -> None:
    with respx.mock:
        respx.post(f"{API_URL}/account/login").mock(
            return_value=httpx.Response(200, json={"success": True, "access_token": "T", "id": "U1"})
        )
        respx.get(f"{API_URL}/users/U1").mock(return_value=httpx.Response(500, json={"error": "boom"}))
        client, recorder = make_client()

        await client.login("a@b.com", "pw")

        assert isinstance(recorder.of("error")[0].error, httpx.HTTPStatusError)
        assert sockets.urls == []

        await client.close()


@pytest.mark.asyncio
async def test_logout_resets_session(make_client, sockets, wait_until) -> None:
    with respx.mock:
        respx.post(f"{API_URL}/account/login").mock(
            return_value=httpx.Response(200, json={"success": True, "access_token": "T", "id": "U1"})
        )
        respx.get(f"{API_URL}/users/U1").mock(return_value=httpx.Response(200, json={"id": "U1"}))
        client, recorder = make_client(auto_reconnect=True)
        await client.login("a@b.com", "pw")

        await client.logout()
        await asyncio.sleep(0.02)

        assert client.token is None
        assert client.user_id is None
        assert client.user is None
        assert client.state is ConnectionState.DISCONNECTED
        assert len(sockets.urls) == 1
        assert "U1" in client.users

        await client.close()


# ============================================================
#  Lookups
# ============================================================


@pytest.mark.asyncio
async def test_find_user_caches() -> None:
    with respx.mock:
        route = respx.get(f"{API_URL}/users/U2").mock(
            return_value=httpx.Response(200, json={"id": "U2", "username": "bob"})
        )
        client = Client(ClientConfig(host="chat.test"))

        first = await client.find_user("U2")
        second = await client.find_user("U2")

        assert first is second
        assert route.call_count == 1

        await client.close()


@pytest.mark.asyncio
async def test_find_channel_not_found_propagates() -> None:
    with respx.mock:
        respx.get(f"{API_URL}/channels/C9").mock(
            return_value=httpx.Response(404, json={"error": "Unknown channel"})
        )
        client = Client(ClientConfig(host="chat.test"))

        with pytest.raises(httpx.HTTPStatusError):
            await client.find_channel("C9")
        assert "C9" not in client.channels

        await client.close()


@pytest.mark.asyncio
async def test_lookup_returns_users_in_server_order() -> None:
    with respx.mock:
        route = respx.post(f"{API_URL}/users/lookup").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"id": "U3", "username": "carol"},
                    {"id": "U2", "username": "bobby"},
                ],
            )
        )
        respx.get(f"{API_URL}/users/U2").mock(
            return_value=httpx.Response(200, json={"id": "U2", "username": "bob"})
        )
        client = Client(ClientConfig(host="chat.test"))
        cached = await client.find_user("U2")

        users = await client.lookup({"username": "b"})

        assert route.called
        assert [u.id for u in users] == ["U3", "U2"]
        assert users[1] is cached
        assert cached.username == "bobby"

        await client.close()


# ============================================================
#  Events
# ============================================================


@pytest.mark.asyncio
async def test_on_returns_unsubscribe(make_client, sockets, wait_until) -> None:
    client, recorder = make_client()
    seen: list[str] = []

    async def on_connected(event) -> None:
        seen.append(event.kind.value)

    unsubscribe = client.on(EventType.CONNECTED, on_connected)
    client.on("ready", lambda event: seen.append("ready"))

    await client.connect()
    sockets.last.push({"type": "authenticate", "success": True})
    await wait_until(lambda: "ready" in recorder.kinds())
    unsubscribe()

    await client.connect()
    sockets.last.push({"type": "authenticate", "success": True})
    await wait_until(lambda: recorder.kinds().count("connected") == 2)

    assert seen == ["connected", "ready"]

    await client.close()


def test_auto_reconnect_option() -> None:
    client = Client(auto_reconnect=True)
    assert client.auto_reconnect is True
    assert client.config.auto_reconnect is True
    assert Client().auto_reconnect is False
