"""
Tests for the aiohttp transport against a local aiohttp server.
"""

import base64
import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from authproxy import AuthProxyClient, Config
from authproxy.errors import TransportError, UnauthenticatedError
from authproxy.network.transport import AiohttpTransport

CHALLENGE = b"server-challenge"
SID = "srv-1"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _envelope(result=None, error=None) -> web.Response:
    return web.json_response({"result": result, "error": error})


def _has_session(request: web.Request) -> bool:
    return request.cookies.get("sid") == SID


def make_app() -> web.Application:
    """A minimal AuthProxy server that checks signatures and sessions."""
    app = web.Application()
    app["logins"] = []

    async def login_options(request):
        return _envelope({"challenge": _b64url(CHALLENGE), "challenge_id": 7})

    async def login(request):
        body = await request.json()
        app["logins"].append({"body": body, "headers": dict(request.headers)})
        try:
            public_key = Ed25519PublicKey.from_public_bytes(_b64url_decode(body["public_key"]))
            public_key.verify(_b64url_decode(body["signature"]), CHALLENGE)
        except (InvalidSignature, ValueError, KeyError):
            return _envelope("Failure")
        response = _envelope("Success")
        response.set_cookie("sid", SID, httponly=True)
        return response

    async def get_info(request):
        if not _has_session(request):
            return web.Response(status=401)
        return _envelope({"name": "test-server", "version": "2.1"})

    async def subscribe(request):
        if not _has_session(request):
            return web.Response(status=401)
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        await response.write(b'data: {"event": "hello"}\n\n')
        await response.write(b": keep-alive\n\n")
        await response.write(b"data: bye\n\n")
        await response.write_eof()
        return response

    async def broken(request):
        return web.Response(status=503, reason="Service Unavailable")

    app.router.add_get("/auth/v1/login_options", login_options)
    app.router.add_post("/auth/v1/login", login)
    app.router.add_get("/auth/v1/get_info", get_info)
    app.router.add_get("/auth/v1/Subscribe", subscribe)
    app.router.add_get("/auth/v1/broken", broken)
    return app


@pytest_asyncio.fixture
async def server():
    async with TestServer(make_app()) as test_server:
        yield test_server


def _base_url(server: TestServer) -> str:
    return str(server.make_url("/"))


class TestAiohttpTransport:
    """Tests for raw requests and streams."""

    @pytest.mark.asyncio
    async def test_request_reads_response(self, server):
        transport = AiohttpTransport(_base_url(server))
        try:
            response = await transport.request("auth/v1/login_options")
        finally:
            await transport.close()

        assert response.ok
        assert response.headers["content-type"].startswith("application/json")
        assert json.loads(response.body)["result"]["challenge_id"] == 7

    @pytest.mark.asyncio
    async def test_post_json_body(self, server):
        transport = AiohttpTransport(_base_url(server))
        try:
            response = await transport.request(
                "auth/v1/login",
                "POST",
                headers={"device_guid": "dev-1", "X-Dropped": None},
                body={"public_key": "AA", "signature": "AA"},
            )
        finally:
            await transport.close()

        assert json.loads(response.body)["result"] == "Failure"
        login = server.app["logins"][0]
        assert login["body"] == {"public_key": "AA", "signature": "AA"}
        assert login["headers"]["device_guid"] == "dev-1"
        assert "X-Dropped" not in login["headers"]

    @pytest.mark.asyncio
    async def test_non_2xx_is_returned(self, server):
        transport = AiohttpTransport(_base_url(server))
        try:
            response = await transport.request("auth/v1/broken")
        finally:
            await transport.close()

        assert response.status == 503
        assert not response.ok

    @pytest.mark.asyncio
    async def test_connection_error(self):
        transport = AiohttpTransport("http://127.0.0.1:1/", timeout=2.0)
        try:
            with pytest.raises(TransportError):
                await transport.request("auth/v1/login_options")
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_stream_yields_event_data(self, server):
        transport = AiohttpTransport(_base_url(server))
        try:
            events = [
                data async for data in transport.stream(
                    "auth/v1/Subscribe", headers={"Cookie": f"sid={SID}"}
                )
            ]
        finally:
            await transport.close()

        assert events == ['{"event": "hello"}', "bye"]

    @pytest.mark.asyncio
    async def test_stream_rejected(self, server):
        transport = AiohttpTransport(_base_url(server))
        try:
            with pytest.raises(UnauthenticatedError):
                async for _ in transport.stream("auth/v1/Subscribe"):
                    pass
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_stream_bad_status(self, server):
        transport = AiohttpTransport(_base_url(server))
        try:
            with pytest.raises(TransportError) as exc_info:
                async for _ in transport.stream("auth/v1/broken"):
                    pass
        finally:
            await transport.close()

        assert exc_info.value.code == 503


class TestClientAgainstServer:
    """End-to-end sign-in and session use over HTTP."""

    @pytest.mark.asyncio
    async def test_sign_in_and_call(self, server, tmp_path):
        config = Config(base_url=_base_url(server), config_path=tmp_path / "authProxyConfig.json")

        async with AuthProxyClient("my secret key", config=config) as client:
            assert await client.connect()
            assert client.get_session_id() == SID

            info = await client.get_info()

        assert info.ok
        assert info.result.name == "test-server"
        headers = server.app["logins"][0]["headers"]
        assert headers["resolution"] == "console"
        assert headers["device_guid"] == client.device_id
        assert headers["User-Agent"].startswith("AuthProxy SDK v.")

    @pytest.mark.asyncio
    async def test_messages_over_http(self, server, tmp_path):
        config = Config(base_url=_base_url(server), config_path=tmp_path / "authProxyConfig.json")

        async with AuthProxyClient("my secret key", config=config) as client:
            assert await client.connect()
            assert await client.subscribe()
            messages = [m async for m in client.messages()]

        assert messages == [{"event": "hello"}, "bye"]

    @pytest.mark.asyncio
    async def test_unauthenticated_call(self, server, tmp_path):
        config = Config(base_url=_base_url(server), config_path=tmp_path / "authProxyConfig.json")

        async with AuthProxyClient(config=config) as client:
            info = await client.get_info()

        assert not info.ok
        assert info.error.code == 401
