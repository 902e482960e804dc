import asyncio
import errno
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from apps.app_server import HTTPAppServer
from apps.app_server.ports import PortBinder
from apps.app_server.registration import CoreNotRunningError, CoreRegistrationClient
from apps.sample_app import create_app
from apps.voice_app import AppBase, FunctionIntent, HTTPError
from apps.voice_app.datatypes import EnumDataType
from lib.config.app_server_loader import AppServerConfig


class TestApp(AppBase):
    __test__ = False

    def __init__(self):
        self.calls = []
        color = EnumDataType("color", ["red", "blue"])
        super().__init__(
            "test",
            [
                FunctionIntent("done", self.done, ["do it"], {"color": color}),
                FunctionIntent("missing", self.missing, ["find it"]),
                FunctionIntent("broken", self.broken, ["break it"]),
                FunctionIntent("slow", self.slow, ["wait"]),
                FunctionIntent("lang", self.lang, ["which language"]),
            ],
            languages=["en", "de"],
        )

    def done(self, args, context):
        self.calls.append(("done", args))
        return "Done"

    def missing(self, args, context):
        raise HTTPError(404, "Not found", code="not_found")

    def broken(self, args, context):
        raise ValueError("bad value")

    async def slow(self, args, context):
        await asyncio.sleep(5)
        return "too late"

    async def lang(self, args, context):
        await asyncio.sleep(float(args.get("delay", 0)))
        return context.lang


def start_server(apps, core_calls, **cfg):
    def handler(request):
        core_calls.append(json.loads(request.content))
        return httpx.Response(200, json={})

    config = AppServerConfig(intent_timeout_s=cfg.pop("intent_timeout_s", 5.0), **cfg)
    server = HTTPAppServer(
        apps,
        config,
        binder=PortBinder(host="127.0.0.1"),
        registration=CoreRegistrationClient(config.core_url, transport=httpx.MockTransport(handler)),
    )
    asyncio.run(server.start())
    return server


@pytest.fixture
def app():
    return TestApp()


@pytest.fixture
def core_calls():
    return []


@pytest.fixture
def server(app, core_calls):
    srv = start_server([app], core_calls, intent_timeout_s=0.2)
    yield srv
    srv.close()


@pytest.fixture
def client(server):
    return TestClient(server.fastapi_app)


def auth(server):
    return {"X-AuthToken": server.auth_key}


def test_registers_every_app_with_the_live_key(server, core_calls):
    assert [c["appID"] for c in core_calls] == ["test"]
    assert core_calls[0]["authKey"] == server.auth_key
    assert core_calls[0]["url"] == f"http://localhost:{server.port}/"
    assert server.url == core_calls[0]["url"]


def test_successful_call(client, server, app):
    resp = client.post("/test/done", json={"args": {"color": "red"}}, headers=auth(server))
    assert resp.status_code == 200
    assert resp.json() == {"responseText": "Done"}
    assert app.calls == [("done", {"color": "red"})]


def test_token_in_query_parameter(client, server):
    resp = client.post(f"/test/done?auth={server.auth_key}", json={"args": {}})
    assert resp.status_code == 200


@pytest.mark.parametrize("headers", [{}, {"X-AuthToken": "wrong"}, {"X-AuthToken": ""}])
def test_rejects_missing_or_wrong_token(client, app, headers):
    resp = client.post("/test/done", json={"args": {}}, headers=headers)
    assert resp.status_code == 401
    assert resp.content == b""
    assert app.calls == []


def test_body_not_parsed_before_authentication(client):
    resp = client.post("/test/done", content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 401


def test_malformed_body_is_a_client_error(client, server, app):
    headers = {**auth(server), "Content-Type": "application/json"}
    resp = client.post("/test/done", content=b"{not json", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["errorCode"] == "bad_request"

    resp = client.post("/test/done", json={"args": ["red"]}, headers=auth(server))
    assert resp.status_code == 400
    assert app.calls == []


def test_empty_body_means_no_args(client, server, app):
    resp = client.post("/test/done", headers=auth(server))
    assert resp.status_code == 200
    assert app.calls == [("done", {})]


def test_declared_error_code_becomes_status(client, server):
    resp = client.post("/test/missing", json={"args": {}}, headers=auth(server))
    assert resp.status_code == 404
    assert resp.json() == {"errorMessage": "Not found", "errorCode": "not_found"}


def test_undeclared_error_defaults_to_400(client, server):
    resp = client.post("/test/broken", json={"args": {}}, headers=auth(server))
    assert resp.status_code == 400
    assert resp.json() == {"errorMessage": "bad value"}


def test_intent_timeout_is_reported(client, server):
    resp = client.post("/test/slow", json={"args": {}}, headers=auth(server))
    assert resp.status_code == 504
    assert resp.json()["errorCode"] == "timeout"


def test_only_post_routes_for_known_intents(client, server):
    assert client.get("/test/done", headers=auth(server)).status_code == 405
    assert client.post("/test/unknown", json={}, headers=auth(server)).status_code == 404


@pytest.mark.parametrize(
    "accept, expected",
    [(None, "en"), ("de-DE,de;q=0.9", "de"), ("fr", "en")],
)
def test_language_negotiation(client, server, accept, expected):
    headers = auth(server)
    if accept:
        headers["Accept-Language"] = accept
    resp = client.post("/test/lang", json={"args": {}}, headers=headers)
    assert resp.json() == {"responseText": expected}


def test_concurrent_calls_keep_their_own_language(server):
    async def scenario():
        transport = httpx.ASGITransport(app=server.fastapi_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            slow_de = ac.post(
                "/test/lang",
                json={"args": {"delay": 0.1}},
                headers={**auth(server), "Accept-Language": "de"},
            )
            fast_en = ac.post(
                "/test/lang",
                json={"args": {"delay": 0}},
                headers={**auth(server), "Accept-Language": "en"},
            )
            return await asyncio.gather(slow_de, fast_en)

    de, en = asyncio.run(scenario())
    assert de.json() == {"responseText": "de"}
    assert en.json() == {"responseText": "en"}


def test_unreachable_core_aborts_start():
    def handler(request):
        refused = ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request) from refused

    config = AppServerConfig(core_url="http://localhost:12777")
    server = HTTPAppServer(
        [TestApp()],
        config,
        binder=PortBinder(host="127.0.0.1"),
        registration=CoreRegistrationClient(config.core_url, transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(CoreNotRunningError, match="localhost:12777"):
        asyncio.run(server.start())
    assert server._socket is None


def test_needs_at_least_one_app():
    with pytest.raises(ValueError):
        HTTPAppServer([])


def test_sample_app_end_to_end(core_calls):
    server = start_server([create_app()], core_calls)
    try:
        client = TestClient(server.fastapi_app)
        types = core_calls[0]["intents"]["interactionModel"]["languageModel"]["types"]
        assert {t["name"] for t in types} == {"room", "state", "color"}

        resp = client.post(
            "/lights/switch",
            json={"args": {"room": "kitchen", "state": "on"}},
            headers={**auth(server), "Accept-Language": "en"},
        )
        assert resp.json() == {"responseText": "Turned the kitchen light on."}

        resp = client.post("/lights/color", json={"args": {"room": "garage", "color": "red"}}, headers=auth(server))
        assert resp.status_code == 404
        assert resp.json()["errorCode"] == "unknown_room"
    finally:
        server.close()


async def _wait_until(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def test_serves_calls_on_the_bound_port(core_calls):
    def handler(request):
        core_calls.append(json.loads(request.content))
        return httpx.Response(200, json={})

    config = AppServerConfig(core_url="http://localhost:12777", log_level="WARNING")
    server = HTTPAppServer(
        [TestApp()],
        config,
        binder=PortBinder(host="127.0.0.1"),
        registration=CoreRegistrationClient(config.core_url, transport=httpx.MockTransport(handler)),
    )

    async def scenario():
        await server.start()
        serving = asyncio.create_task(server.serve())
        try:
            await _wait_until(lambda: server.serving)
            async with httpx.AsyncClient(timeout=5.0) as ac:
                resp = await ac.post(
                    f"http://127.0.0.1:{server.port}/test/done",
                    json={"args": {"color": "blue"}},
                    headers=auth(server),
                )
                unauthorized = await ac.post(f"http://127.0.0.1:{server.port}/test/done", json={"args": {}})
        finally:
            server.shutdown()
            await serving
        return resp, unauthorized

    resp, unauthorized = asyncio.run(scenario())
    assert resp.status_code == 200
    assert resp.json() == {"responseText": "Done"}
    assert unauthorized.status_code == 401
    assert [c["appID"] for c in core_calls] == ["test"]
    assert server._socket is None


def test_no_call_is_answered_before_registration_completes():
    app = TestApp()
    config = AppServerConfig(core_url="http://localhost:12777", log_level="WARNING")

    async def scenario():
        entered = asyncio.Event()
        release = asyncio.Event()

        async def handler(request):
            entered.set()
            await release.wait()
            return httpx.Response(200, json={})

        server = HTTPAppServer(
            [app],
            config,
            binder=PortBinder(host="127.0.0.1"),
            registration=CoreRegistrationClient(config.core_url, transport=httpx.MockTransport(handler)),
        )
        running = asyncio.create_task(server.run())
        try:
            await asyncio.wait_for(entered.wait(), 5.0)
            async with httpx.AsyncClient(timeout=10.0) as ac:
                early = asyncio.create_task(
                    ac.post(
                        f"http://127.0.0.1:{server.port}/test/done",
                        json={"args": {}},
                        headers=auth(server),
                    )
                )
                await asyncio.sleep(0.3)
                answered_early = early.done()
                calls_before_release = list(app.calls)
                release.set()
                resp = await early
        finally:
            release.set()
            await _wait_until(lambda: server.serving or running.done())
            server.shutdown()
            await running
        return answered_early, calls_before_release, resp

    answered_early, calls_before_release, resp = asyncio.run(scenario())
    assert answered_early is False
    assert calls_before_release == []
    assert resp.status_code == 200
    assert resp.json() == {"responseText": "Done"}
