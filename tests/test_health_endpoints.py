import asyncio

from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from modules.common import runtime as rt


class DummyBot:
    """Minimal bot stub for runtime wiring."""

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready

    def is_ready(self) -> bool:
        return self.ready

    async def wait_until_ready(self) -> None:  # pragma: no cover - defensive stub
        return None

    def get_channel(self, _channel_id):  # pragma: no cover - defensive stub
        return None


class _DummyRunner:
    def __init__(self, app: web.Application) -> None:
        self.app = app

    async def setup(self) -> None:  # pragma: no cover - no side effects in tests
        return None

    async def cleanup(self) -> None:  # pragma: no cover - no side effects in tests
        return None


class _DummySite:
    def __init__(self, runner: _DummyRunner, host: str, port: int) -> None:
        self.runner = runner
        self.host = host
        self.port = port
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False


def _serve(monkeypatch, bot, check):
    async def runner() -> None:
        monkeypatch.setattr(rt.web, "AppRunner", _DummyRunner)
        monkeypatch.setattr(rt.web, "TCPSite", _DummySite)

        runtime = rt.Runtime(bot=bot)
        runtime.register_status("scan", lambda: {"running": False, "next_scan": "29m"})
        await runtime.start_webserver(port=0)
        try:
            app = runtime._web_app
            assert app is not None
            async with TestServer(app) as server:
                async with TestClient(server) as client:
                    await check(client)
        finally:
            await runtime.shutdown_webserver()
            await runtime.close()

    asyncio.run(runner())


def test_health_endpoints_exist_and_return_json(monkeypatch):
    async def check(client) -> None:
        resp = await client.get("/")
        assert resp.status == 200
        assert resp.headers.get("X-Trace-Id")
        data = await resp.json()
        assert data.get("ok") is True
        assert "bot" in data and "env" in data and "version" in data

        resp = await client.get("/ready")
        assert resp.status == 200
        assert (await resp.json())["ok"] is True

        resp = await client.get("/healthz")
        assert resp.status == 200
        payload = await resp.json()
        assert payload["ok"] is True
        assert payload["endpoint"] == "healthz"
        assert payload["connected"] is True
        assert payload["scan"] == {"running": False, "next_scan": "29m"}

    _serve(monkeypatch, DummyBot(), check)


def test_ready_reports_503_until_connected(monkeypatch):
    async def check(client) -> None:
        resp = await client.get("/ready")
        assert resp.status == 503
        assert (await resp.json())["ok"] is False

    _serve(monkeypatch, DummyBot(ready=False), check)


def test_failing_status_provider_marks_unhealthy(monkeypatch):
    def broken():
        raise RuntimeError("boom")

    async def check(client) -> None:
        rt.get_active_runtime().register_status("fallback", broken)
        resp = await client.get("/healthz")
        assert resp.status == 503
        payload = await resp.json()
        assert payload["fallback"] == {"error": True}

    _serve(monkeypatch, DummyBot(), check)
