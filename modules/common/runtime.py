"""Process runtime: background scheduler, health server and extension loading."""

from __future__ import annotations

import asyncio
import logging
import math
import os
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web

from discord.ext import commands

from config.runtime import get_port
from shared.config import get_bot_name, get_env_name, get_log_channel_id
from shared.logging import get_trace_id, set_trace_id
from shared.sheets import async_adapter as sheets_adapter

log = logging.getLogger("closeout.runtime")
access_log = logging.getLogger("closeout.http")

EXTENSIONS: tuple[str, ...] = (
    "cogs.closure_tickets",
    "cogs.fallback_watch",
)

StatusProvider = Callable[[], Dict[str, Any]]

_ACTIVE_RUNTIME: "Runtime | None" = None


def set_active_runtime(runtime: "Runtime | None") -> None:
    global _ACTIVE_RUNTIME
    _ACTIVE_RUNTIME = runtime


def get_active_runtime() -> "Runtime | None":
    return _ACTIVE_RUNTIME


def _bot_ready(bot: Any) -> bool:
    checker = getattr(bot, "is_ready", None)
    if not callable(checker):
        return False
    try:
        return bool(checker())
    except Exception:  # pragma: no cover - stub bots
        return False


async def create_app(*, runtime: "Runtime | None" = None) -> web.Application:
    """Create the aiohttp application serving ``/``, ``/ready`` and ``/healthz``."""

    @web.middleware
    async def tracing_middleware(
        request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
    ) -> web.StreamResponse:
        trace = set_trace_id()
        started = time.perf_counter()
        status = 500
        try:
            response = await handler(request)
            status = getattr(response, "status", status)
            response.headers["X-Trace-Id"] = trace
            return response
        finally:
            access_log.info(
                "http_request",
                extra={
                    "trace": trace,
                    "path": request.path,
                    "method": request.method,
                    "status": status,
                    "ms": int((time.perf_counter() - started) * 1000),
                },
            )

    app = web.Application(middlewares=[tracing_middleware])

    async def root(_: web.Request) -> web.Response:
        payload = {
            "ok": True,
            "bot": get_bot_name(),
            "env": get_env_name(),
            "version": os.getenv("BOT_VERSION", "dev"),
            "trace": get_trace_id(),
        }
        return web.json_response(payload)

    async def ready(_: web.Request) -> web.Response:
        ok = runtime is not None and _bot_ready(runtime.bot)
        return web.json_response({"ok": ok}, status=200 if ok else 503)

    async def healthz(_: web.Request) -> web.Response:
        if runtime is None:
            payload: dict[str, Any] = {"ok": True, "bot": get_bot_name(), "env": get_env_name()}
            healthy = True
        else:
            payload, healthy = runtime.health_payload()
        payload["endpoint"] = "healthz"
        return web.json_response(payload, status=200 if healthy else 503)

    app.router.add_get("/", root)
    app.router.add_get("/ready", ready)
    app.router.add_get("/healthz", healthz)
    return app


def _trim_message(message: str, *, limit: int = 1800) -> str:
    message = message.strip()
    if len(message) <= limit:
        return message
    return f"{message[: limit - 1]}…"


class _RecurringJob:
    def __init__(
        self,
        scheduler: "Scheduler",
        *,
        interval: timedelta,
        jitter: str | float | None = None,
        tag: str | None = None,
        name: str | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._jitter = jitter
        self.tag = tag
        self.name = name
        self.next_run: datetime | None = None

    def _pick_jitter(self) -> float:
        if self._jitter == "small":
            window = min(60.0, self._interval.total_seconds() * 0.05)
        elif isinstance(self._jitter, (int, float)):
            window = abs(float(self._jitter))
        else:
            return 0.0
        if window <= 0:
            return 0.0
        return random.uniform(-window, window)

    def _compute_next_run(self, reference: datetime | None = None) -> datetime:
        now = reference or datetime.now(timezone.utc)
        interval_seconds = max(1.0, self._interval.total_seconds())
        # Align to UTC boundaries with optional jitter.
        cycles = math.floor(now.timestamp() / interval_seconds)
        candidate = datetime.fromtimestamp((cycles + 1) * interval_seconds, tz=timezone.utc)
        jitter_offset = self._pick_jitter()
        if jitter_offset:
            candidate = candidate + timedelta(seconds=jitter_offset)
        if candidate <= now:
            candidate = now + timedelta(seconds=1)
        return candidate

    async def _sleep_until_due(self) -> None:
        if self.next_run is None:
            self.next_run = self._compute_next_run()
        while True:
            assert self.next_run is not None
            delay = (self.next_run - datetime.now(timezone.utc)).total_seconds()
            if delay <= 0:
                break
            await asyncio.sleep(min(delay, 60.0))

    def do(self, job: Callable[[], Awaitable[None]]) -> asyncio.Task:
        self.next_run = self._compute_next_run()

        async def runner() -> None:
            while True:
                await self._sleep_until_due()
                try:
                    await job()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.exception(
                        "recurring job error",
                        extra={
                            "job_name": self.name or getattr(job, "__name__", "job"),
                            "tag": self.tag,
                        },
                    )
                finally:
                    # Armed only once the current run has finished.
                    self.next_run = self._compute_next_run()

        task_name = self.name or getattr(job, "__name__", "recurring_job")
        return self._scheduler.spawn(runner(), name=task_name)


class Scheduler:
    """Very small asyncio task supervisor for background jobs."""

    def __init__(self) -> None:
        self._tasks: list[asyncio.Task] = []

    def spawn(self, coro: Awaitable, *, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.append(task)
        return task

    def every(
        self,
        *,
        hours: float = 0.0,
        minutes: float = 0.0,
        seconds: float = 0.0,
        jitter: str | float | None = None,
        tag: str | None = None,
        name: str | None = None,
    ) -> _RecurringJob:
        total_seconds = float(hours) * 3600.0 + float(minutes) * 60.0 + float(seconds)
        if total_seconds <= 0:
            total_seconds = 60.0
        return _RecurringJob(
            self, interval=timedelta(seconds=total_seconds), jitter=jitter, tag=tag, name=name
        )

    async def shutdown(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for task in self._tasks:
            if task.done():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # pragma: no cover - best-effort cleanup
                log.exception("scheduler task error during shutdown")
        self._tasks.clear()


class Runtime:
    """Container object that wires the bot, health server, and scheduler."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self.scheduler = Scheduler()
        self._status_providers: Dict[str, StatusProvider] = {}
        self._web_app: Optional[web.Application] = None
        self._web_runner: Optional[web.AppRunner] = None
        self._web_site: Optional[web.TCPSite] = None
        set_active_runtime(self)

    def register_status(self, name: str, provider: StatusProvider) -> None:
        """Expose ``provider()`` under ``name`` in the ``/healthz`` payload."""

        self._status_providers[name] = provider

    def health_payload(self) -> tuple[dict[str, Any], bool]:
        payload: dict[str, Any] = {
            "ok": True,
            "bot": get_bot_name(),
            "env": get_env_name(),
            "version": os.getenv("BOT_VERSION", "dev"),
            "connected": _bot_ready(self.bot),
        }
        for name, provider in self._status_providers.items():
            try:
                payload[name] = provider()
            except Exception:
                log.exception("status provider failed", extra={"provider": name})
                payload[name] = {"error": True}
                payload["ok"] = False
        return payload, bool(payload["ok"])

    async def start_webserver(self, *, port: Optional[int] = None) -> None:
        if self._web_site is not None:
            return
        port = get_port() if port is None else port
        app = await create_app(runtime=self)
        self._web_app = app
        self._web_runner = web.AppRunner(app)
        await self._web_runner.setup()
        self._web_site = web.TCPSite(self._web_runner, host="0.0.0.0", port=port)
        await self._web_site.start()
        log.info("web server listening", extra={"port": port})

    async def shutdown_webserver(self) -> None:
        site, runner = self._web_site, self._web_runner
        self._web_site = None
        self._web_runner = None
        self._web_app = None
        if site is not None:
            await site.stop()
        if runner is not None:
            await runner.cleanup()

    async def send_log_message(self, message: str) -> None:
        channel_id = get_log_channel_id()
        if not channel_id:
            return
        content = _trim_message(str(message))
        if not content:
            return
        await self.bot.wait_until_ready()
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except Exception:
                log.exception("failed to fetch log channel", extra={"channel_id": channel_id})
                return
        try:
            await channel.send(content)
        except Exception:
            log.exception("failed to send log message", extra={"channel_id": channel_id})

    async def load_extensions(self) -> None:
        for extension in EXTENSIONS:
            await self.bot.load_extension(extension)
            log.info("extension loaded", extra={"extension": extension})

    async def start(self, token: str) -> None:
        await self.start_webserver()
        await self.load_extensions()
        await self.bot.start(token)

    async def close(self) -> None:
        await self.shutdown_webserver()
        await self.scheduler.shutdown()
        sheets_adapter.shutdown_executor(wait=False)
        set_active_runtime(None)


__all__ = [
    "EXTENSIONS",
    "Runtime",
    "Scheduler",
    "create_app",
    "get_active_runtime",
    "set_active_runtime",
]
