import asyncio
import logging

import pytest

from modules.common import runtime


def test_failing_scan_job_keeps_its_schedule(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def runner() -> None:
        scheduler = runtime.Scheduler()

        attempt = {"count": 0}

        async def flaky_scan() -> None:
            attempt["count"] += 1
            if attempt["count"] == 1:
                raise RuntimeError("boom")

        def fast_next_run(self, reference=None):
            now = reference or runtime.datetime.now(runtime.timezone.utc)
            return now + runtime.timedelta(milliseconds=10)

        monkeypatch.setattr(runtime._RecurringJob, "_compute_next_run", fast_next_run)

        caplog.set_level(logging.ERROR, logger="closeout.runtime")

        scheduler.every(seconds=1, name="ticket_scan", tag="scan").do(flaky_scan)

        await asyncio.sleep(0.05)
        await scheduler.shutdown()

        assert attempt["count"] >= 2
        assert any("recurring job error" in record.message for record in caplog.records)

    asyncio.run(runner())


def test_slow_job_is_rearmed_only_after_it_finishes(monkeypatch: pytest.MonkeyPatch) -> None:
    async def runner() -> None:
        scheduler = runtime.Scheduler()
        state = {"active": 0, "peak": 0, "runs": 0}
        armed_during_run: list[bool] = []
        job_ref: dict[str, runtime._RecurringJob] = {}

        def fast_next_run(self, reference=None):
            now = reference or runtime.datetime.now(runtime.timezone.utc)
            return now + runtime.timedelta(milliseconds=5)

        monkeypatch.setattr(runtime._RecurringJob, "_compute_next_run", fast_next_run)

        async def slow_scan() -> None:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            before = job_ref["job"].next_run
            await asyncio.sleep(0.03)
            armed_during_run.append(job_ref["job"].next_run is not before)
            state["active"] -= 1
            state["runs"] += 1

        job = scheduler.every(seconds=1, name="slow_scan", tag="scan")
        job_ref["job"] = job
        job.do(slow_scan)

        await asyncio.sleep(0.12)
        await scheduler.shutdown()

        assert state["runs"] >= 2
        assert state["peak"] == 1
        assert not any(armed_during_run)

    asyncio.run(runner())
