import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from cogs.closure_tickets import RECORD_USAGE, ClosureTickets
from modules.closure.models import ClosureKind
from modules.closure.processor import ProcessingOutcome
from modules.closure.scanner import InFlightTickets, TicketScanner
from modules.closure.settings import SettingsStore


class FakeProcessor:
    def __init__(self, outcome=None):
        self.calls = []
        self.outcome = outcome or ProcessingOutcome("reported", "", "inserted")

    async def process(self, channel, *, initiated_by, automatic, override_kind=None):
        self.calls.append((channel.id, initiated_by, automatic, override_kind))
        return self.outcome


@pytest.fixture
def cog(tmp_path):
    settings = SettingsStore(tmp_path / "bot_config.json")
    settings.load()
    in_flight = InFlightTickets()
    processor = FakeProcessor()
    bot = SimpleNamespace(guilds=[])
    scanner = TicketScanner(
        bot=bot,
        processor=processor,
        settings=settings,
        in_flight=in_flight,
        prefixes=("ticket-",),
        delay_sec=0,
        short_delay_sec=0,
        clock=lambda: 0.0,
    )
    return ClosureTickets(
        bot, settings=settings, processor=processor, scanner=scanner, in_flight=in_flight
    )


def _ctx(channel_id=1001):
    ctx = SimpleNamespace()
    ctx.channel = SimpleNamespace(id=channel_id, name="ticket-0042")
    ctx.author = SimpleNamespace(id=7, name="mod", display_name="Moderator")
    ctx.reply = AsyncMock()
    return ctx


def test_record_runs_manual_processing_with_override(cog):
    ctx = _ctx()
    asyncio.run(cog.record.callback(cog, ctx, "Disputed"))
    assert cog.processor.calls == [(1001, "Moderator", False, ClosureKind.DISPUTED)]
    ctx.reply.assert_not_awaited()
    assert len(cog.in_flight) == 0


def test_record_rejects_unknown_kind(cog):
    ctx = _ctx()
    asyncio.run(cog.record.callback(cog, ctx, "bogus"))
    ctx.reply.assert_awaited_once_with(RECORD_USAGE, mention_author=False)
    asyncio.run(cog.record.callback(cog, ctx, "standard"))
    assert ctx.reply.await_count == 2
    assert cog.processor.calls == []


def test_record_refuses_ticket_already_in_flight(cog):
    ctx = _ctx()
    cog.in_flight.claim(1001)
    asyncio.run(cog.record.callback(cog, ctx))
    ctx.reply.assert_awaited_once_with("This ticket is already being processed.", mention_author=False)
    assert cog.processor.calls == []


def test_record_reports_skips(cog):
    cog.processor.outcome = ProcessingOutcome("skipped", "flagged_manually")
    ctx = _ctx()
    asyncio.run(cog.record.callback(cog, ctx))
    ctx.reply.assert_awaited_once_with("Skipped (flagged_manually).", mention_author=False)


def test_closeconfig_updates_settings(cog):
    ctx = _ctx()
    asyncio.run(cog.closeconfig_action.callback(cog, ctx, "Delete"))
    assert cog.settings.current.post_action == "delete"

    asyncio.run(cog.closeconfig_interval.callback(cog, ctx, value="45s"))
    assert cog.settings.current.processing_interval_sec == 1800
    asyncio.run(cog.closeconfig_interval.callback(cog, ctx, value="1h"))
    assert cog.settings.current.processing_interval_sec == 3600

    asyncio.run(cog.closeconfig_auto.callback(cog, ctx, "off"))
    assert cog.settings.current.auto_processing_enabled is False
    asyncio.run(cog.scan_status.callback(cog, ctx))
    ctx.reply.assert_awaited_with("Automatic processing is disabled.", mention_author=False)

    asyncio.run(cog.closeconfig_error_user.callback(cog, ctx, SimpleNamespace(id=42)))
    assert cog.settings.current.error_user_id == "42"
    asyncio.run(cog.closeconfig_error_user.callback(cog, ctx, None))
    assert cog.settings.current.error_user_id is None


def test_status_snapshot(cog):
    snapshot = cog.status_snapshot()
    assert snapshot["enabled"] is True
    assert snapshot["running"] is False
    assert snapshot["in_flight"] == 0
