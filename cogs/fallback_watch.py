from __future__ import annotations

import logging
from typing import Optional

import discord
from discord.ext import commands

from modules.common.runtime import get_active_runtime
from modules.common.tickets import has_ticket_prefix
from modules.fallback.containers import DiscordContainerFactory
from modules.fallback.events import creation_event_from_message, market_event_from_message
from modules.fallback.supervisor import FallbackSupervisor
from shared.config import (
    get_fallback_channel_id,
    get_fallback_tick_sec,
    get_market_feed_channel_id,
    get_ticket_name_prefixes,
    get_ticket_tool_bot_id,
)

log = logging.getLogger("closeout.cogs.fallback")


class FallbackWatch(commands.Cog):
    """Feeds market and ticket-creation events into the fallback supervisor."""

    def __init__(
        self,
        bot: commands.Bot,
        supervisor: FallbackSupervisor,
        *,
        feed_channel_id: Optional[int] = None,
        ticket_tool_id: Optional[int] = None,
    ) -> None:
        self.bot = bot
        self.supervisor = supervisor
        self.feed_channel_id = feed_channel_id
        self.ticket_tool_id = ticket_tool_id

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        channel_id = getattr(getattr(message, "channel", None), "id", None)
        if self.feed_channel_id and channel_id == self.feed_channel_id:
            event = market_event_from_message(message)
            if event is not None:
                self.supervisor.enqueue(event)
            return

        author_id = getattr(getattr(message, "author", None), "id", None)
        if self.ticket_tool_id is None or author_id != self.ticket_tool_id:
            return
        self.supervisor.note_integration_activity()
        event = creation_event_from_message(message, self.ticket_tool_id)
        if event is not None:
            self.supervisor.correlate(event)

    @commands.Cog.listener()
    async def on_guild_channel_create(self, channel: discord.abc.GuildChannel) -> None:
        if has_ticket_prefix(getattr(channel, "name", ""), get_ticket_name_prefixes()):
            self.supervisor.note_integration_activity()

    async def run_tick(self) -> None:
        await self.bot.wait_until_ready()
        created = await self.supervisor.tick()
        if created:
            log.info("fallback containers created", extra={"count": created})


async def setup(bot: commands.Bot) -> None:
    feed_channel_id = get_market_feed_channel_id()
    if not feed_channel_id or not get_fallback_channel_id():
        log.info("fallback supervisor disabled: MARKET_FEED_CHANNEL_ID/FALLBACK_CHANNEL_ID not set")
        return

    supervisor = FallbackSupervisor(DiscordContainerFactory(bot))
    cog = FallbackWatch(
        bot,
        supervisor,
        feed_channel_id=feed_channel_id,
        ticket_tool_id=get_ticket_tool_bot_id(),
    )
    await bot.add_cog(cog)

    runtime = get_active_runtime()
    if runtime is None:
        log.warning("runtime unavailable; fallback tick not scheduled")
        return
    runtime.register_status("fallback", supervisor.snapshot)
    runtime.scheduler.every(seconds=get_fallback_tick_sec(), tag="fallback", name="fallback_tick").do(
        cog.run_tick
    )
