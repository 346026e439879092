from __future__ import annotations

import logging
from typing import Optional

import discord
from discord.ext import commands

from config.runtime import get_settings_path, get_verifier_map_path
from modules.closure.models import ClosureKind
from modules.closure.processor import TicketProcessor
from modules.closure.scanner import InFlightTickets, TicketScanner
from modules.closure.settings import MIN_PROCESSING_INTERVAL_SEC, POST_ACTIONS, SettingsStore
from modules.common.runtime import get_active_runtime
from shared.config import get_scan_wake_sec
from shared.identity import load_identity_map
from shared.logs import log_lifecycle
from shared.utils.humanize import humanize_duration, parse_duration

log = logging.getLogger("closeout.cogs.closure")

RECORD_USAGE = "Usage: !record [assertion|disputed|snapshot|polymarket]"
CONFIG_USAGE = (
    "Usage: !closeconfig view | auto <on|off> | action <none|close|delete> | "
    "min_age <2h5m> | interval <30m> | error_user [@user]"
)
_ON = {"on", "true", "yes", "enable", "enabled"}
_OFF = {"off", "false", "no", "disable", "disabled"}


def _actor_name(ctx: commands.Context) -> str:
    author = ctx.author
    return getattr(author, "display_name", None) or getattr(author, "name", None) or str(author.id)


class ClosureTickets(commands.Cog):
    """Ticket closeout commands and the periodic scan job."""

    def __init__(
        self,
        bot: commands.Bot,
        *,
        settings: SettingsStore,
        processor: TicketProcessor,
        scanner: TicketScanner,
        in_flight: InFlightTickets,
    ) -> None:
        self.bot = bot
        self.settings = settings
        self.processor = processor
        self.scanner = scanner
        self.in_flight = in_flight

    # === Scan job ===
    async def run_scan_job(self) -> None:
        await self.bot.wait_until_ready()
        completed = await self.scanner.tick()
        if not completed:
            return
        counts = self.scanner.last_counts
        runtime = get_active_runtime()
        if runtime is not None and any(counts.get(key) for key in ("reported", "flagged", "error")):
            await runtime.send_log_message(
                "🔎 Ticket scan finished • "
                + " • ".join(f"{key}={value}" for key, value in sorted(counts.items()))
            )

    def status_snapshot(self) -> dict:
        settings = self.settings.current
        remaining = self.scanner.time_until_next_scan()
        return {
            "enabled": settings.auto_processing_enabled,
            "running": self.scanner.running,
            "next_scan_in_sec": None if remaining is None else round(remaining, 1),
            "last_successful_scan_ts": settings.last_successful_scan_ts,
            "in_flight": len(self.in_flight),
        }

    # === Commands ===
    @commands.command(name="record", help="Process this ticket now. " + RECORD_USAGE)
    @commands.guild_only()
    @commands.has_permissions(manage_messages=True)
    async def record(self, ctx: commands.Context, kind: Optional[str] = None) -> None:
        override: ClosureKind | None = None
        if kind is not None:
            override = ClosureKind.from_keyword(kind)
            if override is None:
                await ctx.reply(RECORD_USAGE, mention_author=False)
                return

        channel = ctx.channel
        with self.in_flight.hold(channel.id) as claimed:
            if not claimed:
                await ctx.reply("This ticket is already being processed.", mention_author=False)
                return
            outcome = await self.processor.process(
                channel,
                initiated_by=_actor_name(ctx),
                automatic=False,
                override_kind=override,
            )
        log.info(
            "manual record finished",
            extra={"channel_id": channel.id, "status": outcome.status, "reason": outcome.reason},
        )
        if outcome.status == "skipped":
            await ctx.reply(f"Skipped ({outcome.reason}).", mention_author=False)

    @commands.command(name="scan_status", help="Shows when the next automatic ticket scan runs.")
    async def scan_status(self, ctx: commands.Context) -> None:
        await ctx.reply(self.scanner.status_text(), mention_author=False)

    @commands.group(name="closeconfig", invoke_without_command=True, help="Ticket processing settings.")
    @commands.has_permissions(administrator=True)
    async def closeconfig(self, ctx: commands.Context) -> None:
        if ctx.invoked_subcommand is not None:
            return
        await ctx.reply(CONFIG_USAGE, mention_author=False)

    @closeconfig.command(name="view")
    @commands.has_permissions(administrator=True)
    async def closeconfig_view(self, ctx: commands.Context) -> None:
        settings = self.settings.current
        lines = [
            f"**Automatic processing:** {'on' if settings.auto_processing_enabled else 'off'}",
            f"**Post-processing action:** {settings.post_action}",
            f"**Minimum ticket age:** {humanize_duration(settings.min_ticket_age_sec)}",
            f"**Processing interval:** {humanize_duration(settings.processing_interval_sec)}",
            f"**Error notifications:** {f'<@{settings.error_user_id}>' if settings.error_user_id else 'none'}",
            self.scanner.status_text(),
        ]
        await ctx.reply("\n".join(lines), mention_author=False)

    @closeconfig.command(name="auto")
    @commands.has_permissions(administrator=True)
    async def closeconfig_auto(self, ctx: commands.Context, value: str) -> None:
        token = value.strip().lower()
        if token not in _ON | _OFF:
            await ctx.reply("Usage: !closeconfig auto <on|off>", mention_author=False)
            return
        enabled = token in _ON
        self._apply(ctx, auto_processing_enabled=enabled)
        await ctx.reply(
            f"Automatic processing {'enabled' if enabled else 'disabled'}.", mention_author=False
        )

    @closeconfig.command(name="action")
    @commands.has_permissions(administrator=True)
    async def closeconfig_action(self, ctx: commands.Context, value: str) -> None:
        action = value.strip().lower()
        if action not in POST_ACTIONS:
            await ctx.reply("Usage: !closeconfig action <none|close|delete>", mention_author=False)
            return
        self._apply(ctx, post_action=action)
        await ctx.reply(f"Post-processing action set to **{action}**.", mention_author=False)

    @closeconfig.command(name="min_age")
    @commands.has_permissions(administrator=True)
    async def closeconfig_min_age(self, ctx: commands.Context, *, value: str) -> None:
        seconds = parse_duration(value)
        if seconds is None:
            await ctx.reply("Invalid duration. Use e.g. `2h5m`, `30m`, `1d`.", mention_author=False)
            return
        self._apply(ctx, min_ticket_age_sec=seconds)
        await ctx.reply(f"Minimum ticket age set to {humanize_duration(seconds)}.", mention_author=False)

    @closeconfig.command(name="interval")
    @commands.has_permissions(administrator=True)
    async def closeconfig_interval(self, ctx: commands.Context, *, value: str) -> None:
        seconds = parse_duration(value)
        if seconds is None or seconds < MIN_PROCESSING_INTERVAL_SEC:
            await ctx.reply(
                "Invalid interval. Minimum is 1 minute; use e.g. `30m`, `2h`.", mention_author=False
            )
            return
        self._apply(ctx, processing_interval_sec=seconds)
        await ctx.reply(f"Processing interval set to {humanize_duration(seconds)}.", mention_author=False)

    @closeconfig.command(name="error_user")
    @commands.has_permissions(administrator=True)
    async def closeconfig_error_user(
        self, ctx: commands.Context, user: Optional[discord.User] = None
    ) -> None:
        user_id = str(user.id) if user is not None else None
        self._apply(ctx, error_user_id=user_id)
        if user_id is None:
            await ctx.reply("Error notifications cleared.", mention_author=False)
        else:
            await ctx.reply(f"Error notifications will ping <@{user_id}>.", mention_author=False)

    def _apply(self, ctx: commands.Context, **changes: object) -> None:
        changed = self.settings.update(**changes)
        log_lifecycle(
            log,
            "settings",
            "updated" if changed else "unchanged",
            emoji="⚙️",
            dedupe=False,
            actor=getattr(ctx.author, "id", None),
            **changes,
        )

    async def cog_command_error(self, ctx: commands.Context, error: Exception) -> None:
        if isinstance(error, commands.CheckFailure):
            await ctx.reply("You don't have permission to use this command.", mention_author=False)
            return
        if isinstance(error, (commands.BadArgument, commands.MissingRequiredArgument)):
            usage = CONFIG_USAGE if ctx.command and ctx.command.parent else RECORD_USAGE
            await ctx.reply(usage, mention_author=False)
            return
        raise error


async def setup(bot: commands.Bot) -> None:
    settings = SettingsStore(get_settings_path())
    settings.load()
    identities = load_identity_map(get_verifier_map_path())
    in_flight = InFlightTickets()
    processor = TicketProcessor(settings=settings, identities=identities, bot=bot)
    scanner = TicketScanner(bot=bot, processor=processor, settings=settings, in_flight=in_flight)
    cog = ClosureTickets(
        bot, settings=settings, processor=processor, scanner=scanner, in_flight=in_flight
    )
    await bot.add_cog(cog)

    runtime = get_active_runtime()
    if runtime is None:
        log.warning("runtime unavailable; periodic ticket scan not scheduled")
        return
    runtime.register_status("scan", cog.status_snapshot)
    runtime.scheduler.every(seconds=get_scan_wake_sec(), tag="scan", name="ticket_scan").do(
        cog.run_scan_job
    )
    log.info("ticket scan scheduled", extra={"wake_sec": get_scan_wake_sec(), "identities": len(identities)})
