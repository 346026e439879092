from __future__ import annotations

import asyncio
import logging
import os
import time

import discord
from discord.ext import commands

from config.runtime import get_command_prefix, get_log_level
from shared.config import get_bot_name, get_discord_token, get_env_name
from shared.logging import setup_logging
from modules.common.runtime import Runtime

setup_logging(
    level=get_log_level(),
    static_fields={"env": get_env_name(), "bot": get_bot_name()},
)
log = logging.getLogger("closeout.app")

INTENTS = discord.Intents.default()
INTENTS.message_content = True
INTENTS.guilds = True

BANG_PREFIX = get_command_prefix()

bot = commands.Bot(
    command_prefix=commands.when_mentioned_or(BANG_PREFIX),
    intents=INTENTS,
)

runtime = Runtime(bot)

BOT_VERSION = os.getenv("BOT_VERSION", "dev")
_STARTED_MONO = time.monotonic()


def uptime_seconds() -> float:
    return max(0.0, time.monotonic() - _STARTED_MONO)


@bot.event
async def on_ready():
    log.info(
        'Bot ready as %s | env=%s | prefixes=["%s", "@mention"] | guilds=%d',
        bot.user,
        get_env_name(),
        BANG_PREFIX,
        len(bot.guilds),
    )
    await runtime.send_log_message(
        f"🟢 {get_bot_name()} online • env={get_env_name()} • version={BOT_VERSION}"
    )


@bot.event
async def on_command_error(ctx: commands.Context, error: Exception):
    if isinstance(error, commands.CommandNotFound):
        return
    log.warning(
        "cmd error: cmd=%s user=%s err=%r",
        getattr(ctx.command, "name", None),
        getattr(ctx.author, "id", None),
        error,
    )


async def main() -> None:
    try:
        await runtime.start(get_discord_token())
    finally:
        if not bot.is_closed():
            await bot.close()
        await runtime.close()


if __name__ == "__main__":
    asyncio.run(main())
