"""Discord-backed fallback containers (public threads in the fallback channel)."""

from __future__ import annotations

import logging
from typing import Any, Optional

import discord

from modules.common.tickets import created_at
from modules.fallback.events import FallbackQueueItem
from shared import config as shared_config

log = logging.getLogger("closeout.fallback.containers")

THREAD_PREFIX = "fallback-"
CAPACITY_ERROR_CODES = frozenset({30033, 160006})
ARCHIVE_BATCH = 10
_NAME_LIMIT = 100


def thread_name(title: str) -> str:
    base = " ".join((title or "").split()) or "untitled"
    return f"{THREAD_PREFIX}{base}"[:_NAME_LIMIT]


def is_capacity_error(exc: BaseException) -> bool:
    code = getattr(exc, "code", None)
    if code in CAPACITY_ERROR_CODES:
        return True
    return "maximum number" in str(exc).lower()


class DiscordContainerFactory:
    def __init__(self, bot: Any, *, channel_id: Optional[int] = None) -> None:
        self.bot = bot
        self.channel_id = channel_id if channel_id is not None else shared_config.get_fallback_channel_id()

    async def _parent(self) -> Any:
        if not self.channel_id:
            raise RuntimeError("FALLBACK_CHANNEL_ID is not configured")
        channel = self.bot.get_channel(self.channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(self.channel_id)
        return channel

    async def create(self, item: FallbackQueueItem) -> Any:
        parent = await self._parent()
        thread = await parent.create_thread(
            name=thread_name(item.title),
            type=discord.ChannelType.public_thread,
            auto_archive_duration=1440,
        )
        starter = f"**{item.title or 'Untitled market'}**"
        if item.link:
            starter += f"\n{item.link}"
        await thread.send(starter)
        log.info(
            "fallback thread created for %s",
            item.key,
            extra={"thread_id": getattr(thread, "id", None), "attempts": item.attempts},
        )
        return thread

    def is_capacity_error(self, exc: BaseException) -> bool:
        return is_capacity_error(exc)

    async def emergency_archive(self) -> int:
        """Archive the oldest active fallback threads to free capacity."""

        parent = await self._parent()
        guild = getattr(parent, "guild", None)
        candidates = [
            thread
            for thread in list(getattr(guild, "threads", []) or [])
            if (getattr(thread, "name", "") or "").startswith(THREAD_PREFIX)
            and not getattr(thread, "archived", False)
        ]
        candidates.sort(key=created_at)
        archived = 0
        for thread in candidates[:ARCHIVE_BATCH]:
            try:
                await thread.edit(archived=True)
            except discord.HTTPException:
                log.warning("failed to archive fallback thread %s", getattr(thread, "id", "?"), exc_info=True)
                continue
            archived += 1
        return archived


__all__ = [
    "ARCHIVE_BATCH",
    "CAPACITY_ERROR_CODES",
    "DiscordContainerFactory",
    "THREAD_PREFIX",
    "is_capacity_error",
    "thread_name",
]
