"""Periodic mass scan over eligible ticket containers."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence

from modules.closure.processor import ProcessingOutcome, TicketProcessor
from modules.closure.settings import SettingsStore
from modules.common.tickets import eligible_ticket_channels
from shared import config as shared_config
from shared.logs import log_lifecycle
from shared.utils.humanize import humanize_duration

log = logging.getLogger("closeout.closure.scanner")

AUTOMATIC_ACTOR = "Automatic Scan"


class InFlightTickets:
    """Channel ids currently inside a processing pass."""

    def __init__(self) -> None:
        self._ids: set[int] = set()

    def claim(self, channel_id: int) -> bool:
        key = int(channel_id)
        if key in self._ids:
            return False
        self._ids.add(key)
        return True

    def release(self, channel_id: int) -> None:
        self._ids.discard(int(channel_id))

    @contextmanager
    def hold(self, channel_id: int) -> Iterator[bool]:
        claimed = self.claim(channel_id)
        try:
            yield claimed
        finally:
            if claimed:
                self.release(channel_id)

    def __contains__(self, channel_id: object) -> bool:
        try:
            return int(channel_id) in self._ids  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._ids)


class TicketScanner:
    def __init__(
        self,
        *,
        bot: Any,
        processor: TicketProcessor,
        settings: SettingsStore,
        in_flight: InFlightTickets,
        prefixes: Sequence[str] | None = None,
        delay_sec: float | None = None,
        short_delay_sec: float | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.bot = bot
        self.processor = processor
        self.settings = settings
        self.in_flight = in_flight
        self.prefixes = tuple(prefixes or shared_config.get_ticket_name_prefixes())
        self.delay_sec = shared_config.get_scan_delay_sec() if delay_sec is None else delay_sec
        self.short_delay_sec = (
            shared_config.get_scan_short_delay_sec() if short_delay_sec is None else short_delay_sec
        )
        self._clock = clock
        self._sleep = sleep
        self._running = False
        self.last_counts: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return self._running

    def due(self, now: Optional[float] = None) -> bool:
        settings = self.settings.current
        if not settings.auto_processing_enabled:
            return False
        current = self._clock() if now is None else now
        return current - settings.last_successful_scan_ts >= settings.processing_interval_sec

    def time_until_next_scan(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds until the next scan is due, or ``None`` while disabled."""

        settings = self.settings.current
        if not settings.auto_processing_enabled:
            return None
        current = self._clock() if now is None else now
        next_at = settings.last_successful_scan_ts + settings.processing_interval_sec
        return max(0.0, next_at - current)

    def format_duration(self, seconds: Optional[float]) -> str:
        return humanize_duration(seconds)

    def status_text(self) -> str:
        remaining = self.time_until_next_scan()
        if remaining is None:
            return "Automatic processing is disabled."
        if self._running:
            return "A ticket scan is running now."
        return f"Next ticket scan in {self.format_duration(remaining)}."

    async def tick(self) -> bool:
        """Run one scan if due; returns True when a scan ran to completion."""

        if self._running or not self.due():
            return False
        self._running = True
        try:
            await self._scan()
        finally:
            self._running = False
        return True

    def _eligible(self) -> list[Any]:
        settings = self.settings.current
        now = datetime.fromtimestamp(self._clock(), timezone.utc)
        channels: list[Any] = []
        for guild in list(getattr(self.bot, "guilds", []) or []):
            channels.extend(
                eligible_ticket_channels(
                    guild,
                    prefixes=self.prefixes,
                    min_age=timedelta(seconds=settings.min_ticket_age_sec),
                    now=now,
                )
            )
        return channels

    def _delay_for(self, outcome: ProcessingOutcome) -> float:
        if outcome.status in ("skipped", "flagged"):
            return self.short_delay_sec
        return self.delay_sec

    async def _scan(self) -> None:
        channels = self._eligible()
        counts: dict[str, int] = {"eligible": len(channels)}
        log_lifecycle(log, "scan", "started", emoji="🔎", eligible=len(channels))

        for channel in channels:
            channel_id = int(getattr(channel, "id", 0) or 0)
            with self.in_flight.hold(channel_id) as claimed:
                if not claimed:
                    log.info("[%s | %s] already in flight; skipping", channel_id, channel.name)
                    counts["in_flight"] = counts.get("in_flight", 0) + 1
                    continue
                outcome = await self.processor.process(
                    channel,
                    initiated_by=AUTOMATIC_ACTOR,
                    automatic=True,
                )
            counts[outcome.status] = counts.get(outcome.status, 0) + 1
            await self._sleep(self._delay_for(outcome))

        self.settings.update(last_successful_scan_ts=float(self._clock()))
        self.last_counts = counts
        log_lifecycle(
            log,
            "scan",
            "finished",
            emoji="✅",
            dedupe=False,
            eligible=counts.get("eligible", 0),
            reported=counts.get("reported", 0),
            flagged=counts.get("flagged", 0),
            skipped=counts.get("skipped", 0),
            errors=counts.get("error", 0),
            in_flight=counts.get("in_flight", 0),
        )


__all__ = ["AUTOMATIC_ACTOR", "InFlightTickets", "TicketScanner"]
