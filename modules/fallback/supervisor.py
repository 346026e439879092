"""Queue of market events waiting for the ticket integration to open a ticket.

Market-feed posts are queued; matching ticket-creation posts clear them. When
the integration stays silent past the inactivity threshold, aged items are
escalated into fallback containers created by the bot itself.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Protocol

from modules.fallback.events import FallbackQueueItem, MarketEvent, normalize_title
from shared import config as shared_config
from shared.dedupe import ExpiringKeys
from shared.logs import log_lifecycle

log = logging.getLogger("closeout.fallback.supervisor")


class ContainerFactory(Protocol):
    async def create(self, item: FallbackQueueItem) -> Any: ...

    async def emergency_archive(self) -> int: ...

    def is_capacity_error(self, exc: BaseException) -> bool: ...


class FallbackSupervisor:
    def __init__(
        self,
        factory: ContainerFactory,
        *,
        clock: Callable[[], float] = time.monotonic,
        min_age_sec: Optional[float] = None,
        inactivity_sec: Optional[float] = None,
        cache_ttl_sec: Optional[float] = None,
        created_ttl_sec: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.factory = factory
        self._clock = clock
        self.min_age_sec = float(
            shared_config.get_fallback_min_age_sec() if min_age_sec is None else min_age_sec
        )
        self.inactivity_sec = float(
            shared_config.get_fallback_inactivity_sec() if inactivity_sec is None else inactivity_sec
        )
        self.max_attempts = (
            shared_config.get_fallback_max_attempts() if max_attempts is None else int(max_attempts)
        )
        cache_ttl = shared_config.get_fallback_cache_ttl_sec() if cache_ttl_sec is None else cache_ttl_sec
        created_ttl = (
            shared_config.get_fallback_created_ttl_sec() if created_ttl_sec is None else created_ttl_sec
        )
        self._queue: "OrderedDict[str, FallbackQueueItem]" = OrderedDict()
        # key -> normalized title of creation events that matched nothing yet
        self._seen = ExpiringKeys(cache_ttl, clock=clock)
        self._created = ExpiringKeys(created_ttl, clock=clock)
        self._last_activity = clock()
        self._escalating = False
        self._archive_pending = False
        self.created_total = 0
        self.dropped_total = 0

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def escalating(self) -> bool:
        return self._escalating

    def note_integration_activity(self) -> None:
        self._last_activity = self._clock()

    def integration_idle_for(self) -> float:
        return self._clock() - self._last_activity

    # ------------------------------------------------------------------ streams
    def enqueue(self, event: MarketEvent) -> bool:
        """Queue ``event``; returns False for duplicates and already-handled keys."""

        if event.key in self._queue:
            return False
        if event.key in self._seen or event.key in self._created:
            log.debug("fallback enqueue ignored for handled key %s", event.key)
            return False
        title = normalize_title(event.title)
        if title and self._seen.find_value(title) is not None:
            log.debug("fallback enqueue ignored for handled title %s", title)
            return False
        self._queue[event.key] = FallbackQueueItem.from_event(event, self._clock())
        log_lifecycle(
            log, "fallback", "enqueued", emoji="📥", dedupe=False, key=event.key, queue=len(self._queue)
        )
        return True

    def correlate(self, event: MarketEvent) -> Optional[FallbackQueueItem]:
        """Remove the queued item matching ``event``; unmatched events are cached."""

        item = self._queue.pop(event.key, None)
        if item is None:
            title = normalize_title(event.title)
            if title:
                for key, queued in list(self._queue.items()):
                    if normalize_title(queued.title) == title:
                        item = self._queue.pop(key)
                        break
        if item is None:
            self._seen.add(event.key, normalize_title(event.title))
            return None
        log_lifecycle(
            log, "fallback", "correlated", emoji="🔗", dedupe=False, key=item.key, queue=len(self._queue)
        )
        return item

    # -------------------------------------------------------------- maintenance
    def sweep(self) -> int:
        return self._seen.sweep() + self._created.sweep()

    def _take_due(self) -> list[FallbackQueueItem]:
        now = self._clock()
        due = [item for item in self._queue.values() if now - item.enqueued_at >= self.min_age_sec]
        for item in due:
            del self._queue[item.key]
        return due

    def _correlated_since(self, item: FallbackQueueItem) -> bool:
        if item.key in self._seen:
            return True
        title = normalize_title(item.title)
        return bool(title) and self._seen.find_value(title) is not None

    def _restore(self, item: FallbackQueueItem) -> None:
        if self._correlated_since(item):
            log.debug("fallback item %s correlated during escalation; dropping", item.key)
            return
        self._queue.setdefault(item.key, item)

    def _requeue(self, item: FallbackQueueItem) -> None:
        item.attempts += 1
        if self._correlated_since(item):
            log.debug("fallback item %s correlated during escalation; dropping", item.key)
            return
        if item.attempts >= self.max_attempts:
            self.dropped_total += 1
            log.error(
                "fallback container for %s failed %d times; dropping",
                item.key,
                item.attempts,
                extra={"title": item.title},
            )
            return
        self._queue.setdefault(item.key, item)

    async def _archive(self) -> None:
        self._archive_pending = False
        try:
            archived = await self.factory.emergency_archive()
        except Exception:
            log.exception("fallback emergency archive failed")
            return
        log_lifecycle(log, "fallback", "emergency_archive", emoji="🗄️", archived=archived)

    async def escalate(self) -> int:
        """Create fallback containers for due items; returns how many were created."""

        if self._escalating:
            return 0
        if self.integration_idle_for() < self.inactivity_sec:
            return 0
        self._escalating = True
        created = 0
        pending: list[FallbackQueueItem] = []
        try:
            pending = self._take_due()
            if not pending:
                return 0
            log_lifecycle(log, "fallback", "escalating", emoji="🚨", items=len(pending))
            while pending:
                item = pending[0]
                if self._archive_pending:
                    await self._archive()
                try:
                    await self.factory.create(item)
                except Exception as exc:
                    pending.pop(0)
                    if self.factory.is_capacity_error(exc):
                        self._archive_pending = True
                    log.warning(
                        "fallback container for %s failed (attempt %d): %s",
                        item.key,
                        item.attempts + 1,
                        exc,
                    )
                    self._requeue(item)
                    continue
                pending.pop(0)
                self._created.add(item.key, normalize_title(item.title))
                created += 1
        finally:
            # items not yet attempted go back untouched
            for item in pending:
                self._restore(item)
            self._escalating = False
        self.created_total += created
        return created

    async def tick(self) -> int:
        self.sweep()
        return await self.escalate()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "queued": len(self._queue),
            "cached": len(self._seen),
            "created_markers": len(self._created),
            "idle_sec": round(self.integration_idle_for(), 1),
            "escalating": self._escalating,
            "created_total": self.created_total,
            "dropped_total": self.dropped_total,
        }


__all__ = ["ContainerFactory", "FallbackSupervisor"]
