"""Last known service status with periodic and on-demand refresh."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from privhelper_client.core.models import StatusInfo
from privhelper_client.core.status_source import StatusSource

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 5.0

StatusListener = Callable[[StatusInfo], None]


class StatusCache:
    def __init__(self, source: StatusSource, *, interval_s: float = DEFAULT_INTERVAL_S) -> None:
        self._source = source
        self._interval_s = interval_s
        self._value: StatusInfo | None = None
        self._stale = True
        self._generation = 0
        self._inflight: asyncio.Task[StatusInfo] | None = None
        self._inflight_generation = -1
        self._poller: asyncio.Task[None] | None = None
        self._listeners: list[StatusListener] = []

    @property
    def interval_s(self) -> float:
        return self._interval_s

    def current(self) -> StatusInfo | None:
        """Cached value, or ``None`` while the first fetch is pending."""
        return self._value

    @property
    def stale(self) -> bool:
        return self._stale

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def get(self) -> StatusInfo:
        if self._value is None or self._stale:
            return await self.refetch()
        return self._value

    async def refetch(self) -> StatusInfo:
        """Fetch now; callers arriving while a current fetch runs share it."""
        return await asyncio.shield(self._ensure_fetch())

    def invalidate(self) -> None:
        """Drop the cached value; a fetch started before this call no longer counts."""
        self._generation += 1
        self._stale = True
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._ensure_fetch()

    def _ensure_fetch(self) -> asyncio.Task[StatusInfo]:
        inflight = self._inflight
        if (
            inflight is not None
            and not inflight.done()
            and self._inflight_generation == self._generation
        ):
            return inflight
        self._inflight_generation = self._generation
        inflight = asyncio.ensure_future(self._fetch(self._generation))
        self._inflight = inflight
        return inflight

    async def _fetch(self, generation: int) -> StatusInfo:
        try:
            info = await self._source.fetch_status()
        except Exception:
            # Sources are total; this guards against a broken custom source.
            logger.exception("Status source raised; treating service as not installed")
            info = StatusInfo.not_installed()
        if generation != self._generation:
            logger.debug("Discarding status fetched before invalidation: %s", info.status.value)
            return info
        self._store(info)
        return info

    def _store(self, info: StatusInfo) -> None:
        previous = self._value
        self._value = info
        self._stale = False
        if previous is None or previous.status is not info.status:
            logger.info("Service status: %s", info.status.value)
        for listener in list(self._listeners):
            try:
                listener(info)
            except Exception:
                logger.exception("Status listener failed")

    def start(self) -> None:
        if self._poller is not None and not self._poller.done():
            return
        self._poller = asyncio.ensure_future(self._poll())

    async def _poll(self) -> None:
        while True:
            await self.refetch()
            await asyncio.sleep(self._interval_s)

    async def close(self) -> None:
        tasks = [t for t in (self._poller, self._inflight) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._poller = None
        self._inflight = None
