"""Install, uninstall, start and stop the service."""

from __future__ import annotations

import logging

from privhelper_client.core.errors import AppError, OperationFailedError
from privhelper_client.core.native_channel import NativeChannel
from privhelper_client.core.status_cache import StatusCache

logger = logging.getLogger(__name__)


class ServiceMutations:
    """One call per verb; no retries. Success invalidates the status cache."""

    def __init__(self, channel: NativeChannel, cache: StatusCache) -> None:
        self._channel = channel
        self._cache = cache

    async def install(self) -> None:
        await self._mutate("install")

    async def uninstall(self) -> None:
        await self._mutate("uninstall")

    async def start(self) -> None:
        await self._mutate("start")

    async def stop(self) -> None:
        await self._mutate("stop")

    async def restart_core(self) -> bool:
        try:
            await self._channel.restart_core()
        except AppError as exc:
            logger.warning("Proxy core restart failed: %s", exc)
            return False
        return True

    async def _mutate(self, verb: str) -> None:
        logger.info("Service %s requested", verb)
        try:
            await self._channel.invoke(verb)
        except AppError as exc:
            logger.error("Service %s failed: %s", verb, exc)
            raise OperationFailedError(verb, exc.user_message) from exc
        logger.info("Service %s completed", verb)
        self._cache.invalidate()
