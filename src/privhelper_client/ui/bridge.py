"""Runs the service controller's event loop next to the Qt event loop.

The asyncio loop lives in one daemon thread. Coroutines are submitted from the
Qt thread and their results come back through queued Qt signals, so every
callback passed to ``submit`` runs on the Qt thread.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from typing import Any, Callable, Coroutine

from PyQt6.QtCore import QObject, pyqtSignal

from privhelper_client.core.models import PermissionKind

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Any], None]
ErrorCallback = Callable[[BaseException], None]


class AsyncBridge(QObject):
    _done = pyqtSignal(int, object, object)
    confirm_requested = pyqtSignal(object, object)

    def __init__(self) -> None:
        super().__init__()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="service-loop", daemon=True)
        self._tokens = itertools.count(1)
        self._callbacks: dict[int, tuple[ResultCallback | None, ErrorCallback | None]] = {}
        self._done.connect(self._on_done)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        on_result: ResultCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        token = next(self._tokens)
        self._callbacks[token] = (on_result, on_error)
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)

        def _forward(fut) -> None:
            if fut.cancelled():
                self._done.emit(token, None, asyncio.CancelledError())
                return
            exc = fut.exception()
            self._done.emit(token, None if exc else fut.result(), exc)

        future.add_done_callback(_forward)

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None:
        self._loop.call_soon_threadsafe(fn, *args)

    def run_sync(self, coro: Coroutine[Any, Any, Any], timeout_s: float = 5.0) -> Any:
        """Block the calling (Qt) thread until ``coro`` finishes. Startup/shutdown only."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout=timeout_s)

    def _on_done(self, token: int, result: object, error: object) -> None:
        on_result, on_error = self._callbacks.pop(token, (None, None))
        if isinstance(error, BaseException):
            if on_error is not None:
                on_error(error)
            else:
                logger.error("Background task failed", exc_info=error)
            return
        if on_result is not None:
            on_result(result)

    async def confirm(self, kind: PermissionKind) -> bool:
        """Ask the Qt side for confirmation and wait for the answer."""
        future: asyncio.Future[bool] = self._loop.create_future()
        self.confirm_requested.emit(kind, future)
        return await future

    def answer(self, future: asyncio.Future, accepted: bool) -> None:
        def _set() -> None:
            if not future.done():
                future.set_result(accepted)

        self._loop.call_soon_threadsafe(_set)

    def stop(self) -> None:
        if not self._thread.is_alive():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5.0)
