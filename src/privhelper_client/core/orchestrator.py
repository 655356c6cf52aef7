"""Service lifecycle flows: install (optionally enabling a mode) and uninstall.

Each flow is a strict sequence of awaited steps. One lock token covers every
flow, so install, uninstall, start and stop never interleave; a request that
arrives while a flow runs returns ``Outcome.BUSY`` without touching the
transport.

Install::

    IDLE -> INSTALLING -> VERIFYING_INSTALL -> [STARTING_FOR_MODE] -> IDLE

Uninstall::

    IDLE -> UNINSTALLING -> IDLE

Every flow ends in ``IDLE`` with the pending install cleared and one forced
status refresh, whatever happened on the way.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable

from privhelper_client.core.capabilities import ActionLock, Notifier, log_notifier
from privhelper_client.core.errors import OperationFailedError, OperationTimedOut
from privhelper_client.core.mode_store import ModeStore
from privhelper_client.core.models import (
    FlowResult,
    ModeAction,
    OrchestratorState,
    Outcome,
    PendingInstall,
    RecoveryContext,
)
from privhelper_client.core.mutations import ServiceMutations
from privhelper_client.core.recovery import ManualRecoveryAdvisor
from privhelper_client.core.settings import AppSettings
from privhelper_client.core.status_cache import StatusCache
from privhelper_client.core.timeouts import with_timeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OrchestratorSnapshot:
    state: OrchestratorState
    stage_label: str
    can_cancel: bool

    @property
    def is_busy(self) -> bool:
        return self.state is not OrchestratorState.IDLE


SnapshotListener = Callable[[OrchestratorSnapshot], None]


class LifecycleOrchestrator:
    def __init__(
        self,
        mutations: ServiceMutations,
        cache: StatusCache,
        modes: ModeStore,
        advisor: ManualRecoveryAdvisor,
        *,
        notify: Notifier = log_notifier,
        settings: AppSettings | None = None,
    ) -> None:
        self._mutations = mutations
        self._cache = cache
        self._modes = modes
        self._advisor = advisor
        self._notify = notify
        self._settings = settings or AppSettings()
        self._lock = ActionLock("Service operation")
        self._state = OrchestratorState.IDLE
        self._stage_label = ""
        self._pending: PendingInstall | None = None
        self._cancel_requested = False
        self._listeners: list[SnapshotListener] = []

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._lock.locked

    @property
    def stage_label(self) -> str:
        return self._stage_label

    @property
    def can_cancel(self) -> bool:
        return self._state is OrchestratorState.VERIFYING_INSTALL and not self._cancel_requested

    @property
    def pending_install(self) -> PendingInstall | None:
        return self._pending

    def snapshot(self) -> OrchestratorSnapshot:
        return OrchestratorSnapshot(self._state, self._stage_label, self.can_cancel)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def cancel(self) -> bool:
        """Stop waiting for install verification; privileged calls are never cancelled."""
        if not self.can_cancel:
            return False
        logger.info("Install verification cancelled by user")
        self._cancel_requested = True
        self._emit()
        return True

    async def request_install(self, pending_mode: ModeAction | None = None) -> FlowResult:
        if not self._lock.try_acquire():
            return FlowResult.busy()
        self._pending = PendingInstall(requested_mode=pending_mode)
        self._cancel_requested = False
        try:
            return await self._install_flow(self._pending)
        finally:
            self._pending = None
            await self._finish()

    async def request_uninstall(self) -> FlowResult:
        if not self._lock.try_acquire():
            return FlowResult.busy()
        try:
            return await self._uninstall_flow()
        finally:
            await self._finish()

    async def request_start(self) -> FlowResult:
        if not self._lock.try_acquire():
            return FlowResult.busy()
        try:
            return await self._simple_flow(
                OrchestratorState.STARTING,
                "start",
                self._mutations.start,
                success="Service started successfully",
                failure="Failed to start",
            )
        finally:
            await self._finish()

    async def request_stop(self) -> FlowResult:
        if not self._lock.try_acquire():
            return FlowResult.busy()
        try:
            return await self._simple_flow(
                OrchestratorState.STOPPING,
                "stop",
                self._mutations.stop,
                success="Service stopped successfully",
                failure="Failed to stop",
            )
        finally:
            await self._finish()

    async def _install_flow(self, pending: PendingInstall) -> FlowResult:
        self._set_state(OrchestratorState.INSTALLING, "install")
        try:
            await with_timeout(
                self._mutations.install(), self._settings.install_timeout_s, label="Service install"
            )
        except OperationTimedOut as exc:
            self._error(exc.user_message)
            self._advisor.advise(RecoveryContext.INSTALL)
            return FlowResult(Outcome.TIMED_OUT, str(exc))
        except OperationFailedError as exc:
            self._error(f"Failed to install system service\n{exc.reason}")
            self._advisor.advise(RecoveryContext.INSTALL)
            return FlowResult(Outcome.FAILED, exc.reason)

        await self._restart_core()

        self._set_state(OrchestratorState.VERIFYING_INSTALL, "Verifying installation")
        if not await self._verify_install():
            logger.warning("Service not visible after install; continuing anyway")

        mode = pending.requested_mode
        if self._cancel_requested:
            if mode is not None:
                logger.info("Skipping %s activation after cancellation", mode.label)
            self._info("Service installed successfully")
            return FlowResult.success()
        if mode is None:
            self._info("Service installed successfully")
            return FlowResult.success()
        return await self._start_for_mode(mode)

    async def _verify_install(self) -> bool:
        attempts = self._settings.verify_attempts
        for attempt in range(1, attempts + 1):
            info = await self._cache.refetch()
            if info.installed:
                logger.info("Install verified after %d attempt(s): %s", attempt, info.status.value)
                return True
            if self._cancel_requested or attempt == attempts:
                break
            await asyncio.sleep(self._settings.verify_delay_s)
            if self._cancel_requested:
                break
        return False

    async def _start_for_mode(self, mode: ModeAction) -> FlowResult:
        self._set_state(OrchestratorState.STARTING_FOR_MODE, "start")
        try:
            await with_timeout(
                self._mutations.start(), self._settings.start_timeout_s, label="Service start"
            )
            await self._restart_core()
            self._modes.set_service_mode(True)

            self._set_state(OrchestratorState.STARTING_FOR_MODE, mode.label)
            await with_timeout(
                self._modes.set_enabled(mode, True),
                self._settings.toggle_timeout_s,
                label=f"Enable {mode.label}",
            )
        except OperationTimedOut as exc:
            self._error(exc.user_message)
            return FlowResult(Outcome.TIMED_OUT, str(exc))
        except OperationFailedError as exc:
            self._error(f"Service installed, but activating {mode.label} failed\n{exc.reason}")
            return FlowResult(Outcome.FAILED, exc.reason)

        self._info(f"Service installed and {mode.label} enabled")
        return FlowResult.success()

    async def _uninstall_flow(self) -> FlowResult:
        self._set_state(OrchestratorState.UNINSTALLING, "uninstall")

        self._modes.set_service_mode(False)
        for action in self._modes.enabled_actions():
            try:
                await with_timeout(
                    self._modes.set_enabled(action, False),
                    self._settings.toggle_timeout_s,
                    label=f"Disable {action.label}",
                )
            except (OperationFailedError, OperationTimedOut) as exc:
                logger.warning("Could not disable %s before uninstall: %s", action.label, exc)

        try:
            await with_timeout(
                self._mutations.uninstall(),
                self._settings.uninstall_timeout_s,
                label="Service uninstall",
            )
        except OperationTimedOut as exc:
            self._error(exc.user_message)
            self._advisor.advise(RecoveryContext.UNINSTALL)
            return FlowResult(Outcome.TIMED_OUT, str(exc))
        except OperationFailedError as exc:
            self._error(f"Failed to uninstall system service\n{exc.reason}")
            self._advisor.advise(RecoveryContext.UNINSTALL)
            return FlowResult(Outcome.FAILED, exc.reason)

        await self._restart_core()
        self._info("Service uninstalled successfully")
        return FlowResult.success()

    async def _simple_flow(
        self,
        state: OrchestratorState,
        label: str,
        operation: Callable[[], Awaitable[None]],
        *,
        success: str,
        failure: str,
    ) -> FlowResult:
        self._set_state(state, label)
        try:
            await with_timeout(operation(), self._settings.start_timeout_s, label=f"Service {label}")
        except OperationTimedOut as exc:
            self._error(exc.user_message)
            return FlowResult(Outcome.TIMED_OUT, str(exc))
        except OperationFailedError as exc:
            self._error(f"{failure}: {exc.reason}")
            return FlowResult(Outcome.FAILED, exc.reason)
        await self._restart_core()
        self._info(success)
        return FlowResult.success()

    async def _restart_core(self) -> None:
        try:
            await with_timeout(
                self._mutations.restart_core(),
                self._settings.toggle_timeout_s,
                label="Proxy core restart",
            )
        except OperationTimedOut:
            logger.warning("Proxy core restart still running; continuing")

    async def _finish(self) -> None:
        try:
            await self._cache.refetch()
        finally:
            self._cancel_requested = False
            self._set_state(OrchestratorState.IDLE, "")
            self._lock.release()

    def _set_state(self, state: OrchestratorState, label: str) -> None:
        if state is not self._state:
            logger.info("Service flow: %s -> %s", self._state.value, state.value)
        self._state = state
        self._stage_label = label
        self._emit()

    def _emit(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Orchestrator listener failed")

    def _info(self, message: str) -> None:
        self._notify(message, title="Success", kind="info")

    def _error(self, message: str) -> None:
        self._notify(message, title="Error", kind="error")
