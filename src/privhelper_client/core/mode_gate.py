"""Service-readiness gate in front of the System Proxy and TUN switches."""

from __future__ import annotations

import logging

from privhelper_client.core.capabilities import ActionLock, Confirmer, Notifier, log_notifier
from privhelper_client.core.errors import OperationFailedError, OperationTimedOut
from privhelper_client.core.mode_store import ModeStore
from privhelper_client.core.models import FlowResult, ModeAction, Outcome, ServiceStatus
from privhelper_client.core.orchestrator import LifecycleOrchestrator
from privhelper_client.core.status_cache import StatusCache
from privhelper_client.core.timeouts import with_timeout

logger = logging.getLogger(__name__)

DEFAULT_TOGGLE_TIMEOUT_S = 30.0


class ModeGate:
    def __init__(
        self,
        cache: StatusCache,
        modes: ModeStore,
        orchestrator: LifecycleOrchestrator,
        confirm: Confirmer,
        *,
        notify: Notifier = log_notifier,
        toggle_timeout_s: float = DEFAULT_TOGGLE_TIMEOUT_S,
    ) -> None:
        self._cache = cache
        self._modes = modes
        self._orchestrator = orchestrator
        self._confirm = confirm
        self._notify = notify
        self._toggle_timeout_s = toggle_timeout_s
        self._locks = {action: ActionLock(action.label) for action in ModeAction}

    def is_busy(self, action: ModeAction) -> bool:
        return self._locks[action].locked

    async def request_toggle(self, action: ModeAction) -> FlowResult:
        lock = self._locks[action]
        if not lock.try_acquire():
            return FlowResult.busy()
        try:
            return await self._toggle(action)
        finally:
            lock.release()

    async def _toggle(self, action: ModeAction) -> FlowResult:
        if self._modes.is_enabled(action):
            # Turning a mode off never needs the service.
            return await self._set(action, False)

        info = await self._cache.get()
        if info.status is ServiceStatus.NOT_INSTALLED:
            logger.info("%s requested but service is not installed; asking for permission", action.label)
            if not await self._confirm(action.permission):
                logger.info("%s: permission declined", action.label)
                return FlowResult(Outcome.DECLINED, "Permission declined")
            return await self._orchestrator.request_install(action)

        return await self._set(action, True)

    async def _set(self, action: ModeAction, enabled: bool) -> FlowResult:
        verb = "Activation" if enabled else "Deactivation"
        try:
            await with_timeout(
                self._modes.set_enabled(action, enabled),
                self._toggle_timeout_s,
                label=f"{verb} {action.label}",
            )
        except OperationTimedOut as exc:
            self._notify(exc.user_message, title="Error", kind="error")
            return FlowResult(Outcome.TIMED_OUT, str(exc))
        except OperationFailedError as exc:
            self._notify(
                f"{verb} {action.label} failed!\nError: {exc.reason}",
                title="Error",
                kind="error",
            )
            return FlowResult(Outcome.FAILED, exc.reason)
        self._cache.invalidate()
        return FlowResult.success()

    async def request_service_mode_toggle(self) -> FlowResult:
        if self._modes.service_mode:
            self._modes.set_service_mode(False)
            return FlowResult.success()

        info = await self._cache.get()
        if info.status is not ServiceStatus.RUNNING:
            if info.status is ServiceStatus.NOT_INSTALLED:
                message = "Service not installed, please install the system service first"
            else:
                message = "Service not running, please start the system service first"
            self._notify(message, title="Service Mode", kind="warning")
            return FlowResult(Outcome.DECLINED, message)

        self._modes.set_service_mode(True)
        return FlowResult.success()
