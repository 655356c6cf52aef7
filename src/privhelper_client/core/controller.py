"""Wiring of the status, lifecycle and gate components behind one facade."""

from __future__ import annotations

import logging

from privhelper_client.core.capabilities import Confirmer, Notifier, log_notifier
from privhelper_client.core.mode_gate import ModeGate
from privhelper_client.core.mode_store import ModeStore
from privhelper_client.core.models import FlowResult, ModeAction, StatusInfo
from privhelper_client.core.mutations import ServiceMutations
from privhelper_client.core.native_channel import NativeChannel
from privhelper_client.core.orchestrator import LifecycleOrchestrator
from privhelper_client.core.recovery import GuidePresenter, ManualRecoveryAdvisor
from privhelper_client.core.settings import AppSettings
from privhelper_client.core.status_cache import StatusCache
from privhelper_client.core.status_source import StatusSource, create_status_source

logger = logging.getLogger(__name__)


class ServiceController:
    """What the UI talks to. Coroutines run on the event loop thread."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        confirm: Confirmer,
        present_guide: GuidePresenter,
        notify: Notifier = log_notifier,
        channel: NativeChannel | None = None,
        source: StatusSource | None = None,
        modes: ModeStore | None = None,
    ) -> None:
        self.settings = settings
        self.channel = channel or NativeChannel(settings)
        self.cache = StatusCache(
            source or create_status_source(settings, self.channel),
            interval_s=settings.status_interval_s,
        )
        self.modes = modes or ModeStore(self.channel)
        self.mutations = ServiceMutations(self.channel, self.cache)
        self.advisor = ManualRecoveryAdvisor(self.channel.helper_path, present_guide)
        self.orchestrator = LifecycleOrchestrator(
            self.mutations,
            self.cache,
            self.modes,
            self.advisor,
            notify=notify,
            settings=settings,
        )
        self.gate = ModeGate(
            self.cache,
            self.modes,
            self.orchestrator,
            confirm,
            notify=notify,
            toggle_timeout_s=settings.toggle_timeout_s,
        )

    def start(self) -> None:
        logger.info("Starting service status polling every %ss", self.cache.interval_s)
        self.cache.start()

    async def close(self) -> None:
        await self.cache.close()

    def get_status(self) -> StatusInfo | None:
        return self.cache.current()

    async def refresh_status(self) -> StatusInfo:
        return await self.cache.refetch()

    async def request_install(self, pending_mode: ModeAction | None = None) -> FlowResult:
        return await self.orchestrator.request_install(pending_mode)

    async def request_uninstall(self) -> FlowResult:
        return await self.orchestrator.request_uninstall()

    async def request_start(self) -> FlowResult:
        return await self.orchestrator.request_start()

    async def request_stop(self) -> FlowResult:
        return await self.orchestrator.request_stop()

    async def toggle_mode(self, action: ModeAction) -> FlowResult:
        return await self.gate.request_toggle(action)

    async def toggle_service_mode(self) -> FlowResult:
        return await self.gate.request_service_mode_toggle()
