from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import pytest

from privhelper_client.core.errors import ServiceCommandError
from privhelper_client.core.mode_gate import ModeGate
from privhelper_client.core.mode_store import ModeStore
from privhelper_client.core.models import PermissionKind
from privhelper_client.core.mutations import ServiceMutations
from privhelper_client.core.orchestrator import LifecycleOrchestrator
from privhelper_client.core.recovery import ManualGuide, ManualRecoveryAdvisor
from privhelper_client.core.settings import AppSettings
from privhelper_client.core.status_cache import StatusCache
from privhelper_client.core.status_source import NativeStatusSource

HELPER = Path("/opt/privhelper/privhelper-service")

_EFFECTS: dict[str, str] = {
    "install": "stopped",
    "uninstall": "not_installed",
    "start": "running",
    "stop": "stopped",
}


class FakeChannel:
    """In-memory helper: verbs change the reported status like the real one."""

    def __init__(self, status: str = "not_installed") -> None:
        self.status_payload: dict[str, Any] = {
            "name": "privhelper-service",
            "version": "1.4.2",
            "status": status,
            "server": None,
        }
        self.calls: list[tuple[str, ...]] = []
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.status_calls = 0

    def fail(self, command: str, detail: str = "boom") -> None:
        self.errors[command] = ServiceCommandError(command, detail)

    def commands(self) -> list[str]:
        return [call[0] for call in self.calls]

    def helper_path(self) -> Path:
        return HELPER

    async def invoke(self, command: str, *args: str, timeout_s: float | None = None) -> dict[str, Any]:
        self.calls.append((command, *args))
        delay = self.delays.get(command)
        if delay:
            await asyncio.sleep(delay)
        error = self.errors.get(command)
        if error is not None:
            raise error
        if command in _EFFECTS:
            self.status_payload["status"] = _EFFECTS[command]
        return {}

    async def status(self) -> dict[str, Any]:
        self.status_calls += 1
        error = self.errors.get("status")
        if error is not None:
            raise error
        return dict(self.status_payload)

    async def set_mode(self, command: str, enabled: bool) -> None:
        await self.invoke(command, "on" if enabled else "off")

    async def restart_core(self) -> None:
        await self.invoke("restart-core")


@dataclass
class Harness:
    channel: FakeChannel
    cache: StatusCache
    modes: ModeStore
    orchestrator: LifecycleOrchestrator
    gate: ModeGate
    notices: list[tuple[str, str, str]] = field(default_factory=list)
    guides: list[ManualGuide] = field(default_factory=list)
    confirms: list[PermissionKind] = field(default_factory=list)
    confirm_answer: bool = True

    def non_status_commands(self) -> list[str]:
        return [c for c in self.channel.commands() if c != "restart-core"]


FAST_SETTINGS = AppSettings(
    install_timeout_s=1.0,
    uninstall_timeout_s=1.0,
    start_timeout_s=1.0,
    toggle_timeout_s=1.0,
    verify_attempts=3,
    verify_delay_s=0.0,
)


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def make_harness(tmp_path: Path) -> Callable[..., Harness]:
    def _build(status: str = "not_installed", settings: AppSettings = FAST_SETTINGS) -> Harness:
        channel = FakeChannel(status)
        cache = StatusCache(NativeStatusSource(channel), interval_s=settings.status_interval_s)
        modes = ModeStore(channel, path=tmp_path / "modes.json")
        notices: list[tuple[str, str, str]] = []
        guides: list[ManualGuide] = []

        def notify(message: str, *, title: str, kind: str) -> None:
            notices.append((kind, title, message))

        advisor = ManualRecoveryAdvisor(channel.helper_path, guides.append)
        orchestrator = LifecycleOrchestrator(
            ServiceMutations(channel, cache),  # type: ignore[arg-type]
            cache,
            modes,
            advisor,
            notify=notify,
            settings=settings,
        )
        harness = Harness(
            channel=channel,
            cache=cache,
            modes=modes,
            orchestrator=orchestrator,
            gate=None,  # type: ignore[arg-type]
            notices=notices,
            guides=guides,
        )

        async def confirm(kind: PermissionKind) -> bool:
            harness.confirms.append(kind)
            return harness.confirm_answer

        harness.gate = ModeGate(
            cache, modes, orchestrator, confirm, notify=notify, toggle_timeout_s=settings.toggle_timeout_s
        )
        return harness

    return _build
