"""Value types shared by the service lifecycle components."""

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Any


class ServiceStatus(enum.Enum):
    NOT_INSTALLED = "not_installed"
    STOPPED = "stopped"
    RUNNING = "running"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ServiceStatus):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ServiceStatus):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ServiceStatus):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ServiceStatus):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, raw: Any) -> "ServiceStatus":
        value = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
        for member in cls:
            if member.value == value:
                return member
        return cls.NOT_INSTALLED


_STATUS_RANK = {
    ServiceStatus.NOT_INSTALLED: 0,
    ServiceStatus.STOPPED: 1,
    ServiceStatus.RUNNING: 2,
}


@dataclass(frozen=True, slots=True)
class StatusInfo:
    name: str
    version: str
    status: ServiceStatus
    server_endpoint: str | None = None

    @classmethod
    def not_installed(cls) -> "StatusInfo":
        return cls(name="", version="", status=ServiceStatus.NOT_INSTALLED, server_endpoint=None)

    @classmethod
    def from_payload(cls, payload: Any) -> "StatusInfo":
        if not isinstance(payload, dict):
            return cls.not_installed()
        server = payload.get("server")
        if server is None:
            server = payload.get("server_endpoint")
        return cls(
            name=str(payload.get("name") or ""),
            version=str(payload.get("version") or ""),
            status=ServiceStatus.parse(payload.get("status")),
            server_endpoint=str(server) if server else None,
        )

    @property
    def installed(self) -> bool:
        return self.status is not ServiceStatus.NOT_INSTALLED


class ModeAction(enum.Enum):
    SYSTEM_PROXY = "system_proxy"
    TUN = "tun"

    @property
    def setting_key(self) -> str:
        if self is ModeAction.SYSTEM_PROXY:
            return "enable_system_proxy"
        return "enable_tun_mode"

    @property
    def label(self) -> str:
        if self is ModeAction.SYSTEM_PROXY:
            return "System Proxy"
        return "TUN Mode"

    @property
    def native_command(self) -> str:
        if self is ModeAction.SYSTEM_PROXY:
            return "set-system-proxy"
        return "set-tun"

    @property
    def permission(self) -> "PermissionKind":
        if self is ModeAction.SYSTEM_PROXY:
            return PermissionKind.PROXY
        return PermissionKind.TUN


@dataclass(frozen=True, slots=True)
class PendingInstall:
    requested_mode: ModeAction | None = None


class Outcome(enum.Enum):
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    BUSY = "busy"
    DECLINED = "declined"


@dataclass(frozen=True, slots=True)
class FlowResult:
    outcome: Outcome
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK

    @classmethod
    def success(cls) -> "FlowResult":
        return cls(Outcome.OK)

    @classmethod
    def busy(cls) -> "FlowResult":
        return cls(Outcome.BUSY, "Another service operation is in progress")


class OrchestratorState(enum.Enum):
    IDLE = "idle"
    INSTALLING = "installing"
    VERIFYING_INSTALL = "verifying_install"
    STARTING_FOR_MODE = "starting_for_mode"
    UNINSTALLING = "uninstalling"
    STARTING = "starting"
    STOPPING = "stopping"


class RecoveryContext(enum.Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"


@dataclass(frozen=True, slots=True)
class PermissionInfo:
    title: str
    description: str
    details: str
    warning: str


class PermissionKind(enum.Enum):
    TUN = "tun"
    PROXY = "proxy"

    @property
    def info(self) -> PermissionInfo:
        return _PERMISSION_INFO[self]


_PERMISSION_INFO = {
    PermissionKind.TUN: PermissionInfo(
        title="TUN Mode Permission Required",
        description="TUN mode requires special network permissions to function properly.",
        details=(
            "This will install the system service, which grants the proxy core the "
            "capabilities (CAP_NET_ADMIN) needed to create and manage TUN interfaces."
        ),
        warning="Administrator privileges may be required for this operation.",
    ),
    PermissionKind.PROXY: PermissionInfo(
        title="System Proxy Permission Required",
        description="System proxy requires permission to modify network settings.",
        details=(
            "The system service is not installed. Installing it lets the application "
            "change system proxy settings without repeated prompts."
        ),
        warning="On macOS, you may need to grant accessibility permissions in System Settings.",
    ),
}
