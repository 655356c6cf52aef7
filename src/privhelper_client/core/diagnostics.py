"""Diagnostics collection."""

from __future__ import annotations

import platform
import sys

from privhelper_client.core.errors import HelperMissingError
from privhelper_client.core.mode_store import SERVICE_MODE_KEY
from privhelper_client.core.models import ModeAction, ServiceStatus, StatusInfo
from privhelper_client.core.native_channel import find_helper_binary
from privhelper_client.core.settings import AppSettings
from privhelper_client.core.status_source import detect_run_context
from privhelper_client.core.storage import get_logs_dir


def recommendations(status: StatusInfo | None, *, service_mode: bool) -> list[str]:
    if status is None:
        return ["Service status has not been read yet."]
    out: list[str] = []
    if status.status is ServiceStatus.NOT_INSTALLED:
        out.append(
            "Install the system service to enable System Proxy and TUN mode without "
            "repeated permission prompts."
        )
    elif status.status is ServiceStatus.STOPPED:
        out.append("The system service is installed but stopped. Start it to use service mode.")
    if service_mode and status.status is not ServiceStatus.RUNNING:
        out.append("Service mode is enabled but the service is not running; check the service status.")
    if not out:
        out.append("The system service is running.")
    return out


def collect_diagnostics(
    settings: AppSettings,
    status: StatusInfo | None,
    modes: dict[str, bool],
) -> str:
    lines: list[str] = []
    lines.append("privhelper-client diagnostics")
    lines.append("")

    lines.append("System")
    lines.append(f"- OS: {platform.system()} {platform.release()}")
    lines.append(f"- Arch: {platform.machine()}")
    lines.append(f"- Python: {sys.version.split()[0]}")
    lines.append("")

    lines.append("Service")
    lines.append(f"- Name: {settings.service_name}")
    lines.append(f"- Run context: {detect_run_context(settings).value}")
    try:
        lines.append(f"- Helper: {find_helper_binary(settings)}")
    except HelperMissingError:
        lines.append("- Helper: not found")
    if status is None:
        lines.append("- Status: pending")
    else:
        lines.append(f"- Status: {status.status.value}")
        if status.version:
            lines.append(f"- Version: {status.version}")
        if status.server_endpoint:
            lines.append("- Server endpoint: present")
    lines.append("")

    lines.append("Modes")
    for action in ModeAction:
        lines.append(f"- {action.label}: {'on' if modes.get(action.setting_key) else 'off'}")
    lines.append(f"- Service Mode: {'on' if modes.get(SERVICE_MODE_KEY) else 'off'}")
    lines.append("")

    lines.append("Recommendations")
    for line in recommendations(status, service_mode=bool(modes.get(SERVICE_MODE_KEY))):
        lines.append(f"- {line}")
    lines.append("")

    lines.append("Paths")
    lines.append(f"- Logs: {get_logs_dir()}")
    lines.append("")

    return "\n".join(lines)
