"""Command channel to the privileged helper's control executable.

Every verb is a separate process invocation of the helper binary:

    <helper> <command> [args...] --json

The helper prints a JSON object on success and exits non-zero with a message on
stderr on failure. Calls run in a worker thread so the event loop stays
responsive while an elevation prompt is pending.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
import shlex
import shutil
import subprocess
import sys
from typing import Any, Final

from privhelper_client.core.errors import HelperMissingError, ServiceCommandError
from privhelper_client.core.logging_setup import redact
from privhelper_client.core.settings import AppSettings

logger = logging.getLogger(__name__)

HELPER_BINARY: Final[str] = "privhelper-service"
STATUS_TIMEOUT_S: Final[float] = 5.0


def _binary_name() -> str:
    return f"{HELPER_BINARY}.exe" if sys.platform.startswith("win") else HELPER_BINARY


def _candidate_dirs() -> list[Path]:
    exe_dir = Path(sys.executable).resolve().parent
    return [exe_dir, exe_dir / "resources", Path(sys.argv[0]).resolve().parent]


def find_helper_binary(settings: AppSettings) -> Path:
    if settings.helper_path:
        candidate = Path(settings.helper_path).expanduser()
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate
        raise HelperMissingError(
            f"Helper executable not found: {candidate}",
            user_message=f"Service helper executable not found at {candidate}.",
        )

    found = shutil.which(_binary_name())
    if found:
        return Path(found)

    for directory in _candidate_dirs():
        candidate = directory / _binary_name()
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate

    raise HelperMissingError(
        f"Helper executable not found: {_binary_name()}",
        user_message="Service helper executable not found. Reinstall the application.",
    )


def _format_cmd(cmd: list[str]) -> str:
    try:
        return shlex.join(cmd)
    except Exception:
        return str(cmd)


def _run(cmd: list[str], *, timeout_s: float | None) -> subprocess.CompletedProcess[str]:
    command_text = _format_cmd(cmd)
    logger.info("Running command: %s", command_text)
    try:
        result = subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except subprocess.TimeoutExpired as exc:
        logger.warning("Command timed out: %s", command_text)
        raise ServiceCommandError(
            command_text,
            f"timed out after {timeout_s}s",
            user_message="Timed out while talking to the system service.",
        ) from exc
    except FileNotFoundError as exc:
        raise HelperMissingError(
            f"Helper executable not found: {cmd[0]}",
            user_message="Service helper executable not found.",
        ) from exc
    except OSError as exc:
        logger.warning("Command execution failed: %s: %s", command_text, exc)
        raise ServiceCommandError(command_text, f"failed to execute: {exc}") from exc

    stdout = (result.stdout or "").strip()
    stderr = (result.stderr or "").strip()
    logger.info(
        "Command result rc=%s cmd=%s stdout=%r stderr=%r",
        result.returncode,
        command_text,
        redact(stdout),
        redact(stderr),
    )

    if result.returncode != 0:
        detail = stderr or stdout or "unknown error"
        raise ServiceCommandError(command_text, detail)

    return result


def _parse_output(command: str, stdout: str) -> dict[str, Any]:
    text = (stdout or "").strip()
    if not text:
        return {}
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ServiceCommandError(command, f"invalid JSON output: {exc}") from exc
    if not isinstance(payload, dict):
        raise ServiceCommandError(command, "unexpected JSON output")
    return payload


class NativeChannel:
    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings

    def helper_path(self) -> Path:
        return find_helper_binary(self._settings)

    def build_command(self, command: str, *args: str) -> list[str]:
        return [str(self.helper_path()), command, *args, "--json"]

    def invoke_sync(
        self, command: str, *args: str, timeout_s: float | None = None
    ) -> dict[str, Any]:
        cmd = self.build_command(command, *args)
        result = _run(cmd, timeout_s=timeout_s)
        return _parse_output(command, result.stdout)

    async def invoke(
        self, command: str, *args: str, timeout_s: float | None = None
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self.invoke_sync, command, *args, timeout_s=timeout_s)

    async def status(self) -> dict[str, Any]:
        return await self.invoke("status", timeout_s=STATUS_TIMEOUT_S)

    async def set_mode(self, command: str, enabled: bool) -> None:
        await self.invoke(command, "on" if enabled else "off")

    async def restart_core(self) -> None:
        await self.invoke("restart-core")
