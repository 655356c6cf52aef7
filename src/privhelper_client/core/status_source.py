"""Service status lookup through the native channel or the local HTTP API.

Both sources are total: every failure becomes ``StatusInfo.not_installed()``.
An unreachable service is treated the same as an absent one.
"""

from __future__ import annotations

import asyncio
import enum
from functools import lru_cache
import json
import logging
import os
from typing import Any, Final, Protocol
import urllib.error
import urllib.request

from privhelper_client.core.errors import AppError, HelperMissingError
from privhelper_client.core.logging_setup import redact
from privhelper_client.core.models import StatusInfo
from privhelper_client.core.native_channel import NativeChannel, find_helper_binary
from privhelper_client.core.settings import ENV_RUN_CONTEXT, AppSettings

logger = logging.getLogger(__name__)

STATUS_PATH: Final[str] = "/__local_api/service/status"
HTTP_TIMEOUT_S: Final[float] = 3.0

# Substrings meaning "the helper (or its command) is not there". Free-text
# matching is brittle across helper upgrades; keep every variant in this table.
NOT_INSTALLED_MARKERS: Final[tuple[str, ...]] = (
    "executable not found",
    "not installed",
    "not found",
    "does not exist",
    "no such file",
    "failed to execute",
    "command not recognized",
    "is not recognized as an internal or external command",
    "找不到",
    "不存在",
    "未安装",
    "不是内部或外部命令",
)


class StatusSource(Protocol):
    async def fetch_status(self) -> StatusInfo: ...


def looks_not_installed(message: str) -> bool:
    text = (message or "").casefold()
    return any(marker.casefold() in text for marker in NOT_INSTALLED_MARKERS)


class NativeStatusSource:
    def __init__(self, channel: NativeChannel) -> None:
        self._channel = channel

    async def fetch_status(self) -> StatusInfo:
        try:
            payload = await self._channel.status()
        except Exception as exc:
            message = exc.user_message if isinstance(exc, AppError) else ""
            text = f"{exc} {message}"
            if isinstance(exc, HelperMissingError) or looks_not_installed(text):
                logger.debug("Service appears not installed: %s", redact(str(exc)))
            else:
                logger.warning("Service status command failed: %s", redact(str(exc)))
            return StatusInfo.not_installed()

        if payload.get("error"):
            logger.warning("Service status command returned error: %s", redact(str(payload["error"])))
            return StatusInfo.not_installed()
        return StatusInfo.from_payload(payload)


class HttpStatusSource:
    def __init__(self, base_url: str, *, path: str = STATUS_PATH, timeout_s: float = HTTP_TIMEOUT_S) -> None:
        self.url = base_url.rstrip("/") + path
        self._timeout_s = timeout_s

    def fetch_status_sync(self) -> StatusInfo:
        request = urllib.request.Request(
            self.url,
            headers={
                "Accept": "application/json",
                "Cache-Control": "no-cache, no-store",
                "Pragma": "no-cache",
            },
            method="GET",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_s) as response:
                status = getattr(response, "status", None)
                body = response.read()
        except urllib.error.HTTPError as exc:
            logger.warning("Local API failed with status: %s", exc.code)
            return StatusInfo.not_installed()
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            logger.warning("Failed to query local API, treating as not installed: %s", exc)
            return StatusInfo.not_installed()

        if status is not None and not 200 <= int(status) < 300:
            logger.warning("Local API failed with status: %s", status)
            return StatusInfo.not_installed()

        try:
            data: Any = json.loads(body.decode("utf-8") if body else "{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Local API returned invalid JSON: %s", exc)
            return StatusInfo.not_installed()
        if not isinstance(data, dict):
            return StatusInfo.not_installed()

        # The local API knows nothing about the helper's name or endpoint.
        return StatusInfo.from_payload(
            {"status": data.get("status"), "version": data.get("version")}
        )

    async def fetch_status(self) -> StatusInfo:
        return await asyncio.to_thread(self.fetch_status_sync)


class RunContext(enum.Enum):
    NATIVE = "native"
    WEB = "web"


_CONTEXT_ALIASES: Final[dict[str, RunContext]] = {
    "native": RunContext.NATIVE,
    "web": RunContext.WEB,
    "http": RunContext.WEB,
}


@lru_cache(maxsize=1)
def detect_run_context(settings: AppSettings) -> RunContext:
    """Pick the transport once; the choice holds for the process lifetime."""
    if settings.transport != "auto":
        context = _CONTEXT_ALIASES[settings.transport]
        logger.info("Run context from settings: %s", context.value)
        return context

    override = os.environ.get(ENV_RUN_CONTEXT, "").strip().lower()
    if override in _CONTEXT_ALIASES:
        context = _CONTEXT_ALIASES[override]
        logger.info("Run context from %s: %s", ENV_RUN_CONTEXT, context.value)
        return context

    try:
        find_helper_binary(settings)
    except HelperMissingError:
        logger.info("Helper executable not found; using local HTTP status API")
        return RunContext.WEB
    return RunContext.NATIVE


def create_status_source(settings: AppSettings, channel: NativeChannel) -> StatusSource:
    if detect_run_context(settings) is RunContext.NATIVE:
        return NativeStatusSource(channel)
    return HttpStatusSource(settings.local_api_base)
