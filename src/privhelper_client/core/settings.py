"""Client settings loaded from the user config directory."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import logging
import os
from pathlib import Path
from typing import Any, Final, Literal

from privhelper_client.core.storage import get_config_dir, load_json

logger = logging.getLogger(__name__)

SETTINGS_FILE: Final[str] = "settings.json"
ENV_RUN_CONTEXT: Final[str] = "PRIVHELPER_RUN_CONTEXT"
ENV_HELPER_PATH: Final[str] = "PRIVHELPER_HELPER_PATH"

TransportName = Literal["auto", "native", "http"]
_TRANSPORTS: Final[set[str]] = {"auto", "native", "http"}


@dataclass(frozen=True, slots=True)
class AppSettings:
    service_name: str = "privhelper-service"
    helper_path: str | None = None
    transport: TransportName = "auto"
    local_api_base: str = "http://127.0.0.1:4900"
    status_interval_s: float = 5.0
    install_timeout_s: float = 60.0
    uninstall_timeout_s: float = 60.0
    start_timeout_s: float = 30.0
    toggle_timeout_s: float = 30.0
    verify_attempts: int = 10
    verify_delay_s: float = 0.5


_DEFAULTS = AppSettings()


def _coerce(name: str, raw: Any, default: Any) -> Any:
    if name == "transport":
        value = str(raw).strip().lower()
        if value not in _TRANSPORTS:
            raise ValueError(f"unknown transport {raw!r}")
        return value
    if name == "helper_path":
        if raw is None:
            return None
        text = str(raw).strip()
        return text or None
    if isinstance(default, bool):
        raise ValueError("boolean settings are not supported")
    if isinstance(default, int):
        value = int(raw)
        if value < 1:
            raise ValueError(f"{name} must be >= 1")
        return value
    if isinstance(default, float):
        value = float(raw)
        if value < 0:
            raise ValueError(f"{name} must be >= 0")
        return value
    text = str(raw).strip()
    if not text:
        raise ValueError(f"{name} must not be empty")
    return text


def settings_from_dict(data: Any) -> AppSettings:
    if not isinstance(data, dict):
        return _DEFAULTS
    known = {f.name: getattr(_DEFAULTS, f.name) for f in fields(AppSettings)}
    values: dict[str, Any] = {}
    for key, raw in data.items():
        if key not in known:
            continue
        try:
            values[key] = _coerce(key, raw, known[key])
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid setting %s=%r: %s", key, raw, exc)
    return replace(_DEFAULTS, **values)


def load_settings(path: Path | None = None) -> AppSettings:
    path = path or (get_config_dir() / SETTINGS_FILE)
    settings = settings_from_dict(load_json(path, {}))

    helper_override = os.environ.get(ENV_HELPER_PATH, "").strip()
    if helper_override:
        settings = replace(settings, helper_path=helper_override)
    return settings
