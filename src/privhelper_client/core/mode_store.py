"""Persisted state of the service-dependent modes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Final, Protocol

from privhelper_client.core.errors import AppError, OperationFailedError
from privhelper_client.core.models import ModeAction
from privhelper_client.core.storage import get_state_dir, load_json, save_json

logger = logging.getLogger(__name__)

MODES_FILE: Final[str] = "modes.json"
SERVICE_MODE_KEY: Final[str] = "enable_service_mode"

ModeListener = Callable[[dict[str, bool]], None]


class ModeChannel(Protocol):
    async def set_mode(self, command: str, enabled: bool) -> None: ...


class ModeStore:
    def __init__(self, channel: ModeChannel, *, path: Path | None = None) -> None:
        self._channel = channel
        self.path = path or (get_state_dir() / MODES_FILE)
        self._flags: dict[str, bool] = {}
        self._listeners: list[ModeListener] = []
        self.load()

    def load(self) -> None:
        data: Any = load_json(self.path, {})
        flags: dict[str, bool] = {}
        if isinstance(data, dict):
            for key in (*(a.setting_key for a in ModeAction), SERVICE_MODE_KEY):
                flags[key] = data.get(key) is True
        self._flags = flags

    def snapshot(self) -> dict[str, bool]:
        return dict(self._flags)

    def subscribe(self, listener: ModeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def is_enabled(self, action: ModeAction) -> bool:
        return self._flags.get(action.setting_key, False)

    def enabled_actions(self) -> list[ModeAction]:
        return [action for action in ModeAction if self.is_enabled(action)]

    @property
    def service_mode(self) -> bool:
        return self._flags.get(SERVICE_MODE_KEY, False)

    def set_service_mode(self, enabled: bool) -> None:
        self._update(SERVICE_MODE_KEY, enabled)

    async def set_enabled(self, action: ModeAction, enabled: bool) -> None:
        logger.info("%s -> %s", action.label, "on" if enabled else "off")
        try:
            await self._channel.set_mode(action.native_command, enabled)
        except AppError as exc:
            raise OperationFailedError(action.value, exc.user_message) from exc
        self._update(action.setting_key, enabled)

    async def toggle(self, action: ModeAction) -> bool:
        enabled = not self.is_enabled(action)
        await self.set_enabled(action, enabled)
        return enabled

    def _update(self, key: str, value: bool) -> None:
        if self._flags.get(key) == value:
            return
        self._flags[key] = value
        save_json(self.path, self._flags)
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Mode listener failed")
