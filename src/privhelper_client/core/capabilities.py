"""Callbacks the core uses to talk to the user, plus the action lock."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Literal, Protocol

from privhelper_client.core.models import PermissionKind

logger = logging.getLogger(__name__)

NoticeKind = Literal["info", "warning", "error"]


class Notifier(Protocol):
    def __call__(self, message: str, *, title: str, kind: NoticeKind) -> None: ...


Confirmer = Callable[[PermissionKind], Awaitable[bool]]


def log_notifier(message: str, *, title: str, kind: NoticeKind) -> None:
    level = {"info": logging.INFO, "warning": logging.WARNING}.get(kind, logging.ERROR)
    logger.log(level, "%s: %s", title, message)


class ActionLock:
    """Single-slot token; a held lock rejects further acquisitions."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._held = False

    @property
    def locked(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        if self._held:
            logger.info("%s already in progress; ignoring request", self.name)
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False
