"""Manual install/uninstall instructions for when automation stalls."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import shlex
import sys
from typing import Callable

from privhelper_client.core.errors import HelperMissingError
from privhelper_client.core.models import RecoveryContext
from privhelper_client.core.native_channel import HELPER_BINARY

logger = logging.getLogger(__name__)

HelperResolver = Callable[[], Path]
GuidePresenter = Callable[["ManualGuide"], None]


@dataclass(frozen=True, slots=True)
class ManualGuide:
    context: RecoveryContext
    title: str
    summary: str
    steps: tuple[str, ...]
    commands: tuple[str, ...]


def _quote(path: str) -> str:
    if sys.platform.startswith("win"):
        return f'"{path}"' if " " in path else path
    return shlex.quote(path)


def build_guide(context: RecoveryContext, helper: str, *, platform: str | None = None) -> ManualGuide:
    platform = platform or sys.platform
    verb = context.value
    helper_cmd = _quote(helper)

    if platform.startswith("win"):
        commands = (f"{helper_cmd} {verb}",)
        if context is RecoveryContext.INSTALL:
            commands = (*commands, f"{helper_cmd} start")
        steps = (
            "Open the Start menu, search for \"Command Prompt\", right-click it and choose "
            "\"Run as administrator\".",
            "Run the commands below in that window.",
            "Come back to this window; the status refreshes automatically.",
        )
    else:
        commands = (f"sudo {helper_cmd} {verb}",)
        if context is RecoveryContext.INSTALL:
            commands = (*commands, f"sudo {helper_cmd} start")
        steps = (
            "Open a terminal.",
            "Run the commands below and enter your password when asked.",
            "Come back to this window; the status refreshes automatically.",
        )

    if context is RecoveryContext.INSTALL:
        title = "Install the system service manually"
        summary = (
            "Automatic installation did not finish. If a permission prompt is still open, "
            "accept it; otherwise install the service manually."
        )
    else:
        title = "Uninstall the system service manually"
        summary = (
            "Automatic removal did not finish. If a permission prompt is still open, "
            "accept it; otherwise remove the service manually."
        )
    return ManualGuide(context=context, title=title, summary=summary, steps=steps, commands=commands)


class ManualRecoveryAdvisor:
    def __init__(self, resolve_helper: HelperResolver, presenter: GuidePresenter) -> None:
        self._resolve_helper = resolve_helper
        self._presenter = presenter

    def build_guide(self, context: RecoveryContext) -> ManualGuide:
        try:
            helper = str(self._resolve_helper())
        except HelperMissingError:
            helper = HELPER_BINARY
        return build_guide(context, helper)

    def advise(self, context: RecoveryContext) -> ManualGuide:
        guide = self.build_guide(context)
        logger.info("Offering manual %s instructions", context.value)
        self._presenter(guide)
        return guide
