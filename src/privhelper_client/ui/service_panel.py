"""Main window: service status, lifecycle buttons and mode switches."""

from __future__ import annotations

import logging
from typing import Callable

from PyQt6.QtCore import QObject, QRunnable, Qt, QThreadPool, pyqtSignal
from PyQt6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from privhelper_client.core.capabilities import NoticeKind
from privhelper_client.core.controller import ServiceController
from privhelper_client.core.diagnostics import collect_diagnostics
from privhelper_client.core.models import FlowResult, ModeAction, ServiceStatus, StatusInfo
from privhelper_client.core.orchestrator import OrchestratorSnapshot
from privhelper_client.core.recovery import ManualGuide
from privhelper_client.core.settings import AppSettings
from privhelper_client.ui.bridge import AsyncBridge
from privhelper_client.ui.dialogs import ManualRecoveryDialog, PermissionDialog

logger = logging.getLogger(__name__)

_STATUS_STYLE = {
    ServiceStatus.RUNNING: ("RUNNING", "color: #2e7d32; font-weight: 600;"),
    ServiceStatus.STOPPED: ("STOPPED", "color: #ef6c00; font-weight: 600;"),
    ServiceStatus.NOT_INSTALLED: ("NOT INSTALLED", "color: #c62828; font-weight: 600;"),
}


def hint_text(status: ServiceStatus | None, message: str = "") -> str:
    """Hint line under the controls; the last flow message wins over the status hint."""
    if message:
        return message
    if status is ServiceStatus.NOT_INSTALLED:
        return "Install the system service to enable service mode and avoid permission prompts."
    if status is ServiceStatus.STOPPED:
        return "Service not running, start the system service to enable service mode."
    return ""


class DiagnosticsWorkerSignals(QObject):
    result = pyqtSignal(str)
    error = pyqtSignal(str)


class DiagnosticsWorker(QRunnable):
    def __init__(self, fn: Callable[[], str]) -> None:
        super().__init__()
        self.fn = fn
        self.signals = DiagnosticsWorkerSignals()

    def run(self) -> None:
        try:
            text = self.fn()
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Diagnostics failed")
            self.signals.error.emit(str(exc))
            return
        self.signals.result.emit(text)


class ServicePanel(QMainWindow):
    status_changed = pyqtSignal(object)
    flow_changed = pyqtSignal(object)
    modes_changed = pyqtSignal(object)
    notice = pyqtSignal(str, str, str)
    guide_ready = pyqtSignal(object)

    def __init__(self, settings: AppSettings) -> None:
        super().__init__()
        self.setWindowTitle("System Service")
        self.resize(640, 320)

        self._bridge = AsyncBridge()
        self._bridge.confirm_requested.connect(self._on_confirm_requested)
        self._thread_pool = QThreadPool.globalInstance()
        self._recovery_dialogs: list[ManualRecoveryDialog] = []

        self.controller = ServiceController(
            settings,
            confirm=self._bridge.confirm,
            present_guide=self.guide_ready.emit,
            notify=self._notify_from_core,
        )

        self.status_label = QLabel("CHECKING…")
        self.status_label.setAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter)
        self.version_label = QLabel("")
        self.hint_label = QLabel("")
        self.hint_label.setProperty("role", "hint")
        self.hint_label.setWordWrap(True)

        self.stage_label = QLabel("")
        self.cancel_button = QPushButton("Cancel")
        self.cancel_button.setVisible(False)
        self.cancel_button.clicked.connect(self._on_cancel_clicked)

        self.install_button = QPushButton("Install")
        self.uninstall_button = QPushButton("Uninstall")
        self.start_button = QPushButton("Start")
        self.stop_button = QPushButton("Stop")
        self.install_button.clicked.connect(lambda: self._run_flow(self.controller.request_install()))
        self.uninstall_button.clicked.connect(self._on_uninstall_clicked)
        self.start_button.clicked.connect(lambda: self._run_flow(self.controller.request_start()))
        self.stop_button.clicked.connect(lambda: self._run_flow(self.controller.request_stop()))

        self.mode_buttons: dict[ModeAction, QPushButton] = {}
        for action in ModeAction:
            button = QPushButton(action.label)
            button.setCheckable(True)
            button.clicked.connect(lambda _checked, a=action: self._on_mode_clicked(a))
            self.mode_buttons[action] = button
        self.service_mode_button = QPushButton("Service Mode")
        self.service_mode_button.setCheckable(True)
        self.service_mode_button.clicked.connect(self._on_service_mode_clicked)

        self.refresh_button = QPushButton("Refresh")
        self.refresh_button.clicked.connect(self._on_refresh_clicked)
        self.copy_diagnostics_button = QPushButton("Copy diagnostics report")
        self.copy_diagnostics_button.clicked.connect(self._on_copy_diagnostics_clicked)

        status_row = QHBoxLayout()
        status_row.addWidget(QLabel("Status:"))
        status_row.addWidget(self.status_label, 1)
        status_row.addWidget(self.version_label)
        status_row.addWidget(self.refresh_button)

        action_row = QHBoxLayout()
        for button in (self.install_button, self.start_button, self.stop_button, self.uninstall_button):
            action_row.addWidget(button)
        action_row.addStretch(1)

        mode_row = QHBoxLayout()
        for button in (*self.mode_buttons.values(), self.service_mode_button):
            mode_row.addWidget(button)
        mode_row.addStretch(1)

        busy_row = QHBoxLayout()
        busy_row.addWidget(self.stage_label, 1)
        busy_row.addWidget(self.cancel_button)

        layout = QVBoxLayout()
        layout.addLayout(status_row)
        layout.addLayout(action_row)
        layout.addLayout(mode_row)
        layout.addLayout(busy_row)
        layout.addWidget(self.hint_label)
        layout.addStretch(1)
        layout.addWidget(self.copy_diagnostics_button, alignment=Qt.AlignmentFlag.AlignLeft)

        central = QWidget(self)
        central.setLayout(layout)
        self.setCentralWidget(central)

        self.status_changed.connect(self._on_status_changed)
        self.flow_changed.connect(self._on_flow_changed)
        self.modes_changed.connect(self._on_modes_changed)
        self.notice.connect(self._show_notice)
        self.guide_ready.connect(self._show_guide)

        # Listeners fire on the loop thread; the signals hop to the Qt thread.
        self.controller.cache.subscribe(self.status_changed.emit)
        self.controller.orchestrator.subscribe(self.flow_changed.emit)
        self.controller.modes.subscribe(self.modes_changed.emit)

        self._status: StatusInfo | None = None
        self._busy = False
        self._message = ""
        self._on_modes_changed(self.controller.modes.snapshot())
        self._render()

        self._bridge.start()
        self._bridge.call_soon(self.controller.start)

    def _notify_from_core(self, message: str, *, title: str, kind: NoticeKind) -> None:
        self.notice.emit(message, title, kind)

    def _set_message(self, message: str) -> None:
        self._message = message
        self._render()

    def _run_flow(self, coro) -> None:
        self._set_message("")
        self._bridge.submit(coro, on_result=self._on_flow_result, on_error=self._on_flow_error)

    def _on_flow_result(self, result: object) -> None:
        if isinstance(result, FlowResult) and not result.ok and result.error:
            self._set_message(result.error)

    def _on_flow_error(self, error: BaseException) -> None:
        logger.error("Service action failed", exc_info=error)
        self._show_notice(f"Operation failed: {error}", "Error", "error")

    def _on_uninstall_clicked(self) -> None:
        answer = QMessageBox.question(
            self,
            "Uninstall",
            "Are you sure you want to uninstall the system service? This will disable service mode.",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No,
        )
        if answer != QMessageBox.StandardButton.Yes:
            return
        self._run_flow(self.controller.request_uninstall())

    def _on_mode_clicked(self, action: ModeAction) -> None:
        # The button state follows the mode store, not the click.
        self.mode_buttons[action].setChecked(self.controller.modes.is_enabled(action))
        self._run_flow(self.controller.toggle_mode(action))

    def _on_service_mode_clicked(self) -> None:
        self.service_mode_button.setChecked(self.controller.modes.service_mode)
        self._run_flow(self.controller.toggle_service_mode())

    def _on_refresh_clicked(self) -> None:
        self._bridge.submit(self.controller.refresh_status())

    def _on_cancel_clicked(self) -> None:
        self._bridge.call_soon(self.controller.orchestrator.cancel)

    def _on_confirm_requested(self, kind: object, future: object) -> None:
        dialog = PermissionDialog(kind, parent=self)  # type: ignore[arg-type]
        accepted = dialog.exec() == PermissionDialog.DialogCode.Accepted
        self._bridge.answer(future, accepted)  # type: ignore[arg-type]

    def _on_status_changed(self, info: object) -> None:
        if isinstance(info, StatusInfo):
            self._status = info
        self._render()

    def _on_flow_changed(self, snapshot: object) -> None:
        if not isinstance(snapshot, OrchestratorSnapshot):  # pragma: no cover - defensive
            return
        self._busy = snapshot.is_busy
        self.stage_label.setText(f"Processing: {snapshot.stage_label}…" if snapshot.is_busy else "")
        self.cancel_button.setVisible(snapshot.can_cancel)
        self._render()

    def _on_modes_changed(self, flags: object) -> None:
        if not isinstance(flags, dict):  # pragma: no cover - defensive
            return
        for action, button in self.mode_buttons.items():
            button.setChecked(bool(flags.get(action.setting_key)))
        self.service_mode_button.setChecked(self.controller.modes.service_mode)

    def _render(self) -> None:
        status = self._status.status if self._status else None
        if status is None:
            self.status_label.setText("CHECKING…")
            self.status_label.setStyleSheet("")
            self.version_label.setText("")
        else:
            text, style = _STATUS_STYLE[status]
            self.status_label.setText(text)
            self.status_label.setStyleSheet(style)
            self.version_label.setText(self._status.version if self._status else "")

        self.install_button.setVisible(status is ServiceStatus.NOT_INSTALLED)
        self.start_button.setVisible(status is ServiceStatus.STOPPED)
        self.uninstall_button.setVisible(status is ServiceStatus.STOPPED)
        self.stop_button.setVisible(status is ServiceStatus.RUNNING)

        enabled = not self._busy and status is not None
        for button in (
            self.install_button,
            self.uninstall_button,
            self.start_button,
            self.stop_button,
            self.service_mode_button,
            *self.mode_buttons.values(),
        ):
            button.setEnabled(enabled)

        self.hint_label.setText(hint_text(status, self._message))

    def _show_notice(self, message: str, title: str, kind: str) -> None:
        if kind == "error":
            QMessageBox.critical(self, title, message)
        elif kind == "warning":
            QMessageBox.warning(self, title, message)
        else:
            self._set_message(message)

    def _show_guide(self, guide: object) -> None:
        if not isinstance(guide, ManualGuide):  # pragma: no cover - defensive
            return
        dialog = ManualRecoveryDialog(guide, parent=self)
        dialog.destroyed.connect(lambda _obj=None, d=dialog: self._forget_dialog(d))
        self._recovery_dialogs.append(dialog)
        dialog.show()

    def _forget_dialog(self, dialog: ManualRecoveryDialog) -> None:
        if dialog in self._recovery_dialogs:
            self._recovery_dialogs.remove(dialog)

    def _on_copy_diagnostics_clicked(self) -> None:
        settings = self.controller.settings
        status = self._status
        flags = self.controller.modes.snapshot()
        self.copy_diagnostics_button.setEnabled(False)

        worker = DiagnosticsWorker(lambda: collect_diagnostics(settings, status, flags))
        worker.signals.result.connect(self._on_diagnostics_result)
        worker.signals.error.connect(self._on_diagnostics_error)
        self._thread_pool.start(worker)

    def _on_diagnostics_result(self, text: str) -> None:
        QApplication.clipboard().setText(text)
        self.copy_diagnostics_button.setEnabled(True)
        self._set_message("Diagnostics copied to clipboard.")

    def _on_diagnostics_error(self, message: str) -> None:
        self.copy_diagnostics_button.setEnabled(True)
        self._set_message(f"Diagnostics error: {message}")

    def closeEvent(self, event) -> None:  # type: ignore[override]
        try:
            self._bridge.run_sync(self.controller.close())
        except Exception:  # pragma: no cover - defensive
            logger.exception("Failed to stop status polling")
        self._bridge.stop()
        super().closeEvent(event)
