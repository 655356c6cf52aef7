"""Permission confirmation and manual recovery dialogs."""

from __future__ import annotations

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import (
    QApplication,
    QDialog,
    QDialogButtonBox,
    QLabel,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
)

from privhelper_client.core.models import PermissionKind
from privhelper_client.core.recovery import ManualGuide


class PermissionDialog(QDialog):
    def __init__(self, kind: PermissionKind, parent=None) -> None:
        super().__init__(parent)
        info = kind.info
        self.setWindowTitle(info.title)
        self.setModal(True)
        self.resize(520, 240)

        description = QLabel(info.description)
        description.setWordWrap(True)
        details = QLabel(info.details)
        details.setWordWrap(True)
        details.setProperty("role", "hint")
        warning = QLabel(info.warning)
        warning.setWordWrap(True)
        warning.setStyleSheet("color: #ef6c00;")

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Cancel)
        grant = buttons.addButton("Install && Grant", QDialogButtonBox.ButtonRole.AcceptRole)
        grant.setDefault(True)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)

        layout = QVBoxLayout()
        layout.setContentsMargins(14, 14, 14, 14)
        layout.setSpacing(10)
        layout.addWidget(description)
        layout.addWidget(details)
        layout.addWidget(warning)
        layout.addStretch(1)
        layout.addWidget(buttons)
        self.setLayout(layout)


class ManualRecoveryDialog(QDialog):
    """Non-modal; stays open until the user closes it."""

    def __init__(self, guide: ManualGuide, parent=None) -> None:
        super().__init__(parent)
        self._guide = guide
        self.setWindowTitle(guide.title)
        self.setModal(False)
        self.setAttribute(Qt.WidgetAttribute.WA_DeleteOnClose)
        self.resize(600, 360)

        summary = QLabel(guide.summary)
        summary.setWordWrap(True)

        steps = QLabel("\n".join(f"{i}. {step}" for i, step in enumerate(guide.steps, start=1)))
        steps.setWordWrap(True)

        self.commands = QPlainTextEdit("\n".join(guide.commands))
        self.commands.setReadOnly(True)
        self.commands.setMaximumHeight(90)

        self.copy_button = QPushButton("Copy commands")
        self.copy_button.clicked.connect(self._copy_commands)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Close)
        buttons.rejected.connect(self.close)

        layout = QVBoxLayout()
        layout.setContentsMargins(14, 14, 14, 14)
        layout.setSpacing(10)
        layout.addWidget(summary)
        layout.addWidget(steps)
        layout.addWidget(self.commands)
        layout.addWidget(self.copy_button, alignment=Qt.AlignmentFlag.AlignLeft)
        layout.addWidget(buttons)
        self.setLayout(layout)

    def _copy_commands(self) -> None:
        QApplication.clipboard().setText("\n".join(self._guide.commands))
        self.copy_button.setText("Copied")
