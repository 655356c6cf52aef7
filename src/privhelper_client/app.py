"""Application entry point."""

from __future__ import annotations

import logging
import sys

from PyQt6.QtWidgets import QApplication

from privhelper_client.core.logging_setup import setup_logging
from privhelper_client.core.settings import load_settings
from privhelper_client.core.storage import ensure_dirs
from privhelper_client.ui.service_panel import ServicePanel

logger = logging.getLogger(__name__)


def main() -> int:
    ensure_dirs()
    log_path = setup_logging()
    settings = load_settings()
    logger.info("Starting privhelper-client (logs: %s)", log_path)

    app = QApplication(sys.argv)
    app.setApplicationName("privhelper-client")
    window = ServicePanel(settings)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
