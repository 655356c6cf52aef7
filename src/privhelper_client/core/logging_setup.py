"""Logging configuration and redaction of helper output."""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final
from urllib.parse import urlparse

from privhelper_client.core.storage import get_logs_dir

LOG_FILE_NAME: Final[str] = "client.log"
MAX_LOG_BYTES: Final[int] = 2 * 1024 * 1024
BACKUP_COUNT: Final[int] = 5
ENV_LOG_LEVEL: Final[str] = "PRIVHELPER_LOG_LEVEL"


def resolve_level(default: int = logging.INFO) -> int:
    raw = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def setup_logging(level: int | None = None) -> Path:
    logs_dir = get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / LOG_FILE_NAME

    root = logging.getLogger()
    if root.handlers:
        return log_path

    root.setLevel(resolve_level() if level is None else level)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = RotatingFileHandler(
        log_path, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    return log_path


_URL_PATTERN = re.compile(r"\b[\w+.-]+://[^\s'\"]+")
# "secret": "...", "token": "..." in helper JSON output
_SECRET_FIELD_PATTERN = re.compile(
    r"(\"(?:secret|token|password|api_key)\"\s*:\s*)\"[^\"]*\"", re.IGNORECASE
)


def _redact_url(match: re.Match[str]) -> str:
    try:
        parsed = urlparse(match.group(0))
        port = f":{parsed.port}" if parsed.port else ""
    except ValueError:
        return "<redacted>"
    if not parsed.scheme or not parsed.hostname:
        return "<redacted>"
    return f"{parsed.scheme}://{parsed.hostname}{port}"


def redact(text: str) -> str:
    """Drop credentials, paths and query strings from URLs, and blank secret JSON fields."""
    if not text:
        return text
    text = _SECRET_FIELD_PATTERN.sub(r'\1"<redacted>"', text)
    return _URL_PATTERN.sub(_redact_url, text)
