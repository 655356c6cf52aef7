"""Storage paths and JSON helpers."""

from __future__ import annotations

import json
import os
from pathlib import Path
import tempfile
from typing import Any

from platformdirs import user_config_path, user_state_path

APP_NAME = "privhelper-client"


def get_config_dir() -> Path:
    return Path(user_config_path(APP_NAME))


def get_state_dir() -> Path:
    return Path(user_state_path(APP_NAME))


def get_logs_dir() -> Path:
    return get_state_dir() / "logs"


def ensure_dirs() -> None:
    for path in (get_config_dir(), get_state_dir(), get_logs_dir()):
        path.mkdir(parents=True, exist_ok=True)


def load_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (json.JSONDecodeError, OSError):
        return default


def save_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, sort_keys=True)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except Exception:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
