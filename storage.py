from __future__ import annotations
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "STUDY_TRACKER_DATA_DIR"


class PersistenceError(RuntimeError):
    """A snapshot could not be written. In-memory state is still valid."""


def _default_data_dir() -> Path:
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "StudyTracker"
    if sys.platform.startswith("win"):
        roaming = os.environ.get("APPDATA")
        return (Path(roaming) if roaming else home / "AppData" / "Roaming") / "StudyTracker"
    xdg = os.environ.get("XDG_DATA_HOME")
    return (Path(xdg) if xdg else home / ".local" / "share") / "study-tracker"


def get_data_dir() -> Path:
    """
    Directory holding every user snapshot. STUDY_TRACKER_DATA_DIR wins over
    the per-OS default; read on every call so tests can point it elsewhere.
    """
    override = os.environ.get(DATA_DIR_ENV)
    base = Path(override).expanduser() if override else _default_data_dir()
    base.mkdir(parents=True, exist_ok=True)
    return base


def data_path(filename: str | Path) -> Path:
    return get_data_dir() / Path(filename)


def backup_file(path: Path | str, content: str | None = None) -> Path:
    """
    Copy a file (or the given raw text) next to it as <name>.bak before it
    gets reset. Failing to back up is logged, the reset still goes ahead.
    """
    path = Path(path)
    backup = path.with_suffix(path.suffix + ".bak")
    try:
        if content is None:
            content = path.read_text(encoding="utf-8")
        backup.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.warning("Could not back up %s: %s", path, e)
    return backup


def load_json(path: Path | str, default: Any = None) -> Any:
    """
    Load JSON from path with safety:
    - If missing: return default
    - If empty or invalid: write .bak and reset to default
    """
    path = Path(path)
    fallback = {} if default is None else default

    if not path.exists():
        return fallback

    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Could not read %s: %s", path, e)
        return fallback

    text = raw_text.strip()
    if not text:
        backup_file(path, raw_text)
        save_json(path, fallback)
        return fallback

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Corrupt JSON in %s (%s), resetting", path, e)
        backup_file(path, raw_text)
        save_json(path, fallback)
        return fallback


def save_json(path: Path | str, payload: Any) -> None:
    """
    Atomic JSON write: write to temp file then replace target.
    """
    path = Path(path)
    temp = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        temp.replace(path)
    except OSError as e:
        raise PersistenceError(f"Could not write {path}: {e}") from e
