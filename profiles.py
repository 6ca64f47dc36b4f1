from __future__ import annotations
import logging
import re
from pathlib import Path
from typing import List
from pydantic import ValidationError
from models import AppState
from storage import backup_file, data_path, load_json, save_json
from store import StudyStore

logger = logging.getLogger(__name__)

GUEST_USER = "guest"
USERS_FILE = "users.json"


def _sanitize_user_id(user_id: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]+", "_", (user_id or "").strip())
    safe = safe.strip("_") or GUEST_USER
    return safe[:80]


def _state_path(user_id: str) -> Path:
    return data_path(f"state__{_sanitize_user_id(user_id)}.json")


def _save_users_list(users: List[str]) -> None:
    save_json(data_path(USERS_FILE), {"users": users})


def list_users() -> List[str]:
    data = load_json(data_path(USERS_FILE), {"users": []})
    users: List[str] = [u for u in data.get("users", []) if isinstance(u, str)]

    # Pick up snapshot files that never made it into the index
    for path in data_path("").glob("state__*.json"):
        suffix = path.stem.replace("state__", "", 1)
        if suffix and suffix not in {_sanitize_user_id(u) for u in users}:
            users.append(suffix)

    combined: List[str] = []
    for name in users:
        if name and name not in combined:
            combined.append(name)
    return combined


def _remember_user(user_id: str) -> None:
    users = list_users()
    if user_id not in users:
        users.append(user_id)
        _save_users_list(users)


def load_user_state(user_id: str) -> AppState:
    """
    Load the snapshot for a user id handed over by the auth provider.
    A missing or unreadable snapshot yields a fresh state; one that parses
    but does not validate is kept as <name>.bak first.
    """
    path = _state_path(user_id)
    default_state = AppState(profile=user_id)
    raw = load_json(path, default_state.model_dump(mode="json"))
    try:
        state = AppState.model_validate(raw)
    except ValidationError as e:
        backup = backup_file(path)
        logger.warning(
            "Snapshot for %s does not validate, kept as %s and starting fresh: %s",
            user_id, backup.name, e,
        )
        state = default_state
        save_user_state(user_id, state)
    state.profile = user_id
    return state


def save_user_state(user_id: str, state: AppState) -> None:
    state.profile = user_id
    save_json(_state_path(user_id), state.model_dump(mode="json"))
    _remember_user(user_id)


def delete_user_state(user_id: str) -> None:
    try:
        _state_path(user_id).unlink()
    except FileNotFoundError:
        pass
    _save_users_list([u for u in list_users() if u != user_id])


def open_store(user_id: str = GUEST_USER) -> StudyStore:
    """A store for user_id whose every mutation is written back to disk."""
    state = load_user_state(user_id)
    return StudyStore(state, persist=lambda snapshot: save_user_state(user_id, snapshot))
