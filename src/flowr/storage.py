"""State directory layout and file helpers."""

from __future__ import annotations

import os
import tempfile

STATE_FILENAME = "timer-state.json"
HISTORY_FILENAME = "sessions-v1.json"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def ensure_structure(state_dir: str) -> dict:
    root = state_dir or os.path.join(os.getcwd(), ".flowr")
    paths = {
        "root": root,
        "logs": os.path.join(root, "logs"),
        "state": os.path.join(root, STATE_FILENAME),
        "history": os.path.join(root, HISTORY_FILENAME),
    }
    ensure_dir(root)
    ensure_dir(paths["logs"])
    return paths


def read_text(path: str) -> str | None:
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def write_text_atomic(path: str, text: str) -> None:
    """Replace ``path`` in one step so readers never see a partial file."""
    directory = os.path.dirname(os.path.abspath(path))
    ensure_dir(directory)
    fd, tmp_path = tempfile.mkstemp(prefix=".flowr-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
