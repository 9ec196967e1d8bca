"""Private-file helpers for key and delegation material written by the CLI."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, 0o700)


def write_private_json(path: Path, payload: Any) -> Path:
    """Write ``payload`` as JSON to a file only the owner can read."""
    path = Path(path)
    if path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        json.dump(payload, f, indent=2)
    # O_CREAT's mode does not apply to a file that already existed
    os.chmod(path, 0o600)
    return path


def read_json(path: Path) -> Any:
    with open(path) as f:
        return json.load(f)
