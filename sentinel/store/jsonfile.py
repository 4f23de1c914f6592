"""JSON file helpers shared by the file-backed stores.

Writes go to a temporary file in the same directory and are moved into
place with ``os.replace``, so a concurrent reader sees either the old or
the new document, never a truncated one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from sentinel.errors import TransientError

logger = logging.getLogger(__name__)


def read_json(path: Path, default: Any) -> Any:
    """Load *path*, or return *default* when it does not exist yet.

    An unreadable or corrupt file raises :class:`TransientError` rather than
    looking like an empty store.
    """
    if not path.exists():
        return default
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.error("Data file %s is unreadable: %s", path, exc)
        raise TransientError(f"Data file {path} is unreadable: {exc}") from exc
    if not isinstance(data, type(default)):
        raise TransientError(f"Data file {path} holds a {type(data).__name__}, expected {type(default).__name__}")
    return data


def write_json(path: Path, data: Any) -> None:
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, default=str)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
