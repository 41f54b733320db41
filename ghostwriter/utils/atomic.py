"""Atomic file write utilities.

Every subsystem that persists state to disk (history store, style meta,
chain logs) goes through here.

Guarantees:
- File is written to a temporary sibling first, then atomically renamed.
- ``os.replace`` is atomic on both POSIX and Windows.
- Parent directories are created on demand.
- Encoding is always UTF-8.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically replace *path* with *text*.

    On failure the tmp file is cleaned up; the original is untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")

    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(str(tmp), str(path))
    except Exception:
        # Never leave orphan .tmp files.
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove partial tmp file %s", tmp)
        raise


def atomic_write_json(
    path: Path,
    data: Any,
    *,
    indent: int = 2,
    ensure_ascii: bool = False,
) -> None:
    """Atomically write *data* as JSON to *path*."""
    atomic_write_text(
        path,
        json.dumps(data, indent=indent, ensure_ascii=ensure_ascii, default=str),
    )
