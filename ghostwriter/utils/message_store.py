"""Local conversation history store.

Storage: one JSON file per counterpart under ``data/history/``.
Each file contains a chronologically ordered list of message dicts.
Writes are atomic; the oldest messages are evicted past the size cap.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from ghostwriter.config import settings
from ghostwriter.services.interfaces import ContextUnavailable, HistoryMessage
from ghostwriter.utils.atomic import atomic_write_json

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9]")


def safe_file_stem(counterpart_id: str) -> str:
    """Filesystem-safe stem for a counterpart id (``123@c.us`` -> ``123_c_us``)."""
    return _UNSAFE_CHARS_RE.sub("_", (counterpart_id or "").strip())


class MessageStore:
    """Persistent, append-only message history keyed by counterpart."""

    def __init__(
        self,
        store_dir: Path,
        *,
        max_messages: int = settings.HISTORY_MAX_MESSAGES,
        machine_prefixes: tuple[str, ...] = settings.MACHINE_ID_PREFIXES,
    ) -> None:
        self._dir = Path(store_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self.max_messages = max_messages
        self.machine_prefixes = machine_prefixes
        # Read-append-write mutex: the transport and debounce timer threads share a store
        self._write_lock = threading.Lock()

    def _path_for(self, counterpart_id: str) -> Path:
        return self._dir / f"{safe_file_stem(counterpart_id)}.json"

    def store_message(
        self,
        *,
        counterpart_id: str,
        text: str,
        is_from_me: bool,
        timestamp: Optional[float] = None,
        message_id: Optional[str] = None,
    ) -> bool:
        """Append a message. Returns False if it was blank or already stored."""
        if not text or not text.strip():
            return False

        now = timestamp or time.time()
        path = self._path_for(counterpart_id)
        with self._write_lock:
            messages = self._load_file(path)
            msg_id = message_id or f"msg_{int(now * 1000)}_{len(messages)}"
            if any(m.get("message_id") == msg_id for m in messages[-50:]):
                logger.debug("[HISTORY] Duplicate suppressed for %s: %s", counterpart_id, msg_id)
                return False

            messages.append({
                "counterpart_id": counterpart_id,
                "text": text.strip(),
                "is_from_me": bool(is_from_me),
                "timestamp": now,
                "message_id": msg_id,
            })

            # FIFO eviction
            if len(messages) > self.max_messages:
                messages = messages[-self.max_messages:]

            atomic_write_json(path, messages)
        return True

    def recent(self, counterpart_id: str, limit: int) -> List[HistoryMessage]:
        """Last *limit* messages, oldest first."""
        path = self._path_for(counterpart_id)
        result: List[HistoryMessage] = []
        for msg in self._load_file(path)[-limit:]:
            is_from_me = bool(msg.get("is_from_me", False))
            msg_id = str(msg.get("message_id", ""))
            result.append(
                HistoryMessage(
                    text=str(msg.get("text", "")),
                    is_from_me=is_from_me,
                    timestamp=float(msg.get("timestamp", 0) or 0),
                    message_id=msg_id,
                    is_machine_generated=is_from_me and msg_id.startswith(self.machine_prefixes),
                )
            )
        return result

    def _load_file(self, path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ContextUnavailable(f"History file unreadable: {path} ({exc})") from exc
        return data if isinstance(data, list) else []
