from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ghostwriter.services.interfaces import ContextUnavailable
from ghostwriter.utils.atomic import atomic_write_json, atomic_write_text
from ghostwriter.utils.message_store import safe_file_stem

logger = logging.getLogger(__name__)


class StyleStore:
    """Read side of the offline style profiler.

    Each counterpart has a markdown style document (``<id>.md``) and a meta
    file (``<id>.meta.json``) holding the operator's relationship Q&A.
    The profiler that writes these lives elsewhere; ``save_document`` exists
    for imports and tests.
    """

    def __init__(self, profiles_dir: Path) -> None:
        self.base_path = Path(profiles_dir)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _doc_path(self, counterpart_id: str) -> Path:
        return self.base_path / f"{safe_file_stem(counterpart_id)}.md"

    def _meta_path(self, counterpart_id: str) -> Path:
        return self.base_path / f"{safe_file_stem(counterpart_id)}.meta.json"

    def load(self, counterpart_id: str) -> Optional[str]:
        path = self._doc_path(counterpart_id)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ContextUnavailable(f"Style document unreadable: {path} ({exc})") from exc

    def load_meta(self, counterpart_id: str) -> Dict[str, Any]:
        path = self._meta_path(counterpart_id)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ContextUnavailable(f"Style meta unreadable: {path} ({exc})") from exc
        return data if isinstance(data, dict) else {}

    def load_qa_notes(self, counterpart_id: str) -> str:
        """Answered profile Q&A rendered as ``Q: ...\\nA: ...`` blocks."""
        qa: List[Dict[str, Any]] = self.load_meta(counterpart_id).get("profileQA") or []
        blocks = []
        for item in qa:
            if not isinstance(item, dict):
                continue
            answer = str(item.get("answer") or "").strip()
            if not answer:
                continue
            blocks.append(f"Q: {item.get('question', '')}\nA: {answer}")
        return "\n\n".join(blocks)

    def save_document(self, counterpart_id: str, document: str, meta: Optional[Dict[str, Any]] = None) -> None:
        atomic_write_text(self._doc_path(counterpart_id), document)
        if meta is not None:
            atomic_write_json(self._meta_path(counterpart_id), meta)
        logger.info(f"[STYLE] Saved style document for {counterpart_id} ({len(document)} chars)")
