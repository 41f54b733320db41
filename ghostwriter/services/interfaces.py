from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, List, Dict, Optional, Sequence


class ContextUnavailable(RuntimeError):
    """Raised by a history/style store whose backing storage cannot be read."""


@dataclass(frozen=True)
class HistoryMessage:
    """One stored chat message, as returned by a history store."""

    text: str
    is_from_me: bool
    timestamp: float = 0.0
    message_id: str = ""
    is_machine_generated: bool = False


@dataclass(frozen=True)
class IncomingMessage:
    counterpart_id: str
    counterpart_name: str
    text: str
    images: tuple = field(default_factory=tuple)
    message_id: str = ""
    timestamp: float = 0.0


class CompletionClient(Protocol):
    def complete(self, system_instruction: str, messages: List[Dict[str, str]], max_tokens: int) -> str:
        """Generate text. Errors are exceptions, never sentinel strings."""
        ...


class VisionDescriber(Protocol):
    def describe(self, images: Sequence) -> List[str]:
        """Return one description per image."""
        ...


class HistoryStore(Protocol):
    def recent(self, counterpart_id: str, limit: int) -> List[HistoryMessage]:
        """Last *limit* messages for a thread, ordered oldest -> newest."""
        ...


class StyleProfileStore(Protocol):
    def load(self, counterpart_id: str) -> Optional[str]:
        """Long-form style document, or None when no profile exists."""
        ...

    def load_qa_notes(self, counterpart_id: str) -> str:
        ...


class TransportBridge(Protocol):
    def send_message(self, counterpart_id: str, message: str) -> bool:
        """Sends a message to the counterpart. Returns False on failure."""
        ...
