"""Shared fixtures: a stage-aware scripted completion client and in-memory stores."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import pytest

from ghostwriter.services.analyst import Analyzer
from ghostwriter.services.chain import ReplyChain
from ghostwriter.services.context_assembler import (
    ContextAssembler,
    ConversationContext,
    HistoryLine,
    ReplyContext,
    WordCountStatistics,
)
from ghostwriter.services.drafter import Drafter, Reviser
from ghostwriter.services.interfaces import HistoryMessage
from ghostwriter.services.planner import Planner
from ghostwriter.services.verifier import Verifier

# Checked in order; the rewrite system prompt also starts with "You are ghostwriting".
STAGE_MARKERS = (
    ("verify", "quality checker"),
    ("rewrite", "previous reply FAILED"),
    ("think", "conversation analyst"),
    ("decide", "You are deciding what"),
    ("write", "You are ghostwriting as"),
)

DEFAULT_SCRIPTS: Dict[str, Any] = {
    "think": "1. CONVERSATION ARC: weekend plans.\n6. CONFIDENCE: HIGH",
    "decide": "1. INTENT: agree to the plan\n3. LENGTH: 3 words",
    "write": "yeah sounds good",
    "verify": "PASS\nREASON: fits the conversation\nSUGGESTION: none",
    "rewrite": "ok cool then",
}


def stage_of(system_instruction: str) -> str:
    for stage, marker in STAGE_MARKERS:
        if marker in system_instruction:
            return stage
    raise AssertionError(f"Unrecognised stage prompt: {system_instruction[:80]!r}")


@dataclass
class Call:
    stage: str
    system: str
    user: str
    max_tokens: int


class ScriptedCompletion:
    """Answers each stage from a script.

    A script entry is a string, an exception instance (raised), or a
    callable ``(system, user) -> str``. A list is consumed one item per
    call; its last item repeats once the rest are used up.
    """

    def __init__(self, **scripts: Any) -> None:
        self.scripts = {**DEFAULT_SCRIPTS, **scripts}
        self.calls: List[Call] = []

    def complete(self, system_instruction: str, messages: List[Dict[str, str]], max_tokens: int) -> str:
        stage = stage_of(system_instruction)
        user = messages[-1]["content"] if messages else ""
        self.calls.append(Call(stage, system_instruction, user, max_tokens))

        script = self.scripts[stage]
        if isinstance(script, list):
            item = script.pop(0) if len(script) > 1 else script[0]
        else:
            item = script
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(system_instruction, user)
        return item

    def stage_calls(self, stage: str) -> List[Call]:
        return [c for c in self.calls if c.stage == stage]

    @property
    def stages(self) -> List[str]:
        return [c.stage for c in self.calls]


class FakeHistory:
    def __init__(self, messages: Sequence[HistoryMessage] = (), error: Optional[Exception] = None) -> None:
        self.messages = list(messages)
        self.error = error

    def recent(self, counterpart_id: str, limit: int) -> List[HistoryMessage]:
        if self.error:
            raise self.error
        return self.messages[-limit:]


class FakeStyles:
    def __init__(self, document: Optional[str] = None, qa_notes: str = "", error: Optional[Exception] = None) -> None:
        self.document = document
        self.qa_notes = qa_notes
        self.error = error

    def load(self, counterpart_id: str) -> Optional[str]:
        if self.error:
            raise self.error
        return self.document

    def load_qa_notes(self, counterpart_id: str) -> str:
        if self.error:
            raise self.error
        return self.qa_notes


def human_history(*texts: str, start: float = 1_700_000_000.0) -> List[HistoryMessage]:
    """Alternating counterpart/user history; odd positions are the user's."""
    return [
        HistoryMessage(text=t, is_from_me=bool(i % 2), timestamp=start + 60 * i, message_id=f"m{i}")
        for i, t in enumerate(texts)
    ]


@pytest.fixture
def make_completion():
    return ScriptedCompletion


@pytest.fixture
def make_assembler():
    def _make(history=(), document=None, qa_notes="", vision=None, history_error=None, style_error=None, **kwargs):
        return ContextAssembler(
            history_store=FakeHistory(history, error=history_error),
            style_store=FakeStyles(document, qa_notes, error=style_error),
            vision=vision,
            subject_name=kwargs.pop("subject_name", "Avin"),
            timezone=kwargs.pop("timezone", "UTC"),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_chain(make_assembler):
    def _make(completion, *, sinks=None, max_retries=2, **assembler_kwargs):
        return ReplyChain(
            assembler=make_assembler(**assembler_kwargs),
            analyzer=Analyzer(completion),
            planner=Planner(completion),
            drafter=Drafter(completion),
            verifier=Verifier(completion),
            reviser=Reviser(completion),
            sink_factory=lambda: list(sinks or []),
            max_retries=max_retries,
        )

    return _make


@pytest.fixture
def make_rc():
    def _make(
        incoming="are we still on for saturday?",
        *,
        upper=8,
        emergency=False,
        recent_replies=(),
        recent_bot_replies=(),
        history_lines=(),
        style_document=None,
        image_descriptions=(),
        exemplars=("see you there", "going home now"),
    ):
        context = ConversationContext(
            subject_name="Avin",
            counterpart_id="977123@c.us",
            counterpart_name="Sita",
            history_lines=tuple(history_lines),
            incoming_text=incoming,
            image_descriptions=tuple(image_descriptions),
            style_document=style_document,
        )
        stats = WordCountStatistics(min=1, max=8, average=3, p75=5, effective_upper=upper)
        return ReplyContext(
            context=context,
            stats=stats,
            emergency=emergency,
            recent_replies=tuple(recent_replies),
            recent_bot_replies=tuple(recent_bot_replies),
            exemplars=tuple(exemplars),
        )

    return _make


@pytest.fixture
def sample_lines():
    return (
        HistoryLine("Sita", "10:00", False, "are you free this weekend"),
        HistoryLine("Avin", "10:02", False, "ya mostly why", is_subject=True),
    )


@pytest.fixture
def history_of():
    return human_history
