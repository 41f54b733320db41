"""Analyzer ("Think") - situational read of the conversation.

Produces free-form analysis text covering the recent dialogue trace, what
the counterpart expects next, whether an answer needs real-world knowledge,
mood/tone, and a self-reported confidence level. LOW confidence is a signal
for the Planner, never a hard stop.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ghostwriter.config import settings
from ghostwriter.config.prompts import DEFAULT_PROMPTS, PromptPack
from ghostwriter.services.context_assembler import ReplyContext
from ghostwriter.services.interfaces import CompletionClient
from ghostwriter.services import prompting

logger = logging.getLogger(__name__)

_CONFIDENCE_RE = re.compile(r"confidence\W{0,6}(high|medium|low)\b", re.IGNORECASE)
_NEEDS_KNOWLEDGE_RE = re.compile(r"needs\s+real[\s-]*world\s+knowledge", re.IGNORECASE)
_DODGE_MARKER_RE = re.compile(r"\s*[-:]\s*(the\s+)?AI\s+should\s+dodge", re.IGNORECASE)
_CLAUSE_BREAK_RE = re.compile(r"[.!?;,]|\s-\s")
_NEGATION_RE = re.compile(r"\b(no|not|nothing|never|none|without)\b|n't\b", re.IGNORECASE)


def needs_real_world_knowledge(text: str) -> bool:
    """True only for the analyst's explicit verdict.

    The phrase counts when it opens its clause (after list numbering or a
    question) or carries the "AI should dodge" marker, and nothing in the
    clause before it negates it.
    """
    for m in _NEEDS_KNOWLEDGE_RE.finditer(text or ""):
        line_start = text.rfind("\n", 0, m.start()) + 1
        clause = _CLAUSE_BREAK_RE.split(text[line_start:m.start()])[-1]
        if _NEGATION_RE.search(clause):
            continue
        leading = not re.search(r"[A-Za-z]", clause)
        if leading or _DODGE_MARKER_RE.match(text, m.end()):
            return True
    return False


@dataclass(frozen=True)
class Analysis:
    text: str
    confidence: str  # HIGH | MEDIUM | LOW | UNKNOWN
    needs_real_world_knowledge: bool

    @property
    def is_low_confidence(self) -> bool:
        return self.confidence == "LOW"


def parse_analysis(text: str) -> Analysis:
    text = (text or "").strip()
    m = _CONFIDENCE_RE.search(text)
    return Analysis(
        text=text,
        confidence=m.group(1).upper() if m else "UNKNOWN",
        needs_real_world_knowledge=needs_real_world_knowledge(text),
    )


class Analyzer:
    def __init__(self, completion: CompletionClient, prompts: PromptPack = DEFAULT_PROMPTS) -> None:
        self.completion = completion
        self.prompts = prompts

    def build_prompt(self, rc: ReplyContext) -> tuple[str, str]:
        ctx = rc.context
        p = self.prompts
        system = p.think_system.format(user=ctx.subject_name, contact=ctx.counterpart_name)

        parts: list[str] = []
        if ctx.style_document:
            parts.append(f"WHO THEY ARE TO EACH OTHER:\n{ctx.style_document[:settings.THINK_STYLE_CHARS]}\n")
        if ctx.qa_notes:
            parts.append(f"PROFILE Q&A (provided by the user about this relationship):\n{ctx.qa_notes}\n")
        if ctx.history_lines:
            parts.append(f"FULL CONVERSATION FLOW (read EVERY message carefully, in order):\n{ctx.conversation_flow}\n")
        parts.append(f'LATEST MESSAGE(S) from {ctx.counterpart_name}:\n"{ctx.incoming_text}"\n')

        images = prompting.image_block(rc, p)
        if images:
            parts.append(images + "\n")
        if rc.emergency:
            parts.append(p.emergency_note.format(contact=ctx.counterpart_name, upper=rc.effective_upper).strip() + "\n")
        parts.append(
            f"LENGTH STATS for {ctx.subject_name}: avg={rc.stats.average} words, "
            f"p75={rc.stats.p75}, allowed up to {rc.effective_upper}.\n"
        )
        parts.append(
            p.think_task.format(
                user=ctx.subject_name,
                contact=ctx.counterpart_name,
                recent_replies_block=prompting.recent_replies_block(rc, p),
            )
        )
        return system, "\n".join(parts)

    def analyze(self, rc: ReplyContext) -> Analysis:
        system, user_prompt = self.build_prompt(rc)
        raw = self.completion.complete(system, prompting.user_message(user_prompt), settings.THINK_MAX_TOKENS)
        analysis = parse_analysis(raw)
        logger.info(
            f"[THINK] confidence={analysis.confidence} "
            f"needs_knowledge={analysis.needs_real_world_knowledge} ({len(analysis.text)} chars)"
        )
        return analysis
