"""Planner ("Decide") - turns the analysis into an intent plus constraints.

The decision covers intent, dodge-or-commit, a target length within
``[1, effective_upper]`` leaning toward the average, the language/script,
1-2 exemplar messages and explicit anti-patterns. When the analysis flagged
that real-world knowledge is needed the dodge branch is mandatory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ghostwriter.config import settings
from ghostwriter.config.prompts import DEFAULT_PROMPTS, PromptPack
from ghostwriter.services.analyst import Analysis
from ghostwriter.services.context_assembler import ReplyContext
from ghostwriter.services.interfaces import CompletionClient
from ghostwriter.services import prompting

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    text: str
    must_dodge: bool
    target_upper: int


class Planner:
    def __init__(self, completion: CompletionClient, prompts: PromptPack = DEFAULT_PROMPTS) -> None:
        self.completion = completion
        self.prompts = prompts

    def build_prompt(self, rc: ReplyContext, analysis: Analysis) -> tuple[str, str]:
        ctx = rc.context
        p = self.prompts
        fields = prompting.base_fields(rc)

        system = p.decide_system.format(**fields)
        if rc.emergency:
            system += p.decide_emergency_system.format(**fields)

        parts = [f"SITUATION ANALYSIS:\n{analysis.text}\n", f'{ctx.counterpart_name}\'s LATEST: "{ctx.incoming_text}"\n']
        if ctx.style_document:
            parts.append(f"{ctx.subject_name}'s STYLE DOCUMENT:\n{ctx.style_document[:settings.DECIDE_STYLE_CHARS]}\n")
        if ctx.qa_notes:
            parts.append(f"PROFILE Q&A (user-provided context about this relationship):\n{ctx.qa_notes}\n")

        images = prompting.image_block(rc, p)
        if images:
            parts.append(f"IMAGE CONTEXT: {images}\n")

        if analysis.needs_real_world_knowledge:
            low = " and confidence is LOW" if analysis.is_low_confidence else ""
            parts.append(p.decide_forced_dodge.format(user=ctx.subject_name, low_confidence=low) + "\n")
        elif analysis.is_low_confidence:
            parts.append(p.decide_low_confidence_hint + "\n")

        parts.append(
            p.decide_task.format(
                emergency_rule=p.decide_emergency_rule.format(**fields) if rc.emergency else "",
                recent_replies_block=prompting.recent_replies_block(rc, p),
                **fields,
            )
        )
        return system, "\n".join(parts)

    def decide(self, rc: ReplyContext, analysis: Analysis) -> Decision:
        system, user_prompt = self.build_prompt(rc, analysis)
        raw = self.completion.complete(system, prompting.user_message(user_prompt), settings.DECIDE_MAX_TOKENS)
        decision = Decision(
            text=(raw or "").strip(),
            must_dodge=analysis.needs_real_world_knowledge,
            target_upper=rc.effective_upper,
        )
        if decision.must_dodge:
            logger.info("[DECIDE] Analysis needs real-world knowledge; dodge branch forced")
        return decision
