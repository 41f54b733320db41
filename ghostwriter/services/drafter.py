"""Drafter ("Write") and Reviser ("Rewrite") - candidate reply text.

Both stages return literal message text cleaned of model echo artifacts.
The Drafter follows the Planner's decision; the Reviser rewrites a candidate
the Verifier rejected, using its reason and suggestion.
"""

from __future__ import annotations

import logging
import re

from ghostwriter.config import settings
from ghostwriter.config.prompts import DEFAULT_PROMPTS, PromptPack
from ghostwriter.services.context_assembler import ReplyContext
from ghostwriter.services.interfaces import CompletionClient
from ghostwriter.services.planner import Decision
from ghostwriter.services.verifier import VerificationVerdict
from ghostwriter.services import prompting

logger = logging.getLogger(__name__)

_THINKING_RE = re.compile(r"<(thinking|reasoning)>.*?</\1>", re.DOTALL | re.IGNORECASE)
_LABEL_RE = re.compile(r"^(?:response|draft|message|reply|final reply):\s*", re.IGNORECASE)
_QUOTES = "\"'“”‘’"


def strip_quotes(text: str) -> str:
    """Drop one layer of quotes wrapped around the whole message."""
    t = (text or "").strip()
    if t and t[0] in _QUOTES:
        t = t[1:]
    if t and t[-1] in _QUOTES:
        t = t[:-1]
    return t.strip()


def clean_reply(text: str, user_name: str) -> str:
    """Strip echo artifacts the completion service likes to add.

    Handles ``<thinking>`` blocks, ``Reply:``-style labels, ``Name:`` and
    ``[Name]:`` speaker prefixes, and surrounding quotes.
    """
    cleaned = _THINKING_RE.sub("", text or "").strip()
    cleaned = _LABEL_RE.sub("", cleaned)
    cleaned = strip_quotes(cleaned)

    for prefix in (f"{user_name}:", f"[{user_name}]:"):
        if cleaned.lower().startswith(prefix.lower()):
            cleaned = cleaned[len(prefix):].strip()

    # The label may have been inside the quotes.
    return strip_quotes(cleaned)


class Drafter:
    """Drafter ("Write"): literal candidate text under the Planner's constraints.

    The word ceiling is policy, enforced by the Verifier rather than here.
    """

    def __init__(self, completion: CompletionClient, prompts: PromptPack = DEFAULT_PROMPTS) -> None:
        self.completion = completion
        self.prompts = prompts

    def build_prompt(self, rc: ReplyContext, decision: Decision) -> tuple[str, str]:
        ctx = rc.context
        p = self.prompts
        fields = prompting.base_fields(rc, exemplar_fallback="(check the style doc)")
        # Statistical ceiling without the emergency override, for the "usual" range.
        fields["stat_upper"] = min(rc.effective_upper, max(fields["avg"] + 3, fields["p75"], 5))

        system = p.write_system.format(**fields)
        images = prompting.image_block(rc, p)
        if images:
            system += "\n\n" + images
        if rc.emergency:
            system += p.emergency_note.format(**fields)
        system += prompting.style_document_block(ctx.style_document, p)
        system += p.write_bans.format(**fields)

        parts = []
        if ctx.history_lines:
            parts.append(f"CONVERSATION:\n{ctx.conversation_flow}\n")
        recent = prompting.recent_replies_block(rc, p)
        if recent:
            parts.append(recent)
        parts.append(p.write_task.format(decision=decision.text, **fields))
        return system, "\n".join(parts)

    def draft(self, rc: ReplyContext, decision: Decision) -> str:
        system, user_prompt = self.build_prompt(rc, decision)
        raw = self.completion.complete(system, prompting.user_message(user_prompt), settings.WRITE_MAX_TOKENS)
        return clean_reply(raw, rc.context.subject_name)


class Reviser:
    """Reviser ("Rewrite"): a corrected candidate from verifier feedback.

    The verifier's suggestion is a strong prior; when it already looks
    usable the model is told to adopt it rather than start over.
    """

    def __init__(self, completion: CompletionClient, prompts: PromptPack = DEFAULT_PROMPTS) -> None:
        self.completion = completion
        self.prompts = prompts

    def build_prompt(
        self,
        rc: ReplyContext,
        decision: Decision,
        failed: str,
        verdict: VerificationVerdict,
    ) -> tuple[str, str]:
        ctx = rc.context
        p = self.prompts
        fields = prompting.base_fields(rc, exemplar_fallback="(check style doc)")

        system = p.rewrite_system.format(**fields)
        if rc.emergency:
            system += p.emergency_note.format(**fields)
        system += prompting.style_document_block(ctx.style_document, p)

        parts = []
        if ctx.history_lines:
            parts.append(f"CONVERSATION:\n{ctx.conversation_flow}\n")
        parts.append(
            p.rewrite_task.format(
                failed=failed,
                reason=verdict.reason or "(no reason given)",
                suggestion=verdict.suggestion or "none",
                decision=decision.text,
                **fields,
            )
        )
        return system, "\n".join(parts)

    def revise(
        self,
        rc: ReplyContext,
        decision: Decision,
        failed: str,
        verdict: VerificationVerdict,
    ) -> str:
        system, user_prompt = self.build_prompt(rc, decision, failed, verdict)
        raw = self.completion.complete(system, prompting.user_message(user_prompt), settings.REWRITE_MAX_TOKENS)
        revised = clean_reply(raw, rc.context.subject_name)
        logger.debug(f"[REWRITE] {failed!r} -> {revised!r}")
        return revised
