"""Verifier - the quality gate between a candidate and the counterpart.

Deterministic local checks run first and never touch the completion
service: empty output, exact repeats of recent replies, and gross length
violations. Only a candidate that survives them is sent to the judge model,
whose answer follows a fixed three-line contract::

    PASS or FAIL
    REASON: one sentence
    SUGGESTION: replacement text, or "none"

A failed judge call is re-raised as ``VerificationUnavailable``; the outcome
resolver decides what that means. Any other exception (a broken prompt
template, a bug in the local checks) propagates unchanged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ghostwriter.config import settings
from ghostwriter.config.prompts import DEFAULT_PROMPTS, PromptPack
from ghostwriter.services.context_assembler import ReplyContext, word_count
from ghostwriter.services.interfaces import CompletionClient
from ghostwriter.services import prompting

logger = logging.getLogger(__name__)


class VerificationUnavailable(RuntimeError):
    """The judge model could not be reached or failed to answer."""


CHECK_EMPTY = "empty"
CHECK_DUPLICATE = "duplicate"
CHECK_LENGTH = "length"
CHECK_JUDGE = "judge"

# Replies shorter than this are never "grossly" too long.
GROSS_LENGTH_FLOOR = 12

_PASS_RE = re.compile(r"^\s*\**PASS\b", re.IGNORECASE)
_REASON_RE = re.compile(r"REASON:\s*(.+)", re.IGNORECASE)
_SUGGESTION_RE = re.compile(r"SUGGESTION:\s*(.+)", re.IGNORECASE)


@dataclass(frozen=True)
class VerificationVerdict:
    passed: bool
    reason: str
    suggestion: Optional[str]
    check: str = CHECK_JUDGE


def normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def parse_verdict(text: str) -> VerificationVerdict:
    """Parse the judge's PASS/FAIL, REASON and SUGGESTION lines.

    Anything that does not start with PASS is a failure; a missing reason
    becomes an empty string and a literal "none" suggestion becomes None.
    """
    raw = (text or "").strip()
    passed = bool(_PASS_RE.match(raw))

    m = _REASON_RE.search(raw)
    reason = m.group(1).strip() if m else ""

    suggestion: Optional[str] = None
    m = _SUGGESTION_RE.search(raw)
    if m:
        candidate = m.group(1).strip()
        if candidate and candidate.strip("\"'").lower() != "none":
            suggestion = candidate
    return VerificationVerdict(passed=passed, reason=reason, suggestion=suggestion, check=CHECK_JUDGE)


def local_verdict(candidate: str, rc: ReplyContext) -> Optional[VerificationVerdict]:
    """Checks decidable without a model. None means "go ask the judge"."""
    if not (candidate or "").strip():
        return VerificationVerdict(
            passed=False,
            reason="empty reply",
            suggestion="Write an actual message.",
            check=CHECK_EMPTY,
        )

    norm = normalize(candidate)
    seen = {normalize(r) for r in rc.recent_replies}
    seen.update(normalize(r) for r in rc.recent_bot_replies)
    if norm in seen:
        return VerificationVerdict(
            passed=False,
            reason="duplicate",
            suggestion=f'Say something different from "{candidate.strip()}"; it was already sent recently.',
            check=CHECK_DUPLICATE,
        )

    words = word_count(candidate)
    upper = rc.effective_upper
    if words > 2 * upper and words > GROSS_LENGTH_FLOOR:
        return VerificationVerdict(
            passed=False,
            reason=f"too long: {words} words, limit is {upper}",
            suggestion=f"Shorten to at most {upper} words.",
            check=CHECK_LENGTH,
        )
    return None


class Verifier:
    def __init__(self, completion: CompletionClient, prompts: PromptPack = DEFAULT_PROMPTS) -> None:
        self.completion = completion
        self.prompts = prompts

    def build_prompt(self, candidate: str, rc: ReplyContext) -> tuple[str, str]:
        ctx = rc.context
        p = self.prompts
        fields = prompting.base_fields(rc)

        system = p.verify_system.format(reply_words=word_count(candidate), **fields)
        if rc.emergency:
            system += p.verify_emergency.format(**fields)
        reference = prompting.style_reference_excerpt(ctx.style_document)
        if reference:
            system += f"\n\nSTYLE REFERENCE:\n{reference}"

        parts = []
        if ctx.history_lines:
            parts.append(f"CONVERSATION:\n{ctx.conversation_flow}\n")
        parts.append(
            p.verify_task.format(
                reply=candidate,
                recent_replies_block=prompting.recent_replies_block(rc, p),
                **fields,
            )
        )
        return system, "\n".join(parts)

    def verify(self, candidate: str, rc: ReplyContext) -> VerificationVerdict:
        verdict = local_verdict(candidate, rc)
        if verdict is not None:
            logger.info(f"[VERIFY] Local {verdict.check} check failed: {verdict.reason}")
            return verdict

        system, user_prompt = self.build_prompt(candidate, rc)
        try:
            raw = self.completion.complete(system, prompting.user_message(user_prompt), settings.VERIFY_MAX_TOKENS)
        except Exception as e:
            raise VerificationUnavailable(str(e)) from e
        verdict = parse_verdict(raw)
        logger.info(f"[VERIFY] {'PASS' if verdict.passed else 'FAIL'}: {verdict.reason or '(no reason)'}")
        return verdict
