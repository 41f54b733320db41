"""Reply chain - drives Think -> Decide -> Write -> [Verify <-> Rewrite] to an outcome.

State machine (one invocation)::

    DRAFTED -> VERIFYING -> PASSED                      => SENT
                         -> FAILED -> REVISING -> VERIFYING ...
                         -> FAILED (budget spent) -> FALLBACK_CHECK
                                                      => SENT_SUGGESTION | SKIPPED
    VERIFYING raised                                  => SENT_UNVERIFIED

The retry budget is ``max_retries`` revisions, i.e. ``max_retries + 1``
verifications. SKIPPED returns no reply: a candidate that failed every gate
and has no credible fallback is never sent.

Failures in Think/Decide/Write/Rewrite propagate to the caller. Only an
unavailable judge (``VerificationUnavailable``) fails open; any other error
raised while verifying aborts the run like the other stages.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ghostwriter.config import settings
from ghostwriter.services.analyst import Analyzer
from ghostwriter.services.chain_log import (
    STATUS_FAIL,
    STATUS_PASS,
    ChainAttempt,
    ChainLog,
    ChainSink,
    default_sinks,
)
from ghostwriter.services.context_assembler import ContextAssembler, ReplyContext, word_count
from ghostwriter.services.drafter import Drafter, Reviser, strip_quotes
from ghostwriter.services.planner import Decision, Planner
from ghostwriter.services.verifier import (
    CHECK_JUDGE,
    VerificationUnavailable,
    VerificationVerdict,
    Verifier,
    local_verdict,
)

logger = logging.getLogger(__name__)

# Post-mortem trail of every run that did not end in a verified send.
audit_logger = logging.getLogger("ghostwriter.audit")


class ChainOutcome(str, Enum):
    SENT = "SENT"
    SENT_UNVERIFIED = "SENT_UNVERIFIED"
    SENT_SUGGESTION = "SENT_SUGGESTION"
    SKIPPED = "SKIPPED"


class ChainState(str, Enum):
    DRAFTED = "DRAFTED"
    VERIFYING = "VERIFYING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    REVISING = "REVISING"
    FALLBACK_CHECK = "FALLBACK_CHECK"


@dataclass
class ChainResult:
    outcome: ChainOutcome
    reply: Optional[str]
    log: ChainLog
    states: List[ChainState] = field(default_factory=list)

    @property
    def attempts(self) -> List[ChainAttempt]:
        return self.log.attempts

    @property
    def should_send(self) -> bool:
        return self.reply is not None


def usable_suggestion(
    verdict: Optional[VerificationVerdict],
    max_chars: int = settings.MAX_SUGGESTION_CHARS,
) -> Optional[str]:
    """The judge's suggestion when it could pass for a real message, else None."""
    if verdict is None or verdict.check != CHECK_JUDGE:
        return None
    raw = (verdict.suggestion or "").strip()
    if not raw or raw.lower() == "none" or len(raw) >= max_chars:
        return None
    return strip_quotes(raw) or None


class ReplyChain:
    def __init__(
        self,
        *,
        assembler: ContextAssembler,
        analyzer: Analyzer,
        planner: Planner,
        drafter: Drafter,
        verifier: Verifier,
        reviser: Reviser,
        sink_factory: Callable[[], Sequence[ChainSink]] = default_sinks,
        max_retries: int = settings.MAX_RETRIES,
    ) -> None:
        self.assembler = assembler
        self.analyzer = analyzer
        self.planner = planner
        self.drafter = drafter
        self.verifier = verifier
        self.reviser = reviser
        self.sink_factory = sink_factory
        self.max_retries = max_retries

    def run(
        self,
        counterpart_id: str,
        counterpart_name: str,
        incoming_text: str,
        image_descriptions: Sequence[str] = (),
    ) -> ChainResult:
        log = ChainLog(counterpart_id, counterpart_name, self.sink_factory(), max_attempts=self.max_retries + 1)
        try:
            rc = self.assembler.assemble(counterpart_id, counterpart_name, incoming_text, image_descriptions)
            log.step("Think", note=self._context_note(rc))

            analysis = self.analyzer.analyze(rc)
            log.step(
                "Think",
                output=analysis.text,
                status=STATUS_FAIL if analysis.is_low_confidence else STATUS_PASS,
                note="LOW confidence - will dodge/deflect" if analysis.is_low_confidence else "",
            )

            decision = self.planner.decide(rc, analysis)
            log.step(
                "Decide",
                output=decision.text,
                status=STATUS_PASS,
                note="dodge forced: needs real-world knowledge" if decision.must_dodge else "",
            )

            candidate = self.drafter.draft(rc, decision)
            log.step(
                "Write",
                output=candidate,
                status=STATUS_PASS,
                note=f'Draft: "{candidate}" ({word_count(candidate)} words)',
            )
            return self._resolve(rc, decision, candidate, log)
        except Exception as e:
            logger.error(f"[CHAIN] Aborted for {counterpart_name} ({counterpart_id}): {e}")
            log.finish("ABORTED", None)
            raise

    @staticmethod
    def _context_note(rc: ReplyContext) -> str:
        s = rc.stats
        note = f"Word stats: avg={s.average} p75={s.p75} upper={s.effective_upper}"
        if rc.emergency:
            note += " | EMERGENCY"
        if rc.context.has_images:
            note += f" | {len(rc.context.image_descriptions)} image(s) described"
        elif rc.context.image_unseen:
            note += " | image sent but NO description"
        note += f" | Q&A: {'yes' if rc.context.qa_notes else 'none'}"
        return note

    def _resolve(self, rc: ReplyContext, decision: Decision, candidate: str, log: ChainLog) -> ChainResult:
        ctx = rc.context
        states = [ChainState.DRAFTED]
        last_verdict: Optional[VerificationVerdict] = None

        for attempt in range(self.max_retries + 1):
            states.append(ChainState.VERIFYING)
            try:
                verdict = self.verifier.verify(candidate, rc)
            except VerificationUnavailable as e:
                log.record(ChainAttempt(attempt, candidate, None, time.time(), error=str(e)))
                logger.warning(f"[CHAIN] Verification errored, sending unverified reply to {ctx.counterpart_name}: {e}")
                audit_logger.warning(
                    f"SENT_UNVERIFIED counterpart={ctx.counterpart_id} attempt={attempt + 1} "
                    f"error={e!r} reply={candidate!r}"
                )
                return self._finish(log, ChainOutcome.SENT_UNVERIFIED, candidate, states)

            last_verdict = verdict
            log.record(ChainAttempt(attempt, candidate, verdict, time.time()))
            if verdict.passed:
                states.append(ChainState.PASSED)
                return self._finish(log, ChainOutcome.SENT, candidate, states)

            states.append(ChainState.FAILED)
            if attempt < self.max_retries:
                states.append(ChainState.REVISING)
                candidate = self.reviser.revise(rc, decision, candidate, verdict)
                log.step(
                    "Rewrite",
                    output=candidate,
                    status=STATUS_PASS,
                    note=f'Rewrite {attempt + 1}: "{candidate}" ({word_count(candidate)} words)',
                )

        states.append(ChainState.FALLBACK_CHECK)
        suggestion = usable_suggestion(last_verdict)
        if suggestion:
            rejected = local_verdict(suggestion, rc)
            if rejected is not None:
                logger.info(f"[CHAIN] Verifier suggestion fails local {rejected.check} check; not adopting")
                suggestion = None
        if suggestion:
            logger.info(f"[CHAIN] Retries exhausted; adopting verifier suggestion for {ctx.counterpart_name}")
            return self._finish(log, ChainOutcome.SENT_SUGGESTION, suggestion, states)

        reason = last_verdict.reason if last_verdict else ""
        logger.info(f"[CHAIN] Retries exhausted with no usable suggestion; skipping {ctx.counterpart_name}")
        audit_logger.info(
            f"SKIPPED counterpart={ctx.counterpart_id} attempts={len(log.attempts)} "
            f"last_reason={reason!r} last_candidate={candidate!r}"
        )
        return self._finish(log, ChainOutcome.SKIPPED, None, states)

    @staticmethod
    def _finish(
        log: ChainLog,
        outcome: ChainOutcome,
        reply: Optional[str],
        states: List[ChainState],
    ) -> ChainResult:
        log.finish(outcome.value, reply)
        return ChainResult(outcome=outcome, reply=reply, log=log, states=states)
