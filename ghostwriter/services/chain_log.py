"""ChainLog - ordered, append-only trace of one reply chain invocation.

The log itself only produces events; where they go is decided by sinks:

* ``ConsoleChainSink`` - one colored line per step on the ``ghostwriter.chain``
  logger (the interactive trace).
* ``FileChainSink`` - one human-readable file per invocation under
  ``CHAIN_LOG_DIR``, rewritten atomically after every event so a crash
  mid-chain still leaves the steps so far on disk.
"""

from __future__ import annotations

import datetime
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence

from ghostwriter.config import settings
from ghostwriter.services.verifier import VerificationVerdict
from ghostwriter.utils.atomic import atomic_write_text
from ghostwriter.utils.message_store import safe_file_stem

logger = logging.getLogger(__name__)
chain_logger = logging.getLogger("ghostwriter.chain")

STATUS_PASS = "pass"
STATUS_FAIL = "fail"
INPUT_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class ChainStep:
    name: str
    elapsed: float
    status: Optional[str] = None
    output: str = ""
    input: str = ""
    note: str = ""

    @property
    def word_count(self) -> int:
        return len(self.output.split()) if self.output else 0


@dataclass(frozen=True)
class ChainAttempt:
    """One verification of one candidate.

    ``verdict`` is None when the verification call itself raised; ``error``
    then carries the failure text.
    """

    attempt_index: int
    candidate_text: str
    verdict: Optional[VerificationVerdict]
    timestamp: float
    error: str = ""

    @property
    def passed(self) -> bool:
        return bool(self.verdict and self.verdict.passed)


@dataclass(frozen=True)
class ChainFinal:
    outcome: str
    reply: Optional[str]
    total_ms: int


class ChainSink(Protocol):
    def on_start(self, log: "ChainLog") -> None: ...

    def on_step(self, log: "ChainLog", step: ChainStep) -> None: ...

    def on_finish(self, log: "ChainLog", final: ChainFinal) -> None: ...


class ChainLog:
    def __init__(
        self,
        counterpart_id: str,
        counterpart_name: str,
        sinks: Sequence[ChainSink] = (),
        *,
        clock: Callable[[], float] = time.monotonic,
        max_attempts: int = settings.MAX_RETRIES + 1,
    ) -> None:
        self.counterpart_id = counterpart_id
        self.counterpart_name = counterpart_name
        self.sinks = list(sinks)
        self.clock = clock
        self.max_attempts = max_attempts
        self.started_at = datetime.datetime.now(datetime.timezone.utc)
        self._t0 = clock()
        self.steps: List[ChainStep] = []
        self.attempts: List[ChainAttempt] = []
        self.final: Optional[ChainFinal] = None
        for sink in self.sinks:
            sink.on_start(self)

    def elapsed(self) -> float:
        return self.clock() - self._t0

    def step(
        self,
        name: str,
        *,
        output: str = "",
        status: Optional[str] = None,
        input: str = "",
        note: str = "",
    ) -> ChainStep:
        if self.final is not None:
            raise RuntimeError("chain log already finished")
        entry = ChainStep(name=name, elapsed=self.elapsed(), status=status, output=output or "", input=input or "", note=note or "")
        self.steps.append(entry)
        for sink in self.sinks:
            sink.on_step(self, entry)
        return entry

    def record(self, attempt: ChainAttempt) -> ChainStep:
        """Append a verification attempt; emitted as a ``Verify`` step."""
        self.attempts.append(attempt)
        label = f"Attempt {attempt.attempt_index + 1}/{self.max_attempts}"
        v = attempt.verdict
        if v is None:
            return self.step("Verify", status=STATUS_FAIL, input=attempt.candidate_text, note=f"{label} | Error: {attempt.error}")

        output = f"{'PASS' if v.passed else 'FAIL'}: {v.reason}"
        if v.suggestion:
            output += f" | Suggestion: {v.suggestion}"
        note = label if v.check == "judge" else f"{label} | local {v.check} check"
        return self.step(
            "Verify",
            output=output,
            status=STATUS_PASS if v.passed else STATUS_FAIL,
            input=attempt.candidate_text,
            note=note,
        )

    def finish(self, outcome: str, reply: Optional[str]) -> ChainFinal:
        if self.final is not None:
            return self.final
        self.final = ChainFinal(outcome=outcome, reply=reply, total_ms=int(self.elapsed() * 1000))
        for sink in self.sinks:
            sink.on_finish(self, self.final)
        return self.final


_RESET = "\x1b[0m"
_BOLD = "\x1b[1m"
_DIM = "\x1b[2m"
_GRAY = "\x1b[90m"
_GREEN = "\x1b[32m"
_RED = "\x1b[31m"
_YELLOW = "\x1b[33m"
_MAGENTA = "\x1b[35m"

STEP_COLORS = {
    "Think": "\x1b[36m",
    "Decide": _MAGENTA,
    "Write": _YELLOW,
    "Verify": "\x1b[34m",
    "Rewrite": _RED,
}

FINAL_COLORS = {
    "SENT": _GREEN,
    "SENT_UNVERIFIED": _GREEN,
    "SENT_SUGGESTION": _MAGENTA,
    "SKIPPED": _YELLOW,
}


class ConsoleChainSink:
    def __init__(self, *, color: bool = settings.CHAIN_LOG_COLOR, out: logging.Logger = chain_logger) -> None:
        self.color = color
        self.out = out

    def _c(self, code: str, text: str) -> str:
        return f"{code}{text}{_RESET}" if self.color else text

    def on_start(self, log: ChainLog) -> None:
        self.out.info(self._c(_BOLD, f"[Chain] {log.counterpart_name} ({log.counterpart_id})"))

    def on_step(self, log: ChainLog, step: ChainStep) -> None:
        tag = ""
        if step.status == STATUS_PASS:
            tag = f"({self._c(_GREEN, 'PASS')}) "
        elif step.status == STATUS_FAIL:
            tag = f"({self._c(_RED, 'FAIL')}) "
        name = self._c(STEP_COLORS.get(step.name, _GRAY) + _BOLD, f"[{step.name}]")
        line = f"  {name} {self._c(_GRAY, f'+{step.elapsed:.1f}s')} {tag}{self._c(_DIM, f'{step.word_count} words')}"
        self.out.info(line)
        if step.note:
            self.out.info(self._c(_GRAY, f"    └─ {step.note}"))

    def on_finish(self, log: ChainLog, final: ChainFinal) -> None:
        color = FINAL_COLORS.get(final.outcome, _RED)
        reply = f': "{final.reply}"' if final.reply else ""
        self.out.info(
            f"  {self._c(color + _BOLD, '[Final]')} {self._c(_GRAY, f'+{final.total_ms / 1000:.1f}s')} "
            f"{self._c(color, final.outcome)}{reply} {self._c(_DIM, f'({final.total_ms}ms total)')}"
        )


class FileChainSink:
    def __init__(self, log_dir: Optional[Path] = None) -> None:
        self.log_dir = Path(log_dir or settings.CHAIN_LOG_DIR)
        self.path: Optional[Path] = None
        self._blocks: List[str] = []

    def _flush(self) -> None:
        if self.path is None:
            return
        try:
            atomic_write_text(self.path, "\n".join(self._blocks) + "\n")
        except OSError as e:
            logger.error(f"[CHAIN] Failed to write chain log {self.path}: {e}")

    def on_start(self, log: ChainLog) -> None:
        stamp = log.started_at.strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3] + "Z"
        self.path = self.log_dir / f"{safe_file_stem(log.counterpart_id)}_{stamp}.log"
        self._blocks = [
            f"Chain Log: {log.counterpart_name} ({log.counterpart_id})\n"
            f"Started: {log.started_at.isoformat()}\n"
            f"{'=' * 60}"
        ]
        self._flush()

    def on_step(self, log: ChainLog, step: ChainStep) -> None:
        status = f" ({step.status.upper()})" if step.status else ""
        lines = [f"\n--- {step.name} [+{step.elapsed:.1f}s]{status} ---", f"Words: {step.word_count}"]
        if step.note:
            lines.append(f"Note: {step.note}")
        if step.input:
            lines.append(f"Input: {step.input[:INPUT_PREVIEW_CHARS]}...")
        if step.output:
            lines.append(f"Output:\n{step.output}")
        self._blocks.append("\n".join(lines))
        self._flush()

    def on_finish(self, log: ChainLog, final: ChainFinal) -> None:
        self._blocks.append(
            f"\n{'=' * 60}\nFINAL: {final.outcome}\nReply: {final.reply or '(none)'}\nTotal time: {final.total_ms}ms"
        )
        self._flush()


def default_sinks() -> List[ChainSink]:
    return [ConsoleChainSink(), FileChainSink()]
