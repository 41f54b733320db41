"""Context Assembler - gathers everything the reply chain needs for one run.

Pure data gathering: history, style document, Q&A notes and image
descriptions, plus the statistics and flags derived from them. Nothing here
calls the completion service; image description (optional) goes through the
vision collaborator before the chain starts.
"""

from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Sequence, Tuple

import pytz

from ghostwriter.config import settings
from ghostwriter.services.interfaces import (
    HistoryMessage,
    HistoryStore,
    StyleProfileStore,
    VisionDescriber,
)
from ghostwriter.utils.filler import is_likely_filler, is_usable_body, select_exemplars

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "[image]"
IMAGE_UNAVAILABLE = "[Image description unavailable]"
MACHINE_TAG = "[AI-GENERATED]"

# Distress/crisis terms (English + romanized Hindi/Nepali). Substring match,
# case-insensitive, over the incoming text only.
EMERGENCY_KEYWORDS: Tuple[str, ...] = (
    "dying", "die", "dead", "death", "killed",
    "accident", "crash", "hospital", "emergency",
    "help me", "save me", "killing", "suicide",
    "blood", "ambulance", "police",
    "hurt", "injured", "attack", "danger",
    "serious problem", "critical", "urgent",
    "marna", "mar gaya", "mar raha", "bachao", "maddat",
)


def word_count(text: str) -> int:
    return len((text or "").split())


def detect_emergency(text: str, keywords: Iterable[str] = EMERGENCY_KEYWORDS) -> bool:
    if not text:
        return False
    lower = text.lower()
    return any(kw in lower for kw in keywords)


@dataclass(frozen=True)
class WordCountStatistics:
    """Acceptable reply-length envelope, in words."""

    min: int
    max: int
    average: int
    p75: int
    effective_upper: int

    def with_emergency_ceiling(self, ceiling: int = settings.EMERGENCY_UPPER) -> "WordCountStatistics":
        return replace(self, effective_upper=ceiling)


DEFAULT_WORD_STATS = WordCountStatistics(min=1, max=8, average=3, p75=5, effective_upper=8)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_word_stats(bodies: Iterable[str]) -> WordCountStatistics:
    """Length statistics over the user's own (human) messages.

    Filler is dropped when at least three real messages remain; otherwise
    every usable message counts. No usable history -> fixed default envelope.
    """
    all_lengths: List[int] = []
    real_lengths: List[int] = []
    for body in bodies:
        if not is_usable_body(body):
            continue
        wc = word_count(body)
        all_lengths.append(wc)
        if not is_likely_filler(body):
            real_lengths.append(wc)

    lengths = real_lengths if len(real_lengths) >= 3 else all_lengths
    if not lengths:
        return DEFAULT_WORD_STATS

    lengths.sort()
    avg = _round_half_up(sum(lengths) / len(lengths))
    p75 = lengths[int(len(lengths) * 0.75)] or avg
    return WordCountStatistics(
        min=lengths[0],
        max=lengths[-1],
        average=avg,
        p75=p75,
        effective_upper=max(avg + 3, p75, 5),
    )


@dataclass(frozen=True)
class HistoryLine:
    speaker: str
    timestamp_label: str
    is_machine_generated: bool
    text: str
    is_subject: bool = False

    def render(self) -> str:
        time_part = f" ({self.timestamp_label})" if self.timestamp_label else ""
        tag = f" {MACHINE_TAG}" if self.is_machine_generated else ""
        return f"[{self.speaker}]{time_part}{tag}: {self.text}"


@dataclass(frozen=True)
class ConversationContext:
    subject_name: str
    counterpart_id: str
    counterpart_name: str
    history_lines: Tuple[HistoryLine, ...]
    incoming_text: str
    image_descriptions: Tuple[str, ...] = ()
    qa_notes: str = ""
    style_document: Optional[str] = None

    @property
    def conversation_flow(self) -> str:
        return "\n".join(line.render() for line in self.history_lines)

    @property
    def has_images(self) -> bool:
        return bool(self.image_descriptions)

    @property
    def image_unseen(self) -> bool:
        """An image arrived but nothing could be seen of it."""
        return not self.has_images and IMAGE_PLACEHOLDER in (self.incoming_text or "")

    def subject_human_texts(self) -> List[str]:
        return [
            line.text for line in self.history_lines
            if line.is_subject and not line.is_machine_generated
        ]


@dataclass(frozen=True)
class ReplyContext:
    """Everything one chain invocation reads. Built fresh per run."""

    context: ConversationContext
    stats: WordCountStatistics
    emergency: bool
    recent_replies: Tuple[str, ...] = ()
    recent_bot_replies: Tuple[str, ...] = ()
    exemplars: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def effective_upper(self) -> int:
        return self.stats.effective_upper


class ContextAssembler:
    """Builds a ReplyContext from the history/style stores.

    Store failures degrade to an empty context: a reply with less context
    beats no reply capability at all.
    """

    def __init__(
        self,
        *,
        history_store: HistoryStore,
        style_store: StyleProfileStore,
        vision: Optional[VisionDescriber] = None,
        subject_name: str = settings.USER_NAME,
        history_limit: int = settings.HISTORY_LIMIT,
        recent_reply_limit: int = settings.RECENT_REPLY_LIMIT,
        timezone: str = settings.TIMEZONE,
    ) -> None:
        self.history_store = history_store
        self.style_store = style_store
        self.vision = vision
        self.subject_name = subject_name
        self.history_limit = history_limit
        self.recent_reply_limit = recent_reply_limit
        try:
            self.tz = pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"[CONTEXT] Unknown timezone {timezone!r}, using UTC")
            self.tz = pytz.utc

    def describe_images(self, images: Sequence) -> List[str]:
        """One description per image; placeholders when vision is unavailable."""
        if not images:
            return []
        if self.vision is None:
            return [IMAGE_UNAVAILABLE for _ in images]
        try:
            descriptions = list(self.vision.describe(images))
        except Exception as e:
            logger.error(f"[CONTEXT] Image description failed: {e}")
            return [IMAGE_UNAVAILABLE for _ in images]
        return descriptions or [IMAGE_UNAVAILABLE for _ in images]

    def _timestamp_label(self, ts: float) -> str:
        if not ts:
            return ""
        dt = datetime.datetime.fromtimestamp(ts, tz=pytz.utc).astimezone(self.tz)
        return dt.strftime("%H:%M")

    def _to_line(self, msg: HistoryMessage, counterpart_name: str) -> HistoryLine:
        return HistoryLine(
            speaker=self.subject_name if msg.is_from_me else counterpart_name,
            timestamp_label=self._timestamp_label(msg.timestamp),
            is_machine_generated=bool(
                msg.is_from_me
                and (msg.is_machine_generated or msg.message_id.startswith(settings.MACHINE_ID_PREFIXES))
            ),
            text=msg.text,
            is_subject=msg.is_from_me,
        )

    def _fetch_history(self, counterpart_id: str) -> List[HistoryMessage]:
        try:
            return list(self.history_store.recent(counterpart_id, self.history_limit))
        except Exception as e:
            logger.warning(f"[CONTEXT] History unavailable for {counterpart_id}, continuing without: {e}")
            return []

    def _fetch_style(self, counterpart_id: str) -> tuple[Optional[str], str]:
        document: Optional[str] = None
        qa_notes = ""
        try:
            document = self.style_store.load(counterpart_id)
        except Exception as e:
            logger.warning(f"[CONTEXT] Style document unavailable for {counterpart_id}: {e}")
        try:
            qa_notes = self.style_store.load_qa_notes(counterpart_id) or ""
        except Exception as e:
            logger.warning(f"[CONTEXT] Q&A notes unavailable for {counterpart_id}: {e}")
        return document, qa_notes

    def assemble(
        self,
        counterpart_id: str,
        counterpart_name: str,
        incoming_text: str,
        image_descriptions: Sequence[str] = (),
    ) -> ReplyContext:
        history = self._fetch_history(counterpart_id)
        document, qa_notes = self._fetch_style(counterpart_id)

        lines = tuple(self._to_line(m, counterpart_name) for m in history)
        context = ConversationContext(
            subject_name=self.subject_name,
            counterpart_id=counterpart_id,
            counterpart_name=counterpart_name,
            history_lines=lines,
            incoming_text=incoming_text or "",
            image_descriptions=tuple(d for d in image_descriptions if d),
            qa_notes=qa_notes,
            style_document=document,
        )

        human_texts = context.subject_human_texts()
        stats = compute_word_stats(human_texts)
        emergency = detect_emergency(context.incoming_text)
        if emergency:
            stats = stats.with_emergency_ceiling()
            logger.warning(f"[CONTEXT] EMERGENCY detected in message from {counterpart_name}")

        bot_texts = [l.text for l in lines if l.is_subject and l.is_machine_generated]

        logger.info(
            f"[CONTEXT] {counterpart_name}: {len(lines)} lines, avg={stats.average} p75={stats.p75} "
            f"upper={stats.effective_upper} style_doc={'yes' if document else 'none'} "
            f"qa={'yes' if qa_notes else 'none'} images={len(context.image_descriptions)}"
        )
        return ReplyContext(
            context=context,
            stats=stats,
            emergency=emergency,
            recent_replies=tuple(human_texts[-self.recent_reply_limit:]),
            recent_bot_replies=tuple(bot_texts[-settings.RECENT_BOT_REPLY_LIMIT:]),
            exemplars=tuple(select_exemplars(human_texts, settings.MAX_EXEMPLARS)),
        )
