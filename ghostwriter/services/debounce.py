"""Per-counterpart debounce buffer.

Rapid-fire incoming messages are collected and answered once, after
``delay_seconds`` of silence from that counterpart (like a real person
reading a burst of texts before replying).

At most one flush per counterpart runs at a time. Messages that arrive while
a reply is being generated wait in a fresh batch; its timer is armed when
the running flush returns.

The buffer is created once at process start and injected into the
auto-reply service; pending state lives here, scoped per counterpart.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ghostwriter.config import settings

logger = logging.getLogger(__name__)


@dataclass
class PendingBatch:
    counterpart_id: str
    counterpart_name: str
    texts: List[str] = field(default_factory=list)
    images: List[Any] = field(default_factory=list)

    @property
    def combined_text(self) -> str:
        return "\n".join(self.texts)


class DebounceBuffer:
    """Thread-safe: ``add`` is called from the transport thread, ``on_flush``
    runs on the timer thread.
    """

    def __init__(
        self,
        on_flush: Callable[[PendingBatch], None],
        *,
        delay_seconds: float = settings.DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.on_flush = on_flush
        self.delay_seconds = delay_seconds
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._batches: Dict[str, PendingBatch] = {}
        self._timers: Dict[str, Any] = {}
        self._in_flight: Set[str] = set()

    def _arm(self, counterpart_id: str) -> None:
        # Caller holds self._lock.
        old = self._timers.pop(counterpart_id, None)
        if old is not None:
            old.cancel()
        timer = self._timer_factory(self.delay_seconds, self.flush, args=(counterpart_id,))
        timer.daemon = True
        self._timers[counterpart_id] = timer
        timer.start()

    def add(self, counterpart_id: str, counterpart_name: str, text: str, images: Optional[List[Any]] = None) -> PendingBatch:
        """Queue one message and (re)start the silence timer for its counterpart."""
        with self._lock:
            batch = self._batches.get(counterpart_id)
            if batch is None:
                batch = PendingBatch(counterpart_id=counterpart_id, counterpart_name=counterpart_name)
                self._batches[counterpart_id] = batch
            batch.texts.append(text)
            batch.images.extend(images or [])
            busy = counterpart_id in self._in_flight
            if not busy:
                self._arm(counterpart_id)

        if busy:
            logger.debug(f"[DEBOUNCE] {counterpart_name}: reply in progress, holding {len(batch.texts)} message(s)")
        else:
            logger.debug(f"[DEBOUNCE] {counterpart_name}: {len(batch.texts)} message(s) pending")
        return batch

    def flush(self, counterpart_id: str) -> Optional[PendingBatch]:
        """Hand the pending batch to ``on_flush`` now.

        Returns the batch, or None when nothing is pending or a flush for the
        same counterpart is still running (the batch then stays queued).
        """
        with self._lock:
            timer = self._timers.pop(counterpart_id, None)
            if counterpart_id in self._in_flight:
                batch = None
            else:
                batch = self._batches.pop(counterpart_id, None)
                if batch is not None:
                    self._in_flight.add(counterpart_id)
        if timer is not None:
            timer.cancel()
        if batch is None:
            return None

        try:
            self.on_flush(batch)
        except Exception:
            logger.exception(f"[DEBOUNCE] Flush handler failed for {batch.counterpart_name}")
        finally:
            with self._lock:
                self._in_flight.discard(counterpart_id)
                if counterpart_id in self._batches:
                    self._arm(counterpart_id)
        return batch

    def pending(self, counterpart_id: str) -> Optional[PendingBatch]:
        with self._lock:
            return self._batches.get(counterpart_id)

    def in_flight(self, counterpart_id: str) -> bool:
        with self._lock:
            return counterpart_id in self._in_flight

    def cancel_all(self) -> int:
        """Drop every pending batch without replying. Returns how many were dropped."""
        with self._lock:
            timers = list(self._timers.values())
            dropped = len(self._batches)
            self._timers.clear()
            self._batches.clear()
        for t in timers:
            t.cancel()
        if dropped:
            logger.info(f"[DEBOUNCE] Cancelled {dropped} pending batch(es)")
        return dropped
