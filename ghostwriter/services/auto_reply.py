from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, Iterable, List, Optional

from ghostwriter.config import settings
from ghostwriter.services.chain import ReplyChain
from ghostwriter.services.context_assembler import IMAGE_PLACEHOLDER
from ghostwriter.services.debounce import DebounceBuffer, PendingBatch
from ghostwriter.services.interfaces import IncomingMessage, TransportBridge
from ghostwriter.utils.message_store import MessageStore

logger = logging.getLogger(__name__)

# Large image bursts are sampled rather than described one by one.
IMAGE_SAMPLE_THRESHOLD = 10
IMAGE_SAMPLE_SIZE = 5


class AutoReplyService:
    """Incoming message -> history -> debounce -> reply chain -> transport.

    Only counterparts in ``enabled_contacts`` get automatic replies; every
    inbound message is stored regardless. A chain failure or a SKIPPED
    outcome sends nothing.
    """

    def __init__(
        self,
        *,
        chain: ReplyChain,
        history: MessageStore,
        bridge: TransportBridge,
        debounce: Optional[DebounceBuffer] = None,
        enabled_contacts: Optional[Iterable[str]] = None,
    ) -> None:
        self.chain = chain
        self.history = history
        self.bridge = bridge
        self.enabled_contacts = set(settings.AUTO_REPLY_CONTACTS if enabled_contacts is None else enabled_contacts)
        if debounce is None:
            debounce = DebounceBuffer(self.process_batch)
        else:
            debounce.on_flush = self.process_batch
        self.debounce = debounce

    def is_enabled(self, counterpart_id: str) -> bool:
        return counterpart_id in self.enabled_contacts

    def handle_incoming(self, msg: IncomingMessage) -> Dict[str, Any]:
        text = (msg.text or "").strip()
        stored_text = text or (IMAGE_PLACEHOLDER if msg.images else "")
        try:
            self.history.store_message(
                counterpart_id=msg.counterpart_id,
                text=stored_text,
                is_from_me=False,
                timestamp=msg.timestamp or None,
                message_id=msg.message_id or None,
            )
        except Exception as e:
            logger.error(f"[AUTO] Failed to store message from {msg.counterpart_name}: {e}")

        if not self.is_enabled(msg.counterpart_id):
            return {"stored": True, "replied": False, "reason": "not in auto-reply list"}
        if not text and not msg.images:
            return {"stored": True, "replied": False, "reason": "non-text/image"}

        self.debounce.add(msg.counterpart_id, msg.counterpart_name, text or IMAGE_PLACEHOLDER, list(msg.images))
        return {"stored": True, "replied": "pending", "reason": "debouncing"}

    def handle_outgoing(self, counterpart_id: str, text: str, *, message_id: str | None = None, timestamp: float | None = None) -> bool:
        """Record a message the user typed themselves."""
        return self.history.store_message(
            counterpart_id=counterpart_id,
            text=text,
            is_from_me=True,
            timestamp=timestamp,
            message_id=message_id,
        )

    def _sample_images(self, images: List[Any]) -> List[Any]:
        if len(images) >= IMAGE_SAMPLE_THRESHOLD:
            return random.sample(images, IMAGE_SAMPLE_SIZE)
        return images

    def process_batch(self, batch: PendingBatch) -> Optional[str]:
        """Run the reply chain for one debounced batch. Returns the sent text."""
        name = batch.counterpart_name
        descriptions: List[str] = []
        if batch.images:
            descriptions = self.chain.assembler.describe_images(self._sample_images(batch.images))

        try:
            result = self.chain.run(batch.counterpart_id, name, batch.combined_text, descriptions)
        except Exception:
            logger.exception(f"[AUTO] Reply chain failed for {name}; not sending")
            return None

        if not result.should_send:
            logger.info(f"[AUTO] No reply for {name} ({result.outcome.value})")
            return None

        reply = result.reply
        if not self.bridge.send_message(batch.counterpart_id, reply):
            logger.error(f"[AUTO] Transport failed to deliver reply to {name}")
            return None

        now = time.time()
        self.history.store_message(
            counterpart_id=batch.counterpart_id,
            text=reply,
            is_from_me=True,
            timestamp=now,
            message_id=f"auto_{int(now * 1000)}_{batch.counterpart_id}",
        )
        logger.info(f"[AUTO] Replied to {name} ({result.outcome.value}): {reply}")
        return reply
