"""Production wiring: logging setup and construction of the reply chain.

Everything that needs real storage, real providers or real log files is
assembled here so the chain modules themselves only see injected
collaborators.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from ghostwriter.config import settings
from ghostwriter.config.prompts import DEFAULT_PROMPTS, PromptPack
from ghostwriter.services.analyst import Analyzer
from ghostwriter.services.chain import ReplyChain
from ghostwriter.services.chain_log import ChainSink, default_sinks
from ghostwriter.services.completion import CompletionService
from ghostwriter.services.context_assembler import ContextAssembler
from ghostwriter.services.drafter import Drafter, Reviser
from ghostwriter.services.interfaces import CompletionClient, VisionDescriber
from ghostwriter.services.planner import Planner
from ghostwriter.services.style_store import StyleStore
from ghostwriter.services.verifier import Verifier
from ghostwriter.services.vision import ImageDescriber
from ghostwriter.utils.message_store import MessageStore

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    settings.LOG_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    if any(isinstance(h, logging.FileHandler) for h in root_logger.handlers):
        return

    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(settings.LOG_FILE, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )

    # Dedicated audit logger for skipped and unverified replies (post-mortem)
    audit_logger = logging.getLogger("ghostwriter.audit")
    audit_logger.propagate = False  # Don't duplicate to root
    audit_file = settings.LOG_DIR / "chain_outcomes_audit.log"
    audit_handler = logging.FileHandler(audit_file, encoding="utf-8")
    audit_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    )
    audit_logger.addHandler(audit_handler)
    audit_logger.setLevel(logging.INFO)


def build_chain(
    *,
    completion: Optional[CompletionClient] = None,
    vision: Optional[VisionDescriber] = None,
    history: Optional[MessageStore] = None,
    styles: Optional[StyleStore] = None,
    prompts: PromptPack = DEFAULT_PROMPTS,
    sink_factory: Callable[[], Sequence[ChainSink]] = default_sinks,
) -> ReplyChain:
    """Wire a ReplyChain from settings; any collaborator can be overridden."""
    completion = completion or CompletionService()
    if vision is None and settings.OPENAI_API_KEY:
        vision = ImageDescriber(prompts=prompts)

    assembler = ContextAssembler(
        history_store=history or MessageStore(settings.HISTORY_DIR),
        style_store=styles or StyleStore(settings.STYLE_PROFILE_DIR),
        vision=vision,
        subject_name=settings.USER_NAME,
        history_limit=settings.HISTORY_LIMIT,
        recent_reply_limit=settings.RECENT_REPLY_LIMIT,
        timezone=settings.TIMEZONE,
    )
    logger.info(
        f"Reply chain ready: provider={getattr(completion, 'provider', type(completion).__name__)} "
        f"vision={'on' if vision else 'off'} user={settings.USER_NAME}"
    )
    return ReplyChain(
        assembler=assembler,
        analyzer=Analyzer(completion, prompts),
        planner=Planner(completion, prompts),
        drafter=Drafter(completion, prompts),
        verifier=Verifier(completion, prompts),
        reviser=Reviser(completion, prompts),
        sink_factory=sink_factory,
        max_retries=settings.MAX_RETRIES,
    )

