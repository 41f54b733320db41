"""Prompt assembly helpers shared by the reply chain stages."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from ghostwriter.config.prompts import PromptPack
from ghostwriter.services.context_assembler import ReplyContext
from ghostwriter.utils.filler import format_exemplars

_STYLE_SECTION_RES = (
    re.compile(r"## Language & Word Choices[\s\S]*?(?=\n## [A-Z]|\Z)", re.IGNORECASE),
    re.compile(r"## General Style[\s\S]*?(?=\n## [A-Z]|\Z)", re.IGNORECASE),
)


def base_fields(rc: ReplyContext, *, exemplar_fallback: str = "(none available)") -> Dict[str, Any]:
    """Fields every stage template may reference."""
    s = rc.stats
    ctx = rc.context
    return {
        "user": ctx.subject_name,
        "contact": ctx.counterpart_name,
        "incoming": ctx.incoming_text,
        "min": s.min,
        "max": s.max,
        "avg": s.average,
        "p75": s.p75,
        "upper": s.effective_upper,
        "exemplars": format_exemplars(rc.exemplars) or exemplar_fallback,
    }


def recent_replies_block(rc: ReplyContext, prompts: PromptPack) -> str:
    if not rc.recent_replies:
        return ""
    return prompts.recent_replies_block.format(
        user=rc.context.subject_name,
        replies=format_exemplars(rc.recent_replies),
    )


def image_block(rc: ReplyContext, prompts: PromptPack) -> str:
    ctx = rc.context
    if ctx.has_images:
        descriptions = "\n".join(
            f"Image {i}: {d}" for i, d in enumerate(ctx.image_descriptions, start=1)
        )
        return prompts.images_seen.format(contact=ctx.counterpart_name, descriptions=descriptions)
    if ctx.image_unseen:
        return prompts.image_unseen.format(contact=ctx.counterpart_name)
    return ""


def style_document_block(document: Optional[str], prompts: PromptPack) -> str:
    if not document:
        return ""
    return prompts.style_document_block.format(document=document)


def style_reference_excerpt(document: Optional[str]) -> str:
    """Only the language and general-style sections of a style document."""
    if not document:
        return ""
    parts = []
    for pattern in _STYLE_SECTION_RES:
        m = pattern.search(document)
        if m:
            parts.append(m.group(0).strip())
    return "\n".join(parts)


def user_message(content: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": content}]
