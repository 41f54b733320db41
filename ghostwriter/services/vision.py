from __future__ import annotations

import base64
import logging
import re
from pathlib import Path
from typing import List, Sequence, Union

from ghostwriter.config import settings
from ghostwriter.config.prompts import DEFAULT_PROMPTS, PromptPack
from ghostwriter.services.context_assembler import IMAGE_UNAVAILABLE

logger = logging.getLogger(__name__)

_NUMBERED_SPLIT_RE = re.compile(r"\n(?=\d+[.):])")

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def encode_image(image: Union[str, bytes, Path]) -> str:
    """
    Encode an image to a base64 data URL.

    Args:
        image: File path, raw bytes, bare base64 string, or an existing data URL

    Returns:
        Base64 data URL string
    """
    if isinstance(image, str) and image.startswith("data:image"):
        return image

    if isinstance(image, Path) or (isinstance(image, str) and Path(image).suffix.lower() in _MIME_TYPES):
        path = Path(image)
        if not path.exists():
            raise FileNotFoundError(f"Image not found: {path}")
        mime = _MIME_TYPES.get(path.suffix.lower(), "image/png")
        with open(path, "rb") as f:
            b64 = base64.b64encode(f.read()).decode()
        return f"data:{mime};base64,{b64}"

    if isinstance(image, bytes):
        b64 = base64.b64encode(image).decode()
        return f"data:image/png;base64,{b64}"

    if isinstance(image, str):
        # Bare base64 as delivered by chat transports
        return f"data:image/jpeg;base64,{image}"

    raise ValueError(f"Unsupported image type: {type(image)}")


def split_descriptions(text: str, count: int) -> List[str]:
    """Split a numbered multi-image answer into exactly one entry per image.

    Surplus entries are folded into the last one; missing entries get the
    unavailable placeholder.
    """
    if count <= 0:
        return []
    text = (text or "").strip()
    if count == 1:
        return [text or IMAGE_UNAVAILABLE]
    parts = [p.strip() for p in _NUMBERED_SPLIT_RE.split(text) if p.strip()]
    if len(parts) > count:
        parts = parts[:count - 1] + ["\n".join(parts[count - 1:])]
    return parts + [IMAGE_UNAVAILABLE] * (count - len(parts))


class ImageDescriber:
    """Vision collaborator backed by OpenAI's multimodal chat endpoint.

    Errors propagate; the context assembler turns them into placeholders.
    """

    def __init__(self, model: str | None = None, prompts: PromptPack = DEFAULT_PROMPTS) -> None:
        self.model = model or settings.VISION_MODEL
        self.prompts = prompts

    def describe(self, images: Sequence) -> List[str]:
        if not images:
            return []
        if not settings.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY is not set")

        from openai import OpenAI

        client = OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.LLM_TIMEOUT)
        content: list[dict] = [{"type": "text", "text": self.prompts.vision_task.format(count=len(images))}]
        for img in images:
            content.append({"type": "image_url", "image_url": {"url": encode_image(img), "detail": "low"}})

        resp = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.prompts.vision_system},
                {"role": "user", "content": content},
            ],
            max_tokens=settings.VISION_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
        )
        descriptions = split_descriptions(resp.choices[0].message.content or "", len(images))
        logger.info(f"[VISION] Described {len(images)} image(s) -> {len(descriptions)} description(s)")
        return descriptions
