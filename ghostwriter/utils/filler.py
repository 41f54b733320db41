"""Filler classification shared by the statistics and exemplar selection.

Auto-replies skew toward one-word acknowledgements. If those were counted as
the user's style, the learned typical length collapses toward 1 word and the
bot keeps sending filler forever.
"""

from __future__ import annotations

import string
from typing import Iterable, List

# Common 1-word reflexive replies (English plus the romanized Nepali/Hindi
# acknowledgements seen in real chats).
FILLER_WORDS = frozenset({
    "khai", "hmm", "hmmm", "okey", "ok", "okay", "k", "haha", "hahaha", "lol",
    "ohh", "oh", "ahh", "ah", "hm", "yes", "no", "yep", "yup", "nah", "sure",
    "nice", "wow", "damn", "acha", "thik",
})

# A lone token this short is a reflex, not a sentence ("k", "ya", an emoji)
MAX_FILLER_TOKEN_CHARS = 3

_PUNCT = string.punctuation + "…"


def _normalize_token(token: str) -> str:
    return token.strip(_PUNCT).lower()


def is_likely_filler(text: str) -> bool:
    """True for short reflexive acknowledgements.

    A message is filler if it has at most two words AND either it is a single
    token of at most MAX_FILLER_TOKEN_CHARS characters or it starts with a known
    acknowledgement/interjection.
    """
    words = (text or "").split()
    if not words or len(words) > 2:
        return False
    if len(words) == 1 and len(words[0]) <= MAX_FILLER_TOKEN_CHARS:
        return True
    return _normalize_token(words[0]) in FILLER_WORDS


def is_usable_body(text: str) -> bool:
    """Attachment placeholders and bare links say nothing about style."""
    body = (text or "").strip()
    return bool(body) and not body.startswith("[File:") and not body.startswith("http")


def select_exemplars(bodies: Iterable[str], max_examples: int = 15) -> List[str]:
    """The user's most recent real messages, for style imitation.

    Filler is excluded unless fewer than three real messages exist.
    """
    usable = [b.strip() for b in bodies if is_usable_body(b)]
    real = [b for b in usable if not is_likely_filler(b)]
    pool = real if len(real) >= 3 else usable
    return pool[-max_examples:]


def format_exemplars(exemplars: Iterable[str]) -> str:
    return ", ".join(f'"{e}"' for e in exemplars)
