"""
Correction detector — does this message say the last edit was wrong?

A stateless heuristic: a maintained phrase list plus a few negation
patterns. The phrase list is injectable so it can be tuned without code
changes.
"""

from __future__ import annotations

import re
from typing import Iterable

from app.core.config import settings

__all__ = ("detect_correction",)

_NEGATIONS = (
    re.compile(r"^\s*(no|nope|nah)\b"),
    re.compile(r"\bthat'?s not (right|it|correct)\b"),
    re.compile(r"\bnot what i (wanted|asked|meant)\b"),
    re.compile(r"\bshould(n'?t| not) have\b"),
    re.compile(r"\b(don'?t|do not) (remove|change|touch|delete)\b"),
)

# "no", "nope, thanks" and the like, with nothing else said
_BARE_NEGATION = re.compile(r"^\s*(no|nope|nah)[\s,.!]*(thanks|thank you)?[\s.!]*$")

_APOSTROPHES = str.maketrans({"’": "'", "‘": "'"})


def detect_correction(
    message: str,
    last_assistant: str | None = None,
    phrases: Iterable[str] | None = None,
) -> bool:
    """True when *message* reads as dissatisfaction with the previous edit."""
    text = message.lower().translate(_APOSTROPHES).strip()
    if not text:
        return False

    phrases = settings.CORRECTION_PHRASES if phrases is None else phrases
    if any(phrase.lower() in text for phrase in phrases):
        return True

    # Answering "Shall I also upscale it?" with "no" declines an offer
    if _BARE_NEGATION.match(text) and last_assistant and last_assistant.rstrip().endswith("?"):
        return False

    return any(pattern.search(text) for pattern in _NEGATIONS)
