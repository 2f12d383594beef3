"""Keyword extraction and relative-age labels."""

import re
from datetime import datetime
from functools import lru_cache
from typing import Iterable, Optional

from config.policy import load_policy

MIN_KEYWORD_LENGTH = 3

_APOSTROPHES = re.compile(r"['’]")
_NON_WORD = re.compile(r"[^\w\s]")


@lru_cache(maxsize=1)
def default_stop_words() -> frozenset[str]:
    """Stop words from the default policy file."""
    return frozenset(w.lower() for w in load_policy().stop_words)


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation and split on whitespace."""
    # "what's" -> "whats" rather than "what" + "s"
    cleaned = _APOSTROPHES.sub("", text.lower())
    cleaned = _NON_WORD.sub(" ", cleaned)
    return cleaned.split()


def extract_keywords(text: str, stop_words: Optional[Iterable[str]] = None) -> frozenset[str]:
    """
    Extract keywords from text.

    Args:
        text: Raw text
        stop_words: Words to drop (defaults to the policy stop words)

    Returns:
        Set of lowercase keywords longer than two characters
    """
    stops = default_stop_words() if stop_words is None else frozenset(stop_words)
    return frozenset(
        token for token in tokenize(text)
        if len(token) >= MIN_KEYWORD_LENGTH and token not in stops
    )


def relative_age(then: datetime, now: datetime) -> str:
    """Human label for how long ago ``then`` was."""
    seconds = max((now - then).total_seconds(), 0.0)
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"
