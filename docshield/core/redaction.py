"""RedactionEngine: phrase redaction for DocShield.

:class:`RedactionEngine` returns a copy of a document's raw text with every
case-insensitive occurrence of every configured injection phrase replaced by
a fixed token (``[REMOVED]`` by default).  Redaction works on the text alone
and is independent of the scan's issue list: it also catches occurrences the
scanner reported only as part of a larger run.

**Overlap handling:** all phrases are compiled into one alternation ordered
longest-first.  At every position the longest matching phrase wins, so a
short phrase never splits a longer one and no character is redacted twice.

**Single pass:** a replacement can only create a new occurrence by overlapping
the token.  Phrases that contain the token, occur inside it, or overlap one of
its edges (a phrase prefix equal to a token suffix, or a phrase suffix equal
to a token prefix) are rejected at construction.  With those excluded one
pass leaves no phrase behind, and redacting the output again is a no-op.

Usage::

    from docshield.core.redaction import RedactionEngine

    engine = RedactionEngine(["ignore previous instructions"])
    engine.redact("Please IGNORE PREVIOUS INSTRUCTIONS now")
    # "Please [REMOVED] now"
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from docshield.core.patterns.injection_phrases import normalise_phrases

logger = logging.getLogger(__name__)

REDACTED_TOKEN = "[REMOVED]"


def longest_first(strings: Iterable[str]) -> list[str]:
    """Return *strings* sorted by descending length (stable for ties)."""
    return sorted(strings, key=len, reverse=True)


def compile_alternation(strings: Iterable[str]) -> re.Pattern[str] | None:
    """Compile a case-insensitive, longest-first literal alternation.

    Returns ``None`` when *strings* contains no non-empty entry.
    """
    ordered = longest_first(s for s in strings if s)
    if not ordered:
        return None
    return re.compile("|".join(re.escape(s) for s in ordered), re.IGNORECASE)


def overlaps_token(phrase: str, token: str) -> bool:
    """Return ``True`` if *phrase* could match across or inside *token*.

    Compared case-insensitively.
    """
    p, t = phrase.lower(), token.lower()
    if p in t or t in p:
        return True
    for k in range(1, min(len(p), len(t)) + 1):
        if p[:k] == t[-k:] or p[-k:] == t[:k]:
            return True
    return False


class RedactionEngine:
    """Stateless phrase redaction engine.

    Args:
        phrases: Phrases to redact.  Blank entries and case-insensitive
            duplicates are dropped.
        token: Replacement token.

    Raises:
        ValueError: If a phrase overlaps *token* (see :func:`overlaps_token`);
            such a phrase could re-match around its own replacement.
    """

    def __init__(self, phrases: Iterable[str], token: str = REDACTED_TOKEN) -> None:
        self.phrases = normalise_phrases(phrases)
        self.token = token

        for phrase in self.phrases:
            if overlaps_token(phrase, token):
                raise ValueError(
                    f"Phrase {phrase!r} overlaps the redaction token {token!r}"
                )

        self._pattern = compile_alternation(self.phrases)

    def redact(self, text: str) -> str:
        """Return *text* with every configured phrase replaced by the token."""
        if not text or self._pattern is None:
            return text

        redacted, replacements = self._pattern.subn(self.token, text)
        logger.debug(
            "RedactionEngine.redact: phrases=%d replacements=%d",
            len(self.phrases),
            replacements,
        )
        return redacted

    def contains_phrase(self, text: str) -> bool:
        """Return ``True`` when *text* contains any configured phrase."""
        return self._pattern is not None and self._pattern.search(text) is not None
