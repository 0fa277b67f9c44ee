"""Highlighter: round-trip-safe annotated rendering of a document's raw text.

:func:`highlight` splits raw text into ordered :class:`Segment` objects,
each either plain or highlighted.  Highlighted segments are occurrences of a
"flaggable string": a configured injection phrase or the full text of a run
that raised an issue.

Flaggable strings are deduplicated and matched case-insensitively,
longest-first, so that a short flagged fragment never splits a longer one.
Every character of the input lands in exactly one segment, so joining the
segment texts always reproduces the input exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from docshield.core.redaction import compile_alternation, longest_first
from docshield.core.rules import Issue


@dataclass(frozen=True)
class Segment:
    """A contiguous slice of raw text."""

    text: str
    highlighted: bool = False


def flaggable_strings(issues: Iterable[Issue], phrases: Iterable[str]) -> list[str]:
    """Return phrases ∪ issue contexts, deduplicated, longest first."""
    seen: set[str] = set()
    unique: list[str] = []
    for candidate in [*phrases, *(issue.context for issue in issues)]:
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        unique.append(candidate)
    return longest_first(unique)


def highlight(
    raw_text: str,
    issues: Iterable[Issue],
    phrases: Iterable[str],
) -> list[Segment]:
    """Tokenise *raw_text* into plain and highlighted segments.

    Empty segments are never produced; an empty *raw_text* yields ``[]``.
    """
    if not raw_text:
        return []

    pattern = compile_alternation(flaggable_strings(issues, phrases))
    if pattern is None:
        return [Segment(raw_text)]

    segments: list[Segment] = []
    cursor = 0
    for match in pattern.finditer(raw_text):
        start, end = match.span()
        if start > cursor:
            segments.append(Segment(raw_text[cursor:start]))
        segments.append(Segment(match.group(), highlighted=True))
        cursor = end
    if cursor < len(raw_text):
        segments.append(Segment(raw_text[cursor:]))
    return segments


def join_segments(segments: Iterable[Segment]) -> str:
    """Concatenate segment texts in order."""
    return "".join(segment.text for segment in segments)
