"""Detection rules: pure evaluators mapping one :class:`TextRun` to issues.

Every rule implements :class:`DetectionRule`: ``evaluate(run)`` returns a
(possibly empty) list of :class:`Issue` objects and never raises.  Rules hold
only their configuration, so a single instance can be shared across scans
and threads.

Three rule types exist:

* :class:`KeywordRule`: one configured injection phrase, matched as a
  case-insensitive substring.  At most one issue per run, however many
  times the phrase repeats inside the run.
* :class:`MicroTextRule`: font size strictly between 0 and the threshold.
* :class:`HiddenColorRule`: run colour in the configured hidden set.

Issue ids are derived from the run's page, its document-wide index, the
issue kind and (for keywords) a phrase key: the phrase slug plus a short
digest of the lowercased phrase, so phrases that slug alike stay distinct.
Rescanning the same bytes yields exactly the same ids.
"""

from __future__ import annotations

import enum
import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Literal, Protocol, runtime_checkable

from docshield.core.document_extractor import TextRun

Severity = Literal["high", "medium"]

_SEVERITY_RANK: dict[str, int] = {"high": 2, "medium": 1}

_SLUG_RE = re.compile(r"[^a-z0-9]+")


class IssueKind(str, enum.Enum):
    """Canonical finding taxonomy shared by every format."""

    INJECTION_KEYWORD = "injection_keyword"
    HIDDEN_TEXT = "hidden_text"
    MICRO_TEXT = "micro_text"


@dataclass(frozen=True)
class Issue:
    """A single detection finding.

    Attributes:
        id: Deterministic identifier, unique within one scan.
        kind: Finding category.
        detail: Human-readable description.
        context: The originating run's raw text.
        page: 1-based page number of the originating run.
        severity: ``"high"`` or ``"medium"``.
    """

    id: str
    kind: IssueKind
    detail: str
    context: str
    page: int
    severity: Severity

    @property
    def severity_rank(self) -> int:
        return _SEVERITY_RANK[self.severity]


def issue_id(run: TextRun, kind: IssueKind, discriminator: str | None = None) -> str:
    """Return the deterministic id for an issue raised on *run*."""
    base = f"p{run.page}-r{run.index}-{kind.value}"
    if discriminator:
        return f"{base}-{discriminator}"
    return base


def phrase_slug(phrase: str) -> str:
    """Lowercase *phrase* and collapse non-alphanumerics to underscores."""
    return _SLUG_RE.sub("_", phrase.lower()).strip("_") or "phrase"


def phrase_key(phrase: str) -> str:
    """Return the id discriminator for *phrase*: ``{slug}-{8 hex digits}``."""
    digest = hashlib.sha256(phrase.lower().encode("utf-8")).hexdigest()[:8]
    return f"{phrase_slug(phrase)}-{digest}"


@runtime_checkable
class DetectionRule(Protocol):
    """Interface shared by all detection rules."""

    def evaluate(self, run: TextRun) -> list[Issue]:
        ...


class KeywordRule:
    """Flags runs containing one configured injection phrase."""

    def __init__(self, phrase: str) -> None:
        if not phrase.strip():
            raise ValueError("KeywordRule phrase must not be blank")
        self.phrase = phrase
        self._needle = phrase.lower()
        self._key = phrase_key(phrase)

    def __repr__(self) -> str:
        return f"KeywordRule({self.phrase!r})"

    def evaluate(self, run: TextRun) -> list[Issue]:
        if self._needle not in run.text.lower():
            return []
        return [
            Issue(
                id=issue_id(run, IssueKind.INJECTION_KEYWORD, self._key),
                kind=IssueKind.INJECTION_KEYWORD,
                detail=f'Blocked phrase: "{self.phrase}"',
                context=run.text,
                page=run.page,
                severity="high",
            )
        ]


class MicroTextRule:
    """Flags non-blank runs rendered below a legible font size."""

    def __init__(self, threshold_pt: float = 4.0) -> None:
        if threshold_pt <= 0:
            raise ValueError("threshold_pt must be positive")
        self.threshold_pt = threshold_pt

    def __repr__(self) -> str:
        return f"MicroTextRule({self.threshold_pt!r})"

    def evaluate(self, run: TextRun) -> list[Issue]:
        size = run.font_size_pt
        if size is None or not (0 < size < self.threshold_pt):
            return []
        if not run.text.strip():
            return []
        return [
            Issue(
                id=issue_id(run, IssueKind.MICRO_TEXT),
                kind=IssueKind.MICRO_TEXT,
                detail=f"Micro-text caught (size: {size:.1f}pt)",
                context=run.text,
                page=run.page,
                severity="medium",
            )
        ]


class HiddenColorRule:
    """Flags non-blank runs whose colour matches the page background."""

    def __init__(self, colors: Iterable[str]) -> None:
        self.colors = frozenset(c.strip().lstrip("#").upper() for c in colors if c.strip())

    def __repr__(self) -> str:
        return f"HiddenColorRule({sorted(self.colors)!r})"

    def evaluate(self, run: TextRun) -> list[Issue]:
        if run.color is None or run.color.upper() not in self.colors:
            return []
        if not run.text.strip():
            return []
        return [
            Issue(
                id=issue_id(run, IssueKind.HIDDEN_TEXT),
                kind=IssueKind.HIDDEN_TEXT,
                detail=f"Hidden-colour text detected (colour: {run.color})",
                context=run.text,
                page=run.page,
                severity="high",
            )
        ]
