"""ScanResult: the immutable outcome of scanning one document.

:func:`aggregate` folds the issues produced by the scanner, in run-encounter
order, together with the adapter's raw text into a :class:`ScanResult`.  The
two derived flags obey:

* ``is_empty`` is true exactly when ``raw_text`` is blank;
* ``safe`` is true exactly when there are no issues and the document is not
  empty.

A blank document is therefore never reported as safe, even with no issues.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from docshield.core.document_extractor import DocumentFormat
from docshield.core.rules import Issue, IssueKind


@dataclass(frozen=True)
class ScanResult:
    """Outcome of a completed scan.

    Attributes:
        safe: No issues and not empty.
        issues: Issues in run-encounter order.
        page_count: True page count for PDF; 1 for DOCX.
        file_name: Name the document was uploaded under.
        raw_text: Adapter-built concatenation of run texts.
        sanitized_text: ``raw_text`` with configured phrases redacted; empty
            for empty documents.
        is_empty: ``raw_text`` is blank.
        document_format: Container format of the source document.
    """

    safe: bool
    issues: tuple[Issue, ...]
    page_count: int
    file_name: str
    raw_text: str
    sanitized_text: str
    is_empty: bool
    document_format: DocumentFormat | None = field(default=None)

    @property
    def counts_by_kind(self) -> dict[IssueKind, int]:
        """Number of issues per kind, for the findings view."""
        return dict(Counter(issue.kind for issue in self.issues))


def is_blank(text: str) -> bool:
    return not text.strip()


def aggregate(
    issues: Iterable[Issue],
    *,
    raw_text: str,
    page_count: int,
    file_name: str,
    sanitized_text: str = "",
    document_format: DocumentFormat | None = None,
) -> ScanResult:
    """Build a :class:`ScanResult` from scanner output and adapter text."""
    issue_tuple = tuple(issues)
    empty = is_blank(raw_text)
    return ScanResult(
        safe=not issue_tuple and not empty,
        issues=issue_tuple,
        page_count=page_count,
        file_name=file_name,
        raw_text=raw_text,
        sanitized_text=sanitized_text,
        is_empty=empty,
        document_format=document_format,
    )
