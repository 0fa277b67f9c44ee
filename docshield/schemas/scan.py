"""Pydantic schemas for the scan and session API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from docshield.core.highlighter import Segment
from docshield.core.rules import Issue
from docshield.core.scan_result import ScanResult
from docshield.core.session import SessionState


class IssueOut(BaseModel):
    """One finding in the findings view."""

    id: str
    kind: Literal["injection_keyword", "hidden_text", "micro_text"]
    detail: str
    context: str
    page: int = Field(ge=1)
    severity: Literal["high", "medium"]

    @classmethod
    def from_issue(cls, issue: Issue) -> "IssueOut":
        return cls(
            id=issue.id,
            kind=issue.kind.value,
            detail=issue.detail,
            context=issue.context,
            page=issue.page,
            severity=issue.severity,
        )


class SegmentOut(BaseModel):
    """One slice of the highlighted proof text."""

    text: str
    highlighted: bool

    @classmethod
    def from_segment(cls, segment: Segment) -> "SegmentOut":
        return cls(text=segment.text, highlighted=segment.highlighted)


class ScanResultOut(BaseModel):
    """Findings view of a completed scan."""

    file_name: str
    format: Literal["pdf", "docx"] | None = None
    safe: bool
    is_empty: bool
    page_count: int = Field(ge=0)
    issues: list[IssueOut]
    counts_by_kind: dict[str, int]

    @classmethod
    def from_result(cls, result: ScanResult) -> "ScanResultOut":
        return cls(
            file_name=result.file_name,
            format=result.document_format.value if result.document_format else None,
            safe=result.safe,
            is_empty=result.is_empty,
            page_count=result.page_count,
            issues=[IssueOut.from_issue(i) for i in result.issues],
            counts_by_kind={k.value: n for k, n in result.counts_by_kind.items()},
        )


class ViewsAvailable(BaseModel):
    """Which presentation views carry content for this result."""

    findings: bool = True
    sanitized_text: bool
    highlighted_text: bool


class ScanResponse(BaseModel):
    """Response body of ``POST /v1/scan``."""

    result: ScanResultOut
    raw_text: str
    sanitized_text: str
    segments: list[SegmentOut]
    views_available: ViewsAvailable


class SessionOut(BaseModel):
    """Response body of ``GET /v1/session``."""

    version: int
    generation: int
    status: Literal["idle", "scanning", "complete", "failed"]
    file_name: str | None = None
    progress: float = Field(ge=0.0, le=1.0)
    result: ScanResultOut | None = None
    error: str | None = None

    @classmethod
    def from_state(cls, state: SessionState) -> "SessionOut":
        return cls(
            version=state.version,
            generation=state.generation,
            status=state.status.value,
            file_name=state.document.file_name if state.document else None,
            progress=state.progress,
            result=ScanResultOut.from_result(state.result) if state.result else None,
            error=state.error,
        )


class ErrorOut(BaseModel):
    """Error body for rejected scan requests."""

    detail: str
