"""ScanPipeline: orchestration of a DocShield scan with OpenTelemetry instrumentation.

:class:`ScanPipeline` runs three steps in order for one document:

1. **extract**: bytes to runs and raw text via :class:`~docshield.core.document_extractor.DocumentExtractor`
2. **scan**: runs to issues via :class:`~docshield.core.scanner.Scanner`
3. **sanitize**: raw text to redacted text via :class:`~docshield.core.redaction.RedactionEngine`

and folds the outputs into an immutable
:class:`~docshield.core.scan_result.ScanResult`.  Every step is wrapped in a
named OpenTelemetry span so that traces show per-step timing.

**Failure contract**: the format is resolved before any step runs, so an
unsupported document raises
:class:`~docshield.core.document_extractor.UnsupportedFormatError` without
touching an adapter.  Any exception inside a step halts the pipeline and is
re-raised as :class:`PipelineError`; no partial result is returned.

Usage::

    pipeline = ScanPipeline(
        extractor=DocumentExtractor(),
        scanner=Scanner.from_settings(settings),
        redaction_engine=RedactionEngine(settings.resolved_phrases()),
    )
    result = await pipeline.run(raw_bytes, file_name="cv.pdf")
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from prometheus_client import Counter

from docshield.core.document_extractor import (
    DocumentExtractor,
    DocumentFormat,
    ExtractionResult,
    ProgressCallback,
    resolve_format,
)
from docshield.core.redaction import RedactionEngine
from docshield.core.rules import Issue
from docshield.core.scan_result import ScanResult, aggregate
from docshield.core.scanner import Scanner

logger = logging.getLogger(__name__)

# Module-level OTel tracer shared by all pipeline runs.
tracer = trace.get_tracer(
    "docshield.pipeline",
    schema_url="https://opentelemetry.io/schemas/1.11.0",
)

# ---------------------------------------------------------------------------
# Prometheus metrics
# ---------------------------------------------------------------------------

#: Completed or failed scans.  Labels: ``outcome`` ("safe" | "unsafe" |
#: "empty" | "failed").
scans_total = Counter(
    "docshield_scans_total",
    "Total number of document scans by outcome",
    ["outcome"],
)

#: Issues reported by completed scans.  Labels: ``kind``.
issues_total = Counter(
    "docshield_issues_total",
    "Total number of issues reported by kind",
    ["kind"],
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PipelineError(Exception):
    """Raised when a pipeline step fails unrecoverably.

    Attributes:
        step_name: Short name of the step that raised (e.g. ``"extract"``).
        original: The exception that triggered the pipeline failure.
    """

    def __init__(self, step_name: str, original: Exception) -> None:
        super().__init__(f"Pipeline step '{step_name}' failed: {original}")
        self.step_name = step_name
        self.original = original


# ---------------------------------------------------------------------------
# ScanPipeline
# ---------------------------------------------------------------------------


def _outcome(result: ScanResult) -> str:
    if result.is_empty:
        return "empty"
    return "safe" if result.safe else "unsafe"


class ScanPipeline:
    """Runs extract → scan → sanitize for one document.

    All collaborators are injected at construction time so that tests can
    replace them with mocks.

    Args:
        extractor: Format adapter front-end.
        scanner: Rule evaluator.
        redaction_engine: Phrase redaction engine.
    """

    def __init__(
        self,
        *,
        extractor: DocumentExtractor,
        scanner: Scanner,
        redaction_engine: RedactionEngine,
    ) -> None:
        self._extractor = extractor
        self._scanner = scanner
        self._redaction_engine = redaction_engine

    @property
    def phrases(self) -> list[str]:
        """Phrases used for sanitizing and highlighting."""
        return list(self._redaction_engine.phrases)

    def shutdown(self) -> None:
        """Release the extractor's thread pool without waiting."""
        self._extractor.shutdown(wait=False)

    async def run(
        self,
        file_bytes: bytes,
        *,
        file_name: str,
        document_format: DocumentFormat | None = None,
        mime_type: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> ScanResult:
        """Scan *file_bytes* and return a :class:`ScanResult`.

        Args:
            file_bytes: Raw document bytes.
            file_name: Name reported in the result; also used to infer the
                format when neither *document_format* nor a recognised
                *mime_type* is given.
            document_format: Declared format.  Takes precedence.
            mime_type: Declared MIME type.
            progress: Optional callback receiving a fraction in ``[0, 1]``.
                It is always invoked on the event loop thread.

        Raises:
            UnsupportedFormatError: Before any step, for unknown formats.
            PipelineError: If any step raises.
        """
        if document_format is None:
            document_format = resolve_format(mime_type, file_name)

        loop_progress = self._marshal_progress(progress)
        pipeline_start_ms = int(time.monotonic() * 1000)

        with tracer.start_as_current_span(
            "docshield.scan",
            kind=trace.SpanKind.INTERNAL,
        ) as root_span:
            root_span.set_attribute("scan.file_name", file_name)
            root_span.set_attribute("scan.format", document_format.value)
            root_span.set_attribute("scan.file_size_bytes", len(file_bytes))

            try:
                extraction: ExtractionResult = await self._run_step(
                    "extract",
                    lambda: self._extractor.extract(
                        file_bytes, document_format, loop_progress
                    ),
                )
                issues: list[Issue] = await self._run_step(
                    "scan",
                    lambda: self._async(self._scanner.scan, extraction.runs),
                )
                sanitized = ""
                if extraction.raw_text.strip():
                    sanitized = await self._run_step(
                        "sanitize",
                        lambda: self._async(
                            self._redaction_engine.redact, extraction.raw_text
                        ),
                    )
            except PipelineError as exc:
                elapsed_ms = int(time.monotonic() * 1000) - pipeline_start_ms
                scans_total.labels(outcome="failed").inc()

                root_span.record_exception(exc.original)
                root_span.set_status(Status(StatusCode.ERROR, str(exc)))
                root_span.set_attribute("scan.failed_step", exc.step_name)
                root_span.set_attribute("scan.duration_ms", elapsed_ms)

                logger.error(
                    "ScanPipeline failed at step '%s': file=%r error=%r",
                    exc.step_name,
                    file_name,
                    exc.original,
                )
                raise

            result = aggregate(
                issues,
                raw_text=extraction.raw_text,
                page_count=extraction.page_count,
                file_name=file_name,
                sanitized_text=sanitized,
                document_format=document_format,
            )

            elapsed_ms = int(time.monotonic() * 1000) - pipeline_start_ms
            outcome = _outcome(result)
            scans_total.labels(outcome=outcome).inc()
            for issue in result.issues:
                issues_total.labels(kind=issue.kind.value).inc()

            root_span.set_attribute("scan.outcome", outcome)
            root_span.set_attribute("scan.issues_count", len(result.issues))
            root_span.set_attribute("scan.page_count", result.page_count)
            root_span.set_attribute("scan.duration_ms", elapsed_ms)

            logger.info(
                "ScanPipeline complete: file=%r format=%s outcome=%s "
                "issues=%d pages=%d duration_ms=%d",
                file_name,
                document_format.value,
                outcome,
                len(result.issues),
                result.page_count,
                elapsed_ms,
            )

        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _async(fn: Callable[..., Any], *args: Any) -> Any:
        return fn(*args)

    @staticmethod
    def _marshal_progress(
        progress: ProgressCallback | None,
    ) -> ProgressCallback | None:
        """Wrap *progress* so worker-thread calls run on the event loop."""
        if progress is None:
            return None
        loop = asyncio.get_running_loop()

        def _forward(fraction: float) -> None:
            loop.call_soon_threadsafe(progress, fraction)

        return _forward

    async def _run_step(
        self,
        step_name: str,
        step_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Execute a single step inside a named OTel child span.

        Raises:
            PipelineError: Wrapping any exception raised by *step_fn*.
        """
        with tracer.start_as_current_span(f"docshield.{step_name}") as span:
            span.set_attribute("step.name", step_name)
            step_start_ms = int(time.monotonic() * 1000)

            try:
                value = await step_fn()
            except Exception as exc:
                elapsed_ms = int(time.monotonic() * 1000) - step_start_ms
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                span.set_attribute("step.duration_ms", elapsed_ms)
                span.set_attribute("step.error", type(exc).__name__)
                raise PipelineError(step_name, exc) from exc

            elapsed_ms = int(time.monotonic() * 1000) - step_start_ms
            span.set_attribute("step.duration_ms", elapsed_ms)
            logger.debug(
                "ScanPipeline step '%s' complete: duration_ms=%d",
                step_name,
                elapsed_ms,
            )
            return value
