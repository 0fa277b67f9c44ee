"""ScanSession: the single "current document" state of a DocShield session.

A session holds exactly one :class:`SessionState` value.  Every transition
builds a new frozen value with an incremented ``version`` and swaps it in, so
readers always observe a fully-formed state and never a stale result next
to a new document.

**Single-flight**: each scan request is stamped with a monotonically
increasing ``generation``.  Progress, completion and failure reports carry
the generation they belong to; reports for anything but the current
generation are dropped.  Loading a new document or resetting bumps the
generation, which supersedes any scan still in flight.

**Preview handles**: a loaded document may carry a preview handle owned by
the presentation layer (a rendered view, a temporary URL).  The previous
handle is released before a new document or a reset is installed.

All transitions are expected on the event loop thread;
:class:`~docshield.core.pipeline.ScanPipeline` marshals worker-thread
progress back onto the loop before it reaches the session.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol, runtime_checkable

from docshield.core.document_extractor import DocumentFormat, resolve_format
from docshield.core.pipeline import PipelineError, ScanPipeline
from docshield.core.scan_result import ScanResult

logger = logging.getLogger(__name__)


class ScanStatus(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETE = "complete"
    FAILED = "failed"


@runtime_checkable
class PreviewHandle(Protocol):
    """A presentation-layer resource tied to the loaded document."""

    def release(self) -> None:
        ...


@dataclass(frozen=True)
class LoadedDocument:
    """Bytes of the current document plus its optional preview handle."""

    file_name: str
    data: bytes
    document_format: DocumentFormat
    preview: Optional[PreviewHandle] = None


@dataclass(frozen=True)
class SessionState:
    """One immutable version of the session's current-document state."""

    version: int = 0
    generation: int = 0
    status: ScanStatus = ScanStatus.IDLE
    document: Optional[LoadedDocument] = None
    progress: float = 0.0
    result: Optional[ScanResult] = None
    error: Optional[str] = None


class ScanSession:
    """Owns the current document and its scan result.

    Args:
        pipeline: Pipeline used by :meth:`scan`.
        on_safe: Optional hook invoked with the result whenever a scan
            completes as safe (e.g. a celebratory effect in a UI).
    """

    def __init__(
        self,
        pipeline: ScanPipeline,
        *,
        on_safe: Callable[[ScanResult], None] | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._on_safe = on_safe
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pipeline(self) -> ScanPipeline:
        return self._pipeline

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _install(self, **changes: object) -> SessionState:
        self._state = replace(self._state, version=self._state.version + 1, **changes)
        return self._state

    def _release_preview(self, incoming: Optional[PreviewHandle] = None) -> None:
        current = self._state.document
        if current is None or current.preview is None or current.preview is incoming:
            return
        current.preview.release()

    def load(self, document: LoadedDocument) -> int:
        """Install *document* as current and return its scan generation."""
        self._release_preview(document.preview)
        generation = self._state.generation + 1
        self._install(
            generation=generation,
            status=ScanStatus.SCANNING,
            document=document,
            progress=0.0,
            result=None,
            error=None,
        )
        logger.debug(
            "Session loaded %r (generation=%d)", document.file_name, generation
        )
        return generation

    def reset(self) -> None:
        """Drop the current document and supersede any in-flight scan."""
        self._release_preview()
        self._install(
            generation=self._state.generation + 1,
            status=ScanStatus.IDLE,
            document=None,
            progress=0.0,
            result=None,
            error=None,
        )
        logger.debug("Session reset (generation=%d)", self._state.generation)

    def is_current(self, generation: int) -> bool:
        return generation == self._state.generation

    def report_progress(self, generation: int, fraction: float) -> bool:
        """Record scan progress; returns ``False`` if *generation* is stale."""
        if not self.is_current(generation) or self._state.status is not ScanStatus.SCANNING:
            return False
        self._install(progress=max(0.0, min(fraction, 1.0)))
        return True

    def complete(self, generation: int, result: ScanResult) -> bool:
        """Install *result*; returns ``False`` and drops it if stale."""
        if not self.is_current(generation):
            logger.warning(
                "Dropping result for superseded scan %r (generation=%d, current=%d)",
                result.file_name,
                generation,
                self._state.generation,
            )
            return False
        self._install(status=ScanStatus.COMPLETE, progress=1.0, result=result, error=None)
        if result.safe and self._on_safe is not None:
            try:
                self._on_safe(result)
            except Exception:
                logger.exception("on_safe hook failed for %r", result.file_name)
        return True

    def fail(self, generation: int, message: str) -> bool:
        """Record a failed scan; returns ``False`` and drops it if stale."""
        if not self.is_current(generation):
            logger.warning(
                "Dropping failure for superseded scan (generation=%d, current=%d): %s",
                generation,
                self._state.generation,
                message,
            )
            return False
        self._install(status=ScanStatus.FAILED, result=None, error=message)
        return True

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def scan(
        self,
        data: bytes,
        *,
        file_name: str,
        mime_type: str | None = None,
        preview: PreviewHandle | None = None,
    ) -> ScanResult | None:
        """Load a document, scan it, and install the outcome.

        Returns the result, or ``None`` when the scan was superseded before
        it finished (successfully or not).  A scan interrupted by any other
        exception, cancellation included, is recorded as failed before the
        exception propagates.

        Raises:
            UnsupportedFormatError: Before the session state changes.
            PipelineError: After the failure has been recorded in the state,
                unless the scan was already superseded.
        """
        document_format = resolve_format(mime_type, file_name)
        generation = self.load(
            LoadedDocument(
                file_name=file_name,
                data=data,
                document_format=document_format,
                preview=preview,
            )
        )

        settled = False
        try:
            result = await self._pipeline.run(
                data,
                file_name=file_name,
                document_format=document_format,
                progress=lambda fraction: self.report_progress(generation, fraction),
            )
            settled = True
        except PipelineError as exc:
            settled = True
            if not self.fail(generation, f"Could not read {file_name}: {exc.original}"):
                return None
            raise
        finally:
            if not settled:
                self.fail(generation, f"Scan of {file_name} was interrupted")

        if not self.complete(generation, result):
            return None
        return result
