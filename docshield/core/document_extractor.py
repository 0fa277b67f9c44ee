"""Format adapters for the DocShield scan pipeline.

:class:`DocumentExtractor` converts raw document bytes into an ordered list
of :class:`TextRun` objects (text plus formatting metadata) and the
concatenated raw text of the document.  The runs are consumed by
:class:`~docshield.core.scanner.Scanner`; the raw text by the sanitizer and
the highlighter.

**Supported formats**

+----------+----------------------------+------------------------------------+
| Format   | Input                      | Library                            |
+==========+============================+====================================+
| PDF      | application/pdf, ``.pdf``  | pdfminer.six                       |
+----------+----------------------------+------------------------------------+
| DOCX     | wordprocessingml, ``.docx``| python-docx (lxml tree)            |
+----------+----------------------------+------------------------------------+

Anything else is rejected by :func:`resolve_format` with
:class:`UnsupportedFormatError` before any adapter runs.

**PDF runs**

Each page layout is walked in reading order.  Inside a text line,
consecutive glyphs that share a font size form one run.  The run's
``font_size_pt`` is the absolute rendered size of its first glyph
(``LTChar.size``: the font size scaled by the text and page transforms).
Runs within a page are joined with a single space and pages are separated by
a blank line in ``raw_text``.

**DOCX runs**

Every ``w:r`` element of the main document part is a run.  Its text is the
concatenation of its ``w:t`` children; runs without any ``w:t`` are skipped.
Colour and size come from ``w:rPr``.  The format has no pagination model, so
every run is on page 1 and ``raw_text`` is the space-joined run texts.

**Thread-pool execution**

Extraction is CPU-bound.  :meth:`DocumentExtractor.extract` dispatches it to
a :class:`concurrent.futures.ThreadPoolExecutor` so that the event loop is
never blocked.  Progress callbacks are invoked from the worker thread.

Usage::

    from docshield.core.document_extractor import DocumentExtractor, DocumentFormat

    extractor = DocumentExtractor()
    result = await extractor.extract(pdf_bytes, DocumentFormat.PDF)
    for run in result.runs:
        print(run.page, run.font_size_pt, run.text)
"""

from __future__ import annotations

import enum
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

import docx as _docx_module
from docx.oxml.ns import qn
from pdfminer.high_level import extract_pages as _pdfminer_extract_pages
from pdfminer.pdfpage import PDFPage

logger = logging.getLogger(__name__)

#: Callback receiving extraction progress as a fraction in ``[0, 1]``.
ProgressCallback = Callable[[float], None]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Fixed progress checkpoints for the single-pass DOCX adapter.
_DOCX_PROGRESS_OPENED = 0.1
_DOCX_PROGRESS_RUNS_ENUMERATED = 0.5

_PAGE_SEPARATOR = "\n\n"


# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------


class DocumentFormat(str, enum.Enum):
    """Container formats understood by the extractor."""

    PDF = "pdf"
    DOCX = "docx"


_MIME_TO_FORMAT: dict[str, DocumentFormat] = {
    "application/pdf": DocumentFormat.PDF,
    "application/x-pdf": DocumentFormat.PDF,
    _DOCX_MIME: DocumentFormat.DOCX,
}

_EXT_TO_FORMAT: dict[str, DocumentFormat] = {
    ".pdf": DocumentFormat.PDF,
    ".docx": DocumentFormat.DOCX,
}


@dataclass(frozen=True)
class TextRun:
    """One atomic extracted text fragment with its formatting metadata.

    Attributes:
        text: The fragment's raw text.
        page: 1-based page number.  Always 1 for DOCX.
        index: 0-based position of the run in the whole document.
        font_size_pt: Font size in points, or ``None`` when the format did
            not specify one.
        color: Uppercase hex colour (``"FFFFFF"``) or theme token
            (``"BACKGROUND1"``), or ``None`` when unset.
    """

    text: str
    page: int
    index: int
    font_size_pt: Optional[float] = None
    color: Optional[str] = None


@dataclass
class ExtractionResult:
    """Result produced by :class:`DocumentExtractor`.

    Attributes:
        document_format: The format the adapter handled.
        runs: Runs in encounter order (page order for PDF, document order
            for DOCX).
        raw_text: The adapter-built concatenation of run texts.
        page_count: True page count for PDF; always 1 for DOCX.
    """

    document_format: DocumentFormat
    runs: list[TextRun] = field(default_factory=list)
    raw_text: str = ""
    page_count: int = 0


class ExtractionError(Exception):
    """Raised when a document cannot be parsed.

    Covers malformed containers, unreadable markup and any error raised by
    the underlying extraction library.  Callers must not silently ignore this
    exception; it is the only failure path of a scan.

    Attributes:
        document_format: The format that was being extracted.
        original: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        document_format: DocumentFormat | None = None,
        original: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.document_format = document_format
        self.original = original

    def __str__(self) -> str:
        base = super().__str__()
        parts = [base]
        if self.document_format:
            parts.append(f"format={self.document_format.value}")
        if self.original is not None:
            parts.append(f"caused_by={type(self.original).__name__}: {self.original}")
        return " | ".join(parts)


class UnsupportedFormatError(Exception):
    """Raised when a document is neither PDF nor DOCX.

    Attributes:
        mime_type: The declared MIME type, if any.
        file_name: The declared file name, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        mime_type: str | None = None,
        file_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.mime_type = mime_type
        self.file_name = file_name


# ---------------------------------------------------------------------------
# Format resolution
# ---------------------------------------------------------------------------


def resolve_format(
    mime_type: str | None = None,
    file_name: str | None = None,
) -> DocumentFormat:
    """Map a declared MIME type or file name to a :class:`DocumentFormat`.

    The MIME type wins when it is recognised; otherwise the file extension
    is consulted (case-insensitively).

    Raises:
        UnsupportedFormatError: When neither identifies a supported format.
    """
    if mime_type:
        base_mime = mime_type.split(";")[0].strip().lower()
        if base_mime in _MIME_TO_FORMAT:
            return _MIME_TO_FORMAT[base_mime]

    if file_name:
        lower = file_name.lower()
        for ext, document_format in _EXT_TO_FORMAT.items():
            if lower.endswith(ext):
                return document_format

    raise UnsupportedFormatError(
        f"Unsupported document: mime_type={mime_type!r} file_name={file_name!r}",
        mime_type=mime_type,
        file_name=file_name,
    )


# ---------------------------------------------------------------------------
# Private helpers: PDF
# ---------------------------------------------------------------------------


def _count_pdf_pages(data: bytes) -> int:
    """Return the number of pages without running layout analysis."""
    return sum(1 for _ in PDFPage.get_pages(io.BytesIO(data)))


def _is_glyph(node: Any) -> bool:
    # LTChar: a rendered glyph with a size and its own text.
    return (
        getattr(node, "size", None) is not None
        and callable(getattr(node, "get_text", None))
        and not hasattr(node, "__iter__")
    )


def _collect_pdf_items(node: Iterable[Any], items: list[tuple[str, float]]) -> None:
    """Append ``(text, font_size_pt)`` items found under *node* to *items*.

    Duck-typed over pdfminer's layout tree so that tests can supply light
    fakes: glyphs have ``size`` and ``get_text``; virtual characters
    (``LTAnno``) have only ``get_text``; containers are iterable.
    """
    buffer: list[str] = []
    size: float | None = None

    def flush() -> None:
        nonlocal size
        text = "".join(buffer).rstrip("\n")
        if text.strip() and size is not None:
            items.append((text, size))
        buffer.clear()
        size = None

    for child in node:
        if _is_glyph(child):
            child_size = abs(float(child.size))
            if buffer and size is not None and child_size != size:
                flush()
            size = child_size
            buffer.append(child.get_text())
        elif hasattr(child, "__iter__"):
            flush()
            _collect_pdf_items(child, items)
        elif callable(getattr(child, "get_text", None)):
            buffer.append(child.get_text())
    flush()


def _extract_pdf(
    data: bytes,
    progress: ProgressCallback | None = None,
) -> ExtractionResult:
    """Extract formatted runs from a PDF document using pdfminer.six.

    Raises:
        ExtractionError: If pdfminer cannot parse the file.
    """
    runs: list[TextRun] = []
    page_texts: list[str] = []

    try:
        page_count = _count_pdf_pages(data)
        page_number = 0
        for page_layout in _pdfminer_extract_pages(io.BytesIO(data)):
            page_number += 1
            items: list[tuple[str, float]] = []
            _collect_pdf_items(page_layout, items)

            for text, size in items:
                runs.append(
                    TextRun(
                        text=text,
                        page=page_number,
                        index=len(runs),
                        font_size_pt=size,
                    )
                )
            page_texts.append(" ".join(text for text, _ in items))

            if progress is not None and page_count:
                progress(min(page_number / page_count, 1.0))
    except Exception as exc:
        raise ExtractionError(
            "Failed to extract text from PDF",
            document_format=DocumentFormat.PDF,
            original=exc,
        ) from exc

    logger.debug("PDF extraction: pages=%d runs=%d", page_number, len(runs))
    return ExtractionResult(
        document_format=DocumentFormat.PDF,
        runs=runs,
        raw_text=_PAGE_SEPARATOR.join(page_texts),
        page_count=page_number,
    )


# ---------------------------------------------------------------------------
# Private helpers: DOCX
# ---------------------------------------------------------------------------


def _run_color(rpr: Any) -> str | None:
    color = rpr.find(qn("w:color"))
    if color is None:
        return None
    value = (color.get(qn("w:val")) or "").strip().upper()
    if value and value != "AUTO":
        return value
    theme = (color.get(qn("w:themeColor")) or "").strip().upper()
    return theme or None


def _run_font_size(rpr: Any) -> float | None:
    sz = rpr.find(qn("w:sz"))
    if sz is None:
        return None
    try:
        half_points = int(sz.get(qn("w:val")))
    except (TypeError, ValueError):
        return None
    return half_points / 2


def _extract_docx(
    data: bytes,
    progress: ProgressCallback | None = None,
) -> ExtractionResult:
    """Extract formatted runs from a DOCX document using python-docx.

    Raises:
        ExtractionError: If the archive or its document part is malformed.
    """
    try:
        doc = _docx_module.Document(io.BytesIO(data))
        if progress is not None:
            progress(_DOCX_PROGRESS_OPENED)

        run_elements = list(doc.element.iter(qn("w:r")))
        if progress is not None:
            progress(_DOCX_PROGRESS_RUNS_ENUMERATED)

        runs: list[TextRun] = []
        for r in run_elements:
            t_nodes = list(r.iter(qn("w:t")))
            if not t_nodes:
                continue

            text = "".join(t.text or "" for t in t_nodes)
            color: str | None = None
            size: float | None = None
            rpr = r.find(qn("w:rPr"))
            if rpr is not None:
                color = _run_color(rpr)
                size = _run_font_size(rpr)

            runs.append(
                TextRun(
                    text=text,
                    page=1,
                    index=len(runs),
                    font_size_pt=size,
                    color=color,
                )
            )
    except Exception as exc:
        raise ExtractionError(
            "Failed to extract text from DOCX",
            document_format=DocumentFormat.DOCX,
            original=exc,
        ) from exc

    if progress is not None:
        progress(1.0)

    logger.debug("DOCX extraction: runs=%d", len(runs))
    return ExtractionResult(
        document_format=DocumentFormat.DOCX,
        runs=runs,
        raw_text=" ".join(run.text for run in runs),
        page_count=1,
    )


def _dispatch_sync(
    data: bytes,
    document_format: DocumentFormat,
    progress: ProgressCallback | None = None,
) -> ExtractionResult:
    """Synchronously dispatch to the adapter for *document_format*."""
    if document_format is DocumentFormat.PDF:
        return _extract_pdf(data, progress)
    if document_format is DocumentFormat.DOCX:
        return _extract_docx(data, progress)
    raise UnsupportedFormatError(f"No adapter for format {document_format!r}")


# ---------------------------------------------------------------------------
# Public class
# ---------------------------------------------------------------------------


class DocumentExtractor:
    """Format adapter front-end with thread-pool execution.

    Args:
        max_workers: Number of threads in the pool.  Defaults to
            ``settings.extractor_max_workers``.
        executor: Pre-built executor to use (useful for testing/injection).
            When supplied, *max_workers* is ignored.
    """

    def __init__(
        self,
        max_workers: int | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        if executor is not None:
            self._executor = executor
            self._owns_executor = False
        else:
            workers: int
            if max_workers is not None:
                workers = max_workers
            else:
                from docshield.config import get_settings

                workers = get_settings().extractor_max_workers
            self._executor = ThreadPoolExecutor(max_workers=workers)
            self._owns_executor = True

    def __enter__(self) -> "DocumentExtractor":
        return self

    def __exit__(self, *_: object) -> None:
        self.shutdown()

    def shutdown(self, *, wait: bool = True) -> None:
        """Shut down the thread pool.

        Safe to call multiple times.  Does nothing if the executor was
        supplied externally.
        """
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    async def extract(
        self,
        file_bytes: bytes,
        document_format: DocumentFormat,
        progress: ProgressCallback | None = None,
    ) -> ExtractionResult:
        """Extract runs and raw text from *file_bytes* in the thread pool.

        Args:
            file_bytes: Raw bytes of the document.
            document_format: Declared container format.
            progress: Optional callback receiving a fraction in ``[0, 1]``.
                It is invoked on the worker thread.

        Raises:
            ExtractionError: If the document is malformed.
        """
        import asyncio

        loop = asyncio.get_running_loop()
        logger.debug(
            "Dispatching extraction to thread pool: format=%s, size=%d bytes",
            document_format.value,
            len(file_bytes),
        )
        result: ExtractionResult = await loop.run_in_executor(
            self._executor,
            _dispatch_sync,
            file_bytes,
            document_format,
            progress,
        )
        logger.debug(
            "Extraction complete: runs=%d chars=%d",
            len(result.runs),
            len(result.raw_text),
        )
        return result
