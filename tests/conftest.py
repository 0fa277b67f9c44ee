"""Shared pytest configuration and fixtures for DocShield tests.

Provides in-memory document builders so that no test touches the
filesystem:

* ``make_docx``: assembles a minimal DOCX package from raw ``w:r`` XML.
* ``docx_run``: renders one ``w:r`` element with optional colour/size.
* ``fake_pdf``: patches pdfminer at the module level where
  ``document_extractor`` holds its references, feeding fake layout trees.
* ``make_pdf``: renders a real PDF with reportlab.
"""
from __future__ import annotations

import io
import os
import zipfile
from typing import Callable
from unittest.mock import patch
from xml.sax.saxutils import escape

import pytest

# Keep developer .env files and shell overrides out of the test run.
for _key in list(os.environ):
    if _key.startswith("DOCSHIELD_"):
        del os.environ[_key]


_CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" '
    'ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    "</Types>"
)

_PACKAGE_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    "</Relationships>"
)

_DOCUMENT_TEMPLATE = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    "<w:body>{body}</w:body>"
    "</w:document>"
)


def _docx_run(
    text: str | None,
    *,
    color: str | None = None,
    theme_color: str | None = None,
    half_points: int | str | None = None,
) -> str:
    props = ""
    if color is not None or theme_color is not None:
        attrs = ""
        if color is not None:
            attrs += f' w:val="{color}"'
        if theme_color is not None:
            attrs += f' w:themeColor="{theme_color}"'
        props += f"<w:color{attrs}/>"
    if half_points is not None:
        props += f'<w:sz w:val="{half_points}"/>'
    rpr = f"<w:rPr>{props}</w:rPr>" if props else ""
    body = "" if text is None else f'<w:t xml:space="preserve">{escape(text)}</w:t>'
    return f"<w:r>{rpr}{body}</w:r>"


def _make_docx(*paragraphs: list[str] | str, document_xml: str | None = None) -> bytes:
    if document_xml is None:
        body = ""
        for para in paragraphs:
            runs = [para] if isinstance(para, str) else para
            body += "<w:p>" + "".join(runs) + "</w:p>"
        document_xml = _DOCUMENT_TEMPLATE.format(body=body)

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("[Content_Types].xml", _CONTENT_TYPES)
        zf.writestr("_rels/.rels", _PACKAGE_RELS)
        zf.writestr("word/document.xml", document_xml)
    return buf.getvalue()


@pytest.fixture
def docx_run() -> Callable[..., str]:
    return _docx_run


@pytest.fixture
def make_docx() -> Callable[..., bytes]:
    return _make_docx


# ---------------------------------------------------------------------------
# Fake pdfminer layout objects
# ---------------------------------------------------------------------------


class FakeChar:
    """Stands in for ``LTChar``: a rendered glyph with a size."""

    def __init__(self, text: str, size: float) -> None:
        self._text = text
        self.size = size

    def get_text(self) -> str:
        return self._text


class FakeAnno:
    """Stands in for ``LTAnno``: a virtual character with no glyph."""

    def __init__(self, text: str) -> None:
        self._text = text

    def get_text(self) -> str:
        return self._text


class FakeContainer(list):
    """Stands in for pages, text boxes and text lines."""


def pdf_line(*pieces: tuple[str, float]) -> FakeContainer:
    """Build a text line from ``(text, size)`` pieces, ending with a newline."""
    line = FakeContainer()
    for text, size in pieces:
        line.extend(FakeChar(ch, size) for ch in text)
    line.append(FakeAnno("\n"))
    return line


def pdf_page(*lines: FakeContainer) -> FakeContainer:
    return FakeContainer([FakeContainer(lines)])


class FakePdf:
    """Patches the PDF adapter's pdfminer references with fixed pages."""

    line = staticmethod(pdf_line)
    page = staticmethod(pdf_page)

    def __init__(self) -> None:
        self.pages: list[FakeContainer] = []
        self.error: Exception | None = None

    def extract_pages(self, _fp: object):
        if self.error is not None:
            raise self.error
        yield from self.pages

    def count_pages(self, _data: bytes) -> int:
        if self.error is not None:
            raise self.error
        return len(self.pages)


@pytest.fixture
def fake_pdf():
    fake = FakePdf()
    with patch(
        "docshield.core.document_extractor._pdfminer_extract_pages",
        side_effect=fake.extract_pages,
    ), patch(
        "docshield.core.document_extractor._count_pdf_pages",
        side_effect=fake.count_pages,
    ):
        yield fake


# ---------------------------------------------------------------------------
# Real PDFs
# ---------------------------------------------------------------------------


def _make_pdf(pages: list[list[tuple[str, float]]]) -> bytes:
    """Render *pages* of ``(text, font_size)`` lines with reportlab."""
    from reportlab.pdfgen import canvas

    buf = io.BytesIO()
    c = canvas.Canvas(buf)
    for lines in pages:
        y = 760
        for text, size in lines:
            c.setFont("Helvetica", size)
            c.drawString(72, y, text)
            y -= 40
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def make_pdf() -> Callable[[list[list[tuple[str, float]]]], bytes]:
    return _make_pdf
