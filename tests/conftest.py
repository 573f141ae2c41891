"""Shared fixtures.

Extraction reads ``STATEMENT_OCR`` and the HTTP layer reads ``API_DEBUG``;
both are cleared per test so the developer's shell cannot change results.
Year inference depends on the current date, so tests pin ``today``.
"""

from __future__ import annotations

import textwrap
from datetime import date

import pytest

from statement_pipeline.pdf_parser import normalize_lines


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STATEMENT_OCR", raising=False)
    monkeypatch.delenv("API_DEBUG", raising=False)


@pytest.fixture
def today() -> date:
    return date(2026, 4, 1)


@pytest.fixture
def statement_lines():
    """Turn an indented triple-quoted page dump into normalized lines."""

    def _make(text: str) -> list[str]:
        return normalize_lines(textwrap.dedent(text))

    return _make


def _pdf_bytes(pages) -> bytes:
    """A minimal Helvetica PDF; each page is a list of ``(x, y, text)`` placements."""
    page_ids = [4 + 2 * i for i in range(len(pages))]
    kids = " ".join("%d 0 R" % pid for pid in page_ids)
    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R >>",
        2: ("<< /Type /Pages /Kids [%s] /Count %d >>" % (kids, len(pages))).encode(),
        3: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    }
    for pid, placements in zip(page_ids, pages):
        stream = "".join(
            "BT /F1 10 Tf %d %d Td (%s) Tj ET\n" % (x, y, text) for x, y, text in placements
        ).encode("latin-1")
        objects[pid] = (
            "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            "/Resources << /Font << /F1 3 0 R >> >> /Contents %d 0 R >>" % (pid + 1)
        ).encode()
        objects[pid + 1] = b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"endstream"

    out = bytearray(b"%PDF-1.4\n")
    offsets = {}
    for num in sorted(objects):
        offsets[num] = len(out)
        out += b"%d 0 obj\n" % num + objects[num] + b"\nendobj\n"
    xref_at = len(out)
    size = max(objects) + 1
    out += b"xref\n0 %d\n0000000000 65535 f \n" % size
    for num in range(1, size):
        out += b"%010d 00000 n \n" % offsets[num]
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (size, xref_at)
    return bytes(out)


@pytest.fixture
def make_pdf():
    """Build real PDF bytes so pdfplumber runs end to end."""
    return _pdf_bytes
