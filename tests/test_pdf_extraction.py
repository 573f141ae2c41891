import io

import pytest

from statement_pipeline.constants import PAGE_BREAK
from statement_pipeline.errors import UnreadableDocumentError
from statement_pipeline.layout import PdfplumberWordSource
from statement_pipeline.models import CanonicalRow, ExtractionMode, ExtractionOptions
from statement_pipeline.pdf_parser import extract_raw_lines, extract_statement

CHECKING_PAGE = [
    (72, 700, "Checking Summary"),
    (72, 680, "01/05/2026 Coffee Shop 4.50 1,195.50"),
]
SAVINGS_PAGE = [(72, 700, "Savings Summary")]


def test_extract_raw_lines_separates_pages(make_pdf):
    data = make_pdf([CHECKING_PAGE, SAVINGS_PAGE])
    assert extract_raw_lines(io.BytesIO(data)) == [
        "Checking Summary",
        "01/05/2026 Coffee Shop 4.50 1,195.50",
        PAGE_BREAK,
        "Savings Summary",
    ]


def test_empty_pages_leave_no_stray_page_breaks(make_pdf, tmp_path):
    path = tmp_path / "statement.pdf"
    path.write_bytes(make_pdf([[], CHECKING_PAGE, [], [], SAVINGS_PAGE, []]))
    lines = extract_raw_lines(str(path))
    assert lines[0] == "Checking Summary"
    assert lines[-1] == "Savings Summary"
    assert lines.count(PAGE_BREAK) == 1


def test_unreadable_bytes_give_no_lines():
    assert extract_raw_lines(io.BytesIO(b"this is not a pdf")) == []
    with pytest.raises(UnreadableDocumentError):
        extract_statement(io.BytesIO(b"this is not a pdf"))


def test_word_source_normalizes_to_page_size(make_pdf):
    data = io.BytesIO(make_pdf([CHECKING_PAGE, SAVINGS_PAGE]))
    tokens = PdfplumberWordSource().tokens(data)
    assert [t.text for t in tokens] == [
        "Checking",
        "Summary",
        "01/05/2026",
        "Coffee",
        "Shop",
        "4.50",
        "1,195.50",
        "Savings",
        "Summary",
    ]
    first = tokens[0]
    assert first.page == 0
    assert first.x0 == pytest.approx(72 / 612)
    assert first.x0 < first.x1 < 1
    # Baseline at y=700 of a 792pt page, 10pt type.
    assert first.top == pytest.approx(84 / 792, abs=0.01)
    assert first.top < first.bottom < 1
    assert tokens[2].top > first.top
    assert {t.page for t in tokens[-2:]} == {1}
    # The reader rewinds, so a second pass sees the same words.
    assert len(PdfplumberWordSource().tokens(data)) == len(tokens)


def test_extract_statement_from_real_pdf(make_pdf, today):
    page = [
        (72, 700, "Checking Summary"),
        (72, 680, "Statement Period 03/01/2026 - 03/31/2026"),
        (72, 660, "Beginning Balance $1,000.00"),
        (72, 640, "Ending Balance $900.00"),
    ]
    options = ExtractionOptions(mode=ExtractionMode.SUMMARY, today=today)
    result = extract_statement(io.BytesIO(make_pdf([page])), options, sources=[])
    assert result.rows == [
        CanonicalRow("03/01/2026", "Statement Beginning Balance", "0", "1000.00", "checking"),
        CanonicalRow("03/31/2026", "Statement Ending Balance", "0", "900.00", "checking"),
    ]
