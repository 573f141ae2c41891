import pytest

from statement_pipeline.constants import PAGE_BREAK
from statement_pipeline.layout import (
    ColumnBands,
    PositionedToken,
    group_rows,
    infer_bands,
    merge_cells,
    reconstruct,
    row_from_cells,
)
from statement_pipeline.models import CanonicalRow, ExtractionOptions
from statement_pipeline.pdf_parser import extract_rows_from_lines
from statement_pipeline.rows import RawRow


def _tok(text, x0, x1, top, page=0):
    return PositionedToken(text, x0, x1, top, top + 0.01, page)


def _statement_tokens(page=0):
    return [
        _tok("Checking", 0.05, 0.14, 0.05, page),
        _tok("Summary", 0.15, 0.24, 0.05, page),
        _tok("Date", 0.05, 0.10, 0.10, page),
        _tok("Description", 0.20, 0.32, 0.10, page),
        _tok("Amount", 0.58, 0.66, 0.10, page),
        _tok("Balance", 0.84, 0.93, 0.10, page),
        # Tokens arrive out of reading order.
        _tok("1,195.50", 0.85, 0.92, 0.20, page),
        _tok("01/05/2026", 0.05, 0.13, 0.20, page),
        _tok("Coffee", 0.20, 0.28, 0.20, page),
        _tok("Shop", 0.29, 0.34, 0.201, page),
        _tok("4.50", 0.60, 0.64, 0.20, page),
        _tok("01/06/2026", 0.05, 0.13, 0.23, page),
        _tok("Grocery", 0.20, 0.29, 0.23, page),
        _tok("$", 0.59, 0.60, 0.23, page),
        _tok("12.00", 0.60, 0.64, 0.23, page),
        _tok("1,183.50", 0.85, 0.92, 0.23, page),
    ]


def test_group_rows_clusters_on_vertical_centre():
    rows = group_rows(_statement_tokens())
    texts = [[t.text for t in row] for row in rows]
    assert texts[2] == ["01/05/2026", "Coffee", "Shop", "4.50", "1,195.50"]
    assert len(rows) == 4


def test_merge_cells_glues_split_dates_and_money():
    row = [
        _tok("Jan", 0.05, 0.08, 0.2),
        _tok("05", 0.085, 0.10, 0.2),
        _tok("2026", 0.105, 0.13, 0.2),
        _tok("$", 0.59, 0.60, 0.2),
        _tok("12.00", 0.60, 0.64, 0.2),
        _tok("CR", 0.645, 0.66, 0.2),
    ]
    assert [c.text for c in merge_cells(row)] == ["Jan 05 2026", "$12.00 CR"]


def test_infer_bands_splits_amount_and_balance():
    bands = infer_bands(group_rows(_statement_tokens()))
    assert bands.amount_center == pytest.approx(0.6175)
    assert bands.balance_center == pytest.approx(0.885)


def test_reconstruct_rows_and_confidence():
    result = reconstruct(_statement_tokens())
    assert result.rows == [
        RawRow("01/05/2026", "Coffee Shop", "4.50", "1,195.50"),
        RawRow("01/06/2026", "Grocery", "$12.00", "1,183.50"),
    ]
    assert result.confidence == 1.0
    assert result.items[0] == "Checking Summary"


def test_reconstruct_marks_page_breaks():
    result = reconstruct(_statement_tokens(0) + _statement_tokens(1))
    assert result.items.count(PAGE_BREAK) == 1
    assert len(result.rows) == 4


def test_reconstruct_without_money_has_no_rows():
    result = reconstruct([_tok("Hello", 0.1, 0.2, 0.1), _tok("01/05/2026", 0.05, 0.13, 0.2)])
    assert result.rows == []
    assert result.confidence == 0.0


def test_layout_fallback_replaces_thin_text_result(today):
    lines = ["Checking Summary", "Statement Period: 01/01/2026 through 01/31/2026"]
    calls = []

    def provider():
        calls.append(1)
        return [reconstruct(_statement_tokens())]

    result = extract_rows_from_lines(lines, ExtractionOptions(today=today), layout_provider=provider)
    assert calls == [1]
    assert result.used_layout
    assert result.rows == [
        CanonicalRow("01/05/2026", "Coffee Shop", "4.50", "1195.50", "checking"),
        CanonicalRow("01/06/2026", "Grocery", "12.00", "1183.50", "checking"),
    ]


def test_low_confidence_layout_is_ignored(today):
    weak = reconstruct(_statement_tokens())
    weak.confidence = 0.1
    result = extract_rows_from_lines(
        ["Checking Summary"], ExtractionOptions(today=today), layout_provider=lambda: [weak]
    )
    assert not result.used_layout
    assert result.rows == []


def test_row_from_cells_keeps_description_inside_its_band():
    bands = ColumnBands(date_center=0.09, date_right=0.13, amount_center=0.6175, balance_center=0.885)
    assert bands.description_span == pytest.approx((0.125, 0.6175))
    cells = [
        _tok("01/07/2026", 0.05, 0.13, 0.3),
        _tok("Refund", 0.20, 0.28, 0.3),
        _tok("12.00", 0.60, 0.64, 0.3),
        # Footnote marker right of the amount column.
        _tok("R", 0.70, 0.72, 0.3),
        _tok("1,195.50", 0.85, 0.92, 0.3),
    ]
    assert row_from_cells(cells, bands) == RawRow("01/07/2026", "Refund", "12.00", "1,195.50")
