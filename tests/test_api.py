import pytest
from fastapi.testclient import TestClient

from statement_pipeline import api
from statement_pipeline.constants import CANONICAL_HEADERS
from statement_pipeline.errors import ParseFailure, UnreadableDocumentError
from statement_pipeline.importer import ImportResult
from statement_pipeline.models import (
    AccountLabel,
    CanonicalRow,
    ExtractionResult,
    StagedImport,
    StagedTransaction,
    StatementPeriod,
)

SCENARIO_A = b"Date,Description,Amount,Balance\n01/05/2026,COFFEE SHOP,-4.50,1200.00\n"


@pytest.fixture
def client() -> TestClient:
    return TestClient(api.app)


def _extraction() -> ExtractionResult:
    return ExtractionResult(
        headers=list(CANONICAL_HEADERS),
        rows=[
            CanonicalRow("01/01/2026", "Open", "100.00", "100.00", "checking"),
            CanonicalRow("01/02/2026", "Coffee", "-4.50", "95.50", "checking"),
            CanonicalRow("01/03/2026", "Tea", "-3.00", "90.00", "checking"),
            CanonicalRow("01/04/2026", "Snack", "-1.00", "", "checking"),
        ],
        lines=["Checking Summary", "01/01/2026 Open 100.00 100.00"],
        period=StatementPeriod(1, 2026, 1, 1, 2026, 31),
        dominant_account=AccountLabel.CHECKING,
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_parse_csv(client):
    resp = client.post("/parse", files={"file": ("export.csv", SCENARIO_A, "text/csv")})
    assert resp.status_code == 200
    body = resp.json()
    assert body["fileName"] == "export.csv"
    assert body["metrics"]["transaction_count"] == 1
    assert body["metrics"]["net_amount"] == -4.5
    tx = body["staged"]["transactions"][0]
    assert tx["payee"] == "COFFEE SHOP"
    assert tx["date_posted"] == "2026-01-05"
    assert "balance_mismatches" not in body


def test_parse_rejects_unsupported_type(client):
    resp = client.post("/parse", files={"file": ("notes.docx", b"hello", "application/octet-stream")})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Only PDF and CSV files are supported"


def test_parse_rejects_empty_upload(client):
    resp = client.post("/parse", files={"file": ("export.csv", b"", "text/csv")})
    assert resp.status_code == 400


def test_parse_rejects_large_upload(client, monkeypatch):
    monkeypatch.setattr(api, "MAX_FILE_BYTES", 10)
    resp = client.post("/parse", files={"file": ("export.csv", SCENARIO_A, "text/csv")})
    assert resp.status_code == 413


def test_parse_rejects_unknown_mode(client):
    resp = client.post(
        "/parse", params={"mode": "weekly"}, files={"file": ("export.csv", SCENARIO_A, "text/csv")}
    )
    assert resp.status_code == 400


def test_parse_missing_mapping(client):
    data = b"Payee,Amount\nTea,1.00\n"
    resp = client.post("/parse", files={"file": ("export.csv", data, "text/csv")})
    assert resp.status_code == 422
    assert resp.json()["detail"] == {"error": "MISSING_MAPPING", "column": "date"}


def test_parse_failure_message_is_passed_through(client, monkeypatch):
    def fail(*args, **kwargs):
        raise ParseFailure("We couldn't find any transactions in this PDF.")

    monkeypatch.setattr(api, "run_import", fail)
    resp = client.post("/parse", files={"file": ("march.pdf", b"%PDF-1.4", "application/pdf")})
    assert resp.status_code == 422
    assert resp.json()["detail"] == {
        "error": "PARSE_FAILURE",
        "message": "We couldn't find any transactions in this PDF.",
    }


def test_parse_pdf_reports_mismatches(client, monkeypatch):
    staged = StagedImport(
        parser_id="pdf.transactions",
        transactions=[
            StagedTransaction(date_posted="2026-01-02", amount="-4.50", payee="Coffee", include=False)
        ],
    )
    calls = []

    def fake_run_import(data, filename, mode, mapping, account):
        calls.append((filename, mode.value, account))
        return ImportResult(staged, _extraction())

    monkeypatch.setattr(api, "run_import", fake_run_import)
    resp = client.post(
        "/parse",
        params={"mismatches": "1", "debug": "1", "account": "checking"},
        files={"file": ("jan.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert calls == [("jan.pdf", "transactions", "checking")]
    assert [m["index"] for m in body["balance_mismatches"]] == [2]
    assert body["raw_line_count"] == 2
    assert body["used_layout"] is False
    assert body["metrics"]["account_types"] == ["checking"]
    assert body["rows"][3]["balance"] is None


def test_rows_endpoint(client, monkeypatch):
    seen = {}

    def fake_extract(source, options):
        seen["mode"] = options.mode.value
        seen["override"] = options.account_override
        return _extraction()

    monkeypatch.setattr(api, "extract_statement", fake_extract)
    resp = client.post(
        "/rows",
        params={"mode": "summary", "account": "loan"},
        files={"file": ("jan.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["headers"] == CANONICAL_HEADERS
    assert body["rows"][0] == ["01/01/2026", "Open", "100.00", "100.00", "checking"]
    assert body["period"] == {"start": "2026-01-01", "end": "2026-01-31"}
    assert body["dominant_account"] == "checking"
    assert "lines" not in body
    assert seen == {"mode": "summary", "override": AccountLabel.LOAN}


def test_rows_endpoint_requires_pdf(client):
    resp = client.post("/rows", files={"file": ("export.csv", SCENARIO_A, "text/csv")})
    assert resp.status_code == 400


def test_rows_endpoint_unreadable_pdf(client, monkeypatch):
    def unreadable(source, options):
        raise UnreadableDocumentError()

    monkeypatch.setattr(api, "extract_statement", unreadable)
    resp = client.post("/rows", files={"file": ("scan.pdf", b"%PDF-1.4", "application/pdf")})
    assert resp.status_code == 422
    assert resp.json()["detail"]["error"] == "PARSE_FAILURE"
