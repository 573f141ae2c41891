"""FastAPI service exposing statement imports.

Endpoints:
  POST /parse  (multipart/form-data: file=<pdf|csv>) -> staged import + metrics
  POST /rows   (multipart/form-data: file=<pdf>) -> canonical rows for debugging
  GET  /health -> simple health check

Run (dev): uvicorn statement_pipeline.api:app --reload --port 8000
"""

from __future__ import annotations

from tempfile import SpooledTemporaryFile
from typing import Optional

from fastapi import FastAPI, UploadFile, File, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.concurrency import run_in_threadpool

import logging
import os
import traceback

from .errors import (
    MissingMappingError,
    ParseFailure,
    StatementImportError,
    UnknownFormatError,
    UnreadableDocumentError,
)
from .importer import file_kind, run_import
from .models import AccountLabel, ExtractionMode, ExtractionOptions
from .pdf_parser import compute_balance_mismatches, extract_statement
from .utils import df_to_records, rows_to_frame


logging.basicConfig(level=os.getenv("API_LOG_LEVEL", "INFO"))
logger = logging.getLogger("statement_api")

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [o.strip() for o in raw.split(",") if o.strip()]


def _debug_enabled(request: Request) -> bool:
    return request.query_params.get("debug") == "1" or os.getenv("API_DEBUG") == "1"


app = FastAPI(title="Statement Import API", version="0.2.0")
app.add_middleware(GZipMiddleware, minimum_size=1024)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():  # simple root for quick manual test
    return {"service": "statement-import", "status": "ok"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


MAX_FILE_BYTES = int(os.getenv("MAX_FILE_BYTES", 15 * 1024 * 1024))  # 15MB default


async def _read_upload(file: UploadFile) -> bytes:
    """Read the upload streamingly, enforcing ``MAX_FILE_BYTES``."""
    spooled: SpooledTemporaryFile[bytes] = SpooledTemporaryFile(
        max_size=MAX_FILE_BYTES + 1024
    )
    total = 0
    chunk_size = 1024 * 64
    try:
        while True:
            chunk = await file.read(chunk_size)
            if not chunk:
                break
            total += len(chunk)
            if total > MAX_FILE_BYTES:
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large (> {MAX_FILE_BYTES // (1024 * 1024)}MB)",
                )
            spooled.write(chunk)
        if total == 0:
            raise HTTPException(status_code=400, detail="Empty file")
        spooled.seek(0)
        return spooled.read()
    finally:
        spooled.close()


def _parse_mode(raw: Optional[str]) -> ExtractionMode:
    try:
        return ExtractionMode((raw or ExtractionMode.TRANSACTIONS.value).lower())
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Unknown mode: {raw} (expected summary or transactions)"
        )


def _http_error(exc: StatementImportError, debug: bool) -> HTTPException:
    if isinstance(exc, MissingMappingError):
        return HTTPException(
            status_code=422, detail={"error": "MISSING_MAPPING", "column": exc.column}
        )
    if isinstance(exc, UnknownFormatError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (ParseFailure, UnreadableDocumentError)):
        message = exc.message if isinstance(exc, ParseFailure) else str(exc)
        return HTTPException(status_code=422, detail={"error": "PARSE_FAILURE", "message": message})
    detail = {"error": "PARSE_FAILURE", "message": str(exc)}
    if debug:
        detail["type"] = type(exc).__name__
    return HTTPException(status_code=422, detail=detail)


def _unexpected(exc: Exception, debug: bool) -> HTTPException:
    tb = traceback.format_exc()
    logger.error("Parse failure: %s\n%s", exc, tb)
    detail = {"error": "PARSE_FAILURE", "message": str(exc)}
    if debug:
        detail["traceback"] = tb
    return HTTPException(status_code=500, detail=detail)


@app.post("/parse")
async def parse_statement(
    request: Request,
    file: UploadFile = File(...),
    mode: Optional[str] = None,
    account: Optional[str] = None,
):
    filename = file.filename or ""
    try:
        file_kind(filename)
    except UnknownFormatError:
        raise HTTPException(status_code=400, detail="Only PDF and CSV files are supported")
    data = await _read_upload(file)
    debug = _debug_enabled(request)
    extraction_mode = _parse_mode(mode)
    try:
        # run_import is CPU / IO bound; run off the event loop
        result = await run_in_threadpool(
            run_import, data, filename, extraction_mode, None, account or None
        )
    except StatementImportError as e:
        logger.info("Import rejected for %s: %s", filename, e)
        raise _http_error(e, debug) from e
    except Exception as e:  # pragma: no cover - defensive
        raise _unexpected(e, debug) from e

    staged = result.staged
    metrics = {
        "transaction_count": len(staged.transactions),
        "holding_count": len(staged.holdings),
        "balance_count": len(staged.balances),
        "net_amount": float(sum(t.amount for t in staged.transactions)),
    }
    payload = {
        "fileName": filename,
        "metrics": metrics,
        "staged": staged.model_dump(mode="json"),
    }
    extraction = result.extraction
    if extraction is not None:
        df = rows_to_frame(extraction.rows, extraction.headers)
        mismatches_flag = request.query_params.get("mismatches") == "1"
        payload["balance_mismatches"] = (
            await run_in_threadpool(compute_balance_mismatches, df) if mismatches_flag else []
        )
        payload["raw_line_count"] = len(extraction.lines)
        payload["used_layout"] = extraction.used_layout
        account_types_list = sorted(a for a in df["account"].dropna().unique())
        if account_types_list:  # omit if empty to reduce payload
            metrics["account_types"] = account_types_list
        if debug:
            payload["rows"] = df_to_records(df)
    return payload


@app.post("/rows")
async def extract_rows(
    request: Request,
    file: UploadFile = File(...),
    mode: Optional[str] = None,
    account: Optional[str] = None,
):
    filename = file.filename or ""
    if not filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")
    data = await _read_upload(file)
    debug = _debug_enabled(request)
    options = ExtractionOptions(
        mode=_parse_mode(mode),
        account_override=AccountLabel.parse(account) if account else None,
    )
    spooled: SpooledTemporaryFile[bytes] = SpooledTemporaryFile(max_size=MAX_FILE_BYTES + 1024)
    spooled.write(data)
    spooled.seek(0)
    try:
        result = await run_in_threadpool(extract_statement, spooled, options)
    except StatementImportError as e:
        raise _http_error(e, debug) from e
    except Exception as e:  # pragma: no cover - defensive
        raise _unexpected(e, debug) from e
    finally:
        spooled.close()
    payload = {
        "fileName": filename,
        "headers": result.headers,
        "rows": [list(r) for r in result.rows],
        "period": (
            {"start": result.period.start_date().isoformat(), "end": result.period.end_date().isoformat()}
            if result.period
            else None
        ),
        "dominant_account": result.dominant_account.value if result.dominant_account else None,
        "used_layout": result.used_layout,
    }
    if debug:
        payload["lines"] = result.lines
    return payload


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("statement_pipeline.api:app", host="0.0.0.0", port=8000, reload=True)
