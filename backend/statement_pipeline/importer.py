"""Pick the parser for an uploaded file and run it end to end."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from .constants import KNOWN_INSTITUTIONS, PAGE_BREAK
from .csv_reader import read_delimited
from .errors import UnknownFormatError
from .layout import TokenSource
from .models import AccountLabel, ExtractionMode, ExtractionOptions, ExtractionResult, StagedImport
from .parsers import ColumnMapping, DelimitedParser, PDFSummaryParser, PDFTransactionsParser, StatementParser
from .pdf_parser import extract_statement
from .utils import label_regex

logger = logging.getLogger(__name__)

PDF_SUFFIXES = (".pdf",)
DELIMITED_SUFFIXES = (".csv", ".tsv", ".txt")


@dataclass
class ImportResult:
    staged: StagedImport
    extraction: Optional[ExtractionResult] = None


def file_kind(filename: str) -> str:
    lower = (filename or "").lower()
    if lower.endswith(PDF_SUFFIXES):
        return "pdf"
    if lower.endswith(DELIMITED_SUFFIXES):
        return "delimited"
    raise UnknownFormatError(filename)


def detect_institution(lines: Sequence[str]) -> Optional[str]:
    """First known institution named on the first page."""
    first_page: List[str] = []
    for line in lines:
        if line == PAGE_BREAK:
            break
        first_page.append(line)
    text = "\n".join(first_page)
    for name in KNOWN_INSTITUTIONS:
        if label_regex(name).search(text):
            return name
    return None


def select_parser(parsers: Sequence[StatementParser], headers: Sequence[str]) -> StatementParser:
    for parser in parsers:
        if parser.can_parse(headers):
            return parser
    raise UnknownFormatError()


def run_import(
    data: bytes,
    filename: str,
    mode: ExtractionMode | str = ExtractionMode.TRANSACTIONS,
    mapping: ColumnMapping | None = None,
    account_override: AccountLabel | str | None = None,
    today: date | None = None,
    sources: Sequence[TokenSource] | None = None,
) -> ImportResult:
    """Parse ``data`` and keep the intermediate extraction for PDF inputs."""
    kind = file_kind(filename)
    mode = ExtractionMode(mode)
    if kind == "delimited":
        headers, rows = read_delimited(data)
        parser = DelimitedParser(mapping, source_file_name=filename, today=today)
        staged = parser.parse(rows, headers)
        logger.info("Imported %s with %s", filename, parser.parser_id)
        return ImportResult(staged)

    override = AccountLabel.parse(account_override) if isinstance(account_override, str) else account_override
    options = ExtractionOptions(mode=mode, account_override=override, today=today)
    source = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
    extraction = extract_statement(source, options, sources)
    lines = extraction.lines
    candidates: List[StatementParser] = (
        [PDFSummaryParser(lines, filename)]
        if mode is ExtractionMode.SUMMARY
        else [PDFTransactionsParser(lines, filename)]
    )
    parser = select_parser(candidates, extraction.headers)
    staged = parser.parse([list(r) for r in extraction.rows], extraction.headers)
    staged.source_file_name = filename
    staged.inferred_institution = detect_institution(lines)
    logger.info(
        "Imported %s with %s (institution=%s)", filename, parser.parser_id, staged.inferred_institution
    )
    return ImportResult(staged, extraction)


def import_statement(
    data: bytes,
    filename: str,
    mode: ExtractionMode | str = ExtractionMode.TRANSACTIONS,
    mapping: ColumnMapping | None = None,
    account_override: AccountLabel | str | None = None,
    today: date | None = None,
    sources: Sequence[TokenSource] | None = None,
) -> StagedImport:
    """CSV goes through the delimited parser, PDF through extraction then the mode's parser."""
    return run_import(data, filename, mode, mapping, account_override, today, sources).staged


__all__ = ["ImportResult", "file_kind", "detect_institution", "select_parser", "run_import", "import_statement"]
