"""Statement extraction and staging pipeline."""

from .csv_reader import read_delimited
from .errors import (
    InvalidDelimitedError,
    MissingMappingError,
    ParseFailure,
    StatementImportError,
    UnknownFormatError,
    UnreadableDocumentError,
)
from .importer import import_statement, run_import
from .models import (
    AccountKind,
    AccountLabel,
    CanonicalRow,
    ExtractionMode,
    ExtractionOptions,
    ExtractionResult,
    StagedBalance,
    StagedHolding,
    StagedImport,
    StagedTransaction,
)
from .parsers import ColumnMapping, DelimitedParser, PDFSummaryParser, PDFTransactionsParser
from .pdf_parser import extract_rows_from_lines, extract_statement

__all__ = [
    "read_delimited",
    "import_statement",
    "run_import",
    "extract_statement",
    "extract_rows_from_lines",
    "ColumnMapping",
    "DelimitedParser",
    "PDFSummaryParser",
    "PDFTransactionsParser",
    "AccountKind",
    "AccountLabel",
    "CanonicalRow",
    "ExtractionMode",
    "ExtractionOptions",
    "ExtractionResult",
    "StagedBalance",
    "StagedHolding",
    "StagedImport",
    "StagedTransaction",
    "StatementImportError",
    "UnknownFormatError",
    "InvalidDelimitedError",
    "UnreadableDocumentError",
    "ParseFailure",
    "MissingMappingError",
]
