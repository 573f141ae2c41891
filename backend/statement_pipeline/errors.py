"""Exceptions raised by the import pipeline."""

from __future__ import annotations


class StatementImportError(Exception):
    """Base class for every failure surfaced to callers of the pipeline."""


class UnknownFormatError(StatementImportError):
    def __init__(self, filename: str | None = None):
        self.filename = filename
        super().__init__(f"Unsupported file type: {filename or '<unnamed>'}")


class InvalidDelimitedError(StatementImportError):
    """The delimited payload had no header row or could not be decoded."""


class UnreadableDocumentError(StatementImportError):
    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "No text could be read from this PDF. It may be password-protected or a scanned image."
        )


class ParseFailure(StatementImportError):
    """Zero usable records came out of a parse; ``message`` is user facing."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MissingMappingError(StatementImportError):
    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Could not map required column: {column}")


__all__ = [
    "StatementImportError",
    "UnknownFormatError",
    "InvalidDelimitedError",
    "UnreadableDocumentError",
    "ParseFailure",
    "MissingMappingError",
]
