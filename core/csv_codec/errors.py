"""Errors raised by the CSV record codec."""

from __future__ import annotations

from typing import Optional


UNTERMINATED_QUOTE = "A quoted sequence was not terminated."


class CsvCodecError(Exception):
    """Base error for this package."""

    code = "CSV_CODEC_ERROR"


class ConfigurationError(CsvCodecError, ValueError):
    """Raised when a parser or writer is constructed with an unusable dialect or buffer."""

    code = "INVALID_DIALECT"


class MissingArgumentError(CsvCodecError, TypeError):
    """Raised when a required collaborator (parser, lines, fields, sink ...) is None."""

    code = "MISSING_ARGUMENT"

    def __init__(self, argument: str) -> None:
        super().__init__(f"{argument} must not be None")
        self.argument = argument


class UnterminatedQuoteError(CsvCodecError, ValueError):
    """Raised when a line ends inside a quoted span."""

    code = "UNTERMINATED_QUOTE"

    def __init__(self, line_number: Optional[int] = None) -> None:
        msg = UNTERMINATED_QUOTE
        if line_number is not None:
            msg = f"{msg} (line {line_number})"
        super().__init__(msg)
        self.line_number = line_number


class CapacityExceededError(CsvCodecError, IndexError):
    """Raised when decoded or encoded data does not fit caller-sized storage."""

    code = "CAPACITY_EXCEEDED"

    def __init__(self, resource: str, required: int, available: int) -> None:
        super().__init__(
            f"{resource} capacity exceeded: required at least {required}, available {available}"
        )
        self.resource = resource
        self.required = required
        self.available = available


class OperationCancelledError(CsvCodecError):
    """Raised when a cancellation request is observed between lines or records."""

    code = "CANCELLED"


class SchemaError(CsvCodecError, ValueError):
    """Raised when a header line does not match the supplied field definitions."""

    code = "SCHEMA_MISMATCH"
