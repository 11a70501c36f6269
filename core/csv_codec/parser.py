"""
Single-pass CSV record parser.

One call decodes one line into a caller-owned list of field slots, using a
fixed-capacity scratch buffer owned by the parser. Quotes are escaped by
doubling them ('"' -> '""'). Neither the buffer nor the slot list is ever
reallocated, so an instance must not be shared between concurrent callers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Iterable, Iterator, List, Optional, TextIO, Union

from pydantic import ValidationError

from .errors import (
    CapacityExceededError,
    ConfigurationError,
    MissingArgumentError,
    OperationCancelledError,
    UnterminatedQuoteError,
)
from .lines import read_lines, read_lines_async
from .models import CsvDialect

logger = logging.getLogger(__name__)

# A strategy that decodes one line into `fields` and returns the field count.
LineParser = Callable[[Optional[str], List[Optional[str]]], int]

DEFAULT_BUFFER_SIZE = 2048


class RecordParser:
    """Decode delimited lines into a reusable list of field slots."""

    def __init__(self, buffer: List[str], dialect: CsvDialect) -> None:
        if buffer is None:
            raise MissingArgumentError("buffer")
        self._buffer = buffer
        self.dialect = dialect

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    def __call__(self, line: Optional[str], fields: List[Optional[str]]) -> int:
        return self.parse(line, fields)

    def parse(self, line: Optional[str], fields: List[Optional[str]]) -> int:
        """Decode `line` into `fields[0:n]` and return n.

        Blank lines and lines starting with the comment character decode to
        zero fields and leave `fields` untouched.

        Raises:
            UnterminatedQuoteError: the line ends inside a quoted span.
            CapacityExceededError: a field outgrows the scratch buffer, or
                the line holds more fields than `fields` has slots.
        """
        comment_start = self.dialect.comment_start
        if not line or line[0] == comment_start:
            return 0

        buffer = self._buffer
        capacity = len(buffer)
        slots = len(fields)
        delimiter = self.dialect.field_delimiter
        quote = self.dialect.quote_char

        blen = flen = i = 0
        slen = len(line)
        c = ""
        quoted = False

        while i < slen:
            c = line[i]
            i += 1

            if c == quote:
                if i < slen and line[i] == quote:
                    if blen >= capacity:
                        raise CapacityExceededError("scratch buffer", blen + 1, capacity)
                    buffer[blen] = quote
                    blen += 1
                    i += 1
                else:
                    quoted = not quoted
            elif c == delimiter and not quoted:
                if flen >= slots:
                    raise CapacityExceededError("fields", flen + 1, slots)
                fields[flen] = "".join(buffer[:blen]) if blen else ""
                flen += 1
                blen = 0
            else:
                if blen >= capacity:
                    raise CapacityExceededError("scratch buffer", blen + 1, capacity)
                buffer[blen] = c
                blen += 1

        if quoted:
            raise UnterminatedQuoteError()

        if blen > 0 or c == delimiter:
            if flen >= slots:
                raise CapacityExceededError("fields", flen + 1, slots)
            fields[flen] = "".join(buffer[:blen]) if blen else ""
            flen += 1

        return flen


def create_parser(
    buffer: Union[int, List[str], None] = DEFAULT_BUFFER_SIZE,
    field_delimiter: str = ",",
    quote: str = '"',
    comment_start: Optional[str] = "#",
) -> RecordParser:
    """Create a RecordParser.

    `buffer` is either the scratch buffer size or a pre-allocated list used
    as the scratch buffer.
    """
    if buffer is None:
        raise MissingArgumentError("buffer")
    if isinstance(buffer, int):
        if buffer < 1:
            raise ConfigurationError(f"buffer size must be positive, got {buffer}")
        buffer = [""] * buffer
    elif not buffer:
        raise ConfigurationError("buffer must have a capacity of at least one character")

    try:
        dialect = CsvDialect(
            field_delimiter=field_delimiter,
            quote_char=quote,
            comment_start=comment_start,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"invalid CSV dialect: {exc}") from exc

    return RecordParser(buffer, dialect)


def _require(**arguments: Any) -> None:
    for name, value in arguments.items():
        if value is None:
            raise MissingArgumentError(name)
    parser = arguments.get("parser")
    if parser is not None and not callable(parser):
        raise TypeError(f"parser must be callable, got {type(parser).__name__}")


def parse_lines(
    parser: LineParser,
    lines: Iterable[Optional[str]],
    fields: List[Optional[str]],
) -> Iterator[List[Optional[str]]]:
    """Decode a sequence of lines, yielding `fields` itself for each record.

    The same list is mutated and yielded every time: consume each record
    before requesting the next. Blank and comment lines are skipped.
    """
    _require(parser=parser, lines=lines, fields=fields)
    return _iter_parsed(parser, lines, fields)


def _iter_parsed(
    parser: LineParser,
    lines: Iterable[Optional[str]],
    fields: List[Optional[str]],
) -> Iterator[List[Optional[str]]]:
    for line in lines:
        if parser(line, fields) > 0:
            yield fields


def parse_reader(
    parser: LineParser,
    reader: TextIO,
    fields: List[Optional[str]],
) -> Iterator[List[Optional[str]]]:
    """Decode the lines of a text stream; see parse_lines."""
    _require(parser=parser, reader=reader, fields=fields)
    return _iter_parsed(parser, read_lines(reader), fields)


def parse_lines_async(
    parser: LineParser,
    lines: Any,
    fields: List[Optional[str]],
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[List[Optional[str]]]:
    """Asynchronously decode an async iterable of lines; see parse_lines.

    Cancellation is checked before each line, never in the middle of one.
    """
    _require(parser=parser, lines=lines, fields=fields)
    return _aiter_parsed(parser, lines, fields, cancel_event)


async def _aiter_parsed(
    parser: LineParser,
    lines: Any,
    fields: List[Optional[str]],
    cancel_event: Optional[asyncio.Event],
) -> AsyncIterator[List[Optional[str]]]:
    async for line in lines:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("parsing was cancelled")
        if parser(line, fields) > 0:
            yield fields


def parse_reader_async(
    parser: LineParser,
    reader: Any,
    fields: List[Optional[str]],
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[List[Optional[str]]]:
    """Asynchronously decode the lines of an async line source; see parse_lines."""
    _require(parser=parser, reader=reader, fields=fields)
    return _aiter_parsed(parser, read_lines_async(reader, cancel_event), fields, cancel_event)


def iter_records(
    parser: LineParser,
    lines: Iterable[Optional[str]],
    max_fields: int = 256,
) -> Iterator[List[str]]:
    """Decode a sequence of lines, yielding an owned copy of each record.

    Unlike parse_lines, every yielded list is new and holds exactly the
    decoded fields, so records may be retained.
    """
    _require(parser=parser, lines=lines)
    if max_fields < 1:
        raise ConfigurationError(f"max_fields must be positive, got {max_fields}")
    return _iter_copies(parser, lines, [None] * max_fields)


def _iter_copies(
    parser: LineParser,
    lines: Iterable[Optional[str]],
    fields: List[Optional[str]],
) -> Iterator[List[str]]:
    count = 0
    for line in lines:
        n = parser(line, fields)
        if n > 0:
            count += 1
            yield fields[:n]
    logger.debug("decoded %d record(s)", count)
