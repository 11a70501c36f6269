"""
CSV record writer, the mirror image of RecordParser.

Quote characters inside a field are doubled, and a field holding the
delimiter or the quote character is wrapped in quotes. A field buffer and a
record buffer are sized once per writer and reused for every record, so a
writer must not be shared between concurrent callers.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .errors import (
    CapacityExceededError,
    ConfigurationError,
    MissingArgumentError,
    OperationCancelledError,
)
from .models import CsvDialect

logger = logging.getLogger(__name__)


def _put(buffer: List[str], length: int, ch: str, resource: str) -> int:
    if length >= len(buffer):
        raise CapacityExceededError(resource, length + 1, len(buffer))
    buffer[length] = ch
    return length + 1


class RecordWriter:
    """Encode records (sequences of field values) as CSV text.

    comment_start only decides whether a leading field gets wrapped, so a
    comment_start equal to the delimiter or the quote character is dropped
    instead of rejected. RecordWriter(field_delimiter="#") is valid.
    """

    def __init__(
        self,
        field_delimiter: str = ",",
        quote_char: str = '"',
        record_terminator: str = "\r\n",
        comment_start: Optional[str] = "#",
        field_buffer_size: int = 512,
        record_buffer_size: int = 4096,
    ) -> None:
        if comment_start in (field_delimiter, quote_char):
            comment_start = None
        try:
            self.dialect = CsvDialect(
                field_delimiter=field_delimiter,
                quote_char=quote_char,
                comment_start=comment_start,
                record_terminator=record_terminator,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"invalid CSV dialect: {exc}") from exc

        if field_buffer_size < 1 or record_buffer_size < 1:
            raise ConfigurationError("buffer sizes must be positive")

        self._field_buffer = [""] * field_buffer_size
        self._record_buffer = [""] * record_buffer_size

    def _encode_field(self, value: str) -> Tuple[int, bool]:
        """Copy `value` into the field buffer, doubling quotes.

        Returns the encoded length and whether the field must be wrapped.
        """
        buffer = self._field_buffer
        delimiter = self.dialect.field_delimiter
        quote = self.dialect.quote_char
        length = 0
        quoted = False

        for ch in value:
            if ch == quote:
                quoted = True
                length = _put(buffer, length, quote, "field buffer")
            elif ch == delimiter:
                quoted = True
            length = _put(buffer, length, ch, "field buffer")

        if quoted and not value.strip(quote):
            # A run made only of quotes decodes from its doubled form alone;
            # an outer pair would be read back as one more literal quote.
            quoted = False

        return length, quoted

    def encode(self, record: Sequence[Any]) -> str:
        """Encode one record, including its terminator.

        A record without fields encodes to an empty string.
        """
        if record is None:
            raise MissingArgumentError("record")

        out = self._record_buffer
        field_buffer = self._field_buffer
        quote = self.dialect.quote_char
        comment_start = self.dialect.comment_start
        rlen = 0
        index = -1

        for index, value in enumerate(record):
            text = "" if value is None else str(value)

            if index:
                rlen = _put(out, rlen, self.dialect.field_delimiter, "record buffer")

            flen, quoted = self._encode_field(text)
            if index == 0 and comment_start is not None and text.startswith(comment_start):
                quoted = True

            if quoted:
                rlen = _put(out, rlen, quote, "record buffer")
            for i in range(flen):
                rlen = _put(out, rlen, field_buffer[i], "record buffer")
            if quoted:
                rlen = _put(out, rlen, quote, "record buffer")

        if index < 0:
            return ""

        for ch in self.dialect.record_terminator:
            rlen = _put(out, rlen, ch, "record buffer")

        return "".join(out[:rlen])

    def write(self, records: Iterable[Sequence[Any]], sink: Any) -> None:
        """Write every record in `records` to `sink` (anything with write(str))."""
        if records is None:
            raise MissingArgumentError("records")
        if sink is None:
            raise MissingArgumentError("sink")

        count = 0
        for record in records:
            encoded = self.encode(record)
            if encoded:
                sink.write(encoded)
            count += 1
        logger.debug("wrote %d record(s)", count)

    async def write_async(
        self,
        records: Any,
        sink: Any,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Asynchronously write records to `sink`.

        `records` may be a sync or async iterable. `sink.write` may return an
        awaitable, which is awaited. Cancellation is checked before each
        record; an in-progress record is always encoded and written whole.
        """
        if records is None:
            raise MissingArgumentError("records")
        if sink is None:
            raise MissingArgumentError("sink")

        count = 0
        if hasattr(records, "__aiter__"):
            async for record in records:
                await self._write_one_async(record, sink, cancel_event)
                count += 1
        else:
            for record in records:
                await self._write_one_async(record, sink, cancel_event)
                count += 1
        logger.debug("wrote %d record(s) asynchronously", count)

    async def _write_one_async(
        self,
        record: Sequence[Any],
        sink: Any,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("writing was cancelled")
        encoded = self.encode(record)
        if not encoded:
            return
        result = sink.write(encoded)
        if inspect.isawaitable(result):
            await result
