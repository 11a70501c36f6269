"""Line-supply adapters: turn text streams into the lines RecordParser consumes."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, AsyncIterator, Iterator, List, Optional, TextIO, Tuple

from .errors import MissingArgumentError, OperationCancelledError


def _strip_terminator(line: str) -> str:
    """Remove exactly one trailing line terminator (CRLF, LF or CR)."""
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith(("\n", "\r")):
        return line[:-1]
    return line


def split_lines(text: str) -> Tuple[List[str], str]:
    """改行コードを \n に正規化して行に分割し、元の代表的な改行種別を返す

    Returns:
        lines: 改行を含まない行のリスト（末尾の改行による空行は含まない）
        detected: 'crlf' or 'lf' or 'none'
    """
    if "\r\n" in text:
        detected = "crlf"
        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    elif "\r" in text:
        detected = "crlf"
        normalized = text.replace("\r", "\n")
    elif "\n" in text:
        detected = "lf"
        normalized = text
    else:
        detected = "none"
        normalized = text

    lines = normalized.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines, detected


def read_lines(reader: TextIO) -> Iterator[str]:
    """Yield the lines of a text stream without their terminators."""
    if reader is None:
        raise MissingArgumentError("reader")
    return _iter_lines(reader)


def _iter_lines(reader: TextIO) -> Iterator[str]:
    for raw in reader:
        yield _strip_terminator(raw)


def read_lines_async(
    source: Any,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[str]:
    """Yield lines from an async source.

    `source` is either an async iterable of lines or an object whose
    `readline()` returns an awaitable (e.g. asyncio.StreamReader). Bytes are
    decoded as UTF-8. Cancellation is checked before each read.
    """
    if source is None:
        raise MissingArgumentError("source")
    if not hasattr(source, "__aiter__") and not hasattr(source, "readline"):
        raise TypeError(f"{type(source).__name__} is neither async iterable nor has readline()")
    return _aiter_lines(source, cancel_event)


def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("operation was cancelled")


def _as_text(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    return _strip_terminator(raw)


async def _aiter_lines(source: Any, cancel_event: Optional[asyncio.Event]) -> AsyncIterator[str]:
    if hasattr(source, "__aiter__"):
        iterator = source.__aiter__()
        while True:
            _check_cancelled(cancel_event)
            try:
                raw = await iterator.__anext__()
            except StopAsyncIteration:
                return
            yield _as_text(raw)

    while True:
        _check_cancelled(cancel_event)
        raw = source.readline()
        if inspect.isawaitable(raw):
            raw = await raw
        if not raw:
            return
        yield _as_text(raw)
