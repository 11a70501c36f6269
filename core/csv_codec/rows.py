"""
Row-level access over RecordParser.

FieldDefinition says how a column is named and how its text becomes a value;
CsvRowReader pulls lines from a source, decodes them with a LineParser and
exposes the current row by ordinal or name.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Iterator, List, Optional, Type

from .errors import CapacityExceededError, MissingArgumentError, OperationCancelledError, SchemaError
from .lines import read_lines, read_lines_async
from .parser import LineParser


def _identity(value: str) -> str:
    return value


@dataclass(frozen=True)
class FieldDefinition:
    """Name, value type and string conversion of one column."""

    name: str
    value_type: type = str
    convert: Callable[[str], Any] = _identity


def string_field(name: str) -> FieldDefinition:
    return FieldDefinition(name, str, _identity)


def typed_field(name: str, convert: Callable[[str], Any], type_: Optional[type] = None) -> FieldDefinition:
    """Column whose values are produced by `convert`.

    When `type_` is omitted and `convert` is itself a type (int, float ...),
    that type is used.
    """
    if type_ is None:
        type_ = convert if isinstance(convert, type) else object
    return FieldDefinition(name, type_, convert)


def enum_field(name: str, enum_cls: Type[Enum], ignore_case: bool = True) -> FieldDefinition:
    """Column whose values are member names of `enum_cls`."""

    def convert(serialized: str) -> Enum:
        if ignore_case:
            wanted = serialized.casefold()
            for member_name, member in enum_cls.__members__.items():
                if member_name.casefold() == wanted:
                    return member
            raise ValueError(f"{serialized!r} is not a valid {enum_cls.__name__}")
        try:
            return enum_cls[serialized]
        except KeyError as exc:
            raise ValueError(f"{serialized!r} is not a valid {enum_cls.__name__}") from exc

    return FieldDefinition(name, enum_cls, convert)


def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("reading was cancelled")


def _order_schema(header: List[Optional[str]], count: int, schema: List[FieldDefinition]) -> List[FieldDefinition]:
    if count != len(schema):
        raise SchemaError(f"header has {count} column(s), schema defines {len(schema)}")
    by_name = {definition.name: definition for definition in schema}
    ordered: List[FieldDefinition] = []
    for name in header[:count]:
        if name not in by_name:
            raise SchemaError(f"header column {name!r} has no field definition")
        ordered.append(by_name[name])
    return ordered


class CsvRowReader:
    """
    Forward-only reader of typed rows.

    - The value list is reused for every row; get_value() converts lazily.
    - With null_if_empty (default), an empty field reads as None and its
      converter is not called.
    - Blank and comment lines are skipped by read().
    """

    def __init__(
        self,
        source: Any,
        schema: Iterable[FieldDefinition],
        parser: LineParser,
        null_if_empty: bool = True,
    ) -> None:
        if source is None:
            raise MissingArgumentError("source")
        if schema is None:
            raise MissingArgumentError("schema")
        if parser is None:
            raise MissingArgumentError("parser")

        self._source = source
        self._parser = parser
        self._schema: List[FieldDefinition] = list(schema)
        self._values: List[Optional[str]] = [""] * len(self._schema)
        self._ordinals: Dict[str, int] = {d.name: i for i, d in enumerate(self._schema)}
        self._lines: Optional[Iterator[str]] = None
        self._alines: Optional[AsyncIterator[str]] = None
        self.null_if_empty = null_if_empty

    @classmethod
    def with_headers_on_first_line(
        cls,
        source: Any,
        schema: Iterable[FieldDefinition],
        parser: LineParser,
        null_if_empty: bool = True,
    ) -> "CsvRowReader":
        """Read column names from the first line and reorder `schema` to match."""
        reader = cls(source, schema, parser, null_if_empty)
        lines = reader._sync_lines()
        reader._reorder(next(lines, None))
        return reader

    @classmethod
    async def with_headers_on_first_line_async(
        cls,
        source: Any,
        schema: Iterable[FieldDefinition],
        parser: LineParser,
        null_if_empty: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "CsvRowReader":
        """Async counterpart of with_headers_on_first_line."""
        reader = cls(source, schema, parser, null_if_empty)
        _check_cancelled(cancel_event)
        line = None
        async for line in reader._async_lines():
            break
        reader._reorder(line)
        return reader

    def _reorder(self, line: Optional[str]) -> None:
        header: List[Optional[str]] = [None] * len(self._schema)
        try:
            count = self._parser(line, header)
        except CapacityExceededError as exc:
            if exc.resource != "fields":
                raise
            raise SchemaError(f"header has more columns than the {len(self._schema)} defined") from exc
        self._schema = _order_schema(header, count, self._schema)
        self._ordinals = {d.name: i for i, d in enumerate(self._schema)}

    def _sync_lines(self) -> Iterator[str]:
        if self._lines is None:
            self._lines = read_lines(self._source)
        return self._lines

    def _async_lines(self) -> AsyncIterator[str]:
        if self._alines is None:
            self._alines = read_lines_async(self._source)
        return self._alines

    # -- schema ------------------------------------------------------------

    @property
    def field_count(self) -> int:
        return len(self._schema)

    @property
    def is_closed(self) -> bool:
        return self._source is None

    def get_name(self, ordinal: int) -> str:
        return self._schema[ordinal].name

    def get_ordinal(self, name: str) -> int:
        return self._ordinals[name]

    def get_field_type(self, ordinal: int) -> type:
        return self._schema[ordinal].value_type

    # -- rows --------------------------------------------------------------

    def _accept(self, count: int) -> None:
        for i in range(count, len(self._values)):
            self._values[i] = ""

    def read(self) -> bool:
        """Advance to the next row. Returns False at end of input."""
        if self._source is None:
            return False
        for line in self._sync_lines():
            count = self._parser(line, self._values)
            if count > 0:
                self._accept(count)
                return True
        return False

    async def read_async(self, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """Async counterpart of read().

        `cancel_event` is checked before every line this call consumes.
        """
        if self._source is None:
            return False
        _check_cancelled(cancel_event)
        async for line in self._async_lines():
            _check_cancelled(cancel_event)
            count = self._parser(line, self._values)
            if count > 0:
                self._accept(count)
                return True
        return False

    def is_null(self, ordinal: int) -> bool:
        return self.null_if_empty and not self._values[ordinal]

    def get_value(self, ordinal: int) -> Any:
        if self.is_null(ordinal):
            return None
        return self._schema[ordinal].convert(self._values[ordinal])

    def get_values(self, values: List[Any]) -> int:
        """Fill `values` with converted values of the current row; return how many were copied."""
        n = min(len(values), len(self._values))
        for i in range(n):
            values[i] = self.get_value(i)
        return n

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, str):
            key = self.get_ordinal(key)
        return self.get_value(key)

    def as_dict(self) -> Dict[str, Any]:
        return {d.name: self.get_value(i) for i, d in enumerate(self._schema)}

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        while self.read():
            yield self.as_dict()

    # -- lifetime ----------------------------------------------------------

    def close(self) -> None:
        self._source = None
        self._lines = None
        self._alines = None

    def __enter__(self) -> "CsvRowReader":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
