import asyncio
import io

import pytest

from core.csv_codec.errors import (
    CapacityExceededError,
    ConfigurationError,
    MissingArgumentError,
    OperationCancelledError,
)
from core.csv_codec.lines import read_lines
from core.csv_codec.parser import create_parser, iter_records
from core.csv_codec.writer import RecordWriter


def _write(records, **kwargs):
    sink = io.StringIO()
    RecordWriter(**kwargs).write(records, sink)
    return sink.getvalue()


class _AsyncSink:
    def __init__(self):
        self.chunks = []

    async def write(self, data):
        await asyncio.sleep(0)
        self.chunks.append(data)


def test_plain_records_are_written_unquoted():
    assert _write([["a", "b"], ["c", "d"]]) == "a,b\r\nc,d\r\n"


def test_only_the_field_holding_a_delimiter_is_quoted():
    assert _write([["a", "b,c", "d"]]) == 'a,"b,c",d\r\n'


def test_quote_characters_are_doubled_and_the_field_wrapped():
    assert _write([['a"b', "c"]]) == '"a""b",c\r\n'
    assert _write([['say "hi", bob']]) == '"say ""hi"", bob"\r\n'


def test_none_and_non_string_values():
    assert _write([[None, 1, 2.5]]) == ",1,2.5\r\n"


def test_record_without_fields_writes_nothing():
    assert _write([[], ["a"]]) == "a\r\n"


def test_custom_dialect():
    out = _write(
        [["a|b", "it's"]],
        field_delimiter="|",
        quote_char="'",
        record_terminator="\n",
    )
    assert out == "'a|b'|'it''s'\n"


def test_leading_field_starting_with_comment_char_is_quoted():
    assert _write([["#note", "x"]]) == '"#note",x\r\n'
    assert _write([["x", "#y"]]) == "x,#y\r\n"
    assert _write([["#note"]], comment_start=None) == "#note\r\n"


def test_field_made_only_of_quotes_is_not_wrapped():
    assert _write([['"'], ["a", '""']]) == '""\r\na,""""\r\n'


def test_comment_char_colliding_with_the_dialect_is_dropped():
    writer = RecordWriter(field_delimiter="#")
    assert writer.dialect.comment_start is None

    text = _write([["#a", "b"]], field_delimiter="#")
    assert text == '"#a"#b\r\n'

    parser = create_parser(field_delimiter="#", comment_start=None)
    assert list(iter_records(parser, read_lines(io.StringIO(text)))) == [["#a", "b"]]


def test_field_buffer_overflow():
    with pytest.raises(CapacityExceededError) as exc:
        _write([["abcd"]], field_buffer_size=3)
    assert exc.value.resource == "field buffer"

    # doubling counts against the buffer too
    with pytest.raises(CapacityExceededError):
        _write([['a"b']], field_buffer_size=3)


def test_record_buffer_overflow():
    with pytest.raises(CapacityExceededError) as exc:
        _write([["ab", "cd"]], record_buffer_size=6)
    assert exc.value.resource == "record buffer"
    assert exc.value.available == 6


def test_buffers_are_reused_across_records():
    writer = RecordWriter(field_buffer_size=4, record_buffer_size=8)
    sink = io.StringIO()

    writer.write([["abcd", "e"], ["f", "ghij"]], sink)

    assert sink.getvalue() == "abcd,e\r\nf,ghij\r\n"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"field_delimiter": ",", "quote_char": ","},
        {"field_delimiter": "\n", "record_terminator": "\n"},
        {"field_delimiter": ";;"},
        {"record_terminator": ""},
        {"field_buffer_size": 0},
    ],
)
def test_bad_configuration_is_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        RecordWriter(**kwargs)


def test_missing_arguments_are_rejected():
    writer = RecordWriter()
    with pytest.raises(MissingArgumentError):
        writer.write(None, io.StringIO())
    with pytest.raises(MissingArgumentError):
        writer.write([], None)


def test_round_trip_through_the_parser():
    """
    write -> parse で元のレコードに戻ることを確認する
    （delimiter / quote / 両方 / comment 文字 / quote のみのフィールドを含む）
    """
    records = [
        ["Mercury", "Planet", "3.3e23", "5.8e7"],
        ["a,b", 'c"d', 'e,"f"', ""],
        ['"leading', 'trailing"', '"both"', '""x'],
        ["#not a comment", "", "#", "x"],
        ['"', '""', "a,", ',"'],
        ["", "", "", "last"],
        ['""'],
        ['"'],
        ['"""'],
        ["#", "x"],
    ]

    sink = io.StringIO()
    RecordWriter().write(records, sink)

    decoded = list(iter_records(create_parser(), read_lines(io.StringIO(sink.getvalue())), max_fields=4))
    assert decoded == records


def test_write_async_awaits_the_sink():
    sink = _AsyncSink()
    asyncio.run(RecordWriter().write_async([["a", "b,c"], ["d"]], sink))
    assert sink.chunks == ['a,"b,c"\r\n', "d\r\n"]


def test_write_async_accepts_async_records_and_plain_sinks():
    async def records():
        yield ["a"]
        yield ["b"]

    sink = io.StringIO()
    asyncio.run(RecordWriter(record_terminator="\n").write_async(records(), sink))
    assert sink.getvalue() == "a\nb\n"


def test_write_async_checks_cancellation_before_each_record():
    cancel = asyncio.Event()
    sink = _AsyncSink()

    def records():
        yield ["first"]
        cancel.set()
        yield ["second"]

    with pytest.raises(OperationCancelledError):
        asyncio.run(RecordWriter().write_async(records(), sink, cancel))
    assert sink.chunks == ["first\r\n"]
