import asyncio
import io
from enum import Enum

import pytest

from core.csv_codec.errors import MissingArgumentError, OperationCancelledError, SchemaError
from core.csv_codec.parser import create_parser
from core.csv_codec.rows import (
    CsvRowReader,
    FieldDefinition,
    enum_field,
    string_field,
    typed_field,
)
from core.csv_codec.writer import RecordWriter


class CelestialBodyType(Enum):
    Planet = 1
    DwarfPlanet = 2
    Star = 3


BODIES = [
    ["Mercury", "Planet", "3.3e23", "5.8e7"],
    ["Venus", "Planet", "4.87e24", "1.08e8"],
    ["Pluto", "DwarfPlanet", "1.3e22", "5.9e9"],
    ["Sun, a.k.a. Sol", "Star", "1.989e30", "0"],
]

HEADER = ["Name", "Type", "Mass", "Distance to Primary"]


def _schema():
    # 意図的に header とは異なる順序で定義する
    return [
        typed_field("Mass", float),
        string_field("Name"),
        typed_field("Distance to Primary", float),
        enum_field("Type", CelestialBodyType),
    ]


def _expected():
    return [
        {
            "Name": name,
            "Type": CelestialBodyType[kind],
            "Mass": float(mass),
            "Distance to Primary": float(distance),
        }
        for name, kind, mass, distance in BODIES
    ]


def _csv(records):
    sink = io.StringIO()
    RecordWriter().write(records, sink)
    return sink.getvalue()


def test_end_to_end_write_then_read_typed_rows():
    """
    writer で書き出した CSV を header 駆動の row reader で読み戻し、
    フィールドごとの変換後の値が元データと一致することを確認する。
    """
    text = _csv([HEADER] + BODIES)

    with CsvRowReader.with_headers_on_first_line(io.StringIO(text), _schema(), create_parser()) as reader:
        assert [reader.get_name(i) for i in range(reader.field_count)] == HEADER
        assert reader.get_field_type(reader.get_ordinal("Type")) is CelestialBodyType
        actual = list(reader)

    assert actual == _expected()
    assert reader.is_closed


def test_end_to_end_without_header_uses_schema_order():
    text = _csv(BODIES)
    schema = [
        string_field("Name"),
        enum_field("Type", CelestialBodyType),
        typed_field("Mass", float),
        typed_field("Distance to Primary", float),
    ]
    reader = CsvRowReader(io.StringIO(text), schema, create_parser())

    names = []
    while reader.read():
        names.append(reader[0])
        assert isinstance(reader["Mass"], float)
        assert isinstance(reader.get_value(1), CelestialBodyType)

    assert names == [b[0] for b in BODIES]
    assert reader.read() is False


def test_empty_fields_read_as_none_unless_disabled():
    text = "a,,c\n"
    schema = [string_field("x"), typed_field("y", int), string_field("z")]

    reader = CsvRowReader(io.StringIO(text), schema, create_parser())
    assert reader.read()
    assert reader.is_null(1)
    assert reader.get_value(1) is None
    assert reader.get_value(0) == "a"

    reader = CsvRowReader(io.StringIO(text), schema[:1] + [string_field("y")] + schema[2:], create_parser(), null_if_empty=False)
    assert reader.read()
    assert not reader.is_null(1)
    assert reader.get_value(1) == ""


def test_read_skips_comment_and_blank_lines_and_pads_short_rows():
    text = "# generated\n\n1,2,3\n4\n"
    schema = [typed_field("a", int), typed_field("b", int), typed_field("c", int)]
    reader = CsvRowReader(io.StringIO(text), schema, create_parser())

    out = [None] * 3
    assert reader.read()
    assert reader.get_values(out) == 3
    assert out == [1, 2, 3]

    assert reader.read()
    assert reader.as_dict() == {"a": 4, "b": None, "c": None}
    assert not reader.read()


@pytest.mark.parametrize(
    "header",
    [
        "Name,Type,Mass,Unknown",
        "Name,Type,Mass",
        "Name,Type,Mass,Distance to Primary,Extra",
        "",
    ],
)
def test_header_that_does_not_match_the_schema_is_rejected(header):
    with pytest.raises(SchemaError):
        CsvRowReader.with_headers_on_first_line(io.StringIO(header + "\n"), _schema(), create_parser())


def test_missing_collaborators_are_rejected():
    with pytest.raises(MissingArgumentError):
        CsvRowReader(None, [], create_parser())
    with pytest.raises(MissingArgumentError):
        CsvRowReader(io.StringIO(""), None, create_parser())
    with pytest.raises(MissingArgumentError):
        CsvRowReader(io.StringIO(""), [], None)


def test_closed_reader_reads_nothing():
    reader = CsvRowReader(io.StringIO("a\n"), [string_field("a")], create_parser())
    reader.close()
    assert reader.read() is False


def test_async_reader_with_header():
    text = _csv([HEADER] + BODIES)

    async def source():
        for line in io.StringIO(text):
            yield line

    async def run():
        reader = await CsvRowReader.with_headers_on_first_line_async(source(), _schema(), create_parser())
        rows = []
        while await reader.read_async():
            rows.append(reader.as_dict())
        return rows

    assert asyncio.run(run()) == _expected()


def test_async_reader_honours_a_cancel_event_on_every_read():
    """
    ヘッダー読み込み時にイベントを渡さなくても、
    後続の read_async(cancel) ごとにキャンセルが確認されること
    """
    text = _csv([HEADER] + BODIES)

    async def source():
        for line in io.StringIO(text):
            yield line

    async def run():
        reader = await CsvRowReader.with_headers_on_first_line_async(source(), _schema(), create_parser())
        assert await reader.read_async() is True
        assert reader["Name"] == "Mercury"

        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            await reader.read_async(cancel)

        # the current row is left as it was
        assert reader["Name"] == "Mercury"
        assert await reader.read_async() is True
        return reader["Name"]

    assert asyncio.run(run()) == "Venus"


def test_enum_field_case_handling():
    loose = enum_field("t", CelestialBodyType)
    strict = enum_field("t", CelestialBodyType, ignore_case=False)

    assert loose.convert("dwarfplanet") is CelestialBodyType.DwarfPlanet
    assert strict.convert("Star") is CelestialBodyType.Star
    with pytest.raises(ValueError):
        strict.convert("star")
    with pytest.raises(ValueError):
        loose.convert("Comet")


def test_field_definition_types():
    assert string_field("s").value_type is str
    assert typed_field("i", int).value_type is int
    assert typed_field("d", lambda s: s.split("-")).value_type is object
    assert typed_field("d", lambda s: s.split("-"), list).value_type is list
    assert FieldDefinition("raw").convert("x") == "x"
