from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, StringConstraints, model_validator
from pydantic.config import ConfigDict


SingleChar = Annotated[str, StringConstraints(min_length=1, max_length=1)]
DialectProfile = Literal["rfc4180", "excel", "tsv", "custom"]

# Upper bounds for request-controlled buffer allocations.
MAX_BUFFER_SIZE = 1 << 20
MAX_FIELDS = 4096


class CsvDialect(BaseModel):
    """
    CSV dialect shared by RecordParser and RecordWriter.

    - comment_start is only consulted when parsing (and to protect a leading
      field when writing); None disables comment lines.
    - record_terminator is only consulted when writing.
    """

    model_config = ConfigDict(frozen=True)

    field_delimiter: SingleChar = ","
    quote_char: SingleChar = '"'
    comment_start: Optional[SingleChar] = "#"
    record_terminator: Annotated[str, StringConstraints(min_length=1)] = "\r\n"

    @model_validator(mode="after")
    def _check_distinct(self) -> "CsvDialect":
        specials = [self.field_delimiter, self.quote_char]
        if self.comment_start is not None:
            specials.append(self.comment_start)
        if len(set(specials)) != len(specials):
            raise ValueError(
                "field_delimiter, quote_char and comment_start must be distinct characters"
            )
        for ch in (self.field_delimiter, self.quote_char):
            if ch in self.record_terminator:
                raise ValueError(f"{ch!r} must not appear in record_terminator")
        return self


class ResponseLevel(str, Enum):
    """
    Response verbosity level.
    - simple   : records / csv_text + minimal meta
    - standard : adds issues, stats and effective_config
    - debug    : adds diagnostics (detected line ending, skipped line numbers)
    """

    simple = "simple"
    standard = "standard"
    debug = "debug"


class Issue(BaseModel):
    type: str
    row: Optional[int] = None
    column: Optional[int] = None
    severity: Literal["info", "warning", "error"] = "warning"
    description: str


class ParseStats(BaseModel):
    records: int = 0
    skipped_lines: int = 0
    fields_min: int = 0
    fields_max: int = 0
    fields_mode: int = 0


class WriteStats(BaseModel):
    records: int = 0
    characters: int = 0


class ParseResult(BaseModel):
    header: Optional[List[str]] = None
    records: List[List[str]] = Field(default_factory=list)
    issues: List[Issue] = Field(default_factory=list)
    stats: Optional[ParseStats] = None


class ParseResponse(BaseModel):
    result: ParseResult
    meta: Dict[str, Any]


class WriteResult(BaseModel):
    csv_text: str
    stats: Optional[WriteStats] = None


class WriteResponse(BaseModel):
    result: WriteResult
    meta: Dict[str, Any]


class ParseRequest(BaseModel):
    """
    /v0/parse request.

    Exactly one of csv_b64 / csv_text must be supplied. The dialect comes from
    `profile`; the individual dialect fields are only honoured for
    profile="custom".
    """

    csv_b64: Optional[str] = None
    csv_text: Optional[str] = None

    profile: DialectProfile = "rfc4180"
    field_delimiter: SingleChar = ","
    quote_char: SingleChar = '"'
    comment_start: Optional[SingleChar] = "#"

    has_header: bool = False
    buffer_size: int = Field(default=2048, ge=1, le=MAX_BUFFER_SIZE)
    max_fields: int = Field(default=256, ge=1, le=MAX_FIELDS)
    max_records: int = 0  # 0 means unlimited

    response_level: ResponseLevel = Field(
        default=ResponseLevel.simple,
        description="Response verbosity: simple | standard | debug",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "csv_text": "name,kind\nMercury,Planet\n",
                "profile": "rfc4180",
                "has_header": True,
            }
        }
    )

    @model_validator(mode="after")
    def _check_payload(self) -> "ParseRequest":
        if (self.csv_b64 is None) == (self.csv_text is None):
            raise ValueError("exactly one of csv_b64 or csv_text is required")
        return self


class WriteRequest(BaseModel):
    """/v0/write request. None cells are written as empty fields."""

    records: List[List[Optional[str]]]
    header: Optional[List[str]] = None

    profile: DialectProfile = "rfc4180"
    field_delimiter: SingleChar = ","
    quote_char: SingleChar = '"'
    comment_start: Optional[SingleChar] = "#"
    record_terminator: Literal["crlf", "lf"] = "crlf"
    add_bom: bool = False

    field_buffer_size: int = Field(default=512, ge=1, le=MAX_BUFFER_SIZE)
    record_buffer_size: int = Field(default=4096, ge=1, le=MAX_BUFFER_SIZE)

    response_level: ResponseLevel = Field(
        default=ResponseLevel.simple,
        description="Response verbosity: simple | standard | debug",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "records": [["Mercury", "Planet", "3.3e23", "5.8e7"]],
                "header": ["Name", "Type", "Mass", "Distance to Primary"],
                "profile": "excel",
            }
        }
    )
