from __future__ import annotations

import base64
import io
import logging
import statistics
from dataclasses import dataclass, asdict
from typing import List, Tuple, Optional, Dict, Any

from .errors import CsvCodecError, UnterminatedQuoteError
from .models import (
    ParseRequest,
    ParseResponse,
    ParseResult,
    ParseStats,
    WriteRequest,
    WriteResponse,
    WriteResult,
    WriteStats,
    Issue,
    ResponseLevel,
)
from .lines import split_lines
from .parser import create_parser
from .writer import RecordWriter

logger = logging.getLogger(__name__)

VERSION = "0.3.0"


class InvalidBase64Error(CsvCodecError):
    """Base64 デコード失敗時に投げる独自例外"""

    code = "INVALID_BASE64"


@dataclass
class EffectiveConfig:
    """実際に parse / write に用いる設定（プロファイル適用後の値）"""

    profile: str
    field_delimiter: str
    quote_char: str
    comment_start: Optional[str]
    record_terminator: str  # "\r\n" / "\n"
    add_bom: bool


# ---------------------------------------------------------------------------
# Base64 / テキストユーティリティ
# ---------------------------------------------------------------------------


def _decode_base64_to_text(csv_b64: str) -> str:
    """Base64 -> UTF-8 テキストに変換

    - 先に空白類（スペース・改行・タブなど）をすべて削除
    - そのうえで validate=True で厳密に Base64 を検証
    """
    try:
        compact = "".join(csv_b64.split())
        raw = base64.b64decode(compact, validate=True)
        return raw.decode("utf-8")
    except ValueError as exc:
        raise InvalidBase64Error("csv_b64 is not valid Base64 UTF-8 text") from exc


# ---------------------------------------------------------------------------
# プロファイル解決
# ---------------------------------------------------------------------------


def _resolve_effective_config(
    profile: str,
    field_delimiter: str,
    quote_char: str,
    comment_start: Optional[str],
    record_terminator: str = "\r\n",
    add_bom: bool = False,
) -> EffectiveConfig:
    """profile とリクエスト値から実際に用いる dialect を決定する。

    profile="custom" のときだけリクエストの dialect 項目をそのまま使う。
    """
    cfg = EffectiveConfig(
        profile=profile,
        field_delimiter=field_delimiter,
        quote_char=quote_char,
        comment_start=comment_start,
        record_terminator=record_terminator,
        add_bom=add_bom,
    )

    if profile == "rfc4180":
        cfg.field_delimiter = ","
        cfg.quote_char = '"'
        cfg.comment_start = "#"
        cfg.record_terminator = "\r\n"
        cfg.add_bom = False

    elif profile == "excel":
        cfg.field_delimiter = ","
        cfg.quote_char = '"'
        cfg.comment_start = None
        cfg.record_terminator = "\r\n"
        cfg.add_bom = True

    elif profile == "tsv":
        cfg.field_delimiter = "\t"
        cfg.quote_char = '"'
        cfg.comment_start = "#"
        cfg.record_terminator = "\n"
        cfg.add_bom = False

    return cfg


# ---------------------------------------------------------------------------
# 構造解析 / Stats
# ---------------------------------------------------------------------------


def _analyze_structure(records: List[List[str]], skipped_lines: int) -> Tuple[ParseStats, List[Issue]]:
    """フィールド数のばらつきを集計し、最頻値と異なるレコードを issue として報告する。"""
    issues: List[Issue] = []

    if not records:
        return ParseStats(skipped_lines=skipped_lines), issues

    counts = [len(r) for r in records]
    # 同数の場合は先に現れた値
    fields_mode = statistics.mode(counts)

    for i, count in enumerate(counts, start=1):
        if count != fields_mode:
            issues.append(
                Issue(
                    type="FIELD_COUNT_MISMATCH",
                    row=i,
                    severity="warning",
                    description=f"Record has {count} fields (expected ~{fields_mode}).",
                )
            )

    stats = ParseStats(
        records=len(records),
        skipped_lines=skipped_lines,
        fields_min=min(counts),
        fields_max=max(counts),
        fields_mode=fields_mode,
    )
    return stats, issues


# ---------------------------------------------------------------------------
# response_level による間引き
# ---------------------------------------------------------------------------


def _minimize_meta(level: ResponseLevel, meta_full: Dict[str, Any]) -> Dict[str, Any]:
    """
    互換性のためトップ構造 {result, meta} は維持しつつ、
    response_level に応じて meta の中身を最小化する。
    """
    meta_simple: Dict[str, Any] = {
        "version": meta_full.get("version"),
        "profile": meta_full.get("profile"),
        "response_level_used": level.value,
    }

    if level == ResponseLevel.simple:
        return meta_simple

    if level == ResponseLevel.standard:
        meta_standard = dict(meta_simple)
        meta_standard["effective_config"] = meta_full["effective_config"]
        return meta_standard

    meta_debug = dict(meta_full)
    meta_debug["response_level_used"] = level.value
    return meta_debug


# ---------------------------------------------------------------------------
# API エントリーポイント
# ---------------------------------------------------------------------------


def process_parse(request: ParseRequest) -> ParseResponse:
    """CSV テキストをレコードへ分解する（/v0/parse のメイン処理）"""

    # 1) 入力テキスト
    if request.csv_b64 is not None:
        text = _decode_base64_to_text(request.csv_b64)
    else:
        text = request.csv_text or ""
    if text.startswith("\ufeff"):
        text = text[1:]

    # 2) 行分割（クォート内の改行はサポートしない）
    lines, detected_le = split_lines(text)

    # 3) プロファイル適用後の設定を決定
    cfg = _resolve_effective_config(
        profile=request.profile,
        field_delimiter=request.field_delimiter,
        quote_char=request.quote_char,
        comment_start=request.comment_start,
    )
    parser = create_parser(
        request.buffer_size,
        field_delimiter=cfg.field_delimiter,
        quote=cfg.quote_char,
        comment_start=cfg.comment_start,
    )

    # 4) 1 行ずつ parse（fields は使い回し、結果だけコピーする）
    fields: List[Optional[str]] = [None] * request.max_fields
    header: Optional[List[str]] = None
    records: List[List[str]] = []
    skipped: List[int] = []

    for line_number, line in enumerate(lines, start=1):
        if request.max_records > 0 and len(records) >= request.max_records:
            break
        try:
            count = parser(line, fields)
        except UnterminatedQuoteError as exc:
            raise UnterminatedQuoteError(line_number=line_number) from exc
        if count == 0:
            skipped.append(line_number)
            continue
        if request.has_header and header is None:
            header = list(fields[:count])
            continue
        records.append(list(fields[:count]))

    logger.debug("parsed %d record(s) from %d line(s)", len(records), len(lines))

    # 5) 構造解析
    stats, issues = _analyze_structure(records, len(skipped))

    meta_full: Dict[str, Any] = {
        "version": VERSION,
        "profile": cfg.profile,
        "effective_config": asdict(cfg),
        "line_ending_detected": detected_le,
        "skipped_line_numbers": skipped,
    }

    # 6) response_level に応じて最終レスポンスを生成
    level = request.response_level
    if level == ResponseLevel.simple:
        result = ParseResult(header=header, records=records)
    else:
        result = ParseResult(header=header, records=records, issues=issues, stats=stats)
    return ParseResponse(result=result, meta=_minimize_meta(level, meta_full))


def process_write(request: WriteRequest) -> WriteResponse:
    """レコードを CSV テキストに整形する（/v0/write のメイン処理）"""

    cfg = _resolve_effective_config(
        profile=request.profile,
        field_delimiter=request.field_delimiter,
        quote_char=request.quote_char,
        comment_start=request.comment_start,
        record_terminator="\r\n" if request.record_terminator == "crlf" else "\n",
        add_bom=request.add_bom,
    )
    writer = RecordWriter(
        field_delimiter=cfg.field_delimiter,
        quote_char=cfg.quote_char,
        record_terminator=cfg.record_terminator,
        comment_start=cfg.comment_start,
        field_buffer_size=request.field_buffer_size,
        record_buffer_size=request.record_buffer_size,
    )

    rows: List[List[Optional[str]]] = []
    if request.header is not None:
        rows.append(list(request.header))
    rows.extend(request.records)

    output = io.StringIO()
    writer.write(rows, output)
    csv_text = output.getvalue()

    if cfg.add_bom and not csv_text.startswith("\ufeff"):
        csv_text = "\ufeff" + csv_text

    logger.debug("wrote %d record(s), %d character(s)", len(rows), len(csv_text))

    meta_full: Dict[str, Any] = {
        "version": VERSION,
        "profile": cfg.profile,
        "effective_config": asdict(cfg),
        "field_buffer_size": request.field_buffer_size,
        "record_buffer_size": request.record_buffer_size,
    }

    level = request.response_level
    if level == ResponseLevel.simple:
        result = WriteResult(csv_text=csv_text)
    else:
        result = WriteResult(
            csv_text=csv_text,
            stats=WriteStats(records=len(rows), characters=len(csv_text)),
        )
    return WriteResponse(result=result, meta=_minimize_meta(level, meta_full))
