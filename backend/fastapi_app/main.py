from __future__ import annotations

import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

# ============================================================
# プロジェクトルートを sys.path に追加
# （Lambda / uvicorn どちらでも core パッケージを解決できるように）
# ============================================================
ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from core.csv_codec.errors import CsvCodecError  # noqa: E402
from core.csv_codec.models import ParseRequest, WriteRequest  # noqa: E402
from core.csv_codec.service import (  # noqa: E402
    VERSION,
    process_parse,
    process_write,
)

# ============================================================
# API Gateway 側で /csv をプレフィックスとしてルーティングしているため、
# FastAPI には root_path="/csv" を指定し、ルート定義は /v0/... にする
# ============================================================
app = FastAPI(
    title="CSV Record Codec API",
    version=VERSION,
    description="Parse CSV lines into records and write records back as CSV (v0)",
    root_path="/csv",
)

# 入力不正は 422、バッファ容量超過は 413、それ以外 (dialect / Base64 等) は 400
_STATUS_BY_CODE = {
    "UNTERMINATED_QUOTE": 422,
    "SCHEMA_MISMATCH": 422,
    "CAPACITY_EXCEEDED": 413,
}


@app.exception_handler(CsvCodecError)
async def csv_codec_error_handler(_: Request, exc: CsvCodecError) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_BY_CODE.get(exc.code, 400),
        content={
            "error": {
                "code": exc.code,
                "message": str(exc),
            },
            "meta": {
                "version": VERSION,
            },
        },
    )


@app.post("/v0/parse")
async def csv_parse_endpoint(payload: ParseRequest):
    response = process_parse(payload)
    return response.model_dump()


@app.post("/v0/write")
async def csv_write_endpoint(payload: WriteRequest):
    response = process_write(payload)
    return response.model_dump()
