from __future__ import annotations

import json
from typing import Any, Dict, Optional

from mangum import Mangum

from backend.fastapi_app.main import app


def _safe_get(d, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _api_gateway_base_path(event: Dict[str, Any]) -> Optional[str]:
    """/dev や /prod の stage prefix を返す（$default stage では None）"""
    stage = _safe_get(event, "requestContext", "stage")
    if not stage or stage == "$default":
        return None
    return f"/{stage}"


def _diag_line(event: Dict[str, Any]) -> str:
    """1 リクエスト 1 行の JSON 診断ログ（CloudWatch 検索用）"""
    body = event.get("body")
    return json.dumps(
        {
            "diag": "incoming_request",
            "stage": _safe_get(event, "requestContext", "stage"),
            "method": _safe_get(event, "requestContext", "http", "method"),
            "rawPath": event.get("rawPath"),
            "body_bytes": len(body) if isinstance(body, str) else 0,
            "base64_encoded": bool(event.get("isBase64Encoded")),
        },
        ensure_ascii=False,
    )


def handler(event, context):
    print(_diag_line(event))

    # /dev/csv/v0/parse -> Mangum が stage を剥がして FastAPI (root_path="/csv") に渡す
    asgi = Mangum(app, api_gateway_base_path=_api_gateway_base_path(event))
    return asgi(event, context)
