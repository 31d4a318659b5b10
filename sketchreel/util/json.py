from __future__ import annotations

from typing import Dict, Optional

from fastapi.responses import JSONResponse


def json_response(value: object, status: int = 200) -> JSONResponse:
    return JSONResponse(content=value, status_code=status)


def error_response(message: str, status: int = 400, details: Optional[Dict[str, object]] = None) -> JSONResponse:
    payload: Dict[str, object] = {"error": message}
    if details:
        payload["details"] = details
    return json_response(payload, status)
