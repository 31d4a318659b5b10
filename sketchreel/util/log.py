from __future__ import annotations

import sys
from typing import Dict, Optional


def log_info(message: str, context: Optional[Dict[str, object]] = None) -> None:
    print(message, context or {}, flush=True)


def log_warn(message: str, context: Optional[Dict[str, object]] = None) -> None:
    print(message, context or {}, file=sys.stderr, flush=True)


def log_error(message: str, err: BaseException | object, context: Optional[Dict[str, object]] = None) -> None:
    payload: Dict[str, object] = dict(context or {})
    if isinstance(err, BaseException):
        payload["error"] = {"name": type(err).__name__, "message": str(err)}
    else:
        payload["error"] = err
    print(message, payload, file=sys.stderr, flush=True)
