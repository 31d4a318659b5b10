from __future__ import annotations

import os
from pathlib import Path
from typing import List


def load_env_file(path: str) -> List[str]:
    """Load KEY=VALUE lines into os.environ without overriding existing keys.

    Returns the keys that were set.
    """
    loaded: List[str] = []
    if not path:
        return loaded
    file_path = Path(path)
    if not file_path.is_file():
        return loaded
    with file_path.open("r", encoding="utf-8") as handle:
        for raw in handle:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export ") :].strip()
            key, sep, value = line.partition("=")
            key = key.strip()
            if not sep or not key or key in os.environ:
                continue
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                value = value[1:-1]
            os.environ[key] = value
            loaded.append(key)
    return loaded


def require_env(name: str) -> str:
    value = os.environ.get(name, "")
    if not value.strip():
        raise RuntimeError(f"{name} is not configured")
    return value


def is_env_configured(name: str) -> bool:
    return bool(os.environ.get(name, "").strip())
