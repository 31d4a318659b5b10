from __future__ import annotations

import os
from pathlib import Path


def expand_home(value: str) -> str:
    if not value:
        return value
    if value == "~":
        return str(Path.home())
    if value.startswith("~/"):
        return str(Path.home() / value[2:])
    return value


def to_posix_rel(path: str | Path, root: str | Path) -> str:
    rel = os.path.relpath(Path(path).resolve(), Path(root).resolve())
    return Path(rel).as_posix()
