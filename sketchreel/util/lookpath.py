from __future__ import annotations

import os
import shutil
from pathlib import Path


def look_path(cmd: str) -> str:
    """Resolve cmd on PATH, or verify it directly when it contains a separator."""
    if not cmd:
        raise ValueError("command is empty")
    if os.sep in cmd or (os.altsep and os.altsep in cmd):
        candidate = Path(cmd).expanduser()
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate.resolve())
        raise FileNotFoundError(f"command not executable: {cmd}")
    resolved = shutil.which(cmd)
    if not resolved:
        raise FileNotFoundError(f"command not found: {cmd}")
    return resolved
