from __future__ import annotations

from pathlib import Path
from typing import Iterable, List


class OutOfScopeWriteError(ValueError):
    def __init__(self, target: str) -> None:
        super().__init__(f"Path {target} is outside the allowed write roots")
        self.target = target


class WorkspaceGuard:
    """Allowlist of directories under a workspace root that runs may write to.

    Paths are compared after normalisation and symlink resolution, so a
    ``..`` segment that climbs out of a root is rejected even when the joined
    string still starts with the root's text, and ``appsecret`` never matches
    the root ``app``.
    """

    def __init__(self, workspace_root: str | Path, allowed_roots: Iterable[str]) -> None:
        self._root = Path(workspace_root).resolve()
        self._allowed: List[Path] = []
        for rel in allowed_roots:
            rel = rel.strip()
            if not rel:
                continue
            self._allowed.append((self._root / rel).resolve())
        if not self._allowed:
            raise ValueError("at least one allowed root is required")

    @property
    def root(self) -> Path:
        return self._root

    @property
    def allowed_roots(self) -> List[Path]:
        return list(self._allowed)

    def is_allowed(self, target: str | Path) -> bool:
        resolved = Path(target).resolve()
        return any(resolved == root or resolved.is_relative_to(root) for root in self._allowed)

    def assert_allowed(self, target: str | Path) -> Path:
        resolved = Path(target).resolve()
        if not self.is_allowed(resolved):
            raise OutOfScopeWriteError(str(target))
        return resolved

    def resolve(self, *segments: str) -> Path:
        if not segments or not any(seg.strip() for seg in segments):
            raise OutOfScopeWriteError(str(self._root))
        joined = self._root.joinpath(*segments)
        return self.assert_allowed(joined)
