from __future__ import annotations

from pathlib import Path

import pytest

from sketchreel.workspace import OutOfScopeWriteError, WorkspaceGuard

ROOTS = ["app", "styles", "public/outputs"]


def _guard(tmp_path: Path) -> WorkspaceGuard:
    for rel in ROOTS:
        (tmp_path / rel).mkdir(parents=True, exist_ok=True)
    return WorkspaceGuard(tmp_path, ROOTS)


def test_resolve_inside_allowed_root(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    resolved = guard.resolve("app", "components", "Button.tsx")
    assert resolved == (tmp_path / "app" / "components" / "Button.tsx").resolve()


def test_resolve_allows_root_itself(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    assert guard.resolve("styles") == (tmp_path / "styles").resolve()


def test_resolve_rejects_traversal(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    with pytest.raises(OutOfScopeWriteError):
        guard.resolve("app", "../../etc/passwd")
    with pytest.raises(OutOfScopeWriteError):
        guard.resolve("../../etc/passwd")


def test_resolve_rejects_traversal_that_keeps_prefix(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    with pytest.raises(OutOfScopeWriteError):
        guard.resolve("app", "..", "secrets.txt")


def test_resolve_rejects_sibling_with_shared_prefix(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    with pytest.raises(OutOfScopeWriteError) as excinfo:
        guard.resolve("appsecret", "keys.txt")
    assert "appsecret" in str(excinfo.value)


def test_resolve_rejects_unlisted_and_empty(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    with pytest.raises(OutOfScopeWriteError):
        guard.resolve("public", "index.html")
    with pytest.raises(OutOfScopeWriteError):
        guard.resolve()
    with pytest.raises(OutOfScopeWriteError):
        guard.resolve("  ")


def test_resolve_rejects_symlink_escape(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    outside = tmp_path.parent / f"{tmp_path.name}-outside"
    outside.mkdir()
    (tmp_path / "app" / "link").symlink_to(outside, target_is_directory=True)
    with pytest.raises(OutOfScopeWriteError):
        guard.resolve("app", "link", "file.txt")


def test_is_allowed(tmp_path: Path) -> None:
    guard = _guard(tmp_path)
    assert guard.is_allowed(tmp_path / "public" / "outputs" / "frame.png")
    assert not guard.is_allowed(tmp_path / "public" / "frame.png")
    assert not guard.is_allowed("/etc/passwd")


def test_guard_requires_roots(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        WorkspaceGuard(tmp_path, ["", " "])
