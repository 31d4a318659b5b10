from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .cancel import CancelToken
from .exec import CommandError, ExecOptions, run_command


class NotGitRepoError(RuntimeError):
    def __init__(self, workspace: str = "") -> None:
        suffix = f": {workspace}" if workspace else ""
        super().__init__(f"workspace is not a git repository{suffix}")


@dataclass
class PatchApplyResult:
    applied: bool
    stdout: Optional[str] = None
    stderr: Optional[str] = None


async def apply_patch_file(workspace: str, diff: str, signal: CancelToken | None = None) -> PatchApplyResult:
    """Write diff to a temporary patch file and git-apply it inside workspace.

    Whitespace problems are tolerated. A rejected patch raises CommandError;
    nothing is rolled back.
    """
    if not diff or not diff.strip():
        raise ValueError("diff is empty")
    root = Path(workspace).resolve()

    tmp_dir = Path(tempfile.mkdtemp(prefix="codex-patch-"))
    patch_path = tmp_dir / "snapshot.patch"
    try:
        text = diff if diff.endswith("\n") else diff + "\n"
        patch_path.write_text(text, encoding="utf-8")
        try:
            result = await run_command(
                ["git", "apply", "--binary", "--whitespace=nowarn", str(patch_path)],
                ExecOptions(dir=str(root), timeout_ms=60_000, signal=signal),
            )
        except CommandError as err:
            raise CommandError(f"git apply failed (exit {err.result.exit_code})", err.result) from err
        return PatchApplyResult(applied=True, stdout=result.stdout, stderr=result.stderr)
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)
