from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Sequence

from sketchreel.util.cancel import CancelToken
from sketchreel.util.exec import CmdResult, CommandError, ExecOptions, run_command
from sketchreel.util.patch import NotGitRepoError, PatchApplyResult, apply_patch_file
from .models import StashEntry

_FIELD_SEP = "\x1f"
_UNQUOTED_PATHS = ("-c", "core.quotePath=false")


class GitClient:
    """Thin async wrapper over the git commands the snapshot stack relies on.

    Commands that take repository-relative paths (restore, apply) run from the
    repository top level; status and stash push run from the workspace root so
    their pathspecs stay relative to it.
    """

    def __init__(self, workspace: str | Path, exclude: Sequence[str] = (), timeout_ms: int = 60_000) -> None:
        self._workspace = Path(workspace).resolve()
        self._exclude = [item for item in exclude if item]
        self._timeout_ms = timeout_ms
        self._toplevel: Optional[Path] = None

    @property
    def workspace(self) -> Path:
        return self._workspace

    async def run(
        self,
        args: Sequence[str],
        cwd: Path | None = None,
        signal: CancelToken | None = None,
    ) -> CmdResult:
        return await run_command(
            ["git", *args],
            ExecOptions(dir=str(cwd or self._workspace), timeout_ms=self._timeout_ms, signal=signal),
        )

    async def is_repo(self) -> bool:
        try:
            res = await self.run(["rev-parse", "--is-inside-work-tree"])
        except (CommandError, OSError):
            return False
        return res.stdout.strip() == "true"

    async def toplevel(self) -> Path:
        if self._toplevel is None:
            try:
                res = await self.run(["rev-parse", "--show-toplevel"])
            except (CommandError, OSError) as err:
                raise NotGitRepoError(str(self._workspace)) from err
            self._toplevel = Path(res.stdout.strip()).resolve()
        return self._toplevel

    def _pathspec(self) -> List[str]:
        spec = ["."]
        for rel in self._exclude:
            spec.append(f":(exclude){rel}")
        return spec

    async def has_changes(self) -> bool:
        res = await self.run(["status", "--porcelain", "--untracked-files=all", "--", *self._pathspec()])
        return bool(res.stdout.strip())

    async def stash_push(self, message: str) -> None:
        await self.run(["stash", "push", "--include-untracked", "--message", message, "--", *self._pathspec()])

    async def stash_apply(self, ref: str = "stash@{0}") -> None:
        await self.run(["stash", "apply", ref])

    async def stash_drop(self, ref: str) -> None:
        await self.run(["stash", "drop", ref])

    async def stash_list(self) -> List[StashEntry]:
        res = await self.run(["stash", "list", f"--format=%gd{_FIELD_SEP}%gs"])
        entries: List[StashEntry] = []
        for line in res.stdout.split("\n"):
            line = line.strip()
            if not line:
                continue
            ref, _, subject = line.partition(_FIELD_SEP)
            entries.append(StashEntry(ref=ref, subject=subject))
        return entries

    async def stash_show_patch(self, ref: str) -> str:
        res = await self.run(
            [
                *_UNQUOTED_PATHS,
                "stash",
                "show",
                "--patch",
                "--binary",
                "--include-untracked",
                "--no-color",
                "--no-ext-diff",
                "--src-prefix=a/",
                "--dst-prefix=b/",
                ref,
            ]
        )
        return res.stdout

    async def stash_paths(self, ref: str) -> List[str]:
        """Repository-relative paths touched by a stash entry, untracked files included.

        Renames are listed as a deletion plus an addition so both sides get restored.
        """
        res = await self.run(
            [*_UNQUOTED_PATHS, "stash", "show", "--name-only", "-z", "--no-renames", "--include-untracked", ref]
        )
        paths: List[str] = []
        for item in res.stdout.split("\0"):
            if item and item not in paths:
                paths.append(item)
        return paths

    async def restore_paths(self, paths: Sequence[str], signal: CancelToken | None = None) -> None:
        """Put paths back to their HEAD state.

        Paths tracked in HEAD are checked out from it; paths HEAD does not know
        about are removed from the index and the working tree.
        """
        if not paths:
            return
        top = await self.toplevel()
        tracked = await self._tracked_in_head(paths, top)
        in_head = [p for p in paths if p in tracked]
        not_in_head = [p for p in paths if p not in tracked]
        if in_head:
            await self.run(["checkout", "HEAD", "--", *in_head], cwd=top, signal=signal)
        if not_in_head:
            await self.run(["rm", "--cached", "--quiet", "--ignore-unmatch", "--", *not_in_head], cwd=top, signal=signal)
            for rel in not_in_head:
                target = Path(os.path.normpath(top / rel))
                if not target.is_relative_to(top):
                    continue
                if target.is_file() or target.is_symlink():
                    target.unlink()
                    _prune_empty_dirs(target.parent, top)

    async def apply_patch(self, patch: str, signal: CancelToken | None = None) -> PatchApplyResult:
        top = await self.toplevel()
        return await apply_patch_file(str(top), patch, signal)

    async def _tracked_in_head(self, paths: Sequence[str], top: Path) -> set[str]:
        try:
            res = await self.run(["ls-tree", "-r", "-z", "--name-only", "HEAD", "--", *paths], cwd=top)
        except CommandError:
            # No commits yet: nothing is tracked in HEAD.
            return set()
        return {item for item in res.stdout.split("\0") if item}


def _prune_empty_dirs(directory: Path, stop: Path) -> None:
    current = directory
    while current != stop and current.is_relative_to(stop):
        try:
            if any(current.iterdir()):
                return
            os.rmdir(current)
        except OSError:
            return
        current = current.parent
