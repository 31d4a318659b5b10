from __future__ import annotations

import asyncio
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from sketchreel.util.cancel import CancelToken
from sketchreel.util.exec import CommandError
from sketchreel.util.log import log_info, log_warn
from .git import GitClient
from .models import (
    ApplyResult,
    DropResult,
    Snapshot,
    SnapshotSummary,
    StashEntry,
    format_label,
)

DEFAULT_INDEX_FILE = ".codex-snapshots.json"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class SnapshotStack:
    """LIFO stack of labelled git-stash snapshots of the workspace.

    The index file is the ordered list of labels; the stash list holds the
    content. Labels whose stash entry has vanished are pruned from the index
    whenever the stack is read through the stash.

    One instance should own a workspace: every public operation takes the
    instance lock, so snapshot operations from concurrent runs are serialised.
    """

    def __init__(
        self,
        workspace_root: str | Path,
        index_file: str = DEFAULT_INDEX_FILE,
        git: Optional[GitClient] = None,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._root = Path(workspace_root).resolve()
        index_path = Path(index_file)
        self._index_path = index_path if index_path.is_absolute() else self._root / index_path
        exclude: List[str] = []
        if self._index_path.resolve().is_relative_to(self._root):
            exclude.append(self._index_path.resolve().relative_to(self._root).as_posix())
        self._git = git or GitClient(self._root, exclude=exclude)
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def index_path(self) -> Path:
        return self._index_path

    @property
    def git(self) -> GitClient:
        return self._git

    def read_stack(self) -> List[str]:
        try:
            parsed = json.loads(self._index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return []
        if not isinstance(parsed, list):
            return []
        return [item for item in parsed if isinstance(item, str)]

    def write_stack(self, entries: List[str]) -> None:
        self._index_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".codex-snapshots-", dir=str(self._index_path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(entries, indent=2))
            os.replace(tmp, self._index_path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def create_snapshot(self, purpose: str) -> Optional[str]:
        """Tag the current dirty working tree as a snapshot; None when there is nothing to tag."""
        async with self._lock:
            if not await self._git.is_repo():
                return None
            try:
                if not await self._git.has_changes():
                    return None
            except CommandError as err:
                log_warn("snapshot status check failed", {"purpose": purpose, "stderr": err.details()})
                return None

            stack = self.read_stack()
            label = self._new_label(purpose, stack)
            try:
                await self._git.stash_push(label)
            except CommandError as err:
                log_warn("snapshot stash push failed", {"label": label, "stderr": err.details()})
                return None

            try:
                await self._git.stash_apply("stash@{0}")
            except CommandError as err:
                # The stash entry exists but the working tree no longer shows it.
                log_warn("failed to reapply snapshot to working tree", {"label": label, "stderr": err.details()})

            stack.append(label)
            self.write_stack(stack)
            return label

    async def drop_snapshot(self, label: str) -> DropResult:
        async with self._lock:
            stack = self.read_stack()
            if label not in stack:
                return DropResult(dropped=False, reason="not_found")
            index = len(stack) - 1 - stack[::-1].index(label)
            del stack[index]
            self.write_stack(stack)

            try:
                target = _find_entry(await self._git.stash_list(), label)
                if target is None:
                    return DropResult(dropped=True, reason="stash_missing")
                await self._git.stash_drop(target.ref)
            except CommandError as err:
                log_warn("failed to drop stash entry", {"label": label, "stderr": err.details()})
                return DropResult(dropped=False, reason="drop_failed")
            return DropResult(dropped=True)

    async def apply_latest_snapshot(self, signal: CancelToken | None = None) -> ApplyResult:
        """Undo the newest snapshot and re-materialise the one beneath it.

        The popped snapshot's files are reset to HEAD; if another snapshot
        remains, its files are reset as well and its diff is re-applied as a
        patch. Failures after the popped stash entry is dropped propagate and
        can leave the workspace partially restored.
        """
        async with self._lock:
            if not await self._git.is_repo():
                return ApplyResult(applied=False, reason="Repository not initialised")

            try:
                stack, entries = await self._prune(self.read_stack())
            except CommandError as err:
                return ApplyResult(applied=False, reason=f"Unable to read stash list: {err.details()}")
            if not stack:
                return ApplyResult(applied=False, reason="No snapshots available")

            target = _resolve(entries, stack[-1])
            if target is None:
                return ApplyResult(applied=False, reason="No snapshots available")
            try:
                target_paths = await self._git.stash_paths(target.ref)
                await self._git.stash_drop(target.ref)
            except CommandError as err:
                return ApplyResult(applied=False, reason=f"Unable to drop snapshot {target.label}: {err.details()}")
            stack.pop()
            self.write_stack(stack)

            await self._git.restore_paths(target_paths, signal)
            log_info("snapshot restored", {"label": target.label, "paths": len(target_paths), "remaining": len(stack)})
            if not stack:
                return ApplyResult(applied=True, remaining=0)

            stack, entries = await self._prune(stack)
            if not stack:
                return ApplyResult(applied=True, remaining=0)
            below = _resolve(entries, stack[-1])
            if below is None:
                return ApplyResult(applied=True, remaining=len(stack))

            below.paths = await self._git.stash_paths(below.ref)
            patch = await self._git.stash_show_patch(below.ref)
            await self._git.restore_paths(below.paths, signal)
            if patch.strip():
                await self._git.apply_patch(patch, signal)
            return ApplyResult(applied=True, remaining=len(stack))

    async def get_snapshot_summary(self) -> SnapshotSummary:
        async with self._lock:
            if not await self._git.is_repo():
                return SnapshotSummary(has_snapshots=False, snapshots=[])
            filtered, _ = await self._prune(self.read_stack())
            return SnapshotSummary(has_snapshots=bool(filtered), snapshots=filtered)

    async def _prune(self, stack: List[str]) -> Tuple[List[str], List[StashEntry]]:
        entries = await self._git.stash_list()
        filtered = [label for label in stack if _find_entry(entries, label) is not None]
        if len(filtered) != len(stack):
            orphaned = [label for label in stack if label not in filtered]
            log_warn("pruned orphaned snapshot labels", {"labels": orphaned})
            self.write_stack(filtered)
        return filtered, entries

    def _new_label(self, purpose: str, stack: List[str]) -> str:
        stamp = self._clock()
        label = format_label(stamp, purpose)
        while label in stack:
            stamp += 1
            label = format_label(stamp, purpose)
        return label


def _find_entry(entries: List[StashEntry], label: str) -> Optional[StashEntry]:
    for entry in entries:
        if entry.matches(label):
            return entry
    return None


def _resolve(entries: List[StashEntry], label: str) -> Optional[Snapshot]:
    entry = _find_entry(entries, label)
    if entry is None:
        return None
    return Snapshot(label=label, ref=entry.ref)
