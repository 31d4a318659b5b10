from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

SNAPSHOT_PREFIX = "codex-snapshot"


@dataclass
class StashEntry:
    ref: str
    subject: str

    def matches(self, label: str) -> bool:
        return self.subject == label or self.subject.endswith(": " + label)


@dataclass
class Snapshot:
    label: str
    # stash@{n} handles shift whenever the stash list changes; resolve by label each time.
    ref: str
    paths: Optional[List[str]] = None


@dataclass
class DropResult:
    dropped: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"dropped": self.dropped}
        if self.reason:
            out["reason"] = self.reason
        return out


@dataclass
class ApplyResult:
    applied: bool
    remaining: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"applied": self.applied}
        if self.remaining is not None:
            out["remaining"] = self.remaining
        if self.reason:
            out["reason"] = self.reason
        return out


@dataclass
class SnapshotSummary:
    has_snapshots: bool
    snapshots: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"hasSnapshots": self.has_snapshots, "snapshots": list(self.snapshots)}


def format_label(epoch_ms: int, purpose: str) -> str:
    return f"{SNAPSHOT_PREFIX}:{epoch_ms}:{purpose}"


def parse_label(label: str) -> Optional[Tuple[int, str]]:
    """Split a snapshot label into (epoch_ms, purpose); None if it is not one of ours."""
    prefix, sep, rest = label.partition(":")
    if prefix != SNAPSHOT_PREFIX or not sep:
        return None
    stamp, sep, purpose = rest.partition(":")
    if not sep or not stamp.isdigit():
        return None
    return int(stamp), purpose
