from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional

ItemPhase = Literal["started", "updated", "completed"]

SSE_MESSAGE = "message"
SSE_DONE = "done"


@dataclass(frozen=True)
class RunEvent:
    type: str
    text: Optional[str] = None
    payload: Optional[object] = None

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"type": self.type}
        if self.text is not None:
            out["text"] = self.text
        if self.payload is not None:
            out["payload"] = self.payload
        return out


@dataclass(frozen=True)
class DoneSignal:
    ok: bool
    has_snapshots: bool
    error: Optional[str] = None
    reason: Optional[str] = None
    snapshot_created: bool = False
    pre_snapshot_retained: bool = False
    final_response: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "ok": self.ok,
            "hasSnapshots": self.has_snapshots,
            "snapshotCreated": self.snapshot_created,
            "preSnapshotRetained": self.pre_snapshot_retained,
        }
        if self.error:
            out["error"] = self.error
        if self.reason:
            out["reason"] = self.reason
        if self.final_response:
            out["finalResponse"] = self.final_response
        return out
