from .git import GitClient
from .models import (
    SNAPSHOT_PREFIX,
    ApplyResult,
    DropResult,
    Snapshot,
    SnapshotSummary,
    StashEntry,
    format_label,
    parse_label,
)
from .stack import DEFAULT_INDEX_FILE, SnapshotStack

__all__ = [
    "GitClient",
    "SNAPSHOT_PREFIX",
    "ApplyResult",
    "DropResult",
    "Snapshot",
    "SnapshotSummary",
    "StashEntry",
    "format_label",
    "parse_label",
    "DEFAULT_INDEX_FILE",
    "SnapshotStack",
]
