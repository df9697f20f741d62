"""Domain models for gitlite engine."""

from gitlite_engine.domain.enums import (
    DiffLineKind,
    ErrorKind,
    FileStatusKind,
    MergeAnalysis,
    ResetMode,
)
from gitlite_engine.domain.models import (
    Branch,
    Commit,
    Credentials,
    FileDiff,
    FileStatus,
    RemoteInfo,
    StashEntry,
    SyncStatus,
)

__all__ = [
    "DiffLineKind",
    "ErrorKind",
    "FileStatusKind",
    "MergeAnalysis",
    "ResetMode",
    "Branch",
    "Commit",
    "Credentials",
    "FileDiff",
    "FileStatus",
    "RemoteInfo",
    "StashEntry",
    "SyncStatus",
]
