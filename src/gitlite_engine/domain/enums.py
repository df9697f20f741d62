"""Enums for gitlite domain models."""

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable failure kind carried by every engine error."""

    # Lookup failures
    REPOSITORY_NOT_FOUND = "repository_not_found"
    REFERENCE_NOT_FOUND = "reference_not_found"
    REMOTE_NOT_FOUND = "remote_not_found"
    COMMIT_NOT_FOUND = "commit_not_found"
    INVALID_REVISION = "invalid_revision"

    # Precondition guards (caller corrects repository state)
    DIRTY_WORKTREE = "dirty_worktree"
    DETACHED = "detached"
    HEAD_UNBORN = "head_unborn"
    CHECKOUT_CONFLICT = "checkout_conflict"

    # Divergence (needs a user decision, never auto-resolved)
    NON_FAST_FORWARD = "non_fast_forward"
    REJECTED = "rejected"
    MERGE_CONFLICT = "merge_conflict"
    CONFLICT = "conflict"
    APPLY_CONFLICT = "apply_conflict"

    # Transport
    AUTH = "auth"
    NETWORK = "network"

    # Input / state validation
    DELETE_CURRENT_BRANCH = "delete_current_branch"
    BRANCH_EXISTS = "branch_exists"
    EMPTY_NAME = "empty_name"
    EMPTY_MESSAGE = "empty_message"
    NOTHING_STAGED = "nothing_staged"
    EMPTY_STASH = "empty_stash"
    INVALID_INDEX = "invalid_index"
    INVALID_RESET_MODE = "invalid_reset_mode"
    MERGE_COMMIT_UNSUPPORTED = "merge_commit_unsupported"

    # Internal
    UNHANDLED_MERGE_STATE = "unhandled_merge_state"
    GIT_NOT_FOUND = "git_not_found"
    OPERATION_FAILED = "operation_failed"


class FileStatusKind(str, Enum):
    """Kind of change recorded for a working-tree entry."""

    ADDED = "added"
    DELETED = "deleted"
    RENAMED = "renamed"
    MODIFIED = "modified"


class DiffLineKind(str, Enum):
    """Origin of a line inside a diff hunk."""

    CONTEXT = "context"
    ADD = "add"
    DELETE = "delete"


class ResetMode(str, Enum):
    """How far a reset reaches beyond moving the branch ref."""

    SOFT = "soft"  # Ref only
    MIXED = "mixed"  # Ref + index
    HARD = "hard"  # Ref + index + working tree


class MergeAnalysis(str, Enum):
    """Relationship between HEAD and a merge target."""

    UP_TO_DATE = "up_to_date"
    FAST_FORWARD = "fast_forward"
    NORMAL = "normal"
    NONE = "none"  # No common history; never merged


class TransportKind(str, Enum):
    """Transport family of a remote URL."""

    HTTPS = "https"
    SSH = "ssh"
    LOCAL = "local"


class HeadKind(str, Enum):
    """What HEAD currently points at."""

    BRANCH = "branch"
    DETACHED = "detached"
    UNBORN = "unborn"
