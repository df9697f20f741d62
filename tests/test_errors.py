"""Tests for the error taxonomy and its serialized form."""

from __future__ import annotations

import json

from gitlite_engine.domain.enums import ErrorKind, ResetMode
from gitlite_engine.errors import (
    ConflictError,
    GitliteError,
    InternalError,
    MergeConflictError,
    NotFoundError,
    OperationError,
    PreconditionError,
    TransportError,
    ValidationError,
    error_body,
    exit_code_for,
)


def test_error_kind_values() -> None:
    """Kinds are stable, lower-case strings callers can match on."""
    assert ErrorKind.REPOSITORY_NOT_FOUND.value == "repository_not_found"
    assert ErrorKind.NON_FAST_FORWARD.value == "non_fast_forward"
    assert ErrorKind.MERGE_CONFLICT.value == "merge_conflict"
    assert ErrorKind.UNHANDLED_MERGE_STATE.value == "unhandled_merge_state"


def test_reset_mode_values() -> None:
    assert [mode.value for mode in ResetMode] == ["soft", "mixed", "hard"]


def test_category_defaults() -> None:
    assert NotFoundError("x").kind == ErrorKind.REFERENCE_NOT_FOUND
    assert ConflictError("x").kind == ErrorKind.CONFLICT
    assert TransportError("x").kind == ErrorKind.NETWORK
    assert InternalError("x").kind == ErrorKind.UNHANDLED_MERGE_STATE
    assert OperationError("x").kind == ErrorKind.OPERATION_FAILED


def test_merge_conflict_error_carries_paths() -> None:
    err = MergeConflictError(["a.txt", "b.txt"])

    assert err.kind == ErrorKind.MERGE_CONFLICT
    assert err.count == 2
    assert err.paths == ["a.txt", "b.txt"]
    assert str(err) == "Merge conflicts detected in 2 file(s): a.txt, b.txt"
    assert isinstance(err, ConflictError)


def test_error_body_shape() -> None:
    err = PreconditionError(
        "Working tree has uncommitted changes",
        kind=ErrorKind.DIRTY_WORKTREE,
        details={"paths": ["file.txt"]},
    )
    body = error_body(err)

    assert body == {
        "detail": "Working tree has uncommitted changes",
        "error": {"kind": "dirty_worktree", "details": {"paths": ["file.txt"]}},
    }
    assert json.loads(json.dumps(body)) == body


def test_error_body_omits_empty_details() -> None:
    body = error_body(ValidationError("Branch name cannot be empty", kind=ErrorKind.EMPTY_NAME))
    assert "details" not in body["error"]


def test_exit_codes_by_category() -> None:
    assert exit_code_for(NotFoundError("x")) == 3
    assert exit_code_for(PreconditionError("x", kind=ErrorKind.DETACHED)) == 4
    assert exit_code_for(ValidationError("x", kind=ErrorKind.EMPTY_MESSAGE)) == 5
    assert exit_code_for(MergeConflictError(["a"])) == 6
    assert exit_code_for(TransportError("x", kind=ErrorKind.AUTH)) == 7
    assert exit_code_for(InternalError("x")) == 70
    assert exit_code_for(GitliteError("x")) == 1
