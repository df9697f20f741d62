"""Engine error types.

Every failure leaving the engine is a ``GitliteError`` carrying an
``ErrorKind`` so callers can branch on the kind (retry, prompt, abort)
without matching on message text. The category subclasses group kinds the
way a caller usually reacts to them.
"""

from __future__ import annotations

from typing import Any

from gitlite_engine.domain.enums import ErrorKind


class GitliteError(Exception):
    """Base exception for predictable engine errors.

    ``details`` must stay JSON-serializable; ``error_body`` copies it as is.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.OPERATION_FAILED,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details

    @property
    def code(self) -> str:
        return self.kind.value

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message


class NotFoundError(GitliteError):
    """Repository, reference, remote or commit lookup failed."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.REFERENCE_NOT_FOUND,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, kind=kind, details=details)


class PreconditionError(GitliteError):
    """Repository is in a state the operation refuses to start from."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, kind=kind, details=details)


class ValidationError(GitliteError):
    """Invalid caller input or an operation that does not apply."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, kind=kind, details=details)


class ConflictError(GitliteError):
    """Histories or contents diverge; the user has to decide."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.CONFLICT,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, kind=kind, details=details)


class MergeConflictError(ConflictError):
    """Three-way merge produced conflicting paths."""

    def __init__(self, paths: list[str]):
        self.paths = list(paths)
        super().__init__(
            f"Merge conflicts detected in {len(self.paths)} file(s): {', '.join(self.paths)}",
            kind=ErrorKind.MERGE_CONFLICT,
            details={"paths": self.paths, "count": len(self.paths)},
        )

    @property
    def count(self) -> int:
        return len(self.paths)


class TransportError(GitliteError):
    """Authentication or network failure talking to a remote (safe to retry)."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.NETWORK,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, kind=kind, details=details)


class InternalError(GitliteError):
    """Backend contract violation. Should never happen with well-formed input."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNHANDLED_MERGE_STATE,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, kind=kind, details=details)


class OperationError(GitliteError):
    """Generic backend failure that fits no more specific kind."""


def error_body(exc: GitliteError) -> dict[str, Any]:
    """Render an error as a serializable body for callers outside Python."""
    # Keep this shape stable; callers branch on error.kind.
    body: dict[str, Any] = {"detail": exc.message, "error": {"kind": exc.kind.value}}
    if exc.details:
        body["error"]["details"] = exc.details
    return body


_EXIT_CODES: dict[type[GitliteError], int] = {
    NotFoundError: 3,
    PreconditionError: 4,
    ValidationError: 5,
    ConflictError: 6,
    TransportError: 7,
    InternalError: 70,
}


def exit_code_for(exc: GitliteError) -> int:
    """Map an error to a process exit code by category."""
    for error_type, code in _EXIT_CODES.items():
        if isinstance(exc, error_type):
            return code
    return 1
