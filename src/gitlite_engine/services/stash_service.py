"""Stash stack management.

Indices are positional (0 is the most recent entry) and shift after every
drop, so apply and drop re-check the index against the current stack.
"""

from __future__ import annotations

import logging

from git.exc import GitCommandError

from gitlite_engine.config import Settings
from gitlite_engine.domain.enums import ErrorKind, HeadKind
from gitlite_engine.domain.models import StashEntry
from gitlite_engine.errors import (
    ConflictError,
    OperationError,
    PreconditionError,
    ValidationError,
)
from gitlite_engine.observability.diagnostics import DiagnosticsSink, NullSink, safe_notice
from gitlite_engine.services.backend import GitBackend, command_output, is_checkout_conflict

logger = logging.getLogger(__name__)

_APPLY_CONFLICT_PATTERNS = ("conflict", "already exists", "could not restore untracked files")


class StashService:
    """Save, list, apply and drop stash entries."""

    def __init__(
        self,
        backend: GitBackend,
        sink: DiagnosticsSink | None = None,
        config: Settings | None = None,
    ) -> None:
        self.backend = backend
        self.sink = sink or NullSink()
        self.settings = config or backend.settings

    def save(self, message: str | None = None) -> StashEntry:
        """Stash tracked and untracked changes, leaving the worktree at HEAD.

        Raises:
            ValidationError: EMPTY_STASH when there is nothing to stash.
            PreconditionError: HEAD_UNBORN before the first commit.
        """
        if self.backend.is_clean():
            raise ValidationError("No local changes to stash", kind=ErrorKind.EMPTY_STASH)
        if self.backend.head_state().kind == HeadKind.UNBORN:
            raise PreconditionError(
                "Cannot stash before the first commit", kind=ErrorKind.HEAD_UNBORN
            )

        text = (message or "").strip() or self.settings.stash_default_message
        try:
            output = self.backend.repo.git.stash("push", "--include-untracked", "-m", text)
        except GitCommandError as e:
            raise OperationError(f"Failed to stash changes: {command_output(e)}") from e
        if "no local changes to save" in output.lower():
            raise ValidationError("No local changes to stash", kind=ErrorKind.EMPTY_STASH)

        entry = self.list_entries()[0]
        logger.info(f"Saved stash: {entry.message}")
        safe_notice(self.sink, "stash_saved", message=entry.message)
        return entry

    def list_entries(self) -> list[StashEntry]:
        """Entries in stack order, most recent first."""
        return [
            StashEntry(index=index, message=raw.message, author=raw.author, date=raw.date)
            for index, raw in enumerate(self.backend.stash_entries())
        ]

    def _validate_index(self, index: int) -> None:
        count = len(self.backend.stash_entries())
        if index < 0 or index >= count:
            raise ValidationError(
                f"Stash index {index} does not exist ({count} entries)",
                kind=ErrorKind.INVALID_INDEX,
                details={"index": index, "count": count},
            )

    def apply(self, index: int) -> None:
        """Re-apply an entry to the worktree. The entry stays on the stack.

        Raises:
            ValidationError: INVALID_INDEX.
            ConflictError: APPLY_CONFLICT when the entry clashes with the worktree.
        """
        self._validate_index(index)
        index_was_clean = not self.backend.has_staged_changes()

        try:
            self.backend.repo.git.stash("apply", f"stash@{{{index}}}")
        except GitCommandError as e:
            text = command_output(e)
            conflicted = self.backend.has_conflicts()
            if conflicted and index_was_clean:
                # Put back the index and files the partial apply touched
                self.backend.roll_back("stash apply")
            if conflicted or is_checkout_conflict(e) or any(
                pattern in text.lower() for pattern in _APPLY_CONFLICT_PATTERNS
            ):
                raise ConflictError(
                    f"Applying stash@{{{index}}} conflicts with the working tree",
                    kind=ErrorKind.APPLY_CONFLICT,
                    details={"index": index, "output": text},
                ) from e
            raise OperationError(f"Failed to apply stash@{{{index}}}: {text}") from e

        logger.info(f"Applied stash@{{{index}}}")
        safe_notice(self.sink, "stash_applied", index=index)

    def drop(self, index: int) -> None:
        """Remove an entry; later entries shift down by one.

        Raises:
            ValidationError: INVALID_INDEX.
        """
        self._validate_index(index)
        try:
            self.backend.repo.git.stash("drop", "-q", f"stash@{{{index}}}")
        except GitCommandError as e:
            raise OperationError(f"Failed to drop stash@{{{index}}}: {command_output(e)}") from e
        logger.info(f"Dropped stash@{{{index}}}")
        safe_notice(self.sink, "stash_dropped", index=index)
