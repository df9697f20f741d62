"""Worktree state: status classification, staging and committing."""

from __future__ import annotations

import logging

from git.exc import GitCommandError

from gitlite_engine.domain.enums import ErrorKind, FileStatusKind, HeadKind
from gitlite_engine.domain.models import FileStatus
from gitlite_engine.errors import OperationError, ValidationError
from gitlite_engine.observability.diagnostics import DiagnosticsSink, NullSink, safe_notice
from gitlite_engine.services.backend import GitBackend, StatusRecord, command_output

logger = logging.getLogger(__name__)

_INDEX_KINDS = {
    "A": FileStatusKind.ADDED,
    "C": FileStatusKind.ADDED,
    "D": FileStatusKind.DELETED,
    "R": FileStatusKind.RENAMED,
    "M": FileStatusKind.MODIFIED,
    "T": FileStatusKind.MODIFIED,
}

_WORKTREE_KINDS = {
    "?": FileStatusKind.ADDED,
    "A": FileStatusKind.ADDED,
    "D": FileStatusKind.DELETED,
    "R": FileStatusKind.RENAMED,
    "M": FileStatusKind.MODIFIED,
    "T": FileStatusKind.MODIFIED,
}


def build_commit_message(message: str, description: str | None = None) -> str:
    """Combine a summary line and an optional body."""
    if description and description.strip():
        return f"{message.strip()}\n\n{description.strip()}"
    return message


def classify(record: StatusRecord) -> list[FileStatus]:
    """Staged and/or unstaged entries for one porcelain record."""
    if record.is_unmerged:
        # Unresolved paths are reported once, as a pending worktree edit
        return [FileStatus(path=record.path, status=FileStatusKind.MODIFIED, is_staged=False)]

    entries: list[FileStatus] = []
    staged = _INDEX_KINDS.get(record.index)
    if staged is not None:
        entries.append(FileStatus(path=record.path, status=staged, is_staged=True))
    unstaged = _WORKTREE_KINDS.get(record.worktree)
    if unstaged is not None:
        entries.append(FileStatus(path=record.path, status=unstaged, is_staged=False))
    return entries


class WorktreeService:
    """Index and working tree operations for one repository."""

    def __init__(self, backend: GitBackend, sink: DiagnosticsSink | None = None) -> None:
        self.backend = backend
        self.sink = sink or NullSink()

    def get_status(self) -> list[FileStatus]:
        """Every pending change: untracked files included, ignored files excluded."""
        entries: list[FileStatus] = []
        for record in self.backend.status_records():
            entries.extend(classify(record))
        return entries

    def stage_files(self, paths: list[str]) -> None:
        """Overwrite the index entry of each path with the working tree version.

        Deleted files are staged as deletions. Staging twice is a no-op.
        """
        if not paths:
            return
        try:
            self.backend.repo.git.add("--all", "--", *paths)
        except GitCommandError as e:
            raise OperationError(f"Failed to stage files: {command_output(e)}") from e
        logger.debug(f"Staged {len(paths)} path(s)")

    def unstage_files(self, paths: list[str]) -> None:
        """Restore index entries from HEAD, dropping paths HEAD does not have.

        On an unborn HEAD every path is simply removed from the index.
        """
        if not paths:
            return

        try:
            if self.backend.head_state().kind == HeadKind.UNBORN:
                self.backend.repo.git.rm("--cached", "-q", "-r", "--ignore-unmatch", "--", *paths)
            else:
                # Entries HEAD lacks are dropped from the index
                self.backend.repo.git.reset("-q", "HEAD", "--", *paths)
        except GitCommandError as e:
            raise OperationError(f"Failed to unstage files: {command_output(e)}") from e
        logger.debug(f"Unstaged {len(paths)} path(s)")

    def commit(self, message: str, description: str | None = None) -> str:
        """Commit the index on top of HEAD.

        Args:
            message: Summary line. Must not be blank.
            description: Optional body, appended after a blank line.

        Returns:
            Id of the new commit.

        Raises:
            ValidationError: EMPTY_MESSAGE or NOTHING_STAGED.
        """
        if not message or not message.strip():
            raise ValidationError("Commit message cannot be empty", kind=ErrorKind.EMPTY_MESSAGE)
        if not self.backend.has_staged_changes():
            raise ValidationError("No changes staged for commit", kind=ErrorKind.NOTHING_STAGED)

        head = self.backend.head_state()
        parents = [head.target] if head.target else []
        full_message = build_commit_message(message, description)

        tree = self.backend.write_tree()
        sha = self.backend.create_commit(tree, parents, full_message)

        summary = full_message.strip().splitlines()[0]
        reason = f"commit: {summary}" if parents else f"commit (initial): {summary}"
        self.backend.update_ref("HEAD", sha, head.target, reason=reason)

        logger.info(f"Created commit {sha[:8]} on {head.branch or 'detached HEAD'}")
        safe_notice(self.sink, "commit_created", commit=sha, branch=head.branch)
        return sha
