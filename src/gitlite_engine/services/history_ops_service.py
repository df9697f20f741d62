"""History mutations: reset, cherry-pick and revert.

Every operation here needs HEAD on a branch with at least one commit and
checks its guards before touching the repository. Cherry-pick and revert
run inside the backend's transient-state guard, so a conflict never leaves
merge markers or a half-applied index behind.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import git
from git.exc import GitCommandError

from gitlite_engine.domain.enums import ErrorKind, ResetMode
from gitlite_engine.domain.models import BranchHead, HeadState
from gitlite_engine.errors import (
    ConflictError,
    OperationError,
    PreconditionError,
    ValidationError,
)
from gitlite_engine.observability.diagnostics import DiagnosticsSink, NullSink, safe_notice
from gitlite_engine.services.backend import (
    GitBackend,
    checkout_error,
    command_output,
    is_checkout_conflict,
)

logger = logging.getLogger(__name__)


def revert_message(original: str) -> str:
    return f'Revert "{original.strip()}"'


class HistoryOpsService:
    """Operations that move the current branch or add commits to it."""

    def __init__(self, backend: GitBackend, sink: DiagnosticsSink | None = None) -> None:
        self.backend = backend
        self.sink = sink or NullSink()

    # ============================================================
    # Reset
    # ============================================================

    def reset(self, commit_id: str, mode: ResetMode | str) -> HeadState:
        """Move the current branch to ``commit_id``.

        soft: ref only. mixed: ref and index. hard: ref, index and tracked
        files in the working tree.

        Raises:
            ValidationError: INVALID_RESET_MODE, INVALID_REVISION.
            PreconditionError: DETACHED, HEAD_UNBORN.
            NotFoundError: COMMIT_NOT_FOUND.
        """
        try:
            reset_mode = ResetMode(mode)
        except ValueError as e:
            raise ValidationError(
                f"Invalid reset mode '{mode}'. Expected soft, mixed or hard",
                kind=ErrorKind.INVALID_RESET_MODE,
                details={"mode": str(mode)},
            ) from e

        head = self.backend.require_branch_head()
        commit = self.backend.resolve_commit(commit_id)

        try:
            self.backend.repo.git.reset(f"--{reset_mode.value}", "-q", commit.hexsha)
        except GitCommandError as e:
            raise OperationError(f"Failed to reset to {commit.hexsha}: {command_output(e)}") from e

        logger.info(f"Reset {head.branch} ({reset_mode.value}) to {commit.hexsha[:8]}")
        safe_notice(
            self.sink,
            "branch_reset",
            branch=head.branch,
            mode=reset_mode.value,
            old=head.target,
            new=commit.hexsha,
        )
        return self.backend.head_state()

    # ============================================================
    # Cherry-pick / revert
    # ============================================================

    def cherry_pick(self, commit_id: str) -> str:
        """Apply a single-parent commit on top of HEAD as a new commit.

        Returns:
            Id of the new commit.

        Raises:
            ValidationError: MERGE_COMMIT_UNSUPPORTED for merge commits.
            ConflictError: CONFLICT when the changes do not apply cleanly.
        """
        head, commit = self._prepare_replay(commit_id)
        message = GitBackend.to_commit(commit).message
        return self._replay(
            operation="cherry-pick",
            apply=self.backend.repo.git.cherry_pick,
            head=head,
            commit=commit,
            message=message,
            reason=f"cherry-pick: {message.splitlines()[0] if message else commit.hexsha}",
        )

    def revert(self, commit_id: str) -> str:
        """Commit the inverse of a single-parent commit on top of HEAD.

        Returns:
            Id of the new commit.

        Raises:
            ValidationError: MERGE_COMMIT_UNSUPPORTED for merge commits.
            ConflictError: CONFLICT when the inverse does not apply cleanly.
        """
        head, commit = self._prepare_replay(commit_id)
        message = revert_message(GitBackend.to_commit(commit).message)
        return self._replay(
            operation="revert",
            apply=self.backend.repo.git.revert,
            head=head,
            commit=commit,
            message=message,
            reason=f"revert: {message.splitlines()[0]}",
        )

    def _prepare_replay(self, commit_id: str) -> tuple[BranchHead, git.Commit]:
        head = self.backend.require_branch_head()
        commit = self.backend.resolve_commit(commit_id)
        if len(commit.parents) > 1:
            raise ValidationError(
                f"Commit {commit.hexsha[:8]} is a merge commit; only single-parent commits "
                "can be replayed",
                kind=ErrorKind.MERGE_COMMIT_UNSUPPORTED,
                details={"commit": commit.hexsha, "parents": len(commit.parents)},
            )
        if self.backend.has_staged_changes():
            raise PreconditionError(
                "Staged changes present; commit or unstage them first",
                kind=ErrorKind.DIRTY_WORKTREE,
            )
        return head, commit

    def _replay(
        self,
        *,
        operation: str,
        apply: Callable[..., str],
        head: BranchHead,
        commit: git.Commit,
        message: str,
        reason: str,
    ) -> str:
        with self.backend.transient_state(operation):
            try:
                apply("--no-commit", commit.hexsha)
            except GitCommandError as e:
                if not self.backend.has_conflicts():
                    if is_checkout_conflict(e):
                        raise checkout_error(e, f"Failed to {operation} {commit.hexsha[:8]}") from e
                    raise OperationError(
                        f"Failed to {operation} {commit.hexsha[:8]}: {command_output(e)}"
                    ) from e

            conflicts = self.backend.conflict_paths()
            if conflicts:
                logger.info(f"{operation} of {commit.hexsha[:8]} stopped on conflicts")
                raise ConflictError(
                    f"{operation.capitalize()} of {commit.hexsha[:8]} produced conflicts in "
                    f"{len(conflicts)} file(s): {', '.join(conflicts)}",
                    kind=ErrorKind.CONFLICT,
                    details={"commit": commit.hexsha, "paths": conflicts},
                )

            tree = self.backend.write_tree()
            sha = self.backend.create_commit(tree, [head.target], message)
            self.backend.update_ref("HEAD", sha, head.target, reason=reason)

        logger.info(f"{operation} of {commit.hexsha[:8]} created {sha[:8]} on {head.branch}")
        safe_notice(
            self.sink,
            f"{operation.replace('-', '_')}_created",
            source=commit.hexsha,
            commit=sha,
            branch=head.branch,
        )
        return sha
