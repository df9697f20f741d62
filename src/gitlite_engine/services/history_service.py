"""History reader: commit log traversal and per-commit diffs."""

from __future__ import annotations

import logging

from git.exc import GitCommandError

from gitlite_engine.config import Settings
from gitlite_engine.domain.enums import HeadKind
from gitlite_engine.domain.models import Commit, FileDiff
from gitlite_engine.errors import OperationError
from gitlite_engine.services.backend import GitBackend, command_output
from gitlite_engine.services.diff_parser import parse_unified_diff

logger = logging.getLogger(__name__)

# Reference sentinel that walks every local branch instead of one ref
ALL_BRANCHES = "all"


class HistoryService:
    """Read-only views of the commit graph."""

    def __init__(self, backend: GitBackend, config: Settings | None = None) -> None:
        self.backend = backend
        self.settings = config or backend.settings

    def list_commits(self, limit: int | None = None, reference: str | None = None) -> list[Commit]:
        """List commits reachable from a reference.

        Commits are ordered so that no commit precedes one of its ancestors,
        ties broken by commit time, most recent first.

        Args:
            limit: Maximum number of commits. Defaults to ``default_log_limit``.
            reference: Ref name, ``ALL_BRANCHES``, or None for HEAD.

        Returns:
            At most ``limit`` commits.

        Raises:
            NotFoundError: If a named reference does not resolve.
        """
        if limit is None:
            limit = self.settings.default_log_limit

        if reference is None:
            head = self.backend.head_state()
            if head.kind == HeadKind.UNBORN:
                return []
            revisions = [head.target or "HEAD"]
        elif reference == ALL_BRANCHES:
            revisions = [branch.commit.hexsha for branch in self.backend.repo.heads]
            if not revisions:
                return []
        else:
            revisions = [self.backend.resolve_reference(reference)]

        try:
            shas = self.backend.rev_list(revisions, limit)
        except GitCommandError as e:
            raise OperationError(f"Failed to walk history: {command_output(e)}") from e

        commits = [GitBackend.to_commit(self.backend.repo.commit(sha)) for sha in shas]
        logger.debug(f"Listed {len(commits)} commits from {reference or 'HEAD'}")
        return commits

    def diff_commit(self, commit_id: str) -> list[FileDiff]:
        """Diff a commit against its first parent (the empty tree for a root commit).

        Raises:
            ValidationError: If ``commit_id`` is malformed.
            NotFoundError: If the commit does not exist.
        """
        commit = self.backend.resolve_commit(commit_id)
        if commit.parents:
            revisions = [commit.parents[0].hexsha, commit.hexsha]
        else:
            revisions = ["--root", commit.hexsha]

        try:
            output = self.backend.repo.git.diff_tree(
                "-p",
                "-r",
                "--no-commit-id",
                "--no-renames",
                "--no-color",
                "--no-ext-diff",
                f"-U{self.settings.diff_context_lines}",
                *revisions,
            )
        except GitCommandError as e:
            raise OperationError(f"Failed to diff {commit.hexsha}: {command_output(e)}") from e

        return parse_unified_diff(output)
