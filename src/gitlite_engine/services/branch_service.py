"""Branch and ref management."""

from __future__ import annotations

import logging

import git
from git.exc import GitCommandError

from gitlite_engine.domain.enums import ErrorKind, HeadKind
from gitlite_engine.domain.models import Branch, HeadState
from gitlite_engine.errors import (
    NotFoundError,
    OperationError,
    PreconditionError,
    ValidationError,
)
from gitlite_engine.observability.diagnostics import DiagnosticsSink, NullSink, safe_notice
from gitlite_engine.services.backend import GitBackend, command_output

logger = logging.getLogger(__name__)


def _require_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Branch name cannot be empty", kind=ErrorKind.EMPTY_NAME)
    return cleaned


class BranchService:
    """List, create, delete and check out branches."""

    def __init__(self, backend: GitBackend, sink: DiagnosticsSink | None = None) -> None:
        self.backend = backend
        self.sink = sink or NullSink()

    # ============================================================
    # HEAD
    # ============================================================

    def head(self) -> HeadState:
        return self.backend.head_state()

    def current_branch(self) -> str | None:
        """Checked-out branch name, None when HEAD is detached."""
        state = self.backend.head_state()
        return None if state.kind == HeadKind.DETACHED else state.branch

    # ============================================================
    # Listing
    # ============================================================

    def list_branches(self) -> list[Branch]:
        """Local branches followed by remote-tracking branches."""
        head = self.backend.head_state()
        current = head.branch if head.kind == HeadKind.BRANCH else None

        branches = [
            Branch(
                name=ref.name,
                is_current=ref.name == current,
                is_remote=False,
                target_hash=ref.commit.hexsha,
            )
            for ref in self.backend.repo.heads
        ]

        for ref in git.RemoteReference.iter_items(self.backend.repo):
            # origin/HEAD is a symbolic alias of another remote branch
            if ref.name.endswith("/HEAD"):
                continue
            branches.append(
                Branch(
                    name=ref.name,
                    is_current=False,
                    is_remote=True,
                    target_hash=ref.commit.hexsha,
                )
            )
        return branches

    def local_branch_exists(self, name: str) -> bool:
        return self.backend.ref_target(f"refs/heads/{name}") is not None

    # ============================================================
    # Create / delete
    # ============================================================

    def create_branch(self, name: str) -> Branch:
        """Create a local branch at HEAD's commit. HEAD stays where it is."""
        cleaned = _require_name(name)
        head = self.backend.head_state()
        if head.target is None:
            raise PreconditionError(
                "Cannot create a branch before the first commit", kind=ErrorKind.HEAD_UNBORN
            )
        return self._create(cleaned, head.target)

    def create_branch_from_commit(self, name: str, commit_id: str) -> Branch:
        """Create a local branch pointing at an explicit commit."""
        cleaned = _require_name(name)
        commit = self.backend.resolve_commit(commit_id)
        return self._create(cleaned, commit.hexsha)

    def _create(self, name: str, target: str) -> Branch:
        if self.local_branch_exists(name):
            raise ValidationError(
                f"Branch '{name}' already exists",
                kind=ErrorKind.BRANCH_EXISTS,
                details={"branch": name},
            )
        try:
            self.backend.repo.git.branch(name, target)
        except GitCommandError as e:
            raise OperationError(f"Failed to create branch '{name}': {command_output(e)}") from e

        logger.info(f"Created branch {name} at {target[:8]}")
        safe_notice(self.sink, "branch_created", branch=name, target=target)
        return Branch(name=name, is_current=False, is_remote=False, target_hash=target)

    def delete_branch(self, name: str) -> None:
        """Delete a local branch, merged or not.

        Raises:
            ValidationError: DELETE_CURRENT_BRANCH when ``name`` is checked out.
            NotFoundError: If the branch does not exist.
        """
        cleaned = _require_name(name)
        head = self.backend.head_state()
        if head.kind != HeadKind.DETACHED and head.branch == cleaned:
            raise ValidationError(
                f"Cannot delete the currently checked-out branch '{cleaned}'",
                kind=ErrorKind.DELETE_CURRENT_BRANCH,
                details={"branch": cleaned},
            )
        if not self.local_branch_exists(cleaned):
            raise NotFoundError(
                f"Branch '{cleaned}' not found",
                kind=ErrorKind.REFERENCE_NOT_FOUND,
                details={"branch": cleaned},
            )
        try:
            self.backend.repo.git.branch("-D", cleaned)
        except GitCommandError as e:
            raise OperationError(f"Failed to delete branch '{cleaned}': {command_output(e)}") from e

        logger.info(f"Deleted branch {cleaned}")
        safe_notice(self.sink, "branch_deleted", branch=cleaned)

    # ============================================================
    # Checkout
    # ============================================================

    def checkout_branch(self, name: str) -> HeadState:
        """Safe checkout of a local branch; HEAD then points at the branch ref.

        Raises:
            NotFoundError: If the branch does not exist.
            PreconditionError: CHECKOUT_CONFLICT when local edits would be overwritten.
        """
        cleaned = _require_name(name)
        if not self.local_branch_exists(cleaned):
            raise NotFoundError(
                f"Branch '{cleaned}' not found",
                kind=ErrorKind.REFERENCE_NOT_FOUND,
                details={"branch": cleaned},
            )
        self.backend.checkout_branch(cleaned)
        logger.info(f"Checked out branch {cleaned}")
        return self.backend.head_state()

    def checkout_commit(self, commit_id: str) -> HeadState:
        """Safe checkout of a commit, leaving HEAD detached at it."""
        commit = self.backend.resolve_commit(commit_id)
        self.backend.checkout_detached(commit.hexsha)
        logger.info(f"Checked out {commit.hexsha[:8]} (detached HEAD)")
        return self.backend.head_state()
