"""Merge engine: analysis and execution of up-to-date, fast-forward and three-way merges."""

from __future__ import annotations

import logging

from git.exc import GitCommandError

from gitlite_engine.domain.enums import ErrorKind, MergeAnalysis
from gitlite_engine.domain.models import BranchHead, MergeResult
from gitlite_engine.errors import (
    InternalError,
    MergeConflictError,
    NotFoundError,
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


def merge_message(target: str) -> str:
    return f"Merge branch '{target}'"


class MergeService:
    """Merge a local or remote-tracking branch into the current branch."""

    def __init__(self, backend: GitBackend, sink: DiagnosticsSink | None = None) -> None:
        self.backend = backend
        self.sink = sink or NullSink()

    def resolve_target(self, target: str) -> str:
        """Commit id of a merge target: local branch, remote-tracking branch or full ref."""
        name = (target or "").strip()
        if not name:
            raise ValidationError("Merge target cannot be empty", kind=ErrorKind.EMPTY_NAME)

        candidates = [f"refs/heads/{name}", f"refs/remotes/{name}"]
        if name.startswith("refs/"):
            candidates.insert(0, name)
        for ref_name in candidates:
            sha = self.backend.ref_target(ref_name)
            if sha is not None:
                return sha

        raise NotFoundError(
            f"Branch '{name}' not found",
            kind=ErrorKind.REFERENCE_NOT_FOUND,
            details={"branch": name},
        )

    def analyze(self, head_oid: str, target_oid: str) -> MergeAnalysis:
        """Classify how ``target_oid`` relates to ``head_oid``."""
        if head_oid == target_oid or self.backend.is_ancestor(target_oid, head_oid):
            return MergeAnalysis.UP_TO_DATE
        if self.backend.is_ancestor(head_oid, target_oid):
            return MergeAnalysis.FAST_FORWARD
        if self.backend.merge_base(head_oid, target_oid) is not None:
            return MergeAnalysis.NORMAL
        return MergeAnalysis.NONE

    def merge(self, target: str) -> MergeResult:
        """Merge ``target`` into the current branch.

        Up-to-date is a no-op. Fast-forward moves the branch and force-checks
        out the new tip without creating a commit. Otherwise a three-way
        merge creates a commit with parents (HEAD, target).

        Raises:
            PreconditionError: DETACHED, HEAD_UNBORN, DIRTY_WORKTREE.
            NotFoundError: If the target branch does not exist.
            MergeConflictError: When the three-way merge conflicts.
            InternalError: When the histories share no merge base.
        """
        head = self.backend.require_branch_head()
        target_oid = self.resolve_target(target)

        if any(not r.is_untracked for r in self.backend.status_records()):
            raise PreconditionError(
                "Uncommitted changes present; commit or stash them before merging",
                kind=ErrorKind.DIRTY_WORKTREE,
            )

        analysis = self.analyze(head.target, target_oid)
        logger.info(f"Merge analysis for {target} into {head.branch}: {analysis.value}")

        if analysis == MergeAnalysis.UP_TO_DATE:
            result = MergeResult(analysis=analysis, head=head.target)
        elif analysis == MergeAnalysis.FAST_FORWARD:
            result = self._fast_forward(head, target, target_oid)
        elif analysis == MergeAnalysis.NORMAL:
            result = self._three_way(head, target, target_oid)
        else:
            raise InternalError(
                f"Unhandled merge state merging '{target}': histories share no common ancestor",
                kind=ErrorKind.UNHANDLED_MERGE_STATE,
                details={"head": head.target, "target": target_oid},
            )

        safe_notice(
            self.sink,
            "merge_completed",
            target=target,
            analysis=result.analysis.value,
            head=result.head,
        )
        return result

    def _fast_forward(self, head: BranchHead, target: str, target_oid: str) -> MergeResult:
        self.backend.update_ref(
            head.ref_name, target_oid, head.target, reason=f"merge {target}: Fast-forward"
        )
        self.backend.force_checkout_head()
        return MergeResult(analysis=MergeAnalysis.FAST_FORWARD, head=target_oid)

    def _three_way(self, head: BranchHead, target: str, target_oid: str) -> MergeResult:
        with self.backend.transient_state("merge"):
            try:
                self.backend.repo.git.merge("--no-commit", "--no-ff", "--no-edit", target_oid)
            except GitCommandError as e:
                if not self.backend.has_conflicts():
                    if is_checkout_conflict(e):
                        raise checkout_error(e, f"Failed to merge '{target}'") from e
                    raise OperationError(f"Failed to merge '{target}': {command_output(e)}") from e

            conflicts = self.backend.conflict_paths()
            if conflicts:
                logger.info(f"Merge of {target} stopped on {len(conflicts)} conflicting file(s)")
                raise MergeConflictError(conflicts)

            tree = self.backend.write_tree()
            sha = self.backend.create_commit(tree, [head.target, target_oid], merge_message(target))
            self.backend.update_ref("HEAD", sha, head.target, reason=f"merge {target}")

        logger.info(f"Merged {target} into {head.branch} as {sha[:8]}")
        return MergeResult(analysis=MergeAnalysis.NORMAL, head=sha, merge_commit=sha)
