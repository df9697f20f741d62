"""Backend adapter over GitPython.

Thin façade over the primitives the engine needs from git: open a
repository, resolve revisions, read HEAD, read/write refs and the index,
create commits, check out trees, answer graph queries, stash, and run
transport commands with a per-exchange authentication setup.

GitPython exceptions stop here. Everything raised out of this module is a
``GitliteError`` or a ``GitCommandError`` that the calling service
translates with the helpers below.
"""

from __future__ import annotations

import logging
import re
import shutil
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import git
from git.exc import GitCommandError, GitCommandNotFound, InvalidGitRepositoryError, NoSuchPathError

from gitlite_engine.config import Settings
from gitlite_engine.config import settings as default_settings
from gitlite_engine.domain.enums import ErrorKind, HeadKind
from gitlite_engine.domain.models import BranchHead, Commit, HeadState, TransportAuth
from gitlite_engine.errors import (
    GitliteError,
    NotFoundError,
    OperationError,
    PreconditionError,
    ValidationError,
)
from gitlite_engine.observability.metrics import OPERATION_DURATION, OPERATIONS_TOTAL
from gitlite_engine.services.credentials import exchange_env

logger = logging.getLogger(__name__)

_HEX_REVISION = re.compile(r"^[0-9a-fA-F]{4,64}$")
_OUTPUT_WRAPPER = re.compile(r"^\s*(?:stderr|stdout): '(.*)'\s*$", re.DOTALL)

# Markers an interrupted merge, cherry-pick or revert leaves in the git dir
_STATE_FILES = (
    "MERGE_HEAD",
    "MERGE_MSG",
    "MERGE_MODE",
    "AUTO_MERGE",
    "CHERRY_PICK_HEAD",
    "REVERT_HEAD",
)
_STATE_DIRS = ("sequencer",)

_CHECKOUT_CONFLICT_PATTERNS = (
    "would be overwritten",
    "not uptodate",
    "untracked working tree files would be",
    "please commit your changes or stash them",
)


def command_output(exc: GitCommandError) -> str:
    """Human-readable stderr/stdout of a failed git command."""
    parts: list[str] = []
    for raw in (exc.stderr, exc.stdout):
        text = str(raw or "")
        match = _OUTPUT_WRAPPER.match(text)
        text = (match.group(1) if match else text).strip()
        if text:
            parts.append(text)
    return "\n".join(parts) or str(exc)


def is_checkout_conflict(exc: GitCommandError) -> bool:
    text = command_output(exc).lower()
    return any(pattern in text for pattern in _CHECKOUT_CONFLICT_PATTERNS)


def checkout_error(exc: GitCommandError, action: str) -> GitliteError:
    """Translate a refused or failed checkout."""
    if is_checkout_conflict(exc):
        return PreconditionError(
            f"{action}: local changes would be overwritten",
            kind=ErrorKind.CHECKOUT_CONFLICT,
            details={"output": command_output(exc)},
        )
    return OperationError(f"{action}: {command_output(exc)}")


@dataclass(frozen=True, slots=True)
class StatusRecord:
    """One ``git status --porcelain`` record (X = index, Y = worktree)."""

    index: str
    worktree: str
    path: str

    @property
    def is_unmerged(self) -> bool:
        return "U" in (self.index, self.worktree) or (self.index, self.worktree) in (
            ("A", "A"),
            ("D", "D"),
        )

    @property
    def is_untracked(self) -> bool:
        return self.index == "?"


@dataclass(frozen=True, slots=True)
class RawStashEntry:
    message: str
    author: str
    date: int


class GitBackend:
    """GitPython-backed primitives for one repository.

    Not thread-safe: callers serialize operations per repository.
    """

    def __init__(self, path: str | Path, config: Settings | None = None) -> None:
        """Open a repository.

        Args:
            path: Repository root (worktree root or bare repository).
            config: Engine settings. Defaults to the module-level settings.

        Raises:
            NotFoundError: If path is not a git repository.
            GitliteError: If the git executable cannot be found.
        """
        self.settings = config or default_settings
        self.path = Path(path)

        if self.settings.git_executable:
            git.refresh(self.settings.git_executable)

        try:
            self.repo = git.Repo(self.path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise NotFoundError(
                f"Not a git repository: {self.path}",
                kind=ErrorKind.REPOSITORY_NOT_FOUND,
                details={"path": str(self.path)},
            ) from e
        except GitCommandNotFound as e:
            raise GitliteError(
                "Git CLI not found. Please install git.", kind=ErrorKind.GIT_NOT_FOUND
            ) from e

    def close(self) -> None:
        """Release persistent git processes held by GitPython."""
        self.repo.close()

    @property
    def git_dir(self) -> Path:
        return Path(self.repo.git_dir)

    # ============================================================
    # Metrics
    # ============================================================

    @contextmanager
    def track(self, operation: str) -> Iterator[None]:
        """Record duration and outcome of one engine operation."""
        started = time.perf_counter()
        outcome = "success"
        try:
            yield
        except GitliteError as e:
            outcome = e.kind.value
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            OPERATION_DURATION.labels(operation=operation).observe(time.perf_counter() - started)
            OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()

    # ============================================================
    # Revisions
    # ============================================================

    def rev_parse(self, spec: str) -> str | None:
        """Resolve a revision expression to a full object id, or None."""
        if not spec or spec.startswith("-"):
            return None
        try:
            sha = self.repo.git.rev_parse("--verify", "--quiet", spec).strip()
        except GitCommandError:
            return None
        return sha or None

    def resolve_commit(self, revision: str) -> git.Commit:
        """Look up a commit by hex id.

        Raises:
            ValidationError: If the id is not a hex object id.
            NotFoundError: If no commit has this id.
        """
        rev = (revision or "").strip()
        if not _HEX_REVISION.match(rev):
            raise ValidationError(
                f"Invalid commit hash '{revision}'",
                kind=ErrorKind.INVALID_REVISION,
                details={"revision": revision},
            )
        sha = self.rev_parse(f"{rev}^{{commit}}")
        if sha is None:
            raise NotFoundError(
                f"Commit '{revision}' not found",
                kind=ErrorKind.COMMIT_NOT_FOUND,
                details={"revision": revision},
            )
        return self.repo.commit(sha)

    def resolve_reference(self, reference: str) -> str:
        """Resolve a ref name (full or short) to the commit it points at.

        Raises:
            NotFoundError: If the reference does not resolve to a commit.
        """
        sha = self.rev_parse(f"{reference}^{{commit}}") if reference else None
        if sha is None:
            raise NotFoundError(
                f"Reference '{reference}' not found",
                kind=ErrorKind.REFERENCE_NOT_FOUND,
                details={"reference": reference},
            )
        return sha

    def ref_target(self, ref_name: str) -> str | None:
        """Commit a fully qualified ref points at, or None if the ref is missing."""
        return self.rev_parse(f"{ref_name}^{{commit}}")

    @staticmethod
    def to_commit(commit: git.Commit) -> Commit:
        message = commit.message
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        author = commit.author.name or commit.author.email or "Unknown"
        return Commit(
            hash=commit.hexsha,
            author=author,
            message=message.strip(),
            date=int(commit.committed_date),
            parents=[parent.hexsha for parent in commit.parents],
        )

    # ============================================================
    # HEAD
    # ============================================================

    def head_state(self) -> HeadState:
        head = self.repo.head
        if head.is_detached:
            return HeadState(kind=HeadKind.DETACHED, target=head.commit.hexsha)

        reference = head.reference
        if not head.is_valid():
            return HeadState(kind=HeadKind.UNBORN, branch=reference.name, ref_name=reference.path)

        return HeadState(
            kind=HeadKind.BRANCH,
            branch=reference.name,
            ref_name=reference.path,
            target=reference.commit.hexsha,
        )

    def require_branch_head(self) -> BranchHead:
        """HEAD must be a branch with at least one commit.

        Raises:
            PreconditionError: DETACHED or HEAD_UNBORN.
        """
        state = self.head_state()
        if state.kind == HeadKind.DETACHED:
            raise PreconditionError(
                "HEAD is detached; check out a local branch first", kind=ErrorKind.DETACHED
            )
        if state.kind == HeadKind.UNBORN:
            raise PreconditionError(
                "Repository has no commits yet",
                kind=ErrorKind.HEAD_UNBORN,
                details={"branch": state.branch},
            )
        reference = self.repo.head.reference
        return BranchHead(
            branch=reference.name, ref_name=reference.path, target=reference.commit.hexsha
        )

    # ============================================================
    # Graph queries
    # ============================================================

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if ``ancestor`` is reachable from ``descendant`` (or equal)."""
        try:
            self.repo.git.merge_base("--is-ancestor", ancestor, descendant)
            return True
        except GitCommandError as e:
            if e.status == 1:
                return False
            raise

    def merge_base(self, first: str, second: str) -> str | None:
        try:
            output = self.repo.git.merge_base(first, second).strip()
        except GitCommandError as e:
            if e.status == 1:
                return None
            raise
        return output.splitlines()[0].strip() if output else None

    def ahead_behind(self, local: str, upstream: str) -> tuple[int, int]:
        """Commits only on ``local`` and commits only on ``upstream``."""
        output = self.repo.git.rev_list("--left-right", "--count", f"{local}...{upstream}")
        ahead, behind = output.split()
        return int(ahead), int(behind)

    def rev_list(self, revisions: list[str], limit: int) -> list[str]:
        """Commit ids reachable from ``revisions``, children before parents, newest first."""
        if limit <= 0:
            return []
        output = self.repo.git.rev_list("--date-order", f"--max-count={limit}", *revisions, "--")
        return [line.strip() for line in output.splitlines() if line.strip()]

    # ============================================================
    # Working tree and index
    # ============================================================

    def status_records(self) -> list[StatusRecord]:
        """Pending changes: untracked files included, ignored files excluded."""
        output = self.repo.git.status(
            "--porcelain=v1", "-z", "--untracked-files=all", "--no-renames"
        )
        records: list[StatusRecord] = []
        tokens = iter(output.split("\0"))
        for token in tokens:
            if len(token) < 4:
                continue
            x, y, path = token[0], token[1], token[3:]
            if x in "RC":
                # Rename/copy records carry the source path as the next field
                next(tokens, None)
            if x == "!":
                continue
            records.append(StatusRecord(index=x, worktree=y, path=path))
        return records

    def has_staged_changes(self) -> bool:
        return any(
            r.index not in (" ", "?") and not r.is_unmerged for r in self.status_records()
        )

    def is_clean(self) -> bool:
        return not self.status_records()

    def conflict_paths(self) -> list[str]:
        """Paths with unmerged index entries."""
        output = self.repo.git.ls_files("-u", "-z")
        # Each entry reads "<mode> <object> <stage>\t<path>", one per stage
        paths = {entry.split("\t", 1)[1] for entry in output.split("\0") if "\t" in entry}
        return sorted(paths)

    def has_conflicts(self) -> bool:
        return bool(self.conflict_paths())

    def write_tree(self) -> str:
        return self.repo.git.write_tree().strip()

    def identity_env(self) -> dict[str, str]:
        """Author/committer override from settings (empty: use git config)."""
        env: dict[str, str] = {}
        if self.settings.author_name:
            env["GIT_AUTHOR_NAME"] = self.settings.author_name
            env["GIT_COMMITTER_NAME"] = self.settings.author_name
        if self.settings.author_email:
            env["GIT_AUTHOR_EMAIL"] = self.settings.author_email
            env["GIT_COMMITTER_EMAIL"] = self.settings.author_email
        return env

    def create_commit(self, tree: str, parents: list[str], message: str) -> str:
        """Write a commit object without moving any ref."""
        args: list[str] = [tree]
        for parent in parents:
            args.extend(["-p", parent])
        args.extend(["-m", message])
        try:
            return self.repo.git.commit_tree(*args, env=self.identity_env()).strip()
        except GitCommandError as e:
            raise OperationError(f"Failed to create commit: {command_output(e)}") from e

    def update_ref(
        self, ref_name: str, new: str, expected_old: str | None = None, *, reason: str
    ) -> None:
        """Point ``ref_name`` at ``new``, optionally only if it still points at ``expected_old``."""
        args = ["-m", reason, ref_name, new]
        if expected_old:
            args.append(expected_old)
        try:
            self.repo.git.update_ref(*args)
        except GitCommandError as e:
            raise OperationError(f"Failed to update {ref_name}: {command_output(e)}") from e

    # ============================================================
    # Checkout
    # ============================================================

    def checkout_branch(self, name: str) -> None:
        """Safe checkout of a local branch, then attach HEAD to it."""
        try:
            self.repo.git.checkout(name, "--")
        except GitCommandError as e:
            raise checkout_error(e, f"Failed to checkout branch '{name}'") from e

    def checkout_detached(self, sha: str) -> None:
        """Safe checkout of a commit with HEAD detached at it."""
        try:
            self.repo.git.checkout("--detach", sha)
        except GitCommandError as e:
            raise checkout_error(e, f"Failed to checkout commit '{sha}'") from e

    def safe_switch_tree(self, old: str, new: str) -> None:
        """Move index and worktree from ``old`` to ``new`` without touching local edits.

        Refuses (CHECKOUT_CONFLICT) when a locally modified file would change.
        """
        try:
            self.repo.git.read_tree("-m", "-u", old, new)
        except GitCommandError as e:
            raise checkout_error(e, "Failed to update working tree") from e

    def force_checkout_head(self) -> None:
        """Overwrite index and tracked files with HEAD. Untracked files stay."""
        try:
            self.repo.git.reset("--hard", "-q")
        except GitCommandError as e:
            raise OperationError(f"Failed to checkout HEAD: {command_output(e)}") from e

    # ============================================================
    # Transient merge state
    # ============================================================

    def state_markers(self) -> list[str]:
        """Names of in-progress markers currently present in the git dir."""
        present = [name for name in _STATE_FILES if (self.git_dir / name).exists()]
        present.extend(name for name in _STATE_DIRS if (self.git_dir / name).is_dir())
        return present

    def cleanup_state(self) -> None:
        """Forget any in-progress merge, cherry-pick or revert."""
        for name in _STATE_FILES:
            (self.git_dir / name).unlink(missing_ok=True)
        for name in _STATE_DIRS:
            state_dir = self.git_dir / name
            if state_dir.is_dir():
                shutil.rmtree(state_dir)

    @contextmanager
    def transient_state(self, operation: str, *, restore: bool = True) -> Iterator[None]:
        """Scope an operation that may leave merge markers or a conflicted index.

        On every exit path the markers are removed. On failure the index and
        the files touched by the operation are also rolled back to HEAD
        (``reset --merge``), keeping unrelated local edits.
        """
        try:
            yield
        except BaseException:
            if restore:
                self.roll_back(operation)
            raise
        finally:
            self.cleanup_state()

    def roll_back(self, operation: str) -> None:
        """Reset index and the files an interrupted operation touched back to HEAD."""
        try:
            self.repo.git.reset("--merge", "-q")
        except GitCommandError as e:
            # The operation's own error is the one callers need to see
            logger.warning(f"Failed to roll back after {operation}: {command_output(e)}")

    # ============================================================
    # Remotes and transport
    # ============================================================

    def remote(self, name: str) -> git.Remote:
        try:
            return self.repo.remote(name)
        except ValueError as e:
            raise NotFoundError(
                f"Remote '{name}' not found",
                kind=ErrorKind.REMOTE_NOT_FOUND,
                details={"remote": name},
            ) from e

    def remote_url(self, name: str) -> str | None:
        try:
            url = self.repo.git.config("--get", f"remote.{name}.url").strip()
        except GitCommandError:
            return None
        return url or None

    @contextmanager
    def authenticated(self, remote_name: str, auth: TransportAuth) -> Iterator[git.Remote]:
        """Run transport commands against ``remote_name`` with ``auth`` applied.

        Credentials live only in the environment of the git processes started
        inside the block; the remote URL and the repository config stay as
        they are.
        """
        remote = self.remote(remote_name)
        with self.repo.git.custom_environment(**exchange_env(auth)):
            yield remote

    # ============================================================
    # Stash
    # ============================================================

    def stash_entries(self) -> list[RawStashEntry]:
        output = self.repo.git.stash("list", "--format=%gs%x1f%an%x1f%ct")
        entries: list[RawStashEntry] = []
        for line in output.splitlines():
            if not line:
                continue
            message, _, rest = line.partition("\x1f")
            author, _, date = rest.partition("\x1f")
            entries.append(
                RawStashEntry(
                    message=message,
                    author=author or "unknown",
                    date=int(date) if date.strip().isdigit() else 0,
                )
            )
        return entries
