"""Engine façades.

``RepositoryEngine`` runs every operation synchronously on the calling
thread. It does no locking of its own: callers must not run two operations
against the same repository at the same time.

``AsyncRepositoryEngine`` offloads each call to a worker thread and
serializes calls per repository path, so it is safe to share across tasks.
"""

from __future__ import annotations

import asyncio
import functools
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import cached_property
from pathlib import Path
from typing import Any, TypeVar

from gitlite_engine.config import Settings
from gitlite_engine.config import settings as default_settings
from gitlite_engine.domain.enums import ResetMode
from gitlite_engine.domain.models import (
    Branch,
    Commit,
    Credentials,
    FileDiff,
    FileStatus,
    GitUserConfig,
    HeadState,
    MergeResult,
    PullResult,
    PullTarget,
    RemoteInfo,
    StashEntry,
    SyncStatus,
)
from gitlite_engine.observability.diagnostics import DiagnosticsSink, StructlogSink
from gitlite_engine.services.backend import GitBackend
from gitlite_engine.services.branch_service import BranchService
from gitlite_engine.services.credentials import CredentialResolver, detect_ssh_keys
from gitlite_engine.services.history_ops_service import HistoryOpsService
from gitlite_engine.services.history_service import HistoryService
from gitlite_engine.services.merge_service import MergeService
from gitlite_engine.services.remote_service import RemoteService
from gitlite_engine.services.repo_service import RepoService
from gitlite_engine.services.stash_service import StashService
from gitlite_engine.services.sync_service import SyncService
from gitlite_engine.services.worktree_service import WorktreeService

T = TypeVar("T")


class RepositoryEngine:
    """All engine operations for one repository path.

    The repository is opened on first use, so a bad path surfaces as
    REPOSITORY_NOT_FOUND from the first operation rather than from the
    constructor.
    """

    def __init__(
        self,
        path: str | Path,
        settings: Settings | None = None,
        credentials_resolver: CredentialResolver | None = None,
        sink: DiagnosticsSink | None = None,
    ) -> None:
        self.path = Path(path)
        self.settings = settings or default_settings
        self.resolver = credentials_resolver or CredentialResolver()
        self.sink = sink or StructlogSink()

    def __enter__(self) -> RepositoryEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if "backend" in self.__dict__:
            self.backend.close()

    # ============================================================
    # Components
    # ============================================================

    @cached_property
    def backend(self) -> GitBackend:
        return GitBackend(self.path, self.settings)

    @cached_property
    def history(self) -> HistoryService:
        return HistoryService(self.backend, self.settings)

    @cached_property
    def worktree(self) -> WorktreeService:
        return WorktreeService(self.backend, self.sink)

    @cached_property
    def branches(self) -> BranchService:
        return BranchService(self.backend, self.sink)

    @cached_property
    def history_ops(self) -> HistoryOpsService:
        return HistoryOpsService(self.backend, self.sink)

    @cached_property
    def merges(self) -> MergeService:
        return MergeService(self.backend, self.sink)

    @cached_property
    def sync(self) -> SyncService:
        return SyncService(self.backend, self.resolver, self.sink, self.settings)

    @cached_property
    def remotes(self) -> RemoteService:
        return RemoteService(self.backend, self.sink)

    @cached_property
    def stash(self) -> StashService:
        return StashService(self.backend, self.sink, self.settings)

    @cached_property
    def repo_config(self) -> RepoService:
        return RepoService(self.backend)

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        with self.backend.track(name):
            yield

    # ============================================================
    # History
    # ============================================================

    def list_commits(self, limit: int | None = None, reference: str | None = None) -> list[Commit]:
        with self._operation("list_commits"):
            return self.history.list_commits(limit, reference)

    def diff_commit(self, commit_id: str) -> list[FileDiff]:
        with self._operation("diff_commit"):
            return self.history.diff_commit(commit_id)

    # ============================================================
    # Worktree
    # ============================================================

    def get_status(self) -> list[FileStatus]:
        with self._operation("get_status"):
            return self.worktree.get_status()

    def stage_files(self, paths: list[str]) -> None:
        with self._operation("stage_files"):
            self.worktree.stage_files(paths)

    def unstage_files(self, paths: list[str]) -> None:
        with self._operation("unstage_files"):
            self.worktree.unstage_files(paths)

    def commit(self, message: str, description: str | None = None) -> str:
        with self._operation("commit"):
            return self.worktree.commit(message, description)

    # ============================================================
    # Branches
    # ============================================================

    def head(self) -> HeadState:
        with self._operation("head"):
            return self.branches.head()

    def current_branch(self) -> str | None:
        with self._operation("current_branch"):
            return self.branches.current_branch()

    def list_branches(self) -> list[Branch]:
        with self._operation("list_branches"):
            return self.branches.list_branches()

    def create_branch(self, name: str) -> Branch:
        with self._operation("create_branch"):
            return self.branches.create_branch(name)

    def create_branch_from_commit(self, name: str, commit_id: str) -> Branch:
        with self._operation("create_branch_from_commit"):
            return self.branches.create_branch_from_commit(name, commit_id)

    def delete_branch(self, name: str) -> None:
        with self._operation("delete_branch"):
            self.branches.delete_branch(name)

    def checkout_branch(self, name: str) -> HeadState:
        with self._operation("checkout_branch"):
            return self.branches.checkout_branch(name)

    def checkout_commit(self, commit_id: str) -> HeadState:
        with self._operation("checkout_commit"):
            return self.branches.checkout_commit(commit_id)

    # ============================================================
    # History mutation and merge
    # ============================================================

    def reset(self, commit_id: str, mode: ResetMode | str = ResetMode.MIXED) -> HeadState:
        with self._operation("reset"):
            return self.history_ops.reset(commit_id, mode)

    def cherry_pick(self, commit_id: str) -> str:
        with self._operation("cherry_pick"):
            return self.history_ops.cherry_pick(commit_id)

    def revert(self, commit_id: str) -> str:
        with self._operation("revert"):
            return self.history_ops.revert(commit_id)

    def merge(self, target: str) -> MergeResult:
        with self._operation("merge"):
            return self.merges.merge(target)

    # ============================================================
    # Sync
    # ============================================================

    def prepare_pull(self) -> PullTarget:
        with self._operation("prepare_pull"):
            return self.sync.prepare_pull()

    def fetch(self, remote: str | None = None, credentials: Credentials | None = None) -> None:
        with self._operation("fetch"):
            self.sync.fetch(remote, credentials)

    def pull(self, remote: str | None = None, credentials: Credentials | None = None) -> PullResult:
        with self._operation("pull"):
            return self.sync.pull(remote, credentials)

    def push(self, remote: str | None = None, credentials: Credentials | None = None) -> str:
        with self._operation("push"):
            return self.sync.push(remote, credentials)

    def sync_status(self, remote: str | None = None) -> SyncStatus:
        with self._operation("sync_status"):
            return self.sync.sync_status(remote)

    def detect_ssh_keys(self) -> list[Path]:
        return detect_ssh_keys(self.settings)

    # ============================================================
    # Remotes
    # ============================================================

    def list_remotes(self) -> list[RemoteInfo]:
        with self._operation("list_remotes"):
            return self.remotes.list_remotes()

    def add_remote(self, name: str, url: str) -> RemoteInfo:
        with self._operation("add_remote"):
            return self.remotes.add_remote(name, url)

    def remove_remote(self, name: str) -> None:
        with self._operation("remove_remote"):
            self.remotes.remove_remote(name)

    def rename_remote(self, old_name: str, new_name: str) -> RemoteInfo:
        with self._operation("rename_remote"):
            return self.remotes.rename_remote(old_name, new_name)

    def set_remote_url(self, name: str, url: str) -> RemoteInfo:
        with self._operation("set_remote_url"):
            return self.remotes.set_remote_url(name, url)

    # ============================================================
    # Stash
    # ============================================================

    def stash_save(self, message: str | None = None) -> StashEntry:
        with self._operation("stash_save"):
            return self.stash.save(message)

    def stash_list(self) -> list[StashEntry]:
        with self._operation("stash_list"):
            return self.stash.list_entries()

    def stash_apply(self, index: int) -> None:
        with self._operation("stash_apply"):
            self.stash.apply(index)

    def stash_drop(self, index: int) -> None:
        with self._operation("stash_drop"):
            self.stash.drop(index)

    # ============================================================
    # Config
    # ============================================================

    def get_user_config(self) -> GitUserConfig:
        with self._operation("get_user_config"):
            return self.repo_config.get_user_config()

    def set_user_config(self, name: str | None = None, email: str | None = None) -> GitUserConfig:
        with self._operation("set_user_config"):
            return self.repo_config.set_user_config(name, email)


# ============================================================
# Async façade
# ============================================================

# One lock per repository path and event loop
_repository_locks: weakref.WeakKeyDictionary[
    asyncio.AbstractEventLoop, dict[str, asyncio.Lock]
] = weakref.WeakKeyDictionary()


def get_repository_lock(path: str | Path) -> asyncio.Lock:
    """Lock serializing operations on one repository within the running loop."""
    loop = asyncio.get_running_loop()
    locks = _repository_locks.setdefault(loop, {})
    key = str(Path(path).expanduser().resolve())
    if key not in locks:
        locks[key] = asyncio.Lock()
    return locks[key]


class AsyncRepositoryEngine:
    """Awaitable version of ``RepositoryEngine``.

    Each call runs in the default executor; calls on the same path wait for
    each other, calls on different paths run concurrently.
    """

    def __init__(
        self,
        path: str | Path,
        settings: Settings | None = None,
        credentials_resolver: CredentialResolver | None = None,
        sink: DiagnosticsSink | None = None,
    ) -> None:
        self.engine = RepositoryEngine(path, settings, credentials_resolver, sink)

    @property
    def path(self) -> Path:
        return self.engine.path

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async with get_repository_lock(self.engine.path):
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def close(self) -> None:
        await self._run(self.engine.close)

    async def list_commits(
        self, limit: int | None = None, reference: str | None = None
    ) -> list[Commit]:
        return await self._run(self.engine.list_commits, limit, reference)

    async def diff_commit(self, commit_id: str) -> list[FileDiff]:
        return await self._run(self.engine.diff_commit, commit_id)

    async def get_status(self) -> list[FileStatus]:
        return await self._run(self.engine.get_status)

    async def stage_files(self, paths: list[str]) -> None:
        await self._run(self.engine.stage_files, paths)

    async def unstage_files(self, paths: list[str]) -> None:
        await self._run(self.engine.unstage_files, paths)

    async def commit(self, message: str, description: str | None = None) -> str:
        return await self._run(self.engine.commit, message, description)

    async def head(self) -> HeadState:
        return await self._run(self.engine.head)

    async def current_branch(self) -> str | None:
        return await self._run(self.engine.current_branch)

    async def list_branches(self) -> list[Branch]:
        return await self._run(self.engine.list_branches)

    async def create_branch(self, name: str) -> Branch:
        return await self._run(self.engine.create_branch, name)

    async def create_branch_from_commit(self, name: str, commit_id: str) -> Branch:
        return await self._run(self.engine.create_branch_from_commit, name, commit_id)

    async def delete_branch(self, name: str) -> None:
        await self._run(self.engine.delete_branch, name)

    async def checkout_branch(self, name: str) -> HeadState:
        return await self._run(self.engine.checkout_branch, name)

    async def checkout_commit(self, commit_id: str) -> HeadState:
        return await self._run(self.engine.checkout_commit, commit_id)

    async def reset(self, commit_id: str, mode: ResetMode | str = ResetMode.MIXED) -> HeadState:
        return await self._run(self.engine.reset, commit_id, mode)

    async def cherry_pick(self, commit_id: str) -> str:
        return await self._run(self.engine.cherry_pick, commit_id)

    async def revert(self, commit_id: str) -> str:
        return await self._run(self.engine.revert, commit_id)

    async def merge(self, target: str) -> MergeResult:
        return await self._run(self.engine.merge, target)

    async def prepare_pull(self) -> PullTarget:
        return await self._run(self.engine.prepare_pull)

    async def fetch(
        self, remote: str | None = None, credentials: Credentials | None = None
    ) -> None:
        await self._run(self.engine.fetch, remote, credentials)

    async def pull(
        self, remote: str | None = None, credentials: Credentials | None = None
    ) -> PullResult:
        return await self._run(self.engine.pull, remote, credentials)

    async def push(self, remote: str | None = None, credentials: Credentials | None = None) -> str:
        return await self._run(self.engine.push, remote, credentials)

    async def sync_status(self, remote: str | None = None) -> SyncStatus:
        return await self._run(self.engine.sync_status, remote)

    async def list_remotes(self) -> list[RemoteInfo]:
        return await self._run(self.engine.list_remotes)

    async def add_remote(self, name: str, url: str) -> RemoteInfo:
        return await self._run(self.engine.add_remote, name, url)

    async def remove_remote(self, name: str) -> None:
        await self._run(self.engine.remove_remote, name)

    async def rename_remote(self, old_name: str, new_name: str) -> RemoteInfo:
        return await self._run(self.engine.rename_remote, old_name, new_name)

    async def set_remote_url(self, name: str, url: str) -> RemoteInfo:
        return await self._run(self.engine.set_remote_url, name, url)

    async def stash_save(self, message: str | None = None) -> StashEntry:
        return await self._run(self.engine.stash_save, message)

    async def stash_list(self) -> list[StashEntry]:
        return await self._run(self.engine.stash_list)

    async def stash_apply(self, index: int) -> None:
        await self._run(self.engine.stash_apply, index)

    async def stash_drop(self, index: int) -> None:
        await self._run(self.engine.stash_drop, index)

    async def get_user_config(self) -> GitUserConfig:
        return await self._run(self.engine.get_user_config)

    async def set_user_config(
        self, name: str | None = None, email: str | None = None
    ) -> GitUserConfig:
        return await self._run(self.engine.set_user_config, name, email)
