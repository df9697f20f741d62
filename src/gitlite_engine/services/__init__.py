"""Services for the gitlite engine."""

from gitlite_engine.services.backend import GitBackend
from gitlite_engine.services.branch_service import BranchService
from gitlite_engine.services.credentials import CredentialResolver, detect_ssh_keys
from gitlite_engine.services.history_ops_service import HistoryOpsService
from gitlite_engine.services.history_service import ALL_BRANCHES, HistoryService
from gitlite_engine.services.merge_service import MergeService
from gitlite_engine.services.remote_service import RemoteService
from gitlite_engine.services.repo_service import RepoService, init_repository, is_repository
from gitlite_engine.services.stash_service import StashService
from gitlite_engine.services.sync_service import SyncService
from gitlite_engine.services.worktree_service import WorktreeService

__all__ = [
    "ALL_BRANCHES",
    "BranchService",
    "CredentialResolver",
    "GitBackend",
    "HistoryOpsService",
    "HistoryService",
    "MergeService",
    "RemoteService",
    "RepoService",
    "StashService",
    "SyncService",
    "WorktreeService",
    "detect_ssh_keys",
    "init_repository",
    "is_repository",
]
