"""gitlite engine: version-control operations over a local git repository."""

from gitlite_engine.config import Settings, settings
from gitlite_engine.engine import AsyncRepositoryEngine, RepositoryEngine
from gitlite_engine.errors import GitliteError, error_body, exit_code_for
from gitlite_engine.services.history_service import ALL_BRANCHES
from gitlite_engine.services.repo_service import init_repository, is_repository

__all__ = [
    "ALL_BRANCHES",
    "AsyncRepositoryEngine",
    "GitliteError",
    "RepositoryEngine",
    "Settings",
    "error_body",
    "exit_code_for",
    "init_repository",
    "is_repository",
    "settings",
]
