"""Repository-level utilities: detection, initialization and commit identity."""

from __future__ import annotations

import logging
from pathlib import Path

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from gitlite_engine.domain.models import GitUserConfig
from gitlite_engine.errors import OperationError
from gitlite_engine.services.backend import GitBackend, command_output

logger = logging.getLogger(__name__)


def is_repository(path: str | Path) -> bool:
    """True if ``path`` is the root of a git repository (worktree or bare)."""
    try:
        repo = git.Repo(path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return False
    repo.close()
    return True


def init_repository(path: str | Path, initial_branch: str | None = None) -> Path:
    """Create an empty repository at ``path``, creating the directory if needed."""
    kwargs = {"initial_branch": initial_branch} if initial_branch else {}
    try:
        repo = git.Repo.init(path, mkdir=True, **kwargs)
    except GitCommandError as e:
        raise OperationError(f"Failed to initialize repository: {command_output(e)}") from e
    root = Path(repo.working_tree_dir or repo.git_dir)
    repo.close()
    logger.info(f"Initialized repository at {root}")
    return root


class RepoService:
    """Repository-local settings."""

    def __init__(self, backend: GitBackend) -> None:
        self.backend = backend

    def get_user_config(self) -> GitUserConfig:
        """Effective ``user.name`` / ``user.email`` (repository, global or system)."""
        reader = self.backend.repo.config_reader()
        name = reader.get_value("user", "name", default="")
        email = reader.get_value("user", "email", default="")
        return GitUserConfig(name=str(name) or None, email=str(email) or None)

    def set_user_config(self, name: str | None = None, email: str | None = None) -> GitUserConfig:
        """Write ``user.name`` / ``user.email`` to the repository config."""
        with self.backend.repo.config_writer() as writer:
            if name is not None:
                writer.set_value("user", "name", name)
            if email is not None:
                writer.set_value("user", "email", email)
        return self.get_user_config()
