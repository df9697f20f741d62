"""Pytest configuration and fixtures for gitlite engine tests.

Every test works on throw-away repositories under ``tmp_path``; remotes are
local bare repositories, so no test touches the network.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from pathlib import Path

import git
import pytest
import structlog

from gitlite_engine.config import Settings
from gitlite_engine.engine import RepositoryEngine
from gitlite_engine.observability.diagnostics import RecordingSink

MakeRepo = Callable[..., git.Repo]
CommitFile = Callable[..., str]


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's git/ssh configuration out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    for name in (
        "GIT_DIR",
        "GIT_WORK_TREE",
        "GIT_INDEX_FILE",
        "GIT_ASKPASS",
        "SSH_ASKPASS",
        "SSH_AUTH_SOCK",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(ssh_dir=tmp_path / "ssh", default_log_limit=100)


@pytest.fixture
def make_repo(tmp_path: Path) -> Generator[MakeRepo]:
    """Factory for empty repositories on branch ``main`` with a test identity."""
    created: list[git.Repo] = []

    def _make(name: str = "repo", bare: bool = False) -> git.Repo:
        repo = git.Repo.init(tmp_path / name, mkdir=True, bare=bare, initial_branch="main")
        with repo.config_writer() as writer:
            writer.set_value("user", "name", "Test User")
            writer.set_value("user", "email", "test@example.com")
            writer.set_value("commit", "gpgsign", "false")
        created.append(repo)
        return repo

    yield _make

    for repo in created:
        repo.close()


@pytest.fixture
def commit_file() -> CommitFile:
    """Write a file, stage it and commit it with the git CLI. Returns the commit id."""

    def _commit(repo: git.Repo, name: str, content: str, message: str | None = None) -> str:
        path = Path(repo.working_tree_dir) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        repo.git.add("--", name)
        repo.git.commit("-m", message or f"Update {name}")
        return repo.head.commit.hexsha

    return _commit


@pytest.fixture
def repo(make_repo: MakeRepo) -> git.Repo:
    return make_repo()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def engine(
    repo: git.Repo, test_settings: Settings, sink: RecordingSink
) -> Generator[RepositoryEngine]:
    with RepositoryEngine(repo.working_tree_dir, test_settings, sink=sink) as eng:
        yield eng


@pytest.fixture
def bare_remote(make_repo: MakeRepo) -> git.Repo:
    return make_repo("remote.git", bare=True)


@pytest.fixture
def published(
    repo: git.Repo, bare_remote: git.Repo, commit_file: CommitFile
) -> tuple[git.Repo, git.Repo]:
    """``repo`` with one commit on main, pushed to ``bare_remote`` as origin/main."""
    commit_file(repo, "file.txt", "base\n", "Initial commit")
    repo.create_remote("origin", bare_remote.git_dir)
    repo.git.push("origin", "main:main")
    repo.git.fetch("origin")
    return repo, bare_remote


@pytest.fixture
def clone_of(make_repo: MakeRepo, tmp_path: Path) -> Callable[[git.Repo, str], git.Repo]:
    """Second working copy of a bare remote, used to advance the remote."""

    def _clone(remote: git.Repo, name: str = "other") -> git.Repo:
        clone = git.Repo.clone_from(remote.git_dir, tmp_path / name)
        with clone.config_writer() as writer:
            writer.set_value("user", "name", "Other User")
            writer.set_value("user", "email", "other@example.com")
            writer.set_value("commit", "gpgsign", "false")
        return clone

    return _clone


@pytest.fixture
def restore_logging() -> Generator[None]:
    """``configure_logging`` reconfigures the whole process; undo it after the test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    git_level = logging.getLogger("git").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("git").setLevel(git_level)
    structlog.reset_defaults()
