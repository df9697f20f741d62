from __future__ import annotations

from pathlib import Path

import git

from gitlite_engine.domain.models import GitUserConfig
from gitlite_engine.engine import RepositoryEngine
from gitlite_engine.services.repo_service import init_repository, is_repository


def test_is_repository(repo: git.Repo, bare_remote: git.Repo, tmp_path: Path) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()

    assert is_repository(repo.working_tree_dir)
    assert is_repository(bare_remote.git_dir)
    assert not is_repository(plain)
    assert not is_repository(tmp_path / "missing")


def test_init_repository(tmp_path: Path) -> None:
    root = init_repository(tmp_path / "nested" / "project", initial_branch="trunk")

    assert root.resolve() == (tmp_path / "nested" / "project").resolve()
    assert is_repository(root)
    created = git.Repo(root)
    assert created.head.reference.name == "trunk"
    assert not created.head.is_valid()
    created.close()


def test_user_config_round_trip(engine: RepositoryEngine) -> None:
    assert engine.get_user_config() == GitUserConfig(name="Test User", email="test@example.com")

    updated = engine.set_user_config(name="Renamed User")

    assert updated == GitUserConfig(name="Renamed User", email="test@example.com")
    assert engine.set_user_config(email="new@example.com").email == "new@example.com"
    assert engine.get_user_config().name == "Renamed User"
