from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import git
import pytest
from prometheus_client import REGISTRY

from gitlite_engine.config import Settings
from gitlite_engine.domain.enums import ErrorKind, MergeAnalysis
from gitlite_engine.engine import AsyncRepositoryEngine, RepositoryEngine, get_repository_lock
from gitlite_engine.errors import NotFoundError, ValidationError
from gitlite_engine.observability.diagnostics import RecordingSink


def _operations(operation: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "gitlite_operations_total", {"operation": operation, "outcome": outcome}
    )
    return value or 0.0


def test_missing_repository_fails_on_first_operation(
    tmp_path: Path, test_settings: Settings
) -> None:
    engine = RepositoryEngine(tmp_path / "missing", test_settings)

    with pytest.raises(NotFoundError) as exc_info:
        engine.get_status()
    assert exc_info.value.kind == ErrorKind.REPOSITORY_NOT_FOUND
    engine.close()


def test_operations_are_counted_by_outcome(
    repo: git.Repo, engine: RepositoryEngine, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "x\n")
    success = _operations("create_branch", "success")
    failure = _operations("create_branch", "branch_exists")

    engine.create_branch("feature")
    with pytest.raises(ValidationError):
        engine.create_branch("feature")

    assert _operations("create_branch", "success") == success + 1
    assert _operations("create_branch", "branch_exists") == failure + 1


def test_broken_sink_does_not_fail_operations(
    repo: git.Repo, test_settings: Settings, commit_file: Callable[..., str]
) -> None:
    class BrokenSink:
        def notice(self, event: str, **fields: object) -> None:
            raise RuntimeError("sink down")

    commit_file(repo, "file.txt", "x\n")

    with RepositoryEngine(repo.working_tree_dir, test_settings, sink=BrokenSink()) as engine:
        branch = engine.create_branch("feature")

    assert branch.name == "feature"
    assert repo.heads.feature.is_valid()


@pytest.mark.asyncio
async def test_repository_lock_is_shared_per_path(tmp_path: Path) -> None:
    first = get_repository_lock(tmp_path / "repo")
    again = get_repository_lock(str(tmp_path / "repo"))
    other = get_repository_lock(tmp_path / "other")

    assert first is again
    assert first is not other


@pytest.mark.asyncio
async def test_async_engine_round_trip(
    repo: git.Repo, test_settings: Settings, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "base\n")
    sink = RecordingSink()
    engine = AsyncRepositoryEngine(repo.working_tree_dir, test_settings, sink=sink)

    (Path(repo.working_tree_dir) / "file.txt").write_text("changed\n")
    await engine.stage_files(["file.txt"])
    sha = await engine.commit("Change file")
    commits = await engine.list_commits(10)
    await engine.create_branch("feature")
    result = await engine.merge("feature")
    await engine.close()

    assert commits[0].hash == sha
    assert len(commits) == 2
    assert result.analysis == MergeAnalysis.UP_TO_DATE
    assert "commit_created" in sink.names()


@pytest.mark.asyncio
async def test_async_calls_on_one_repository_are_serialized(
    repo: git.Repo, test_settings: Settings, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "base\n")
    engine = AsyncRepositoryEngine(repo.working_tree_dir, test_settings, sink=RecordingSink())

    branches = await asyncio.gather(*(engine.create_branch(f"b{i}") for i in range(5)))
    await engine.close()

    assert sorted(b.name for b in branches) == [f"b{i}" for i in range(5)]
    assert {h.name for h in repo.heads} == {"main", "b0", "b1", "b2", "b3", "b4"}


@pytest.mark.asyncio
async def test_async_engine_propagates_errors(repo: git.Repo, test_settings: Settings) -> None:
    engine = AsyncRepositoryEngine(repo.working_tree_dir, test_settings, sink=RecordingSink())

    with pytest.raises(ValidationError) as exc_info:
        await engine.commit("")
    assert exc_info.value.kind == ErrorKind.EMPTY_MESSAGE
    await engine.close()
