from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import git
import pytest

from gitlite_engine.domain.enums import ErrorKind
from gitlite_engine.engine import RepositoryEngine
from gitlite_engine.errors import ConflictError, PreconditionError, ValidationError
from gitlite_engine.observability.diagnostics import RecordingSink


def test_save_and_apply_restores_changes(
    repo: git.Repo,
    engine: RepositoryEngine,
    sink: RecordingSink,
    commit_file: Callable[..., str],
) -> None:
    commit_file(repo, "file.txt", "v1\n")
    workdir = Path(repo.working_tree_dir)
    (workdir / "file.txt").write_text("v2\n")
    (workdir / "new.txt").write_text("untracked\n")

    entry = engine.stash_save("x")

    assert entry.index == 0
    assert entry.message.endswith("x")
    assert entry.author == "Test User"
    assert entry.date > 0
    assert engine.get_status() == []
    assert not (workdir / "new.txt").exists()

    engine.stash_apply(0)

    assert (workdir / "file.txt").read_text() == "v2\n"
    assert (workdir / "new.txt").read_text() == "untracked\n"
    assert len(engine.stash_list()) == 1
    assert {"stash_saved", "stash_applied"} <= set(sink.names())


def test_save_uses_default_message(
    repo: git.Repo, engine: RepositoryEngine, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "v1\n")
    (Path(repo.working_tree_dir) / "file.txt").write_text("v2\n")

    entry = engine.stash_save("   ")

    assert entry.message.endswith("WIP")


def test_save_with_nothing_to_stash(
    repo: git.Repo, engine: RepositoryEngine, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "v1\n")

    with pytest.raises(ValidationError) as exc_info:
        engine.stash_save("nothing")
    assert exc_info.value.kind == ErrorKind.EMPTY_STASH


def test_save_before_first_commit(repo: git.Repo, engine: RepositoryEngine) -> None:
    (Path(repo.working_tree_dir) / "file.txt").write_text("v1\n")

    with pytest.raises(PreconditionError) as exc_info:
        engine.stash_save()
    assert exc_info.value.kind == ErrorKind.HEAD_UNBORN


def test_list_is_most_recent_first_and_drop_shifts(
    repo: git.Repo, engine: RepositoryEngine, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "v1\n")
    workdir = Path(repo.working_tree_dir)
    (workdir / "file.txt").write_text("first\n")
    engine.stash_save("first")
    (workdir / "file.txt").write_text("second\n")
    engine.stash_save("second")

    entries = engine.stash_list()
    assert [e.index for e in entries] == [0, 1]
    assert entries[0].message.endswith("second")
    assert entries[1].message.endswith("first")

    engine.stash_drop(0)

    remaining = engine.stash_list()
    assert len(remaining) == 1
    assert remaining[0].index == 0
    assert remaining[0].message.endswith("first")


def test_invalid_indices(
    repo: git.Repo, engine: RepositoryEngine, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "v1\n")
    (Path(repo.working_tree_dir) / "file.txt").write_text("v2\n")
    engine.stash_save("only")

    for call in (
        lambda: engine.stash_apply(1),
        lambda: engine.stash_drop(-1),
    ):
        with pytest.raises(ValidationError) as exc_info:
            call()
        assert exc_info.value.kind == ErrorKind.INVALID_INDEX

    engine.stash_drop(0)
    with pytest.raises(ValidationError) as exc_info:
        engine.stash_apply(0)
    assert exc_info.value.kind == ErrorKind.INVALID_INDEX


def test_apply_over_local_edits_conflicts(
    repo: git.Repo, engine: RepositoryEngine, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "v1\n")
    path = Path(repo.working_tree_dir) / "file.txt"
    path.write_text("stashed\n")
    engine.stash_save("edit")
    path.write_text("local\n")

    with pytest.raises(ConflictError) as exc_info:
        engine.stash_apply(0)

    assert exc_info.value.kind == ErrorKind.APPLY_CONFLICT
    assert path.read_text() == "local\n"
    assert len(engine.stash_list()) == 1


def test_apply_content_conflict_rolls_back(
    repo: git.Repo, engine: RepositoryEngine, commit_file: Callable[..., str]
) -> None:
    commit_file(repo, "file.txt", "v1\n")
    path = Path(repo.working_tree_dir) / "file.txt"
    path.write_text("stashed\n")
    engine.stash_save("edit")
    head = commit_file(repo, "file.txt", "committed\n")

    with pytest.raises(ConflictError) as exc_info:
        engine.stash_apply(0)

    assert exc_info.value.kind == ErrorKind.APPLY_CONFLICT
    assert repo.head.commit.hexsha == head
    assert path.read_text() == "committed\n"
    assert engine.get_status() == []
    assert len(engine.stash_list()) == 1
