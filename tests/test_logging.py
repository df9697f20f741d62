from __future__ import annotations

import json
import logging

import pytest

from gitlite_engine.config import Settings
from gitlite_engine.observability.diagnostics import StructlogSink
from gitlite_engine.observability.logging import configure_logging

pytestmark = pytest.mark.usefixtures("restore_logging")


def _records(err: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in err.splitlines() if line.strip()]


def test_stdlib_and_structlog_records_render_as_json(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(Settings(log_level="INFO", debug=False))

    logging.getLogger("gitlite_engine.services.sync_service").info("Fetched %s", "origin")
    StructlogSink().notice("push_completed", remote="origin", branch="main")

    captured = capsys.readouterr()
    assert captured.out == ""
    plain, notice = _records(captured.err)
    assert plain["event"] == "Fetched origin"
    assert plain["level"] == "info"
    assert plain["logger"] == "gitlite_engine.services.sync_service"
    assert notice["event"] == "push_completed"
    assert notice["branch"] == "main"
    assert "timestamp" in notice


def test_log_level_and_git_logger_threshold(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(Settings(log_level="DEBUG", debug=False))

    logging.getLogger("gitlite_engine").debug("kept")
    logging.getLogger("git.cmd").debug("dropped")

    events = [record["event"] for record in _records(capsys.readouterr().err)]
    assert events == ["kept"]
    assert logging.getLogger().level == logging.DEBUG
