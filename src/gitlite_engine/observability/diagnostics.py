"""Injectable sink for informational notices emitted by the engine.

The engine reports progress (fetch finished, merge fast-forwarded, remote
rename adjusted refspecs) to a sink but never reads anything back from it,
so swapping or dropping the sink cannot change an operation's outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from gitlite_engine.observability.logging import get_logger


class DiagnosticsSink(Protocol):
    """Receiver of informational notices."""

    def notice(self, event: str, **fields: Any) -> None: ...


class StructlogSink:
    """Default sink: forwards notices to a structlog logger."""

    def __init__(self, name: str = "gitlite_engine") -> None:
        self._logger = get_logger(name)

    def notice(self, event: str, **fields: Any) -> None:
        self._logger.info(event, **fields)


class NullSink:
    """Discards every notice."""

    def notice(self, event: str, **fields: Any) -> None:
        return None


@dataclass
class RecordingSink:
    """Keeps notices in memory, e.g. for a UI activity panel or tests."""

    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def notice(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def safe_notice(sink: DiagnosticsSink, event: str, **fields: Any) -> None:
    """Deliver a notice, ignoring sink failures.

    A broken sink must not turn a successful operation into a failure.
    """
    try:
        sink.notice(event, **fields)
    except Exception:  # noqa: BLE001 - sink errors are not engine errors
        get_logger(__name__).warning("diagnostics_sink_failed", event=event, exc_info=True)
