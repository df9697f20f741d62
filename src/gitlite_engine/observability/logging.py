"""Logging setup for processes embedding the engine.

Engine modules log through ``logging.getLogger(__name__)`` while the
diagnostics sink logs through structlog. ``configure_logging`` routes both
into a single stderr handler so stdout stays free for command output.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from gitlite_engine.config import Settings

# Applied to structlog events and to plain stdlib records alike
_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def _render_chain(pretty: bool) -> list[structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta
    ]
    if pretty:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        chain.append(structlog.processors.format_exc_info)
        chain.append(structlog.processors.JSONRenderer(sort_keys=True))
    return chain


def configure_logging(settings: "Settings") -> None:
    """Send engine logs and diagnostics to stderr.

    ``settings.debug`` switches to console rendering; otherwise every record
    is written as one JSON object per line.
    """
    level = getattr(logging, settings.log_level.upper())

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_PRE_CHAIN,
            processors=_render_chain(settings.debug),
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    # GitPython logs every command line at DEBUG
    logging.getLogger("git").setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
