"""Observability module for the gitlite engine.

This module provides Prometheus metrics, structured logging, and the
diagnostics sink the engine reports notices to.
"""

from gitlite_engine.observability.diagnostics import (
    DiagnosticsSink,
    NullSink,
    RecordingSink,
    StructlogSink,
)
from gitlite_engine.observability.logging import configure_logging, get_logger
from gitlite_engine.observability.metrics import (
    OPERATION_DURATION,
    OPERATIONS_TOTAL,
    TRANSPORT_FAILURES,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Diagnostics
    "DiagnosticsSink",
    "NullSink",
    "RecordingSink",
    "StructlogSink",
    # Metrics
    "OPERATION_DURATION",
    "OPERATIONS_TOTAL",
    "TRANSPORT_FAILURES",
]
