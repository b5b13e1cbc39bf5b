"""idle-exec: run external commands under an idle timeout.

A command is killed when neither stdout nor stderr produces a line within
the timeout; steady output keeps it alive indefinitely.
"""

from __future__ import annotations

from .errors import (
    CancellationError,
    ExecutionError,
    ProcessError,
    StartError,
    StreamError,
)
from .executor import execute, shell_exec_with_args
from .runtime import LoggingSink, ProcessSupervisor
from .types import (
    CancelReason,
    ExecutionResult,
    Invocation,
    LineEvent,
    StreamClosed,
    StreamSource,
)

__version__ = "0.1.0"

__all__ = [
    "CancelReason",
    "CancellationError",
    "ExecutionError",
    "ExecutionResult",
    "Invocation",
    "LineEvent",
    "LoggingSink",
    "ProcessError",
    "ProcessSupervisor",
    "StartError",
    "StreamClosed",
    "StreamError",
    "StreamSource",
    "execute",
    "shell_exec_with_args",
]
