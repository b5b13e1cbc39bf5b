"""Runtime module for supervised process execution.

This module provides isolated process execution with concurrent output
streaming, an idle timeout reset by output, and reliable termination.
"""

from __future__ import annotations

from .context import ExecutionContext, IdleTimer
from .line_splitter import LineBuffer, LineTooLongError, split_line, split_lines
from .stream_reader import StreamReader
from .supervisor import LineSink, LoggingSink, ProcessSupervisor

__all__ = [
    "ExecutionContext",
    "IdleTimer",
    "LineBuffer",
    "LineSink",
    "LineTooLongError",
    "LoggingSink",
    "ProcessSupervisor",
    "StreamReader",
    "split_line",
    "split_lines",
]
