"""Entry points for running a command under an idle timeout."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from .config import get_config
from .runtime.supervisor import CancelEvent, ProcessSupervisor
from .types import ExecutionResult, Invocation

__all__ = ["execute", "shell_exec_with_args", "supervisor_from_config"]

logger = logging.getLogger(__name__)


def supervisor_from_config() -> ProcessSupervisor:
    """Build a supervisor using the configured timeouts and limits."""
    config = get_config()
    return ProcessSupervisor(
        term_timeout=config.term_timeout,
        kill_timeout=config.kill_timeout,
        max_line_bytes=config.max_line_bytes,
        encoding=config.encoding,
    )


async def execute(
    command: str,
    args: Sequence[str] = (),
    working_dir: str | Path = ".",
    idle_timeout: float | None = None,
    *,
    cancel_event: CancelEvent | None = None,
    env: Mapping[str, str] | None = None,
    supervisor: ProcessSupervisor | None = None,
) -> ExecutionResult:
    """Run command with args in working_dir, killing it after idle_timeout of silence.

    No shell is involved; pass e.g. command="bash", args=["-c", script] for
    shell semantics. stdout lines are logged at INFO and stderr lines at
    ERROR unless the supervisor has another sink.

    Args:
        command: Executable to run
        args: Arguments passed verbatim
        working_dir: Directory the process starts in
        idle_timeout: Seconds of silence before cancelling (None = configured default)
        cancel_event: Optional event; setting it cancels the run
        env: Environment variables (None = inherit parent)
        supervisor: Supervisor to use (None = built from configuration)

    Returns:
        ExecutionResult of a run that exited with status 0

    Raises:
        StartError, CancellationError, ProcessError, StreamError
    """
    if idle_timeout is None:
        idle_timeout = get_config().idle_timeout

    invocation = Invocation(
        command=command,
        args=args,
        working_dir=Path(working_dir),
        idle_timeout=idle_timeout,
        env=env,
    )
    logger.info(f"cmd: {command} {list(invocation.args)}, path: {invocation.working_dir}")

    if supervisor is None:
        supervisor = supervisor_from_config()
    return await supervisor.execute(invocation, cancel_event=cancel_event)


async def shell_exec_with_args(
    command: str,
    args: Sequence[str],
    working_dir: str | Path,
    idle_timeout: float,
    *,
    cancel_event: CancelEvent | None = None,
) -> ExecutionResult:
    """Positional form of execute() with every argument required."""
    return await execute(
        command,
        args,
        working_dir,
        idle_timeout,
        cancel_event=cancel_event,
    )
