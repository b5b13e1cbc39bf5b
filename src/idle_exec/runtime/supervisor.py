"""Process supervisor with an idle timeout and reliable termination.

idle-exec runtime module v0.1.0

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- Concurrent stdout/stderr line streaming into a single event loop
- An idle timeout reset by every line from either stream
- Reliable termination with graceful shutdown (SIGTERM -> timeout -> SIGKILL)
- Cancel-safe cleanup using a shielded cancel scope

Key design points:
- POSIX: start_new_session=True to create new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Cancellation terminates the process group, not just the main process,
  including group members left behind by a leader that already exited
- The run is over once both streams closed and the process exited;
  stdout closing first does not drop late stderr lines
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import anyio
from anyio.abc import Process
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ..errors import CancellationError, ProcessError, StartError, StreamError
from ..types import (
    CancelReason,
    ExecutionResult,
    Invocation,
    LineEvent,
    StreamClosed,
    StreamEvent,
    StreamSource,
)
from .context import ExecutionContext
from .line_splitter import DEFAULT_MAX_LINE_BYTES
from .stream_reader import StreamReader

__all__ = [
    "CancelEvent",
    "LineSink",
    "LoggingSink",
    "ProcessSupervisor",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# Number of stderr lines kept for ProcessError
STDERR_TAIL_LINES = 5

LineSink = Callable[[LineEvent], None]


class CancelEvent(Protocol):
    """Anything with an awaitable wait(), e.g. anyio.Event or asyncio.Event."""

    async def wait(self) -> Any: ...


class LoggingSink:
    """Sink writing stdout lines at INFO and stderr lines at ERROR."""

    def __init__(self, output_logger: logging.Logger | None = None) -> None:
        self.logger = output_logger or logging.getLogger("idle_exec.output")

    def __call__(self, event: LineEvent) -> None:
        if event.source is StreamSource.STDERR:
            self.logger.error(event.text)
        else:
            self.logger.info(event.text)


@dataclass
class ProcessSupervisor:
    """Runs one external process at a time under an idle timeout.

    This class manages subprocess execution with:
    - Process group/session isolation to prevent SIGINT propagation
    - One reader task per output stream, joined before returning
    - An idle timer that cancels the run after a period of silence
    - Graceful termination (SIGTERM -> timeout -> SIGKILL)

    Example:
        supervisor = ProcessSupervisor()
        invocation = Invocation(
            command="bash",
            args=["-c", "for i in 1 2 3; do echo $i; sleep 1; done"],
            working_dir=Path("/workspace"),
            idle_timeout=5.0,
        )
        result = await supervisor.execute(invocation)

    Attributes:
        term_timeout: Seconds to wait for exit after SIGTERM
        kill_timeout: Seconds to wait for exit after SIGKILL
        max_line_bytes: Longest accepted output line
        encoding: Encoding of the child's output
        sink: Receives every line; defaults to LoggingSink
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    encoding: str = "utf-8"
    sink: LineSink = field(default_factory=LoggingSink)

    async def execute(
        self,
        invocation: Invocation,
        *,
        cancel_event: CancelEvent | None = None,
    ) -> ExecutionResult:
        """Run the invocation to completion.

        This method:
        1. Starts the subprocess in an isolated process group/session
        2. Streams stdout and stderr lines to the sink as they arrive
        3. Cancels when no line arrives within idle_timeout, or when
           cancel_event is set
        4. Waits for both streams to close and the process to exit
        5. Ensures cleanup even if cancelled

        Args:
            invocation: What to run
            cancel_event: Optional event; setting it cancels the run

        Returns:
            Line counts and duration of a run that exited with status 0

        Raises:
            StartError: If the process could not be started
            CancellationError: If the idle timer fired or cancel_event was set
            ProcessError: If the process exited with a failure status
            StreamError: If reading an output stream failed
        """
        process = await self._start(invocation)
        started = time.monotonic()

        context = ExecutionContext(invocation.idle_timeout)
        counts = {StreamSource.STDOUT: 0, StreamSource.STDERR: 0}
        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        stream_error: StreamError | None = None
        returncode: int | None = None

        try:
            with context.scope:
                async with anyio.create_task_group() as tg:
                    if cancel_event is not None:
                        tg.start_soon(self._watch_cancel_event, cancel_event, context)

                    send_stream: MemoryObjectSendStream[StreamEvent]
                    receive_stream: MemoryObjectReceiveStream[StreamEvent]
                    send_stream, receive_stream = anyio.create_memory_object_stream(0)
                    async with receive_stream:
                        async with send_stream:
                            for source, stream in (
                                (StreamSource.STDOUT, process.stdout),
                                (StreamSource.STDERR, process.stderr),
                            ):
                                reader = StreamReader(
                                    source,
                                    stream,
                                    context.timer,
                                    max_line_bytes=self.max_line_bytes,
                                    encoding=self.encoding,
                                )
                                tg.start_soon(reader.run, send_stream.clone())

                        # Ends once both readers have closed their clones
                        async for event in receive_stream:
                            if isinstance(event, StreamClosed):
                                if event.error is not None:
                                    stream_error = event.error
                                    break
                                continue

                            counts[event.source] += 1
                            if event.source is StreamSource.STDERR:
                                stderr_tail.append(event.text)
                            self.sink(event)

                    if stream_error is None:
                        returncode = await process.wait()

                    # Stops the cancel watcher, or a reader left behind by a stream error
                    tg.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                # No exit status means the run was cut short
                await self._cleanup(process, abandoned=returncode is None)

        duration = time.monotonic() - started

        # A process that exited on its own is judged by its exit status,
        # even if the timer fired while it was being reaped
        if returncode is None and context.cancelled:
            reason = context.reason or CancelReason.TIMEOUT
            logger.warning(
                f"Subprocess cancelled pid={process.pid} reason={reason.value} "
                f"after {duration:.1f}s"
            )
            raise CancellationError(reason, invocation.idle_timeout)

        if stream_error is not None:
            raise stream_error

        logger.debug(
            f"Subprocess completed pid={process.pid} "
            f"returncode={returncode} duration={duration:.1f}s"
        )
        if returncode != 0:
            raise ProcessError(invocation.command, returncode, stderr_tail)

        return ExecutionResult(
            returncode=returncode,
            stdout_lines=counts[StreamSource.STDOUT],
            stderr_lines=counts[StreamSource.STDERR],
            duration=duration,
        )

    async def _start(self, invocation: Invocation) -> Process:
        """Spawn the child with piped stdout/stderr.

        Raises:
            StartError: If spawning fails or a pipe is missing
        """
        kwargs = self._build_subprocess_kwargs(invocation)

        try:
            # stdin=DEVNULL so the child never inherits the caller's terminal
            process = await anyio.open_process(
                invocation.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=invocation.working_dir,
                **kwargs,
            )
        except OSError as e:
            raise StartError(invocation.command, str(e)) from e

        if process.stdout is None or process.stderr is None:
            with anyio.CancelScope(shield=True):
                await self._cleanup(process)
            raise StartError(invocation.command, "output pipes unavailable")

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={invocation.command} cwd={invocation.working_dir}"
        )
        return process

    def _build_subprocess_kwargs(self, invocation: Invocation) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            invocation: Invocation being started

        Returns:
            Dict of kwargs for anyio.open_process
        """
        kwargs: dict[str, Any] = {}

        if invocation.env is not None:
            kwargs["env"] = dict(invocation.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    @staticmethod
    async def _watch_cancel_event(
        cancel_event: CancelEvent,
        context: ExecutionContext,
    ) -> None:
        await cancel_event.wait()
        context.cancel(CancelReason.EXTERNAL)

    async def _cleanup(self, process: Process, *, abandoned: bool = False) -> None:
        """Terminate the process if still running, then release its pipes.

        When the run was abandoned after the leader already exited, the rest
        of its process group (e.g. a backgrounded grandchild still holding
        the pipes) is terminated instead.

        Must run inside a shielded cancel scope.
        """
        if process.returncode is None:
            await self._terminate_process(process)
        elif abandoned and not IS_WINDOWS:
            await self._terminate_orphaned_group(process.pid)

        try:
            await process.aclose()
        except Exception as e:
            logger.debug(f"Error closing subprocess pid={process.pid}: {e}")

    async def _terminate_process(self, process: Process) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit

        Args:
            process: The subprocess to terminate
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            # Step 1: Graceful termination
            if IS_WINDOWS:
                self._windows_terminate(process)
            else:
                self._posix_signal(process, signal.SIGTERM)

            # Step 2: Wait for graceful exit
            with anyio.move_on_after(self.term_timeout):
                await process.wait()
            if process.returncode is not None:
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return

            # Step 3: Force kill
            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                self._posix_signal(process, signal.SIGKILL)

            # Step 4: Wait for forced exit
            with anyio.move_on_after(self.kill_timeout):
                await process.wait()
            if process.returncode is None:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")
            else:
                logger.debug(
                    f"Subprocess killed pid={pid} returncode={process.returncode}"
                )

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    async def _terminate_orphaned_group(self, pgid: int) -> None:
        """Terminate what is left of a process group whose leader has exited.

        The leader was reaped, so there is no handle to wait on; the group is
        polled with signal 0 until it is empty.

        Args:
            pgid: Process group ID (the leader's pid, due to start_new_session)
        """
        for sig, timeout in (
            (signal.SIGTERM, self.term_timeout),
            (signal.SIGKILL, self.kill_timeout),
        ):
            try:
                os.killpg(pgid, sig)
            except ProcessLookupError:
                return
            except OSError as e:
                logger.warning(f"Error signalling process group pgid={pgid}: {e}")
                return
            logger.debug(f"Sent {sig.name} to orphaned process group pgid={pgid}")

            with anyio.move_on_after(timeout):
                while self._group_exists(pgid):
                    await anyio.sleep(0.05)
            if not self._group_exists(pgid):
                return

        logger.warning(f"Process group did not exit after kill pgid={pgid}")

    @staticmethod
    def _group_exists(pgid: int) -> bool:
        try:
            os.killpg(pgid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but belongs to someone else now
            pass
        return True

    @staticmethod
    def _posix_signal(process: Process, sig: signal.Signals) -> None:
        """Send a signal to the whole process group on POSIX systems."""
        try:
            # Process group ID equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    @staticmethod
    def _windows_terminate(process: Process) -> None:
        """Send CTRL_BREAK_EVENT to the process group on Windows."""
        try:
            # Works because we used CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
