"""Command line application tests.

Test coverage:
- Error to exit status mapping
- Argument parsing
- End-to-end runs through main()
- SIGINT handling in run()
"""

from __future__ import annotations

import logging
import os
import signal
import sys

import anyio
import pytest

from idle_exec.app import (
    DEMOS,
    EXIT_INTERRUPTED,
    EXIT_START_FAILED,
    EXIT_TIMEOUT,
    IS_WINDOWS,
    build_parser,
    exit_code_for,
    main,
    run,
)
from idle_exec.errors import CancellationError, ProcessError, StartError, StreamError
from idle_exec.types import CancelReason, StreamSource


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    package_level = logging.getLogger("idle_exec").level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("idle_exec").setLevel(package_level)


# =============================================================================
# Exit status mapping
# =============================================================================


class TestExitCodeFor:
    """Mapping of execution errors to exit status."""

    def test_timeout(self):
        assert exit_code_for(CancellationError(CancelReason.TIMEOUT, 5.0)) == EXIT_TIMEOUT

    def test_external_cancel(self):
        assert exit_code_for(CancellationError(CancelReason.EXTERNAL, 5.0)) == EXIT_INTERRUPTED

    def test_process_exit_code(self):
        assert exit_code_for(ProcessError("tool", 3)) == 3

    def test_process_killed_by_signal(self):
        assert exit_code_for(ProcessError("tool", -9)) == 137

    def test_start_failure(self):
        assert exit_code_for(StartError("tool", "not found")) == EXIT_START_FAILED

    def test_stream_error(self):
        assert exit_code_for(StreamError(StreamSource.STDOUT, "broken")) == 1


# =============================================================================
# Argument parsing
# =============================================================================


class TestParser:
    """Command line parsing."""

    def test_defaults(self):
        options = build_parser().parse_args([])
        assert options.timeout is None
        assert options.cwd == "."
        assert options.demo is None
        assert options.command == []

    def test_command_keeps_its_options(self):
        options = build_parser().parse_args(["-t", "2", "ls", "-la", "/tmp"])
        assert options.timeout == 2.0
        assert options.command == ["ls", "-la", "/tmp"]

    def test_demo_choices(self):
        options = build_parser().parse_args(["--demo", "stall"])
        assert options.demo == "stall"
        assert set(DEMOS) == {"steady", "stderr", "stall"}

    def test_unknown_demo_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--demo", "nope"])

    def test_demo_with_command_rejected(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["--demo", "stall", "--", "echo", "hi"])
        assert exc_info.value.code == 2

    @pytest.mark.parametrize("value", ["0", "-1", "nan", "inf"])
    def test_invalid_timeout_rejected(self, value: str):
        with pytest.raises(SystemExit) as exc_info:
            main(["-t", value, "--", "echo", "hi"])
        assert exc_info.value.code == 2

    def test_empty_command_rejected(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--", ""])
        assert exc_info.value.code == 2
        assert "command must not be empty" in capsys.readouterr().err


# =============================================================================
# End-to-end
# =============================================================================


class TestMain:
    """Runs through main()."""

    @pytest.mark.timeout(15)
    def test_success(self, temp_workspace):
        code = main(
            ["-C", str(temp_workspace), "--", sys.executable, "-c", "print('hello')"]
        )
        assert code == 0

    @pytest.mark.timeout(15)
    def test_exit_code_propagated(self, temp_workspace):
        code = main(
            ["-C", str(temp_workspace), "--", sys.executable, "-c", "import sys; sys.exit(3)"]
        )
        assert code == 3

    @pytest.mark.timeout(15)
    def test_idle_timeout(self, temp_workspace):
        code = main(
            [
                "-t", "0.5",
                "-C", str(temp_workspace),
                "--", sys.executable, "-c", "import time; time.sleep(10)",
            ]
        )
        assert code == EXIT_TIMEOUT

    @pytest.mark.timeout(15)
    def test_start_failure(self, temp_workspace):
        code = main(["-C", str(temp_workspace), "--", "nonexistent_command_xyz_123"])
        assert code == EXIT_START_FAILED


class TestRun:
    """The async entry point."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_success(self, temp_workspace):
        code = await run(sys.executable, ["-c", "print('ok')"], str(temp_workspace), 5.0)
        assert code == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX-specific test")
    async def test_sigint_cancels(self, temp_workspace):
        async def interrupt() -> None:
            await anyio.sleep(0.5)
            os.kill(os.getpid(), signal.SIGINT)

        async with anyio.create_task_group() as tg:
            tg.start_soon(interrupt)
            code = await run(
                sys.executable,
                ["-c", "import time; time.sleep(10)"],
                str(temp_workspace),
                30.0,
            )

        assert code == EXIT_INTERRUPTED
