"""idle-exec 命令行应用入口。

在空闲超时下运行命令（或内置演示），stdout 行以 INFO 记录，stderr 行以 ERROR 记录。

用法:
    idle-exec [-t SECONDS] [-C DIR] -- command [args...]
    idle-exec --demo stall -t 2

退出码:
    0 = 成功
    子进程退出码 = 失败（被信号终止时为 128 + 信号编号）
    124 = 空闲超时
    130 = 被中断
    127 = 命令无法启动
    1 = 读取输出失败
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import signal
import sys
from collections.abc import Sequence

import anyio

from .config import get_config
from .errors import (
    CancellationError,
    ExecutionError,
    ProcessError,
    StartError,
)
from .executor import execute
from .types import CancelReason

__all__ = ["main", "run", "DEMOS", "exit_code_for"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

EXIT_TIMEOUT = 124
EXIT_START_FAILED = 127
EXIT_INTERRUPTED = 130

# 演示脚本，均通过 bash -c 运行
DEMOS: dict[str, str] = {
    # 每 3 秒输出一行，共 5 行：默认 5 秒超时下正常完成
    "steady": 'for i in {1..5}; do echo "output $i"; sleep 3; done',
    # 只有 stderr 输出，同样会重置计时器
    "stderr": 'for i in {1..3}; do echo "error $i" 1>&2; sleep 2; done',
    # 静默 10 秒：被默认 5 秒超时取消
    "stall": 'echo "start"; sleep 10; echo "end"',
}


def exit_code_for(error: ExecutionError) -> int:
    """将执行错误映射为进程退出码。"""
    if isinstance(error, CancellationError):
        return EXIT_TIMEOUT if error.reason is CancelReason.TIMEOUT else EXIT_INTERRUPTED
    if isinstance(error, ProcessError):
        if error.signal is not None:
            return 128 + error.signal
        return error.returncode
    if isinstance(error, StartError):
        return EXIT_START_FAILED
    # StreamError 及其他
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idle-exec",
        description="Run a command and kill it when its output goes quiet.",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        help="idle timeout in seconds (default: IDLE_EXEC_TIMEOUT or 5)",
    )
    parser.add_argument(
        "-C",
        "--cwd",
        default=".",
        help="working directory of the command (default: current directory)",
    )
    parser.add_argument(
        "--demo",
        choices=sorted(DEMOS),
        default=None,
        help="run a built-in demo instead of a command",
    )
    parser.add_argument("command", nargs=argparse.REMAINDER, help="command and arguments")
    return parser


async def run(
    command: str,
    args: Sequence[str],
    working_dir: str,
    idle_timeout: float | None,
) -> int:
    """执行命令，并将 SIGINT 转换为取消。

    Returns:
        应用的退出码
    """
    cancel_event = anyio.Event()
    loop = asyncio.get_running_loop()

    if not IS_WINDOWS:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    try:
        result = await execute(
            command,
            args,
            working_dir,
            idle_timeout,
            cancel_event=cancel_event,
        )
    except ExecutionError as e:
        logger.error(f"Error: {e}")
        return exit_code_for(e)
    finally:
        if not IS_WINDOWS:
            loop.remove_signal_handler(signal.SIGINT)

    logger.info(
        f"Command finished: {result.stdout_lines} stdout lines, "
        f"{result.stderr_lines} stderr lines in {result.duration:.1f}s"
    )
    return 0


def configure_logging() -> None:
    """配置日志输出：默认输出到 stderr，调试模式输出到临时文件。"""
    config = get_config()

    log_handlers: list[logging.Handler] = []
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers, force=True)
    # 只对 idle_exec 命名空间启用详细日志
    logging.getLogger("idle_exec").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。"""
    parser = build_parser()
    options = parser.parse_args(argv)

    command_line = list(options.command)
    if command_line and command_line[0] == "--":
        command_line = command_line[1:]

    if options.demo is not None and command_line:
        parser.error("--demo cannot be combined with a command")
    if options.timeout is not None and not (
        math.isfinite(options.timeout) and options.timeout > 0
    ):
        parser.error("--timeout must be a positive number of seconds")
    if command_line and not command_line[0]:
        parser.error("command must not be empty")

    if not command_line:
        command_line = ["bash", "-c", DEMOS[options.demo or "steady"]]

    configure_logging()
    logger.debug(f"Starting idle-exec: {get_config()}")

    try:
        return asyncio.run(
            run(command_line[0], command_line[1:], options.cwd, options.timeout)
        )
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
