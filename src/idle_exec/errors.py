"""进程执行异常类。

idle-exec errors v0.1.0
"""

from __future__ import annotations

import signal as _signal
from collections.abc import Sequence

from .types import CancelReason, StreamSource

__all__ = [
    "ExecutionError",
    "StartError",
    "CancellationError",
    "ProcessError",
    "StreamError",
]


class ExecutionError(Exception):
    """执行失败的基础异常。"""
    pass


class StartError(ExecutionError):
    """进程无法启动，或无法获取输出管道。

    Attributes:
        command: 启动失败的可执行文件
        message: 底层错误消息
    """

    def __init__(self, command: str, message: str) -> None:
        self.command = command
        self.message = message
        super().__init__(f"failed to start {command}: {message}")


class CancellationError(ExecutionError):
    """取消信号触发，进程已被终止。

    Attributes:
        reason: 空闲计时器触发时为 TIMEOUT，调用方取消事件为 EXTERNAL
        idle_timeout: 本次调用的空闲超时（秒）
    """

    def __init__(self, reason: CancelReason, idle_timeout: float) -> None:
        self.reason = reason
        self.idle_timeout = idle_timeout
        if reason is CancelReason.TIMEOUT:
            message = f"command cancelled: no output for {idle_timeout:g}s"
        else:
            message = "command cancelled by caller"
        super().__init__(message)

    @property
    def timed_out(self) -> bool:
        return self.reason is CancelReason.TIMEOUT


class ProcessError(ExecutionError):
    """进程以失败状态退出。

    Attributes:
        command: 失败的可执行文件
        returncode: 退出码；负值表示终止进程的信号
        stderr_tail: 最后几行 stderr（按时间顺序）
    """

    def __init__(
        self,
        command: str,
        returncode: int,
        stderr_tail: Sequence[str] = (),
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr_tail = list(stderr_tail)

        sig = self.signal
        if sig is not None:
            try:
                detail = f"terminated by {_signal.Signals(sig).name}"
            except ValueError:
                detail = f"terminated by signal {sig}"
        else:
            detail = f"exited with code {returncode}"
        message = f"{command} {detail}"
        if self.stderr_tail:
            message += ":\n" + "\n".join(self.stderr_tail)
        super().__init__(message)

    @property
    def signal(self) -> int | None:
        """终止进程的信号编号（如果有）。"""
        if self.returncode < 0:
            return -self.returncode
        return None


class StreamError(ExecutionError):
    """读取输出流失败（包括行过长）。

    Attributes:
        source: 失败的流
        message: 底层错误消息
    """

    def __init__(self, source: StreamSource, message: str) -> None:
        self.source = source
        self.message = message
        super().__init__(f"{source.value} read failed: {message}")
