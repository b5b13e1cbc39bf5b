"""运行时共享的类型定义。

idle-exec types v0.1.0

定义一次调用、流读取器与 supervisor 之间传递的事件，以及成功运行的结果。
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .errors import StreamError

__all__ = [
    "StreamSource",
    "CancelReason",
    "Invocation",
    "LineEvent",
    "StreamClosed",
    "StreamEvent",
    "ExecutionResult",
]


class StreamSource(str, Enum):
    """输出行所属的流。"""

    STDOUT = "stdout"
    STDERR = "stderr"


class CancelReason(str, Enum):
    """调用被取消的原因。

    - TIMEOUT: 空闲超时内没有任何输出行
    - EXTERNAL: 调用方设置了取消事件
    """

    TIMEOUT = "timeout"
    EXTERNAL = "external"


@dataclass(frozen=True)
class Invocation:
    """一次外部进程执行。

    Attributes:
        command: 要运行的可执行文件（不经过 shell）
        args: 原样传递的参数
        working_dir: 子进程的工作目录
        idle_timeout: 两个流都静默多少秒后取消（必须为有限正数）
        env: 环境变量（None = 继承父进程）
    """

    command: str
    args: Sequence[str] = ()
    working_dir: Path = field(default_factory=Path)
    idle_timeout: float = 5.0
    env: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        """规范化 args 为 tuple、working_dir 为 Path，并校验参数。"""
        object.__setattr__(self, "args", tuple(self.args))
        if not isinstance(self.working_dir, Path):
            object.__setattr__(self, "working_dir", Path(self.working_dir))
        if not self.command:
            raise ValueError("command must not be empty")
        if not (math.isfinite(self.idle_timeout) and self.idle_timeout > 0):
            raise ValueError(
                f"idle_timeout must be a positive finite number, got {self.idle_timeout}"
            )

    @property
    def argv(self) -> list[str]:
        """完整参数列表，命令在前。"""
        return [self.command, *self.args]


@dataclass(frozen=True)
class LineEvent:
    """解码后的一行（不含行结束符）。"""

    source: StreamSource
    text: str


@dataclass(frozen=True)
class StreamClosed:
    """读取器在最后一行之后发送一次的完成信号。

    Attributes:
        source: 结束的流
        error: 导致流结束的读取错误，正常结束时为 None
    """

    source: StreamSource
    error: StreamError | None = None


StreamEvent = Union[LineEvent, StreamClosed]


@dataclass(frozen=True)
class ExecutionResult:
    """以状态 0 退出的运行结果。

    Attributes:
        returncode: 子进程退出码（总是 0）
        stdout_lines: 从 stdout 读取的行数
        stderr_lines: 从 stderr 读取的行数
        duration: 从启动到退出的耗时（秒）
    """

    returncode: int
    stdout_lines: int = 0
    stderr_lines: int = 0
    duration: float = 0.0
