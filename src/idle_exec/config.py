"""idle-exec 环境变量配置管理。

环境变量:
    IDLE_EXEC_TIMEOUT: 空闲超时（秒）
        - 默认 5.0
        - 限制在 0.1-86400 秒之间

    IDLE_EXEC_TERM_TIMEOUT: 发送 SIGTERM 后等待退出的时间（秒）
        - 默认 2.0 秒

    IDLE_EXEC_KILL_TIMEOUT: 发送 SIGKILL 后等待退出的时间（秒）
        - 默认 1.0 秒

    IDLE_EXEC_MAX_LINE_BYTES: 单行输出的最大字节数
        - 默认 65536，最小 1024

    IDLE_EXEC_ENCODING: 子进程输出的编码
        - 默认 utf-8，未知编码回退到 utf-8

    IDLE_EXEC_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (DEBUG 日志输出到临时文件)
        - false/0/no = 关闭 (默认，INFO 日志输出到 stderr)
"""

from __future__ import annotations

import codecs
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_IDLE_TIMEOUT = 5.0
DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0
DEFAULT_MAX_LINE_BYTES = 64 * 1024
DEFAULT_ENCODING = "utf-8"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(
    value: str | None,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    """解析秒数，并限制在 [minimum, maximum] 之间。"""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    if seconds != seconds:  # NaN
        return default
    return max(minimum, min(seconds, maximum))


def _parse_max_line_bytes(value: str | None) -> int:
    if not value:
        return DEFAULT_MAX_LINE_BYTES
    try:
        return max(1024, int(value))
    except ValueError:
        return DEFAULT_MAX_LINE_BYTES


def _parse_encoding(value: str | None) -> str:
    """返回规范化的编码名称，未知编码返回默认值。"""
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return DEFAULT_ENCODING


@dataclass
class Config:
    """idle-exec 配置。

    Attributes:
        idle_timeout: 默认空闲超时（秒）
        term_timeout: SIGTERM 后等待时间（秒）
        kill_timeout: SIGKILL 后等待时间（秒）
        max_line_bytes: 单行输出最大字节数
        encoding: 子进程输出编码
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（log_debug=True 时自动生成）
    """

    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    encoding: str = DEFAULT_ENCODING
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(idle_timeout={self.idle_timeout}, "
            f"term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout}, "
            f"max_line_bytes={self.max_line_bytes}, "
            f"encoding={self.encoding}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """在系统临时目录生成带时间戳的日志文件路径。"""
    log_dir = Path(tempfile.gettempdir()) / "idle-exec"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"idle_exec_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("IDLE_EXEC_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        idle_timeout=_parse_seconds(
            os.environ.get("IDLE_EXEC_TIMEOUT"), DEFAULT_IDLE_TIMEOUT, 0.1, 86400.0
        ),
        term_timeout=_parse_seconds(
            os.environ.get("IDLE_EXEC_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 0.0, 60.0
        ),
        kill_timeout=_parse_seconds(
            os.environ.get("IDLE_EXEC_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 0.0, 60.0
        ),
        max_line_bytes=_parse_max_line_bytes(os.environ.get("IDLE_EXEC_MAX_LINE_BYTES")),
        encoding=_parse_encoding(os.environ.get("IDLE_EXEC_ENCODING")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
