"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
CHATTY_CLI_PATH = FIXTURES_DIR / "chatty_cli.py"


def build_chatty_args(*steps: str, ignore_term: bool = False) -> list[str]:
    """构造用 sys.executable 运行 chatty_cli.py 的参数列表。"""
    args = ["-u", str(CHATTY_CLI_PATH)]
    if ignore_term:
        args.append("--ignore-term")
    return [*args, *steps]


@pytest.fixture
def chatty_args():
    """chatty_cli.py 参数构造函数。"""
    return build_chatty_args


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """创建临时工作目录。"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace
