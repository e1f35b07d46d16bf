"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from unittest import mock

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from runtil.config import Config, reload_settings  # noqa: E402
from runtil.runtime import ProcessRunner  # noqa: E402

RUNTIL_ENV_VARS = (
    "RUNTIL_KILL_CODE",
    "RUNTIL_POLL_INTERVAL",
    "RUNTIL_KILL_GRACE",
    "RUNTIL_LOG_DEBUG",
)


@pytest.fixture
def clean_env():
    """移除所有 RUNTIL_* 环境变量，并在前后重新加载设置。"""
    env = {k: v for k, v in os.environ.items() if k not in RUNTIL_ENV_VARS}
    with mock.patch.dict(os.environ, env, clear=True):
        reload_settings()
        yield
    reload_settings()


@pytest.fixture
def runner() -> ProcessRunner:
    """短超时的 ProcessRunner。"""
    return ProcessRunner(term_timeout=0.0, kill_timeout=2.0)


@pytest.fixture
def fast_config() -> Config:
    """poll 间隔缩短的配置，用于集成测试。"""
    return Config(poll_interval=0.1, kill_timeout=2.0)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """临时工作目录。"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace
