"""runtil 配置管理。

配置来源只有两处：命令行前缀选项（见 arguments.parse_options）和环境变量。
没有配置文件。

环境变量:
    RUNTIL_KILL_CODE: poll 命令先成功、run 命令被终止时的退出码
        - 默认 124（与 timeout(1) 超时退出码一致）
        - 取值范围 0-255，无效值回退到默认值

    RUNTIL_POLL_INTERVAL: 两次 poll 之间的间隔（秒，按开始时间计）
        - 默认 2.0
        - 限制在 0.01-3600 秒范围

    RUNTIL_KILL_GRACE: 终止 run 命令时 SIGTERM 到 SIGKILL 之间的宽限时间（秒）
        - 默认 0（直接 SIGKILL）
        - 限制在 0-60 秒范围

    RUNTIL_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志以 DEBUG 级别输出到临时文件)
        - false/0/no = 关闭 (默认，WARNING 级别输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .arguments import CliOptions

__all__ = [
    "Config",
    "EnvSettings",
    "load_config",
    "load_settings",
    "get_settings",
    "reload_settings",
    "DEFAULT_KILL_EXIT_CODE",
    "DEFAULT_POLL_INTERVAL",
]

DEFAULT_KILL_EXIT_CODE = 124
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_KILL_GRACE = 0.0
DEFAULT_KILL_TIMEOUT = 5.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_exit_code(value: str | None) -> int:
    """解析退出码环境变量，超出 0-255 或无法解析时返回默认值。"""
    if not value:
        return DEFAULT_KILL_EXIT_CODE
    try:
        code = int(value.strip())
    except ValueError:
        return DEFAULT_KILL_EXIT_CODE
    if not 0 <= code <= 255:
        return DEFAULT_KILL_EXIT_CODE
    return code


def _parse_seconds(
    value: str | None,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    """解析秒数环境变量并限制范围。"""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    if seconds != seconds:  # NaN
        return default
    return max(minimum, min(seconds, maximum))


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "runtil"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"runtil_debug_{timestamp}_{os.getpid()}.log"

    return str(log_file.resolve())


@dataclass(frozen=True)
class EnvSettings:
    """从环境变量读取的设置。

    Attributes:
        kill_exit_code: run 命令被终止时的退出码
        poll_interval: poll 间隔（秒）
        kill_grace_period: SIGTERM 宽限时间（秒），0 表示直接 SIGKILL
        log_debug: 日志调试模式
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    kill_exit_code: int = DEFAULT_KILL_EXIT_CODE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    kill_grace_period: float = DEFAULT_KILL_GRACE
    log_debug: bool = False
    log_file: str | None = None


@dataclass(frozen=True)
class Config:
    """runtil 运行配置，启动时构建一次，之后不可变。

    Attributes:
        verbose: 是否在执行前打印解析后的 poll/run 命令
        kill_exit_code: poll 命令先成功时返回的退出码
        poll_interval: 两次 poll 开始之间的最小间隔（秒）
        kill_grace_period: 终止 run 命令时的 SIGTERM 宽限时间（秒）
        kill_timeout: SIGKILL 后等待进程退出的最长时间（秒）
        log_debug: 日志调试模式
        log_file: 日志文件路径
    """

    verbose: bool = False
    kill_exit_code: int = DEFAULT_KILL_EXIT_CODE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    kill_grace_period: float = DEFAULT_KILL_GRACE
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None


def load_settings() -> EnvSettings:
    """从环境变量加载设置。"""
    log_debug = _parse_bool(os.environ.get("RUNTIL_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return EnvSettings(
        kill_exit_code=_parse_exit_code(os.environ.get("RUNTIL_KILL_CODE")),
        poll_interval=_parse_seconds(
            os.environ.get("RUNTIL_POLL_INTERVAL"),
            DEFAULT_POLL_INTERVAL,
            minimum=0.01,
            maximum=3600.0,
        ),
        kill_grace_period=_parse_seconds(
            os.environ.get("RUNTIL_KILL_GRACE"),
            DEFAULT_KILL_GRACE,
            minimum=0.0,
            maximum=60.0,
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局设置实例（延迟加载）
_settings: EnvSettings | None = None


def get_settings() -> EnvSettings:
    """获取全局环境设置实例。"""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reload_settings() -> EnvSettings:
    """重新加载环境设置（用于测试）。"""
    global _settings
    _settings = load_settings()
    return _settings


def load_config(options: CliOptions, settings: EnvSettings | None = None) -> Config:
    """合并命令行选项与环境设置，构建最终配置。

    Args:
        options: parse_options 返回的命令行选项
        settings: 环境设置（默认使用全局实例）

    Returns:
        不可变的 Config
    """
    if settings is None:
        settings = get_settings()

    return Config(
        verbose=options.verbose,
        kill_exit_code=settings.kill_exit_code,
        poll_interval=settings.poll_interval,
        kill_grace_period=settings.kill_grace_period,
        log_debug=settings.log_debug,
        log_file=settings.log_file,
    )
