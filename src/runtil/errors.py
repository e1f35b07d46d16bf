"""runtil 异常类。

所有致命错误都继承自 RuntilError，由 app.main 统一转换为退出码 1。
"""

from __future__ import annotations

__all__ = [
    "RuntilError",
    "UsageError",
    "ProcessError",
    "SpawnError",
    "WaitError",
    "KillError",
]


class RuntilError(Exception):
    """runtil 基础异常。"""

    exit_code: int = 1


class UsageError(RuntilError):
    """命令行参数错误（参数不足、poll/run 命令为空）。"""
    pass


class ProcessError(RuntilError):
    """子进程相关的致命错误。

    Attributes:
        command: 出错的 shell 命令字符串
        message: 错误描述
    """

    def __init__(self, command: str, message: str) -> None:
        self.command = command
        self.message = message
        super().__init__(f"{message}: {command!r}")


class SpawnError(ProcessError):
    """无法启动 shell 进程。"""
    pass


class WaitError(ProcessError):
    """进程已启动，但无法获取其退出状态。"""
    pass


class KillError(ProcessError):
    """取消时无法强制终止进程。"""
    pass
