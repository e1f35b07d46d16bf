"""runtil - 运行一个命令，直到另一个命令成功为止。

环境变量:
    RUNTIL_KILL_CODE: run 命令被终止时的退出码 (默认 124)
    RUNTIL_POLL_INTERVAL: poll 间隔秒数 (默认 2.0)
    RUNTIL_KILL_GRACE: SIGTERM 宽限秒数 (默认 0，直接 SIGKILL)
    RUNTIL_LOG_DEBUG: 调试日志写入临时文件 (默认 false)

用法:
    runtil [-v] <command to poll> [--] <command to run>
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
