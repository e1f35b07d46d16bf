"""runtil 应用入口。

包含日志配置、命令行处理和唯一的进程退出点。
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Sequence

from .arguments import USAGE, parse_arguments
from .config import Config, EnvSettings, get_settings, load_config
from .coordinator import Coordinator, Outcome
from .errors import RuntilError, UsageError
from .runtime import ProcessRunner
from .signal_manager import SignalManager

__all__ = ["supervise", "run_cli", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


async def supervise(
    poll_command: str,
    run_command: str,
    config: Config,
    runner: ProcessRunner | None = None,
) -> Outcome:
    """运行 poll/run 竞争直到得出结果。

    在协调器运行期间安装 SIGINT/SIGTERM 处理器。
    """
    coordinator = Coordinator(poll_command, run_command, config, runner=runner)
    signal_manager = SignalManager(coordinator)

    await signal_manager.start()
    try:
        return await coordinator.run()
    finally:
        await signal_manager.stop()


def setup_logging(settings: EnvSettings) -> None:
    """配置日志输出。

    默认 WARNING 级别输出到 stderr，避免与被监管命令的输出混在一起；
    RUNTIL_LOG_DEBUG 开启时以 DEBUG 级别写入临时文件。
    """
    log_handlers: list[logging.Handler] = []

    if settings.log_debug and settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.WARNING

    # root logger 保持 WARNING，只对 runtil 命名空间设置级别
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("runtil").setLevel(log_level)


def run_cli(args: Sequence[str], runner: ProcessRunner | None = None) -> int:
    """处理命令行并返回退出码（不退出进程）。

    Args:
        args: 不含程序名的参数列表
        runner: 可选的进程运行器（用于测试）

    Returns:
        runtil 应当使用的退出码
    """
    settings = get_settings()
    setup_logging(settings)

    try:
        parsed = parse_arguments(args)
    except UsageError as e:
        logger.debug(f"Usage error: {e}")
        print(f"runtil: {e}", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return e.exit_code

    if parsed.options.show_help:
        print(USAGE)
        return 0

    config = load_config(parsed.options, settings)
    logger.debug(f"Starting runtil: {config}")

    if config.verbose:
        print(f"Poll command: {parsed.poll_command}", flush=True)
        print(f"Run command: {parsed.run_command}", flush=True)

    try:
        outcome = asyncio.run(
            supervise(parsed.poll_command, parsed.run_command, config, runner=runner)
        )
    except RuntilError as e:
        logger.debug(f"Fatal: {type(e).__name__}: {e}")
        print(f"runtil: {e}", file=sys.stderr)
        return e.exit_code

    logger.debug(f"Exiting with code {outcome.exit_code} ({outcome.cause.value})")
    return outcome.exit_code


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    args = sys.argv[1:] if argv is None else argv
    sys.exit(run_cli(args))


if __name__ == "__main__":
    main()
