"""信号管理模块。

将发送给 runtil 自身的 OS 信号转换为对两个任务的取消：
- SIGINT: 停止 poll 循环并终止 run 命令
- SIGTERM: 同上

run 命令与 runtil 同处一个会话和进程组，终端的 Ctrl+C 会同时到达两者；
poll 命令运行在独立会话中，只能由 runtil 负责终止。
退出码为 128 + 信号编号。
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from .coordinator import Coordinator

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SignalManager:
    """信号管理器。

    Example:
        ```python
        coordinator = Coordinator(poll_command, run_command, config)
        signal_manager = SignalManager(coordinator)

        await signal_manager.start()
        try:
            outcome = await coordinator.run()
        finally:
            await signal_manager.stop()
        ```

    Attributes:
        coordinator: 收到信号时要中断的协调器
    """

    def __init__(self, coordinator: Coordinator) -> None:
        """初始化信号管理器。

        Args:
            coordinator: 收到信号时要中断的协调器
        """
        self.coordinator = coordinator

        # 内部状态
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def start(self) -> None:
        """启动信号监听。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        for sig in HANDLED_SIGNALS:
            self._loop.add_signal_handler(sig, self._handle_signal, sig)

        logger.debug("Signal handlers installed (SIGINT, SIGTERM)")

    async def stop(self) -> None:
        """停止信号监听，恢复原始处理器。"""
        if not self._running:
            return

        self._running = False

        if self._loop:
            for sig in HANDLED_SIGNALS:
                try:
                    self._loop.remove_signal_handler(sig)
                except (ValueError, RuntimeError) as e:
                    logger.debug(f"Error removing signal handler for {sig.name}: {e}")

        logger.debug("Signal handlers removed")

    def _handle_signal(self, sig: signal.Signals) -> None:
        """处理 SIGINT / SIGTERM。

        重复收到信号时再次取消是幂等的，退出码以第一个信号为准
        （由协调器记录）。
        """
        if self.coordinator.interrupted_by is None:
            logger.info(f"{sig.name} received, stopping poll and run commands")
        else:
            logger.info(f"{sig.name} received again, already stopping")

        self.coordinator.interrupt(int(sig))
