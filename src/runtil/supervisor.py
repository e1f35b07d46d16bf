"""Run supervisor: own the run command for its whole lifetime."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .cancellation import CancellationSignal
from .config import DEFAULT_KILL_EXIT_CODE
from .runtime import ProcessRunner, ShellSpec, exit_code_from_returncode

__all__ = ["RunSupervisor"]

logger = logging.getLogger(__name__)


@dataclass
class RunSupervisor:
    """Spawns the run command once and waits for it or for cancellation.

    The run command inherits runtil's standard streams.

    Attributes:
        command: Run command string
        cancel: Signal that stops the run command
        kill_exit_code: Result returned when the command is killed
        runner: Process runner
    """

    command: str
    cancel: CancellationSignal
    kill_exit_code: int = DEFAULT_KILL_EXIT_CODE
    runner: ProcessRunner = field(default_factory=ProcessRunner)

    async def run(self) -> int:
        """Run the command and return the supervised exit code.

        Returns:
            The command's own exit code (1 when killed by a signal from
            elsewhere), or kill_exit_code when cancelled first

        Raises:
            SpawnError: If the shell cannot be launched
            WaitError: If the exit status cannot be observed
            KillError: If the command cannot be killed on cancellation
        """
        spec = ShellSpec(self.command)
        process = await self.runner.spawn(spec)

        try:
            cancelled, returncode = await self.cancel.race(
                self.runner.wait(process, spec)
            )

            if not cancelled:
                code = exit_code_from_returncode(returncode)
                logger.debug(
                    f"Run command exited pid={process.pid} "
                    f"returncode={returncode} exit_code={code}"
                )
                return code

            logger.debug(f"Run command cancelled, killing pid={process.pid}")
            await self.runner.kill(process, spec)
            return self.kill_exit_code

        finally:
            # Never leave the run command behind, even when torn down
            await self.runner.safe_cleanup(process, spec)
