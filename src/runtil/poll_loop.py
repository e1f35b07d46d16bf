"""Poll loop: re-run the poll command until it succeeds or is cancelled."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from .cancellation import CancellationSignal
from .config import DEFAULT_POLL_INTERVAL
from .runtime import ProcessRunner, ShellSpec

__all__ = ["PollLoop", "PollResult"]

logger = logging.getLogger(__name__)


class PollResult(Enum):
    """How the poll loop ended."""

    CONDITION_MET = "condition_met"
    CANCELLED = "cancelled"


@dataclass
class PollLoop:
    """Runs the poll command at a fixed interval until it exits 0.

    Attempts are spaced at least `interval` seconds apart, measured from the
    start of one attempt to the start of the next. An attempt that itself
    takes `interval` or longer is followed immediately.

    Output of the poll command is discarded; only its exit status matters.
    A non-zero exit is the normal "not yet" answer, not an error.

    When cancelled while an attempt is in flight, that attempt's process
    group is killed and reaped before run() returns.

    Attributes:
        command: Poll command string
        cancel: Signal that stops the loop
        interval: Minimum seconds between attempt starts
        runner: Process runner used for each attempt
        attempts: Number of attempts started so far
    """

    command: str
    cancel: CancellationSignal
    interval: float = DEFAULT_POLL_INTERVAL
    runner: ProcessRunner = field(default_factory=ProcessRunner)
    attempts: int = 0

    async def run(self) -> PollResult:
        """Poll until the command succeeds or the loop is cancelled.

        Raises:
            SpawnError: If the shell cannot be launched
            WaitError: If an attempt's exit status cannot be observed
        """
        spec = ShellSpec(self.command, discard_output=True, new_session=True)

        while not self.cancel.is_cancelled:
            started = time.monotonic()
            self.attempts += 1

            process = await self.runner.spawn(spec)
            try:
                cancelled, returncode = await self.cancel.race(
                    self.runner.wait(process, spec)
                )
            finally:
                await self.runner.safe_cleanup(process, spec)

            if cancelled:
                break

            if returncode == 0:
                logger.debug(f"Poll condition met after {self.attempts} attempt(s)")
                return PollResult.CONDITION_MET

            elapsed = time.monotonic() - started
            logger.debug(
                f"Poll attempt {self.attempts} failed "
                f"returncode={returncode} elapsed={elapsed:.3f}s"
            )

            if elapsed < self.interval:
                if await self.cancel.sleep(self.interval - elapsed):
                    break

        logger.debug(f"Poll loop cancelled after {self.attempts} attempt(s)")
        return PollResult.CANCELLED
