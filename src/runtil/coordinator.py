"""Coordinator: race the poll loop against the run supervisor.

States: Running (both tasks active) -> Done.

- Run command exits first: stop the poll loop, report the run exit code.
- Poll command succeeds first: stop the run command, report whatever the
  supervisor resolves to (the kill exit code unless the run command finished
  at the same instant).
- runtil itself is interrupted (SIGINT/SIGTERM): both tasks are stopped and
  the outcome is 128 + signal number.

The coordinator only derives an Outcome. Exiting the process is left to the
caller.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum

from .cancellation import CancellationSignal
from .config import Config
from .errors import RuntilError
from .poll_loop import PollLoop, PollResult
from .runtime import ProcessRunner
from .supervisor import RunSupervisor

__all__ = ["Cause", "Coordinator", "Outcome"]

logger = logging.getLogger(__name__)


class Cause(Enum):
    """What ended the supervised interval."""

    RUN_COMPLETED = "run_completed"
    POLL_SUCCEEDED = "poll_succeeded"
    EXTERNAL = "external"


@dataclass(frozen=True)
class Outcome:
    """Terminating cause and the exit code runtil should report."""

    cause: Cause
    exit_code: int


class Coordinator:
    """Drives the poll loop and run supervisor concurrently.

    Must be created inside a running event loop.

    Example:
        ```python
        coordinator = Coordinator("test -f done", "./job.sh", config)
        outcome = await coordinator.run()
        sys.exit(outcome.exit_code)
        ```

    Attributes:
        cancel_run: Signal that stops the run supervisor
        cancel_poll: Signal that stops the poll loop
        supervisor: The run supervisor
        poll_loop: The poll loop
    """

    def __init__(
        self,
        poll_command: str,
        run_command: str,
        config: Config,
        runner: ProcessRunner | None = None,
    ) -> None:
        if runner is None:
            run_runner = ProcessRunner(
                term_timeout=config.kill_grace_period,
                kill_timeout=config.kill_timeout,
            )
            # Poll attempts are always killed immediately, grace applies to run only
            poll_runner = ProcessRunner(
                term_timeout=0.0,
                kill_timeout=config.kill_timeout,
            )
        else:
            run_runner = poll_runner = runner

        self.config = config
        self.cancel_run = CancellationSignal("run")
        self.cancel_poll = CancellationSignal("poll")
        self.supervisor = RunSupervisor(
            command=run_command,
            cancel=self.cancel_run,
            kill_exit_code=config.kill_exit_code,
            runner=run_runner,
        )
        self.poll_loop = PollLoop(
            command=poll_command,
            cancel=self.cancel_poll,
            interval=config.poll_interval,
            runner=poll_runner,
        )
        self._interrupt_signum: int | None = None

    @property
    def interrupted_by(self) -> int | None:
        """Signal number that interrupted runtil, if any."""
        return self._interrupt_signum

    def interrupt(self, signum: int) -> None:
        """Stop both tasks because runtil itself received `signum`.

        Only the first interrupt is recorded.
        """
        if self._interrupt_signum is None:
            self._interrupt_signum = signum
            logger.info(f"Interrupted by signal {signum}, stopping both commands")
        self.cancel_poll.cancel()
        self.cancel_run.cancel()

    async def run(self) -> Outcome:
        """Race both tasks and derive the outcome.

        Raises:
            RuntilError: Any fatal error from either task. The other task is
                torn down (killing its process) before the error propagates.
        """
        run_task = asyncio.create_task(self.supervisor.run(), name="runtil-run")
        poll_task = asyncio.create_task(self.poll_loop.run(), name="runtil-poll")

        try:
            done, _ = await asyncio.wait(
                {run_task, poll_task},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if run_task in done:
                code = run_task.result()
                self.cancel_poll.cancel()
                await self._settle(poll_task)
                return self._outcome(Cause.RUN_COMPLETED, code)

            if poll_task.result() is PollResult.CONDITION_MET:
                logger.debug("Poll condition met, stopping run command")
                self.cancel_run.cancel()
                return self._outcome(Cause.POLL_SUCCEEDED, await run_task)

            # Poll loop was cancelled without the run command finishing,
            # which only happens on interrupt
            return self._outcome(Cause.EXTERNAL, await run_task)

        finally:
            await self._teardown(run_task, poll_task)

    def _outcome(self, cause: Cause, code: int) -> Outcome:
        if self._interrupt_signum is not None:
            outcome = Outcome(Cause.EXTERNAL, 128 + self._interrupt_signum)
        else:
            outcome = Outcome(cause, code)
        logger.debug(f"Outcome: cause={outcome.cause.value} exit_code={outcome.exit_code}")
        return outcome

    async def _settle(self, task: asyncio.Task) -> None:
        """Await a losing task whose result no longer matters."""
        try:
            await task
        except RuntilError as e:
            logger.warning(f"Ignoring error from {task.get_name()} after outcome was decided: {e}")

    async def _teardown(self, *tasks: asyncio.Task) -> None:
        """Cancel and await any task still running."""
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, RuntilError):
                await task
