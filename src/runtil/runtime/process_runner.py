"""Shell process runner with optional session isolation and reliable termination.

runtil runtime module

This module provides:
- `sh -c <command>` spawning, optionally in a new session (own process group)
- Exit status observation with an OS-level failure taxonomy
- Termination (optional SIGTERM grace -> SIGKILL)
- Cancel-safe cleanup using asyncio.shield

Key design points:
- POSIX only
- Isolated specs get start_new_session=True, so pid == pgid and the whole
  group (pipelines, subshells) is signalled on kill
- Non-isolated specs stay in runtil's session and process group and keep the
  controlling terminal; only the shell itself is signalled
- Spawn, wait and kill failures raise SpawnError / WaitError / KillError;
  the caller decides whether they are fatal
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from typing import Any

from ..config import DEFAULT_KILL_GRACE, DEFAULT_KILL_TIMEOUT
from ..errors import KillError, SpawnError, WaitError

__all__ = [
    "ProcessRunner",
    "ShellSpec",
    "SHELL",
    "exit_code_from_returncode",
]

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"


@dataclass(frozen=True)
class ShellSpec:
    """A shell command line to run through `sh -c`.

    Attributes:
        command: Opaque shell command string, passed verbatim
        discard_output: Attach stdin/stdout/stderr to DEVNULL instead of
            inheriting runtil's standard streams
        new_session: Start the shell in a new session, detached from the
            controlling terminal, so its whole process group can be killed
    """

    command: str
    discard_output: bool = False
    new_session: bool = False

    @property
    def argv(self) -> list[str]:
        return [SHELL, "-c", self.command]


def exit_code_from_returncode(returncode: int) -> int:
    """Map an asyncio returncode to a process exit code.

    A negative returncode means the child was killed by a signal and has no
    exit code of its own; that maps to 1.
    """
    if returncode < 0:
        return 1
    return returncode


@dataclass
class ProcessRunner:
    """Spawns, waits for, and kills `sh -c` processes.

    Example:
        runner = ProcessRunner()
        spec = ShellSpec("test -f /tmp/ready", discard_output=True, new_session=True)

        process = await runner.spawn(spec)
        try:
            returncode = await runner.wait(process, spec)
        finally:
            await runner.safe_cleanup(process, spec)
    """

    term_timeout: float = DEFAULT_KILL_GRACE
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    async def spawn(self, spec: ShellSpec) -> asyncio.subprocess.Process:
        """Start the shell process.

        Raises:
            SpawnError: If the shell cannot be launched
        """
        kwargs = self._build_subprocess_kwargs(spec)

        try:
            process = await asyncio.create_subprocess_exec(*spec.argv, **kwargs)
        except (OSError, ValueError) as e:
            raise SpawnError(spec.command, f"failed to spawn shell ({e})") from e

        logger.debug(
            f"Started subprocess pid={process.pid} command={spec.command!r} "
            f"discard_output={spec.discard_output} new_session={spec.new_session}"
        )
        return process

    async def wait(
        self,
        process: asyncio.subprocess.Process,
        spec: ShellSpec,
    ) -> int:
        """Wait for the process to exit and return its raw returncode.

        Raises:
            WaitError: If the exit status cannot be observed
        """
        try:
            returncode = await process.wait()
        except OSError as e:
            raise WaitError(spec.command, f"failed to wait for process pid={process.pid} ({e})") from e

        logger.debug(
            f"Subprocess completed pid={process.pid} "
            f"returncode={returncode}"
        )
        return returncode

    async def kill(
        self,
        process: asyncio.subprocess.Process,
        spec: ShellSpec,
    ) -> None:
        """Terminate the process (its group, when isolated) and reap the shell.

        Termination strategy:
        1. If term_timeout > 0, send SIGTERM and wait up to term_timeout
        2. Send SIGKILL
        3. Wait up to kill_timeout for the shell to exit

        Raises:
            KillError: If the signal cannot be delivered or the process is
                still alive after kill_timeout
        """
        if process.returncode is not None:
            return

        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if self.term_timeout > 0:
                self._send_signal(process, spec, signal.SIGTERM)
                try:
                    await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                    logger.debug(
                        f"Subprocess terminated gracefully pid={pid} "
                        f"returncode={process.returncode}"
                    )
                    return
                except asyncio.TimeoutError:
                    pass

            self._send_signal(process, spec, signal.SIGKILL)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            except asyncio.TimeoutError:
                raise KillError(
                    spec.command,
                    f"process pid={pid} still running {self.kill_timeout}s after SIGKILL",
                ) from None

            logger.debug(
                f"Subprocess killed pid={pid} "
                f"returncode={process.returncode}"
            )

        except ProcessLookupError:
            # Process already exited
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            raise KillError(spec.command, f"failed to kill process pid={pid} ({e})") from e

    async def safe_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        spec: ShellSpec,
    ) -> None:
        """Kill the process if still running, shielded from cancellation.

        Errors are logged, not raised; this runs on unwinding paths.
        """
        if process is None or process.returncode is not None:
            return
        try:
            await asyncio.shield(self._do_cleanup(process, spec))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._do_cleanup(process, spec)

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process,
        spec: ShellSpec,
    ) -> None:
        try:
            await self.kill(process, spec)
        except KillError as e:
            logger.warning(f"Cleanup failed: {e}")

    def _build_subprocess_kwargs(self, spec: ShellSpec) -> dict[str, Any]:
        """Build asyncio.create_subprocess_exec kwargs for the spec."""
        kwargs: dict[str, Any] = {}

        if spec.new_session:
            # pid == pgid, so the whole group can be signalled
            kwargs["start_new_session"] = True

        if spec.discard_output:
            kwargs["stdin"] = asyncio.subprocess.DEVNULL
            kwargs["stdout"] = asyncio.subprocess.DEVNULL
            kwargs["stderr"] = asyncio.subprocess.DEVNULL

        return kwargs

    def _send_signal(
        self,
        process: asyncio.subprocess.Process,
        spec: ShellSpec,
        sig: signal.Signals,
    ) -> None:
        """Send `sig` to the process group of an isolated spec, else to the shell.

        Raises:
            ProcessLookupError: If neither the group nor the process exists
            OSError: If the signal cannot be delivered
        """
        if not spec.new_session:
            # Shares runtil's process group; never signal the group
            process.send_signal(sig)
            logger.debug(f"Sent {sig.name} to pid={process.pid}")
            return

        try:
            os.killpg(process.pid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={process.pid}")
        except PermissionError as e:
            # Fallback to signalling just the shell
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)
