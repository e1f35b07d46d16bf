"""ProcessRunner unit tests.

Test coverage:
- Shell execution and exit status
- Output discarding and stream inheritance
- Process isolation (new session/process group) and terminal sharing
- Termination of the group or the shell alone (SIGKILL and SIGTERM grace)
- Spawn/wait/kill failure taxonomy
- Cleanup behavior (shield from cancellation)
"""

from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path
from unittest import mock

import pytest

from runtil.errors import KillError, SpawnError, WaitError
from runtil.runtime.process_runner import (
    SHELL,
    ProcessRunner,
    ShellSpec,
    exit_code_from_returncode,
)


# =============================================================================
# Helpers
# =============================================================================


async def run_to_completion(runner: ProcessRunner, spec: ShellSpec) -> int:
    process = await runner.spawn(spec)
    try:
        return await runner.wait(process, spec)
    finally:
        await runner.safe_cleanup(process, spec)


# =============================================================================
# Basic Execution Tests
# =============================================================================


class TestBasicExecution:
    """Test basic shell execution."""

    @pytest.mark.asyncio
    async def test_success(self, runner: ProcessRunner):
        assert await run_to_completion(runner, ShellSpec("true")) == 0

    @pytest.mark.asyncio
    async def test_exit_code(self, runner: ProcessRunner):
        assert await run_to_completion(runner, ShellSpec("exit 42")) == 42

    @pytest.mark.asyncio
    async def test_shell_syntax_is_honored(self, runner: ProcessRunner, workspace: Path):
        """Pipes, redirection and quoting are interpreted by the shell."""
        out = workspace / "out.txt"
        spec = ShellSpec(f"echo 'a b' | tr ' ' '-' > {out}")
        assert await run_to_completion(runner, spec) == 0
        assert out.read_text().strip() == "a-b"

    @pytest.mark.asyncio
    async def test_discard_output(self, runner: ProcessRunner, capfd):
        """Poll-style specs do not write to runtil's streams."""
        spec = ShellSpec("echo hidden-out; echo hidden-err >&2", discard_output=True)
        assert await run_to_completion(runner, spec) == 0
        captured = capfd.readouterr()
        assert "hidden-out" not in captured.out
        assert "hidden-err" not in captured.err

    @pytest.mark.asyncio
    async def test_inherit_output(self, runner: ProcessRunner, capfd):
        """Run-style specs write straight to runtil's stdout."""
        assert await run_to_completion(runner, ShellSpec("echo visible")) == 0
        assert "visible" in capfd.readouterr().out


# =============================================================================
# Exit Code Mapping
# =============================================================================


class TestExitCodeMapping:
    """Test returncode -> exit code mapping."""

    @pytest.mark.parametrize("returncode", [0, 1, 42, 255])
    def test_normal_exit_passes_through(self, returncode):
        assert exit_code_from_returncode(returncode) == returncode

    @pytest.mark.parametrize("returncode", [-signal.SIGKILL, -signal.SIGTERM, -1])
    def test_signal_death_maps_to_one(self, returncode):
        assert exit_code_from_returncode(returncode) == 1


# =============================================================================
# Process Isolation Tests
# =============================================================================


class TestProcessIsolation:
    """Test process isolation (new session/process group)."""

    @pytest.mark.asyncio
    async def test_process_group_leader(self, runner: ProcessRunner):
        spec = ShellSpec("sleep 5", new_session=True)
        process = await runner.spawn(spec)
        try:
            assert os.getpgid(process.pid) == process.pid
            assert os.getsid(process.pid) != os.getsid(os.getpid())
        finally:
            await runner.safe_cleanup(process, spec)
        assert process.returncode is not None

    @pytest.mark.asyncio
    async def test_default_spec_shares_session(self, runner: ProcessRunner):
        """Without isolation the shell keeps runtil's session and process group."""
        spec = ShellSpec("sleep 5")
        process = await runner.spawn(spec)
        try:
            assert os.getsid(process.pid) == os.getsid(os.getpid())
            assert os.getpgid(process.pid) == os.getpgid(os.getpid())
        finally:
            await runner.safe_cleanup(process, spec)
        assert process.returncode is not None


# =============================================================================
# Termination Tests
# =============================================================================


class TestTermination:
    """Test process group termination."""

    @pytest.mark.asyncio
    async def test_kill_running_process(self, runner: ProcessRunner):
        spec = ShellSpec("sleep 100")
        process = await runner.spawn(spec)
        await runner.kill(process, spec)
        assert process.returncode == -signal.SIGKILL

    @pytest.mark.asyncio
    async def test_kill_reaches_whole_group(self, runner: ProcessRunner, workspace: Path):
        """A grandchild started by the shell dies with it."""
        marker = workspace / "survived"
        spec = ShellSpec(f"sh -c 'sleep 0.5; touch {marker}' & wait", new_session=True)
        process = await runner.spawn(spec)
        await asyncio.sleep(0.1)

        await runner.kill(process, spec)
        await asyncio.sleep(1.0)

        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_kill_shared_group_signals_shell_only(self, runner: ProcessRunner):
        """A shell in runtil's own process group is never signalled as a group."""
        spec = ShellSpec("sleep 100")
        process = await runner.spawn(spec)
        try:
            with mock.patch("runtil.runtime.process_runner.os.killpg") as killpg:
                await runner.kill(process, spec)
            killpg.assert_not_called()
            assert process.returncode == -signal.SIGKILL
        finally:
            await runner.safe_cleanup(process, spec)

    @pytest.mark.asyncio
    async def test_kill_already_exited_is_noop(self, runner: ProcessRunner):
        spec = ShellSpec("exit 3")
        process = await runner.spawn(spec)
        await runner.wait(process, spec)
        await runner.kill(process, spec)
        assert process.returncode == 3

    @pytest.mark.asyncio
    async def test_grace_period_allows_sigterm_handler(self, workspace: Path):
        """With a grace period the shell gets SIGTERM first."""
        runner = ProcessRunner(term_timeout=2.0, kill_timeout=2.0)
        marker = workspace / "termed"
        spec = ShellSpec(f"trap 'touch {marker}; exit 0' TERM; while :; do sleep 0.05; done")
        process = await runner.spawn(spec)
        await asyncio.sleep(0.2)

        await runner.kill(process, spec)

        assert marker.exists()
        assert process.returncode == 0

    @pytest.mark.asyncio
    async def test_grace_period_escalates_to_sigkill(self):
        runner = ProcessRunner(term_timeout=0.2, kill_timeout=2.0)
        spec = ShellSpec("trap '' TERM; while :; do sleep 0.05; done")
        process = await runner.spawn(spec)
        await asyncio.sleep(0.2)

        await runner.kill(process, spec)

        assert process.returncode == -signal.SIGKILL

    @pytest.mark.asyncio
    async def test_safe_cleanup_survives_cancellation(self, runner: ProcessRunner):
        """Cancelling the owning task still kills the process."""
        spec = ShellSpec("sleep 100")
        process = await runner.spawn(spec)

        async def owner():
            try:
                await runner.wait(process, spec)
            finally:
                await runner.safe_cleanup(process, spec)

        task = asyncio.create_task(owner())
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert process.returncode is not None


# =============================================================================
# Failure Taxonomy
# =============================================================================


class TestFailures:
    """Spawn/wait/kill failures raise the matching error."""

    @pytest.mark.asyncio
    async def test_spawn_failure_missing_shell(self, runner: ProcessRunner):
        with mock.patch("runtil.runtime.process_runner.SHELL", "/nonexistent/sh"):
            with pytest.raises(SpawnError) as exc_info:
                await runner.spawn(ShellSpec("true"))
        assert exc_info.value.command == "true"
        assert exc_info.value.exit_code == 1

    @pytest.mark.asyncio
    async def test_wait_failure(self, runner: ProcessRunner):
        process = mock.MagicMock()
        process.pid = 12345
        process.wait = mock.AsyncMock(side_effect=OSError("wait failed"))

        with pytest.raises(WaitError, match="wait failed"):
            await runner.wait(process, ShellSpec("sleep 1"))

    @pytest.mark.asyncio
    async def test_kill_failure(self, runner: ProcessRunner):
        spec = ShellSpec("sleep 100", new_session=True)
        process = await runner.spawn(spec)
        try:
            with mock.patch(
                "runtil.runtime.process_runner.os.killpg",
                side_effect=OSError("not allowed"),
            ):
                with pytest.raises(KillError, match="not allowed"):
                    await runner.kill(process, spec)
        finally:
            process.kill()
            await process.wait()

    @pytest.mark.asyncio
    async def test_kill_failure_shared_group(self, runner: ProcessRunner):
        spec = ShellSpec("sleep 100")
        process = await runner.spawn(spec)
        try:
            with mock.patch.object(
                process, "send_signal", side_effect=OSError("not allowed"),
            ):
                with pytest.raises(KillError, match="not allowed"):
                    await runner.kill(process, spec)
        finally:
            process.kill()
            await process.wait()

    @pytest.mark.asyncio
    async def test_kill_timeout(self):
        runner = ProcessRunner(term_timeout=0.0, kill_timeout=0.1)
        process = mock.MagicMock()
        process.pid = 12345
        process.returncode = None

        async def never_exits():
            await asyncio.sleep(10)

        process.wait = never_exits

        with mock.patch("runtil.runtime.process_runner.os.killpg"):
            with pytest.raises(KillError, match="after SIGKILL"):
                await runner.kill(process, ShellSpec("stubborn", new_session=True))

    @pytest.mark.asyncio
    async def test_safe_cleanup_logs_kill_failure(self, caplog):
        runner = ProcessRunner(term_timeout=0.0, kill_timeout=0.1)
        process = mock.MagicMock()
        process.pid = 12345
        process.returncode = None

        async def never_exits():
            await asyncio.sleep(10)

        process.wait = never_exits

        with mock.patch("runtil.runtime.process_runner.os.killpg"):
            await runner.safe_cleanup(process, ShellSpec("stubborn", new_session=True))

        assert "Cleanup failed" in caplog.text


# =============================================================================
# ShellSpec Tests
# =============================================================================


class TestShellSpec:
    """Test ShellSpec dataclass."""

    def test_argv(self):
        assert ShellSpec("echo hi").argv == [SHELL, "-c", "echo hi"]

    def test_frozen(self):
        spec = ShellSpec("true")
        with pytest.raises(AttributeError):
            spec.command = "false"  # type: ignore

    def test_default_values(self):
        spec = ShellSpec("true")
        assert spec.discard_output is False
        assert spec.new_session is False
