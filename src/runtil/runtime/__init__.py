"""Runtime module for shell process management.

This module provides `sh -c` execution, optionally session-isolated, with
reliable termination.
"""

from __future__ import annotations

from .process_runner import ProcessRunner, ShellSpec, exit_code_from_returncode

__all__ = [
    "ProcessRunner",
    "ShellSpec",
    "exit_code_from_returncode",
]
