"""Command-line option scanning and poll/run command partitioning.

The command line has the shape::

    runtil [options] <command to poll> [--] <command to run>

Everything after the leading options is split into two opaque shell command
strings. Without a ``--`` separator only the final token becomes the run
command, so ``runtil test -f done.flag ./server`` polls ``test -f done.flag``
and runs ``./server``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .errors import UsageError

__all__ = [
    "CliOptions",
    "ParsedArguments",
    "SEPARATOR",
    "USAGE",
    "parse_options",
    "partition_commands",
    "parse_arguments",
]

SEPARATOR = "--"
USAGE = "Usage: runtil [options] <command to poll> [--] <command to run>"

HELP_FLAGS = frozenset({"-h", "--help"})


@dataclass(frozen=True)
class CliOptions:
    """Flags found in the leading option prefix.

    Attributes:
        verbose: ``-v`` was given
        show_help: ``-h``/``--help`` was given
    """

    verbose: bool = False
    show_help: bool = False


@dataclass(frozen=True)
class ParsedArguments:
    """Result of parsing a full argument list."""

    poll_command: str
    run_command: str
    options: CliOptions


def parse_options(args: Sequence[str]) -> tuple[int, CliOptions]:
    """Scan leading flags.

    Args:
        args: Arguments excluding the program name

    Returns:
        Tuple of (number of tokens consumed, options). Scanning stops at the
        first token that is not a recognised flag; that token is not consumed
        and is not an error.
    """
    verbose = False
    show_help = False
    index = 0

    while index < len(args):
        arg = args[index]
        if arg == "-v":
            verbose = True
        elif arg in HELP_FLAGS:
            show_help = True
        else:
            break
        index += 1

    return index, CliOptions(verbose=verbose, show_help=show_help)


def partition_commands(args: Sequence[str], consumed: int) -> tuple[str, str]:
    """Split the non-flag arguments into (poll command, run command).

    Every ``--`` before the final token switches to the run side and is
    dropped. The final token always goes to the run command, whichever side
    is active.

    Args:
        args: Arguments excluding the program name
        consumed: Number of leading flag tokens already consumed

    Raises:
        UsageError: fewer than two non-flag arguments, or an empty poll/run
            command after partitioning
    """
    remaining = list(args[consumed:])
    if len(remaining) < 2:
        raise UsageError("expected a command to poll and a command to run")

    poll_parts: list[str] = []
    run_parts: list[str] = []
    separator_found = False

    for arg in remaining[:-1]:
        if arg == SEPARATOR:
            separator_found = True
        elif separator_found:
            run_parts.append(arg)
        else:
            poll_parts.append(arg)

    run_parts.append(remaining[-1])

    poll_command = " ".join(poll_parts)
    run_command = " ".join(run_parts)

    if not poll_command:
        raise UsageError("the command to poll is empty")
    if not run_command:
        raise UsageError("the command to run is empty")

    return poll_command, run_command


def parse_arguments(args: Sequence[str]) -> ParsedArguments:
    """Parse a full argument list (excluding the program name).

    Raises:
        UsageError: see partition_commands. Not raised when help was
            requested; the returned commands are then empty.
    """
    consumed, options = parse_options(args)
    if options.show_help:
        return ParsedArguments(poll_command="", run_command="", options=options)

    poll_command, run_command = partition_commands(args, consumed)
    return ParsedArguments(
        poll_command=poll_command,
        run_command=run_command,
        options=options,
    )
