"""Bounded execution wrapper for external command-line tools.

This module provides a safe interface for executing command-line tools such
as tippecanoe as blocking subprocesses. Standard output and standard error
are merged and captured up to a byte ceiling so that a compiler which is
verbose on large inputs cannot exhaust memory, and an optional deadline
kills a process that never returns.

Unlike a plain ``subprocess.run`` call, a command that fails is not an
exception here: the caller receives a CommandResult describing how the
process ended and decides what failure means. Only a command that cannot
be started at all raises CommandError.

Example:
    Execute tippecanoe with a 500 MiB output ceiling:
        >>> from tilebuild.utils.command import run_command, CommandError

        >>> try:
        ...     result = run_command(
        ...         ["tippecanoe", "-o", "out.mbtiles", "in.geojson"],
        ...         max_output_bytes=500 * 1024 * 1024,
        ...     )
        ... except CommandError as e:
        ...     print(f"Command could not start: {e}")
        >>> result.ok
        True
"""

from __future__ import annotations

import dataclasses
import functools
import subprocess
import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterable

READ_BLOCK_BYTES = 64 * 1024


class CommandError(RuntimeError):
    """Exception raised when a subprocess command cannot be launched.

    This exception is raised when the executable does not exist or is not
    runnable. A process that starts and then exits badly is reported through
    CommandResult instead.

    Example:
        Handle a missing executable:
            >>> try:
            ...     run_command(["tippecanoe", "--version"])
            ... except CommandError as e:
            ...     print(f"tippecanoe is not installed: {e}")
    """


@dataclasses.dataclass
class CommandResult:
    """How a finished subprocess ended.

    Attributes:
        returncode: Exit status; negative when terminated by a signal.
        output: Combined stdout and stderr, decoded, possibly truncated.
        output_exceeded: The output ceiling was hit and the process killed.
        timed_out: The deadline expired and the process was killed.
        duration_seconds: Wall-clock time the process ran.
    """

    returncode: int
    output: str
    output_exceeded: bool = False
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def signalled(self) -> bool:
        return self.returncode < 0 or self.timed_out

    @property
    def ok(self) -> bool:
        return (
            self.returncode == 0
            and not self.output_exceeded
            and not self.timed_out
        )


def run_command(
    command: Iterable[str | pathlib.Path],
    workdir: pathlib.Path | None = None,
    max_output_bytes: int | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Execute a command, capturing bounded output.

    Runs the command as a blocking subprocess with stderr merged into stdout.
    Output is read in fixed-size blocks; once more than ``max_output_bytes``
    would be held, the process is killed and the result flagged with
    ``output_exceeded``. When ``timeout`` is given, a timer kills the
    process after that many seconds and the result is flagged with
    ``timed_out``.

    Args:
        command: Iterable arguments to execute (e.g., ["tippecanoe", ...]).
        workdir: Optional working directory for the command execution.
        max_output_bytes: Ceiling on captured output, None for unbounded.
        timeout: Seconds before the process is killed, None to wait forever.

    Returns:
        CommandResult describing the exit status and captured output.

    Raises:
        CommandError: if the executable cannot be found or started.
        ValueError: if timeout is not positive.

    Example:
        Execute with a deadline:
            >>> result = run_command(
            ...     ["tippecanoe", "-o", "out.mbtiles", "in.geojson"],
            ...     timeout=1800,
            ... )
            >>> if result.timed_out:
            ...     print("tippecanoe hung and was killed")
    """
    if timeout is not None and timeout <= 0:
        raise ValueError("timeout must be positive")
    args = [str(part) for part in command]
    started = time.monotonic()
    try:
        process = subprocess.Popen(
            args,
            cwd=workdir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as e:
        raise CommandError(f"cannot run {args[0]!r}: {e}") from e

    timed_out = threading.Event()

    def _expire() -> None:
        timed_out.set()
        process.kill()

    timer = (
        threading.Timer(timeout, _expire) if timeout is not None else None
    )
    buffer = bytearray()
    output_exceeded = False
    with process:
        if timer is not None:
            timer.start()
        try:
            read = functools.partial(
                process.stdout.read,  # type: ignore[union-attr]
                READ_BLOCK_BYTES,
            )
            for block in iter(read, b""):
                if (
                    max_output_bytes is not None
                    and len(buffer) + len(block) > max_output_bytes
                ):
                    output_exceeded = True
                    process.kill()
                    break
                buffer.extend(block)
            returncode = process.wait()
        finally:
            if timer is not None:
                timer.cancel()

    return CommandResult(
        returncode=returncode,
        output=buffer.decode("utf-8", errors="replace").strip(),
        output_exceeded=output_exceeded,
        # the deadline may fire after a clean exit but before cancel()
        timed_out=timed_out.is_set() and returncode != 0,
        duration_seconds=time.monotonic() - started,
    )
