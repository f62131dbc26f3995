"""Async wrappers around external programs."""

import asyncio
import os
import shlex
import shutil
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .errors import CommandError
from .logging_config import LOGGER


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a finished command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str


def command_exists(name: str) -> bool:
    """Check whether an executable is reachable on PATH."""
    return shutil.which(name) is not None


async def run_command(
    args: Sequence[str],
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> ProcessResult:
    """Run a command and capture its text output.

    Args:
        args: Argument vector, first element is the program
        env: Extra environment variables layered over the current environment
        check: Raise CommandError on a non-zero exit status

    Returns:
        ProcessResult with decoded stdout and stderr

    Raises:
        CommandError: If the program cannot be started, or exits non-zero with check set
    """
    argv = [str(arg) for arg in args]
    merged_env = {**os.environ, **env} if env else None
    LOGGER.debug("Running %s", shlex.join(argv))

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=merged_env,
        )
    except OSError as e:
        raise CommandError(argv, None, str(e)) from e

    stdout, stderr = await proc.communicate()
    result = ProcessResult(
        args=argv,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )

    if check and result.returncode != 0:
        raise CommandError(argv, result.returncode, result.stderr)
    return result


async def spawn_detached(command: str) -> asyncio.subprocess.Process:
    """Start a command line through the platform shell without waiting for it.

    Used for launching browsers, where launch strings such as ``start firefox``
    only exist as shell builtins. On POSIX the command is backgrounded inside the
    shell, so the returned shell process exits at once and can be reaped while
    the browser keeps running. ``start`` already detaches on Windows.
    """
    if sys.platform != "win32":
        command = f"{command} &"
    LOGGER.debug("Launching %s", command)
    return await asyncio.create_subprocess_shell(
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
