"""Bounded wrappers around external commands."""

import asyncio
import contextlib
import logging
import subprocess
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT = 10 * 1024 * 1024  # 10 MiB


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Exit status and decoded stdout of a finished command."""

    returncode: int
    stdout: str


class OutputTooLarge(Exception):
    """A command wrote more than its output budget."""


Runner = Callable[..., Awaitable[CommandResult]]
Spawner = Callable[[str, float], Awaitable[int | None]]


async def run_command(
    args: Sequence[str],
    *,
    timeout: float,
    max_output: int = DEFAULT_MAX_OUTPUT,
) -> CommandResult:
    """
    Run a command without a shell and collect its stdout.

    The process is killed if it outlives ``timeout`` (raises TimeoutError) or
    writes more than ``max_output`` bytes (raises OutputTooLarge). A missing
    executable raises FileNotFoundError. Non-zero exits are returned, not
    raised; callers decide what an exit code means.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        stdout, returncode = await asyncio.wait_for(_communicate(process, max_output), timeout)
    except (TimeoutError, OutputTooLarge):
        _kill(process)
        await process.wait()
        raise
    except asyncio.CancelledError:
        _kill(process)
        raise
    return CommandResult(returncode=returncode, stdout=stdout.decode("utf-8", errors="replace"))


async def _communicate(process: asyncio.subprocess.Process, max_output: int) -> tuple[bytes, int]:
    assert process.stdout is not None
    chunks: list[bytes] = []
    size = 0
    while True:
        chunk = await process.stdout.read(64 * 1024)
        if not chunk:
            return b"".join(chunks), await process.wait()
        size += len(chunk)
        if size > max_output:
            raise OutputTooLarge(f"output exceeded {max_output} bytes")
        chunks.append(chunk)


def _kill(process: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        process.kill()


async def spawn_detached(command: str, grace_period: float) -> int | None:
    """
    Launch ``command`` through ``sh -c`` in its own session.

    Waits up to ``grace_period`` seconds for an immediate failure. Returns the
    PID if the command is still running (it is left running, detached) or
    finished with status 0. Raises ``subprocess.CalledProcessError`` if it
    exits non-zero inside the window and OSError if it cannot be launched.
    """
    process = await asyncio.create_subprocess_exec(
        "sh",
        "-c",
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
        start_new_session=True,
    )
    try:
        returncode = await asyncio.wait_for(process.wait(), grace_period)
    except TimeoutError:
        logger.info("Command backgrounded as pid %s", process.pid)
        return process.pid

    if returncode != 0:
        raise subprocess.CalledProcessError(returncode, command)
    logger.info("Command completed successfully inside the grace window")
    return process.pid


def tail_file(path: str | Path | None, lines: int = 120) -> str | None:
    """Return the last ``lines`` lines of a text file, or None if unreadable."""
    if not path:
        return None
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            return "".join(deque(handle, maxlen=lines))
    except OSError:
        return None
