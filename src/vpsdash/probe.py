"""TCP liveness probing and listening-socket ownership lookup."""

import asyncio
import contextlib
import logging
import re
from collections.abc import Callable

from vpsdash.shell import CommandResult, OutputTooLarge, Runner, run_command

logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"
PROBE_TIMEOUT = 0.35  # seconds
LOOKUP_TIMEOUT = 2.0  # seconds per introspection command

MAX_PORT = 65535

_SS_PID = re.compile(r"pid=(\d+)")

Connector = Callable[..., object]


def valid_port(port: object) -> int | None:
    """``port`` as an int if it is a usable TCP port, else None."""
    if isinstance(port, bool):
        return None
    try:
        number = int(port)
    except (TypeError, ValueError):
        return None
    return number if 0 < number <= MAX_PORT else None


def _first_pid_token(output: str) -> int | None:
    for token in output.split():
        if token.isdigit() and int(token) > 0:
            return int(token)
    return None


def _ss_pid(output: str) -> int | None:
    match = _SS_PID.search(output)
    if match and int(match.group(1)) > 0:
        return int(match.group(1))
    return None


class PortProbe:
    """
    Checks whether the service port accepts TCP connections.

    Probes default to loopback so a missing configuration never reaches out
    to a public interface.
    """

    def __init__(
        self,
        listen_host: str | None = None,
        timeout: float = PROBE_TIMEOUT,
        runner: Runner = run_command,
        connector: Connector = asyncio.open_connection,
    ) -> None:
        self._listen_host = listen_host
        self._timeout = timeout
        self._runner = runner
        self._connector = connector

    def resolve_host(self, host: str | None = None) -> str:
        """Explicit host, then configured listen host, then loopback."""
        return host or self._listen_host or LOOPBACK

    async def is_port_listening(self, port: int, host: str | None = None) -> bool:
        """True if a TCP connection to ``host:port`` succeeds within the timeout."""
        port = valid_port(port)
        if port is None:
            return False
        target = self.resolve_host(host)
        writer = None
        try:
            _reader, writer = await asyncio.wait_for(self._connector(target, port), self._timeout)
            return True
        except (OSError, TimeoutError):
            return False
        finally:
            if writer is not None:
                writer.close()
                with contextlib.suppress(OSError):
                    await writer.wait_closed()

    async def get_pid_listening_on_port(self, port: int) -> int | None:
        """
        Best-effort PID of the process listening on ``port``.

        Tries ``lsof`` first and ``ss`` second. Returns None when neither
        command is available or neither reports a PID.
        """
        port = valid_port(port)
        if port is None:
            return None

        lsof = await self._run(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN", "-t"])
        if lsof is not None:
            pid = _first_pid_token(lsof.stdout)
            if pid is not None:
                return pid

        ss = await self._run(["ss", "-ltnp", f"( sport = :{port} )"])
        if ss is not None:
            return _ss_pid(ss.stdout)
        return None

    async def _run(self, args: list[str]) -> CommandResult | None:
        try:
            return await self._runner(args, timeout=LOOKUP_TIMEOUT)
        except (OSError, TimeoutError, OutputTooLarge) as exc:
            logger.debug("%s unavailable for port lookup: %s", args[0], exc)
            return None
