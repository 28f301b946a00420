"""Environment-driven configuration for vpsdash."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_PORT = 25565
DEFAULT_START_COMMAND = 'echo "MC_START_COMMAND not configured"'
DEFAULT_VERIFY_TIMEOUT = 15.0  # seconds
DEFAULT_BANDWIDTH_STORE = Path("data") / "bandwidth.json"
DEFAULT_LOG_FILE = Path("data") / "vpsdash.log"


def parse_list(raw: str | None) -> tuple[str, ...]:
    """Split a comma-separated value, dropping blanks."""
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_pid_list(raw: str | None) -> tuple[int, ...]:
    """Parse a comma-separated PID list, keeping only positive integers."""
    pids = []
    for item in parse_list(raw):
        try:
            pid = int(item)
        except ValueError:
            logger.warning("Ignoring non-integer PID %r in allowlist", item)
            continue
        if pid > 0:
            pids.append(pid)
    return tuple(pids)


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default


def _port_env(env: Mapping[str, str], name: str, default: int) -> int:
    port = _int_env(env, name, default)
    if not 0 < port <= 65535:
        logger.warning("Invalid %s=%s, using %s", name, port, default)
        return default
    return port


@dataclass(frozen=True)
class Settings:
    """Runtime settings. Build with :meth:`from_env`."""

    service_port: int = DEFAULT_SERVICE_PORT
    listen_host: str | None = None
    start_command: str = DEFAULT_START_COMMAND
    log_path: Path | None = None
    verify_timeout: float = DEFAULT_VERIFY_TIMEOUT  # 0 disables verification
    process_match: tuple[str, ...] = ()
    service_keyword: str = "minecraft"
    install_path: str | None = None
    allowed_kill_pids: tuple[int, ...] = ()
    allowed_kill_process_match: tuple[str, ...] = ()
    bandwidth_store_path: Path = DEFAULT_BANDWIDTH_STORE
    log_file: Path | None = DEFAULT_LOG_FILE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Read settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.
        """
        env = os.environ if environ is None else environ

        verify_ms = _int_env(env, "MC_START_VERIFY_TIMEOUT_MS", int(DEFAULT_VERIFY_TIMEOUT * 1000))
        log_path = env.get("MC_LOG_PATH") or None
        log_file = env.get("DASHBOARD_LOG_FILE")

        return cls(
            service_port=_port_env(env, "MC_PORT", DEFAULT_SERVICE_PORT),
            listen_host=env.get("MC_LISTEN_HOST") or env.get("MC_BIND_HOST") or None,
            start_command=env.get("MC_START_COMMAND") or DEFAULT_START_COMMAND,
            log_path=Path(log_path) if log_path else None,
            verify_timeout=max(0, verify_ms) / 1000,
            process_match=parse_list(env.get("MC_PROCESS_MATCH")),
            service_keyword=(env.get("MC_SERVICE_KEYWORD") or "minecraft").lower(),
            install_path=env.get("MC_INSTALL_PATH") or None,
            allowed_kill_pids=parse_pid_list(env.get("ALLOWED_KILL_PIDS")),
            allowed_kill_process_match=parse_list(env.get("ALLOWED_KILL_PROCESS_MATCH")),
            bandwidth_store_path=Path(env.get("BANDWIDTH_STORE_PATH") or DEFAULT_BANDWIDTH_STORE),
            # An empty DASHBOARD_LOG_FILE turns file logging off
            log_file=DEFAULT_LOG_FILE if log_file is None else (Path(log_file) if log_file else None),
            log_level=(env.get("DASHBOARD_LOG_LEVEL") or "INFO").upper(),
        )
