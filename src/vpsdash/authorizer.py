"""Default-deny authorization for kill requests."""

import logging
from collections.abc import Sequence

from vpsdash.detector import ProcessDetector
from vpsdash.models import KillDecision, KillReason, ProcessSnapshot
from vpsdash.monitor import ProcessSource, collect_processes
from vpsdash.probe import PortProbe

logger = logging.getLogger(__name__)


class KillAuthorizer:
    """
    Decides whether a PID may be killed.

    Checked in order: the detected service process, the explicit PID
    allowlist, then the name/command substring allowlist. Anything else is
    denied. Nothing is cached; every call looks at a fresh process list.
    """

    def __init__(
        self,
        detector: ProcessDetector,
        probe: PortProbe,
        service_port: int,
        allowed_pids: Sequence[int] = (),
        allowed_matchers: Sequence[str] = (),
        process_source: ProcessSource = collect_processes,
    ) -> None:
        self._detector = detector
        self._probe = probe
        self._port = service_port
        self._allowed_pids = frozenset(allowed_pids)
        self._allowed_matchers = tuple(m.lower() for m in allowed_matchers if m)
        self._process_source = process_source

    def _snapshot(self) -> list[ProcessSnapshot] | None:
        try:
            return self._process_source()
        except Exception:
            logger.exception("Process enumeration failed during kill authorization")
            return None

    async def detected_service_pid(self, processes: list[ProcessSnapshot] | None = None) -> int | None:
        """PID of the managed service, falling back to the port owner."""
        if processes is None:
            processes = self._snapshot()
        if processes:
            detection = self._detector.detect(processes)
            if detection.matched:
                return detection.pid
        return await self._probe.get_pid_listening_on_port(self._port)

    async def is_kill_pid_allowed(self, pid: int) -> KillDecision:
        processes = self._snapshot()

        service_pid = await self.detected_service_pid(processes)
        if service_pid is not None and pid == service_pid:
            return KillDecision(allowed=True, reason=KillReason.MINECRAFT)

        if pid in self._allowed_pids:
            return KillDecision(allowed=True, reason=KillReason.ALLOWLIST_PID)

        if self._allowed_matchers and processes:
            target = next((proc for proc in processes if proc.pid == pid), None)
            if target is not None:
                haystack = f"{target.name} {target.command}".lower()
                if any(matcher in haystack for matcher in self._allowed_matchers):
                    return KillDecision(allowed=True, reason=KillReason.ALLOWLIST_MATCH)

        logger.info("Kill request for pid %s denied", pid)
        return KillDecision(allowed=False, reason=KillReason.NOT_ALLOWLISTED)
