"""Start/restart orchestration for the managed service."""

import asyncio
import contextlib
import logging
import signal
import subprocess
import time
from pathlib import Path

from vpsdash.cache import Clock
from vpsdash.detector import ProcessDetector
from vpsdash.errors import AlreadyGone, SpawnFailure, VerificationTimeout
from vpsdash.models import ServiceState, ServiceStatus, StartOutcome, StartResult
from vpsdash.monitor import ProcessSource, Signaller, collect_processes, send_signal
from vpsdash.probe import PortProbe
from vpsdash.shell import Spawner, spawn_detached, tail_file

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0  # seconds between verification checks
GRACE_PERIOD = 0.75  # seconds to watch for an immediate spawn failure
SETTLE_DELAY = 2.0  # seconds between kill and start on restart
LOG_TAIL_LINES = 120


class Ticker:
    """
    Async iterator that ticks immediately, then every ``interval`` seconds,
    until ``timeout`` has elapsed or ``stop`` is set.

    Waiting happens on the stop event, so setting it ends the iteration
    without leaving a timer behind.
    """

    def __init__(
        self,
        interval: float,
        timeout: float,
        stop: asyncio.Event | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._interval = interval
        self._clock = clock
        self._deadline = clock() + timeout
        self._stop = stop or asyncio.Event()
        self._first = True

    @property
    def expired(self) -> bool:
        return self._clock() >= self._deadline

    def __aiter__(self) -> "Ticker":
        return self

    async def __anext__(self) -> float:
        if self._first:
            self._first = False
        else:
            remaining = self._deadline - self._clock()
            if remaining <= 0 or self._stop.is_set():
                raise StopAsyncIteration
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop.wait(), min(self._interval, remaining))
        if self._stop.is_set() or self.expired:
            raise StopAsyncIteration
        return self._clock()


class ServiceController:
    """
    Starts and restarts the managed service and reports its status.

    The service counts as running only when its port is listening AND a
    matching process exists.
    """

    def __init__(
        self,
        detector: ProcessDetector,
        probe: PortProbe,
        service_port: int,
        start_command: str,
        verify_timeout: float,
        log_path: str | Path | None = None,
        process_source: ProcessSource = collect_processes,
        spawner: Spawner = spawn_detached,
        signaller: Signaller = send_signal,
        poll_interval: float = POLL_INTERVAL,
        grace_period: float = GRACE_PERIOD,
        settle_delay: float = SETTLE_DELAY,
        clock: Clock = time.monotonic,
    ) -> None:
        self._detector = detector
        self._probe = probe
        self._port = service_port
        self._start_command = start_command
        self._verify_timeout = verify_timeout
        self._log_path = log_path
        self._process_source = process_source
        self._spawner = spawner
        self._signaller = signaller
        self._poll_interval = poll_interval
        self._grace_period = grace_period
        self._settle_delay = settle_delay
        self._clock = clock

        self._state = ServiceState.STOPPED
        self._start_lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def port(self) -> int:
        return self._port

    async def status(self) -> ServiceStatus:
        """Probe the port and look for the service process right now."""
        listening = await self._probe.is_port_listening(self._port)
        detection = self._detector.detect(self._process_source())

        reasons = [f"port {self._port} {'listening' if listening else 'not listening'}",
                   detection.reason.value]
        pid = detection.pid
        if pid is None and listening:
            pid = await self._probe.get_pid_listening_on_port(self._port)
            if pid is not None:
                reasons.append("pid-from-port")

        return ServiceStatus(
            running=listening and detection.matched,
            listening=listening,
            pid=pid,
            process_matched=detection.matched,
            reasons=tuple(reasons),
            port=self._port,
        )

    async def start(self) -> StartResult:
        """
        Launch the service and wait until it is verifiably running.

        Raises:
            SpawnFailure: the start command failed inside the grace window.
            VerificationTimeout: the service did not come up in time.
        """
        async with self._start_lock:
            current = await self.status()
            if current.running:
                self._state = ServiceState.RUNNING
                return StartResult(
                    StartOutcome.ALREADY_RUNNING,
                    f"Service already running (port {self._port} listening)",
                    current.pid,
                )

            self._state = ServiceState.STARTING
            logger.info("Starting service with command: %s", self._start_command)
            try:
                spawned_pid = await self._spawner(self._start_command, self._grace_period)
            except subprocess.CalledProcessError as exc:
                self._state = ServiceState.STOPPED
                logger.error("Start command exited with %s", exc.returncode)
                raise SpawnFailure(exc.returncode, tail_file(self._log_path, LOG_TAIL_LINES)) from exc
            except OSError as exc:
                self._state = ServiceState.STOPPED
                logger.error("Start command could not be launched: %s", exc)
                raise SpawnFailure(None, tail_file(self._log_path, LOG_TAIL_LINES)) from exc

            if self._verify_timeout <= 0:
                self._state = ServiceState.RUNNING
                return StartResult(StartOutcome.UNVERIFIED, "Service start command executed", spawned_pid)

            return await self._verify()

    async def _verify(self) -> StartResult:
        self._state = ServiceState.VERIFYING
        last = None
        ticker = Ticker(self._poll_interval, self._verify_timeout, self._stop, self._clock)
        async for _ in ticker:
            last = await self.status()
            if last.running:
                self._state = ServiceState.RUNNING
                logger.info("Service verified running as pid %s", last.pid)
                return StartResult(
                    StartOutcome.STARTED,
                    f"Service started (port {self._port} listening)",
                    last.pid,
                )

        self._state = ServiceState.TIMED_OUT
        waited_ms = int(self._verify_timeout * 1000)
        logger.warning("Service not verified after %sms (last status: %s)", waited_ms, last)
        raise VerificationTimeout(
            f"Service did not start (port {self._port} not listening with a matching process "
            f"after {waited_ms}ms)",
            log_tail=tail_file(self._log_path, LOG_TAIL_LINES),
            last_status=last,
        )

    async def restart(self) -> str:
        """
        Kill every matching instance and schedule a start.

        Returns as soon as the kill signals are sent; the start runs in the
        background after a settle delay, so callers poll :meth:`status`.
        """
        for proc in self._detector.matching(self._process_source()):
            try:
                self._signaller(proc.pid, signal.SIGKILL)
                logger.info("Sent SIGKILL to service pid %s", proc.pid)
            except AlreadyGone:
                logger.debug("Service pid %s already exited", proc.pid)

        task = asyncio.create_task(self._start_after_settle(), name="service-restart")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return "Service restart sequence initiated"

    async def _start_after_settle(self) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop.wait(), self._settle_delay)
        if self._stop.is_set():
            return
        try:
            await self.start()
        except (SpawnFailure, VerificationTimeout) as exc:
            logger.error("Restart failed: %s", exc.message)
        except Exception:
            logger.exception("Restart failed unexpectedly")

    async def aclose(self) -> None:
        """Stop pending restarts and verification loops."""
        self._stop.set()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
