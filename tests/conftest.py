"""Shared fixtures for vpsdash tests."""

import pytest

from vpsdash.authorizer import KillAuthorizer
from vpsdash.bandwidth import BandwidthAccumulator, BandwidthStore
from vpsdash.config import Settings
from vpsdash.context import ServiceContext
from vpsdash.controller import ServiceController
from vpsdash.detector import ProcessDetector
from vpsdash.diskusage import DiskUsageScanner
from vpsdash.errors import AlreadyGone
from vpsdash.models import ProcessSnapshot
from vpsdash.monitor import HostMonitor
from vpsdash.shell import CommandResult


class FakeProbe:
    """Stand-in for PortProbe with scripted answers."""

    def __init__(self, listening: bool = False, port_pid: int | None = None) -> None:
        self.listening = listening
        self.port_pid = port_pid
        self.probe_calls = 0
        self.lookup_calls = 0

    def resolve_host(self, host=None) -> str:
        return host or "127.0.0.1"

    async def is_port_listening(self, port, host=None) -> bool:
        self.probe_calls += 1
        return self.listening

    async def get_pid_listening_on_port(self, port) -> int | None:
        self.lookup_calls += 1
        return self.port_pid


class FakeRunner:
    """Async command runner returning canned output and recording calls."""

    def __init__(self, stdout: str = "", returncode: int = 0, exc: BaseException | None = None) -> None:
        self.stdout = stdout
        self.returncode = returncode
        self.exc = exc
        self.calls: list[list[str]] = []

    async def __call__(self, args, *, timeout, max_output=None) -> CommandResult:
        self.calls.append(list(args))
        if self.exc is not None:
            raise self.exc
        return CommandResult(returncode=self.returncode, stdout=self.stdout)


def make_proc(pid: int, name: str, command: str = "", cpu: float = 0.0, mem: float = 0.0) -> ProcessSnapshot:
    return ProcessSnapshot(pid=pid, name=name, command=command, cpu_percent=cpu, memory_percent=mem)


@pytest.fixture
def proc_factory():
    """Build ProcessSnapshot objects with short arguments."""
    return make_proc


@pytest.fixture
def minecraft_processes():
    """A typical process list with a Minecraft server and a node app."""
    return [
        make_proc(123, "java", "java -Xmx2G -jar minecraft_server.jar nogui", cpu=10.0, mem=40.0),
        make_proc(456, "node", "node server.js", cpu=1.0, mem=5.0),
    ]


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def fake_runner():
    return FakeRunner


class FakeSignaller:
    """Records signals; PIDs in ``gone`` behave as already exited."""

    def __init__(self, gone=()) -> None:
        self.sent: list[tuple[int, int]] = []
        self.gone = set(gone)

    def __call__(self, pid: int, sig: int) -> None:
        self.sent.append((pid, sig))
        if pid in self.gone:
            raise AlreadyGone(pid)


@pytest.fixture
def service_context(tmp_path, fake_probe, minecraft_processes):
    """A ServiceContext wired to fakes instead of the real host."""
    spawned: list[str] = []

    async def spawner(command, grace_period):
        spawned.append(command)
        return 900

    def process_source():
        return list(minecraft_processes)

    settings = Settings(bandwidth_store_path=tmp_path / "bandwidth.json", log_file=None)
    detector = ProcessDetector()
    signaller = FakeSignaller()
    context = ServiceContext(
        settings=settings,
        detector=detector,
        probe=fake_probe,
        authorizer=KillAuthorizer(detector, fake_probe, 25565, process_source=process_source),
        controller=ServiceController(
            detector,
            fake_probe,
            25565,
            "start-minecraft",
            0.1,
            process_source=process_source,
            spawner=spawner,
            signaller=signaller,
            poll_interval=0.01,
            settle_delay=0.01,
        ),
        scanner=DiskUsageScanner(runner=FakeRunner(stdout="15\t/home\n20\t/\n")),
        monitor=HostMonitor(BandwidthAccumulator(BandwidthStore(settings.bandwidth_store_path))),
        process_source=process_source,
        signaller=signaller,
    )
    context.spawned = spawned
    return context
