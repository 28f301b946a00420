"""Wiring of all vpsdash services from one Settings object."""

import time
from dataclasses import dataclass

from vpsdash.authorizer import KillAuthorizer
from vpsdash.bandwidth import BandwidthAccumulator, BandwidthStore
from vpsdash.cache import Clock
from vpsdash.config import Settings
from vpsdash.controller import ServiceController
from vpsdash.detector import ProcessDetector
from vpsdash.diskusage import DiskUsageScanner
from vpsdash.monitor import HostMonitor, ProcessSource, Signaller, collect_processes, send_signal
from vpsdash.probe import PortProbe


@dataclass
class ServiceContext:
    """Owns every service and cache used by the dashboard actions."""

    settings: Settings
    detector: ProcessDetector
    probe: PortProbe
    authorizer: KillAuthorizer
    controller: ServiceController
    scanner: DiskUsageScanner
    monitor: HostMonitor
    process_source: ProcessSource
    signaller: Signaller

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Clock = time.monotonic,
        process_source: ProcessSource = collect_processes,
        signaller: Signaller = send_signal,
    ) -> "ServiceContext":
        detector = ProcessDetector.from_settings(settings)
        probe = PortProbe(listen_host=settings.listen_host)
        authorizer = KillAuthorizer(
            detector,
            probe,
            settings.service_port,
            allowed_pids=settings.allowed_kill_pids,
            allowed_matchers=settings.allowed_kill_process_match,
            process_source=process_source,
        )
        controller = ServiceController(
            detector,
            probe,
            settings.service_port,
            settings.start_command,
            settings.verify_timeout,
            log_path=settings.log_path,
            process_source=process_source,
            signaller=signaller,
            clock=clock,
        )
        bandwidth = BandwidthAccumulator(BandwidthStore(settings.bandwidth_store_path))
        return cls(
            settings=settings,
            detector=detector,
            probe=probe,
            authorizer=authorizer,
            controller=controller,
            scanner=DiskUsageScanner(clock=clock),
            monitor=HostMonitor(bandwidth, clock=clock),
            process_source=process_source,
            signaller=signaller,
        )

    async def aclose(self) -> None:
        await self.controller.aclose()
