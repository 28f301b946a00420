"""Host metrics and process enumeration for vpsdash."""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

import psutil

from vpsdash.bandwidth import BandwidthAccumulator
from vpsdash.cache import Clock, TTLCache
from vpsdash.errors import AlreadyGone, UnexpectedError
from vpsdash.models import FilesystemUsage, HostMetrics, MemoryBreakdown, ProcessSnapshot

logger = logging.getLogger(__name__)

METRICS_CACHE_TTL = 5.0  # seconds
TOP_PROCESS_LIMIT = 15

ProcessSource = Callable[[], list[ProcessSnapshot]]
Signaller = Callable[[int, int], None]

# Attributes to fetch in oneshot
_PROCESS_ATTRS = ["pid", "name", "cmdline", "cpu_percent", "memory_percent", "memory_info"]


def collect_processes() -> list[ProcessSnapshot]:
    """
    Collect snapshots of all running processes.

    Uses psutil.process_iter() with oneshot() context manager for efficiency.
    Processes that vanish mid-iteration, deny access or are zombies are skipped.
    """
    processes: list[ProcessSnapshot] = []

    for proc in psutil.process_iter(attrs=_PROCESS_ATTRS):
        try:
            with proc.oneshot():
                info = proc.info

                cmdline = info.get("cmdline") or []
                command = " ".join(cmdline) if cmdline else info.get("name") or ""

                mem_info = info.get("memory_info")
                memory_rss = mem_info.rss if mem_info else 0

                processes.append(
                    ProcessSnapshot(
                        pid=info.get("pid", 0),
                        name=info.get("name") or "",
                        command=command,
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        memory_percent=info.get("memory_percent") or 0.0,
                        memory_rss=memory_rss,
                    )
                )

        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    return processes


def send_signal(pid: int, sig: int) -> None:
    """
    Send ``sig`` to ``pid``.

    Raises AlreadyGone if the process no longer exists and UnexpectedError if
    the signal could not be delivered for any other reason.
    """
    try:
        psutil.Process(pid).send_signal(sig)
    except psutil.NoSuchProcess as exc:
        raise AlreadyGone(pid) from exc
    except psutil.AccessDenied as exc:
        logger.error("Access denied sending signal %s to pid %s", sig, pid)
        raise UnexpectedError("Failed to signal process") from exc


def network_totals() -> tuple[int, int]:
    """Cumulative (rx, tx) bytes since boot over all non-loopback interfaces."""
    rx = tx = 0
    for nic, counters in psutil.net_io_counters(pernic=True).items():
        if nic.startswith("lo"):
            continue
        rx += counters.bytes_recv
        tx += counters.bytes_sent
    return rx, tx


class HostMonitor:
    """
    Collects host metrics using psutil.

    The metrics snapshot is cached for a few seconds (last writer wins) and
    every fresh collection feeds the monthly bandwidth accumulator.
    """

    def __init__(
        self,
        bandwidth: BandwidthAccumulator,
        clock: Clock = time.monotonic,
        cache_ttl: float = METRICS_CACHE_TTL,
    ) -> None:
        self._bandwidth = bandwidth
        self._cache: TTLCache[str, HostMetrics] = TTLCache(cache_ttl, clock)
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent()

    def metrics(self) -> HostMetrics:
        """Return the cached metrics snapshot, refreshing it when stale."""
        cached = self._cache.get("metrics")
        if cached is not None:
            return cached

        snapshot = self._collect()
        self._cache.set("metrics", snapshot)
        return snapshot

    def _collect(self) -> HostMetrics:
        now = datetime.now(timezone.utc)
        mem = psutil.virtual_memory()
        try:
            disk = psutil.disk_usage("/")
            disk_total, disk_used, disk_percent = disk.total, disk.used, disk.percent
        except OSError:
            logger.warning("Could not read usage of /", exc_info=True)
            disk_total = disk_used = 0
            disk_percent = 0.0

        rx, tx = network_totals()
        record = self._bandwidth.update(rx, tx, now)

        return HostMetrics(
            cpu_percent=psutil.cpu_percent(),
            cpu_cores=psutil.cpu_count() or 1,
            memory_total=mem.total,
            memory_used=mem.used,
            memory_percent=mem.percent,
            disk_total=disk_total,
            disk_used=disk_used,
            disk_percent=disk_percent,
            rx_bytes=rx,
            tx_bytes=tx,
            month=record.month,
            month_bytes=record.month_bytes,
            timestamp=now.isoformat(),
        )

    @staticmethod
    def top_processes(
        processes: list[ProcessSnapshot], limit: int = TOP_PROCESS_LIMIT
    ) -> list[ProcessSnapshot]:
        """Processes using memory, largest first."""
        using_memory = [proc for proc in processes if proc.memory_percent > 0]
        return sorted(using_memory, key=lambda p: p.memory_percent, reverse=True)[:limit]

    @staticmethod
    def memory_breakdown() -> MemoryBreakdown:
        """RAM categories and swap usage."""
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        # active, buffers and cached are platform-specific fields
        return MemoryBreakdown(
            total=mem.total,
            used=mem.used,
            free=mem.free,
            active=getattr(mem, "active", 0),
            available=mem.available,
            buffers=getattr(mem, "buffers", 0),
            cached=getattr(mem, "cached", 0),
            swap_total=swap.total,
            swap_used=swap.used,
            swap_free=swap.free,
        )

    @staticmethod
    def filesystems() -> list[FilesystemUsage]:
        """Usage of every mounted physical filesystem."""
        result: list[FilesystemUsage] = []
        for part in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                continue
            result.append(
                FilesystemUsage(
                    device=part.device,
                    mount=part.mountpoint,
                    fstype=part.fstype,
                    size_bytes=usage.total,
                    used_bytes=usage.used,
                    avail_bytes=usage.free,
                    use_percent=round(usage.percent, 1),
                )
            )
        return result
