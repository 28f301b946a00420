"""Data models for vpsdash."""

from dataclasses import dataclass
from enum import Enum


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a process state."""

    pid: int
    name: str
    command: str
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    memory_rss: int = 0  # Bytes


class DetectionReason(str, Enum):
    """Why a detection did or did not match."""

    DEFAULT = "default"
    DEFAULT_NO_MATCH = "default:no-match"
    ENV_OVERRIDE = "env-override"
    ENV_OVERRIDE_NO_MATCH = "env-override:no-match"


@dataclass(slots=True, frozen=True)
class DetectionResult:
    """Outcome of looking for the managed service in a process list."""

    matched: bool
    pid: int | None
    reason: DetectionReason
    rule: str | None = None


class KillReason(str, Enum):
    """Why a kill request was allowed or denied."""

    MINECRAFT = "minecraft"
    ALLOWLIST_PID = "env:allowlist-pid"
    ALLOWLIST_MATCH = "env:allowlist-match"
    NOT_ALLOWLISTED = "not-allowlisted"


@dataclass(slots=True, frozen=True)
class KillDecision:
    """Result of the kill authorization gate."""

    allowed: bool
    reason: KillReason


class ServiceState(str, Enum):
    """Lifecycle states of the managed service as seen by the controller."""

    STOPPED = "stopped"
    STARTING = "starting"
    VERIFYING = "verifying"
    RUNNING = "running"
    TIMED_OUT = "timed_out"


@dataclass(slots=True, frozen=True)
class ServiceStatus:
    """Derived view of the managed service. Never persisted."""

    running: bool
    listening: bool
    pid: int | None
    process_matched: bool
    reasons: tuple[str, ...]
    port: int

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "listening": self.listening,
            "pid": self.pid,
            "processMatched": self.process_matched,
            "reasons": list(self.reasons),
            "port": self.port,
        }


class StartOutcome(str, Enum):
    """How a successful start request ended."""

    ALREADY_RUNNING = "already-running"
    STARTED = "started"
    UNVERIFIED = "unverified"


@dataclass(slots=True, frozen=True)
class StartResult:
    """Successful result of a start request."""

    outcome: StartOutcome
    message: str
    pid: int | None = None


@dataclass(slots=True)
class BandwidthRecord:
    """Persisted month-to-date network usage."""

    month: str  # "YYYY-MM", UTC
    month_bytes: int
    last_total: int
    last_updated: str  # ISO-8601

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "monthBytes": self.month_bytes,
            "lastTotal": self.last_total,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BandwidthRecord":
        """Build a record from its JSON form, clamping counters to >= 0."""
        return cls(
            month=str(data["month"]),
            month_bytes=max(0, int(data.get("monthBytes") or 0)),
            last_total=max(0, int(data.get("lastTotal") or 0)),
            last_updated=str(data.get("lastUpdated") or ""),
        )


@dataclass(slots=True, frozen=True)
class DiskEntry:
    """One directory in a disk usage breakdown."""

    path: str
    bytes: int
    formatted: str

    def to_dict(self) -> dict:
        return {"path": self.path, "bytes": self.bytes, "formatted": self.formatted}


@dataclass(slots=True, frozen=True)
class DiskBreakdown:
    """Largest directories under a mount."""

    mount: str
    depth: int
    limit: int
    entries: tuple[DiskEntry, ...]

    def to_dict(self) -> dict:
        return {
            "mount": self.mount,
            "depth": self.depth,
            "limit": self.limit,
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass(slots=True, frozen=True)
class FilesystemUsage:
    """Usage of one mounted filesystem."""

    device: str
    mount: str
    fstype: str
    size_bytes: int
    used_bytes: int
    avail_bytes: int
    use_percent: float

    def to_dict(self) -> dict:
        return {
            "fs": self.device,
            "mount": self.mount,
            "type": self.fstype,
            "sizeBytes": self.size_bytes,
            "usedBytes": self.used_bytes,
            "availBytes": self.avail_bytes,
            "usePercent": self.use_percent,
            "size": format_bytes(self.size_bytes),
            "used": format_bytes(self.used_bytes),
            "avail": format_bytes(self.avail_bytes),
        }


@dataclass(slots=True)
class HostMetrics:
    """Snapshot of overall host state."""

    cpu_percent: float
    cpu_cores: int
    memory_total: int
    memory_used: int
    memory_percent: float
    disk_total: int
    disk_used: int
    disk_percent: float
    rx_bytes: int
    tx_bytes: int
    month: str
    month_bytes: int
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "cpu": {"usage": round(self.cpu_percent, 1), "cores": self.cpu_cores},
            "memory": {
                "usage": round(self.memory_percent, 1),
                "used": format_bytes(self.memory_used),
                "total": format_bytes(self.memory_total),
                "usedBytes": self.memory_used,
                "totalBytes": self.memory_total,
            },
            "disk": {
                "usage": round(self.disk_percent, 1),
                "used": format_bytes(self.disk_used),
                "total": format_bytes(self.disk_total),
                "usedBytes": self.disk_used,
                "totalBytes": self.disk_total,
            },
            "network": {
                "rxBytes": self.rx_bytes,
                "txBytes": self.tx_bytes,
                "rxFormatted": format_bytes(self.rx_bytes),
                "txFormatted": format_bytes(self.tx_bytes),
                "month": self.month,
                "monthBytes": self.month_bytes,
                "monthFormatted": format_bytes(self.month_bytes),
            },
            "timestamp": self.timestamp,
        }


_BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_bytes(size: int | float, decimals: int = 2) -> str:
    """Format bytes as a human-readable string, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    if decimals > 0:
        text = f"{value:.{decimals}f}".rstrip("0").rstrip(".")
    else:
        text = str(round(value))
    return f"{text} {_BYTE_UNITS[unit]}"


@dataclass(slots=True, frozen=True)
class MemoryBreakdown:
    """RAM categories and swap, in bytes."""

    total: int
    used: int
    free: int
    active: int
    available: int
    buffers: int
    cached: int
    swap_total: int
    swap_used: int
    swap_free: int

    def to_dict(self) -> dict:
        body: dict = {}
        for name in ("total", "used", "free", "active", "available", "buffers", "cached"):
            value = getattr(self, name)
            body[name] = format_bytes(value)
            body[f"{name}Bytes"] = value
        body["swapTotal"] = format_bytes(self.swap_total)
        body["swapUsed"] = format_bytes(self.swap_used)
        body["swapFree"] = format_bytes(self.swap_free)
        return body
