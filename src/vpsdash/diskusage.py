"""
Root filesystem usage breakdown.

Runs a same-filesystem ``du`` over ``/`` with a bounded depth, caches the
result briefly, and shares one in-flight scan between identical requests so
repeated clicks or polling cannot pile up concurrent scans.
"""

import asyncio
import logging
import time
from typing import Any

from vpsdash.cache import Clock, TTLCache
from vpsdash.errors import ScanTimeout, UnexpectedError, ValidationError
from vpsdash.models import DiskBreakdown, DiskEntry, format_bytes
from vpsdash.shell import DEFAULT_MAX_OUTPUT, OutputTooLarge, Runner, run_command

logger = logging.getLogger(__name__)

ALLOWED_MOUNT = "/"
DEPTH_RANGE = (1, 3)
LIMIT_RANGE = (1, 50)
SCAN_TIMEOUT = 45.0  # seconds
CACHE_TTL = 60.0  # seconds
EXCLUDED_PATHS = ("/proc", "/sys", "/dev", "/run")

ScanKey = tuple[str, int, int]


def parse_du_output(output: str) -> list[tuple[int, str]]:
    """Parse ``du -B1`` lines into ``(bytes, path)`` pairs, skipping junk."""
    pairs = []
    for line in output.splitlines():
        size, sep, path = line.partition("\t")
        if not sep or not path:
            continue
        try:
            pairs.append((int(size.strip()), path))
        except ValueError:
            continue
    return pairs


def _bounded_int(value: Any, name: str, bounds: tuple[int, int]) -> int:
    low, high = bounds
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}: must be an integer between {low} and {high}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}: must be an integer between {low} and {high}") from None
    if isinstance(value, float) and value != number:
        raise ValidationError(f"Invalid {name}: must be an integer between {low} and {high}")
    if not low <= number <= high:
        raise ValidationError(f"Invalid {name}: must be between {low} and {high}")
    return number


def validate_request(mount: Any, depth: Any, limit: Any) -> ScanKey:
    """Normalize and check breakdown parameters. Raises ValidationError."""
    if mount is None or mount == "":
        mount = ALLOWED_MOUNT
    if mount != ALLOWED_MOUNT:
        raise ValidationError("Invalid mount: only / is supported")
    return (
        ALLOWED_MOUNT,
        _bounded_int(depth, "depth", DEPTH_RANGE),
        _bounded_int(limit, "limit", LIMIT_RANGE),
    )


def build_du_command(mount: str, depth: int) -> list[str]:
    command = ["du", "-x", "-B1", f"--max-depth={depth}"]
    command.extend(f"--exclude={path}" for path in EXCLUDED_PATHS)
    command.append(mount)
    return command


class DiskUsageScanner:
    """Cached, coalescing disk usage breakdowns of the root filesystem."""

    def __init__(
        self,
        runner: Runner = run_command,
        clock: Clock = time.monotonic,
        cache_ttl: float = CACHE_TTL,
        scan_timeout: float = SCAN_TIMEOUT,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> None:
        self._runner = runner
        self._cache: TTLCache[ScanKey, DiskBreakdown] = TTLCache(cache_ttl, clock)
        self._pending: dict[ScanKey, asyncio.Task[DiskBreakdown]] = {}
        self._scan_timeout = scan_timeout
        self._max_output = max_output

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def breakdown(self, mount: Any = ALLOWED_MOUNT, depth: Any = 1, limit: Any = 20) -> DiskBreakdown:
        """
        Largest directories under ``mount``.

        Raises:
            ValidationError: bad mount, depth or limit. No scan is started.
            ScanTimeout: the scan ran past its time limit.
            UnexpectedError: any other scan failure.
        """
        key = validate_request(mount, depth, limit)

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        task = self._pending.get(key)
        if task is None:
            task = asyncio.create_task(self._scan(key), name=f"du-scan-{key[1]}-{key[2]}")
            self._pending[key] = task
        # Shield so one cancelled caller does not cancel the scan for the others
        return await asyncio.shield(task)

    async def _scan(self, key: ScanKey) -> DiskBreakdown:
        mount, depth, limit = key
        try:
            try:
                result = await self._runner(
                    build_du_command(mount, depth),
                    timeout=self._scan_timeout,
                    max_output=self._max_output,
                )
            except TimeoutError:
                logger.warning("Disk scan of %s (depth %s) timed out after %ss", mount, depth, self._scan_timeout)
                raise ScanTimeout("Disk scan timed out") from None
            except (OSError, OutputTooLarge) as exc:
                logger.error("Disk scan of %s failed: %s", mount, exc)
                raise UnexpectedError("Failed to scan disk usage") from None

            pairs = [(size, path) for size, path in parse_du_output(result.stdout) if path != mount]
            if not pairs and result.returncode != 0:
                logger.error("du exited with %s and produced no usable output", result.returncode)
                raise UnexpectedError("Failed to scan disk usage")

            pairs.sort(key=lambda pair: pair[0], reverse=True)
            breakdown = DiskBreakdown(
                mount=mount,
                depth=depth,
                limit=limit,
                entries=tuple(DiskEntry(path, size, format_bytes(size)) for size, path in pairs[:limit]),
            )
            self._cache.set(key, breakdown)
            return breakdown
        finally:
            self._pending.pop(key, None)
