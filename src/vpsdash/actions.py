"""
Request handlers for dashboard actions.

Each handler returns an :class:`ActionResponse` with an HTTP status code and
a JSON-ready body, so any web framework or the Textual UI can use them.
Known failures become their taxonomy response; anything else is logged and
answered with a generic 500. OS error text never reaches the body.
"""

import logging
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import wraps
from typing import Any

from vpsdash.context import ServiceContext
from vpsdash.errors import AlreadyGone, AuthorizationError, DashboardError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ActionResponse:
    """Status code plus JSON body."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def handles_errors(failure_message: str) -> Callable:
    """Map raised errors of an action to responses."""

    def decorator(func: Callable[..., Awaitable[ActionResponse]]) -> Callable[..., Awaitable[ActionResponse]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> ActionResponse:
            try:
                return await func(*args, **kwargs)
            except DashboardError as exc:
                if exc.status_code >= 500:
                    logger.error("%s: %s", failure_message, exc.message)
                return ActionResponse(exc.status_code, exc.to_body())
            except Exception:
                logger.exception(failure_message)
                return ActionResponse(500, {"error": failure_message})

        return wrapper

    return decorator


def parse_pid(raw: Any) -> int:
    """Parse a PID from a path or form value. Raises ValidationError."""
    if isinstance(raw, bool):
        raise ValidationError("Invalid PID")
    try:
        pid = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid PID") from None
    # 0 and negative values address process groups
    if pid <= 0:
        raise ValidationError("Invalid PID")
    return pid


class DashboardActions:
    """All dashboard actions, bound to one :class:`ServiceContext`."""

    def __init__(self, context: ServiceContext) -> None:
        self._ctx = context

    @property
    def context(self) -> ServiceContext:
        return self._ctx

    @handles_errors("Failed to kill process")
    async def kill_process(self, raw_pid: Any) -> ActionResponse:
        pid = parse_pid(raw_pid)
        decision = await self._ctx.authorizer.is_kill_pid_allowed(pid)
        if not decision.allowed:
            raise AuthorizationError(pid)

        logger.info("Killing pid %s (allowed: %s)", pid, decision.reason.value)
        try:
            self._ctx.signaller(pid, signal.SIGTERM)
        except AlreadyGone:
            logger.info("Pid %s already exited", pid)
        return ActionResponse(
            200,
            {"success": True, "message": f"Process {pid} termination signal sent", "reason": decision.reason.value},
        )

    @handles_errors("Failed to get service status")
    async def service_status(self) -> ActionResponse:
        status = await self._ctx.controller.status()
        body = {"success": True, **status.to_dict(), "state": self._ctx.controller.state.value, "timestamp": _now()}
        return ActionResponse(200, body)

    @handles_errors("Failed to start service")
    async def start_service(self) -> ActionResponse:
        result = await self._ctx.controller.start()
        return ActionResponse(
            200,
            {"success": True, "message": result.message, "outcome": result.outcome.value, "pid": result.pid},
        )

    @handles_errors("Failed to restart service")
    async def restart_service(self) -> ActionResponse:
        message = await self._ctx.controller.restart()
        return ActionResponse(200, {"success": True, "message": message})

    @handles_errors("Failed to get disk breakdown")
    async def disk_breakdown(self, mount: Any = "/", depth: Any = 1, limit: Any = 20) -> ActionResponse:
        breakdown = await self._ctx.scanner.breakdown(mount, depth, limit)
        return ActionResponse(200, breakdown.to_dict())

    @handles_errors("Failed to get system metrics")
    async def metrics(self) -> ActionResponse:
        return ActionResponse(200, self._ctx.monitor.metrics().to_dict())

    @handles_errors("Failed to get process information")
    async def processes(self) -> ActionResponse:
        processes = self._ctx.process_source()
        service_pid = await self._ctx.authorizer.detected_service_pid(processes)
        top = self._ctx.monitor.top_processes(processes)
        return ActionResponse(
            200,
            {
                "breakdown": self._ctx.monitor.memory_breakdown().to_dict(),
                "processes": [
                    {
                        "pid": proc.pid,
                        "name": proc.name,
                        "cpu": round(proc.cpu_percent, 1),
                        "memoryPercent": round(proc.memory_percent, 2),
                        "memoryBytes": proc.memory_rss,
                        "command": proc.command[:50],
                    }
                    for proc in top
                ],
                "isServiceRunning": service_pid is not None,
                "servicePid": service_pid,
                "timestamp": _now(),
            },
        )

    @handles_errors("Failed to get disk details")
    async def disk_details(self) -> ActionResponse:
        return ActionResponse(
            200,
            {
                "filesystems": [fs.to_dict() for fs in self._ctx.monitor.filesystems()],
                "timestamp": _now(),
            },
        )
