"""Error taxonomy for vpsdash actions.

Every OS-boundary call is wrapped so that only these kinds reach a caller.
Each error knows the HTTP-style status it maps to and the body a client is
allowed to see; internal detail stays in the logs.
"""

from typing import Any


class DashboardError(Exception):
    """Base class for errors surfaced by dashboard actions."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict[str, Any]:
        """Client-facing JSON body."""
        return {"error": self.message}


class ValidationError(DashboardError):
    """Bad input parameters."""

    status_code = 400


class AuthorizationError(DashboardError):
    """The requested PID is not on any allowlist."""

    status_code = 403

    def __init__(self, pid: int) -> None:
        super().__init__("PID not allowed")
        self.pid = pid

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message, "pid": self.pid}


class AlreadyGone(DashboardError):
    """The target process no longer exists. Callers treat this as success."""

    status_code = 200

    def __init__(self, pid: int) -> None:
        super().__init__(f"Process {pid} no longer exists")
        self.pid = pid


class SpawnFailure(DashboardError):
    """The start command exited non-zero inside the grace window."""

    def __init__(self, exit_code: int | None, log_tail: str | None = None) -> None:
        if exit_code is None:
            message = "Start command could not be launched"
        else:
            message = f"Start command failed immediately with exit code {exit_code}"
        super().__init__(message)
        self.exit_code = exit_code
        self.log_tail = log_tail

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message, "exitCode": self.exit_code, "logTail": self.log_tail}


class VerificationTimeout(DashboardError):
    """The service never became both listening and process-matched in time."""

    def __init__(self, message: str, log_tail: str | None = None, last_status: Any = None) -> None:
        super().__init__(message)
        self.log_tail = log_tail
        self.last_status = last_status

    def to_body(self) -> dict[str, Any]:
        status = self.last_status.to_dict() if self.last_status is not None else None
        return {"error": self.message, "logTail": self.log_tail, "status": status}


class ScanTimeout(DashboardError):
    """The disk usage scan exceeded its time bound."""

    status_code = 504


class UnexpectedError(DashboardError):
    """Catch-all. The message is generic; details are only logged."""
