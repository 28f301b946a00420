"""vpsdash - Main Textual application."""

import logging
from enum import Enum
from typing import Any

from dotenv import load_dotenv
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from vpsdash.actions import ActionResponse, DashboardActions
from vpsdash.config import Settings
from vpsdash.context import ServiceContext
from vpsdash.logging_config import setup_logging
from vpsdash.models import format_bytes

logger = logging.getLogger(__name__)


class SortKey(Enum):
    """Sort keys for the process table."""

    MEM = "mem"
    CPU = "cpu"
    PID = "pid"


def _bar(percent: float, color: str) -> str:
    bar_len = min(int(percent / 5), 20)
    return f"[{color}]█[/{color}]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)


class HeaderStats(Static):
    """Header widget showing CPU, memory, disk and network statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._metrics: dict[str, Any] = {}

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_usage_info(), id="usage-info"),
            Static(self._get_network_info(), id="network-info"),
        )

    def update_stats(self, metrics: dict[str, Any]) -> None:
        """Update the statistics from a metrics payload."""
        self._metrics = metrics
        try:
            self.query_one("#usage-info", Static).update(self._get_usage_info())
            self.query_one("#network-info", Static).update(self._get_network_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_usage_info(self) -> str:
        if not self._metrics:
            return "Loading metrics..."
        cpu = self._metrics["cpu"]
        mem = self._metrics["memory"]
        disk = self._metrics["disk"]
        return (
            f"CPU  \\[{_bar(cpu['usage'], 'green')}] {cpu['usage']:5.1f}% ({cpu['cores']} cores)\n"
            f"Mem  \\[{_bar(mem['usage'], 'cyan')}] {mem['used']}/{mem['total']}\n"
            f"Disk \\[{_bar(disk['usage'], 'yellow')}] {disk['used']}/{disk['total']}"
        )

    def _get_network_info(self) -> str:
        if not self._metrics:
            return ""
        net = self._metrics["network"]
        return (
            f"RX: {net['rxFormatted']}  TX: {net['txFormatted']}\n"
            f"This month ({net['month']}): {net['monthFormatted']}"
        )


class ServicePanel(Static):
    """Status line for the managed service."""

    DEFAULT_CSS = """
    ServicePanel {
        height: auto;
        padding: 0 1;
        border: solid $accent;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__("Service: checking...", *args, **kwargs)
        self._status: dict[str, Any] = {}

    @property
    def status(self) -> dict[str, Any]:
        return self._status

    def update_status(self, status: dict[str, Any]) -> None:
        self._status = status
        self.update(self.render_status(status))

    @staticmethod
    def render_status(status: dict[str, Any]) -> str:
        if not status.get("success"):
            return f"Service: [red]unavailable[/red] ({status.get('error', 'unknown error')})"
        label = "[green]RUNNING[/green]" if status["running"] else "[red]DOWN[/red]"
        pid = status["pid"] if status["pid"] is not None else "-"
        return (
            f"Service: {label}  state={status['state']}  port={status['port']}  pid={pid}\n"
            f"Reasons: {', '.join(status['reasons'])}"
        )


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()
        self._sort_key: SortKey = SortKey.MEM
        self._service_pid: int | None = None

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("", key="service", width=3)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("MEM%", key="mem", width=7)
        table.add_column("RES", key="rss", width=11)
        table.add_column("Name", key="name", width=16)
        table.add_column("Command", key="command")

    def selected_pid(self) -> int | None:
        """PID of the row under the cursor."""
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return None
        try:
            row_key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        except Exception:
            return None
        return int(row_key.value) if row_key.value is not None else None

    def update_processes(self, processes: list[dict[str, Any]], service_pid: int | None = None) -> None:
        """
        Update the process table with new data.

        Uses update_cell for existing rows to avoid re-rendering the whole table.
        """
        table = self.query_one("#process-table", DataTable)
        self._service_pid = service_pid
        rows = self._sort_processes(processes)
        new_pids = {row["pid"] for row in rows}

        for pid in self._current_pids - new_pids:
            try:
                table.remove_row(str(pid))
            except Exception:
                pass  # Row may not exist

        for row in rows:
            cells = self._cells(row)
            row_key = str(row["pid"])
            if row["pid"] in self._current_pids:
                try:
                    for column, value in cells.items():
                        table.update_cell(row_key, column, value)
                except Exception:
                    pass  # Row may have been removed
            else:
                try:
                    table.add_row(*cells.values(), key=row_key)
                except Exception:
                    pass  # Row may already exist

        self._current_pids = new_pids

    def _cells(self, row: dict[str, Any]) -> dict[str, str]:
        return {
            "pid": str(row["pid"]),
            "service": "★" if row["pid"] == self._service_pid else "",
            "cpu": f"{row['cpu']:5.1f}",
            "mem": f"{row['memoryPercent']:5.1f}",
            "rss": format_bytes(row["memoryBytes"], 1),
            "name": row["name"][:16],
            "command": row["command"],
        }

    def _sort_processes(self, processes: list[dict[str, Any]]) -> list[dict[str, Any]]:
        key_func = {
            SortKey.MEM: lambda p: p["memoryPercent"],
            SortKey.CPU: lambda p: p["cpu"],
            SortKey.PID: lambda p: p["pid"],
        }
        reverse = self._sort_key is not SortKey.PID
        return sorted(processes, key=key_func[self._sort_key], reverse=reverse)


class DiskPanel(Static):
    """Largest directories under / from the last disk scan."""

    DEFAULT_CSS = """
    DiskPanel {
        height: auto;
        max-height: 12;
        padding: 0 1;
        border: solid $secondary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__("Disk breakdown: press d to scan /", *args, **kwargs)

    def update_breakdown(self, breakdown: dict[str, Any]) -> None:
        lines = [f"Disk breakdown of {breakdown['mount']} (depth {breakdown['depth']}):"]
        lines.extend(f"{entry['formatted']:>12}  {entry['path']}" for entry in breakdown["entries"])
        self.update("\n".join(lines))


class VpsDashApp(App):
    """Main vpsdash application."""

    TITLE = "vpsdash"
    SUB_TITLE = "VPS Monitoring Dashboard"

    CSS = """
    Screen {
        layout: vertical;
    }

    Horizontal {
        height: auto;
    }

    #usage-info {
        width: 1fr;
        padding-right: 2;
    }

    #network-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("s", "start_service", "Start"),
        ("r", "restart_service", "Restart"),
        ("k", "kill_selected", "Kill"),
        ("d", "disk_scan", "Disk scan"),
    ]

    def __init__(self, context: ServiceContext | None = None, refresh_interval: float = 2.0) -> None:
        super().__init__()
        self._context = context or ServiceContext.from_settings(Settings.from_env())
        self._actions = DashboardActions(self._context)
        self._refresh_interval = refresh_interval

    @property
    def dashboard_actions(self) -> DashboardActions:
        return self._actions

    def compose(self) -> ComposeResult:
        yield HeaderStats(id="header-stats")
        yield ServicePanel(id="service-panel")
        yield ProcessTable()
        yield DiskPanel(id="disk-panel")
        yield Footer()

    def on_mount(self) -> None:
        self.set_interval(self._refresh_interval, self.refresh_data)

    async def refresh_data(self) -> None:
        """Fetch metrics, processes and service status and update the UI."""
        metrics = await self._actions.metrics()
        if metrics.ok:
            self.query_one("#header-stats", HeaderStats).update_stats(metrics.body)

        processes = await self._actions.processes()
        if processes.ok:
            self.query_one(ProcessTable).update_processes(
                processes.body["processes"], processes.body["servicePid"]
            )

        status = await self._actions.service_status()
        self.query_one("#service-panel", ServicePanel).update_status(
            status.body if status.ok else {"success": False, **status.body}
        )

    def _report(self, response: ActionResponse) -> None:
        if response.ok:
            self.notify(str(response.body.get("message", "Done")))
        else:
            self.notify(str(response.body.get("error", "Request failed")), severity="error")

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_start_service(self) -> None:
        self.notify("Starting service...")
        self.run_worker(self._start_service(), group="service", exclusive=True)

    async def _start_service(self) -> None:
        self._report(await self._actions.start_service())

    async def action_restart_service(self) -> None:
        self._report(await self._actions.restart_service())

    async def action_kill_selected(self) -> None:
        pid = self.query_one(ProcessTable).selected_pid()
        if pid is None:
            self.notify("No process selected", severity="warning")
            return
        self._report(await self._actions.kill_process(pid))

    def action_disk_scan(self) -> None:
        self.notify("Scanning disk usage...")
        self.run_worker(self._disk_scan(), group="disk", exclusive=True)

    async def _disk_scan(self) -> None:
        response = await self._actions.disk_breakdown()
        if response.ok:
            self.query_one("#disk-panel", DiskPanel).update_breakdown(response.body)
        else:
            self._report(response)

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        await self._context.aclose()
        self.exit()


def main() -> None:
    """Entry point for the vpsdash application."""
    load_dotenv()
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    app = VpsDashApp(ServiceContext.from_settings(settings))
    app.run()


if __name__ == "__main__":
    main()
