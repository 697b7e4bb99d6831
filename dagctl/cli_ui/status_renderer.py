"""Rich rendering of execution and vertex statuses.

SECURITY: Vertex names and messages come from job output, so every
user-controlled string is escaped to prevent Rich markup injection.
"""

from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from dagctl.core.models import Execution, VertexPhase

PHASE_STYLES = {
    VertexPhase.PENDING: "[dim]○ Pending[/]",
    VertexPhase.RUNNING: "[blue]⟳ Running[/]",
    VertexPhase.SUCCEEDED: "[green]✓ Succeeded[/]",
    VertexPhase.FAILED: "[red]✗ Failed[/]",
    VertexPhase.ERROR: "[red bold]! Error[/]",
}

MAX_MESSAGE_WIDTH = 40


def format_phase(phase: VertexPhase | None) -> str:
    if phase is None:
        return "[dim]-[/]"
    return PHASE_STYLES.get(phase, escape(str(phase)))


def format_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _truncate(text: str) -> str:
    text = escape(text)
    if len(text) > MAX_MESSAGE_WIDTH:
        return text[: MAX_MESSAGE_WIDTH - 3] + "..."
    return text


class StatusTableRenderer:
    """Renders an execution's status as a panel plus a vertex table."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_summary(self, execution: Execution) -> Panel:
        status = execution.status
        meta = execution.metadata
        title = escape(f"{meta.namespace}/{meta.name}" if meta.namespace else meta.name or "<unnamed>")
        return Panel(
            f"[bold]Phase:[/] {format_phase(status.phase)}\n"
            f"[bold]Started:[/] {format_time(status.started_at)}\n"
            f"[bold]Finished:[/] {format_time(status.finished_at)}\n"
            f"[bold]Message:[/] {escape(status.message) or '-'}",
            title=f"Execution: {title}",
        )

    def render_vertex_table(self, execution: Execution) -> Table:
        table = Table(title="Vertices")

        table.add_column("Vertex", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Phase", justify="center")
        table.add_column("Started")
        table.add_column("Finished")
        table.add_column("Children")
        table.add_column("Message", max_width=MAX_MESSAGE_WIDTH)

        for vertex in (execution.status.vertices or {}).values():
            table.add_row(
                escape(vertex.name),
                vertex.type.value,
                format_phase(vertex.phase),
                format_time(vertex.started_at),
                format_time(vertex.finished_at),
                escape(", ".join(vertex.children)) or "-",
                _truncate(vertex.message),
            )

        return table

    def print_execution(self, execution: Execution) -> None:
        self.console.print(self.render_summary(execution))
        self.console.print(self.render_vertex_table(execution))
