"""
Session Renderer - terminal output for the PromptSite client

Renders session status, chat messages, project listings and errors with rich.
"""

from typing import Iterable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.box import ROUNDED

from promptsite.core.exceptions import OrchestratorError
from promptsite.modules.orchestrator import ChatMessage, OrchestratorEvent, SessionStatus
from promptsite.schemas.project import Project


STATE_STYLES = {
    "idle": "dim",
    "loading": "yellow",
    "ready": "green",
    "error": "red",
}


class SessionRenderer:
    """Renders orchestrator output in the terminal"""

    def __init__(self, console: Console, verbose: bool = False):
        self.console = console
        self.verbose = verbose

    def render_status(self, status: SessionStatus):
        state = status.state.value
        style = STATE_STYLES.get(state, "white")

        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("State", Text(state, style=style))
        table.add_row("Project", str(status.project_id) if status.project_id is not None else "-")
        if status.preview_url:
            table.add_row("Preview", Text(status.preview_url, style="cyan underline"))
        if status.error:
            table.add_row("Error", Text(status.error, style="red"))
        if status.failure and self.verbose:
            table.add_row(
                "Detail",
                f"{status.failure['code']} at {status.failure.get('stage') or '-'}: "
                f"{status.failure['message']}"
            )
        if status.recording_error:
            table.add_row(
                "Warning",
                Text("Preview is live but was not saved to the project", style="yellow")
            )

        self.console.print(Panel(table, title="PromptSite", border_style=style, box=ROUNDED))

        if self.verbose and status.transitions:
            for t in status.transitions:
                self.console.print(f"  [dim]{t['timestamp']}  {t['from']} → {t['to']}[/dim]")

    def render_message(self, message: Optional[ChatMessage]):
        if message is None:
            return
        if message.type == "user":
            self.console.print(f"[bold magenta]you>[/bold magenta] {message.content}")
            return

        style = "green" if message.success else "red"
        self.console.print(Panel(message.content, border_style=style, box=ROUNDED))
        if self.verbose and message.error:
            self.console.print(f"  [dim]{message.error['code']}: {message.error['message']}[/dim]")

    def render_messages(self, messages: Iterable[ChatMessage]):
        for message in messages:
            self.render_message(message)

    def render_projects(self, projects: Iterable[Project]):
        table = Table(title="Projects", box=ROUNDED)
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Preview", style="cyan")
        table.add_column("Created", style="dim")

        for project in projects:
            status = project.status.value if project.status else "-"
            table.add_row(
                str(project.id),
                project.name or "-",
                Text(status, style=STATE_STYLES.get(status, "white")),
                project.deployment_url or "-",
                project.created_at.strftime("%Y-%m-%d %H:%M") if project.created_at else "-"
            )

        if table.row_count == 0:
            self.console.print("[dim]No projects yet.[/dim]")
            return
        self.console.print(table)

    def render_error(self, error: Exception):
        if isinstance(error, OrchestratorError):
            self.console.print(f"[red]✗ {error.user_message}[/red]")
            if self.verbose:
                self.console.print(f"  [dim]{error.code}: {error.message}[/dim]")
        else:
            self.console.print(f"[red]✗ Error: {error}[/red]")

    def render_event(self, event: OrchestratorEvent):
        """Progress line for verbose runs"""
        self.console.print(f"[dim]· {event.type.value} {event.data}[/dim]")

    def render_json(self, payload: dict):
        """Machine-readable output for --json"""
        self.console.print_json(data=payload, default=str)

    def render_event_json(self, event: OrchestratorEvent):
        """One JSON line per event for --json --verbose"""
        self.console.print(event.to_json(), markup=False, highlight=False, soft_wrap=True)
