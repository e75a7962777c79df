"""Rich console helpers: roadmap tree, progress tables, chat panels."""

from __future__ import annotations

from prompt_toolkit import PromptSession
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from roadmap_mentor.core.gate import check_project_details
from roadmap_mentor.models import ChatMessage, MessageStatus, PhaseStatus, Progress, Project, Role, Roadmap

console = Console()

# Prompt session for setup prompts (no history file)
_setup_session = PromptSession()

_STATUS_STYLE = {
    PhaseStatus.PENDING: "dim",
    PhaseStatus.IN_PROGRESS: "yellow",
    PhaseStatus.COMPLETED: "green",
}


def _check(completed: bool) -> str:
    return "[green]✔[/green]" if completed else "[dim]○[/dim]"


def show_projects(projects: list[Project]) -> None:
    table = Table(title="Your Projects", show_lines=True)
    table.add_column("#", style="cyan", width=3)
    table.add_column("Name", style="green")
    table.add_column("Domain", style="white")
    table.add_column("Target", style="yellow", width=12)
    table.add_column("ID", style="dim")
    for i, p in enumerate(projects, 1):
        table.add_row(str(i), p.name, p.domain or "-", p.target_date.isoformat() if p.target_date else "-", p.id)
    console.print(table)


def show_message(message: ChatMessage) -> None:
    if message.role == Role.USER:
        title, border = "You", "cyan"
    else:
        title, border = "Mentor", "green"
    if message.status == MessageStatus.UNSENT:
        title += " (not sent)"
        border = "red"
    console.print(Panel(Markdown(message.content), title=title, border_style=border))


def show_roadmap(roadmap: Roadmap | None) -> None:
    """Display the roadmap as a tree. Ids shown are the ones /toggle expects."""
    if roadmap is None or not roadmap.phases:
        console.print("[dim]No roadmap yet. Use /generate once the mentor knows enough about your project.[/dim]")
        return
    tree = Tree("[bold]Roadmap[/bold]")
    for phase in roadmap.phases:
        branch = tree.add(f"[bold cyan]{phase.id}[/bold cyan] {phase.name} [dim]{phase.description}[/dim]")
        for task in phase.tasks:
            node = branch.add(f"{_check(task.completed)} [cyan]{task.id}[/cyan] {task.name}")
            for sub in task.sub_tasks:
                node.add(f"{_check(sub.completed)} [cyan]{sub.id}[/cyan] {sub.name}")
    console.print(Panel(tree, border_style="bright_blue"))


def show_progress(progress: Progress) -> None:
    console.print(f"\n[bold]Overall progress:[/bold] {progress.overall}%")
    if progress.per_phase:
        table = Table(title="Phases", show_lines=True)
        table.add_column("Phase", style="green")
        table.add_column("Progress", style="cyan", width=9)
        table.add_column("Status", width=12)
        for phase in progress.per_phase:
            style = _STATUS_STYLE[phase.status]
            table.add_row(phase.name, f"{phase.progress_pct}%", f"[{style}]{phase.status}[/{style}]")
        console.print(table)

    if progress.recent_completions:
        table = Table(title="Recent Updates")
        table.add_column("Task", style="green")
        table.add_column("Phase", style="white")
        table.add_column("Completed", style="dim")
        for event in progress.recent_completions:
            name = f"{event.parent_task} › {event.task}" if event.parent_task else event.task
            when = event.completed_at.strftime("%Y-%m-%d %H:%M") if event.completed_at else "-"
            table.add_row(name, event.phase, when)
        console.print(table)

    if progress.milestones:
        console.print(
            "  ".join(f"{_check(m.completed)} {m.name}" for m in progress.milestones)
        )


def show_details(project: Project) -> None:
    details = check_project_details(project)
    lines = [
        f"[cyan]Description:[/cyan] {project.description or '[dim]missing[/dim]'}",
        f"[cyan]Tech stack:[/cyan] {', '.join(project.tech_stack) or '[dim]missing[/dim]'}",
        f"[cyan]Target date:[/cyan] {project.target_date.isoformat() if project.target_date else '[dim]missing[/dim]'}",
    ]
    if project.domain:
        lines.append(f"[cyan]Domain:[/cyan] {project.domain}")
    if project.team_size:
        lines.append(f"[cyan]Team size:[/cyan] {project.team_size}")
    if details.missing_fields:
        lines.append(f"\n[yellow]Missing: {', '.join(details.missing_fields)}[/yellow]")
    console.print(Panel("\n".join(lines), title=project.name, border_style="bright_blue"))
