"""Click entry point, chat loop, slash commands."""

from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path

import click
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory
from rich.panel import Panel

from roadmap_mentor.config import Settings, load_settings
from roadmap_mentor.errors import GenerationNotAllowed, RoadmapNotFound, StoreWriteError
from roadmap_mentor.infrastructure.store import SqliteDocumentStore
from roadmap_mentor.logs import setup_logging
from roadmap_mentor.models import ChatMessage, MessageStatus, Project
from roadmap_mentor.services.chat import ChatSyncEngine
from roadmap_mentor.services.mentor import build_mentor
from roadmap_mentor.services.roadmaps import RoadmapSync
from roadmap_mentor.services.session import ClientSession
from roadmap_mentor.ui.rendering import (
    _setup_session,
    console,
    show_details,
    show_message,
    show_progress,
    show_projects,
    show_roadmap,
)

load_dotenv()

SLASH_COMMANDS = ["/roadmap", "/generate", "/toggle", "/progress", "/details", "/quit"]
_command_completer = WordCompleter(SLASH_COMMANDS, sentence=True)

READY_TIMEOUT = 10.0


async def _ask(label: str) -> str:
    try:
        return (await _setup_session.prompt_async(label)).strip()
    except (EOFError, KeyboardInterrupt):
        raise SystemExit(0) from None


# --- Project selection ---


async def _select_or_create_project(session: ClientSession, user_id: str) -> Project:
    projects = await session.projects.list_for_user(user_id)

    console.print(Panel("[bold]Roadmap Mentor[/bold] · Project Selection", border_style="bright_blue"))

    if not projects:
        console.print("[dim]No projects yet. Let's create one.[/dim]\n")
        return await _create_project_flow(session, user_id)

    show_projects(projects)
    console.print("\n[dim]Enter a number to open a project, or 'n' to create a new one.[/dim]")
    while True:
        choice = (await _ask("Choice> ")).lower()
        if choice == "n":
            return await _create_project_flow(session, user_id)
        try:
            idx = int(choice) - 1
            if 0 <= idx < len(projects):
                return projects[idx]
        except ValueError:
            pass
        console.print("[red]Invalid choice. Enter a number or 'n'.[/red]")


async def _create_project_flow(session: ClientSession, user_id: str) -> Project:
    name = await _ask("Project name> ")
    if not name:
        console.print("[red]Name cannot be empty.[/red]")
        raise SystemExit(1)
    domain = await _ask("Domain (optional)> ")
    project = await session.projects.create(user_id, name, domain=domain or None)
    console.print(f"\n[bold green]Created project '{project.name}' ({project.id})[/bold green]")
    console.print("[dim]Fill in details now with /details, or just tell the mentor about it.[/dim]\n")
    return project


async def _details_flow(session: ClientSession, project: Project) -> Project:
    show_details(project)
    console.print("[dim]Press enter to keep a value.[/dim]")
    description = await _ask("Description> ")
    stack = await _ask("Tech stack (comma separated)> ")
    target: date | None = None
    while True:
        raw = await _ask("Target date (YYYY-MM-DD)> ")
        if not raw:
            break
        try:
            target = date.fromisoformat(raw)
            break
        except ValueError:
            console.print("[red]Use the YYYY-MM-DD format.[/red]")
    updated = await session.projects.update_details(
        project.id,
        description=description or None,
        tech_stack=stack.split(",") if stack else None,
        target_date=target,
    )
    show_details(updated)
    return updated


# --- Slash commands ---


async def _toggle(view: RoadmapSync, args: list[str]) -> None:
    if len(args) not in (2, 3):
        console.print("[red]Usage: /toggle <phase> <task> [sub task][/red]")
        return
    phase_id, task_id = args[0], args[1]
    try:
        if len(args) == 3:
            await view.toggle(phase_id, args[2], parent_task_id=task_id)
        else:
            await view.toggle(phase_id, task_id)
    except RoadmapNotFound:
        console.print("[yellow]No roadmap yet. Use /generate first.[/yellow]")
        return
    except StoreWriteError as e:
        console.print(f"[red]Could not save the change, it was undone: {e}[/red]")
        return
    show_roadmap(view.roadmap)


async def _generate(session: ClientSession, project: Project, chat: ChatSyncEngine) -> None:
    history = [m for m in chat.messages if m.status == MessageStatus.SENT]
    try:
        with console.status("[bold green]Generating roadmap...[/bold green]"):
            roadmap = await session.generate_roadmap(project, history)
    except GenerationNotAllowed as e:
        console.print(
            f"[yellow]Tell the mentor about your project first, or fill in: {', '.join(e.missing_fields)}[/yellow]"
        )
        return
    except StoreWriteError as e:
        console.print(f"[red]Roadmap could not be saved: {e}[/red]")
        return
    show_roadmap(roadmap)


async def _chat_loop(session: ClientSession, project: Project, settings: Settings) -> None:
    view = session.roadmap_view(project.id)
    chat = session.chat(project)

    with console.status("[bold green]Loading conversation...[/bold green]"):
        try:
            await asyncio.wait_for(chat.ready(), READY_TIMEOUT)
        except TimeoutError:
            console.print("[red]The conversation did not load in time.[/red]")

    console.print(
        Panel(
            f"[bold]Roadmap Mentor[/bold] · [cyan]{project.name}[/cyan]\n\n"
            "[dim]Commands: /roadmap  /generate  /toggle <phase> <task> [sub]  /progress  /details  /quit[/dim]",
            border_style="bright_blue",
        )
    )
    for message in chat.messages:
        show_message(message)

    prompt: PromptSession = PromptSession(
        history=FileHistory(str(settings.home / ".chat_history")),
        completer=_command_completer,
    )

    while True:
        try:
            user_input = (await prompt.prompt_async("You> ")).strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye![/dim]")
            break

        if not user_input:
            continue

        command, *args = user_input.split()
        command = command.lower()
        if command == "/quit":
            console.print("[dim]Goodbye![/dim]")
            break
        elif command == "/roadmap":
            show_roadmap(view.roadmap)
            continue
        elif command == "/progress":
            show_progress(view.progress)
            continue
        elif command == "/generate":
            await _generate(session, project, chat)
            continue
        elif command == "/toggle":
            await _toggle(view, args)
            continue
        elif command == "/details":
            project = await _details_flow(session, project)
            chat.project = project
            continue

        try:
            with console.status("[bold green]Thinking...[/bold green]"):
                reply: ChatMessage = await chat.send(user_input)
        except StoreWriteError as e:
            console.print(f"[red]Message not sent: {e}[/red]")
            continue
        show_message(reply)


async def _run(settings: Settings, user_id: str) -> None:
    store = SqliteDocumentStore(settings.db_path)
    session = ClientSession(store, build_mentor(settings))
    try:
        project = await _select_or_create_project(session, user_id)
        await _chat_loop(session, project, settings)
    finally:
        session.close()
        store.close()


# --- Main CLI ---


@click.command()
@click.option("--user", "user_id", default="local", show_default=True, help="Owner of the projects to list.")
@click.option("--db-path", type=click.Path(dir_okay=False, path_type=Path), default=None, help="SQLite database file.")
def cli(user_id: str, db_path: Path | None):
    """Roadmap Mentor: plan a project with an AI mentor and track its roadmap."""
    settings = load_settings()
    if db_path is not None:
        settings = settings.model_copy(update={"db_path": db_path})
    settings.ensure_dirs()
    setup_logging(settings.log_level, settings.log_file)
    asyncio.run(_run(settings, user_id))
