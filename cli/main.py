#!/usr/bin/env python3
"""
PromptSite CLI - Main Entry Point

Usage:
    promptsite new "build a todo app"        # Create a project and generate it
    promptsite new "..." --project-id 42     # Generate into an existing record
    promptsite open 42                       # Show an already deployed project
    promptsite change 42 "add a dark mode"   # Apply one change
    promptsite open 42 --chat                # Interactive change loop
    promptsite list 7                        # Projects owned by user 7
    promptsite delete 42
"""

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Source checkouts run without installing
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="promptsite",
        description="PromptSite - describe a web project, get a live preview",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  promptsite new "a landing page for a bakery" --user-id 7
  promptsite open 42 --chat
  promptsite change 42 "make the header sticky"

Interactive change loop:
  /status         Show session status
  /history        Show the change log
  /help           Show commands
  /quit           Exit
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    new_parser = subparsers.add_parser("new", help="Generate a project from a prompt")
    new_parser.add_argument("prompt", help="What to build")
    new_parser.add_argument("--user-id", help="Owner of the new project record")
    new_parser.add_argument(
        "--project-id",
        help="Use an existing project record instead of creating one"
    )
    new_parser.add_argument(
        "--no-record",
        action="store_true",
        help="Do not create a project record (preview only)"
    )
    new_parser.add_argument("--chat", action="store_true", help="Enter the change loop afterwards")

    open_parser = subparsers.add_parser("open", help="Load an already deployed project")
    open_parser.add_argument("project_id")
    open_parser.add_argument("--chat", action="store_true", help="Enter the change loop")

    change_parser = subparsers.add_parser("change", help="Apply one change to a project")
    change_parser.add_argument("project_id")
    change_parser.add_argument("requirement", nargs="+", help="Requirement in plain words")

    list_parser = subparsers.add_parser("list", help="List projects of a user")
    list_parser.add_argument("user_id")

    delete_parser = subparsers.add_parser("delete", help="Delete a project record")
    delete_parser.add_argument("project_id")

    parser.add_argument(
        "--server-url",
        type=str,
        help="Service gateway URL (default: SERVICE_BASE_URL)"
    )
    parser.add_argument(
        "--backend",
        choices=["http", "claude"],
        help="Generation backend (default: GENERATION_BACKEND)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the session status as JSON"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show failure details and lifecycle events"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


async def run_chat(session, renderer, console):
    """Interactive change loop for the session's project"""
    from prompt_toolkit import PromptSession
    from prompt_toolkit.formatted_text import HTML
    from prompt_toolkit.history import FileHistory

    history_file = Path.home() / ".promptsite" / "history"
    history_file.parent.mkdir(exist_ok=True)
    prompt_session = PromptSession(history=FileHistory(str(history_file)))

    console.print("[dim]Describe a change, or /help[/dim]")
    while True:
        try:
            user_input = await prompt_session.prompt_async(HTML("<ansimagenta><b>change></b></ansimagenta> "))
        except (EOFError, KeyboardInterrupt):
            break

        cmd = user_input.strip().lower()
        if not cmd:
            continue
        if cmd in ["/quit", "/exit", "/q"]:
            break
        if cmd == "/status":
            show_status()
            continue
        if cmd == "/history":
            renderer.render_messages(session.messages)
            continue
        if cmd == "/help":
            console.print("/status  session status\n/history change log\n/quit    exit\nanything else is sent as a change request")
            continue

        with console.status("[yellow]Applying changes...[/yellow]"):
            message = await session.apply_change(user_input)
        renderer.render_message(message)

    console.print("\n[dim]Goodbye![/dim]")


async def run_command(args, console) -> int:
    from promptsite.core.config import settings
    from promptsite.core.exceptions import OrchestratorError, error_response
    from promptsite.modules.orchestrator import EventBus, ProjectSession
    from promptsite.schemas.project import ProjectCreate
    from promptsite.services.http_base import ServiceHttpClient
    from promptsite.services.registry import build_stage_services
    from cli.renderer import SessionRenderer

    overrides = {}
    if args.server_url:
        overrides["SERVICE_BASE_URL"] = args.server_url
    if args.backend:
        overrides["GENERATION_BACKEND"] = args.backend
    config = settings.model_copy(update=overrides) if overrides else settings

    renderer = SessionRenderer(console, verbose=args.verbose)
    services = build_stage_services(config, ServiceHttpClient(base_url=config.SERVICE_BASE_URL))

    events = EventBus()
    if args.verbose:
        events.subscribe("*", renderer.render_event_json if args.json else renderer.render_event)

    session = ProjectSession(services, event_bus=events, config=config)

    def show_status():
        if args.json:
            renderer.render_json(session.status().to_dict())
        else:
            renderer.render_status(session.status())

    try:
        if args.command == "list":
            renderer.render_projects(await services.store.list_by_owner(args.user_id))
            return 0

        if args.command == "delete":
            await services.store.delete(args.project_id)
            console.print(f"[green]✓ Deleted project {args.project_id}[/green]")
            return 0

        if args.command == "new":
            project_id = args.project_id
            if project_id is None and not args.no_record:
                if not args.user_id:
                    console.print("[red]✗ --user-id is required to create a project record[/red]")
                    return 2
                project = await services.store.create(ProjectCreate(
                    user_id=args.user_id,
                    name=f"Project {datetime.now().strftime('%m/%d/%Y')}",
                    description=args.prompt,
                    project_type=config.DEFAULT_PROJECT_TYPE
                ))
                project_id = project.id
                console.print(f"[dim]Created project {project_id}[/dim]")

            with console.status("[yellow]Generating your project...[/yellow]"):
                await session.initialize(project_id=project_id, prompt=args.prompt)
            show_status()

        elif args.command in ("open", "change"):
            with console.status("[yellow]Loading project...[/yellow]"):
                await session.initialize(project_id=args.project_id, existing=True)
            show_status()

            if args.command == "change":
                with console.status("[yellow]Applying changes...[/yellow]"):
                    message = await session.apply_change(" ".join(args.requirement))
                renderer.render_message(message)
                return 0 if message is not None and message.success else 1

        if getattr(args, "chat", False) and session.project_id is not None:
            await run_chat(session, renderer, console)

        return 0 if session.status().error is None else 1

    except OrchestratorError as e:
        if args.json:
            renderer.render_json(error_response(e))
        else:
            renderer.render_error(e)
        return 1
    finally:
        await session.wait_for_runs()
        await services.aclose()


def main():
    """Main entry point"""
    from dotenv import load_dotenv
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args()

    from rich.console import Console
    console = Console()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        sys.exit(asyncio.run(run_command(args, console)))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main()
