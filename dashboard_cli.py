#!/usr/bin/env python3
"""
Note Dashboard - Command Line Interface
Show the dashboard, run actions and manage perspectives from the terminal
"""

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm, Prompt
from typing import Any, Dict, List, Optional
import asyncio
import json
import logging

from notedash.core import Config, Prompter
from notedash.dashboard import (
    ActionRequest, DashboardFormatter, DashboardService, HandlerResult, PerspectiveDef,
)

# Initialize CLI app and console
app = typer.Typer(help="Note Dashboard - open tasks from your notes, in one place")
perspective_app = typer.Typer(help="Perspective management")
app.add_typer(perspective_app, name="perspective")

console = Console()
config = Config()

# Lazy-loaded service (initialized on first use)
_service: Optional[DashboardService] = None


class RichPrompter(Prompter):
    """Asks the user through rich.prompt"""

    async def confirm(self, message: str) -> bool:
        return Confirm.ask(message, console=console)

    async def ask(self, message: str, default: str = "") -> Optional[str]:
        answer = Prompt.ask(message, default=default or None, console=console)
        return answer or None

    async def choose(self, message: str, options: List[str]) -> Optional[str]:
        if not options:
            return None
        for number, option in enumerate(options, 1):
            console.print(f"  [dim]{number}.[/dim] {option}")
        choice = Prompt.ask(message, choices=[str(n) for n in range(1, len(options) + 1)],
                            console=console)
        return options[int(choice) - 1]


def setup_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else config.get("cli_log_level", default="WARNING")
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def get_service() -> DashboardService:
    """
    Get or initialize the DashboardService.

    Uses lazy loading so commands that don't need notes don't scan them.
    """
    global _service
    if _service is None:
        _service = DashboardService(config, prompter=RichPrompter())
    return _service


def run(coro):
    return asyncio.run(coro)


def show_result(result: HandlerResult) -> None:
    formatter = DashboardFormatter(console)
    console.print(formatter.format_result(result))


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    setup_logging(verbose)


@app.command()
def show(
    ids: bool = typer.Option(False, "--ids", help="Show item ids"),
    demo: bool = typer.Option(False, "--demo", help="Use built-in demo notes"),
):
    """Refresh and display every enabled section."""
    try:
        service = get_service()
        service.engine.use_demo_data = demo

        async def _show():
            await service.refresh_all("cli show")
            return service.state

        state = run(_show())
        if state.error_message:
            console.print(f"[red]{state.error_message}[/red]")
        DashboardFormatter(console, show_ids=ids).print_dashboard(
            state.sections, state.total_done_count, service.perspectives.active().name,
        )
    except Exception as e:
        console.print(f"[red]Error loading dashboard: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def refresh(codes: List[str] = typer.Argument(None, help="Section codes, e.g. DT W TAG")):
    """Refresh some (or all) sections and show the result."""
    service = get_service()

    async def _refresh():
        await service.refresh_all("cli refresh")
        if codes:
            await service.refresh_some([c.upper() for c in codes])
        return service.state

    state = run(_refresh())
    sections = state.sections
    if codes:
        wanted = {c.upper() for c in codes}
        sections = [s for s in sections if s.section_code.value in wanted]
    DashboardFormatter(console).print_dashboard(
        sections, state.total_done_count, service.perspectives.active().name,
    )


@app.command("done-count")
def done_count():
    """Show how many tasks were completed today."""
    total = run(get_service().total_done_today())
    console.print(f"[green]✓[/green] {total} completed today")


@app.command()
def action(
    action_type: str = typer.Argument(..., help="Action name, e.g. completeTask"),
    filename: str = typer.Option("", "--file", "-f", help="Note holding the item"),
    content: str = typer.Option("", "--content", "-c", help="Exact content of the item"),
    value: str = typer.Option("", "--value", "-v", help="New date, new content or name"),
    sections: List[str] = typer.Option(None, "--section", "-s", help="Sections to refresh after"),
    extra: Optional[str] = typer.Option(None, "--extra", help="JSON object of extra options"),
):
    """Run one dashboard action."""
    extra_dict: Dict[str, Any] = {}
    if extra:
        try:
            extra_dict = json.loads(extra)
        except json.JSONDecodeError as e:
            console.print(f"[red]--extra must be JSON: {e}[/red]")
            raise typer.Exit(1)

    request = ActionRequest(
        action_type=action_type,
        target_filename=filename,
        target_content=content,
        control_value=value,
        section_codes=[s.upper() for s in sections or []],
        extra=extra_dict,
    )
    service = get_service()
    if action_type not in service.bridge.get_supported_actions():
        console.print(f"[red]Unknown action '{action_type}'[/red]")
        console.print(f"[dim]Known: {', '.join(service.bridge.get_supported_actions())}[/dim]")
        raise typer.Exit(1)

    result = run(service.handle_action(request))
    show_result(result)
    if not result.success:
        raise typer.Exit(1)


# ============================================================
# Perspectives
# ============================================================

def _print_perspectives(perspectives: List[PerspectiveDef]) -> None:
    console.print(DashboardFormatter(console).format_perspectives(perspectives))


def _perspective_action(action_type: str, value: str = "", **extra) -> None:
    result = run(get_service().handle_action(
        ActionRequest(action_type=action_type, control_value=value, extra=extra)))
    show_result(result)
    if not result.success:
        raise typer.Exit(1)
    _print_perspectives(get_service().perspectives.perspectives)


@perspective_app.command("list")
def perspective_list():
    """List perspectives."""
    _print_perspectives(get_service().perspectives.perspectives)


@perspective_app.command("switch")
def perspective_switch(name: str = typer.Argument(..., help="Perspective to switch to")):
    """Make a perspective active."""
    _perspective_action("switchToPerspective", name)


@perspective_app.command("add")
def perspective_add(name: str = typer.Argument(..., help="Name for the new perspective")):
    """Save the current settings as a new perspective."""
    _perspective_action("addNewPerspective", name)


@perspective_app.command("save")
def perspective_save():
    """Save changes to the active perspective."""
    _perspective_action("savePerspective")


@perspective_app.command("rename")
def perspective_rename(
    old: str = typer.Argument(..., help="Current name"),
    new: str = typer.Argument(..., help="New name"),
):
    """Rename a perspective."""
    _perspective_action("renamePerspective", old, new_name=new)


@perspective_app.command("delete")
def perspective_delete(name: str = typer.Argument(..., help="Perspective to delete")):
    """Delete a perspective."""
    if not Confirm.ask(f"Delete perspective '{name}'?", console=console):
        raise typer.Exit(0)
    _perspective_action("deletePerspective", name)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the API server."""
    import uvicorn
    uvicorn.run("backend.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
