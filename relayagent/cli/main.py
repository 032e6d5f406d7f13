"""
CLI entry point for relayagent: run the bridge server, chat from the
terminal, and inspect stored sessions.
"""

import asyncio
import json
import sys
import uuid
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

try:
    from importlib.metadata import version as pkg_version

    _version = pkg_version("relayagent")
except Exception:
    _version = "0.1.0"

from relayagent.core.errors import RelayError, StorageError
from relayagent.models.settings import SettingsError, load_settings

console = Console()
console_err = Console(stderr=True)


def _settings(ctx: click.Context):
    return ctx.obj["settings"]


def _format_time(ts: float) -> str:
    from datetime import datetime

    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


# =============================================================================
# Root CLI Group
# =============================================================================


@click.group()
@click.version_option(version=_version, prog_name="relayagent")
@click.option("--debug", is_flag=True, hidden=True, help="Enable debug logging")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Settings file (default: ~/.relayagent/settings.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, settings_path: Path | None):
    """
    relayagent: stream a wire-mode agent CLI into a chat UI.

    \b
        relayagent serve            # Start the HTTP bridge
        relayagent chat "prompt"    # Run one turn in the terminal
        relayagent sessions list    # Show stored sessions
        relayagent doctor           # Check the agent executable
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if debug:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    try:
        ctx.obj["settings"] = load_settings(settings_path)
    except SettingsError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


# =============================================================================
# Server
# =============================================================================


@cli.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", type=int, default=None, help="Port (default from settings)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None):
    """
    Start the HTTP bridge.

    \b
    Examples:
        relayagent serve
        relayagent serve --port 9000
    """
    import uvicorn

    from relayagent.server.app import create_app

    settings = _settings(ctx)
    host = host or settings.host
    port = port or settings.port

    console.print(f"[bold]relayagent[/bold] listening on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_level="debug" if ctx.obj["debug"] else "info",
    )


# =============================================================================
# Chat
# =============================================================================


async def _run_chat(settings, session_id: str, prompt: str, work_dir: str) -> int:
    from relayagent.core.chat import ChatService
    from relayagent.core.session_manager import SessionCatalog
    from relayagent.core.stream import StreamController, StreamRegistry

    service = ChatService(
        SessionCatalog.from_settings(settings),
        StreamRegistry(),
        StreamController(cli_path=settings.cli_path, model=settings.model, thinking=settings.thinking),
    )

    exit_code = 0
    async for event in service.run_turn(session_id, prompt, work_dir):
        data = event.data
        if event.event == "chunk":
            console.print(data.get("content", ""), end="", markup=False, highlight=False)
        elif event.event == "tool_call":
            name = data.get("data", {}).get("name") or data.get("data", {}).get("function", {}).get("name")
            console.print(f"\n[bright_black]⚙ {name or 'tool call'}[/bright_black]")
        elif event.event == "error":
            console_err.print(f"\n[red]Error:[/red] {data.get('message')}")
            exit_code = 1
        elif event.event == "cancelled":
            console.print("\n[yellow]Cancelled[/yellow]")
            exit_code = 130
        elif event.event == "done":
            console.print()
    return exit_code


@cli.command()
@click.argument("prompt")
@click.option("--session", "-s", "session_id", default=None, help="Session id to resume")
@click.option(
    "--work-dir",
    "-w",
    type=click.Path(file_okay=False, exists=True),
    default=None,
    help="Working directory (default: current directory)",
)
@click.option("--model", "-m", default=None, help="Model override")
@click.option("--thinking/--no-thinking", default=None, help="Enable thinking mode")
@click.pass_context
def chat(
    ctx: click.Context,
    prompt: str,
    session_id: str | None,
    work_dir: str | None,
    model: str | None,
    thinking: bool | None,
):
    """
    Run one turn and stream the reply to the terminal.

    \b
    Examples:
        relayagent chat "explain this repo"
        relayagent chat -s 3f2a... "and now the tests"
    """
    settings = _settings(ctx)
    updates = {}
    if model:
        updates["model"] = model
    if thinking is not None:
        updates["thinking"] = thinking
    if updates:
        settings = settings.model_copy(update=updates)

    session_id = session_id or uuid.uuid4().hex
    work_dir = str(Path(work_dir or ".").resolve())

    try:
        code = asyncio.run(_run_chat(settings, session_id, prompt, work_dir))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        code = 130
    except StorageError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        code = 1

    console.print(f"[bright_black]session {session_id}[/bright_black]")
    sys.exit(code)


# =============================================================================
# Sessions
# =============================================================================


@cli.group()
def sessions():
    """Inspect and delete stored sessions."""


@sessions.command("list")
@click.option("--work-dir", "-w", default=None, help="Only sessions for this directory (includes CLI sessions)")
@click.pass_context
def sessions_list(ctx: click.Context, work_dir: str | None):
    """List sessions, most recently updated first."""
    from relayagent.core.session_manager import SessionCatalog

    catalog = SessionCatalog.from_settings(_settings(ctx))
    try:
        items = catalog.list_sessions(work_dir)
    except StorageError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if not items:
        console.print("[grey62]No sessions found.[/grey62]")
        return

    table = Table(title="Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Title", ratio=1)
    table.add_column("Source", width=6)
    table.add_column("Updated", style="grey62", width=16)
    for item in items:
        table.add_row(item.id, item.title, item.source, _format_time(item.updated_at))
    console.print(table)


@sessions.command("show")
@click.argument("session_id")
@click.option("--work-dir", "-w", default="", help="Working directory the session belongs to")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def sessions_show(ctx: click.Context, session_id: str, work_dir: str, as_json: bool):
    """Print a session's messages."""
    from relayagent.core.session_manager import SessionCatalog

    catalog = SessionCatalog.from_settings(_settings(ctx))
    try:
        messages = catalog.messages(work_dir, session_id)
    except StorageError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([m.model_dump() for m in messages], indent=2))
        return
    if not messages:
        console.print("[grey62]No messages.[/grey62]")
        return
    for message in messages:
        style = "blue" if message.role == "user" else "green"
        console.print(Panel(message.content, title=message.role, border_style=style, title_align="left"))


@sessions.command("delete")
@click.argument("session_id")
@click.option("--work-dir", "-w", default="", help="Working directory the session belongs to")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def sessions_delete(ctx: click.Context, session_id: str, work_dir: str, yes: bool):
    """Delete a session from both stores."""
    from relayagent.core.session_manager import SessionCatalog

    if not yes and not click.confirm(f"Delete session {session_id}?"):
        return
    catalog = SessionCatalog.from_settings(_settings(ctx))
    try:
        catalog.delete(work_dir, session_id)
    except StorageError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Deleted {session_id}")


# =============================================================================
# Tools
# =============================================================================


@cli.command()
@click.argument("name")
@click.argument("arguments", default="{}")
@click.option(
    "--work-dir",
    "-w",
    type=click.Path(file_okay=False, exists=True),
    default=".",
    help="Sandbox root (default: current directory)",
)
@click.option("--yes", "-y", is_flag=True, help="Run mutating tools without asking")
@click.pass_context
def tool(ctx: click.Context, name: str, arguments: str, work_dir: str, yes: bool):
    """
    Run one sandboxed tool call.

    \b
    Examples:
        relayagent tool ReadFile '{"path": "README.md"}'
        relayagent tool Shell '{"command": "ls"}' --yes
    """
    from relayagent.default_tools import TOOLS, ToolExecutor

    spec = TOOLS.get(name)
    if spec is None:
        console_err.print(f"[red]Error:[/red] Unknown tool: {name}. Known: {', '.join(TOOLS)}")
        sys.exit(1)
    if spec.gated and not yes and not click.confirm(f"Allow {name} {arguments}?"):
        console.print("[yellow]Tool call was rejected by the user.[/yellow]")
        sys.exit(1)

    settings = _settings(ctx)
    executor = ToolExecutor(
        str(Path(work_dir).resolve()),
        auto_approve=True,
        config_path=settings.config_path,
        shell_timeout=settings.shell_timeout,
    )
    result = asyncio.run(executor.execute(name, arguments))

    style = "green" if result.ok else "red"
    console.print(f"[{style}]{result.summary}[/{style}]")
    if result.output:
        click.echo(result.output, nl=not result.output.endswith("\n"))
    sys.exit(0 if result.ok else 1)


# =============================================================================
# Diagnostics
# =============================================================================


@cli.command()
@click.pass_context
def doctor(ctx: click.Context):
    """Check the agent executable and external service configuration."""
    from relayagent.core.services import (
        FETCH_SERVICE,
        SEARCH_SERVICE,
        ServiceConfigError,
        load_agent_config,
        parse_service_config,
    )
    from relayagent.core.stream import find_cli, get_cli_version

    settings = _settings(ctx)
    healthy = True

    try:
        executable = find_cli(settings.cli_path)
        console.print(f"[green]✓[/green] Agent executable: {executable}")
        try:
            console.print(f"[green]✓[/green] Version: {get_cli_version(settings.cli_path)}")
        except RelayError as e:
            console.print(f"[red]✗[/red] {e}")
            healthy = False
    except RelayError as e:
        console.print(f"[red]✗[/red] {e}")
        healthy = False

    console.print(f"  Share dir:       {settings.share_dir}")
    console.print(f"  GUI sessions:    {settings.sessions_root}")
    console.print(f"  Agent metadata:  {settings.metadata_path}")

    try:
        config = load_agent_config(settings.config_path)
    except ServiceConfigError as e:
        console.print(f"[yellow]![/yellow] {e}")
        config = {}
    for name in (SEARCH_SERVICE, FETCH_SERVICE):
        if parse_service_config(config, name):
            console.print(f"[green]✓[/green] Service {name} configured")
        else:
            console.print(f"[grey62]-[/grey62] Service {name} not configured")

    if not healthy:
        sys.exit(1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
