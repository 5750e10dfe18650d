"""
CLI Module - Command-line interface and main application loop

This module provides the terminal front-end for the study chat. It handles:
- Configuration and schedule loading
- Writing an initial configuration (init)
- The chat loop (send message / render reply)
- Session history commands
- Starting the chat server
"""

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt, Confirm

from study_chat import __version__
from study_chat.client import ChatClient
from study_chat import config as config_module
from study_chat.config import (
    Config,
    config_exists,
    ensure_data_dir,
    get_default_config,
    load_config,
    save_config,
)
from study_chat.context_builder import NAVIGATION_ALIASES
from study_chat.conversation import ROLE_USER, Message
from study_chat.errors import StudyChatError
from study_chat.orchestrator import ConversationOrchestrator, TurnState
from study_chat.schedule import ScheduleSnapshot, load_schedule
from study_chat.session_store import SessionStore


# ============================================================================
# Constants
# ============================================================================

APP_TITLE = "Study Chat"

BOLD_PATTERN = re.compile(r"\*\*(.+?)\*\*")

QUICK_PROMPTS = (
    "Explain today's lecture on graph algorithms",
    "When is my next assignment due?",
    "Generate practice problems for data structures",
    "What topics are important for the upcoming exam?",
)

console = Console()


# ============================================================================
# Rendering
# ============================================================================

def find_navigation_targets(text: str) -> List[Tuple[str, str]]:
    """
    Find bold section names that map to an app screen.

    Args:
        text: Assistant reply (raw markdown)

    Returns:
        (label, screen) pairs in order of first appearance
    """
    targets = []
    seen = set()
    for match in BOLD_PATTERN.finditer(text):
        label = match.group(1).strip()
        screen = NAVIGATION_ALIASES.get(label.lower())
        if screen and label.lower() not in seen:
            seen.add(label.lower())
            targets.append((label, screen))
    return targets


def render_reply(message: Message, show_sources: bool = True, model: Optional[str] = None) -> None:
    """
    Render an assistant message.

    The markdown is passed through untouched; navigation hints, sources and
    the generating model are printed underneath.
    """
    console.print("[bold cyan]Cornelius:[/bold cyan]")
    console.print(Markdown(message.content))

    targets = find_navigation_targets(message.content)
    if targets:
        hints = ", ".join(f"[cyan]{label}[/cyan] -> {screen}" for label, screen in targets)
        console.print(f"[dim]Go to:[/dim] {hints}")

    if show_sources and message.sources:
        console.print("[bold cyan]Sources:[/bold cyan]")
        for i, source in enumerate(message.sources, 1):
            console.print(
                f"  {i}. [dim]{source.lecture_title}[/dim] "
                f"({source.timestamp}) [dim]- {source.excerpt}[/dim]"
            )

    if model:
        console.print(f"[dim]Generated with {model}[/dim]")
    console.print()


def render_message(message: Message, show_sources: bool = True, model: Optional[str] = None) -> None:
    if message.role == ROLE_USER:
        console.print(f"[bold green]You:[/bold green] {message.content}\n")
    else:
        render_reply(message, show_sources, model)


# ============================================================================
# Application Lifecycle
# ============================================================================

def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def display_banner() -> None:
    """Display the application banner."""
    banner = f"""
[bold cyan]{APP_TITLE}[/bold cyan] [dim]v{__version__}[/dim]
Ask Cornelius about your lectures, assignments and exams
    """
    console.print(Panel(banner.strip(), border_style="cyan"))


def load_snapshot(config: Config) -> ScheduleSnapshot:
    """Load the schedule snapshot, or an empty one if none is configured."""
    if not config.schedule_file:
        return ScheduleSnapshot()
    try:
        return load_schedule(Path(config.schedule_file))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[yellow]Could not load schedule: {e}[/yellow]")
        return ScheduleSnapshot()


def resolve_config() -> Config:
    if not config_exists():
        return get_default_config()
    try:
        return load_config()
    except (ValueError, OSError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        console.print("[yellow]Falling back to defaults.[/yellow]\n")
        return get_default_config()


def init_config(server_url: Optional[str] = None, schedule_file: Optional[str] = None,
                force: bool = False) -> bool:
    """
    Write config.yaml and create the data directory.

    Returns:
        True if a configuration was written
    """
    if config_exists() and not force:
        console.print(
            f"[yellow]Configuration already exists at {config_module.CONFIG_FILE}. "
            f"Use --force to overwrite.[/yellow]"
        )
        return False

    config = get_default_config()
    if server_url:
        config.server_url = server_url
    if schedule_file:
        config.schedule_file = schedule_file

    try:
        save_config(config)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return False

    data_dir = ensure_data_dir()
    console.print(f"[green]✓ Saved configuration to {config_module.CONFIG_FILE}[/green]")
    console.print(f"[dim]Chat history will be kept in {data_dir}[/dim]")
    return True


def run_application(config: Optional[Config] = None) -> None:
    """
    Chat entry point.

    Loads configuration, history and schedule, then runs the chat loop.
    """
    config = config or resolve_config()
    setup_logging(config.verbose)
    display_banner()
    console.print()

    store = SessionStore(config.get_history_path())
    store.load()
    client = ChatClient(config.server_url, timeout=config.request_timeout)
    orchestrator = ConversationOrchestrator(store, client)

    if not client.health():
        console.print(f"[yellow]Chat server not reachable at {config.server_url}[/yellow]")
        console.print("[dim]Start it with: study-chat serve[/dim]\n")

    try:
        run_main_loop(orchestrator, config)
    finally:
        client.close()


def run_main_loop(orchestrator: ConversationOrchestrator, config: Config) -> None:
    """
    Main application loop.

    Handles user messages and commands until exit.
    """
    console.print("[bold green]Ready![/bold green]")
    console.print("[dim]Type 'help' for commands, 'q' or 'exit' to quit.[/dim]\n")
    if orchestrator.active_session is None:
        display_quick_prompts()

    while True:
        try:
            text = Prompt.ask("[bold cyan]>[/bold cyan]")
            command = text.strip().lower()

            if not command:
                continue

            if command in ["q", "quit", "exit"]:
                console.print("\n[yellow]Goodbye![/yellow]")
                break

            elif command == "help":
                display_help()

            elif command == "status":
                display_status(config, orchestrator)

            elif command == "new":
                orchestrator.new_chat()
                console.print("[green]Started a new chat[/green]\n")
                display_quick_prompts()

            elif command.startswith("ask ") and command[4:].strip().isdigit():
                ask_quick_prompt(orchestrator, command[4:], config)

            elif command == "history":
                display_sessions(orchestrator)

            elif command.startswith("open "):
                open_session(orchestrator, command[5:], config)

            elif command.startswith("delete "):
                delete_session(orchestrator, command[7:])

            elif command == "clear":
                clear_history(orchestrator)

            else:
                process_message(orchestrator, text, config)

        except KeyboardInterrupt:
            console.print("\n\n[yellow]Use 'q' or 'exit' to quit.[/yellow]")
            continue
        except EOFError:
            console.print("\n[yellow]Goodbye![/yellow]")
            break


# ============================================================================
# Helper Functions
# ============================================================================

def process_message(orchestrator: ConversationOrchestrator, text: str, config: Config) -> None:
    """
    Send one message and render the reply.

    The schedule is re-read on every send so edits to the file are picked up.
    """
    console.print()
    snapshot = load_snapshot(config)

    try:
        with console.status("[cyan]Cornelius is typing...[/cyan]", spinner="dots"):
            result = orchestrator.send(text, snapshot)
    except StudyChatError as e:
        console.print(f"[red]Error: {e}[/red]\n")
        return

    if result is None:
        return

    render_reply(result.reply, config.show_sources, result.model)
    if result.state == TurnState.FAILED and config.verbose:
        console.print(f"[dim]{result.error}[/dim]\n")


def display_quick_prompts() -> None:
    """List the suggested prompts for an empty chat."""
    console.print("[bold cyan]Try asking:[/bold cyan]")
    for i, prompt in enumerate(QUICK_PROMPTS, 1):
        console.print(f"  [bold]{i}.[/bold] {prompt}")
    console.print("[dim]Type 'ask N' to send one.[/dim]\n")


def ask_quick_prompt(orchestrator: ConversationOrchestrator, arg: str, config: Config) -> None:
    try:
        index = int(arg.strip())
    except ValueError:
        index = 0
    if not 1 <= index <= len(QUICK_PROMPTS):
        console.print(f"[red]No suggested prompt {arg.strip()}. Pick 1-{len(QUICK_PROMPTS)}.[/red]\n")
        return
    prompt = QUICK_PROMPTS[index - 1]
    console.print(f"[bold green]You:[/bold green] {prompt}")
    process_message(orchestrator, prompt, config)


def _session_at(orchestrator: ConversationOrchestrator, arg: str):
    sessions = orchestrator.store.sessions
    try:
        index = int(arg.strip())
    except ValueError:
        console.print(f"[red]Not a session number: {arg}[/red]\n")
        return None
    if not 1 <= index <= len(sessions):
        console.print(f"[red]No session {index}. Type 'history' to list sessions.[/red]\n")
        return None
    return sessions[index - 1]


def display_sessions(orchestrator: ConversationOrchestrator) -> None:
    """List saved sessions, newest first."""
    sessions = orchestrator.store.sessions
    if not sessions:
        console.print("[yellow]No chat history yet. Ask a question to start![/yellow]\n")
        return

    active_id = orchestrator.store.active_session_id
    console.print(f"\n[bold cyan]Chat History ({len(sessions)} sessions):[/bold cyan]\n")
    for i, session in enumerate(sessions, 1):
        marker = "[green]*[/green]" if session.id == active_id else " "
        console.print(
            f"{marker} [bold]{i}.[/bold] {session.title} "
            f"[dim]({len(session.messages)} messages, {session.created_at[:16]})[/dim]"
        )
    console.print()


def open_session(orchestrator: ConversationOrchestrator, arg: str, config: Config) -> None:
    session = _session_at(orchestrator, arg)
    if session is None:
        return
    orchestrator.open_session(session.id)
    console.print(f"\n[bold cyan]{session.title}[/bold cyan]\n")
    last = len(session.messages) - 1
    for i, message in enumerate(session.messages):
        # model_used tags the latest reply only
        render_message(message, config.show_sources, session.model_used if i == last else None)


def delete_session(orchestrator: ConversationOrchestrator, arg: str) -> None:
    session = _session_at(orchestrator, arg)
    if session is None:
        return
    orchestrator.delete_session(session.id)
    console.print(f"[green]✓ Deleted '{session.title}'[/green]\n")


def clear_history(orchestrator: ConversationOrchestrator) -> None:
    """Delete all sessions after confirmation."""
    if not orchestrator.store.sessions:
        console.print("[yellow]Chat history is already empty.[/yellow]\n")
        return

    if not Confirm.ask("Clear all chat history? This cannot be undone.", default=False):
        console.print("[yellow]Clear cancelled[/yellow]\n")
        return

    count = orchestrator.clear_history(confirmed=True)
    console.print(f"[green]✓ Cleared {count} session(s)[/green]\n")


def display_help() -> None:
    """Display available commands."""
    help_text = """
[bold]Available Commands:[/bold]

  [cyan]help[/cyan]       - Show this help message
  [cyan]status[/cyan]     - Display configuration and server status
  [cyan]new[/cyan]        - Start a new chat
  [cyan]ask N[/cyan]      - Send suggested prompt number N
  [cyan]history[/cyan]    - List saved chats
  [cyan]open N[/cyan]     - Resume chat number N
  [cyan]delete N[/cyan]   - Delete chat number N
  [cyan]clear[/cyan]      - Delete all chats
  [cyan]q, exit[/cyan]    - Quit the application

[bold]Examples:[/bold]

  > When is my next assignment due?
  > What topics are important for the upcoming exam?
    """
    console.print(Panel(help_text.strip(), title="Help", border_style="cyan"))
    console.print()


def display_status(config: Config, orchestrator: ConversationOrchestrator) -> None:
    """Display current configuration and server status."""
    server_ok = orchestrator.client.health()
    active = orchestrator.active_session
    status_lines = [
        "[bold]Configuration:[/bold]",
        "",
        f"  Server:        {config.server_url}",
        f"  History file:  {config.get_history_path()}",
        f"  Schedule file: {config.schedule_file or 'none'}",
        "",
        "[bold]Status:[/bold]",
        "",
        f"  Server:        {'[green]Reachable[/green]' if server_ok else '[red]Unreachable[/red]'}",
        f"  Sessions:      {len(orchestrator.store.sessions)}",
        f"  Active chat:   {active.title if active else 'new chat'}",
        f"  Model:         {(active.model_used if active else None) or 'n/a'}",
    ]
    console.print(Panel("\n".join(status_lines), title="Status", border_style="cyan"))
    console.print()


# ============================================================================
# Entry Point
# ============================================================================

def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="study-chat", description="Schedule-aware study assistant")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("chat", help="Start the terminal chat (default)")

    init = subparsers.add_parser("init", help="Write a configuration file")
    init.add_argument("--server-url", default=None)
    init.add_argument("--schedule-file", default=None)
    init.add_argument("--force", action="store_true", help="Overwrite an existing configuration")

    serve = subparsers.add_parser("serve", help="Run the chat server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    args = parser.parse_args(argv)

    if args.command == "init":
        init_config(args.server_url, args.schedule_file, args.force)
    elif args.command == "serve":
        from study_chat.server import run

        logging.basicConfig(level=logging.INFO)
        run(host=args.host, port=args.port, reload=args.reload)
    else:
        run_application()


if __name__ == "__main__":
    main(sys.argv[1:])
