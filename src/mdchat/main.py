"""
mdchat CLI entry point.

Commands
--------
  mdchat send [FILE] [--endpoint NAME]   stream the next answer into FILE
  mdchat show [FILE]                     print the parsed turns of FILE
  mdchat endpoints                       list configured endpoints

FILE defaults to the most recently modified transcript in the current
directory (`*.md` unless `transcript_suffix` is configured).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import openai
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import load_config, resolve_endpoint
from .models import EndpointConfig, Outcome, ResolvedEndpoint, Role, TranscriptState
from .providers.base import CompletionProvider
from .providers.openai_chat import OpenAIChatProvider
from .session import has_work, run_session
from .sink import TextDisplay, TurnSink
from .transcript import DELIMITER, ParseError, parse_transcript

# ── Typer app ─────────────────────────────────────────────────────────────────

app = typer.Typer(
    name="mdchat",
    help="Chat with an LLM through a plain-text transcript file.",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )
    if not verbose:
        # The SDK's HTTP client is chatty at DEBUG; keep it quiet otherwise
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _excerpt(text: str, max_len: int = 80) -> str:
    normalized = " ".join(text.split())
    if len(normalized) <= max_len:
        return normalized
    return normalized[:max_len] + "..."


def _find_latest_transcript(directory: Path, suffix: str) -> Optional[Path]:
    """Return the most recently modified file in `directory` ending with `suffix`."""
    latest: Optional[Path] = None
    latest_mtime = 0.0
    for candidate in directory.iterdir():
        if not candidate.name.endswith(suffix) or not candidate.is_file():
            continue
        try:
            mtime = candidate.stat().st_mtime
        except OSError:
            continue
        if latest is None or mtime > latest_mtime:
            latest, latest_mtime = candidate, mtime
    return latest


def _resolve_transcript_path(file: Optional[Path], config: dict) -> Path:
    if file is not None:
        return file
    suffix = config.get("transcript_suffix", ".md")
    found = _find_latest_transcript(Path.cwd(), suffix)
    if found is None:
        err_console.print(
            f"[bold red]✗ No transcript file provided or found[/bold red] "
            f"[dim](looked for *{suffix} in {Path.cwd()})[/dim]"
        )
        raise typer.Exit(1)
    return found


def _load_transcript(path: Path) -> TranscriptState:
    try:
        return parse_transcript(path)
    except ParseError as exc:
        err_console.print(f"[bold red]✗ {escape(str(exc))}[/bold red]")
        raise typer.Exit(1)


def _build_provider(endpoint: ResolvedEndpoint) -> CompletionProvider:
    return OpenAIChatProvider(endpoint)


# ── Commands ──────────────────────────────────────────────────────────────────


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log requests and session progress to stderr.",
    ),
) -> None:
    _setup_logging(verbose)


@app.command()
def send(
    file: Optional[Path] = typer.Argument(
        None,
        help="Transcript to answer. Defaults to the newest transcript in the current directory.",
    ),
    endpoint: Optional[str] = typer.Option(
        None,
        "--endpoint",
        "-e",
        help="Named endpoint from the openai_endpoints table to use for this request.",
    ),
) -> None:
    """
    Send the transcript and append the streamed answer to it.

    The answer is echoed to the terminal while it is written to the file.
    Do not edit the transcript in another program while an answer streams.
    """
    config = load_config()
    path = _resolve_transcript_path(file, config)
    console.print(f"[dim]Using transcript: {path}[/dim]")

    state = _load_transcript(path)
    if not has_work(state):
        err_console.print(
            "[dim]No messages to send (the transcript is empty). Exiting.[/dim]"
        )
        return

    selected = resolve_endpoint(config, endpoint)
    console.print(f"[dim]Endpoint: {selected.source} · model {selected.model}[/dim]\n")

    try:
        provider = _build_provider(selected)
    except openai.OpenAIError as exc:
        err_console.print(f"[bold red]✗ Could not configure the client:[/bold red] {escape(str(exc))}")
        raise typer.Exit(1)

    with TurnSink(path) as sink:
        result = run_session(state, provider.complete, sink, TextDisplay())

    if result.outcome == Outcome.STREAM_ERROR:
        err_console.print(
            f"\n[bold yellow]⚠ Error during stream:[/bold yellow] {escape(result.error or '')}\n"
            f"[dim]The error was recorded in {path}.[/dim]"
        )
    elif result.outcome == Outcome.EMPTY_RESPONSE:
        console.print("\n[yellow]Assistant did not provide a content response.[/yellow]")


@app.command()
def show(
    file: Optional[Path] = typer.Argument(
        None,
        help="Transcript to inspect. Defaults to the newest transcript in the current directory.",
    ),
) -> None:
    """
    Print the turns parsed from a transcript without sending anything.
    """
    config = load_config()
    path = _resolve_transcript_path(file, config)
    state = _load_transcript(path)

    console.print()
    console.print(f"[bold]Transcript:[/bold]   {path}")
    console.print(f"[bold]Turns:[/bold]        {len(state.turns)}")
    console.print(f"[bold]Delimiter:[/bold]    {DELIMITER}")
    if state.pending_user_turn:
        pending = "[yellow]yes — unterminated user block[/yellow]"
    elif state.awaiting_reply:
        pending = "[yellow]yes — awaiting an answer[/yellow]"
    else:
        pending = "no"
    console.print(f"[bold]Needs answer:[/bold] {pending}")
    console.print()

    if not state.turns:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Role")
    table.add_column("Content")

    for idx, turn in enumerate(state.turns, start=1):
        role_str = "[cyan]user[/cyan]" if turn.role == Role.USER else "[green]assistant[/green]"
        table.add_row(str(idx), role_str, _excerpt(turn.content))

    console.print(table)
    console.print()


@app.command()
def endpoints() -> None:
    """
    List endpoints from the configuration files, marking the one `send` would use.
    """
    config = load_config()
    configured = config.get("openai_endpoints") or {}
    if not isinstance(configured, dict) or not configured:
        console.print("[dim]No openai_endpoints configured — the SDK defaults are used.[/dim]")
        return

    selected = resolve_endpoint(config)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Default")
    table.add_column("API base")
    table.add_column("Model")
    table.add_column("API key")

    for name, raw in configured.items():
        try:
            entry = EndpointConfig.model_validate(raw)
        except ValidationError:
            table.add_row(escape(str(name)), "", "[red]invalid[/red]", "—", "—")
            continue
        table.add_row(
            escape(str(name)),
            "[green]✓[/green]" if name == selected.name else "",
            escape(entry.api_base or "—"),
            escape(entry.default_model or "—"),
            "set" if entry.api_key else "[dim]env[/dim]",
        )

    console.print(table)


# ── Entry point ───────────────────────────────────────────────────────────────


def main() -> None:
    app()


if __name__ == "__main__":
    main()
