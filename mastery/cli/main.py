"""
Typer CLI for the mastery orchestrator.

Commands:
    mastery serve             - Run the orchestration server (uvicorn)
    mastery simulate FILE     - Replay a recorded transcript through the local orchestrator
    mastery cards             - List the built-in card deck
    mastery session list      - List persisted session snapshots
    mastery session show ID   - Show one snapshot
    mastery session clear ID  - Delete one snapshot
    mastery info              - Show configuration

Usage:
    mastery --help
    mastery serve --port 3001
    mastery simulate transcripts/cookies.json --card card-1-cookies --offline
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from mastery import __version__
from mastery.cards import MVP_CARDS, get_card, get_current_level, load_deck
from mastery.evaluation.judge import Judge, SimulatedJudge
from mastery.integrations.judge_client import JudgeClient
from mastery.logging_setup import configure_logging
from mastery.orchestration.manager import OrchestrationManager
from mastery.orchestration.models import EvaluationResult, SuggestedAction, TranscriptEntry
from mastery.orchestration.persistence import (
    MemoryKeyValueStore,
    build_store,
    delete_session,
    list_sessions,
    load_session,
)

app = typer.Typer(help="mastery-orchestrator CLI: transcript-driven mastery evaluation")
console = Console()

# Gap assumed between recorded entries that carry no timestamp
DEFAULT_TURN_GAP_MS = 3000


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


# ========================================
# Server
# ========================================


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the orchestration server (WebSocket + REST + judge proxy)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mastery.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ========================================
# Simulation
# ========================================


def _read_transcript(path: Path) -> tuple[Optional[str], list[TranscriptEntry]]:
    """
    Read a recorded transcript.

    Accepts either a JSON list of entries or an object with ``card`` and
    ``transcript`` keys. Entries use the wire format (role, text,
    timestamp, isFinal).
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    card_id = None
    if isinstance(data, dict):
        card_id = data.get("card")
        data = data.get("transcript", [])
    if not isinstance(data, list):
        raise typer.BadParameter(f"{path} does not contain a transcript list")
    return card_id, [TranscriptEntry.from_dict(item) for item in data]


async def _replay(
    entries: list[TranscriptEntry],
    card_id: str,
    judge: Judge,
    student_name: str,
) -> list[tuple[int, EvaluationResult]]:
    card = get_card(card_id)
    if card is None:
        raise typer.BadParameter(f"Unknown card: {card_id}")

    now = {"ms": 0.0}
    manager = OrchestrationManager(
        "simulation",
        judge=judge,
        mode="client",
        store=MemoryKeyValueStore(),
        enable_persistence=False,
        clock=lambda: now["ms"],
    )
    await manager.initialize(student_name, card)

    results: list[tuple[int, EvaluationResult]] = []
    for index, entry in enumerate(entries, start=1):
        now["ms"] = entry.timestamp if entry.timestamp > 0 else now["ms"] + DEFAULT_TURN_GAP_MS
        evaluation = await manager.add_transcript_entry(entry)
        if evaluation is not None:
            results.append((index, evaluation))

    await manager.disconnect()
    return results


@app.command("simulate")
def simulate(
    transcript_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Recorded transcript (JSON)"),
    card_id: Optional[str] = typer.Option(None, "--card", "-c", help="Card id (overrides the file)"),
    student_name: str = typer.Option("Student", "--student", help="Student name"),
    offline: bool = typer.Option(False, "--offline", help="Use the simulated judge instead of the proxy"),
) -> None:
    """
    Replay a transcript through the local orchestrator and show when it evaluates.

    Examples:
        mastery simulate session.json --card card-1-cookies --offline
        mastery simulate session.json
    """
    file_card, entries = _read_transcript(transcript_file)
    card_id = card_id or file_card
    if not card_id:
        raise typer.BadParameter("No card given; pass --card or add a 'card' key to the file")

    settings = get_settings()

    async def run() -> list[tuple[int, EvaluationResult]]:
        if offline:
            return await _replay(entries, card_id, SimulatedJudge(), student_name)
        client = JudgeClient(
            settings.judge_api_url,
            model=settings.judge_model,
            timeout_ms=settings.judge_timeout_ms,
            retry_attempts=settings.judge_retry_attempts,
            max_tokens=settings.judge_max_tokens,
            temperature=settings.judge_temperature,
        )
        try:
            return await _replay(entries, card_id, client, student_name)
        finally:
            await client.close()

    results = asyncio.run(run())

    rprint(f"\n[bold cyan]Replay of {transcript_file.name}[/bold cyan] ({len(entries)} entries, card {card_id})\n")
    if not results:
        rprint("[yellow]No evaluation was triggered[/yellow]")
        return

    table = Table(title="Evaluations", show_header=True)
    table.add_column("After entry", justify="right", style="cyan")
    table.add_column("Ready")
    table.add_column("Confidence", justify="right")
    table.add_column("Level", style="magenta")
    table.add_column("Action", style="green")
    table.add_column("Points", justify="right")
    table.add_column("Reasoning", style="dim")

    for index, evaluation in results:
        action_style = "green" if evaluation.suggested_action == SuggestedAction.AWARD_AND_NEXT else "yellow"
        table.add_row(
            str(index),
            "yes" if evaluation.ready else "no",
            f"{evaluation.confidence}%",
            evaluation.mastery_level.value,
            f"[{action_style}]{evaluation.suggested_action.value}[/{action_style}]",
            str(evaluation.points) if evaluation.points is not None else "-",
            evaluation.reasoning,
        )
    console.print(table)


# ========================================
# Cards
# ========================================


@app.command("cards")
def list_cards(
    deck_file: Optional[Path] = typer.Option(None, "--deck", exists=True, dir_okay=False, help="Deck JSON file"),
) -> None:
    """List the card deck."""
    deck = load_deck(deck_file) if deck_file else MVP_CARDS

    table = Table(title=f"Card Deck ({len(deck)} cards)")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Id", style="dim")
    table.add_column("Title")
    table.add_column("Basic", justify="right", style="green")
    table.add_column("Advanced", justify="right", style="yellow")
    table.add_column("Teaching", justify="right", style="magenta")

    for card in deck:
        table.add_row(
            str(card.card_number),
            card.id,
            card.title,
            str(card.basic.points),
            str(card.advanced.points) if card.advanced else "-",
            str(card.misconception.teaching_milestone.points) if card.misconception else "-",
        )
    console.print(table)


# ========================================
# Sessions
# ========================================

session_app = typer.Typer(help="Persisted session snapshots")
app.add_typer(session_app, name="session")


def _card_label(data: dict[str, Any]) -> str:
    card = data.get("currentCard") or {}
    return card.get("title") or card.get("id") or "-"


@session_app.command("list")
def session_list() -> None:
    """List persisted sessions, most recent first."""
    sessions = list_sessions(build_store(get_settings()))
    if not sessions:
        rprint("[dim]No saved sessions[/dim]")
        return

    table = Table(title="Saved Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Student")
    table.add_column("Card")
    table.add_column("Entries", justify="right")
    table.add_column("Points", justify="right", style="green")

    for state in sessions:
        table.add_row(
            state.session_id,
            state.student_name or "-",
            _card_label(state.to_dict()),
            str(len(state.transcript)),
            str(state.points),
        )
    console.print(table)


@session_app.command("show")
def session_show(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Show one persisted session."""
    state = load_session(build_store(get_settings()), session_id)
    if state is None:
        rprint(f"[red]No readable session {session_id}[/red]")
        raise typer.Exit(code=1)

    level = get_current_level(state.points)
    rprint(f"\n[bold cyan]Session {state.session_id}[/bold cyan]")
    rprint(f"  Student: {state.student_name or '-'}")
    rprint(f"  Card: {_card_label(state.to_dict())}")
    rprint(f"  Points: {state.points} ({level.title})")
    rprint(f"  Completed cards: {', '.join(map(str, state.completed_cards)) or '-'}\n")

    table = Table(title="Transcript", show_header=True)
    table.add_column("Role", style="cyan")
    table.add_column("Text")
    table.add_column("Final", justify="center")
    for item in state.transcript:
        table.add_row(str(item.get("role", "")), str(item.get("text", "")), "✓" if item.get("isFinal", True) else "")
    console.print(table)


@session_app.command("clear")
def session_clear(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Delete one persisted session."""
    if delete_session(build_store(get_settings()), session_id):
        logger.info("Session {} cleared", session_id)
        rprint(f"[green]✓[/green] Cleared session {session_id}")
    else:
        rprint(f"[yellow]No session {session_id}[/yellow]")


# ========================================
# Info
# ========================================


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title="mastery-orchestrator Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("Anthropic API Key", "***" if settings.anthropic_api_key else "Not set (simulated judge)")
    table.add_row("Judge Model", settings.judge_model)
    table.add_row("Judge Proxy", settings.judge_api_url)
    table.add_row("Orchestration Server", settings.orchestration_server_url or "-")
    table.add_row("Mode", settings.orchestration_mode)
    table.add_row("Session Store", settings.session_store_backend)
    table.add_row("Log Level", settings.log_level)

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
