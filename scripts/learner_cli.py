# ABOUTME: Provides the learner-facing CLI: practice, record responses, and inspect the learner model.
# ABOUTME: Wraps LearnerEngine, the reporting tables, and the assistant behind Typer commands.

import time
from pathlib import Path
from typing import List, Optional

import pandas as pd
import typer
import yaml
from rich.console import Console
from rich.table import Table

from src.common.assistant import LearningAssistant, answerer_from_env
from src.common.catalog import ItemCatalog, default_catalog, load_catalog
from src.common.config import load_config
from src.common.errors import ValidationError
from src.common.log_setup import configure_logging
from src.common.schemas import utc_now
from src.learner.analytics import (
    confidence_gap,
    history_frame,
    mastery_summary,
    overview_kpis,
    policy_summary,
    retention_forecast,
    simulate_retention,
)
from src.learner.engine import LearnerEngine
from src.learner.persistence import JsonSnapshotStore

console = Console()
app = typer.Typer(help="Practice with the adaptive learner engine and inspect its model.")

STATE_COLORS = {"normal": "green", "fatigue": "yellow", "overload": "orange3", "frustration": "red"}


def _load_catalog(catalog_path: Optional[str]) -> ItemCatalog:
    if catalog_path and Path(catalog_path).exists():
        return load_catalog(Path(catalog_path))
    return default_catalog()


def _engine(ctx: typer.Context) -> LearnerEngine:
    if "engine" not in ctx.obj:
        try:
            config = load_config(ctx.obj["config_path"])
            catalog = _load_catalog(config.persistence.catalog_path)
        except (OSError, yaml.YAMLError) as exc:
            _fail(f"Could not read configuration: {exc}")
        except ValidationError as exc:
            _reject(exc)
        snapshot_path = ctx.obj["snapshot_path"] or Path(config.persistence.snapshot_path)
        ctx.obj["engine"] = LearnerEngine(
            catalog=catalog,
            config=config,
            store=JsonSnapshotStore(snapshot_path),
        )
    return ctx.obj["engine"]


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=1)


def _reject(exc: ValidationError) -> None:
    _fail(f"Rejected: {exc}")


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML (defaults to COGNIPATH_CONFIG)."),
    snapshot_path: Optional[Path] = typer.Option(None, "--snapshot", help="Learner snapshot JSON path."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level for the engine."),
) -> None:
    configure_logging(log_level)
    ctx.obj = {"config_path": config_path, "snapshot_path": snapshot_path}


@app.command()
def status(ctx: typer.Context) -> None:
    """Show mastery, retention, ability, and the cognitive state."""
    engine = _engine(ctx)
    snapshot = engine.get_snapshot()
    kpis = overview_kpis(snapshot, engine.catalog)
    color = STATE_COLORS.get(kpis.cognitive_state, "white")

    console.rule("[bold blue]Learner Status[/bold blue]")
    console.print(f"[bold]Ability (theta):[/] {kpis.theta:.2f}")
    console.print(f"[bold]Cognitive state:[/] [{color}]{kpis.cognitive_state}[/{color}]")
    console.print(f"[bold]Mastered:[/] {kpis.mastered_count}/{len(engine.catalog.concepts)}  "
                  f"[bold]Average mastery:[/] {kpis.average_mastery:.0%}  "
                  f"[bold]Responses:[/] {kpis.total_responses}")
    if kpis.next_unmastered:
        console.print(f"[bold]Next to master:[/] {engine.catalog.label(kpis.next_unmastered)}")

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Concept", "Mastery", "Strength (d)", "Retention", "Attempts", "Accuracy"):
        table.add_column(column)
    for _, row in mastery_summary(snapshot, engine.catalog, utc_now(), engine.config.retention).iterrows():
        accuracy = "-" if row["attempts"] == 0 else f"{row['accuracy']:.0%}"
        table.add_row(
            row["label"],
            f"{row['mastery']:.2f}",
            f"{row['strength_days']:.2f}",
            f"{row['retention']:.0%}",
            str(row["attempts"]),
            accuracy,
        )
    console.print(table)


@app.command()
def recommend(ctx: typer.Context) -> None:
    """Ask the policy which concept (and item) to practice next."""
    engine = _engine(ctx)
    decision = engine.decide_next()
    item = engine.catalog.select_item(decision.concept_id, engine.state.theta, engine.rng)
    console.print(f"[bold green]Next concept:[/] {engine.catalog.label(decision.concept_id)} ({decision.concept_id})")
    console.print(f"  state {decision.state_key}, Q={decision.q_value:.3f}, via {decision.source}")
    console.print(f"  suggested item {item.item_id}: {item.text} (difficulty {item.difficulty:.2f})")


@app.command()
def answer(
    ctx: typer.Context,
    item_id: str = typer.Option(..., "--item-id", help="Catalog item that was answered."),
    option: int = typer.Option(..., "--option", help="Zero-based index of the selected option."),
    latency_ms: float = typer.Option(..., "--latency-ms", help="Response time in milliseconds."),
    confidence: Optional[int] = typer.Option(None, "--confidence", help="Self-rated confidence 1-5."),
) -> None:
    """Record an answer to a catalog item."""
    engine = _engine(ctx)
    try:
        snapshot = engine.record_item_response(item_id, option, latency_ms, confidence)
    except ValidationError as exc:
        _reject(exc)
    _print_outcome(engine, snapshot)


@app.command()
def record(
    ctx: typer.Context,
    concept_id: str = typer.Option(..., "--concept-id", help="Concept the response belongs to."),
    correct: bool = typer.Option(True, "--correct/--incorrect", help="Whether the answer was right."),
    latency_ms: float = typer.Option(..., "--latency-ms", help="Response time in milliseconds."),
    estimated_time: float = typer.Option(15.0, "--est-time", help="Item's expected time in seconds."),
    difficulty: float = typer.Option(0.0, "--beta", help="Item difficulty."),
    discrimination: float = typer.Option(1.0, "--alpha", help="Item discrimination."),
    confidence: Optional[int] = typer.Option(None, "--confidence", help="Self-rated confidence 1-5."),
) -> None:
    """Record a raw response with explicit item parameters."""
    engine = _engine(ctx)
    try:
        snapshot = engine.record_response(
            concept_id, correct, latency_ms, estimated_time, difficulty, discrimination, confidence
        )
    except ValidationError as exc:
        _reject(exc)
    _print_outcome(engine, snapshot)


def _print_outcome(engine: LearnerEngine, snapshot) -> None:
    result = engine.last_transition
    concept_id = result.event.concept_id
    verdict = "[green]correct[/green]" if result.event.correct else "[red]incorrect[/red]"
    color = STATE_COLORS.get(snapshot.cognitive_state.value, "white")
    console.print(f"{engine.catalog.label(concept_id)}: {verdict}")
    console.print(
        f"  mastery {result.previous_mastery:.2f} -> {snapshot.mastery[concept_id].value:.2f}, "
        f"theta {snapshot.theta:.2f}, state [{color}]{snapshot.cognitive_state.value}[/{color}], "
        f"reward {result.reward:+.2f}"
    )
    if engine.last_persistence_error is not None:
        console.print("[yellow]Snapshot not saved; progress is kept in memory for this run.[/yellow]")


@app.command()
def practice(
    ctx: typer.Context,
    rounds: int = typer.Option(5, "--rounds", help="Number of questions to ask."),
) -> None:
    """Interactive practice loop driven by the policy."""
    engine = _engine(ctx)
    for round_number in range(1, rounds + 1):
        item = engine.next_item()
        console.rule(f"[bold]Question {round_number}/{rounds}[/bold] · {engine.catalog.label(item.concept_id)}")
        console.print(f"[bold]{item.text}[/bold]  [dim](difficulty {item.difficulty:.2f})[/dim]")
        for index, text in enumerate(item.options):
            console.print(f"  [{index}] {text}")
        started = time.monotonic()
        selected = typer.prompt("Your answer", type=int)
        latency_ms = (time.monotonic() - started) * 1000
        confidence = typer.prompt("How confident are you (1-5)?", type=int, default=3)
        try:
            snapshot = engine.record_item_response(item.item_id, selected, latency_ms, confidence)
        except ValidationError as exc:
            console.print(f"[red]Rejected: {exc}[/red]")
            continue
        _print_outcome(engine, snapshot)


@app.command()
def forecast(
    ctx: typer.Context,
    days: Optional[int] = typer.Option(None, "--days", help="Days to project (defaults to config)."),
) -> None:
    """Project recall-weighted mastery forward in time."""
    engine = _engine(ctx)
    days = engine.config.retention.forecast_days if days is None else days
    frame = retention_forecast(engine.get_snapshot().mastery, days, engine.config.retention)
    pivot = frame.pivot(index="concept_id", columns="day", values="retention")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Concept")
    for day in pivot.columns:
        table.add_column(f"d{day}")
    for concept_id, row in pivot.iterrows():
        table.add_row(engine.catalog.label(concept_id), *[f"{v:.0%}" for v in row])
    console.print(table)


@app.command()
def simulate(
    ctx: typer.Context,
    days: float = typer.Option(0.0, "--days", help="Hypothetical days without review."),
    overrides: List[str] = typer.Option([], "--set", help="Mastery override as concept_id=value."),
) -> None:
    """What-if simulation; never changes the saved learner."""
    engine = _engine(ctx)
    parsed = {}
    for entry in overrides:
        concept_id, _, value = entry.partition("=")
        try:
            if not engine.catalog.has_concept(concept_id):
                raise ValidationError(f"Unknown concept id '{concept_id}'.")
            parsed[concept_id] = min(1.0, max(0.0, float(value)))
        except ValueError as exc:
            _reject(ValidationError(f"Bad override '{entry}': {exc}"))
    frame = simulate_retention(engine.get_snapshot(), days, parsed, engine.config.retention)

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Concept", "Base mastery", f"After {days:g} days"):
        table.add_column(column)
    for _, row in frame.iterrows():
        table.add_row(engine.catalog.label(row["concept_id"]), f"{row['base_mastery']:.0%}", f"{row['projected']:.0%}")
    console.print(table)


@app.command()
def analytics(ctx: typer.Context) -> None:
    """Confidence calibration and policy preferences."""
    engine = _engine(ctx)
    snapshot = engine.get_snapshot()

    console.print("[bold yellow]Confidence gap[/bold yellow]")
    gap_table = Table(show_header=True, header_style="bold magenta")
    for column in ("Concept", "Perceived", "Actual", "Gap", ""):
        gap_table.add_column(column)
    for _, row in confidence_gap(snapshot, engine.catalog).iterrows():
        flag = "[red]overconfident[/red]" if row["overconfident"] else ""
        gap_table.add_row(
            engine.catalog.label(row["concept_id"]),
            f"{row['perceived']:.0%}",
            f"{row['actual']:.0%}",
            f"{row['gap']:+.2f}",
            flag,
        )
    console.print(gap_table)

    console.print()
    console.print("[bold yellow]Policy[/bold yellow]")
    policy_table = Table(show_header=True, header_style="bold magenta")
    for column in ("Concept", "Mean Q", "Max Q", "Visited states"):
        policy_table.add_column(column)
    for _, row in policy_summary(snapshot, engine.catalog).iterrows():
        policy_table.add_row(
            engine.catalog.label(row["concept_id"]),
            f"{row['mean_q']:.3f}",
            f"{row['max_q']:.3f}",
            str(row["visited_states"]),
        )
    console.print(policy_table)
    console.print(f"[dim]{len(snapshot.q_table)} policy states recorded.[/dim]")


@app.command()
def history(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", help="Most recent events to show."),
) -> None:
    """Show the most recent session events."""
    engine = _engine(ctx)
    frame = history_frame(engine.get_snapshot()).tail(limit)
    if frame.empty:
        console.print("[yellow]No responses recorded yet.[/yellow]")
        return
    table = Table(show_header=True, header_style="bold magenta")
    for column in ("When", "Concept", "Result", "Latency", "Confidence"):
        table.add_column(column)
    for _, row in frame.iloc[::-1].iterrows():
        table.add_row(
            row["timestamp"].strftime("%Y-%m-%d %H:%M"),
            engine.catalog.label(row["concept_id"]),
            "✓" if row["correct"] else "✗",
            f"{row['latency_ms'] / 1000:.1f}s",
            "-" if pd.isna(row["confidence"]) else str(int(row["confidence"])),
        )
    console.print(table)


@app.command()
def roadmap(ctx: typer.Context) -> None:
    """Concept prerequisites with current mastery."""
    engine = _engine(ctx)
    values = engine.get_snapshot().mastery_values()
    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Concept", "Mastery", "Builds on"):
        table.add_column(column)
    for concept in engine.catalog.concepts:
        edges = engine.catalog.prerequisites_of(concept.concept_id)
        builds_on = ", ".join(f"{engine.catalog.label(e.source)} ({e.weight:.1f})" for e in edges) or "-"
        table.add_row(concept.label, f"{values[concept.concept_id]:.0%}", builds_on)
    console.print(table)


@app.command()
def ask(
    ctx: typer.Context,
    message: str = typer.Argument(..., help="Question for the learning assistant."),
    provider: Optional[str] = typer.Option(None, "--provider", help="openai or anthropic (defaults to LLM_PROVIDER)."),
) -> None:
    """Ask the assistant about your learning path."""
    engine = _engine(ctx)
    try:
        assistant = LearningAssistant(engine.get_snapshot, engine.catalog, answerer_from_env(provider))
        reply = assistant.ask(message)
    except ValidationError as exc:
        _reject(exc)
    if reply.ok:
        console.print(f"[bold blue]CogniPath:[/] {reply.text}")
    else:
        console.print(f"[red]{reply.text}[/red]")


if __name__ == "__main__":
    app()
