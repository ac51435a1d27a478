# ABOUTME: Warm-starts the Q-learning policy by running the engine against a simulated learner.
# ABOUTME: The synthetic learner answers with 2PL probabilities and slowly improves with practice.

"""
Warm-Start Policy Script

Plays practice sessions between the engine and a synthetic learner so the
Q-table has sensible preferences before a real learner arrives. The final
snapshot (mastery, ability, Q-table, history) is written as the starting
snapshot.

Usage:
    python scripts/warmstart_policy.py
    python scripts/warmstart_policy.py --steps 500 --output data/warm_snapshot.json
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import typer
import yaml
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from src.common.catalog import default_catalog, load_catalog
from src.common.config import load_config
from src.common.errors import PersistenceError, ValidationError
from src.common.log_setup import configure_logging
from src.learner.engine import LearnerEngine
from src.learner.irt import probability_correct
from src.learner.persistence import JsonSnapshotStore, MemorySnapshotStore

console = Console()
app = typer.Typer(help="Warm-start the Q-learning policy against a simulated learner.")


@dataclass
class SimulatedLearner:
    """Latent per-concept ability that grows a little with every attempt."""

    abilities: Dict[str, float]
    practice_gain: float = 0.05
    rng: np.random.Generator = field(default_factory=np.random.default_rng)

    def respond(self, concept_id: str, difficulty: float, discrimination: float, estimated_time_sec: float):
        ability = self.abilities[concept_id]
        correct = bool(self.rng.random() < probability_correct(ability, difficulty, discrimination))
        latency_ms = float(max(500.0, self.rng.normal(estimated_time_sec * 1000, estimated_time_sec * 250)))
        self.abilities[concept_id] = ability + self.practice_gain
        return correct, latency_ms


class SimulatedClock:
    def __init__(self, start: datetime, step: timedelta):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        return self.now

    def advance(self) -> None:
        self.now = self.now + self.step


def run_warmstart(
    engine: LearnerEngine,
    learner: SimulatedLearner,
    clock: SimulatedClock,
    steps: int,
    progress: Optional[Progress] = None,
) -> int:
    """Play ``steps`` recommended items; returns the number of correct answers."""
    task = progress.add_task("Simulating...", total=steps) if progress else None
    n_correct = 0
    for _ in range(steps):
        item = engine.next_item()
        correct, latency_ms = learner.respond(
            item.concept_id, item.difficulty, item.discrimination, item.estimated_time_sec
        )
        engine.record_response(
            item.concept_id,
            correct,
            latency_ms,
            item.estimated_time_sec,
            item.difficulty,
            item.discrimination,
        )
        n_correct += int(correct)
        clock.advance()
        if progress:
            progress.advance(task)
    return n_correct


@app.command()
def warmstart(
    output_path: Path = typer.Option(
        Path("data/warm_snapshot.json"),
        "--output",
        help="Where to write the warm-started snapshot.",
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
    steps: int = typer.Option(300, "--steps", help="Number of simulated responses."),
    minutes_between: float = typer.Option(
        30.0,
        "--minutes-between",
        help="Simulated time between responses.",
    ),
    seed: int = typer.Option(42, "--seed", help="Random seed for the learner and the policy."),
) -> None:
    """
    Train the policy on a simulated learner and save the resulting snapshot.
    """
    configure_logging("WARNING")
    console.rule("[bold blue]Warm-Starting Q-Learning Policy[/bold blue]")

    try:
        config = load_config(config_path)
        catalog_path = config.persistence.catalog_path
        catalog = load_catalog(Path(catalog_path)) if catalog_path and Path(catalog_path).exists() else default_catalog()
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        console.print(f"[red]Could not read configuration: {exc}[/red]")
        raise typer.Exit(code=1)

    rng = np.random.default_rng(seed)
    learner = SimulatedLearner(
        abilities={concept_id: float(rng.normal(-0.5, 0.5)) for concept_id in catalog.concept_ids()},
        rng=rng,
    )
    clock = SimulatedClock(datetime(2024, 1, 1, tzinfo=timezone.utc), timedelta(minutes=minutes_between))
    engine = LearnerEngine(
        catalog=catalog,
        config=config,
        store=MemorySnapshotStore(),
        rng=np.random.default_rng(seed + 1),
        clock=clock,
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        n_correct = run_warmstart(engine, learner, clock, steps, progress)

    snapshot = engine.get_snapshot()
    try:
        JsonSnapshotStore(output_path).save(snapshot.to_dict())
    except PersistenceError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    console.print()
    console.print(f"[green]✅ Policy warm-started and saved to {output_path}[/green]")
    console.print(f"   Responses: {steps:,} ({n_correct / max(steps, 1):.0%} correct)")
    console.print(f"   Policy states: {len(snapshot.q_table):,}")
    console.print(f"   Ability (theta): {snapshot.theta:.2f}")

    console.print()
    console.print("[dim]Final mastery:[/dim]")
    for concept_id, value in sorted(snapshot.mastery_values().items()):
        bar = "█" * int(value * 20)
        console.print(f"   {catalog.label(concept_id):18} {value:.2f} {bar}")


if __name__ == "__main__":
    app()
