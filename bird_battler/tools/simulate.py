from __future__ import annotations

import hashlib
import json
from collections import Counter
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from bird_battler.app.services.logger import configure_from_settings
from bird_battler.app.services.paths import UserPaths, resolve_user_paths
from bird_battler.app.services.settings_store import SettingsStore
from bird_battler.core.battle import BattleState, auto_battle, start_battle
from bird_battler.core.idle import ManualTickSource, tick
from bird_battler.core.loader import ContentBundle, ContentValidationError, load_content
from bird_battler.core.models import RARITY_ORDER, PlayerState
from bird_battler.core.persistence import create_default_player_state
from bird_battler.core.rarity import roll_rarity, tier_name
from bird_battler.core.rewards import apply_battle_result
from bird_battler.core.rng import DeterministicRNG
from bird_battler.core.roster import assign_hunter, choose_starter
from bird_battler.core.save_system import SlotStorage
from bird_battler.core.session import GameSession
from bird_battler.core.settings import EngineSettings

app = typer.Typer(add_completion=False, help="Headless battle and idle simulation for balancing and testing.")
console = Console()

ROLL_CONTEXTS = ("CRAFT", "CATCH", "DROP")


def _normalize_seed(raw_seed: str) -> int | str:
    try:
        return int(raw_seed)
    except ValueError:
        return raw_seed


def _content() -> ContentBundle:
    content_dir = Path(__file__).resolve().parents[1] / "content"
    try:
        return load_content(content_dir)
    except ContentValidationError as exc:
        console.print(f"[bold red]Content load failed:[/bold red] {exc}")
        raise typer.Exit(1) from exc


def _starter_state(seed: str, species: str, content: ContentBundle) -> tuple[PlayerState, DeterministicRNG]:
    if species not in content.template_by_id:
        console.print(f"[bold red]Unknown species '{species}'.[/bold red]")
        raise typer.Exit(1)
    state = create_default_player_state(_normalize_seed(seed))
    rng = DeterministicRNG.from_seed(state.base_seed)
    result = choose_starter(state, species, rng, content)
    return result.state, rng


def _battle_signature(battle: BattleState) -> str:
    payload = {
        "winner": battle.winner,
        "turn": battle.turn,
        "player_hp": battle.player.current_hp,
        "opponent_hp": battle.opponent.current_hp,
        "log": battle.log,
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()[:16]


@app.command()
def battle(
    seed: str = typer.Option("123", "--seed", help="Seed value (int or string)."),
    species: str = typer.Option("eagle", "--species", help="Starter species id."),
    battles: int = typer.Option(1, "--battles", min=1, help="Number of battles to fight in a row."),
    max_turns: int = typer.Option(200, "--max-turns", min=1, help="Turn cap before a stalemate counts as a loss."),
    show_log: bool = typer.Option(False, "--log", help="Print the battle log of the last battle."),
) -> None:
    """Auto-play battles with both sides on the local heuristic."""
    content = _content()
    state, rng = _starter_state(seed, species, content)

    results = Table(title="Battles")
    results.add_column("#", justify="right")
    results.add_column("Zone", justify="right")
    results.add_column("Opponent", style="cyan")
    results.add_column("Winner")
    results.add_column("Turns", justify="right")
    results.add_column("Feathers", justify="right")
    results.add_column("XP", justify="right")

    last: BattleState | None = None
    for index in range(1, battles + 1):
        started = start_battle(state, rng, content=content)
        if not started.ok:
            console.print(f"[bold red]{started.message}[/bold red]")
            raise typer.Exit(1)
        last = auto_battle(started.payload, rng, max_turns=max_turns, content=content)
        settled = apply_battle_result(state, last, rng, content)
        state = settled.state
        rewards = last.rewards
        results.add_row(
            str(index),
            str(last.zone),
            f"{last.opponent.rarity.title()} {last.opponent.name}",
            last.winner or "-",
            str(last.turn),
            str(rewards.feathers if rewards else 0),
            str(rewards.xp if rewards else 0),
        )

    console.print(results)
    if show_log and last is not None:
        for line in last.log:
            console.print(line, markup=False)

    creature = state.creatures[state.selected_creature_id]
    summary = Table(title="Player")
    summary.add_column("Field", style="cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Bird", f"{creature.name} L{creature.level} ({creature.xp}/{creature.xp_to_next} XP)")
    summary.add_row("Feathers", str(state.feathers))
    summary.add_row("Scrap", str(state.scrap))
    summary.add_row("Diamonds", str(state.diamonds))
    summary.add_row("Highest zone", str(state.highest_zone))
    summary.add_row("Zone progress", ", ".join(state.zone_progress) or "-")
    console.print(summary)
    if last is not None:
        console.print(f"\n[bold green]Deterministic signature:[/bold green] {_battle_signature(last)}")


@app.command()
def idle(
    seed: str = typer.Option("123", "--seed", help="Seed value (int or string)."),
    species: str = typer.Option("eagle", "--species", help="Hunting species id."),
    ticks: int = typer.Option(60, "--ticks", min=1, help="Number of idle ticks to run."),
) -> None:
    """Run idle ticks against a fresh state with the starter out hunting."""
    content = _content()
    state, rng = _starter_state(seed, species, content)
    state = assign_hunter(state, state.selected_creature_id).state
    start_feathers, start_scrap = state.feathers, state.scrap

    drops: Counter[str] = Counter()
    for _ in range(ticks):
        result = tick(state, rng, content)
        state = result.state
        report = result.payload
        if report.consumable is not None:
            drops[f"{report.consumable[1].title()} {report.consumable[0]}"] += 1
        if report.gem_id is not None:
            drops["Gem"] += 1
        drops["Diamond"] += report.diamonds

    summary = Table(title=f"Idle: {ticks} ticks")
    summary.add_column("Field", style="cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Feathers", f"+{state.feathers - start_feathers}")
    summary.add_row("Per tick", f"{(state.feathers - start_feathers) / ticks:.2f}")
    summary.add_row("Scrap", f"+{state.scrap - start_scrap}")
    summary.add_row("Drops", ", ".join(f"{name}x{count}" for name, count in sorted(drops.items()) if count) or "-")
    console.print(summary)


@app.command()
def roll(
    level: int = typer.Option(0, "--level", min=0, help="Upgrade level added to the roll score."),
    context: str = typer.Option("CRAFT", "--context", help="CRAFT|CATCH|DROP."),
    multiplier: float = typer.Option(1.0, "--multiplier", min=1.0, help="Catch skill multiplier."),
    samples: int = typer.Option(10000, "--samples", min=1, help="Number of rolls."),
    seed: str = typer.Option("123", "--seed", help="Seed value (int or string)."),
) -> None:
    """Histogram rarity rolls for a level and context."""
    context = context.upper()
    if context not in ROLL_CONTEXTS:
        raise typer.BadParameter(f"Unknown context '{context}'.", param_hint="--context")
    content = _content()
    rng = DeterministicRNG.from_seed(_normalize_seed(seed))
    counts = Counter(roll_rarity(rng, level, context, multiplier, content) for _ in range(samples))

    table = Table(title=f"{context} rolls at level {level}")
    table.add_column("Rarity", style="cyan")
    table.add_column("Tier")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")
    for rarity in RARITY_ORDER:
        table.add_row(rarity, tier_name(rarity, content), str(counts[rarity]), f"{counts[rarity] / samples:.2%}")
    console.print(table)


def _bootstrap() -> tuple[UserPaths, EngineSettings]:
    paths = resolve_user_paths()
    settings = SettingsStore(paths.settings_file).load_model()
    bundle = configure_from_settings(paths.logs, settings.logging)
    bundle.app.info("Using data root %s.", paths.root)
    return paths, settings


@app.command()
def slots(
    idle_ticks: int = typer.Option(0, "--idle-ticks", min=0, help="Idle ticks to run on the last played slot first."),
) -> None:
    """List the save slots in the user data directory."""
    paths, settings = _bootstrap()
    content = _content()
    storage = SlotStorage(paths.saves, settings.gameplay.save_slots, base_seed=settings.gameplay.base_seed)

    last = storage.last_slot()
    if idle_ticks and last is not None:
        session = GameSession.open(paths.saves, last, settings=settings, content=content)
        try:
            before = session.state.feathers
            session.run_idle(ManualTickSource(idle_ticks))
            console.print(f"Slot {last}: +{session.state.feathers - before} feathers over {idle_ticks} ticks.")
        finally:
            session.close()

    table = Table(title=f"Save slots ({paths.saves})")
    table.add_column("Slot", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Birds", justify="right")
    table.add_column("Best", justify="right")
    table.add_column("Zone", justify="right")
    table.add_column("Feathers", justify="right")
    table.add_column("Last played")
    for summary in storage.list_slots():
        marker = "*" if summary.slot == last else ""
        if not summary.occupied:
            table.add_row(f"{summary.slot}{marker}", summary.slot_name, "-", "-", "-", "-", "empty")
            continue
        table.add_row(
            f"{summary.slot}{marker}",
            summary.slot_name,
            str(summary.creature_count),
            f"L{summary.best_level}",
            str(summary.highest_zone),
            str(summary.feathers),
            summary.last_played or "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
