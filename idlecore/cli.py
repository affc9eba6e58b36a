from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys

from idlecore._types import wall_clock_ms
from idlecore.definition import GameDefinition
from idlecore.formatting import format_duration, format_number, format_text_report
from idlecore.offline import calculate_offline_progress
from idlecore.save import SaveSnapshot
from idlecore.simulation import Simulation
from idlecore.strategy import ClickProfile, GreedyCheapest, Idle, Strategy


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idlecore",
        description="idlecore: idle game simulation CLI",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    sim = sub.add_parser("simulate", help="Run a headless simulation")
    sim.add_argument("game_module", help="Python module with define_game()")
    sim.add_argument(
        "--strategy",
        default="greedy_cheapest",
        choices=["greedy_cheapest", "idle"],
        help="Strategy to use (default: greedy_cheapest)",
    )
    sim.add_argument("--cps", type=float, default=0.0, help="Clicks per second")
    sim.add_argument("--click-target", default=None, help="Resource to click")
    sim.add_argument(
        "--tick-ms", type=float, default=None, help="Milliseconds per tick (default: base_tick_ms)"
    )
    sim.add_argument("--seed", type=int, default=None, help="Random seed")
    sim.add_argument(
        "--duration", type=float, default=3600, help="Simulated time (s)"
    )
    sim.add_argument(
        "--start",
        action="append",
        default=[],
        metavar="BUILDING=COUNT",
        help="Buildings owned at the start (repeatable)",
    )
    sim.add_argument("--export-csv", default=None, help="CSV export path prefix")
    sim.add_argument("--export-json", default=None, help="JSON export path")
    sim.add_argument("--plot", default=None, help="Plot output path (PNG)")
    sim.add_argument(
        "--monte-carlo",
        type=int,
        default=None,
        help="Number of Monte Carlo runs",
    )

    off = sub.add_parser("offline", help="Compute offline progress for a save file")
    off.add_argument("game_module", help="Python module with define_game()")
    off.add_argument("save_file", help="Path to a stored save snapshot (JSON)")
    when = off.add_mutually_exclusive_group()
    when.add_argument("--now", type=float, default=None, help="Epoch milliseconds to catch up to")
    when.add_argument(
        "--elapsed", type=float, default=None, help="Seconds since the save was last played"
    )
    off.add_argument("--json", action="store_true", help="Print the result as JSON")

    return parser


def load_game(module_path: str) -> GameDefinition:
    """Import module and call define_game()."""
    mod = importlib.import_module(module_path)
    if not hasattr(mod, "define_game"):
        print(f"Error: module {module_path!r} has no define_game() function")
        sys.exit(1)
    return mod.define_game()


def build_strategy(
    name: str,
    cps: float,
    click_target: str | None,
    definition: GameDefinition,
) -> Strategy:
    click_profile = None
    if cps > 0 and click_target:
        click_profile = ClickProfile(targets={click_target: cps})
    elif cps > 0 and definition.click_targets:
        ct = definition.click_targets[0]
        click_profile = ClickProfile(targets={ct.resource: cps})

    if name == "idle":
        return Idle(click_profile=click_profile)
    return GreedyCheapest(click_profile=click_profile)


def parse_start_buildings(items: list[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for item in items:
        building_id, sep, count = item.partition("=")
        if not sep or not building_id:
            raise ValueError(f"Expected BUILDING=COUNT, got {item!r}")
        counts[building_id] = int(count)
    return counts


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "simulate":
        _simulate(args)
    elif args.command == "offline":
        _offline(args)


def _simulate(args: argparse.Namespace) -> None:
    definition = load_game(args.game_module)
    try:
        start_buildings = parse_start_buildings(args.start)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(2)

    strategy = build_strategy(args.strategy, args.cps, args.click_target, definition)

    if args.monte_carlo and args.monte_carlo > 1:
        _run_monte_carlo(definition, strategy, start_buildings, args)
        return

    sim = Simulation(
        definition=definition,
        strategy=strategy,
        duration=args.duration,
        tick_ms=args.tick_ms,
        seed=args.seed,
        start_buildings=start_buildings,
    )
    report = sim.run()
    print(format_text_report(report))

    if args.export_csv:
        from idlecore.export import export_csv
        export_csv(report, args.export_csv)
        print(f"\nCSV exported to {args.export_csv}_*.csv")

    if args.export_json:
        from idlecore.export import export_json
        export_json(report, args.export_json)
        print(f"\nJSON exported to {args.export_json}")

    if args.plot:
        from idlecore.visualization import plot_simulation
        plot_simulation(report, args.plot)
        print(f"\nPlot saved to {args.plot}")


def _offline(args: argparse.Namespace) -> None:
    definition = load_game(args.game_module)
    try:
        with open(args.save_file, encoding="utf-8") as f:
            snapshot = SaveSnapshot.from_json(f.read())
    except (OSError, ValueError) as exc:
        print(f"Error: cannot read save {args.save_file!r}: {exc}")
        sys.exit(1)
    if not snapshot.is_valid():
        print(f"Error: save {args.save_file!r} failed its checksum")
        sys.exit(1)

    last_played_at = float(snapshot.data.get("last_played_at") or snapshot.timestamp)
    if args.now is not None:
        now = args.now
    elif args.elapsed is not None:
        now = last_played_at + args.elapsed * 1000.0
    else:
        now = wall_clock_ms()

    progress = calculate_offline_progress(definition, snapshot.data, last_played_at, now)
    if args.json:
        print(json.dumps(progress.to_dict() if progress else None, indent=2))
        return
    if progress is None:
        print("No offline progress (away for less than a second)")
        return
    print(
        f"Away {format_duration(progress.offline_time_ms / 1000.0)} "
        f"at {progress.efficiency_applied:.0%} efficiency"
    )
    for rid, amount in sorted(progress.resources_gained.items()):
        sign = "+" if amount >= 0 else "-"
        print(f"  {rid:.<30s} {sign}{format_number(abs(amount))}")


def _run_monte_carlo(
    definition: GameDefinition,
    strategy: Strategy,
    start_buildings: dict[str, int],
    args: argparse.Namespace,
) -> None:
    """Run multiple simulations and report aggregate results."""
    n = args.monte_carlo
    lifetimes: dict[str, list[float]] = {}
    purchase_counts: list[int] = []
    loss_counts: list[int] = []
    stall_count = 0

    for i in range(n):
        sim = Simulation(
            definition=definition,
            strategy=strategy,
            duration=args.duration,
            tick_ms=args.tick_ms,
            seed=(args.seed + i) if args.seed is not None else None,
            start_buildings=start_buildings,
        )
        report = sim.run()
        purchase_counts.append(len(report.purchases))
        loss_counts.append(len(report.losses))
        if report.stalls:
            stall_count += 1
        for rid, value in report.final_lifetime.items():
            lifetimes.setdefault(rid, []).append(value)

    print(f"Monte Carlo: {n} runs of {format_duration(args.duration)}")
    print(f"Purchases: mean={sum(purchase_counts)/n:.1f}, "
          f"min={min(purchase_counts)}, max={max(purchase_counts)}")
    print(f"Buildings lost: mean={sum(loss_counts)/n:.1f}")
    print(f"Stall rate: {stall_count}/{n}")
    if lifetimes:
        print("Lifetime totals (mean / min / max):")
        for rid, values in sorted(lifetimes.items()):
            mean = sum(values) / len(values)
            print(
                f"  {rid}: {format_number(mean)} / "
                f"{format_number(min(values))} / {format_number(max(values))}"
            )
