from __future__ import annotations

import math

from idlecore.report import SimulationReport

_SUFFIXES = ["", "K", "M", "B", "T", "Qa", "Qi"]


def format_number(value: float, precision: int = 2) -> str:
    """Short display form: ``1234`` -> ``1.23K``; scientific past the suffix table."""
    if math.isnan(value) or math.isinf(value):
        return str(value)
    if abs(value) < 1000:
        if value == int(value):
            return str(int(value))
        return f"{value:.{precision}f}"
    tier = int(math.log10(abs(value)) // 3)
    if tier >= len(_SUFFIXES):
        return f"{value:.{precision}e}"
    scaled = value / 10 ** (tier * 3)
    return f"{scaled:.{precision}f}{_SUFFIXES[tier]}"


def format_duration(seconds: float) -> str:
    """``3725`` -> ``1h 2m 5s``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_text_report(report: SimulationReport) -> str:
    """Format a simulation report for console output."""
    lines: list[str] = []

    lines.append("=" * 40 + " idlecore Simulation Report " + "=" * 40)
    lines.append(f"Strategy: {report.strategy_description}")
    if report.seed is not None:
        lines.append(f"Seed: {report.seed}")
    lines.append(f"Result: {report.outcome} at {format_duration(report.total_time)}")
    lines.append("")

    lines.append("RESOURCES:")
    for rid, amount in sorted(report.final_resources.items()):
        lifetime = report.final_lifetime.get(rid, 0.0)
        lines.append(
            f"  {rid:.<30s} {format_number(amount):>10s}  (lifetime {format_number(lifetime)})"
        )
    lines.append("")

    owned = {bid: n for bid, n in report.final_buildings.items() if n > 0}
    if owned:
        lines.append("BUILDINGS:")
        for bid, count in sorted(owned.items()):
            lines.append(f"  {bid:.<30s} {count}")
        lines.append("")

    if report.upgrades_purchased:
        lines.append("UPGRADES:")
        for uid in report.upgrades_purchased:
            lines.append(f"  * {uid}")
        lines.append("")

    lines.append("PURCHASES:")
    lines.append(f"  Total: {len(report.purchases)}")
    lines.append(f"  Rate: {report.purchases_per_minute:.1f}/min")
    lines.append(f"  Max gap: {report.max_purchase_gap:.1f}s")
    lines.append(f"  Mean gap: {report.mean_purchase_gap:.1f}s")

    if report.losses:
        lines.append("")
        lines.append("LOSSES:")
        for loss in report.losses:
            lines.append(
                f"  {loss.time:>8.1f}s  {loss.building_id} ({loss.cause}), "
                f"{loss.remaining} remaining"
            )

    if report.stalls:
        lines.append("")
        lines.append(f"STALLED at {format_duration(report.stalls[0].time)}")

    return "\n".join(lines)
