from __future__ import annotations

import csv
import json
from pathlib import Path

from idlecore.report import SimulationReport


def export_csv(report: SimulationReport, path: str | Path) -> None:
    """Export simulation data as CSV files.

    Creates three files:
      - {path}_resources.csv
      - {path}_purchases.csv
      - {path}_losses.csv
    """
    base = str(path)

    # Resource series
    with open(f"{base}_resources.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["time", "resource_id", "value", "rate", "lifetime"])
        for s in report.resource_snapshots:
            writer.writerow([s.time, s.resource_id, s.value, s.rate, s.lifetime])

    # Purchases
    with open(f"{base}_purchases.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["time", "kind", "item_id", "cost_json", "resources_after_json"])
        for p in report.purchases:
            writer.writerow([
                p.time,
                p.kind,
                p.item_id,
                json.dumps(p.cost_paid),
                json.dumps(p.resources_after),
            ])

    # Starvation losses
    with open(f"{base}_losses.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["time", "building_id", "remaining", "cause"])
        for loss in report.losses:
            writer.writerow([loss.time, loss.building_id, loss.remaining, loss.cause])


def export_json(report: SimulationReport, path: str | Path) -> None:
    """Export full simulation report as JSON."""
    data = {
        "strategy": report.strategy_description,
        "outcome": report.outcome,
        "seed": report.seed,
        "total_time": report.total_time,
        "final_resources": report.final_resources,
        "final_lifetime": report.final_lifetime,
        "final_buildings": report.final_buildings,
        "upgrades_purchased": report.upgrades_purchased,
        "purchase_count": len(report.purchases),
        "purchases_per_minute": report.purchases_per_minute,
        "max_purchase_gap": report.max_purchase_gap,
        "mean_purchase_gap": report.mean_purchase_gap,
        "stall_count": len(report.stalls),
        "losses": [
            {
                "time": loss.time,
                "building_id": loss.building_id,
                "remaining": loss.remaining,
                "cause": loss.cause,
            }
            for loss in report.losses
        ],
        "purchases": [
            {
                "time": p.time,
                "kind": p.kind,
                "item_id": p.item_id,
                "cost_paid": p.cost_paid,
            }
            for p in report.purchases
        ],
    }
    with open(str(path), "w") as f:
        json.dump(data, f, indent=2)
