from __future__ import annotations

from idlecore.report import SimulationReport


def plot_simulation(
    report: SimulationReport,
    output_path: str | None = None,
) -> None:
    """Generate a 4-panel matplotlib visualization of simulation results.

    Requires matplotlib (optional dependency).
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError(
            "matplotlib is required for visualization. "
            "Install with: pip install idlecore[viz]"
        )

    fig, axes = plt.subplots(2, 2, figsize=(14, 10))
    fig.suptitle(f"idlecore simulation: {report.strategy_description}", fontsize=14)

    # 1. Resource amounts over time (log scale)
    ax1 = axes[0][0]
    resource_ids = sorted({s.resource_id for s in report.resource_snapshots})
    for rid in resource_ids:
        series = report.resource_series(rid)
        if series:
            times, values = zip(*series)
            ax1.plot(times, [max(v, 1e-10) for v in values], label=rid)
    ax1.set_yscale("log")
    ax1.set_xlabel("Time (s)")
    ax1.set_ylabel("Amount")
    ax1.set_title("Resources")
    ax1.legend(fontsize=8)
    ax1.grid(True, alpha=0.3)

    # 2. Net rates over time
    ax2 = axes[0][1]
    for rid in resource_ids:
        series = report.rate_series(rid)
        if series:
            times, rates = zip(*series)
            if any(r != 0 for r in rates):
                ax2.plot(times, rates, label=rid)
    ax2.axhline(0.0, color="black", linewidth=0.5)
    ax2.set_xlabel("Time (s)")
    ax2.set_ylabel("Net rate (/s)")
    ax2.set_title("Net Rates")
    ax2.legend(fontsize=8)
    ax2.grid(True, alpha=0.3)

    # 3. Buildings owned, with starvation losses marked
    ax3 = axes[1][0]
    building_ids = sorted(
        {s.building_id for s in report.building_snapshots if s.owned > 0}
    )
    for bid in building_ids:
        series = report.building_series(bid)
        times, counts = zip(*series)
        ax3.step(times, counts, where="post", label=bid)
    if report.losses:
        ax3.scatter(
            [loss.time for loss in report.losses],
            [loss.remaining for loss in report.losses],
            marker="x",
            color="red",
            label="starved",
        )
    ax3.set_xlabel("Time (s)")
    ax3.set_ylabel("Owned")
    ax3.set_title("Buildings")
    ax3.legend(fontsize=7)
    ax3.grid(True, alpha=0.3)

    # 4. Purchase gap histogram
    ax4 = axes[1][1]
    if report.purchase_gaps:
        ax4.hist(report.purchase_gaps, bins=min(30, len(report.purchase_gaps)), alpha=0.7)
        ax4.axvline(
            report.mean_purchase_gap,
            color="red",
            linestyle="--",
            label=f"Mean: {report.mean_purchase_gap:.1f}s",
        )
        ax4.set_xlabel("Gap (s)")
        ax4.set_ylabel("Count")
        ax4.set_title("Purchase Gap Distribution")
        ax4.legend()
        ax4.grid(True, alpha=0.3)

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path, dpi=150)
    else:
        plt.show()
