from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from .formatting import format_axis_value, format_exact_value
from .models import SeriesPoint, slugify


def plot_series(
    points: Sequence[SeriesPoint],
    *,
    movement_name: str,
    unit: str,
    output_dir: Path,
) -> Path:
    """Save a line chart of one movement's series and return its path."""
    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt  # type: ignore
        from matplotlib.ticker import FuncFormatter  # type: ignore
    except ImportError as exc:  # pragma: no cover - exercised via CLI
        raise RuntimeError("matplotlib is required to generate plots.") from exc

    if not points:
        raise ValueError(f"No entries logged for {movement_name}.")

    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    chart_path = output_dir / f"{slugify(movement_name)}_{timestamp}.png"

    dates = [point.date for point in points]
    values = [point.value for point in points]

    fig, ax = plt.subplots()
    ax.plot(dates, values, marker="o", linewidth=2, color="#dca636")
    ax.yaxis.set_major_formatter(FuncFormatter(lambda value, _pos: format_axis_value(value)))
    _annotate_last(ax, points)
    ax.set_title(movement_name)
    ax.set_xlabel("Date")
    ax.set_ylabel(unit or "Value")
    fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(chart_path, dpi=150)
    plt.close(fig)
    return chart_path


def _annotate_last(ax: Any, points: Sequence[SeriesPoint]) -> None:
    last = points[-1]
    ax.annotate(
        format_exact_value(last.value),
        xy=(last.date, last.value),
        xytext=(0, 8),
        textcoords="offset points",
        ha="center",
    )
