"""ATLAS — Trend Engine.

Month-over-month and against-average comparison within each partition.
Produces: partition average, deviation, previous value, delta, % change,
and polarity-aware signals.
"""

from typing import Dict, List, Optional, Sequence

from atlas.models.analysis_models import MonthlyMetric
from atlas.core.metric_registry import Polarity, resolve_polarity
from atlas.core.util import mean
from atlas.core.logging import get_logger

logger = get_logger("analyzer.trend")

PERCENT_DIGITS = 2


def _direction(delta: Optional[float]) -> Optional[str]:
    if delta is None:
        return None
    if delta > 0:
        return "higher"
    elif delta < 0:
        return "lower"
    return "no_change"


def _avg_label(deviation: Optional[float]) -> Optional[str]:
    if deviation is None:
        return None
    if deviation > 0:
        return "above_average"
    elif deviation < 0:
        return "below_average"
    return "equal_average"


def _signal(polarity: Polarity, delta: Optional[float]) -> Optional[str]:
    """Read a change against the metric's polarity."""
    if delta is None:
        return None
    if polarity is Polarity.NEUTRAL:
        return "neutral"
    if delta == 0:
        return "unchanged"
    # For cost-like metrics, "up" is bad
    rising_is_good = polarity is Polarity.HIGHER
    if (delta > 0) == rising_is_good:
        return "improved"
    return "worsened"


def _percent_change(
    delta: Optional[float], previous: Optional[float]
) -> Optional[float]:
    # Zero baseline: undefined, not infinite
    if delta is None or previous is None or previous == 0:
        return None
    return round(delta / previous * 100, PERCENT_DIGITS)


def _trend_partition(
    rows: List[MonthlyMetric], polarity: Polarity
) -> List[MonthlyMetric]:
    ordered = sorted(rows, key=lambda r: (r.year, r.month))
    avg = mean([r.value for r in ordered if r.value is not None])

    out: List[MonthlyMetric] = []
    previous: Optional[MonthlyMetric] = None
    for row in ordered:
        value = row.value
        deviation = None if value is None or avg is None else value - avg
        prev_value = previous.value if previous is not None else None
        delta = None if value is None or prev_value is None else value - prev_value

        out.append(
            row.model_copy(
                update={
                    "avg_over_partition": avg,
                    "deviation_from_avg": deviation,
                    "avg_label": _avg_label(deviation),
                    "avg_signal": _signal(polarity, deviation),
                    "previous_period_value": prev_value,
                    "delta_from_previous": delta,
                    "percent_change": _percent_change(delta, prev_value),
                    "direction": _direction(delta),
                    "signal": _signal(polarity, delta),
                }
            )
        )
        previous = row
    return out


def _polarity(metric_name: str, higher_is_better: Optional[bool]) -> Polarity:
    if higher_is_better is None:
        return resolve_polarity(metric_name)
    return Polarity.HIGHER if higher_is_better else Polarity.LOWER


def compute_trends(
    rows: Sequence[MonthlyMetric],
    metric_name: Optional[str] = None,
    higher_is_better: Optional[bool] = None,
) -> List[MonthlyMetric]:
    """Annotate monthly rows with partition-average and MoM context.

    Rows are partitioned by (metric, dimension, dimension_key); partitions
    keep their first-seen order and are ordered by (year, month) inside.
    The previous period is the preceding row of the partition, whatever
    calendar gap lies between them.
    """
    partitions: Dict[tuple, List[MonthlyMetric]] = {}
    for r in rows:
        if metric_name is not None and r.metric_name != metric_name:
            continue
        partitions.setdefault((r.metric_name, r.dimension, r.dimension_key), []).append(r)

    out: List[MonthlyMetric] = []
    for (name, _, _), part in partitions.items():
        out.extend(_trend_partition(part, _polarity(name, higher_is_better)))

    logger.info(f"Computed trends for {len(out)} rows across {len(partitions)} partitions")
    return out
