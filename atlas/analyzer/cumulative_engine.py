"""ATLAS — Cumulative Engine.

Running totals and moving averages of monthly revenue and spend, for
long-term growth tracking.
"""

from collections import defaultdict
from typing import Dict, List, Sequence

from atlas.models.raw_models import Purchase, Spend
from atlas.models.analysis_models import CumulativeMetric
from atlas.core.util import as_date, month_key


def _accumulate(series: str, monthly: Dict[tuple, list[float]]) -> List[CumulativeMetric]:
    rows: List[CumulativeMetric] = []
    running_total = 0.0
    averages: list[float] = []
    for year, month in sorted(monthly):
        values = monthly[(year, month)]
        total = sum(values)
        average = total / len(values)
        running_total += total
        averages.append(average)
        rows.append(
            CumulativeMetric(
                series=series,
                year=year,
                month=month,
                total=round(total, 2),
                average=round(average, 2),
                running_total=round(running_total, 2),
                moving_average=round(sum(averages) / len(averages), 2),
            )
        )
    return rows


def compute_cumulative(
    purchases: Sequence[Purchase], spend: Sequence[Spend]
) -> List[CumulativeMetric]:
    """Monthly revenue and spend with running totals and moving averages.

    The moving average is the mean of the monthly averages seen so far
    (average purchase value for revenue, average spend row for spend).
    """
    revenue: Dict[tuple, list[float]] = defaultdict(list)
    for p in purchases:
        revenue[month_key(as_date(p.timestamp))].append(float(p.revenue))

    costs: Dict[tuple, list[float]] = defaultdict(list)
    for s in spend:
        costs[month_key(s.spend_date)].append(float(s.amount))

    return _accumulate("revenue", revenue) + _accumulate("spend", costs)
