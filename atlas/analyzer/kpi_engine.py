"""ATLAS — KPI Engine.

Monthly ROI, ROAS and CAC per partition. The revenue side comes from one
of three fact views (raw purchases, linear shares or last touch), the
spend side from the spend facts keyed the same way; the two are
full-outer-joined on (year, month, key).

Missing sides are coalesced to 0 for profit, but a zero denominator
always yields None: no spend means an undefined ROAS, not a zero ROAS.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from atlas.models.raw_models import Campaign, Purchase, Spend
from atlas.models.path_models import LastTouchAttribution, LinearAttribution
from atlas.models.analysis_models import (
    Dimension,
    MonthlyMetric,
    PerformanceSummary,
    RevenueSource,
)
from atlas.core.metric_registry import PERFORMANCE_METRICS
from atlas.core.quality import DataQualityIssue, QualityTracker
from atlas.core.util import as_date, missing_fields, month_key, safe_div
from atlas.core.logging import get_logger

logger = get_logger("analyzer.kpi")

SPEND_REQUIRED = ("spend_date", "amount")

DEFAULT_REVENUE_SOURCE: Dict[Dimension, RevenueSource] = {
    Dimension.OVERALL: RevenueSource.PURCHASES,
    Dimension.CHANNEL: RevenueSource.LINEAR,
    Dimension.CAMPAIGN: RevenueSource.LINEAR,
    Dimension.ACQUISITION_CHANNEL: RevenueSource.PURCHASES,
    Dimension.ACQUISITION_CAMPAIGN: RevenueSource.PURCHASES,
    Dimension.LAST_TOUCH_CHANNEL: RevenueSource.LAST_TOUCH,
    Dimension.LAST_TOUCH_CAMPAIGN: RevenueSource.LAST_TOUCH,
}

# ROI is multi-touch aware even when the partition is not
METRIC_REVENUE_SOURCE: Dict[tuple, RevenueSource] = {
    (Dimension.OVERALL, "roi"): RevenueSource.LINEAR,
}


def revenue_source_for(dimension: Dimension, metric_name: str) -> RevenueSource:
    """Fact view feeding the revenue side of one metric in one dimension."""
    return METRIC_REVENUE_SOURCE.get(
        (dimension, metric_name), DEFAULT_REVENUE_SOURCE[dimension]
    )


@dataclass
class _Cell:
    revenue: float = 0.0
    spend: float = 0.0
    purchases: set = field(default_factory=set)
    customers: set = field(default_factory=set)


def valid_spend(
    spend: Iterable[Spend], quality: Optional[QualityTracker] = None
) -> List[Spend]:
    """Drop spend rows without a date or amount."""
    rows = list(spend)
    kept = [s for s in rows if not missing_fields(s, SPEND_REQUIRED)]
    skipped = len(rows) - len(kept)
    if skipped and quality is not None:
        quality.record(
            DataQualityIssue.MISSING_REQUIRED_FIELD,
            "spend",
            f"skipped {skipped} row(s) lacking spend_date or amount",
            n=skipped,
        )
    return kept


def _revenue_facts(
    dimension: Dimension,
    source: RevenueSource,
    purchases: Sequence[Purchase],
    linear: Sequence[LinearAttribution],
    last_touch: Sequence[LastTouchAttribution],
):
    """Yield (date, key, revenue, purchase_id, user_id) for one view."""
    by_campaign = dimension.is_campaign
    if source is RevenueSource.PURCHASES:
        for p in purchases:
            key = p.acquisition_campaign if by_campaign else p.acquisition_channel
            yield as_date(p.timestamp), key, float(p.revenue), p.purchase_id, p.user_id
    elif source is RevenueSource.LINEAR:
        for r in linear:
            key = r.campaign_id if by_campaign else r.channel
            yield r.purchase_date, key, r.revenue_share, r.purchase_id, r.user_id
    else:
        for r in last_touch:
            key = r.last_touch_campaign if by_campaign else r.last_touch_channel
            yield r.purchase_date, key, r.revenue, r.purchase_id, r.user_id


def aggregate_monthly(
    dimension: Dimension,
    purchases: Sequence[Purchase],
    spend: Sequence[Spend],
    linear: Sequence[LinearAttribution] = (),
    last_touch: Sequence[LastTouchAttribution] = (),
    revenue_source: Optional[RevenueSource] = None,
) -> Dict[tuple, _Cell]:
    """Outer-joined monthly cells keyed by (key, year, month)."""
    source = revenue_source or DEFAULT_REVENUE_SOURCE[dimension]
    overall = dimension is Dimension.OVERALL
    cells: Dict[tuple, _Cell] = defaultdict(_Cell)

    for day, key, revenue, purchase_id, user_id in _revenue_facts(
        dimension, source, purchases, linear, last_touch
    ):
        if overall:
            key = None
        elif key is None:
            continue
        cell = cells[(key, *month_key(day))]
        cell.revenue += revenue
        cell.purchases.add(purchase_id)
        cell.customers.add(user_id)

    for s in spend:
        if overall:
            key = None
        else:
            key = s.campaign_id if dimension.is_campaign else s.channel
            if key is None:
                continue
        cells[(key, *month_key(s.spend_date))].spend += float(s.amount)

    return dict(cells)


def _cell_order(cell_key: tuple) -> tuple:
    key, year, month = cell_key
    return (key is None, key if key is not None else 0, year, month)


def _metric_value(metric_name: str, cell: _Cell) -> Optional[float]:
    if metric_name == "roi":
        return safe_div(cell.revenue - cell.spend, cell.spend)
    if metric_name == "roas":
        return safe_div(cell.revenue, cell.spend)
    if metric_name == "cac":
        return safe_div(cell.spend, len(cell.purchases))
    raise ValueError(f"Unknown performance metric: {metric_name}")


def compute_monthly_metrics(
    dimension: Dimension,
    purchases: Sequence[Purchase],
    spend: Sequence[Spend],
    linear: Sequence[LinearAttribution] = (),
    last_touch: Sequence[LastTouchAttribution] = (),
    metrics: Sequence[str] = ("roi", "roas", "cac"),
    campaigns: Optional[Dict[int, Campaign]] = None,
    revenue_source: Optional[RevenueSource] = None,
    quality: Optional[QualityTracker] = None,
) -> List[MonthlyMetric]:
    """Compute monthly performance metrics for one dimension."""
    for name in metrics:
        if name not in PERFORMANCE_METRICS:
            raise ValueError(f"Unknown performance metric: {name}")

    cells_by_source: Dict[RevenueSource, Dict[tuple, _Cell]] = {}
    for name in metrics:
        source = revenue_source or revenue_source_for(dimension, name)
        if source not in cells_by_source:
            cells_by_source[source] = aggregate_monthly(
                dimension, purchases, spend, linear, last_touch, source
            )

    labels: Dict[object, Optional[str]] = {}
    if dimension.is_campaign and campaigns is not None:
        orphans = []
        for cells in cells_by_source.values():
            for key, _, _ in cells:
                if key in labels:
                    continue
                campaign = campaigns.get(key)
                labels[key] = campaign.campaign_name if campaign else None
                if campaign is None:
                    orphans.append(key)
        if orphans and quality is not None:
            quality.record_distinct(
                DataQualityIssue.ORPHAN_REFERENCE,
                dimension.value,
                orphans,
                "campaign ids without dimension row",
            )

    rows: List[MonthlyMetric] = []
    undefined = 0
    for metric_name in metrics:
        source = revenue_source or revenue_source_for(dimension, metric_name)
        ordered = sorted(
            cells_by_source[source].items(), key=lambda kv: _cell_order(kv[0])
        )
        for (key, year, month), cell in ordered:
            value = _metric_value(metric_name, cell)
            if value is None:
                undefined += 1
            rows.append(
                MonthlyMetric(
                    metric_name=metric_name,
                    dimension=dimension,
                    dimension_key=None if key is None else str(key),
                    dimension_label=labels.get(key),
                    year=year,
                    month=month,
                    revenue=cell.revenue,
                    spend=cell.spend,
                    profit=cell.revenue - cell.spend,
                    purchase_count=len(cell.purchases),
                    customer_count=len(cell.customers),
                    value=value,
                )
            )

    if undefined and quality is not None:
        quality.record(
            DataQualityIssue.DIVISION_UNDEFINED, dimension.value, n=undefined
        )

    logger.info(
        f"Computed {len(rows)} monthly metric rows for {dimension.value}",
        extra={"dimension": dimension.value},
    )
    return rows


def compute_summary(
    purchases: Sequence[Purchase], spend: Sequence[Spend]
) -> PerformanceSummary:
    """Whole-window revenue, spend and ratios across every month."""
    revenue = sum(float(p.revenue) for p in purchases)
    total_spend = sum(float(s.amount) for s in spend)
    return PerformanceSummary(
        total_revenue=round(revenue, 2),
        total_spend=round(total_spend, 2),
        profit=round(revenue - total_spend, 2),
        purchases=len(purchases),
        roi=safe_div(revenue - total_spend, total_spend),
        roas=safe_div(revenue, total_spend),
        cac=safe_div(total_spend, len(purchases)),
    )
