"""ATLAS — Funnel Engine.

Journey-shape metrics:
- Path length: touchpoints before purchase, averaged per month. By
  last-touch key it reads as closing effectiveness, by acquisition key as
  nurturing difficulty.
- Drop-off by stage: impression → click → purchase, counted in distinct
  users, plus how deep non-converting users got before stalling.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from atlas.models.raw_models import Campaign, Purchase, Touchpoint
from atlas.models.path_models import LastTouchAttribution
from atlas.models.analysis_models import Dimension, FunnelDropOff, MonthlyMetric
from atlas.core.util import as_date, as_datetime, mean, month_key, safe_div
from atlas.core.logging import get_logger

logger = get_logger("analyzer.funnel")

IMPRESSION = "impression"
CLICK = "click"

PATH_LENGTH_DIMENSIONS = (
    Dimension.OVERALL,
    Dimension.LAST_TOUCH_CHANNEL,
    Dimension.LAST_TOUCH_CAMPAIGN,
    Dimension.ACQUISITION_CHANNEL,
    Dimension.ACQUISITION_CAMPAIGN,
)


def _path_key(
    dimension: Dimension, record: LastTouchAttribution, purchase: Optional[Purchase]
):
    if dimension is Dimension.LAST_TOUCH_CHANNEL:
        return record.last_touch_channel
    if dimension is Dimension.LAST_TOUCH_CAMPAIGN:
        return record.last_touch_campaign
    if purchase is None:
        return None
    if dimension is Dimension.ACQUISITION_CHANNEL:
        return purchase.acquisition_channel
    return purchase.acquisition_campaign


def compute_path_lengths(
    last_touch: Sequence[LastTouchAttribution],
    purchases: Sequence[Purchase],
    dimension: Dimension = Dimension.OVERALL,
    campaigns: Optional[Dict[int, Campaign]] = None,
) -> List[MonthlyMetric]:
    """Average path length of converted purchases per month and key."""
    if dimension not in PATH_LENGTH_DIMENSIONS:
        raise ValueError(f"Path length is not defined by {dimension.value}")

    by_id = {p.purchase_id: p for p in purchases}
    lengths: Dict[tuple, list[int]] = defaultdict(list)
    revenue: Dict[tuple, float] = defaultdict(float)
    customers: Dict[tuple, set] = defaultdict(set)

    for r in last_touch:
        if dimension is Dimension.OVERALL:
            key = None
        else:
            key = _path_key(dimension, r, by_id.get(r.purchase_id))
            if key is None:
                continue
        cell = (key, *month_key(r.purchase_date))
        lengths[cell].append(r.path_length)
        revenue[cell] += r.revenue
        customers[cell].add(r.user_id)

    rows: List[MonthlyMetric] = []
    for cell in sorted(
        lengths, key=lambda c: (c[0] is None, c[0] if c[0] is not None else 0, c[1], c[2])
    ):
        key, year, month = cell
        label = None
        if dimension.is_campaign and campaigns is not None:
            campaign = campaigns.get(key)
            label = campaign.campaign_name if campaign else None
        rows.append(
            MonthlyMetric(
                metric_name="path_length",
                dimension=dimension,
                dimension_key=None if key is None else str(key),
                dimension_label=label,
                year=year,
                month=month,
                revenue=revenue[cell],
                purchase_count=len(lengths[cell]),
                customer_count=len(customers[cell]),
                value=mean(lengths[cell]),
            )
        )

    logger.info(
        f"Computed {len(rows)} path length rows for {dimension.value}",
        extra={"dimension": dimension.value},
    )
    return rows


def _stage_users(touchpoints: Sequence[Touchpoint]) -> tuple[set, set]:
    impressed: set = set()
    clicked: set = set()
    for tp in touchpoints:
        kind = tp.interaction_type.strip().lower()
        if kind == IMPRESSION:
            impressed.add(tp.user_id)
        elif kind == CLICK:
            clicked.add(tp.user_id)
    return impressed, clicked


def compute_drop_off(
    touchpoints: Sequence[Touchpoint],
    purchases: Sequence[Purchase],
) -> FunnelDropOff:
    """Stage drop-off rates and path depth of users who never purchased."""
    impressed, clicked = _stage_users(touchpoints)
    purchasers = {p.user_id for p in purchases}

    stalled: Dict[int, int] = defaultdict(int)
    for tp in touchpoints:
        if tp.user_id not in purchasers:
            stalled[tp.user_id] += 1

    click_rate = safe_div(len(clicked), len(impressed))
    purchase_rate = safe_div(len(purchasers), len(clicked))

    result = FunnelDropOff(
        impressed_users=len(impressed),
        clicking_users=len(clicked),
        purchasing_users=len(purchasers),
        non_converting_users=len(stalled),
        impression_to_click_drop_off=None if click_rate is None else 1 - click_rate,
        click_to_purchase_drop_off=None if purchase_rate is None else 1 - purchase_rate,
        avg_path_length_at_drop_off=mean(list(stalled.values())),
    )

    # Synthetic or partially tracked data can show more clickers than
    # impressed users; the rate then goes negative rather than being clamped.
    if len(clicked) > len(impressed):
        logger.warning(
            f"More clicking users ({len(clicked)}) than impressed users ({len(impressed)})"
        )

    logger.info(
        f"Funnel: {len(impressed)} impressed → {len(clicked)} clicked → "
        f"{len(purchasers)} purchased; {len(stalled)} non-converting"
    )
    return result


def compute_monthly_drop_off(
    touchpoints: Sequence[Touchpoint],
    purchases: Sequence[Purchase],
) -> List[MonthlyMetric]:
    """Stage drop-off rates per calendar month."""
    impressed: Dict[tuple, set] = defaultdict(set)
    clicked: Dict[tuple, set] = defaultdict(set)
    purchased: Dict[tuple, set] = defaultdict(set)
    purchase_ids: Dict[tuple, set] = defaultdict(set)

    for tp in touchpoints:
        kind = tp.interaction_type.strip().lower()
        period = month_key(as_datetime(tp.timestamp))
        if kind == IMPRESSION:
            impressed[period].add(tp.user_id)
        elif kind == CLICK:
            clicked[period].add(tp.user_id)
    for p in purchases:
        period = month_key(as_date(p.timestamp))
        purchased[period].add(p.user_id)
        purchase_ids[period].add(p.purchase_id)

    rows: List[MonthlyMetric] = []
    periods = sorted(set(impressed) | set(clicked) | set(purchased))
    for metric_name in ("impression_to_click_drop_off", "click_to_purchase_drop_off"):
        for year, month in periods:
            period = (year, month)
            if metric_name == "impression_to_click_drop_off":
                rate = safe_div(len(clicked[period]), len(impressed[period]))
            else:
                rate = safe_div(len(purchased[period]), len(clicked[period]))
            rows.append(
                MonthlyMetric(
                    metric_name=metric_name,
                    year=year,
                    month=month,
                    purchase_count=len(purchase_ids[period]),
                    customer_count=len(purchased[period]),
                    value=None if rate is None else 1 - rate,
                )
            )
    return rows
