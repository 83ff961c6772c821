"""ATLAS — Attribution Engine.

Two independent views over one shared touchpath:

- Last-touch: the final touchpoint before a purchase takes all revenue.
- Linear: every touchpoint in the path takes revenue / N. A channel that
  appears twice in a path is credited twice.

Purchases without any preceding touchpoint have no path and appear in
neither view. That is expected (direct or untracked conversions).
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from atlas.models.raw_models import Purchase
from atlas.models.path_models import (
    LastTouchAttribution,
    LinearAttribution,
    TouchpathEntry,
)
from atlas.core.quality import DataQualityIssue, QualityTracker
from atlas.core.util import as_date
from atlas.core.logging import get_logger

logger = get_logger("analyzer.attribution")


def group_paths(
    touchpath: Sequence[TouchpathEntry],
) -> Dict[tuple[int, int], List[TouchpathEntry]]:
    """Group entries by (user_id, purchase_id), each path in number order."""
    paths: Dict[tuple[int, int], List[TouchpathEntry]] = defaultdict(list)
    for entry in touchpath:
        if entry.purchase_id is None:
            continue
        paths[(entry.user_id, entry.purchase_id)].append(entry)
    for key in paths:
        paths[key].sort(key=lambda e: e.touchpoint_number)
    return dict(paths)


def _purchase_index(purchases: Sequence[Purchase]) -> Dict[tuple[int, int], Purchase]:
    return {(p.user_id, p.purchase_id): p for p in purchases}


def _select_last_touch(path: List[TouchpathEntry]) -> TouchpathEntry:
    # Numbers are unique per path and already put the lowest channel last
    # among equal timestamps (see touchpath_engine.chronological).
    return max(path, key=lambda e: (e.touchpoint_time, e.touchpoint_number))


def last_touch_attribution(
    touchpath: Sequence[TouchpathEntry],
    purchases: Sequence[Purchase],
    quality: Optional[QualityTracker] = None,
) -> List[LastTouchAttribution]:
    """One record per purchase; its final touchpoint carries full revenue."""
    index = _purchase_index(purchases)
    records: List[LastTouchAttribution] = []
    ties = 0

    for key, path in sorted(group_paths(touchpath).items()):
        purchase = index.get(key)
        if purchase is None:
            continue

        winner = _select_last_touch(path)
        contenders = [e for e in path if e.touchpoint_time == winner.touchpoint_time]
        if len(contenders) > 1:
            ties += 1
            logger.warning(
                f"Purchase {purchase.purchase_id}: {len(contenders)} touchpoints share the last "
                f"timestamp; crediting #{winner.touchpoint_number} ({winner.channel})"
            )

        records.append(
            LastTouchAttribution(
                user_id=purchase.user_id,
                purchase_id=purchase.purchase_id,
                last_touch_channel=winner.channel,
                last_touch_campaign=winner.campaign_id,
                revenue=float(purchase.revenue),
                purchase_date=as_date(purchase.timestamp),
                path_length=len(path),
            )
        )

    if ties and quality is not None:
        quality.record(
            DataQualityIssue.TIE_BREAK_AMBIGUITY,
            "attribution_last_touch",
            f"{ties} purchase(s) resolved by secondary sort",
            n=ties,
        )

    logger.info(f"Last-touch attribution: {len(records)} purchases attributed")
    return records


def linear_attribution(
    touchpath: Sequence[TouchpathEntry],
    purchases: Sequence[Purchase],
) -> List[LinearAttribution]:
    """One row per path entry; revenue split evenly across the path."""
    index = _purchase_index(purchases)
    rows: List[LinearAttribution] = []

    for key, path in sorted(group_paths(touchpath).items()):
        purchase = index.get(key)
        if purchase is None:
            continue

        n = len(path)
        total = float(purchase.revenue)
        share = total / n if n else 0.0
        purchase_date = as_date(purchase.timestamp)

        for entry in path:
            rows.append(
                LinearAttribution(
                    user_id=purchase.user_id,
                    purchase_id=purchase.purchase_id,
                    touchpoint_number=entry.touchpoint_number,
                    channel=entry.channel,
                    campaign_id=entry.campaign_id,
                    revenue_share=share,
                    total_revenue=total,
                    touchpoints_in_path=n,
                    purchase_date=purchase_date,
                )
            )

    logger.info(f"Linear attribution: {len(rows)} revenue shares")
    return rows
