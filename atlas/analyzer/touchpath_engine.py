"""ATLAS — Touchpath Engine.

Reconstructs, per user and per purchase, the ordered touchpoints that
strictly precede the purchase. A touchpoint before a user's first purchase
also precedes every later purchase, so each purchase carries its complete
prior history.
"""

from collections import defaultdict
from typing import Iterable, List, Optional, Sequence

from atlas.models.raw_models import Purchase, Touchpoint
from atlas.models.path_models import TouchpathEntry
from atlas.core.quality import DataQualityIssue, QualityTracker
from atlas.core.util import as_datetime, missing_fields
from atlas.core.logging import get_logger

logger = get_logger("analyzer.touchpath")

TOUCHPOINT_REQUIRED = ("user_id", "timestamp", "channel", "interaction_type")
PURCHASE_REQUIRED = ("purchase_id", "user_id", "timestamp", "revenue")


def _filter_complete(
    records: Iterable,
    required: tuple[str, ...],
    source: str,
    quality: Optional[QualityTracker],
) -> list:
    kept = []
    skipped = 0
    for r in records:
        if missing_fields(r, required):
            skipped += 1
            continue
        kept.append(r)
    if skipped and quality is not None:
        quality.record(
            DataQualityIssue.MISSING_REQUIRED_FIELD,
            source,
            f"skipped {skipped} record(s) lacking one of {', '.join(required)}",
            n=skipped,
        )
    return kept


def valid_touchpoints(
    touchpoints: Iterable[Touchpoint], quality: Optional[QualityTracker] = None
) -> List[Touchpoint]:
    """Drop touchpoints missing a required attribute."""
    return _filter_complete(touchpoints, TOUCHPOINT_REQUIRED, "touchpoints", quality)


def valid_purchases(
    purchases: Iterable[Purchase], quality: Optional[QualityTracker] = None
) -> List[Purchase]:
    """Drop purchases missing a required attribute."""
    return _filter_complete(purchases, PURCHASE_REQUIRED, "purchases", quality)


def chronological(touchpoints: Sequence[Touchpoint]) -> List[Touchpoint]:
    """Order touchpoints by time, deterministically.

    On equal timestamps the lexicographically lowest channel sorts last, so
    it becomes the last touch; interaction type and campaign id settle
    whatever remains.
    """
    ordered = sorted(
        touchpoints,
        key=lambda t: (
            t.interaction_type,
            -1 if t.campaign_id is None else t.campaign_id,
        ),
    )
    ordered.sort(key=lambda t: t.channel, reverse=True)
    ordered.sort(key=lambda t: as_datetime(t.timestamp))
    return ordered


def build_touchpath(
    touchpoints: Iterable[Touchpoint],
    purchases: Iterable[Purchase],
    quality: Optional[QualityTracker] = None,
) -> List[TouchpathEntry]:
    """Build the numbered touchpoint path for every purchase."""
    tps = valid_touchpoints(touchpoints, quality)
    buys = valid_purchases(purchases, quality)

    tps_by_user: dict[int, list[Touchpoint]] = defaultdict(list)
    for tp in tps:
        tps_by_user[tp.user_id].append(tp)
    for user_id in tps_by_user:
        tps_by_user[user_id] = chronological(tps_by_user[user_id])

    entries: List[TouchpathEntry] = []
    empty_paths = 0
    for p in sorted(buys, key=lambda b: (b.user_id, b.purchase_id)):
        purchase_ts = as_datetime(p.timestamp)
        number = 0
        for tp in tps_by_user.get(p.user_id, ()):
            tp_ts = as_datetime(tp.timestamp)
            if tp_ts >= purchase_ts:
                break
            number += 1
            entries.append(
                TouchpathEntry(
                    user_id=p.user_id,
                    purchase_id=p.purchase_id,
                    touchpoint_number=number,
                    touchpoint_time=tp_ts,
                    channel=tp.channel,
                    campaign_id=tp.campaign_id,
                    interaction_type=tp.interaction_type,
                )
            )
        if number == 0:
            empty_paths += 1

    logger.info(
        f"Built {len(entries)} touchpath entries for {len(buys) - empty_paths} purchases "
        f"({empty_paths} purchases without prior touchpoints)"
    )
    return entries
