"""ATLAS — Unified Metric Registry.

Defines the canonical set of performance metrics and how the trend
analyzer should read their movement. Polarity lives here, not in the
engines: a rising ROAS is good news, a rising CAC is not.
"""

from enum import Enum
from typing import Dict, Optional

from atlas.config import settings


class MetricType(str, Enum):
    """How a metric is categorised."""

    RATIO = "ratio"  # Return ratios: roi, roas
    COST = "cost"  # Monetary per unit: cac
    RATE = "rate"  # Funnel rates in [0, 1]: drop-off
    DEPTH = "depth"  # Touchpoint counts: path length


class Polarity(str, Enum):
    """Which direction of change counts as an improvement."""

    HIGHER = "higher"
    LOWER = "lower"
    NEUTRAL = "neutral"


class MetricDefinition:
    """Describes a single metric."""

    def __init__(
        self,
        name: str,
        metric_type: MetricType,
        unit: str = "",
        description: str = "",
        polarity: Polarity = Polarity.NEUTRAL,
    ):
        self.name = name
        self.metric_type = metric_type
        self.unit = unit
        self.description = description
        self.polarity = polarity

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.metric_type.value}, {self.polarity.value})>"


# ─────────────────────────────────────────────
# PERFORMANCE METRICS — spend-joined, monthly
# ─────────────────────────────────────────────

PERFORMANCE_METRICS: Dict[str, MetricDefinition] = {
    "roi": MetricDefinition(
        "roi",
        MetricType.RATIO,
        "ratio",
        "(Revenue - Spend) / Spend",
        Polarity.HIGHER,
    ),
    "roas": MetricDefinition(
        "roas", MetricType.RATIO, "ratio", "Revenue / Spend", Polarity.HIGHER
    ),
    "cac": MetricDefinition(
        "cac",
        MetricType.COST,
        "currency",
        "Spend / newly acquired customers",
        Polarity.LOWER,
    ),
}


# ─────────────────────────────────────────────
# FUNNEL METRICS — journey shape
# ─────────────────────────────────────────────

FUNNEL_METRICS: Dict[str, MetricDefinition] = {
    "path_length": MetricDefinition(
        "path_length",
        MetricType.DEPTH,
        "count",
        "Average touchpoints before purchase",
        Polarity.LOWER,
    ),
    "impression_to_click_drop_off": MetricDefinition(
        "impression_to_click_drop_off",
        MetricType.RATE,
        "ratio",
        "1 - clicking users / impressed users",
        Polarity.LOWER,
    ),
    "click_to_purchase_drop_off": MetricDefinition(
        "click_to_purchase_drop_off",
        MetricType.RATE,
        "ratio",
        "1 - purchasing users / clicking users",
        Polarity.LOWER,
    ),
}


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────

ALL_METRICS = {**PERFORMANCE_METRICS, **FUNNEL_METRICS}


def get_metric(name: str) -> MetricDefinition | None:
    """Look up a metric by name."""
    return ALL_METRICS.get(name)


def resolve_polarity(metric_name: str) -> Polarity:
    """Polarity for a metric: settings override first, then the registry."""
    override: Optional[str] = settings.polarity_for(metric_name)
    if override:
        return Polarity(override.lower())
    metric = get_metric(metric_name)
    return metric.polarity if metric else Polarity.NEUTRAL
