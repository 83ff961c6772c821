"""ATLAS — Analysis Output Models (Versioned)."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, List
from pydantic import BaseModel
from sqlmodel import SQLModel, Field


# ─────────────────────────────────────────────
# DATABASE MODEL — Stores versioned analysis results
# ─────────────────────────────────────────────


class AnalysisResult(SQLModel, table=True):
    """Versioned analysis output stored in DB."""

    __tablename__ = "analysis_results"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str = Field(default="", index=True)
    schema_version: str = Field(description="e.g. 1.0.0")
    period_start: str = Field(default="", description="First month in the data")
    period_end: str = Field(default="", description="Last month in the data")
    result_json: str = Field(description="Full InsightOutput as JSON")


# ─────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────


class Dimension(str, Enum):
    """How monthly aggregates are partitioned."""

    OVERALL = "overall"
    CHANNEL = "channel"
    CAMPAIGN = "campaign"
    ACQUISITION_CHANNEL = "acquisition_channel"
    ACQUISITION_CAMPAIGN = "acquisition_campaign"
    LAST_TOUCH_CHANNEL = "last_touch_channel"
    LAST_TOUCH_CAMPAIGN = "last_touch_campaign"

    @property
    def is_campaign(self) -> bool:
        return self in (
            Dimension.CAMPAIGN,
            Dimension.ACQUISITION_CAMPAIGN,
            Dimension.LAST_TOUCH_CAMPAIGN,
        )


class RevenueSource(str, Enum):
    """Which fact view feeds the revenue side of an aggregate."""

    PURCHASES = "purchases"  # Raw purchases, single-touch (TOFU)
    LINEAR = "linear"  # Multi-touch revenue shares (MOFU)
    LAST_TOUCH = "last_touch"  # Closing touchpoint (BOFU)


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Insight Output v1
# ─────────────────────────────────────────────


class MonthlyMetric(BaseModel):
    """One (month, partition) cell of a metric, with its trend context."""

    metric_name: str
    dimension: Dimension = Dimension.OVERALL
    dimension_key: Optional[str] = None
    dimension_label: Optional[str] = None
    year: int
    month: int
    revenue: float = 0.0
    spend: float = 0.0
    profit: float = 0.0
    purchase_count: int = 0
    customer_count: int = 0
    value: Optional[float] = None

    # Filled by the trend analyzer
    avg_over_partition: Optional[float] = None
    deviation_from_avg: Optional[float] = None
    avg_label: Optional[str] = None  # above_average | below_average | equal_average
    avg_signal: Optional[str] = None  # improved | worsened | unchanged | neutral
    previous_period_value: Optional[float] = None
    delta_from_previous: Optional[float] = None
    percent_change: Optional[float] = None
    direction: Optional[str] = None  # higher | lower | no_change
    signal: Optional[str] = None  # improved | worsened | unchanged | neutral

    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class PerformanceSummary(BaseModel):
    """Whole-window totals across all months."""

    total_revenue: float = 0.0
    total_spend: float = 0.0
    profit: float = 0.0
    purchases: int = 0
    roi: Optional[float] = None
    roas: Optional[float] = None
    cac: Optional[float] = None


class FunnelDropOff(BaseModel):
    """Stage-to-stage funnel leakage."""

    impressed_users: int = 0
    clicking_users: int = 0
    purchasing_users: int = 0
    non_converting_users: int = 0
    impression_to_click_drop_off: Optional[float] = None
    click_to_purchase_drop_off: Optional[float] = None
    avg_path_length_at_drop_off: Optional[float] = None


class CumulativeMetric(BaseModel):
    """Running total and moving average for one monthly series."""

    series: str  # "revenue" | "spend"
    year: int
    month: int
    total: float
    average: float
    running_total: float
    moving_average: float


class RunDiagnostics(BaseModel):
    """Data-quality counts for one run."""

    touchpoints_read: int = 0
    purchases_read: int = 0
    spend_rows_read: int = 0
    touchpath_entries: int = 0
    attributed_purchases: int = 0
    unattributed_purchases: int = 0
    issues: Dict[str, Dict[str, int]] = {}


class InsightOutput(BaseModel):
    """ATLAS Insight Output v1 — attribution and performance snapshot."""

    schema_version: str = "1.0.0"
    run_id: str = ""
    generated_at: str = ""
    currency: str = "USD"
    period_start: str = ""
    period_end: str = ""
    summary: PerformanceSummary = PerformanceSummary()
    monthly_metrics: List[MonthlyMetric] = []
    path_lengths: List[MonthlyMetric] = []
    funnel: FunnelDropOff = FunnelDropOff()
    monthly_drop_off: List[MonthlyMetric] = []
    cumulative: List[CumulativeMetric] = []
    diagnostics: RunDiagnostics = RunDiagnostics()
