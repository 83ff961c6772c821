"""ATLAS — Analysis Pipeline Orchestrator.

Runs the full data flow:
  load facts → touchpath → attribution (last-touch, linear) → monthly
  aggregates → trends → InsightOutput → store result

Every run is a pure recomputation from the fact tables. The touchpath is
built once and shared by both attribution views; materialised views are
replaced wholesale, so re-running after a partial failure is safe.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete
from sqlmodel import Session, select

from atlas.config import settings
from atlas.models.raw_models import Campaign, Purchase, Spend, Touchpoint
from atlas.models.path_models import (
    LastTouchAttribution,
    LinearAttribution,
    TouchpathEntry,
)
from atlas.models.analysis_models import (
    AnalysisResult,
    Dimension,
    InsightOutput,
    MonthlyMetric,
    RunDiagnostics,
)
from atlas.analyzer.touchpath_engine import (
    build_touchpath,
    valid_purchases,
    valid_touchpoints,
)
from atlas.analyzer.attribution_engine import (
    last_touch_attribution,
    linear_attribution,
)
from atlas.analyzer.kpi_engine import compute_monthly_metrics, compute_summary, valid_spend
from atlas.analyzer.funnel_engine import (
    PATH_LENGTH_DIMENSIONS,
    compute_drop_off,
    compute_monthly_drop_off,
    compute_path_lengths,
)
from atlas.analyzer.cumulative_engine import compute_cumulative
from atlas.analyzer.trend_engine import compute_trends
from atlas.core.metric_registry import PERFORMANCE_METRICS
from atlas.core.quality import QualityTracker
from atlas.core.logging import get_logger

logger = get_logger("analyzer.pipeline")

ANALYSIS_SCHEMA_VERSION = settings.analysis_schema_version


@dataclass
class AttributionRun:
    """Everything one run derived, before it is serialised."""

    insight: InsightOutput
    touchpath: List[TouchpathEntry] = field(default_factory=list)
    last_touch: List[LastTouchAttribution] = field(default_factory=list)
    linear: List[LinearAttribution] = field(default_factory=list)


def _resolve_dimensions(dimensions: Optional[Sequence[str]]) -> List[Dimension]:
    names = dimensions or settings.default_dimensions
    try:
        return [Dimension(n) for n in names]
    except ValueError:
        raise ValueError(
            f"dimensions must be drawn from: {', '.join(d.value for d in Dimension)}"
        )


def _resolve_metrics(metrics: Optional[Sequence[str]]) -> List[str]:
    names = list(metrics or settings.default_metrics)
    unknown = [m for m in names if m not in PERFORMANCE_METRICS]
    if unknown:
        raise ValueError(
            f"metrics must be drawn from: {', '.join(PERFORMANCE_METRICS)} (got {unknown})"
        )
    return names


def _period_bounds(rows: Sequence[MonthlyMetric]) -> tuple[str, str]:
    if not rows:
        return "", ""
    periods = sorted(r.period for r in rows)
    return periods[0], periods[-1]


def analyze(
    touchpoints: Sequence[Touchpoint],
    purchases: Sequence[Purchase],
    spend: Sequence[Spend],
    campaigns: Sequence[Campaign] = (),
    metrics: Optional[Sequence[str]] = None,
    dimensions: Optional[Sequence[str]] = None,
    run_id: str = "",
) -> AttributionRun:
    """Pure attribution + metrics computation over in-memory facts."""
    metric_names = _resolve_metrics(metrics)
    dims = _resolve_dimensions(dimensions)
    quality = QualityTracker(run_id)

    tps = valid_touchpoints(touchpoints, quality)
    buys = valid_purchases(purchases, quality)
    costs = valid_spend(spend, quality)
    campaign_lookup: Dict[int, Campaign] = {c.campaign_id: c for c in campaigns}

    # ── Step 1: Touchpath (computed once, shared) ──
    touchpath = build_touchpath(tps, buys)

    # ── Step 2: Attribution ──
    last_touch = last_touch_attribution(touchpath, buys, quality)
    linear = linear_attribution(touchpath, buys)

    # ── Step 3: Aggregates ──
    monthly: List[MonthlyMetric] = []
    path_lengths: List[MonthlyMetric] = []
    for dim in dims:
        monthly.extend(
            compute_monthly_metrics(
                dim,
                buys,
                costs,
                linear=linear,
                last_touch=last_touch,
                metrics=metric_names,
                campaigns=campaign_lookup,
                quality=quality,
            )
        )
        if dim in PATH_LENGTH_DIMENSIONS:
            path_lengths.extend(
                compute_path_lengths(last_touch, buys, dim, campaigns=campaign_lookup)
            )

    # ── Step 4: Trends ──
    monthly = compute_trends(monthly)
    path_lengths = compute_trends(path_lengths)
    monthly_drop_off = compute_trends(compute_monthly_drop_off(tps, buys))

    period_start, period_end = _period_bounds(monthly + monthly_drop_off)
    attributed = len(last_touch)

    insight = InsightOutput(
        schema_version=ANALYSIS_SCHEMA_VERSION,
        run_id=run_id,
        generated_at=datetime.now(timezone.utc).isoformat(),
        currency=settings.account_currency,
        period_start=period_start,
        period_end=period_end,
        summary=compute_summary(buys, costs),
        monthly_metrics=monthly,
        path_lengths=path_lengths,
        funnel=compute_drop_off(tps, buys),
        monthly_drop_off=monthly_drop_off,
        cumulative=compute_cumulative(buys, costs),
        diagnostics=RunDiagnostics(
            touchpoints_read=len(touchpoints),
            purchases_read=len(purchases),
            spend_rows_read=len(spend),
            touchpath_entries=len(touchpath),
            attributed_purchases=attributed,
            unattributed_purchases=len(buys) - attributed,
            issues=quality.summary(),
        ),
    )
    return AttributionRun(
        insight=insight, touchpath=touchpath, last_touch=last_touch, linear=linear
    )


def load_facts(session: Session) -> tuple[list, list, list, list]:
    """Read the four input tables in a stable order."""
    touchpoints = session.exec(select(Touchpoint).order_by(Touchpoint.id)).all()
    purchases = session.exec(select(Purchase).order_by(Purchase.purchase_id)).all()
    spend = session.exec(select(Spend).order_by(Spend.id)).all()
    campaigns = session.exec(select(Campaign).order_by(Campaign.campaign_id)).all()
    return list(touchpoints), list(purchases), list(spend), list(campaigns)


def materialize(session: Session, run: AttributionRun) -> None:
    """Replace the derived path and attribution tables with this run's rows."""
    for model in (TouchpathEntry, LastTouchAttribution, LinearAttribution):
        session.exec(delete(model))
    session.add_all(run.touchpath)
    session.add_all(run.last_touch)
    session.add_all(run.linear)
    logger.info(
        f"Materialized {len(run.touchpath)} touchpath, {len(run.last_touch)} last-touch "
        f"and {len(run.linear)} linear rows",
        extra={"run_id": run.insight.run_id},
    )


def run_analysis(
    session: Session,
    metrics: Optional[Sequence[str]] = None,
    dimensions: Optional[Sequence[str]] = None,
    materialize_views: Optional[bool] = None,
) -> InsightOutput:
    """Execute the full ATLAS pipeline against the fact tables."""
    run_id = uuid.uuid4().hex[:12]
    started = time.perf_counter()
    logger.info("Starting attribution pipeline", extra={"run_id": run_id})

    touchpoints, purchases, spend, campaigns = load_facts(session)
    run = analyze(
        touchpoints,
        purchases,
        spend,
        campaigns,
        metrics=metrics,
        dimensions=dimensions,
        run_id=run_id,
    )
    insight = run.insight

    if settings.materialize_views if materialize_views is None else materialize_views:
        materialize(session, run)

    # ── Store Result ──
    result = AnalysisResult(
        run_id=run_id,
        schema_version=ANALYSIS_SCHEMA_VERSION,
        period_start=insight.period_start,
        period_end=insight.period_end,
        result_json=insight.model_dump_json(),
    )
    session.add(result)
    session.commit()

    duration_ms = round((time.perf_counter() - started) * 1000, 1)
    logger.info(
        f"Analysis complete: {len(insight.monthly_metrics)} monthly rows, "
        f"{insight.diagnostics.unattributed_purchases} unattributed purchases. "
        f"Stored as result id {result.id}",
        extra={"run_id": run_id, "duration_ms": duration_ms},
    )
    return insight
