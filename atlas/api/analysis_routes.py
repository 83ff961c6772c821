"""ATLAS — Analysis API Routes."""

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from atlas.database import get_session
from atlas.models.analysis_models import AnalysisResult, InsightOutput
from atlas.analyzer.pipeline import run_analysis
from atlas.core.logging import get_logger

logger = get_logger("api.analysis")

router = APIRouter(tags=["Analysis"])


# ── Request / Response Models ──


class RunAnalysisRequest(BaseModel):
    """Request body for POST /run-analysis."""

    metrics: Optional[List[str]] = None
    """Subset of "roi", "roas", "cac". Defaults to all configured metrics."""
    dimensions: Optional[List[str]] = None
    """Partitions to compute, e.g. "overall", "channel", "last_touch_campaign"."""
    materialize: Optional[bool] = None
    """Replace the touchpath and attribution tables. Defaults to the setting."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"metrics": ["roas", "cac"], "dimensions": ["overall", "channel"]},
                {"materialize": False},
            ]
        }
    }


class RunAnalysisResponse(BaseModel):
    """Response for POST /run-analysis."""

    status: str = "success"
    insight: InsightOutput


# ── Endpoints ──


@router.post("/run-analysis", response_model=RunAnalysisResponse)
def trigger_analysis(
    request: RunAnalysisRequest,
    session: Session = Depends(get_session),
):
    """Recompute attribution and performance metrics from the fact tables."""
    try:
        insight = run_analysis(
            session=session,
            metrics=request.metrics,
            dimensions=request.dimensions,
            materialize_views=request.materialize,
        )
        return RunAnalysisResponse(status="success", insight=insight)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Analysis failed: {e}")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {str(e)}")


@router.get("/insights/latest")
def get_latest_insight(session: Session = Depends(get_session)):
    """Get the most recent analysis result."""
    result = session.exec(
        select(AnalysisResult)
        .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())  # type: ignore
        .limit(1)
    ).first()

    if not result:
        return {"status": "no_data", "message": "No analysis has been run yet."}

    return {
        "status": "success",
        "id": result.id,
        "run_id": result.run_id,
        "created_at": result.created_at.isoformat(),
        "schema_version": result.schema_version,
        "insight": json.loads(result.result_json),
    }


@router.get("/insights")
def get_insights(
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    """Get historical analysis results, newest first."""
    query = (
        select(AnalysisResult)
        .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())  # type: ignore
        .limit(limit)
    )
    results = session.exec(query).all()

    return {
        "status": "success",
        "count": len(results),
        "results": [
            {
                "id": r.id,
                "run_id": r.run_id,
                "created_at": r.created_at.isoformat(),
                "schema_version": r.schema_version,
                "period": f"{r.period_start} → {r.period_end}",
                "insight": json.loads(r.result_json),
            }
            for r in results
        ],
    }
