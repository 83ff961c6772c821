"""ATLAS — Input Fact Models (Immutable).

Loaded by upstream ingestion; the pipeline only ever reads them. Required
attributes are nullable at the storage level so incomplete rows survive
ingestion and are skipped (and counted) by the engines instead.
"""

from datetime import date, datetime
from typing import Optional
from sqlmodel import SQLModel, Field


class Touchpoint(SQLModel, table=True):
    """A single ad impression or click for a user."""

    __tablename__ = "touchpoints"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)
    timestamp: Optional[datetime] = Field(default=None, index=True)
    channel: Optional[str] = Field(default=None, description="e.g. Search, Social")
    campaign_id: Optional[int] = Field(default=None, index=True)
    interaction_type: Optional[str] = Field(
        default=None, description="Impression | Click"
    )


class Purchase(SQLModel, table=True):
    """A conversion; belongs to exactly one user."""

    __tablename__ = "purchases"

    purchase_id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)
    timestamp: Optional[datetime] = Field(default=None, index=True)
    revenue: Optional[float] = Field(default=None, ge=0)
    acquisition_channel: Optional[str] = Field(default=None)
    acquisition_campaign: Optional[int] = Field(default=None)


class Spend(SQLModel, table=True):
    """Aggregated ad cost at its own (daily/channel/campaign) granularity."""

    __tablename__ = "spend"

    id: Optional[int] = Field(default=None, primary_key=True)
    spend_date: Optional[date] = Field(default=None, index=True)
    channel: Optional[str] = Field(default=None)
    campaign_id: Optional[int] = Field(default=None)
    amount: Optional[float] = Field(default=None, ge=0)


class Campaign(SQLModel, table=True):
    """Campaign dimension; display enrichment only."""

    __tablename__ = "campaigns"

    campaign_id: int = Field(primary_key=True)
    campaign_name: str = Field(default="")
    channel: Optional[str] = Field(default=None)
    objective: Optional[str] = Field(default=None)
    start_date: Optional[date] = Field(default=None)
    end_date: Optional[date] = Field(default=None)
