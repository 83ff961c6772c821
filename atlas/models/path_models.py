"""ATLAS — Derived Path & Attribution Models.

Fully recomputed each run from the input facts. They are tables only so
the pipeline can materialise them for downstream reporting; every run
replaces the previous snapshot wholesale.
"""

from datetime import date, datetime
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class TouchpathEntry(SQLModel, table=True):
    """One touchpoint preceding one purchase.

    For each (user_id, purchase_id) the touchpoint numbers run 1..N in
    chronological order with no gaps.
    """

    __tablename__ = "touchpath"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "purchase_id", "touchpoint_number", name="uq_touchpath_entry"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    purchase_id: int = Field(index=True)
    touchpoint_number: int
    touchpoint_time: datetime
    channel: str
    campaign_id: Optional[int] = Field(default=None)
    interaction_type: str


class LastTouchAttribution(SQLModel, table=True):
    """100% of a purchase's revenue credited to its final touchpoint."""

    __tablename__ = "attribution_last_touch"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    purchase_id: int = Field(index=True, unique=True)
    last_touch_channel: str
    last_touch_campaign: Optional[int] = Field(default=None)
    revenue: float
    purchase_date: date
    path_length: int = Field(description="Touchpoints in the purchase's path")


class LinearAttribution(SQLModel, table=True):
    """Equal share of a purchase's revenue for one touchpoint in its path."""

    __tablename__ = "attribution_linear"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    purchase_id: int = Field(index=True)
    touchpoint_number: int
    channel: str
    campaign_id: Optional[int] = Field(default=None)
    revenue_share: float
    total_revenue: float
    touchpoints_in_path: int
    purchase_date: date
