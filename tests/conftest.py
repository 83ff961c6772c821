"""Pytest configuration and shared fixtures."""

from datetime import date, datetime

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Registers every table on SQLModel.metadata
from atlas.models import analysis_models, path_models, raw_models  # noqa: F401
from atlas.core.quality import QualityTracker

from factories import buy, campaign, cost, touch


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads (TestClient runs sync routes in a pool)."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def quality():
    return QualityTracker(run_id="test")


@pytest.fixture
def journey_facts():
    """Two months of journeys across Search, Social and Email.

    - user 1: Search impression, Search click → purchase 1 (Jan, 100)
    - user 2: Social impression, Email click → purchase 2 (Jan, 60),
      then Search click → purchase 3 (Feb, 90)
    - user 3: no touchpoints → purchase 4 (Feb, 40)
    - user 4: Social impression, never purchases
    """
    touchpoints = [
        touch(1, datetime(2024, 1, 3, 9), "Search", "Impression", 10),
        touch(1, datetime(2024, 1, 4, 9), "Search", "Click", 10),
        touch(2, datetime(2024, 1, 5, 9), "Social", "Impression", 20),
        touch(2, datetime(2024, 1, 8, 9), "Email", "Click", 30),
        touch(2, datetime(2024, 2, 2, 9), "Search", "Click", 10),
        touch(4, datetime(2024, 2, 6, 9), "Social", "Impression", 20),
    ]
    purchases = [
        buy(1, 1, datetime(2024, 1, 10), 100.0, "Search", 10),
        buy(2, 2, datetime(2024, 1, 20), 60.0, "Social", 20),
        buy(3, 2, datetime(2024, 2, 10), 90.0, "Social", 20),
        buy(4, 3, datetime(2024, 2, 12), 40.0, "Email", 30),
    ]
    spend = [
        cost(date(2024, 1, 1), 50.0, "Search", 10),
        cost(date(2024, 1, 1), 40.0, "Social", 20),
        cost(date(2024, 2, 1), 60.0, "Search", 10),
        cost(date(2024, 2, 1), 20.0, "Social", 20),
    ]
    campaigns = [
        campaign(10, "Brand Search", "Search"),
        campaign(20, "Prospecting", "Social"),
    ]
    return touchpoints, purchases, spend, campaigns


@pytest.fixture
def seeded_session(session, journey_facts):
    touchpoints, purchases, spend, campaigns = journey_facts
    session.add_all(touchpoints + purchases + spend + campaigns)
    session.commit()
    return session
