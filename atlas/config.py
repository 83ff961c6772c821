"""ATLAS — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    analysis_hour: int = 3  # Daily recompute at 3 AM UTC

    # ── Analysis ──
    analysis_schema_version: str = "1.0.0"
    account_currency: str = "USD"
    default_metrics: List[str] = ["roi", "roas", "cac"]
    default_dimensions: List[str] = [
        "overall",
        "channel",
        "campaign",
        "acquisition_channel",
        "acquisition_campaign",
        "last_touch_channel",
        "last_touch_campaign",
    ]
    materialize_views: bool = True
    # metric name → "higher" | "lower" | "neutral"; overrides the registry
    metric_polarity: Dict[str, str] = {}

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/atlas.db"
        return "sqlite:///./atlas.db"

    def polarity_for(self, metric_name: str) -> Optional[str]:
        """Configured polarity override for a metric, if any."""
        return self.metric_polarity.get(metric_name)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "ATLAS_",
    }


settings = Settings()
