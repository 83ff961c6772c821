"""ATLAS — Data-Quality Tracking.

Nothing in the attribution pipeline is fatal. Bad records are skipped,
undefined ratios become None and ambiguous last touches are resolved by
a fixed rule; each of these is counted here and surfaced in the run
diagnostics.
"""

from collections import Counter
from enum import Enum
from typing import Dict, Iterable

from atlas.core.logging import get_logger

logger = get_logger("quality")


class DataQualityIssue(str, Enum):
    """Data-quality conditions surfaced per run."""

    MISSING_REQUIRED_FIELD = "missing_required_field"
    DIVISION_UNDEFINED = "division_undefined"
    ORPHAN_REFERENCE = "orphan_reference"
    TIE_BREAK_AMBIGUITY = "tie_break_ambiguity"


class QualityTracker:
    """Counts issues per source for one pipeline run."""

    def __init__(self, run_id: str = ""):
        self.run_id = run_id
        self._counts: Counter = Counter()
        self._seen: set = set()

    def record(
        self, issue: DataQualityIssue, source: str, detail: str = "", n: int = 1
    ) -> None:
        self._counts[(issue, source)] += n
        if issue is not DataQualityIssue.DIVISION_UNDEFINED:
            logger.warning(
                f"{issue.value} in {source}: {detail}" if detail else f"{issue.value} in {source}",
                extra={"run_id": self.run_id, "issue": issue.value, "count": n},
            )

    def record_distinct(
        self, issue: DataQualityIssue, source: str, keys: Iterable, detail: str = ""
    ) -> None:
        """Record each key at most once per run, whichever source sees it first."""
        fresh = sorted({k for k in keys if (issue, k) not in self._seen})
        if not fresh:
            return
        self._seen.update((issue, k) for k in fresh)
        self.record(issue, source, f"{detail}: {fresh}" if detail else "", n=len(fresh))

    def count(self, issue: DataQualityIssue, source: str | None = None) -> int:
        return sum(
            n
            for (i, s), n in self._counts.items()
            if i is issue and (source is None or s == source)
        )

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Nested {issue: {source: count}} for reporting."""
        out: Dict[str, Dict[str, int]] = {}
        for (issue, source), n in sorted(
            self._counts.items(), key=lambda kv: (kv[0][0].value, kv[0][1])
        ):
            out.setdefault(issue.value, {})[source] = n
        return out

    @property
    def total(self) -> int:
        return sum(self._counts.values())
