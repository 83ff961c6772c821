"""Tests for monthly ROI / ROAS / CAC aggregation."""

from datetime import date, datetime

import pytest

from atlas.analyzer.attribution_engine import last_touch_attribution, linear_attribution
from atlas.analyzer.kpi_engine import (
    aggregate_monthly,
    compute_monthly_metrics,
    compute_summary,
    valid_spend,
)
from atlas.analyzer.touchpath_engine import build_touchpath
from atlas.core.quality import DataQualityIssue
from atlas.models.analysis_models import Dimension, RevenueSource

from factories import buy, cost, touch


@pytest.fixture
def views(journey_facts):
    touchpoints, purchases, spend, campaigns = journey_facts
    touchpath = build_touchpath(touchpoints, purchases)
    return {
        "purchases": purchases,
        "spend": spend,
        "linear": linear_attribution(touchpath, purchases),
        "last_touch": last_touch_attribution(touchpath, purchases),
        "campaigns": {c.campaign_id: c for c in campaigns},
    }


def _metrics(views, dimension, metrics=("roi", "roas", "cac"), quality=None, **kwargs):
    return compute_monthly_metrics(
        dimension,
        views["purchases"],
        views["spend"],
        linear=views["linear"],
        last_touch=views["last_touch"],
        metrics=metrics,
        campaigns=views["campaigns"],
        quality=quality,
        **kwargs,
    )


def _values(rows, metric_name):
    return {
        (r.dimension_key, r.period): r.value for r in rows if r.metric_name == metric_name
    }


class TestChannelDimension:
    def test_roas_uses_linear_revenue_shares(self, views):
        roas = _values(_metrics(views, Dimension.CHANNEL), "roas")

        assert roas[("Search", "2024-01")] == 2.0
        assert roas[("Social", "2024-01")] == 0.75
        assert roas[("Search", "2024-02")] == 0.5
        assert roas[("Social", "2024-02")] == 1.5

    def test_channel_without_spend_has_undefined_ratios(self, views):
        rows = _metrics(views, Dimension.CHANNEL)

        email = [r for r in rows if r.dimension_key == "Email" and r.metric_name == "roas"]
        assert [r.value for r in email] == [None, None]
        assert [r.revenue for r in email] == [30.0, 30.0]
        assert all(r.spend == 0.0 for r in email)

    def test_roi_and_cac(self, views):
        rows = _metrics(views, Dimension.CHANNEL)

        roi = _values(rows, "roi")
        cac = _values(rows, "cac")
        assert roi[("Search", "2024-01")] == 1.0
        assert roi[("Search", "2024-02")] == -0.5
        assert cac[("Search", "2024-01")] == 50.0

    def test_rows_are_ordered_by_metric_then_key_then_month(self, views):
        rows = _metrics(views, Dimension.CHANNEL, metrics=("roas",))

        assert [(r.dimension_key, r.period) for r in rows] == [
            ("Email", "2024-01"),
            ("Email", "2024-02"),
            ("Search", "2024-01"),
            ("Search", "2024-02"),
            ("Social", "2024-01"),
            ("Social", "2024-02"),
        ]

    def test_revenue_source_can_be_overridden(self, views):
        rows = _metrics(
            views,
            Dimension.CHANNEL,
            metrics=("roas",),
            revenue_source=RevenueSource.LAST_TOUCH,
        )

        revenue = {(r.dimension_key, r.period): r.revenue for r in rows}
        assert revenue[("Search", "2024-01")] == 100.0
        assert revenue[("Email", "2024-01")] == 60.0
        assert revenue[("Social", "2024-01")] == 0.0


class TestOverallDimension:
    def test_overall_uses_every_purchase_and_all_spend(self, views):
        rows = _metrics(views, Dimension.OVERALL)

        roas = _values(rows, "roas")
        cac = _values(rows, "cac")
        assert roas[(None, "2024-01")] == pytest.approx(160 / 90)
        assert roas[(None, "2024-02")] == 1.625
        assert cac[(None, "2024-01")] == 45.0
        assert cac[(None, "2024-02")] == 40.0

    def test_unattributed_purchase_still_counts_toward_revenue(self, views):
        rows = _metrics(views, Dimension.OVERALL, metrics=("roas",))

        feb = next(r for r in rows if r.period == "2024-02")
        assert feb.revenue == 130.0
        assert feb.purchase_count == 2
        assert feb.customer_count == 2

    def test_roi_reads_linear_revenue_shares(self, views):
        rows = _metrics(views, Dimension.OVERALL)

        roi = {r.period: r for r in rows if r.metric_name == "roi"}
        assert roi["2024-01"].revenue == 160.0
        assert roi["2024-01"].value == pytest.approx(70 / 90)
        assert roi["2024-02"].revenue == 90.0
        assert roi["2024-02"].value == 0.125

    def test_untouched_purchase_does_not_inflate_roi(self):
        touchpoints = [touch(1, datetime(2024, 1, 2), "Search")]
        purchases = [
            buy(1, 1, datetime(2024, 1, 5), 100.0),
            buy(2, 2, datetime(2024, 1, 6), 100.0),
        ]
        spend = [cost(date(2024, 1, 1), 100.0, "Search")]
        linear = linear_attribution(build_touchpath(touchpoints, purchases), purchases)

        rows = compute_monthly_metrics(
            Dimension.OVERALL, purchases, spend, linear=linear, metrics=("roi", "roas")
        )

        by_metric = {r.metric_name: r for r in rows}
        assert by_metric["roi"].revenue == 100.0
        assert by_metric["roi"].value == 0.0
        assert by_metric["roas"].revenue == 200.0
        assert by_metric["roas"].value == 2.0


class TestAcquisitionDimension:
    def test_month_with_revenue_but_no_spend(self, views, quality):
        rows = _metrics(views, Dimension.ACQUISITION_CHANNEL, quality=quality)

        email = {r.metric_name: r for r in rows if r.dimension_key == "Email"}
        assert email["roi"].value is None
        assert email["roas"].value is None
        assert email["cac"].value == 0.0
        assert email["roi"].profit == 40.0

    def test_month_with_spend_but_no_revenue(self, views):
        rows = _metrics(views, Dimension.ACQUISITION_CHANNEL)

        search_feb = {
            r.metric_name: r.value
            for r in rows
            if r.dimension_key == "Search" and r.period == "2024-02"
        }
        assert search_feb == {"roi": -1.0, "roas": 0.0, "cac": None}

    def test_undefined_divisions_are_counted(self, views, quality):
        _metrics(views, Dimension.ACQUISITION_CHANNEL, quality=quality)

        assert quality.count(DataQualityIssue.DIVISION_UNDEFINED, "acquisition_channel") == 3


class TestCampaignLabels:
    def test_labels_come_from_campaign_rows(self, views):
        rows = _metrics(views, Dimension.CAMPAIGN, metrics=("roas",))

        labels = {r.dimension_key: r.dimension_label for r in rows}
        assert labels == {"10": "Brand Search", "20": "Prospecting", "30": None}

    def test_orphan_campaign_is_counted_once_per_run(self, views, quality):
        for dim in (
            Dimension.CAMPAIGN,
            Dimension.ACQUISITION_CAMPAIGN,
            Dimension.LAST_TOUCH_CAMPAIGN,
        ):
            _metrics(views, dim, metrics=("roas",), quality=quality)

        assert quality.count(DataQualityIssue.ORPHAN_REFERENCE, "campaign") == 1
        assert quality.count(DataQualityIssue.ORPHAN_REFERENCE) == 1
        assert quality.summary()["orphan_reference"] == {"campaign": 1}

    def test_orphan_first_seen_in_a_later_dimension_is_attributed_there(
        self, views, quality
    ):
        _metrics(views, Dimension.LAST_TOUCH_CAMPAIGN, metrics=("roas",), quality=quality)
        _metrics(views, Dimension.CAMPAIGN, metrics=("roas",), quality=quality)

        assert quality.summary()["orphan_reference"] == {"last_touch_campaign": 1}


def test_unknown_metric_raises(views):
    with pytest.raises(ValueError):
        _metrics(views, Dimension.CHANNEL, metrics=("ctr",))


def test_spend_months_are_outer_joined_with_revenue():
    purchases = [buy(1, 1, datetime(2024, 3, 5), 20.0, "Search")]
    spend = [cost(date(2024, 4, 1), 10.0, "Search")]

    cells = aggregate_monthly(Dimension.ACQUISITION_CHANNEL, purchases, spend)

    assert set(cells) == {("Search", 2024, 3), ("Search", 2024, 4)}
    assert cells[("Search", 2024, 3)].spend == 0.0
    assert cells[("Search", 2024, 4)].revenue == 0.0


def test_linear_revenue_is_not_double_counted_for_repeated_channel():
    touchpoints = [
        touch(1, datetime(2024, 1, 1), "Search"),
        touch(1, datetime(2024, 1, 2), "Search"),
    ]
    purchases = [buy(1, 1, datetime(2024, 1, 3), 100.0)]
    linear = linear_attribution(build_touchpath(touchpoints, purchases), purchases)

    cells = aggregate_monthly(Dimension.CHANNEL, purchases, [], linear=linear)

    cell = cells[("Search", 2024, 1)]
    assert cell.revenue == 100.0
    assert cell.purchases == {1}


def test_spend_rows_missing_fields_are_skipped(quality):
    spend = [
        cost(date(2024, 1, 1), 10.0, "Search"),
        cost(None, 10.0, "Search"),
        cost(date(2024, 1, 1), None, "Search"),
    ]

    assert len(valid_spend(spend, quality)) == 1
    assert quality.count(DataQualityIssue.MISSING_REQUIRED_FIELD, "spend") == 2


def test_summary_spans_the_whole_window(journey_facts):
    _, purchases, spend, _ = journey_facts

    summary = compute_summary(purchases, spend)

    assert summary.total_revenue == 290.0
    assert summary.total_spend == 170.0
    assert summary.profit == 120.0
    assert summary.purchases == 4
    assert summary.cac == 42.5
    assert summary.roas == pytest.approx(290 / 170)


def test_summary_without_spend_has_no_ratios():
    summary = compute_summary([buy(1, 1, datetime(2024, 1, 1), 5.0)], [])

    assert summary.roi is None
    assert summary.roas is None
    assert summary.cac == 0.0
