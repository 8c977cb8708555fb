"""Tests for the forecast snapshot and pipeline stats."""

from datetime import date
from decimal import Decimal

import pytest

from models.deal_models import DealStage
from scripts.pipeline.forecast import forecast_snapshot
from scripts.pipeline.stats import pipeline_stats


@pytest.fixture
def scenario(make_deal):
    return [
        make_deal(stage=DealStage.PROPOSAL, amount_gbp=Decimal("50000"), probability=60,
                  close_date=None),
        make_deal(stage=DealStage.LEAD, amount_gbp=None, probability=10),
        make_deal(stage=DealStage.CLOSED_WON, amount_gbp=Decimal("10000"), probability=100),
    ]


class TestForecastSnapshot:
    def test_totals_exclude_closed_and_null_amounts(self, scenario, ref_date):
        snapshot = forecast_snapshot(scenario, ref_date)
        assert snapshot.total_deals == 3
        assert snapshot.open_deals == 2
        assert snapshot.total_pipeline == Decimal("50000")
        assert snapshot.weighted_pipeline == Decimal("30000")

    def test_by_stage_in_pipeline_order(self, scenario, ref_date):
        snapshot = forecast_snapshot(scenario, ref_date)
        stages = [(s.stage, s.deal_count, s.percentage) for s in snapshot.by_stage]
        assert stages == [
            (DealStage.LEAD, 1, 0.0),
            (DealStage.PROPOSAL, 1, 100.0),
            (DealStage.CLOSED_WON, 1, 0.0),
        ]
        won = snapshot.by_stage[-1]
        assert won.total_amount == Decimal("10000")

    def test_owner_win_rate(self, make_deal, ref_date):
        deals = [
            make_deal(owner="Emma Taylor", stage=DealStage.CLOSED_WON, probability=100),
            make_deal(owner="Emma Taylor", stage=DealStage.CLOSED_WON, probability=100),
            make_deal(owner="Emma Taylor", stage=DealStage.CLOSED_LOST, probability=0),
            make_deal(owner="Emma Taylor", amount_gbp=Decimal("4000")),
            make_deal(owner=None, amount_gbp=Decimal("9000")),
        ]
        snapshot = forecast_snapshot(deals, ref_date)
        owners = {o.owner: o for o in snapshot.by_owner}
        emma = owners["Emma Taylor"]
        assert emma.deal_count == 1
        assert emma.total_amount == Decimal("4000")
        assert (emma.closed_won, emma.closed_lost) == (2, 1)
        assert emma.win_rate == 66.7
        assert owners["Unassigned"].win_rate == 0.0
        assert [o.owner for o in snapshot.by_owner] == ["Unassigned", "Emma Taylor"]

    def test_close_months_chronological(self, make_deal, ref_date):
        deals = [
            make_deal(close_date=date(2024, 9, 3)),
            make_deal(close_date=date(2024, 7, 1)),
            make_deal(close_date=date(2024, 7, 31), amount_gbp=Decimal("5000")),
            make_deal(close_date=None),
        ]
        months = forecast_snapshot(deals, ref_date).by_close_month
        assert [(m.year, m.month, m.month_name) for m in months] == [
            (2024, 7, "Jul 2024"), (2024, 9, "Sep 2024"),
        ]
        assert months[0].deal_count == 2
        assert months[0].total_amount == Decimal("15000")

    def test_region_and_product_rollups(self, make_deal, ref_date):
        deals = [
            make_deal(region="London", product_line="Hardware", amount_gbp=Decimal("3000")),
            make_deal(region="London", product_line="Training", amount_gbp=Decimal("2000")),
            make_deal(region=None, product_line=None, amount_gbp=Decimal("1000")),
        ]
        snapshot = forecast_snapshot(deals, ref_date)
        assert [(r.region, r.deal_count) for r in snapshot.by_region] == [
            ("London", 2), ("Unknown", 1),
        ]
        assert [p.product_line for p in snapshot.by_product] == [
            "Hardware", "Training", "Unknown",
        ]

    def test_empty(self, ref_date):
        snapshot = forecast_snapshot([], ref_date)
        assert snapshot.total_pipeline == Decimal("0")
        assert snapshot.by_stage == []

    def test_wire_format(self, scenario, ref_date):
        wire = forecast_snapshot(scenario, ref_date).to_wire()
        assert wire["totalPipeline"] == 50000.0
        assert wire["weightedPipeline"] == 30000.0
        assert wire["byStage"][0]["stage"] == "Lead"

    def test_none_raises(self, ref_date):
        with pytest.raises(TypeError):
            forecast_snapshot(None, ref_date)


class TestPipelineStats:
    def test_counts_and_sums(self, scenario, make_deal):
        deals = scenario + [
            make_deal(stage=DealStage.CLOSED_LOST, probability=0, owner="David Lee",
                      region="Scotland"),
        ]
        stats = pipeline_stats(deals)
        assert stats.total_deals == 4
        assert stats.open_deals == 2
        assert stats.closed_won_deals == 1
        assert stats.closed_lost_deals == 1
        assert stats.total_pipeline == Decimal("50000")
        assert stats.weighted_pipeline == Decimal("30000")
        assert stats.closed_won_value == Decimal("10000")
        assert stats.average_deal_size == Decimal("25000")
        assert stats.owners == ["David Lee", "Sarah Chen"]
        assert stats.regions == ["Scotland"]

    def test_empty(self):
        stats = pipeline_stats([])
        assert stats.total_deals == 0
        assert stats.average_deal_size == Decimal("0")

    def test_none_raises(self):
        with pytest.raises(TypeError):
            pipeline_stats(None)
