"""
Deal Desk — Forecast Snapshot
===============================

Pipeline value rollups by stage, owner, close month, region and product.
Null amounts count as zero; closed deals only feed stage counts and owner
win rates.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from models.deal_models import Deal, DealStage
from models.report_models import (
    ForecastSnapshot,
    MonthBreakdown,
    OwnerBreakdown,
    ProductBreakdown,
    RegionBreakdown,
    StageBreakdown,
)
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

UNASSIGNED = "Unassigned"
UNKNOWN = "Unknown"

_ZERO = Decimal("0")


def _amount(deal: Deal) -> Decimal:
    return deal.amount_gbp if deal.amount_gbp is not None else _ZERO


def _weighted(deal: Deal) -> Decimal:
    weighted = deal.weighted_amount_gbp
    return weighted if weighted is not None else _ZERO


def _label(value, default: str) -> str:
    return value.strip() if value and value.strip() else default


def _safe_pct(numerator, denominator) -> float:
    """Zero-safe percentage rounded to 1 decimal."""
    if not denominator:
        return 0.0
    return round(float(numerator) / float(denominator) * 100, 1)


def _totals(deals: List[Deal]) -> Tuple[int, Decimal, Decimal]:
    return (
        len(deals),
        sum((_amount(d) for d in deals), _ZERO),
        sum((_weighted(d) for d in deals), _ZERO),
    )


def _group(deals: Iterable[Deal], key) -> Dict[str, List[Deal]]:
    groups: Dict[str, List[Deal]] = defaultdict(list)
    for deal in deals:
        groups[key(deal)].append(deal)
    return groups


def forecast_snapshot(deals: Iterable[Deal], reference_date: date) -> ForecastSnapshot:
    """Compute the forecast rollups over ``deals`` as of ``reference_date``."""
    if deals is None:
        raise TypeError("deals must not be None")
    deals = list(deals)
    open_deals = [d for d in deals if d.is_open]
    _, total_pipeline, weighted_pipeline = _totals(open_deals)

    # By stage: every stage present, open or closed
    by_stage = []
    stage_groups = _group(deals, lambda d: d.stage)
    for stage in sorted(stage_groups, key=lambda s: s.order):
        members = stage_groups[stage]
        count, total, weighted = _totals(members)
        by_stage.append(StageBreakdown(
            stage=stage,
            deal_count=count,
            total_amount=total,
            weighted_amount=weighted,
            percentage=0.0 if stage.is_closed else _safe_pct(total, total_pipeline),
        ))

    # By owner: open totals plus win rate over closed deals
    by_owner = []
    for owner, members in _group(deals, lambda d: _label(d.owner, UNASSIGNED)).items():
        open_members = [d for d in members if d.is_open]
        won = sum(1 for d in members if d.stage == DealStage.CLOSED_WON)
        lost = sum(1 for d in members if d.stage == DealStage.CLOSED_LOST)
        count, total, weighted = _totals(open_members)
        by_owner.append(OwnerBreakdown(
            owner=owner,
            deal_count=count,
            total_amount=total,
            weighted_amount=weighted,
            closed_won=won,
            closed_lost=lost,
            win_rate=_safe_pct(won, won + lost),
        ))
    by_owner.sort(key=lambda o: (-o.total_amount, o.owner))

    # By close month: open deals with a close date, chronological
    by_month = []
    month_groups = _group(
        (d for d in open_deals if d.close_date is not None),
        lambda d: (d.close_date.year, d.close_date.month),
    )
    for year, month in sorted(month_groups):
        count, total, weighted = _totals(month_groups[(year, month)])
        by_month.append(MonthBreakdown(
            year=year,
            month=month,
            month_name=date(year, month, 1).strftime("%b %Y"),
            deal_count=count,
            total_amount=total,
            weighted_amount=weighted,
        ))

    by_region = []
    for region, members in _group(open_deals, lambda d: _label(d.region, UNKNOWN)).items():
        count, total, weighted = _totals(members)
        by_region.append(RegionBreakdown(
            region=region, deal_count=count, total_amount=total, weighted_amount=weighted,
        ))
    by_region.sort(key=lambda r: (-r.total_amount, r.region))

    by_product = []
    for product, members in _group(open_deals, lambda d: _label(d.product_line, UNKNOWN)).items():
        count, total, weighted = _totals(members)
        by_product.append(ProductBreakdown(
            product_line=product, deal_count=count, total_amount=total, weighted_amount=weighted,
        ))
    by_product.sort(key=lambda p: (-p.total_amount, p.product_line))

    snapshot = ForecastSnapshot(
        reference_date=reference_date,
        total_deals=len(deals),
        open_deals=len(open_deals),
        total_pipeline=total_pipeline,
        weighted_pipeline=weighted_pipeline,
        by_stage=by_stage,
        by_owner=by_owner,
        by_close_month=by_month,
        by_region=by_region,
        by_product=by_product,
    )
    logger.info(
        "Forecast %s: %d open deals, pipeline %s, weighted %s",
        reference_date, len(open_deals), total_pipeline, weighted_pipeline,
    )
    return snapshot
