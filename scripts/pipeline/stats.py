"""Single-pass summary counts and sums over the deal collection."""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from models.deal_models import Deal, DealStage
from models.report_models import PipelineStats


def pipeline_stats(deals: Iterable[Deal]) -> PipelineStats:
    if deals is None:
        raise TypeError("deals must not be None")

    total = open_count = won = lost = 0
    pipeline = weighted = won_value = Decimal("0")
    owners = set()
    regions = set()

    for deal in deals:
        total += 1
        if deal.stage == DealStage.CLOSED_WON:
            won += 1
            won_value += deal.amount_gbp or 0
        elif deal.stage == DealStage.CLOSED_LOST:
            lost += 1
        else:
            open_count += 1
            pipeline += deal.amount_gbp or 0
            weighted += deal.weighted_amount_gbp or 0
        if deal.owner and deal.owner.strip():
            owners.add(deal.owner.strip())
        if deal.region and deal.region.strip():
            regions.add(deal.region.strip())

    return PipelineStats(
        total_deals=total,
        open_deals=open_count,
        closed_won_deals=won,
        closed_lost_deals=lost,
        total_pipeline=pipeline,
        weighted_pipeline=weighted,
        closed_won_value=won_value,
        average_deal_size=pipeline / open_count if open_count else Decimal("0"),
        owners=sorted(owners),
        regions=sorted(regions),
    )
