"""
Filter/predicate engine: AND-combined deal criteria.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from models.deal_models import Deal, DealFilter, DealStage


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def _days_since(earlier: date, reference_date: date) -> int:
    return (reference_date - earlier).days


def matches(deal: Deal, deal_filter: Optional[DealFilter], reference_date: date) -> bool:
    """True when ``deal`` satisfies every criterion set on ``deal_filter``."""
    if deal_filter is None:
        return True
    f = deal_filter

    if f.search_text and f.search_text.strip():
        term = f.search_text.strip().lower()
        haystack = (deal.deal_name, deal.account_name, deal.contact_name, deal.deal_id, deal.owner)
        if not any(term in (field or "").lower() for field in haystack):
            return False

    if f.stages and deal.stage not in f.stages:
        return False

    if f.owner and not _same(deal.owner, f.owner):
        return False
    if f.region and not _same(deal.region, f.region):
        return False
    if f.product_line and not _same(deal.product_line, f.product_line):
        return False

    # An absent amount fails any bound that is set
    if f.min_amount is not None:
        if deal.amount_gbp is None or deal.amount_gbp < f.min_amount:
            return False
    if f.max_amount is not None:
        if deal.amount_gbp is None or deal.amount_gbp > f.max_amount:
            return False

    if f.close_date_from is not None:
        if deal.close_date is None or deal.close_date < f.close_date_from:
            return False
    if f.close_date_to is not None:
        if deal.close_date is None or deal.close_date > f.close_date_to:
            return False

    if f.next_step_due_before is not None:
        if deal.next_step_due_date is None or deal.next_step_due_date >= f.next_step_due_before:
            return False

    if f.has_overdue_next_step is not None:
        overdue = deal.next_step_due_date is not None and deal.next_step_due_date < reference_date
        if overdue != f.has_overdue_next_step:
            return False

    # Never contacted counts as maximally stale
    if f.no_contact_days is not None and deal.last_contacted_date is not None:
        if _days_since(deal.last_contacted_date, reference_date) < f.no_contact_days:
            return False

    if f.tags:
        deal_tags = {t.strip().lower() for t in deal.tags}
        if not all(t.strip().lower() in deal_tags for t in f.tags):
            return False

    if f.promoter_id and not _same(deal.promoter_id, f.promoter_id):
        return False
    if f.promo_code and not _same(deal.promo_code, f.promo_code):
        return False

    if f.has_promoter is not None:
        has_promoter = bool((deal.promoter_id or "").strip() or (deal.promo_code or "").strip())
        if has_promoter != f.has_promoter:
            return False

    if f.commission_pending is not None:
        pending = (
            deal.stage == DealStage.CLOSED_WON
            and bool((deal.promoter_id or "").strip() or (deal.promo_code or "").strip())
            and not deal.commission_paid
        )
        if pending != f.commission_pending:
            return False

    return True


def filter_deals(
    deals: Iterable[Deal],
    deal_filter: Optional[DealFilter],
    reference_date: date,
) -> List[Deal]:
    if deals is None:
        raise TypeError("deals must not be None")
    return [d for d in deals if matches(d, deal_filter, reference_date)]
