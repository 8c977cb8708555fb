"""
Deal Desk — Daily Brief
=========================

"What needs attention today": next steps due today, overdue next steps,
deals gone quiet, and high-value deals carrying any of those risks.

Usage:
    from scripts.pipeline.daily_brief import daily_brief
    brief = daily_brief(deals, date.today(), settings)
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from models.deal_models import Deal
from models.report_models import DailyBrief, DealAction
from scripts.lib.logger import setup_logger
from scripts.pipeline.settings import PipelineSettings

logger = setup_logger(__name__)


def _amount_desc(deal: Deal):
    """Sort key: amount descending, missing amounts last."""
    return (deal.amount_gbp is None, -(deal.amount_gbp or Decimal("0")))


def _days_since_contact(deal: Deal, reference_date: date) -> Optional[int]:
    if deal.last_contacted_date is None:
        return None
    return (reference_date - deal.last_contacted_date).days


def _is_overdue(deal: Deal, reference_date: date) -> bool:
    return deal.next_step_due_date is not None and deal.next_step_due_date < reference_date


def _to_action(deal: Deal, reference_date: date, risk_reason: str = None) -> DealAction:
    days_overdue = None
    if _is_overdue(deal, reference_date):
        days_overdue = (reference_date - deal.next_step_due_date).days
    return DealAction(
        deal_id=deal.deal_id,
        deal_name=deal.deal_name,
        account_name=deal.account_name,
        owner=deal.owner,
        stage=deal.stage,
        amount=deal.amount_gbp,
        next_step=deal.next_step,
        next_step_due_date=deal.next_step_due_date,
        last_contacted_date=deal.last_contacted_date,
        days_overdue=days_overdue,
        days_since_contact=_days_since_contact(deal, reference_date),
        risk_reason=risk_reason,
    )


def risk_reasons(deal: Deal, reference_date: date, settings: PipelineSettings) -> List[str]:
    """Human-readable reasons a deal is at risk; empty when it is not."""
    reasons = []
    days = _days_since_contact(deal, reference_date)
    contact_limit = min(settings.no_contact_threshold_days, settings.stale_contact_warning_days)
    if days is None:
        reasons.append("Never contacted")
    elif days >= contact_limit:
        reasons.append(f"No contact for {days} days")
    if _is_overdue(deal, reference_date):
        reasons.append(
            f"Next step overdue by {(reference_date - deal.next_step_due_date).days} days"
        )
    return reasons


def daily_brief(
    deals: Iterable[Deal],
    reference_date: date,
    settings: PipelineSettings = None,
) -> DailyBrief:
    """
    Build the daily action list.

    Only open deals are considered. ``total_action_items`` counts due-today
    plus overdue; ``total_at_risk_value`` sums the high-value-at-risk list.
    """
    if deals is None:
        raise TypeError("deals must not be None")
    settings = settings or PipelineSettings()
    open_deals = [d for d in deals if d.is_open]

    due_today = sorted(
        (d for d in open_deals if d.next_step_due_date == reference_date),
        key=_amount_desc,
    )

    overdue = sorted(
        (d for d in open_deals if _is_overdue(d, reference_date)),
        key=lambda d: (d.next_step_due_date, _amount_desc(d)),
    )

    no_contact = []
    for deal in open_deals:
        days = _days_since_contact(deal, reference_date)
        if days is None or days >= settings.no_contact_threshold_days:
            no_contact.append(deal)
    no_contact.sort(key=_amount_desc)

    high_value = []
    for deal in open_deals:
        if deal.amount_gbp is None or deal.amount_gbp < settings.high_value_threshold:
            continue
        reasons = risk_reasons(deal, reference_date, settings)
        if reasons:
            high_value.append((deal, "; ".join(reasons)))
    high_value.sort(key=lambda pair: _amount_desc(pair[0]))
    high_value = high_value[:settings.high_value_top_n]

    brief = DailyBrief(
        reference_date=reference_date,
        due_today=[_to_action(d, reference_date) for d in due_today],
        overdue=[_to_action(d, reference_date) for d in overdue],
        no_contact_deals=[
            _to_action(d, reference_date, "; ".join(risk_reasons(d, reference_date, settings)))
            for d in no_contact
        ],
        high_value_at_risk=[_to_action(d, reference_date, reason) for d, reason in high_value],
        total_action_items=len(due_today) + len(overdue),
        total_at_risk_value=sum(
            (d.amount_gbp for d, _ in high_value), Decimal("0"),
        ),
    )
    logger.info(
        "Daily brief %s: %d due, %d overdue, %d no-contact, %d high-value at risk",
        reference_date, len(brief.due_today), len(brief.overdue),
        len(brief.no_contact_deals), len(brief.high_value_at_risk),
    )
    return brief
