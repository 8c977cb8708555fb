"""
Deal Desk — Promoter Dashboard
================================

Performance view for one referral partner: summary, stage breakdown, deal
health, recommended actions and commission position. Every figure is
recomputed from the deal collection for the given reference date.

Health classification (first match wins):
    closed stages                                         Won / Lost
    next step overdue and amount >= high_value_threshold  Critical
    never contacted, or contact > no_contact_threshold    Stalled
    contact >= at_risk_contact_days, or next step overdue AtRisk
    otherwise                                             Healthy

Usage:
    from scripts.pipeline.promoter_dashboard import promoter_dashboard
    dash = promoter_dashboard(deals, identity, PromoterTier.GOLD, date.today(), settings)
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from models.deal_models import Deal, DealStage, PromoterIdentity, PromoterTier
from models.report_models import (
    ActionPriority,
    CommissionDetail,
    CommissionStatus,
    DealHealthStatus,
    PromoterAction,
    PromoterActionType,
    PromoterCommissionSummary,
    PromoterDashboard,
    PromoterDealStatus,
    PromoterStageBreakdown,
    PromoterSummary,
)
from scripts.lib.logger import setup_logger
from scripts.pipeline.settings import PipelineSettings

logger = setup_logger(__name__)

_ZERO = Decimal("0")

ATTENTION_LIMIT = 10
RECENT_DEALS_LIMIT = 10
RECENT_PAYMENTS_LIMIT = 5

H = DealHealthStatus
A = PromoterActionType
P = ActionPriority

# (health, stage) -> (action, priority)
ACTION_TABLE = {
    (H.STALLED, DealStage.LEAD): (A.FOLLOW_UP_WITH_LEAD, P.MEDIUM),
    (H.STALLED, DealStage.QUALIFIED): (A.SHARE_CONTENT, P.MEDIUM),
    (H.STALLED, DealStage.DISCOVERY): (A.MAKE_INTRODUCTION, P.HIGH),
    (H.STALLED, DealStage.PROPOSAL): (A.PROVIDE_REFERENCE, P.HIGH),
    (H.STALLED, DealStage.NEGOTIATION): (A.ESCALATE_INTERNAL, P.HIGH),
    (H.AT_RISK, DealStage.LEAD): (A.FOLLOW_UP_WITH_LEAD, P.LOW),
    (H.AT_RISK, DealStage.QUALIFIED): (A.PROVIDE_CONTEXT, P.LOW),
    (H.AT_RISK, DealStage.DISCOVERY): (A.SHARE_CONTENT, P.MEDIUM),
    (H.AT_RISK, DealStage.PROPOSAL): (A.PROVIDE_REFERENCE, P.MEDIUM),
    (H.AT_RISK, DealStage.NEGOTIATION): (A.CHECK_IN, P.HIGH),
    (H.CRITICAL, DealStage.LEAD): (A.FOLLOW_UP_WITH_LEAD, P.HIGH),
    (H.CRITICAL, DealStage.QUALIFIED): (A.CHECK_IN, P.HIGH),
    (H.CRITICAL, DealStage.DISCOVERY): (A.MAKE_INTRODUCTION, P.URGENT),
    (H.CRITICAL, DealStage.PROPOSAL): (A.ESCALATE_INTERNAL, P.URGENT),
    (H.CRITICAL, DealStage.NEGOTIATION): (A.ESCALATE_INTERNAL, P.URGENT),
}

# OnHold / Other stages
FALLBACK_PRIORITY = {
    H.AT_RISK: P.LOW,
    H.STALLED: P.MEDIUM,
    H.CRITICAL: P.HIGH,
}

RECOMMENDATIONS = {
    A.CHECK_IN: "Check in with {owner} on progress and offer support",
    A.PROVIDE_CONTEXT: "Provide additional context about this referral to help qualification",
    A.MAKE_INTRODUCTION: "Facilitate an introduction to a key decision maker at {account}",
    A.PROVIDE_REFERENCE: "Offer a reference or introduction to an existing customer",
    A.SHARE_CONTENT: "Share relevant case studies or content with {account}",
    A.FOLLOW_UP_WITH_LEAD: "Follow up with your contact at {account} to re-engage them",
    A.ESCALATE_INTERNAL: "Flag this deal to {owner} for priority attention",
    A.CELEBRATE_WIN: "Thank {account} and {owner}, and ask about further referrals",
    A.REVIEW_LOSS: "Review with {owner} why the deal was lost",
}

_ATTENTION_RANK = {H.CRITICAL: 3, H.STALLED: 2, H.AT_RISK: 1}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _commission(amount: Optional[Decimal], rate: Decimal) -> Optional[Decimal]:
    if amount is None:
        return None
    return amount * rate / 100


def _earned(deal: Deal, rate: Decimal) -> Decimal:
    if deal.promoter_commission is not None:
        return deal.promoter_commission
    return (deal.amount_gbp or _ZERO) * rate / 100


def _month_window(reference_date: date) -> Tuple[date, date]:
    start = reference_date.replace(day=1)
    end = date(start.year + (start.month == 12), start.month % 12 + 1, 1)
    return start, end


def _quarter_window(reference_date: date) -> Tuple[date, date]:
    first_month = (reference_date.month - 1) // 3 * 3 + 1
    start = date(reference_date.year, first_month, 1)
    if first_month == 10:
        return start, date(reference_date.year + 1, 1, 1)
    return start, date(reference_date.year, first_month + 3, 1)


def _closing_within(deal: Deal, window: Tuple[date, date]) -> bool:
    return deal.close_date is not None and window[0] <= deal.close_date < window[1]


def _sum(values: Iterable[Optional[Decimal]]) -> Decimal:
    return sum((v for v in values if v is not None), _ZERO)


def select_deals(deals: Iterable[Deal], identity: PromoterIdentity) -> List[Deal]:
    """Deals attributed to a promoter by id or promo code."""
    if deals is None:
        raise TypeError("deals must not be None")
    return [d for d in deals if identity.owns(d)]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

def classify_health(
    deal: Deal,
    reference_date: date,
    settings: PipelineSettings = None,
) -> Tuple[DealHealthStatus, str]:
    """Health status and a short reason for one deal."""
    settings = settings or PipelineSettings()

    if deal.stage == DealStage.CLOSED_WON:
        return H.WON, "Deal successfully closed"
    if deal.stage == DealStage.CLOSED_LOST:
        return H.LOST, "Deal was lost"

    days_overdue = None
    if deal.next_step_due_date is not None and deal.next_step_due_date < reference_date:
        days_overdue = (reference_date - deal.next_step_due_date).days
    days_since_contact = None
    if deal.last_contacted_date is not None:
        days_since_contact = (reference_date - deal.last_contacted_date).days

    high_value = deal.amount_gbp is not None and deal.amount_gbp >= settings.high_value_threshold
    if days_overdue is not None and high_value:
        return H.CRITICAL, f"High-value deal with next step overdue by {days_overdue} days"

    if days_since_contact is None:
        return H.STALLED, "No contact recorded"
    if days_since_contact > settings.no_contact_threshold_days:
        return H.STALLED, f"No contact for {days_since_contact} days"

    reasons = []
    if days_since_contact >= settings.at_risk_contact_days:
        reasons.append(f"No contact for {days_since_contact} days")
    if days_overdue is not None:
        reasons.append(f"Next step overdue by {days_overdue} days")
    if reasons:
        return H.AT_RISK, "; ".join(reasons)

    return H.HEALTHY, "Deal progressing normally"


def _deal_status(deal: Deal, rate: Decimal, reference_date: date,
                 settings: PipelineSettings) -> PromoterDealStatus:
    health, reason = classify_health(deal, reference_date, settings)
    return PromoterDealStatus(
        deal_id=deal.deal_id,
        deal_name=deal.deal_name,
        account_name=deal.account_name,
        owner=deal.owner,
        stage=deal.stage,
        amount=deal.amount_gbp,
        potential_commission=_commission(deal.amount_gbp, rate),
        close_date=deal.close_date,
        last_contacted_date=deal.last_contacted_date,
        next_step=deal.next_step,
        next_step_due_date=deal.next_step_due_date,
        days_in_pipeline=(reference_date - deal.created_date).days if deal.created_date else 0,
        days_since_contact=(
            (reference_date - deal.last_contacted_date).days
            if deal.last_contacted_date else None
        ),
        health_status=health,
        status_reason=reason,
    )


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def _action(deal: Deal, rate: Decimal, health: DealHealthStatus,
            action_type: PromoterActionType, priority: ActionPriority,
            reason: str) -> PromoterAction:
    recommendation = RECOMMENDATIONS[action_type].format(
        owner=deal.owner or "the sales rep",
        account=deal.account_name or "the client",
    )
    return PromoterAction(
        deal_id=deal.deal_id,
        deal_name=deal.deal_name,
        account_name=deal.account_name,
        owner=deal.owner,
        stage=deal.stage,
        amount=deal.amount_gbp,
        potential_commission=_commission(deal.amount_gbp, rate),
        health_status=health,
        action_type=action_type,
        priority=priority,
        recommendation=recommendation,
        reason=reason,
    )


def recommend_action(
    deal: Deal,
    rate: Decimal,
    reference_date: date,
    settings: PipelineSettings,
) -> Optional[PromoterAction]:
    """The single action a promoter should take on a deal, if any."""
    health, reason = classify_health(deal, reference_date, settings)

    if health in (H.WON, H.LOST):
        if deal.close_date is None:
            return None
        age = (reference_date - deal.close_date).days
        if not 0 <= age <= settings.recent_close_window_days:
            return None
        action_type = A.CELEBRATE_WIN if health == H.WON else A.REVIEW_LOSS
        return _action(deal, rate, health, action_type, P.LOW, reason)

    if health == H.HEALTHY:
        return None

    action_type, priority = ACTION_TABLE.get(
        (health, deal.stage), (A.CHECK_IN, FALLBACK_PRIORITY[health]),
    )
    return _action(deal, rate, health, action_type, priority, reason)


def _sorted_actions(actions: List[PromoterAction]) -> List[PromoterAction]:
    return sorted(
        actions,
        key=lambda a: (-a.priority.rank, -(a.potential_commission or _ZERO)),
    )


def promoter_actions(
    deals: Iterable[Deal],
    identity: PromoterIdentity,
    tier: PromoterTier,
    reference_date: date,
    settings: PipelineSettings = None,
) -> List[PromoterAction]:
    """Recommended actions for a promoter, highest priority first."""
    settings = settings or PipelineSettings()
    rate = tier.commission_rate
    actions = []
    for deal in select_deals(deals, identity):
        action = recommend_action(deal, rate, reference_date, settings)
        if action is not None:
            actions.append(action)
    return _sorted_actions(actions)


def promoter_deals(
    deals: Iterable[Deal],
    identity: PromoterIdentity,
    tier: PromoterTier,
    reference_date: date,
    settings: PipelineSettings = None,
) -> List[PromoterDealStatus]:
    """Every deal for a promoter with health status, largest first."""
    settings = settings or PipelineSettings()
    rate = tier.commission_rate
    statuses = [
        _deal_status(d, rate, reference_date, settings)
        for d in select_deals(deals, identity)
    ]
    statuses.sort(key=lambda s: (s.amount is None, -(s.amount or _ZERO)))
    return statuses


# ---------------------------------------------------------------------------
# Dashboard sections
# ---------------------------------------------------------------------------

def _summary(selected: List[Deal], open_deals: List[Deal], won: List[Deal],
             lost: List[Deal], reference_date: date) -> PromoterSummary:
    month = _month_window(reference_date)
    closing = [d for d in open_deals if _closing_within(d, month)]
    open_amounts = [d.amount_gbp for d in open_deals if d.amount_gbp is not None]
    conversion = round(len(won) / len(selected) * 100, 2) if selected else 0.0

    return PromoterSummary(
        total_referrals=len(selected),
        active_deals=len(open_deals),
        closed_won=len(won),
        closed_lost=len(lost),
        conversion_rate=conversion,
        total_pipeline_value=_sum(d.amount_gbp for d in open_deals),
        weighted_pipeline_value=_sum(d.weighted_amount_gbp for d in open_deals),
        total_won_value=_sum(d.amount_gbp for d in won),
        average_deal_value=(
            _sum(open_amounts) / len(open_amounts) if open_amounts else _ZERO
        ),
        deals_closing_this_month=len(closing),
        value_closing_this_month=_sum(d.amount_gbp for d in closing),
    )


def _stage_breakdown(open_deals: List[Deal], rate: Decimal,
                     reference_date: date) -> List[PromoterStageBreakdown]:
    groups = defaultdict(list)
    for deal in open_deals:
        groups[deal.stage].append(deal)

    breakdown = []
    for stage in sorted(groups, key=lambda s: s.order):
        members = groups[stage]
        total = _sum(d.amount_gbp for d in members)
        ages = [(reference_date - d.created_date).days for d in members if d.created_date]
        breakdown.append(PromoterStageBreakdown(
            stage=stage,
            deal_count=len(members),
            total_value=total,
            weighted_value=_sum(d.weighted_amount_gbp for d in members),
            potential_commission=total * rate / 100,
            average_age_days=int(sum(ages) / len(ages)) if ages else 0,
        ))
    return breakdown


def _commission_summary(open_deals: List[Deal], won: List[Deal], rate: Decimal,
                        reference_date: date) -> PromoterCommissionSummary:
    month = _month_window(reference_date)
    quarter = _quarter_window(reference_date)

    def projected(deal: Deal) -> Decimal:
        return (deal.weighted_amount_gbp or _ZERO) * rate / 100

    def detail(deal: Deal, status: CommissionStatus) -> CommissionDetail:
        return CommissionDetail(
            deal_id=deal.deal_id,
            deal_name=deal.deal_name,
            deal_value=deal.amount_gbp or _ZERO,
            commission_rate=rate,
            commission_amount=_earned(deal, rate),
            closed_date=deal.close_date,
            paid_date=deal.commission_paid_date,
            status=status,
        )

    paid = [d for d in won if d.commission_paid]
    unpaid = [d for d in won if not d.commission_paid]
    earned = _sum(_earned(d, rate) for d in won)
    total_paid = _sum(_earned(d, rate) for d in paid)

    pending_details = sorted(
        (detail(d, CommissionStatus.PENDING) for d in unpaid),
        key=lambda c: -c.commission_amount,
    )
    recent_paid = sorted(
        paid, key=lambda d: d.commission_paid_date or date.min, reverse=True,
    )[:RECENT_PAYMENTS_LIMIT]

    return PromoterCommissionSummary(
        total_earned=earned,
        total_paid=total_paid,
        pending_payment=earned - total_paid,
        projected_from_pipeline=_sum(projected(d) for d in open_deals),
        projected_this_month=_sum(projected(d) for d in open_deals if _closing_within(d, month)),
        projected_this_quarter=_sum(
            projected(d) for d in open_deals if _closing_within(d, quarter)
        ),
        pending_commissions=pending_details,
        recent_payments=[detail(d, CommissionStatus.PAID) for d in recent_paid],
    )


def promoter_dashboard(
    deals: Iterable[Deal],
    identity: PromoterIdentity,
    tier: PromoterTier,
    reference_date: date,
    settings: PipelineSettings = None,
) -> PromoterDashboard:
    """Build the full dashboard for one promoter."""
    settings = settings or PipelineSettings()
    rate = tier.commission_rate

    selected = select_deals(deals, identity)
    open_deals = [d for d in selected if d.is_open]
    won = [d for d in selected if d.stage == DealStage.CLOSED_WON]
    lost = [d for d in selected if d.stage == DealStage.CLOSED_LOST]

    statuses = [_deal_status(d, rate, reference_date, settings) for d in open_deals]
    attention = sorted(
        (s for s in statuses if s.health_status != H.HEALTHY),
        key=lambda s: (-_ATTENTION_RANK.get(s.health_status, 0), -(s.amount or _ZERO)),
    )[:ATTENTION_LIMIT]

    actions = [recommend_action(d, rate, reference_date, settings) for d in selected]

    recent = sorted(
        selected, key=lambda d: d.created_date or date.min, reverse=True,
    )[:RECENT_DEALS_LIMIT]

    dashboard = PromoterDashboard(
        reference_date=reference_date,
        promoter_id=identity.promoter_id,
        promoter_name=identity.name,
        promo_code=identity.promo_code,
        tier=tier,
        commission_rate=rate,
        summary=_summary(selected, open_deals, won, lost, reference_date),
        by_stage=_stage_breakdown(open_deals, rate, reference_date),
        recommended_actions=_sorted_actions([a for a in actions if a is not None]),
        deals_needing_attention=attention,
        commission_summary=_commission_summary(open_deals, won, rate, reference_date),
        recent_deals=[_deal_status(d, rate, reference_date, settings) for d in recent],
    )
    logger.info(
        "Promoter dashboard %s (%s): %d referrals, %d actions",
        identity.promoter_id or identity.promo_code, tier.value,
        len(selected), len(dashboard.recommended_actions),
    )
    return dashboard
