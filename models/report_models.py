"""
Deal Desk — Report Pydantic Models
====================================

Output structures for normalization, patching, the four pipeline reports,
and pipeline stats. Everything here is computed per request and serializes
straight to JSON via CamelModel.to_wire().
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from models.deal_models import CamelModel, Deal, DealStage, Money, PromoterTier


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Normalization / Patch ──────────────────────────────────

class NormalizationChange(CamelModel):
    """One field the normalizer altered."""
    field: str
    old_value: Any = None
    new_value: Any = None
    reason: str = ""


class AppliedChange(CamelModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class RejectedField(CamelModel):
    field: str
    attempted_value: Any = None
    reason: str


class PatchResult(CamelModel):
    """Outcome of applying a batch of field updates to one deal."""
    success: bool
    deal: Optional[Deal] = None
    applied: list[AppliedChange] = Field(default_factory=list)
    rejected: list[RejectedField] = Field(default_factory=list)
    normalization_changes: list[NormalizationChange] = Field(default_factory=list)
    error: Optional[str] = None


# ─── Daily Brief ────────────────────────────────────────────

class DealAction(CamelModel):
    """A deal the owner should act on today."""
    deal_id: str
    deal_name: str
    account_name: str
    owner: Optional[str] = None
    stage: DealStage
    amount: Optional[Money] = None
    next_step: Optional[str] = None
    next_step_due_date: Optional[date] = None
    last_contacted_date: Optional[date] = None
    days_overdue: Optional[int] = None
    days_since_contact: Optional[int] = None
    risk_reason: Optional[str] = None


class DailyBrief(CamelModel):
    reference_date: date
    generated_at: datetime = Field(default_factory=_utcnow)
    due_today: list[DealAction] = Field(default_factory=list)
    overdue: list[DealAction] = Field(default_factory=list)
    no_contact_deals: list[DealAction] = Field(default_factory=list)
    high_value_at_risk: list[DealAction] = Field(default_factory=list)
    total_action_items: int = 0
    total_at_risk_value: Money = Decimal("0")


# ─── Hygiene ────────────────────────────────────────────────

class HygieneIssueType(str, Enum):
    MISSING_AMOUNT = "MissingAmount"
    MISSING_CLOSE_DATE = "MissingCloseDate"
    PROBABILITY_STAGE_MISMATCH = "ProbabilityStageMismatch"
    MISSING_POSTCODE = "MissingPostcode"
    MISSING_CONTACT_INFO = "MissingContactInfo"
    MISSING_OWNER = "MissingOwner"
    MISSING_NEXT_STEP = "MissingNextStep"
    MISSING_NEXT_STEP_DUE_DATE = "MissingNextStepDueDate"
    STALE_LAST_CONTACT = "StaleLastContact"


class IssueSeverity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return list(IssueSeverity).index(self)


class HygieneIssue(CamelModel):
    deal_id: str
    deal_name: str
    account_name: str
    owner: Optional[str] = None
    stage: DealStage
    amount: Optional[Money] = None
    issue_type: HygieneIssueType
    severity: IssueSeverity
    description: str


class HygieneReport(CamelModel):
    reference_date: date
    generated_at: datetime = Field(default_factory=_utcnow)
    total_deals: int = 0
    deals_with_issues: int = 0
    health_score: float = 100.0
    issues: list[HygieneIssue] = Field(default_factory=list)
    issues_by_type: dict[str, int] = Field(default_factory=dict)
    issues_by_severity: dict[str, int] = Field(default_factory=dict)


# ─── Forecast ───────────────────────────────────────────────

class StageBreakdown(CamelModel):
    stage: DealStage
    deal_count: int = 0
    total_amount: Money = Decimal("0")
    weighted_amount: Money = Decimal("0")
    percentage: float = 0.0


class OwnerBreakdown(CamelModel):
    owner: str
    deal_count: int = 0
    total_amount: Money = Decimal("0")
    weighted_amount: Money = Decimal("0")
    closed_won: int = 0
    closed_lost: int = 0
    win_rate: float = 0.0


class MonthBreakdown(CamelModel):
    year: int
    month: int
    month_name: str
    deal_count: int = 0
    total_amount: Money = Decimal("0")
    weighted_amount: Money = Decimal("0")


class RegionBreakdown(CamelModel):
    region: str
    deal_count: int = 0
    total_amount: Money = Decimal("0")
    weighted_amount: Money = Decimal("0")


class ProductBreakdown(CamelModel):
    product_line: str
    deal_count: int = 0
    total_amount: Money = Decimal("0")
    weighted_amount: Money = Decimal("0")


class ForecastSnapshot(CamelModel):
    reference_date: date
    generated_at: datetime = Field(default_factory=_utcnow)
    total_deals: int = 0
    open_deals: int = 0
    total_pipeline: Money = Decimal("0")
    weighted_pipeline: Money = Decimal("0")
    by_stage: list[StageBreakdown] = Field(default_factory=list)
    by_owner: list[OwnerBreakdown] = Field(default_factory=list)
    by_close_month: list[MonthBreakdown] = Field(default_factory=list)
    by_region: list[RegionBreakdown] = Field(default_factory=list)
    by_product: list[ProductBreakdown] = Field(default_factory=list)


# ─── Promoter Dashboard ─────────────────────────────────────

class DealHealthStatus(str, Enum):
    HEALTHY = "Healthy"
    AT_RISK = "AtRisk"
    STALLED = "Stalled"
    CRITICAL = "Critical"
    WON = "Won"
    LOST = "Lost"


class PromoterActionType(str, Enum):
    CHECK_IN = "CheckIn"
    PROVIDE_CONTEXT = "ProvideContext"
    MAKE_INTRODUCTION = "MakeIntroduction"
    PROVIDE_REFERENCE = "ProvideReference"
    SHARE_CONTENT = "ShareContent"
    FOLLOW_UP_WITH_LEAD = "FollowUpWithLead"
    ESCALATE_INTERNAL = "EscalateInternal"
    CELEBRATE_WIN = "CelebrateWin"
    REVIEW_LOSS = "ReviewLoss"


class ActionPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @property
    def rank(self) -> int:
        return list(ActionPriority).index(self)


class CommissionStatus(str, Enum):
    PROJECTED = "Projected"
    PENDING = "Pending"
    PROCESSING = "Processing"
    PAID = "Paid"


class PromoterSummary(CamelModel):
    total_referrals: int = 0
    active_deals: int = 0
    closed_won: int = 0
    closed_lost: int = 0
    conversion_rate: float = 0.0
    total_pipeline_value: Money = Decimal("0")
    weighted_pipeline_value: Money = Decimal("0")
    total_won_value: Money = Decimal("0")
    average_deal_value: Money = Decimal("0")
    deals_closing_this_month: int = 0
    value_closing_this_month: Money = Decimal("0")


class PromoterStageBreakdown(CamelModel):
    stage: DealStage
    deal_count: int = 0
    total_value: Money = Decimal("0")
    weighted_value: Money = Decimal("0")
    potential_commission: Money = Decimal("0")
    average_age_days: int = 0


class PromoterAction(CamelModel):
    deal_id: str
    deal_name: str
    account_name: str
    owner: Optional[str] = None
    stage: DealStage
    amount: Optional[Money] = None
    potential_commission: Optional[Money] = None
    health_status: DealHealthStatus
    action_type: PromoterActionType
    priority: ActionPriority
    recommendation: str
    reason: str


class PromoterDealStatus(CamelModel):
    deal_id: str
    deal_name: str
    account_name: str
    owner: Optional[str] = None
    stage: DealStage
    amount: Optional[Money] = None
    potential_commission: Optional[Money] = None
    close_date: Optional[date] = None
    last_contacted_date: Optional[date] = None
    next_step: Optional[str] = None
    next_step_due_date: Optional[date] = None
    days_in_pipeline: int = 0
    days_since_contact: Optional[int] = None
    health_status: DealHealthStatus
    status_reason: str = ""


class CommissionDetail(CamelModel):
    deal_id: str
    deal_name: str
    deal_value: Money = Decimal("0")
    commission_rate: Money = Decimal("0")
    commission_amount: Money = Decimal("0")
    closed_date: Optional[date] = None
    paid_date: Optional[date] = None
    status: CommissionStatus


class PromoterCommissionSummary(CamelModel):
    total_earned: Money = Decimal("0")
    total_paid: Money = Decimal("0")
    pending_payment: Money = Decimal("0")
    projected_from_pipeline: Money = Decimal("0")
    projected_this_month: Money = Decimal("0")
    projected_this_quarter: Money = Decimal("0")
    pending_commissions: list[CommissionDetail] = Field(default_factory=list)
    recent_payments: list[CommissionDetail] = Field(default_factory=list)


class PromoterDashboard(CamelModel):
    reference_date: date
    generated_at: datetime = Field(default_factory=_utcnow)
    promoter_id: Optional[str] = None
    promoter_name: str = ""
    promo_code: Optional[str] = None
    tier: PromoterTier
    commission_rate: Money
    summary: PromoterSummary = Field(default_factory=PromoterSummary)
    by_stage: list[PromoterStageBreakdown] = Field(default_factory=list)
    recommended_actions: list[PromoterAction] = Field(default_factory=list)
    deals_needing_attention: list[PromoterDealStatus] = Field(default_factory=list)
    commission_summary: PromoterCommissionSummary = Field(
        default_factory=PromoterCommissionSummary,
    )
    recent_deals: list[PromoterDealStatus] = Field(default_factory=list)


# ─── Stats ──────────────────────────────────────────────────

class PipelineStats(CamelModel):
    total_deals: int = 0
    open_deals: int = 0
    closed_won_deals: int = 0
    closed_lost_deals: int = 0
    total_pipeline: Money = Decimal("0")
    weighted_pipeline: Money = Decimal("0")
    closed_won_value: Money = Decimal("0")
    average_deal_size: Money = Decimal("0")
    owners: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
