"""
Deal Desk — Deal Pydantic Models
==================================

Core pipeline entities: deals, stages, filters, and referral promoters.
Attributes are snake_case; the wire format (JSON, sheet headers) is camelCase.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

# Decimal in Python, plain number in JSON
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]
NonNegativeMoney = Annotated[
    Decimal,
    Field(ge=0),
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ─── Deal Stage ─────────────────────────────────────────────

class DealStage(str, Enum):
    """Discrete pipeline position of a deal."""
    LEAD = "Lead"
    QUALIFIED = "Qualified"
    DISCOVERY = "Discovery"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "ClosedWon"
    CLOSED_LOST = "ClosedLost"
    ON_HOLD = "OnHold"
    OTHER = "Other"

    @property
    def display(self) -> str:
        return _STAGE_DISPLAY.get(self, self.value)

    @property
    def default_probability(self) -> int:
        return _STAGE_DEFAULT_PROBABILITY[self]

    @property
    def is_closed(self) -> bool:
        return self in (DealStage.CLOSED_WON, DealStage.CLOSED_LOST)

    @property
    def order(self) -> int:
        return _STAGE_ORDER[self]

    @classmethod
    def parse(cls, value: Any) -> "DealStage":
        """
        Parse free text into a stage.

        Case, spaces, hyphens and underscores are ignored. Blank input is a
        new Lead; anything unrecognised becomes Other.
        """
        if isinstance(value, DealStage):
            return value
        text = "" if value is None else str(value)
        key = text.strip().lower()
        for ch in (" ", "-", "_"):
            key = key.replace(ch, "")
        if not key:
            return cls.LEAD
        return _STAGE_ALIASES.get(key, cls.OTHER)


_STAGE_DISPLAY = {
    DealStage.CLOSED_WON: "Closed Won",
    DealStage.CLOSED_LOST: "Closed Lost",
    DealStage.ON_HOLD: "On Hold",
}

_STAGE_DEFAULT_PROBABILITY = {
    DealStage.LEAD: 10,
    DealStage.QUALIFIED: 20,
    DealStage.DISCOVERY: 40,
    DealStage.PROPOSAL: 60,
    DealStage.NEGOTIATION: 80,
    DealStage.CLOSED_WON: 100,
    DealStage.CLOSED_LOST: 0,
    DealStage.ON_HOLD: 10,
    DealStage.OTHER: 10,
}

_STAGE_ORDER = {stage: idx for idx, stage in enumerate(DealStage)}

_STAGE_ALIASES = {stage.value.lower(): stage for stage in DealStage}
_STAGE_ALIASES.update({
    "won": DealStage.CLOSED_WON,
    "lost": DealStage.CLOSED_LOST,
    "hold": DealStage.ON_HOLD,
})

DATE_FIELDS = (
    "created_date",
    "last_contacted_date",
    "next_step_due_date",
    "close_date",
    "last_service_date",
    "next_service_due_date",
    "commission_paid_date",
)


def split_tags(value: Any) -> list[str]:
    """Accept a list or a comma-separated string of tags."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(v) for v in value]


# ─── Deal ───────────────────────────────────────────────────

class Deal(CamelModel):
    """A sales opportunity."""
    # Identity
    deal_id: str = ""
    order_no: Optional[str] = None
    user_id: Optional[str] = None

    # Party
    account_name: str = ""
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    # Location
    postcode: Optional[str] = None
    postcode_area: Optional[str] = None
    installation_location: Optional[str] = None
    region: Optional[str] = None
    map_link: Optional[str] = None

    # Classification
    lead_source: Optional[str] = None
    product_line: Optional[str] = None
    deal_name: str = ""

    # Stage & value
    stage: DealStage = DealStage.LEAD
    probability: int = Field(0, ge=0, le=100)
    amount_gbp: Optional[NonNegativeMoney] = Field(None, alias="amountGBP")

    # Ownership & timeline
    owner: Optional[str] = None
    created_date: Optional[date] = None
    last_contacted_date: Optional[date] = None
    next_step: Optional[str] = None
    next_step_due_date: Optional[date] = None
    close_date: Optional[date] = None

    # Service
    service_plan: Optional[str] = None
    last_service_date: Optional[date] = None
    next_service_due_date: Optional[date] = None

    comments: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    # Referral
    promoter_id: Optional[str] = None
    promo_code: Optional[str] = None
    promoter_commission: Optional[Money] = None
    commission_paid: bool = False
    commission_paid_date: Optional[date] = None

    @field_validator("stage", mode="before")
    @classmethod
    def _coerce_stage(cls, value: Any) -> DealStage:
        return DealStage.parse(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        return split_tags(value)

    @field_validator(*DATE_FIELDS, mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @computed_field(alias="weightedAmountGBP")
    @property
    def weighted_amount_gbp(self) -> Optional[Money]:
        if self.amount_gbp is None:
            return None
        return self.amount_gbp * self.probability / 100

    @property
    def is_open(self) -> bool:
        return not self.stage.is_closed


# ─── Filter ─────────────────────────────────────────────────

class DealFilter(CamelModel):
    """Multi-criteria deal query. Unset criteria never exclude."""
    model_config = ConfigDict(extra="forbid")

    search_text: Optional[str] = None
    stages: Optional[list[DealStage]] = None
    owner: Optional[str] = None
    region: Optional[str] = None
    product_line: Optional[str] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    close_date_from: Optional[date] = None
    close_date_to: Optional[date] = None
    next_step_due_before: Optional[date] = None
    has_overdue_next_step: Optional[bool] = None
    no_contact_days: Optional[int] = Field(None, ge=0)
    tags: Optional[list[str]] = None
    promoter_id: Optional[str] = None
    promo_code: Optional[str] = None
    has_promoter: Optional[bool] = None
    commission_pending: Optional[bool] = None

    @field_validator("stages", mode="before")
    @classmethod
    def _coerce_stages(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = [v for v in value.split(",") if v.strip()]
        return [DealStage.parse(v) for v in value]

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return None
        return split_tags(value)


# ─── Promoter ───────────────────────────────────────────────

class PromoterTier(str, Enum):
    """Referral partner tier; fixes commission rate and referral minimum."""
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"
    DIAMOND = "Diamond"

    @property
    def commission_rate(self) -> Decimal:
        return _TIER_COMMISSION_RATE[self]

    @property
    def min_referrals(self) -> int:
        return _TIER_MIN_REFERRALS[self]

    @classmethod
    def parse(cls, value: Any) -> "PromoterTier":
        if isinstance(value, PromoterTier):
            return value
        text = str(value or "").strip().lower()
        for tier in cls:
            if tier.value.lower() == text:
                return tier
        raise ValueError(f"Unknown promoter tier: {value}")

    @classmethod
    def for_referrals(cls, referrals: int) -> "PromoterTier":
        """Highest tier whose referral minimum has been reached."""
        best = cls.BRONZE
        for tier in cls:
            if referrals >= tier.min_referrals:
                best = tier
        return best


_TIER_COMMISSION_RATE = {
    PromoterTier.BRONZE: Decimal("10"),
    PromoterTier.SILVER: Decimal("12"),
    PromoterTier.GOLD: Decimal("15"),
    PromoterTier.PLATINUM: Decimal("18"),
    PromoterTier.DIAMOND: Decimal("20"),
}

_TIER_MIN_REFERRALS = {
    PromoterTier.BRONZE: 0,
    PromoterTier.SILVER: 10,
    PromoterTier.GOLD: 25,
    PromoterTier.PLATINUM: 50,
    PromoterTier.DIAMOND: 100,
}


class PromoterIdentity(CamelModel):
    """Selects the deals attributed to one promoter by id or promo code."""
    promoter_id: Optional[str] = None
    promo_code: Optional[str] = None
    name: str = ""

    def owns(self, deal: Deal) -> bool:
        if self.promoter_id and deal.promoter_id:
            if self.promoter_id.strip().lower() == deal.promoter_id.strip().lower():
                return True
        if self.promo_code and deal.promo_code:
            if self.promo_code.strip().lower() == deal.promo_code.strip().lower():
                return True
        return False
