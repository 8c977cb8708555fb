"""
Deal Desk — Synthetic Deal Generator
======================================

Seeded demo data with a realistic stage mix, UK postcodes, per-product
amount ranges and a deliberate share of hygiene gaps (missing amounts,
contact dates and next steps) so every report has something to show.

Usage:
    from scripts.pipeline.synthetic import SyntheticDealGenerator
    deals = SyntheticDealGenerator(lookups, seed=42).generate(100, date.today())
"""
from __future__ import annotations

import random
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from models.deal_models import Deal, DealStage
from scripts.lib.logger import setup_logger
from scripts.pipeline.ids import SeededDealIdGenerator
from scripts.pipeline.lookups import LookupTables
from scripts.pipeline.normalizer import DealNormalizer
from scripts.pipeline.settings import PipelineSettings

logger = setup_logger(__name__)

# Cumulative stage roll thresholds
STAGE_ROLLS = [
    (0.20, DealStage.LEAD),
    (0.35, DealStage.QUALIFIED),
    (0.45, DealStage.DISCOVERY),
    (0.60, DealStage.PROPOSAL),
    (0.75, DealStage.NEGOTIATION),
    (0.85, DealStage.CLOSED_WON),
    (0.95, DealStage.CLOSED_LOST),
]

OWNERS = ["James Wilson", "Sarah Chen", "Michael Brown", "Emma Taylor", "David Lee"]

COMPANY_PREFIXES = ["Alpha", "Beta", "Global", "Premier", "Elite", "Apex", "Summit", "Prime", "Nova", "Vertex"]
COMPANY_SUFFIXES = ["Solutions", "Systems", "Technologies", "Group", "Industries", "Services", "Corp", "Ltd", "Holdings", "Partners"]

FIRST_NAMES = ["John", "Jane", "Robert", "Emily", "William", "Sarah", "James", "Emma",
               "Michael", "Olivia", "David", "Sophie", "Thomas", "Charlotte", "Richard", "Amelia"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
              "Wilson", "Anderson", "Taylor", "Thomas", "Moore", "Martin", "Jackson", "Thompson"]

POSTCODE_DISTRICTS = ["SW1", "EC2", "W1", "NW1", "SE1", "M1", "B1", "LS1", "G1", "EH1", "CF1", "BS1", "BN1", "CB1", "OX1"]

DEAL_TYPES = ["Implementation", "Deployment", "Upgrade", "Migration", "Integration", "Expansion", "Renewal"]

AMOUNT_RANGES = {
    "Enterprise Software": (50_000, 250_000),
    "Professional Services": (20_000, 100_000),
    "SaaS Subscription": (10_000, 60_000),
    "Hardware": (15_000, 80_000),
    "Support & Maintenance": (5_000, 30_000),
    "Training": (5_000, 25_000),
    "Consulting": (25_000, 150_000),
}
DEFAULT_AMOUNT_RANGE = (10_000, 50_000)

NEXT_STEPS = {
    DealStage.LEAD: ["Initial call", "Send introduction email", "Research company", "Schedule discovery call"],
    DealStage.QUALIFIED: ["Discovery meeting", "Needs assessment", "Demo scheduling", "Stakeholder mapping"],
    DealStage.DISCOVERY: ["Technical demo", "Solution workshop", "ROI analysis", "Reference call"],
    DealStage.PROPOSAL: ["Proposal review call", "Address objections", "Executive presentation", "Contract draft"],
    DealStage.NEGOTIATION: ["Final terms review", "Legal review", "Procurement meeting", "Sign-off meeting"],
}
GENERIC_NEXT_STEPS = ["Follow up", "Check in", "Status update"]

PROMOTERS = [
    ("P-001", "PARTNER10"),
    ("P-002", "REFER2024"),
    ("P-003", "GROWTHNET"),
]

# Hygiene gap rates
MISSING_AMOUNT_RATE = 0.08
MISSING_CONTACT_RATE = 0.12
MISSING_NEXT_STEP_RATE = 0.10
PROMOTER_RATE = 0.30


def _one_year_later(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # 29 Feb
        return day + timedelta(days=365)


class SyntheticDealGenerator:
    """Seeded generator of normalized demo deals."""

    def __init__(self, lookups: LookupTables = None, seed: Optional[int] = None,
                 settings: PipelineSettings = None):
        self.lookups = lookups or LookupTables.default()
        self.settings = settings or PipelineSettings()
        self.seed = seed if seed is not None else random.randrange(2**31)
        self._rng = random.Random(self.seed)
        self._normalizer = DealNormalizer(self.lookups, SeededDealIdGenerator(self.seed))

    def generate(self, count: int, reference_date: date) -> List[Deal]:
        if count < 0:
            raise ValueError("count must not be negative")
        deals = []
        for _ in range(count):
            deal, _ = self._normalizer.normalize(self._raw_deal(reference_date), reference_date)
            deals.append(deal)
        logger.info("Generated %d synthetic deals (seed %d)", len(deals), self.seed)
        return deals

    # --- Pieces ---

    def _chance(self, rate: float) -> bool:
        return self._rng.random() < rate

    def _pick(self, items):
        return items[self._rng.randrange(len(items))]

    def _stage(self) -> DealStage:
        roll = self._rng.random()
        for threshold, stage in STAGE_ROLLS:
            if roll < threshold:
                return stage
        return DealStage.ON_HOLD

    def _company(self) -> str:
        return f"{self._pick(COMPANY_PREFIXES)} {self._pick(COMPANY_SUFFIXES)}"

    def _person(self) -> str:
        return f"{self._pick(FIRST_NAMES)} {self._pick(LAST_NAMES)}"

    def _postcode(self) -> str:
        letters = "".join(chr(ord("A") + self._rng.randrange(26)) for _ in range(2))
        return f"{self._pick(POSTCODE_DISTRICTS)} {self._rng.randint(1, 8)}{letters}"

    def _phone(self) -> str:
        return (f"0{self._rng.randint(100, 998)} {self._rng.randint(100, 998)} "
                f"{self._rng.randint(1000, 9998)}")

    def _amount(self, product_line: str, stage: DealStage) -> Decimal:
        low, high = AMOUNT_RANGES.get(product_line, DEFAULT_AMOUNT_RANGE)
        amount = self._rng.randint(low, high - 1)
        # Later-stage deals carry rounded quotes
        if stage.order >= DealStage.PROPOSAL.order:
            amount = round(amount / 1000) * 1000
        return Decimal(amount)

    def _tags(self, stage: DealStage, amount: Optional[Decimal]) -> List[str]:
        tags = []
        if amount is not None and amount >= 100_000:
            tags.append("high-value")
        elif amount is not None and amount >= 50_000:
            tags.append("mid-value")
        if self._chance(0.20):
            tags.append("strategic")
        if self._chance(0.15):
            tags.append("expansion")
        if self._chance(0.10):
            tags.append("competitive")
        if stage == DealStage.NEGOTIATION and self._chance(0.30):
            tags.append("closing-soon")
        return tags

    def _raw_deal(self, reference_date: date) -> Deal:
        stage = self._stage()
        product_line = self._pick(self.settings.product_lines)
        created = reference_date - timedelta(days=self._rng.randint(1, 179))
        account = self._company()
        contact = self._person()
        domain = account.lower().replace(" ", "")
        for word in ("ltd", "corp", "holdings", "partners"):
            domain = domain.replace(word, "")

        deal = Deal(
            account_name=account,
            contact_name=contact,
            email=f"{contact.lower().replace(' ', '.')}@{domain}.co.uk",
            phone=self._phone(),
            postcode=self._postcode(),
            lead_source=self._pick(self.settings.lead_sources),
            product_line=product_line,
            deal_name=f"{product_line} {self._pick(DEAL_TYPES)}",
            stage=stage,
            owner=self._pick(OWNERS),
            created_date=created,
        )

        if not self._chance(MISSING_AMOUNT_RATE):
            deal.amount_gbp = self._amount(product_line, stage)

        if not self._chance(MISSING_CONTACT_RATE):
            span = max((reference_date - created).days, 1)
            deal.last_contacted_date = created + timedelta(days=self._rng.randrange(span))

        if stage.is_closed:
            deal.close_date = created + timedelta(
                days=self._rng.randint(14, 89) if stage == DealStage.CLOSED_WON
                else self._rng.randint(7, 59)
            )
            if stage == DealStage.CLOSED_WON:
                deal.service_plan = self._pick(self.settings.service_plans)
                deal.last_service_date = deal.close_date
                deal.next_service_due_date = _one_year_later(deal.close_date)
        else:
            deal.close_date = reference_date + timedelta(days=self._rng.randint(-30, 119))
            if not self._chance(MISSING_NEXT_STEP_RATE):
                deal.next_step = self._pick(NEXT_STEPS.get(stage, GENERIC_NEXT_STEPS))
                deal.next_step_due_date = reference_date + timedelta(days=self._rng.randint(-14, 20))

        deal.tags = self._tags(stage, deal.amount_gbp)

        if self._chance(PROMOTER_RATE):
            deal.promoter_id, deal.promo_code = self._pick(PROMOTERS)
            deal.lead_source = "Referral"
            if stage == DealStage.CLOSED_WON and self._chance(0.5):
                deal.commission_paid = True
                deal.commission_paid_date = deal.close_date + timedelta(days=30)

        return deal
