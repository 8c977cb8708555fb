"""
Deal Desk — Console Menu
==========================

Numbered text menu over the pipeline service for a human operator.
Input and output are injectable so the menu can be driven from tests.

Usage:
    python main.py console --data data/deals.csv
"""
from __future__ import annotations

import sys
from decimal import Decimal
from typing import Callable, List, Optional, TextIO

from models.deal_models import Deal, DealFilter, PromoterIdentity, PromoterTier
from models.report_models import DealAction
from scripts.lib.errors import DealDeskError
from scripts.lib.logger import setup_logger
from scripts.pipeline.service import PipelineService

logger = setup_logger(__name__)

DIVIDER = "-" * 60

MENU_ITEMS = [
    ("1", "Load deals from sheet"),
    ("2", "Save deals to sheet"),
    ("3", "Generate demo data"),
    ("4", "Daily brief"),
    ("5", "Hygiene report"),
    ("6", "Forecast snapshot"),
    ("7", "Search deals"),
    ("8", "View deal"),
    ("9", "Update deal field"),
    ("10", "Delete deal"),
    ("11", "Pipeline stats"),
    ("12", "Promoter dashboard"),
    ("0", "Exit"),
]


def format_gbp(amount: Optional[Decimal]) -> str:
    if amount is None:
        return "-"
    return f"£{amount:,.0f}"


class ConsoleMenu:
    """Interactive loop; every choice maps to one service operation."""

    def __init__(
        self,
        service: PipelineService,
        input_fn: Callable[[str], str] = input,
        output: TextIO = None,
    ):
        self.service = service
        self.input_fn = input_fn
        self.output = output or sys.stdout
        self._actions = {
            "1": self.load,
            "2": self.save,
            "3": self.generate,
            "4": self.show_daily_brief,
            "5": self.show_hygiene,
            "6": self.show_forecast,
            "7": self.search,
            "8": self.view_deal,
            "9": self.update_field,
            "10": self.delete_deal,
            "11": self.show_stats,
            "12": self.show_promoter_dashboard,
        }

    # --- I/O ---

    def say(self, text: str = "") -> None:
        self.output.write(text + "\n")

    def ask(self, prompt: str) -> str:
        return self.input_fn(prompt).strip()

    # --- Loop ---

    def run(self) -> None:
        self.say("Deal Desk")
        while True:
            self.say(DIVIDER)
            for key, label in MENU_ITEMS:
                self.say(f"{key:>3}. {label}")
            try:
                choice = self.ask("Select an option: ")
            except EOFError:
                break
            if choice == "0":
                break
            action = self._actions.get(choice)
            if action is None:
                self.say(f"Unknown option: {choice}")
                continue
            try:
                action()
            except EOFError:
                break
            except DealDeskError as e:
                logger.error("Menu action %s failed: %s", choice, e)
                self.say(f"Error: {e.message}")
        self.say("Goodbye")

    # --- Data ---

    def load(self) -> None:
        count = self.service.reload()
        self.say(f"Loaded {count} deals")

    def save(self) -> None:
        count = self.service.save()
        self.say(f"Saved {count} deals")

    def generate(self) -> None:
        raw = self.ask("How many deals? [100]: ") or "100"
        seed_raw = self.ask("Seed (blank for random): ")
        try:
            count = int(raw)
            seed = int(seed_raw) if seed_raw else None
        except ValueError:
            self.say("Count and seed must be whole numbers")
            return
        if count < 0:
            self.say("Count must not be negative")
            return
        generated = self.service.generate_synthetic(count, seed)
        self.say(f"Generated {generated} demo deals")

    # --- Reports ---

    def _action_lines(self, title: str, actions: List[DealAction]) -> None:
        self.say(f"{title} ({len(actions)})")
        for a in actions:
            note = f" | {a.risk_reason}" if a.risk_reason else ""
            self.say(f"  {a.deal_id}  {a.account_name}  {format_gbp(a.amount)}  {a.owner or '-'}{note}")

    def show_daily_brief(self) -> None:
        brief = self.service.daily_brief()
        self.say(f"Daily brief for {brief.reference_date.isoformat()}")
        self._action_lines("Due today", brief.due_today)
        self._action_lines("Overdue", brief.overdue)
        self._action_lines("No recent contact", brief.no_contact_deals)
        self._action_lines("High value at risk", brief.high_value_at_risk)
        self.say(f"Action items: {brief.total_action_items}, "
                 f"value at risk: {format_gbp(brief.total_at_risk_value)}")

    def show_hygiene(self) -> None:
        report = self.service.hygiene_report()
        self.say(f"Health score: {report.health_score}% "
                 f"({report.deals_with_issues} of {report.total_deals} deals with issues)")
        for issue in report.issues:
            self.say(f"  [{issue.severity.value}] {issue.deal_id} {issue.issue_type.value}: "
                     f"{issue.description}")

    def show_forecast(self) -> None:
        snapshot = self.service.forecast_snapshot()
        self.say(f"Open deals: {snapshot.open_deals} of {snapshot.total_deals}")
        self.say(f"Pipeline: {format_gbp(snapshot.total_pipeline)}  "
                 f"weighted: {format_gbp(snapshot.weighted_pipeline)}")
        for row in snapshot.by_stage:
            self.say(f"  {row.stage.display:<14} {row.deal_count:>4}  {format_gbp(row.total_amount)}")

    def show_stats(self) -> None:
        stats = self.service.stats()
        self.say(f"Total deals: {stats.total_deals}")
        self.say(f"Open / won / lost: {stats.open_deals} / {stats.closed_won_deals} / "
                 f"{stats.closed_lost_deals}")
        self.say(f"Pipeline: {format_gbp(stats.total_pipeline)}  "
                 f"weighted: {format_gbp(stats.weighted_pipeline)}  "
                 f"won: {format_gbp(stats.closed_won_value)}")
        self.say(f"Owners: {', '.join(stats.owners) or '-'}")

    def show_promoter_dashboard(self) -> None:
        code = self.ask("Promoter ID or promo code: ")
        if not code:
            self.say("A promoter ID or promo code is required")
            return
        try:
            tier = PromoterTier.parse(self.ask("Tier [Bronze]: ") or PromoterTier.BRONZE.value)
        except ValueError as e:
            self.say(str(e))
            return
        identity = PromoterIdentity(promoter_id=code, promo_code=code, name=code)
        dashboard = self.service.promoter_dashboard(identity, tier)
        summary = dashboard.summary
        self.say(f"{dashboard.promoter_name} ({dashboard.tier.value}, "
                 f"{dashboard.commission_rate}% commission)")
        self.say(f"Referrals: {summary.total_referrals}  active: {summary.active_deals}  "
                 f"won: {summary.closed_won}  conversion: {summary.conversion_rate}%")
        commission = dashboard.commission_summary
        self.say(f"Commission earned: {format_gbp(commission.total_earned)}  "
                 f"pending: {format_gbp(commission.pending_payment)}")
        for action in dashboard.recommended_actions:
            self.say(f"  [{action.priority.value}] {action.deal_id}: {action.recommendation}")

    # --- Deals ---

    def _print_deal(self, deal: Deal) -> None:
        self.say(f"{deal.deal_id}  {deal.deal_name}")
        self.say(f"  Account:   {deal.account_name}")
        self.say(f"  Stage:     {deal.stage.display} ({deal.probability}%)")
        self.say(f"  Amount:    {format_gbp(deal.amount_gbp)}")
        self.say(f"  Owner:     {deal.owner or '-'}")
        self.say(f"  Region:    {deal.region or '-'} ({deal.postcode or 'no postcode'})")
        self.say(f"  Next step: {deal.next_step or '-'} "
                 f"due {deal.next_step_due_date.isoformat() if deal.next_step_due_date else '-'}")

    def search(self) -> None:
        text = self.ask("Search text (blank for all): ")
        deal_filter = DealFilter(search_text=text) if text else None
        deals = self.service.list_deals(deal_filter)
        self.say(f"{len(deals)} deals found")
        for deal in deals:
            self.say(f"  {deal.deal_id}  {deal.account_name}  {deal.stage.display}  "
                     f"{format_gbp(deal.amount_gbp)}")

    def view_deal(self) -> None:
        deal_id = self.ask("Deal ID: ")
        deal = self.service.get_deal(deal_id)
        if deal is None:
            self.say(f"Deal not found: {deal_id}")
            return
        self._print_deal(deal)

    def update_field(self) -> None:
        deal_id = self.ask("Deal ID: ")
        field = self.ask("Field name: ")
        value = self.ask("New value: ")
        result = self.service.patch_deal(deal_id, {field: value})
        if result is None:
            self.say(f"Deal not found: {deal_id}")
            return
        for change in result.applied:
            self.say(f"Updated {change.field}: {change.old_value} -> {change.new_value}")
        for change in result.normalization_changes:
            self.say(f"Derived {change.field}: {change.new_value}")
        for rejected in result.rejected:
            self.say(f"Rejected {rejected.field}: {rejected.reason}")
        if not result.success:
            self.say(result.error or "Nothing was updated")

    def delete_deal(self) -> None:
        deal_id = self.ask("Deal ID: ")
        confirm = self.ask(f"Delete {deal_id}? [y/N]: ")
        if confirm.lower() not in ("y", "yes"):
            self.say("Cancelled")
            return
        if self.service.delete_deal(deal_id):
            self.say(f"Deleted {deal_id}")
        else:
            self.say(f"Deal not found: {deal_id}")
