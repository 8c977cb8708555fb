"""
Deal Desk — Pipeline Hygiene
==============================

Data-quality checks run per open deal. Missing or inconsistent fields are
report payload, never exceptions.

Checks:
    MissingAmount              amount null or zero                  Medium
    MissingCloseDate           Proposal/Negotiation without date    High
    ProbabilityStageMismatch   |prob - stage default| > tolerance   Medium/High
    MissingPostcode            no postcode                          Low
    MissingContactInfo         neither email nor phone              Medium
    MissingOwner               no owner                             High
    MissingNextStep            no next step                         Medium
    MissingNextStepDueDate     next step without due date           Low
    StaleLastContact           last contact older than warning days Low
"""
from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Iterable, List

from models.deal_models import Deal, DealStage
from models.report_models import (
    HygieneIssue,
    HygieneIssueType,
    HygieneReport,
    IssueSeverity,
)
from scripts.lib.logger import setup_logger
from scripts.pipeline.lookups import LookupTables
from scripts.pipeline.settings import PipelineSettings

logger = setup_logger(__name__)

_CLOSE_DATE_STAGES = (DealStage.PROPOSAL, DealStage.NEGOTIATION)


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _issue(deal: Deal, issue_type: HygieneIssueType, severity: IssueSeverity,
           description: str) -> HygieneIssue:
    return HygieneIssue(
        deal_id=deal.deal_id,
        deal_name=deal.deal_name,
        account_name=deal.account_name,
        owner=deal.owner,
        stage=deal.stage,
        amount=deal.amount_gbp,
        issue_type=issue_type,
        severity=severity,
        description=description,
    )


def inspect_deal(
    deal: Deal,
    reference_date: date,
    settings: PipelineSettings,
    lookups: LookupTables,
) -> List[HygieneIssue]:
    """All hygiene issues for one deal. Closed deals have none."""
    if deal.stage.is_closed:
        return []

    issues = []

    if deal.amount_gbp is None or deal.amount_gbp == 0:
        issues.append(_issue(
            deal, HygieneIssueType.MISSING_AMOUNT, IssueSeverity.MEDIUM,
            "Deal has no amount",
        ))

    if deal.stage in _CLOSE_DATE_STAGES and deal.close_date is None:
        issues.append(_issue(
            deal, HygieneIssueType.MISSING_CLOSE_DATE, IssueSeverity.HIGH,
            f"{deal.stage.display} deal has no close date",
        ))

    expected = lookups.probability_for_stage(deal.stage)
    deviation = abs(deal.probability - expected)
    if deviation > settings.mismatch_tolerance:
        severity = (
            IssueSeverity.HIGH if deviation > settings.mismatch_high_deviation
            else IssueSeverity.MEDIUM
        )
        issues.append(_issue(
            deal, HygieneIssueType.PROBABILITY_STAGE_MISMATCH, severity,
            f"Probability {deal.probability}% is far from the "
            f"{deal.stage.display} default of {expected}%",
        ))

    if _blank(deal.postcode):
        issues.append(_issue(
            deal, HygieneIssueType.MISSING_POSTCODE, IssueSeverity.LOW,
            "No postcode, region cannot be derived",
        ))

    if _blank(deal.email) and _blank(deal.phone):
        issues.append(_issue(
            deal, HygieneIssueType.MISSING_CONTACT_INFO, IssueSeverity.MEDIUM,
            "No email or phone number",
        ))

    if _blank(deal.owner):
        issues.append(_issue(
            deal, HygieneIssueType.MISSING_OWNER, IssueSeverity.HIGH,
            "Deal has no owner",
        ))

    if _blank(deal.next_step):
        issues.append(_issue(
            deal, HygieneIssueType.MISSING_NEXT_STEP, IssueSeverity.MEDIUM,
            "Open deal has no next step",
        ))
    elif deal.next_step_due_date is None:
        issues.append(_issue(
            deal, HygieneIssueType.MISSING_NEXT_STEP_DUE_DATE, IssueSeverity.LOW,
            "Next step has no due date",
        ))

    if deal.last_contacted_date is not None:
        days = (reference_date - deal.last_contacted_date).days
        if days >= settings.stale_contact_warning_days:
            issues.append(_issue(
                deal, HygieneIssueType.STALE_LAST_CONTACT, IssueSeverity.LOW,
                f"Last contact was {days} days ago",
            ))

    return issues


def health_score(total_deals: int, deals_with_issues: int) -> float:
    if total_deals == 0:
        return 100.0
    return round((1 - deals_with_issues / total_deals) * 100, 1)


def hygiene_report(
    deals: Iterable[Deal],
    reference_date: date,
    settings: PipelineSettings = None,
    lookups: LookupTables = None,
) -> HygieneReport:
    """Run every check over ``deals``; issues sort by severity then amount."""
    if deals is None:
        raise TypeError("deals must not be None")
    settings = settings or PipelineSettings()
    lookups = lookups or LookupTables.default()
    deals = list(deals)

    issues: List[HygieneIssue] = []
    flagged = 0
    for deal in deals:
        found = inspect_deal(deal, reference_date, settings, lookups)
        if found:
            flagged += 1
            issues.extend(found)

    issues.sort(key=lambda i: (-i.severity.rank, -(i.amount or 0)))

    report = HygieneReport(
        reference_date=reference_date,
        total_deals=len(deals),
        deals_with_issues=flagged,
        health_score=health_score(len(deals), flagged),
        issues=issues,
        issues_by_type=dict(Counter(i.issue_type.value for i in issues)),
        issues_by_severity=dict(Counter(i.severity.value for i in issues)),
    )
    logger.info(
        "Hygiene %s: %d issues across %d/%d deals (score %.1f)",
        reference_date, len(issues), flagged, len(deals), report.health_score,
    )
    return report
