"""
Deal Desk — Patch Application
===============================

Validates loosely typed field updates (string, number, boolean, null, list)
against a per-field parser table and applies the accepted ones. Each field
is judged on its own: a bad value is rejected with a reason while the rest
of the batch still applies.

Usage:
    from scripts.pipeline.patching import apply_patch
    result = apply_patch(deal, {"amountGBP": "£12,500", "stage": "Proposal"},
                         normalizer, date.today())
"""
from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from models.deal_models import Deal, DealStage, split_tags
from models.report_models import (
    AppliedChange,
    NormalizationChange,
    PatchResult,
    RejectedField,
)
from scripts.lib.logger import setup_logger
from scripts.pipeline.normalizer import (
    DealNormalizer,
    parse_amount,
    parse_date,
    parse_probability_strict,
)

logger = setup_logger(__name__)

_TRUE_WORDS = {"true", "yes", "y", "1"}
_FALSE_WORDS = {"false", "no", "n", "0"}


# ---------------------------------------------------------------------------
# Field parsers: raw value -> typed value, or ValueError(reason)
# ---------------------------------------------------------------------------

def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool) or isinstance(value, (list, dict)):
        raise ValueError("Expected a text value")
    text = str(value).strip()
    return text or None


def _required_text(label: str) -> Callable[[Any], str]:
    def parser(value: Any) -> str:
        text = _optional_text(value)
        if not text:
            raise ValueError(f"{label} cannot be empty")
        return text
    return parser


def _stage(value: Any) -> DealStage:
    if value is not None and not isinstance(value, str):
        raise ValueError("Invalid stage value")
    return DealStage.parse(value)


def _probability(value: Any) -> int:
    # Cleared probability falls back to the stage default on normalization
    if value is None:
        return 0
    parsed = parse_probability_strict(value)
    if parsed is None:
        raise ValueError("Invalid probability value")
    if not 0 <= parsed <= 100:
        raise ValueError("Probability must be between 0 and 100")
    return parsed


def _money(label: str) -> Callable[[Any], Any]:
    def parser(value: Any):
        if value is None:
            return None
        amount = parse_amount(value)
        if amount is None:
            raise ValueError(f"Invalid {label.lower()} value")
        if amount < 0:
            raise ValueError(f"{label} cannot be negative")
        return amount
    return parser


def _date(value: Any) -> Optional[date]:
    if value is None:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError("Invalid date value")
    return parsed


def _tags(value: Any) -> List[str]:
    if value is not None and not isinstance(value, (str, list, tuple)):
        raise ValueError("Tags must be a list or comma-separated string")
    return split_tags(value)


def _boolean(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError("Invalid boolean value")


# wire name, attribute, parser
_FIELDS: List[Tuple[str, str, Callable[[Any], Any]]] = [
    ("orderNo", "order_no", _optional_text),
    ("userId", "user_id", _optional_text),
    ("accountName", "account_name", _required_text("AccountName")),
    ("contactName", "contact_name", _optional_text),
    ("email", "email", _optional_text),
    ("phone", "phone", _optional_text),
    ("postcode", "postcode", _optional_text),
    ("installationLocation", "installation_location", _optional_text),
    ("leadSource", "lead_source", _optional_text),
    ("productLine", "product_line", _optional_text),
    ("dealName", "deal_name", _required_text("DealName")),
    ("stage", "stage", _stage),
    ("probability", "probability", _probability),
    ("amountGBP", "amount_gbp", _money("Amount")),
    ("owner", "owner", _optional_text),
    ("createdDate", "created_date", _date),
    ("lastContactedDate", "last_contacted_date", _date),
    ("nextStep", "next_step", _optional_text),
    ("nextStepDueDate", "next_step_due_date", _date),
    ("closeDate", "close_date", _date),
    ("servicePlan", "service_plan", _optional_text),
    ("lastServiceDate", "last_service_date", _date),
    ("nextServiceDueDate", "next_service_due_date", _date),
    ("comments", "comments", _optional_text),
    ("tags", "tags", _tags),
    ("promoterId", "promoter_id", _optional_text),
    ("promoCode", "promo_code", _optional_text),
    ("promoterCommission", "promoter_commission", _money("Commission")),
    ("commissionPaid", "commission_paid", _boolean),
    ("commissionPaidDate", "commission_paid_date", _date),
]


def _field_key(name: str) -> str:
    return str(name).strip().lower().replace("_", "")


PATCHABLE_FIELDS: Dict[str, Tuple[str, str, Callable[[Any], Any]]] = {
    _field_key(wire): (wire, attr, parser) for wire, attr, parser in _FIELDS
}
PATCHABLE_FIELDS["amount"] = PATCHABLE_FIELDS["amountgbp"]

KEY_FIELD = "dealid"
DERIVED_FIELDS = {
    "postcodearea": "postcodeArea",
    "region": "region",
    "maplink": "mapLink",
    "weightedamountgbp": "weightedAmountGBP",
}


def validate_field(name: str, value: Any) -> Tuple[Optional[str], Any, Optional[str]]:
    """
    Validate one field update.

    Returns:
        (wire_name, typed_value, None) when accepted, or
        (None, None, reason) when rejected.
    """
    key = _field_key(name)
    if key == KEY_FIELD:
        return None, None, "DealId is the key and cannot be patched"
    if key in DERIVED_FIELDS:
        return None, None, f"{DERIVED_FIELDS[key]} is derived and cannot be patched"
    entry = PATCHABLE_FIELDS.get(key)
    if entry is None:
        return None, None, f"Unknown field: {name}"
    wire, _, parser = entry
    try:
        return wire, parser(value), None
    except ValueError as e:
        return None, None, str(e)


def apply_patch(
    deal: Deal,
    updates: Mapping[str, Any],
    normalizer: DealNormalizer,
    reference_date: date,
) -> PatchResult:
    """
    Apply ``updates`` to a copy of ``deal`` and re-normalize derived fields.

    The result sorts every field into applied, rejected, or (for derived
    values recomputed afterwards) normalization_changes. When nothing could
    be applied the original deal is returned untouched with success=False.
    """
    if deal is None:
        raise TypeError("deal must not be None")
    if updates is None:
        raise TypeError("updates must not be None")

    working = deal.model_copy(deep=True)
    applied: List[AppliedChange] = []
    rejected: List[RejectedField] = []
    postcode_touched = False

    for name, raw in updates.items():
        wire, value, reason = validate_field(name, raw)
        if reason is not None:
            rejected.append(RejectedField(field=str(name), attempted_value=raw, reason=reason))
            continue
        attr = PATCHABLE_FIELDS[_field_key(wire)][1]
        old = getattr(working, attr)
        setattr(working, attr, value)
        applied.append(AppliedChange(field=wire, old_value=old, new_value=value))
        if attr == "postcode":
            postcode_touched = True

    if not applied:
        logger.info("Patch on %s rejected: %d field(s)", deal.deal_id, len(rejected))
        return PatchResult(
            success=False,
            deal=deal.model_copy(deep=True),
            rejected=rejected,
            error="No valid fields to apply",
        )

    cleared: List[NormalizationChange] = []
    if postcode_touched and not working.postcode:
        for attr, wire in (("postcode_area", "postcodeArea"), ("map_link", "mapLink")):
            old = getattr(working, attr)
            if old is not None:
                setattr(working, attr, None)
                cleared.append(NormalizationChange(
                    field=wire, old_value=old, new_value=None, reason="Postcode cleared",
                ))

    normalized, changes = normalizer.normalize(
        working, reference_date, recompute_region=postcode_touched,
    )
    logger.info(
        "Patched %s: %d applied, %d rejected, %d derived",
        normalized.deal_id, len(applied), len(rejected), len(cleared) + len(changes),
    )
    return PatchResult(
        success=True,
        deal=normalized,
        applied=applied,
        rejected=rejected,
        normalization_changes=cleared + changes,
    )
