"""
Deal Desk — Record Normalizer
===============================

Fills in identity and derived fields on a raw deal and reports every change
it made. Normalization is a pure function of (deal, reference_date): the
input is never mutated and running it twice yields no further changes.

The parse_* helpers are shared by the normalizer, patch validation and the
sheet store so all three read user input identically.

Usage:
    from scripts.pipeline.normalizer import DealNormalizer
    normalized, changes = DealNormalizer(lookups).normalize(deal, date.today())
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple
from urllib.parse import quote

from models.deal_models import Deal
from models.report_models import NormalizationChange
from scripts.lib.logger import setup_logger
from scripts.pipeline.ids import RandomDealIdGenerator
from scripts.pipeline.lookups import LookupTables, extract_postcode_area

logger = setup_logger(__name__)

MAP_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="

_CURRENCY_CHARS = ("£", "$", "€", ",")
_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d")


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse '£12,500', '1234.56' or a number into a Decimal; None if unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None

    text = value
    for ch in _CURRENCY_CHARS:
        text = text.replace(ch, "")
    text = "".join(text.split())
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_date(value: Any) -> Optional[date]:
    """Parse ISO or day/month/year text into a date; None if unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_probability_strict(value: Any) -> Optional[int]:
    """Parse '60', '60%' or 60 into an int without clamping; None if unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        value = str(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith("%"):
        text = text[:-1].strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if number.is_finite() and number == number.to_integral_value():
        return int(number)
    return None


def parse_probability(value: Any) -> int:
    """Parse a probability and clamp it to 0..100; unparseable input is 0."""
    parsed = parse_probability_strict(value)
    if parsed is None:
        return 0
    return max(0, min(100, parsed))


def normalize_tags(tags: List[str]) -> List[str]:
    """Trim, drop empties, dedupe case-insensitively keeping first-seen order."""
    seen = set()
    result = []
    for tag in tags or []:
        cleaned = str(tag).strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        result.append(cleaned)
    return result


def build_map_link(postcode: str, installation_location: Optional[str] = None) -> str:
    postcode = postcode.strip()
    location = (installation_location or "").strip()
    address = f"{location}, {postcode}" if location else postcode
    return MAP_SEARCH_URL + quote(address, safe="")


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class DealNormalizer:
    """Derives identity, location, probability and timestamp fields."""

    def __init__(self, lookups: LookupTables = None, id_generator=None):
        self.lookups = lookups or LookupTables.default()
        self.id_generator = id_generator or RandomDealIdGenerator()

    def normalize(
        self,
        deal: Deal,
        reference_date: date,
        recompute_region: bool = False,
    ) -> Tuple[Deal, List[NormalizationChange]]:
        """
        Return a normalized copy of ``deal`` and the changes applied.

        Args:
            deal: Raw deal; not modified.
            reference_date: "Today" for created-date stamping and id prefixes.
            recompute_region: Re-derive region even when one is set (postcode edits).
        """
        if deal is None:
            raise TypeError("deal must not be None")

        result = deal.model_copy(deep=True)
        changes: List[NormalizationChange] = []

        def _set(attr: str, wire: str, value: Any, reason: str) -> None:
            old = getattr(result, attr)
            if old == value:
                return
            setattr(result, attr, value)
            changes.append(NormalizationChange(
                field=wire, old_value=old, new_value=value, reason=reason,
            ))

        # 1. Identity
        if not result.deal_id.strip():
            _set("deal_id", "dealId", self.id_generator.next_id(reference_date),
                 "Generated missing deal id")

        has_postcode = bool(result.postcode and result.postcode.strip())

        # 2. Postcode area
        if has_postcode:
            _set("postcode_area", "postcodeArea", extract_postcode_area(result.postcode),
                 "Derived from postcode")

        # 3. Region
        if not (result.region and result.region.strip()) or recompute_region:
            region = self.lookups.region_for_area(result.postcode_area)
            if region:
                _set("region", "region", region, "Looked up from postcode area")
            elif recompute_region and result.postcode_area and result.region:
                _set("region", "region", None, "Postcode area has no known region")

        # 4. Map link
        if has_postcode:
            _set("map_link", "mapLink",
                 build_map_link(result.postcode, result.installation_location),
                 "Generated from postcode")

        # 5. Stage-default probability
        if result.probability == 0:
            _set("probability", "probability",
                 self.lookups.probability_for_stage(result.stage),
                 f"Default for stage {result.stage.display}")

        # 6. Created date
        if result.created_date is None:
            _set("created_date", "createdDate", reference_date, "Stamped with reference date")

        # 7. Tags
        _set("tags", "tags", normalize_tags(result.tags), "Trimmed and deduplicated")

        if changes:
            logger.debug(
                "Normalized %s: %s", result.deal_id, ", ".join(c.field for c in changes),
            )
        return result, changes
