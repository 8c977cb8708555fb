"""
Deal Desk — Lookup Tables
===========================

Postcode-area → region mapping and stage → default-probability mapping.
Loaded once from configuration and read-only while reports run.

Usage:
    from scripts.pipeline.lookups import LookupTables, extract_postcode_area
    lookups = LookupTables.default()
    lookups.region_for_postcode("sw1a 1aa")   # "London"
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from models.deal_models import DealStage
from scripts.lib.errors import ConfigError

# ---------------------------------------------------------------------------
# Standard UK postcode areas by region
# ---------------------------------------------------------------------------
UK_REGIONS: Dict[str, List[str]] = {
    "London": ["E", "EC", "N", "NW", "SE", "SW", "W", "WC"],
    "South East": ["BN", "CT", "GU", "ME", "OX", "PO", "RG", "RH", "SL", "SO", "TN"],
    "South West": ["BA", "BH", "BS", "DT", "EX", "GL", "PL", "SN", "SP", "TA", "TQ", "TR"],
    "East of England": ["AL", "CB", "CM", "CO", "EN", "HP", "IP", "LU", "NR", "PE", "SG", "SS", "WD"],
    "West Midlands": ["B", "CV", "DY", "HR", "ST", "TF", "WR", "WS", "WV"],
    "East Midlands": ["DE", "DN", "LE", "LN", "NG", "NN"],
    "Yorkshire": ["BD", "HD", "HG", "HU", "HX", "LS", "S", "WF", "YO"],
    "North West": ["BB", "BL", "CA", "CH", "CW", "FY", "L", "LA", "M", "OL", "PR", "SK", "WA", "WN"],
    "North East": ["DH", "DL", "NE", "SR", "TS"],
    "Wales": ["CF", "LD", "LL", "NP", "SA", "SY"],
    "Scotland": ["AB", "DD", "DG", "EH", "FK", "G", "HS", "IV", "KA", "KW", "KY", "ML", "PA", "PH", "TD", "ZE"],
    "Northern Ireland": ["BT"],
}


def extract_postcode_area(postcode: Optional[str]) -> str:
    """Leading run of letters of a postcode, uppercased with spaces removed."""
    if not postcode:
        return ""
    cleaned = postcode.strip().upper().replace(" ", "")
    area = []
    for ch in cleaned:
        if not ch.isalpha():
            break
        area.append(ch)
    return "".join(area)


class LookupTables:
    """Region and stage-probability lookups."""

    def __init__(
        self,
        area_regions: Mapping[str, str] = None,
        stage_probabilities: Mapping[Any, int] = None,
    ):
        self._area_regions: Dict[str, str] = {
            area.strip().upper(): region for area, region in (area_regions or {}).items()
        }
        self._stage_probabilities: Dict[DealStage, int] = {}
        for stage, probability in (stage_probabilities or {}).items():
            self._stage_probabilities[DealStage.parse(stage)] = int(probability)

    @classmethod
    def default(cls) -> "LookupTables":
        return cls(area_regions=_invert(UK_REGIONS))

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "LookupTables":
        """
        Build lookups from a config mapping.

        ``regions`` may be given region → [areas] or area → region. When
        ``regions`` is absent the UK table is used. ``stage_probabilities``
        maps stage names to override probabilities.
        """
        config = config or {}
        regions = config.get("regions")
        if regions is None:
            area_regions = _invert(UK_REGIONS)
        elif isinstance(regions, Mapping):
            area_regions = {}
            for key, value in regions.items():
                if isinstance(value, (list, tuple)):
                    area_regions.update({area: key for area in value})
                elif isinstance(value, str):
                    area_regions[key] = value
                else:
                    raise ConfigError(f"Invalid region entry for {key!r}: {value!r}")
        else:
            raise ConfigError("lookups.regions must be a mapping")

        overrides = config.get("stage_probabilities") or {}
        if not isinstance(overrides, Mapping):
            raise ConfigError("lookups.stage_probabilities must be a mapping")
        for stage, probability in overrides.items():
            if not isinstance(probability, int) or not 0 <= probability <= 100:
                raise ConfigError(
                    f"Stage probability for {stage!r} must be an integer 0-100, got {probability!r}"
                )
        return cls(area_regions=area_regions, stage_probabilities=overrides)

    @property
    def regions(self) -> List[str]:
        seen: List[str] = []
        for region in self._area_regions.values():
            if region not in seen:
                seen.append(region)
        return seen

    def region_for_area(self, area: Optional[str]) -> Optional[str]:
        if not area or not area.strip():
            return None
        return self._area_regions.get(area.strip().upper())

    def region_for_postcode(self, postcode: Optional[str]) -> Optional[str]:
        return self.region_for_area(extract_postcode_area(postcode))

    def probability_for_stage(self, stage: Any) -> int:
        stage = DealStage.parse(stage)
        if stage in self._stage_probabilities:
            return self._stage_probabilities[stage]
        return stage.default_probability


def _invert(regions: Mapping[str, List[str]]) -> Dict[str, str]:
    return {area: region for region, areas in regions.items() for area in areas}
