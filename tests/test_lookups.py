"""Tests for postcode/region and stage/probability lookups."""

import pytest

from models.deal_models import DealStage
from scripts.lib.errors import ConfigError
from scripts.pipeline.lookups import UK_REGIONS, LookupTables, extract_postcode_area


class TestExtractPostcodeArea:
    @pytest.mark.parametrize("postcode,area", [
        ("SW1A 1AA", "SW"),
        ("sw1a 1aa", "SW"),
        ("SW1A1AA", "SW"),
        ("  m1 1ae ", "M"),
        ("B33 8TH", "B"),
        ("EH1 1YZ", "EH"),
        ("SW-1A", "SW"),
        ("B.33 8TH", "B"),
    ])
    def test_leading_letters(self, postcode, area):
        assert extract_postcode_area(postcode) == area

    def test_empty(self):
        assert extract_postcode_area(None) == ""
        assert extract_postcode_area("   ") == ""


class TestLookupTables:
    def test_default_has_twelve_regions(self, lookups):
        assert len(lookups.regions) == 12
        assert lookups.regions == list(UK_REGIONS)

    def test_region_is_case_and_space_insensitive(self, lookups):
        assert lookups.region_for_postcode("sw1a 1aa") == "London"
        assert lookups.region_for_postcode("SW1A1AA") == "London"

    @pytest.mark.parametrize("postcode,region", [
        ("M1 1AE", "North West"),
        ("LS1 4AP", "Yorkshire"),
        ("CF10 1EP", "Wales"),
        ("G1 1XQ", "Scotland"),
        ("BT1 5GS", "Northern Ireland"),
        ("CB2 1TN", "East of England"),
    ])
    def test_known_regions(self, lookups, postcode, region):
        assert lookups.region_for_postcode(postcode) == region

    def test_unknown_area_degrades_to_none(self, lookups):
        assert lookups.region_for_postcode("ZZ9 9ZZ") is None
        assert lookups.region_for_area("") is None

    def test_stage_defaults_without_overrides(self, lookups):
        for stage in DealStage:
            assert lookups.probability_for_stage(stage) == stage.default_probability

    def test_stage_accepts_text(self, lookups):
        assert lookups.probability_for_stage("Negotiation") == 80

    def test_override_applies(self):
        lookups = LookupTables.from_config({"stage_probabilities": {"Proposal": 55}})
        assert lookups.probability_for_stage(DealStage.PROPOSAL) == 55
        assert lookups.probability_for_stage(DealStage.LEAD) == 10

    def test_from_config_without_regions_uses_uk_table(self):
        lookups = LookupTables.from_config({})
        assert lookups.region_for_postcode("NE1 4ST") == "North East"

    def test_from_config_region_to_areas(self):
        lookups = LookupTables.from_config({"regions": {"Capital": ["sw", "ec"]}})
        assert lookups.region_for_postcode("EC2A 4NE") == "Capital"
        assert lookups.region_for_postcode("M1 1AE") is None

    def test_from_config_area_to_region(self):
        lookups = LookupTables.from_config({"regions": {"M": "Manchester"}})
        assert lookups.region_for_postcode("M1 1AE") == "Manchester"

    def test_from_config_rejects_bad_probability(self):
        with pytest.raises(ConfigError):
            LookupTables.from_config({"stage_probabilities": {"Lead": 150}})

    def test_from_config_rejects_bad_region_entry(self):
        with pytest.raises(ConfigError):
            LookupTables.from_config({"regions": {"London": 5}})
