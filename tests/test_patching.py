"""Tests for field-level patch validation and application."""

from datetime import date
from decimal import Decimal

import pytest

from models.deal_models import DealStage
from scripts.pipeline.patching import apply_patch, validate_field


class TestValidateField:
    @pytest.mark.parametrize("name", ["dealId", "deal_id", "DEALID"])
    def test_key_field_rejected(self, name):
        wire, value, reason = validate_field(name, "X")
        assert wire is None
        assert reason == "DealId is the key and cannot be patched"

    @pytest.mark.parametrize("name,wire", [
        ("postcodeArea", "postcodeArea"),
        ("region", "region"),
        ("map_link", "mapLink"),
        ("weightedAmountGBP", "weightedAmountGBP"),
    ])
    def test_derived_fields_rejected(self, name, wire):
        _, _, reason = validate_field(name, "anything")
        assert reason == f"{wire} is derived and cannot be patched"

    def test_unknown_field(self):
        assert validate_field("favouriteColour", "blue")[2] == "Unknown field: favouriteColour"

    def test_names_case_and_style_insensitive(self):
        assert validate_field("next_step_due_date", "2024-07-01") == (
            "nextStepDueDate", date(2024, 7, 1), None,
        )
        assert validate_field("AMOUNTGBP", "10")[0] == "amountGBP"
        assert validate_field("amount", "10")[0] == "amountGBP"

    @pytest.mark.parametrize("raw,reason", [
        ("150", "Probability must be between 0 and 100"),
        (-1, "Probability must be between 0 and 100"),
        ("lots", "Invalid probability value"),
        ("12.5", "Invalid probability value"),
    ])
    def test_probability_rejections(self, raw, reason):
        assert validate_field("probability", raw)[2] == reason

    def test_probability_percent_string(self):
        assert validate_field("probability", "45%") == ("probability", 45, None)

    def test_amount(self):
        assert validate_field("amountGBP", "£12,500") == ("amountGBP", Decimal("12500"), None)
        assert validate_field("amountGBP", "-5")[2] == "Amount cannot be negative"
        assert validate_field("amountGBP", "twelve")[2] == "Invalid amount value"
        assert validate_field("amountGBP", None) == ("amountGBP", None, None)

    def test_dates(self):
        assert validate_field("closeDate", "31/07/2024")[1] == date(2024, 7, 31)
        assert validate_field("closeDate", "soon")[2] == "Invalid date value"
        assert validate_field("closeDate", None) == ("closeDate", None, None)

    def test_required_text(self):
        assert validate_field("accountName", "  ")[2] == "AccountName cannot be empty"
        assert validate_field("dealName", None)[2] == "DealName cannot be empty"

    def test_booleans(self):
        assert validate_field("commissionPaid", "yes")[1] is True
        assert validate_field("commissionPaid", "N")[1] is False
        assert validate_field("commissionPaid", 1)[1] is True
        assert validate_field("commissionPaid", "maybe")[2] == "Invalid boolean value"

    def test_tags(self):
        assert validate_field("tags", "a, b")[1] == ["a", "b"]
        assert validate_field("tags", ["x"])[1] == ["x"]
        assert validate_field("tags", 5)[2] is not None

    def test_stage(self):
        assert validate_field("stage", "closed won")[1] == DealStage.CLOSED_WON
        assert validate_field("stage", 3)[2] == "Invalid stage value"


class TestApplyPatch:
    def test_amount_patch(self, make_deal, normalizer, ref_date):
        deal = make_deal(amount_gbp=Decimal("10000"))
        result = apply_patch(deal, {"amountGBP": "£12,500"}, normalizer, ref_date)
        assert result.success
        assert result.deal.amount_gbp == Decimal("12500")
        assert result.applied[0].field == "amountGBP"
        assert result.applied[0].old_value == Decimal("10000")
        assert result.applied[0].new_value == Decimal("12500")

    def test_rejected_field_does_not_abort_batch(self, make_deal, normalizer, ref_date):
        deal = make_deal()
        result = apply_patch(deal, {
            "probability": "150",
            "nextStep": "Send proposal",
            "favouriteColour": "blue",
        }, normalizer, ref_date)
        assert result.success
        assert result.deal.next_step == "Send proposal"
        assert result.deal.probability == deal.probability
        assert sorted(r.field for r in result.rejected) == ["favouriteColour", "probability"]
        reasons = {r.field: r.reason for r in result.rejected}
        assert "0 and 100" in reasons["probability"]

    def test_deal_id_patch_rejected(self, make_deal, normalizer, ref_date):
        deal = make_deal()
        result = apply_patch(deal, {"dealId": "X"}, normalizer, ref_date)
        assert not result.success
        assert result.error == "No valid fields to apply"
        assert result.deal == deal
        assert result.rejected[0].attempted_value == "X"

    def test_input_deal_not_mutated(self, make_deal, normalizer, ref_date):
        deal = make_deal(owner="Sarah Chen")
        apply_patch(deal, {"owner": "David Lee"}, normalizer, ref_date)
        assert deal.owner == "Sarah Chen"

    def test_postcode_patch_rederives_location(self, make_deal, normalizer, ref_date):
        deal, _ = normalizer.normalize(make_deal(postcode="SW1A 1AA"), ref_date)
        assert deal.region == "London"

        result = apply_patch(deal, {"postcode": "M1 1AE"}, normalizer, ref_date)
        assert result.success
        assert result.deal.postcode_area == "M"
        assert result.deal.region == "North West"
        assert result.deal.map_link.endswith("M1%201AE")
        derived = {c.field for c in result.normalization_changes}
        assert {"postcodeArea", "region", "mapLink"} <= derived
        assert [a.field for a in result.applied] == ["postcode"]

    def test_postcode_patch_to_unknown_area_clears_region(self, make_deal, normalizer, ref_date):
        deal, _ = normalizer.normalize(make_deal(postcode="SW1A 1AA"), ref_date)

        result = apply_patch(deal, {"postcode": "ZZ9 9ZZ"}, normalizer, ref_date)
        assert result.success
        assert result.deal.postcode_area == "ZZ"
        assert result.deal.region is None
        change = next(c for c in result.normalization_changes if c.field == "region")
        assert change.old_value == "London"
        assert change.new_value is None

    def test_clearing_postcode_clears_area_and_link(self, make_deal, normalizer, ref_date):
        deal, _ = normalizer.normalize(make_deal(postcode="SW1A 1AA"), ref_date)
        result = apply_patch(deal, {"postcode": None}, normalizer, ref_date)
        assert result.success
        assert result.deal.postcode is None
        assert result.deal.postcode_area is None
        assert result.deal.map_link is None
        assert result.deal.region == "London"
        cleared = {c.field: c.reason for c in result.normalization_changes}
        assert cleared["postcodeArea"] == "Postcode cleared"
        assert cleared["mapLink"] == "Postcode cleared"

    def test_cleared_probability_falls_back_to_stage_default(self, make_deal, normalizer, ref_date):
        deal = make_deal(stage=DealStage.PROPOSAL, probability=35)
        result = apply_patch(deal, {"probability": None}, normalizer, ref_date)
        assert result.deal.probability == 60
        assert any(c.field == "probability" for c in result.normalization_changes)

    def test_null_clears_optional_field(self, make_deal, normalizer, ref_date):
        result = apply_patch(make_deal(next_step="Call"), {"nextStep": None}, normalizer, ref_date)
        assert result.deal.next_step is None

    def test_none_arguments_raise(self, make_deal, normalizer, ref_date):
        with pytest.raises(TypeError):
            apply_patch(None, {}, normalizer, ref_date)
        with pytest.raises(TypeError):
            apply_patch(make_deal(), None, normalizer, ref_date)
