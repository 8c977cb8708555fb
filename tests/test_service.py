"""Tests for the pipeline service and its wiring."""

from datetime import date

import pytest
from pydantic import ValidationError

from models.deal_models import DealFilter, DealStage, PromoterIdentity, PromoterTier
from scripts.pipeline.ids import SequentialDealIdGenerator
from scripts.pipeline.normalizer import DealNormalizer
from scripts.pipeline.service import PipelineService, build_service
from scripts.pipeline.store import CsvDealStore, InMemoryDealStore

REF_DATE = date(2024, 6, 14)


@pytest.fixture
def service(lookups, settings):
    normalizer = DealNormalizer(lookups, SequentialDealIdGenerator(REF_DATE))
    return PipelineService(InMemoryDealStore(), lookups, settings, normalizer,
                           clock=lambda: REF_DATE)


class TestDealOperations:
    def test_upsert_generates_id_and_fetches_back(self, service):
        stored, changes = service.upsert_deal(
            {"accountName": "Acme", "dealName": "Rollout", "postcode": "M1 1AE"},
        )
        assert stored.deal_id == "D-20240614-00000001"
        assert stored.region == "North West"
        assert "dealId" in [c.field for c in changes]
        assert service.get_deal(stored.deal_id).deal_id == stored.deal_id

    def test_upsert_existing_id_replaces(self, service, make_deal):
        service.upsert_deal(make_deal(deal_id="D-1", owner="A"))
        stored, _ = service.upsert_deal(make_deal(deal_id="D-1", owner="B"))
        assert stored.owner == "B"
        assert service.store.count() == 1

    def test_upsert_invalid_mapping(self, service):
        with pytest.raises(ValidationError):
            service.upsert_deal({"probability": 400})

    def test_upsert_none_raises(self, service):
        with pytest.raises(TypeError):
            service.upsert_deal(None)

    def test_list_with_filter(self, service, make_deal):
        service.upsert_deal(make_deal(owner="Emma Taylor"))
        service.upsert_deal(make_deal(owner="David Lee"))
        result = service.list_deals(DealFilter(owner="emma taylor"))
        assert [d.owner for d in result] == ["Emma Taylor"]
        assert len(service.list_deals()) == 2

    def test_patch_persists(self, service, make_deal):
        service.upsert_deal(make_deal(deal_id="D-1"))
        result = service.patch_deal("d-1", {"stage": "Negotiation", "probability": "80"})
        assert result.success
        stored = service.get_deal("D-1")
        assert stored.stage == DealStage.NEGOTIATION
        assert stored.probability == 80

    def test_rejected_patch_leaves_deal(self, service, make_deal):
        original, _ = service.upsert_deal(make_deal(deal_id="D-1"))
        result = service.patch_deal("D-1", {"dealId": "D-2"})
        assert not result.success
        assert service.get_deal("D-1") == original
        assert service.get_deal("D-2") is None

    def test_patch_missing_deal(self, service):
        assert service.patch_deal("D-404", {"owner": "X"}) is None

    def test_delete(self, service, make_deal):
        service.upsert_deal(make_deal(deal_id="D-1"))
        assert service.delete_deal("D-1") is True
        assert service.delete_deal("D-1") is False


class TestReports:
    def test_reports_use_clock(self, service, make_deal):
        service.upsert_deal(make_deal(next_step_due_date=REF_DATE))
        assert service.daily_brief().reference_date == REF_DATE
        assert len(service.daily_brief().due_today) == 1
        assert service.hygiene_report().reference_date == REF_DATE
        assert service.forecast_snapshot().open_deals == 1
        assert service.stats().total_deals == 1

    def test_explicit_reference_date(self, service, make_deal):
        service.upsert_deal(make_deal(next_step_due_date=date(2024, 6, 20)))
        brief = service.daily_brief(date(2024, 6, 20))
        assert len(brief.due_today) == 1

    def test_promoter_views(self, service, make_deal):
        service.upsert_deal(make_deal(promoter_id="P-001", last_contacted_date=None))
        identity = PromoterIdentity(promoter_id="P-001")
        dash = service.promoter_dashboard(identity, PromoterTier.GOLD)
        assert dash.summary.total_referrals == 1
        assert len(service.promoter_deals(identity, PromoterTier.GOLD)) == 1
        assert len(service.promoter_actions(identity, PromoterTier.GOLD)) == 1


class TestDataManagement:
    def test_generate_synthetic_replaces_store(self, service, make_deal):
        service.upsert_deal(make_deal(deal_id="D-KEEP"))
        assert service.generate_synthetic(count=25, seed=3) == 25
        assert service.store.count() == 25
        assert service.get_deal("D-KEEP") is None

    def test_in_memory_save_and_reload(self, service, make_deal):
        service.upsert_deal(make_deal())
        assert service.save() == 1
        assert service.reload() == 1
        assert service.summary() == {"deals": 1, "persistent": False}

    def test_csv_save_and_reload_normalizes(self, tmp_path, lookups, settings):
        sheet = tmp_path / "deals.csv"
        sheet.write_text("dealId,accountName,postcode,stage\n,Acme,LS1 4AP,Proposal\n",
                         encoding="utf-8")
        store = CsvDealStore(sheet, autoload=False)
        service = PipelineService(store, lookups, settings, clock=lambda: REF_DATE)
        assert service.reload() == 1
        deal = service.list_deals()[0]
        assert deal.deal_id.startswith("D-20240614-")
        assert deal.region == "Yorkshire"
        assert deal.probability == 60
        assert service.save() == 1
        assert service.summary()["persistent"] is True

    def test_restore_backup(self, tmp_path, lookups, settings, make_deal):
        store = CsvDealStore(tmp_path / "deals.csv", autoload=False)
        service = PipelineService(store, lookups, settings, clock=lambda: REF_DATE)
        service.upsert_deal(make_deal(deal_id="D-KEEP"))
        service.save()
        service.delete_deal("D-KEEP")
        service.save()

        restored = service.restore_backup()
        assert restored.endswith(".csv.bak")
        assert [d.deal_id for d in service.list_deals()] == ["D-KEEP"]

    def test_restore_backup_in_memory(self, service):
        assert service.restore_backup() is None


class TestBuildService:
    def test_in_memory(self, tmp_path):
        service = build_service(config_path=tmp_path / "missing.yaml", in_memory=True)
        assert service.store.persistent is False
        assert service.settings.no_contact_threshold_days == 10

    def test_csv_store_from_paths(self, tmp_path):
        config = tmp_path / "pipeline.yaml"
        config.write_text("settings:\n  backup_count: 2\n", encoding="utf-8")
        sheet = tmp_path / "deals.csv"
        service = build_service(data_path=sheet, config_path=config)
        assert isinstance(service.store, CsvDealStore)
        assert service.store.path == sheet
        assert service.store.backup_count == 2
        assert service.summary() == {"deals": 0, "persistent": True}
