"""Tests for the in-memory and CSV deal stores."""

import json
from datetime import date
from decimal import Decimal

import pytest

from models.deal_models import DealFilter, DealStage
from scripts.lib.errors import SchemaValidationError, StoreLockedError
from scripts.pipeline.store import (
    COLUMNS,
    SCHEMA_VERSION,
    CsvDealStore,
    InMemoryDealStore,
    deal_to_row,
    row_to_deal,
)


class TestInMemoryDealStore:
    def test_upsert_and_get_case_insensitive(self, make_deal):
        store = InMemoryDealStore()
        deal = make_deal(deal_id="D-20240614-ABC12345")
        store.upsert(deal)
        assert store.get("d-20240614-abc12345") == deal
        assert store.count() == 1

    def test_upsert_replaces_existing(self, make_deal):
        store = InMemoryDealStore()
        store.upsert(make_deal(deal_id="D-1", owner="A"))
        store.upsert(make_deal(deal_id="d-1", owner="B"))
        assert store.count() == 1
        assert store.get("D-1").owner == "B"

    def test_returns_copies(self, make_deal):
        store = InMemoryDealStore([make_deal(deal_id="D-1", tags=["vip"])])
        fetched = store.get("D-1")
        fetched.tags.append("changed")
        fetched.owner = "Someone Else"
        assert store.get("D-1").tags == ["vip"]
        assert store.get("D-1").owner == "Sarah Chen"

    def test_upsert_requires_id(self, make_deal):
        with pytest.raises(ValueError):
            InMemoryDealStore().upsert(make_deal(deal_id="  "))

    def test_get_and_delete_missing(self):
        store = InMemoryDealStore()
        assert store.get("D-404") is None
        assert store.get("") is None
        assert store.delete("D-404") is False

    def test_delete(self, make_deal):
        store = InMemoryDealStore([make_deal(deal_id="D-1")])
        assert store.delete("d-1") is True
        assert store.count() == 0

    def test_query(self, make_deal, ref_date):
        store = InMemoryDealStore([
            make_deal(stage=DealStage.PROPOSAL),
            make_deal(stage=DealStage.LEAD),
        ])
        result = store.query(DealFilter(stages=["Proposal"]), ref_date)
        assert [d.stage for d in result] == [DealStage.PROPOSAL]
        assert len(store.query(None, ref_date)) == 2

    def test_load_replaces_contents(self, make_deal):
        store = InMemoryDealStore([make_deal(), make_deal()])
        assert store.load([make_deal()]) == 1
        assert store.count() == 1


class TestRowConversion:
    def test_columns_are_wire_names(self):
        assert COLUMNS[0] == "dealId"
        assert "amountGBP" in COLUMNS
        assert COLUMNS[-1] == "weightedAmountGBP"

    def test_row_cells(self, make_deal):
        row = deal_to_row(make_deal(tags=["vip", "renewal"], commission_paid=True))
        assert row["stage"] == "Qualified"
        assert row["amountGBP"] == "10000"
        assert row["closeDate"] == "2024-07-31"
        assert row["tags"] == "vip, renewal"
        assert row["commissionPaid"] == "true"
        assert row["region"] == ""

    def test_row_parsed_like_user_input(self):
        deal = row_to_deal({
            "dealId": "D-9",
            "amountGBP": "£12,500",
            "probability": "45%",
            "closeDate": "31/07/2024",
            "stage": "closed won",
            "commissionPaid": "Yes",
            "weightedAmountGBP": "999",
            "unexpected": "ignored",
        })
        assert deal.amount_gbp == Decimal("12500")
        assert deal.probability == 45
        assert deal.close_date == date(2024, 7, 31)
        assert deal.stage == DealStage.CLOSED_WON
        assert deal.commission_paid is True


class TestCsvDealStore:
    @pytest.fixture
    def sheet(self, tmp_path):
        return tmp_path / "deals.csv"

    def test_missing_file_loads_empty(self, sheet):
        store = CsvDealStore(sheet)
        assert store.count() == 0
        assert store.schema_version() is None

    def test_round_trip(self, sheet, make_deal):
        deals = [
            make_deal(tags=["vip"], promoter_id="P-001", promoter_commission=Decimal("250.50")),
            make_deal(amount_gbp=None, next_step=None, next_step_due_date=None),
        ]
        store = CsvDealStore(sheet)
        store.load(deals)
        assert store.save() == 2

        reopened = CsvDealStore(sheet)
        assert sorted(reopened.get_all(), key=lambda d: d.deal_id) == deals

    def test_save_writes_meta_sidecar(self, sheet, make_deal):
        store = CsvDealStore(sheet)
        store.load([make_deal()])
        store.save()
        meta = json.loads((sheet.parent / "deals.meta.json").read_text(encoding="utf-8"))
        assert meta["schemaVersion"] == SCHEMA_VERSION == "1.2"
        assert meta["dealCount"] == 1
        assert store.schema_version() == "1.2"
        assert not store.lock_path.exists()

    def test_second_save_creates_backup(self, sheet, make_deal):
        store = CsvDealStore(sheet)
        store.load([make_deal()])
        store.save()
        assert store.list_backups() == []
        store.save()
        backups = store.list_backups()
        assert len(backups) == 1
        assert backups[0].name.startswith("deals.")
        assert backups[0].name.endswith(".csv.bak")

    def test_backups_pruned(self, sheet, make_deal):
        store = CsvDealStore(sheet, backup_count=2)
        store.load([make_deal()])
        for _ in range(5):
            store.save()
        assert len(store.list_backups()) == 2

    def test_no_backups_when_disabled(self, sheet, make_deal):
        store = CsvDealStore(sheet, backup_count=0)
        store.load([make_deal()])
        store.save()
        store.save()
        assert store.list_backups() == []

    def test_restore_latest_backup(self, sheet, make_deal):
        store = CsvDealStore(sheet)
        store.load([make_deal(deal_id="D-OLD")])
        store.save()
        store.load([make_deal(deal_id="D-NEW")])
        store.save()

        store.load([])
        store.save()
        restored = store.restore_latest_backup()
        assert restored is not None
        assert [d.deal_id for d in store.get_all()] == ["D-NEW"]

    def test_restore_without_backups(self, sheet):
        assert CsvDealStore(sheet).restore_latest_backup() is None

    def test_older_schema_loads(self, sheet):
        sheet.write_text(
            "dealId,accountName,dealName,stage,probability,amountGBP\n"
            "D-1,Acme,Rollout,Proposal,60,\"£5,000\"\n",
            encoding="utf-8",
        )
        store = CsvDealStore(sheet)
        deal = store.get("D-1")
        assert deal.amount_gbp == Decimal("5000")
        assert deal.promoter_id is None
        assert deal.commission_paid is False

    def test_rows_without_id_skipped(self, sheet):
        sheet.write_text("dealId,accountName\n,Nameless\nD-2,Kept\n", encoding="utf-8")
        store = CsvDealStore(sheet)
        assert [d.deal_id for d in store.get_all()] == ["D-2"]

    def test_sheet_without_id_column_rejected(self, sheet):
        sheet.write_text("accountName,dealName\nAcme,Rollout\n", encoding="utf-8")
        with pytest.raises(SchemaValidationError):
            CsvDealStore(sheet)

    def test_invalid_row_rejected(self, sheet):
        sheet.write_text("dealId,amountGBP\nD-1,-500\n", encoding="utf-8")
        with pytest.raises(SchemaValidationError):
            CsvDealStore(sheet)

    def test_held_lock_raises(self, sheet, make_deal, monkeypatch):
        monkeypatch.setattr("scripts.lib.utils.time.sleep", lambda _: None)
        store = CsvDealStore(sheet)
        store.load([make_deal()])
        store.lock_path.write_text("12345", encoding="utf-8")
        with pytest.raises(StoreLockedError):
            store.save()
        assert not sheet.exists()
        assert store.lock_path.exists()
