"""Shared fixtures for the Deal Desk test suite."""

import os

# Keep test runs from writing daily log files
os.environ["LOG_TO_FILE"] = "false"

from datetime import date
from decimal import Decimal

import pytest

from models.deal_models import Deal, DealStage
from scripts.pipeline.ids import SequentialDealIdGenerator
from scripts.pipeline.lookups import LookupTables
from scripts.pipeline.normalizer import DealNormalizer
from scripts.pipeline.settings import PipelineSettings

REF_DATE = date(2024, 6, 14)


@pytest.fixture
def ref_date():
    return REF_DATE


@pytest.fixture
def lookups():
    return LookupTables.default()


@pytest.fixture
def settings():
    return PipelineSettings()


@pytest.fixture
def normalizer(lookups):
    return DealNormalizer(lookups, SequentialDealIdGenerator(REF_DATE))


@pytest.fixture
def make_deal():
    """Factory for a tidy open deal that raises no hygiene issues by default."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = dict(
            deal_id=f"D-TEST-{counter['n']:04d}",
            account_name=f"Account {counter['n']}",
            deal_name=f"Deal {counter['n']}",
            contact_name="Jane Smith",
            email="jane@example.co.uk",
            phone="020 7946 0000",
            postcode="SW1A 1AA",
            stage=DealStage.QUALIFIED,
            probability=20,
            amount_gbp=Decimal("10000"),
            owner="Sarah Chen",
            created_date=date(2024, 5, 1),
            last_contacted_date=date(2024, 6, 12),
            next_step="Discovery meeting",
            next_step_due_date=date(2024, 6, 20),
            close_date=date(2024, 7, 31),
        )
        fields.update(overrides)
        return Deal(**fields)

    return _make
