"""
Deal Desk — Pipeline Configuration
====================================

Report thresholds and lookup overrides, read from configs/pipeline.yaml with
environment overrides from .env.

Usage:
    from scripts.pipeline.settings import load_config
    settings, lookups = load_config()
"""
from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from scripts.lib.errors import ConfigError
from scripts.lib.logger import setup_logger
from scripts.pipeline.lookups import LookupTables

logger = setup_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "pipeline.yaml"
DEFAULT_DATA_PATH = PROJECT_ROOT / "data" / "deals.csv"

load_dotenv(PROJECT_ROOT / ".env")


class PipelineSettings(BaseModel):
    """Thresholds controlling report behaviour."""
    no_contact_threshold_days: int = Field(10, ge=0)
    high_value_top_n: int = Field(10, ge=0)
    high_value_threshold: Decimal = Field(Decimal("50000"), ge=0)
    stale_contact_warning_days: int = Field(14, ge=0)

    # Hygiene: stage/probability mismatch
    mismatch_tolerance: int = Field(30, ge=0, le=100)
    mismatch_high_deviation: int = Field(50, ge=0, le=100)

    # Promoter dashboard
    at_risk_contact_days: int = Field(7, ge=0)
    recent_close_window_days: int = Field(30, ge=0)

    # Storage
    backup_count: int = Field(5, ge=0)

    product_lines: list[str] = Field(default_factory=lambda: [
        "Enterprise Software",
        "Professional Services",
        "SaaS Subscription",
        "Hardware",
        "Support & Maintenance",
        "Training",
        "Consulting",
    ])
    lead_sources: list[str] = Field(default_factory=lambda: [
        "Inbound",
        "Outbound",
        "Referral",
        "Partner",
        "Event",
        "Website",
        "LinkedIn",
        "Cold Call",
    ])
    service_plans: list[str] = Field(default_factory=lambda: [
        "Basic",
        "Standard",
        "Premium",
        "Enterprise",
    ])


def resolve_config_path(path: Optional[str | Path] = None) -> Path:
    return Path(path or os.getenv("DEAL_DESK_CONFIG") or DEFAULT_CONFIG_PATH)


def resolve_data_path(path: Optional[str | Path] = None) -> Path:
    return Path(path or os.getenv("DEAL_DESK_DATA") or DEFAULT_DATA_PATH)


def load_config(path: Optional[str | Path] = None) -> Tuple[PipelineSettings, LookupTables]:
    """
    Load settings and lookups from YAML.

    A missing file yields defaults. Malformed YAML or out-of-range values
    raise ConfigError.
    """
    config_path = resolve_config_path(path)
    if not config_path.exists():
        logger.info("No config at %s, using defaults", config_path)
        return PipelineSettings(), LookupTables.default()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}", config_path=str(config_path)) from e

    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping", config_path=str(config_path))

    try:
        settings = PipelineSettings(**(data.get("settings") or {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}", config_path=str(config_path)) from e

    lookups = LookupTables.from_config(data.get("lookups"))
    logger.info(
        "Loaded config from %s (%d regions)", config_path.name, len(lookups.regions),
    )
    return settings, lookups
