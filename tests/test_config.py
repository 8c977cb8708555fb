"""Tests for configuration loading and the command-line entry point."""

import os
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest

from main import build_parser, main
from scripts.lib.errors import ConfigError
from scripts.pipeline.settings import (
    DEFAULT_CONFIG_PATH,
    PipelineSettings,
    load_config,
    resolve_config_path,
    resolve_data_path,
)
from scripts.pipeline.store import CsvDealStore


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings, lookups = load_config(tmp_path / "absent.yaml")
        assert settings == PipelineSettings()
        assert len(lookups.regions) == 12

    def test_shipped_config_matches_defaults(self):
        settings, lookups = load_config(DEFAULT_CONFIG_PATH)
        assert settings.no_contact_threshold_days == 10
        assert settings.high_value_threshold == Decimal("50000")
        assert settings.mismatch_tolerance == 30
        assert lookups.region_for_postcode("BT1 5GS") == "Northern Ireland"
        assert len(lookups.regions) == 12

    def test_overrides(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text(
            "settings:\n"
            "  no_contact_threshold_days: 21\n"
            "  high_value_threshold: 75000\n"
            "lookups:\n"
            "  stage_probabilities:\n"
            "    Proposal: 55\n",
            encoding="utf-8",
        )
        settings, lookups = load_config(path)
        assert settings.no_contact_threshold_days == 21
        assert settings.high_value_threshold == Decimal("75000")
        assert settings.stale_contact_warning_days == 14
        assert lookups.probability_for_stage("Proposal") == 55

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text("", encoding="utf-8")
        settings, _ = load_config(path)
        assert settings == PipelineSettings()

    @pytest.mark.parametrize("text", [
        "settings: [unclosed\n",
        "- just\n- a list\n",
        "settings:\n  mismatch_tolerance: 150\n",
        "settings:\n  backup_count: -1\n",
    ])
    def test_bad_config_raises(self, tmp_path, text):
        path = tmp_path / "pipeline.yaml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.details["config_path"] == str(path)


class TestPathResolution:
    def test_explicit_path_wins(self):
        with patch.dict(os.environ, {"DEAL_DESK_DATA": "/env/deals.csv"}):
            assert resolve_data_path("given.csv") == Path("given.csv")

    def test_environment_used(self):
        with patch.dict(os.environ, {"DEAL_DESK_DATA": "/env/deals.csv",
                                     "DEAL_DESK_CONFIG": "/env/pipeline.yaml"}):
            assert resolve_data_path() == Path("/env/deals.csv")
            assert resolve_config_path() == Path("/env/pipeline.yaml")

    def test_default_paths(self):
        env = {k: v for k, v in os.environ.items()
               if k not in ("DEAL_DESK_DATA", "DEAL_DESK_CONFIG")}
        with patch.dict(os.environ, env, clear=True):
            assert resolve_data_path().name == "deals.csv"
            assert resolve_config_path() == DEFAULT_CONFIG_PATH


class TestMain:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_generate_writes_sheet(self, tmp_path):
        sheet = tmp_path / "deals.csv"
        code = main(["--data", str(sheet), "--config", str(tmp_path / "none.yaml"),
                     "generate", "--count", "12", "--seed", "4"])
        assert code == 0
        assert CsvDealStore(sheet).count() == 12

    def test_negative_count(self, tmp_path):
        code = main(["--data", str(tmp_path / "deals.csv"),
                     "--config", str(tmp_path / "none.yaml"),
                     "generate", "--count", "-1"])
        assert code == 2

    def test_bad_config_fails_startup(self, tmp_path):
        config = tmp_path / "pipeline.yaml"
        config.write_text("settings: [unclosed\n", encoding="utf-8")
        code = main(["--data", str(tmp_path / "deals.csv"), "--config", str(config), "console"])
        assert code == 1
