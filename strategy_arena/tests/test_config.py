"""
Tests for settings loading and logging setup.
"""
import json
import logging
import os
from unittest.mock import patch

import pytest

from strategy_arena.config import ArenaSettings, RiskConfig, load_settings
from strategy_arena.logging_setup import setup_logging


@pytest.fixture
def clean_env():
    """Strip ARENA_* variables for the duration of a test."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("ARENA_")}
    with patch.dict(os.environ, env, clear=True):
        yield


class TestLoadSettings:

    def test_missing_file_uses_defaults(self, tmp_path, clean_env):
        settings = load_settings(str(tmp_path / "missing.json"))

        assert settings.execution_mode == "paper"
        assert settings.arena.wins_for_promotion == 3
        assert settings.allocator.mode == "ensemble"
        assert settings.risk.max_exposure_per_market == 0.20

    def test_file_values_merged_with_defaults(self, tmp_path, clean_env):
        path = tmp_path / "arena_config.json"
        path.write_text(json.dumps({
            "data_dir": "/var/arena",
            "risk": {"cooldown_minutes": 5, "not_a_field": True},
            "arena": {"min_edge": 2.5},
        }))

        settings = load_settings(str(path))

        assert settings.risk.cooldown_minutes == 5
        assert settings.risk.max_trade_size == 50.0
        assert settings.arena.min_edge == 2.5
        assert settings.ledger_path == os.path.join("/var/arena", "paper_trades.json")

    def test_malformed_file_uses_defaults(self, tmp_path, clean_env):
        path = tmp_path / "arena_config.json"
        path.write_text("{broken")

        assert load_settings(str(path)).to_dict() == ArenaSettings().to_dict()

    @pytest.mark.parametrize("payload", [[1, 2], {"arena": []}, {"risk": "tight"}, {"allocator": 5}])
    def test_wrong_shapes_use_defaults(self, tmp_path, clean_env, payload):
        path = tmp_path / "arena_config.json"
        path.write_text(json.dumps(payload))

        assert load_settings(str(path)).to_dict() == ArenaSettings().to_dict()

    def test_environment_overrides(self, tmp_path, clean_env):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"execution_mode": "paper"}))

        with patch.dict(os.environ, {"ARENA_CONFIG": str(path), "ARENA_DATA_DIR": str(tmp_path),
                                     "ARENA_MODE": " LIVE "}):
            settings = load_settings()

        assert settings.execution_mode == "live"
        assert settings.arena_state_path == str(tmp_path / "arena_state.json")

    def test_absolute_markets_file_kept(self):
        settings = ArenaSettings(data_dir="data", markets_file="/etc/arena/markets.json")
        assert settings.markets_path == "/etc/arena/markets.json"

    def test_risk_config_round_trip(self):
        config = RiskConfig(cooldown_minutes=3)
        assert RiskConfig.from_dict(config.to_dict()) == config


class TestSetupLogging:

    def test_writes_daily_file(self, tmp_path):
        logger = setup_logging(str(tmp_path / "logs"))
        try:
            logging.getLogger("strategy_arena.arena").info("PROMOTION: momentum replaces baseline")
            for handler in logger.handlers:
                handler.flush()

            files = list((tmp_path / "logs").glob("arena_*.log"))
            assert len(files) == 1
            assert "PROMOTION: momentum replaces baseline" in files[0].read_text()
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()

    def test_idempotent(self, tmp_path):
        setup_logging(None)
        logger = setup_logging(None)
        try:
            assert len(logger.handlers) == 1
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
