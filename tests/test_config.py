"""
Tests for configuration loading and validation.
"""

import os
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from gridguard.config import ConfigLoader, ConfigurationError, EngineConfig, RunMode, load_config, validate_config
from gridguard.config.schema import DrawdownBasis

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "config.yaml"


class TestEngineConfig:

    def test_defaults_valid(self):
        config = load_config()
        assert config.hard_stop.trigger_percent == Decimal("30")
        assert config.drawdown.basis is DrawdownBasis.HIGH_WATER_MARK
        assert config.persistence.enabled is False

    def test_repo_config_loads(self):
        config = load_config(REPO_CONFIG)
        assert config.instrument.symbol == "XAUUSD"
        assert config.drawdown.exchange_timezone == "Europe/London"
        assert config.emergency_stop.trigger_percent < config.hard_stop.trigger_percent

    def test_emergency_must_be_below_hard_stop(self):
        with pytest.raises(ConfigurationError):
            validate_config({"emergency_stop": {"trigger_percent": "35", "warning_percent": "20"}})

    def test_hedge_must_be_below_hard_stop(self):
        with pytest.raises(ConfigurationError):
            validate_config({"hedge_lock": {"trigger_percent": "30"}})

    def test_breaker_warning_must_be_below_trigger(self):
        with pytest.raises(ConfigurationError):
            validate_config({"hard_stop": {"trigger_percent": "30", "warning_percent": "31"}})
        with pytest.raises(ConfigurationError):
            validate_config({"emergency_stop": {"trigger_percent": "15", "warning_percent": "15"}})

    def test_disabled_hard_stop_skips_ordering(self):
        config = validate_config({
            "hard_stop": {"enabled": False},
            "emergency_stop": {"trigger_percent": "35", "warning_percent": "20"},
        })
        assert config.emergency_stop.trigger_percent == Decimal("35")

    def test_scalp_stops_ordered(self):
        with pytest.raises(ConfigurationError):
            validate_config({"de_escalation": {"scalp_tp_points": "500", "scalp_sl_points": "100"}})

    def test_hard_stop_override_rejected_in_live_mode(self):
        with pytest.raises(ConfigurationError):
            validate_config({"mode": "live", "schedule": {"weekly_reset_clears_hard_stop": True}})
        config = validate_config({"mode": "backtest", "schedule": {"weekly_reset_clears_hard_stop": True}})
        assert config.schedule.weekly_reset_clears_hard_stop is True

    def test_base_lot_within_instrument_limits(self):
        with pytest.raises(ConfigurationError):
            validate_config({"sizing": {"base_lot": "200"}})


class TestConfigLoader:

    def _write(self, tmp_path, data) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = self._write(tmp_path, {"mode": "paper"})
        monkeypatch.setenv("GRIDGUARD_MODE", "BACKTEST")
        monkeypatch.setenv("GRIDGUARD_PERSISTENCE", "true")
        monkeypatch.setenv("GRIDGUARD_STATE_DIR", str(tmp_path / "st"))

        config = load_config(path)
        assert config.mode is RunMode.BACKTEST
        assert config.persistence.enabled is True
        assert config.persistence.state_dir == tmp_path / "st"

    def test_dotenv_file_next_to_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GRIDGUARD_MODE", raising=False)
        path = self._write(tmp_path, {})
        (tmp_path / ".env").write_text("GRIDGUARD_MODE=live\n")

        try:
            config = load_config(path)
        finally:
            # load_dotenv writes os.environ directly
            os.environ.pop("GRIDGUARD_MODE", None)
        assert config.mode is RunMode.LIVE

    def test_env_local_beats_env(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GRIDGUARD_MODE", raising=False)
        monkeypatch.delenv("GRIDGUARD_PERSISTENCE", raising=False)
        path = self._write(tmp_path, {})
        (tmp_path / ".env.local").write_text("GRIDGUARD_MODE=backtest\n")
        (tmp_path / ".env").write_text("GRIDGUARD_MODE=live\nGRIDGUARD_PERSISTENCE=no\n")

        loader = ConfigLoader(path)
        try:
            assert loader.load_env_files() == [tmp_path / ".env.local", tmp_path / ".env"]
            config = loader.load_and_validate()
        finally:
            os.environ.pop("GRIDGUARD_MODE", None)
            os.environ.pop("GRIDGUARD_PERSISTENCE", None)
        assert config.mode is RunMode.BACKTEST
        assert config.persistence.enabled is False

    def test_yaml_round_trip(self, tmp_path):
        config = EngineConfig()
        path = tmp_path / "out.yaml"
        config.to_yaml(path)
        assert EngineConfig.from_yaml(path) == config
