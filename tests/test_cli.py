"""
Tests for the command-line entrypoint.
"""

from argparse import Namespace
from datetime import timedelta
from decimal import Decimal

import pandas as pd
import pytest
import yaml

import main
from gridguard.recovery.persistence import PersistedState, StatePersistence
from gridguard.time.clock import utc_now


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "persistence": {"enabled": True, "state_dir": str(tmp_path / "state")},
        "logging": {"file_logging": False},
    }))
    return path


def save_locked(tmp_path, locked=True):
    persistence = StatePersistence(tmp_path / "state")
    persistence.save(PersistedState(
        timestamp=utc_now() - timedelta(hours=1),
        equity=Decimal("6900"),
        high_water_mark=Decimal("10000"),
        daily_pl=Decimal("-3100"),
        hard_stop_trigger_count=1,
        hard_stop_locked=locked,
    ))
    return persistence


class TestResetHardStop:

    def test_requires_confirm(self, config_path):
        assert main.run_reset_hard_stop(Namespace(config=str(config_path), confirm=False)) == 2

    def test_clears_persisted_lock(self, tmp_path, config_path):
        persistence = save_locked(tmp_path)

        assert main.run_reset_hard_stop(Namespace(config=str(config_path), confirm=True)) == 0

        state = persistence.load(utc_now())
        assert state.hard_stop_locked is False
        assert state.hard_stop_trigger_count == 1

    def test_nothing_persisted(self, config_path):
        assert main.run_reset_hard_stop(Namespace(config=str(config_path), confirm=True)) == 1


class TestStatus:

    def test_prints_state(self, tmp_path, config_path, capsys):
        save_locked(tmp_path)
        assert main.run_status(Namespace(config=str(config_path))) == 0

        out = capsys.readouterr().out
        assert '"hard_stop_locked": true' in out
        assert '"accepted_on_startup": true' in out

    def test_no_state(self, config_path):
        assert main.run_status(Namespace(config=str(config_path))) == 1


class TestReplay:

    def test_replay_summary(self, tmp_path, config_path, capsys, monkeypatch):
        monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)
        closes = [2000.0 + 0.5 * i for i in range(30)]
        pd.DataFrame({
            "timestamp": pd.date_range("2024-01-03 00:00", periods=30, freq="h", tz="UTC"),
            "open": closes,
            "high": [c + 1.5 for c in closes],
            "low": [c - 1.5 for c in closes],
            "close": closes,
        }).to_csv(tmp_path / "bars.csv", index=False)

        args = Namespace(config=str(config_path), bars=str(tmp_path / "bars.csv"), balance="10000", spread="20", no_file_logs=True)
        assert main.run_replay(args) == 0

        out = capsys.readouterr().out
        assert '"bars": 30' in out
        assert '"final_state"' in out
