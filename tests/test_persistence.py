"""
Tests for engine state persistence.

COVERAGE:
- Save/load with checksum
- Rejection on tampering, version mismatch and age
- .bak fallback only when the current file is missing
"""

import json
from datetime import timedelta
from decimal import Decimal

import pytest

from gridguard.recovery.persistence import PersistedState, StatePersistence, calculate_checksum
from tests.conftest import T0


def make_state(**overrides) -> PersistedState:
    fields = dict(
        timestamp=T0,
        equity=Decimal("9500"),
        high_water_mark=Decimal("10200"),
        daily_pl=Decimal("-150"),
        emergency_trigger_count=2,
        hard_stop_trigger_count=1,
        last_reset_time=T0 - timedelta(days=2),
        hard_stop_locked=True,
    )
    fields.update(overrides)
    return PersistedState(**fields)


@pytest.fixture
def persistence(tmp_path):
    return StatePersistence(tmp_path / "state", max_age_hours=24)


class TestStatePersistence:

    def test_round_trip(self, persistence):
        state = make_state()
        assert persistence.save(state) is True

        loaded = persistence.load(T0 + timedelta(hours=1))
        assert loaded == state

    def test_missing_returns_none(self, persistence):
        assert persistence.load(T0) is None
        assert persistence.has_saved_state() is False

    def test_tampered_record_rejected(self, persistence):
        persistence.save(make_state())
        data = json.loads(persistence.state_file.read_text())
        data["hard_stop_locked"] = False
        persistence.state_file.write_text(json.dumps(data))

        assert persistence.load(T0) is None

    @pytest.mark.parametrize("field,value", [
        ("timestamp", "2024-01-03T12:00:00"),
        ("last_reset_time", "2024-01-01T12:00:00"),
        ("equity", "not-a-number"),
    ])
    def test_hand_edited_record_with_bad_field_rejected(self, persistence, field, value):
        """A record re-signed after editing still has to parse cleanly."""
        persistence.save(make_state())
        data = json.loads(persistence.state_file.read_text())
        data[field] = value
        data.pop("checksum")
        data["checksum"] = calculate_checksum(data)
        persistence.state_file.write_text(json.dumps(data))

        assert persistence.load(T0 + timedelta(hours=1)) is None

    def test_version_mismatch_rejected(self, persistence):
        persistence.save(make_state())
        data = json.loads(persistence.state_file.read_text())
        data["version"] = "0"
        data.pop("checksum")
        data["checksum"] = calculate_checksum(data)
        persistence.state_file.write_text(json.dumps(data))

        assert persistence.load(T0) is None

    def test_stale_record_rejected(self, persistence):
        persistence.save(make_state())
        assert persistence.load(T0 + timedelta(hours=25)) is None
        assert persistence.load(T0 + timedelta(hours=25), enforce_age=False) is not None

    def test_corrupt_json_rejected(self, persistence):
        persistence.state_dir.mkdir(parents=True)
        persistence.state_file.write_text("{not json")
        assert persistence.load(T0) is None

    def test_backup_used_when_current_missing(self, persistence):
        first = make_state(equity=Decimal("9000"))
        persistence.save(first)
        persistence.save(make_state(equity=Decimal("9100")))
        assert persistence.backup_file.exists()

        persistence.state_file.unlink()
        assert persistence.load(T0) == first

    def test_backup_not_used_when_current_invalid(self, persistence):
        persistence.save(make_state())
        persistence.save(make_state())
        persistence.state_file.write_text("{}")

        assert persistence.load(T0) is None

    def test_clear(self, persistence):
        persistence.save(make_state())
        persistence.save(make_state())
        persistence.clear()

        assert not persistence.state_file.exists()
        assert not persistence.backup_file.exists()

    def test_checksum_covers_every_field(self):
        data = make_state().to_dict()
        data["equity"] = "1"
        with pytest.raises(ValueError):
            PersistedState.from_dict(data)
