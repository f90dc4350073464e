"""
Engine state persistence.

ARCHITECTURE:
- One versioned record, written atomically (tmp file + replace)
- Previous record kept as .bak
- SHA256 checksum over the record body

A load is rejected (returns None) when:
- the version does not match STATE_VERSION
- the checksum does not match
- the record is older than max_age_hours
- a field does not parse (timestamps must be timezone-aware)

FILE STRUCTURE:
    state/
      ├─ engine_state.json
      └─ engine_state.json.bak
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional
import hashlib
import json
import shutil

from gridguard.logging import get_logger, LogStream

STATE_VERSION = "1"


@dataclass
class PersistedState:
    """Minimal state that must survive a restart."""
    timestamp: datetime
    equity: Decimal
    high_water_mark: Decimal
    daily_pl: Decimal
    emergency_trigger_count: int = 0
    hard_stop_trigger_count: int = 0
    last_reset_time: Optional[datetime] = None
    hard_stop_locked: bool = False
    version: str = STATE_VERSION

    def body(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
            "equity": str(self.equity),
            "high_water_mark": str(self.high_water_mark),
            "daily_pl": str(self.daily_pl),
            "emergency_trigger_count": self.emergency_trigger_count,
            "hard_stop_trigger_count": self.hard_stop_trigger_count,
            "last_reset_time": self.last_reset_time.isoformat() if self.last_reset_time else None,
            "hard_stop_locked": self.hard_stop_locked,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.body()
        data["checksum"] = calculate_checksum(data)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedState":
        """Raises ValueError on checksum mismatch."""
        data = dict(data)
        stored = data.pop("checksum", None)
        calculated = calculate_checksum(data)
        if stored != calculated:
            raise ValueError(f"Checksum mismatch: stored={stored}, calculated={calculated}")

        return cls(
            version=data["version"],
            timestamp=_aware_datetime(data["timestamp"]),
            equity=Decimal(data["equity"]),
            high_water_mark=Decimal(data["high_water_mark"]),
            daily_pl=Decimal(data["daily_pl"]),
            emergency_trigger_count=data["emergency_trigger_count"],
            hard_stop_trigger_count=data["hard_stop_trigger_count"],
            last_reset_time=_aware_datetime(data["last_reset_time"]) if data.get("last_reset_time") else None,
            hard_stop_locked=data.get("hard_stop_locked", False),
        )


def _aware_datetime(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        raise ValueError(f"naive timestamp: {value}")
    return dt


def calculate_checksum(data: Dict[str, Any]) -> str:
    json_str = json.dumps(data, sort_keys=True)
    return hashlib.sha256(json_str.encode()).hexdigest()


class StatePersistence:
    """
    Saves and loads PersistedState.

    USAGE:
        persistence = StatePersistence(Path("state"), max_age_hours=24)
        persistence.save(state)
        restored = persistence.load(now=clock.now())
    """

    FILE_NAME = "engine_state.json"

    def __init__(self, state_dir: Path = Path("state"), max_age_hours: int = 24):
        self.state_dir = Path(state_dir)
        self.max_age = timedelta(hours=max_age_hours)
        self.state_file = self.state_dir / self.FILE_NAME
        self.backup_file = self.state_dir / (self.FILE_NAME + ".bak")
        self.logger = get_logger(LogStream.STATE)

    # ========================================================================
    # SAVE
    # ========================================================================

    def save(self, state: PersistedState) -> bool:
        """Atomic write. Returns False (and logs) on I/O failure."""
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            json_str = json.dumps(state.to_dict(), indent=2)

            temp_file = self.state_file.with_suffix(".tmp")
            temp_file.write_text(json_str, encoding="utf-8")

            if self.state_file.exists():
                shutil.copy2(self.state_file, self.backup_file)

            temp_file.replace(self.state_file)

            self.logger.debug("Engine state saved", extra={
                "timestamp": state.timestamp.isoformat(),
                "hard_stop_locked": state.hard_stop_locked,
            })
            return True

        except OSError as e:
            self.logger.error("Failed to save engine state", extra={"error": str(e)}, exc_info=True)
            return False

    # ========================================================================
    # LOAD
    # ========================================================================

    def load(self, now: datetime, enforce_age: bool = True) -> Optional[PersistedState]:
        """
        Load the current record, or the .bak copy if the current file is
        missing. A current file that exists but fails validation is not
        replaced by the backup.
        """
        if self.state_file.exists():
            return self._load_file(self.state_file, now, enforce_age)

        if self.backup_file.exists():
            state = self._load_file(self.backup_file, now, enforce_age)
            if state:
                self.logger.warning("Engine state loaded from backup (current file missing)")
            return state

        self.logger.info("No persisted engine state found")
        return None

    def _load_file(self, path: Path, now: datetime, enforce_age: bool) -> Optional[PersistedState]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to read state file: {path.name}", extra={"error": str(e)})
            return None

        if data.get("version") != STATE_VERSION:
            self.logger.warning("Persisted state rejected: version mismatch", extra={
                "found": data.get("version"),
                "expected": STATE_VERSION,
            })
            return None

        try:
            state = PersistedState.from_dict(data)
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            self.logger.error(f"Persisted state rejected: {path.name}", extra={"error": str(e)})
            return None

        age = now - state.timestamp
        if enforce_age and age > self.max_age:
            self.logger.warning("Persisted state rejected: too old", extra={
                "age_hours": round(age.total_seconds() / 3600, 2),
                "max_age_hours": self.max_age.total_seconds() / 3600,
            })
            return None

        self.logger.info("Persisted engine state loaded", extra={
            "timestamp": state.timestamp.isoformat(),
            "hard_stop_locked": state.hard_stop_locked,
        })
        return state

    def has_saved_state(self) -> bool:
        return self.state_file.exists()

    def clear(self) -> None:
        for path in (self.state_file, self.backup_file):
            if path.exists():
                path.unlink()
        self.logger.info("Cleared persisted engine state")
