"""
External collaborator interfaces consumed by the core.

The core never talks to a broker SDK directly. Everything it needs is
expressed as a small Protocol so that live adapters, the simulated broker and
test fakes are interchangeable:

- MarketDataProvider: quotes, volatility (ATR) and the previous bar
- AccountTelemetry:   equity and balance
- PositionLedger:     this strategy's own open positions and pending orders
- OrderGateway:       order placement / close / cancel, returning OrderResult
- AlertSink:          fire-and-forget notifications
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from gridguard.state.models import (
    Bar,
    Direction,
    PendingOrderInfo,
    PositionInfo,
    PositionKind,
    Quote,
)
from gridguard.logging import get_logger, LogStream


# ============================================================================
# ORDER MODELS
# ============================================================================

class ExecutionErrorCode(str, Enum):
    """Error classification reported by an OrderGateway."""
    NONE = "NONE"
    # Transient: safe to retry
    REQUOTE = "REQUOTE"
    TIMEOUT = "TIMEOUT"
    CONNECTION = "CONNECTION"
    PRICE_OFF = "PRICE_OFF"
    PRICE_CHANGED = "PRICE_CHANGED"
    BUSY = "BUSY"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    # Permanent: surface immediately
    INVALID_VOLUME = "INVALID_VOLUME"
    INVALID_STOPS = "INVALID_STOPS"
    NO_MONEY = "NO_MONEY"
    MARKET_CLOSED = "MARKET_CLOSED"
    TRADE_DISABLED = "TRADE_DISABLED"
    POSITION_NOT_FOUND = "POSITION_NOT_FOUND"
    REJECTED = "REJECTED"
    UNKNOWN = "UNKNOWN"


TRANSIENT_ERRORS = frozenset({
    ExecutionErrorCode.REQUOTE,
    ExecutionErrorCode.TIMEOUT,
    ExecutionErrorCode.CONNECTION,
    ExecutionErrorCode.PRICE_OFF,
    ExecutionErrorCode.PRICE_CHANGED,
    ExecutionErrorCode.BUSY,
    ExecutionErrorCode.TOO_MANY_REQUESTS,
})


@dataclass(frozen=True)
class OrderRequest:
    """A market or limit order for the strategy's instrument."""
    direction: Direction
    volume: Decimal
    kind: PositionKind = PositionKind.GRID
    price: Optional[Decimal] = None          # limit price; None for market
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    comment: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "volume": str(self.volume),
            "kind": self.kind.value,
            "price": str(self.price) if self.price is not None else None,
            "stop_loss": str(self.stop_loss) if self.stop_loss is not None else None,
            "take_profit": str(self.take_profit) if self.take_profit is not None else None,
            "comment": self.comment,
        }


@dataclass(frozen=True)
class OrderResult:
    """Outcome of one gateway call."""
    success: bool
    ticket: Optional[int] = None
    error_code: ExecutionErrorCode = ExecutionErrorCode.NONE
    message: str = ""
    attempts: int = 1

    @classmethod
    def ok(cls, ticket: Optional[int] = None, message: str = "") -> "OrderResult":
        return cls(success=True, ticket=ticket, message=message)

    @classmethod
    def fail(cls, error_code: ExecutionErrorCode, message: str = "") -> "OrderResult":
        return cls(success=False, error_code=error_code, message=message)

    @property
    def is_transient(self) -> bool:
        return not self.success and self.error_code in TRANSIENT_ERRORS


# ============================================================================
# COLLABORATOR PROTOCOLS
# ============================================================================

@runtime_checkable
class MarketDataProvider(Protocol):
    def get_quote(self) -> Optional[Quote]: ...

    def get_atr(self) -> Optional[Decimal]:
        """ATR in price units for the configured lookback/timeframe."""
        ...

    def get_previous_bar(self) -> Optional[Bar]: ...


@runtime_checkable
class AccountTelemetry(Protocol):
    def get_equity(self) -> Decimal: ...

    def get_balance(self) -> Decimal: ...


@runtime_checkable
class PositionLedger(Protocol):
    """Already filtered by instrument and strategy identifier."""

    def get_positions(self) -> List[PositionInfo]: ...

    def get_pending_orders(self) -> List[PendingOrderInfo]: ...

    def get_closed_profit(self, ticket: int) -> Optional[Decimal]:
        """Realized profit of a closed position; None while unknown."""
        ...


@runtime_checkable
class OrderGateway(Protocol):
    def place_market(self, request: OrderRequest) -> OrderResult: ...

    def place_limit(self, request: OrderRequest) -> OrderResult: ...

    def close_position(self, ticket: int, volume: Optional[Decimal] = None) -> OrderResult:
        """Close *volume* lots of a position; None closes it fully."""
        ...

    def cancel_order(self, ticket: int) -> OrderResult: ...


# ============================================================================
# ALERTS
# ============================================================================

class AlertSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class AlertEvent:
    title: str
    severity: AlertSeverity
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)


class AlertSink(Protocol):
    def send(self, event: AlertEvent) -> None: ...


class LoggingAlertSink:
    """Default sink: alerts go to the ALERTS log stream."""

    _LEVELS = {
        AlertSeverity.INFO: 20,
        AlertSeverity.WARNING: 30,
        AlertSeverity.CRITICAL: 50,
    }

    def __init__(self):
        self.logger = get_logger(LogStream.ALERTS)

    def send(self, event: AlertEvent) -> None:
        self.logger.log(
            self._LEVELS[event.severity],
            event.title,
            extra={"alert_timestamp": event.timestamp.isoformat(), **event.details},
        )


def safe_send(sink: Optional[AlertSink], event: AlertEvent) -> None:
    """Fire-and-forget: a broken sink must never break an evaluation cycle."""
    if sink is None:
        return
    try:
        sink.send(event)
    except Exception as e:
        get_logger(LogStream.ALERTS).error(
            "Alert delivery failed",
            extra={"title": event.title, "error": str(e)},
        )
