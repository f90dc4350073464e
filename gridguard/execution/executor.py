"""
Order executor: every call the core makes against the OrderGateway.

GUARANTEES:
- Every operation goes through the same RetryPolicy
- Volumes are validated against instrument rules before submission
- All calls are logged on the ORDERS stream
- A failed operation is reported as failed; nothing here mutates core state
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence

from gridguard.execution.gateway import (
    ExecutionErrorCode,
    OrderGateway,
    OrderRequest,
    OrderResult,
)
from gridguard.execution.retry import RetryPolicy
from gridguard.market.instrument import InstrumentSpec
from gridguard.state.models import Direction, PendingOrderInfo, PositionInfo, PositionKind
from gridguard.logging import get_logger, LogStream


@dataclass
class CloseAllReport:
    """Outcome of a liquidation sweep."""
    closed: List[int] = field(default_factory=list)
    close_failed: List[int] = field(default_factory=list)
    cancelled: List[int] = field(default_factory=list)
    cancel_failed: List[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.close_failed and not self.cancel_failed

    def to_dict(self) -> dict:
        return {
            "closed": self.closed,
            "close_failed": self.close_failed,
            "cancelled": self.cancelled,
            "cancel_failed": self.cancel_failed,
        }


class OrderExecutor:
    """
    Thin, retrying facade over an OrderGateway.

    USAGE:
        executor = OrderExecutor(gateway, RetryPolicy(max_attempts=3), spec)
        result = executor.place_market(Direction.SELL, Decimal("0.03"), PositionKind.HEDGE)
        if not result.success:
            ...  # do NOT assume the hedge exists
    """

    def __init__(self, gateway: OrderGateway, retry_policy: RetryPolicy, instrument: InstrumentSpec):
        self.gateway = gateway
        self.retry_policy = retry_policy
        self.instrument = instrument
        self.logger = get_logger(LogStream.ORDERS)

    def place_market(
        self,
        direction: Direction,
        volume: Decimal,
        kind: PositionKind = PositionKind.GRID,
        stop_loss: Optional[Decimal] = None,
        take_profit: Optional[Decimal] = None,
        comment: str = "",
    ) -> OrderResult:
        request = OrderRequest(
            direction=direction,
            volume=volume,
            kind=kind,
            stop_loss=stop_loss,
            take_profit=take_profit,
            comment=comment or kind.value.lower(),
        )
        return self._submit(request, self.gateway.place_market, "place_market")

    def place_limit(
        self,
        direction: Direction,
        volume: Decimal,
        price: Decimal,
        kind: PositionKind = PositionKind.GRID,
        comment: str = "",
    ) -> OrderResult:
        request = OrderRequest(
            direction=direction,
            volume=volume,
            kind=kind,
            price=self.instrument.round_price(price),
            comment=comment or kind.value.lower(),
        )
        return self._submit(request, self.gateway.place_limit, "place_limit")

    def _submit(self, request: OrderRequest, send, name: str) -> OrderResult:
        valid, reason = self.instrument.validate_volume(request.volume)
        if not valid:
            self.logger.error(f"{name} refused: {reason}", extra=request.to_dict())
            return OrderResult.fail(ExecutionErrorCode.INVALID_VOLUME, reason)

        self.logger.info(f"Submitting {name}", extra=request.to_dict())
        result = self.retry_policy.run(lambda: send(request), name=name)
        if result.success:
            self.logger.info(f"{name} accepted", extra={"ticket": result.ticket, "attempts": result.attempts})
        return result

    def close_position(self, ticket: int, volume: Optional[Decimal] = None) -> OrderResult:
        if volume is not None:
            valid, reason = self.instrument.validate_volume(volume)
            if not valid:
                self.logger.error(f"close_position refused: {reason}", extra={"ticket": ticket})
                return OrderResult.fail(ExecutionErrorCode.INVALID_VOLUME, reason)

        self.logger.info("Closing position", extra={
            "ticket": ticket,
            "volume": str(volume) if volume is not None else "ALL",
        })
        return self.retry_policy.run(
            lambda: self.gateway.close_position(ticket, volume),
            name="close_position",
        )

    def cancel_order(self, ticket: int) -> OrderResult:
        self.logger.info("Cancelling pending order", extra={"ticket": ticket})
        return self.retry_policy.run(lambda: self.gateway.cancel_order(ticket), name="cancel_order")

    def close_all(
        self,
        positions: Sequence[PositionInfo],
        pending_orders: Sequence[PendingOrderInfo],
    ) -> CloseAllReport:
        """Cancel every pending order, then close every position."""
        report = CloseAllReport()

        for order in pending_orders:
            result = self.cancel_order(order.ticket)
            (report.cancelled if result.success else report.cancel_failed).append(order.ticket)

        for position in positions:
            result = self.close_position(position.ticket)
            (report.closed if result.success else report.close_failed).append(position.ticket)

        log = self.logger.info if report.complete else self.logger.error
        log("Close-all sweep finished", extra=report.to_dict())
        return report
