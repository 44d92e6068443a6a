"""Exception types for the pooled-fund engine.

Every error carries a stable ``reason`` code so that ``step()`` callers can
branch on the rejection without parsing messages.
"""

from __future__ import annotations


class PoolError(Exception):
    """Base class for all rejections raised by the engine."""

    reason: str = "pool_error"

    def __init__(self, message: str = "", *, reason: str | None = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(message or self.reason)


class ZeroAmountError(PoolError):
    """Raised when a deposit, withdraw or fee update carries a zero quantity."""

    reason = "zero_amount"


class MisconfiguredError(PoolError):
    """Raised when a pool is constructed with an invalid owner or asset."""

    reason = "misconfigured"


class FeeOutOfBoundsError(PoolError):
    """Raised when a fee rate exceeds its policy ceiling."""

    reason = "fee_out_of_bounds"


class InvalidPriceError(PoolError):
    """Raised when a NAV report implies a zero share price against nonzero supply."""

    reason = "invalid_price"


class InsufficientFundsError(PoolError):
    """Raised when an account cannot cover a share or asset transfer."""

    reason = "insufficient_funds"


class ReentrancyError(PoolError):
    """Raised when a mutating entry point is entered while another one is running."""

    reason = "reentrancy"


class UnauthorizedError(PoolError):
    """Raised when a non-operator calls an operator-only entry point."""

    reason = "unauthorized"


class UnknownTicketError(PoolError):
    """Raised when a ticket id is not live in the registry."""

    reason = "unknown_ticket"


class PoolInvariantError(PoolError):
    """Raised when a post-state violates one or more invariants."""

    reason = "invariant"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
