"""
Core pooled-fund arithmetic: fixed point, fee accrual, cashflow reconciliation.
"""

from .cashflow import reconcile, withdraw_value
from .errors import (
    FeeOutOfBoundsError,
    InsufficientFundsError,
    InvalidPriceError,
    MisconfiguredError,
    PoolError,
    PoolInvariantError,
    ReentrancyError,
    UnauthorizedError,
    UnknownTicketError,
    ZeroAmountError,
)
from .fees import FeeAccrual, FeeRates, PerformanceClamp, compute_fee_accrual
from .fixed_point import WAD, SECONDS_PER_YEAR, asset_scale, mul_div

__all__ = [
    "reconcile",
    "withdraw_value",
    "FeeOutOfBoundsError",
    "InsufficientFundsError",
    "InvalidPriceError",
    "MisconfiguredError",
    "PoolError",
    "PoolInvariantError",
    "ReentrancyError",
    "UnauthorizedError",
    "UnknownTicketError",
    "ZeroAmountError",
    "FeeAccrual",
    "FeeRates",
    "PerformanceClamp",
    "compute_fee_accrual",
    "WAD",
    "SECONDS_PER_YEAR",
    "asset_scale",
    "mul_div",
]
