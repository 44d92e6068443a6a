"""
Cashflow reconciliation between the operator and the pool.

After a transition the pool must hold exactly what it owes to withdrawal
tickets: the value of the withdraw shares queued for this epoch at the new
price, plus whatever was already reserved for matured but unclaimed tickets.

    delta > 0  operator must contribute `delta` assets
    delta < 0  operator may take `-delta` surplus assets
    delta == 0 no transfer
"""

from __future__ import annotations

from .fixed_point import WAD, denormalize, mul_div, to_int256


def withdraw_value(shares: int, price: int, scale: int) -> int:
    """Asset value of `shares` at `price`, floored to asset decimals."""
    return denormalize(mul_div(shares, price, WAD), scale)


def reconcile(
    *,
    pending_withdraw_shares: int,
    price_after: int,
    pool_balance: int,
    withdraw_reserve: int,
    scale: int,
) -> int:
    owed = withdraw_value(pending_withdraw_shares, price_after, scale) + withdraw_reserve
    return to_int256(owed - pool_balance)
