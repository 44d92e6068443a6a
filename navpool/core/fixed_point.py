"""
Fixed-point helpers (deterministic, integer-only).

All share prices and rates are WAD-scaled (1e18). Asset amounts are brought to
the same 18-decimal scale with `normalize()` before any price arithmetic and
back with `denormalize()` (floor).

Python ints never overflow, so the 256-bit bounds here are enforced
explicitly: every helper fails closed with `OverflowError` rather than
returning a value a uint256 ledger could not hold.
"""

from __future__ import annotations


WAD: int = 10**18
SECONDS_PER_YEAR: int = 365 * 86_400
MAX_DECIMALS: int = 18

MAX_UINT256: int = 2**256 - 1
MAX_INT256: int = 2**255 - 1
MIN_INT256: int = -(2**255)


def _require_int(x: int, name: str) -> None:
    if not isinstance(x, int) or isinstance(x, bool):
        raise TypeError(f"{name} must be an int")


def to_uint256(x: int) -> int:
    """Checked cast into [0, 2**256)."""
    _require_int(x, "x")
    if x < 0 or x > MAX_UINT256:
        raise OverflowError(f"value out of uint256 range: {x}")
    return int(x)


def to_int256(x: int) -> int:
    """Checked cast into [-2**255, 2**255)."""
    _require_int(x, "x")
    if x < MIN_INT256 or x > MAX_INT256:
        raise OverflowError(f"value out of int256 range: {x}")
    return int(x)


def mul_div(x: int, y: int, d: int) -> int:
    """
    floor(x * y / d) at full precision.

    The intermediate product is never truncated; only the result is range-checked.
    """
    _require_int(x, "x")
    _require_int(y, "y")
    _require_int(d, "d")
    if x < 0 or y < 0:
        raise ValueError("mul_div operands must be non-negative")
    if d <= 0:
        raise ZeroDivisionError("mul_div denominator must be positive")
    return to_uint256((x * y) // d)


# -- Asset decimal scaling ---------------------------------------------------

def asset_scale(decimals: int) -> int:
    """Multiplier that lifts an asset with `decimals` to the 18-decimal scale."""
    _require_int(decimals, "decimals")
    if decimals < 0 or decimals > MAX_DECIMALS:
        raise ValueError(f"asset decimals must be in [0, {MAX_DECIMALS}]: {decimals}")
    return 10 ** (MAX_DECIMALS - decimals)


def normalize(amount: int, scale: int) -> int:
    _require_int(amount, "amount")
    if amount < 0:
        raise ValueError(f"amount must be non-negative: {amount}")
    return to_uint256(amount * scale)


def denormalize(value: int, scale: int) -> int:
    _require_int(value, "value")
    if value < 0:
        raise ValueError(f"value must be non-negative: {value}")
    return value // scale
