"""
Fee accrual kernel (deterministic, integer-only).

Given the pool's prior supply and high-water mark plus an operator-reported
NAV, compute the post-fee share price and the fee shares owed to the operator.

Both fees are charged as a price haircut paired with a dilution-neutral mint:
for a fee fraction `r` of NAV, the operator receives `supply * r / (1 - r)`
new shares, which at the lowered price are worth exactly `r` of post-mint NAV.

The performance fee is measured against the *prior* high-water mark using the
post-management price; the management fee never moves the bar.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique

from .errors import FeeOutOfBoundsError, InvalidPriceError, ZeroAmountError
from .fixed_point import SECONDS_PER_YEAR, WAD, denormalize, mul_div, normalize


MAX_MANAGEMENT_FEE_WAD = WAD // 10  # 10% per year
MAX_PERFORMANCE_FEE_WAD = WAD // 2  # 50% of profit


@unique
class PerformanceClamp(Enum):
    """What to do when the performance fee per share would reach the price itself."""

    MINT_CLAMPED = "mint_clamped"  # charge price - 1 per share
    SKIP = "skip"  # charge nothing


@dataclass(frozen=True)
class FeeRates:
    management_wad: int
    performance_wad: int

    def __post_init__(self) -> None:
        for name, v, ceiling in (
            ("management_wad", self.management_wad, MAX_MANAGEMENT_FEE_WAD),
            ("performance_wad", self.performance_wad, MAX_PERFORMANCE_FEE_WAD),
        ):
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v == 0:
                raise ZeroAmountError(f"{name} must be nonzero", reason=f"zero_amount:{name}")
            if v < 0 or v > ceiling:
                raise FeeOutOfBoundsError(
                    f"{name} must be in (0, {ceiling}]: {v}",
                    reason=f"fee_out_of_bounds:{name}",
                )


@dataclass(frozen=True)
class FeeAccrual:
    price_pre_fee: int
    price_after_management: int
    price_after: int
    high_water_after: int
    management_shares: int
    performance_shares: int
    management_assets: int
    performance_assets: int

    @property
    def total_fee_shares(self) -> int:
        return self.management_shares + self.performance_shares


def management_rate(management_wad: int, elapsed_seconds: int) -> int:
    """Pro-rated management rate, clamped strictly below 100%."""
    rate = mul_div(management_wad, elapsed_seconds, SECONDS_PER_YEAR)
    return min(rate, WAD - 1)


def dilution_shares(supply: int, fee_per_share: int, price_after: int) -> int:
    """Shares that, at `price_after`, carry `fee_per_share` of value for every existing share."""
    if fee_per_share == 0:
        return 0
    return mul_div(supply, fee_per_share, price_after)


def compute_fee_accrual(
    *,
    supply_before: int,
    price_before: int,
    high_water_before: int,
    nav: int,
    elapsed_seconds: int,
    rates: FeeRates,
    scale: int,
    clamp: PerformanceClamp = PerformanceClamp.MINT_CLAMPED,
) -> FeeAccrual:
    """
    Apply management then performance fees to the price implied by `nav`.

    `nav` is in asset units; `scale` lifts it to 18 decimals. `price_before` is
    the last finalized price and is only used to sanity-check inputs.
    """
    if price_before <= 0:
        raise InvalidPriceError("prior share price must be positive")

    if supply_before == 0:
        # First contribution (or a fully drained pool): reset to par, no fees.
        return FeeAccrual(
            price_pre_fee=WAD,
            price_after_management=WAD,
            price_after=WAD,
            high_water_after=max(high_water_before, WAD),
            management_shares=0,
            performance_shares=0,
            management_assets=0,
            performance_assets=0,
        )

    price_pre = mul_div(normalize(nav, scale), WAD, supply_before)
    if price_pre == 0:
        raise InvalidPriceError(
            f"nav {nav} implies a zero share price for supply {supply_before}",
        )

    # -- Management fee (time based) -----------------------------------------
    mgmt_shares = 0
    price_mgmt = price_pre
    if elapsed_seconds > 0:
        rate = management_rate(rates.management_wad, elapsed_seconds)
        keep = WAD - rate
        price_mgmt = mul_div(price_pre, keep, WAD)
        if price_mgmt == 0:
            raise InvalidPriceError("management fee drives the share price to zero")
        mgmt_shares = mul_div(supply_before, rate, keep)
    supply_mid = supply_before + mgmt_shares

    # -- Performance fee (high-water-mark gated) -----------------------------
    perf_shares = 0
    price_after = price_mgmt
    high_water_after = high_water_before
    if price_mgmt > high_water_before:
        profit = price_mgmt - high_water_before
        fee_per_share = mul_div(profit, rates.performance_wad, WAD)
        if fee_per_share >= price_mgmt:
            fee_per_share = price_mgmt - 1 if clamp is PerformanceClamp.MINT_CLAMPED else 0
        price_after = price_mgmt - fee_per_share
        perf_shares = dilution_shares(supply_mid, fee_per_share, price_after)
        high_water_after = max(high_water_before, price_after)

    return FeeAccrual(
        price_pre_fee=price_pre,
        price_after_management=price_mgmt,
        price_after=price_after,
        high_water_after=high_water_after,
        management_shares=mgmt_shares,
        performance_shares=perf_shares,
        management_assets=denormalize(mul_div(mgmt_shares, price_after, WAD), scale),
        performance_assets=denormalize(mul_div(perf_shares, price_after, WAD), scale),
    )
