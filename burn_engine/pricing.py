"""
Pricing engine: pure quote functions used to size each buy.

Bonding-curve pools quote with the plain constant-product formula on
virtual reserves. AMM pools deduct a market-cap-tiered fee from the
input first. All math is on Python ints; results are clamped or checked
against the fixed widths the ledger stores.
"""
from dataclasses import dataclass

from .constants import (
    BPS_DENOMINATOR, FEE_TIERS, MAX_BUY_RESERVE_DIVISOR, MIN_POOL_LIQUIDITY,
    TIER_FLOOR_FEE_BPS,
)
from .errors import ErrorCode, ValidationError
from .utils.arith import U128_MAX, checked_add, checked_div, checked_mul, saturate_u64

BONDING_CURVE = 'bonding_curve'
AMM = 'amm'


def quote_constant_product(amount_in: int, virtual_quote_reserve: int,
                           virtual_base_reserve: int) -> int:
    """
    Base-asset output for `amount_in` of quote asset.

    Formula: out = amount_in * base / (quote + amount_in)

    Raises:
        ValidationError(InsufficientPoolLiquidity): Either reserve is zero.
    """
    if virtual_quote_reserve == 0 or virtual_base_reserve == 0:
        raise ValidationError(ErrorCode.INSUFFICIENT_POOL_LIQUIDITY, "Pool has an empty reserve")
    if amount_in == 0:
        return 0
    out = amount_in * virtual_base_reserve // (virtual_quote_reserve + amount_in)
    return saturate_u64(out)


def fee_tier_bps(market_cap: int) -> int:
    """Exchange fee in basis points for a market cap in lamports."""
    for ceiling, fee_bps in FEE_TIERS:
        if market_cap <= ceiling:
            return fee_bps
    return TIER_FLOOR_FEE_BPS


def quote_tiered_fee(amount_in: int, quote_reserve: int, base_reserve: int,
                     total_supply: int) -> int:
    """
    Constant-product quote after deducting the market-cap fee tier.

    Market cap = quote_reserve * total_supply / base_reserve, then:
    out = amount_in * (10000 - fee) * base / (quote * 10000 + amount_in * (10000 - fee))

    Raises:
        ValidationError(InsufficientPoolLiquidity): Either reserve is zero.
        ValidationError(InvalidPool): total_supply is zero.
        ValidationError(MathOverflow): An intermediate exceeds 128 bits.
    """
    if quote_reserve == 0 or base_reserve == 0:
        raise ValidationError(ErrorCode.INSUFFICIENT_POOL_LIQUIDITY, "Pool has an empty reserve")
    if total_supply == 0:
        raise ValidationError(ErrorCode.INVALID_POOL, "Token has no supply")

    market_cap = checked_div(checked_mul(quote_reserve, total_supply), base_reserve)
    fee_bps = fee_tier_bps(market_cap)

    amount_after_fee = checked_mul(amount_in, BPS_DENOMINATOR - fee_bps)
    numerator = checked_mul(amount_after_fee, base_reserve)
    denominator = checked_add(checked_mul(quote_reserve, BPS_DENOMINATOR), amount_after_fee)
    return saturate_u64(numerator // denominator)


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Minimum acceptable output for a tolerance in basis points."""
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


@dataclass(frozen=True)
class PoolReserves:
    """Snapshot of a pool's reserves as reported by the exchange."""
    virtual_quote_reserve: int
    virtual_base_reserve: int
    total_supply: int = 0
    kind: str = BONDING_CURVE

    def quote(self, amount_in: int) -> int:
        if self.kind == AMM:
            return quote_tiered_fee(
                amount_in, self.virtual_quote_reserve,
                self.virtual_base_reserve, self.total_supply,
            )
        if self.kind == BONDING_CURVE:
            return quote_constant_product(
                amount_in, self.virtual_quote_reserve, self.virtual_base_reserve,
            )
        raise ValidationError(ErrorCode.INVALID_POOL, f"Unknown pool kind: {self.kind}")

    @property
    def max_safe_buy(self) -> int:
        return self.virtual_quote_reserve // MAX_BUY_RESERVE_DIVISOR


def compute_buy_bounds(buy_amount: int, reserves: PoolReserves,
                       max_fees_per_cycle: int, slippage_bps: int) -> tuple[int, int]:
    """
    Size a buy against the current pool.

    Args:
        buy_amount: Spendable quote amount after reserves
        reserves: Current pool snapshot
        max_fees_per_cycle: Treasury cap on spend per cycle
        slippage_bps: Treasury slippage tolerance

    Returns:
        (max_spend, min_receive)
    """
    if reserves.virtual_quote_reserve < MIN_POOL_LIQUIDITY:
        raise ValidationError(
            ErrorCode.INSUFFICIENT_POOL_LIQUIDITY,
            f"Quote reserve {reserves.virtual_quote_reserve} below {MIN_POOL_LIQUIDITY}",
        )
    if reserves.virtual_base_reserve == 0:
        raise ValidationError(ErrorCode.INSUFFICIENT_POOL_LIQUIDITY, "Pool has no base reserve")

    max_spend = min(buy_amount, max_fees_per_cycle, reserves.max_safe_buy)
    expected = reserves.quote(max_spend)
    return max_spend, apply_slippage(expected, slippage_bps)


def price_impact_bps(amount_in: int, reserves: PoolReserves) -> int:
    """Spend as a share of the quote reserve, in basis points."""
    if reserves.virtual_quote_reserve == 0:
        return BPS_DENOMINATOR
    return min(amount_in * BPS_DENOMINATOR // reserves.virtual_quote_reserve, U128_MAX)
