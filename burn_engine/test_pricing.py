"""
Pricing engine: constant-product and tiered-fee quotes, buy sizing.
"""
import pytest

from burn_engine.constants import FEE_TIERS, MIN_POOL_LIQUIDITY
from burn_engine.errors import ErrorCode, ValidationError
from burn_engine.pricing import (
    AMM, PoolReserves, apply_slippage, compute_buy_bounds, fee_tier_bps,
    quote_constant_product, quote_tiered_fee,
)
from burn_engine.utils.arith import U64_MAX


class TestConstantProduct:
    def test_reference_quote(self):
        assert quote_constant_product(100_000_000, 10_000_000_000, 1_000_000_000_000) == 9_900_990_099

    def test_zero_input_yields_zero(self):
        assert quote_constant_product(0, 10_000_000_000, 1_000_000_000_000) == 0

    def test_monotonic_in_input(self):
        previous = 0
        for amount in [0, 1, 10, 1_000, 100_000, 10_000_000, 1_000_000_000, 10**15]:
            out = quote_constant_product(amount, 30_000_000_000, 1_073_000_000_000_000)
            assert out >= previous
            previous = out

    def test_output_below_base_reserve(self):
        assert quote_constant_product(10**18, 1_000, 5_000) < 5_000

    @pytest.mark.parametrize("quote,base", [(0, 1_000), (1_000, 0)])
    def test_empty_reserve_rejected(self, quote, base):
        with pytest.raises(ValidationError) as exc:
            quote_constant_product(100, quote, base)
        assert exc.value.code == ErrorCode.INSUFFICIENT_POOL_LIQUIDITY

    def test_result_saturates_to_u64(self):
        assert quote_constant_product(10**30, 1, 10**30) == U64_MAX


class TestFeeTiers:
    def test_first_and_last_tier(self):
        assert fee_tier_bps(0) == 125
        assert fee_tier_bps(85_000_000_000) == 125
        assert fee_tier_bps(85_000_000_001) == 120
        assert fee_tier_bps(20_000_000_000_000) == 33
        assert fee_tier_bps(20_000_000_000_001) == 30

    def test_tiers_never_increase(self):
        fees = [fee for _, fee in FEE_TIERS] + [30]
        assert fees == sorted(fees, reverse=True)
        assert len(FEE_TIERS) + 1 == 26

    def test_tiered_quote_below_plain_quote(self):
        plain = quote_constant_product(1_000_000_000, 50_000_000_000, 800_000_000_000_000)
        tiered = quote_tiered_fee(1_000_000_000, 50_000_000_000, 800_000_000_000_000,
                                  1_000_000_000_000_000)
        assert 0 < tiered < plain

    def test_zero_supply_is_invalid_pool(self):
        with pytest.raises(ValidationError) as exc:
            quote_tiered_fee(1_000, 50_000_000_000, 800_000_000_000_000, 0)
        assert exc.value.code == ErrorCode.INVALID_POOL

    def test_intermediate_overflow_detected(self):
        with pytest.raises(ValidationError) as exc:
            quote_tiered_fee(2**120, 2**100, 2**100, 1)
        assert exc.value.code == ErrorCode.MATH_OVERFLOW


class TestBuyBounds:
    def test_slippage(self):
        assert apply_slippage(1_000_000, 500) == 950_000
        assert apply_slippage(1_000_000, 0) == 1_000_000

    def test_spend_capped_at_one_percent_of_reserve(self):
        reserves = PoolReserves(virtual_quote_reserve=1_000_000_000, virtual_base_reserve=10**15)
        max_spend, min_receive = compute_buy_bounds(500_000_000, reserves, 10**12, 500)
        assert max_spend == 10_000_000
        assert min_receive == apply_slippage(reserves.quote(10_000_000), 500)

    def test_spend_capped_by_cycle_maximum(self):
        reserves = PoolReserves(virtual_quote_reserve=30_000_000_000, virtual_base_reserve=10**15)
        max_spend, _ = compute_buy_bounds(100_000_000, reserves, 40_000_000, 100)
        assert max_spend == 40_000_000

    def test_shallow_pool_rejected(self):
        reserves = PoolReserves(virtual_quote_reserve=MIN_POOL_LIQUIDITY - 1, virtual_base_reserve=10**15)
        with pytest.raises(ValidationError) as exc:
            compute_buy_bounds(1_000_000, reserves, 10**12, 500)
        assert exc.value.code == ErrorCode.INSUFFICIENT_POOL_LIQUIDITY

    def test_amm_pool_uses_tiered_quote(self):
        reserves = PoolReserves(50_000_000_000, 800_000_000_000_000, 1_000_000_000_000_000, AMM)
        assert reserves.quote(1_000_000) == quote_tiered_fee(
            1_000_000, 50_000_000_000, 800_000_000_000_000, 1_000_000_000_000_000)

    def test_unknown_pool_kind(self):
        with pytest.raises(ValidationError) as exc:
            PoolReserves(1, 1, 1, 'orderbook').quote(1)
        assert exc.value.code == ErrorCode.INVALID_POOL
