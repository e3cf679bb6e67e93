"""
Fee-split governor and saturating arithmetic.
"""
import unittest

from burn_engine.authority import ProgramAuthority
from burn_engine.constants import DEFAULT_PROGRAM_ID
from burn_engine.errors import ErrorCode, ValidationError
from burn_engine.fee_split import (
    min_allocation_secondary, split_fees, validate_fee_split,
    validate_fee_split_change, verify_root_treasury,
)
from burn_engine.utils.arith import (
    U64_MAX, checked_add, checked_mul, saturating_add, saturating_sub,
)


class TestSplitFees(unittest.TestCase):
    def test_reference_split(self):
        retained, forwarded = split_fees(100_000_000, 5520)
        self.assertEqual(forwarded, 44_800_000)
        self.assertEqual(retained, 55_200_000)

    def test_split_sums_to_total(self):
        for bps in range(1000, 9001, 37):
            for total in (0, 1, 7, 999, 5_500_000, 123_456_789, U64_MAX):
                retained, forwarded = split_fees(total, bps)
                self.assertEqual(retained + forwarded, total)
                self.assertGreaterEqual(forwarded, 0)

    def test_range_bounds(self):
        validate_fee_split(1000)
        validate_fee_split(9000)
        for bad in (999, 9001, 0, 10_000):
            with self.assertRaises(ValidationError) as ctx:
                validate_fee_split(bad)
            self.assertEqual(ctx.exception.code, ErrorCode.INVALID_FEE_SPLIT)

    def test_delta_limit(self):
        validate_fee_split_change(5520, 6020)
        validate_fee_split_change(5520, 5020)
        with self.assertRaises(ValidationError) as ctx:
            validate_fee_split_change(5520, 6021)
        self.assertEqual(ctx.exception.code, ErrorCode.FEE_SPLIT_DELTA_TOO_LARGE)

    def test_range_checked_before_delta(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_fee_split_change(1200, 900)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_FEE_SPLIT)

    def test_min_allocation_at_default_split(self):
        self.assertEqual(min_allocation_secondary(5520), 5_690_000)

    def test_root_treasury_derivation(self):
        authority = ProgramAuthority(DEFAULT_PROGRAM_ID)
        root = b'\x07' * 32
        expected = authority.root_treasury_address(root)
        self.assertEqual(verify_root_treasury(authority, expected, root), expected)
        with self.assertRaises(ValidationError) as ctx:
            verify_root_treasury(authority, b'\x01' * 32, root)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_ROOT_TREASURY)


class TestArithmetic(unittest.TestCase):
    def test_saturating_add_at_max(self):
        self.assertEqual(saturating_add(U64_MAX, 1), U64_MAX)
        self.assertEqual(saturating_add(U64_MAX, U64_MAX), U64_MAX)
        self.assertEqual(saturating_add(U64_MAX - 1, 1), U64_MAX)

    def test_saturating_sub_floor(self):
        self.assertEqual(saturating_sub(5, 10), 0)
        self.assertEqual(saturating_sub(10, 5), 5)

    def test_checked_ops_raise_math_overflow(self):
        with self.assertRaises(ValidationError) as ctx:
            checked_mul(2**100, 2**100)
        self.assertEqual(ctx.exception.code, ErrorCode.MATH_OVERFLOW)
        with self.assertRaises(ValidationError):
            checked_add(2**128 - 1, 1)


if __name__ == '__main__':
    unittest.main()
