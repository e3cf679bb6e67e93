"""
Fee-split governor: how a secondary token's fees divide between its own
buyback and the root treasury, and how that ratio may change.
"""
from .authority import ProgramAuthority
from .constants import (
    ATA_RENT_RESERVE, BPS_DENOMINATOR, MAX_FEE_SPLIT_BPS,
    MAX_FEE_SPLIT_DELTA_BPS, MIN_FEE_SPLIT_BPS, MINIMUM_BUY_AMOUNT,
    RENT_EXEMPT_MINIMUM, SAFETY_BUFFER,
)
from .errors import ErrorCode, ValidationError


def split_fees(total: int, fee_split_bps: int) -> tuple[int, int]:
    """
    Divide `total` into (retained, forwarded).

    The retained share is floored and the forwarded share takes the
    remainder, so the two always sum to `total`.
    """
    retained = total * fee_split_bps // BPS_DENOMINATOR
    forwarded = total - retained
    return retained, forwarded


def validate_fee_split(new_bps: int):
    if not MIN_FEE_SPLIT_BPS <= new_bps <= MAX_FEE_SPLIT_BPS:
        raise ValidationError(
            ErrorCode.INVALID_FEE_SPLIT,
            f"Fee split {new_bps} outside [{MIN_FEE_SPLIT_BPS}, {MAX_FEE_SPLIT_BPS}]",
        )


def validate_fee_split_change(current_bps: int, new_bps: int):
    """Range check, then the per-change delta limit."""
    validate_fee_split(new_bps)
    delta = abs(new_bps - current_bps)
    if delta > MAX_FEE_SPLIT_DELTA_BPS:
        raise ValidationError(
            ErrorCode.FEE_SPLIT_DELTA_TOO_LARGE,
            f"Fee split change of {delta} bps exceeds {MAX_FEE_SPLIT_DELTA_BPS}",
        )


def verify_root_treasury(authority: ProgramAuthority, candidate: bytes, root_mint: bytes) -> bytes:
    """Recompute the root treasury address and reject any other destination."""
    expected = authority.root_treasury_address(root_mint)
    if candidate != expected:
        raise ValidationError(
            ErrorCode.INVALID_ROOT_TREASURY,
            f"Root treasury {candidate.hex()[:8]} does not match derivation {expected.hex()[:8]}",
        )
    return expected


def min_allocation_secondary(fee_split_bps: int) -> int:
    """
    Smallest ecosystem allocation whose retained share still covers rent,
    the safety buffer, the token-account reserve and a minimum buy.
    """
    required = RENT_EXEMPT_MINIMUM + SAFETY_BUFFER + ATA_RENT_RESERVE + MINIMUM_BUY_AMOUNT
    return -(-required * BPS_DENOMINATOR // fee_split_bps)
