"""
Validator protocol: permissionless registration of observed fee batches.

Anyone may report the fees a token earned over a slot window. A report
is accepted only if its window starts where the last accepted one
ended, is not too long, and its fee and transaction counts fit what
that many slots could plausibly produce. Accepted fees accumulate in the
token's `pending_fees`, which the orchestrator uses to share collected
fees between tokens.
"""
import logging
from typing import Optional

from .constants import (
    MAX_FEE_RATE_PER_SLOT, MAX_PENDING_FEES, MAX_SLOT_RANGE, MAX_TX_PER_SLOT,
)
from .cycle import require_admin
from .errors import ErrorCode, ValidationError
from .interfaces import Clock
from .state import ValidatorState
from .store import StateStore
from .utils.arith import saturating_add

logger = logging.getLogger(__name__)


class FeeValidator:
    def __init__(self, store: StateStore, clock: Clock, sync_requires_admin: bool = True):
        self.store = store
        self.clock = clock
        self.sync_requires_admin = sync_requires_admin

    def initialize_validator(self, mint: bytes, bonding_curve: bytes) -> ValidatorState:
        """Start attribution for `mint` from the current slot."""
        self.store.require_token_stats(mint)
        if self.store.get_validator(mint) is not None:
            raise ValidationError(
                ErrorCode.ACCOUNT_ALREADY_INITIALIZED,
                f"Validator for {mint.hex()[:8]} already exists",
            )
        validator = ValidatorState({
            'mint': mint,
            'bonding_curve': bonding_curve,
            'last_validated_slot': self.clock.slot(),
        })
        self.store.commit(validator)
        logger.info(f"Validator initialized for {mint.hex()[:8]} at slot {validator.last_validated_slot}")
        return validator

    def register(self, mint: bytes, fee_amount: int, end_slot: int, tx_count: int) -> ValidatorState:
        """
        Accept a fee batch covering (last_validated_slot, end_slot].

        Raises:
            ValidationError: StaleValidation, SlotRangeTooLarge, FeeTooHigh,
                TooManyTransactions or PendingFeesOverflow. Nothing changes
                on rejection.
        """
        if fee_amount < 0 or tx_count < 0:
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "Negative fee or transaction count")

        validator = self.store.require_validator(mint)
        stats = self.store.require_token_stats(mint)

        if end_slot <= validator.last_validated_slot:
            raise ValidationError(
                ErrorCode.STALE_VALIDATION,
                f"end_slot {end_slot} not after {validator.last_validated_slot}",
            )
        slot_delta = end_slot - validator.last_validated_slot
        if slot_delta > MAX_SLOT_RANGE:
            raise ValidationError(
                ErrorCode.SLOT_RANGE_TOO_LARGE,
                f"{slot_delta} slots exceeds {MAX_SLOT_RANGE}",
            )
        if fee_amount > slot_delta * MAX_FEE_RATE_PER_SLOT:
            raise ValidationError(
                ErrorCode.FEE_TOO_HIGH,
                f"{fee_amount} lamports over {slot_delta} slots",
            )
        if tx_count > slot_delta * MAX_TX_PER_SLOT:
            raise ValidationError(
                ErrorCode.TOO_MANY_TRANSACTIONS,
                f"{tx_count} transactions over {slot_delta} slots",
            )
        new_pending = saturating_add(stats.pending_fees, fee_amount)
        if new_pending > MAX_PENDING_FEES:
            raise ValidationError(
                ErrorCode.PENDING_FEES_OVERFLOW,
                f"pending fees would reach {new_pending}, ceiling {MAX_PENDING_FEES}",
            )

        validator.last_validated_slot = end_slot
        validator.total_validated_amount = saturating_add(validator.total_validated_amount, fee_amount)
        validator.total_validated_batches = saturating_add(validator.total_validated_batches, 1)
        stats.pending_fees = new_pending
        stats.last_fee_update_timestamp = self.clock.unix_timestamp()

        self.store.commit(validator, stats)
        logger.info(
            f"Registered {fee_amount} lamports for {mint.hex()[:8]} "
            f"up to slot {end_slot} ({tx_count} txs)"
        )
        return validator

    def sync(self, mint: bytes, signer: Optional[bytes] = None) -> ValidatorState:
        """
        Fast-forward a stale validator to the current slot.

        Fees in the skipped window are forfeited.
        """
        if self.sync_requires_admin:
            require_admin(self.store.require_treasury(), signer)
        validator = self.store.require_validator(mint)
        current_slot = self.clock.slot()
        gap = current_slot - validator.last_validated_slot
        if gap <= MAX_SLOT_RANGE:
            raise ValidationError(
                ErrorCode.VALIDATOR_NOT_STALE,
                f"Only {gap} slots behind, sync allowed beyond {MAX_SLOT_RANGE}",
            )
        old_slot = validator.last_validated_slot
        validator.last_validated_slot = current_slot
        self.store.commit(validator)
        logger.warning(f"Validator {mint.hex()[:8]} synced from slot {old_slot} to {current_slot}")
        return validator

    def reset(self, signer: bytes, mint: bytes) -> ValidatorState:
        """Admin override: move the validator to the current slot."""
        require_admin(self.store.require_treasury(), signer)
        validator = self.store.require_validator(mint)
        current_slot = self.clock.slot()
        if current_slot > validator.last_validated_slot:
            validator.last_validated_slot = current_slot
        self.store.commit(validator)
        logger.warning(f"Validator {mint.hex()[:8]} reset to slot {validator.last_validated_slot}")
        return validator
