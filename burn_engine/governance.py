"""
Administrative operations on the treasury.

Every call here requires the current admin's signature except
`accept_admin_transfer`, which requires the proposed admin's.
"""
import logging
from typing import Optional

from .constants import MAX_SLIPPAGE_BPS
from .cycle import require_admin
from .errors import ErrorCode, ValidationError
from .fee_split import validate_fee_split_change
from .interfaces import Clock
from .state import TreasuryState
from .store import StateStore

logger = logging.getLogger(__name__)


class Governance:
    def __init__(self, store: StateStore, clock: Clock):
        self.store = store
        self.clock = clock

    def _admin_treasury(self, signer: bytes) -> TreasuryState:
        treasury = self.store.require_treasury()
        require_admin(treasury, signer)
        return treasury

    # ==========================================================================
    # ADMIN TRANSFER
    # ==========================================================================

    def propose_admin_transfer(self, signer: bytes, new_admin: bytes) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        if not new_admin or new_admin == treasury.admin:
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "New admin must differ from current")
        treasury.pending_admin = new_admin
        self.store.commit(treasury)
        logger.info(f"Admin transfer proposed to {new_admin.hex()[:8]}")
        return treasury

    def accept_admin_transfer(self, signer: bytes) -> TreasuryState:
        treasury = self.store.require_treasury()
        if treasury.pending_admin is None:
            raise ValidationError(ErrorCode.NO_PENDING_ADMIN_TRANSFER, "No admin transfer pending")
        if signer != treasury.pending_admin:
            raise ValidationError(ErrorCode.UNAUTHORIZED_ACCESS, "Signer is not the proposed admin")
        old_admin = treasury.admin
        treasury.admin = treasury.pending_admin
        treasury.pending_admin = None
        self.store.commit(treasury)
        logger.info(f"Admin changed from {old_admin.hex()[:8]} to {treasury.admin.hex()[:8]}")
        return treasury

    def cancel_admin_transfer(self, signer: bytes) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        if treasury.pending_admin is None:
            raise ValidationError(ErrorCode.NO_PENDING_ADMIN_TRANSFER, "No admin transfer pending")
        treasury.pending_admin = None
        self.store.commit(treasury)
        logger.info("Admin transfer cancelled")
        return treasury

    # ==========================================================================
    # FEE SPLIT
    # ==========================================================================

    def propose_fee_split(self, signer: bytes, new_bps: int) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        validate_fee_split_change(treasury.fee_split_bps, new_bps)
        treasury.pending_fee_split = new_bps
        treasury.pending_fee_split_timestamp = self.clock.unix_timestamp()
        self.store.commit(treasury)
        logger.info(f"Fee split change proposed: {treasury.fee_split_bps} -> {new_bps} bps")
        return treasury

    def execute_fee_split(self, signer: bytes) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        if treasury.pending_fee_split is None:
            raise ValidationError(ErrorCode.NO_PENDING_FEE_SPLIT, "No fee split change pending")
        elapsed = self.clock.unix_timestamp() - treasury.pending_fee_split_timestamp
        if elapsed < treasury.admin_operation_cooldown:
            raise ValidationError(
                ErrorCode.TIMELOCK_NOT_EXPIRED,
                f"{treasury.admin_operation_cooldown - elapsed}s left on timelock",
            )
        # the split may have moved through the direct path since proposal
        validate_fee_split_change(treasury.fee_split_bps, treasury.pending_fee_split)

        old_bps = treasury.fee_split_bps
        treasury.fee_split_bps = treasury.pending_fee_split
        treasury.pending_fee_split = None
        treasury.pending_fee_split_timestamp = 0
        self.store.commit(treasury)
        logger.info(f"Fee split changed: {old_bps} -> {treasury.fee_split_bps} bps")
        return treasury

    def cancel_fee_split(self, signer: bytes) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        if treasury.pending_fee_split is None:
            raise ValidationError(ErrorCode.NO_PENDING_FEE_SPLIT, "No fee split change pending")
        treasury.pending_fee_split = None
        treasury.pending_fee_split_timestamp = 0
        self.store.commit(treasury)
        logger.info("Fee split change cancelled")
        return treasury

    def update_fee_split(self, signer: bytes, new_bps: int) -> TreasuryState:
        """Direct bounded update, rate limited by the admin cooldown."""
        treasury = self._admin_treasury(signer)
        validate_fee_split_change(treasury.fee_split_bps, new_bps)
        now = self.clock.unix_timestamp()
        if treasury.last_direct_fee_split_timestamp:
            elapsed = now - treasury.last_direct_fee_split_timestamp
            if elapsed < treasury.admin_operation_cooldown:
                raise ValidationError(
                    ErrorCode.TIMELOCK_NOT_EXPIRED,
                    f"Direct fee split update allowed in {treasury.admin_operation_cooldown - elapsed}s",
                )
        old_bps = treasury.fee_split_bps
        treasury.fee_split_bps = new_bps
        treasury.last_direct_fee_split_timestamp = now
        self.store.commit(treasury)
        logger.info(f"Fee split updated directly: {old_bps} -> {new_bps} bps")
        return treasury

    # ==========================================================================
    # PARAMETERS AND HIERARCHY
    # ==========================================================================

    def update_parameters(self, signer: bytes,
                          min_fees_threshold: Optional[int] = None,
                          max_fees_per_cycle: Optional[int] = None,
                          slippage_bps: Optional[int] = None,
                          min_cycle_interval: Optional[int] = None,
                          admin_operation_cooldown: Optional[int] = None) -> TreasuryState:
        treasury = self._admin_treasury(signer)

        new_min = treasury.min_fees_threshold if min_fees_threshold is None else min_fees_threshold
        new_max = treasury.max_fees_per_cycle if max_fees_per_cycle is None else max_fees_per_cycle
        new_slippage = treasury.slippage_bps if slippage_bps is None else slippage_bps
        new_interval = treasury.min_cycle_interval if min_cycle_interval is None else min_cycle_interval
        new_cooldown = (treasury.admin_operation_cooldown if admin_operation_cooldown is None
                        else admin_operation_cooldown)

        if min(new_min, new_max, new_slippage, new_interval, new_cooldown) < 0:
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "Parameters must be non-negative")
        if new_slippage > MAX_SLIPPAGE_BPS:
            raise ValidationError(
                ErrorCode.SLIPPAGE_CONFIG_TOO_HIGH,
                f"Slippage {new_slippage} bps above {MAX_SLIPPAGE_BPS}",
            )
        if new_max < new_min:
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "max_fees_per_cycle below threshold")

        treasury.min_fees_threshold = new_min
        treasury.max_fees_per_cycle = new_max
        treasury.slippage_bps = new_slippage
        treasury.min_cycle_interval = new_interval
        treasury.admin_operation_cooldown = new_cooldown
        self.store.commit(treasury)
        logger.info(f"Parameters updated: {treasury!r}")
        return treasury

    def set_root_token(self, signer: bytes, root_mint: bytes) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        new_root = self.store.get_token_stats(root_mint)
        if new_root is None:
            raise ValidationError(ErrorCode.INVALID_ROOT_TOKEN, "Root token has no stats")

        records = [treasury]
        if treasury.root_token is not None and treasury.root_token != root_mint:
            old_root = self.store.get_token_stats(treasury.root_token)
            if old_root is not None:
                old_root.is_root_token = False
                records.append(old_root)
        new_root.is_root_token = True
        records.append(new_root)
        treasury.root_token = root_mint
        self.store.commit(*records)
        logger.info(f"Root token set to {root_mint.hex()[:8]}")
        return treasury

    # ==========================================================================
    # EMERGENCY
    # ==========================================================================

    def emergency_pause(self, signer: bytes) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        treasury.emergency_pause = True
        treasury.is_active = False
        self.store.commit(treasury)
        logger.warning("Emergency pause engaged")
        return treasury

    def resume(self, signer: bytes) -> TreasuryState:
        treasury = self._admin_treasury(signer)
        treasury.emergency_pause = False
        treasury.is_active = True
        treasury.consecutive_failures = 0
        self.store.commit(treasury)
        logger.info("Engine resumed")
        return treasury
