"""
Persistent ledger records: the treasury singleton, per-token statistics
and per-token validator state.

Each record carries a `version` used by the store for compare-and-swap
commits. Records are plain data plus invariant checks; the controllers
decide how they change.
"""
from typing import Optional

from .constants import (
    DEFAULT_ADMIN_OPERATION_COOLDOWN, DEFAULT_FEE_SPLIT_BPS,
    DEFAULT_VALIDATOR_FEE_RATE_BPS, INITIAL_SLIPPAGE_BPS,
    IN_FLIGHT_BURN, IN_FLIGHT_BUY, MAX_CONSECUTIVE_FAILURES, MAX_FEE_SPLIT_BPS, MAX_FEES_PER_CYCLE,
    MAX_PENDING_FEES, MAX_SLIPPAGE_BPS, MIN_CYCLE_INTERVAL,
    MIN_FEE_SPLIT_BPS, MIN_FEES_TO_CLAIM, NONCE_PREFIX, TOKEN_STATS_PREFIX,
    TREASURY_STATE_KEY, VALIDATOR_STATE_PREFIX,
)


def _opt_bytes(value) -> Optional[bytes]:
    return bytes(value) if value is not None else None


def _short(address: Optional[bytes]) -> str:
    return address.hex()[:8] if address else "None"


class TreasuryState:
    """
    Global treasury configuration and cumulative counters (singleton).
    """

    def __init__(self, data: dict = None):
        if data is None:
            data = {}

        self.version = int(data.get('version', 0))

        # Identities
        self.admin = _opt_bytes(data.get('admin'))
        self.asdf_mint = _opt_bytes(data.get('asdf_mint'))
        self.wsol_mint = _opt_bytes(data.get('wsol_mint'))
        self.pool_address = _opt_bytes(data.get('pool_address'))

        # Cumulative counters
        self.total_burned = int(data.get('total_burned', 0))
        self.total_sol_collected = int(data.get('total_sol_collected', 0))
        self.total_buybacks = int(data.get('total_buybacks', 0))
        self.failed_cycles = int(data.get('failed_cycles', 0))
        self.consecutive_failures = int(data.get('consecutive_failures', 0))

        # Flags
        self.is_active = bool(data.get('is_active', True))
        self.emergency_pause = bool(data.get('emergency_pause', False))

        # Timing
        self.last_cycle_timestamp = int(data.get('last_cycle_timestamp', 0))
        self.initialized_at = int(data.get('initialized_at', 0))
        self.min_cycle_interval = int(data.get('min_cycle_interval', MIN_CYCLE_INTERVAL))

        # Bounds
        self.min_fees_threshold = int(data.get('min_fees_threshold', MIN_FEES_TO_CLAIM))
        self.max_fees_per_cycle = int(data.get('max_fees_per_cycle', MAX_FEES_PER_CYCLE))
        self.slippage_bps = int(data.get('slippage_bps', INITIAL_SLIPPAGE_BPS))

        # Cycle scratch
        self.pending_burn_amount = int(data.get('pending_burn_amount', 0))
        self.pending_burn_mint = _opt_bytes(data.get('pending_burn_mint'))
        self.last_cycle_sol = int(data.get('last_cycle_sol', 0))
        self.last_cycle_burned = int(data.get('last_cycle_burned', 0))
        self.last_sol_sent_to_root = int(data.get('last_sol_sent_to_root', 0))
        self.in_flight_operation = data.get('in_flight_operation') or ''
        self.in_flight_amount = int(data.get('in_flight_amount', 0))

        # Hierarchy
        self.root_token = _opt_bytes(data.get('root_token'))
        self.fee_split_bps = int(data.get('fee_split_bps', DEFAULT_FEE_SPLIT_BPS))

        # Governance
        self.pending_admin = _opt_bytes(data.get('pending_admin'))
        self.pending_fee_split = data.get('pending_fee_split')
        if self.pending_fee_split is not None:
            self.pending_fee_split = int(self.pending_fee_split)
        self.pending_fee_split_timestamp = int(data.get('pending_fee_split_timestamp', 0))
        self.admin_operation_cooldown = int(
            data.get('admin_operation_cooldown', DEFAULT_ADMIN_OPERATION_COOLDOWN)
        )
        self.last_direct_fee_split_timestamp = int(data.get('last_direct_fee_split_timestamp', 0))

        self.authority_bump = int(data.get('authority_bump', 0))
        self._validate()

    key = TREASURY_STATE_KEY

    def _validate(self):
        if not MIN_FEE_SPLIT_BPS <= self.fee_split_bps <= MAX_FEE_SPLIT_BPS:
            raise ValueError(f"fee_split_bps out of range: {self.fee_split_bps}")
        if self.slippage_bps > MAX_SLIPPAGE_BPS:
            raise ValueError(f"slippage_bps out of range: {self.slippage_bps}")
        if self.consecutive_failures >= MAX_CONSECUTIVE_FAILURES and not self.emergency_pause:
            raise ValueError("Circuit breaker threshold reached without pause")
        if self.pending_burn_amount > 0 and self.pending_burn_mint is None:
            raise ValueError("Pending burn without a mint")
        if self.in_flight_operation not in ('', IN_FLIGHT_BUY, IN_FLIGHT_BURN):
            raise ValueError(f"Unknown in-flight operation: {self.in_flight_operation}")
        if self.in_flight_operation and self.pending_burn_mint is None:
            raise ValueError("In-flight operation without a mint")
        if self.in_flight_amount and self.in_flight_operation != IN_FLIGHT_BURN:
            raise ValueError("In-flight amount outside a burn")

    @property
    def is_operational(self) -> bool:
        return self.is_active and not self.emergency_pause

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'admin': self.admin,
            'asdf_mint': self.asdf_mint,
            'wsol_mint': self.wsol_mint,
            'pool_address': self.pool_address,
            'total_burned': self.total_burned,
            'total_sol_collected': self.total_sol_collected,
            'total_buybacks': self.total_buybacks,
            'failed_cycles': self.failed_cycles,
            'consecutive_failures': self.consecutive_failures,
            'is_active': self.is_active,
            'emergency_pause': self.emergency_pause,
            'last_cycle_timestamp': self.last_cycle_timestamp,
            'initialized_at': self.initialized_at,
            'min_cycle_interval': self.min_cycle_interval,
            'min_fees_threshold': self.min_fees_threshold,
            'max_fees_per_cycle': self.max_fees_per_cycle,
            'slippage_bps': self.slippage_bps,
            'pending_burn_amount': self.pending_burn_amount,
            'pending_burn_mint': self.pending_burn_mint,
            'last_cycle_sol': self.last_cycle_sol,
            'last_cycle_burned': self.last_cycle_burned,
            'last_sol_sent_to_root': self.last_sol_sent_to_root,
            'in_flight_operation': self.in_flight_operation,
            'in_flight_amount': self.in_flight_amount,
            'root_token': self.root_token,
            'fee_split_bps': self.fee_split_bps,
            'pending_admin': self.pending_admin,
            'pending_fee_split': self.pending_fee_split,
            'pending_fee_split_timestamp': self.pending_fee_split_timestamp,
            'admin_operation_cooldown': self.admin_operation_cooldown,
            'last_direct_fee_split_timestamp': self.last_direct_fee_split_timestamp,
            'authority_bump': self.authority_bump,
        }

    def __repr__(self) -> str:
        return (
            f"TreasuryState("
            f"admin={_short(self.admin)}, "
            f"active={self.is_active}, "
            f"paused={self.emergency_pause}, "
            f"burned={self.total_burned}, "
            f"collected={self.total_sol_collected}, "
            f"fee_split_bps={self.fee_split_bps}, "
            f"pending_burn={self.pending_burn_amount})"
        )


class TokenStats:
    """Per-token accounting for the fee-sharing hierarchy."""

    def __init__(self, data: dict = None):
        if data is None:
            data = {}

        self.version = int(data.get('version', 0))
        self.mint = _opt_bytes(data.get('mint'))

        self.total_burned = int(data.get('total_burned', 0))
        self.total_sol_collected = int(data.get('total_sol_collected', 0))
        self.total_sol_used = int(data.get('total_sol_used', 0))
        self.total_sol_sent_to_root = int(data.get('total_sol_sent_to_root', 0))
        self.total_sol_received_from_others = int(data.get('total_sol_received_from_others', 0))
        self.total_buybacks = int(data.get('total_buybacks', 0))

        self.last_cycle_timestamp = int(data.get('last_cycle_timestamp', 0))
        self.last_cycle_sol = int(data.get('last_cycle_sol', 0))
        self.last_cycle_burned = int(data.get('last_cycle_burned', 0))

        self.is_root_token = bool(data.get('is_root_token', False))
        self.pending_fees = int(data.get('pending_fees', 0))
        self.last_fee_update_timestamp = int(data.get('last_fee_update_timestamp', 0))
        self.cycles_participated = int(data.get('cycles_participated', 0))
        self._validate()

    @staticmethod
    def key_for(mint: bytes) -> bytes:
        return TOKEN_STATS_PREFIX + mint

    @property
    def key(self) -> bytes:
        return self.key_for(self.mint)

    def _validate(self):
        if self.mint is None:
            raise ValueError("TokenStats requires a mint")
        if self.pending_fees > MAX_PENDING_FEES:
            raise ValueError(f"pending_fees above ceiling: {self.pending_fees}")

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'mint': self.mint,
            'total_burned': self.total_burned,
            'total_sol_collected': self.total_sol_collected,
            'total_sol_used': self.total_sol_used,
            'total_sol_sent_to_root': self.total_sol_sent_to_root,
            'total_sol_received_from_others': self.total_sol_received_from_others,
            'total_buybacks': self.total_buybacks,
            'last_cycle_timestamp': self.last_cycle_timestamp,
            'last_cycle_sol': self.last_cycle_sol,
            'last_cycle_burned': self.last_cycle_burned,
            'is_root_token': self.is_root_token,
            'pending_fees': self.pending_fees,
            'last_fee_update_timestamp': self.last_fee_update_timestamp,
            'cycles_participated': self.cycles_participated,
        }

    def __repr__(self) -> str:
        return (
            f"TokenStats("
            f"mint={_short(self.mint)}, "
            f"root={self.is_root_token}, "
            f"burned={self.total_burned}, "
            f"pending_fees={self.pending_fees}, "
            f"cycles={self.cycles_participated})"
        )


class ValidatorState:
    """Trustless fee attribution progress for one token."""

    def __init__(self, data: dict = None):
        if data is None:
            data = {}

        self.version = int(data.get('version', 0))
        self.mint = _opt_bytes(data.get('mint'))
        self.bonding_curve = _opt_bytes(data.get('bonding_curve'))
        self.last_validated_slot = int(data.get('last_validated_slot', 0))
        self.total_validated_amount = int(data.get('total_validated_amount', 0))
        self.total_validated_batches = int(data.get('total_validated_batches', 0))
        self.fee_rate_bps = int(data.get('fee_rate_bps', DEFAULT_VALIDATOR_FEE_RATE_BPS))
        if self.mint is None:
            raise ValueError("ValidatorState requires a mint")

    @staticmethod
    def key_for(mint: bytes) -> bytes:
        return VALIDATOR_STATE_PREFIX + mint

    @property
    def key(self) -> bytes:
        return self.key_for(self.mint)

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'mint': self.mint,
            'bonding_curve': self.bonding_curve,
            'last_validated_slot': self.last_validated_slot,
            'total_validated_amount': self.total_validated_amount,
            'total_validated_batches': self.total_validated_batches,
            'fee_rate_bps': self.fee_rate_bps,
        }

    def __repr__(self) -> str:
        return (
            f"ValidatorState(mint={_short(self.mint)}, "
            f"slot={self.last_validated_slot}, "
            f"batches={self.total_validated_batches})"
        )


class NonceRecord:
    """Next expected instruction nonce for a signer."""

    def __init__(self, data: dict = None):
        if data is None:
            data = {}
        self.version = int(data.get('version', 0))
        self.address = _opt_bytes(data.get('address'))
        self.nonce = int(data.get('nonce', 0))

    @staticmethod
    def key_for(address: bytes) -> bytes:
        return NONCE_PREFIX + address

    @property
    def key(self) -> bytes:
        return self.key_for(self.address)

    def to_dict(self) -> dict:
        return {'version': self.version, 'address': self.address, 'nonce': self.nonce}

    def __repr__(self) -> str:
        return f"NonceRecord(address={_short(self.address)}, nonce={self.nonce})"
