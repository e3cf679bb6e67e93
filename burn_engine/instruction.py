"""
Signed operator instructions.
"""
import time
import msgpack
from typing import Optional
from .crypto import (
    generate_hash,
    public_key_to_address,
    sign,
    verify_signature,
)

# Cycle
INITIALIZE_TOKEN_STATS = "INITIALIZE_TOKEN_STATS"
COLLECT_FEES = "COLLECT_FEES"
EXECUTE_BUY = "EXECUTE_BUY"
BURN_AND_UPDATE = "BURN_AND_UPDATE"
FINALIZE_ALLOCATED_CYCLE = "FINALIZE_ALLOCATED_CYCLE"
RECORD_FAILURE = "RECORD_FAILURE"
RUN_ECOSYSTEM_CYCLE = "RUN_ECOSYSTEM_CYCLE"

# Validator
INITIALIZE_VALIDATOR = "INITIALIZE_VALIDATOR"
REGISTER_VALIDATED_FEES = "REGISTER_VALIDATED_FEES"
SYNC_VALIDATOR_SLOT = "SYNC_VALIDATOR_SLOT"
RESET_VALIDATOR_SLOT = "RESET_VALIDATOR_SLOT"

# Governance
PROPOSE_ADMIN_TRANSFER = "PROPOSE_ADMIN_TRANSFER"
ACCEPT_ADMIN_TRANSFER = "ACCEPT_ADMIN_TRANSFER"
CANCEL_ADMIN_TRANSFER = "CANCEL_ADMIN_TRANSFER"
PROPOSE_FEE_SPLIT = "PROPOSE_FEE_SPLIT"
EXECUTE_FEE_SPLIT = "EXECUTE_FEE_SPLIT"
CANCEL_FEE_SPLIT = "CANCEL_FEE_SPLIT"
UPDATE_FEE_SPLIT = "UPDATE_FEE_SPLIT"
UPDATE_PARAMETERS = "UPDATE_PARAMETERS"
SET_ROOT_TOKEN = "SET_ROOT_TOKEN"
EMERGENCY_PAUSE = "EMERGENCY_PAUSE"
RESUME = "RESUME"

# Fields that must be present, by instruction type
REQUIRED_FIELDS = {
    INITIALIZE_TOKEN_STATS: ('mint',),
    COLLECT_FEES: ('mint',),
    EXECUTE_BUY: ('mint',),
    BURN_AND_UPDATE: ('mint',),
    FINALIZE_ALLOCATED_CYCLE: ('mint', 'participated'),
    RECORD_FAILURE: (),
    RUN_ECOSYSTEM_CYCLE: ('secondaries',),
    INITIALIZE_VALIDATOR: ('mint', 'bonding_curve'),
    REGISTER_VALIDATED_FEES: ('mint', 'fee_amount', 'end_slot', 'tx_count'),
    SYNC_VALIDATOR_SLOT: ('mint',),
    RESET_VALIDATOR_SLOT: ('mint',),
    PROPOSE_ADMIN_TRANSFER: ('new_admin',),
    ACCEPT_ADMIN_TRANSFER: (),
    CANCEL_ADMIN_TRANSFER: (),
    PROPOSE_FEE_SPLIT: ('fee_split_bps',),
    EXECUTE_FEE_SPLIT: (),
    CANCEL_FEE_SPLIT: (),
    UPDATE_FEE_SPLIT: ('fee_split_bps',),
    UPDATE_PARAMETERS: (),
    SET_ROOT_TOKEN: ('root_mint',),
    EMERGENCY_PAUSE: (),
    RESUME: (),
}

# Expected types of instruction data fields, required or optional
FIELD_TYPES = {
    'mint': bytes,
    'bonding_curve': bytes,
    'root_treasury': bytes,
    'new_admin': bytes,
    'root_mint': bytes,
    'is_root_token': bool,
    'for_ecosystem': bool,
    'is_secondary': bool,
    'participated': bool,
    'error_code': str,
    'secondaries': list,
    'allocated': int,
    'fee_amount': int,
    'end_slot': int,
    'tx_count': int,
    'fee_split_bps': int,
    'min_fees_threshold': int,
    'max_fees_per_cycle': int,
    'slippage_bps': int,
    'min_cycle_interval': int,
    'admin_operation_cooldown': int,
}


def _field_type_error(name, value) -> Optional[str]:
    expected = FIELD_TYPES.get(name)
    if expected is None or value is None:
        return None
    # bool is an int subclass; keep flags and amounts apart
    if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
        return f"{name} must be an integer"
    if not isinstance(value, expected):
        return f"{name} must be {expected.__name__}"
    if name == 'secondaries' and not all(isinstance(m, bytes) for m in value):
        return "secondaries must be a list of mints"
    return None


class Instruction:
    def __init__(self,
                 signer_public_key: str,
                 ix_type: str,
                 data: dict,
                 nonce: int,
                 signature: Optional[bytes] = None,
                 timestamp: Optional[float] = None):
        self.signer_public_key = signer_public_key
        self.ix_type = ix_type
        self.data = data
        self.nonce = nonce
        self.signature = signature
        self.timestamp = timestamp or time.time()

    @classmethod
    def from_dict(cls, data: dict):
        signature = data.get("signature")
        if isinstance(signature, str):
            signature = bytes.fromhex(signature)
        return cls(
            signer_public_key=data["signer_public_key"],
            ix_type=data["ix_type"],
            data=data["data"],
            nonce=data["nonce"],
            signature=signature,
            timestamp=data.get("timestamp"),
        )

    def to_dict(self, include_signature=True):
        data = {
            "signer_public_key": self.signer_public_key,
            "ix_type": self.ix_type,
            "data": self.data,
            "nonce": self.nonce,
            "timestamp": self.timestamp,
        }
        if include_signature and self.signature:
            data["signature"] = self.signature
        return data

    def get_signing_data(self) -> bytes:
        """Canonical bytes covered by the signature."""
        return msgpack.packb(self.to_dict(include_signature=False), use_bin_type=True)

    def sign(self, private_key):
        self.signature = sign(private_key, self.get_signing_data())

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return verify_signature(self.signer_public_key, self.signature, self.get_signing_data())

    @property
    def signer(self) -> bytes:
        return public_key_to_address(self.signer_public_key)

    @property
    def id(self) -> bytes:
        return generate_hash(self.get_signing_data())

    def validate_basic(self) -> tuple[bool, str]:
        """
        Stateless checks before dispatch.
        Returns (is_valid, error_message)
        """
        if self.ix_type not in REQUIRED_FIELDS:
            return False, f"Unknown instruction type {self.ix_type}"
        if not isinstance(self.nonce, int) or self.nonce < 0:
            return False, "Nonce must be a non-negative integer"
        if not isinstance(self.data, dict):
            return False, "Instruction data must be a map"
        missing = [f for f in REQUIRED_FIELDS[self.ix_type] if f not in self.data]
        if missing:
            return False, f"{self.ix_type} requires {', '.join(missing)}"
        for name, value in self.data.items():
            error = _field_type_error(name, value)
            if error:
                return False, error
        if not self.verify_signature():
            return False, "Invalid signature"
        return True, ""

    def __repr__(self) -> str:
        return f"Instruction({self.ix_type}, nonce={self.nonce}, id={self.id.hex()[:8]})"
