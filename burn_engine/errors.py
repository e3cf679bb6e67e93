"""
Error codes and the validation exception raised by every engine operation.
"""
from enum import Enum


class ErrorCode(str, Enum):
    # Gating
    DAT_NOT_ACTIVE = "DATNotActive"
    CYCLE_TOO_SOON = "CycleTooSoon"
    INSUFFICIENT_FEES = "InsufficientFees"
    NO_PENDING_BURN = "NoPendingBurn"
    VALIDATOR_NOT_STALE = "ValidatorNotStale"
    TIMELOCK_NOT_EXPIRED = "TimelockNotExpired"
    NO_PENDING_ADMIN_TRANSFER = "NoPendingAdminTransfer"
    NO_PENDING_FEE_SPLIT = "NoPendingFeeSplit"
    ACCOUNT_NOT_INITIALIZED = "AccountNotInitialized"
    ACCOUNT_ALREADY_INITIALIZED = "AccountAlreadyInitialized"

    # Authorization
    UNAUTHORIZED_ACCESS = "UnauthorizedAccess"
    INVALID_ROOT_TREASURY = "InvalidRootTreasury"
    INVALID_ROOT_TOKEN = "InvalidRootToken"
    MINT_MISMATCH = "MintMismatch"
    INVALID_SIGNATURE = "InvalidSignature"
    INVALID_NONCE = "InvalidNonce"

    # Bounds
    INVALID_FEE_SPLIT = "InvalidFeeSplit"
    FEE_SPLIT_DELTA_TOO_LARGE = "FeeSplitDeltaTooLarge"
    SLOT_RANGE_TOO_LARGE = "SlotRangeTooLarge"
    FEE_TOO_HIGH = "FeeTooHigh"
    TOO_MANY_TRANSACTIONS = "TooManyTransactions"
    STALE_VALIDATION = "StaleValidation"
    PENDING_FEES_OVERFLOW = "PendingFeesOverflow"
    SLIPPAGE_CONFIG_TOO_HIGH = "SlippageConfigTooHigh"
    INVALID_PARAMETER = "InvalidParameter"
    MATH_OVERFLOW = "MathOverflow"

    # Execution
    SLIPPAGE_EXCEEDED = "SlippageExceeded"
    PRICE_IMPACT_TOO_HIGH = "PriceImpactTooHigh"
    INSUFFICIENT_POOL_LIQUIDITY = "InsufficientPoolLiquidity"
    INVALID_POOL = "InvalidPool"
    STALE_RECORD_VERSION = "StaleRecordVersion"
    OPERATION_IN_PROGRESS = "OperationInProgress"

    @property
    def category(self) -> str:
        return _CATEGORIES[self]

    def __str__(self) -> str:
        return self.value


_CATEGORIES = {}
for _code in (ErrorCode.DAT_NOT_ACTIVE, ErrorCode.CYCLE_TOO_SOON,
              ErrorCode.INSUFFICIENT_FEES, ErrorCode.NO_PENDING_BURN,
              ErrorCode.VALIDATOR_NOT_STALE, ErrorCode.TIMELOCK_NOT_EXPIRED,
              ErrorCode.NO_PENDING_ADMIN_TRANSFER, ErrorCode.NO_PENDING_FEE_SPLIT,
              ErrorCode.ACCOUNT_NOT_INITIALIZED,
              ErrorCode.ACCOUNT_ALREADY_INITIALIZED):
    _CATEGORIES[_code] = "gating"
for _code in (ErrorCode.UNAUTHORIZED_ACCESS, ErrorCode.INVALID_ROOT_TREASURY,
              ErrorCode.INVALID_ROOT_TOKEN, ErrorCode.MINT_MISMATCH,
              ErrorCode.INVALID_SIGNATURE, ErrorCode.INVALID_NONCE):
    _CATEGORIES[_code] = "authorization"
for _code in (ErrorCode.INVALID_FEE_SPLIT, ErrorCode.FEE_SPLIT_DELTA_TOO_LARGE,
              ErrorCode.SLOT_RANGE_TOO_LARGE, ErrorCode.FEE_TOO_HIGH,
              ErrorCode.TOO_MANY_TRANSACTIONS, ErrorCode.STALE_VALIDATION,
              ErrorCode.PENDING_FEES_OVERFLOW, ErrorCode.SLIPPAGE_CONFIG_TOO_HIGH,
              ErrorCode.INVALID_PARAMETER, ErrorCode.MATH_OVERFLOW):
    _CATEGORIES[_code] = "bounds"
for _code in (ErrorCode.SLIPPAGE_EXCEEDED, ErrorCode.PRICE_IMPACT_TOO_HIGH,
              ErrorCode.INSUFFICIENT_POOL_LIQUIDITY, ErrorCode.INVALID_POOL,
              ErrorCode.STALE_RECORD_VERSION, ErrorCode.OPERATION_IN_PROGRESS):
    _CATEGORIES[_code] = "execution"
del _code


class ValidationError(Exception):
    """Raised when an operation's preconditions do not hold.

    Precondition failures are raised before any record is written or any
    external effect is performed. A collaborator failure after an
    operation has claimed its records is raised once the claim has been
    released, so the records again describe what actually happened.
    """

    def __init__(self, code: ErrorCode, message: str = ""):
        self.code = ErrorCode(code)
        self.message = message or self.code.value
        super().__init__(f"{self.code.value}: {self.message}")

    @property
    def category(self) -> str:
        return self.code.category

