"""
Protocol constants for the burn engine.

All amounts are in base units: lamports for the quote asset and raw
units for the governed token.
"""

# Program-derived address seeds
TREASURY_SEED = b"dat_v3"
AUTHORITY_SEED = b"auth_v3"
TOKEN_STATS_SEED = b"token_stats_v1"
ROOT_TREASURY_SEED = b"root_treasury"
VALIDATOR_SEED = b"validator_v1"

# Program id used when no config overrides it
DEFAULT_PROGRAM_ID = bytes.fromhex(
    "9c1e5a0b7d3f42e8a6b1c4d0f2e7a9b35c8d1e6f0a4b7c2d9e3f5a8b1c6d0e42"
)

BPS_DENOMINATOR = 10_000
LAMPORTS_PER_SOL = 1_000_000_000

# Cycle bounds
MIN_FEES_TO_CLAIM = 10_000_000              # 0.01 SOL
MAX_FEES_PER_CYCLE = 69_420_000_000_000     # 69,420 SOL
INITIAL_SLIPPAGE_BPS = 500
MAX_SLIPPAGE_BPS = 500
MIN_CYCLE_INTERVAL = 60
MAX_CONSECUTIVE_FAILURES = 5

# External calls claimed on the treasury while they run
IN_FLIGHT_BUY = "buy"
IN_FLIGHT_BURN = "burn"
SETTLE_ATTEMPTS = 5

# Operational reserves kept in custody
RENT_EXEMPT_MINIMUM = 890_880
SAFETY_BUFFER = 50_000
ATA_RENT_RESERVE = 2_100_000
MIN_FEES_FOR_SPLIT = 5_500_000
MINIMUM_BUY_AMOUNT = 100_000

# Pool sanity
MIN_POOL_LIQUIDITY = 10_000_000
MAX_BUY_RESERVE_DIVISOR = 100               # never spend more than 1% of the quote reserve

# Fee split governance
DEFAULT_FEE_SPLIT_BPS = 5520
MIN_FEE_SPLIT_BPS = 1000
MAX_FEE_SPLIT_BPS = 9000
MAX_FEE_SPLIT_DELTA_BPS = 500
DEFAULT_ADMIN_OPERATION_COOLDOWN = 3600

# Validator protocol
MAX_SLOT_RANGE = 1000
MAX_FEE_RATE_PER_SLOT = 10_000_000
MAX_TX_PER_SLOT = 100
DEFAULT_VALIDATOR_FEE_RATE_BPS = 50
MAX_PENDING_FEES = 69_000_000_000           # 69 SOL

# Ecosystem allocation floor for the root token
MIN_ALLOCATION_ROOT = RENT_EXEMPT_MINIMUM + SAFETY_BUFFER + MINIMUM_BUY_AMOUNT

# Tiered exchange fee: (inclusive market-cap ceiling in lamports, fee bps).
# Market caps above the last ceiling pay TIER_FLOOR_FEE_BPS.
FEE_TIERS = (
    (85_000_000_000, 125),
    (300_000_000_000, 120),
    (500_000_000_000, 115),
    (700_000_000_000, 110),
    (900_000_000_000, 105),
    (2_000_000_000_000, 100),
    (3_000_000_000_000, 95),
    (4_000_000_000_000, 90),
    (4_500_000_000_000, 85),
    (5_000_000_000_000, 80),
    (6_000_000_000_000, 80),
    (7_000_000_000_000, 75),
    (8_000_000_000_000, 70),
    (9_000_000_000_000, 65),
    (10_000_000_000_000, 60),
    (11_000_000_000_000, 55),
    (12_000_000_000_000, 53),
    (13_000_000_000_000, 50),
    (14_000_000_000_000, 48),
    (15_000_000_000_000, 45),
    (16_000_000_000_000, 43),
    (17_000_000_000_000, 40),
    (18_000_000_000_000, 38),
    (19_000_000_000_000, 35),
    (20_000_000_000_000, 33),
)
TIER_FLOOR_FEE_BPS = 30

# Storage keys
TREASURY_STATE_KEY = b"TREASURY_STATE"
TOKEN_STATS_PREFIX = b"TOKEN_STATS:"
VALIDATOR_STATE_PREFIX = b"VALIDATOR_STATE:"
NONCE_PREFIX = b"NONCE:"
