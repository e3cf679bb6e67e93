"""
Shared fixtures: an initialized engine on a temporary LevelDB with
simulated collaborators and a manual clock.
"""
import hashlib
import shutil
import tempfile

import pytest

from burn_engine.config import Config
from burn_engine.db import DB
from burn_engine.engine import BurnEngine
from burn_engine.pricing import PoolReserves
from burn_engine.simulation import ManualClock

ADMIN = b'\xAA' * 32
STRANGER = b'\xBB' * 32
CUSTODY_FLOAT = 1_000_000  # covers rent plus safety buffer


def make_mint(label: str) -> bytes:
    return hashlib.sha256(label.encode()).digest()


ROOT = make_mint("root")
SECONDARY = make_mint("secondary")
STANDALONE = make_mint("standalone")


def default_reserves() -> PoolReserves:
    return PoolReserves(
        virtual_quote_reserve=30_000_000_000,
        virtual_base_reserve=1_073_000_000_000_000,
    )


def build_engine(db_dir: str, testing_mode: bool = False) -> BurnEngine:
    config = Config.default()
    config.program.testing_mode = testing_mode
    engine = BurnEngine(db=DB(db_dir), config=config, clock=ManualClock())
    engine.initialize(ADMIN)
    engine.ledger.deposit(engine.authority.custody_address, CUSTODY_FLOAT)
    return engine


@pytest.fixture
def engine():
    temp_dir = tempfile.mkdtemp()
    eng = build_engine(temp_dir)
    yield eng
    eng.close()
    shutil.rmtree(temp_dir)


@pytest.fixture
def ecosystem(engine):
    """Root, one secondary and one standalone token, root configured."""
    custody = engine.authority.custody_address
    for mint in (ROOT, SECONDARY, STANDALONE):
        engine.exchange.add_pool(mint, custody, default_reserves())
        engine.cycle.initialize_token_stats(mint)
    engine.governance.set_root_token(ADMIN, ROOT)
    return engine
