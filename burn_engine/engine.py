"""
Burn engine façade.

Wires the store, program authority, collaborators and controllers
together, and processes signed operator instructions:
- signature and structure checks
- per-signer nonce (advances even if the instruction is then rejected)
- dispatch to the cycle, validator and governance controllers
- metrics for every outcome
"""
import logging
import time
from typing import Optional

from .authority import ProgramAuthority
from .config import Config
from .cycle import CycleController, require_admin
from .db import DB
from .errors import ErrorCode, ValidationError
from .governance import Governance
from .instruction import (
    ACCEPT_ADMIN_TRANSFER, BURN_AND_UPDATE, CANCEL_ADMIN_TRANSFER,
    CANCEL_FEE_SPLIT, COLLECT_FEES, EMERGENCY_PAUSE, EXECUTE_BUY,
    EXECUTE_FEE_SPLIT, FINALIZE_ALLOCATED_CYCLE, INITIALIZE_TOKEN_STATS,
    INITIALIZE_VALIDATOR, PROPOSE_ADMIN_TRANSFER, PROPOSE_FEE_SPLIT,
    RECORD_FAILURE, REGISTER_VALIDATED_FEES, RESET_VALIDATOR_SLOT, RESUME,
    RUN_ECOSYSTEM_CYCLE, SET_ROOT_TOKEN, SYNC_VALIDATOR_SLOT,
    UPDATE_FEE_SPLIT, UPDATE_PARAMETERS, Instruction,
)
from .interfaces import Clock, FeeExchange, LamportLedger, TokenProgram
from .monitoring import Monitor
from .orchestrator import CycleReport, EcosystemOrchestrator
from .simulation import InMemoryLedger, SimulatedExchange, SimulatedTokenProgram, SystemClock
from .state import TreasuryState
from .store import StateStore
from .validator import FeeValidator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _hex(value):
    if isinstance(value, bytes):
        return value.hex()
    return value


class BurnEngine:
    def __init__(self, db_path: str = None, db: DB = None, config: Config = None,
                 ledger: LamportLedger = None, exchange: FeeExchange = None,
                 tokens: TokenProgram = None, clock: Clock = None,
                 monitor: Monitor = None):
        self.config = config or Config.default()
        if db:
            self.db = db
        elif db_path:
            self.db = DB(
                db_path,
                write_buffer_size=self.config.database.write_buffer_size,
                max_open_files=self.config.database.max_open_files,
                compression=self.config.database.compression or None,
            )
        else:
            raise ValueError("Either db_path or a DB object must be provided.")

        if ledger is None:
            ledger = InMemoryLedger()
        if tokens is None:
            tokens = SimulatedTokenProgram()
        if exchange is None:
            exchange = SimulatedExchange(ledger, tokens)
        self.ledger = ledger
        self.tokens = tokens
        self.exchange = exchange
        self.clock = clock or SystemClock()

        self.store = StateStore(self.db)
        self.authority = ProgramAuthority(self.config.program.program_id_bytes)
        self.cycle = CycleController(
            self.store, self.authority, self.ledger, self.exchange, self.tokens,
            self.clock, testing_mode=self.config.program.testing_mode,
        )
        self.validator = FeeValidator(
            self.store, self.clock, sync_requires_admin=self.config.validator.sync_requires_admin)
        self.governance = Governance(self.store, self.clock)

        if monitor is None:
            mon = self.config.monitoring
            monitor = Monitor(host=mon.host, port=mon.port, serve=mon.enabled)
        self.monitor = monitor

        self._handlers = {
            INITIALIZE_TOKEN_STATS: lambda s, d: self.cycle.initialize_token_stats(d['mint']),
            COLLECT_FEES: lambda s, d: self.cycle.collect_fees(
                d['mint'], d.get('is_root_token', False), d.get('for_ecosystem', False)),
            EXECUTE_BUY: lambda s, d: self.cycle.execute_buy(
                d['mint'], d.get('is_secondary', False), d.get('allocated'), d.get('root_treasury')),
            BURN_AND_UPDATE: lambda s, d: self.cycle.burn_and_update(d['mint']),
            FINALIZE_ALLOCATED_CYCLE: lambda s, d: self.cycle.finalize_allocated_cycle(
                s, d['mint'], d['participated']),
            RECORD_FAILURE: lambda s, d: self.cycle.record_failure(s, d.get('error_code', '')),
            RUN_ECOSYSTEM_CYCLE: lambda s, d: self.run_ecosystem_cycle(s, d.get('secondaries', [])),
            INITIALIZE_VALIDATOR: lambda s, d: self.validator.initialize_validator(
                d['mint'], d['bonding_curve']),
            REGISTER_VALIDATED_FEES: lambda s, d: self.validator.register(
                d['mint'], d['fee_amount'], d['end_slot'], d['tx_count']),
            SYNC_VALIDATOR_SLOT: lambda s, d: self.validator.sync(d['mint'], s),
            RESET_VALIDATOR_SLOT: lambda s, d: self.validator.reset(s, d['mint']),
            PROPOSE_ADMIN_TRANSFER: lambda s, d: self.governance.propose_admin_transfer(s, d['new_admin']),
            ACCEPT_ADMIN_TRANSFER: lambda s, d: self.governance.accept_admin_transfer(s),
            CANCEL_ADMIN_TRANSFER: lambda s, d: self.governance.cancel_admin_transfer(s),
            PROPOSE_FEE_SPLIT: lambda s, d: self.governance.propose_fee_split(s, d['fee_split_bps']),
            EXECUTE_FEE_SPLIT: lambda s, d: self.governance.execute_fee_split(s),
            CANCEL_FEE_SPLIT: lambda s, d: self.governance.cancel_fee_split(s),
            UPDATE_FEE_SPLIT: lambda s, d: self.governance.update_fee_split(s, d['fee_split_bps']),
            UPDATE_PARAMETERS: lambda s, d: self.governance.update_parameters(
                s,
                min_fees_threshold=d.get('min_fees_threshold'),
                max_fees_per_cycle=d.get('max_fees_per_cycle'),
                slippage_bps=d.get('slippage_bps'),
                min_cycle_interval=d.get('min_cycle_interval'),
                admin_operation_cooldown=d.get('admin_operation_cooldown'),
            ),
            SET_ROOT_TOKEN: lambda s, d: self.governance.set_root_token(s, d['root_mint']),
            EMERGENCY_PAUSE: lambda s, d: self.governance.emergency_pause(s),
            RESUME: lambda s, d: self.governance.resume(s),
        }

    # ==========================================================================
    # LIFECYCLE
    # ==========================================================================

    def initialize(self, admin: bytes, asdf_mint: Optional[bytes] = None,
                   pool_address: Optional[bytes] = None) -> TreasuryState:
        """Create the treasury singleton with `admin` and the configured parameters."""
        if self.store.get_treasury() is not None:
            raise ValidationError(ErrorCode.ACCOUNT_ALREADY_INITIALIZED, "Treasury already initialized")
        tc = self.config.treasury
        treasury = TreasuryState({
            'admin': admin,
            'asdf_mint': asdf_mint or (bytes.fromhex(tc.asdf_mint) if tc.asdf_mint else None),
            'wsol_mint': bytes.fromhex(tc.wsol_mint) if tc.wsol_mint else None,
            'pool_address': pool_address or (bytes.fromhex(tc.pool_address) if tc.pool_address else None),
            'min_fees_threshold': tc.min_fees_threshold,
            'max_fees_per_cycle': tc.max_fees_per_cycle,
            'slippage_bps': tc.slippage_bps,
            'min_cycle_interval': tc.min_cycle_interval,
            'fee_split_bps': tc.fee_split_bps,
            'admin_operation_cooldown': tc.admin_operation_cooldown,
            'initialized_at': self.clock.unix_timestamp(),
            'authority_bump': self.authority.custody_bump,
        })
        self.store.commit(treasury)
        logger.info(f"Treasury initialized: {treasury!r}")
        return treasury

    def close(self):
        self.monitor.stop_server()
        self.db.close()

    # ==========================================================================
    # INSTRUCTIONS
    # ==========================================================================

    def process_instruction(self, ix: Instruction):
        """
        Authenticate and execute one instruction.

        Returns the handler's result. Raises ValidationError on rejection.
        """
        start = time.time()
        status = "rejected"
        try:
            valid, message = ix.validate_basic()
            if not valid:
                code = ErrorCode.INVALID_SIGNATURE if message == "Invalid signature" else ErrorCode.INVALID_PARAMETER
                raise ValidationError(code, message)

            signer = ix.signer
            nonce_record = self.store.get_nonce(signer)
            if ix.nonce != nonce_record.nonce:
                raise ValidationError(
                    ErrorCode.INVALID_NONCE,
                    f"Invalid nonce. Expected {nonce_record.nonce}, got {ix.nonce}",
                )
            nonce_record.nonce += 1
            self.store.commit(nonce_record)

            result = self._handlers[ix.ix_type](signer, ix.data)
            status = "success"
            return result
        except ValidationError as e:
            self.monitor.record_rejection(e.code.value, e.category)
            logger.warning(f"{ix.ix_type} rejected: {e}")
            raise
        finally:
            self.monitor.record_instruction(ix.ix_type, status, time.time() - start)

    def run_ecosystem_cycle(self, signer: bytes, secondaries: list) -> CycleReport:
        require_admin(self.store.require_treasury(), signer)
        orchestrator = EcosystemOrchestrator(self.store, self.cycle, self.ledger, signer)
        report = orchestrator.run_cycle(list(secondaries))
        self.refresh_metrics()
        return report

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    def refresh_metrics(self):
        self.monitor.update(self.store.get_treasury(), self.store.all_token_stats())

    def get_stats(self) -> dict:
        """Public view of the treasury and every token's statistics."""
        treasury = self.store.get_treasury()
        return {
            'initialized': treasury is not None,
            'treasury_address': self.authority.treasury_address.hex(),
            'custody_address': self.authority.custody_address.hex(),
            'treasury': {k: _hex(v) for k, v in treasury.to_dict().items()} if treasury else None,
            'tokens': [
                dict(
                    {k: _hex(v) for k, v in stats.to_dict().items()},
                    stats_address=self.authority.token_stats_address(stats.mint).hex(),
                    validator_address=self.authority.validator_address(stats.mint).hex(),
                )
                for stats in self.store.all_token_stats()
            ],
        }
