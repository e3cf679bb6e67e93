"""
Cycle controller: collect, split, buy and burn.

Every phase is a separate call and runs in three steps:

1. Reload the records and check every precondition. A rejected call
   leaves state and balances exactly as they were.
2. Claim: commit the checked records (compare-and-swap) with an in-flight
   marker before any external call. A concurrent writer makes the claim
   fail with StaleRecordVersion while nothing has happened yet.
3. Settle: record what the external call actually did on freshly loaded
   records, retrying on concurrent writes. If the call failed, the claim
   is released instead.
"""
import logging
from typing import Optional

from .authority import ProgramAuthority
from .constants import (
    ATA_RENT_RESERVE, IN_FLIGHT_BURN, IN_FLIGHT_BUY, MAX_CONSECUTIVE_FAILURES,
    MIN_FEES_FOR_SPLIT, MINIMUM_BUY_AMOUNT, RENT_EXEMPT_MINIMUM, SAFETY_BUFFER,
    SETTLE_ATTEMPTS,
)
from .errors import ErrorCode, ValidationError
from .fee_split import split_fees, verify_root_treasury
from .interfaces import BuyReceipt, Clock, FeeExchange, LamportLedger, TokenProgram
from .pricing import compute_buy_bounds
from .state import TokenStats, TreasuryState
from .store import StateStore
from .utils.arith import saturating_add, saturating_sub

logger = logging.getLogger(__name__)


def require_operational(treasury: TreasuryState):
    if not treasury.is_operational:
        raise ValidationError(
            ErrorCode.DAT_NOT_ACTIVE,
            f"Engine inactive (active={treasury.is_active}, paused={treasury.emergency_pause})",
        )


def require_admin(treasury: TreasuryState, signer: bytes):
    if signer != treasury.admin:
        raise ValidationError(ErrorCode.UNAUTHORIZED_ACCESS, "Signer is not the admin")


def require_no_in_flight(treasury: TreasuryState):
    if treasury.in_flight_operation:
        raise ValidationError(
            ErrorCode.OPERATION_IN_PROGRESS,
            f"A {treasury.in_flight_operation} for {treasury.pending_burn_mint.hex()[:8]} is in flight",
        )


class CycleController:
    def __init__(self, store: StateStore, authority: ProgramAuthority,
                 ledger: LamportLedger, exchange: FeeExchange,
                 tokens: TokenProgram, clock: Clock, testing_mode: bool = False):
        self.store = store
        self.authority = authority
        self.ledger = ledger
        self.exchange = exchange
        self.tokens = tokens
        self.clock = clock
        self.testing_mode = testing_mode

    def _settle(self, mint: Optional[bytes], apply) -> tuple[TreasuryState, Optional[TokenStats]]:
        """
        Record the outcome of an external call that has already happened.

        The call cannot be undone, so `apply(treasury, stats)` is run on
        freshly loaded records until the commit lands.
        """
        for attempt in range(1, SETTLE_ATTEMPTS + 1):
            treasury = self.store.require_treasury()
            stats = self.store.require_token_stats(mint) if mint is not None else None
            apply(treasury, stats)
            try:
                self.store.commit(*[r for r in (treasury, stats) if r is not None])
                return treasury, stats
            except ValidationError as e:
                if e.code != ErrorCode.STALE_RECORD_VERSION or attempt == SETTLE_ATTEMPTS:
                    raise
                logger.warning(f"Concurrent write while settling, retrying ({attempt}/{SETTLE_ATTEMPTS})")

    # ==========================================================================
    # SETUP
    # ==========================================================================

    def initialize_token_stats(self, mint: bytes) -> TokenStats:
        if self.store.get_token_stats(mint) is not None:
            raise ValidationError(
                ErrorCode.ACCOUNT_ALREADY_INITIALIZED,
                f"Token stats for {mint.hex()[:8]} already exist",
            )
        stats = TokenStats({
            'mint': mint,
            'last_fee_update_timestamp': self.clock.unix_timestamp(),
        })
        self.store.commit(stats)
        logger.info(f"Token stats initialized for {mint.hex()[:8]}")
        return stats

    # ==========================================================================
    # COLLECT
    # ==========================================================================

    def collect_fees(self, mint: bytes, is_root_token: bool = False,
                     for_ecosystem: bool = False) -> int:
        """
        Move the creator vault (and, for the root token, the root treasury)
        into custody.

        Args:
            mint: Token whose fees are collected
            is_root_token: Also sweep the root treasury fed by secondaries
            for_ecosystem: Leave pending fees and the cycle timestamp for the
                orchestrator to settle after allocation

        Returns:
            Total lamports moved into custody
        """
        treasury = self.store.require_treasury()
        require_operational(treasury)
        stats = self.store.require_token_stats(mint)
        now = self.clock.unix_timestamp()

        if not self.testing_mode:
            elapsed = now - treasury.last_cycle_timestamp
            if elapsed < treasury.min_cycle_interval:
                raise ValidationError(
                    ErrorCode.CYCLE_TOO_SOON,
                    f"{elapsed}s since last cycle, minimum {treasury.min_cycle_interval}s",
                )

        root_treasury = None
        root_balance = 0
        if is_root_token:
            if treasury.root_token != mint:
                raise ValidationError(ErrorCode.INVALID_ROOT_TOKEN, "Mint is not the configured root")
            root_treasury = self.authority.root_treasury_address(mint)
            root_balance = self.ledger.balance_of(root_treasury)

        vault_balance = self.exchange.creator_vault_balance(mint)
        if not self.testing_mode and vault_balance + root_balance < treasury.min_fees_threshold:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_FEES,
                f"{vault_balance + root_balance} available, threshold {treasury.min_fees_threshold}",
            )

        previous_cycle_timestamp = treasury.last_cycle_timestamp
        if not for_ecosystem:
            treasury.last_cycle_timestamp = now
        self.store.commit(treasury, stats)

        custody = self.authority.custody_address
        collected = 0
        swept = 0
        completed = False

        def record(t: TreasuryState, s: TokenStats):
            total = collected + swept
            s.total_sol_received_from_others = saturating_add(s.total_sol_received_from_others, swept)
            s.total_sol_collected = saturating_add(s.total_sol_collected, total)
            t.total_sol_collected = saturating_add(t.total_sol_collected, total)
            if for_ecosystem:
                return
            if completed:
                s.pending_fees = 0
            elif total == 0 and t.last_cycle_timestamp == now:
                t.last_cycle_timestamp = previous_cycle_timestamp

        try:
            collected = self.exchange.collect_creator_fees(self.authority.custody_signer(), mint, custody)
            if root_balance:
                self.ledger.transfer(
                    self.authority.root_treasury_signer(mint), root_treasury, custody, root_balance,
                )
                swept = root_balance
            completed = True
        except Exception:
            self._settle(mint, record)
            raise
        self._settle(mint, record)

        logger.info(
            f"Collected {collected} lamports for {mint.hex()[:8]}"
            + (f" plus {swept} from root treasury" if swept else "")
        )
        return collected + swept

    # ==========================================================================
    # SPLIT + BUY
    # ==========================================================================

    def _secondary_split(self, treasury: TreasuryState, stats: TokenStats,
                         available: int, root_treasury: Optional[bytes]) -> tuple[int, int, bytes]:
        if treasury.root_token is None:
            raise ValidationError(ErrorCode.INVALID_ROOT_TOKEN, "No root token configured")
        if stats.is_root_token or stats.mint == treasury.root_token:
            raise ValidationError(ErrorCode.INVALID_ROOT_TOKEN, "Root token cannot buy as secondary")

        if root_treasury is None:
            root_treasury = self.authority.root_treasury_address(treasury.root_token)
        else:
            verify_root_treasury(self.authority, root_treasury, treasury.root_token)

        if available < MIN_FEES_FOR_SPLIT:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_FEES,
                f"{available} available, split needs {MIN_FEES_FOR_SPLIT}",
            )
        retained, forwarded = split_fees(available, treasury.fee_split_bps)
        return retained, forwarded, root_treasury

    def execute_buy(self, mint: bytes, is_secondary: bool = False,
                    allocated: Optional[int] = None,
                    root_treasury: Optional[bytes] = None) -> BuyReceipt:
        """
        Spend custody lamports on `mint` and record the tokens for burning.

        Secondary tokens first split the available amount and forward the
        root share once the buy has gone through. With `allocated` the
        orchestrator's share is used instead of the whole custody balance.
        """
        treasury = self.store.require_treasury()
        require_operational(treasury)
        require_no_in_flight(treasury)
        stats = self.store.require_token_stats(mint)

        if treasury.pending_burn_amount > 0 and treasury.pending_burn_mint != mint:
            raise ValidationError(
                ErrorCode.MINT_MISMATCH,
                f"Burn pending for {treasury.pending_burn_mint.hex()[:8]}",
            )
        if allocated is not None and allocated < 0:
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "Negative allocation")

        custody = self.authority.custody_address
        balance = self.ledger.balance_of(custody)
        base_reserve = RENT_EXEMPT_MINIMUM + SAFETY_BUFFER

        forwarded = 0
        if is_secondary:
            available = allocated if allocated is not None else saturating_sub(balance, base_reserve)
            retained, forwarded, root_treasury = self._secondary_split(
                treasury, stats, available, root_treasury)
            if allocated is not None:
                buy_amount = saturating_sub(retained, ATA_RENT_RESERVE)
            else:
                buy_amount = saturating_sub(balance - forwarded, base_reserve + ATA_RENT_RESERVE)
        elif allocated is not None:
            buy_amount = saturating_sub(allocated, SAFETY_BUFFER)
        else:
            buy_amount = saturating_sub(balance, base_reserve)

        if buy_amount < MINIMUM_BUY_AMOUNT:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_FEES,
                f"Buy amount {buy_amount} below minimum {MINIMUM_BUY_AMOUNT}",
            )

        reserves = self.exchange.get_reserves(mint)
        max_spend, min_receive = compute_buy_bounds(
            buy_amount, reserves, treasury.max_fees_per_cycle, treasury.slippage_bps)
        if balance < max_spend + forwarded:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_FEES,
                f"Custody holds {balance}, cycle needs {max_spend + forwarded}",
            )

        treasury.in_flight_operation = IN_FLIGHT_BUY
        treasury.pending_burn_mint = mint
        self.store.commit(treasury)

        signer = self.authority.custody_signer()
        try:
            receipt = self.exchange.buy(signer, mint, max_spend, min_receive)
        except Exception:
            self._settle(None, self._release_buy)
            raise

        sent = 0

        def record(t: TreasuryState, _):
            fresh_cycle = t.pending_burn_amount == 0
            t.pending_burn_amount = saturating_add(t.pending_burn_amount, receipt.base_received)
            t.pending_burn_mint = mint
            t.in_flight_operation = ''
            if fresh_cycle:
                t.last_cycle_sol = receipt.quote_spent
                t.last_sol_sent_to_root = sent
            else:
                t.last_cycle_sol = saturating_add(t.last_cycle_sol, receipt.quote_spent)
                t.last_sol_sent_to_root = saturating_add(t.last_sol_sent_to_root, sent)

        try:
            if forwarded:
                self.ledger.transfer(signer, custody, root_treasury, forwarded)
                sent = forwarded
        except Exception:
            self._settle(None, record)
            raise
        self._settle(None, record)

        logger.info(
            f"Bought {receipt.base_received} of {mint.hex()[:8]} for {receipt.quote_spent} lamports"
            + (f", forwarded {sent} to root" if sent else "")
        )
        return receipt

    @staticmethod
    def _release_buy(treasury: TreasuryState, _):
        treasury.in_flight_operation = ''
        if treasury.pending_burn_amount == 0:
            treasury.pending_burn_mint = None

    # ==========================================================================
    # BURN
    # ==========================================================================

    def burn_and_update(self, mint: bytes) -> int:
        """Burn the pending amount and roll it into the cumulative counters."""
        treasury = self.store.require_treasury()
        require_operational(treasury)
        require_no_in_flight(treasury)
        if treasury.pending_burn_amount == 0:
            raise ValidationError(ErrorCode.NO_PENDING_BURN, "Nothing to burn")
        if treasury.pending_burn_mint != mint:
            raise ValidationError(
                ErrorCode.MINT_MISMATCH,
                f"Pending burn belongs to {treasury.pending_burn_mint.hex()[:8]}",
            )
        stats = self.store.require_token_stats(mint)
        amount = treasury.pending_burn_amount

        treasury.in_flight_operation = IN_FLIGHT_BURN
        treasury.in_flight_amount = amount
        treasury.pending_burn_amount = 0
        self.store.commit(treasury, stats)

        try:
            self.tokens.burn(self.authority.custody_signer(), mint, amount)
        except Exception:
            self._settle(None, self._release_burn)
            raise

        now = self.clock.unix_timestamp()

        def record(t: TreasuryState, s: TokenStats):
            s.total_burned = saturating_add(s.total_burned, amount)
            s.total_sol_used = saturating_add(s.total_sol_used, t.last_cycle_sol)
            s.total_sol_sent_to_root = saturating_add(s.total_sol_sent_to_root, t.last_sol_sent_to_root)
            s.total_buybacks = saturating_add(s.total_buybacks, 1)
            s.last_cycle_timestamp = now
            s.last_cycle_sol = t.last_cycle_sol
            s.last_cycle_burned = amount

            t.total_burned = saturating_add(t.total_burned, amount)
            t.total_buybacks = saturating_add(t.total_buybacks, 1)
            t.last_cycle_burned = amount
            t.consecutive_failures = 0
            t.in_flight_operation = ''
            t.in_flight_amount = 0
            t.pending_burn_mint = None
            t.last_sol_sent_to_root = 0

        _, stats = self._settle(mint, record)
        logger.info(f"Burned {amount} of {mint.hex()[:8]} (total {stats.total_burned})")
        return amount

    @staticmethod
    def _release_burn(treasury: TreasuryState, _):
        treasury.pending_burn_amount = saturating_add(treasury.pending_burn_amount, treasury.in_flight_amount)
        treasury.in_flight_operation = ''
        treasury.in_flight_amount = 0

    # ==========================================================================
    # SETTLEMENT AND FAILURES
    # ==========================================================================

    def finalize_allocated_cycle(self, signer: bytes, mint: bytes, participated: bool) -> TokenStats:
        """Settle pending fees after an ecosystem cycle; deferred tokens keep theirs."""
        treasury = self.store.require_treasury()
        require_admin(treasury, signer)
        stats = self.store.require_token_stats(mint)
        if participated:
            stats.pending_fees = 0
            stats.cycles_participated = saturating_add(stats.cycles_participated, 1)
            self.store.commit(stats)
            logger.info(f"Finalized {mint.hex()[:8]}, cycles={stats.cycles_participated}")
        else:
            logger.info(f"Deferred {mint.hex()[:8]}, {stats.pending_fees} pending fees kept")
        return stats

    def record_failure(self, signer: bytes, error_code: str = "") -> TreasuryState:
        """
        Count a failed cycle. The fifth consecutive failure pauses the engine
        until the admin resumes it.
        """
        treasury = self.store.require_treasury()
        require_admin(treasury, signer)
        treasury.failed_cycles = saturating_add(treasury.failed_cycles, 1)
        treasury.consecutive_failures = saturating_add(treasury.consecutive_failures, 1)
        if treasury.consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            treasury.emergency_pause = True
            treasury.is_active = False
        self.store.commit(treasury)

        if treasury.emergency_pause:
            logger.warning(
                f"Circuit breaker tripped after {treasury.consecutive_failures} "
                f"consecutive failures (last: {error_code or 'unknown'})"
            )
        else:
            logger.warning(
                f"Cycle failure recorded ({treasury.consecutive_failures} consecutive): "
                f"{error_code or 'unknown'}"
            )
        return treasury
