"""
Ecosystem cycle: secondaries first, then the root.

Collected fees are shared between secondary tokens in proportion to
their validated `pending_fees`. A secondary whose share is too small to
pay for its reserves and a minimum buy is deferred: it keeps its pending
fees, so it weighs more next cycle, and its share for this cycle goes to
the viable tokens. When no secondary is viable the whole amount stays in
custody.

A burn that still fails after its retry stops the cycle: the bought
tokens stay pending and every later buy would be rejected for them.
The next cycle burns them before collecting anything.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from .constants import MIN_ALLOCATION_ROOT, RENT_EXEMPT_MINIMUM, SAFETY_BUFFER
from .cycle import CycleController
from .errors import ValidationError
from .fee_split import min_allocation_secondary
from .interfaces import LamportLedger
from .store import StateStore
from .utils.arith import saturating_sub

logger = logging.getLogger(__name__)

# a failed burn leaves its tokens pending; one retry before it counts
BURN_ATTEMPTS = 2


@dataclass
class Allocation:
    mint: bytes
    pending_fees: int
    preliminary: int
    allocation: int = 0
    viable: bool = False


@dataclass
class CycleReport:
    distributable: int = 0
    allocations: list = field(default_factory=list)
    participated: list = field(default_factory=list)
    deferred: list = field(default_factory=list)
    failures: dict = field(default_factory=dict)
    root_collected: int = 0
    root_burned: int = 0
    total_burned: int = 0

    def to_dict(self) -> dict:
        return {
            'distributable': self.distributable,
            'allocations': [
                {'mint': a.mint.hex(), 'pending_fees': a.pending_fees,
                 'allocation': a.allocation, 'viable': a.viable}
                for a in self.allocations
            ],
            'participated': [m.hex() for m in self.participated],
            'deferred': [m.hex() for m in self.deferred],
            'failures': {m.hex(): code for m, code in self.failures.items()},
            'root_collected': self.root_collected,
            'root_burned': self.root_burned,
            'total_burned': self.total_burned,
        }


class FeeAllocator:
    def __init__(self, min_allocation: int):
        self.min_allocation = min_allocation

    def normalize_allocations(self, weights: dict, distributable: int) -> list[Allocation]:
        """
        Split `distributable` by weight, defer shares below the minimum and
        hand their amount to the viable tokens, again by weight.

        Integer division leaves a few lamports of dust unallocated.
        """
        total_weight = sum(weights.values())
        allocations = []
        for mint, weight in weights.items():
            preliminary = weight * distributable // total_weight if total_weight else 0
            allocations.append(Allocation(mint=mint, pending_fees=weight, preliminary=preliminary))

        viable = [a for a in allocations if a.preliminary >= self.min_allocation]
        skipped = sum(a.preliminary for a in allocations if a.preliminary < self.min_allocation)
        viable_weight = sum(a.pending_fees for a in viable)

        for a in viable:
            a.viable = True
            bonus = skipped * a.pending_fees // viable_weight if viable_weight else 0
            a.allocation = a.preliminary + bonus
        return allocations


class EcosystemOrchestrator:
    def __init__(self, store: StateStore, cycle: CycleController,
                 ledger: LamportLedger, operator: bytes):
        self.store = store
        self.cycle = cycle
        self.ledger = ledger
        self.operator = operator

    def _fail(self, report: CycleReport, mint: bytes, error: ValidationError):
        logger.warning(f"Cycle for {mint.hex()[:8]} failed: {error}")
        report.failures[mint] = error.code.value
        self.cycle.record_failure(self.operator, error.code.value)

    def _operational(self) -> bool:
        return self.store.require_treasury().is_operational

    def _burn(self, report: CycleReport, mint: bytes) -> Optional[int]:
        """
        Burn what was bought for `mint`. A failed burn leaves the tokens
        pending, so it is retried before it counts as one failure.
        """
        for attempt in range(1, BURN_ATTEMPTS + 1):
            try:
                return self.cycle.burn_and_update(mint)
            except ValidationError as e:
                if attempt == BURN_ATTEMPTS:
                    self._fail(report, mint, e)
                    return None
                logger.warning(f"Burn for {mint.hex()[:8]} failed, retrying ({attempt}/{BURN_ATTEMPTS}): {e}")

    def _clear_pending_burn(self, report: CycleReport) -> bool:
        treasury = self.store.require_treasury()
        if treasury.pending_burn_amount == 0:
            return True
        mint = treasury.pending_burn_mint
        logger.warning(f"Burning {treasury.pending_burn_amount} of {mint.hex()[:8]} left from an earlier cycle")
        burned = self._burn(report, mint)
        if burned is None:
            return False
        report.total_burned += burned
        return True

    def run_cycle(self, secondaries: list, run_root: bool = True) -> CycleReport:
        report = CycleReport()
        if self._operational() and not self._clear_pending_burn(report):
            logger.warning("Earlier tokens still await burning, cycle not started")
            return report

        treasury = self.store.require_treasury()
        custody = self.cycle.authority.custody_address

        collected = {}
        for mint in secondaries:
            try:
                collected[mint] = self.cycle.collect_fees(mint, for_ecosystem=True)
            except ValidationError as e:
                logger.info(f"Skipping collection for {mint.hex()[:8]}: {e}")
                collected[mint] = 0

        weights = {}
        for mint in secondaries:
            stats = self.store.get_token_stats(mint)
            weights[mint] = stats.pending_fees if stats is not None else 0
        if sum(weights.values()) == 0:
            # no validated fees yet, fall back to what each vault produced
            weights = collected

        report.distributable = saturating_sub(
            self.ledger.balance_of(custody), RENT_EXEMPT_MINIMUM + SAFETY_BUFFER)
        allocator = FeeAllocator(min_allocation_secondary(treasury.fee_split_bps))
        report.allocations = allocator.normalize_allocations(weights, report.distributable)

        blocked = False
        for a in report.allocations:
            if not a.viable:
                continue
            if not self._operational():
                logger.warning("Engine paused mid-cycle, stopping")
                break
            try:
                self.cycle.execute_buy(a.mint, is_secondary=True, allocated=a.allocation)
            except ValidationError as e:
                self._fail(report, a.mint, e)
                continue
            burned = self._burn(report, a.mint)
            if burned is None:
                logger.warning(f"Tokens of {a.mint.hex()[:8]} still await burning, stopping")
                blocked = True
                break
            report.total_burned += burned
            self.cycle.finalize_allocated_cycle(self.operator, a.mint, True)
            report.participated.append(a.mint)

        for a in report.allocations:
            if not a.viable:
                self.cycle.finalize_allocated_cycle(self.operator, a.mint, False)
                report.deferred.append(a.mint)

        root = self.store.require_treasury().root_token
        if run_root and not blocked and root is not None and self._operational():
            self._run_root(report, root)

        logger.info(
            f"Ecosystem cycle done: {len(report.participated)} participated, "
            f"{len(report.deferred)} deferred, {len(report.failures)} failed, "
            f"{report.total_burned} burned"
        )
        return report

    def _run_root(self, report: CycleReport, root: bytes):
        used = sum(a.allocation for a in report.allocations if a.viable)
        if not used:
            used = sum(a.preliminary for a in report.allocations)
        dust = saturating_sub(report.distributable, used)
        try:
            report.root_collected = self.cycle.collect_fees(root, is_root_token=True)
        except ValidationError as e:
            logger.info(f"Root collection skipped: {e}")
            return

        allocation = report.root_collected + dust
        if allocation < MIN_ALLOCATION_ROOT:
            logger.info(f"Root allocation {allocation} below {MIN_ALLOCATION_ROOT}, deferred")
            return
        try:
            self.cycle.execute_buy(root, allocated=allocation)
        except ValidationError as e:
            self._fail(report, root, e)
            return
        burned = self._burn(report, root)
        if burned is None:
            return
        report.root_burned = burned
        report.total_burned += burned
        self.cycle.finalize_allocated_cycle(self.operator, root, True)
