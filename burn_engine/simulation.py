"""
In-memory implementations of the collaborator contracts.

Used by the test suite and by `deploy_tool simulate` to drive full
cycles without a network.
"""
import hashlib
import logging
import time
from dataclasses import replace

from .authority import ProgramSigner
from .errors import ErrorCode, ValidationError
from .interfaces import BuyReceipt, Clock, FeeExchange, LamportLedger, TokenProgram
from .pricing import PoolReserves, price_impact_bps

logger = logging.getLogger(__name__)

SLOT_DURATION = 0.4


def _address(label: bytes, mint: bytes) -> bytes:
    return hashlib.sha256(label + mint).digest()


class InMemoryLedger(LamportLedger):
    def __init__(self):
        self.balances = {}

    def balance_of(self, address: bytes) -> int:
        return self.balances.get(address, 0)

    def deposit(self, address: bytes, amount: int):
        """Credit lamports from outside the system."""
        if amount < 0:
            raise ValueError("Deposit amount must be non-negative")
        self.balances[address] = self.balance_of(address) + amount

    def transfer(self, signer: ProgramSigner, source: bytes, destination: bytes, amount: int):
        if not signer.authorizes(source):
            raise ValidationError(ErrorCode.UNAUTHORIZED_ACCESS, "Signer does not own the source")
        if amount < 0:
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "Negative transfer")
        if self.balance_of(source) < amount:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_FEES,
                f"Balance {self.balance_of(source)} below transfer of {amount}",
            )
        self.balances[source] = self.balance_of(source) - amount
        self.balances[destination] = self.balance_of(destination) + amount


class SimulatedTokenProgram(TokenProgram):
    def __init__(self):
        self.balances = {}
        self.supply = {}
        # number of upcoming burns that fail before touching balances
        self.failing_burns = 0

    def balance_of(self, owner: bytes, mint: bytes) -> int:
        return self.balances.get((owner, mint), 0)

    def mint_to(self, owner: bytes, mint: bytes, amount: int):
        self.balances[(owner, mint)] = self.balance_of(owner, mint) + amount
        self.supply[mint] = self.supply.get(mint, 0) + amount

    def move(self, source: bytes, destination: bytes, mint: bytes, amount: int):
        held = self.balance_of(source, mint)
        if held < amount:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_POOL_LIQUIDITY,
                f"Cannot move {amount}, only {held} held",
            )
        self.balances[(source, mint)] = held - amount
        self.balances[(destination, mint)] = self.balance_of(destination, mint) + amount

    def burn(self, signer: ProgramSigner, mint: bytes, amount: int):
        if self.failing_burns > 0:
            self.failing_burns -= 1
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "Injected burn failure")
        held = self.balance_of(signer.address, mint)
        if held < amount:
            raise ValidationError(
                ErrorCode.INVALID_PARAMETER,
                f"Cannot burn {amount}, only {held} held",
            )
        self.balances[(signer.address, mint)] = held - amount
        self.supply[mint] = self.supply.get(mint, 0) - amount


class SimulatedExchange(FeeExchange):
    """
    Bonding-curve / AMM exchange with creator-fee vaults.

    A buy moves reserves the same way the quote predicts and either
    completes fully or raises before touching any balance.
    """

    def __init__(self, ledger: InMemoryLedger, tokens: SimulatedTokenProgram,
                 max_price_impact_bps: int = 10_000):
        self.ledger = ledger
        self.tokens = tokens
        self.max_price_impact_bps = max_price_impact_bps
        self.pools = {}
        self.creators = {}
        self.fail_next_buy = None

    def add_pool(self, mint: bytes, creator: bytes, reserves: PoolReserves):
        self.pools[mint] = reserves
        self.creators[mint] = creator
        self.tokens.mint_to(self.pool_address(mint), mint,
                            reserves.total_supply or reserves.virtual_base_reserve)
        logger.info(f"Pool added for mint {mint.hex()[:8]} ({reserves.kind})")

    def pool_address(self, mint: bytes) -> bytes:
        return _address(b"pool", mint)

    def creator_vault_address(self, mint: bytes) -> bytes:
        return _address(b"creator_vault", mint)

    def accrue_fees(self, mint: bytes, amount: int):
        """Simulate trading activity paying creator fees."""
        self.ledger.deposit(self.creator_vault_address(mint), amount)

    def creator_vault_balance(self, mint: bytes) -> int:
        return self.ledger.balance_of(self.creator_vault_address(mint))

    def collect_creator_fees(self, signer: ProgramSigner, mint: bytes, destination: bytes) -> int:
        if self.creators.get(mint) != signer.address:
            raise ValidationError(ErrorCode.UNAUTHORIZED_ACCESS, "Signer is not the pool creator")
        vault = self.creator_vault_address(mint)
        amount = self.ledger.balance_of(vault)
        if amount:
            self.ledger.balances[vault] = 0
            self.ledger.deposit(destination, amount)
        return amount

    def get_reserves(self, mint: bytes) -> PoolReserves:
        if mint not in self.pools:
            raise ValidationError(ErrorCode.INVALID_POOL, f"No pool for mint {mint.hex()[:8]}")
        reserves = self.pools[mint]
        return replace(reserves, total_supply=self.tokens.supply.get(mint, reserves.total_supply))

    def buy(self, signer: ProgramSigner, mint: bytes, max_quote_in: int,
            min_base_out: int) -> BuyReceipt:
        if self.fail_next_buy is not None:
            code, self.fail_next_buy = self.fail_next_buy, None
            raise ValidationError(code, "Injected exchange failure")

        reserves = self.get_reserves(mint)
        out = reserves.quote(max_quote_in)
        if out < min_base_out:
            raise ValidationError(
                ErrorCode.SLIPPAGE_EXCEEDED,
                f"Would receive {out}, minimum {min_base_out}",
            )
        if price_impact_bps(max_quote_in, reserves) > self.max_price_impact_bps:
            raise ValidationError(ErrorCode.PRICE_IMPACT_TOO_HIGH, "Buy moves the pool too far")
        if out > self.tokens.balance_of(self.pool_address(mint), mint):
            raise ValidationError(ErrorCode.INSUFFICIENT_POOL_LIQUIDITY, "Not enough base reserve")

        self.ledger.transfer(signer, signer.address, self.pool_address(mint), max_quote_in)
        self.tokens.move(self.pool_address(mint), signer.address, mint, out)
        self.pools[mint] = replace(
            reserves,
            virtual_quote_reserve=reserves.virtual_quote_reserve + max_quote_in,
            virtual_base_reserve=reserves.virtual_base_reserve - out,
        )
        return BuyReceipt(quote_spent=max_quote_in, base_received=out)


class ManualClock(Clock):
    def __init__(self, timestamp: int = 1_700_000_000, slot: int = 250_000_000):
        self.timestamp = timestamp
        self.current_slot = slot

    def unix_timestamp(self) -> int:
        return self.timestamp

    def slot(self) -> int:
        return self.current_slot

    def advance(self, seconds: int = 0, slots: int = 0):
        self.timestamp += seconds
        self.current_slot += slots


class SystemClock(Clock):
    def unix_timestamp(self) -> int:
        return int(time.time())

    def slot(self) -> int:
        return int(time.time() / SLOT_DURATION)
