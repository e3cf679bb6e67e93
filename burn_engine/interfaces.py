"""
Contracts for the external systems the engine drives.

The engine never holds balances itself; it asks these collaborators to
move lamports, collect creator fees, buy on the exchange and burn
tokens, presenting a ProgramSigner whenever funds leave a program-owned
address.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .authority import ProgramSigner
from .pricing import PoolReserves


@dataclass(frozen=True)
class BuyReceipt:
    quote_spent: int
    base_received: int


class LamportLedger(ABC):
    @abstractmethod
    def balance_of(self, address: bytes) -> int:
        ...

    @abstractmethod
    def transfer(self, signer: ProgramSigner, source: bytes, destination: bytes, amount: int):
        """Move `amount` lamports; `signer` must authorize `source`."""


class FeeExchange(ABC):
    @abstractmethod
    def creator_vault_balance(self, mint: bytes) -> int:
        ...

    @abstractmethod
    def collect_creator_fees(self, signer: ProgramSigner, mint: bytes, destination: bytes) -> int:
        """Sweep the creator vault for `mint` into `destination`; returns the amount."""

    @abstractmethod
    def get_reserves(self, mint: bytes) -> PoolReserves:
        ...

    @abstractmethod
    def buy(self, signer: ProgramSigner, mint: bytes, max_quote_in: int,
            min_base_out: int) -> BuyReceipt:
        """
        Atomic buy from the signer's custody.

        Either spends at most `max_quote_in` and delivers at least
        `min_base_out`, or raises with no effect.
        """


class TokenProgram(ABC):
    @abstractmethod
    def balance_of(self, owner: bytes, mint: bytes) -> int:
        ...

    @abstractmethod
    def burn(self, signer: ProgramSigner, mint: bytes, amount: int):
        """Destroy `amount` of `mint` held by the signer's address."""


class Clock(ABC):
    @abstractmethod
    def unix_timestamp(self) -> int:
        ...

    @abstractmethod
    def slot(self) -> int:
        ...
