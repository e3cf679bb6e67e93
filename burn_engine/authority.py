"""
Program authority: derived custody addresses and the signer capability
that moves funds out of them.
"""
import logging
from dataclasses import dataclass

from .constants import (
    AUTHORITY_SEED, ROOT_TREASURY_SEED, TREASURY_SEED,
    TOKEN_STATS_SEED, VALIDATOR_SEED,
)
from .crypto import find_program_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgramSigner:
    """
    Proof that the engine authorized a transfer out of a derived address.

    Collaborators accept a transfer from a program-owned address only when
    the presented signer's address equals the source.
    """
    seeds: tuple
    bump: int
    address: bytes

    def authorizes(self, source: bytes) -> bool:
        return self.address == source


class ProgramAuthority:
    """Derives and caches the engine's program addresses."""

    def __init__(self, program_id: bytes):
        self.program_id = program_id
        self._cache = {}

    def derive(self, *seeds: bytes) -> tuple[bytes, int]:
        key = tuple(seeds)
        if key not in self._cache:
            self._cache[key] = find_program_address(list(seeds), self.program_id)
        return self._cache[key]

    def signer(self, *seeds: bytes) -> ProgramSigner:
        address, bump = self.derive(*seeds)
        return ProgramSigner(seeds=tuple(seeds), bump=bump, address=address)

    @property
    def treasury_address(self) -> bytes:
        return self.derive(TREASURY_SEED)[0]

    @property
    def custody_address(self) -> bytes:
        """Address holding collected fees and bought tokens."""
        return self.derive(AUTHORITY_SEED)[0]

    @property
    def custody_bump(self) -> int:
        return self.derive(AUTHORITY_SEED)[1]

    def custody_signer(self) -> ProgramSigner:
        return self.signer(AUTHORITY_SEED)

    def root_treasury_address(self, root_mint: bytes) -> bytes:
        return self.derive(ROOT_TREASURY_SEED, root_mint)[0]

    def root_treasury_signer(self, root_mint: bytes) -> ProgramSigner:
        return self.signer(ROOT_TREASURY_SEED, root_mint)

    def token_stats_address(self, mint: bytes) -> bytes:
        return self.derive(TOKEN_STATS_SEED, mint)[0]

    def validator_address(self, mint: bytes) -> bytes:
        return self.derive(VALIDATOR_SEED, mint)[0]
