"""
Versioned record store.

Records are msgpack maps keyed by fixed prefixes. Every operation loads
fresh copies, mutates them, and hands them back to `commit`, which
checks that no other writer committed in between (compare-and-swap on
the `version` field) and then writes all of them in one batch.
"""
import logging
import threading
from typing import Optional

import msgpack

from .constants import TOKEN_STATS_PREFIX, TREASURY_STATE_KEY
from .db import DB
from .errors import ErrorCode, ValidationError
from .state import NonceRecord, TokenStats, TreasuryState, ValidatorState

logger = logging.getLogger(__name__)


def encode_record(record) -> bytes:
    return msgpack.packb(record.to_dict(), use_bin_type=True)


def decode_record(cls, raw: bytes):
    return cls(msgpack.unpackb(raw, raw=False))


class StateStore:
    def __init__(self, db: DB):
        self.db = db
        self._lock = threading.Lock()

    # ==========================================================================
    # READS
    # ==========================================================================

    def _load(self, cls, key: bytes):
        raw = self.db.get(key)
        if raw is None:
            return None
        return decode_record(cls, raw)

    def get_treasury(self) -> Optional[TreasuryState]:
        return self._load(TreasuryState, TREASURY_STATE_KEY)

    def get_token_stats(self, mint: bytes) -> Optional[TokenStats]:
        return self._load(TokenStats, TokenStats.key_for(mint))

    def get_validator(self, mint: bytes) -> Optional[ValidatorState]:
        return self._load(ValidatorState, ValidatorState.key_for(mint))

    def get_nonce(self, address: bytes) -> NonceRecord:
        record = self._load(NonceRecord, NonceRecord.key_for(address))
        if record is None:
            record = NonceRecord({'address': address, 'nonce': 0})
        return record

    def require_treasury(self) -> TreasuryState:
        treasury = self.get_treasury()
        if treasury is None:
            raise ValidationError(ErrorCode.ACCOUNT_NOT_INITIALIZED, "Treasury is not initialized")
        return treasury

    def require_token_stats(self, mint: bytes) -> TokenStats:
        stats = self.get_token_stats(mint)
        if stats is None:
            raise ValidationError(
                ErrorCode.ACCOUNT_NOT_INITIALIZED,
                f"No token stats for mint {mint.hex()[:8]}",
            )
        return stats

    def require_validator(self, mint: bytes) -> ValidatorState:
        validator = self.get_validator(mint)
        if validator is None:
            raise ValidationError(
                ErrorCode.ACCOUNT_NOT_INITIALIZED,
                f"No validator state for mint {mint.hex()[:8]}",
            )
        return validator

    def all_token_stats(self) -> list[TokenStats]:
        return [decode_record(TokenStats, raw) for _, raw in self.db.get_prefix(TOKEN_STATS_PREFIX)]

    # ==========================================================================
    # WRITES
    # ==========================================================================

    def commit(self, *records):
        """
        Atomically persist records loaded earlier in the same operation.

        A record whose stored version differs from the one it was loaded
        with fails the whole commit with StaleRecordVersion; nothing is
        written. New records must carry version 0 and must not exist yet.
        """
        with self._lock:
            for record in records:
                stored = self.db.get(record.key)
                stored_version = msgpack.unpackb(stored, raw=False)['version'] if stored else 0
                if stored is not None and record.version == 0:
                    raise ValidationError(
                        ErrorCode.ACCOUNT_ALREADY_INITIALIZED,
                        f"Record {record.key[:24]!r} already exists",
                    )
                if stored_version != record.version:
                    raise ValidationError(
                        ErrorCode.STALE_RECORD_VERSION,
                        f"Record {record.key[:24]!r} changed since it was read "
                        f"(expected v{record.version}, found v{stored_version})",
                    )
                validate = getattr(record, '_validate', None)
                if validate is not None:
                    try:
                        validate()
                    except ValueError as e:
                        raise ValidationError(ErrorCode.INVALID_PARAMETER, str(e)) from e

            for record in records:
                record.version += 1
            try:
                with self.db.write_batch() as batch:
                    for record in records:
                        batch.put(record.key, encode_record(record))
            except Exception:
                for record in records:
                    record.version -= 1
                raise
            logger.debug(f"Committed {len(records)} record(s)")
