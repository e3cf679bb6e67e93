"""
LevelDB wrapper used by the state store.
"""
import plyvel
import logging
from typing import Optional
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 4 * 1024 * 1024,
                 max_open_files: int = 1000,
                 compression: Optional[str] = 'snappy'):
        """
        Open (or create) the LevelDB directory at `db_path`.

        Args:
            db_path: Path to database directory
            create_if_missing: Create database if it doesn't exist
            write_buffer_size: Size of the memtable in bytes
            max_open_files: Maximum number of open files
            compression: 'snappy' or None
        """
        self.path = db_path
        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
                compression=compression,
            )
        except plyvel.Error as e:
            logger.error(f"Failed to open database at {db_path}: {e}")
            raise
        self._closed = False
        logger.info(f"Database opened at {db_path}")

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Database is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        """Return the stored value, or None if the key is absent."""
        self._check_open()
        try:
            return self._db.get(key)
        except plyvel.Error as e:
            logger.error(f"Error reading key {key[:24]!r}: {e}")
            raise

    @contextmanager
    def write_batch(self):
        """
        Atomic batch: either every write lands or none does.

        Example:
            with db.write_batch() as batch:
                batch.put(b'TREASURY_STATE', raw)
                batch.put(b'TOKEN_STATS:' + mint, raw_stats)
        """
        self._check_open()
        batch = self._db.write_batch()
        try:
            yield batch
            batch.write()
        except Exception as e:
            logger.error(f"Batch write aborted: {e}")
            raise
        finally:
            batch.clear()

    def get_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        """All (key, value) pairs whose key starts with `prefix`."""
        self._check_open()
        try:
            return list(self._db.iterator(prefix=prefix))
        except plyvel.Error as e:
            logger.error(f"Error scanning prefix {prefix!r}: {e}")
            raise

    def close(self):
        if not self._closed:
            self._db.close()
            self._closed = True
            logger.info(f"Database closed at {self.path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
