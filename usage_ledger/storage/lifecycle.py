"""
Lifecycle of the shared storage handle.

The UsageLedger controller opens the database exactly once, runs schema
setup and the startup cost backfill, and publishes a handle that the
rest of the application passes into every storage operation.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from ..core.pricing import PricingOracle, calculate_cost
from .backfill import recompute_all_costs
from .db import DB_FILENAME, StorageHandle, get_connection
from .errors import LedgerWarning, NotInitializedError, StorageUnavailableError
from .repository import UsageRepository
from .schema import ensure_schema

logger = logging.getLogger(__name__)


class UsageLedger:
    """Owns initialization and shutdown of the usage database.

    initialize() does its work at most once. Concurrent first callers
    block until that attempt finishes and then all see its outcome: the
    same handle, or the same exception.
    """

    def __init__(self, pricing: PricingOracle = calculate_cost):
        self.pricing = pricing
        self.startup_warnings: List[LedgerWarning] = []
        self._lock = threading.Lock()
        self._attempted = False
        self._handle: Optional[StorageHandle] = None
        self._error: Optional[Exception] = None
        self._shut_down = False

    def initialize(self, storage_directory: Union[str, Path]) -> StorageHandle:
        """Open the database and prepare it for use.

        Args:
            storage_directory: Directory holding the database file;
                created if absent

        Returns:
            The published storage handle

        Raises:
            StorageUnavailableError: If the directory or file cannot be
                created or opened
            SchemaError: If the base table cannot be created
            NotInitializedError: If the ledger has been shut down
        """
        with self._lock:
            if not self._attempted:
                self._attempted = True
                try:
                    self._handle = self._open(Path(storage_directory).expanduser())
                except Exception as e:
                    self._error = e
                    raise

            if self._shut_down:
                raise NotInitializedError("Usage ledger has been shut down")
            if self._error is not None:
                raise self._error
            return self._handle

    def _open(self, directory: Path) -> StorageHandle:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create storage directory {directory}: {e}") from e

        db_path = directory / DB_FILENAME
        logger.info("Initializing usage database at %s", db_path)
        handle = StorageHandle(get_connection(str(db_path)), db_path)

        try:
            self.startup_warnings.extend(ensure_schema(handle))
            try:
                recompute_all_costs(handle, self.pricing)
            except LedgerWarning as warning:
                logger.warning("%s", warning)
                self.startup_warnings.append(warning)
        except Exception:
            handle.close()
            raise
        return handle

    @property
    def handle(self) -> StorageHandle:
        """The published handle.

        Raises:
            NotInitializedError: Before a successful initialize() or after
                shutdown()
        """
        handle = self._handle
        if handle is None or handle.closed:
            raise NotInitializedError("Usage ledger is not initialized")
        return handle

    def repository(self) -> UsageRepository:
        """Build a repository bound to the published handle."""
        return UsageRepository(self.handle, self.pricing)

    def shutdown(self) -> None:
        """Release the handle. A no-op if the ledger was never initialized."""
        with self._lock:
            if self._handle is None:
                return
            self._shut_down = True
            self._handle.close()
            logger.info("Usage database closed")
