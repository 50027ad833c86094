import logging
from typing import Optional

import database
from catalog import CatalogManager
from config import settings
from lending import LendingManager
from store import RecordStore

logger = logging.getLogger(__name__)


class Library:
    """Wires the record store to the catalog and lending managers for one database file."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        # Tests pass a per-test file; everything else uses the configured database.
        self.db_file = db_file or settings.database_file
        database.initialize_database(self.db_file)  # Ensure DB and tables exist

        self.store = RecordStore(self.db_file)
        self.catalog = CatalogManager(self.store)
        self.lending = LendingManager(self.store)
        logger.debug("Library opened on %s", self.db_file)

    def is_healthy(self) -> bool:
        return self.store.ping()

    def close(self) -> None:
        """Compatibility helper for callers that manage the library's lifetime.

        Connections are opened per operation, so there's nothing to release here.
        """
        return None
