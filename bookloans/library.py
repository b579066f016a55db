import logging
from typing import Optional

from .catalog import CatalogStore
from .database import default_db_file, get_db_connection, initialize_database
from .issuance import IssuanceEngine
from .loans import LoanStore
from .users import UserStore

logger = logging.getLogger(__name__)


class Library:
    """Wires the catalog, loan and user stores and the issuance engine over one database file.

    Nothing is cached in memory: every call reads and writes the database, so any
    number of Library instances (API workers, CLI invocations) can share a file.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or default_db_file()
        initialize_database(self.db_file)
        self.catalog = CatalogStore(self.db_file)
        self.loans = LoanStore(self.db_file)
        self.users = UserStore(self.db_file)
        self.engine = IssuanceEngine(self.catalog, self.loans, self.users, self.db_file)
        logger.debug(f"Library opened on {self.db_file}")

    def ping(self) -> bool:
        """Cheap connectivity check used by the health endpoint."""
        conn = get_db_connection(self.db_file)
        try:
            conn.execute("SELECT 1")
            return True
        finally:
            conn.close()

    def close(self) -> None:
        # Connections are per call; nothing to release beyond logging the shutdown.
        logger.debug(f"Library closed on {self.db_file}")
