from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from roc.domain.errors import ConcurrencyError
from roc.repositories.sqlite_repo import (
    SqliteCatalogRepository,
    SqliteOrderRepository,
    SqliteRepository,
    SqliteStockRepository,
    SqliteWalletRepository,
)

log = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


class SqliteUnitOfWork:
    """One sqlite transaction spanning every store an operation touches.

    ``BEGIN IMMEDIATE`` takes the database write lock up front, so reads made
    inside the block see the state the writes will be applied to. Leaving the
    block normally commits; any exception rolls everything back.
    """

    def __init__(self, repo: SqliteRepository):
        self.repo = repo
        self.conn: sqlite3.Connection | None = None

    def __enter__(self) -> "SqliteUnitOfWork":
        conn = self.repo._conn()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            conn.close()
            raise ConcurrencyError(f"Could not start transaction: {e}") from e

        self.conn = conn
        self.wallets = SqliteWalletRepository(conn)
        self.orders = SqliteOrderRepository(conn)
        self.stock = SqliteStockRepository(conn)
        self.catalog = SqliteCatalogRepository(conn)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self.conn
        self.conn = None
        if conn is None:
            return None
        try:
            if exc_type is None:
                conn.execute("COMMIT")
            else:
                conn.execute("ROLLBACK")
                log.debug("uow_rolled_back error=%s", exc)
        finally:
            conn.close()
        return None
