from __future__ import annotations

import shutil
import sqlite3
from contextlib import closing
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from roc.domain.errors import ConcurrencyError
from roc.domain.models import (
    ActivityEntry,
    Client,
    Currency,
    Item,
    Location,
    OrderStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    StockRow,
    TransactionType,
    Wallet,
    WalletTransaction,
    WalletType,
)

_WALLET_COLS = "id, location_id, type, currency, balance, initial_balance, version, created_at"
_TX_COLS = (
    "id, wallet_id, type, amount, balance_before, balance_after, description, "
    "reference_type, reference_id, currency, created_at, transfer_id"
)
_ORDER_COLS = (
    "id, wallet_id, location_id, supplier_id, currency, exchange_rate, total_amount, "
    "status, notes, expected_arrival, created_at, updated_at"
)
_LINE_COLS = "id, order_id, item_id, quantity, unit_cost, quantity_received"


def _dec(value) -> Decimal:
    return Decimal(str(value))


def _wallet_from_row(r) -> Wallet:
    return Wallet(
        id=int(r[0]),
        location_id=int(r[1]),
        type=WalletType(r[2]),
        currency=Currency(r[3]),
        balance=_dec(r[4]),
        initial_balance=_dec(r[5]),
        version=int(r[6]),
        created_at=(str(r[7]) if r[7] is not None else None),
    )


def _tx_from_row(r) -> WalletTransaction:
    return WalletTransaction(
        id=str(r[0]),
        wallet_id=int(r[1]),
        type=TransactionType(r[2]),
        amount=_dec(r[3]),
        balance_before=_dec(r[4]),
        balance_after=_dec(r[5]),
        description=(r[6] if r[6] is not None else None),
        reference_type=str(r[7]),
        reference_id=(str(r[8]) if r[8] is not None else None),
        currency=Currency(r[9]),
        created_at=str(r[10]),
        transfer_id=(str(r[11]) if r[11] is not None else None),
    )


def _line_from_row(r) -> PurchaseOrderLine:
    return PurchaseOrderLine(
        id=int(r[0]),
        order_id=int(r[1]),
        item_id=int(r[2]),
        quantity=int(r[3]),
        unit_cost=_dec(r[4]),
        quantity_received=int(r[5]),
    )


def _order_from_row(r, lines: Iterable[PurchaseOrderLine]) -> PurchaseOrder:
    return PurchaseOrder(
        id=int(r[0]),
        wallet_id=int(r[1]),
        location_id=int(r[2]),
        supplier_id=(int(r[3]) if r[3] is not None else None),
        currency=Currency(r[4]),
        exchange_rate=_dec(r[5]),
        total_amount=_dec(r[6]),
        status=OrderStatus(r[7]),
        notes=(r[8] if r[8] is not None else None),
        expected_arrival=(r[9] if r[9] is not None else None),
        created_at=str(r[10]),
        updated_at=str(r[11]),
        lines=tuple(lines),
    )


# ---------- Connection-bound repositories (used inside a unit of work) ----------
class SqliteWalletRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, wallet_id: int) -> Optional[Wallet]:
        cur = self.conn.execute(f"SELECT {_WALLET_COLS} FROM wallets WHERE id=?", (int(wallet_id),))
        r = cur.fetchone()
        return _wallet_from_row(r) if r else None

    def find(self, location_id: int, wallet_type: WalletType, currency: Currency) -> Optional[Wallet]:
        cur = self.conn.execute(
            f"SELECT {_WALLET_COLS} FROM wallets WHERE location_id=? AND type=? AND currency=?",
            (int(location_id), WalletType(wallet_type).value, Currency(currency).value),
        )
        r = cur.fetchone()
        return _wallet_from_row(r) if r else None

    def list(self) -> list[Wallet]:
        cur = self.conn.execute(f"SELECT {_WALLET_COLS} FROM wallets ORDER BY location_id, type, currency")
        return [_wallet_from_row(r) for r in cur.fetchall()]

    def add(self, location_id: int, wallet_type: WalletType, currency: Currency, initial_balance: Decimal, created_at: str) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO wallets (location_id, type, currency, balance, initial_balance, version, created_at)
            VALUES (?, ?, ?, ?, ?, 1, ?)
            """,
            (
                int(location_id),
                WalletType(wallet_type).value,
                Currency(currency).value,
                str(initial_balance),
                str(initial_balance),
                created_at,
            ),
        )
        return int(cur.lastrowid)

    def update_balance(self, wallet_id: int, balance: Decimal, expected_version: int) -> None:
        cur = self.conn.execute(
            "UPDATE wallets SET balance=?, version=version+1 WHERE id=? AND version=?",
            (str(balance), int(wallet_id), int(expected_version)),
        )
        if cur.rowcount != 1:
            raise ConcurrencyError(f"Wallet {wallet_id} was modified concurrently (expected version {expected_version}).")

    def append_transaction(self, tx: WalletTransaction) -> None:
        self.conn.execute(
            f"""
            INSERT INTO wallet_transactions ({_TX_COLS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tx.id,
                int(tx.wallet_id),
                tx.type.value,
                str(tx.amount),
                str(tx.balance_before),
                str(tx.balance_after),
                tx.description,
                tx.reference_type,
                tx.reference_id,
                tx.currency.value,
                tx.created_at,
                tx.transfer_id,
            ),
        )

    def list_transactions(self, wallet_id: int) -> list[WalletTransaction]:
        cur = self.conn.execute(
            f"SELECT {_TX_COLS} FROM wallet_transactions WHERE wallet_id=? ORDER BY created_at, rowid",
            (int(wallet_id),),
        )
        return [_tx_from_row(r) for r in cur.fetchall()]

    def recent_transactions(self, limit: int) -> list[WalletTransaction]:
        cur = self.conn.execute(
            f"SELECT {_TX_COLS} FROM wallet_transactions ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (int(limit),),
        )
        return [_tx_from_row(r) for r in cur.fetchall()]


class SqliteOrderRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _lines(self, order_id: int) -> list[PurchaseOrderLine]:
        cur = self.conn.execute(
            f"SELECT {_LINE_COLS} FROM purchase_order_items WHERE order_id=? ORDER BY id",
            (int(order_id),),
        )
        return [_line_from_row(r) for r in cur.fetchall()]

    def get(self, order_id: int) -> Optional[PurchaseOrder]:
        cur = self.conn.execute(f"SELECT {_ORDER_COLS} FROM purchase_orders WHERE id=?", (int(order_id),))
        r = cur.fetchone()
        if not r:
            return None
        return _order_from_row(r, self._lines(int(r[0])))

    def list(self, status: Optional[OrderStatus] = None) -> list[PurchaseOrder]:
        if status is None:
            cur = self.conn.execute(f"SELECT {_ORDER_COLS} FROM purchase_orders ORDER BY created_at DESC, id DESC")
        else:
            cur = self.conn.execute(
                f"SELECT {_ORDER_COLS} FROM purchase_orders WHERE status=? ORDER BY created_at DESC, id DESC",
                (OrderStatus(status).value,),
            )
        rows = cur.fetchall()
        return [_order_from_row(r, self._lines(int(r[0]))) for r in rows]

    def add(
        self,
        wallet_id: int,
        location_id: int,
        supplier_id: Optional[int],
        currency: Currency,
        exchange_rate: Decimal,
        total_amount: Decimal,
        notes: Optional[str],
        expected_arrival: Optional[str],
        created_at: str,
    ) -> int:
        cur = self.conn.execute(
            f"""
            INSERT INTO purchase_orders ({_ORDER_COLS})
            VALUES (NULL, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?)
            """,
            (
                int(wallet_id),
                int(location_id),
                supplier_id,
                Currency(currency).value,
                str(exchange_rate),
                str(total_amount),
                notes,
                expected_arrival,
                created_at,
                created_at,
            ),
        )
        return int(cur.lastrowid)

    def add_lines(self, order_id: int, lines: Iterable[dict]) -> None:
        for line in lines:
            qty = int(line["quantity"])
            unit_cost = _dec(line["unit_cost"])
            self.conn.execute(
                """
                INSERT INTO purchase_order_items (order_id, item_id, quantity, unit_cost, subtotal, quantity_received)
                VALUES (?, ?, ?, ?, ?, 0)
                """,
                (int(order_id), int(line["item_id"]), qty, str(unit_cost), str(unit_cost * qty)),
            )

    def replace_lines(self, order_id: int, lines: Iterable[dict]) -> None:
        self.conn.execute("DELETE FROM purchase_order_items WHERE order_id=?", (int(order_id),))
        self.add_lines(order_id, lines)

    def update(self, order_id: int, updated_at: str, **fields) -> None:
        allowed = {"total_amount", "status", "notes", "expected_arrival", "location_id", "supplier_id"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown order fields: {sorted(unknown)}")

        values = []
        for key in sorted(fields):
            v = fields[key]
            if isinstance(v, OrderStatus):
                v = v.value
            elif isinstance(v, Decimal):
                v = str(v)
            values.append(v)
        assignments = ", ".join(f"{k}=?" for k in sorted(fields))
        prefix = f"{assignments}, " if assignments else ""
        self.conn.execute(
            f"UPDATE purchase_orders SET {prefix}updated_at=? WHERE id=?",
            (*values, updated_at, int(order_id)),
        )

    def set_quantity_received(self, line_id: int, quantity_received: int) -> None:
        self.conn.execute(
            "UPDATE purchase_order_items SET quantity_received=? WHERE id=?",
            (int(quantity_received), int(line_id)),
        )

    def delete(self, order_id: int) -> None:
        self.conn.execute("DELETE FROM purchase_order_items WHERE order_id=?", (int(order_id),))
        self.conn.execute("DELETE FROM purchase_orders WHERE id=?", (int(order_id),))


class SqliteStockRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def increment(self, item_id: int, location_id: int, delta: int) -> int:
        self.conn.execute(
            """
            INSERT INTO stock (item_id, location_id, quantity) VALUES (?, ?, 0)
            ON CONFLICT(item_id, location_id) DO NOTHING
            """,
            (int(item_id), int(location_id)),
        )
        self.conn.execute(
            "UPDATE stock SET quantity = quantity + ? WHERE item_id=? AND location_id=?",
            (int(delta), int(item_id), int(location_id)),
        )
        return self.quantity(item_id, location_id)

    def quantity(self, item_id: int, location_id: int) -> int:
        cur = self.conn.execute(
            "SELECT quantity FROM stock WHERE item_id=? AND location_id=?",
            (int(item_id), int(location_id)),
        )
        r = cur.fetchone()
        return int(r[0]) if r else 0

    def list_for_location(self, location_id: int) -> list[StockRow]:
        cur = self.conn.execute(
            "SELECT item_id, location_id, quantity FROM stock WHERE location_id=? ORDER BY item_id",
            (int(location_id),),
        )
        return [StockRow(item_id=int(r[0]), location_id=int(r[1]), quantity=int(r[2])) for r in cur.fetchall()]


class SqliteCatalogRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_item(self, item_id: int) -> Optional[Item]:
        cur = self.conn.execute("SELECT id, name, purchase_price_usd FROM items WHERE id=?", (int(item_id),))
        r = cur.fetchone()
        return Item(id=int(r[0]), name=str(r[1]), purchase_price_usd=_dec(r[2])) if r else None

    def set_item_cost(self, item_id: int, purchase_price_usd: Decimal) -> None:
        self.conn.execute(
            "UPDATE items SET purchase_price_usd=? WHERE id=?",
            (str(purchase_price_usd), int(item_id)),
        )

    def get_location(self, location_id: int) -> Optional[Location]:
        cur = self.conn.execute("SELECT id, name FROM locations WHERE id=?", (int(location_id),))
        r = cur.fetchone()
        return Location(id=int(r[0]), name=str(r[1])) if r else None

    def get_client(self, client_id: int) -> Optional[Client]:
        cur = self.conn.execute("SELECT id, name FROM clients WHERE id=?", (int(client_id),))
        r = cur.fetchone()
        return Client(id=int(r[0]), name=str(r[1])) if r else None


# ---------- Database owner: migrations + standalone reads/writes ----------
class SqliteRepository:
    def __init__(self, db_path: Path | str, timeout: float = 10.0):
        self.db_path = str(db_path)
        self.timeout = float(timeout)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_versioning_and_immutability),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS locations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS clients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                purchase_price_usd TEXT NOT NULL DEFAULT '0'
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS wallets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                location_id INTEGER NOT NULL,
                type TEXT NOT NULL CHECK(type IN ('cash','bank')),
                currency TEXT NOT NULL CHECK(currency IN ('SRD','USD')),
                balance TEXT NOT NULL,
                initial_balance TEXT NOT NULL DEFAULT '0',
                created_at TEXT NOT NULL,
                FOREIGN KEY(location_id) REFERENCES locations(id),
                UNIQUE(location_id, type, currency)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS wallet_transactions (
                id TEXT PRIMARY KEY,
                wallet_id INTEGER NOT NULL,
                type TEXT NOT NULL CHECK(type IN ('credit','debit','adjustment')),
                amount TEXT NOT NULL,
                balance_before TEXT NOT NULL,
                balance_after TEXT NOT NULL,
                description TEXT,
                reference_type TEXT NOT NULL,
                reference_id TEXT,
                currency TEXT NOT NULL CHECK(currency IN ('SRD','USD')),
                created_at TEXT NOT NULL,
                FOREIGN KEY(wallet_id) REFERENCES wallets(id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS fx_rates (
                date TEXT PRIMARY KEY,
                usd_srd TEXT NOT NULL,
                source TEXT NOT NULL DEFAULT 'remote' CHECK(source IN ('remote','manual','cache','default'))
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                wallet_id INTEGER NOT NULL,
                location_id INTEGER NOT NULL,
                supplier_id INTEGER,
                currency TEXT NOT NULL CHECK(currency IN ('SRD','USD')),
                exchange_rate TEXT NOT NULL,
                total_amount TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK(status IN ('pending','ordered','shipped','partially_received','received','cancelled')),
                notes TEXT,
                expected_arrival TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(wallet_id) REFERENCES wallets(id),
                FOREIGN KEY(location_id) REFERENCES locations(id),
                FOREIGN KEY(supplier_id) REFERENCES clients(id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_order_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_id INTEGER NOT NULL,
                item_id INTEGER NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_cost TEXT NOT NULL,
                subtotal TEXT NOT NULL,
                quantity_received INTEGER NOT NULL DEFAULT 0
                    CHECK(quantity_received >= 0 AND quantity_received <= quantity),
                FOREIGN KEY(order_id) REFERENCES purchase_orders(id) ON DELETE CASCADE,
                FOREIGN KEY(item_id) REFERENCES items(id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                item_id INTEGER NOT NULL,
                location_id INTEGER NOT NULL,
                quantity INTEGER NOT NULL DEFAULT 0 CHECK(quantity >= 0),
                FOREIGN KEY(item_id) REFERENCES items(id),
                FOREIGN KEY(location_id) REFERENCES locations(id),
                UNIQUE(item_id, location_id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                action TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT,
                entity_name TEXT,
                details TEXT,
                user_id INTEGER
            )
            """
        )

    def _migration_v2_versioning_and_immutability(self, cur: sqlite3.Cursor) -> None:
        self._add_column_if_missing(cur, "wallets", "version", "INTEGER NOT NULL DEFAULT 1")
        self._add_column_if_missing(cur, "wallet_transactions", "transfer_id", "TEXT")

        cur.execute("CREATE INDEX IF NOT EXISTS ix_wallet_tx_wallet ON wallet_transactions(wallet_id, created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_wallet_tx_transfer ON wallet_transactions(transfer_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_po_items_order ON purchase_order_items(order_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_po_status ON purchase_orders(status)")

        # The wallet ledger is append-only.
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS trg_wallet_tx_no_update
            BEFORE UPDATE ON wallet_transactions
            BEGIN
                SELECT RAISE(ABORT, 'wallet_transactions is append-only');
            END
            """
        )
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS trg_wallet_tx_no_delete
            BEFORE DELETE ON wallet_transactions
            BEGIN
                SELECT RAISE(ABORT, 'wallet_transactions is append-only');
            END
            """
        )

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def integrity_check(self) -> str:
        with closing(self._conn()) as conn:
            row = conn.execute("PRAGMA integrity_check").fetchone()
        return str(row[0]) if row else "unknown"

    # ---------- Catalog ----------
    def add_location(self, name: str) -> int:
        with closing(self._conn()) as conn:
            cur = conn.execute("INSERT INTO locations (name) VALUES (?)", (name,))
            conn.commit()
            return int(cur.lastrowid)

    def list_locations(self) -> list[Location]:
        with closing(self._conn()) as conn:
            rows = conn.execute("SELECT id, name FROM locations ORDER BY name").fetchall()
        return [Location(id=int(r[0]), name=str(r[1])) for r in rows]

    def add_client(self, name: str) -> int:
        with closing(self._conn()) as conn:
            cur = conn.execute("INSERT INTO clients (name) VALUES (?)", (name,))
            conn.commit()
            return int(cur.lastrowid)

    def add_item(self, name: str, purchase_price_usd: Decimal) -> int:
        with closing(self._conn()) as conn:
            cur = conn.execute(
                "INSERT INTO items (name, purchase_price_usd) VALUES (?, ?)",
                (name, str(purchase_price_usd)),
            )
            conn.commit()
            return int(cur.lastrowid)

    def get_item(self, item_id: int) -> Optional[Item]:
        with closing(self._conn()) as conn:
            return SqliteCatalogRepository(conn).get_item(item_id)

    def get_location(self, location_id: int) -> Optional[Location]:
        with closing(self._conn()) as conn:
            return SqliteCatalogRepository(conn).get_location(location_id)

    def get_client(self, client_id: int) -> Optional[Client]:
        with closing(self._conn()) as conn:
            return SqliteCatalogRepository(conn).get_client(client_id)

    # ---------- Stock ----------
    def stock_level(self, item_id: int, location_id: int) -> int:
        with closing(self._conn()) as conn:
            return SqliteStockRepository(conn).quantity(item_id, location_id)

    def list_stock(self, location_id: int) -> list[StockRow]:
        with closing(self._conn()) as conn:
            return SqliteStockRepository(conn).list_for_location(location_id)

    # ---------- Wallets ----------
    def get_wallet(self, wallet_id: int) -> Optional[Wallet]:
        with closing(self._conn()) as conn:
            return SqliteWalletRepository(conn).get(wallet_id)

    def list_wallets(self) -> list[Wallet]:
        with closing(self._conn()) as conn:
            return SqliteWalletRepository(conn).list()

    def wallet_transactions(self, wallet_id: int) -> list[WalletTransaction]:
        with closing(self._conn()) as conn:
            return SqliteWalletRepository(conn).list_transactions(wallet_id)

    def recent_wallet_transactions(self, limit: int = 50) -> list[WalletTransaction]:
        with closing(self._conn()) as conn:
            return SqliteWalletRepository(conn).recent_transactions(limit)

    # ---------- Orders ----------
    def get_order(self, order_id: int) -> Optional[PurchaseOrder]:
        with closing(self._conn()) as conn:
            return SqliteOrderRepository(conn).get(order_id)

    def list_orders(self, status: Optional[OrderStatus] = None) -> list[PurchaseOrder]:
        with closing(self._conn()) as conn:
            return SqliteOrderRepository(conn).list(status)

    # ---------- FX ----------
    def get_fx_rate(self, date_iso: str) -> Optional[Decimal]:
        with closing(self._conn()) as conn:
            row = conn.execute("SELECT usd_srd FROM fx_rates WHERE date = ?", (date_iso,)).fetchone()
        return _dec(row[0]) if row else None

    def get_fx_rate_source(self, date_iso: str) -> Optional[str]:
        with closing(self._conn()) as conn:
            row = conn.execute("SELECT source FROM fx_rates WHERE date = ?", (date_iso,)).fetchone()
        return str(row[0]) if row else None

    def set_fx_rate(self, date_iso: str, usd_srd: Decimal, source: str = "remote") -> None:
        with closing(self._conn()) as conn:
            conn.execute(
                """
                INSERT INTO fx_rates (date, usd_srd, source) VALUES (?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET usd_srd=excluded.usd_srd, source=excluded.source
                """,
                (date_iso, str(usd_srd), source),
            )
            conn.commit()

    def get_latest_fx_rate(self) -> Optional[Decimal]:
        with closing(self._conn()) as conn:
            row = conn.execute("SELECT usd_srd FROM fx_rates ORDER BY date DESC LIMIT 1").fetchone()
        return _dec(row[0]) if row else None

    def list_fx_rates(self, limit: int = 30) -> list[tuple[str, Decimal, str]]:
        with closing(self._conn()) as conn:
            rows = conn.execute(
                "SELECT date, usd_srd, source FROM fx_rates ORDER BY date DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return [(str(r[0]), _dec(r[1]), str(r[2])) for r in rows]

    # ---------- Activity ----------
    def insert_activity(
        self,
        created_at: str,
        action: str,
        entity_type: str,
        entity_id: Optional[str],
        entity_name: Optional[str],
        details: Optional[str],
        user_id: Optional[int],
    ) -> int:
        with closing(self._conn()) as conn:
            cur = conn.execute(
                """
                INSERT INTO activity_logs (created_at, action, entity_type, entity_id, entity_name, details, user_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (created_at, action, entity_type, entity_id, entity_name, details, user_id),
            )
            conn.commit()
            return int(cur.lastrowid)

    def recent_activity(self, limit: int = 100) -> list[ActivityEntry]:
        with closing(self._conn()) as conn:
            rows = conn.execute(
                """
                SELECT id, created_at, action, entity_type, entity_id, entity_name, details, user_id
                FROM activity_logs
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (int(limit),),
            ).fetchall()
        return [ActivityEntry(*r) for r in rows]
