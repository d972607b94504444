"""In-memory implementations of the repository contracts.

Used by tests and throwaway sessions. A unit of work snapshots the whole
store on entry and restores the snapshot if the block raises.
"""
from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field, replace
from decimal import Decimal
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
    Wallet,
    WalletTransaction,
    WalletType,
)


@dataclass
class MemoryStore:
    locations: dict[int, Location] = field(default_factory=dict)
    clients: dict[int, Client] = field(default_factory=dict)
    items: dict[int, Item] = field(default_factory=dict)
    wallets: dict[int, Wallet] = field(default_factory=dict)
    transactions: list[WalletTransaction] = field(default_factory=list)
    orders: dict[int, PurchaseOrder] = field(default_factory=dict)
    stock: dict[tuple[int, int], int] = field(default_factory=dict)
    activities: list[ActivityEntry] = field(default_factory=list)
    sequences: dict[str, int] = field(default_factory=dict)

    def next_id(self, name: str) -> int:
        self.sequences[name] = self.sequences.get(name, 0) + 1
        return self.sequences[name]

    def add_location(self, name: str) -> int:
        lid = self.next_id("locations")
        self.locations[lid] = Location(id=lid, name=name)
        return lid

    def add_client(self, name: str) -> int:
        cid = self.next_id("clients")
        self.clients[cid] = Client(id=cid, name=name)
        return cid

    def add_item(self, name: str, purchase_price_usd: Decimal = Decimal("0")) -> int:
        iid = self.next_id("items")
        self.items[iid] = Item(id=iid, name=name, purchase_price_usd=Decimal(purchase_price_usd))
        return iid

    # Read side, mirroring SqliteRepository
    def list_locations(self) -> list[Location]:
        return sorted(self.locations.values(), key=lambda loc: loc.name)

    def get_location(self, location_id: int) -> Optional[Location]:
        return self.locations.get(int(location_id))

    def get_client(self, client_id: int) -> Optional[Client]:
        return self.clients.get(int(client_id))

    def get_item(self, item_id: int) -> Optional[Item]:
        return self.items.get(int(item_id))

    def stock_level(self, item_id: int, location_id: int) -> int:
        return self.stock.get((int(item_id), int(location_id)), 0)

    def list_stock(self, location_id: int) -> list[StockRow]:
        return [
            StockRow(item_id=item_id, location_id=loc_id, quantity=qty)
            for (item_id, loc_id), qty in sorted(self.stock.items())
            if loc_id == int(location_id)
        ]

    def get_wallet(self, wallet_id: int) -> Optional[Wallet]:
        return self.wallets.get(int(wallet_id))

    def list_wallets(self) -> list[Wallet]:
        return MemoryWalletRepository(self).list()

    def wallet_transactions(self, wallet_id: int) -> list[WalletTransaction]:
        return MemoryWalletRepository(self).list_transactions(wallet_id)

    def recent_wallet_transactions(self, limit: int = 50) -> list[WalletTransaction]:
        return MemoryWalletRepository(self).recent_transactions(limit)

    def get_order(self, order_id: int) -> Optional[PurchaseOrder]:
        return self.orders.get(int(order_id))

    def list_orders(self, status: Optional[OrderStatus] = None) -> list[PurchaseOrder]:
        return MemoryOrderRepository(self).list(status)

    def insert_activity(self, created_at, action, entity_type, entity_id, entity_name, details, user_id) -> int:
        aid = self.next_id("activity")
        self.activities.append(
            ActivityEntry(aid, created_at, action, entity_type, entity_id, entity_name, details, user_id)
        )
        return aid

    def recent_activity(self, limit: int = 100) -> list[ActivityEntry]:
        return list(reversed(self.activities))[: int(limit)]


class MemoryWalletRepository:
    def __init__(self, store: MemoryStore):
        self.store = store

    def get(self, wallet_id: int) -> Optional[Wallet]:
        return self.store.wallets.get(int(wallet_id))

    def find(self, location_id: int, wallet_type: WalletType, currency: Currency) -> Optional[Wallet]:
        for w in self.store.wallets.values():
            if w.location_id == int(location_id) and w.type is WalletType(wallet_type) and w.currency is Currency(currency):
                return w
        return None

    def list(self) -> list[Wallet]:
        return sorted(self.store.wallets.values(), key=lambda w: (w.location_id, w.type.value, w.currency.value))

    def add(self, location_id: int, wallet_type: WalletType, currency: Currency, initial_balance: Decimal, created_at: str) -> int:
        wid = self.store.next_id("wallets")
        self.store.wallets[wid] = Wallet(
            id=wid,
            location_id=int(location_id),
            type=WalletType(wallet_type),
            currency=Currency(currency),
            balance=initial_balance,
            initial_balance=initial_balance,
            version=1,
            created_at=created_at,
        )
        return wid

    def update_balance(self, wallet_id: int, balance: Decimal, expected_version: int) -> None:
        current = self.store.wallets.get(int(wallet_id))
        if current is None or current.version != int(expected_version):
            raise ConcurrencyError(f"Wallet {wallet_id} was modified concurrently (expected version {expected_version}).")
        self.store.wallets[current.id] = replace(current, balance=balance, version=current.version + 1)

    def append_transaction(self, tx: WalletTransaction) -> None:
        self.store.transactions.append(tx)

    def list_transactions(self, wallet_id: int) -> list[WalletTransaction]:
        return [tx for tx in self.store.transactions if tx.wallet_id == int(wallet_id)]

    def recent_transactions(self, limit: int) -> list[WalletTransaction]:
        return list(reversed(self.store.transactions))[: int(limit)]


class MemoryOrderRepository:
    def __init__(self, store: MemoryStore):
        self.store = store

    def get(self, order_id: int) -> Optional[PurchaseOrder]:
        return self.store.orders.get(int(order_id))

    def list(self, status: Optional[OrderStatus] = None) -> list[PurchaseOrder]:
        orders = [o for o in self.store.orders.values() if status is None or o.status is OrderStatus(status)]
        return sorted(orders, key=lambda o: (o.created_at, o.id), reverse=True)

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
        oid = self.store.next_id("orders")
        self.store.orders[oid] = PurchaseOrder(
            id=oid,
            wallet_id=int(wallet_id),
            location_id=int(location_id),
            supplier_id=supplier_id,
            currency=Currency(currency),
            exchange_rate=exchange_rate,
            total_amount=total_amount,
            status=OrderStatus.PENDING,
            notes=notes,
            expected_arrival=expected_arrival,
            created_at=created_at,
            updated_at=created_at,
        )
        return oid

    def _build_lines(self, order_id: int, lines: Iterable[dict]) -> tuple[PurchaseOrderLine, ...]:
        return tuple(
            PurchaseOrderLine(
                id=self.store.next_id("order_lines"),
                order_id=int(order_id),
                item_id=int(line["item_id"]),
                quantity=int(line["quantity"]),
                unit_cost=Decimal(str(line["unit_cost"])),
            )
            for line in lines
        )

    def add_lines(self, order_id: int, lines: Iterable[dict]) -> None:
        order = self.store.orders[int(order_id)]
        self.store.orders[order.id] = replace(order, lines=order.lines + self._build_lines(order.id, lines))

    def replace_lines(self, order_id: int, lines: Iterable[dict]) -> None:
        order = self.store.orders[int(order_id)]
        self.store.orders[order.id] = replace(order, lines=self._build_lines(order.id, lines))

    def update(self, order_id: int, updated_at: str, **fields) -> None:
        order = self.store.orders[int(order_id)]
        if "status" in fields:
            fields["status"] = OrderStatus(fields["status"])
        self.store.orders[order.id] = replace(order, updated_at=updated_at, **fields)

    def set_quantity_received(self, line_id: int, quantity_received: int) -> None:
        for order in self.store.orders.values():
            lines = tuple(
                replace(line, quantity_received=int(quantity_received)) if line.id == int(line_id) else line
                for line in order.lines
            )
            if lines != order.lines:
                self.store.orders[order.id] = replace(order, lines=lines)
                return

    def delete(self, order_id: int) -> None:
        self.store.orders.pop(int(order_id), None)


class MemoryStockRepository:
    def __init__(self, store: MemoryStore):
        self.store = store

    def increment(self, item_id: int, location_id: int, delta: int) -> int:
        key = (int(item_id), int(location_id))
        self.store.stock[key] = self.store.stock.get(key, 0) + int(delta)
        return self.store.stock[key]

    def quantity(self, item_id: int, location_id: int) -> int:
        return self.store.stock.get((int(item_id), int(location_id)), 0)


class MemoryCatalogRepository:
    def __init__(self, store: MemoryStore):
        self.store = store

    def get_item(self, item_id: int) -> Optional[Item]:
        return self.store.items.get(int(item_id))

    def set_item_cost(self, item_id: int, purchase_price_usd: Decimal) -> None:
        item = self.store.items[int(item_id)]
        self.store.items[item.id] = replace(item, purchase_price_usd=purchase_price_usd)

    def get_location(self, location_id: int) -> Optional[Location]:
        return self.store.locations.get(int(location_id))

    def get_client(self, client_id: int) -> Optional[Client]:
        return self.store.clients.get(int(client_id))


class MemoryUnitOfWork:
    _lock = threading.RLock()

    def __init__(self, store: MemoryStore):
        self.store = store

    def __enter__(self) -> "MemoryUnitOfWork":
        self._lock.acquire()
        self._snapshot = copy.deepcopy(self.store.__dict__)
        self.wallets = MemoryWalletRepository(self.store)
        self.orders = MemoryOrderRepository(self.store)
        self.stock = MemoryStockRepository(self.store)
        self.catalog = MemoryCatalogRepository(self.store)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self.store.__dict__.update(self._snapshot)
        finally:
            self._snapshot = None
            self._lock.release()
        return None
