from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Protocol

from roc.domain.models import (
    Client,
    Currency,
    Item,
    Location,
    PurchaseOrder,
    Wallet,
    WalletTransaction,
    WalletType,
)


class WalletRepository(Protocol):
    def get(self, wallet_id: int) -> Optional[Wallet]: ...
    def find(self, location_id: int, wallet_type: WalletType, currency: Currency) -> Optional[Wallet]: ...
    def add(self, location_id: int, wallet_type: WalletType, currency: Currency, initial_balance: Decimal, created_at: str) -> int: ...
    def update_balance(self, wallet_id: int, balance: Decimal, expected_version: int) -> None: ...
    def append_transaction(self, tx: WalletTransaction) -> None: ...
    def list_transactions(self, wallet_id: int) -> list[WalletTransaction]: ...


class OrderRepository(Protocol):
    def get(self, order_id: int) -> Optional[PurchaseOrder]: ...
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
    ) -> int: ...
    def add_lines(self, order_id: int, lines: Iterable[dict]) -> None: ...
    def replace_lines(self, order_id: int, lines: Iterable[dict]) -> None: ...
    def update(self, order_id: int, updated_at: str, **fields) -> None: ...
    def set_quantity_received(self, line_id: int, quantity_received: int) -> None: ...
    def delete(self, order_id: int) -> None: ...


class StockRepository(Protocol):
    def increment(self, item_id: int, location_id: int, delta: int) -> int: ...
    def quantity(self, item_id: int, location_id: int) -> int: ...


class CatalogRepository(Protocol):
    def get_item(self, item_id: int) -> Optional[Item]: ...
    def set_item_cost(self, item_id: int, purchase_price_usd: Decimal) -> None: ...
    def get_location(self, location_id: int) -> Optional[Location]: ...
    def get_client(self, client_id: int) -> Optional[Client]: ...


class UnitOfWork(Protocol):
    wallets: WalletRepository
    orders: OrderRepository
    stock: StockRepository
    catalog: CatalogRepository

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
