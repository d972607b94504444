from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional


class Currency(str, Enum):
    SRD = "SRD"
    USD = "USD"


class WalletType(str, Enum):
    CASH = "cash"
    BANK = "bank"


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    ADJUSTMENT = "adjustment"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ORDERED = "ordered"
    SHIPPED = "shipped"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.RECEIVED, OrderStatus.CANCELLED)


# Every status change the engine may perform. Anything absent is rejected.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.ORDERED, OrderStatus.PARTIALLY_RECEIVED, OrderStatus.RECEIVED, OrderStatus.CANCELLED}
    ),
    OrderStatus.ORDERED: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.PARTIALLY_RECEIVED, OrderStatus.RECEIVED, OrderStatus.CANCELLED}
    ),
    OrderStatus.SHIPPED: frozenset(
        {OrderStatus.PARTIALLY_RECEIVED, OrderStatus.RECEIVED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PARTIALLY_RECEIVED: frozenset({OrderStatus.RECEIVED, OrderStatus.CANCELLED}),
    OrderStatus.RECEIVED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset(),
}

# Manual status steps, no money or stock involved.
ADVANCE_STEPS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.ORDERED,
    OrderStatus.ORDERED: OrderStatus.SHIPPED,
}

OPEN_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.ORDERED, OrderStatus.SHIPPED, OrderStatus.PARTIALLY_RECEIVED}
)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


@dataclass(frozen=True)
class Location:
    id: int
    name: str


@dataclass(frozen=True)
class Client:
    id: int
    name: str


@dataclass(frozen=True)
class Item:
    id: int
    name: str
    purchase_price_usd: Decimal


@dataclass(frozen=True)
class StockRow:
    item_id: int
    location_id: int
    quantity: int


@dataclass(frozen=True)
class Wallet:
    id: int
    location_id: int
    type: WalletType
    currency: Currency
    balance: Decimal
    initial_balance: Decimal = Decimal("0")
    version: int = 1
    created_at: Optional[str] = None


@dataclass(frozen=True)
class WalletTransaction:
    id: str
    wallet_id: int
    type: TransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: Optional[str]
    reference_type: str
    reference_id: Optional[str]
    currency: Currency
    created_at: str
    transfer_id: Optional[str] = None

    @property
    def signed_delta(self) -> Decimal:
        if self.type is TransactionType.CREDIT:
            return self.amount
        if self.type is TransactionType.DEBIT:
            return -self.amount
        return self.balance_after - self.balance_before


@dataclass(frozen=True)
class PurchaseOrderLine:
    id: int
    order_id: int
    item_id: int
    quantity: int
    unit_cost: Decimal
    quantity_received: int = 0

    @property
    def subtotal(self) -> Decimal:
        return self.unit_cost * self.quantity

    @property
    def remaining(self) -> int:
        return self.quantity - self.quantity_received

    @property
    def is_complete(self) -> bool:
        return self.quantity_received == self.quantity


@dataclass(frozen=True)
class PurchaseOrder:
    id: int
    wallet_id: int
    location_id: int
    supplier_id: Optional[int]
    currency: Currency
    exchange_rate: Decimal
    total_amount: Decimal
    status: OrderStatus
    notes: Optional[str]
    expected_arrival: Optional[str]
    created_at: str
    updated_at: str
    lines: tuple[PurchaseOrderLine, ...] = field(default_factory=tuple)

    @property
    def ordered_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def received_quantity(self) -> int:
        return sum(line.quantity_received for line in self.lines)


@dataclass(frozen=True)
class ActivityEntry:
    id: int
    created_at: str
    action: str
    entity_type: str
    entity_id: Optional[str]
    entity_name: Optional[str]
    details: Optional[str]
    user_id: Optional[int]
