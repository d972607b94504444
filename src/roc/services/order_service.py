from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

from roc.domain.currency import convert, money, to_decimal, validate_rate
from roc.domain.errors import (
    AppError,
    InsufficientFunds,
    InvalidLineItems,
    InvalidStateTransition,
    InvalidWallet,
    NotFoundError,
    OrderNotFound,
    OverReceipt,
    ValidationError,
)
from roc.domain.models import (
    ADVANCE_STEPS,
    OPEN_STATUSES,
    Currency,
    OrderStatus,
    PurchaseOrder,
    Wallet,
    can_transition,
)
from roc.repositories.contracts import UnitOfWork
from roc.repositories.unit_of_work import SqliteUnitOfWork, now_iso
from roc.services.locks import WalletLocks

log = logging.getLogger("roc.orders")

_UNSET = object()


@dataclass(frozen=True)
class OrderTotals:
    totals_by_currency: dict[Currency, Decimal]
    open_orders: int


def normalize_lines(lines: Iterable[Mapping]) -> list[dict]:
    """Drop blank rows and validate the rest.

    A row without an item or with quantity 0 is treated as an unused form row.
    At least one real line must remain.
    """
    out = []
    for raw in lines or []:
        item_id = raw.get("item_id")
        if item_id in (None, ""):
            continue
        try:
            qty_dec = to_decimal(raw.get("quantity", 0))
            unit_cost = to_decimal(raw.get("unit_cost", 0))
        except AppError as e:
            raise InvalidLineItems(f"Invalid line for item {item_id}: {e}") from e
        if qty_dec != qty_dec.to_integral_value():
            raise InvalidLineItems(f"Quantity must be a whole number. Received: {raw.get('quantity')}")
        qty = int(qty_dec)
        if qty == 0:
            continue
        if qty < 0:
            raise InvalidLineItems(f"Quantity must be > 0. Received: {qty}")
        if unit_cost < 0:
            raise InvalidLineItems(f"Unit cost must be >= 0. Received: {unit_cost}")
        try:
            item_id = int(item_id)
        except (TypeError, ValueError) as e:
            raise InvalidLineItems(f"Invalid item id: {item_id!r}") from e
        out.append({"item_id": item_id, "quantity": qty, "unit_cost": unit_cost})

    if not out:
        raise InvalidLineItems("Order must contain at least one line with an item and quantity > 0.")
    return out


def lines_total(lines: Iterable[Mapping]) -> Decimal:
    return money(sum((line["unit_cost"] * line["quantity"] for line in lines), Decimal("0")))


def unreceived_fraction(order: PurchaseOrder) -> Decimal:
    # Aggregate over units, not value: lines with different unit costs are
    # refunded as if every unit cost the same.
    ordered = order.ordered_quantity
    if ordered == 0:
        return Decimal("1")
    return Decimal(ordered - order.received_quantity) / Decimal(ordered)


def refund_amount(order: PurchaseOrder, wallet: Wallet) -> Decimal:
    """Refund owed to ``wallet`` if ``order`` were cancelled now, using the
    rate locked on the order."""
    if order.status is OrderStatus.RECEIVED:
        return Decimal("0.00")
    base = order.total_amount * unreceived_fraction(order)
    return convert(base, order.currency, wallet.currency, order.exchange_rate)


class OrderFulfillmentEngine:
    """Purchase orders from creation to receiving, cancellation and deletion.

    Each mutating call is one unit of work covering the order, its lines, the
    wallet ledger and stock. Calls that move money hold the order's wallet
    lock for the whole unit of work.
    """

    def __init__(
        self,
        repo,
        ledger,
        fx_service,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        locks: WalletLocks | None = None,
        activity=None,
    ):
        self.repo = repo
        self.ledger = ledger
        self.fx = fx_service
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.locks = locks or ledger.locks
        self.activity = activity

    # ---------- Helpers ----------
    def _load(self, uow: UnitOfWork, order_id: int) -> PurchaseOrder:
        order = uow.orders.get(order_id)
        if order is None:
            raise OrderNotFound(f"Purchase order {order_id} not found.")
        return order

    def _check_refs(self, uow: UnitOfWork, location_id: int, supplier_id: Optional[int], lines: list[dict]) -> None:
        if uow.catalog.get_location(location_id) is None:
            raise NotFoundError(f"Location {location_id} not found.")
        if supplier_id is not None and uow.catalog.get_client(supplier_id) is None:
            raise NotFoundError(f"Supplier {supplier_id} not found.")
        for line in lines:
            if uow.catalog.get_item(line["item_id"]) is None:
                raise InvalidLineItems(f"Item {line['item_id']} not found.")

    def _sync_item_costs(self, uow: UnitOfWork, lines: list[dict], currency: Currency, rate: Decimal) -> None:
        for line in lines:
            cost_usd = convert(line["unit_cost"], currency, Currency.USD, rate)
            uow.catalog.set_item_cost(line["item_id"], cost_usd)

    def _wallet_of(self, order_id: int) -> int:
        order = self.repo.get_order(order_id)
        if order is None:
            raise OrderNotFound(f"Purchase order {order_id} not found.")
        return order.wallet_id

    def _audit(self, action: str, order_id: int, details: str, user_id: Optional[int]) -> None:
        if self.activity is not None:
            self.activity.record(
                action, "purchase_order", entity_id=order_id, entity_name=f"PO #{order_id}", details=details, user_id=user_id
            )

    # ---------- Commands ----------
    def create(
        self,
        wallet_id: int,
        location_id: int,
        currency: Currency | str,
        lines: Iterable[Mapping],
        supplier_id: Optional[int] = None,
        notes: Optional[str] = None,
        expected_arrival: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> int:
        try:
            currency = Currency(currency)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if self.repo.get_wallet(wallet_id) is None:
            raise InvalidWallet(f"Wallet {wallet_id} not found.")
        clean = normalize_lines(lines)
        total = lines_total(clean)
        rate = validate_rate(self.fx.get_today_rate())

        with self.locks.hold(wallet_id), self.uow_factory() as uow:
            wallet = uow.wallets.get(wallet_id)
            if wallet is None:
                raise InvalidWallet(f"Wallet {wallet_id} not found.")
            self._check_refs(uow, location_id, supplier_id, clean)

            charge = convert(total, currency, wallet.currency, rate)
            if wallet.balance < charge:
                raise InsufficientFunds(
                    f"Insufficient funds in wallet {wallet.id}: balance {wallet.balance} {wallet.currency.value}, "
                    f"order needs {charge} {wallet.currency.value}."
                )

            order_id = uow.orders.add(
                wallet.id, location_id, supplier_id, currency, rate, total, notes, expected_arrival, now_iso()
            )
            uow.orders.add_lines(order_id, clean)
            if charge > 0:
                self.ledger.debit(
                    wallet.id, charge, "order", order_id,
                    description=f"Purchase order #{order_id}", uow=uow,
                )
            self._sync_item_costs(uow, clean, currency, rate)

        log.info(
            "order_created order_id=%s wallet_id=%s total=%s currency=%s rate=%s charged=%s",
            order_id, wallet.id, total, currency.value, rate, charge,
        )
        self._audit(
            "create", order_id,
            f"Created order for {total} {currency.value} ({charge} {wallet.currency.value} charged at {rate})", user_id,
        )
        return order_id

    def edit(
        self,
        order_id: int,
        lines: Iterable[Mapping],
        *,
        notes=_UNSET,
        expected_arrival=_UNSET,
        location_id=_UNSET,
        supplier_id=_UNSET,
        user_id: Optional[int] = None,
    ) -> PurchaseOrder:
        clean = normalize_lines(lines)
        total = lines_total(clean)

        with self.uow_factory() as uow:
            order = self._load(uow, order_id)
            if order.status is not OrderStatus.PENDING:
                raise InvalidStateTransition(f"Only pending orders can be edited (order is {order.status.value}).")

            fields: dict = {"total_amount": total}
            if notes is not _UNSET:
                fields["notes"] = notes
            if expected_arrival is not _UNSET:
                fields["expected_arrival"] = expected_arrival
            if location_id is not _UNSET:
                fields["location_id"] = int(location_id)
            if supplier_id is not _UNSET:
                fields["supplier_id"] = supplier_id
            self._check_refs(uow, fields.get("location_id", order.location_id), fields.get("supplier_id", order.supplier_id), clean)

            uow.orders.replace_lines(order.id, clean)
            uow.orders.update(order.id, now_iso(), **fields)
            self._sync_item_costs(uow, clean, order.currency, order.exchange_rate)
            updated = self._load(uow, order.id)

        if total != order.total_amount:
            log.warning(
                "order_edit_wallet_not_adjusted order_id=%s wallet_id=%s old_total=%s new_total=%s",
                order.id, order.wallet_id, order.total_amount, total,
            )
        log.info("order_edited order_id=%s lines=%s total=%s", order.id, len(clean), total)
        self._audit("update", order.id, f"Edited order: {len(clean)} lines, total {total} {order.currency.value}", user_id)
        return updated

    def advance(self, order_id: int, next_status: OrderStatus | str | None = None, user_id: Optional[int] = None) -> PurchaseOrder:
        with self.uow_factory() as uow:
            order = self._load(uow, order_id)
            expected = ADVANCE_STEPS.get(order.status)
            if next_status is None:
                target = expected
            else:
                try:
                    target = OrderStatus(next_status)
                except ValueError as e:
                    raise InvalidStateTransition(f"Unknown order status: {next_status!r}.") from e
            if expected is None or target is not expected:
                shown = target.value if target is not None else "next"
                raise InvalidStateTransition(f"Cannot move order {order.id} from {order.status.value} to {shown}.")
            uow.orders.update(order.id, now_iso(), status=target)
            updated = self._load(uow, order.id)

        log.info("order_advanced order_id=%s from=%s to=%s", order.id, order.status.value, target.value)
        self._audit("update", order.id, f"Status {order.status.value} -> {target.value}", user_id)
        return updated

    def receive(self, order_id: int, quantities: Mapping[int, object], user_id: Optional[int] = None) -> PurchaseOrder:
        with self.uow_factory() as uow:
            order = self._load(uow, order_id)
            if order.status.is_terminal:
                raise InvalidStateTransition(f"Cannot receive goods on a {order.status.value} order.")

            by_id = {line.id: line for line in order.lines}
            requested: dict[int, int] = {}
            for raw_id, raw_qty in quantities.items():
                try:
                    line_id = int(raw_id)
                except (TypeError, ValueError) as e:
                    raise InvalidLineItems(f"Invalid line id: {raw_id!r}") from e
                if line_id not in by_id:
                    raise InvalidLineItems(f"Line {raw_id} does not belong to order {order.id}.")
                try:
                    qty_dec = to_decimal(raw_qty or 0)
                except AppError as e:
                    raise InvalidLineItems(f"Invalid received quantity for line {line_id}: {raw_qty!r}") from e
                if qty_dec < 0 or qty_dec != qty_dec.to_integral_value():
                    raise InvalidLineItems(f"Received quantity must be a whole number >= 0. Received: {raw_qty}")
                requested[line_id] = requested.get(line_id, 0) + int(qty_dec)

            # Totals per line, so the same line given under two keys is checked once.
            accepted = []
            for line_id, qty in requested.items():
                line = by_id[line_id]
                if qty > line.remaining:
                    raise OverReceipt(
                        f"Line {line.id}: cannot receive {qty}, only {line.remaining} of {line.quantity} outstanding."
                    )
                if qty > 0:
                    accepted.append((line, qty))

            if not accepted:
                return order

            received_now = {line.id: line.quantity_received for line in order.lines}
            for line, qty in accepted:
                received_now[line.id] += qty
                uow.orders.set_quantity_received(line.id, received_now[line.id])
                uow.stock.increment(line.item_id, order.location_id, qty)

            if all(received_now[line.id] == line.quantity for line in order.lines):
                new_status = OrderStatus.RECEIVED
            elif any(received_now.values()):
                new_status = OrderStatus.PARTIALLY_RECEIVED
            else:
                new_status = order.status

            if new_status is not order.status:
                if not can_transition(order.status, new_status):
                    raise InvalidStateTransition(f"Cannot move order {order.id} from {order.status.value} to {new_status.value}.")
                uow.orders.update(order.id, now_iso(), status=new_status)
            else:
                uow.orders.update(order.id, now_iso())
            updated = self._load(uow, order.id)

        units = sum(q for _line, q in accepted)
        log.info("order_received order_id=%s units=%s lines=%s status=%s", order.id, units, len(accepted), new_status.value)
        action = "complete" if new_status is OrderStatus.RECEIVED else "receive"
        self._audit(action, order.id, f"Received {units} units on {len(accepted)} lines; status {new_status.value}", user_id)
        return updated

    def cancel(self, order_id: int, user_id: Optional[int] = None) -> Decimal:
        """Cancel the order and refund its unreceived share. Returns the
        amount credited back, in the wallet's currency."""
        wallet_id = self._wallet_of(order_id)
        with self.locks.hold(wallet_id), self.uow_factory() as uow:
            order = self._load(uow, order_id)
            if order.status is OrderStatus.CANCELLED:
                raise InvalidStateTransition(f"Order {order.id} is already cancelled.")
            wallet = uow.wallets.get(order.wallet_id)
            if wallet is None:
                raise InvalidWallet(f"Wallet {order.wallet_id} not found.")

            refund = refund_amount(order, wallet)
            if refund > 0:
                self.ledger.credit(
                    wallet.id, refund, "order", order.id,
                    description=f"Refund for cancelled purchase order #{order.id}", uow=uow,
                )
            uow.orders.update(order.id, now_iso(), status=OrderStatus.CANCELLED)

        log.info("order_cancelled order_id=%s previous=%s refund=%s wallet_id=%s", order.id, order.status.value, refund, wallet.id)
        self._audit("cancel", order.id, f"Cancelled ({order.status.value}); refunded {refund} {wallet.currency.value}", user_id)
        return refund

    def delete(self, order_id: int, user_id: Optional[int] = None) -> Decimal:
        """Delete a pending or cancelled order. A pending order is refunded
        first; a cancelled one was refunded when it was cancelled."""
        wallet_id = self._wallet_of(order_id)
        with self.locks.hold(wallet_id), self.uow_factory() as uow:
            order = self._load(uow, order_id)
            if order.status not in (OrderStatus.PENDING, OrderStatus.CANCELLED):
                raise InvalidStateTransition(f"Only pending or cancelled orders can be deleted (order is {order.status.value}).")

            refund = Decimal("0.00")
            if order.status is OrderStatus.PENDING:
                wallet = uow.wallets.get(order.wallet_id)
                if wallet is None:
                    raise InvalidWallet(f"Wallet {order.wallet_id} not found.")
                refund = refund_amount(order, wallet)
                if refund > 0:
                    self.ledger.credit(
                        wallet.id, refund, "order", order.id,
                        description=f"Refund for deleted purchase order #{order.id}", uow=uow,
                    )
            uow.orders.delete(order.id)

        log.info("order_deleted order_id=%s status=%s refund=%s", order.id, order.status.value, refund)
        self._audit("delete", order.id, f"Deleted {order.status.value} order; refunded {refund}", user_id)
        return refund

    # ---------- Queries ----------
    def get_order(self, order_id: int) -> PurchaseOrder:
        order = self.repo.get_order(order_id)
        if order is None:
            raise OrderNotFound(f"Purchase order {order_id} not found.")
        return order

    def list_orders(self, status: OrderStatus | str | None = None) -> list[PurchaseOrder]:
        if status is None:
            return self.repo.list_orders(None)
        try:
            status = OrderStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown order status: {status!r}.") from e
        return self.repo.list_orders(status)

    def order_totals(self) -> OrderTotals:
        totals = {Currency.SRD: Decimal("0"), Currency.USD: Decimal("0")}
        open_orders = 0
        for order in self.repo.list_orders():
            if order.status is OrderStatus.CANCELLED:
                continue
            totals[order.currency] += order.total_amount
            if order.status in OPEN_STATUSES:
                open_orders += 1
        return OrderTotals(totals_by_currency=totals, open_orders=open_orders)
