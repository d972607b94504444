from decimal import Decimal

import pytest

from roc.domain.errors import (
    InsufficientFunds,
    InvalidLineItems,
    InvalidStateTransition,
    InvalidWallet,
    OrderNotFound,
    OverReceipt,
    ValidationError,
)
from roc.domain.models import Currency, OrderStatus, TransactionType


def _lines(order):
    return {line.item_id: line for line in order.lines}


def test_create_debits_wallet_and_syncs_item_cost(app, seeded):
    oid = app.orders.create(
        seeded["usd"], seeded["loc"], "SRD",
        [{"item_id": seeded["item_a"], "quantity": 10, "unit_cost": "40"}],
        supplier_id=seeded["supplier"], expected_arrival="2026-11-01",
    )
    order = app.orders.get_order(oid)
    assert order.status is OrderStatus.PENDING
    assert order.total_amount == Decimal("400")
    assert order.exchange_rate == Decimal("40")
    assert order.currency is Currency.SRD
    assert app.wallets.get_wallet(seeded["usd"]).balance == Decimal("90")

    (tx,) = app.wallets.transactions_for_wallet(seeded["usd"])
    assert tx.type is TransactionType.DEBIT
    assert tx.amount == Decimal("10")
    assert tx.reference_type == "order"
    assert tx.reference_id == str(oid)

    # 40 SRD at 40 SRD/USD
    assert app.catalog.item_cost_usd(seeded["item_a"]) == Decimal("1.00")


def test_create_drops_blank_rows_and_requires_one_line(app, seeded):
    oid = app.orders.create(
        seeded["srd"], seeded["loc"], "SRD",
        [
            {"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 5},
            {"item_id": None, "quantity": 3, "unit_cost": 1},
            {"item_id": seeded["item_b"], "quantity": 0, "unit_cost": 1},
        ],
    )
    assert len(app.orders.get_order(oid).lines) == 1

    for bad in ([], [{"item_id": "", "quantity": 1, "unit_cost": 1}], [{"item_id": seeded["item_a"], "quantity": 0, "unit_cost": 1}]):
        with pytest.raises(InvalidLineItems):
            app.orders.create(seeded["srd"], seeded["loc"], "SRD", bad)
    with pytest.raises(InvalidLineItems):
        app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": 999, "quantity": 1, "unit_cost": 1}])
    with pytest.raises(InvalidLineItems):
        app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": "1.5", "unit_cost": 1}])


def test_create_rejects_unknown_wallet_and_insufficient_funds(app, seeded):
    lines = [{"item_id": seeded["item_a"], "quantity": 1, "unit_cost": "100.01"}]
    with pytest.raises(InvalidWallet):
        app.orders.create(999, seeded["loc"], "USD", lines)
    with pytest.raises(InsufficientFunds):
        app.orders.create(seeded["usd"], seeded["loc"], "USD", lines)

    assert app.orders.list_orders() == []
    assert app.wallets.get_wallet(seeded["usd"]).balance == Decimal("100")
    assert app.catalog.item_cost_usd(seeded["item_a"]) == Decimal("2.50")


def test_debit_refund_round_trip_restores_balance(app, seeded):
    before = app.wallets.get_wallet(seeded["srd"]).balance
    oid = app.orders.create(
        seeded["srd"], seeded["loc"], "USD",
        [{"item_id": seeded["item_a"], "quantity": 3, "unit_cost": "2.345"}],
    )
    charged = before - app.wallets.get_wallet(seeded["srd"]).balance
    assert charged == Decimal("281.60")  # 7.04 USD at 40

    assert app.orders.cancel(oid) == charged
    assert app.wallets.get_wallet(seeded["srd"]).balance == before
    assert app.orders.get_order(oid).status is OrderStatus.CANCELLED
    app.wallets.assert_reconciled()


def test_partial_refund_uses_locked_rate(app, seeded, fx):
    oid = app.orders.create(
        seeded["usd"], seeded["loc"], "SRD",
        [{"item_id": seeded["item_a"], "quantity": 10, "unit_cost": "40"}],
    )
    assert app.wallets.get_wallet(seeded["usd"]).balance == Decimal("90")

    fx.rate = Decimal("20")
    line = app.orders.get_order(oid).lines[0]
    app.orders.receive(oid, {line.id: 5})

    assert app.orders.cancel(oid) == Decimal("5.00")
    assert app.wallets.get_wallet(seeded["usd"]).balance == Decimal("95")
    last = app.wallets.transactions_for_wallet(seeded["usd"])[-1]
    assert last.type is TransactionType.CREDIT
    assert last.reference_type == "order"


def test_receiving_drives_status_and_stock(app, seeded):
    a, b = seeded["item_a"], seeded["item_b"]
    oid = app.orders.create(
        seeded["srd"], seeded["loc"], "SRD",
        [{"item_id": a, "quantity": 10, "unit_cost": 10}, {"item_id": b, "quantity": 5, "unit_cost": 20}],
    )
    lines = _lines(app.orders.get_order(oid))

    order = app.orders.receive(oid, {lines[a].id: 4})
    assert order.status is OrderStatus.PARTIALLY_RECEIVED
    assert app.catalog.stock_level(a, seeded["loc"]) == 4
    assert app.catalog.stock_level(b, seeded["loc"]) == 0

    order = app.orders.receive(oid, {lines[a].id: 6, lines[b].id: 5})
    assert order.status is OrderStatus.RECEIVED
    assert app.catalog.stock_level(a, seeded["loc"]) == 10
    assert app.catalog.stock_level(b, seeded["loc"]) == 5
    assert all(line.is_complete for line in order.lines)

    with pytest.raises(InvalidStateTransition):
        app.orders.receive(oid, {lines[a].id: 0})


def test_zero_receive_is_a_no_op(app, seeded):
    a, b = seeded["item_a"], seeded["item_b"]
    oid = app.orders.create(
        seeded["srd"], seeded["loc"], "SRD",
        [{"item_id": a, "quantity": 10, "unit_cost": 1}, {"item_id": b, "quantity": 5, "unit_cost": 1}],
    )
    before = app.orders.get_order(oid)
    lines = _lines(before)

    after = app.orders.receive(oid, {lines[a].id: 0, lines[b].id: 0})
    assert after == before
    assert app.orders.get_order(oid) == before
    assert app.catalog.list_stock(seeded["loc"]) == []


def test_over_receipt_rejects_whole_call(app, seeded):
    a, b = seeded["item_a"], seeded["item_b"]
    oid = app.orders.create(
        seeded["srd"], seeded["loc"], "SRD",
        [{"item_id": a, "quantity": 10, "unit_cost": 1}, {"item_id": b, "quantity": 5, "unit_cost": 1}],
    )
    lines = _lines(app.orders.get_order(oid))
    app.orders.receive(oid, {lines[b].id: 2})

    with pytest.raises(OverReceipt):
        app.orders.receive(oid, {lines[a].id: 3, lines[b].id: 4})

    order = app.orders.get_order(oid)
    assert _lines(order)[a].quantity_received == 0
    assert _lines(order)[b].quantity_received == 2
    assert app.catalog.stock_level(a, seeded["loc"]) == 0
    assert app.catalog.stock_level(b, seeded["loc"]) == 2


def test_receive_rejects_foreign_line_and_negative_quantity(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 1}])
    line = app.orders.get_order(oid).lines[0]
    with pytest.raises(InvalidLineItems):
        app.orders.receive(oid, {line.id + 100: 1})
    with pytest.raises(InvalidLineItems):
        app.orders.receive(oid, {line.id: -1})


def test_quantity_received_is_monotonic(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 6, "unit_cost": 1}])
    line_id = app.orders.get_order(oid).lines[0].id
    seen = []
    for qty in (1, 0, 2, 0, 3):
        seen.append(app.orders.receive(oid, {line_id: qty}).lines[0].quantity_received)
    assert seen == [1, 1, 3, 3, 6]
    assert seen == sorted(seen)


def test_advance_only_along_pending_ordered_shipped(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 1, "unit_cost": 1}])

    with pytest.raises(InvalidStateTransition):
        app.orders.advance(oid, OrderStatus.SHIPPED)
    assert app.orders.advance(oid).status is OrderStatus.ORDERED
    assert app.orders.advance(oid, "shipped").status is OrderStatus.SHIPPED
    with pytest.raises(InvalidStateTransition):
        app.orders.advance(oid)
    with pytest.raises(InvalidStateTransition):
        app.orders.advance(oid, OrderStatus.RECEIVED)

    # receiving is still allowed once shipped
    line_id = app.orders.get_order(oid).lines[0].id
    assert app.orders.receive(oid, {line_id: 1}).status is OrderStatus.RECEIVED


def test_edit_pending_replaces_lines_without_touching_wallet(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 40}])
    balance = app.wallets.get_wallet(seeded["srd"]).balance

    order = app.orders.edit(
        oid,
        [{"item_id": seeded["item_b"], "quantity": 4, "unit_cost": 20}, {"item_id": seeded["item_a"], "quantity": 1, "unit_cost": 8}],
        notes="revised quote",
    )
    assert order.total_amount == Decimal("88")
    assert order.notes == "revised quote"
    assert sorted((line.item_id, line.quantity) for line in order.lines) == [(seeded["item_a"], 1), (seeded["item_b"], 4)]
    assert app.wallets.get_wallet(seeded["srd"]).balance == balance
    assert len(app.wallets.transactions_for_wallet(seeded["srd"])) == 1
    assert app.catalog.item_cost_usd(seeded["item_b"]) == Decimal("0.50")
    assert app.catalog.item_cost_usd(seeded["item_a"]) == Decimal("0.20")


def test_edit_outside_pending_is_rejected(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 1}])
    app.orders.advance(oid)
    with pytest.raises(InvalidStateTransition):
        app.orders.edit(oid, [{"item_id": seeded["item_a"], "quantity": 3, "unit_cost": 1}])


def test_cancel_received_order_refunds_nothing(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 50}])
    line_id = app.orders.get_order(oid).lines[0].id
    app.orders.receive(oid, {line_id: 2})

    assert app.orders.cancel(oid) == Decimal("0")
    assert app.wallets.get_wallet(seeded["srd"]).balance == Decimal("900")
    with pytest.raises(InvalidStateTransition):
        app.orders.cancel(oid)


def test_delete_pending_refunds_and_removes(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 50}])
    assert app.orders.delete(oid) == Decimal("100")
    assert app.wallets.get_wallet(seeded["srd"]).balance == Decimal("1000")
    with pytest.raises(OrderNotFound):
        app.orders.get_order(oid)


def test_delete_cancelled_does_not_refund_twice(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 50}])
    app.orders.cancel(oid)
    rows = len(app.wallets.transactions_for_wallet(seeded["srd"]))

    assert app.orders.delete(oid) == Decimal("0")
    assert len(app.wallets.transactions_for_wallet(seeded["srd"])) == rows
    assert app.wallets.get_wallet(seeded["srd"]).balance == Decimal("1000")


def test_delete_rejected_for_active_orders(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 1}])
    app.orders.advance(oid)
    with pytest.raises(InvalidStateTransition):
        app.orders.delete(oid)
    with pytest.raises(OrderNotFound):
        app.orders.delete(12345)


def test_order_queries(app, seeded):
    o1 = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 1, "unit_cost": 100}])
    o2 = app.orders.create(seeded["usd"], seeded["loc"], "USD", [{"item_id": seeded["item_b"], "quantity": 2, "unit_cost": 5}])
    o3 = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 1, "unit_cost": 1}])
    app.orders.cancel(o3)

    assert [o.id for o in app.orders.list_orders()] == [o3, o2, o1]
    assert [o.id for o in app.orders.list_orders("cancelled")] == [o3]

    totals = app.orders.order_totals()
    assert totals.open_orders == 2
    assert totals.totals_by_currency[Currency.SRD] == Decimal("100")
    assert totals.totals_by_currency[Currency.USD] == Decimal("10")


def test_same_line_under_two_keys_is_checked_as_one_request(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 5, "unit_cost": 1}])
    line_id = app.orders.get_order(oid).lines[0].id

    with pytest.raises(OverReceipt):
        app.orders.receive(oid, {line_id: 3, str(line_id): 3})

    order = app.orders.get_order(oid)
    assert order.lines[0].quantity_received == 0
    assert order.status is OrderStatus.PENDING
    assert app.catalog.stock_level(seeded["item_a"], seeded["loc"]) == 0

    order = app.orders.receive(oid, {line_id: 2, str(line_id): 3})
    assert order.lines[0].quantity_received == 5
    assert order.status is OrderStatus.RECEIVED
    assert app.catalog.stock_level(seeded["item_a"], seeded["loc"]) == 5


def test_bad_inputs_raise_typed_errors(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 1}])
    line_id = app.orders.get_order(oid).lines[0].id

    with pytest.raises(InvalidStateTransition):
        app.orders.advance(oid, "bogus")
    with pytest.raises(InvalidLineItems):
        app.orders.receive(oid, {"x": 1})
    with pytest.raises(InvalidLineItems):
        app.orders.receive(oid, {line_id: "lots"})
    with pytest.raises(ValidationError):
        app.orders.list_orders("bogus")

    assert app.orders.get_order(oid).status is OrderStatus.PENDING


def test_unknown_wallet_is_reported_before_bad_lines(app, seeded):
    with pytest.raises(InvalidWallet):
        app.orders.create(999, seeded["loc"], "SRD", [])
