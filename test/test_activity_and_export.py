import sqlite3
from decimal import Decimal
from pathlib import Path

from openpyxl import load_workbook

from roc.services.activity_service import ActivityLog


class BrokenActivityRepo:
    def insert_activity(self, *args):
        raise sqlite3.OperationalError("disk I/O error")


def test_activity_is_recorded_after_mutations(app, seeded):
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 1, "unit_cost": 1}])
    line_id = app.orders.get_order(oid).lines[0].id
    app.orders.receive(oid, {line_id: 1})
    app.wallets.manual_transaction(seeded["srd"], "add", 3)

    kinds = [(e.action, e.entity_type) for e in app.activity.recent(10)]
    assert ("create", "purchase_order") in kinds
    assert ("complete", "purchase_order") in kinds
    assert ("adjust", "wallet") in kinds
    assert ("create", "wallet") in kinds


def test_activity_failure_never_breaks_the_operation(app, seeded):
    app.wallets.activity = ActivityLog(BrokenActivityRepo())
    assert app.wallets.manual_transaction(seeded["srd"], "add", 7) == Decimal("1007")
    assert app.wallets.get_wallet(seeded["srd"]).balance == Decimal("1007")


def test_export_wallet_statement(app, seeded, tmp_path: Path):
    app.wallets.manual_transaction(seeded["srd"], "add", 10, "float")
    app.wallets.manual_transaction(seeded["srd"], "remove", 4)
    out = tmp_path / "statement.xlsx"

    assert app.excel.export_wallet_statement(seeded["srd"], str(out)) == 2

    ws = load_workbook(out).active
    assert ws["B2"].value == "Paramaribo"
    assert ws["A7"].value == "Date"
    assert ws["B8"].value == "credit"
    assert ws["C8"].value == 10
    assert ws["E9"].value == 1006
    assert ws["G8"].value == "float"


def test_export_orders_writes_two_sheets(app, seeded, tmp_path: Path):
    app.orders.create(
        seeded["srd"], seeded["loc"], "SRD",
        [{"item_id": seeded["item_a"], "quantity": 2, "unit_cost": 3}, {"item_id": seeded["item_b"], "quantity": 1, "unit_cost": 4}],
        supplier_id=seeded["supplier"],
    )
    out = tmp_path / "orders.xlsx"
    assert app.excel.export_orders(str(out)) == 1

    wb = load_workbook(out)
    assert wb.sheetnames == ["Orders", "Lines"]
    orders = list(wb["Orders"].iter_rows(min_row=2, values_only=True))
    lines = list(wb["Lines"].iter_rows(min_row=2, values_only=True))
    assert orders[0][1] == "pending"
    assert orders[0][4] == "Acme Supplies"
    assert orders[0][7] == 10
    assert [row[2] for row in lines] == ["Rice 5kg", "Cooking oil"]


class CrashingActivityRepo:
    def insert_activity(self, *args):
        raise RuntimeError("audit backend unreachable")


def test_any_activity_failure_is_swallowed_after_commit(app, seeded):
    app.orders.activity = ActivityLog(CrashingActivityRepo())
    oid = app.orders.create(seeded["srd"], seeded["loc"], "SRD", [{"item_id": seeded["item_a"], "quantity": 1, "unit_cost": 10}])

    assert app.orders.get_order(oid).total_amount == Decimal("10")
    assert app.wallets.get_wallet(seeded["srd"]).balance == Decimal("990")
