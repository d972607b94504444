from __future__ import annotations

import logging
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from roc.domain.models import OrderStatus

log = logging.getLogger(__name__)


def _money(cell):
    cell.number_format = "#,##0.00"


def _bold_row(ws, r):
    for c in ws[r]:
        c.font = Font(bold=True)


def _set_widths(ws, widths: dict[str, int]):
    for col, w in widths.items():
        ws.column_dimensions[col].width = w


class ExcelService:
    def __init__(self, repo, ledger, orders):
        self.repo = repo
        self.ledger = ledger
        self.orders = orders

    def export_wallet_statement(self, wallet_id: int, path: str) -> int:
        """
        One sheet: wallet header, then every ledger row oldest first.
        Returns the number of ledger rows written.
        """
        wallet = self.ledger.get_wallet(wallet_id)
        location = self.repo.get_location(wallet.location_id)
        txs = self.ledger.transactions_for_wallet(wallet.id)

        wb = Workbook()
        ws = wb.active
        ws.title = "Statement"
        ws["A1"] = f"Wallet #{wallet.id}"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A2"] = "Location"
        ws["B2"] = location.name if location else str(wallet.location_id)
        ws["A3"] = "Type / currency"
        ws["B3"] = f"{wallet.type.value} / {wallet.currency.value}"
        ws["A4"] = "Opening balance"
        ws["B4"] = float(wallet.initial_balance)
        _money(ws["B4"])
        ws["A5"] = "Current balance"
        ws["B5"] = float(wallet.balance)
        _money(ws["B5"])

        header_row = 7
        ws.append([])
        ws.append(["Date", "Type", "Amount", "Before", "After", "Reference", "Description"])
        _bold_row(ws, header_row)

        for tx in txs:
            ref = tx.reference_type + (f" #{tx.reference_id}" if tx.reference_id else "")
            ws.append([
                tx.created_at,
                tx.type.value,
                float(tx.amount),
                float(tx.balance_before),
                float(tx.balance_after),
                ref,
                tx.description or "",
            ])
            r = ws.max_row
            for col in ("C", "D", "E"):
                _money(ws[f"{col}{r}"])

        _set_widths(ws, {"A": 20, "B": 14, "C": 14, "D": 14, "E": 14, "F": 28, "G": 40})
        wb.save(path)
        log.info("wallet_statement_exported wallet_id=%s rows=%s path=%s", wallet.id, len(txs), path)
        return len(txs)

    def export_orders(self, path: str, status: Optional[OrderStatus] = None) -> int:
        """Orders on the first sheet, their lines on the second."""
        orders = self.orders.list_orders(status)

        wb = Workbook()
        ws = wb.active
        ws.title = "Orders"
        ws.append([
            "Order", "Status", "Wallet", "Location", "Supplier", "Currency",
            "Rate (SRD/USD)", "Total", "Ordered", "Received", "Expected", "Created", "Notes",
        ])
        _bold_row(ws, 1)

        ws2 = wb.create_sheet("Lines")
        ws2.append(["Order", "Line", "Item", "Quantity", "Received", "Unit cost", "Subtotal"])
        _bold_row(ws2, 1)

        item_names: dict[int, str] = {}
        for o in orders:
            supplier = self.repo.get_client(o.supplier_id) if o.supplier_id is not None else None
            location = self.repo.get_location(o.location_id)
            ws.append([
                o.id,
                o.status.value,
                o.wallet_id,
                location.name if location else o.location_id,
                supplier.name if supplier else "",
                o.currency.value,
                float(o.exchange_rate),
                float(o.total_amount),
                o.ordered_quantity,
                o.received_quantity,
                o.expected_arrival or "",
                o.created_at,
                o.notes or "",
            ])
            _money(ws[f"H{ws.max_row}"])

            for line in o.lines:
                if line.item_id not in item_names:
                    item = self.repo.get_item(line.item_id)
                    item_names[line.item_id] = item.name if item else str(line.item_id)
                ws2.append([
                    o.id,
                    line.id,
                    item_names[line.item_id],
                    line.quantity,
                    line.quantity_received,
                    float(line.unit_cost),
                    float(line.subtotal),
                ])
                _money(ws2[f"F{ws2.max_row}"])
                _money(ws2[f"G{ws2.max_row}"])

        _set_widths(ws, {"A": 8, "B": 20, "E": 20, "H": 14, "L": 20, "M": 30})
        _set_widths(ws2, {"C": 28, "F": 12, "G": 14})
        wb.save(path)
        log.info("orders_exported count=%s status=%s path=%s", len(orders), status, path)
        return len(orders)
