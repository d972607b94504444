from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from roc.application.container import AppContainer, build_container
from roc.config import Settings, get_app_paths
from roc.domain.errors import AppError
from roc.domain.models import OrderStatus
from roc.logging_config import setup_logging

log = logging.getLogger(__name__)


def _cmd_wallets(app: AppContainer, args) -> None:
    names = {loc.id: loc.name for loc in app.repo.list_locations()}
    for w in app.wallets.list_wallets():
        print(f"{w.id:>4}  {names.get(w.location_id, w.location_id):<20} {w.type.value:<5} {w.currency.value}  {w.balance:>14}")
    summary = app.wallets.balances_by_location()
    print(f"Total SRD {summary.total_srd}  |  Total USD {summary.total_usd}")


def _cmd_transfer(app: AppContainer, args) -> None:
    src, dst = app.wallets.transfer(args.from_wallet, args.to_wallet, args.amount, description=args.description)
    print(f"Wallet {args.from_wallet}: {src}  |  Wallet {args.to_wallet}: {dst}")


def _cmd_adjust(app: AppContainer, args) -> None:
    balance = app.wallets.manual_transaction(args.wallet, args.kind, args.amount, description=args.description)
    print(f"Wallet {args.wallet} balance: {balance}")


def _cmd_rate(app: AppContainer, args) -> None:
    if args.set is not None:
        rate = app.fx.set_manual_rate(args.set)
    else:
        rate = app.fx.get_today_rate()
    print(f"1 USD = {rate} SRD")


def _cmd_orders(app: AppContainer, args) -> None:
    for o in app.orders.list_orders(args.status):
        print(f"#{o.id:<5} {o.status.value:<19} {o.total_amount:>12} {o.currency.value}  "
              f"received {o.received_quantity}/{o.ordered_quantity}  {o.created_at}")
    totals = app.orders.order_totals()
    print(f"Open orders: {totals.open_orders}  |  " + "  ".join(
        f"{cur.value} {amount}" for cur, amount in totals.totals_by_currency.items()
    ))


def _cmd_reconcile(app: AppContainer, args) -> int:
    issues = app.wallets.reconcile()
    if not issues:
        print("All wallets reconcile with their ledger.")
        return 0
    for i in issues:
        print(f"Wallet {i.wallet_id}: stored {i.stored_balance}, ledger {i.replayed_balance}")
    return 1


def _cmd_export_wallet(app: AppContainer, args) -> None:
    rows = app.excel.export_wallet_statement(args.wallet, args.path)
    print(f"Exported {rows} ledger rows to {args.path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="roc", description="Retail operations console: wallets, orders, FX.")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("wallets", help="List wallets and balances")
    p.set_defaults(func=_cmd_wallets)

    p = sub.add_parser("transfer", help="Move money between two same-currency wallets")
    p.add_argument("from_wallet", type=int)
    p.add_argument("to_wallet", type=int)
    p.add_argument("amount")
    p.add_argument("-d", "--description", default=None)
    p.set_defaults(func=_cmd_transfer)

    p = sub.add_parser("adjust", help="Add to, remove from or correct a wallet balance")
    p.add_argument("wallet", type=int)
    p.add_argument("kind", choices=["add", "remove", "correct"])
    p.add_argument("amount")
    p.add_argument("-d", "--description", default=None)
    p.set_defaults(func=_cmd_adjust)

    p = sub.add_parser("rate", help="Show today's SRD per USD rate, or set it")
    p.add_argument("--set", default=None, metavar="RATE")
    p.set_defaults(func=_cmd_rate)

    p = sub.add_parser("orders", help="List purchase orders")
    p.add_argument("--status", choices=[s.value for s in OrderStatus], default=None)
    p.set_defaults(func=_cmd_orders)

    p = sub.add_parser("reconcile", help="Check every wallet balance against its ledger")
    p.set_defaults(func=_cmd_reconcile)

    p = sub.add_parser("export-wallet", help="Write a wallet statement to an .xlsx file")
    p.add_argument("wallet", type=int)
    p.add_argument("path")
    p.set_defaults(func=_cmd_export_wallet)

    return parser


def main(argv: Optional[Sequence[str]] = None, app: Optional[AppContainer] = None) -> int:
    args = build_parser().parse_args(argv)

    if app is None:
        settings = Settings.from_env()
        paths = get_app_paths()
        setup_logging(paths.logs_dir, level=logging.INFO)
        db_path = args.db or settings.db_path or paths.db_path
        app = build_container(db_path, settings)

    try:
        rc = args.func(app, args)
    except AppError as e:
        log.error("command_failed command=%s error=%s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return int(rc or 0)


if __name__ == "__main__":
    sys.exit(main())
