from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from roc.config import Settings
from roc.repositories.sqlite_repo import SqliteRepository
from roc.services.activity_service import ActivityLog
from roc.services.catalog_service import CatalogService
from roc.services.excel_service import ExcelService
from roc.services.fx_service import FxService
from roc.services.locks import WalletLocks
from roc.services.order_service import OrderFulfillmentEngine
from roc.services.wallet_service import WalletLedger


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    activity: ActivityLog
    fx: FxService
    catalog: CatalogService
    wallets: WalletLedger
    orders: OrderFulfillmentEngine
    excel: ExcelService


def build_container(db_path: Path | str, settings: Optional[Settings] = None, fx: Optional[FxService] = None) -> AppContainer:
    settings = settings or Settings()
    repo = SqliteRepository(db_path, timeout=settings.lock_timeout)
    repo.init_db()

    activity = ActivityLog(repo)
    fx = fx or FxService(repo, default_rate=settings.default_fx_rate, timeout=settings.fx_timeout, activity=activity)
    locks = WalletLocks(timeout=settings.lock_timeout)
    catalog = CatalogService(repo, activity=activity)
    wallets = WalletLedger(repo, locks=locks, activity=activity)
    orders = OrderFulfillmentEngine(repo, wallets, fx, locks=locks, activity=activity)
    excel = ExcelService(repo, wallets, orders)

    return AppContainer(
        repo=repo,
        activity=activity,
        fx=fx,
        catalog=catalog,
        wallets=wallets,
        orders=orders,
        excel=excel,
    )
