from .activity_service import ActivityLog
from .catalog_service import CatalogService
from .excel_service import ExcelService
from .fx_service import FxService
from .locks import WalletLocks
from .order_service import OrderFulfillmentEngine
from .wallet_service import WalletLedger

__all__ = [
    "ActivityLog",
    "CatalogService",
    "ExcelService",
    "FxService",
    "WalletLocks",
    "OrderFulfillmentEngine",
    "WalletLedger",
]
