from .models import (
    Currency,
    WalletType,
    TransactionType,
    OrderStatus,
    Wallet,
    WalletTransaction,
    PurchaseOrder,
    PurchaseOrderLine,
    Item,
    Location,
    Client,
    StockRow,
    ActivityEntry,
)
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
    InvalidWallet,
    InsufficientFunds,
    InsufficientBalance,
    CurrencyMismatch,
    InvalidLineItems,
    InvalidStateTransition,
    OverReceipt,
    InvalidRate,
    InvalidCorrection,
    ConcurrencyError,
    FxUnavailableError,
)

__all__ = [
    "Currency",
    "WalletType",
    "TransactionType",
    "OrderStatus",
    "Wallet",
    "WalletTransaction",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "Item",
    "Location",
    "Client",
    "StockRow",
    "ActivityEntry",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "BusinessRuleError",
    "InvalidWallet",
    "InsufficientFunds",
    "InsufficientBalance",
    "CurrencyMismatch",
    "InvalidLineItems",
    "InvalidStateTransition",
    "OverReceipt",
    "InvalidRate",
    "InvalidCorrection",
    "ConcurrencyError",
    "FxUnavailableError",
]
