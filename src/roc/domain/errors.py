class AppError(Exception):
    """Base app error."""


# ---------- Input validation ----------
class ValidationError(AppError):
    pass


class InvalidAmount(ValidationError):
    pass


class InvalidRate(ValidationError):
    pass


class InvalidLineItems(ValidationError):
    pass


class OverReceipt(ValidationError):
    pass


class InvalidCorrection(ValidationError):
    pass


# ---------- Lookups ----------
class NotFoundError(AppError):
    pass


class InvalidWallet(NotFoundError):
    pass


class OrderNotFound(NotFoundError):
    pass


# ---------- Business rules ----------
class BusinessRuleError(AppError):
    pass


class InsufficientFunds(BusinessRuleError):
    pass


class InsufficientBalance(InsufficientFunds):
    pass


class CurrencyMismatch(BusinessRuleError):
    pass


class InvalidStateTransition(BusinessRuleError):
    pass


class DuplicateWallet(BusinessRuleError):
    pass


# ---------- Infrastructure ----------
class ConcurrencyError(AppError):
    pass


class FxUnavailableError(AppError):
    pass


class LedgerMismatchError(AppError):
    pass
