from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from roc.domain.currency import Number, money
from roc.domain.errors import (
    CurrencyMismatch,
    DuplicateWallet,
    InsufficientBalance,
    InvalidAmount,
    InvalidCorrection,
    InvalidWallet,
    LedgerMismatchError,
    NotFoundError,
    ValidationError,
)
from roc.domain.models import Currency, TransactionType, Wallet, WalletTransaction, WalletType
from roc.repositories.contracts import UnitOfWork
from roc.repositories.unit_of_work import SqliteUnitOfWork, now_iso
from roc.services.locks import WalletLocks

log = logging.getLogger("roc.wallets")

MANUAL_KINDS = ("add", "remove", "correct")


@dataclass(frozen=True)
class ReconciliationIssue:
    wallet_id: int
    stored_balance: Decimal
    replayed_balance: Decimal
    broken_chain_at: Optional[str] = None


@dataclass(frozen=True)
class LocationBalance:
    location_id: int
    location_name: str
    total_srd: Decimal
    total_usd: Decimal


@dataclass(frozen=True)
class BalanceSummary:
    locations: list[LocationBalance]
    total_srd: Decimal
    total_usd: Decimal


def _wallet_label(wallet: Wallet) -> str:
    return f"{wallet.type.value} {wallet.currency.value} #{wallet.id}"


class WalletLedger:
    """Wallet balances and their append-only transaction log.

    Every balance change is one unit of work: the balance update (guarded by
    the wallet's version) and the ledger row land together or not at all.
    Callers that already hold a unit of work (the order engine) pass it in
    through ``uow=`` and must already hold the wallet lock.
    """

    def __init__(
        self,
        repo,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        locks: WalletLocks | None = None,
        activity=None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.locks = locks or WalletLocks()
        self.activity = activity

    # ---------- Administration ----------
    def create_wallet(
        self,
        location_id: int,
        wallet_type: WalletType | str,
        currency: Currency | str,
        initial_balance: Number = 0,
        user_id: Optional[int] = None,
    ) -> int:
        try:
            wallet_type = WalletType(wallet_type)
            currency = Currency(currency)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        opening = money(initial_balance)
        if opening < 0:
            raise InvalidAmount("Initial balance must be >= 0.")

        with self.uow_factory() as uow:
            location = uow.catalog.get_location(location_id)
            if location is None:
                raise NotFoundError(f"Location {location_id} not found.")
            if uow.wallets.find(location_id, wallet_type, currency) is not None:
                raise DuplicateWallet(
                    f"A {wallet_type.value} {currency.value} wallet already exists for {location.name}."
                )
            wallet_id = uow.wallets.add(location_id, wallet_type, currency, opening, now_iso())

        log.info("wallet_created wallet_id=%s location_id=%s type=%s currency=%s opening=%s",
                 wallet_id, location_id, wallet_type.value, currency.value, opening)
        self._audit(
            "create",
            wallet_id,
            f"{location.name} {wallet_type.value} {currency.value}",
            f"Created {wallet_type.value} {currency.value} wallet for {location.name} with balance {opening}",
            user_id,
        )
        return wallet_id

    def get_wallet(self, wallet_id: int) -> Wallet:
        wallet = self.repo.get_wallet(wallet_id)
        if wallet is None:
            raise InvalidWallet(f"Wallet {wallet_id} not found.")
        return wallet

    def list_wallets(self) -> list[Wallet]:
        return self.repo.list_wallets()

    def transactions_for_wallet(self, wallet_id: int) -> list[WalletTransaction]:
        self.get_wallet(wallet_id)
        return self.repo.wallet_transactions(wallet_id)

    def recent_transactions(self, limit: int = 50) -> list[WalletTransaction]:
        return self.repo.recent_wallet_transactions(limit)

    # ---------- Posting ----------
    def _post(
        self,
        uow: UnitOfWork,
        wallet_id: int,
        tx_type: TransactionType,
        amount: Decimal,
        reference_type: str,
        reference_id: Optional[str],
        description: Optional[str],
        *,
        target_balance: Optional[Decimal] = None,
        tx_id: Optional[str] = None,
        transfer_id: Optional[str] = None,
    ) -> tuple[Wallet, WalletTransaction]:
        wallet = uow.wallets.get(wallet_id)
        if wallet is None:
            raise InvalidWallet(f"Wallet {wallet_id} not found.")

        before = wallet.balance
        if tx_type is TransactionType.CREDIT:
            after = before + amount
        elif tx_type is TransactionType.DEBIT:
            if amount > before:
                raise InsufficientBalance(
                    f"Insufficient balance in wallet {wallet_id}: balance {before}, requested {amount}."
                )
            after = before - amount
        else:
            after = target_balance
            amount = abs(after - before)

        tx = WalletTransaction(
            id=tx_id or uuid.uuid4().hex,
            wallet_id=wallet.id,
            type=tx_type,
            amount=amount,
            balance_before=before,
            balance_after=after,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            currency=wallet.currency,
            created_at=now_iso(),
            transfer_id=transfer_id,
        )
        uow.wallets.update_balance(wallet.id, after, wallet.version)
        uow.wallets.append_transaction(tx)
        log.info("wallet_%s wallet_id=%s amount=%s balance_before=%s balance_after=%s ref=%s:%s",
                 tx_type.value, wallet.id, amount, before, after, reference_type, reference_id)
        return wallet, tx

    def _positive(self, amount: Number) -> Decimal:
        value = money(amount)
        if value <= 0:
            raise InvalidAmount("Amount must be > 0.")
        return value

    def _single(
        self,
        wallet_id: int,
        tx_type: TransactionType,
        amount: Decimal,
        reference_type: str,
        reference_id: Optional[str],
        description: Optional[str],
        uow: UnitOfWork | None,
    ) -> Decimal:
        if uow is not None:
            _w, tx = self._post(uow, wallet_id, tx_type, amount, reference_type, reference_id, description)
            return tx.balance_after
        with self.locks.hold(wallet_id), self.uow_factory() as own:
            _w, tx = self._post(own, wallet_id, tx_type, amount, reference_type, reference_id, description)
        return tx.balance_after

    def debit(
        self,
        wallet_id: int,
        amount: Number,
        reference_type: str,
        reference_id: object = None,
        *,
        description: Optional[str] = None,
        uow: UnitOfWork | None = None,
    ) -> Decimal:
        value = self._positive(amount)
        ref = str(reference_id) if reference_id is not None else None
        return self._single(wallet_id, TransactionType.DEBIT, value, reference_type, ref, description, uow)

    def credit(
        self,
        wallet_id: int,
        amount: Number,
        reference_type: str,
        reference_id: object = None,
        *,
        description: Optional[str] = None,
        uow: UnitOfWork | None = None,
    ) -> Decimal:
        value = self._positive(amount)
        ref = str(reference_id) if reference_id is not None else None
        return self._single(wallet_id, TransactionType.CREDIT, value, reference_type, ref, description, uow)

    # ---------- Manual operations ----------
    def manual_transaction(
        self,
        wallet_id: int,
        kind: str,
        amount: Number,
        description: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> Decimal:
        """
        kind: add | remove | correct

        add/remove move the balance by ``amount``. correct sets the balance to
        ``amount`` and records an adjustment for the difference.
        """
        if kind not in MANUAL_KINDS:
            raise ValidationError(f"Unknown transaction kind: {kind!r}. Expected one of {MANUAL_KINDS}.")

        if kind == "correct":
            target = money(amount)
            if target < 0:
                raise InvalidCorrection("Corrected balance must be >= 0.")
            with self.locks.hold(wallet_id), self.uow_factory() as uow:
                wallet = uow.wallets.get(wallet_id)
                if wallet is None:
                    raise InvalidWallet(f"Wallet {wallet_id} not found.")
                if wallet.balance == target:
                    log.info("wallet_correction_noop wallet_id=%s balance=%s", wallet_id, target)
                    return target
                text = description or f"Balance correction to {target} {wallet.currency.value}"
                _w, tx = self._post(
                    uow, wallet_id, TransactionType.ADJUSTMENT, Decimal("0"), "correction", None, text,
                    target_balance=target,
                )
            self._audit(
                "adjust", wallet_id, _wallet_label(wallet),
                f"Corrected balance from {tx.balance_before} to {tx.balance_after} {wallet.currency.value}", user_id,
            )
            return tx.balance_after

        value = self._positive(amount)
        tx_type = TransactionType.CREDIT if kind == "add" else TransactionType.DEBIT
        with self.locks.hold(wallet_id), self.uow_factory() as uow:
            wallet, tx = self._post(uow, wallet_id, tx_type, value, "adjustment", None, description)
        verb = "Added" if kind == "add" else "Removed"
        self._audit(
            "adjust", wallet_id, _wallet_label(wallet),
            f"{verb} {value} {wallet.currency.value}" + (f": {description}" if description else ""), user_id,
        )
        return tx.balance_after

    def transfer(
        self,
        from_wallet_id: int,
        to_wallet_id: int,
        amount: Number,
        description: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> tuple[Decimal, Decimal]:
        value = self._positive(amount)
        if int(from_wallet_id) == int(to_wallet_id):
            raise ValidationError("Source and destination wallets must differ.")

        transfer_id = uuid.uuid4().hex
        debit_id = uuid.uuid4().hex
        credit_id = uuid.uuid4().hex

        with self.locks.hold(from_wallet_id, to_wallet_id), self.uow_factory() as uow:
            src = uow.wallets.get(from_wallet_id)
            dst = uow.wallets.get(to_wallet_id)
            if src is None or dst is None:
                raise InvalidWallet("Invalid wallet selection.")
            if src.currency is not dst.currency:
                raise CurrencyMismatch(
                    f"Cannot transfer between wallets with different currencies ({src.currency.value} -> {dst.currency.value})."
                )
            if src.balance < value:
                raise InsufficientBalance(f"Insufficient balance in source wallet: balance {src.balance}, requested {value}.")

            _s, out_tx = self._post(
                uow, src.id, TransactionType.DEBIT, value, "transfer", credit_id,
                description or f"Transfer to {_wallet_label(dst)}",
                tx_id=debit_id, transfer_id=transfer_id,
            )
            _d, in_tx = self._post(
                uow, dst.id, TransactionType.CREDIT, value, "transfer", debit_id,
                description or f"Transfer from {_wallet_label(src)}",
                tx_id=credit_id, transfer_id=transfer_id,
            )

        log.info("wallet_transfer transfer_id=%s from=%s to=%s amount=%s", transfer_id, src.id, dst.id, value)
        self._audit(
            "transfer", transfer_id, f"{_wallet_label(src)} -> {_wallet_label(dst)}",
            f"Transferred {value} {src.currency.value}", user_id,
        )
        return out_tx.balance_after, in_tx.balance_after

    # ---------- Reconciliation ----------
    def replay_balance(self, wallet_id: int) -> Decimal:
        wallet = self.get_wallet(wallet_id)
        balance = wallet.initial_balance
        for tx in self.repo.wallet_transactions(wallet_id):
            balance += tx.signed_delta
        return balance

    def _check(self, wallet: Wallet) -> Optional[ReconciliationIssue]:
        running = wallet.initial_balance
        broken_at = None
        for tx in self.repo.wallet_transactions(wallet.id):
            if broken_at is None and tx.balance_before != running:
                broken_at = tx.id
            running += tx.signed_delta
        if running != wallet.balance or broken_at is not None:
            return ReconciliationIssue(wallet.id, wallet.balance, running, broken_at)
        return None

    def reconcile(self, wallet_id: Optional[int] = None) -> list[ReconciliationIssue]:
        wallets = [self.get_wallet(wallet_id)] if wallet_id is not None else self.list_wallets()
        issues = [issue for issue in (self._check(w) for w in wallets) if issue is not None]
        for issue in issues:
            log.error("wallet_reconciliation_failed wallet_id=%s stored=%s replayed=%s broken_at=%s",
                      issue.wallet_id, issue.stored_balance, issue.replayed_balance, issue.broken_chain_at)
        return issues

    def assert_reconciled(self, wallet_id: Optional[int] = None) -> None:
        issues = self.reconcile(wallet_id)
        if issues:
            ids = ", ".join(str(i.wallet_id) for i in issues)
            raise LedgerMismatchError(f"Wallet balances do not match their ledger: {ids}")

    def balances_by_location(self) -> BalanceSummary:
        names = {loc.id: loc.name for loc in self.repo.list_locations()}
        totals: dict[int, dict[Currency, Decimal]] = {}
        for w in self.list_wallets():
            per_currency = totals.setdefault(w.location_id, {Currency.SRD: Decimal("0"), Currency.USD: Decimal("0")})
            per_currency[w.currency] += w.balance

        rows = [
            LocationBalance(
                location_id=lid,
                location_name=names.get(lid, "Unknown"),
                total_srd=t[Currency.SRD],
                total_usd=t[Currency.USD],
            )
            for lid, t in sorted(totals.items(), key=lambda kv: names.get(kv[0], ""))
        ]
        return BalanceSummary(
            locations=rows,
            total_srd=sum((r.total_srd for r in rows), Decimal("0")),
            total_usd=sum((r.total_usd for r in rows), Decimal("0")),
        )

    def _audit(self, action: str, entity_id: object, name: str, details: str, user_id: Optional[int]) -> None:
        if self.activity is not None:
            self.activity.record(action, "wallet", entity_id=entity_id, entity_name=name, details=details, user_id=user_id)
