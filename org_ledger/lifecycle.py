"""
Transaction Lifecycle Module

Creates, updates and deletes transaction records together with their balance
effects. Each operation is a single unit of work on the store: the record
change and the balance deltas either all persist or none do.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, List, Optional, Union
import uuid

from .accounts import AccountStore, DEFAULT_CURRENCY
from .balances import BalanceEngine
from .storage import StorageInterface
from .transactions import Transaction, TransactionStore, TransactionType
from .validation import TransactionValidator, parse_amount
from .exceptions import InvalidInputError, LedgerError
from .logging_config import get_logger, log_action


class _Unset:
    def __repr__(self):
        return "UNSET"


UNSET: Any = _Unset()

# Fields whose change alters a transaction's balance effect
EFFECT_FIELDS = ("transaction_type", "amount", "from_account_id", "to_account_id")


def coerce_transaction_type(value: Union[str, TransactionType]) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(str(value).upper())
    except ValueError:
        valid = ", ".join(t.value for t in TransactionType)
        raise InvalidInputError(
            f"Invalid transaction type '{value}'. Must be one of: {valid}",
            code="INVALID_TRANSACTION_TYPE"
        )


def coerce_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """ISO string or datetime to an aware datetime (naive values are taken as UTC)"""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInputError(f"Invalid date '{value}'", code="INVALID_DATE")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class TransactionManager:
    """
    Orchestrates transaction records and their balance effects
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_store: Optional[AccountStore] = None,
        transaction_store: Optional[TransactionStore] = None,
        validator: Optional[TransactionValidator] = None,
        balance_engine: Optional[BalanceEngine] = None,
        default_currency: str = DEFAULT_CURRENCY
    ):
        self.storage = storage
        self.account_store = account_store or AccountStore(storage)
        self.transaction_store = transaction_store or TransactionStore(storage)
        self.validator = validator or TransactionValidator(self.account_store)
        self.balance_engine = balance_engine or BalanceEngine(storage, self.account_store)
        self.default_currency = default_currency
        self.logger = get_logger("org_ledger.transactions")

    def create_transaction(
        self,
        organization_id: str,
        transaction_type: Union[str, TransactionType],
        amount: Any,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        date: Union[str, datetime, None] = None,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None
    ) -> Transaction:
        """
        Record a transaction and apply its balance effect

        Args:
            organization_id: Owning organization
            transaction_type: INCOME, EXPENSE or TRANSFER
            amount: Strictly positive decimal (string, int or Decimal)
            currency: Currency code (defaults to the manager default)
            description: Optional free text
            date: Occurrence date (defaults to now)
            category: Optional category label
            tags: Ordered tags
            from_account_id: Source account (EXPENSE, TRANSFER)
            to_account_id: Destination account (INCOME, TRANSFER)

        Returns:
            The stored Transaction

        Raises:
            InvalidInputError: Bad amount or endpoint shape
            NotFoundError: Endpoint not in the organization
            PreconditionFailedError: Endpoint account inactive
        """
        kind = coerce_transaction_type(transaction_type)
        now = datetime.now(timezone.utc)

        try:
            with self.storage.atomic():
                parsed_amount = self.validator.validate(
                    organization_id, kind, amount, from_account_id, to_account_id
                )
                transaction = Transaction(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    organization_id=organization_id,
                    transaction_type=kind,
                    amount=parsed_amount,
                    date=coerce_datetime(date) or now,
                    currency=currency or self.default_currency,
                    description=description,
                    category=category,
                    tags=list(tags or []),
                    from_account_id=from_account_id,
                    to_account_id=to_account_id
                )
                self.transaction_store.save(transaction)
                self.balance_engine.apply(transaction)
        except LedgerError as e:
            self._log_rejection("create_transaction", organization_id, None, e)
            raise

        log_action(
            self.logger, "info", f"Transaction created: {kind.value}",
            action="create_transaction", resource=f"transaction:{transaction.id}",
            organization_id=organization_id,
            extra={
                "amount": str(transaction.amount),
                "currency": transaction.currency,
                "from_account": from_account_id,
                "to_account": to_account_id
            }
        )
        return transaction

    def get_transaction(self, organization_id: str, transaction_id: str) -> Transaction:
        return self.transaction_store.get(organization_id, transaction_id)

    def list_transactions(
        self,
        organization_id: str,
        account_id: Optional[str] = None,
        transaction_type: Union[str, TransactionType, None] = None,
        start_date: Union[str, datetime, None] = None,
        end_date: Union[str, datetime, None] = None,
        category: Optional[str] = None
    ) -> List[Transaction]:
        """
        List transactions, most recent date first

        ``account_id`` matches either endpoint; ``category`` is a
        case-insensitive substring match; date bounds are inclusive.
        """
        filters = {}
        if transaction_type is not None:
            filters['transaction_type'] = coerce_transaction_type(transaction_type).value

        start = coerce_datetime(start_date)
        end = coerce_datetime(end_date)
        needle = category.lower() if category else None

        results = []
        for transaction in self.transaction_store.list(organization_id, filters):
            if account_id and not transaction.references(account_id):
                continue
            if start and transaction.date < start:
                continue
            if end and transaction.date > end:
                continue
            if needle and needle not in (transaction.category or "").lower():
                continue
            results.append(transaction)

        return sorted(results, key=lambda t: t.date, reverse=True)

    def update_transaction(
        self,
        organization_id: str,
        transaction_id: str,
        transaction_type: Any = UNSET,
        amount: Any = UNSET,
        currency: Any = UNSET,
        description: Any = UNSET,
        date: Any = UNSET,
        category: Any = UNSET,
        tags: Any = UNSET,
        from_account_id: Any = UNSET,
        to_account_id: Any = UNSET
    ) -> Transaction:
        """
        Change any fields of a transaction

        Omitted arguments keep their value; an explicit None clears an
        optional field. When the type, amount or an endpoint changes, the new
        values are validated, the old effect is reverted using the record as
        it was before this call, and the new effect is applied. Revert, record
        write and apply run in one unit of work.
        """
        try:
            with self.storage.atomic():
                original = self.transaction_store.get(organization_id, transaction_id)

                changes = {}
                if transaction_type is not UNSET:
                    changes['transaction_type'] = coerce_transaction_type(transaction_type)
                if amount is not UNSET:
                    parsed = parse_amount(amount)
                    changes['amount'] = amount if parsed is None else parsed
                if from_account_id is not UNSET:
                    changes['from_account_id'] = from_account_id
                if to_account_id is not UNSET:
                    changes['to_account_id'] = to_account_id
                if currency is not UNSET:
                    changes['currency'] = currency or self.default_currency
                if description is not UNSET:
                    changes['description'] = description
                if category is not UNSET:
                    changes['category'] = category
                if tags is not UNSET:
                    changes['tags'] = list(tags or [])
                if date is not UNSET:
                    changes['date'] = coerce_datetime(date) or original.date

                effect_changed = any(
                    name in changes and changes[name] != getattr(original, name)
                    for name in EFFECT_FIELDS
                )

                if effect_changed:
                    changes['amount'] = self.validator.validate(
                        organization_id,
                        changes.get('transaction_type', original.transaction_type),
                        changes.get('amount', original.amount),
                        changes.get('from_account_id', original.from_account_id),
                        changes.get('to_account_id', original.to_account_id)
                    )
                elif 'amount' in changes:
                    changes['amount'] = original.amount

                updated = replace(original, updated_at=datetime.now(timezone.utc), **changes)

                if effect_changed:
                    self.balance_engine.revert(original)
                self.transaction_store.save(updated)
                if effect_changed:
                    self.balance_engine.apply(updated)
        except LedgerError as e:
            self._log_rejection("update_transaction", organization_id, transaction_id, e)
            raise

        log_action(
            self.logger, "info", "Transaction updated",
            action="update_transaction", resource=f"transaction:{transaction_id}",
            organization_id=organization_id,
            extra={
                "fields": sorted(changes),
                "effect_changed": effect_changed,
                "amount": str(updated.amount)
            }
        )
        return updated

    def delete_transaction(self, organization_id: str, transaction_id: str) -> None:
        """Revert a transaction's effect and remove the record in one unit of work"""
        try:
            with self.storage.atomic():
                transaction = self.transaction_store.get(organization_id, transaction_id)
                self.balance_engine.revert(transaction)
                self.transaction_store.remove(organization_id, transaction_id)
        except LedgerError as e:
            self._log_rejection("delete_transaction", organization_id, transaction_id, e)
            raise

        log_action(
            self.logger, "info", "Transaction deleted",
            action="delete_transaction", resource=f"transaction:{transaction_id}",
            organization_id=organization_id,
            extra={"amount": str(transaction.amount)}
        )

    def _log_rejection(
        self,
        action: str,
        organization_id: str,
        transaction_id: Optional[str],
        error: LedgerError
    ) -> None:
        log_action(
            self.logger, "warning", error.reason,
            action=action,
            resource=f"transaction:{transaction_id}" if transaction_id else None,
            organization_id=organization_id,
            extra={"code": error.code}
        )
