"""
Tests for the balance mutation engine
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from org_ledger.storage import InMemoryStorage, SQLiteStorage
from org_ledger.accounts import AccountManager, AccountStore, AccountType
from org_ledger.transactions import Transaction, TransactionType
from org_ledger.balances import BalanceDelta, BalanceEngine, transaction_effects
from org_ledger.exceptions import InvalidInputError, NotFoundError


ORG = "org-1"


def make_transaction(kind, amount, from_id=None, to_id=None):
    now = datetime.now(timezone.utc)
    return Transaction(
        id="txn-1",
        created_at=now,
        updated_at=now,
        organization_id=ORG,
        transaction_type=kind,
        amount=Decimal(amount),
        date=now,
        from_account_id=from_id,
        to_account_id=to_id
    )


class TestTransactionEffects:
    """Deltas per transaction type"""

    def test_income_credits_destination(self):
        effects = transaction_effects(make_transaction(TransactionType.INCOME, "25", to_id="a"))
        assert effects == [BalanceDelta("a", Decimal("25"))]

    def test_expense_debits_source(self):
        effects = transaction_effects(make_transaction(TransactionType.EXPENSE, "25", from_id="a"))
        assert effects == [BalanceDelta("a", Decimal("-25"))]

    def test_transfer_moves_between_accounts(self):
        effects = transaction_effects(make_transaction(TransactionType.TRANSFER, "25", "a", "b"))
        assert effects == [BalanceDelta("a", Decimal("-25")), BalanceDelta("b", Decimal("25"))]

    def test_transfer_nets_to_zero(self):
        effects = transaction_effects(make_transaction(TransactionType.TRANSFER, "99.99", "a", "b"))
        assert sum(e.delta for e in effects) == Decimal("0")

    def test_mismatched_endpoints_raise(self):
        with pytest.raises(InvalidInputError):
            transaction_effects(make_transaction(TransactionType.INCOME, "1", from_id="a"))
        with pytest.raises(InvalidInputError):
            transaction_effects(make_transaction(TransactionType.TRANSFER, "1", from_id="a"))

    def test_negated(self):
        assert BalanceDelta("a", Decimal("3")).negated() == BalanceDelta("a", Decimal("-3"))


class FailingOnSecondIncrement(InMemoryStorage):
    """Storage whose second balance increment blows up"""

    def __init__(self):
        super().__init__()
        self.calls = 0
        self.armed = False

    def increment(self, table, record_id, field, delta):
        if self.armed:
            self.calls += 1
            if self.calls == 2:
                raise RuntimeError("storage failure")
        return super().increment(table, record_id, field, delta)


class TestBalanceEngine:
    """Apply and revert"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.store = AccountStore(self.storage)
        manager = AccountManager(self.storage, self.store)
        self.a = manager.create_account(ORG, "A", AccountType.ASSET)
        self.b = manager.create_account(ORG, "B", AccountType.ASSET)
        self.engine = BalanceEngine(self.storage, self.store)

    def balance(self, account):
        return self.store.get(ORG, account.id).balance

    def test_apply_then_revert_restores_balances(self):
        transaction = make_transaction(TransactionType.TRANSFER, "40.10", self.a.id, self.b.id)

        self.engine.apply(transaction)
        assert self.balance(self.a) == Decimal("-40.10")
        assert self.balance(self.b) == Decimal("40.10")

        self.engine.revert(transaction)
        assert self.balance(self.a) == Decimal("0")
        assert self.balance(self.b) == Decimal("0")

    def test_revert_can_drive_balance_negative(self):
        self.engine.revert(make_transaction(TransactionType.INCOME, "10", to_id=self.a.id))
        assert self.balance(self.a) == Decimal("-10")

    def test_missing_account_applies_nothing(self):
        transaction = make_transaction(TransactionType.TRANSFER, "5", self.a.id, "gone")

        with pytest.raises(NotFoundError):
            self.engine.apply(transaction)
        assert self.balance(self.a) == Decimal("0")

    def test_transfer_is_all_or_nothing(self):
        storage = FailingOnSecondIncrement()
        store = AccountStore(storage)
        manager = AccountManager(storage, store)
        a = manager.create_account(ORG, "A", AccountType.ASSET)
        b = manager.create_account(ORG, "B", AccountType.ASSET)
        engine = BalanceEngine(storage, store)

        storage.armed = True
        with pytest.raises(RuntimeError):
            engine.apply(make_transaction(TransactionType.TRANSFER, "10", a.id, b.id))

        assert store.get(ORG, a.id).balance == Decimal("0")
        assert store.get(ORG, b.id).balance == Decimal("0")


class TestBalanceEngineSQLite:
    """The same all-or-nothing guarantee on a persistent backend"""

    def test_missing_destination_rolls_back_source(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "ledger.db")
        store = AccountStore(storage)
        a = AccountManager(storage, store).create_account(ORG, "A", AccountType.ASSET)
        engine = BalanceEngine(storage, store)

        with pytest.raises(NotFoundError):
            engine.apply(make_transaction(TransactionType.TRANSFER, "10", a.id, "gone"))

        assert store.get(ORG, a.id).balance == Decimal("0")
        storage.close()
