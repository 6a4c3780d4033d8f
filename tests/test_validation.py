"""
Tests for transaction validation

Each rule is checked on its own, then the fixed evaluation order.
"""

import pytest
from decimal import Decimal

from org_ledger.storage import InMemoryStorage
from org_ledger.accounts import AccountManager, AccountStore, AccountType
from org_ledger.transactions import TransactionType
from org_ledger.validation import TransactionValidator, Rejection, parse_amount
from org_ledger.exceptions import InvalidInputError, NotFoundError, PreconditionFailedError


ORG = "org-1"
OTHER_ORG = "org-2"


class TestParseAmount:
    """Exact decimal parsing"""

    def test_strings_and_ints(self):
        assert parse_amount("100.50") == Decimal("100.50")
        assert parse_amount(" 7 ") == Decimal("7")
        assert parse_amount(3) == Decimal("3")

    def test_float_uses_shortest_repr(self):
        assert parse_amount(0.1) == Decimal("0.1")

    def test_rejects_garbage(self):
        assert parse_amount(None) is None
        assert parse_amount(True) is None
        assert parse_amount("abc") is None
        assert parse_amount("NaN") is None
        assert parse_amount("Infinity") is None


class TestTransactionValidator:
    """Validation rules in order"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.store = AccountStore(self.storage)
        manager = AccountManager(self.storage, self.store)
        self.checking = manager.create_account(ORG, "Checking", AccountType.ASSET)
        self.savings = manager.create_account(ORG, "Savings", AccountType.ASSET)
        self.closed = manager.create_account(ORG, "Closed", AccountType.ASSET, is_active=False)
        self.foreign = manager.create_account(OTHER_ORG, "Foreign", AccountType.ASSET)
        self.validator = TransactionValidator(self.store)

    def check(self, kind, amount, from_id=None, to_id=None):
        return self.validator.check(ORG, kind, amount, from_id, to_id)

    def test_valid_intents(self):
        assert self.check(TransactionType.INCOME, "10", to_id=self.checking.id) is None
        assert self.check(TransactionType.EXPENSE, "10", from_id=self.checking.id) is None
        assert self.check(TransactionType.TRANSFER, "10", self.checking.id, self.savings.id) is None

    @pytest.mark.parametrize("amount", ["0", "-5", "0.00", None, "abc"])
    def test_non_positive_amount(self, amount):
        rejection = self.check(TransactionType.INCOME, amount, to_id=self.checking.id)
        assert rejection.code == "NON_POSITIVE_AMOUNT"
        assert rejection.reason == "Transaction amount must be greater than zero"

    def test_income_shape(self):
        assert self.check(TransactionType.INCOME, "1").code == "INCOME_MISSING_DESTINATION"
        rejection = self.check(TransactionType.INCOME, "1", self.savings.id, self.checking.id)
        assert rejection.code == "INCOME_HAS_SOURCE"
        assert rejection.reason == "Income transactions should not have a source account (fromAccountId)"

    def test_expense_shape(self):
        assert self.check(TransactionType.EXPENSE, "1").code == "EXPENSE_MISSING_SOURCE"
        rejection = self.check(TransactionType.EXPENSE, "1", self.checking.id, self.savings.id)
        assert rejection.code == "EXPENSE_HAS_DESTINATION"
        assert rejection.reason == "Expense transactions should not have a destination account (toAccountId)"

    def test_transfer_shape(self):
        assert self.check(TransactionType.TRANSFER, "1", from_id=self.checking.id).code == "TRANSFER_MISSING_ENDPOINT"
        assert self.check(TransactionType.TRANSFER, "1", to_id=self.checking.id).code == "TRANSFER_MISSING_ENDPOINT"
        rejection = self.check(TransactionType.TRANSFER, "1", self.checking.id, self.checking.id)
        assert rejection.code == "TRANSFER_SAME_ACCOUNT"
        assert rejection.reason == "Cannot transfer funds to the same account"

    def test_unknown_account(self):
        rejection = self.check(TransactionType.INCOME, "1", to_id="missing")
        assert rejection.code == "ACCOUNT_NOT_FOUND"
        assert rejection.reason == "Account with ID 'missing' not found in your organization"

    def test_other_organization_account_looks_missing(self):
        foreign = self.check(TransactionType.INCOME, "1", to_id=self.foreign.id)
        missing = self.check(TransactionType.INCOME, "1", to_id="missing")
        assert foreign.code == missing.code == "ACCOUNT_NOT_FOUND"

    def test_inactive_account(self):
        rejection = self.check(TransactionType.TRANSFER, "1", self.checking.id, self.closed.id)
        assert rejection.code == "ACCOUNT_INACTIVE"
        assert rejection.reason == "Account 'Closed' is inactive"
        assert rejection.account_id == self.closed.id

    def test_amount_checked_before_shape(self):
        rejection = self.check(TransactionType.TRANSFER, "-1", self.checking.id, self.checking.id)
        assert rejection.code == "NON_POSITIVE_AMOUNT"

    def test_shape_checked_before_resolution(self):
        rejection = self.check(TransactionType.INCOME, "1", "missing", "also-missing")
        assert rejection.code == "INCOME_HAS_SOURCE"

    def test_source_resolved_before_destination(self):
        rejection = self.check(TransactionType.TRANSFER, "1", self.closed.id, "missing")
        assert rejection.code == "ACCOUNT_INACTIVE"
        rejection = self.check(TransactionType.TRANSFER, "1", "missing", self.closed.id)
        assert rejection.code == "ACCOUNT_NOT_FOUND"

    def test_rejection_is_repeatable_and_read_only(self):
        first = self.check(TransactionType.EXPENSE, "5", from_id=self.closed.id)
        second = self.check(TransactionType.EXPENSE, "5", from_id=self.closed.id)

        assert first == second
        assert self.store.get(ORG, self.closed.id).balance == Decimal("0")

    def test_validate_returns_exact_amount(self):
        amount = self.validator.validate(ORG, TransactionType.INCOME, "19.99", None, self.checking.id)
        assert amount == Decimal("19.99")

    def test_validate_raises_typed_errors(self):
        with pytest.raises(InvalidInputError):
            self.validator.validate(ORG, TransactionType.INCOME, "0", None, self.checking.id)
        with pytest.raises(NotFoundError):
            self.validator.validate(ORG, TransactionType.INCOME, "1", None, "missing")
        with pytest.raises(PreconditionFailedError):
            self.validator.validate(ORG, TransactionType.INCOME, "1", None, self.closed.id)


class TestRejection:
    """Mapping rejections onto error types"""

    def test_to_error(self):
        assert isinstance(Rejection("ACCOUNT_NOT_FOUND", "x").to_error(), NotFoundError)
        assert isinstance(Rejection("ACCOUNT_INACTIVE", "x").to_error(), PreconditionFailedError)
        error = Rejection("TRANSFER_SAME_ACCOUNT", "Cannot transfer funds to the same account").to_error()
        assert isinstance(error, InvalidInputError)
        assert error.code == "TRANSFER_SAME_ACCOUNT"
        assert str(error) == "Cannot transfer funds to the same account"
