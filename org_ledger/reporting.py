"""
Reporting Module

Organization summary (balances grouped by currency) and balance
reconciliation. No currency conversion is performed: each currency is
reported on its own.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .accounts import DEFAULT_CURRENCY, AccountStore, AccountType
from .balances import transaction_effects
from .storage import StorageInterface
from .tenancy import OrganizationDirectory
from .transactions import TransactionStore
from .logging_config import get_logger, log_action


@dataclass
class CurrencyBalances:
    """Balance totals for one currency"""
    total: Decimal = Decimal('0')
    assets: Decimal = Decimal('0')
    liabilities: Decimal = Decimal('0')

    @property
    def net_worth(self) -> Decimal:
        return self.assets - self.liabilities


@dataclass
class OrganizationSummary:
    """Aggregate view of one organization's ledger"""
    organization_id: str
    name: Optional[str]
    accounts_count: int
    transactions_count: int
    members_count: int
    balances: Dict[str, CurrencyBalances] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def net_worth(self) -> Dict[str, Decimal]:
        return {currency: totals.net_worth for currency, totals in self.balances.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.organization_id,
            "name": self.name,
            "stats": {
                "accounts_count": self.accounts_count,
                "transactions_count": self.transactions_count,
                "members_count": self.members_count,
            },
            "balances": {
                currency: {
                    "total": str(totals.total),
                    "assets": str(totals.assets),
                    "liabilities": str(totals.liabilities),
                }
                for currency, totals in self.balances.items()
            },
            "net_worth": {currency: str(value) for currency, value in self.net_worth.items()},
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class BalanceDiscrepancy:
    """Account whose stored balance disagrees with its transactions"""
    account_id: str
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance


class ReportingEngine:
    """Read-only reports over an organization's accounts and transactions"""

    def __init__(
        self,
        storage: StorageInterface,
        account_store: Optional[AccountStore] = None,
        transaction_store: Optional[TransactionStore] = None,
        directory: Optional[OrganizationDirectory] = None
    ):
        self.storage = storage
        self.account_store = account_store or AccountStore(storage)
        self.transaction_store = transaction_store or TransactionStore(storage)
        self.directory = directory
        self.logger = get_logger("org_ledger.reporting")

    def organization_summary(self, organization_id: str) -> OrganizationSummary:
        """
        Summarize active accounts by currency

        Assets and liabilities are tracked separately; net worth per currency
        is assets minus liabilities.
        """
        accounts = self.account_store.list(organization_id, {"is_active": True})

        balances: Dict[str, CurrencyBalances] = {}
        for account in accounts:
            totals = balances.setdefault(account.currency or DEFAULT_CURRENCY, CurrencyBalances())
            totals.total += account.balance
            if account.account_type == AccountType.ASSET:
                totals.assets += account.balance
            elif account.account_type == AccountType.LIABILITY:
                totals.liabilities += account.balance

        name = None
        members = 0
        if self.directory:
            name = self.directory.get_organization(organization_id).name
            members = self.directory.count_members(organization_id)

        return OrganizationSummary(
            organization_id=organization_id,
            name=name,
            accounts_count=len(accounts),
            transactions_count=self.transaction_store.count(organization_id),
            members_count=members,
            balances=balances
        )

    def expected_balances(self, organization_id: str) -> Dict[str, Decimal]:
        """Sum of the effects of every live transaction, per account"""
        expected: Dict[str, Decimal] = defaultdict(lambda: Decimal('0'))
        for transaction in self.transaction_store.list(organization_id):
            for leg in transaction_effects(transaction):
                expected[leg.account_id] += leg.delta
        return dict(expected)

    def reconcile_balances(self, organization_id: str) -> List[BalanceDiscrepancy]:
        """
        Compare each stored balance with the balance implied by transactions

        Returns:
            Accounts whose stored balance differs (empty when consistent)
        """
        with self.storage.atomic():
            expected = self.expected_balances(organization_id)
            accounts = self.account_store.list(organization_id)

        discrepancies = [
            BalanceDiscrepancy(account.id, account.balance, expected.get(account.id, Decimal('0')))
            for account in accounts
            if account.balance != expected.get(account.id, Decimal('0'))
        ]

        if discrepancies:
            log_action(
                self.logger, "error", "Balance reconciliation found discrepancies",
                action="reconcile_balances", organization_id=organization_id,
                extra={d.account_id: str(d.difference) for d in discrepancies}
            )
        return discrepancies
