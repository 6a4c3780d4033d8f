"""
Ledger wiring, caller identity and organization access dependencies
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from ..accounts import AccountManager, AccountStore
from ..config import LedgerConfig, get_config
from ..lifecycle import TransactionManager
from ..reporting import ReportingEngine
from ..storage import StorageInterface, create_storage
from ..tenancy import OrganizationDirectory
from ..transactions import TransactionStore


class LedgerSystem:
    """Ledger components sharing one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None, config: Optional[LedgerConfig] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)

        self.directory = OrganizationDirectory(self.storage)
        self.account_store = AccountStore(self.storage)
        self.transaction_store = TransactionStore(self.storage)
        self.account_manager = AccountManager(
            self.storage, self.account_store, self.transaction_store,
            default_currency=self.config.default_currency
        )
        self.transaction_manager = TransactionManager(
            self.storage, self.account_store, self.transaction_store,
            default_currency=self.config.default_currency
        )
        self.reporting_engine = ReportingEngine(
            self.storage, self.account_store, self.transaction_store, self.directory
        )


# Global ledger system instance, built on first use
ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    global ledger_system
    if ledger_system is None:
        ledger_system = LedgerSystem()
    return ledger_system


security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_user_id: Optional[str] = Header(None),
    system: LedgerSystem = Depends(get_ledger_system)
) -> str:
    """Dependency that validates the bearer JWT and returns the caller's user id"""
    if not system.config.auth_enabled:
        if not x_user_id:
            raise HTTPException(status_code=401, detail="X-User-Id header is required")
        return x_user_id

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(
            credentials.credentials,
            system.config.jwt_secret,
            algorithms=[system.config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def require_organization_access(
    system: LedgerSystem, organization_id: Optional[str], user_id: str
) -> str:
    if not organization_id:
        raise HTTPException(status_code=400, detail="x-org-id header is required")
    if not system.directory.verify_user_access(organization_id, user_id):
        raise HTTPException(status_code=403, detail="You do not have access to this organization")
    return organization_id


def get_organization_id(
    x_org_id: Optional[str] = Header(None),
    user_id: str = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
) -> str:
    """Organization named by the X-Org-Id header, once the caller's membership is confirmed"""
    return require_organization_access(system, x_org_id, user_id)
