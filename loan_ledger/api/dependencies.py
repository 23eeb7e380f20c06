"""
Ledger system wiring and FastAPI dependencies
"""

from typing import Optional
from fastapi import Request

from ..config import LedgerConfig, get_config
from ..storage import StorageInterface, InMemoryStorage, SQLiteStorage
from ..customers import CustomerManager
from ..loans import LedgerService


class LedgerSystem:
    """Storage, customer onboarding and ledger service wired together"""

    def __init__(self, config: Optional[LedgerConfig] = None, storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or self._create_storage()

        self.customer_manager = CustomerManager(self.storage)
        self.ledger_service = LedgerService(self.storage)

        if self.config.seed_sample_customers:
            self.customer_manager.seed_sample_customers()

    def _create_storage(self) -> StorageInterface:
        backend = self.config.storage_backend.lower()
        if backend == "memory":
            return InMemoryStorage()
        if backend == "sqlite":
            return SQLiteStorage(self.config.database_path)
        raise ValueError(f"Unsupported storage backend: {self.config.storage_backend}")

    def close(self) -> None:
        self.storage.close()


def get_ledger_system(request: Request) -> LedgerSystem:
    return request.app.state.system
