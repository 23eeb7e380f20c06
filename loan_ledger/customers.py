"""
Customer Management Module

Onboards borrowers. Customer ids are assigned externally and records are
immutable once created.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List

from .storage import StorageInterface, StorageRecord
from .exceptions import CustomerAlreadyExists, CustomerNotFound, CustomerValidationError
from .logging_config import get_logger, log_action


CUSTOMERS_TABLE = "customers"

SAMPLE_CUSTOMERS = [
    ("CUST001", "John Doe"),
    ("CUST002", "Jane Smith"),
    ("CUST003", "Robert Johnson"),
]


@dataclass
class Customer(StorageRecord):
    """Borrower profile"""
    customer_id: str
    name: str
    created_at: datetime

    @property
    def record_id(self) -> str:
        return self.customer_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        return cls(
            customer_id=data['customer_id'],
            name=data['name'],
            created_at=datetime.fromisoformat(data['created_at'])
        )


class CustomerManager:
    """
    Manages customer onboarding
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = CUSTOMERS_TABLE
        self.logger = get_logger("loan_ledger.customers")

    def create_customer(self, customer_id: str, name: str) -> Customer:
        """
        Onboard a new customer

        Args:
            customer_id: Externally assigned unique identifier
            name: Display name

        Returns:
            Created Customer

        Raises:
            CustomerValidationError: If the id or name is blank
            CustomerAlreadyExists: If the id is already taken
        """
        customer_id = (customer_id or "").strip()
        name = (name or "").strip()
        if not customer_id:
            raise CustomerValidationError("Customer ID is required")
        if not name:
            raise CustomerValidationError("Customer name is required")

        customer = Customer(
            customer_id=customer_id,
            name=name,
            created_at=datetime.now(timezone.utc)
        )

        with self.storage.atomic():
            if self.storage.exists(self.table_name, customer_id):
                raise CustomerAlreadyExists(f"Customer {customer_id} already exists")
            self.storage.save(self.table_name, customer.record_id, customer.to_dict())

        log_action(
            self.logger, "info", f"Customer created: {customer_id}",
            action="create_customer", resource=f"customer:{customer_id}"
        )
        return customer

    def get_customer(self, customer_id: str) -> Customer:
        """Get customer by ID"""
        data = self.storage.load(self.table_name, customer_id)
        if not data:
            raise CustomerNotFound(f"Customer {customer_id} not found")
        return Customer.from_dict(data)

    def list_customers(self) -> List[Customer]:
        """All customers in onboarding order"""
        return [Customer.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def seed_sample_customers(self) -> int:
        """Insert the demo customers into an empty customer table"""
        with self.storage.atomic():
            if self.storage.count(self.table_name) > 0:
                return 0
            for customer_id, name in SAMPLE_CUSTOMERS:
                self.create_customer(customer_id, name)
        return len(SAMPLE_CUSTOMERS)
