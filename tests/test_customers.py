"""
Test suite for customer onboarding
"""

import pytest

from loan_ledger.storage import InMemoryStorage
from loan_ledger.customers import CustomerManager, Customer, CUSTOMERS_TABLE
from loan_ledger.exceptions import CustomerAlreadyExists, CustomerNotFound, CustomerValidationError


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def manager(storage):
    return CustomerManager(storage)


class TestCustomerManager:
    """Test customer creation and lookup"""

    def test_create_customer(self, manager, storage):
        customer = manager.create_customer("CUST100", "Ada Lovelace")

        assert customer.customer_id == "CUST100"
        assert customer.name == "Ada Lovelace"
        assert customer.created_at.tzinfo is not None
        assert storage.exists(CUSTOMERS_TABLE, "CUST100")

    def test_round_trip_through_storage(self, manager):
        created = manager.create_customer("CUST100", "Ada Lovelace")

        assert manager.get_customer("CUST100") == created

    def test_strips_whitespace(self, manager):
        customer = manager.create_customer("  CUST100 ", " Ada ")
        assert customer.customer_id == "CUST100"
        assert customer.name == "Ada"

    @pytest.mark.parametrize("customer_id,name", [("", "Ada"), ("   ", "Ada"), ("CUST100", ""), ("CUST100", "  ")])
    def test_blank_fields_rejected(self, manager, customer_id, name):
        with pytest.raises(CustomerValidationError):
            manager.create_customer(customer_id, name)

    def test_duplicate_rejected(self, manager):
        manager.create_customer("CUST100", "Ada Lovelace")

        with pytest.raises(CustomerAlreadyExists, match="CUST100"):
            manager.create_customer("CUST100", "Someone Else")

        assert manager.get_customer("CUST100").name == "Ada Lovelace"

    def test_get_missing_customer(self, manager):
        with pytest.raises(CustomerNotFound):
            manager.get_customer("NOPE")

    def test_list_in_onboarding_order(self, manager):
        for customer_id in ["B", "A", "C"]:
            manager.create_customer(customer_id, f"Customer {customer_id}")

        assert [c.customer_id for c in manager.list_customers()] == ["B", "A", "C"]


class TestSampleCustomers:
    """Test demo data seeding"""

    def test_seeds_empty_table(self, manager):
        assert manager.seed_sample_customers() == 3

        customers = manager.list_customers()
        assert [c.customer_id for c in customers] == ["CUST001", "CUST002", "CUST003"]
        assert [c.name for c in customers] == ["John Doe", "Jane Smith", "Robert Johnson"]

    def test_seeding_is_idempotent(self, manager):
        manager.seed_sample_customers()
        assert manager.seed_sample_customers() == 0
        assert len(manager.list_customers()) == 3

    def test_does_not_seed_populated_table(self, manager):
        manager.create_customer("CUST100", "Ada Lovelace")

        assert manager.seed_sample_customers() == 0
        assert [c.customer_id for c in manager.list_customers()] == ["CUST100"]


class TestCustomerRecord:
    """Test customer serialization"""

    def test_to_dict_uses_iso_timestamps(self, manager):
        customer = manager.create_customer("CUST100", "Ada Lovelace")
        data = customer.to_dict()

        assert data["customer_id"] == "CUST100"
        assert isinstance(data["created_at"], str)
        assert Customer.from_dict(data) == customer
