"""
Test suite for the ledger service

Tests loan origination, payment recording, the ACTIVE -> PAID_OFF
transition, ledger views and customer overviews. All financial math must
be exact.
"""

import itertools
import threading
import pytest
from decimal import Decimal

from loan_ledger.storage import InMemoryStorage, SQLiteStorage
from loan_ledger.customers import CustomerManager
from loan_ledger.loans import (
    LedgerService, Loan, LoanStatus, PaymentType, LoanCreationResult,
    PAYMENTS_TABLE, LOANS_TABLE, PAYMENT_RECORDED_MESSAGE
)
from loan_ledger.exceptions import (
    InvalidAmount, InvalidLoanParameters, InvalidPaymentType, InvalidLoanState,
    LoanNotFound, NoLoansForCustomer
)


def sequential_ids(prefix="id"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def service(storage):
    return LedgerService(storage, id_generator=sequential_ids())


@pytest.fixture
def loan(service) -> LoanCreationResult:
    """The reference loan: 100000 over 2 years at 10%"""
    return service.create_loan("CUST001", Decimal('100000'), 2, Decimal('10'))


class TestCreateLoan:
    """Test loan origination"""

    def test_reference_loan(self, loan):
        assert loan.loan_id == "id-1"
        assert loan.customer_id == "CUST001"
        assert loan.total_amount_payable == Decimal('120000')
        assert loan.monthly_emi == Decimal('5000')

    def test_persists_active_loan(self, service, loan, storage):
        stored = service.get_loan(loan.loan_id)

        assert stored.status == LoanStatus.ACTIVE
        assert stored.principal_amount == Decimal('100000')
        assert stored.total_amount == Decimal('120000')
        assert stored.interest_rate == Decimal('10')
        assert stored.loan_period_years == 2
        assert stored.monthly_emi == Decimal('5000')
        assert storage.count(LOANS_TABLE) == 1

    def test_amounts_stored_as_decimal_strings(self, loan, storage):
        record = storage.load(LOANS_TABLE, loan.loan_id)

        assert Decimal(record["total_amount"]) == Decimal('120000')
        assert record["status"] == "ACTIVE"

    def test_unknown_customer_is_allowed(self, service):
        """Loans are not checked against the customer table"""
        result = service.create_loan("NEVER-ONBOARDED", "5000", 1, "12")
        assert service.get_loan(result.loan_id).customer_id == "NEVER-ONBOARDED"

    @pytest.mark.parametrize("customer_id", ["", "   ", None])
    def test_blank_customer_id(self, service, storage, customer_id):
        with pytest.raises(InvalidLoanParameters, match="Customer ID"):
            service.create_loan(customer_id, "100000", 2, "10")
        assert storage.count(LOANS_TABLE) == 0

    @pytest.mark.parametrize("amount,years,rate", [
        ("0", 2, "10"),
        ("100000", 0, "10"),
        ("100000", 2, "0"),
        ("-5", 2, "10"),
    ])
    def test_invalid_terms_persist_nothing(self, service, storage, amount, years, rate):
        with pytest.raises(InvalidLoanParameters):
            service.create_loan("CUST001", amount, years, rate)
        assert storage.count(LOANS_TABLE) == 0

    def test_customer_id_is_trimmed(self, service):
        result = service.create_loan(" CUST001 ", "100000", 2, "10")

        assert result.customer_id == "CUST001"
        assert service.get_customer_overview("CUST001").total_loans == 1

    def test_default_ids_are_unique(self, storage):
        service = LedgerService(storage)
        ids = {service.create_loan("CUST001", "1000", 1, "5").loan_id for _ in range(50)}
        assert len(ids) == 50


class TestRecordPayment:
    """Test payment recording and status transitions"""

    def test_single_emi(self, service, loan):
        result = service.record_payment(loan.loan_id, Decimal('5000'), PaymentType.EMI)

        assert result.loan_id == loan.loan_id
        assert result.payment_id == "id-2"
        assert result.remaining_balance == Decimal('115000')
        assert result.emis_left == 23
        assert result.message == PAYMENT_RECORDED_MESSAGE
        assert service.get_loan(loan.loan_id).status == LoanStatus.ACTIVE

    def test_lump_sum_payoff(self, service, loan):
        result = service.record_payment(loan.loan_id, Decimal('120000'), PaymentType.LUMP_SUM)

        assert result.remaining_balance == Decimal('0')
        assert result.emis_left == 0
        assert service.get_loan(loan.loan_id).status == LoanStatus.PAID_OFF

    def test_payment_type_as_string(self, service, loan):
        service.record_payment(loan.loan_id, "5000", "EMI")
        service.record_payment(loan.loan_id, "1000", "LUMP_SUM")

        types = [t.type for t in service.get_ledger(loan.loan_id).transactions]
        assert types == [PaymentType.EMI, PaymentType.LUMP_SUM]

    def test_overpayment_clamps_and_pays_off(self, service, loan):
        service.record_payment(loan.loan_id, "100000", PaymentType.LUMP_SUM)
        result = service.record_payment(loan.loan_id, "50000", PaymentType.LUMP_SUM)

        assert result.remaining_balance == Decimal('0')
        assert result.emis_left == 0

        ledger = service.get_ledger(loan.loan_id)
        assert ledger.amount_paid == Decimal('150000')
        assert ledger.balance_amount == Decimal('0')
        assert ledger.status == LoanStatus.PAID_OFF

    def test_payments_after_payoff_are_stored(self, service, loan, storage):
        """PAID_OFF is terminal but still accepts payments"""
        service.record_payment(loan.loan_id, "120000", PaymentType.LUMP_SUM)
        result = service.record_payment(loan.loan_id, "5000", PaymentType.EMI)

        assert result.remaining_balance == Decimal('0')
        assert result.emis_left == 0
        assert service.get_loan(loan.loan_id).status == LoanStatus.PAID_OFF
        assert storage.count(PAYMENTS_TABLE) == 2

    def test_unknown_loan(self, service, storage):
        with pytest.raises(LoanNotFound, match="nope"):
            service.record_payment("nope", "5000", PaymentType.EMI)
        assert storage.count(PAYMENTS_TABLE) == 0

    def test_unknown_loan_checked_before_amount(self, service):
        with pytest.raises(LoanNotFound):
            service.record_payment("nope", "-1", PaymentType.EMI)

    @pytest.mark.parametrize("amount", ["0", "-100", "abc", "NaN"])
    def test_invalid_amount(self, service, loan, storage, amount):
        with pytest.raises(InvalidAmount):
            service.record_payment(loan.loan_id, amount, PaymentType.EMI)
        assert storage.count(PAYMENTS_TABLE) == 0

    def test_amount_too_large(self, service, loan, storage):
        with pytest.raises(InvalidAmount, match="below"):
            service.record_payment(loan.loan_id, "1e27", PaymentType.LUMP_SUM)
        assert storage.count(PAYMENTS_TABLE) == 0

    def test_unknown_loans_leave_no_lock(self, service):
        for i in range(100):
            with pytest.raises(LoanNotFound):
                service.record_payment(f"missing-{i}", "1", PaymentType.EMI)
        assert service._loan_locks == {}

    def test_tiny_remaining_balance_keeps_one_emi(self, service, loan):
        result = service.record_payment(loan.loan_id, "119999.9999999999", PaymentType.LUMP_SUM)

        assert result.remaining_balance == Decimal('1E-10')
        assert result.emis_left == 1
        assert service.get_loan(loan.loan_id).status == LoanStatus.ACTIVE

    def test_invalid_payment_type(self, service, loan, storage):
        with pytest.raises(InvalidPaymentType, match="REFUND"):
            service.record_payment(loan.loan_id, "5000", "REFUND")
        assert storage.count(PAYMENTS_TABLE) == 0

    def test_balance_is_monotonic(self, service, loan):
        previous = service.get_ledger(loan.loan_id)
        for amount in ["5000", "2500.50", "0.50", "30000", "82499", "1"]:
            service.record_payment(loan.loan_id, amount, PaymentType.EMI)
            current = service.get_ledger(loan.loan_id)
            assert current.balance_amount <= previous.balance_amount
            assert current.emis_left <= previous.emis_left
            previous = current

        assert previous.balance_amount == Decimal('0')
        assert previous.status == LoanStatus.PAID_OFF

    def test_amount_paid_is_order_independent(self, storage):
        amounts = ["1000", "250.25", "4000", "0.75"]
        totals = []
        for ordering in (amounts, list(reversed(amounts))):
            service = LedgerService(storage)
            created = service.create_loan("CUST001", "100000", 2, "10")
            for amount in ordering:
                service.record_payment(created.loan_id, amount, PaymentType.EMI)
            totals.append(service.get_ledger(created.loan_id).amount_paid)

        assert totals[0] == totals[1] == Decimal('5251.00')

    def test_corrupt_emi_surfaces_invalid_state(self, service, loan, storage):
        storage.update(LOANS_TABLE, loan.loan_id, lambda r: r.update(monthly_emi="0"))

        with pytest.raises(InvalidLoanState):
            service.record_payment(loan.loan_id, "5000", PaymentType.EMI)
        assert storage.count(PAYMENTS_TABLE) == 0

    def test_concurrent_payments_pay_off_once(self, storage, loan):
        service = LedgerService(storage)
        errors = []

        def pay():
            try:
                service.record_payment(loan.loan_id, "10000", PaymentType.EMI)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=pay) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        ledger = service.get_ledger(loan.loan_id)
        assert len(ledger.transactions) == 12
        assert ledger.amount_paid == Decimal('120000')
        assert ledger.status == LoanStatus.PAID_OFF


class TestGetLedger:
    """Test the per-loan ledger view"""

    def test_fresh_loan(self, service, loan):
        ledger = service.get_ledger(loan.loan_id)

        assert ledger.loan_id == loan.loan_id
        assert ledger.customer_id == "CUST001"
        assert ledger.principal == Decimal('100000')
        assert ledger.total_amount == Decimal('120000')
        assert ledger.interest_rate == Decimal('10')
        assert ledger.loan_period_years == 2
        assert ledger.monthly_emi == Decimal('5000')
        assert ledger.amount_paid == Decimal('0')
        assert ledger.balance_amount == Decimal('120000')
        assert ledger.emis_left == 24
        assert ledger.status == LoanStatus.ACTIVE
        assert ledger.transactions == []

    def test_transactions_in_insertion_order(self, service, loan):
        first = service.record_payment(loan.loan_id, "5000", PaymentType.EMI)
        second = service.record_payment(loan.loan_id, "20000", PaymentType.LUMP_SUM)

        ledger = service.get_ledger(loan.loan_id)
        assert [t.transaction_id for t in ledger.transactions] == [first.payment_id, second.payment_id]
        assert [t.amount for t in ledger.transactions] == [Decimal('5000'), Decimal('20000')]
        assert ledger.amount_paid == Decimal('25000')
        assert ledger.balance_amount == Decimal('95000')
        assert ledger.emis_left == 19

    def test_only_this_loans_payments(self, service, loan):
        other = service.create_loan("CUST002", "50000", 1, "12")
        service.record_payment(other.loan_id, "1000", PaymentType.EMI)
        service.record_payment(loan.loan_id, "5000", PaymentType.EMI)

        ledger = service.get_ledger(loan.loan_id)
        assert len(ledger.transactions) == 1
        assert ledger.amount_paid == Decimal('5000')

    def test_idempotent(self, service, loan):
        service.record_payment(loan.loan_id, "5000", PaymentType.EMI)
        assert service.get_ledger(loan.loan_id) == service.get_ledger(loan.loan_id)

    def test_unknown_loan(self, service):
        with pytest.raises(LoanNotFound):
            service.get_ledger("nope")

    def test_read_does_not_advance_status(self, service, loan, storage):
        """Only record_payment writes status, even if a read sees zero balance"""
        storage.save(PAYMENTS_TABLE, "external", {
            "payment_id": "external",
            "loan_id": loan.loan_id,
            "amount": "120000",
            "payment_type": "LUMP_SUM",
            "payment_date": "2024-01-01T00:00:00+00:00"
        })

        ledger = service.get_ledger(loan.loan_id)
        assert ledger.balance_amount == Decimal('0')
        assert ledger.status == LoanStatus.ACTIVE
        assert storage.load(LOANS_TABLE, loan.loan_id)["status"] == "ACTIVE"


class TestCustomerOverview:
    """Test per-customer aggregation"""

    def test_overview(self, service, loan):
        second = service.create_loan("CUST001", "50000", 1, "12")
        service.create_loan("CUST002", "1000", 1, "5")
        service.record_payment(loan.loan_id, "5000", PaymentType.EMI)
        service.record_payment(second.loan_id, "56000", PaymentType.LUMP_SUM)

        overview = service.get_customer_overview("CUST001")

        assert overview.customer_id == "CUST001"
        assert overview.total_loans == 2
        assert [s.loan_id for s in overview.loans] == [loan.loan_id, second.loan_id]

        first_summary, second_summary = overview.loans
        assert first_summary.principal == Decimal('100000')
        assert first_summary.total_interest == Decimal('20000')
        assert first_summary.emi_amount == Decimal('5000')
        assert first_summary.amount_paid == Decimal('5000')
        assert first_summary.balance_amount == Decimal('115000')
        assert first_summary.emis_left == 23
        assert first_summary.status == LoanStatus.ACTIVE

        assert second_summary.total_amount == Decimal('56000')
        assert second_summary.total_interest == Decimal('6000')
        assert second_summary.emis_left == 0
        assert second_summary.status == LoanStatus.PAID_OFF

    def test_no_loans(self, service):
        with pytest.raises(NoLoansForCustomer, match="CUST404"):
            service.get_customer_overview("CUST404")

    def test_onboarded_customer_without_loans(self, service, storage):
        """Existing customers with no loans are still an error, not empty success"""
        CustomerManager(storage).create_customer("CUST500", "No Loans")

        with pytest.raises(NoLoansForCustomer):
            service.get_customer_overview("CUST500")


class TestListCustomers:
    """Test customer passthrough"""

    def test_empty(self, service):
        assert service.list_customers() == []

    def test_lists_onboarded_customers(self, service, storage):
        CustomerManager(storage).seed_sample_customers()
        assert [c.customer_id for c in service.list_customers()] == ["CUST001", "CUST002", "CUST003"]


class TestSQLiteBackedService:
    """Test the service end to end on SQLite"""

    def test_ledger_survives_reopen(self, tmp_path):
        db_path = tmp_path / "ledger.db"
        storage = SQLiteStorage(db_path)
        service = LedgerService(storage)
        created = service.create_loan("CUST001", "100000", 2, "10")
        service.record_payment(created.loan_id, "120000", PaymentType.LUMP_SUM)
        storage.close()

        reopened = SQLiteStorage(db_path)
        try:
            ledger = LedgerService(reopened).get_ledger(created.loan_id)
            assert ledger.status == LoanStatus.PAID_OFF
            assert ledger.amount_paid == Decimal('120000')
            assert ledger.emis_left == 0
        finally:
            reopened.close()
