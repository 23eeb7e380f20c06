"""
Loan Module

Handles loan origination under a simple-interest schedule, payment
recording, the ACTIVE -> PAID_OFF transition, and the per-loan ledger and
per-customer overview read views.

Balances are never stored: amount paid, balance and EMIs left are always
recomputed from the loan terms and the loan's payments.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
from enum import Enum
from contextlib import contextmanager
import threading
import uuid

from .storage import StorageInterface, StorageRecord
from .customers import CUSTOMERS_TABLE, Customer
from .engine import BalanceState, Numeric, derive_balance, is_paid_off, quote_loan, to_decimal, MAX_AMOUNT, ZERO
from .exceptions import (
    InvalidAmount, InvalidLoanParameters, InvalidPaymentType,
    LoanNotFound, NoLoansForCustomer
)
from .logging_config import get_logger, log_action


LOANS_TABLE = "loans"
PAYMENTS_TABLE = "payments"

PAYMENT_RECORDED_MESSAGE = "Payment recorded successfully."


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "ACTIVE"        # Initial state, balance outstanding
    PAID_OFF = "PAID_OFF"    # Terminal, balance reached zero


class PaymentType(Enum):
    """Kinds of repayment"""
    EMI = "EMI"
    LUMP_SUM = "LUMP_SUM"


@dataclass
class Loan(StorageRecord):
    """Loan terms and status. Everything except status is immutable."""
    loan_id: str
    customer_id: str
    principal_amount: Decimal
    total_amount: Decimal
    interest_rate: Decimal          # Annual percent, e.g. 10 for 10%
    loan_period_years: int
    monthly_emi: Decimal
    created_at: datetime
    status: LoanStatus = LoanStatus.ACTIVE

    @property
    def record_id(self) -> str:
        return self.loan_id

    @property
    def total_interest(self) -> Decimal:
        return self.total_amount - self.principal_amount

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            loan_id=data['loan_id'],
            customer_id=data['customer_id'],
            principal_amount=Decimal(data['principal_amount']),
            total_amount=Decimal(data['total_amount']),
            interest_rate=Decimal(data['interest_rate']),
            loan_period_years=int(data['loan_period_years']),
            monthly_emi=Decimal(data['monthly_emi']),
            created_at=datetime.fromisoformat(data['created_at']),
            status=LoanStatus(data['status'])
        )


@dataclass
class LoanPayment(StorageRecord):
    """Append-only record of a payment against a loan"""
    payment_id: str
    loan_id: str
    amount: Decimal
    payment_type: PaymentType
    payment_date: datetime

    @property
    def record_id(self) -> str:
        return self.payment_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanPayment':
        return cls(
            payment_id=data['payment_id'],
            loan_id=data['loan_id'],
            amount=Decimal(data['amount']),
            payment_type=PaymentType(data['payment_type']),
            payment_date=datetime.fromisoformat(data['payment_date'])
        )


@dataclass(frozen=True)
class LoanCreationResult:
    loan_id: str
    customer_id: str
    total_amount_payable: Decimal
    monthly_emi: Decimal


@dataclass(frozen=True)
class PaymentResult:
    payment_id: str
    loan_id: str
    remaining_balance: Decimal
    emis_left: int
    message: str = PAYMENT_RECORDED_MESSAGE


@dataclass(frozen=True)
class LedgerTransaction:
    """One payment as it appears in a loan's ledger"""
    transaction_id: str
    date: datetime
    amount: Decimal
    type: PaymentType


@dataclass(frozen=True)
class LedgerView:
    """Loan terms, derived balance and transaction history"""
    loan_id: str
    customer_id: str
    principal: Decimal
    total_amount: Decimal
    interest_rate: Decimal
    loan_period_years: int
    monthly_emi: Decimal
    status: LoanStatus
    amount_paid: Decimal
    balance_amount: Decimal
    emis_left: int
    transactions: List[LedgerTransaction] = field(default_factory=list)


@dataclass(frozen=True)
class CustomerLoanSummary:
    loan_id: str
    principal: Decimal
    total_amount: Decimal
    total_interest: Decimal
    emi_amount: Decimal
    amount_paid: Decimal
    balance_amount: Decimal
    emis_left: int
    status: LoanStatus


@dataclass(frozen=True)
class CustomerOverview:
    customer_id: str
    total_loans: int
    loans: List[CustomerLoanSummary] = field(default_factory=list)


def _mark_paid_off(record: Dict[str, Any]) -> None:
    # PAID_OFF is terminal; only an ACTIVE loan moves
    if record['status'] == LoanStatus.ACTIVE.value:
        record['status'] = LoanStatus.PAID_OFF.value


class LedgerService:
    """
    Orchestrates the accounting engine over the record store.

    Status is written only by record_payment; the read views never persist
    anything even when they observe a zero balance.
    """

    def __init__(
        self,
        storage: StorageInterface,
        id_generator: Optional[Callable[[], str]] = None
    ):
        self.storage = storage
        self.generate_id = id_generator or (lambda: str(uuid.uuid4()))
        self.logger = get_logger("loan_ledger.loans")

        self._loan_locks: Dict[str, threading.Lock] = {}
        self._loan_locks_guard = threading.Lock()

    def create_loan(
        self,
        customer_id: str,
        amount: Numeric,
        period_years: Numeric,
        rate_percent: Numeric
    ) -> LoanCreationResult:
        """
        Originate a new ACTIVE loan

        The customer id must be non-blank but is not checked against the
        customer table; loans may reference customers that were never
        onboarded.

        Raises:
            InvalidLoanParameters: Blank customer id, or invalid terms
        """
        customer_id = (customer_id or "").strip()
        if not customer_id:
            raise InvalidLoanParameters("Customer ID is required")

        quote = quote_loan(amount, period_years, rate_percent)

        loan = Loan(
            loan_id=self.generate_id(),
            customer_id=customer_id,
            principal_amount=to_decimal(amount),
            total_amount=quote.total_amount,
            interest_rate=to_decimal(rate_percent),
            loan_period_years=int(to_decimal(period_years)),
            monthly_emi=quote.monthly_emi,
            created_at=datetime.now(timezone.utc),
            status=LoanStatus.ACTIVE
        )

        with self.storage.atomic():
            self.storage.save(LOANS_TABLE, loan.record_id, loan.to_dict())

        log_action(
            self.logger, "info", f"Loan created for customer {customer_id}",
            action="create_loan", resource=f"loan:{loan.loan_id}",
            extra={
                "customer_id": customer_id,
                "principal_amount": str(loan.principal_amount),
                "total_amount": str(loan.total_amount),
                "monthly_emi": str(loan.monthly_emi),
                "loan_period_years": loan.loan_period_years,
                "interest_rate": str(loan.interest_rate)
            }
        )

        return LoanCreationResult(
            loan_id=loan.loan_id,
            customer_id=loan.customer_id,
            total_amount_payable=loan.total_amount,
            monthly_emi=loan.monthly_emi
        )

    def record_payment(
        self,
        loan_id: str,
        amount: Numeric,
        payment_type: Union[PaymentType, str]
    ) -> PaymentResult:
        """
        Record a payment and advance the loan to PAID_OFF once nothing is owed

        Payments against a PAID_OFF loan are still stored; the balance and
        EMIs left stay clamped at zero.

        Raises:
            LoanNotFound: No loan with this id
            InvalidAmount: Amount is not a positive number below MAX_AMOUNT
            InvalidPaymentType: Type is not EMI or LUMP_SUM
        """
        self._require_loan(loan_id)
        with self._loan_lock(loan_id), self.storage.atomic():
            loan = self._require_loan(loan_id)
            payment_amount = self._payment_amount(amount)
            payment_type = self._payment_type(payment_type)

            payment = LoanPayment(
                payment_id=self.generate_id(),
                loan_id=loan_id,
                amount=payment_amount,
                payment_type=payment_type,
                payment_date=datetime.now(timezone.utc)
            )
            self.storage.save(PAYMENTS_TABLE, payment.record_id, payment.to_dict())

            state = self._balance(loan, self._loan_payments(loan_id))

            paid_off_now = is_paid_off(state.balance_amount) and loan.status == LoanStatus.ACTIVE
            if paid_off_now:
                self.storage.update(LOANS_TABLE, loan_id, _mark_paid_off)

        log_action(
            self.logger, "info", f"Payment recorded: {payment_type.value}",
            action="record_payment", resource=f"loan:{loan_id}",
            extra={
                "payment_id": payment.payment_id,
                "amount": str(payment_amount),
                "remaining_balance": str(state.balance_amount),
                "emis_left": state.emis_left
            }
        )
        if paid_off_now:
            log_action(
                self.logger, "info", "Loan paid off",
                action="loan_paid_off", resource=f"loan:{loan_id}"
            )

        return PaymentResult(
            payment_id=payment.payment_id,
            loan_id=loan_id,
            remaining_balance=state.balance_amount,
            emis_left=state.emis_left
        )

    def get_ledger(self, loan_id: str) -> LedgerView:
        """
        Loan terms, derived balance and payment history in insertion order

        Raises:
            LoanNotFound: No loan with this id
        """
        loan = self._require_loan(loan_id)
        payments = self._loan_payments(loan_id)
        state = self._balance(loan, payments)

        return LedgerView(
            loan_id=loan.loan_id,
            customer_id=loan.customer_id,
            principal=loan.principal_amount,
            total_amount=loan.total_amount,
            interest_rate=loan.interest_rate,
            loan_period_years=loan.loan_period_years,
            monthly_emi=loan.monthly_emi,
            status=loan.status,
            amount_paid=state.amount_paid,
            balance_amount=state.balance_amount,
            emis_left=state.emis_left,
            transactions=[
                LedgerTransaction(
                    transaction_id=p.payment_id,
                    date=p.payment_date,
                    amount=p.amount,
                    type=p.payment_type
                )
                for p in payments
            ]
        )

    def get_customer_overview(self, customer_id: str) -> CustomerOverview:
        """
        Summaries of every loan a customer holds, in origination order

        Raises:
            NoLoansForCustomer: The customer holds no loans (whether or not
                the customer exists)
        """
        loans = [Loan.from_dict(data) for data in self.storage.find(LOANS_TABLE, {"customer_id": customer_id})]
        if not loans:
            raise NoLoansForCustomer(f"No loans found for customer {customer_id}")

        summaries = []
        for loan in loans:
            state = self._balance(loan, self._loan_payments(loan.loan_id))
            summaries.append(CustomerLoanSummary(
                loan_id=loan.loan_id,
                principal=loan.principal_amount,
                total_amount=loan.total_amount,
                total_interest=loan.total_interest,
                emi_amount=loan.monthly_emi,
                amount_paid=state.amount_paid,
                balance_amount=state.balance_amount,
                emis_left=state.emis_left,
                status=loan.status
            ))

        return CustomerOverview(
            customer_id=customer_id,
            total_loans=len(loans),
            loans=summaries
        )

    def list_customers(self) -> List[Customer]:
        """All customers as stored"""
        return [Customer.from_dict(data) for data in self.storage.load_all(CUSTOMERS_TABLE)]

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(LOANS_TABLE, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def _require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return loan

    def _loan_payments(self, loan_id: str) -> List[LoanPayment]:
        return [LoanPayment.from_dict(data) for data in self.storage.find(PAYMENTS_TABLE, {"loan_id": loan_id})]

    def _balance(self, loan: Loan, payments: List[LoanPayment]) -> BalanceState:
        payments_sum = sum((p.amount for p in payments), ZERO)
        return derive_balance(loan.total_amount, loan.monthly_emi, payments_sum)

    @staticmethod
    def _payment_amount(amount: Numeric) -> Decimal:
        try:
            value = to_decimal(amount)
        except ValueError as e:
            raise InvalidAmount(f"Payment amount: {e}")
        if not value.is_finite() or value <= ZERO:
            raise InvalidAmount(f"Payment amount must be positive, got {amount}")
        if value >= MAX_AMOUNT:
            raise InvalidAmount(f"Payment amount must be below {MAX_AMOUNT:f}, got {amount}")
        return value

    @staticmethod
    def _payment_type(payment_type: Union[PaymentType, str]) -> PaymentType:
        if isinstance(payment_type, PaymentType):
            return payment_type
        try:
            return PaymentType(payment_type)
        except ValueError:
            raise InvalidPaymentType(
                f"Payment type must be one of {[t.value for t in PaymentType]}, got {payment_type!r}"
            )

    @contextmanager
    def _loan_lock(self, loan_id: str) -> Iterator[None]:
        """Serialize payments per loan so the status write cannot race

        Callers must have checked that the loan exists.
        """
        with self._loan_locks_guard:
            lock = self._loan_locks.setdefault(loan_id, threading.Lock())
        with lock:
            yield
