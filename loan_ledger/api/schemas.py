"""
Pydantic schemas for API requests and responses

Amounts leave the API as decimal strings rounded for display; the ledger
itself never rounds.
"""

from decimal import Context, Decimal, ROUND_HALF_UP, getcontext
from typing import List
from pydantic import BaseModel, Field

from ..customers import Customer
from ..loans import (
    CustomerLoanSummary, CustomerOverview, LedgerTransaction, LedgerView,
    LoanCreationResult, PaymentResult
)


def format_amount(amount: Decimal, places: int) -> str:
    """Round half-up to ``places`` decimals for display"""
    # widen precision so the whole part plus ``places`` digits always fit
    prec = max(getcontext().prec, amount.adjusted() + places + 2)
    return str(amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP, context=Context(prec=prec)))


# Requests
class CreateCustomerRequest(BaseModel):
    customer_id: str
    name: str


class CreateLoanRequest(BaseModel):
    customer_id: str
    loan_amount: Decimal = Field(..., description="Principal, decimal string or number")
    loan_period_years: int
    interest_rate_yearly: Decimal = Field(..., description="Annual rate in percent, e.g. 10 for 10%")


class PaymentRequest(BaseModel):
    amount: Decimal
    payment_type: str = Field(..., description="EMI or LUMP_SUM")


# Responses
class CustomerModel(BaseModel):
    customer_id: str
    name: str
    created_at: str

    @classmethod
    def from_customer(cls, customer: Customer) -> 'CustomerModel':
        return cls(
            customer_id=customer.customer_id,
            name=customer.name,
            created_at=customer.created_at.isoformat()
        )


class LoanCreationResponse(BaseModel):
    loan_id: str
    customer_id: str
    total_amount_payable: str
    monthly_emi: str

    @classmethod
    def from_result(cls, result: LoanCreationResult, places: int) -> 'LoanCreationResponse':
        return cls(
            loan_id=result.loan_id,
            customer_id=result.customer_id,
            total_amount_payable=format_amount(result.total_amount_payable, places),
            monthly_emi=format_amount(result.monthly_emi, places)
        )


class PaymentResponse(BaseModel):
    payment_id: str
    loan_id: str
    message: str
    remaining_balance: str
    emis_left: int

    @classmethod
    def from_result(cls, result: PaymentResult, places: int) -> 'PaymentResponse':
        return cls(
            payment_id=result.payment_id,
            loan_id=result.loan_id,
            message=result.message,
            remaining_balance=format_amount(result.remaining_balance, places),
            emis_left=result.emis_left
        )


class LedgerTransactionModel(BaseModel):
    transaction_id: str
    date: str
    amount: str
    type: str

    @classmethod
    def from_transaction(cls, txn: LedgerTransaction, places: int) -> 'LedgerTransactionModel':
        return cls(
            transaction_id=txn.transaction_id,
            date=txn.date.isoformat(),
            amount=format_amount(txn.amount, places),
            type=txn.type.value
        )


class LedgerResponse(BaseModel):
    loan_id: str
    customer_id: str
    principal: str
    total_amount: str
    interest_rate: str
    loan_period_years: int
    monthly_emi: str
    status: str
    amount_paid: str
    balance_amount: str
    emis_left: int
    transactions: List[LedgerTransactionModel]

    @classmethod
    def from_view(cls, view: LedgerView, places: int) -> 'LedgerResponse':
        return cls(
            loan_id=view.loan_id,
            customer_id=view.customer_id,
            principal=format_amount(view.principal, places),
            total_amount=format_amount(view.total_amount, places),
            interest_rate=str(view.interest_rate),
            loan_period_years=view.loan_period_years,
            monthly_emi=format_amount(view.monthly_emi, places),
            status=view.status.value,
            amount_paid=format_amount(view.amount_paid, places),
            balance_amount=format_amount(view.balance_amount, places),
            emis_left=view.emis_left,
            transactions=[LedgerTransactionModel.from_transaction(t, places) for t in view.transactions]
        )


class CustomerLoanModel(BaseModel):
    loan_id: str
    principal: str
    total_amount: str
    total_interest: str
    emi_amount: str
    amount_paid: str
    balance_amount: str
    emis_left: int
    status: str

    @classmethod
    def from_summary(cls, summary: CustomerLoanSummary, places: int) -> 'CustomerLoanModel':
        return cls(
            loan_id=summary.loan_id,
            principal=format_amount(summary.principal, places),
            total_amount=format_amount(summary.total_amount, places),
            total_interest=format_amount(summary.total_interest, places),
            emi_amount=format_amount(summary.emi_amount, places),
            amount_paid=format_amount(summary.amount_paid, places),
            balance_amount=format_amount(summary.balance_amount, places),
            emis_left=summary.emis_left,
            status=summary.status.value
        )


class CustomerOverviewResponse(BaseModel):
    customer_id: str
    total_loans: int
    loans: List[CustomerLoanModel]

    @classmethod
    def from_overview(cls, overview: CustomerOverview, places: int) -> 'CustomerOverviewResponse':
        return cls(
            customer_id=overview.customer_id,
            total_loans=overview.total_loans,
            loans=[CustomerLoanModel.from_summary(s, places) for s in overview.loans]
        )
