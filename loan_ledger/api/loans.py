"""
Loan endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LedgerSystem, get_ledger_system
from .schemas import (
    CreateLoanRequest, PaymentRequest,
    LoanCreationResponse, PaymentResponse, LedgerResponse
)
from ..exceptions import LedgerError, LoanNotFound


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=LoanCreationResponse)
async def create_loan(
    request: CreateLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Lend: originate a simple-interest loan"""
    try:
        result = system.ledger_service.create_loan(
            customer_id=request.customer_id,
            amount=request.loan_amount,
            period_years=request.loan_period_years,
            rate_percent=request.interest_rate_yearly
        )
    except LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return LoanCreationResponse.from_result(result, system.config.display_precision)


@router.post("/{loan_id}/payments", status_code=status.HTTP_201_CREATED, response_model=PaymentResponse)
async def record_payment(
    loan_id: str,
    request: PaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record an EMI or lump-sum payment"""
    try:
        result = system.ledger_service.record_payment(
            loan_id=loan_id,
            amount=request.amount,
            payment_type=request.payment_type
        )
    except LoanNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return PaymentResponse.from_result(result, system.config.display_precision)


@router.get("/{loan_id}/ledger", response_model=LedgerResponse)
async def get_ledger(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Loan details, balance and transaction history"""
    try:
        view = system.ledger_service.get_ledger(loan_id)
    except LoanNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return LedgerResponse.from_view(view, system.config.display_precision)
