"""
Customer endpoints
"""

from typing import List
from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LedgerSystem, get_ledger_system
from .schemas import CreateCustomerRequest, CustomerModel, CustomerOverviewResponse
from ..exceptions import CustomerAlreadyExists, CustomerNotFound, LedgerError, NoLoansForCustomer


router = APIRouter()


@router.get("", response_model=List[CustomerModel])
async def list_customers(system: LedgerSystem = Depends(get_ledger_system)):
    """List all customers"""
    return [CustomerModel.from_customer(c) for c in system.ledger_service.list_customers()]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CustomerModel)
async def create_customer(
    request: CreateCustomerRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Onboard a customer"""
    try:
        customer = system.customer_manager.create_customer(request.customer_id, request.name)
    except CustomerAlreadyExists as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CustomerModel.from_customer(customer)


@router.get("/{customer_id}", response_model=CustomerModel)
async def get_customer(
    customer_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get customer by ID"""
    try:
        customer = system.customer_manager.get_customer(customer_id)
    except CustomerNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return CustomerModel.from_customer(customer)


@router.get("/{customer_id}/overview", response_model=CustomerOverviewResponse)
async def get_customer_overview(
    customer_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Account overview: every loan the customer holds"""
    try:
        overview = system.ledger_service.get_customer_overview(customer_id)
    except NoLoansForCustomer as e:
        raise HTTPException(status_code=404, detail=str(e))

    return CustomerOverviewResponse.from_overview(overview, system.config.display_precision)
