from fastapi import APIRouter, Depends, Query, Request

from core.dependencies import get_current_merchant, get_payment_manager
from models.merchant import Merchant
from schemas.payment import PaginatedPayments, PaymentCreate, PaymentMethodList, PaymentOut
from services.payments import PaymentLifecycleManager

router = APIRouter(prefix="/payments", tags=["payments"])

# The lifecycle manager accepts any page size; this is the only cap
MAX_PAGE_SIZE = 100


@router.post("", response_model=PaymentOut, status_code=201)
def create_payment(
    data: PaymentCreate,
    request: Request,
    merchant: Merchant = Depends(get_current_merchant),
    manager: PaymentLifecycleManager = Depends(get_payment_manager),
):
    return manager.create_payment(
        merchant.id,
        amount=data.amount,
        payment_method_id=data.payment_method_id,
        currency=data.currency,
        metadata=data.metadata,
        ip_address=request.client.host if request.client else None,
    )


@router.get("/payment-methods", response_model=PaymentMethodList)
def list_payment_methods(
    merchant: Merchant = Depends(get_current_merchant),
    manager: PaymentLifecycleManager = Depends(get_payment_manager),
):
    return manager.get_merchant_payment_methods(merchant.id)


@router.get("/merchant", response_model=PaginatedPayments)
def list_merchant_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    merchant: Merchant = Depends(get_current_merchant),
    manager: PaymentLifecycleManager = Depends(get_payment_manager),
):
    return manager.list_by_merchant(merchant.id, page=page, limit=limit)


@router.get("/{reference}", response_model=PaymentOut)
def get_payment(
    reference: str,
    merchant: Merchant = Depends(get_current_merchant),
    manager: PaymentLifecycleManager = Depends(get_payment_manager),
):
    return manager.get_by_reference(reference, merchant.id)
