"""
Payment Request API Routes
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
import math

from payreq.core.database import get_db
from payreq.core.security import get_current_principal
from payreq.models import PaymentRequestStatus
from payreq.schemas import (
    PaymentRequestCreate, PaymentRequestUpdate, PaymentRequestResponse,
    PaymentRequestListResponse, PaymentRequestStatusUpdate, PaymentApply,
    PaymentRecordResponse, PaymentRequestStatistics, MessageResponse
)
from payreq.services.payment_request_service import PaymentRequestService

router = APIRouter(prefix="/payment-requests", tags=["Payment Requests"])


@router.get("", response_model=PaymentRequestListResponse)
async def list_payment_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[PaymentRequestStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """List the company's payment requests"""
    items, total = PaymentRequestService(db).get_requests(
        principal,
        status=status,
        search=search,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/statistics", response_model=PaymentRequestStatistics)
async def get_statistics(
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    return PaymentRequestService(db).get_statistics(principal)


@router.get("/{request_id}", response_model=PaymentRequestResponse)
async def get_payment_request(
    request_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    return PaymentRequestService(db).get(principal, request_id)


@router.post("", response_model=PaymentRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_payment_request(
    request_data: PaymentRequestCreate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """Create a payment request (DRAFT, or PENDING when submitted)"""
    payment_request = PaymentRequestService(db).create(principal, request_data)
    db.commit()
    db.refresh(payment_request)
    return payment_request


@router.put("/{request_id}", response_model=PaymentRequestResponse)
async def update_payment_request(
    request_id: int,
    request_data: PaymentRequestUpdate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    payment_request = PaymentRequestService(db).update(principal, request_id, request_data)
    db.commit()
    db.refresh(payment_request)
    return payment_request


@router.delete("/{request_id}", response_model=MessageResponse)
async def delete_payment_request(
    request_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    PaymentRequestService(db).delete(principal, request_id)
    db.commit()
    return {"message": "Payment request deleted successfully"}


@router.patch("/{request_id}/status", response_model=PaymentRequestResponse)
async def change_payment_request_status(
    request_id: int,
    status_data: PaymentRequestStatusUpdate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    payment_request = PaymentRequestService(db).change_status(
        principal,
        request_id,
        status_data.status,
        notes=status_data.notes,
        expected_version=status_data.version_id
    )
    db.commit()
    db.refresh(payment_request)
    return payment_request


@router.post("/{request_id}/payments", response_model=PaymentRequestResponse)
async def apply_payment(
    request_id: int,
    payment_data: PaymentApply,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """Record a full or partial payment"""
    payment_request = PaymentRequestService(db).apply_payment(
        principal,
        request_id,
        payment_method=payment_data.payment_method,
        paid_amount=payment_data.paid_amount,
        transaction_id=payment_data.transaction_id,
        payment_date=payment_data.payment_date,
        notes=payment_data.notes,
        expected_version=payment_data.version_id
    )
    db.commit()
    db.refresh(payment_request)
    return payment_request


@router.get("/{request_id}/payments", response_model=List[PaymentRecordResponse])
async def list_payments(
    request_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    return PaymentRequestService(db).list_payments(principal, request_id)
