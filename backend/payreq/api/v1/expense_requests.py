"""
Expense Request API Routes
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
import math

from payreq.core.database import get_db
from payreq.core.security import get_current_principal
from payreq.models import ExpenseCategory, ExpenseRequestStatus
from payreq.schemas import (
    ExpenseRequestCreate, ExpenseRequestUpdate, ExpenseRequestResponse,
    ExpenseRequestListResponse, ExpenseRequestStatusUpdate, ExpenseCategoryOption,
    MessageResponse
)
from payreq.services.expense_request_service import ExpenseRequestService, get_categories

router = APIRouter(prefix="/expense-requests", tags=["Expense Requests"])


@router.get("", response_model=ExpenseRequestListResponse)
async def list_expense_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ExpenseRequestStatus] = None,
    category: Optional[ExpenseCategory] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """List own expense requests (whole company with read_all)"""
    items, total = ExpenseRequestService(db).get_requests(
        principal,
        status=status,
        category=category,
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


@router.get("/categories", response_model=List[ExpenseCategoryOption])
async def list_categories(principal = Depends(get_current_principal)):
    return get_categories()


@router.get("/{request_id}", response_model=ExpenseRequestResponse)
async def get_expense_request(
    request_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    return ExpenseRequestService(db).get(principal, request_id)


@router.post("", response_model=ExpenseRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_expense_request(
    request_data: ExpenseRequestCreate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    expense_request = ExpenseRequestService(db).create(principal, request_data)
    db.commit()
    db.refresh(expense_request)
    return expense_request


@router.put("/{request_id}", response_model=ExpenseRequestResponse)
async def update_expense_request(
    request_id: int,
    request_data: ExpenseRequestUpdate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    expense_request = ExpenseRequestService(db).update(principal, request_id, request_data)
    db.commit()
    db.refresh(expense_request)
    return expense_request


@router.delete("/{request_id}", response_model=MessageResponse)
async def delete_expense_request(
    request_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    ExpenseRequestService(db).delete(principal, request_id)
    db.commit()
    return {"message": "Expense request deleted successfully"}


@router.patch("/{request_id}/status", response_model=ExpenseRequestResponse)
async def change_expense_request_status(
    request_id: int,
    status_data: ExpenseRequestStatusUpdate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    expense_request = ExpenseRequestService(db).change_status(
        principal,
        request_id,
        status_data.status,
        notes=status_data.notes,
        expected_version=status_data.version_id
    )
    db.commit()
    db.refresh(expense_request)
    return expense_request
