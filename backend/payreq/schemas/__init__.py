"""
Pydantic Schemas for API Validation
"""
from pydantic import AfterValidator, BaseModel, EmailStr, Field, ConfigDict
from typing import Annotated, Dict, List, Optional
from datetime import datetime, date
from decimal import Decimal

from payreq.core.permissions import LegacyRole
from payreq.models import (
    ExpenseCategory, ExpenseRequestStatus, NotificationType, PaymentMethod,
    PaymentRequestStatus,
)


def _currency_code(value: str) -> str:
    value = value.strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError("Currency must be a 3-letter code")
    return value


CurrencyCode = Annotated[str, AfterValidator(_currency_code)]


class MessageResponse(BaseModel):
    message: str


# ==================== ROLE SCHEMAS ====================

class RoleBase(BaseModel):
    role_name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)


class RoleCreate(RoleBase):
    permissions: List[str] = []


class RoleUpdate(BaseModel):
    role_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    permissions: Optional[List[str]] = None


class RoleResponse(RoleBase):
    id: int
    permissions: List[str]
    is_system_role: bool
    version_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RoleAssignment(BaseModel):
    role_ids: List[int]


class UserRolesResponse(BaseModel):
    user_id: int
    legacy_role: LegacyRole
    roles: List[RoleResponse]


class PermissionOption(BaseModel):
    name: str
    value: str


class PermissionGroup(BaseModel):
    category: str
    permissions: List[PermissionOption]


class PrincipalPermissionsResponse(BaseModel):
    user_id: int
    legacy_role: LegacyRole
    role_ids: List[int]
    permissions: List[str]


# ==================== PAYMENT REQUEST SCHEMAS ====================

class ClientInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    tax_id: Optional[str] = Field(None, max_length=100)


class PaymentRequestItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_amount: Optional[Decimal] = Field(None, ge=0)


class PaymentRequestItemResponse(BaseModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    tax_rate: Optional[Decimal] = None
    tax_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentRequestCreate(BaseModel):
    client: ClientInfo
    items: List[PaymentRequestItemCreate] = Field(..., min_length=1)
    currency: CurrencyCode = "VND"
    description: Optional[str] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: date
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    submit: bool = False  # create directly in PENDING


class PaymentRequestUpdate(BaseModel):
    client: Optional[ClientInfo] = None
    items: Optional[List[PaymentRequestItemCreate]] = Field(None, min_length=1)
    currency: Optional[CurrencyCode] = None
    description: Optional[str] = None
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    version_id: Optional[int] = None


class PaymentRequestStatusUpdate(BaseModel):
    status: PaymentRequestStatus
    notes: Optional[str] = None
    version_id: Optional[int] = None


class PaymentApply(BaseModel):
    payment_method: PaymentMethod
    paid_amount: Decimal = Field(..., gt=0)
    transaction_id: Optional[str] = Field(None, max_length=100)
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    version_id: Optional[int] = None


class PaymentDetails(BaseModel):
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    paid_amount: Decimal
    remaining_amount: Decimal
    notes: Optional[str] = None


class PaymentRecordResponse(BaseModel):
    id: int
    payment_request_id: int
    amount: Decimal
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    payment_date: datetime
    notes: Optional[str] = None
    recorded_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentRequestResponse(BaseModel):
    id: int
    request_number: str
    company_id: int
    created_by: Optional[int] = None
    client: ClientInfo
    items: List[PaymentRequestItemResponse] = []
    currency: str
    description: Optional[str] = None
    subtotal: Decimal
    tax_total: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    due_date: date
    status: PaymentRequestStatus
    payment_method: Optional[PaymentMethod] = None
    payment_details: Optional[PaymentDetails] = None
    notes: Optional[str] = None
    version_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentRequestListResponse(BaseModel):
    items: List[PaymentRequestResponse]
    total: int
    page: int
    limit: int
    pages: int


class StatusBucket(BaseModel):
    count: int
    total_amount: Decimal


class PaymentRequestStatistics(BaseModel):
    total_requests: int
    by_status: Dict[str, StatusBucket]
    total_amount: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    overdue_count: int


# ==================== EXPENSE REQUEST SCHEMAS ====================

class ExpenseRequestCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    expense_date: date
    amount: Decimal = Field(..., gt=0)
    currency: CurrencyCode = "VND"
    exchange_rate: Optional[Decimal] = Field(None, gt=0)
    vendor_name: Optional[str] = Field(None, max_length=255)
    category: ExpenseCategory
    description: Optional[str] = None
    notes: Optional[str] = None


class ExpenseRequestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    expense_date: Optional[date] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[CurrencyCode] = None
    exchange_rate: Optional[Decimal] = Field(None, gt=0)
    vendor_name: Optional[str] = Field(None, max_length=255)
    category: Optional[ExpenseCategory] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    version_id: Optional[int] = None


class ExpenseRequestStatusUpdate(BaseModel):
    status: ExpenseRequestStatus
    notes: Optional[str] = None
    version_id: Optional[int] = None


class ExpenseRequestResponse(BaseModel):
    id: int
    request_number: str
    title: str
    company_id: int
    user_id: int
    expense_date: date
    amount: Decimal
    currency: str
    exchange_rate: Optional[Decimal] = None
    amount_in_vnd: Decimal
    vendor_name: Optional[str] = None
    category: ExpenseCategory
    description: Optional[str] = None
    status: ExpenseRequestStatus
    notes: Optional[str] = None
    version_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ExpenseRequestListResponse(BaseModel):
    items: List[ExpenseRequestResponse]
    total: int
    page: int
    limit: int
    pages: int


class ExpenseCategoryOption(BaseModel):
    value: str
    label: str


# ==================== NOTIFICATION SCHEMAS ====================

class RelatedEntity(BaseModel):
    kind: str
    id: Optional[int] = None


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    is_read: bool
    related_to: Optional[RelatedEntity] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    total: int
    page: int
    limit: int
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int
