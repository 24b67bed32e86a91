"""
SQLAlchemy Models for the Payment Request System
"""
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Enum, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from payreq.core.database import Base
from payreq.core.permissions import LegacyRole


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def enum_column(enum_cls, **kwargs) -> Column:
    """Status-like column persisted as the enum's lowercase wire token"""
    return Column(
        Enum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            validate_strings=True,
            length=30,
        ),
        **kwargs
    )


# ==================== ENUMS ====================

class PaymentRequestStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "bank_transfer"
    VNPAY = "vnpay"
    MOMO = "momo"
    ZALOPAY = "zalopay"
    CASH = "cash"


class ExpenseRequestStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    CANCELLED = "cancelled"


class ExpenseCategory(str, enum.Enum):
    TRAVEL = "travel"
    MEALS = "meals"
    ACCOMMODATION = "accommodation"
    OFFICE_SUPPLIES = "office_supplies"
    TRANSPORTATION = "transportation"
    ENTERTAINMENT = "entertainment"
    TRAINING = "training"
    SOFTWARE = "software"
    HARDWARE = "hardware"
    MARKETING = "marketing"
    OTHER = "other"


class NotificationType(str, enum.Enum):
    PAYMENT_REQUEST_CREATED = "payment_request_created"
    PAYMENT_REQUEST_UPDATED = "payment_request_updated"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_OVERDUE = "payment_overdue"
    PAYMENT_REMINDER = "payment_reminder"
    SYSTEM = "system"


# ==================== ASSOCIATION TABLES ====================

class RolePermission(Base):
    """Association table for Role-Permission many-to-many"""
    __tablename__ = 'role_permissions'

    id = Column(Integer, primary_key=True)
    role_id = Column(Integer, ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id = Column(Integer, ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    role = relationship("Role", back_populates="permission_links")
    permission = relationship("Permission", back_populates="role_links")

    __table_args__ = (
        UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )


class UserRole(Base):
    """Association table for User-Role many-to-many"""
    __tablename__ = 'user_roles'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="role_links")
    role = relationship("Role", back_populates="user_links")

    __table_args__ = (
        UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
        Index('ix_user_roles_role_id', 'role_id'),
    )


# ==================== CORE MODELS ====================

class Company(Base):
    """Tenant company"""
    __tablename__ = 'companies'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    tax_id = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    users = relationship("User", back_populates="company", cascade="all, delete-orphan")


class User(Base):
    """User account, as consumed by authorization"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    legacy_role = enum_column(LegacyRole, nullable=False, default=LegacyRole.USER)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    company = relationship("Company", back_populates="users")
    role_links = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_users_company_id', 'company_id'),
    )

    @property
    def role_ids(self):
        return [link.role_id for link in self.role_links]

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Permission(Base):
    """Catalogued permission string"""
    __tablename__ = 'permissions'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    category = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    role_links = relationship("RolePermission", back_populates="permission", cascade="all, delete-orphan")


class Role(Base):
    """Named set of permissions"""
    __tablename__ = 'roles'

    id = Column(Integer, primary_key=True)
    role_name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=False, default="")
    is_system_role = Column(Boolean, default=False, nullable=False)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    permission_links = relationship("RolePermission", back_populates="role", cascade="all, delete-orphan")
    user_links = relationship("UserRole", back_populates="role")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def permissions(self):
        return sorted(link.permission.name for link in self.permission_links if link.permission)


# ==================== PAYMENT REQUESTS ====================

class PaymentRequest(Base):
    """Invoice owed to the company by a client"""
    __tablename__ = 'payment_requests'

    id = Column(Integer, primary_key=True)
    request_number = Column(String(20), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    # Client
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(50), nullable=True)
    client_address = Column(Text, nullable=True)
    client_tax_id = Column(String(100), nullable=True)

    currency = Column(String(3), default="VND", nullable=False)
    description = Column(Text, nullable=True)
    subtotal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    tax_total = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    discount_amount = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    total_amount = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    due_date = Column(Date, nullable=False)
    status = enum_column(PaymentRequestStatus, nullable=False, default=PaymentRequestStatus.DRAFT)
    notes = Column(Text, nullable=True)

    # Payment details, set once the first payment is applied
    payment_method = enum_column(PaymentMethod, nullable=True)
    transaction_id = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=True)
    paid_amount = Column(Numeric(15, 2), nullable=True)
    remaining_amount = Column(Numeric(15, 2), nullable=True)
    payment_notes = Column(Text, nullable=True)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    creator = relationship("User")
    items = relationship(
        "PaymentRequestItem", back_populates="payment_request",
        cascade="all, delete-orphan", order_by="PaymentRequestItem.position"
    )
    payments = relationship(
        "PaymentRecord", back_populates="payment_request",
        cascade="all, delete-orphan", order_by="PaymentRecord.id"
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        UniqueConstraint('company_id', 'request_number', name='uq_payment_request_number'),
        Index('ix_payment_requests_company_status', 'company_id', 'status'),
        Index('ix_payment_requests_due_date', 'due_date'),
    )

    @property
    def client(self):
        return {
            "name": self.client_name,
            "email": self.client_email,
            "phone": self.client_phone,
            "address": self.client_address,
            "tax_id": self.client_tax_id,
        }

    @property
    def payment_details(self):
        if self.paid_amount is None:
            return None
        return {
            "transaction_id": self.transaction_id,
            "payment_date": self.payment_date,
            "paid_amount": self.paid_amount,
            "remaining_amount": self.remaining_amount,
            "notes": self.payment_notes,
        }


class PaymentRequestItem(Base):
    """Payment Request Line Item"""
    __tablename__ = 'payment_request_items'

    id = Column(Integer, primary_key=True)
    payment_request_id = Column(Integer, ForeignKey('payment_requests.id', ondelete='CASCADE'), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(15, 2), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=True)
    tax_amount = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)

    # Relationships
    payment_request = relationship("PaymentRequest", back_populates="items")


class PaymentRecord(Base):
    """One applied payment; the partial-payment ledger of a request"""
    __tablename__ = 'payment_records'

    id = Column(Integer, primary_key=True)
    payment_request_id = Column(Integer, ForeignKey('payment_requests.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = enum_column(PaymentMethod, nullable=False)
    transaction_id = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=False)
    notes = Column(Text, nullable=True)
    recorded_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    payment_request = relationship("PaymentRequest", back_populates="payments")


# ==================== EXPENSE REQUESTS ====================

class ExpenseRequest(Base):
    """Employee reimbursement request"""
    __tablename__ = 'expense_requests'

    id = Column(Integer, primary_key=True)
    request_number = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    expense_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="VND")
    exchange_rate = Column(Numeric(18, 6), nullable=True)
    amount_in_vnd = Column(Numeric(18, 2), nullable=False)
    vendor_name = Column(String(255), nullable=True)
    category = enum_column(ExpenseCategory, nullable=False)
    description = Column(Text, nullable=True)
    status = enum_column(ExpenseRequestStatus, nullable=False, default=ExpenseRequestStatus.DRAFT)
    notes = Column(Text, nullable=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User")

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        UniqueConstraint('company_id', 'request_number', name='uq_expense_request_number'),
        Index('ix_expense_requests_company_user', 'company_id', 'user_id'),
    )


# ==================== NOTIFICATIONS ====================

class Notification(Base):
    """In-app notification for one user"""
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    type = enum_column(NotificationType, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    related_kind = Column(String(50), nullable=True)  # PaymentRequest, ExpenseRequest, ...
    related_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_notifications_user_read', 'user_id', 'is_read'),
        Index('ix_notifications_related', 'related_kind', 'related_id'),
    )

    @property
    def related_to(self):
        if not self.related_kind:
            return None
        return {"kind": self.related_kind, "id": self.related_id}


# ==================== NUMBERING ====================

class RequestCounter(Base):
    """Per-company sequence used to number requests"""
    __tablename__ = 'request_counters'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    scope = Column(String(30), nullable=False)  # payment_request, expense_request
    period = Column(String(10), nullable=False, default="")  # YY-MM for monthly scopes
    value = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('company_id', 'scope', 'period', name='uq_request_counter'),
    )


__all__ = [
    'LegacyRole', 'PaymentRequestStatus', 'PaymentMethod', 'ExpenseRequestStatus',
    'ExpenseCategory', 'NotificationType',
    'Company', 'User', 'Role', 'Permission', 'RolePermission', 'UserRole',
    'PaymentRequest', 'PaymentRequestItem', 'PaymentRecord', 'ExpenseRequest',
    'Notification', 'RequestCounter', 'utcnow',
]
