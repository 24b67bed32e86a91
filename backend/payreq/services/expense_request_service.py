"""
Expense Request Service - Employee reimbursements
"""
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from payreq.core.config import settings
from payreq.core.database import check_version, flush_versioned
from payreq.core.exceptions import Forbidden, NotFound, ValidationError
from payreq.core.permissions import FINANCE_ROLES, LegacyRole, P
from payreq.models import (
    ExpenseCategory, ExpenseRequest, ExpenseRequestStatus, NotificationType, User,
)
from payreq.schemas import ExpenseRequestCreate, ExpenseRequestUpdate
from payreq.services.counter_service import CounterService
from payreq.services.notification_service import NotificationService
from payreq.services.permission_service import PermissionService, Principal
from payreq.services.state_machine import EXPENSE_REQUEST_MACHINE

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

RELATED_KIND = "ExpenseRequest"

SORTABLE_FIELDS = {
    "created_at": ExpenseRequest.created_at,
    "expense_date": ExpenseRequest.expense_date,
    "amount": ExpenseRequest.amount,
    "amount_in_vnd": ExpenseRequest.amount_in_vnd,
    "request_number": ExpenseRequest.request_number,
    "status": ExpenseRequest.status,
}

APPROVER_ROLES = (LegacyRole.ADMIN, LegacyRole.MANAGER)
PAYER_ROLES = (LegacyRole.ADMIN, LegacyRole.ACCOUNTANT)


def convert_to_base(amount: Decimal, currency: str, exchange_rate: Optional[Decimal]) -> Tuple[Optional[Decimal], Decimal]:
    """Return the exchange rate to store and the amount in base currency"""
    if currency == settings.BASE_CURRENCY:
        return None, Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    if exchange_rate is None:
        raise ValidationError(f"Exchange rate is required for currency {currency}")
    if exchange_rate <= 0:
        raise ValidationError("Exchange rate must be greater than zero")
    return exchange_rate, (Decimal(amount) * Decimal(exchange_rate)).quantize(CENT, rounding=ROUND_HALF_UP)


def get_categories() -> List[dict]:
    return [
        {"value": category.value, "label": category.value.replace("_", " ").title()}
        for category in ExpenseCategory
    ]


class ExpenseRequestService:
    def __init__(self, db: Session):
        self.db = db
        self.permissions = PermissionService(db)
        self.notifications = NotificationService(db)
        self.counters = CounterService(db)

    def get_by_id(self, request_id: int, company_id: int, lock: bool = False) -> Optional[ExpenseRequest]:
        query = self.db.query(ExpenseRequest).filter(
            ExpenseRequest.id == request_id,
            ExpenseRequest.company_id == company_id
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def _can_read_all(self, actor: Principal) -> bool:
        return self.permissions.is_allowed(actor, P.EXPENSE_REQUEST_READ_ALL)

    def _get_visible(self, actor: Principal, request_id: int, lock: bool = False) -> ExpenseRequest:
        expense_request = self.get_by_id(request_id, actor.company_id, lock=lock)
        if not expense_request:
            raise NotFound("Expense request not found")
        if expense_request.user_id != actor.user_id and not self._can_read_all(actor):
            raise NotFound("Expense request not found")
        return expense_request

    def _require_owner_or(self, actor: Principal, expense_request: ExpenseRequest, permission: str) -> None:
        if expense_request.user_id == actor.user_id:
            return
        self.permissions.require(actor, permission)

    def _require_transition_authority(self, actor: Principal, expense_request: ExpenseRequest,
                                      target: ExpenseRequestStatus) -> None:
        if target == ExpenseRequestStatus.APPROVED:
            self.permissions.require(actor, P.EXPENSE_REQUEST_APPROVE, legacy_roles=APPROVER_ROLES)
        elif target == ExpenseRequestStatus.REJECTED:
            self.permissions.require(actor, P.EXPENSE_REQUEST_REJECT, legacy_roles=APPROVER_ROLES)
        elif target == ExpenseRequestStatus.PAID:
            self.permissions.require(actor, P.EXPENSE_REQUEST_UPDATE, legacy_roles=PAYER_ROLES)
        else:
            self._require_owner_or(actor, expense_request, P.EXPENSE_REQUEST_UPDATE)

    def _notify(self, expense_request: ExpenseRequest, title: str, message: str, actor_id: int) -> None:
        self.notifications.notify_role_users(
            company_id=expense_request.company_id,
            roles=FINANCE_ROLES,
            type=NotificationType.SYSTEM,
            title=title,
            message=message,
            related_kind=RELATED_KIND,
            related_id=expense_request.id,
            exclude_user_id=actor_id,
        )

    # ---------- queries ----------

    def get(self, actor: Principal, request_id: int) -> ExpenseRequest:
        return self._get_visible(actor, request_id)

    def get_requests(
        self,
        actor: Principal,
        status: Optional[ExpenseRequestStatus] = None,
        category: Optional[ExpenseCategory] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[ExpenseRequest], int]:
        """The actor's own requests, or the whole company with read_all"""
        query = self.db.query(ExpenseRequest).filter(ExpenseRequest.company_id == actor.company_id)
        if not self._can_read_all(actor):
            query = query.filter(ExpenseRequest.user_id == actor.user_id)

        if status:
            query = query.filter(ExpenseRequest.status == status)
        if category:
            query = query.filter(ExpenseRequest.category == category)
        if start_date:
            query = query.filter(ExpenseRequest.expense_date >= start_date)
        if end_date:
            query = query.filter(ExpenseRequest.expense_date <= end_date)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                ExpenseRequest.title.ilike(pattern),
                ExpenseRequest.request_number.ilike(pattern),
                ExpenseRequest.vendor_name.ilike(pattern),
                ExpenseRequest.description.ilike(pattern),
            ))

        column = SORTABLE_FIELDS.get(sort_by)
        if column is None:
            raise ValidationError(f"Cannot sort by '{sort_by}'")
        order = column.asc() if sort_order == "asc" else column.desc()

        total = query.count()
        items = query.order_by(order, ExpenseRequest.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return items, total

    # ---------- writes ----------

    def create(self, actor: Principal, data: ExpenseRequestCreate) -> ExpenseRequest:
        self.permissions.require(actor, P.EXPENSE_REQUEST_CREATE)
        exchange_rate, amount_in_vnd = convert_to_base(data.amount, data.currency, data.exchange_rate)

        expense_request = ExpenseRequest(
            request_number=self.counters.next_expense_request_number(actor.company_id),
            title=data.title,
            company_id=actor.company_id,
            user_id=actor.user_id,
            expense_date=data.expense_date,
            amount=data.amount,
            currency=data.currency,
            exchange_rate=exchange_rate,
            amount_in_vnd=amount_in_vnd,
            vendor_name=data.vendor_name,
            category=data.category,
            description=data.description,
            notes=data.notes,
            status=ExpenseRequestStatus.DRAFT,
        )
        self.db.add(expense_request)
        self.db.flush()

        creator = self.db.get(User, actor.user_id)
        creator_name = creator.full_name if creator else f"user {actor.user_id}"
        logger.info(
            "Expense request %s created by user %s (%s %s = %s %s)",
            expense_request.request_number, actor.user_id, data.amount, data.currency,
            amount_in_vnd, settings.BASE_CURRENCY
        )
        self._notify(
            expense_request, "New Expense Request",
            f"A new expense request ({expense_request.request_number}) has been created by {creator_name}.",
            actor.user_id,
        )
        return expense_request

    def update(self, actor: Principal, request_id: int, data: ExpenseRequestUpdate) -> ExpenseRequest:
        """Edit a request in DRAFT or REJECTED; the base amount is recomputed"""
        expense_request = self._get_visible(actor, request_id, lock=True)
        self._require_owner_or(actor, expense_request, P.EXPENSE_REQUEST_UPDATE)
        check_version(expense_request, data.version_id)
        EXPENSE_REQUEST_MACHINE.check_editable(ExpenseRequestStatus(expense_request.status))

        for field in ("title", "expense_date", "vendor_name", "category", "description", "notes"):
            value = getattr(data, field)
            if value is not None:
                setattr(expense_request, field, value)

        if data.amount is not None or data.currency is not None or data.exchange_rate is not None:
            amount = data.amount if data.amount is not None else Decimal(expense_request.amount)
            currency = data.currency or expense_request.currency
            rate = data.exchange_rate
            if rate is None and expense_request.exchange_rate is not None:
                rate = Decimal(expense_request.exchange_rate)
            exchange_rate, amount_in_vnd = convert_to_base(amount, currency, rate)
            expense_request.amount = amount
            expense_request.currency = currency
            expense_request.exchange_rate = exchange_rate
            expense_request.amount_in_vnd = amount_in_vnd

        flush_versioned(self.db)
        logger.info("Expense request %s updated by user %s", expense_request.request_number, actor.user_id)
        return expense_request

    def delete(self, actor: Principal, request_id: int) -> None:
        expense_request = self._get_visible(actor, request_id, lock=True)
        self._require_owner_or(actor, expense_request, P.EXPENSE_REQUEST_DELETE)
        EXPENSE_REQUEST_MACHINE.check_deletable(ExpenseRequestStatus(expense_request.status))

        self.db.delete(expense_request)
        flush_versioned(self.db)
        logger.info("Expense request %s deleted by user %s", expense_request.request_number, actor.user_id)

    def change_status(
        self,
        actor: Principal,
        request_id: int,
        status: ExpenseRequestStatus,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> ExpenseRequest:
        expense_request = self.get_by_id(request_id, actor.company_id, lock=True)
        if not expense_request:
            raise NotFound("Expense request not found")
        try:
            self._require_transition_authority(actor, expense_request, status)
        except Forbidden:
            if expense_request.user_id != actor.user_id and not self._can_read_all(actor):
                raise NotFound("Expense request not found")
            raise
        check_version(expense_request, expected_version)

        current = ExpenseRequestStatus(expense_request.status)
        EXPENSE_REQUEST_MACHINE.check_transition(current, status)
        if current == status:
            return expense_request

        expense_request.status = status
        if notes:
            expense_request.notes = notes
        flush_versioned(self.db)

        logger.info(
            "Expense request %s moved %s -> %s by user %s",
            expense_request.request_number, current.value, status.value, actor.user_id
        )
        self._notify(
            expense_request, "Expense Request Status Updated",
            f"Expense request {expense_request.request_number} status has been updated to {status.value}.",
            actor.user_id,
        )
        return expense_request
