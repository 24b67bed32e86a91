"""
Payment Request Service - Invoices owed to the company, status changes and payments
"""
import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from payreq.core.database import check_version, flush_versioned
from payreq.core.exceptions import InvalidStateForPayment, NotFound, ValidationError
from payreq.core.permissions import FINANCE_ROLES, P
from payreq.models import (
    NotificationType, PaymentMethod, PaymentRecord, PaymentRequest,
    PaymentRequestItem, PaymentRequestStatus, utcnow,
)
from payreq.schemas import PaymentRequestCreate, PaymentRequestItemCreate, PaymentRequestUpdate
from payreq.services.counter_service import CounterService
from payreq.services.notification_service import NotificationService
from payreq.services.permission_service import PermissionService, Principal
from payreq.services.state_machine import (
    OVERDUE_CANDIDATE_STATUSES, PAYABLE_STATUSES, PAYMENT_REQUEST_MACHINE,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

RELATED_KIND = "PaymentRequest"

SORTABLE_FIELDS = {
    "created_at": PaymentRequest.created_at,
    "due_date": PaymentRequest.due_date,
    "total_amount": PaymentRequest.total_amount,
    "request_number": PaymentRequest.request_number,
    "status": PaymentRequest.status,
}

_READ = [P.PAYMENT_REQUEST_READ, P.PAYMENT_REQUEST_READ_ALL]


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_item(item: PaymentRequestItemCreate) -> Tuple[Decimal, Decimal]:
    """Line amount and line tax; an explicit tax amount wins over the rate"""
    amount = _money(item.quantity * item.unit_price)
    if item.tax_amount is not None:
        tax = _money(item.tax_amount)
    elif item.tax_rate is not None:
        tax = _money(amount * item.tax_rate / 100)
    else:
        tax = ZERO
    return amount, tax


def required_permission_for(target: PaymentRequestStatus) -> str:
    if target == PaymentRequestStatus.APPROVED:
        return P.PAYMENT_REQUEST_APPROVE
    if target == PaymentRequestStatus.REJECTED:
        return P.PAYMENT_REQUEST_REJECT
    return P.PAYMENT_REQUEST_UPDATE


class PaymentRequestService:
    def __init__(self, db: Session):
        self.db = db
        self.permissions = PermissionService(db)
        self.notifications = NotificationService(db)
        self.counters = CounterService(db)

    # ---------- helpers ----------

    def get_by_id(self, request_id: int, company_id: int, lock: bool = False) -> Optional[PaymentRequest]:
        query = self.db.query(PaymentRequest).options(
            selectinload(PaymentRequest.items)
        ).filter(
            PaymentRequest.id == request_id,
            PaymentRequest.company_id == company_id
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def _get_or_404(self, actor: Principal, request_id: int, lock: bool = False) -> PaymentRequest:
        payment_request = self.get_by_id(request_id, actor.company_id, lock=lock)
        if not payment_request:
            raise NotFound("Payment request not found")
        return payment_request

    def _build_items(self, items: List[PaymentRequestItemCreate]) -> Tuple[List[PaymentRequestItem], Decimal, Decimal]:
        rows = []
        subtotal = ZERO
        tax_total = ZERO
        for position, item in enumerate(items):
            amount, tax = compute_item(item)
            rows.append(PaymentRequestItem(
                position=position,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=amount,
                tax_rate=item.tax_rate,
                tax_amount=tax,
            ))
            subtotal += amount
            tax_total += tax
        return rows, subtotal, tax_total

    @staticmethod
    def _total(subtotal: Decimal, tax_total: Decimal, discount: Decimal) -> Decimal:
        total = _money(subtotal + tax_total - discount)
        if total < 0:
            raise ValidationError("Total amount cannot be negative; discount exceeds subtotal plus tax")
        return total

    def _notify(self, payment_request: PaymentRequest, type: NotificationType, title: str,
                message: str, actor_id: Optional[int]) -> None:
        self.notifications.notify_role_users(
            company_id=payment_request.company_id,
            roles=FINANCE_ROLES,
            type=type,
            title=title,
            message=message,
            related_kind=RELATED_KIND,
            related_id=payment_request.id,
            exclude_user_id=actor_id,
        )

    # ---------- queries ----------

    def get(self, actor: Principal, request_id: int) -> PaymentRequest:
        self.permissions.require(actor, _READ)
        return self._get_or_404(actor, request_id)

    def get_requests(
        self,
        actor: Principal,
        status: Optional[PaymentRequestStatus] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[PaymentRequest], int]:
        self.permissions.require(actor, _READ)

        query = self.db.query(PaymentRequest).filter(PaymentRequest.company_id == actor.company_id)
        if status:
            query = query.filter(PaymentRequest.status == status)
        if start_date:
            query = query.filter(PaymentRequest.created_at >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(PaymentRequest.created_at <= datetime.combine(end_date, datetime.max.time()))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                PaymentRequest.request_number.ilike(pattern),
                PaymentRequest.description.ilike(pattern),
                PaymentRequest.client_name.ilike(pattern),
                PaymentRequest.client_email.ilike(pattern),
            ))

        column = SORTABLE_FIELDS.get(sort_by)
        if column is None:
            raise ValidationError(f"Cannot sort by '{sort_by}'")
        order = column.asc() if sort_order == "asc" else column.desc()

        total = query.count()
        items = query.options(selectinload(PaymentRequest.items)).order_by(
            order, PaymentRequest.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def list_payments(self, actor: Principal, request_id: int) -> List[PaymentRecord]:
        self.permissions.require(actor, _READ)
        return self._get_or_404(actor, request_id).payments

    def get_statistics(self, actor: Principal, today: Optional[date] = None) -> dict:
        """Counts and amounts per status for the actor's company"""
        self.permissions.require(actor, _READ)
        today = today or date.today()

        rows = self.db.query(
            PaymentRequest.status,
            func.count(PaymentRequest.id),
            func.coalesce(func.sum(PaymentRequest.total_amount), 0),
            func.coalesce(func.sum(PaymentRequest.paid_amount), 0),
        ).filter(
            PaymentRequest.company_id == actor.company_id
        ).group_by(PaymentRequest.status).all()

        by_status = {status.value: {"count": 0, "total_amount": ZERO} for status in PaymentRequestStatus}
        total_requests = 0
        total_amount = ZERO
        total_paid = ZERO
        total_outstanding = ZERO
        for status, count, amount, paid in rows:
            amount = _money(amount)
            paid = _money(paid)
            by_status[PaymentRequestStatus(status).value] = {"count": count, "total_amount": amount}
            total_requests += count
            total_amount += amount
            total_paid += paid
            if status in PAYABLE_STATUSES:
                total_outstanding += max(amount - paid, ZERO)

        overdue_count = self.db.query(PaymentRequest).filter(
            PaymentRequest.company_id == actor.company_id,
            PaymentRequest.due_date < today,
            PaymentRequest.status.in_(list(OVERDUE_CANDIDATE_STATUSES | {PaymentRequestStatus.OVERDUE}))
        ).count()

        return {
            "total_requests": total_requests,
            "by_status": by_status,
            "total_amount": total_amount,
            "total_paid": total_paid,
            "total_outstanding": total_outstanding,
            "overdue_count": overdue_count,
        }

    # ---------- writes ----------

    def create(self, actor: Principal, data: PaymentRequestCreate, today: Optional[date] = None) -> PaymentRequest:
        self.permissions.require(actor, P.PAYMENT_REQUEST_CREATE)

        items, subtotal, tax_total = self._build_items(data.items)
        discount = _money(data.discount_amount)
        total = self._total(subtotal, tax_total, discount)

        payment_request = PaymentRequest(
            request_number=self.counters.next_payment_request_number(actor.company_id, today),
            company_id=actor.company_id,
            created_by=actor.user_id,
            client_name=data.client.name,
            client_email=data.client.email,
            client_phone=data.client.phone,
            client_address=data.client.address,
            client_tax_id=data.client.tax_id,
            currency=data.currency,
            description=data.description,
            subtotal=subtotal,
            tax_total=tax_total,
            discount_amount=discount,
            total_amount=total,
            due_date=data.due_date,
            status=PaymentRequestStatus.PENDING if data.submit else PaymentRequestStatus.DRAFT,
            payment_method=data.payment_method,
            notes=data.notes,
            items=items,
        )
        self.db.add(payment_request)
        self.db.flush()

        logger.info(
            "Payment request %s created by user %s (total %s %s)",
            payment_request.request_number, actor.user_id, total, payment_request.currency
        )
        self._notify(
            payment_request, NotificationType.PAYMENT_REQUEST_CREATED, "New Payment Request",
            f"A new payment request ({payment_request.request_number}) has been created "
            f"for {payment_request.client_name}.",
            actor.user_id,
        )
        return payment_request

    def update(self, actor: Principal, request_id: int, data: PaymentRequestUpdate) -> PaymentRequest:
        """Edit the body of a request still in DRAFT or PENDING"""
        self.permissions.require(actor, P.PAYMENT_REQUEST_UPDATE)
        payment_request = self._get_or_404(actor, request_id, lock=True)
        check_version(payment_request, data.version_id)
        PAYMENT_REQUEST_MACHINE.check_editable(PaymentRequestStatus(payment_request.status))

        if data.client is not None:
            payment_request.client_name = data.client.name
            payment_request.client_email = data.client.email
            payment_request.client_phone = data.client.phone
            payment_request.client_address = data.client.address
            payment_request.client_tax_id = data.client.tax_id

        for field in ("currency", "description", "due_date", "payment_method", "notes"):
            value = getattr(data, field)
            if value is not None:
                setattr(payment_request, field, value)

        if data.items is not None or data.discount_amount is not None:
            if data.items is not None:
                items, subtotal, tax_total = self._build_items(data.items)
                payment_request.items = items
                payment_request.subtotal = subtotal
                payment_request.tax_total = tax_total
            if data.discount_amount is not None:
                payment_request.discount_amount = _money(data.discount_amount)
            payment_request.total_amount = self._total(
                Decimal(payment_request.subtotal),
                Decimal(payment_request.tax_total),
                Decimal(payment_request.discount_amount),
            )
            if payment_request.paid_amount is not None:
                payment_request.remaining_amount = max(
                    ZERO, payment_request.total_amount - Decimal(payment_request.paid_amount)
                )

        flush_versioned(self.db)
        logger.info("Payment request %s updated by user %s", payment_request.request_number, actor.user_id)
        self._notify(
            payment_request, NotificationType.PAYMENT_REQUEST_UPDATED, "Payment Request Updated",
            f"Payment request {payment_request.request_number} has been updated.",
            actor.user_id,
        )
        return payment_request

    def delete(self, actor: Principal, request_id: int) -> None:
        self.permissions.require(actor, P.PAYMENT_REQUEST_DELETE)
        payment_request = self._get_or_404(actor, request_id, lock=True)
        PAYMENT_REQUEST_MACHINE.check_deletable(PaymentRequestStatus(payment_request.status))

        self.db.delete(payment_request)
        flush_versioned(self.db)
        logger.info("Payment request %s deleted by user %s", payment_request.request_number, actor.user_id)

    def change_status(
        self,
        actor: Principal,
        request_id: int,
        status: PaymentRequestStatus,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> PaymentRequest:
        self.permissions.require(actor, required_permission_for(status))
        payment_request = self._get_or_404(actor, request_id, lock=True)
        check_version(payment_request, expected_version)

        current = PaymentRequestStatus(payment_request.status)
        PAYMENT_REQUEST_MACHINE.check_transition(current, status)
        if current == status:
            return payment_request

        payment_request.status = status
        if notes:
            payment_request.notes = notes
        flush_versioned(self.db)

        logger.info(
            "Payment request %s moved %s -> %s by user %s",
            payment_request.request_number, current.value, status.value, actor.user_id
        )
        self._notify(
            payment_request, NotificationType.PAYMENT_REQUEST_UPDATED, "Payment Request Status Changed",
            f"Payment request {payment_request.request_number} status changed "
            f"from {current.value} to {status.value}.",
            actor.user_id,
        )
        return payment_request

    def apply_payment(
        self,
        actor: Principal,
        request_id: int,
        payment_method: PaymentMethod,
        paid_amount: Decimal,
        transaction_id: Optional[str] = None,
        payment_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> PaymentRequest:
        """
        Record a (possibly partial) payment against the request.

        Amounts accumulate across calls; the status becomes PAID once nothing
        remains, otherwise PARTIALLY_PAID. Overpayment is accepted and leaves
        the remaining amount at zero.
        """
        self.permissions.require(actor, P.PAYMENT_REQUEST_UPDATE)
        paid_amount = _money(paid_amount)
        if paid_amount <= 0:
            raise ValidationError("Paid amount must be greater than zero")

        payment_request = self._get_or_404(actor, request_id, lock=True)
        check_version(payment_request, expected_version)

        current = PaymentRequestStatus(payment_request.status)
        if current not in PAYABLE_STATUSES:
            raise InvalidStateForPayment(current)

        total = Decimal(payment_request.total_amount)
        new_paid = Decimal(payment_request.paid_amount or ZERO) + paid_amount
        remaining = max(ZERO, total - new_paid)
        new_status = PaymentRequestStatus.PAID if remaining == 0 else PaymentRequestStatus.PARTIALLY_PAID
        payment_date = payment_date or utcnow()

        payment_request.status = new_status
        payment_request.payment_method = payment_method
        payment_request.transaction_id = transaction_id
        payment_request.payment_date = payment_date
        payment_request.paid_amount = new_paid
        payment_request.remaining_amount = remaining
        payment_request.payment_notes = notes
        payment_request.payments.append(PaymentRecord(
            amount=paid_amount,
            payment_method=payment_method,
            transaction_id=transaction_id,
            payment_date=payment_date,
            notes=notes,
            recorded_by=actor.user_id,
        ))
        flush_versioned(self.db)

        logger.info(
            "Payment of %s applied to %s by user %s: paid %s, remaining %s, status %s",
            paid_amount, payment_request.request_number, actor.user_id,
            new_paid, remaining, new_status.value
        )
        self._notify(
            payment_request, NotificationType.PAYMENT_RECEIVED, "Payment Received",
            f"Payment of {paid_amount} {payment_request.currency} received for payment request "
            f"{payment_request.request_number}",
            actor.user_id,
        )
        return payment_request
