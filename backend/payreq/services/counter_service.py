"""
Request numbering backed by per-company counter rows
"""
import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payreq.models import ExpenseRequest, PaymentRequest, RequestCounter

logger = logging.getLogger(__name__)

PAYMENT_REQUEST_SCOPE = "payment_request"
EXPENSE_REQUEST_SCOPE = "expense_request"


class CounterService:
    def __init__(self, db: Session):
        self.db = db

    def _filter(self, company_id: int, scope: str, period: str):
        return self.db.query(RequestCounter).filter(
            RequestCounter.company_id == company_id,
            RequestCounter.scope == scope,
            RequestCounter.period == period
        )

    def next_value(self, company_id: int, scope: str, period: str = "",
                   start_after: Optional[Callable[[], int]] = None) -> int:
        """
        Increment and return the counter in the caller's transaction.

        The row is created on first use; ``start_after`` supplies the highest
        number already issued before counters existed.
        """
        updated = self._filter(company_id, scope, period).update(
            {RequestCounter.value: RequestCounter.value + 1},
            synchronize_session=False
        )
        if not updated:
            initial = (start_after() if start_after else 0) + 1
            try:
                with self.db.begin_nested():
                    self.db.add(RequestCounter(
                        company_id=company_id, scope=scope, period=period, value=initial
                    ))
                    self.db.flush()
                return initial
            except IntegrityError:
                # Row created concurrently; fall back to incrementing it
                self._filter(company_id, scope, period).update(
                    {RequestCounter.value: RequestCounter.value + 1},
                    synchronize_session=False
                )

        return self.db.query(RequestCounter.value).filter(
            RequestCounter.company_id == company_id,
            RequestCounter.scope == scope,
            RequestCounter.period == period
        ).scalar()

    def _max_suffix(self, model, company_id: int, prefix: str) -> int:
        numbers = self.db.query(model.request_number).filter(
            model.company_id == company_id,
            model.request_number.like(f"{prefix}%")
        ).all()
        highest = 0
        for (number,) in numbers:
            try:
                highest = max(highest, int(number[len(prefix):]))
            except ValueError:
                continue
        return highest

    def next_payment_request_number(self, company_id: int, today: Optional[date] = None) -> str:
        """PR-YY-MM-XXXX, sequential per company and calendar month"""
        today = today or date.today()
        period = today.strftime("%y-%m")
        prefix = f"PR-{period}-"
        value = self.next_value(
            company_id, PAYMENT_REQUEST_SCOPE, period,
            start_after=lambda: self._max_suffix(PaymentRequest, company_id, prefix)
        )
        return f"{prefix}{value:04d}"

    def next_expense_request_number(self, company_id: int) -> str:
        """EXP-00001, sequential per company"""
        prefix = "EXP-"
        value = self.next_value(
            company_id, EXPENSE_REQUEST_SCOPE,
            start_after=lambda: self._max_suffix(ExpenseRequest, company_id, prefix)
        )
        return f"{prefix}{value:05d}"
