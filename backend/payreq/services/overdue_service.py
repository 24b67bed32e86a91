"""
Overdue Sweep
Moves past-due payment requests to OVERDUE and notifies finance staff
"""
import asyncio
import logging
from datetime import date
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from payreq.core.permissions import FINANCE_ROLES
from payreq.models import NotificationType, PaymentRequest, PaymentRequestStatus, utcnow
from payreq.services.notification_service import NotificationService
from payreq.services.state_machine import OVERDUE_CANDIDATE_STATUSES

logger = logging.getLogger(__name__)


class OverdueSweepService:
    """Runs with system authority; no permission checks"""

    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def select_candidates(self, today: date):
        """Past-due rows still in a candidate status, locked where supported"""
        return self.db.query(
            PaymentRequest.id,
            PaymentRequest.company_id,
            PaymentRequest.request_number,
            PaymentRequest.due_date,
        ).filter(
            PaymentRequest.due_date < today,
            PaymentRequest.status.in_(list(OVERDUE_CANDIDATE_STATUSES))
        ).with_for_update().all()

    def _mark_overdue(self, request_id: int) -> bool:
        """Conditional update; False when another writer already moved the row"""
        updated = self.db.query(PaymentRequest).filter(
            PaymentRequest.id == request_id,
            PaymentRequest.status.in_(list(OVERDUE_CANDIDATE_STATUSES))
        ).update(
            {
                PaymentRequest.status: PaymentRequestStatus.OVERDUE,
                PaymentRequest.version_id: PaymentRequest.version_id + 1,
                PaymentRequest.updated_at: utcnow(),
            },
            synchronize_session="fetch"
        )
        return updated == 1

    def sweep(self, today: Optional[date] = None) -> int:
        """Flag every eligible request once; returns how many were updated"""
        today = today or date.today()

        updated = 0
        for row in self.select_candidates(today):
            # Only the sweep whose update changed the row notifies
            if not self._mark_overdue(row.id):
                continue
            updated += 1
            self.notifications.notify_role_users(
                company_id=row.company_id,
                roles=FINANCE_ROLES,
                type=NotificationType.PAYMENT_OVERDUE,
                title="Payment Overdue",
                message=f"Payment request {row.request_number} is overdue. "
                        f"Due date was {row.due_date.isoformat()}.",
                related_kind="PaymentRequest",
                related_id=row.id,
            )

        if updated:
            logger.info("Overdue sweep flagged %d payment request(s)", updated)
        return updated


def run_overdue_sweep(session_factory: Optional[Callable[[], Session]] = None,
                      today: Optional[date] = None) -> int:
    """One sweep in its own session and transaction"""
    if session_factory is None:
        from payreq.core.database import SessionLocal
        session_factory = SessionLocal

    db = session_factory()
    try:
        count = OverdueSweepService(db).sweep(today)
        db.commit()
        return count
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def overdue_sweep_loop(interval_seconds: int,
                             session_factory: Optional[Callable[[], Session]] = None) -> None:
    """Sweep now, then every ``interval_seconds`` until cancelled"""
    logger.info("Overdue sweep scheduled every %d second(s)", interval_seconds)
    while True:
        try:
            await run_in_threadpool(run_overdue_sweep, session_factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Overdue sweep run failed")
        await asyncio.sleep(interval_seconds)
