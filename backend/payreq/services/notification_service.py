"""
Notification Service
Persists in-app notifications for finance staff and serves the per-user inbox
"""
import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from payreq.core.exceptions import NotFound
from payreq.core.permissions import LegacyRole
from payreq.models import Notification, NotificationType, User, utcnow

logger = logging.getLogger(__name__)


class NotificationService:
    """Notification sink plus the recipient-side operations"""

    def __init__(self, db: Session):
        self.db = db

    def notify_role_users(
        self,
        company_id: int,
        roles: Iterable[LegacyRole],
        type: NotificationType,
        title: str,
        message: str,
        related_kind: Optional[str] = None,
        related_id: Optional[int] = None,
        exclude_user_id: Optional[int] = None,
    ) -> int:
        """
        Create one notification per active company user holding one of ``roles``.

        Runs inside a savepoint; a failure is logged and the caller's
        transaction carries on without the notifications.

        Returns:
            Number of notifications created
        """
        try:
            with self.db.begin_nested():
                query = self.db.query(User.id).filter(
                    User.company_id == company_id,
                    User.is_active.is_(True),
                    User.legacy_role.in_(list(roles))
                )
                if exclude_user_id is not None:
                    query = query.filter(User.id != exclude_user_id)
                recipients = [row.id for row in query.all()]

                for user_id in recipients:
                    self.db.add(Notification(
                        user_id=user_id,
                        company_id=company_id,
                        type=type,
                        title=title,
                        message=message,
                        related_kind=related_kind,
                        related_id=related_id,
                    ))
                self.db.flush()

            logger.info(
                f"Notification {type.value} sent to {len(recipients)} user(s) "
                f"company={company_id} related={related_kind}:{related_id}"
            )
            return len(recipients)

        except Exception as e:
            logger.error(f"Failed to create notifications: {e}")
            # Don't raise - notification delivery should not break the main operation
            return 0

    # ---------- inbox ----------

    def _own(self, user_id: int):
        return self.db.query(Notification).filter(Notification.user_id == user_id)

    def get_notifications(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> Tuple[List[Notification], int]:
        query = self._own(user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        total = query.count()
        items = query.order_by(desc(Notification.created_at), desc(Notification.id)).offset(
            (page - 1) * limit
        ).limit(limit).all()
        return items, total

    def get_unread_count(self, user_id: int) -> int:
        return self._own(user_id).filter(Notification.is_read.is_(False)).count()

    def mark_as_read(self, user_id: int, notification_id: int) -> Notification:
        notification = self._own(user_id).filter(Notification.id == notification_id).first()
        if not notification:
            raise NotFound("Notification not found")
        notification.is_read = True
        self.db.flush()
        return notification

    def mark_all_as_read(self, user_id: int) -> int:
        updated = self._own(user_id).filter(Notification.is_read.is_(False)).update(
            {Notification.is_read: True, Notification.updated_at: utcnow()},
            synchronize_session=False
        )
        self.db.flush()
        return updated

    def delete(self, user_id: int, notification_id: int) -> None:
        notification = self._own(user_id).filter(Notification.id == notification_id).first()
        if not notification:
            raise NotFound("Notification not found")
        self.db.delete(notification)
        self.db.flush()
