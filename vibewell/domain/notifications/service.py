"""Notification service - In-app storage and email/SMS fan-out"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...database import SessionLocal
from ...email_service import send_notification_email
from ...models import Notification, User
from ..audit.schemas import AuditIssue
from .repository import NotificationRepository
from .schemas import (
    BulkNotifyRequest,
    BulkNotifyResponse,
    DeliveryResult,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    NotificationType,
)
from .sms import send_sms

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class NotificationService:
    """Service layer for notification business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = NotificationRepository()

    # ========================================================================
    # DELIVERY
    # ========================================================================

    def notify_user(
        self,
        user: User,
        type: Union[NotificationType, str],
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> DeliveryResult:
        """
        Store an in-app notification and fan out to email/SMS per the user's preferences.

        Muted types are skipped entirely. A failing channel is recorded in the
        result and never raises.
        """
        type_value = type.value if isinstance(type, NotificationType) else type
        result = DeliveryResult()

        if type_value in (user.muted_notification_types or []):
            logger.debug(f"🔕 {type_value} muted by user {user.id}")
            result.skipped = True
            return result

        if user.notify_in_app:
            notification = self.repo.create(self.db, user.id, type_value, title, message, data)
            result.in_app = True
            result.notification_id = notification.id

        if user.notify_email and user.email:
            try:
                send_notification_email(user.email, type_value, title, message, data)
                result.email_sent = True
            except Exception as e:
                result.email_error = str(e)
                logger.error(f"❌ Failed to send {type_value} email to user {user.id}: {e}")

        if user.notify_sms:
            success, error = send_sms(user.phone_number, f"{title}: {message}")
            result.sms_sent = success
            result.sms_error = error
            if not success:
                logger.warning(f"⚠️ {type_value} SMS not sent to user {user.id}: {error}")

        logger.info(
            f"🔔 {type_value} for user {user.id}: in_app={result.in_app} "
            f"email={result.email_sent} sms={result.sms_sent}"
        )
        return result

    def bulk_notify(self, data: BulkNotifyRequest) -> BulkNotifyResponse:
        users = self.repo.get_users(self.db, data.user_ids)
        found = {u.id for u in users}
        delivered = 0
        for user in users:
            result = self.notify_user(user, data.type, data.title, data.message, data.data)
            if not result.skipped:
                delivered += 1

        missing = [uid for uid in data.user_ids if uid not in found]
        logger.info(f"📣 Bulk notification '{data.title}': {delivered}/{len(data.user_ids)} delivered")
        return BulkNotifyResponse(requested=len(data.user_ids), delivered=delivered, missing_user_ids=missing)

    def notify_admins(self, title: str, message: str, data: Optional[dict] = None) -> int:
        admins = self.repo.get_admins(self.db)
        for admin in admins:
            self.notify_user(admin, NotificationType.AUDIT_ALERT, title, message, data)
        return len(admins)

    # ========================================================================
    # INBOX
    # ========================================================================

    def list_notifications(
        self, user: User, page: int = 1, page_size: int = 20, unread_only: bool = False
    ) -> dict:
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        items, total = self.repo.list_for_user(
            self.db, user.id, unread_only, (page - 1) * page_size, page_size
        )
        return {
            "notifications": items,
            "total": total,
            "unread_count": self.repo.count_unread(self.db, user.id),
            "page": page,
            "page_size": page_size,
        }

    def unread_count(self, user: User) -> int:
        return self.repo.count_unread(self.db, user.id)

    def _get_owned(self, notification_id: int, user: User) -> Notification:
        notification = self.repo.get_for_user(self.db, notification_id, user.id)
        if not notification:
            raise HTTPException(status_code=404, detail="Notification not found")
        return notification

    def mark_read(self, notification_id: int, user: User) -> Notification:
        notification = self._get_owned(notification_id, user)
        if notification.is_read:
            return notification
        return self.repo.mark_read(self.db, notification, _utcnow())

    def mark_all_read(self, user: User) -> int:
        count = self.repo.mark_all_read(self.db, user.id, _utcnow())
        logger.info(f"✅ Marked {count} notifications read for user {user.id}")
        return count

    def delete_notification(self, notification_id: int, user: User) -> None:
        self.repo.delete(self.db, self._get_owned(notification_id, user))

    # ========================================================================
    # PREFERENCES
    # ========================================================================

    def get_preferences(self, user: User) -> NotificationPreferences:
        return NotificationPreferences(
            email=user.notify_email,
            sms=user.notify_sms,
            in_app=user.notify_in_app,
            muted_types=user.muted_notification_types or [],
        )

    def update_preferences(self, user: User, data: NotificationPreferencesUpdate) -> NotificationPreferences:
        if data.sms and not user.phone_number:
            raise HTTPException(status_code=400, detail="Add a phone number before enabling SMS notifications")

        if data.email is not None:
            user.notify_email = data.email
        if data.sms is not None:
            user.notify_sms = data.sms
        if data.in_app is not None:
            user.notify_in_app = data.in_app
        if data.muted_types is not None:
            user.muted_notification_types = sorted({t.value for t in data.muted_types})

        self.db.commit()
        self.db.refresh(user)
        logger.info(f"⚙️ Updated notification preferences for user {user.id}")
        return self.get_preferences(user)


def audit_alert_listener(issue: AuditIssue) -> None:
    """Critical audit issues become AUDIT_ALERT notifications for every admin"""
    db = SessionLocal()
    try:
        notified = NotificationService(db).notify_admins(
            f"Critical audit issue: {issue.title}",
            issue.description,
            {
                "issue_id": issue.id,
                "category": issue.category.value,
                "component": issue.component,
                "severity": issue.severity.value,
            },
        )
        logger.info(f"🚨 Audit alert for issue {issue.id} sent to {notified} admins")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to deliver audit alert for issue {issue.id}: {e}")
    finally:
        db.close()
