"""Notification repository - Database operations for notifications"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Notification, User


class NotificationRepository:
    """Repository for notification database operations"""

    @staticmethod
    def create(db: Session, user_id: int, type: str, title: str, message: str, data: Optional[dict]) -> Notification:
        notification = Notification(user_id=user_id, type=type, title=title, message=message, data=data)
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def list_for_user(
        db: Session, user_id: int, unread_only: bool, offset: int, limit: int
    ) -> tuple[list[Notification], int]:
        """One page of a user's notifications, newest first, plus the total"""
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))

        total = query.count()
        items = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def count_unread(db: Session, user_id: int) -> int:
        return (
            db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .count()
        )

    @staticmethod
    def get_for_user(db: Session, notification_id: int, user_id: int) -> Optional[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )

    @staticmethod
    def mark_read(db: Session, notification: Notification, now: datetime) -> Notification:
        notification.is_read = True
        notification.read_at = now
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: int, now: datetime) -> int:
        count = (
            db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update({"is_read": True, "read_at": now}, synchronize_session=False)
        )
        db.commit()
        return count

    @staticmethod
    def delete(db: Session, notification: Notification) -> None:
        db.delete(notification)
        db.commit()

    @staticmethod
    def get_users(db: Session, user_ids: list[int]) -> list[User]:
        return db.query(User).filter(User.id.in_(user_ids)).all()

    @staticmethod
    def get_admins(db: Session) -> list[User]:
        return db.query(User).filter(User.role == "admin").all()
