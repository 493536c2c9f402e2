"""
Payroll Readiness Engine - Notification Service

Fire-and-forget in-app notifications. A failed send is logged and
swallowed so it never aborts the operation that triggered it.
"""

import uuid
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employee import Employee, EmployeeStatus, SystemRole
from app.models.notification import Notification as NotificationModel, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for sending and reading notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def send(
        self,
        recipient_id: uuid.UUID,
        notification_type: NotificationType,
        message: str,
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[NotificationModel]:
        """
        Send a notification to one recipient.

        Commits on its own. Call it only after the primary change has been
        committed; returns None when delivery failed. A failure rolls the
        session back, which expires every loaded row, so callers re-read
        anything they hand back.
        """
        notification = NotificationModel(
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            message=message,
            extra_data=metadata,
            is_read=False,
        )
        try:
            self.db.add(notification)
            await self.db.commit()
        except Exception as e:
            logger.error(f"Failed to send {notification_type.value} notification to {recipient_id}: {e}")
            await self.db.rollback()
            return None

        logger.info(f"Notification sent to {recipient_id}: {notification_type.value}")
        return notification

    async def send_to_role(
        self,
        role: SystemRole,
        notification_type: NotificationType,
        message: str,
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[NotificationModel]:
        """Send the same notification to every active employee holding `role`."""
        try:
            result = await self.db.execute(
                select(Employee.id)
                .where(Employee.system_role == role)
                .where(Employee.status == EmployeeStatus.ACTIVE)
                .order_by(Employee.id)
            )
            recipient_ids = list(result.scalars().all())
        except Exception as e:
            logger.error(f"Failed to resolve recipients for role {role.value}: {e}")
            return []

        sent = []
        for recipient_id in recipient_ids:
            notification = await self.send(
                recipient_id=recipient_id,
                notification_type=notification_type,
                message=message,
                title=title,
                metadata=metadata,
            )
            if notification is not None:
                sent.append(notification)
        return sent

    async def get_notifications(
        self,
        recipient_id: uuid.UUID,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[NotificationModel], int]:
        """
        Get notifications for a recipient with optional filters.

        Returns:
            Tuple of (notifications list, total count)
        """
        query = select(NotificationModel).where(NotificationModel.recipient_id == recipient_id)
        if unread_only:
            query = query.where(NotificationModel.is_read == False)  # noqa: E712
        if notification_type:
            query = query.where(NotificationModel.notification_type == notification_type)

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        query = query.order_by(NotificationModel.created_at.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total


def get_notification_service(db: AsyncSession) -> NotificationService:
    """Factory function for NotificationService"""
    return NotificationService(db)
