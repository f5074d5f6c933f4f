# ==================== NOTIFICATIONS/SERVICES.PY ====================
import logging

from django.db import transaction

from .models import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Create in-app notifications and queue the matching e-mail"""

    @staticmethod
    def notify(user, notification_type, title, message, booking=None, parking_space=None):
        notification = Notification.objects.create(
            user=user,
            type=notification_type,
            title=title,
            message=message,
            booking=booking,
            parking_space=parking_space,
        )
        logger.info(f"Created notification {notification.id} ({notification_type}) for user {user.id}")

        from .tasks import send_notification_email
        transaction.on_commit(lambda: send_notification_email.delay(notification.id))
        return notification

    @staticmethod
    def mark_all_read(user):
        return Notification.objects.filter(user=user, read=False).update(read=True)

    @staticmethod
    def unread_count(user):
        return Notification.objects.filter(user=user, read=False).count()
