# ==================== NOTIFICATIONS/TASKS.PY (CELERY TASKS) ====================
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
import logging

logger = logging.getLogger(__name__)


@shared_task
def send_notification_email(notification_id):
    """E-mail copy of an in-app notification"""
    from .models import Notification

    try:
        notification = Notification.objects.select_related('user').get(id=notification_id)
    except Notification.DoesNotExist:
        logger.warning(f"Notification {notification_id} vanished before e-mail was sent")
        return

    if not notification.user.email:
        return

    send_mail(
        notification.title,
        notification.message,
        settings.DEFAULT_FROM_EMAIL,
        [notification.user.email],
        fail_silently=True,
    )


@shared_task
def prune_change_events():
    """Drop change-stream rows past CHANGE_EVENT_RETENTION_HOURS"""
    from .models import ChangeEvent

    cutoff = timezone.now() - timedelta(hours=settings.CHANGE_EVENT_RETENTION_HOURS)
    deleted, _ = ChangeEvent.objects.filter(created_at__lt=cutoff).delete()
    if deleted:
        logger.info(f"Pruned {deleted} change events older than {cutoff.isoformat()}")
    return deleted
