import logging

from .models import Notification

logger = logging.getLogger(__name__)


def send_notification(user, title, message, notification_type, order=None):
    """Persist a notification for ``user``; anonymous targets are skipped."""
    if user is None:
        return None

    notification = Notification.objects.create(
        target_user=user,
        title=title,
        message=message,
        notification_type=notification_type,
        order=order,
    )
    logger.info("Notification '%s' stored for user %s", title, user.pk)
    return notification


def send_bulk_notification(users, title, message, notification_type, order=None):
    """Send the same notification to several users; returns how many were created"""
    created = 0
    for user in users:
        if send_notification(user, title, message, notification_type, order=order):
            created += 1

    logger.info("Bulk notification '%s' sent to %d users", title, created)
    return created
