"""Notification utilities - email."""

from src.flowsmith.core.notifications.email import RunNotification, send_run_notification_email

__all__ = [
    "RunNotification",
    "send_run_notification_email",
]
