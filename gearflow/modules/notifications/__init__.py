"""In-app notifications."""

from gearflow.modules.notifications.service import NotificationService

__all__ = ["NotificationService"]
