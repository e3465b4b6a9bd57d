# Notifications module
from app.modules.notifications.services import NotificationHub, notification_hub, get_notification_hub

__all__ = ["NotificationHub", "notification_hub", "get_notification_hub"]
