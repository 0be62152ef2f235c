import asyncio

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings

from apps.notifications.models import Notification, UserNotification


def user_group_name(user_id):
    return f"user_{user_id}"


async def _group_send(channel_layer, group, event, timeout):
    await asyncio.wait_for(channel_layer.group_send(group, event), timeout)


class NotificationSink:
    """
    Persists notifications, links them to users and pushes them over the
    user's WebSocket group.
    """

    def __init__(self, timeout=None):
        self.timeout = timeout or settings.SIDE_EFFECT_TIMEOUT_SECONDS

    def create_notification(self, title, message, notif_type, metadata=None):
        return Notification.objects.create(
            title=title,
            message=message,
            notif_type=notif_type,
            data=metadata or {},
        )

    def link_to_user(self, user_id, notification_id):
        link, _ = UserNotification.objects.get_or_create(
            user_id=user_id,
            notification_id=notification_id,
        )
        return link

    def push(self, user_id, notification):
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return

        async_to_sync(_group_send)(
            channel_layer,
            user_group_name(user_id),
            {
                "type": "send_notification",
                "id": str(notification.id),
                "title": notification.title,
                "message": notification.message,
                "notif_type": notification.notif_type,
                "data": notification.data,
                "created_at": str(notification.created_at),
                "is_read": False,
            },
            self.timeout,
        )

