import json
import logging

from channels.generic.websocket import AsyncWebsocketConsumer

from apps.notifications.services.create_notifications import user_group_name

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncWebsocketConsumer):
    """
    Streams the authenticated user's notifications.
    Pushed by NotificationSink.push through the `user_<id>` group.
    """

    async def connect(self):
        user = self.scope.get("user")
        if not user or not user.is_authenticated:
            await self.close()
            return

        self.group_name = user_group_name(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        logger.debug("Notification socket opened for user %s", user.id)

    async def disconnect(self, close_code):
        group_name = getattr(self, "group_name", None)
        if group_name:
            await self.channel_layer.group_discard(group_name, self.channel_name)

    async def send_notification(self, event):
        payload = {key: value for key, value in event.items() if key != "type"}
        await self.send(text_data=json.dumps(payload))
