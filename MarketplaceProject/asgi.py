import os
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "MarketplaceProject.settings")

# Populates the app registry before consumers import models
get_asgi_application()

from channels.auth import AuthMiddlewareStack
from channels.routing import ProtocolTypeRouter, URLRouter
from apps.notifications import routing

# Real-time notifications only; the HTTP API is served elsewhere
application = ProtocolTypeRouter({
    "websocket": AuthMiddlewareStack(
        URLRouter(routing.websocket_urlpatterns)
    ),
})
