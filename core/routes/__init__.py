# Route modules: chat, tools_api, conversations, maps_api, lifecycle.
# Each module provides handler factories taking core; core.route_registration registers them on core.app.

from core.routes import chat
from core.routes import conversations
from core.routes import lifecycle
from core.routes import maps_api
from core.routes import tools_api

__all__ = ["chat", "conversations", "lifecycle", "maps_api", "tools_api"]
