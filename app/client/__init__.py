from app.client.backend import MessagingBackend
from app.client.http_backend import HttpMessagingBackend
from app.client.messaging_core import MessagingCore
from app.client.state import ChatMessage, MessagingSessionState

__all__ = [
    "ChatMessage",
    "HttpMessagingBackend",
    "MessagingBackend",
    "MessagingCore",
    "MessagingSessionState",
]
