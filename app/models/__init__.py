from app.models.conversation import Conversation
from app.models.message import Message
from app.models.notification import Notification
from app.models.typing_signal import TypingSignal
from app.models.user import User

__all__ = [
    "Conversation",
    "Message",
    "Notification",
    "TypingSignal",
    "User",
]
