from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService
from app.services.notification_service import NotificationService
from app.services.typing_service import TypingService
from app.services.user_service import UserService

__all__ = [
    "ConversationService",
    "MessageService",
    "NotificationService",
    "TypingService",
    "UserService",
]
