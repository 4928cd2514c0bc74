"""Messaging constants shared by the server stores and the client core."""

from enum import StrEnum

# Typing window = debounce x ratio. A ratio of 2 tolerates exactly one missed
# client debounce tick before the indicator disappears.
TYPING_WINDOW_RATIO = 2

DEFAULT_NOTIFICATION_LIMIT = 20
MESSAGE_NOTIFICATION_PREVIEW_CHARS = 80
FALLBACK_DISPLAY_NAME = "Utilisateur"


class NotificationType(StrEnum):
    """Notification kinds fanned out to users."""

    MESSAGE = "message"
    FOLLOW = "follow"
    LIKE = "like"
    COMMENT = "comment"


class DeliveryStatus(StrEnum):
    """Client-side delivery state of a message in the transcript."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
