from messaging_core.models.message import Message, MessageReaction
from messaging_core.models.message_request import MessageRequest
from messaging_core.models.social import FriendRequest, Friendship
from messaging_core.models.user import User

__all__ = [
    "FriendRequest",
    "Friendship",
    "Message",
    "MessageReaction",
    "MessageRequest",
    "User",
]
