from messaging_core.client.aggregator import aggregate_conversations, sort_partners
from messaging_core.client.channel import RealtimeChannel
from messaging_core.client.errors import APIRequestError, MessagingError, TransportError
from messaging_core.client.identity import as_id, same_id
from messaging_core.client.message_store import MessageStore
from messaging_core.client.models import ChatMessage, ConversationPartner, Reaction, UserProfile
from messaging_core.client.requests_gate import MessageRequestGate
from messaging_core.client.rest import MessagingAPIClient
from messaging_core.client.session import MessagingSession
from messaging_core.client.unread import UnreadTracker

__all__ = [
    "APIRequestError",
    "ChatMessage",
    "ConversationPartner",
    "MessageRequestGate",
    "MessageStore",
    "MessagingAPIClient",
    "MessagingError",
    "MessagingSession",
    "RealtimeChannel",
    "Reaction",
    "TransportError",
    "UnreadTracker",
    "UserProfile",
    "aggregate_conversations",
    "as_id",
    "same_id",
    "sort_partners",
]
