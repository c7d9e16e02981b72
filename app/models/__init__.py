from app.models.api_rate_limit import ApiCallLog, ApiRateLimit
from app.models.conversation import Conversation
from app.models.data_deletion import DataDeletionRequest
from app.models.dead_letter import MessageDeadLetter
from app.models.integration import VoiceflowApiKey, VoiceflowMapping
from app.models.message import Message
from app.models.message_queue import MessageProcessingStatus, QueuedMessage
from app.models.social_connection import SocialConnection

__all__ = [
    "ApiCallLog",
    "ApiRateLimit",
    "Conversation",
    "DataDeletionRequest",
    "Message",
    "MessageDeadLetter",
    "MessageProcessingStatus",
    "QueuedMessage",
    "SocialConnection",
    "VoiceflowApiKey",
    "VoiceflowMapping",
]
