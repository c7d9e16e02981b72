from app.services.conversation_service import ConversationService
from app.services.dead_letter_service import DeadLetterService
from app.services.integration_service import IntegrationConfigResolver
from app.services.message_service import MessageService
from app.services.rate_limit_service import RateLimitService
from app.services.social_connection_service import SocialConnectionService

__all__ = [
    "ConversationService",
    "DeadLetterService",
    "IntegrationConfigResolver",
    "MessageService",
    "RateLimitService",
    "SocialConnectionService",
]
