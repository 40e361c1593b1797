from api.features.conversation.entities.conversation import (
    Conversation,
    ConversationTurn,
)

__all__ = ["Conversation", "ConversationTurn"]
