"""Controller for the Conversation feature."""
import logging

from fastapi import HTTPException, status

from api.features.conversation.dtos import (
    ChatRequest,
    ChatResponse,
    ConversationDTO,
    ConversationListResponse,
    NavigationActionDTO,
    TurnDTO,
    TurnsResponse,
)
from api.features.conversation.exceptions import (
    ConcurrencyFaultError,
    ConversationNotFoundError,
    InferenceFailureError,
    InvalidInputError,
)
from api.features.conversation.service import ConversationManager
from api.shared.response import ResponseModel

logger = logging.getLogger("meditrack.conversation.controller")


def _turn_dto(turn) -> TurnDTO:
    return TurnDTO(role=turn.role.value, content=turn.content, timestamp=turn.timestamp)


class ConversationController:
    """Maps conversation operations onto HTTP responses and errors."""

    def __init__(self, manager: ConversationManager):
        self.manager = manager

    async def chat_message(
        self, request: ChatRequest, owner_id: str
    ) -> ResponseModel[ChatResponse]:
        try:
            result = await self.manager.chat_message(
                owner_id, request.conversation_id, request.message
            )
        except InvalidInputError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
        except ConversationNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
        except InferenceFailureError as e:
            logger.error(f"Chat inference failed: {e.reason}")
            code = (
                status.HTTP_504_GATEWAY_TIMEOUT
                if e.reason == InferenceFailureError.TIMEOUT
                else status.HTTP_502_BAD_GATEWAY
            )
            raise HTTPException(
                status_code=code,
                detail=f"The medical model could not answer ({e.reason})",
            )
        except ConcurrencyFaultError as e:
            logger.error(f"Concurrency fault: {e.message}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message
            )

        return ResponseModel.success(
            data=ChatResponse(
                conversation_id=result.conversation_id,
                reply=result.reply.content,
                latency_ms=result.reply.latency_ms,
                navigation_action=(
                    NavigationActionDTO.model_validate(result.reply.navigation_action)
                    if result.reply.navigation_action
                    else None
                ),
            ),
            message="Reply generated",
        )

    async def get_conversation(
        self, conversation_id: str, owner_id: str
    ) -> ResponseModel[TurnsResponse]:
        try:
            conversation_id = self.manager.normalize_conversation_id(conversation_id)
            turns = await self.manager.get_conversation(owner_id, conversation_id)
        except InvalidInputError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
        except ConversationNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

        items = [_turn_dto(t) for t in turns]
        return ResponseModel.success(
            data=TurnsResponse(
                conversation_id=conversation_id, items=items, total=len(items)
            ),
            message="Conversation fetched",
        )

    async def clear_conversation(
        self, conversation_id: str, owner_id: str
    ) -> ResponseModel[None]:
        try:
            await self.manager.clear_conversation(owner_id, conversation_id)
        except InvalidInputError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
        except ConversationNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

        return ResponseModel.success(message="Conversation cleared successfully")

    async def list_conversations(
        self, owner_id: str, limit: int
    ) -> ResponseModel[ConversationListResponse]:
        summaries = await self.manager.list_conversations(owner_id, limit=limit)
        items = [ConversationDTO(**s.model_dump()) for s in summaries]
        return ResponseModel.success(
            data=ConversationListResponse(items=items, total=len(items)),
            message="Conversations listed",
        )
