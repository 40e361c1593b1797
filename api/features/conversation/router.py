"""Router for the Conversation feature."""
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from api.di.container import ApplicationContainer as DependencyContainer
from api.features.conversation.controller import ConversationController
from api.features.conversation.dtos import (
    ChatRequest,
    ChatResponse,
    ConversationListResponse,
    TurnsResponse,
)
from api.shared.dtos import HealthCheckResponse
from api.shared.identity import get_current_owner
from api.shared.response import ResponseModel
from core.settings import SETTINGS

router = APIRouter()


@router.get("/health", response_model=ResponseModel[HealthCheckResponse])
async def health_check():
    return ResponseModel.success(
        data=HealthCheckResponse(
            status="healthy",
            dependencies={
                "store": SETTINGS.CHAT.CHAT_STORE_BACKEND,
                "inference": SETTINGS.INFERENCE.backend_name,
            },
        ),
        message="Chatbot service is healthy",
    )


@router.post("/chat", response_model=ResponseModel[ChatResponse])
@inject
async def chat_message(
    request: ChatRequest,
    owner_id: str = Depends(get_current_owner),
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    """Send a message to the chatbot, starting a conversation if needed."""
    return await controller.chat_message(request, owner_id)


@router.get("/conversations", response_model=ResponseModel[ConversationListResponse])
@inject
async def list_conversations(
    limit: int = Query(50, ge=1, le=200),
    owner_id: str = Depends(get_current_owner),
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.list_conversations(owner_id, limit)


@router.get(
    "/conversation/{conversation_id}", response_model=ResponseModel[TurnsResponse]
)
@inject
async def get_conversation(
    conversation_id: str,
    owner_id: str = Depends(get_current_owner),
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    """Fetch the conversation history in chronological order."""
    return await controller.get_conversation(conversation_id, owner_id)


@router.delete("/conversation/{conversation_id}", response_model=ResponseModel[None])
@inject
async def clear_conversation(
    conversation_id: str,
    owner_id: str = Depends(get_current_owner),
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.clear_conversation(conversation_id, owner_id)
