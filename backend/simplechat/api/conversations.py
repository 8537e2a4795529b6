"""REST API for conversation history management."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from simplechat.api.deps import get_chat_service
from simplechat.core.auth import get_current_user_id
from simplechat.models.conversation import ChatMessage, Conversation, MessageRole
from simplechat.services.chat import ChatService, ConversationNotFoundError
from simplechat.services.llm.base import TokenUsage

router = APIRouter()
logger = logging.getLogger(__name__)


class ConversationCreate(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    model: str | None = None


class ConversationUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    model: str | None = None


def conversation_to_dict(c: Conversation) -> dict:
    return {
        "id": c.id,
        "title": c.title,
        "model": c.model,
        "createdAt": c.created_at.isoformat(),
        "updatedAt": c.updated_at.isoformat(),
    }


def message_to_dict(m: ChatMessage) -> dict:
    data = {
        "id": m.id,
        "conversationId": m.conversation_id,
        "role": MessageRole(m.role).value,
        "content": m.content,
        "attachments": m.attachments or [],
        "createdAt": m.created_at.isoformat(),
    }
    if m.model:
        data["model"] = m.model
    if m.total_tokens is not None:
        data["usage"] = TokenUsage(
            prompt_tokens=m.prompt_tokens or 0,
            completion_tokens=m.completion_tokens or 0,
            total_tokens=m.total_tokens,
        ).to_dict()
    return data


@router.get("/")
async def list_conversations(
    user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)
):
    return [conversation_to_dict(c) for c in service.list_conversations(user_id)]


@router.post("/", status_code=201)
async def create_conversation(
    body: ConversationCreate,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    logger.info(f"Creating conversation: title='{body.title or 'New Chat'}', model='{body.model or 'default'}'")
    conv = service.create_conversation(user_id, title=body.title, model=body.model)
    return conversation_to_dict(conv)


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        conv = service.get_conversation(conversation_id, user_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation_to_dict(conv)


@router.patch("/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    body: ConversationUpdate,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        conv = service.update_conversation(conversation_id, user_id, title=body.title, model=body.model)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation_to_dict(conv)


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        service.delete_conversation(conversation_id, user_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return Response(status_code=204)


@router.get("/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        messages = service.list_messages(conversation_id, user_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return [message_to_dict(m) for m in messages]
