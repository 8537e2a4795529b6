"""Cumulative token usage for the authenticated user."""

from fastapi import APIRouter, Depends, HTTPException

from simplechat.api.deps import get_chat_service
from simplechat.core.auth import get_current_user_id
from simplechat.services.chat import ChatService

router = APIRouter()


@router.get("/")
async def get_usage(user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    usage = service.get_usage(user_id)
    if usage is None:
        raise HTTPException(status_code=404, detail="User not found")
    return usage.to_dict()
