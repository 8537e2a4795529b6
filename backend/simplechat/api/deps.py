from fastapi import Request

from simplechat.services.chat import ChatService


def get_chat_service(request: Request) -> ChatService:
    """ChatService built once in the app lifespan."""
    return request.app.state.chat_service
