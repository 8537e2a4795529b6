"""Send-message endpoint: relays the reply stream as Server-Sent Events."""

import asyncio
import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator

from simplechat.api.deps import get_chat_service
from simplechat.core.auth import get_current_user_id
from simplechat.core.config import settings
from simplechat.core.rate_limit import RateLimitExceeded
from simplechat.core.sandbox import SandboxError
from simplechat.models.conversation import Attachment
from simplechat.services.chat import (
    ChatService,
    ContentEvent,
    ConversationNotFoundError,
    DoneEvent,
    DuplicateMessageError,
    ErrorEvent,
    StreamEvent,
)

router = APIRouter()
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# How often an idle stream checks whether the client went away
DISCONNECT_POLL_SECONDS = 1.0

# Producer tasks outlive the response when the client disconnects; keep references until they finish
_relay_tasks: set[asyncio.Task] = set()


class SendMessage(BaseModel):
    content: str = Field(..., min_length=1, max_length=settings.max_message_length)
    model: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v


def sse_frame(payload: dict | str) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


def event_frames(event: StreamEvent) -> list[str]:
    if isinstance(event, ContentEvent):
        return [sse_frame({"content": event.content})]
    if isinstance(event, DoneEvent):
        frames = [sse_frame({"usage": event.usage.to_dict()})] if event.usage else []
        return frames + [sse_frame("[DONE]")]
    if isinstance(event, ErrorEvent):
        return [sse_frame({"error": event.message})]
    raise TypeError(f"Unknown stream event: {event!r}")


async def enforce_send_rate_limit(request: Request, user_id: str = Depends(get_current_user_id)) -> None:
    try:
        request.app.state.send_rate_limiter.hit(user_id)
    except RateLimitExceeded as e:
        logger.warning(f"Send rate limit hit for user {user_id}")
        raise HTTPException(
            status_code=429,
            detail="Too many messages. Please try again later.",
            headers={"Retry-After": str(e.retry_after_seconds)},
        ) from e


def parse_idempotency_key(raw: str | None, max_length: int) -> str | None:
    """Oversized keys are ignored, not rejected."""
    if raw and len(raw) <= max_length:
        return raw
    return None


async def _relay(events: AsyncIterator[StreamEvent], queue: asyncio.Queue) -> None:
    try:
        async for event in events:
            for frame in event_frames(event):
                queue.put_nowait(frame)
    except Exception as e:
        logger.error(f"SSE relay failed: {e}", exc_info=True)
        queue.put_nowait(sse_frame({"error": str(e) or "Unknown error"}))
    finally:
        queue.put_nowait(None)


async def stream_frames(
    request: Request,
    events: AsyncIterator[StreamEvent],
    cancel: asyncio.Event,
    timeout: float,
    conversation_id: str = "",
) -> AsyncIterator[str]:
    """Yield SSE frames until the event sequence ends, the client leaves, or the timeout hits.

    The event sequence runs in its own task, so a disconnect only sets the
    cancel flag and the pipeline still persists whatever it received.
    """
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    task = asyncio.create_task(_relay(events, queue))
    _relay_tasks.add(task)
    task.add_done_callback(_relay_tasks.discard)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(f"Stream timeout for conversation {conversation_id}")
                cancel.set()
                yield sse_frame({"error": "Stream timeout"})
                return
            try:
                frame = await asyncio.wait_for(queue.get(), timeout=min(remaining, DISCONNECT_POLL_SECONDS))
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    logger.info(f"Client disconnected from conversation {conversation_id}")
                    cancel.set()
                    return
                continue
            if frame is None:
                return
            yield frame
    finally:
        # No-op if the relay already finished; otherwise stops the upstream at its next chunk
        cancel.set()


@router.post("/{conversation_id}/messages", dependencies=[Depends(enforce_send_rate_limit)])
async def send_message(
    conversation_id: str,
    body: SendMessage,
    request: Request,
    idempotency_key: str | None = Header(default=None),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    key = parse_idempotency_key(idempotency_key, settings.idempotency_key_max_length)
    logger.info(
        f"Starting SSE stream for conversation {conversation_id}, model='{body.model or 'default'}', "
        f"attachments={len(body.attachments)}"
    )

    cancel = asyncio.Event()
    try:
        events = await service.send_message(
            conversation_id,
            user_id,
            body.content,
            model=body.model,
            attachments=body.attachments,
            cancel=cancel,
            idempotency_key=key,
        )
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except DuplicateMessageError:
        raise HTTPException(status_code=409, detail="Duplicate message")
    except SandboxError:
        raise HTTPException(status_code=403, detail="Access denied: file path outside uploads directory")

    return StreamingResponse(
        stream_frames(request, events, cancel, settings.stream_timeout_seconds, conversation_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
