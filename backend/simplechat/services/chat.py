"""Conversation management and the send-message pipeline.

send_message() persists the user message and assembles context eagerly, so
precondition failures (missing conversation, duplicate submission, sandbox
violation) raise before any event is produced. It then returns a lazy event
sequence that relays the LLM stream and ends with at most one terminal
DoneEvent or ErrorEvent.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Union

from sqlalchemy import delete, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from simplechat.models.conversation import Attachment, ChatMessage, Conversation, MessageRole
from simplechat.models.user import User
from simplechat.services.context import build_llm_messages
from simplechat.services.extraction import AttachmentExtractor
from simplechat.services.llm.base import BaseLLMProvider, LLMMessage, TokenUsage

logger = logging.getLogger(__name__)


class ConversationNotFoundError(Exception):
    """Conversation does not exist or belongs to another user. The two are not distinguished."""


class DuplicateMessageError(Exception):
    """A message with the same idempotency key was already accepted."""


@dataclass
class ContentEvent:
    content: str


@dataclass
class DoneEvent:
    usage: TokenUsage | None = None


@dataclass
class ErrorEvent:
    message: str


StreamEvent = Union[ContentEvent, DoneEvent, ErrorEvent]


def make_title(content: str, max_length: int) -> str:
    return content[:max_length] + "..." if len(content) > max_length else content


def is_idempotency_conflict(error: IntegrityError) -> bool:
    """True when the violated constraint is the idempotency key, not some other integrity rule."""
    return "idempotency_key" in str(error.orig)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatService:
    def __init__(
        self,
        engine: Engine,
        llm: BaseLLMProvider,
        upload_dir: Path,
        default_model: str,
        title_preview_length: int = 50,
    ):
        self.engine = engine
        self.llm = llm
        self.extractor = AttachmentExtractor(upload_dir)
        self.default_model = default_model
        self.title_preview_length = title_preview_length

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # --- Conversations ---

    def create_conversation(self, user_id: str, title: str | None = None, model: str | None = None) -> Conversation:
        conv = Conversation(user_id=user_id, title=title or "New Chat", model=model or self.default_model)
        with self._session() as session:
            session.add(conv)
            session.commit()
        logger.info(f"Conversation created: {conv.id}")
        return conv

    def list_conversations(self, user_id: str) -> list[Conversation]:
        with self._session() as session:
            conversations = session.exec(
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(Conversation.updated_at.desc())  # type: ignore
            ).all()
        logger.debug(f"Fetched {len(conversations)} conversations")
        return list(conversations)

    def _find_owned(self, session: Session, conversation_id: str, user_id: str) -> Conversation:
        conv = session.exec(
            select(Conversation).where(Conversation.id == conversation_id, Conversation.user_id == user_id)
        ).first()
        if not conv:
            logger.warning(f"Conversation not found: {conversation_id}")
            raise ConversationNotFoundError("Conversation not found")
        return conv

    def get_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        with self._session() as session:
            return self._find_owned(session, conversation_id, user_id)

    def update_conversation(
        self, conversation_id: str, user_id: str, title: str | None = None, model: str | None = None
    ) -> Conversation:
        with self._session() as session:
            conv = self._find_owned(session, conversation_id, user_id)
            if title is not None:
                conv.title = title
            if model is not None:
                conv.model = model
            conv.updated_at = _utcnow()
            session.add(conv)
            session.commit()
        logger.info(f"Conversation updated: {conversation_id}")
        return conv

    def delete_conversation(self, conversation_id: str, user_id: str) -> None:
        with self._session() as session:
            conv = self._find_owned(session, conversation_id, user_id)
            # Messages go first so a partial failure never leaves them without an owner check
            session.exec(delete(ChatMessage).where(ChatMessage.conversation_id == conversation_id))  # type: ignore
            session.commit()
            session.delete(conv)
            session.commit()
        logger.info(f"Conversation deleted: {conversation_id} (with messages)")

    def list_messages(self, conversation_id: str, user_id: str) -> list[ChatMessage]:
        with self._session() as session:
            self._find_owned(session, conversation_id, user_id)
            messages = self._history(session, conversation_id)
        logger.debug(f"Fetched {len(messages)} messages for conversation {conversation_id}")
        return messages

    def get_usage(self, user_id: str) -> TokenUsage | None:
        with self._session() as session:
            user = session.get(User, user_id)
        if not user:
            return None
        return TokenUsage(
            prompt_tokens=user.total_prompt_tokens,
            completion_tokens=user.total_completion_tokens,
            total_tokens=user.total_tokens_used,
        )

    def _history(self, session: Session, conversation_id: str) -> list[ChatMessage]:
        return list(
            session.exec(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .order_by(ChatMessage.created_at)  # type: ignore
            ).all()
        )

    # --- Send message ---

    async def send_message(
        self,
        conversation_id: str,
        user_id: str,
        content: str,
        model: str | None = None,
        attachments: list[Attachment] | None = None,
        cancel: asyncio.Event | None = None,
        idempotency_key: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Persist the user message and return the reply event stream.

        Raises ConversationNotFoundError, DuplicateMessageError or SandboxError
        before streaming starts. The cancel flag is checked once per upstream chunk.
        """
        conversation = self.get_conversation(conversation_id, user_id)
        resolved_model = model or conversation.model
        attachments = attachments or []
        for attachment in attachments:
            # Checked before anything is persisted
            self.extractor.check_access(attachment)

        self._save_user_message(conversation_id, user_id, content, attachments, idempotency_key)
        self._auto_title(conversation_id, user_id, content)

        with self._session() as session:
            history = self._history(session, conversation_id)
        llm_messages = build_llm_messages(history, self.extractor)

        return self._stream_reply(conversation_id, user_id, resolved_model, llm_messages, cancel)

    def _save_user_message(
        self,
        conversation_id: str,
        user_id: str,
        content: str,
        attachments: list[Attachment],
        idempotency_key: str | None,
    ) -> None:
        now = _utcnow()
        with self._session() as session:
            # Same ownership predicate as the initial check, in case the conversation was deleted since
            conv = self._find_owned(session, conversation_id, user_id)
            session.add(
                ChatMessage(
                    conversation_id=conversation_id,
                    role=MessageRole.user,
                    content=content,
                    attachments=[a.model_dump(by_alias=True) for a in attachments],
                    idempotency_key=idempotency_key,
                    created_at=now,
                    updated_at=now,
                )
            )
            conv.updated_at = now
            session.add(conv)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if idempotency_key and is_idempotency_conflict(e):
                    logger.warning(f"Duplicate message rejected (idempotency_key={idempotency_key})")
                    raise DuplicateMessageError("Duplicate message") from e
                raise
        logger.debug(f"User message saved for conversation {conversation_id}")

    def _auto_title(self, conversation_id: str, user_id: str, content: str) -> None:
        with self._session() as session:
            count = session.exec(
                select(func.count()).select_from(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
            ).one()
            if count != 1:
                return
            title = make_title(content, self.title_preview_length)
            session.exec(
                update(Conversation)  # type: ignore
                .where(Conversation.id == conversation_id, Conversation.user_id == user_id)
                .values(title=title, updated_at=_utcnow())
            )
            session.commit()
        logger.debug(f"Auto-titled conversation {conversation_id}: '{title}'")

    async def _stream_reply(
        self,
        conversation_id: str,
        user_id: str,
        model: str,
        llm_messages: list[LLMMessage],
        cancel: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]:
        full_content = ""
        usage: TokenUsage | None = None
        cancelled = False

        try:
            logger.info(
                f"Starting LLM stream: model='{model}', messages={len(llm_messages)}, "
                f"conversation={conversation_id}"
            )
            stream = await self.llm.stream(model, llm_messages)

            async for chunk in stream:
                if cancel is not None and cancel.is_set():
                    logger.info(f"Client disconnected during stream for conversation {conversation_id}")
                    await stream.abort()
                    cancelled = True
                    break

                if chunk.delta:
                    full_content += chunk.delta
                    yield ContentEvent(content=chunk.delta)

                if chunk.usage:
                    usage = chunk.usage

            if full_content:
                self._save_assistant_message(conversation_id, model, full_content, usage)
            if usage:
                self._record_usage(user_id, usage)
                logger.debug(
                    f"Token usage for conversation {conversation_id}: prompt={usage.prompt_tokens}, "
                    f"completion={usage.completion_tokens}, total={usage.total_tokens}"
                )
        except Exception as e:
            logger.error(f"LLM stream failed for conversation {conversation_id}: {e}", exc_info=True)
            yield ErrorEvent(message=str(e) or type(e).__name__)
            return

        logger.info(f"Stream complete for conversation {conversation_id}: {len(full_content)} chars")
        if not cancelled:
            yield DoneEvent(usage=usage)

    def _save_assistant_message(
        self, conversation_id: str, model: str, content: str, usage: TokenUsage | None
    ) -> None:
        now = _utcnow()
        msg = ChatMessage(
            conversation_id=conversation_id,
            role=MessageRole.assistant,
            content=content,
            model=model,
            created_at=now,
            updated_at=now,
        )
        if usage:
            msg.prompt_tokens = usage.prompt_tokens
            msg.completion_tokens = usage.completion_tokens
            msg.total_tokens = usage.total_tokens

        with self._session() as session:
            session.add(msg)
            session.exec(
                update(Conversation).where(Conversation.id == conversation_id).values(updated_at=now)  # type: ignore
            )
            session.commit()

    def _record_usage(self, user_id: str, usage: TokenUsage) -> None:
        # Single UPDATE ... SET x = x + n; never read-modify-write
        with self._session() as session:
            session.exec(
                update(User)  # type: ignore
                .where(User.id == user_id)
                .values(
                    total_prompt_tokens=User.total_prompt_tokens + usage.prompt_tokens,
                    total_completion_tokens=User.total_completion_tokens + usage.completion_tokens,
                    total_tokens_used=User.total_tokens_used + usage.total_tokens,
                )
            )
            session.commit()
