"""Turns stored message history into the role/content list sent to the LLM."""

from simplechat.models.conversation import ChatMessage, MessageRole
from simplechat.services.extraction import AttachmentExtractor
from simplechat.services.llm.base import LLMMessage


def build_llm_messages(messages: list[ChatMessage], extractor: AttachmentExtractor) -> list[LLMMessage]:
    """Messages must already be in creation order; the whole history is sent every turn."""
    llm_messages: list[LLMMessage] = []

    for msg in messages:
        if msg.role == MessageRole.user:
            content = msg.content
            for attachment in msg.get_attachments():
                file_content = extractor.extract(attachment)
                if file_content:
                    content += f"\n\n[Attached file: {attachment.file_name}]\n{file_content}"
            llm_messages.append(LLMMessage(role="user", content=content))
        else:
            llm_messages.append(LLMMessage(role="assistant", content=msg.content))

    return llm_messages
