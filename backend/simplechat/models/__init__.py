from simplechat.models.conversation import Attachment, ChatMessage, Conversation, MessageRole
from simplechat.models.user import User

__all__ = ["Attachment", "ChatMessage", "Conversation", "MessageRole", "User"]
