"""Tests for building LLM context from message history."""

from unittest.mock import MagicMock

from simplechat.models.conversation import Attachment, ChatMessage, MessageRole
from simplechat.services.context import build_llm_messages


def make_message(role: str, content: str, attachments=None) -> ChatMessage:
    return ChatMessage(
        conversation_id="c1",
        role=MessageRole(role),
        content=content,
        attachments=[a.model_dump(by_alias=True) for a in attachments or []],
    )


def file(name: str) -> Attachment:
    return Attachment(file_name=name, file_type="text/plain", file_path=f"uploads/{name}", file_size=1)


def test_roles_and_order_preserved():
    extractor = MagicMock()
    messages = [make_message("user", "a"), make_message("assistant", "b"), make_message("user", "c")]

    result = build_llm_messages(messages, extractor)

    assert [(m.role, m.content) for m in result] == [("user", "a"), ("assistant", "b"), ("user", "c")]
    extractor.extract.assert_not_called()


def test_user_attachments_appended_as_blocks():
    extractor = MagicMock()
    extractor.extract.side_effect = ["first body", "second body"]
    messages = [make_message("user", "see files", [file("one.txt"), file("two.txt")])]

    result = build_llm_messages(messages, extractor)

    assert result[0].content == (
        "see files"
        "\n\n[Attached file: one.txt]\nfirst body"
        "\n\n[Attached file: two.txt]\nsecond body"
    )


def test_missing_attachment_contributes_nothing():
    extractor = MagicMock()
    extractor.extract.side_effect = [None, "kept"]
    messages = [make_message("user", "hi", [file("gone.txt"), file("here.txt")])]

    result = build_llm_messages(messages, extractor)

    assert result[0].content == "hi\n\n[Attached file: here.txt]\nkept"


def test_assistant_attachments_are_ignored():
    extractor = MagicMock()
    messages = [make_message("assistant", "reply", [file("x.txt")])]

    result = build_llm_messages(messages, extractor)

    assert result[0].content == "reply"
    extractor.extract.assert_not_called()
