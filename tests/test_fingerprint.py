"""Tests for conversation fingerprinting."""

import pytest

from chat_cache.entities import Message, to_conversation
from chat_cache.errors import ValidationError
from chat_cache.fingerprint import KEY_LENGTH, canonical_json, fingerprint


def conv(*pairs: tuple[str, str]):
    return tuple(Message(role=role, content=content) for role, content in pairs)


class TestFingerprint:
    def test_same_conversation_same_key(self) -> None:
        first = conv(("user", "What is the capital of Bangladesh?"))
        second = conv(("user", "What is the capital of Bangladesh?"))

        assert fingerprint(first) == fingerprint(second)
        assert len(fingerprint(first)) == KEY_LENGTH

    def test_whitespace_changes_key(self) -> None:
        assert fingerprint(conv(("user", "hello"))) != fingerprint(conv(("user", "hello ")))

    def test_order_changes_key(self) -> None:
        a = conv(("user", "one"), ("assistant", "two"))
        b = conv(("assistant", "two"), ("user", "one"))

        assert fingerprint(a) != fingerprint(b)

    def test_role_changes_key(self) -> None:
        assert fingerprint(conv(("user", "hi"))) != fingerprint(conv(("system", "hi")))

    def test_message_boundaries_matter(self) -> None:
        a = conv(("user", "ab"), ("user", "c"))
        b = conv(("user", "a"), ("user", "bc"))

        assert fingerprint(a) != fingerprint(b)

    def test_dicts_and_messages_agree(self) -> None:
        from_dicts = to_conversation([{"role": "user", "content": "বাংলাদেশ"}])
        from_messages = conv(("user", "বাংলাদেশ"))

        assert fingerprint(from_dicts) == fingerprint(from_messages)

    def test_canonical_json_keeps_unicode(self) -> None:
        assert canonical_json(conv(("user", "ঢাকা"))) == '[{"role":"user","content":"ঢাকা"}]'

    def test_empty_conversation_rejected(self) -> None:
        with pytest.raises(ValidationError):
            fingerprint(())


class TestToConversation:
    def test_rejects_empty(self) -> None:
        with pytest.raises(ValidationError):
            to_conversation([])

    def test_rejects_unknown_role(self) -> None:
        with pytest.raises(ValidationError, match="invalid role"):
            to_conversation([{"role": "bot", "content": "hi"}])

    def test_rejects_non_text_content(self) -> None:
        with pytest.raises(ValidationError, match="content"):
            to_conversation([{"role": "user", "content": 42}])

    def test_rejects_non_mapping(self) -> None:
        with pytest.raises(ValidationError):
            to_conversation(["hello"])
