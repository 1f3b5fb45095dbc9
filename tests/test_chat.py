"""Tests for client/admin chat."""

import pytest

from sessionbook.domain.chat.service import DEFAULT_CLIENT_NAME, ChatService, chat_id_for
from sessionbook.shared.errors import PermissionDeniedError, ValidationError
from tests.conftest import ADMIN_UID

CLIENT = "client-a"


@pytest.fixture
def chat(db):
    return ChatService(db, ADMIN_UID)


class TestChatId:
    def test_order_independent(self):
        assert chat_id_for("b-user", "a-user") == "a-user_b-user"
        assert chat_id_for("a-user", "b-user") == "a-user_b-user"


class TestSendMessage:
    def test_client_message_creates_session(self, chat):
        message = chat.send_message(CLIENT, ADMIN_UID, "Grace", text="Hello there")

        assert message.id is not None
        assert message.chat_id == chat_id_for(CLIENT, ADMIN_UID)

        [session] = chat.list_admin_sessions(ADMIN_UID)
        assert session.client_uid == CLIENT
        assert session.client_name == "Grace"
        assert session.last_message_text == "Hello there"
        assert session.last_message_sender_id == CLIENT

    def test_admin_reply_keeps_client_name(self, chat):
        chat.send_message(CLIENT, ADMIN_UID, "Grace", text="Hello")
        chat.send_message(ADMIN_UID, CLIENT, "Support", text="Hi Grace")

        [session] = chat.list_admin_sessions(ADMIN_UID)
        assert session.client_name == "Grace"
        assert session.last_message_text == "Hi Grace"
        assert session.last_message_sender_id == ADMIN_UID

    def test_admin_first_message_uses_default_name(self, chat):
        chat.send_message(ADMIN_UID, CLIENT, "Support", text="Welcome")
        [session] = chat.list_admin_sessions(ADMIN_UID)
        assert session.client_name == DEFAULT_CLIENT_NAME
        assert session.client_uid == CLIENT

    def test_image_only_summary(self, chat):
        chat.send_message(CLIENT, ADMIN_UID, "Grace", image_url="https://cdn.example.com/a.png")
        [session] = chat.list_admin_sessions(ADMIN_UID)
        assert session.last_message_text == "Image"

    def test_text_with_image_summary(self, chat):
        chat.send_message(CLIENT, ADMIN_UID, "Grace", text="Look", image_url="https://cdn.example.com/a.png")
        [session] = chat.list_admin_sessions(ADMIN_UID)
        assert session.last_message_text == "Look (image)"

    def test_empty_message_rejected(self, chat):
        with pytest.raises(ValidationError):
            chat.send_message(CLIENT, ADMIN_UID, "Grace")

    def test_message_to_self_rejected(self, chat):
        with pytest.raises(ValidationError):
            chat.send_message(ADMIN_UID, ADMIN_UID, "Support", text="note to self")

    def test_conversation_without_admin_rejected(self, chat):
        with pytest.raises(PermissionDeniedError):
            chat.send_message(CLIENT, "client-b", "Grace", text="hi")


class TestListing:
    def test_sessions_most_recent_first(self, chat):
        chat.open_session_from_admin("client-quiet", "Quiet")
        chat.send_message("client-old", ADMIN_UID, "Old", text="first")
        chat.send_message("client-new", ADMIN_UID, "New", text="second")

        assert [s.client_uid for s in chat.list_admin_sessions(ADMIN_UID)] == [
            "client-new",
            "client-old",
            "client-quiet",
        ]

    def test_sessions_are_admin_only(self, chat):
        with pytest.raises(PermissionDeniedError):
            chat.list_admin_sessions(CLIENT)

    def test_messages_oldest_first(self, chat):
        chat.send_message(CLIENT, ADMIN_UID, "Grace", text="one")
        chat.send_message(ADMIN_UID, CLIENT, "Support", text="two")
        chat.send_message(CLIENT, ADMIN_UID, "Grace", text="three")

        chat_id = chat_id_for(CLIENT, ADMIN_UID)
        assert [m.text for m in chat.list_messages(chat_id, CLIENT)] == ["one", "two", "three"]
        assert len(chat.list_messages(chat_id, ADMIN_UID)) == 3

    def test_outsiders_cannot_read(self, chat):
        chat.send_message(CLIENT, ADMIN_UID, "Grace", text="private")
        with pytest.raises(PermissionDeniedError):
            chat.list_messages(chat_id_for(CLIENT, ADMIN_UID), "client-b")

    def test_uids_with_underscores(self, chat):
        client = "user_anon_1700000000000"
        chat.send_message(client, ADMIN_UID, "Grace", text="hello")
        chat_id = chat_id_for(client, ADMIN_UID)

        assert [m.text for m in chat.list_messages(chat_id, client)] == ["hello"]
        with pytest.raises(PermissionDeniedError):
            chat.list_messages(chat_id, "anon")


class TestOpenSession:
    def test_creates_empty_session(self, chat):
        session = chat.open_session_from_admin(CLIENT, "Grace")
        assert session.id == chat_id_for(CLIENT, ADMIN_UID)
        assert session.client_name == "Grace"
        assert session.last_message_at is None

    def test_existing_session_is_returned_unchanged(self, chat):
        chat.send_message(CLIENT, ADMIN_UID, "Grace", text="Hello")
        session = chat.open_session_from_admin(CLIENT, "Someone Else")
        assert session.client_name == "Grace"
        assert session.last_message_text == "Hello"

    def test_cannot_open_with_self(self, chat):
        with pytest.raises(ValidationError):
            chat.open_session_from_admin(ADMIN_UID, "Me")
