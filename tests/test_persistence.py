from uuid import uuid4

import pytest

from src.chat.persistence import MessagePersistence, normalize_message
from src.chat.schemas import Message, TextPart, ToolCallPart, ToolResultPart


def user(text: str, **kwargs) -> Message:
    return Message(role="user", content=[TextPart(text=text)], **kwargs)


def assistant(text: str, **kwargs) -> Message:
    return Message(role="assistant", content=[TextPart(text=text)], **kwargs)


class BrokenRepository:
    async def get_messages(self, session_id):
        raise ConnectionError("database unavailable")

    async def replace_messages(self, session_id, messages):
        raise ConnectionError("database unavailable")

    async def touch_session(self, session_id, user_id=None, title=None):
        raise ConnectionError("database unavailable")


def test_normalize_keeps_valid_ids():
    message = user("hi")
    assert normalize_message(message) is message


def test_normalize_regenerates_client_ids():
    message = user("hi", id="msg-1")
    normalized = normalize_message(message)
    assert normalized.id != "msg-1"
    assert normalized.text == "hi"
    assert message.id == "msg-1"


def test_client_ids_map_to_stable_ids_per_session():
    message = user("hi", id="msg-1")
    first, second = str(uuid4()), str(uuid4())
    assert normalize_message(message, first).id == normalize_message(message, first).id
    assert normalize_message(message, first).id != normalize_message(message, second).id


def test_parts_alias_is_accepted():
    message = Message.model_validate({"role": "user", "parts": [{"type": "text", "text": "hello"}]})
    assert message.text == "hello"


@pytest.mark.asyncio
async def test_user_message_is_appended_once(message_persistence, message_repository):
    session_id = str(uuid4())
    message = user("Find battery patents")

    assert await message_persistence.persist_user_message(session_id, message, "user-1")
    assert await message_persistence.persist_user_message(session_id, message, "user-1")

    stored = await message_repository.get_messages(session_id)
    assert [m.id for m in stored] == [message.id]
    session = await message_repository.get_session(session_id)
    assert session.title == "Find battery patents"
    assert session.last_message_at is not None


@pytest.mark.asyncio
async def test_turn_result_replaces_conversation(message_persistence, message_repository):
    session_id = str(uuid4())
    first = user("Find battery patents")
    await message_persistence.persist_user_message(session_id, first, "user-1")

    reply = Message(role="assistant", id="client-generated", content=[
        ToolCallPart(tool_call_id="call_1", tool_name="patentSearch", input={"query": "battery"}),
        ToolResultPart(tool_call_id="call_1", tool_name="patentSearch", output={"resultCount": 0}),
        TextPart(text="No results."),
    ])
    saved = await message_persistence.persist_turn_result(
        session_id, [first, reply], processing_time_ms=1234, user_id="user-1"
    )
    assert saved

    stored = await message_repository.get_messages(session_id)
    assert [m.role for m in stored] == ["user", "assistant"]
    assert stored[0].id == first.id
    assert stored[1].id != "client-generated"
    assert stored[1].content[1].output == {"resultCount": 0}
    assert stored[0].processing_time_ms is None
    assert stored[1].processing_time_ms == 1234


@pytest.mark.asyncio
async def test_processing_time_only_on_trailing_assistant(message_persistence, message_repository):
    session_id = str(uuid4())
    earlier = assistant("Earlier answer.", processing_time_ms=50)
    messages = [user("one"), earlier, user("two")]
    await message_persistence.persist_turn_result(session_id, messages, processing_time_ms=999)

    stored = await message_repository.get_messages(session_id)
    assert [m.processing_time_ms for m in stored] == [None, 50, None]


@pytest.mark.asyncio
async def test_failures_are_reported_not_raised():
    persistence = MessagePersistence(BrokenRepository())
    session_id = str(uuid4())
    assert await persistence.persist_user_message(session_id, user("hi")) is False
    assert await persistence.persist_turn_result(session_id, [user("hi")]) is False


@pytest.mark.asyncio
async def test_invalid_session_id_is_a_failure(message_persistence):
    assert await message_persistence.persist_user_message("not-a-uuid", user("hi"), "user-1") is False


@pytest.mark.asyncio
async def test_delete_session_removes_messages(message_persistence, message_repository):
    session_id = str(uuid4())
    await message_persistence.persist_user_message(session_id, user("hi"), "user-1")

    assert await message_repository.delete_session(session_id) is True
    assert await message_repository.get_session(session_id) is None
    assert await message_repository.get_messages(session_id) == []
    assert await message_repository.delete_session(session_id) is False


@pytest.mark.asyncio
async def test_resent_client_id_is_stored_once(message_persistence, message_repository):
    session_id = str(uuid4())

    assert await message_persistence.persist_user_message(session_id, user("hi", id="msg-1"), "user-1")
    assert await message_persistence.persist_user_message(session_id, user("hi", id="msg-1"), "user-1")

    stored = await message_repository.get_messages(session_id)
    assert [m.text for m in stored] == ["hi"]


@pytest.mark.asyncio
async def test_other_users_cannot_write_to_session(message_persistence, message_repository):
    session_id = str(uuid4())
    await message_persistence.persist_user_message(session_id, user("Find battery patents"), "owner")

    assert not await message_persistence.persist_user_message(session_id, user("injected"), "intruder")
    assert not await message_persistence.persist_turn_result(
        session_id, [user("replaced"), assistant("gone")], user_id="intruder"
    )

    stored = await message_repository.get_messages(session_id)
    assert [m.text for m in stored] == ["Find battery patents"]
    session = await message_repository.get_session(session_id)
    assert session.user_id == "owner"
