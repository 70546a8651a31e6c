"""Durable storage of chat messages.

Messages are written at two points of a turn: the user message as soon as it
arrives, and the whole conversation again when the turn ends (replace-all).
Persistence is best-effort: failures are logged and reported as ``False``,
never raised into the streaming response.
"""

import logging
import re
from typing import List, Optional, Protocol
from uuid import UUID, uuid4, uuid5

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.chat.models import ChatMessage, ChatSession
from src.chat.schemas import Message
from src.core.errors import PersistenceError
from src.shared.models import utcnow

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

SESSION_TITLE_CHARS = 80


class MessageRepository(Protocol):
    async def get_messages(self, session_id: str) -> List[Message]:
        ...

    async def replace_messages(self, session_id: str, messages: List[Message]) -> None:
        ...

    async def touch_session(
        self, session_id: str, user_id: Optional[str] = None, title: Optional[str] = None
    ) -> None:
        ...


class SqlMessageRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        async with self.session_factory() as db:
            return await db.get(ChatSession, UUID(session_id))

    async def get_messages(self, session_id: str) -> List[Message]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == UUID(session_id))
                .order_by(ChatMessage.position)
            )
            rows = result.scalars().all()
        return [
            Message(
                id=str(row.id),
                role=row.role,
                content=row.content or [],
                processing_time_ms=row.processing_time_ms,
            )
            for row in rows
        ]

    async def replace_messages(self, session_id: str, messages: List[Message]) -> None:
        key = UUID(session_id)
        async with self.session_factory() as db:
            await db.execute(delete(ChatMessage).where(ChatMessage.session_id == key))
            for position, message in enumerate(messages):
                payload = message.to_payload()
                db.add(ChatMessage(
                    id=UUID(message.id),
                    session_id=key,
                    position=position,
                    role=message.role,
                    content=payload.get("content", []),
                    processing_time_ms=message.processing_time_ms,
                ))
            await db.commit()

    async def touch_session(
        self, session_id: str, user_id: Optional[str] = None, title: Optional[str] = None
    ) -> None:
        """Create the session for ``user_id`` or bump its activity time.

        Raises PersistenceError when the session belongs to another user.
        """
        now = utcnow()
        async with self.session_factory() as db:
            session = await db.get(ChatSession, UUID(session_id))
            if session is None:
                session = ChatSession(
                    id=UUID(session_id),
                    user_id=user_id,
                    title=title or "New Chat",
                )
                db.add(session)
            elif not owned_by(session, user_id):
                raise PersistenceError(f"Session {session_id} belongs to another user")
            session.last_message_at = now
            await db.commit()

    async def delete_session(self, session_id: str) -> bool:
        async with self.session_factory() as db:
            session = await db.get(ChatSession, UUID(session_id))
            if session is None:
                return False
            await db.execute(delete(ChatMessage).where(ChatMessage.session_id == session.id))
            await db.delete(session)
            await db.commit()
        return True


def owned_by(session: ChatSession, user_id: Optional[str]) -> bool:
    """Whether ``user_id`` may read or write ``session``. Sessions without an owner are open."""
    return not session.user_id or session.user_id == user_id


def normalize_message(message: Message, session_id: Optional[str] = None) -> Message:
    """Copy of ``message`` whose id is a well-formed UUID, regenerated if needed.

    Within a session the replacement is derived from the client id, so a
    resent message keeps the id it was first stored under.
    """
    if UUID_RE.match(message.id or ""):
        return message
    if message.id and session_id:
        new_id = uuid5(UUID(session_id), message.id)
    else:
        new_id = uuid4()
    return message.model_copy(update={"id": str(new_id)})


def _title_from(message: Message) -> Optional[str]:
    text = " ".join(message.text.split())
    return text[:SESSION_TITLE_CHARS] or None


class MessagePersistence:
    def __init__(self, repository: MessageRepository):
        self.repository = repository

    async def persist_user_message(
        self, session_id: str, message: Message, user_id: Optional[str] = None
    ) -> bool:
        """Append the incoming user message and bump the session's activity time."""
        try:
            await self.repository.touch_session(session_id, user_id, title=_title_from(message))
            message = normalize_message(message, session_id)
            existing = await self.repository.get_messages(session_id)
            if any(m.id == message.id for m in existing):
                return True
            await self.repository.replace_messages(session_id, existing + [message])
            return True
        except Exception as e:
            error = PersistenceError(f"Failed to save user message for session {session_id}: {e}")
            logger.error(error.message, exc_info=True)
            return False

    async def persist_turn_result(
        self,
        session_id: str,
        messages: List[Message],
        processing_time_ms: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> bool:
        """Rewrite the whole conversation from the in-memory turn state."""
        try:
            normalized = [normalize_message(m, session_id) for m in messages]
            if normalized and normalized[-1].role == "assistant" and processing_time_ms is not None:
                normalized[-1] = normalized[-1].model_copy(
                    update={"processing_time_ms": processing_time_ms}
                )
            await self.repository.touch_session(session_id, user_id)
            await self.repository.replace_messages(session_id, normalized)
            return True
        except Exception as e:
            error = PersistenceError(f"Failed to save turn for session {session_id}: {e}")
            logger.error(error.message, exc_info=True)
            return False
