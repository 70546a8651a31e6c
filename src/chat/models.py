from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from src.database import Base
from src.shared.models import AuditMixin, JSONType, TimestampMixin


class ChatSession(Base, AuditMixin):
    __tablename__ = "chat_sessions"

    user_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False, default="New Chat")
    last_message_at = Column(DateTime, nullable=True)

    messages = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.position",
    )


class ChatMessage(Base, TimestampMixin):
    __tablename__ = "chat_messages"

    id = Column(UUID(as_uuid=True), primary_key=True)
    session_id = Column(
        UUID(as_uuid=True),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    role = Column(String, nullable=False)  # "user" | "assistant"
    content = Column(JSONType, nullable=False)  # ordered list of typed parts
    processing_time_ms = Column(Integer, nullable=True)

    session = relationship("ChatSession", back_populates="messages")
