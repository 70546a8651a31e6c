from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from src.database import Base
from src.shared.models import AuditMixin, JSONType

# Index value of entries that no longer belong to the latest search batch
INVALID_PATENT_INDEX = -1


class CachedPatent(Base, AuditMixin):
    """Full patent text cached for index-addressed deep reads within a chat session."""
    __tablename__ = "cached_patents"

    session_id = Column(String, nullable=False, index=True)
    patent_number = Column(String, nullable=False)
    patent_index = Column(Integer, nullable=False, default=INVALID_PATENT_INDEX)
    title = Column(String, nullable=True)
    url = Column(String, nullable=True)
    abstract = Column(Text, nullable=True)
    full_content = Column(Text, nullable=False)
    patent_metadata = Column("metadata", JSONType, nullable=True)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "patent_number", name="uq_cached_patents_session_number"),
        Index("ix_cached_patents_session_index", "session_id", "patent_index"),
        Index("ix_cached_patents_expires_at", "expires_at"),
    )
