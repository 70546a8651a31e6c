from datetime import datetime
from enum import Enum
from typing import List, Optional

from src.shared.schemas import CamelModel


class SectionName(str, Enum):
    ABSTRACT = "abstract"
    CLAIMS = "claims"
    DESCRIPTION = "description"
    CITATIONS = "citations"
    DRAWINGS = "drawings"
    ALL = "all"


class Assignee(CamelModel):
    name: str
    location: Optional[str] = None


class PatentMetadata(CamelModel):
    patent_number: Optional[str] = None
    publication_date: Optional[str] = None
    application_number: Optional[str] = None
    filing_date: Optional[str] = None
    assignees: Optional[List[Assignee]] = None
    inventors: Optional[List[str]] = None
    claims_count: Optional[int] = None


class PatentSections(CamelModel):
    abstract: Optional[str] = None
    claims: Optional[str] = None
    description: Optional[str] = None
    citations: Optional[str] = None
    drawings: Optional[str] = None


class CachedPatentResponse(CamelModel):
    """Cache read API payload for one patent addressed by index."""
    session_id: str
    patent_index: int
    patent_number: str
    title: Optional[str] = None
    url: Optional[str] = None
    abstract: Optional[str] = None
    metadata: PatentMetadata
    sections: PatentSections
    expires_at: datetime
