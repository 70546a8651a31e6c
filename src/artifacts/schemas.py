from datetime import datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from src.shared.schemas import CamelModel


class ChartResponse(CamelModel):
    id: UUID
    session_id: Optional[str] = None
    chart_data: dict[str, Any]
    created_at: datetime


class CsvResponse(CamelModel):
    id: UUID
    session_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    headers: List[str]
    rows: List[List[str]]
    markdown: str
    created_at: datetime


class ArtifactResponse(CamelModel):
    """A ``ref:`` id resolved to whichever artifact it names."""
    kind: Literal["chart", "csv"]
    chart: Optional[ChartResponse] = None
    csv: Optional[CsvResponse] = None
