import logging
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker

from src.artifacts.models import ANONYMOUS_OWNER, Chart, CsvTable

logger = logging.getLogger(__name__)


def _as_uuid(value: Union[str, UUID]) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class ArtifactService:
    """Stores charts and tables produced by tools so they can be re-fetched by id."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _owner(user_id: Optional[str]) -> dict:
        if user_id:
            return {"user_id": user_id}
        return {"anonymous_id": ANONYMOUS_OWNER}

    async def create_chart(
        self, chart_data: dict, session_id: Optional[str], user_id: Optional[str]
    ) -> UUID:
        chart = Chart(session_id=session_id, chart_data=chart_data, **self._owner(user_id))
        async with self.session_factory() as db:
            db.add(chart)
            await db.commit()
        logger.info(f"Saved chart {chart.id} ({chart_data.get('chartType')})")
        return chart.id

    async def create_csv(
        self,
        title: str,
        headers: List[str],
        rows: List[List[str]],
        session_id: Optional[str],
        user_id: Optional[str],
        description: Optional[str] = None,
    ) -> UUID:
        table = CsvTable(
            session_id=session_id,
            title=title,
            description=description,
            headers=headers,
            rows=rows,
            **self._owner(user_id),
        )
        async with self.session_factory() as db:
            db.add(table)
            await db.commit()
        logger.info(f"Saved CSV {table.id} ({len(rows)} rows)")
        return table.id

    async def get_chart(self, chart_id: Union[str, UUID]) -> Optional[Chart]:
        key = _as_uuid(chart_id)
        if key is None:
            return None
        async with self.session_factory() as db:
            return await db.get(Chart, key)

    async def get_csv(self, csv_id: Union[str, UUID]) -> Optional[CsvTable]:
        key = _as_uuid(csv_id)
        if key is None:
            return None
        async with self.session_factory() as db:
            return await db.get(CsvTable, key)
