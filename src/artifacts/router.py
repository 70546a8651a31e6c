from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from src.artifacts.models import Chart, CsvTable
from src.artifacts.schemas import ArtifactResponse, ChartResponse, CsvResponse
from src.artifacts.service import ArtifactService
from src.artifacts.utils import csv_to_markdown_table
from src.core.dependencies import get_artifact_service

router = APIRouter(tags=["artifacts"])


def _chart_response(chart: Chart) -> ChartResponse:
    return ChartResponse(
        id=chart.id,
        session_id=chart.session_id,
        chart_data=chart.chart_data,
        created_at=chart.created_at,
    )


def _csv_response(table: CsvTable) -> CsvResponse:
    return CsvResponse(
        id=table.id,
        session_id=table.session_id,
        title=table.title,
        description=table.description,
        headers=table.headers,
        rows=table.rows,
        markdown=csv_to_markdown_table(table.headers, table.rows, table.title, table.description),
        created_at=table.created_at,
    )


@router.get("/charts/{chart_id}", response_model=ChartResponse, response_model_by_alias=True)
async def get_chart(chart_id: UUID, service: ArtifactService = Depends(get_artifact_service)):
    chart = await service.get_chart(chart_id)
    if not chart:
        raise HTTPException(status_code=404, detail="Chart not found")
    return _chart_response(chart)


@router.get("/csvs/{csv_id}", response_model=CsvResponse, response_model_by_alias=True)
async def get_csv(csv_id: UUID, service: ArtifactService = Depends(get_artifact_service)):
    table = await service.get_csv(csv_id)
    if not table:
        raise HTTPException(status_code=404, detail="CSV not found")
    return _csv_response(table)


@router.get("/artifacts/{artifact_id}", response_model=ArtifactResponse, response_model_by_alias=True)
async def resolve_artifact(artifact_id: UUID, service: ArtifactService = Depends(get_artifact_service)):
    chart = await service.get_chart(artifact_id)
    if chart:
        return ArtifactResponse(kind="chart", chart=_chart_response(chart))
    table = await service.get_csv(artifact_id)
    if table:
        return ArtifactResponse(kind="csv", csv=_csv_response(table))
    raise HTTPException(status_code=404, detail="Artifact not found")
