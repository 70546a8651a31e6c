"""Tool input models. Field aliases are the camelCase names the model sees."""

from enum import Enum
from typing import List, Optional, Union

from pydantic import Field

from src.patents.schemas import SectionName
from src.shared.schemas import CamelModel


class PatentSearchInput(CamelModel):
    query: str = Field(
        ...,
        min_length=1,
        description='Natural-language patent search query, e.g. "solid-state battery electrolyte patents".',
    )
    max_results: int = Field(10, ge=1, le=20, description="Number of patents to return (1-20).")


class ReadFullPatentInput(CamelModel):
    patent_index: int = Field(
        ...,
        ge=0,
        le=19,
        description="Index of the patent in the most recent patentSearch results (0 = first).",
    )
    sections: Optional[List[SectionName]] = Field(
        None,
        description='Sections to return. Omit or include "all" for every section.',
    )


class WebSearchInput(CamelModel):
    query: str = Field(..., min_length=1, description="Web search query.")
    max_results: int = Field(5, ge=1, le=20, description="Number of results to return (1-20).")


class CodeExecutionInput(CamelModel):
    code: str = Field(
        ...,
        description="Python code to run. Print every result you want to see; maximum 10,000 characters.",
    )
    description: Optional[str] = Field(None, description="Short description of what the code does.")


class ChartType(str, Enum):
    LINE = "line"
    BAR = "bar"
    AREA = "area"
    SCATTER = "scatter"
    QUADRANT = "quadrant"


class DataPoint(CamelModel):
    x: Union[float, str] = Field(
        ..., description="Date or category label for line/bar/area, numeric value for scatter/quadrant."
    )
    y: float = Field(..., description="Numeric y value. Required for every chart type.")
    size: Optional[float] = Field(None, description="Bubble size for scatter/quadrant charts.")
    label: Optional[str] = Field(None, description="Entity label for scatter/quadrant points.")


class DataSeries(CamelModel):
    name: str = Field(..., description="Series name; for scatter/quadrant the category used for colour.")
    data: List[DataPoint]


class CreateChartInput(CamelModel):
    title: str
    type: ChartType
    x_axis_label: str
    y_axis_label: str
    data_series: List[DataSeries] = Field(..., min_length=1)
    description: Optional[str] = None


class CreateCSVInput(CamelModel):
    title: str = Field(..., description="Title of the table.")
    description: Optional[str] = Field(None, description="Optional description of the data.")
    headers: List[str] = Field(..., min_length=1, description="Column headers.")
    rows: List[List[str]] = Field(..., description="Data rows; each row must have one cell per header.")
