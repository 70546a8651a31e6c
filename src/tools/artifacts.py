import logging

from src.artifacts.utils import artifact_reference, chart_metadata, render_csv
from src.core.errors import ErrorKind
from src.tools.registry import Tool, ToolContext, error_payload
from src.tools.schemas import CreateChartInput, CreateCSVInput

logger = logging.getLogger(__name__)

CREATE_CHART_DESCRIPTION = """Create an interactive chart for patent analytics.

Types: "line" (filing trends over time), "bar" (categorical comparisons), "area" (cumulative growth),
"scatter" (positioning maps; each series is a category, each point has x, y and optional size/label),
"quadrant" (2x2 matrices, same data shape as scatter).
After creating a chart, embed it in your answer with the exact reference returned, e.g. ![Chart title](ref:<chartId>)."""

CREATE_CSV_DESCRIPTION = """Create a table (CSV) for patent lists, portfolio comparisons and landscape data.

Every row must have exactly one cell per header. After creating it, embed the table in your answer
with the exact reference returned, e.g. ![Table title](ref:<csvId>). Do not use link syntax."""


async def create_chart(args: CreateChartInput, ctx: ToolContext) -> dict:
    series = [s.model_dump(mode="json", by_alias=True, exclude_none=True) for s in args.data_series]
    chart_data = {
        "chartType": args.type.value,
        "title": args.title,
        "xAxisLabel": args.x_axis_label,
        "yAxisLabel": args.y_axis_label,
        "dataSeries": series,
        "description": args.description,
        "metadata": chart_metadata(args.type.value, series),
    }

    chart_id = None
    if ctx.artifacts is not None:
        try:
            chart_id = await ctx.artifacts.create_chart(chart_data, ctx.session_id, ctx.user_id)
        except Exception as e:
            logger.error(f"Error saving chart {args.title!r}: {e}", exc_info=True)

    result = dict(chart_data)
    if chart_id is not None:
        result["chartId"] = str(chart_id)
        result["reference"] = artifact_reference(chart_id, args.title)
    return result


async def create_csv(args: CreateCSVInput, ctx: ToolContext) -> dict:
    expected = len(args.headers)
    invalid = [row for row in args.rows if len(row) != expected]
    if invalid:
        return error_payload(
            ErrorKind.VALIDATION_ERROR,
            f"All rows must have {expected} columns to match the headers. Found {len(invalid)} "
            "invalid row(s). Regenerate the table with matching column counts.",
            title=args.title,
            headers=args.headers,
            expectedColumns=expected,
            invalidRowCount=len(invalid),
        )

    csv_id = None
    if ctx.artifacts is not None:
        try:
            csv_id = await ctx.artifacts.create_csv(
                args.title,
                args.headers,
                args.rows,
                ctx.session_id,
                ctx.user_id,
                description=args.description,
            )
        except Exception as e:
            logger.error(f"Error saving CSV {args.title!r}: {e}", exc_info=True)

    result = {
        "title": args.title,
        "description": args.description,
        "headers": args.headers,
        "rows": args.rows,
        "csvContent": render_csv(args.headers, args.rows),
        "rowCount": len(args.rows),
        "columnCount": expected,
    }
    if csv_id is not None:
        reference = artifact_reference(csv_id, args.title)
        result["csvId"] = str(csv_id)
        result["reference"] = reference
        result["instructions"] = (
            f"Include this exact line in your markdown answer to display the table:\n\n{reference}"
        )
    return result


CREATE_CHART_TOOL = Tool(
    name="createChart",
    description=CREATE_CHART_DESCRIPTION,
    args_schema=CreateChartInput,
    execute=create_chart,
    side_effects=("charts:write",),
)

CREATE_CSV_TOOL = Tool(
    name="createCSV",
    description=CREATE_CSV_DESCRIPTION,
    args_schema=CreateCSVInput,
    execute=create_csv,
    side_effects=("csv_tables:write",),
)
