import csv
import io
from typing import List, Optional


def artifact_reference(artifact_id, label: str) -> str:
    """Markdown image link the client resolves to a rendered chart or table."""
    return f"![{label}](ref:{artifact_id})"


def render_csv(headers: List[str], rows: List[List[str]]) -> str:
    """RFC 4180 text: cells containing commas, quotes or newlines are quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


def escape_markdown_cell(cell: Optional[str]) -> str:
    if not cell:
        return ""
    return cell.replace("|", "\\|").replace("\n", "<br/>")


def csv_to_markdown_table(
    headers: List[str],
    rows: List[List[str]],
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    lines: List[str] = []
    if title:
        lines.extend([f"**{title}**", ""])
    if description:
        lines.extend([description, ""])
    lines.append("| " + " | ".join(escape_markdown_cell(h) for h in headers) + " |")
    lines.append("| " + " | ".join("---" for _ in headers) + " |")
    for row in rows:
        lines.append("| " + " | ".join(escape_markdown_cell(cell) for cell in row) + " |")
    return "\n".join(lines)


def _range(values: List[float]) -> str:
    return f"{min(values):.1f}-{max(values):.1f}"


def chart_metadata(chart_type: str, data_series: List[dict]) -> dict:
    """Series/point counts plus the covered range.

    Scatter and quadrant charts report numeric x and y ranges; the other types
    report the first and last x label of the first series.
    """
    date_range = None
    if chart_type in ("scatter", "quadrant"):
        xs, ys = [], []
        for series in data_series:
            for point in series["data"]:
                try:
                    xs.append(float(point["x"]))
                except (TypeError, ValueError):
                    continue
                ys.append(float(point.get("y") or 0))
        if xs and ys:
            date_range = {"start": f"X: {_range(xs)}", "end": f"Y: {_range(ys)}"}
    elif data_series and data_series[0]["data"]:
        points = data_series[0]["data"]
        date_range = {"start": points[0]["x"], "end": points[-1]["x"]}

    return {
        "totalSeries": len(data_series),
        "totalDataPoints": sum(len(series["data"]) for series in data_series),
        "dateRange": date_range,
    }
