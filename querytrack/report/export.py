"""CSV, spreadsheet and printable HTML renderings of queries and summaries.

All functions are deterministic over their inputs.  The summary renderers
iterate the matrix's ``dates`` and ``types`` exactly as the aggregator sorted
them, and append a Total column and a Total row.
"""

import html
import io
from collections.abc import Iterable
from datetime import date, tzinfo
from enum import StrEnum

from openpyxl import Workbook
from openpyxl.styles import Font

from querytrack.models import Query
from querytrack.report.aggregator import SummaryMatrix, cell, parse_created_date

QUERY_COLUMNS = ["Title", "Description", "Type", "Status", "Priority", "Created"]
TOTAL_LABEL = "Total"

CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HTML_MEDIA_TYPE = "text/html"


class ExportKind(StrEnum):
    QUERIES_CSV = "queries_csv"
    QUERIES_XLSX = "queries_xlsx"
    SUMMARY_XLSX = "summary_xlsx"
    SUMMARY_HTML = "summary_html"


_FILENAME_PATTERNS: dict[ExportKind, str] = {
    ExportKind.QUERIES_CSV: "queries-{day}.csv",
    ExportKind.QUERIES_XLSX: "queries-{day}.xlsx",
    ExportKind.SUMMARY_XLSX: "query-summary-{day}.xlsx",
    ExportKind.SUMMARY_HTML: "query-summary-{day}.html",
}


def export_filename(kind: ExportKind, today: date | None = None) -> str:
    """Download file name with the generation date embedded."""
    day = (today or date.today()).isoformat()
    return _FILENAME_PATTERNS[kind].format(day=day)


# ---------------------------------------------------------------------------
# Flat query export
# ---------------------------------------------------------------------------


def query_rows(queries: Iterable[Query], tz: tzinfo | None = None) -> list[list[str]]:
    """One row of cell strings per query, in ``QUERY_COLUMNS`` order."""
    return [
        [
            q.title,
            q.description or "",
            q.type_name or "",
            q.status.value,
            q.priority.value,
            parse_created_date(q.created_at, tz) or "",
        ]
        for q in queries
    ]


def queries_to_csv(queries: Iterable[Query], tz: tzinfo | None = None) -> str:
    """Render queries as CSV text.

    Every value is wrapped in double quotes.  Embedded quotes are written
    as-is, not doubled.
    """
    lines = [",".join(QUERY_COLUMNS)]
    lines.extend(",".join(f'"{value}"' for value in row) for row in query_rows(queries, tz))
    return "\n".join(lines)


def queries_to_xlsx(queries: Iterable[Query], tz: tzinfo | None = None) -> bytes:
    """Render queries as a single-sheet .xlsx workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Queries"
    ws.append(QUERY_COLUMNS)
    for header_cell in ws[1]:
        header_cell.font = Font(bold=True)
    for row in query_rows(queries, tz):
        ws.append(row)
    return _workbook_bytes(wb)


# ---------------------------------------------------------------------------
# Summary export
# ---------------------------------------------------------------------------


def summary_table(matrix: SummaryMatrix) -> list[list[str | int]]:
    """Header, one row per date, and a trailing Total row.

    Each row ends with its Total column.  This is the single layout shared by
    the spreadsheet and HTML renderers.
    """
    table: list[list[str | int]] = [["Date", *matrix["types"], TOTAL_LABEL]]
    for day in matrix["dates"]:
        table.append([day, *(cell(matrix, day, t) for t in matrix["types"]), matrix["row_totals"][day]])
    table.append(
        [TOTAL_LABEL, *(matrix["column_totals"][t] for t in matrix["types"]), matrix["grand_total"]]
    )
    return table


def summary_to_xlsx(matrix: SummaryMatrix) -> bytes:
    """Render the summary matrix as a one-sheet .xlsx workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Summary"
    for row in summary_table(matrix):
        ws.append(row)
    bold = Font(bold=True)
    for header_cell in ws[1]:
        header_cell.font = bold
    for total_cell in ws[ws.max_row]:
        total_cell.font = bold
    return _workbook_bytes(wb)


_PAGE_STYLE = "font-family: Arial, Helvetica, sans-serif; margin: 24px; color: #111827;"
_TABLE_STYLE = "border-collapse: collapse; width: 100%; font-size: 13px;"
_TH_STYLE = "border: 1px solid #D1D5DB; padding: 6px 10px; background: #F3F4F6; text-align: left;"
_TD_STYLE = "border: 1px solid #D1D5DB; padding: 6px 10px; text-align: right;"
_TOTAL_STYLE = "border: 1px solid #D1D5DB; padding: 6px 10px; text-align: right; font-weight: bold;"


def summary_to_html(matrix: SummaryMatrix, generated_on: date | None = None) -> str:
    """Render the summary as a self-contained, print-ready HTML document.

    Styles are inline and there are no external resources.  The page opens
    the print dialog as soon as it has loaded.
    """
    day = (generated_on or date.today()).isoformat()
    table = summary_table(matrix)
    header, body, totals = table[0], table[1:-1], table[-1]

    lines: list[str] = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        f"<title>Query Summary {day}</title>",
        "</head>",
        f'<body style="{_PAGE_STYLE}">',
        "<h1>Query Summary Report</h1>",
        f"<p>Generated: {day}</p>",
    ]
    if not body:
        lines.append("<p>No queries to summarise.</p>")
    lines.append(f'<table style="{_TABLE_STYLE}">')
    lines.append("<thead><tr>" + "".join(f'<th style="{_TH_STYLE}">{_esc(h)}</th>' for h in header) + "</tr></thead>")
    lines.append("<tbody>")
    for row in body:
        first, *counts, row_total = row
        lines.append(
            "<tr>"
            + f'<th style="{_TH_STYLE}">{_esc(first)}</th>'
            + "".join(f'<td style="{_TD_STYLE}">{_esc(c)}</td>' for c in counts)
            + f'<td style="{_TOTAL_STYLE}">{_esc(row_total)}</td>'
            + "</tr>"
        )
    lines.append(
        "<tr>"
        + f'<th style="{_TH_STYLE}">{_esc(totals[0])}</th>'
        + "".join(f'<td style="{_TOTAL_STYLE}">{_esc(c)}</td>' for c in totals[1:])
        + "</tr>"
    )
    lines.append("</tbody>")
    lines.append("</table>")
    lines.append("<script>window.onload = function () { window.print(); };</script>")
    lines.append("</body>")
    lines.append("</html>")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _esc(value: str | int) -> str:
    return html.escape(str(value))


def _workbook_bytes(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
