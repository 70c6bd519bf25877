"""Print the per-day, per-type query summary to stdout.

Usage:
    QUERYTRACK_EMAIL=me@example.com uv run python -m scripts.run_summary [--status resolved] [--search text]

The password is read from QUERYTRACK_PASSWORD or prompted for.
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys

from querytrack.config import report_timezone
from querytrack.errors import QueryTrackError
from querytrack.gateway import auth, supabase
from querytrack.report.aggregator import build_summary
from querytrack.report.export import summary_table
from querytrack.report.filtering import ALL_STATUSES, filter_queries

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)


def format_table(rows: list[list[str | int]]) -> str:
    """Left-align the label column and right-align the counts."""
    widths = [max(len(str(row[i])) for row in rows) for i in range(len(rows[0]))]
    lines = []
    for row in rows:
        label, *counts = row
        cells = [str(label).ljust(widths[0])]
        cells.extend(str(c).rjust(w) for c, w in zip(counts, widths[1:], strict=True))
        lines.append("  ".join(cells))
    return "\n".join(lines)


async def main(status: str, search: str) -> None:
    """Sign in, fetch the caller's queries and print the summary table."""
    email = os.environ.get("QUERYTRACK_EMAIL") or input("Email: ")
    password = os.environ.get("QUERYTRACK_PASSWORD") or getpass.getpass("Password: ")
    try:
        session = await auth.sign_in(email, password)
        try:
            queries = await supabase.list_queries(session)
        finally:
            await auth.sign_out(session)
    except QueryTrackError as e:
        print(f"Failed to build summary: {e.message}", file=sys.stderr)
        sys.exit(1)

    matrix = build_summary(filter_queries(queries, status, search), report_timezone())
    if not matrix["dates"]:
        print("No queries to summarise.")
        return
    print(format_table(summary_table(matrix)))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--status", default=ALL_STATUSES)
    parser.add_argument("--search", default="")
    args = parser.parse_args()
    asyncio.run(main(args.status, args.search))
