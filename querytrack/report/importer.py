"""Spreadsheet import: loose sheet rows resolved once into ``QueryCreate``.

The first row of the first sheet is the header.  Recognised columns are
Title, Description, Type, Status and Priority, matched case-insensitively;
anything else is ignored.  After ``resolve_row`` nothing downstream sees the
loose ``{header: value}`` mapping again.
"""

import io
import logging
from collections.abc import Iterable, Mapping
from enum import StrEnum
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import BaseModel, ValidationError

from querytrack.errors import ValidationFailure
from querytrack.models import QueryCreate, QueryPriority, QueryStatus, QueryType

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"

LooseRow = Mapping[str, object]


class ImportColumn(StrEnum):
    TITLE = "title"
    DESCRIPTION = "description"
    TYPE = "type"
    STATUS = "status"
    PRIORITY = "priority"


class ImportRow(BaseModel):
    """One spreadsheet row restricted to the recognised columns.

    Absent and blank cells are both None.
    """

    title: str | None = None
    description: str | None = None
    type: str | None = None
    status: str | None = None
    priority: str | None = None


# ---------------------------------------------------------------------------
# Workbook reading
# ---------------------------------------------------------------------------


def read_workbook(data: bytes) -> list[dict[str, object]]:
    """Read the first sheet of an .xlsx file into header-keyed rows.

    Fully blank rows are skipped.

    Raises:
        ValidationFailure: If the file is not a readable workbook or holds no data rows.
    """
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError) as exc:
        raise ValidationFailure("File is not a readable .xlsx workbook") from exc

    try:
        ws = wb.worksheets[0]
        sheet_rows = ws.iter_rows(values_only=True)
        header = next(sheet_rows, None)
        rows: list[dict[str, object]] = []
        if header is not None:
            keys = [str(h).strip() if h is not None else "" for h in header]
            for values in sheet_rows:
                if all(v is None or str(v).strip() == "" for v in values):
                    continue
                rows.append({k: v for k, v in zip(keys, values, strict=False) if k})
    finally:
        wb.close()

    if not rows:
        raise ValidationFailure("No data found in file")
    logger.info("Read %d rows from uploaded workbook", len(rows))
    return rows


# ---------------------------------------------------------------------------
# Row resolution
# ---------------------------------------------------------------------------


def _cell_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resolve_row(row: LooseRow) -> ImportRow:
    """Pick the recognised columns out of a loose row, ignoring header case."""
    fields: dict[str, str | None] = {}
    for key, value in row.items():
        try:
            column = ImportColumn(str(key).strip().lower())
        except ValueError:
            continue
        text = _cell_text(value)
        # First non-blank wins when a sheet repeats a column in two spellings
        if fields.get(column.value) is None:
            fields[column.value] = text
    return ImportRow(**fields)


def to_query_create(row: ImportRow, type_ids: Mapping[str, str]) -> QueryCreate:
    """Build the create payload for one row.

    Args:
        row: A resolved import row.
        type_ids: Lower-cased type name to type id for the user's types.

    Raises:
        ValidationFailure: If status or priority is not a known value.
    """
    status = (row.status or QueryStatus.PENDING.value).lower()
    priority = (row.priority or QueryPriority.MEDIUM.value).lower()
    try:
        return QueryCreate(
            title=row.title or DEFAULT_TITLE,
            description=row.description,
            status=QueryStatus(status),
            priority=QueryPriority(priority),
            query_type_id=type_ids.get(row.type.lower()) if row.type else None,
        )
    except (ValueError, ValidationError) as exc:
        raise ValidationFailure(f"Invalid status or priority: {status!r} / {priority!r}") from exc


def parse_import_rows(rows: Iterable[LooseRow], types: Iterable[QueryType]) -> list[QueryCreate]:
    """Resolve every loose row into a ``QueryCreate``; any bad row fails the whole import."""
    type_ids = {t.name.lower(): t.id for t in types}
    payloads: list[QueryCreate] = []
    for index, raw in enumerate(rows, start=2):
        try:
            payloads.append(to_query_create(resolve_row(raw), type_ids))
        except ValidationFailure as exc:
            raise ValidationFailure(f"Row {index}: {exc.message}") from exc
    if not payloads:
        raise ValidationFailure("No data found in file")
    return payloads
