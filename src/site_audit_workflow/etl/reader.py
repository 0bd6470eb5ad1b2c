"""Tabular readers for inventory uploads.

Accepts Excel workbooks (.xlsx/.xlsm, read with openpyxl) and delimited text
(.csv, comma, semicolon or tab). Only the first worksheet is read; the first
non-empty row is the header row.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from site_audit_workflow.exceptions import IngestionError

logger = logging.getLogger(__name__)

XLSX_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0"


@dataclass
class Table:
    """Header row plus data rows keyed by header."""

    headers: list[str]
    rows: list[dict[str, object]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _build_table(raw_rows: list[list[object]]) -> Table:
    rows_iter = iter(raw_rows)
    header_row: list[object] | None = None
    for candidate in rows_iter:
        if any(not _is_blank(v) for v in candidate):
            header_row = candidate
            break
    if header_row is None:
        return Table(headers=[])

    headers: list[str] = []
    for index, value in enumerate(header_row):
        name = "" if _is_blank(value) else str(value).strip()
        if name and name in headers:
            name = f"{name}_{index + 1}"
        headers.append(name)

    rows: list[dict[str, object]] = []
    for raw in rows_iter:
        if all(_is_blank(v) for v in raw):
            continue
        row = {h: raw[i] if i < len(raw) else None for i, h in enumerate(headers) if h}
        rows.append(row)
    return Table(headers=[h for h in headers if h], rows=rows)


def read_xlsx(content: bytes) -> Table:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise IngestionError(f"Unreadable Excel workbook: {exc}") from exc
    try:
        sheet = workbook.worksheets[0]
        raw_rows = [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()
    return _build_table(raw_rows)


def _decode(content: bytes) -> str:
    for encoding in ("utf-8-sig", "cp1252", "latin-1"):
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise IngestionError("Unreadable text file: unknown encoding")


def read_csv(content: bytes) -> Table:
    text = _decode(content)
    if "\x00" in text:
        raise IngestionError("Unreadable text file: binary content")
    sample = text[:4096]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t|")
        delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","
    raw_rows = [list(row) for row in csv.reader(io.StringIO(text), delimiter=delimiter)]
    return _build_table(raw_rows)


def read_table(content: bytes, filename: str | None = None) -> Table:
    """Read an uploaded inventory file.

    Args:
        content: Raw file bytes.
        filename: Optional original filename, used as a format hint.

    Returns:
        The parsed Table.

    Raises:
        IngestionError: If the file is empty, a legacy .xls workbook, or
            cannot be parsed.
    """
    if not content:
        raise IngestionError("Inventory file is empty")

    name = (filename or "").lower()
    if content.startswith(OLE_MAGIC) or name.endswith(".xls"):
        raise IngestionError("Legacy .xls workbooks are not supported; save the file as .xlsx")
    if content.startswith(XLSX_MAGIC) or name.endswith((".xlsx", ".xlsm")):
        table = read_xlsx(content)
    else:
        table = read_csv(content)

    logger.debug("Read %d rows with headers %s", table.row_count, table.headers)
    return table
