"""Insert-or-update of keyed rows on a worksheet.

``upsert_one``
    Write a single record: overwrite the row whose key column matches the
    record's key, or append a new row when no row matches.

``upsert_many``
    Write a batch of records against one snapshot of the sheet, issuing at
    most one ``batchUpdate`` for the matched rows and one ``append`` for the
    new ones.

Both make sure the header row exists first and lay every row out in the
sheet's header order: record fields missing from the header are dropped and
header columns missing from the record are written as empty strings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from registry_tools.errors import SchemaError
from registry_tools.sheets_client import (
    SheetsClient,
    Target,
    a1_data_range,
    a1_header_range,
    a1_range,
    a1_row_range,
)

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"


@dataclass
class UpsertResult:
    action: str
    row: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"upsert": self.action}
        if self.row is not None:
            payload["row"] = self.row
        return payload


@dataclass
class BatchUpsertResult:
    inserted: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated

    def to_json(self) -> Dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated, "total": self.total}


def ensure_header_row(client: SheetsClient, target: Target, header: Sequence[str]) -> List[str]:
    """Return the sheet header, writing ``header`` first when row 1 is empty."""

    values = client.read_range(target.spreadsheet_id, a1_header_range(target.sheet_name))
    current = [cell.strip() for cell in values[0]] if values else []
    if any(current):
        return current

    client.write_range(target.spreadsheet_id, a1_range(target.sheet_name, "A1"), [list(header)])
    logger.info("Wrote %d header columns to %s", len(header), target)
    return list(header)


def _key_column(header: Sequence[str], key_field: str) -> int:
    try:
        return list(header).index(key_field)
    except ValueError:
        raise SchemaError(f'Header has no "{key_field}" column') from None


def _key_of(record: Mapping[str, Any], key_field: str) -> str:
    value = record.get(key_field)
    return "" if value is None else str(value).strip()


def _fetch_rows(client: SheetsClient, target: Target, header: Sequence[str]) -> List[List[str]]:
    return client.read_range(target.spreadsheet_id, a1_data_range(target.sheet_name, columns=len(header)))


def _index_rows(rows: Sequence[Sequence[str]], key_index: int) -> Dict[str, int]:
    """Map each non-empty key to the sheet row number of its first occurrence."""

    index: Dict[str, int] = {}
    for offset, row in enumerate(rows):
        cell = row[key_index].strip() if key_index < len(row) else ""
        if cell:
            index.setdefault(cell, offset + 2)
    return index


def format_row(header: Sequence[str], record: Mapping[str, Any]) -> List[Any]:
    """Lay ``record`` out in ``header`` order."""

    formatted: List[Any] = []
    for column in header:
        value = record.get(column)
        formatted.append("" if value is None else value)
    return formatted


def upsert_one(
    client: SheetsClient,
    target: Target,
    header: Sequence[str],
    record: Mapping[str, Any],
    *,
    key_field: str = "Key",
) -> UpsertResult:
    """Insert ``record`` or overwrite the row that already holds its key."""

    sheet_header = ensure_header_row(client, target, header)
    key_index = _key_column(sheet_header, key_field)
    key_value = _key_of(record, key_field)

    found: Optional[int] = None
    if key_value:
        for offset, row in enumerate(_fetch_rows(client, target, sheet_header)):
            cell = row[key_index].strip() if key_index < len(row) else ""
            if cell == key_value:
                found = offset + 2
                break

    values = format_row(sheet_header, record)
    if found is not None:
        client.write_range(
            target.spreadsheet_id,
            a1_row_range(target.sheet_name, found, columns=len(sheet_header)),
            [values],
            value_input_option="USER_ENTERED",
        )
        logger.info("Updated row %d (%s=%s) on %s", found, key_field, key_value, target)
        return UpsertResult(UPDATE, found)

    client.append_rows(target.spreadsheet_id, a1_range(target.sheet_name, "A1"), [values])
    logger.info("Appended row (%s=%s) to %s", key_field, key_value, target)
    return UpsertResult(INSERT)


def upsert_many(
    client: SheetsClient,
    target: Target,
    header: Sequence[str],
    records: Sequence[Mapping[str, Any]],
    *,
    key_field: str = "Key",
) -> BatchUpsertResult:
    """Upsert ``records`` against a single snapshot of the sheet.

    Records sharing a key are collapsed before writing and the last one wins.
    Records with a blank key cannot match anything and are always appended.
    """

    result = BatchUpsertResult()
    if not records:
        return result

    sheet_header = ensure_header_row(client, target, header)
    key_index = _key_column(sheet_header, key_field)
    existing = _index_rows(_fetch_rows(client, target, sheet_header), key_index)

    latest: Dict[str, Mapping[str, Any]] = {}
    ordered: List[Tuple[str, Optional[Mapping[str, Any]]]] = []
    for record in records:
        key_value = _key_of(record, key_field)
        if not key_value:
            ordered.append(("", record))
            continue
        if key_value not in latest:
            ordered.append((key_value, None))
        latest[key_value] = record

    updates: List[Tuple[str, List[List[Any]]]] = []
    inserts: List[List[Any]] = []
    for key_value, unkeyed in ordered:
        record = unkeyed if unkeyed is not None else latest[key_value]
        row_number = existing.get(key_value) if key_value else None
        values = format_row(sheet_header, record)
        if row_number is not None:
            updates.append((a1_row_range(target.sheet_name, row_number, columns=len(sheet_header)), [values]))
        else:
            inserts.append(values)

    if updates:
        client.batch_write(target.spreadsheet_id, updates, value_input_option="USER_ENTERED")
    if inserts:
        client.append_rows(target.spreadsheet_id, a1_range(target.sheet_name, "A1"), inserts)

    result.updated = len(updates)
    result.inserted = len(inserts)
    logger.info(
        "Upserted %d records on %s (%d updated, %d inserted)",
        len(records),
        target,
        result.updated,
        result.inserted,
    )
    return result


__all__ = [
    "BatchUpsertResult",
    "INSERT",
    "UPDATE",
    "UpsertResult",
    "ensure_header_row",
    "format_row",
    "upsert_many",
    "upsert_one",
]
