"""Bulk import of model lists from CSV or XLSX files.

The importer turns an operator's spreadsheet into ready-to-send model
records: it maps the file's columns onto Manufacturer/Model/Year/Category,
drops rows without a manufacturer or model, removes duplicates by derived key
and flags categories the Registry does not know about.  Nothing is written
here; :func:`registry_tools.intake.bulk_add_models` does the upload.
"""

from __future__ import annotations

import csv
import io
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from registry_tools.records import ModelRecord, derive_key, normalize_model_record, utc_timestamp

FIELD_CANDIDATES: Dict[str, Sequence[str]] = {
    "Manufacturer": ("manufacturer", "brand", "make"),
    "Model": ("model", "modelname", "model_name"),
    "Year": ("year", "yr"),
    "Category": ("category", "cat"),
}
EXCEL_SUFFIXES = {".xlsx", ".xlsm"}

ColumnRef = Union[int, str]


class ImporterError(Exception):
    """Raised when an import file cannot be read."""


@dataclass
class ImportPreview:
    """Outcome of mapping an import file onto model records."""

    records: List[ModelRecord] = field(default_factory=list)
    mapping: Dict[str, int] = field(default_factory=dict)
    total: int = 0
    duplicates: int = 0
    skipped: int = 0
    missing_categories: List[str] = field(default_factory=list)

    @property
    def ready(self) -> int:
        return len(self.records)

    def items(self) -> List[Dict[str, str]]:
        return [record.to_row() for record in self.records]


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def detect_delimiter(sample: str) -> str:
    """Pick tab, comma or semicolon the way the browser bulk form does."""

    if "\t" in sample:
        return "\t"
    return "," if sample.count(",") >= sample.count(";") else ";"


def parse_csv_text(text: str) -> List[List[str]]:
    text = text.lstrip("\ufeff")
    delimiter = detect_delimiter(text)
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    rows: List[List[str]] = []
    for row in reader:
        cells = [cell.strip() for cell in row]
        if any(cells):
            rows.append(cells)
    return rows


def _read_xlsx(path: Path) -> List[List[str]]:
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ImporterError(f"Failed to read XLSX file: {exc}") from exc
    try:
        if not workbook.worksheets:
            return []
        sheet = workbook.worksheets[0]
        rows: List[List[str]] = []
        for values in sheet.iter_rows(values_only=True):
            cells = [_cell_text(value) for value in (values or ())]
            if any(cells):
                rows.append(cells)
        return rows
    finally:
        workbook.close()


def read_table(path: Union[str, Path]) -> List[List[str]]:
    """Return the rows of a CSV/TSV or XLSX file, header row first."""

    file_path = Path(path)
    if file_path.suffix.lower() in EXCEL_SUFFIXES:
        return _read_xlsx(file_path)
    try:
        with open(file_path, "r", encoding="utf-8-sig", newline="") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ImporterError(f"Failed to read CSV file: {exc}") from exc
    try:
        return parse_csv_text(text)
    except csv.Error as exc:
        raise ImporterError(f"Failed to parse CSV file: {exc}") from exc


def _normalize_header(name: str) -> str:
    return re.sub(r"\s+", " ", str(name or "").strip().lower())


def auto_map(headers: Sequence[str]) -> Dict[str, int]:
    """Guess the column index of each model field from ``headers``.

    Exact header matches win over partial ones; unmatched fields map to -1.
    """

    normalized = [_normalize_header(header) for header in headers]
    mapping: Dict[str, int] = {}
    for field_name, candidates in FIELD_CANDIDATES.items():
        index = next((i for i, header in enumerate(normalized) if header in candidates), -1)
        if index < 0:
            index = next(
                (i for i, header in enumerate(normalized) if any(candidate in header for candidate in candidates)),
                -1,
            )
        mapping[field_name] = index
    return mapping


def resolve_mapping(headers: Sequence[str], overrides: Optional[Mapping[str, ColumnRef]] = None) -> Dict[str, int]:
    """Combine :func:`auto_map` with explicit column choices.

    ``overrides`` maps a field name to a column index or a header name.
    """

    mapping = auto_map(headers)
    normalized = [_normalize_header(header) for header in headers]
    for field_name, ref in (overrides or {}).items():
        if field_name not in FIELD_CANDIDATES:
            raise ImporterError(f"Unknown field {field_name!r}; expected one of {', '.join(FIELD_CANDIDATES)}")
        if isinstance(ref, int):
            index = ref
        else:
            wanted = _normalize_header(ref)
            if wanted not in normalized:
                raise ImporterError(f"Column {ref!r} not found in file header")
            index = normalized.index(wanted)
        if index >= len(headers):
            raise ImporterError(f"Column index {index} is out of range")
        mapping[field_name] = index
    return mapping


def build_preview(
    rows: Sequence[Sequence[str]],
    *,
    known_categories: Optional[Iterable[str]] = None,
    overrides: Optional[Mapping[str, ColumnRef]] = None,
    clock: Callable[[], str] = utc_timestamp,
) -> ImportPreview:
    """Map ``rows`` (header first) to de-duplicated model records."""

    if not rows:
        return ImportPreview()

    headers = list(rows[0])
    mapping = resolve_mapping(headers, overrides)
    known = set(known_categories) if known_categories is not None else None
    preview = ImportPreview(mapping=mapping, total=len(rows) - 1)
    seen = set()

    def _value(row: Sequence[str], field_name: str) -> str:
        index = mapping.get(field_name, -1)
        if index < 0 or index >= len(row):
            return ""
        return _cell_text(row[index])

    for row in rows[1:]:
        values = {field_name: _value(row, field_name) for field_name in FIELD_CANDIDATES}
        if not values["Manufacturer"] or not values["Model"]:
            preview.skipped += 1
            continue
        key = derive_key(values["Manufacturer"], values["Model"], values["Year"], values["Category"])
        if key in seen:
            preview.duplicates += 1
            continue
        seen.add(key)

        category = values["Category"]
        if category and known is not None and category not in known and category not in preview.missing_categories:
            preview.missing_categories.append(category)
        preview.records.append(normalize_model_record(dict(values, Key=key), clock=clock))

    return preview


def preview_file(
    path: Union[str, Path],
    *,
    known_categories: Optional[Iterable[str]] = None,
    overrides: Optional[Mapping[str, ColumnRef]] = None,
) -> ImportPreview:
    return build_preview(read_table(path), known_categories=known_categories, overrides=overrides)


__all__ = [
    "FIELD_CANDIDATES",
    "ImportPreview",
    "ImporterError",
    "auto_map",
    "build_preview",
    "detect_delimiter",
    "parse_csv_text",
    "preview_file",
    "read_table",
    "resolve_mapping",
]
