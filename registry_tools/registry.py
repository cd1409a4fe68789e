"""Registry sheet reader.

The Registry worksheet is the routing table of the proxy: one row per
category, naming the spreadsheets and worksheets that receive models,
category details and review rows, plus the JSON schema that shapes the
category sheet.  Column names in the first row are matched
case-insensitively, ignoring punctuation, so ``json_schema``, ``jsonSchema``
and ``JSON Schema`` all resolve to the same field.  The table is re-read on
every call; nothing is cached.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from registry_tools.errors import ConfigurationError
from registry_tools.sheets_client import SheetsClient, Target, a1_range

logger = logging.getLogger(__name__)

DEFAULT_MODELS_SHEET = "Models"
DEFAULT_CATEGORY_SHEET = "Category"
DEFAULT_REVIEW_SHEET = "Review"
REGISTRY_RANGE = "A1:Z"

_FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "key": ("key", "registry_key"),
    "category": ("category", "category_name"),
    "system_prompt": ("system_prompt",),
    "user_prompt": ("user_prompt",),
    "search_queries": ("search_queries",),
    "json_schema": ("json_schema", "schema"),
    "confidence_threshold": ("confidence_threshold",),
    "target_spreadsheet_id_models": ("target_spreadsheet_id_models", "models_spreadsheet_id"),
    "target_spreadsheet_id_category": ("target_spreadsheet_id_category", "category_spreadsheet_id"),
    "target_spreadsheet_id_review": ("target_spreadsheet_id_review", "review_spreadsheet_id"),
    "models_sheet": ("models_sheet",),
    "category_sheet": ("category_sheet",),
    "review_sheet": ("review_sheet",),
}


def _normalize_field_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name or "").lower())


@dataclass
class RegistryRow:
    """One routing entry of the Registry sheet."""

    key: str = ""
    category: str = ""
    system_prompt: str = ""
    user_prompt: str = ""
    search_queries: str = ""
    json_schema: str = ""
    confidence_threshold: str = ""
    target_spreadsheet_id_models: str = ""
    target_spreadsheet_id_category: str = ""
    target_spreadsheet_id_review: str = ""
    models_sheet: str = DEFAULT_MODELS_SHEET
    category_sheet: str = DEFAULT_CATEGORY_SHEET
    review_sheet: str = DEFAULT_REVIEW_SHEET

    @property
    def models_target(self) -> Target:
        return Target(self.target_spreadsheet_id_models, self.models_sheet or DEFAULT_MODELS_SHEET)

    @property
    def category_target(self) -> Target:
        return Target(self.target_spreadsheet_id_category, self.category_sheet or DEFAULT_CATEGORY_SHEET)

    @property
    def review_target(self) -> Target:
        return Target(self.target_spreadsheet_id_review, self.review_sheet or DEFAULT_REVIEW_SHEET)

    @property
    def label(self) -> str:
        return self.category or self.key

    def to_json(self) -> Dict[str, str]:
        return asdict(self)


def _column_index(headers: Sequence[str]) -> Dict[str, int]:
    index: Dict[str, int] = {}
    for position, header in enumerate(headers):
        normalized = _normalize_field_name(header)
        if normalized and normalized not in index:
            index[normalized] = position
    return index


def _resolve_columns(headers: Sequence[str]) -> Dict[str, int]:
    index = _column_index(headers)
    resolved: Dict[str, int] = {}
    for field_name, aliases in _FIELD_ALIASES.items():
        for alias in aliases:
            position = index.get(_normalize_field_name(alias))
            if position is not None:
                resolved[field_name] = position
                break
    return resolved


def rows_from_values(values: Sequence[Sequence[str]]) -> List[RegistryRow]:
    """Convert raw worksheet values (header row first) into registry rows."""

    if not values:
        return []

    headers = [str(cell or "").strip() for cell in values[0]]
    columns = _resolve_columns(headers)
    defaults = {
        "models_sheet": DEFAULT_MODELS_SHEET,
        "category_sheet": DEFAULT_CATEGORY_SHEET,
        "review_sheet": DEFAULT_REVIEW_SHEET,
    }

    rows: List[RegistryRow] = []
    for raw in values[1:]:
        data: Dict[str, str] = {}
        for field_name, position in columns.items():
            cell = raw[position] if position < len(raw) else ""
            data[field_name] = str(cell if cell is not None else "").strip()
        for field_name, default in defaults.items():
            if not data.get(field_name):
                data[field_name] = default
        row = RegistryRow(**data)
        if not row.category and not row.key:
            continue
        rows.append(row)
    return rows


def read_registry(client: SheetsClient, spreadsheet_id: str, sheet_name: str) -> List[RegistryRow]:
    """Fetch and parse the Registry worksheet."""

    if not (spreadsheet_id or "").strip():
        raise ConfigurationError("REGISTRY_SPREADSHEET_ID is not set")

    values = client.read_range(spreadsheet_id, a1_range(sheet_name, REGISTRY_RANGE))
    rows = rows_from_values(values)
    logger.debug("Loaded %d registry rows from %s/%s", len(rows), spreadsheet_id, sheet_name)
    return rows


def find_registry_row(
    rows: Iterable[RegistryRow],
    *,
    category: Optional[str] = None,
    key: Optional[str] = None,
) -> Optional[RegistryRow]:
    """Return the row matching ``category`` (preferred) or ``key``."""

    wanted_category = str(category or "").strip()
    wanted_key = str(key or "").strip()
    if wanted_category:
        for row in rows:
            if row.category.strip() == wanted_category:
                return row
        return None
    if wanted_key:
        for row in rows:
            if row.key.strip() == wanted_key:
                return row
    return None


def unique_categories(rows: Iterable[RegistryRow]) -> List[str]:
    """Return the distinct non-blank categories in registry order."""

    return list(dict.fromkeys(row.category for row in rows if row.category))


def models_targets_by_category(rows: Iterable[RegistryRow]) -> Mapping[str, Target]:
    """Map each category with a models spreadsheet to its models target."""

    targets: Dict[str, Target] = {}
    for row in rows:
        if row.category and row.target_spreadsheet_id_models and row.category not in targets:
            targets[row.category] = row.models_target
    return targets


__all__ = [
    "DEFAULT_CATEGORY_SHEET",
    "DEFAULT_MODELS_SHEET",
    "DEFAULT_REVIEW_SHEET",
    "RegistryRow",
    "find_registry_row",
    "models_targets_by_category",
    "read_registry",
    "rows_from_values",
    "unique_categories",
]
