"""Derive category sheet headers from the JSON schema stored in the Registry."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

logger = logging.getLogger(__name__)

BASE_COLUMNS: Tuple[str, ...] = (
    "Manufacturer",
    "Model",
    "Year",
    "Category",
    "Key",
    "Status",
    "CreatedAt",
    "Sources",
)


@dataclass
class SchemaColumns:
    columns: List[str]
    base: List[str] = field(default_factory=lambda: list(BASE_COLUMNS))
    required: List[str] = field(default_factory=list)
    properties: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, List[str]]:
        return {
            "columns": list(self.columns),
            "base": list(self.base),
            "required": list(self.required),
            "properties": list(self.properties),
        }


def parse_schema(text: Any) -> Dict[str, Any]:
    """Parse the Registry ``json_schema`` cell, returning ``{}`` when unusable."""

    if isinstance(text, Mapping):
        return dict(text)
    raw = str(text or "").strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Ignoring malformed json_schema: %s", exc)
        return {}
    if not isinstance(parsed, dict):
        return {}
    return parsed


def derive_columns(schema: Any) -> SchemaColumns:
    """Return the ordered, de-duplicated header for ``schema``.

    Base columns come first in fixed order, then the ``required`` names that
    are declared in ``properties``, then the remaining properties in
    declaration order.  Names are compared case-insensitively and a name that
    matches a base column keeps the base column's casing.
    """

    if not isinstance(schema, Mapping):
        schema = {}
    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        properties = {}
    required_raw = schema.get("required")
    required = [str(name) for name in required_raw] if isinstance(required_raw, list) else []
    declared = [str(name) for name in properties.keys()]

    canonical = {name.lower(): name for name in BASE_COLUMNS}
    columns: List[str] = list(BASE_COLUMNS)
    seen = {name.lower() for name in columns}

    def _add(name: str) -> None:
        header = canonical.get(name.lower(), name)
        if header.lower() in seen:
            return
        seen.add(header.lower())
        columns.append(header)

    for name in required:
        if name in properties:
            _add(name)
    for name in declared:
        _add(name)

    return SchemaColumns(columns=columns, base=list(BASE_COLUMNS), required=required, properties=declared)


__all__ = ["BASE_COLUMNS", "SchemaColumns", "derive_columns", "parse_schema"]
