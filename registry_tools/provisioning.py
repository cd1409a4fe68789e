"""Provisioning of per-category worksheets from the Registry.

Every operation resolves a Registry row by category (or key), derives the
expected header from the row's JSON schema and then talks to the category
target named by that row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from registry_tools.errors import ConfigurationError, NotFoundError
from registry_tools.registry import RegistryRow, find_registry_row
from registry_tools.schema_columns import SchemaColumns, derive_columns, parse_schema
from registry_tools.sheets_client import SheetsClient, Target, a1_header_range, a1_range

logger = logging.getLogger(__name__)


@dataclass
class CategorySchema:
    row: RegistryRow
    schema: Dict[str, Any]
    columns: SchemaColumns
    target: Target

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"schema": self.schema}
        payload.update(self.columns.to_json())
        payload["target"] = self.target.to_json()
        payload["reviewTarget"] = self.row.review_target.to_json()
        return payload


@dataclass
class ProvisionResult:
    target: Target
    columns: List[str]
    created: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {"target": self.target.to_json(), "columnsCount": len(self.columns)}


@dataclass
class ValidationResult:
    valid: bool
    expected: List[str]
    header: List[str]

    def to_json(self) -> Dict[str, Any]:
        return {"valid": self.valid, "expected": list(self.expected), "header": list(self.header)}


@dataclass
class ProvisionAllResult:
    total: int = 0
    done: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {"total": self.total, "done": self.done, "errors": list(self.errors)}


# ----------------------------------------------------------------------
# Sheet level helpers
# ----------------------------------------------------------------------
def ensure_sheet_exists(client: SheetsClient, target: Target) -> bool:
    """Create ``target``'s worksheet when missing; return ``True`` if created."""

    if target.sheet_name in client.sheet_titles(target.spreadsheet_id):
        return False
    client.add_sheet(target.spreadsheet_id, target.sheet_name)
    logger.info("Created sheet %s", target)
    return True


def write_header(client: SheetsClient, target: Target, header: Sequence[str]) -> None:
    """Overwrite row 1 of ``target`` with ``header``."""

    client.write_range(
        target.spreadsheet_id,
        a1_range(target.sheet_name, "A1"),
        [list(header)],
        value_input_option="USER_ENTERED",
    )


def read_header(client: SheetsClient, target: Target) -> List[str]:
    values = client.read_range(target.spreadsheet_id, a1_header_range(target.sheet_name))
    return list(values[0]) if values else []


def ensure_sheet_and_header(client: SheetsClient, target: Target, header: Sequence[str]) -> None:
    """Make sure ``target`` exists and carries a header, keeping any existing one."""

    ensure_sheet_exists(client, target)
    if any(cell.strip() for cell in read_header(client, target)):
        return
    client.write_range(target.spreadsheet_id, a1_range(target.sheet_name, "A1"), [list(header)])
    logger.info("Wrote default header to %s", target)


# ----------------------------------------------------------------------
# Registry driven operations
# ----------------------------------------------------------------------
def resolve_row(rows: Sequence[RegistryRow], *, category: Optional[str] = None, key: Optional[str] = None) -> RegistryRow:
    row = find_registry_row(rows, category=category, key=key)
    if row is None:
        wanted = category or key or ""
        raise NotFoundError(f"Category {wanted} not found in Registry" if wanted else "Not found")
    return row


def _category_target(row: RegistryRow) -> Target:
    target = row.category_target
    if not target.spreadsheet_id:
        raise ConfigurationError(
            "Missing target_spreadsheet_id_category (empty in Registry row or header name mismatch)"
        )
    return target


def describe_category(
    rows: Sequence[RegistryRow], *, category: Optional[str] = None, key: Optional[str] = None
) -> CategorySchema:
    row = resolve_row(rows, category=category, key=key)
    schema = parse_schema(row.json_schema)
    return CategorySchema(row=row, schema=schema, columns=derive_columns(schema), target=row.category_target)


def _provision_row(client: SheetsClient, row: RegistryRow) -> ProvisionResult:
    target = _category_target(row)
    columns = derive_columns(parse_schema(row.json_schema)).columns
    created = ensure_sheet_exists(client, target)
    write_header(client, target, columns)
    logger.info("Provisioned %s for %s with %d columns", target, row.label, len(columns))
    return ProvisionResult(target=target, columns=columns, created=created)


def provision_category(
    client: SheetsClient,
    rows: Sequence[RegistryRow],
    *,
    category: Optional[str] = None,
    key: Optional[str] = None,
) -> ProvisionResult:
    return _provision_row(client, resolve_row(rows, category=category, key=key))


def validate_category(
    client: SheetsClient,
    rows: Sequence[RegistryRow],
    *,
    category: Optional[str] = None,
    key: Optional[str] = None,
) -> ValidationResult:
    """Compare the live header of the category sheet with the derived one."""

    row = resolve_row(rows, category=category, key=key)
    target = _category_target(row)
    expected = derive_columns(parse_schema(row.json_schema)).columns

    ensure_sheet_exists(client, target)
    header = read_header(client, target)
    valid = len(header) == len(expected) and all(
        str(actual).strip() == str(wanted).strip() for actual, wanted in zip(header, expected)
    )
    return ValidationResult(valid=valid, expected=expected, header=header)


def test_access(
    client: SheetsClient,
    rows: Sequence[RegistryRow],
    *,
    category: Optional[str] = None,
    key: Optional[str] = None,
) -> List[str]:
    """Read the category header to confirm read access and return it."""

    row = resolve_row(rows, category=category, key=key)
    return read_header(client, _category_target(row))


def provision_all(client: SheetsClient, rows: Sequence[RegistryRow]) -> ProvisionAllResult:
    """Provision every row with a category target, collecting per-row failures."""

    candidates = [row for row in rows if row.target_spreadsheet_id_category]
    result = ProvisionAllResult(total=len(candidates))
    for row in candidates:
        try:
            _provision_row(client, row)
        except Exception as exc:
            logger.warning("Provisioning %s failed: %s", row.label, exc)
            result.errors.append({"category": row.category, "error": str(exc)})
        else:
            result.done += 1
    return result


__all__ = [
    "CategorySchema",
    "ProvisionAllResult",
    "ProvisionResult",
    "ValidationResult",
    "describe_category",
    "ensure_sheet_and_header",
    "ensure_sheet_exists",
    "provision_all",
    "provision_category",
    "read_header",
    "resolve_row",
    "test_access",
    "validate_category",
    "write_header",
]
