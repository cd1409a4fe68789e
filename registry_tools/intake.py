"""Business logic for adding model records to the Models sheets.

Records are routed through the Registry: the ``Category`` of each record
selects the Registry row whose models spreadsheet receives it.  Every
successful write is followed by a webhook notification for the environment
(``dev`` or ``prod``) the caller asked for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from registry_tools.context import AppContext
from registry_tools.errors import ConfigurationError, NotFoundError
from registry_tools.notifier import NotificationResult
from registry_tools.provisioning import ensure_sheet_and_header
from registry_tools.records import KEY_FIELD, MODELS_HEADER, ModelRecord, normalize_model_record
from registry_tools.registry import find_registry_row, models_targets_by_category
from registry_tools.sheets_client import Target
from registry_tools.upsert import BatchUpsertResult, UpsertResult, upsert_many, upsert_one

logger = logging.getLogger(__name__)


@dataclass
class AddModelResult:
    env: str
    target: Target
    upsert: UpsertResult
    notification: NotificationResult

    def to_json(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "env": self.env,
            "target": self.target.to_json(),
            "upsert": self.upsert.to_json(),
            "n8n": self.notification.to_json(),
        }


@dataclass
class GroupResult:
    category: str
    target: Target
    records: List[ModelRecord] = field(default_factory=list)
    upsert: BatchUpsertResult = field(default_factory=BatchUpsertResult)
    notification: Optional[NotificationResult] = None
    error: str = ""

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "category": self.category,
            "target": self.target.to_json(),
            "upsert": self.upsert.to_json(),
            "n8n": self.notification.to_json() if self.notification else None,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class BulkAddResult:
    env: str
    groups: List[GroupResult] = field(default_factory=list)
    missing_categories: List[str] = field(default_factory=list)
    skipped: int = 0

    @property
    def total(self) -> int:
        return sum(group.upsert.total for group in self.groups)

    def to_json(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "env": self.env,
            "groups": [group.to_json() for group in self.groups],
            "total": self.total,
            "missingCategories": list(self.missing_categories),
            "skipped": self.skipped,
        }


def _models_target(row_target: Target) -> Target:
    if not row_target.spreadsheet_id:
        raise ConfigurationError(
            "Missing target_spreadsheet_id_models (empty in Registry row or header name mismatch)"
        )
    return row_target


def add_model(context: AppContext, env: str, payload: Mapping[str, Any]) -> AddModelResult:
    """Upsert one model record into the Models sheet of its category."""

    record = normalize_model_record(payload)
    row = find_registry_row(context.read_registry(), category=record.category)
    if row is None:
        raise NotFoundError(f"Category {record.category} not found")
    target = _models_target(row.models_target)

    client = context.client
    with context.lock_for(target):
        ensure_sheet_and_header(client, target, MODELS_HEADER)
        upsert = upsert_one(client, target, MODELS_HEADER, record.to_row(), key_field=KEY_FIELD)

    notification = context.notifier.notify(env, target)
    return AddModelResult(env=env, target=target, upsert=upsert, notification=notification)


def bulk_add_models(context: AppContext, env: str, items: Iterable[Any]) -> BulkAddResult:
    """Group ``items`` by models target and upsert each group in one batch.

    Items whose category is unknown (or has no models spreadsheet) are
    reported in ``missing_categories`` and skipped.  A failing group records
    its error and does not stop the remaining groups.
    """

    result = BulkAddResult(env=env)
    items = list(items)
    if not items:
        return result

    targets = models_targets_by_category(context.read_registry())
    groups: Dict[Target, GroupResult] = {}
    for raw in items:
        if not isinstance(raw, Mapping):
            result.skipped += 1
            continue
        record = normalize_model_record(raw)
        target = targets.get(record.category)
        if target is None:
            result.skipped += 1
            if record.category and record.category not in result.missing_categories:
                result.missing_categories.append(record.category)
            continue
        group = groups.get(target)
        if group is None:
            group = groups[target] = GroupResult(category=record.category, target=target)
        group.records.append(record)

    client = context.client
    for group in groups.values():
        try:
            with context.lock_for(group.target):
                ensure_sheet_and_header(client, group.target, MODELS_HEADER)
                group.upsert = upsert_many(
                    client,
                    group.target,
                    MODELS_HEADER,
                    [record.to_row() for record in group.records],
                    key_field=KEY_FIELD,
                )
        except Exception as exc:
            logger.warning("Bulk upsert to %s failed: %s", group.target, exc)
            group.error = str(exc)
            group.notification = NotificationResult.skipped("write_failed")
        else:
            group.notification = context.notifier.notify(env, group.target)
        result.groups.append(group)

    if result.missing_categories:
        logger.info("Bulk add env=%s skipped unknown categories: %s", env, ", ".join(result.missing_categories))
    return result


__all__ = [
    "AddModelResult",
    "BulkAddResult",
    "GroupResult",
    "add_model",
    "bulk_add_models",
]
