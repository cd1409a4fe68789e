"""Model record normalisation and key derivation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

MODELS_HEADER: Tuple[str, ...] = (
    "Manufacturer",
    "Model",
    "Year",
    "Category",
    "Key",
    "Status",
    "CreatedAt",
)
KEY_FIELD = "Key"
DEFAULT_STATUS = "Pending"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def derive_key(*parts: Any) -> str:
    """Build a stable row key from ``parts``.

    Each part is lowercased and every run of characters outside ``[a-z0-9]``
    becomes a single underscore.  Parts that end up empty are dropped.

    >>> derive_key("Acme", "X-200", "1998", "Tractors")
    'acme_x_200_1998_tractors'
    """

    tokens = []
    for part in parts:
        text = "" if part is None else str(part)
        token = _NON_ALNUM.sub("_", text.strip().lower()).strip("_")
        if token:
            tokens.append(token)
    return "_".join(tokens)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Return ``now`` (default: current time) as an ISO-8601 UTC string."""

    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ModelRecord:
    """A fully populated row destined for a Models sheet."""

    manufacturer: str
    model: str
    year: str
    category: str
    key: str
    status: str
    created_at: str

    def to_row(self) -> Dict[str, str]:
        """Return the record keyed by sheet column name."""

        return {
            "Manufacturer": self.manufacturer,
            "Model": self.model,
            "Year": self.year,
            "Category": self.category,
            "Key": self.key,
            "Status": self.status,
            "CreatedAt": self.created_at,
        }


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_model_record(
    payload: Mapping[str, Any],
    *,
    clock: Callable[[], str] = utc_timestamp,
) -> ModelRecord:
    """Turn an untyped request payload into a :class:`ModelRecord`.

    Missing fields become empty strings, a blank ``Key`` is derived from
    Manufacturer/Model/Year/Category, ``Status`` defaults to ``Pending`` and
    ``CreatedAt`` to the current time.
    """

    manufacturer = _text(payload.get("Manufacturer"))
    model = _text(payload.get("Model"))
    year = _text(payload.get("Year"))
    category = _text(payload.get("Category"))
    key = _text(payload.get("Key")) or derive_key(manufacturer, model, year, category)
    return ModelRecord(
        manufacturer=manufacturer,
        model=model,
        year=year,
        category=category,
        key=key,
        status=_text(payload.get("Status")) or DEFAULT_STATUS,
        created_at=_text(payload.get("CreatedAt")) or clock(),
    )


__all__ = [
    "DEFAULT_STATUS",
    "KEY_FIELD",
    "MODELS_HEADER",
    "ModelRecord",
    "derive_key",
    "normalize_model_record",
    "utc_timestamp",
]
