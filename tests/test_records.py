from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from registry_tools.records import (
    DEFAULT_STATUS,
    MODELS_HEADER,
    derive_key,
    normalize_model_record,
    utc_timestamp,
)


def test_derive_key_collapses_punctuation_and_drops_blank_parts() -> None:
    assert derive_key("  Acme Corp ", "X-200 / Pro", "", "Tractors") == "acme_corp_x_200_pro_tractors"
    assert derive_key("Ägir", "---", None) == "gir"
    assert derive_key("", None) == ""
    assert derive_key("a", "   ", "b") == "a_b"


def test_derive_key_is_stable_for_equivalent_inputs() -> None:
    assert derive_key("ACME", "x200", 1998, "Tractors") == derive_key("acme", "X200", "1998", "tractors")


def test_utc_timestamp_uses_millisecond_precision_and_z_suffix() -> None:
    moment = datetime(2024, 3, 5, 7, 8, 9, 123456, tzinfo=timezone.utc)
    assert utc_timestamp(moment) == "2024-03-05T07:08:09.123Z"
    assert utc_timestamp(datetime(2024, 3, 5)) == "2024-03-05T00:00:00.000Z"


def test_normalize_model_record_fills_defaults() -> None:
    record = normalize_model_record(
        {"Manufacturer": " Acme ", "Model": "X200", "Year": 1998.0, "Category": "Tractors", "Status": "  "},
        clock=lambda: "2024-01-01T00:00:00.000Z",
    )

    assert record.key == "acme_x200_1998_tractors"
    assert record.year == "1998"
    assert record.status == DEFAULT_STATUS
    assert record.created_at == "2024-01-01T00:00:00.000Z"
    assert list(record.to_row()) == list(MODELS_HEADER)


def test_normalize_model_record_keeps_explicit_values() -> None:
    record = normalize_model_record(
        {
            "Manufacturer": "Acme",
            "Model": "X200",
            "Key": "custom-key",
            "Status": "Done",
            "CreatedAt": "2020-01-01T00:00:00Z",
            "Ignored": "value",
        }
    )

    assert record.key == "custom-key"
    assert record.status == "Done"
    assert record.created_at == "2020-01-01T00:00:00Z"
    assert "Ignored" not in record.to_row()
